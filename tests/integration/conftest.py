"""
Integration test fixtures — a project on disk with the real compilers.
Tests needing pdflatex or pandoc skip when the tool is not on PATH.

Run: pytest tests/integration/ -v -m integration
"""

from __future__ import annotations

import pytest

from remote_text.engine.config import CONFIG_FILENAME, load_config


def pytest_configure(config):
    config.addinivalue_line("markers", "integration: exercises the runtime end to end on disk")


@pytest.fixture
def integration_project(tmp_path):
    """A project root with a remote_text.yaml with a generous compile timeout."""
    root = tmp_path / "project"
    root.mkdir()
    (root / CONFIG_FILENAME).write_text(
        "service:\n"
        "  environment: dev\n"
        "storage:\n"
        "  files_dir: files\n"
        "  previews_dir: previews\n"
        "previews:\n"
        "  compile_timeout_seconds: 120\n"
        "logging:\n"
        "  level: INFO\n",
        encoding="utf-8",
    )
    return root


@pytest.fixture
def live_runtime(integration_project):
    """A started runtime with the default (real) compiler table."""
    from remote_text.engine.runtime import RemoteTextRuntime

    config = load_config(str(integration_project / CONFIG_FILENAME))
    rt = RemoteTextRuntime(config, base_dir=integration_project)
    rt.startup()
    yield rt
    rt.shutdown()

"""
Remote Text Test Suite — Shared fixtures and configuration.

Run:  pytest tests/ -v
"""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Callable, List, Optional
from uuid import UUID

import pytest

from remote_text.engine.config import ServiceConfig
from remote_text.previews.compilers import CompilerRegistry, CompilerResult, DocumentCompiler
from remote_text.repository.handle import CommitIdentity
from remote_text.repository.models import CompilationState
from remote_text.repository.registry import RepositoryRegistry


# ---------------------------------------------------------------------------
# Global state isolation
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _isolate_globals():
    """Reset the config singleton and the global log queue between tests."""
    import remote_text.engine.config as cfg_mod
    import remote_text.engine.logging as log_mod

    cfg_mod._config = None
    yield
    cfg_mod._config = None
    log_mod.shutdown_logging()


# ---------------------------------------------------------------------------
# Identities / registry
# ---------------------------------------------------------------------------

@pytest.fixture
def committer():
    return CommitIdentity(name="Remote Text", email="blinky@remote-text.com")


@pytest.fixture
def author():
    return CommitIdentity(name="127.0.0.1:50000", email="blinky@remote-text.com")


@pytest.fixture
def files_dir(tmp_path):
    path = tmp_path / "files"
    path.mkdir()
    return path


@pytest.fixture
def registry(files_dir, committer):
    """A discovered registry over an empty files root."""
    reg = RepositoryRegistry(files_dir, committer)
    reg.discover()
    yield reg
    reg.close()


# ---------------------------------------------------------------------------
# Compilers
# ---------------------------------------------------------------------------

class StubCompiler(DocumentCompiler):
    """Records every invocation instead of launching a process."""

    name = "stub"
    extensions = ("md", "markdown", "tex")
    content_type = "text/html; charset=utf-8"

    def __init__(
        self,
        state: CompilationState = CompilationState.SUCCESS,
        on_compile: Optional[Callable[[Path, Path, Optional[UUID]], None]] = None,
    ):
        super().__init__("stub")
        self.state = state
        self.on_compile = on_compile
        self.calls: List[str] = []
        self._lock = threading.Lock()

    def compile(
        self,
        source: Path,
        workdir: Path,
        timeout: float,
        document_id: Optional[UUID] = None,
    ) -> CompilerResult:
        if self.on_compile is not None:
            self.on_compile(source, workdir, document_id)
        content = source.read_bytes().decode("utf-8")
        with self._lock:
            self.calls.append(content)
        if self.state == CompilationState.SUCCESS:
            return CompilerResult(
                state=self.state,
                log=f"compiled {source.name}",
                artifact=f"<html>{content}</html>".encode("utf-8"),
                content_type=self.content_type,
            )
        return CompilerResult(state=self.state, log=f"! error in {source.name}")

    @property
    def call_count(self) -> int:
        return len(self.calls)


@pytest.fixture
def make_stub_compiler():
    """Factory for extra stubs (failing ones, callbacks)."""
    return StubCompiler


@pytest.fixture
def stub_compiler():
    return StubCompiler()


@pytest.fixture
def compilers(stub_compiler):
    reg = CompilerRegistry()
    reg.register(stub_compiler)
    return reg


# ---------------------------------------------------------------------------
# Runtime
# ---------------------------------------------------------------------------

@pytest.fixture
def config():
    return ServiceConfig()


@pytest.fixture
def runtime(tmp_path, config, compilers):
    """A started runtime rooted in a temp directory."""
    from remote_text.engine.runtime import RemoteTextRuntime

    rt = RemoteTextRuntime(config, base_dir=tmp_path, compilers=compilers)
    rt.startup()
    yield rt
    rt.shutdown()


@pytest.fixture
def documents(runtime):
    return runtime.documents

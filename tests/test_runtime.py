"""Unit tests for remote_text.engine.runtime — RemoteTextRuntime lifecycle."""

import logging

from remote_text.engine.config import ServiceConfig
from remote_text.engine.logging import FileLogger, get_log_queue
from remote_text.engine.runtime import RemoteTextRuntime


class TestLifecycle:
    def test_startup_creates_roots(self, tmp_path, compilers):
        rt = RemoteTextRuntime(ServiceConfig(), base_dir=tmp_path, compilers=compilers)
        assert rt.documents is None
        rt.startup()
        try:
            assert rt.started
            assert (tmp_path / "files").is_dir()
            assert (tmp_path / "previews").is_dir()
            assert (tmp_path / ".remote_text" / "logs" / "documents" / "execution").is_dir()
            assert rt.registry.discovered
            assert get_log_queue() is rt.log_queue
        finally:
            rt.shutdown()
        assert not rt.started
        assert get_log_queue() is None

    def test_double_startup_warns(self, runtime, caplog):
        registry = runtime.registry
        with caplog.at_level(logging.WARNING, logger="remote_text.engine.runtime"):
            runtime.startup()
        assert "already started" in caplog.text
        assert runtime.registry is registry

    def test_shutdown_is_idempotent(self, tmp_path, compilers):
        rt = RemoteTextRuntime(ServiceConfig(), base_dir=tmp_path, compilers=compilers)
        rt.shutdown()
        rt.startup()
        rt.shutdown()
        rt.shutdown()

    def test_context_manager(self, tmp_path, compilers):
        with RemoteTextRuntime(ServiceConfig(), base_dir=tmp_path, compilers=compilers) as rt:
            rt.documents.create_file("a.txt", "x")
        assert not rt.started

    def test_absolute_paths_ignore_base_dir(self, tmp_path, compilers):
        cfg = ServiceConfig(storage={"files_dir": str(tmp_path / "elsewhere")})
        rt = RemoteTextRuntime(cfg, base_dir=tmp_path / "base", compilers=compilers)
        assert rt.files_root == tmp_path / "elsewhere"
        assert rt.previews_root == tmp_path / "base" / "previews"


class TestRestart:
    def test_documents_survive_restart(self, tmp_path, compilers):
        with RemoteTextRuntime(ServiceConfig(), base_dir=tmp_path, compilers=compilers) as rt:
            created = rt.documents.create_file("a.txt", "v1")
            saved = rt.documents.save_file(created.id, "a.txt", "v2", created.commit_hash)

        with RemoteTextRuntime(ServiceConfig(), base_dir=tmp_path, compilers=compilers) as rt:
            assert [f.id for f in rt.documents.list_files()] == [created.id]
            assert rt.documents.get_file(created.id).content == "v2"
            assert rt.documents.get_history(created.id).ref("main").hash == saved.hash

    def test_previews_survive_restart(self, tmp_path, make_stub_compiler):
        from remote_text.previews.compilers import CompilerRegistry

        first = make_stub_compiler()
        reg = CompilerRegistry()
        reg.register(first)
        with RemoteTextRuntime(ServiceConfig(), base_dir=tmp_path, compilers=reg) as rt:
            created = rt.documents.create_file("a.md", "x")
            rt.documents.preview_file(created.id, created.commit_hash)

        second = make_stub_compiler()
        reg = CompilerRegistry()
        reg.register(second)
        with RemoteTextRuntime(ServiceConfig(), base_dir=tmp_path, compilers=reg) as rt:
            rt.documents.preview_file(created.id, created.commit_hash)
        assert second.call_count == 0

    def test_strict_parent_setting_reaches_mutator(self, tmp_path, compilers):
        cfg = ServiceConfig(repository={"reject_stale_parent": True})
        with RemoteTextRuntime(cfg, base_dir=tmp_path, compilers=compilers) as rt:
            assert rt.documents.mutator.reject_stale_parent is True


class TestSystemEvents:
    def test_start_and_stop_logged(self, tmp_path, compilers):
        with RemoteTextRuntime(ServiceConfig(), base_dir=tmp_path, compilers=compilers):
            pass
        events = FileLogger(str(tmp_path / ".remote_text" / "logs")).query("system", "execution")
        assert [e["event"] for e in events] == ["service_shutdown", "service_started"]

    def test_status(self, runtime):
        runtime.documents.create_file("a.txt", "x")
        status = runtime.status()
        assert status["started"] is True
        assert status["documents"] == 1
        assert status["log_queue"] is True

    def test_cleanup_logs(self, runtime):
        assert runtime.cleanup_logs() == {"deleted": 0, "compressed": 0}

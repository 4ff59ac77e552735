"""Unit tests for remote_text.api.dispatcher — APIDispatcher request pipeline."""

import json
import uuid

import pytest

from remote_text.api.dispatcher import APIDispatcher, APIRequest
from remote_text.engine.config import APIConfig


@pytest.fixture
def dispatcher(documents):
    return APIDispatcher(documents)


def _call(dispatcher, operation, body=None, client="127.0.0.1:50000"):
    raw = json.dumps(body) if body is not None else None
    return dispatcher.dispatch(
        APIRequest(path=f"/api/v2/{operation}", body=raw, client_address=client)
    )


def _create(dispatcher, name="a.txt", content="hello"):
    response = _call(dispatcher, "createFile", {"name": name, "content": content})
    assert response.status_code == 200
    return response.json_body()


class TestRouting:
    def test_operations(self, dispatcher):
        assert dispatcher.operations == [
            "createFile", "deleteFile", "getFile", "getHistory",
            "getPreview", "listFiles", "previewFile", "saveFile",
        ]

    @pytest.mark.parametrize("path", [
        "/api/v2/listFiles", "/api/v2/listFiles/", "listFiles", "/listFiles", "/api/v2/listFiles?x=1",
    ])
    def test_resolve(self, dispatcher, path):
        assert dispatcher.resolve_operation(path) == "listFiles"

    def test_unknown_operation(self, dispatcher):
        response = dispatcher.dispatch(APIRequest(path="/api/v2/renameFile"))
        assert response.status_code == 404
        assert response.body["error_type"] == "NotFound"

    def test_custom_prefix(self, documents):
        dispatcher = APIDispatcher(documents, APIConfig(prefix="/v3"))
        assert dispatcher.resolve_operation("/v3/getFile") == "getFile"
        assert dispatcher.resolve_operation("/api/v2/getFile") is None


class TestFileOperations:
    def test_create_wire_format(self, dispatcher):
        body = _create(dispatcher)
        assert set(body) == {"name", "id", "commitHash", "createdAt"}
        assert body["name"] == "a.txt"
        assert len(body["commitHash"]) == 40
        uuid.UUID(body["id"])

    def test_list(self, dispatcher):
        created = _create(dispatcher)
        response = _call(dispatcher, "listFiles")
        assert response.status_code == 200
        listing = response.json_body()
        assert [f["id"] for f in listing] == [created["id"]]
        assert set(listing[0]) == {"name", "id", "createdAt", "editedAt"}

    def test_get_with_and_without_hash(self, dispatcher):
        created = _create(dispatcher)
        latest = _call(dispatcher, "getFile", {"id": created["id"]}).json_body()
        pinned = _call(
            dispatcher, "getFile", {"id": created["id"], "hash": created["commitHash"]}
        ).json_body()
        assert latest == pinned == {"name": "a.txt", "id": created["id"], "content": "hello"}

    def test_save_and_history(self, dispatcher):
        created = _create(dispatcher)
        saved = _call(dispatcher, "saveFile", {
            "name": "a.txt", "id": created["id"], "content": "world",
            "parent": created["commitHash"],
        })
        assert saved.status_code == 200
        commit = saved.json_body()
        assert commit["parent"] == created["commitHash"]

        history = _call(dispatcher, "getHistory", {"id": created["id"]}).json_body()
        assert {c["hash"] for c in history["commits"]} == {created["commitHash"], commit["hash"]}
        assert history["refs"] == [{"name": "main", "hash": commit["hash"]}]

    def test_save_accepts_parent_hash_alias_and_branch(self, dispatcher):
        created = _create(dispatcher)
        saved = _call(dispatcher, "saveFile", {
            "name": "a.txt", "id": created["id"], "content": "draft",
            "parentHash": created["commitHash"], "branch": "draft",
        }).json_body()
        history = _call(dispatcher, "getHistory", {"id": created["id"]}).json_body()
        refs = {r["name"]: r["hash"] for r in history["refs"]}
        assert refs == {"main": created["commitHash"], "draft": saved["hash"]}

    def test_delete_returns_empty_body(self, dispatcher):
        created = _create(dispatcher)
        response = _call(dispatcher, "deleteFile", {"id": created["id"]})
        assert response.status_code == 200
        assert response.body is None
        assert _call(dispatcher, "listFiles").json_body() == []


class TestPreviewOperations:
    def test_preview_then_get_preview(self, dispatcher):
        created = _create(dispatcher, "a.md", "# x")
        response = _call(dispatcher, "previewFile", {"id": created["id"], "hash": created["commitHash"]})
        assert response.status_code == 200
        assert response.json_body()["state"] == "SUCCESS"

        artifact = _call(dispatcher, "getPreview", {"id": created["id"], "hash": created["commitHash"]})
        assert artifact.status_code == 200
        assert artifact.body == b"<html># x</html>"
        assert artifact.headers["Content-Type"].startswith("text/html")

    def test_unsupported_format(self, dispatcher):
        created = _create(dispatcher, "a.txt", "x")
        response = _call(dispatcher, "previewFile", {"id": created["id"], "hash": created["commitHash"]})
        assert response.status_code == 415
        assert response.body["error_type"] == "UnsupportedPreviewError"

    def test_get_preview_not_compiled(self, dispatcher):
        created = _create(dispatcher, "a.md", "x")
        response = _call(dispatcher, "getPreview", {"id": created["id"], "hash": created["commitHash"]})
        assert response.status_code == 404


class TestErrorMapping:
    def test_unknown_document(self, dispatcher):
        response = _call(dispatcher, "getFile", {"id": str(uuid.uuid4())})
        assert response.status_code == 404
        assert response.body["error_type"] == "DocumentNotFoundError"
        assert response.headers["Content-Type"] == "application/json"

    def test_bad_hash(self, dispatcher):
        created = _create(dispatcher)
        response = _call(dispatcher, "getFile", {"id": created["id"], "hash": "xyz"})
        assert response.status_code == 400
        assert response.body["error_type"] == "BadRevisionError"

    def test_unknown_parent(self, dispatcher):
        created = _create(dispatcher)
        response = _call(dispatcher, "saveFile", {
            "name": "a.txt", "id": created["id"], "content": "x", "parent": "0" * 40,
        })
        assert response.status_code == 404
        assert response.body["error_type"] == "ParentNotFoundError"

    @pytest.mark.parametrize("body", [
        {"name": "a.txt"},
        {"id": "not-a-uuid"},
        {"id": str(uuid.uuid4()), "name": "a.txt", "content": "x"},
    ])
    def test_validation_error(self, dispatcher, body):
        response = _call(dispatcher, "saveFile", body)
        assert response.status_code == 400
        assert response.body["error_type"] == "ValidationError"

    def test_malformed_json(self, dispatcher):
        response = dispatcher.dispatch(APIRequest(path="/api/v2/getFile", body="{not json"))
        assert response.status_code == 400

    def test_missing_body(self, dispatcher):
        response = dispatcher.dispatch(APIRequest(path="/api/v2/getFile"))
        assert response.status_code == 400
        assert response.body["error_type"] == "MalformedBody"

    def test_body_too_large(self, dispatcher):
        response = _call(dispatcher, "createFile", {"name": "a.txt", "content": "x" * (16 * 1024)})
        assert response.status_code == 413
        assert response.body["error_type"] == "PayloadTooLargeError"
        assert _call(dispatcher, "listFiles").json_body() == []

    def test_body_at_limit_accepted(self, documents):
        dispatcher = APIDispatcher(documents, APIConfig(max_body_bytes=64))
        raw = json.dumps({"name": "a.txt", "content": ""})
        raw = raw[:-1] + " " * (64 - len(raw)) + "}"
        assert len(raw) == 64
        response = dispatcher.dispatch(APIRequest(path="/api/v2/createFile", body=raw))
        assert response.status_code == 200

    def test_unexpected_exception_is_500(self, dispatcher, monkeypatch):
        def _boom():
            raise RuntimeError("boom")

        monkeypatch.setattr(dispatcher._documents, "list_files", _boom)
        response = _call(dispatcher, "listFiles")
        assert response.status_code == 500
        assert response.body["message"] == "Internal server error"

"""
Remote Text API Dispatcher — Inbound request pipeline, no server attached.

Pipeline (per request):
    1. Strip the configured prefix (/api/v2) and resolve the operation name
    2. Body size check (api.max_body_bytes → 413)
    3. Parse JSON and validate against the operation's request model (→ 400)
    4. Call DocumentService
    5. Map the result to JSON (camelCase keys) or raw bytes for previews
    6. Map RemoteTextError → its status_code with the error dict as body

Any HTTP framework can adapt to this: build an APIRequest from its request,
call dispatch(), and copy APIResponse back.

Operations (path segment after the prefix):
    listFiles   createFile   getFile   saveFile   deleteFile
    previewFile getPreview   getHistory
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Callable, Dict, Optional, Type, Union
from uuid import UUID

from pydantic import AliasChoices, BaseModel, Field, ValidationError

from remote_text.documents.service import DocumentService
from remote_text.engine.config import APIConfig
from remote_text.engine.errors import PayloadTooLargeError, RemoteTextError
from remote_text.repository.models import WireModel

logger = logging.getLogger("remote_text.api.dispatcher")

JSON_CONTENT_TYPE = "application/json"


# ---------------------------------------------------------------------------
# Request / Response Models
# ---------------------------------------------------------------------------

class APIRequest(BaseModel):
    """Normalized inbound request."""

    method: str = "POST"
    path: str
    body: Union[bytes, str, None] = None
    headers: Dict[str, str] = {}
    client_address: Optional[str] = None


class APIResponse(BaseModel):
    """Normalized outbound response. body is JSON-ready data, bytes, or None."""

    status_code: int = 200
    body: Any = None
    headers: Dict[str, str] = {}

    def json_body(self) -> Any:
        """Decode a JSON body (tests, CLI)."""
        if isinstance(self.body, (bytes, str)):
            return json.loads(self.body)
        return self.body


class CreateFileRequest(WireModel):
    name: str
    content: Optional[str] = None


class FileIDRequest(WireModel):
    id: UUID


class FileIDAndOptionalHashRequest(WireModel):
    id: UUID
    hash: Optional[str] = None


class FileIDAndHashRequest(WireModel):
    id: UUID
    hash: str


class SaveFileRequest(WireModel):
    name: str
    id: UUID
    content: str
    parent: str = Field(validation_alias=AliasChoices("parent", "parentHash"))
    branch: Optional[str] = None


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------

class APIDispatcher:
    """
    Maps APIRequests onto DocumentService calls.

    Usage:
        dispatcher = APIDispatcher(runtime.documents, runtime.config.api)
        response = dispatcher.dispatch(APIRequest(path="/api/v2/listFiles"))
    """

    def __init__(self, documents: DocumentService, config: Optional[APIConfig] = None):
        self._documents = documents
        self._config = config or APIConfig()
        self._routes: Dict[str, Callable[[APIRequest], APIResponse]] = {
            "listFiles": self._list_files,
            "createFile": self._create_file,
            "getFile": self._get_file,
            "saveFile": self._save_file,
            "deleteFile": self._delete_file,
            "previewFile": self._preview_file,
            "getPreview": self._get_preview,
            "getHistory": self._get_history,
        }

    @property
    def operations(self):
        return sorted(self._routes)

    def resolve_operation(self, path: str) -> Optional[str]:
        """Operation name for a path, with or without the configured prefix."""
        prefix = self._config.prefix.rstrip("/")
        trimmed = path.split("?", 1)[0]
        if prefix and (trimmed == prefix or trimmed.startswith(prefix + "/")):
            trimmed = trimmed[len(prefix):]
        name = trimmed.strip("/")
        return name if name in self._routes else None

    def dispatch(self, request: APIRequest) -> APIResponse:
        start = time.monotonic()
        operation = self.resolve_operation(request.path)
        if operation is None:
            response = self._error_body(404, "NotFound", f"No operation at {request.path}")
        else:
            response = self._execute(operation, request)
        duration_ms = (time.monotonic() - start) * 1000
        logger.info(
            f"{request.client_address or '-'} {request.method} {request.path} "
            f"{response.status_code} {duration_ms:.1f}ms"
        )
        return response

    def _execute(self, operation: str, request: APIRequest) -> APIResponse:
        try:
            self._check_size(request)
            return self._routes[operation](request)
        except RemoteTextError as e:
            return APIResponse(
                status_code=e.status_code,
                body=e.to_dict(),
                headers={"Content-Type": JSON_CONTENT_TYPE},
            )
        except ValidationError as e:
            logger.info(f"Rejected {operation} request: {e.error_count()} validation error(s)")
            return self._error_body(400, "ValidationError", str(e))
        except ValueError as e:
            # malformed JSON
            logger.info(f"Rejected {operation} request: {e}")
            return self._error_body(400, "MalformedBody", str(e))
        except Exception as e:
            logger.exception(f"Unhandled error in {operation}: {e}")
            return self._error_body(500, "InternalError", "Internal server error")

    # -----------------------------------------------------------------------
    # Helpers
    # -----------------------------------------------------------------------

    def _check_size(self, request: APIRequest) -> None:
        body = request.body
        if body is None:
            return
        size = len(body.encode("utf-8")) if isinstance(body, str) else len(body)
        limit = self._config.max_body_bytes
        if size > limit:
            raise PayloadTooLargeError(
                f"Body of {size} bytes exceeds limit of {limit}",
                limit_bytes=limit, actual_bytes=size,
            )

    @staticmethod
    def _parse(request: APIRequest, model: Type[WireModel]) -> Any:
        if request.body is None or request.body in (b"", ""):
            raise ValueError("Request body is required")
        return model.model_validate_json(request.body)

    @staticmethod
    def _json(data: Any, status_code: int = 200) -> APIResponse:
        if isinstance(data, BaseModel):
            body = data.model_dump(mode="json", by_alias=True)
        elif isinstance(data, list):
            body = [
                d.model_dump(mode="json", by_alias=True) if isinstance(d, BaseModel) else d
                for d in data
            ]
        else:
            body = data
        return APIResponse(
            status_code=status_code, body=body, headers={"Content-Type": JSON_CONTENT_TYPE},
        )

    @staticmethod
    def _error_body(status_code: int, error_type: str, message: str) -> APIResponse:
        return APIResponse(
            status_code=status_code,
            body={"error_type": error_type, "message": message, "status_code": status_code},
            headers={"Content-Type": JSON_CONTENT_TYPE},
        )

    # -----------------------------------------------------------------------
    # Operations
    # -----------------------------------------------------------------------

    def _list_files(self, request: APIRequest) -> APIResponse:
        return self._json(self._documents.list_files())

    def _create_file(self, request: APIRequest) -> APIResponse:
        req = self._parse(request, CreateFileRequest)
        created = self._documents.create_file(req.name, req.content, request.client_address)
        return self._json(created)

    def _get_file(self, request: APIRequest) -> APIResponse:
        req = self._parse(request, FileIDAndOptionalHashRequest)
        return self._json(self._documents.get_file(req.id, req.hash))

    def _save_file(self, request: APIRequest) -> APIResponse:
        req = self._parse(request, SaveFileRequest)
        commit = self._documents.save_file(
            req.id, req.name, req.content, req.parent, req.branch, request.client_address,
        )
        return self._json(commit)

    def _delete_file(self, request: APIRequest) -> APIResponse:
        req = self._parse(request, FileIDRequest)
        self._documents.delete_file(req.id)
        return APIResponse(status_code=200)

    def _preview_file(self, request: APIRequest) -> APIResponse:
        req = self._parse(request, FileIDAndHashRequest)
        return self._json(self._documents.preview_file(req.id, req.hash))

    def _get_preview(self, request: APIRequest) -> APIResponse:
        req = self._parse(request, FileIDAndHashRequest)
        data, content_type = self._documents.get_preview(req.id, req.hash)
        return APIResponse(status_code=200, body=data, headers={"Content-Type": content_type})

    def _get_history(self, request: APIRequest) -> APIResponse:
        req = self._parse(request, FileIDRequest)
        return self._json(self._documents.get_history(req.id))

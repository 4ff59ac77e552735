"""
Remote Text Error Hierarchy — Structured exceptions carrying the document id.

Every error knows the HTTP status it maps to, so the API dispatcher never
needs its own lookup table. The DocumentId is the correlation key in logs.

Hierarchy:
    RemoteTextError
    ├── NotFoundError                 404
    │   ├── DocumentNotFoundError
    │   ├── RevisionNotFoundError
    │   │   └── ParentNotFoundError
    │   └── PreviewNotFoundError
    ├── BadRequestError               400
    │   ├── BadRevisionError
    │   ├── BadParentError
    │   ├── InvalidFilenameError
    │   ├── InvalidBranchError
    │   ├── PayloadTooLargeError      413
    │   └── UnsupportedPreviewError   415
    ├── ConflictError                 409
    ├── InternalInconsistencyError    500
    ├── InternalIOError               500
    │   ├── RepositoryCreationError
    │   ├── FileWriteError
    │   ├── ReadError
    │   ├── RepositoryDeletionError
    │   └── CompilerLaunchError
    ├── PreviewTimeoutError           504
    └── ConfigError                   500
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional

_RESERVED_KEYS = ("document_id", "commit_hash", "operation")


class RemoteTextError(Exception):
    """
    Base error for all Remote Text failures.
    All context is serializable to JSON for the structured log.
    """

    status_code: int = 500

    def __init__(self, message: str, **context: Any):
        self.message = message
        document_id = context.get("document_id")
        self.document_id: Optional[str] = str(document_id) if document_id is not None else None
        self.commit_hash: Optional[str] = context.get("commit_hash")
        self.operation: Optional[str] = context.get("operation")
        self.error_type: str = self.__class__.__name__
        self.context: Dict[str, Any] = context
        self.timestamp: str = datetime.now(timezone.utc).isoformat()
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize error to a JSON-compatible dict for logs and responses."""
        return {
            "error_type": self.error_type,
            "message": self.message,
            "status_code": self.status_code,
            "document_id": self.document_id,
            "commit_hash": self.commit_hash,
            "operation": self.operation,
            "timestamp": self.timestamp,
            "context": {
                k: str(v) for k, v in self.context.items()
                if k not in _RESERVED_KEYS
            },
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)

    def __repr__(self) -> str:
        parts = [f"{self.error_type}: {self.message}"]
        if self.document_id:
            parts.append(f"document_id={self.document_id}")
        if self.commit_hash:
            parts.append(f"commit_hash={self.commit_hash}")
        return " | ".join(parts)


# ---------------------------------------------------------------------------
# 404
# ---------------------------------------------------------------------------

class NotFoundError(RemoteTextError):
    """Unknown DocumentId or unresolvable revision."""

    status_code = 404


class DocumentNotFoundError(NotFoundError):
    """No repository is registered for the DocumentId."""
    pass


class RevisionNotFoundError(NotFoundError):
    """The hash is well-formed but names no commit in this repository."""
    pass


class ParentNotFoundError(RevisionNotFoundError):
    """The parent hash supplied to a save names no commit."""
    pass


class PreviewNotFoundError(NotFoundError):
    """Revision was never compiled, or its compilation failed."""
    pass


# ---------------------------------------------------------------------------
# 4xx client errors
# ---------------------------------------------------------------------------

class BadRequestError(RemoteTextError):
    """Malformed input from the caller."""

    status_code = 400


class BadRevisionError(BadRequestError):
    """Revision hash is not a 40-character hex commit id."""
    pass


class BadParentError(BadRequestError):
    """Parent hash supplied to a save is malformed."""
    pass


class InvalidFilenameError(BadRequestError):
    """Working file name is not a single, safe path component."""
    pass


class InvalidBranchError(BadRequestError):
    """Branch name is not a valid git ref component."""
    pass


class PayloadTooLargeError(BadRequestError):
    """Request body exceeds the configured limit."""

    status_code = 413

    def __init__(self, message: str, **context: Any):
        self.limit_bytes: Optional[int] = context.get("limit_bytes")
        self.actual_bytes: Optional[int] = context.get("actual_bytes")
        super().__init__(message, **context)


class UnsupportedPreviewError(BadRequestError):
    """No compiler is registered for the working file's extension."""

    status_code = 415


class ConflictError(RemoteTextError):
    """
    Save was based on a parent that is no longer the branch tip.
    Only raised when repository.reject_stale_parent is enabled.
    """

    status_code = 409

    def __init__(self, message: str, **context: Any):
        self.branch: Optional[str] = context.get("branch")
        self.current_tip: Optional[str] = context.get("current_tip")
        super().__init__(message, **context)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["branch"] = self.branch
        d["current_tip"] = self.current_tip
        return d


# ---------------------------------------------------------------------------
# 5xx server faults
# ---------------------------------------------------------------------------

class InternalInconsistencyError(RemoteTextError):
    """A repository invariant was violated (no working file, failed checkout)."""

    status_code = 500


class InternalIOError(RemoteTextError):
    """Filesystem or process-launch failure."""

    status_code = 500

    def __init__(self, message: str, **context: Any):
        self.path: Optional[str] = str(context["path"]) if context.get("path") is not None else None
        super().__init__(message, **context)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["path"] = self.path
        return d


class RepositoryCreationError(InternalIOError):
    """Repository directory could not be created or initialized."""
    pass


class FileWriteError(InternalIOError):
    """Working file could not be written."""
    pass


class ReadError(InternalIOError):
    """Working file could not be read, or is not UTF-8 text."""
    pass


class RepositoryDeletionError(InternalIOError):
    """
    Registry entry was removed but the directory could not be deleted.
    The directory is left orphaned on disk.
    """
    pass


class CompilerLaunchError(InternalIOError):
    """External compiler could not be started."""

    def __init__(self, message: str, **context: Any):
        self.compiler: Optional[str] = context.get("compiler")
        super().__init__(message, **context)


class PreviewTimeoutError(RemoteTextError):
    """External compiler exceeded previews.compile_timeout_seconds."""

    status_code = 504

    def __init__(self, message: str, **context: Any):
        self.timeout_seconds: Optional[float] = context.get("timeout_seconds")
        super().__init__(message, **context)


class ConfigError(RemoteTextError):
    """Invalid or unreadable remote_text.yaml."""
    pass

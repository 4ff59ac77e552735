"""Remote Text Engine — Configuration, errors, structured logging, runtime."""

from remote_text.engine.runtime import RemoteTextRuntime  # noqa: F401

__all__ = [
    "RemoteTextRuntime",
]

"""Remote Text API — Framework-agnostic request dispatch."""

from remote_text.api.dispatcher import APIDispatcher, APIRequest, APIResponse

__all__ = [
    "APIDispatcher",
    "APIRequest",
    "APIResponse",
]

"""
Remote Text Documents.

The operation facade over the repository core and the preview service.
"""

from remote_text.documents.service import DocumentService

__all__ = [
    "DocumentService",
]

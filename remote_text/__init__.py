"""
Remote Text — versioned document storage backed by one git repository per document.

Each document lives in its own repository under the configured files root.
Saves become commits, older revisions can be read back by hash, branches are
force-moved on save, and revisions can be rendered to PDF/HTML previews by
external compilers.

Entry points:
    remote_text.engine.runtime.RemoteTextRuntime — lifecycle + wiring
    remote_text.documents.DocumentService        — operation facade
    remote_text.api.APIDispatcher                — request/response mapping
    remote_text.cli.main                         — command line
"""

__version__ = "0.3.0"
__all__ = ["engine", "repository", "previews", "documents", "api"]

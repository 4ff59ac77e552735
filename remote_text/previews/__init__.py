"""Remote Text Previews — External compilers and the per-revision artifact cache."""

from remote_text.previews.cache import CompilationCache, PreviewArtifact
from remote_text.previews.compilers import (
    CompilerRegistry,
    CompilerResult,
    DocumentCompiler,
    PandocCompiler,
    PdfLatexCompiler,
)
from remote_text.previews.service import PreviewService

__all__ = [
    "CompilationCache",
    "CompilerRegistry",
    "CompilerResult",
    "DocumentCompiler",
    "PandocCompiler",
    "PdfLatexCompiler",
    "PreviewArtifact",
    "PreviewService",
]

"""
Remote Text Compilers — External document → PDF/HTML tools.

Compiler is chosen by the working file's extension:
    .tex              → pdflatex  (PDF,  log read from <stem>.log)
    .md / .markdown   → pandoc    (HTML, log taken from stderr)

A tool that runs and fails is a normal result (state FAILURE + log). Only a
tool that cannot be started (CompilerLaunchError) or overruns its timeout
(PreviewTimeoutError) is an error.
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence
from uuid import UUID

from remote_text.engine.errors import (
    CompilerLaunchError,
    PreviewTimeoutError,
    ReadError,
    UnsupportedPreviewError,
)
from remote_text.repository.models import CompilationState

logger = logging.getLogger("remote_text.previews.compilers")


@dataclass
class CompilerResult:
    state: CompilationState
    log: str
    artifact: Optional[bytes] = None
    content_type: Optional[str] = None


class DocumentCompiler:
    """
    Base class for an external compiler.

    Subclasses set name / extensions / content_type and implement
    build_args() and collect().
    """

    name: str = ""
    extensions: Sequence[str] = ()
    content_type: str = "application/octet-stream"
    capture_output: bool = False

    def __init__(self, command: str):
        self.command: List[str] = shlex.split(command)

    def build_args(self, source: Path, workdir: Path) -> List[str]:
        raise NotImplementedError

    def collect(
        self,
        source: Path,
        workdir: Path,
        proc: subprocess.CompletedProcess,
        document_id: Optional[UUID] = None,
    ) -> str:
        """Return the compiler log for a finished run."""
        raise NotImplementedError

    def output_path(self, source: Path, workdir: Path) -> Path:
        raise NotImplementedError

    def compile(
        self,
        source: Path,
        workdir: Path,
        timeout: float,
        document_id: Optional[UUID] = None,
    ) -> CompilerResult:
        """
        Run the tool over source, writing into workdir.

        Raises:
            CompilerLaunchError: the executable could not be started.
            PreviewTimeoutError: the run exceeded timeout seconds.
        """
        args = self.build_args(source, workdir)
        logger.debug(f"[{document_id}] Running {self.name}: {args}")
        try:
            if self.capture_output:
                proc = subprocess.run(
                    args, cwd=workdir, capture_output=True, timeout=timeout, check=False,
                )
            else:
                proc = subprocess.run(
                    args, cwd=workdir, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL,
                    timeout=timeout, check=False,
                )
        except subprocess.TimeoutExpired as e:
            logger.error(f"[{document_id}] {self.name} timed out after {timeout}s")
            raise PreviewTimeoutError(
                f"{self.name} exceeded {timeout}s",
                document_id=document_id, operation="preview", timeout_seconds=timeout,
            ) from e
        except OSError as e:
            logger.error(f"[{document_id}] Unable to launch {self.name}: {e}")
            raise CompilerLaunchError(
                f"Unable to launch {self.name}: {e}",
                document_id=document_id, operation="preview",
                compiler=self.name, path=self.command[0],
            ) from e

        log_text = self.collect(source, workdir, proc, document_id)
        state = CompilationState.SUCCESS if proc.returncode == 0 else CompilationState.FAILURE
        logger.info(f"[{document_id}] {self.name} finished: {state.value} (exit {proc.returncode})")

        artifact = None
        output = self.output_path(source, workdir)
        if state == CompilationState.SUCCESS and output.is_file():
            artifact = output.read_bytes()
        elif state == CompilationState.SUCCESS:
            logger.warning(f"[{document_id}] {self.name} succeeded but wrote no {output.name}")

        return CompilerResult(
            state=state,
            log=log_text,
            artifact=artifact,
            content_type=self.content_type if artifact is not None else None,
        )


class PdfLatexCompiler(DocumentCompiler):
    name = "pdflatex"
    extensions = ("tex",)
    content_type = "application/pdf"

    def build_args(self, source: Path, workdir: Path) -> List[str]:
        return self.command + [
            "-output-directory", str(workdir),
            "-interaction", "nonstopmode",
            "-halt-on-error",
            str(source),
        ]

    def output_path(self, source: Path, workdir: Path) -> Path:
        return workdir / f"{source.stem}.pdf"

    def collect(self, source, workdir, proc, document_id=None) -> str:
        log_path = workdir / f"{source.stem}.log"
        try:
            return log_path.read_bytes().decode("utf-8", errors="replace")
        except OSError as e:
            logger.error(f"[{document_id}] Unable to read pdflatex log: {e}")
            raise ReadError(
                f"Unable to read pdflatex log: {e}",
                document_id=document_id, operation="preview", path=log_path,
            ) from e


class PandocCompiler(DocumentCompiler):
    name = "pandoc"
    extensions = ("md", "markdown")
    content_type = "text/html; charset=utf-8"
    capture_output = True

    def build_args(self, source: Path, workdir: Path) -> List[str]:
        return self.command + [
            "--verbose",
            "-s",
            "-o", str(self.output_path(source, workdir)),
            str(source),
        ]

    def output_path(self, source: Path, workdir: Path) -> Path:
        return workdir / f"{source.stem}.html"

    def collect(self, source, workdir, proc, document_id=None) -> str:
        try:
            return (proc.stderr or b"").decode("utf-8")
        except UnicodeDecodeError as e:
            logger.error(f"[{document_id}] Pandoc log is not UTF-8")
            raise ReadError(
                "Pandoc log is not UTF-8",
                document_id=document_id, operation="preview",
            ) from e


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

class CompilerRegistry:
    """Extension → compiler lookup."""

    def __init__(self):
        self._by_extension: Dict[str, DocumentCompiler] = {}

    def register(self, compiler: DocumentCompiler) -> None:
        for ext in compiler.extensions:
            self._by_extension[ext.lower()] = compiler

    def extensions(self) -> List[str]:
        return sorted(self._by_extension)

    def for_filename(self, filename: str, document_id: Optional[UUID] = None) -> DocumentCompiler:
        """
        Raises:
            UnsupportedPreviewError: no extension, or no compiler for it.
        """
        suffix = Path(filename).suffix
        if not suffix or suffix == ".":
            logger.warning(f"[{document_id}] No file extension (filename: {filename})")
            raise UnsupportedPreviewError(
                f"{filename!r} has no file extension",
                document_id=document_id, operation="preview",
            )
        compiler = self._by_extension.get(suffix[1:].lower())
        if compiler is None:
            logger.info(f"[{document_id}] Unknown file type ({suffix[1:]})")
            raise UnsupportedPreviewError(
                f"No previewer for {suffix[1:]!r} files",
                document_id=document_id, operation="preview",
            )
        return compiler

    @classmethod
    def default(cls, pdflatex_command: str = "pdflatex", pandoc_command: str = "pandoc") -> "CompilerRegistry":
        registry = cls()
        registry.register(PdfLatexCompiler(pdflatex_command))
        registry.register(PandocCompiler(pandoc_command))
        return registry

"""Error taxonomy for the pipeline.

Every failure the pipeline knows how to report derives from
:class:`PipelineError`.  Each class carries the process exit code the CLI
should terminate with, plus the stage (and page, when one is involved) so an
operator can reproduce the failure.
"""

from __future__ import annotations


class PipelineError(Exception):
    """Base class for all pipeline failures."""

    exit_code: int = 1

    def __init__(self, message: str, *, stage: str, page: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.stage = stage
        self.page = page

    def __str__(self) -> str:
        where = self.stage if self.page is None else f"{self.stage}, page {self.page!r}"
        return f"[{where}] {self.message}"


class SpawnError(PipelineError):
    """A subprocess could not be launched at all."""

    exit_code = 127


class ServerStartError(PipelineError):
    """The application server exited early or never became reachable."""

    exit_code = 3


class PageFetchError(PipelineError):
    """A page could not be fetched (redirect loop, undecodable body, bad URL)."""

    exit_code = 2


class PageConnectionError(PageFetchError, ConnectionError):
    """A page fetch could not reach the application server."""


class CaptureWriteError(PipelineError, OSError):
    """A captured page could not be written to disk."""

    exit_code = 74


class ValidationFailure(PipelineError):
    """The markup checker ran and reported unsuppressed diagnostics."""

    def __init__(self, message: str, *, exit_code: int, output: str = "") -> None:
        super().__init__(message, stage="validate")
        self.exit_code = exit_code
        self.output = output

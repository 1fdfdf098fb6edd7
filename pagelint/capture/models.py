"""Data models for the page-capture stage."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional


@dataclass(frozen=True)
class PageSpec:
    """A route of the application server; ``""`` is the site root."""

    name: str

    def url(self, base_url: str) -> str:
        """Absolute URL of this page under *base_url*."""
        suffix = "" if self.name == "" else "/"
        return f"{base_url.rstrip('/')}/{self.name}{suffix}"

    @property
    def output_name(self) -> str:
        """File name the captured page is written to."""
        return "lint.html" if self.name == "" else f"{self.name}_lint.html"


@dataclass(frozen=True)
class CapturedPage:
    """A page body that has been fully written to disk."""

    page: PageSpec
    path: Path
    bytes_written: int
    status_code: int = 200


@dataclass
class FetchOutcome:
    """Result of a sequential capture run.

    ``captured`` always holds every page written before the run stopped, so
    the caller can clean them up even when ``error`` is set.
    """

    captured: List[CapturedPage] = field(default_factory=list)
    error: Optional[Exception] = None
    failed_page: Optional[PageSpec] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def paths(self) -> List[Path]:
        return [c.path for c in self.captured]

    def raise_for_error(self) -> None:
        """Re-raise the error that stopped the run, if any.

        A :class:`~pagelint.errors.PipelineError` is the expected case; any
        other exception is re-raised as-is for the caller to propagate.
        """
        if self.error is not None:
            raise self.error

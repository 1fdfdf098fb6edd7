"""Run the external markup checker over the captured pages."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional, Sequence

from pagelint.config import settings
from pagelint.errors import SpawnError, ValidationFailure
from pagelint.process import runner

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ValidationReport:
    """Exit code and verbatim output of one checker run."""

    exit_code: int
    output: str
    files: tuple[Path, ...] = ()

    @property
    def passed(self) -> bool:
        return self.exit_code == 0

    def failure(self) -> Optional[ValidationFailure]:
        """A :class:`ValidationFailure` describing this run, or ``None`` if it passed."""
        if self.passed:
            return None
        return ValidationFailure(
            f"markup checker reported diagnostics in {len(self.files)} file(s) "
            f"(exit code {self.exit_code})",
            exit_code=self.exit_code,
            output=self.output,
        )


def build_arguments(files: Sequence[Path], suppressed_codes: Iterable[str]) -> list[str]:
    """Checker arguments: ``-d CODE,CODE`` (when any) followed by the files."""
    codes = sorted(set(suppressed_codes))
    args: list[str] = []
    if codes:
        args += ["-d", ",".join(codes)]
    args += [str(f) for f in files]
    return args


def validate(
    files: Sequence[Path],
    suppressed_codes: Iterable[str] = (),
    checker_command: Optional[Sequence[str]] = None,
) -> ValidationReport:
    """Invoke the checker once over *files* and report its verdict.

    The checker is never retried.  Its stdout and stderr are returned
    verbatim, stdout first.

    Raises:
        ValueError: If *files* is empty.
        SpawnError: If the checker executable cannot be run.
    """
    if not files:
        raise ValueError("validate() needs at least one captured file")

    argv = list(checker_command) if checker_command else settings.checker_argv()
    if not argv:
        raise SpawnError("markup checker command is empty", stage="validate")

    command, *base_args = argv
    args = base_args + build_arguments(files, suppressed_codes)
    result = runner.run(command, args, stage="validate")

    if result.exit_code == 0:
        logger.info("markup checker passed %d file(s)", len(files))
    else:
        logger.warning("markup checker exited with code %d", result.exit_code)
    return ValidationReport(exit_code=result.exit_code, output=result.output, files=tuple(files))

"""Thin subprocess wrapper used for the server and the markup checker.

Usage::

    from pagelint.process.runner import run, start

    result = run("bootlint", ["-d", "W013", "lint.html"])
    handle = start("node", ["app.js"], env={"PORT": "3080"})
"""

from __future__ import annotations

import logging
import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional, Sequence

from pagelint.errors import SpawnError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProcessResult:
    """Exit status and captured output of a finished subprocess."""

    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def output(self) -> str:
        """stdout followed by stderr, verbatim."""
        return self.stdout + self.stderr


def merged_env(overrides: Optional[Mapping[str, str]] = None) -> dict[str, str]:
    """Return the ambient environment with *overrides* applied on top."""
    env = dict(os.environ)
    env.update(overrides or {})
    return env


def _detach_kwargs() -> dict[str, Any]:
    if os.name == "posix":
        return {"start_new_session": True}
    if os.name == "nt":
        creationflags = getattr(subprocess, "CREATE_NEW_PROCESS_GROUP", None)
        if isinstance(creationflags, int):
            return {"creationflags": creationflags}
    return {}


def run(
    command: str,
    args: Sequence[str] = (),
    env: Optional[Mapping[str, str]] = None,
    cwd: Optional[Path] = None,
    *,
    stage: str = "run",
) -> ProcessResult:
    """Run *command* to completion and capture its output.

    A non-zero exit code is reported in the result, never raised.

    Raises:
        SpawnError: If *command* cannot be found or executed.
    """
    argv = [command, *args]
    logger.debug("running %s", argv)
    try:
        completed = subprocess.run(  # noqa: S603
            argv,
            cwd=str(cwd) if cwd else None,
            env=merged_env(env),
            capture_output=True,
            text=True,
            check=False,
        )
    except OSError as exc:
        raise SpawnError(f"could not run {command!r}: {exc}", stage=stage) from exc
    return ProcessResult(
        exit_code=completed.returncode,
        stdout=completed.stdout or "",
        stderr=completed.stderr or "",
    )


def start(
    command: str,
    args: Sequence[str] = (),
    env: Optional[Mapping[str, str]] = None,
    cwd: Optional[Path] = None,
    *,
    stage: str = "start",
) -> subprocess.Popen:
    """Launch *command* detached in its own session and return immediately.

    Raises:
        SpawnError: If *command* cannot be found or executed.
    """
    argv = [command, *args]
    logger.debug("starting %s", argv)
    try:
        return subprocess.Popen(  # noqa: S603
            argv,
            cwd=str(cwd) if cwd else None,
            env=merged_env(env),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            **_detach_kwargs(),
        )
    except OSError as exc:
        raise SpawnError(f"could not start {command!r}: {exc}", stage=stage) from exc

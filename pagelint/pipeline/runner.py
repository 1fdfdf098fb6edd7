"""High-level runner for the capture-and-validate pipeline.

``run_pipeline`` is the single public function in this module.  It starts the
application server, captures every page in order, stops the server, runs the
markup checker over the captures, and always cleans up afterwards.

Expected failures (:class:`~pagelint.errors.PipelineError`) are folded into
the returned :class:`PipelineResult`; anything else propagates once cleanup
has run.
"""

from __future__ import annotations

import enum
import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Sequence

import httpx

from pagelint.capture.fetcher import build_client
from pagelint.capture.models import PageSpec
from pagelint.capture.sequencer import fetch_all
from pagelint.config import PipelineConfig
from pagelint.errors import PipelineError
from pagelint.pages import PAGES
from pagelint.pipeline.cleanup import CleanupCoordinator
from pagelint.process.server import ServerLifecycle
from pagelint.validation.checker import ValidationReport, validate

logger = logging.getLogger(__name__)


class PipelineState(str, enum.Enum):
    IDLE = "idle"
    SERVER_STARTING = "server-starting"
    FETCHING = "fetching"
    SERVER_STOPPING = "server-stopping"
    VALIDATING = "validating"
    CLEANING_UP = "cleaning-up"
    DONE = "done"


@dataclass(frozen=True)
class PipelineResult:
    """Final outcome of one pipeline run."""

    exit_code: int
    captured_files: tuple[Path, ...]
    diagnostic_output: str = ""
    error: Optional[PipelineError] = None
    states: tuple[PipelineState, ...] = ()

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


@contextmanager
def managed_server(cleanup: CleanupCoordinator) -> Iterator[ServerLifecycle]:
    """Hold the server for the duration of the block; always release it."""
    try:
        yield cleanup.server
    finally:
        cleanup.ensure_server_stopped()


def run_pipeline(
    config: Optional[PipelineConfig] = None,
    pages: Sequence[PageSpec] = PAGES,
    *,
    server: Optional[ServerLifecycle] = None,
    client: Optional[httpx.Client] = None,
    sleep: Callable[[float], None] = time.sleep,
    echo: Optional[Callable[[str], None]] = None,
) -> PipelineResult:
    """Run the full start → fetch → stop → validate → cleanup sequence.

    Args:
        config: Run configuration.  Defaults to one built from the settings
            singleton.
        pages: Pages to capture, in order.
        server: Server lifecycle to drive; a fresh one is created otherwise.
        client: Optional ``httpx.Client`` for the captures.
        sleep: Used for the settle delay.
        echo: Receives operator-facing progress lines and the checker output.

    Returns:
        A :class:`PipelineResult` whose ``exit_code`` is the checker's exit
        code, or the code of the first error that stopped the run.
    """
    config = config or PipelineConfig.from_settings()
    say = echo or logger.info
    server = server or ServerLifecycle(stop_timeout=config.stop_timeout)
    cleanup = CleanupCoordinator(server)

    states: List[PipelineState] = [PipelineState.IDLE]

    def enter(state: PipelineState) -> None:
        logger.debug("pipeline: %s -> %s", states[-1].value, state.value)
        states.append(state)

    captured: List[Path] = []
    report: Optional[ValidationReport] = None
    error: Optional[PipelineError] = None

    try:
        enter(PipelineState.SERVER_STARTING)
        with managed_server(cleanup) as srv:
            say(f"+ start {' '.join(config.server_argv)} (port {config.port})")
            srv.start(config)
            sleep(config.settle_delay_ms / 1000)
            srv.check_running()
            if config.readiness_timeout > 0:
                srv.wait_until_ready(config.base_url, config.readiness_timeout)

            enter(PipelineState.FETCHING)
            say("-" * 48)
            owns_client = client is None
            http = build_client(config.request_timeout) if owns_client else client
            try:
                outcome = fetch_all(
                    config.base_url,
                    pages,
                    config.output_dir,
                    client=http,
                    on_fetch=lambda url, path: say(f"+ curl {url} > {path}"),
                )
            finally:
                if owns_client:
                    http.close()
            captured = outcome.paths
            outcome.raise_for_error()

            enter(PipelineState.SERVER_STOPPING)
            say("+ stop server")

        if captured:
            enter(PipelineState.VALIDATING)
            checker = " ".join(config.checker_argv)
            say(f"+ {checker} " + " \\\n\t".join(str(p) for p in captured))
            report = validate(
                captured,
                config.suppressed_diagnostic_codes,
                checker_command=config.checker_argv,
            )
            if report.output:
                say(report.output.rstrip("\n"))
        else:
            logger.warning("no pages configured; nothing to validate")
    except PipelineError as exc:
        logger.error("pipeline failed: %s", exc)
        error = exc
    finally:
        enter(PipelineState.CLEANING_UP)
        cleanup.cleanup(captured)
        cleanup.ensure_server_stopped()

    enter(PipelineState.DONE)

    if error is not None:
        exit_code = error.exit_code
    elif report is not None:
        exit_code = report.exit_code
        error = report.failure()
    else:
        exit_code = 0

    return PipelineResult(
        exit_code=exit_code,
        captured_files=tuple(captured),
        diagnostic_output=report.output if report is not None else "",
        error=error,
        states=tuple(states),
    )

"""Guaranteed release of the server and the captured files."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable

from pagelint.process.server import ServerLifecycle

logger = logging.getLogger(__name__)


class CleanupCoordinator:
    """Removes captured pages and stops the server; both steps are idempotent."""

    def __init__(self, server: ServerLifecycle) -> None:
        self.server = server

    def cleanup(self, captured_files: Iterable[Path]) -> None:
        """Delete *captured_files*, skipping ones that are already gone."""
        removed = 0
        for path in captured_files:
            try:
                Path(path).unlink(missing_ok=True)
                removed += 1
            except OSError as exc:
                logger.warning("could not remove %s: %s", path, exc)
        logger.debug("cleanup removed %d file(s)", removed)

    def ensure_server_stopped(self) -> None:
        self.server.stop()

"""Subprocess and application-server control package."""

from pagelint.process.runner import ProcessResult, run, start
from pagelint.process.server import ServerLifecycle, ServerState

__all__ = ["ProcessResult", "run", "start", "ServerLifecycle", "ServerState"]

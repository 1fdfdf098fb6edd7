"""Lifecycle of the detached application server.

The server is an independent OS process: the pipeline starts it, talks to it
over HTTP, and stops it with signals.  ``stop`` is best-effort by contract.
It logs and swallows every failure so cleanup can always proceed, including
when the server never started.
"""

from __future__ import annotations

import enum
import logging
import os
import signal
import subprocess
import time
from pathlib import Path
from typing import Callable, Optional, Sequence

import httpx
import psutil

from pagelint.config import PipelineConfig, settings
from pagelint.errors import ServerStartError, SpawnError
from pagelint.process import runner

logger = logging.getLogger(__name__)


class ServerState(str, enum.Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


def _signal_group(pid: int, sig: int) -> None:
    if os.name == "posix":
        try:
            os.killpg(pid, sig)
            return
        except OSError:
            # not a group leader; fall back to the single process
            pass
    os.kill(pid, sig)


def _same_command(cmdline: Sequence[str], argv: Sequence[str]) -> bool:
    """True if *cmdline* is *argv*, possibly behind an interpreter prefix."""
    if not cmdline or not argv or len(cmdline) < len(argv):
        return False
    # shebang scripts show up as "interpreter script args..."
    return list(cmdline[len(cmdline) - len(argv):]) == list(argv)


_KILL = getattr(signal, "SIGKILL", signal.SIGTERM)


class ServerLifecycle:
    """Start and stop the application server under test."""

    def __init__(
        self,
        pid_file: Optional[Path] = None,
        stop_timeout: Optional[float] = None,
        server_argv: Optional[Sequence[str]] = None,
    ) -> None:
        self.pid_file = pid_file or settings.pid_file
        self.stop_timeout = settings.stop_timeout if stop_timeout is None else stop_timeout
        self.server_argv = tuple(settings.server_argv() if server_argv is None else server_argv)
        self._handle: Optional[subprocess.Popen] = None
        self._state = ServerState.STOPPED
        self._launched = False

    @property
    def state(self) -> ServerState:
        return self._state

    @property
    def handle(self) -> Optional[subprocess.Popen]:
        return self._handle

    # ------------------------------------------------------------------
    # Start
    # ------------------------------------------------------------------
    def start(self, config: PipelineConfig) -> subprocess.Popen:
        """Spawn the server detached and return without waiting for readiness.

        From here on this instance only ever stops the child it spawned.

        Raises:
            SpawnError: If the server command is empty or cannot be executed.
        """
        self._launched = True
        if not config.server_argv:
            raise SpawnError("server command is empty", stage="start")

        self.server_argv = tuple(config.server_argv)
        self._state = ServerState.STARTING
        command, *args = config.server_argv
        try:
            self._handle = runner.start(command, args, env=config.base_env, stage="start")
        except SpawnError:
            self._state = ServerState.STOPPED
            raise

        self._write_pid(self._handle.pid)
        self._state = ServerState.RUNNING
        logger.info("server started (pid %d) on port %d", self._handle.pid, config.port)
        return self._handle

    def check_running(self) -> None:
        """Raise :class:`ServerStartError` if the server has already exited."""
        if self._handle is None:
            raise ServerStartError("server was never started", stage="start")
        code = self._handle.poll()
        if code is not None:
            self._handle = None
            self._remove_pid_file()
            self._state = ServerState.STOPPED
            raise ServerStartError(
                f"server exited with code {code} before the first fetch "
                "(is the port already in use?)",
                stage="start",
            )

    def wait_until_ready(
        self,
        base_url: str,
        timeout: float,
        client: Optional[httpx.Client] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Poll *base_url* until it answers any HTTP response.

        Backs off from 0.1 s doubling up to 1 s between attempts.

        Raises:
            ServerStartError: If the server exits or *timeout* elapses first.
        """
        owns_client = client is None
        if owns_client:
            client = httpx.Client(timeout=1.0)

        deadline = time.monotonic() + timeout
        delay = 0.1
        try:
            while True:
                self.check_running()
                try:
                    client.get(base_url.rstrip("/") + "/")
                    return
                except httpx.TransportError as exc:
                    if time.monotonic() >= deadline:
                        raise ServerStartError(
                            f"server not reachable at {base_url} after {timeout:g}s: {exc}",
                            stage="start",
                        ) from exc
                sleep(delay)
                delay = min(delay * 2, 1.0)
        finally:
            if owns_client:
                client.close()

    # ------------------------------------------------------------------
    # Stop
    # ------------------------------------------------------------------
    def recorded_pid(self) -> Optional[int]:
        """The pid of the running server.

        A server started by this instance is identified by its live handle.
        Otherwise the pid file is consulted, and its pid is only trusted
        when that process is alive and runs the configured server command.
        """
        if self._handle is not None:
            return self._handle.pid
        if self._launched:
            return None
        proc = self._recorded_process()
        return None if proc is None else proc.pid

    def stop(self) -> bool:
        """Stop the server, never raising.

        An instance that started (or tried to start) the server only ever
        stops its own child.  The pid file is used only by an instance that
        never launched anything, such as the ``stop`` command.

        Returns ``True`` if a server process was signalled, ``False`` if there
        was nothing to stop or stopping failed.
        """
        if self._launched:
            return self._stop_own()
        return self._stop_recorded()

    def _stop_own(self) -> bool:
        handle = self._handle
        if handle is None:
            self._state = ServerState.STOPPED
            return False

        self._state = ServerState.STOPPING
        signalled = False
        try:
            signalled = self._terminate_handle(handle)
        except Exception as exc:  # noqa: BLE001
            logger.warning("could not stop server (pid %d): %s", handle.pid, exc)
        finally:
            self._handle = None
            self._remove_pid_file()
            self._state = ServerState.STOPPED

        if signalled:
            logger.info("server stopped (pid %d)", handle.pid)
        return signalled

    def _stop_recorded(self) -> bool:
        proc = self._recorded_process()
        if proc is None:
            self._state = ServerState.STOPPED
            return False

        self._state = ServerState.STOPPING
        signalled = False
        try:
            signalled = self._terminate_recorded(proc)
        except Exception as exc:  # noqa: BLE001
            logger.warning("could not stop server (pid %d): %s", proc.pid, exc)
        finally:
            self._remove_pid_file()
            self._state = ServerState.STOPPED

        if signalled:
            logger.info("server stopped (pid %d)", proc.pid)
        return signalled

    def _terminate_handle(self, handle: subprocess.Popen) -> bool:
        if handle.poll() is not None:
            return False
        try:
            _signal_group(handle.pid, signal.SIGTERM)
        except ProcessLookupError:
            logger.debug("server pid %d already gone", handle.pid)
            return False
        try:
            handle.wait(timeout=self.stop_timeout)
        except subprocess.TimeoutExpired:
            logger.warning("server ignored SIGTERM; killing pid %d", handle.pid)
            _signal_group(handle.pid, _KILL)
            handle.wait(timeout=self.stop_timeout)
        return True

    def _terminate_recorded(self, proc: psutil.Process) -> bool:
        try:
            _signal_group(proc.pid, signal.SIGTERM)
        except ProcessLookupError:
            logger.debug("server pid %d already gone", proc.pid)
            return False
        try:
            proc.wait(timeout=self.stop_timeout)
        except psutil.TimeoutExpired:
            logger.warning("server ignored SIGTERM; killing pid %d", proc.pid)
            _signal_group(proc.pid, _KILL)
        except psutil.NoSuchProcess:
            pass
        return True

    # ------------------------------------------------------------------
    # Pid file
    # ------------------------------------------------------------------
    def _read_pid_file(self) -> Optional[int]:
        try:
            return int(self.pid_file.read_text(encoding="utf-8").strip())
        except (OSError, ValueError):
            return None

    def _recorded_process(self) -> Optional[psutil.Process]:
        """The process named by the pid file, if it is still our server.

        A pid file left behind by an interrupted run may name a pid that has
        since been reused.  Such a file is removed and never acted upon.
        """
        pid = self._read_pid_file()
        if pid is None:
            return None
        try:
            proc = psutil.Process(pid)
            cmdline = proc.cmdline()
        except (psutil.NoSuchProcess, psutil.ZombieProcess):
            logger.info("recorded server pid %d is gone; removing %s", pid, self.pid_file)
            self._remove_pid_file()
            return None
        except psutil.AccessDenied:
            logger.warning("cannot inspect recorded pid %d; leaving it alone", pid)
            return None
        except (psutil.Error, ValueError) as exc:
            logger.warning("cannot inspect recorded pid %d: %s", pid, exc)
            return None

        if not _same_command(cmdline, self.server_argv):
            logger.warning(
                "pid %d in %s runs %r, not the server; removing the stale file",
                pid,
                self.pid_file,
                " ".join(cmdline),
            )
            self._remove_pid_file()
            return None
        return proc

    def _write_pid(self, pid: int) -> None:
        try:
            self.pid_file.parent.mkdir(parents=True, exist_ok=True)
            self.pid_file.write_text(str(pid), encoding="utf-8")
        except OSError as exc:
            logger.warning("could not record server pid in %s: %s", self.pid_file, exc)

    def _remove_pid_file(self) -> None:
        try:
            self.pid_file.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("could not remove %s: %s", self.pid_file, exc)

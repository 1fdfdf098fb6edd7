"""Centralised settings for the pagelint pipeline.

All runtime configuration is resolved here in one place.  Nothing is taken
from the command line: values are compiled-in defaults that can be
overridden via environment variables or a `.env` file in the project root
(loaded automatically when this module is imported).
"""

from __future__ import annotations

import os
import shlex
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

# Load .env from the project root (one level up from this file)
_env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_env_path, override=False)


def _split_codes(raw: str) -> frozenset[str]:
    return frozenset(code.strip() for code in raw.split(",") if code.strip())


@dataclass
class Settings:
    # ------------------------------------------------------------------
    # Workspace
    # ------------------------------------------------------------------
    project_root: Path = field(
        default_factory=lambda: Path(os.environ.get("PAGELINT_ROOT", Path.cwd()))
    )

    @property
    def output_dir(self) -> Path:
        """Directory the captured ``*lint.html`` files are written to."""
        return self.project_root

    @property
    def pid_file(self) -> Path:
        """Where the pid of a detached application server is recorded."""
        return self.project_root / ".pagelint" / "server.pid"

    # ------------------------------------------------------------------
    # Application server
    # ------------------------------------------------------------------
    host: str = field(
        default_factory=lambda: os.environ.get("PAGELINT_HOST", "localhost")
    )
    port: int = field(
        default_factory=lambda: int(os.environ.get("PAGELINT_PORT", "3080"))
    )
    server_command: str = field(
        default_factory=lambda: os.environ.get("PAGELINT_SERVER_COMMAND", "node app.js")
    )
    server_env_name: str = field(
        default_factory=lambda: os.environ.get("PAGELINT_SERVER_ENV_NAME", "NODE_ENV")
    )
    server_env_value: str = field(
        default_factory=lambda: os.environ.get("PAGELINT_SERVER_ENV", "development")
    )
    stop_timeout: float = field(
        default_factory=lambda: float(os.environ.get("PAGELINT_STOP_TIMEOUT", "5.0"))
    )

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"

    # ------------------------------------------------------------------
    # Readiness / fetching
    # ------------------------------------------------------------------
    settle_delay_ms: int = field(
        default_factory=lambda: int(os.environ.get("PAGELINT_SETTLE_DELAY_MS", "2000"))
    )
    readiness_timeout: float = field(
        default_factory=lambda: float(os.environ.get("PAGELINT_READY_TIMEOUT", "0"))
    )
    request_timeout: float = field(
        default_factory=lambda: float(os.environ.get("PAGELINT_REQUEST_TIMEOUT", "30.0"))
    )

    # ------------------------------------------------------------------
    # Markup checker
    # ------------------------------------------------------------------
    checker_command: str = field(
        default_factory=lambda: os.environ.get(
            "PAGELINT_CHECKER", "node_modules/.bin/bootlint"
        )
    )
    # bootswatch themes still trip the version check
    suppressed_codes: frozenset[str] = field(
        default_factory=lambda: _split_codes(os.environ.get("PAGELINT_SUPPRESS", "W013"))
    )

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------
    log_level: str = field(
        default_factory=lambda: os.environ.get("PAGELINT_LOG_LEVEL", "INFO").upper()
    )

    def server_argv(self) -> list[str]:
        """The server command split into an argv list."""
        return shlex.split(self.server_command)

    def checker_argv(self) -> list[str]:
        """The checker command split into an argv list."""
        return shlex.split(self.checker_command)


@dataclass(frozen=True)
class PipelineConfig:
    """Immutable snapshot of everything one pipeline run needs."""

    port: int
    base_env: dict[str, str]
    settle_delay_ms: int
    suppressed_diagnostic_codes: frozenset[str]
    base_url: str
    output_dir: Path
    server_argv: tuple[str, ...]
    checker_argv: tuple[str, ...]
    readiness_timeout: float = 0.0
    request_timeout: float = 30.0
    stop_timeout: float = 5.0

    @classmethod
    def from_settings(cls, source: Settings | None = None) -> PipelineConfig:
        """Build a config from *source* (defaults to the ``settings`` singleton)."""
        s = source or settings
        return cls(
            port=s.port,
            base_env={s.server_env_name: s.server_env_value, "PORT": str(s.port)},
            settle_delay_ms=s.settle_delay_ms,
            suppressed_diagnostic_codes=frozenset(s.suppressed_codes),
            base_url=s.base_url,
            output_dir=s.output_dir,
            server_argv=tuple(s.server_argv()),
            checker_argv=tuple(s.checker_argv()),
            readiness_timeout=s.readiness_timeout,
            request_timeout=s.request_timeout,
            stop_timeout=s.stop_timeout,
        )


# Module-level singleton: import this everywhere:
#   from pagelint.config import settings
settings = Settings()

"""Configuration for neovim-mcp, read from ``NVIM_*`` environment variables."""

import os
from collections.abc import Mapping
from dataclasses import dataclass, replace
from pathlib import Path

DEFAULT_SOCKET_ADDRESS = "/tmp/nvim.sock"

LOG_LEVELS = ("TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL")

# Later entries win when several are set.
SOCKET_ADDRESS_VARS = ("NVIM_LISTEN_ADDRESS", "NVIM_SOCKET_ADDRESS")

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    """Runtime settings for the server."""

    socket_address: str = DEFAULT_SOCKET_ADDRESS
    timeout: float | None = None
    log_level: str = "INFO"
    log_file: Path | None = None
    log_disabled: bool = False

    def with_overrides(self, **overrides: object) -> "Settings":
        """Return a copy with every non-None override applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


def parse_log_level(value: str) -> str:
    level = value.strip().upper()
    if level == "WARN":
        level = "WARNING"
    if level not in LOG_LEVELS:
        msg = f"Invalid log level {value!r}, expected one of {', '.join(LOG_LEVELS)}"
        raise ValueError(msg)
    return level


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """Build settings from the environment, falling back to defaults."""
    env = os.environ if environ is None else environ
    settings = Settings()

    for var in SOCKET_ADDRESS_VARS:
        if env.get(var, "").strip():
            settings = replace(settings, socket_address=env[var].strip())

    timeout = env.get("NVIM_TIMEOUT", "").strip()
    if timeout:
        try:
            seconds = float(timeout)
        except ValueError:
            msg = f"NVIM_TIMEOUT must be a number of seconds, got {timeout!r}"
            raise ValueError(msg) from None
        if seconds <= 0:
            msg = f"NVIM_TIMEOUT must be positive, got {timeout!r}"
            raise ValueError(msg)
        settings = replace(settings, timeout=seconds)

    if env.get("NVIM_LOG_LEVEL", "").strip():
        settings = replace(settings, log_level=parse_log_level(env["NVIM_LOG_LEVEL"]))

    if env.get("NVIM_LOG_FILE", "").strip():
        settings = replace(settings, log_file=Path(env["NVIM_LOG_FILE"].strip()).expanduser())

    if env.get("NVIM_LOG_DISABLED", "").strip().lower() in _TRUTHY:
        settings = replace(settings, log_disabled=True)

    return settings

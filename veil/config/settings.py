import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

# Prefix for every environment variable read by load_log_settings
ENV_PREFIX = "VEIL_"

# Logging defaults
DEFAULT_LOG_LEVEL = "info"

# Log files are created rw for the owner, read-only for group and others
LOG_FILE_MODE = 0o644

# None means RFC 3339 with microseconds and the local UTC offset
DEFAULT_TIME_FORMAT = None

# Human readable timestamps for console output
CONSOLE_TIME_FORMAT = "%a %d %b %Y, %H:%M:%S.%f"

_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass
class LogSettings:
    """Logging configuration read from the environment."""

    level: str = DEFAULT_LOG_LEVEL
    log_file: Optional[str] = None
    color: bool = False
    time_format: Optional[str] = DEFAULT_TIME_FORMAT


def _env(name, default=None):
    return os.getenv(f"{ENV_PREFIX}{name}", default)


def load_log_settings(dotenv_path=None):
    """
    Load logging settings from the environment.

    A ``.env`` file is loaded first when present; variables already set in
    the environment take precedence over the file.

    Args:
        dotenv_path (str, optional): Path to the .env file. Defaults to
                                     ``.env`` in the current working directory.

    Returns:
        LogSettings: The settings found, with defaults for anything missing
    """
    load_dotenv(dotenv_path=dotenv_path or os.path.join(os.getcwd(), ".env"))

    return LogSettings(
        level=_env("LOG_LEVEL", DEFAULT_LOG_LEVEL),
        log_file=_env("LOG_FILE") or None,
        color=(_env("LOG_COLOR", "false") or "").strip().lower() in _TRUE_VALUES,
        time_format=_env("LOG_TIME_FORMAT") or DEFAULT_TIME_FORMAT,
    )

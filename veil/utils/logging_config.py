import enum
import json
import logging
import os
import sys
import traceback
from datetime import datetime

from colorama import Fore, Style, just_fix_windows_console
from dateutil import tz

from ..config.settings import (
    CONSOLE_TIME_FORMAT,
    DEFAULT_LOG_LEVEL,
    DEFAULT_TIME_FORMAT,
    LOG_FILE_MODE,
    load_log_settings,
)

# Let ANSI colors through on Windows consoles
just_fix_windows_console()

logger = logging.getLogger(__name__)


class Level(enum.IntEnum):
    """Ordered log severities, numbered like the logging module's levels."""

    TRACE = 5
    DEBUG = logging.DEBUG
    INFO = logging.INFO
    WARN = logging.WARNING
    ERROR = logging.ERROR
    FATAL = logging.CRITICAL


# Add custom TRACE level below DEBUG
logging.addLevelName(Level.TRACE, 'TRACE')


def trace(self, message, *args, **kwargs):
    if self.isEnabledFor(Level.TRACE):
        # Report the caller of trace(), not this function
        kwargs['stacklevel'] = kwargs.get('stacklevel', 1) + 1
        self._log(Level.TRACE, message, args, **kwargs)


logging.Logger.trace = trace

_LEVEL_ALIASES = {
    'warning': Level.WARN,
    'critical': Level.FATAL,
}

_LEVEL_CODES = {
    Level.TRACE: 'TRC',
    Level.DEBUG: 'DBG',
    Level.INFO: 'INF',
    Level.WARN: 'WRN',
    Level.ERROR: 'ERR',
    Level.FATAL: 'FTL',
}

# Attributes every LogRecord carries; anything else came in through ``extra``
_RECORD_ATTRS = set(vars(logging.makeLogRecord({}))) | {'message', 'asctime', 'taskName'}


def parse_level(value):
    """
    Convert a level name, number or Level into a level usable by logging.

    Args:
        value (Level | int | str): e.g. ``Level.WARN``, ``30``, ``"warn"``

    Returns:
        int: The level; a Level member whenever the value names one

    Raises:
        ValueError: If a string does not name a known level
    """
    if isinstance(value, Level):
        return value
    if isinstance(value, int):
        try:
            return Level(value)
        except ValueError:
            return value
    name = str(value).strip().lower()
    if name.isdigit():
        return parse_level(int(name))
    if name in _LEVEL_ALIASES:
        return _LEVEL_ALIASES[name]
    try:
        return Level[name.upper()]
    except KeyError:
        raise ValueError(f"Unknown log level: {value!r}") from None


class LogFormatter(logging.Formatter):
    """
    Formatter producing ``<time> <LVL> <file:line> <message> <key=value...>`` lines.

    Attributes passed through ``extra`` are appended as sorted ``key=value``
    fields. When a record carries exception info, ``error`` holds the
    exception text and ``stack`` the traceback marshaled as a JSON list of
    ``{"source", "line", "func"}`` frames, innermost first.
    """

    COLORS = {
        Level.TRACE: Fore.MAGENTA,
        Level.DEBUG: Style.RESET_ALL,
        Level.INFO: Fore.BLUE,
        Level.WARN: Fore.YELLOW,
        Level.ERROR: Fore.RED,
        Level.FATAL: Fore.RED + Style.BRIGHT,
    }

    def __init__(self, color=False, time_format=DEFAULT_TIME_FORMAT):
        """
        Args:
            color (bool): Emit ANSI color codes
            time_format (str, optional): strftime format for timestamps;
                                         RFC 3339 with microseconds when None
        """
        super().__init__(datefmt=time_format)
        self.color = color

    def formatTime(self, record, datefmt=None):
        created = datetime.fromtimestamp(record.created, tz=tz.tzlocal())
        if datefmt:
            return created.strftime(datefmt)
        return created.isoformat(timespec='microseconds')

    def format(self, record):
        record.message = record.getMessage()
        parts = [
            self._paint(self.formatTime(record, self.datefmt), Style.DIM),
            self._paint(_level_code(record.levelno), self.COLORS.get(record.levelno, '')),
            self._paint(f"{_caller_path(record.pathname)}:{record.lineno}", Style.BRIGHT),
            record.message,
        ]
        extras = sorted(
            (key, value) for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and not key.startswith('_')
        )
        parts.extend(self._field(key, _field_value(value)) for key, value in extras)

        if record.exc_info and record.exc_info[1] is not None:
            exc = record.exc_info[1]
            error = f"{type(exc).__name__}: {exc}" if str(exc) else type(exc).__name__
            parts.append(self._field('error', _field_value(error)))
            # Already JSON, written as is
            parts.append(self._field('stack', marshal_stack(record.exc_info[2])))

        line = ' '.join(part for part in parts if part)
        if record.stack_info:
            line = f"{line}\n{self.formatStack(record.stack_info)}"
        return line

    def _field(self, key, rendered):
        return self._paint(f"{key}=", Fore.CYAN) + rendered

    def _paint(self, text, color):
        if not self.color or not color:
            return text
        return f"{color}{text}{Style.RESET_ALL}"


def marshal_stack(tb):
    """Render a traceback as a JSON list of frames, innermost first."""
    frames = [
        {
            'source': os.path.basename(frame.filename),
            'line': str(frame.lineno),
            'func': frame.name,
        }
        for frame in reversed(traceback.extract_tb(tb))
    ]
    return json.dumps(frames, separators=(',', ':'))


def _level_code(levelno):
    try:
        return _LEVEL_CODES[Level(levelno)]
    except (KeyError, ValueError):
        return f"L{levelno}"


def _caller_path(pathname):
    try:
        relative = os.path.relpath(pathname)
    except (OSError, ValueError):
        # cwd gone, or a different drive on Windows
        return pathname
    return pathname if relative.startswith(os.pardir) else relative


def _field_value(value):
    text = value if isinstance(value, str) else str(value)
    if not text or any(ch.isspace() or ch == '"' for ch in text):
        return json.dumps(text)
    return text


class AppendFileHandler(logging.FileHandler):
    """FileHandler that appends to its file, creating it with explicit permission bits."""

    def __init__(self, filename, file_mode=LOG_FILE_MODE, encoding='utf-8'):
        self.file_mode = file_mode
        super().__init__(filename, mode='a', encoding=encoding)

    def _open(self):
        fd = os.open(self.baseFilename, os.O_WRONLY | os.O_CREAT | os.O_APPEND, self.file_mode)
        try:
            return os.fdopen(fd, self.mode, encoding=self.encoding, errors=self.errors)
        except Exception:
            os.close(fd)
            raise


class LoggerRegistry:
    """
    Holds the sink configuration of one logger.

    Every configuration call replaces the previous one entirely: the logger
    ends up with the new handler as its only handler, and the handler this
    registry installed before is closed. Calls are not synchronized; callers
    must not reconfigure from several threads at once.
    """

    def __init__(self, logger=None):
        """
        Args:
            logger (logging.Logger, optional): Logger to configure. Defaults
                                               to the root logger.
        """
        self.logger = logger if logger is not None else logging.getLogger()
        self.handler = None

    def install(self, handler, level=DEFAULT_LOG_LEVEL):
        """Make ``handler`` the logger's only handler and set its level."""
        level = parse_level(level)
        previous = self.handler

        # Loggers with their own level skip the root level check on propagation
        handler.setLevel(level)
        self.logger.handlers = [handler]
        self.logger.setLevel(level)
        self.handler = handler

        if previous is not None and previous is not handler:
            previous.close()
        return self.logger

    def set_log_file(self, log_name, level=None, color=False, time_format=DEFAULT_TIME_FORMAT):
        """
        Send log entries to ``log_name``, appending if the file exists.

        Args:
            log_name (str | os.PathLike): Log file path
            level (Level | int | str, optional): Minimum level, INFO by default
            color (bool): Write ANSI color codes into the file
            time_format (str, optional): strftime format for timestamps

        Returns:
            logging.Logger: The configured logger

        Raises:
            OSError: If the file cannot be opened; the current
                     configuration is left untouched
        """
        level = parse_level(DEFAULT_LOG_LEVEL if level is None else level)
        handler = AppendFileHandler(log_name)
        handler.setFormatter(LogFormatter(color=color, time_format=time_format))
        return self.install(handler, level)

    def set_console(self, level=DEFAULT_LOG_LEVEL, stream=None, color=True, time_format=CONSOLE_TIME_FORMAT):
        """Send log entries to ``stream`` (standard output by default)."""
        handler = logging.StreamHandler(stream if stream is not None else sys.stdout)
        handler.setFormatter(LogFormatter(color=color, time_format=time_format))
        return self.install(handler, level)


_registry = LoggerRegistry()


def get_registry():
    """Return the registry configuring the process-wide (root) logger."""
    return _registry


def get_logger(name=None):
    """Return the process-wide logger, or a named logger propagating into it."""
    return logging.getLogger(name) if name else _registry.logger


def set_global_log_to_file(log_name, level=None):
    """
    Set up the process-wide logger to append entries to ``log_name``.

    The file is created with ``0o644`` permissions (subject to the umask) if
    it does not exist. Entries carry an RFC 3339 timestamp with microseconds
    and the file and line they were logged from; records below ``level`` are
    dropped before formatting. Log an exception with ``exc_info=True`` to get
    its stack trace marshaled into the entry.

    Args:
        log_name (str | os.PathLike): Log file path
        level (Level | int | str, optional): Minimum level, INFO by default

    Raises:
        OSError: If the file cannot be opened; logging stays as it was
    """
    # Logged before switching so the entry never lands in the new file
    logger.debug(f"Switching log output to {os.path.abspath(log_name)}")
    try:
        _registry.set_log_file(log_name, level)
    except OSError as e:
        logger.debug(f"Could not open log file {log_name}: {e}")
        raise


def configure_logging(log_level=Level.INFO, stream=None, color=True):
    """Configure the process-wide logger to write colored entries to the console."""
    return _registry.set_console(log_level, stream=stream, color=color)


def setup_logging_from_env(dotenv_path=None):
    """
    Configure the process-wide logger from ``VEIL_LOG_*`` settings.

    Entries go to ``VEIL_LOG_FILE`` when it is set, otherwise to the console.

    Args:
        dotenv_path (str, optional): .env file to load first

    Returns:
        logging.Logger: The configured logger
    """
    settings = load_log_settings(dotenv_path)
    if settings.log_file:
        return _registry.set_log_file(
            settings.log_file,
            settings.level,
            color=settings.color,
            time_format=settings.time_format,
        )
    return _registry.set_console(
        settings.level,
        color=settings.color,
        time_format=settings.time_format or CONSOLE_TIME_FORMAT,
    )

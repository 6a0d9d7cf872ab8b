"""
veil - minor enhancements to the standard library and logging.
"""

from .core import OutputCapture, ResourceError, capture_output
from .utils import (
    Level,
    LoggerRegistry,
    configure_logging,
    file_path_in_cwd,
    get_logger,
    ignore_unused,
    set_global_log_to_file,
    setup_logging_from_env,
)

__version__ = "0.1.0"

__all__ = [
    'Level',
    'LoggerRegistry',
    'OutputCapture',
    'ResourceError',
    'capture_output',
    'configure_logging',
    'file_path_in_cwd',
    'get_logger',
    'ignore_unused',
    'set_global_log_to_file',
    'setup_logging_from_env',
]

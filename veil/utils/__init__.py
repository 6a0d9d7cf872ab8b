"""
Utility functions and helpers.
"""

from .logging_config import (
    Level,
    LoggerRegistry,
    configure_logging,
    get_logger,
    set_global_log_to_file,
    setup_logging_from_env,
)
from .misc import ignore_unused
from .path_utils import file_path_in_cwd

__all__ = [
    'Level',
    'LoggerRegistry',
    'configure_logging',
    'file_path_in_cwd',
    'get_logger',
    'ignore_unused',
    'set_global_log_to_file',
    'setup_logging_from_env',
]

"""
Configuration defaults and environment loading.
"""

from .settings import LogSettings, load_log_settings

__all__ = ['LogSettings', 'load_log_settings']

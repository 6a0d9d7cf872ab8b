"""
Core functionality module for capturing process output.
"""

from .capture import OutputCapture, ResourceError, capture_output

__all__ = ['OutputCapture', 'ResourceError', 'capture_output']

"""
Logging module for the application.
This module provides functionality to set up logging for the supervisor and its processes.
"""

from .setup import setup_logging, get_process_logger

__all__ = ["setup_logging", "get_process_logger"]

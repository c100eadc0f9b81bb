"""
This module initializes the console package, exposing command execution,
the event pump, verbose logging toggling and help output.
"""

from .process import execute_command
from .handler import start_event_pump, toggle_verbose_logging, print_help

__all__ = ["execute_command", "start_event_pump", "toggle_verbose_logging", "print_help"]

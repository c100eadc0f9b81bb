"""
Local package for the Runstack supervisor.

This package provides the merged configuration through the config module,
the error taxonomy, the process supervisor and the management console.
"""

from .config import effective_settings

__all__ = ["effective_settings"]

"""
Runstack: launches web project dev servers and supervises their process trees.
"""

__version__ = "0.1.0"

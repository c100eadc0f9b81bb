"""
The Supervisor package.
Launches project dev servers and manages their process trees.

This package contains the ProcessSupervisor facade and its helper modules,
which together handle shell selection, command sanitizing, launching,
process-tree discovery, termination and port probing.
"""
from .supervisor import ProcessSupervisor

__all__ = ['ProcessSupervisor']

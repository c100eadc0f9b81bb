"""
Process and socket inspection behind a small capability interface.

The tree walker, reaper and port prober only talk to a ProcessInspector, so
tests can substitute a fake and other platforms can supply their own backend.
"""
import logging
import subprocess
from abc import ABC, abstractmethod
from typing import List, Optional

import psutil

from runstack.local.config import effective_settings as config
from runstack.local.errors import ExternalToolFailed

log = logging.getLogger(__name__)


def parse_pid_lines(text: str) -> List[int]:
    """Parses one PID per line, skipping anything that is not a positive integer."""
    pids = []
    for line in text.splitlines():
        try:
            pid = int(line.strip())
        except ValueError:
            continue
        if pid > 0:
            pids.append(pid)
    return pids


def parse_port(value: str) -> Optional[int]:
    """Returns a port from 'host:port' text if it is a valid non-zero 16-bit value."""
    if ":" not in value:
        return None
    port_str = value.rsplit(":", 1)[1].split(" ", 1)[0]
    # isdigit() also accepts digits like "²" that int() rejects
    if not (port_str.isascii() and port_str.isdigit()):
        return None
    port = int(port_str)
    if 0 < port <= 65535:
        return port
    return None


def parse_lsof_listen_ports(text: str) -> List[int]:
    """
    Extracts listening ports from `lsof -Pan -iTCP -sTCP:LISTEN` output.

    Format: COMMAND PID USER FD TYPE DEVICE SIZE/OFF NODE NAME
    Example: node 12345 user 30u IPv4 0x... 0t0 TCP *:4321 (LISTEN)
    """
    ports = []
    for line in text.splitlines()[1:]:
        parts = line.split()
        if len(parts) < 9:
            continue
        port = parse_port(parts[8])
        if port is not None and port not in ports:
            ports.append(port)
    return ports


class ProcessInspector(ABC):
    """Read and signal access to the OS process table."""

    @abstractmethod
    def exists(self, pid: int) -> bool:
        """Returns True if a process with this PID is currently present."""

    @abstractmethod
    def list_children(self, pid: int) -> List[int]:
        """Returns the PIDs of the direct children of `pid`."""

    @abstractmethod
    def parent_of(self, pid: int) -> Optional[int]:
        """Returns the parent PID, or None if it cannot be determined."""

    @abstractmethod
    def list_listening_ports(self, pid: int) -> List[int]:
        """Returns TCP ports on which `pid` itself holds a listening socket."""

    @abstractmethod
    def find_listeners_on_port(self, port: int) -> List[int]:
        """Returns PIDs holding a listening TCP socket on `port`."""

    @abstractmethod
    def kill(self, pid: int) -> bool:
        """Forcefully terminates `pid`. Returns False if the signal was not delivered."""


class CommandInspector(ProcessInspector):
    """Inspects processes by running ps, pgrep, lsof and kill and parsing their text output."""

    def __init__(self, timeout: Optional[float] = None) -> None:
        self.timeout = timeout

    def _run(self, args: List[str]) -> subprocess.CompletedProcess:
        timeout = self.timeout if self.timeout is not None else config.INSPECTION_TIMEOUT
        try:
            return subprocess.run(
                args, capture_output=True, text=True, errors="replace",
                stdin=subprocess.DEVNULL, timeout=timeout, check=False,
            )
        except subprocess.TimeoutExpired as e:
            raise ExternalToolFailed(args[0], f"timed out after {timeout}s") from e
        except OSError as e:
            raise ExternalToolFailed(args[0], str(e)) from e

    def exists(self, pid: int) -> bool:
        return self._run(["ps", "-p", str(pid)]).returncode == 0

    def list_children(self, pid: int) -> List[int]:
        result = self._run(["pgrep", "-P", str(pid)])
        # pgrep exits 1 when nothing matched, 2 or more on real errors.
        if result.returncode > 1:
            raise ExternalToolFailed("pgrep", result.stderr.strip() or f"exit status {result.returncode}")
        return parse_pid_lines(result.stdout)

    def parent_of(self, pid: int) -> Optional[int]:
        result = self._run(["ps", "-o", "ppid=", "-p", str(pid)])
        if result.returncode != 0:
            return None
        pids = parse_pid_lines(result.stdout)
        return pids[0] if pids else None

    def list_listening_ports(self, pid: int) -> List[int]:
        result = self._run(["lsof", "-Pan", "-p", str(pid), "-iTCP", "-sTCP:LISTEN"])
        return parse_lsof_listen_ports(result.stdout)

    def find_listeners_on_port(self, port: int) -> List[int]:
        result = self._run(["lsof", "-ti", f"tcp:{port}", "-sTCP:LISTEN"])
        return parse_pid_lines(result.stdout)

    def kill(self, pid: int) -> bool:
        return self._run(["kill", "-9", str(pid)]).returncode == 0


class PsutilInspector(ProcessInspector):
    """Inspects processes through psutil."""

    def exists(self, pid: int) -> bool:
        return psutil.pid_exists(pid)

    def list_children(self, pid: int) -> List[int]:
        try:
            return [child.pid for child in psutil.Process(pid).children()]
        except psutil.NoSuchProcess:
            return []
        except psutil.Error as e:
            raise ExternalToolFailed("psutil", str(e)) from e

    def parent_of(self, pid: int) -> Optional[int]:
        try:
            return psutil.Process(pid).ppid()
        except psutil.Error:
            return None

    def list_listening_ports(self, pid: int) -> List[int]:
        try:
            connections = psutil.Process(pid).net_connections(kind="tcp")
        except psutil.NoSuchProcess:
            return []
        except psutil.Error as e:
            raise ExternalToolFailed("psutil", str(e)) from e

        ports = []
        for conn in connections:
            if conn.status == psutil.CONN_LISTEN and conn.laddr and conn.laddr.port > 0:
                if conn.laddr.port not in ports:
                    ports.append(conn.laddr.port)
        return ports

    def find_listeners_on_port(self, port: int) -> List[int]:
        try:
            connections = psutil.net_connections(kind="tcp")
        except psutil.Error as e:
            raise ExternalToolFailed("psutil", str(e)) from e
        return [
            conn.pid for conn in connections
            if conn.pid and conn.status == psutil.CONN_LISTEN and conn.laddr and conn.laddr.port == port
        ]

    def kill(self, pid: int) -> bool:
        try:
            psutil.Process(pid).kill()
            return True
        except psutil.NoSuchProcess:
            return False
        except psutil.AccessDenied:
            log.warning(f"Access denied while killing PID {pid}.")
            return False


def get_inspector(backend: Optional[str] = None) -> ProcessInspector:
    """
    Returns the inspector selected by INSPECTOR_BACKEND.

    :raises ValueError: If the backend name is unknown.
    """
    backend = (backend or config.INSPECTOR_BACKEND).lower()
    if backend == "command":
        return CommandInspector()
    if backend == "psutil":
        return PsutilInspector()
    raise ValueError(f"Unknown inspector backend '{backend}'. Expected 'command' or 'psutil'.")

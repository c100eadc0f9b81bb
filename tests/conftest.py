"""Shared fixtures: a dict-backed process table standing in for the OS."""
import shutil
import time

import pytest

from runstack.local.config import effective_settings as config
from runstack.local.errors import ExternalToolFailed
from runstack.local.supervisor.inspector import ProcessInspector


class FakeInspector(ProcessInspector):
    """
    Process table keyed by PID with each entry's parent PID.

    Children are listed in insertion order, killed PIDs disappear unless they
    are listed in `survivors`, and PIDs in `broken` make every query about them
    raise ExternalToolFailed.
    """

    def __init__(self, parents=None, listening=None):
        self.parents = dict(parents or {})
        self.listening = {pid: list(ports) for pid, ports in (listening or {}).items()}
        self.killed = []
        self.kill_refused = set()
        self.survivors = set()
        self.broken = set()
        self.broken_ports = set()

    def _check(self, pid):
        if pid in self.broken:
            raise ExternalToolFailed("fake", f"PID {pid} is broken")

    def exists(self, pid):
        self._check(pid)
        return pid in self.parents

    def list_children(self, pid):
        self._check(pid)
        return [child for child, parent in self.parents.items() if parent == pid]

    def parent_of(self, pid):
        self._check(pid)
        return self.parents.get(pid)

    def list_listening_ports(self, pid):
        self._check(pid)
        return list(self.listening.get(pid, []))

    def find_listeners_on_port(self, port):
        if port in self.broken_ports:
            raise ExternalToolFailed("fake", f"port {port} is broken")
        return [pid for pid, ports in self.listening.items() if port in ports]

    def kill(self, pid):
        self.killed.append(pid)
        if pid in self.kill_refused:
            return False
        if pid not in self.survivors:
            self.parents.pop(pid, None)
            self.listening.pop(pid, None)
        return True


@pytest.fixture
def fake_inspector():
    return FakeInspector


@pytest.fixture
def no_grace(monkeypatch):
    monkeypatch.setattr(config, "KILL_GRACE_PERIOD", 0)


def have_tools(*names):
    return all(shutil.which(name) for name in names)


def wait_for(predicate, timeout=5.0, interval=0.05):
    """Polls `predicate` until it returns a truthy value or the timeout expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        result = predicate()
        if result:
            return result
        time.sleep(interval)
    return predicate()

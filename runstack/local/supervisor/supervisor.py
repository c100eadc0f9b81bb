import logging
import threading
from typing import Dict, List, Optional, Sequence, Set

from runstack.local.errors import ExternalToolFailed, NotFound, RunstackError, ValidationRejected
from runstack.local.supervisor import launcher, ports, reaper
from runstack.local.supervisor.events import EventChannel
from runstack.local.supervisor.inspector import ProcessInspector, get_inspector
from runstack.local.supervisor.runtime import RuntimeVersionCache, detect_runtime_version
from runstack.local.supervisor.sanitizer import validate_pid
from runstack.local.supervisor.shells import ShellCandidate

log = logging.getLogger(__name__)


class ProcessSupervisor:
    """
    Entry point for launching, stopping and probing project dev servers.

    The inspector, event channel and runtime-version cache are owned by the
    caller and injected here. Every instance is independent.
    """

    def __init__(
        self,
        inspector: Optional[ProcessInspector] = None,
        events: Optional[EventChannel] = None,
        runtime_cache: Optional[RuntimeVersionCache] = None,
        shells: Optional[List[ShellCandidate]] = None,
    ) -> None:
        self.inspector = inspector or get_inspector()
        self.events = events or EventChannel()
        self.runtime_cache = runtime_cache or RuntimeVersionCache()
        self.shells = shells
        self.running_procs: Dict[str, int] = {}
        self._starting: Set[str] = set()
        self._procs_lock = threading.Lock()

    def _forget_pid(self, pid: int) -> None:
        with self._procs_lock:
            for token, known_pid in list(self.running_procs.items()):
                if known_pid == pid:
                    del self.running_procs[token]

    def spawn(self, command: str, args: Sequence[str], cwd: str, token: str) -> int:
        """
        Launches `command args...` in `cwd` and tracks it under `token`.

        The token is recorded before the process's waiter thread starts, so an
        immediate exit is always forgotten.

        :return: The PID of the launched process.
        :raises ValidationRejected: If `token` already names a launched process.
        """
        with self._procs_lock:
            if token in self.running_procs or token in self._starting:
                known = self.running_procs.get(token)
                detail = f" (PID {known})" if known else ""
                raise ValidationRejected(f"'{token}' is already running{detail}")
            self._starting.add(token)

        def record(pid: int) -> None:
            with self._procs_lock:
                self.running_procs[token] = pid

        request = launcher.SpawnRequest(command, list(args), cwd, token)
        try:
            return launcher.spawn(
                request, self.events, shells=self.shells,
                on_exit=self._forget_pid, on_started=record,
            )
        finally:
            with self._procs_lock:
                self._starting.discard(token)

    def kill_tree(self, pid: int) -> None:
        """Stops the process tree rooted at `pid`."""
        validate_pid(pid)
        reaper.kill_tree(self.inspector, pid)
        self._forget_pid(pid)

    def find_port(self, pid: int) -> Optional[int]:
        """Returns the TCP port the tree rooted at `pid` listens on, if any."""
        validate_pid(pid)
        return ports.find_port(self.inspector, pid)

    def runtime_version(self, runtime: str) -> Optional[str]:
        """Returns the installed version of a runtime, detected once and cached."""
        return self.runtime_cache.get_or_detect(runtime, detect_runtime_version)

    def running(self) -> Dict[str, int]:
        """Returns token -> PID for launched processes that are still present."""
        with self._procs_lock:
            snapshot = dict(self.running_procs)
        alive = {}
        for token, pid in snapshot.items():
            try:
                if self.inspector.exists(pid):
                    alive[token] = pid
            except ExternalToolFailed as e:
                log.debug(f"Could not check PID {pid} ('{token}'): {e}")
                alive[token] = pid
        return alive

    def stop_all(self) -> None:
        """Stops every process tree launched by this supervisor."""
        targets = self.running()
        if not targets:
            log.info("No running processes found to stop.")
            return

        log.info(f"Stopping {len(targets)} process trees...")
        for token, pid in targets.items():
            try:
                self.kill_tree(pid)
            except NotFound:
                self._forget_pid(pid)
            except RunstackError as e:
                log.error(f"Could not stop '{token}' (PID {pid}): {e}")

import logging
import subprocess
import threading
from typing import Callable, Dict, Optional

from runstack.local.config import effective_settings as config

log = logging.getLogger(__name__)

_MISSING = object()


class RuntimeVersionCache:
    """
    Maps a runtime name ('Node.js', 'Deno', 'Bun') to its detected version.

    Owned by the caller and passed where needed. Reads and writes are guarded
    by a lock; a repeated write for the same runtime simply overwrites.
    """

    def __init__(self) -> None:
        self._versions: Dict[str, Optional[str]] = {}
        self._lock = threading.Lock()

    def get(self, runtime: str, default: Optional[str] = None) -> Optional[str]:
        with self._lock:
            return self._versions.get(runtime, default)

    def set(self, runtime: str, version: Optional[str]) -> None:
        with self._lock:
            self._versions[runtime] = version

    def get_or_detect(self, runtime: str, detector: Callable[[str], Optional[str]]) -> Optional[str]:
        """
        Returns the cached version, detecting and caching it on first use.

        A failed detection is cached as None so the tool is not run again.
        """
        cached = self.get(runtime, _MISSING)
        if cached is not _MISSING:
            return cached

        version = detector(runtime)
        self.set(runtime, version)
        return version


def detect_runtime_version(runtime: str) -> Optional[str]:
    """
    Asks the runtime's own executable for its version.

    :param runtime: 'Node.js', 'Deno' or 'Bun'.
    :return: The version string, or None if the runtime is unknown or the tool failed.
    """
    command = config.RUNTIME_VERSION_COMMANDS.get(runtime)
    if not command:
        return None

    try:
        result = subprocess.run(
            command, capture_output=True, text=True, errors="replace",
            stdin=subprocess.DEVNULL, timeout=config.INSPECTION_TIMEOUT, check=False,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        log.debug(f"Could not determine {runtime} version: {e}")
        return None

    if result.returncode != 0:
        return None

    output = result.stdout.strip()
    if runtime == "Deno":
        # "deno 1.46.3 (stable, release, ...)" on the first line
        first_line = output.splitlines()[0] if output else ""
        parts = first_line.split()
        return parts[1] if len(parts) > 1 else None
    return output or None

import os
import logging
from pathlib import Path, PurePath
from typing import Sequence

from runstack.local.config import effective_settings as config
from runstack.local.errors import NotFound, ValidationRejected

log = logging.getLogger(__name__)

# Characters that let a shell chain, substitute or redirect.
DANGEROUS_CHARS = frozenset(";&|`$()<>\n\r\0")
PATH_SEPARATORS = frozenset("/\\")


def shell_quote(value: str) -> str:
    """
    Quotes a string so a POSIX shell reads it back as the exact literal.

    Every embedded single quote becomes '"'"' (close, double-quoted quote, reopen).
    """
    return "'" + value.replace("'", "'\"'\"'") + "'"


def _find_dangerous(value: str) -> str:
    return next((ch for ch in value if ch in DANGEROUS_CHARS), "")


def validate_command(name: str) -> None:
    """
    Rejects anything that is not a bare, whitelisted executable name.

    :param name: The command to run (e.g. 'npm').
    :raises ValidationRejected: If the name is empty, path-like, contains shell
        metacharacters, or is not in ALLOWED_COMMANDS.
    """
    if not name:
        raise ValidationRejected("command cannot be empty")
    if any(ch in PATH_SEPARATORS for ch in name):
        raise ValidationRejected(f"command '{name}' must not contain a path separator")
    bad = _find_dangerous(name)
    if bad:
        raise ValidationRejected(f"command contains forbidden character {bad!r}")
    if name not in config.ALLOWED_COMMANDS:
        raise ValidationRejected(f"command '{name}' is not allowed")


def validate_args(args: Sequence[str]) -> None:
    """
    Rejects argument lists that are too long or carry shell metacharacters.

    '=' is allowed so flags like '--port=4321' pass.

    :raises ValidationRejected: On the first offending argument.
    """
    if len(args) > config.MAX_ARGS:
        raise ValidationRejected(f"too many arguments ({len(args)} > {config.MAX_ARGS})")
    for index, arg in enumerate(args):
        if not isinstance(arg, str):
            raise ValidationRejected(f"argument {index} is not a string")
        if len(arg.encode("utf-8", errors="surrogatepass")) > config.MAX_ARG_BYTES:
            raise ValidationRejected(f"argument {index} exceeds {config.MAX_ARG_BYTES} bytes")
        bad = _find_dangerous(arg)
        if bad:
            raise ValidationRejected(f"argument {index} contains forbidden character {bad!r}")


def validate_directory_path(path: str) -> Path:
    """
    Validates a working directory and resolves it to its real path.

    :param path: Directory as supplied by the caller.
    :return: The canonical absolute path, symlinks resolved.
    :raises NotFound: If the path is empty or does not exist.
    :raises ValidationRejected: On null bytes, '..' segments, excessive length,
        or if the path is not a directory.
    """
    if not path:
        raise NotFound("path cannot be empty")
    if "\0" in path:
        raise ValidationRejected("path must not contain null bytes")
    if ".." in PurePath(path).parts:
        raise ValidationRejected("path traversal not allowed")
    if len(path) > config.MAX_PATH_LENGTH:
        raise ValidationRejected("path too long")

    candidate = Path(path)
    if not candidate.exists():
        raise NotFound(f"path does not exist: {path}")
    if not candidate.is_dir():
        raise ValidationRejected(f"path is not a directory: {path}")

    try:
        return candidate.resolve(strict=True)
    except OSError as e:
        raise NotFound(f"failed to resolve path {path}: {e}") from e


def validate_pid(pid: int) -> int:
    """
    Rejects reserved, out-of-range and self-referencing PIDs.

    :raises ValidationRejected: For 0, 1, values above MAX_PID or the supervisor's own PID.
    """
    if isinstance(pid, bool) or not isinstance(pid, int):
        raise ValidationRejected(f"PID must be an integer, got {pid!r}")
    if pid <= 0:
        raise ValidationRejected("PID 0 and negative values are reserved")
    if pid == 1:
        raise ValidationRejected("PID 1 is init/systemd and cannot be targeted")
    if pid > config.MAX_PID:
        raise ValidationRejected(f"PID {pid} is out of range")
    if pid == os.getpid():
        raise ValidationRejected("the supervisor cannot target its own PID")
    return pid

import logging
import subprocess
import threading
from collections import namedtuple
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

from runstack.local.errors import SpawnFailed
from runstack.local.supervisor.events import (
    ChannelClosed, EventChannel, ProcessExited, ProcessWaitFailed,
    ShellFallbackUsed, StderrLine, StdoutLine,
)
from runstack.local.supervisor.sanitizer import (
    shell_quote, validate_args, validate_command, validate_directory_path,
)
from runstack.local.supervisor.shells import ShellCandidate, resolve_shells, shell_flags

log = logging.getLogger(__name__)

SpawnRequest = namedtuple("SpawnRequest", ["command", "args", "cwd", "token"])


def build_command_line(bootstrap: str, cwd: Path, command: str, args: Sequence[str]) -> str:
    """Returns '<bootstrap>; cd <cwd> && <command> <args...>' with every value quoted."""
    invocation = " ".join(shell_quote(part) for part in [command, *args])
    return f"{bootstrap}; cd {shell_quote(str(cwd))} && {invocation}"


def _get_popen_kwargs() -> Dict[str, Any]:
    """Keyword arguments shared by every launch attempt."""
    return {
        "stdout": subprocess.PIPE,
        "stderr": subprocess.PIPE,
        "stdin": subprocess.DEVNULL,
        # Keep the child out of the supervisor's session and terminal signals.
        "start_new_session": True,
    }


def _emit_quietly(events: EventChannel, event) -> bool:
    """Emits an event, returning False if the consumer has gone away."""
    try:
        events.emit(event)
        return True
    except ChannelClosed:
        return False


def _read_pipe(pipe, token: str, event_type, events: EventChannel) -> None:
    """Target function for reader threads. Emits each line of a pipe as an event."""
    try:
        for line_bytes in iter(pipe.readline, b""):
            line = line_bytes.decode("utf-8", errors="replace").rstrip("\r\n")
            if not _emit_quietly(events, event_type(token, line)):
                break
    except (OSError, ValueError) as e:
        log.debug(f"{event_type.kind} reader for '{token}' exited: {e}")
    finally:
        pipe.close()


def _wait_for_exit(
    process: subprocess.Popen,
    token: str,
    events: EventChannel,
    on_exit: Optional[Callable[[int], None]] = None,
) -> None:
    """Target function for the waiter thread. Emits the terminal event once the process is gone."""
    pid = process.pid
    try:
        returncode = process.wait()
    except OSError as e:
        log.warning(f"Waiting on PID {pid} ('{token}') failed: {e}")
        _emit_quietly(events, ProcessWaitFailed(token, pid, str(e)))
    else:
        log.info(f"Process '{token}' (PID {pid}) exited with status {returncode}.")
        _emit_quietly(events, ProcessExited(token, pid, returncode))
    finally:
        if on_exit:
            on_exit(pid)


def stream_process_output(
    process: subprocess.Popen,
    token: str,
    events: EventChannel,
    on_exit: Optional[Callable[[int], None]] = None,
) -> List[threading.Thread]:
    """
    Starts the stdout reader, stderr reader and exit waiter threads for a process.

    The threads share nothing but the event channel. Closing the channel makes
    the readers stop at their next line.

    :return: The started threads (stdout, stderr, waiter).
    """
    pid = process.pid
    threads = []
    if process.stdout:
        threads.append(threading.Thread(
            target=_read_pipe, args=(process.stdout, token, StdoutLine, events),
            daemon=True, name=f"process-stdout-{pid}",
        ))
    if process.stderr:
        threads.append(threading.Thread(
            target=_read_pipe, args=(process.stderr, token, StderrLine, events),
            daemon=True, name=f"process-stderr-{pid}",
        ))
    threads.append(threading.Thread(
        target=_wait_for_exit, args=(process, token, events, on_exit),
        daemon=True, name=f"process-wait-{pid}",
    ))
    for thread in threads:
        thread.start()
    return threads


def _start_in_shell(request: SpawnRequest, cwd: Path, shells: List[ShellCandidate]):
    """Tries each shell in order. Returns (process, shell used) or raises SpawnFailed."""
    attempts = []
    popen_kwargs = _get_popen_kwargs()
    for shell in shells:
        command_line = build_command_line(shell.bootstrap, cwd, request.command, request.args)
        log.debug(f"Launching '{request.token}' with {shell.path}: {command_line}")
        try:
            process = subprocess.Popen([shell.path, *shell_flags(shell.path), command_line], **popen_kwargs)
            return process, shell
        except OSError as e:
            log.debug(f"Shell {shell.path} could not be started: {e}")
            attempts.append((shell.path, str(e)))
    raise SpawnFailed(request.command, attempts)


def spawn(
    request: SpawnRequest,
    events: EventChannel,
    shells: Optional[List[ShellCandidate]] = None,
    on_exit: Optional[Callable[[int], None]] = None,
    on_started: Optional[Callable[[int], None]] = None,
) -> int:
    """
    Launches a command inside the user's shell and streams its output as events.

    Validation happens before any process is created. If the preferred shell
    cannot be started, the next candidate is used and a ShellFallbackUsed event
    is emitted, since the fallback may see a different PATH.

    :param request: The command, args, working directory and correlation token.
    :param events: Channel receiving output, exit and fallback events.
    :param shells: Shell candidates (defaults to resolve_shells()).
    :param on_exit: Called with the PID once the process has exited.
    :param on_started: Called with the PID before any reader or waiter thread
        starts, so it always runs ahead of on_exit.
    :return: The PID of the launched shell process.
    :raises ValidationRejected: For a rejected command, argument or path.
    :raises NotFound: If the working directory does not exist.
    :raises SpawnFailed: If no shell candidate could be started.
    """
    validate_command(request.command)
    validate_args(request.args)
    cwd = validate_directory_path(request.cwd)

    shells = resolve_shells() if shells is None else shells
    try:
        process, used = _start_in_shell(request, cwd, shells)
    except SpawnFailed:
        log.critical(f"Failed to start '{request.token}': no shell could launch '{request.command}'.")
        raise

    preferred = shells[0]
    if used is not preferred:
        log.warning(
            f"Preferred shell {preferred.path} failed, '{request.token}' was started with {used.path}. "
            "Its environment may differ."
        )
        _emit_quietly(events, ShellFallbackUsed(request.token, preferred.path, used.path))

    if on_started:
        on_started(process.pid)
    stream_process_output(process, request.token, events, on_exit)
    log.info(f"'{request.token}' started successfully with PID: {process.pid}")
    return process.pid

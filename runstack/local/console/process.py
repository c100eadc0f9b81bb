import logging
from typing import List

from runstack.local.errors import RunstackError
from runstack.local.supervisor import ProcessSupervisor
from runstack.local.console.handler import (
    display_status, handle_config_command, print_help, toggle_verbose_logging,
)

log = logging.getLogger(__name__)


def _parse_pid(args: List[str]) -> int:
    if not args:
        raise ValueError("a PID is required")
    return int(args[0])


def _run(supervisor: ProcessSupervisor, args: List[str]) -> None:
    if len(args) < 3:
        print("Usage: run <name> <dir> <command> [args...]")
        return
    token, cwd, command, cmd_args = args[0], args[1], args[2], args[3:]
    pid = supervisor.spawn(command, cmd_args, cwd, token)
    print(f"Started '{token}' with PID {pid}.")


def _stop(supervisor: ProcessSupervisor, args: List[str]) -> None:
    pid = _parse_pid(args)
    supervisor.kill_tree(pid)
    print(f"Process tree {pid} stopped.")


def _port(supervisor: ProcessSupervisor, args: List[str]) -> None:
    pid = _parse_pid(args)
    port = supervisor.find_port(pid)
    if port is None:
        print(f"No listening port found for PID {pid} (yet).")
    else:
        print(f"PID {pid} is serving on http://localhost:{port}")


def _version(supervisor: ProcessSupervisor, args: List[str]) -> None:
    if not args:
        print("Usage: version <Node.js|Deno|Bun>")
        return
    runtime = " ".join(args)
    version = supervisor.runtime_version(runtime)
    print(f"{runtime}: {version or 'not found'}")


def execute_command(supervisor: ProcessSupervisor, command: str, args: List[str]) -> bool:
    """
    Executes a single command from the user.

    :param supervisor: The supervisor that owns the launched processes.
    :param command: The main command string (e.g., 'run', 'stop').
    :param args: A list of arguments for the command.
    :return bool: True if the console should exit, False otherwise.
    """
    log.debug(f"Executing command: {command}, args: {args}")
    command_map = {
        "run": lambda: _run(supervisor, args),
        "stop": lambda: _stop(supervisor, args),
        "port": lambda: _port(supervisor, args),
        "status": lambda: display_status(supervisor),
        "version": lambda: _version(supervisor, args),
        "config": lambda: handle_config_command(args),
        "verbose": toggle_verbose_logging,
        "help": print_help,
    }

    if command == "exit":
        return True

    if command not in command_map:
        log.info(f"Unknown command: '{command}'. Type 'help' for a list of commands.")
        return False

    try:
        command_map[command]()
    except RunstackError as e:
        log.error(f"Could not {command}: {e}")
    except ValueError as e:
        log.error(f"Invalid arguments for '{command}': {e}")
    return False

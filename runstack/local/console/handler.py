import json
import logging
import threading
from typing import List

import psutil

from runstack.local.config import effective_settings as config
from runstack.local.supervisor import ProcessSupervisor
from runstack.local.supervisor.events import (
    EventChannel, ProcessExited, ProcessWaitFailed, ShellFallbackUsed, StderrLine, StdoutLine,
)
from runstack.log.setup import get_process_logger

log = logging.getLogger(__name__)


def log_event(event) -> None:
    """Routes one supervisor event to the matching logger."""
    if isinstance(event, StdoutLine):
        get_process_logger(event.token).info(event.text)
    elif isinstance(event, StderrLine):
        get_process_logger(event.token).error(event.text)
    elif isinstance(event, ProcessExited):
        log.info(f"'{event.token}' (PID {event.pid}) exited with status {event.returncode}.")
    elif isinstance(event, ProcessWaitFailed):
        log.error(f"Lost track of '{event.token}' (PID {event.pid}): {event.error}")
    elif isinstance(event, ShellFallbackUsed):
        log.warning(
            f"WARNING: '{event.token}' runs under {event.used} instead of {event.preferred}; "
            "PATH and version managers may differ."
        )
    else:
        log.debug(f"Unhandled event: {event!r}")


def _pump_events(events: EventChannel) -> None:
    for event in events:
        log_event(event)
    log.debug("Event pump stopped.")


def start_event_pump(events: EventChannel) -> threading.Thread:
    """Starts a thread that logs events until the channel is closed."""
    pump = threading.Thread(target=_pump_events, args=(events,), daemon=True, name="EventPumpThread")
    pump.start()
    return pump


def display_status(supervisor: ProcessSupervisor) -> None:
    """Shows every launched process tree with its resource usage."""
    running = supervisor.running()
    if not running:
        print("\nNo processes are running.\n")
        return

    print("\n--- Supervised Processes ---")
    for token, pid in sorted(running.items()):
        try:
            p = psutil.Process(pid)
            tree = [p] + p.children(recursive=True)
            cpu = sum(proc.cpu_percent(interval=0.1) for proc in tree)
            mem = sum(proc.memory_info().rss for proc in tree)
            print(f"  - {token:<24} : PID {pid:<8} | Procs: {len(tree):<3} | CPU: {cpu:.1f}% | MEM: {mem/1024/1024:.1f} MB")
        except psutil.NoSuchProcess:
            print(f"  - {token:<24} : PID {pid:<8} | Status: STOPPED")
        except psutil.AccessDenied:
            print(f"  - {token:<24} : PID {pid:<8} | Status: RUNNING (Access Denied)")
    print("-" * 28 + "\n")


def _config_show() -> None:
    """Displays the modifiable settings with their current values."""
    print("\n--- Runtime Settings ---")
    print(f"(Overrides file: {config.OVERRIDES_JSON_PATH})")
    for key in sorted(config.MODIFIABLE_SETTINGS):
        print(f"  {key} = {config.get(key)!r}")
    print("Use 'config set <KEY> <VALUE>' to change a setting.")
    print("------------------------\n")


def _config_set(args: List[str]) -> None:
    """Applies one setting now and saves the modifiable settings as overrides."""
    if len(args) < 2:
        print("Usage: config set <SETTING_NAME> <VALUE>")
        return

    key, value_str = args[0].upper(), " ".join(args[1:])
    try:
        value = json.loads(value_str)
    except json.JSONDecodeError:
        value = value_str

    if not config.apply_override(key, value):
        print(f"Setting '{key}' was not changed. Check logs for details.")
        return
    config.save_overrides({name: config.get(name) for name in config.MODIFIABLE_SETTINGS})
    print(f"{key} is now {config.get(key)!r}.")


def _config_help() -> None:
    print("\nConfig Command Help:")
    print("  config show                - Display all modifiable settings.")
    print("  config set KEY VALUE       - Change a setting and save it to the overrides file.")
    print("  config help                - Show this help message.")


def handle_config_command(args: List[str]) -> None:
    """
    Handles the sub-commands of 'config'.

    :param args: A list of string arguments following the 'config' command.
    """
    sub_command = args[0].lower() if args else "show"

    if sub_command == "show":
        _config_show()
    elif sub_command == "set":
        _config_set(args[1:])
    elif sub_command == "help":
        _config_help()
    else:
        print(f"Unknown config sub-command: '{sub_command}'. Type 'config help' for available commands.")


def toggle_verbose_logging() -> None:
    """Toggles verbose (DEBUG level) logging for the console handler."""
    config.VERBOSE_LOGGING = not config.VERBOSE_LOGGING
    new_level = logging.DEBUG if config.VERBOSE_LOGGING else logging.INFO

    root_logger = logging.getLogger()
    found_handler = False
    for handler in root_logger.handlers:
        # FileHandler subclasses StreamHandler and always stays at DEBUG.
        if isinstance(handler, logging.StreamHandler) and not isinstance(handler, logging.FileHandler):
            handler.setLevel(new_level)
            found_handler = True
            break

    status = "ON" if config.VERBOSE_LOGGING else "OFF"
    if found_handler:
        print(f"Verbose console logging is now {status}.")
    else:
        print("Could not find console handler to modify level.")


def print_help() -> None:
    """Prints the main help text for the console."""
    print("\nAvailable commands:")
    print("  run <name> <dir> <cmd> [args] - Launch a dev server (e.g. run site ~/site npm run dev).")
    print("  stop <pid>                    - Stop a process and all of its children.")
    print("  port <pid>                    - Show the TCP port a process tree listens on.")
    print("  status                        - Show launched processes and their resource usage.")
    print("  version <runtime>             - Show the installed Node.js, Deno or Bun version.")
    print("  config [show|set|help]        - Show or change runtime settings (saved to overrides.json).")
    print("  verbose                       - Toggle detailed DEBUG log output in the console.")
    print("  exit                          - Stop all launched processes and exit.")
    print()

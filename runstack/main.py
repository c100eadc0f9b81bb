import sys
import time
import logging
import threading
from typing import List

import setproctitle

import runstack.local.console as console
from runstack.local.config import effective_settings as config
from runstack.local.supervisor import ProcessSupervisor
from runstack.log.setup import setup_logging

log = logging.getLogger("console")

CONSOLE_LOCK = threading.Lock()


def main() -> None:
    """Starts the supervisor console, interactive or for a single command."""
    setproctitle.setproctitle(config.PROCESS_TITLE)
    setup_logging(logging.DEBUG if config.VERBOSE_LOGGING else logging.INFO)

    supervisor = ProcessSupervisor()
    console.start_event_pump(supervisor.events)
    try:
        if len(sys.argv) > 1:
            _run_once(supervisor, sys.argv[1:])
        else:
            _interactive_loop(supervisor)
    finally:
        supervisor.stop_all()
        supervisor.events.close()


def _run_once(supervisor: ProcessSupervisor, argv: List[str]) -> None:
    """Runs `runstack <command> [args...]`, then stays up while launched processes run."""
    command, args = argv[0].lower(), [arg for arg in argv[1:] if arg != "--verbose"]
    if len(args) != len(argv) - 1:
        console.toggle_verbose_logging()
    console.execute_command(supervisor, command, args)

    try:
        while supervisor.running():
            time.sleep(0.5)
    except KeyboardInterrupt:
        log.warning("\nInterrupted, stopping launched processes.")


def _interactive_loop(supervisor: ProcessSupervisor) -> None:
    print("--- Runstack Console ---")
    print("Type 'help' for a list of commands.")

    while True:
        try:
            # Prompt without the lock so the event pump keeps printing.
            words = input("> ").split()
        except (KeyboardInterrupt, EOFError):
            log.warning("\nLeaving the console.")
            return
        if not words:
            continue

        with CONSOLE_LOCK:
            try:
                if console.execute_command(supervisor, words[0].lower(), words[1:]):
                    return
            except KeyboardInterrupt:
                log.warning("\nCommand interrupted.")
            except Exception as e:
                log.error(f"Unexpected console error: {e}", exc_info=True)


if __name__ == "__main__":
    main()

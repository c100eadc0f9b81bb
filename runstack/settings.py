"""
This module contains the configuration settings for the Runstack supervisor.
It defines paths, launch/validation limits, inspection tuning and logging settings.
It is used throughout the application to ensure consistent settings and paths.
"""

import os
import pathlib
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv(override=True)

#* --- Core Paths ---
BASE_DIR = pathlib.Path(__file__).resolve().parent.parent  # Project Root
LOGS_DIR = pathlib.Path(os.getenv("RUNSTACK_LOGS_DIR", str(BASE_DIR / "logs")))

#* --- Application File Paths ---
LOG_FILE_PATH = LOGS_DIR / "runstack.log"
OVERRIDES_JSON_PATH = pathlib.Path(os.getenv("RUNSTACK_OVERRIDES", str(BASE_DIR / "overrides.json")))

#* --- Launch Settings ---
# Environment variable holding the user's login shell.
USER_SHELL_ENV = "SHELL"
# Executables a project may be launched with. Exact, case-sensitive names only.
ALLOWED_COMMANDS = frozenset({
    "npm", "npx", "pnpm", "yarn", "bun", "bunx", "deno", "node",
})
MAX_ARGS = 64
MAX_ARG_BYTES = 1024
MAX_PATH_LENGTH = 4096
PROCESS_TITLE = "Runstack - Supervisor"

#* --- Process Inspection Settings ---
# 'command' shells out to ps/pgrep/lsof/kill, 'psutil' uses the psutil library.
INSPECTOR_BACKEND = os.getenv("RUNSTACK_INSPECTOR", "command").lower()
INSPECTION_TIMEOUT = 5.0  # seconds, applies to inspection utilities only
MAX_PID = 10_000_000
# shell (0) -> package manager (1) -> dev server (2) -> watchers (3), plus one spare level
TREE_WALK_MAX_DEPTH = 4
PORT_PROBE_MAX_DEPTH = 3
PORT_OWNERSHIP_MAX_HOPS = 5
KILL_GRACE_PERIOD = 0.1  # seconds

# Last-resort listening ports, checked in order.
WELL_KNOWN_PORTS = (
    4321, 4322, 4323, 4324, 4325,  # Astro
    3000, 3001, 3002, 3003, 3004,  # Next.js/React
    5173, 5174, 5175, 5176, 5177,  # Vite
    8000, 8001, 8002, 8003, 8004,  # Deno
)

#* --- Event Channel ---
EVENT_QUEUE_SIZE = 0  # 0 means unbounded

#* --- Runtime Version Detection ---
RUNTIME_VERSION_COMMANDS = {
    "Node.js": ["node", "--version"],
    "Deno": ["deno", "--version"],
    "Bun": ["bun", "--version"],
}

#* --- Application variables ---
VERBOSE_LOGGING = os.getenv("RUNSTACK_VERBOSE", "False").lower() in ('true', '1', 't')

#* --- MODIFIABLE SETTINGS (Changeable via overrides.json) ---
MODIFIABLE_SETTINGS = {
    "TREE_WALK_MAX_DEPTH", "PORT_PROBE_MAX_DEPTH", "PORT_OWNERSHIP_MAX_HOPS",
    "INSPECTION_TIMEOUT", "VERBOSE_LOGGING",
}

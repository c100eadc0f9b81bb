import os
import sys
import logging
from collections import namedtuple
from typing import Dict, List, Mapping, Optional

from runstack.local.config import effective_settings as config

log = logging.getLogger(__name__)

ShellCandidate = namedtuple("ShellCandidate", ["path", "bootstrap"])

NOOP_BOOTSTRAP = "true"
POSIX_SH = ShellCandidate("/bin/sh", NOOP_BOOTSTRAP)
FISH_FALLBACK_PATHS = ("/usr/local/bin/fish", "/opt/homebrew/bin/fish")

# Startup files are sourced with errors discarded and the snippet always succeeds.
BOOTSTRAP_SNIPPETS: Dict[str, str] = {
    "zsh": "source ~/.zshrc 2>/dev/null || source ~/.zprofile 2>/dev/null || true",
    "bash": "source ~/.bashrc 2>/dev/null || source ~/.bash_profile 2>/dev/null || true",
    "fish": "source ~/.config/fish/config.fish 2>/dev/null; or true",
    "csh": "source ~/.cshrc >& /dev/null; true",
    "tcsh": "source ~/.tcshrc >& /dev/null || source ~/.cshrc >& /dev/null; true",
    "ksh": ". ~/.kshrc 2>/dev/null || . ~/.profile 2>/dev/null || true",
}

# csh/tcsh only honour -l when it is the sole flag, so they run in command mode.
LOGIN_SHELLS = frozenset({"bash", "zsh", "ksh"})


def shell_name(path: str) -> str:
    """Returns the base name of a shell executable ('/usr/bin/zsh' -> 'zsh')."""
    return os.path.basename(path.rstrip("/"))


def shell_flags(path: str) -> List[str]:
    """Returns the flags that make a shell run a single command string."""
    if shell_name(path) in LOGIN_SHELLS:
        return ["-l", "-c"]
    return ["-c"]


def _platform_defaults(platform: str) -> List[str]:
    if platform == "darwin":
        return ["/bin/zsh", "/bin/bash"]
    return ["/bin/bash", "/bin/zsh"]


def resolve_shells(environ: Optional[Mapping[str, str]] = None, platform: Optional[str] = None) -> List[ShellCandidate]:
    """
    Builds the ordered list of shells to try when launching a command.

    The user's configured shell comes first, then the platform defaults that
    are not already present, then fish fallbacks, and always POSIX sh last.
    Shells are compared by base name, so '/usr/bin/zsh' counts as zsh.

    :param environ: Environment to read the user's shell from (defaults to os.environ).
    :param platform: Platform identifier (defaults to sys.platform).
    :return: Shell candidates, most preferred first.
    """
    environ = os.environ if environ is None else environ
    platform = sys.platform if platform is None else platform
    candidates: List[ShellCandidate] = []

    user_shell = environ.get(config.USER_SHELL_ENV, "").strip()
    if user_shell:
        name = shell_name(user_shell)
        candidates.append(ShellCandidate(user_shell, BOOTSTRAP_SNIPPETS.get(name, NOOP_BOOTSTRAP)))

    def has_shell(name: str) -> bool:
        return any(shell_name(c.path) == name for c in candidates)

    for path in _platform_defaults(platform):
        name = shell_name(path)
        if not has_shell(name):
            candidates.append(ShellCandidate(path, BOOTSTRAP_SNIPPETS[name]))

    if not has_shell("fish"):
        for path in FISH_FALLBACK_PATHS:
            candidates.append(ShellCandidate(path, BOOTSTRAP_SNIPPETS["fish"]))

    candidates.append(POSIX_SH)
    log.debug(f"Shell candidates: {[c.path for c in candidates]}")
    return candidates

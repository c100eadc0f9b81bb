import os
import time
import logging
from typing import List, Optional, Set

from runstack.local.config import effective_settings as config
from runstack.local.errors import ExternalToolFailed, KillFailed, NotFound
from runstack.local.supervisor.inspector import ProcessInspector
from runstack.local.supervisor.tree import ancestor_set, descendants

log = logging.getLogger(__name__)


def _protected_pids(inspector: ProcessInspector) -> Set[int]:
    """The supervisor and its whole ancestry. Never a kill target."""
    protected = ancestor_set(inspector)
    protected.add(os.getpid())
    return protected


def _kill_in_reverse(inspector: ProcessInspector, root: int, tree: List[int], protected: Set[int]) -> None:
    """Kills the tree deepest-first. Only a failure on the root itself is raised."""
    for pid in reversed(tree):
        if pid in protected:
            log.warning(f"Refusing to kill PID {pid}: it is the supervisor or one of its ancestors.")
            continue
        log.debug(f"Killing PID {pid} (tree of {root}).")
        try:
            delivered = inspector.kill(pid)
        except ExternalToolFailed as e:
            if pid == root:
                raise KillFailed(root, str(e)) from e
            log.debug(f"Kill of PID {pid} failed, ignoring: {e}")
            continue
        if not delivered and pid == root and _still_exists(inspector, root):
            raise KillFailed(root)


def _still_exists(inspector: ProcessInspector, pid: int) -> bool:
    try:
        return inspector.exists(pid)
    except ExternalToolFailed:
        return True


def _verify_root_gone(inspector: ProcessInspector, root: int) -> None:
    """Re-checks the root after the grace period and sends one more kill if it survived."""
    try:
        still_running = inspector.exists(root)
    except ExternalToolFailed as e:
        raise KillFailed(root, f"could not verify termination: {e}") from e

    if still_running:
        log.warning(f"PID {root} still present after kill. Sending one more SIGKILL.")
        try:
            inspector.kill(root)
        except ExternalToolFailed as e:
            raise KillFailed(root, str(e)) from e


def kill_tree(inspector: ProcessInspector, root: int, max_depth: Optional[int] = None) -> None:
    """
    Terminates `root` and every descendant found beneath it.

    Children are killed before parents. The supervisor process and its
    ancestors are skipped wherever they show up in the tree.

    :param inspector: The inspector used to query and signal processes.
    :param root: PID of the tree's root.
    :param max_depth: Levels to descend (defaults to TREE_WALK_MAX_DEPTH).
    :raises NotFound: If `root` does not exist.
    :raises ExternalToolFailed: If the existence check for `root` cannot be run.
    :raises KillFailed: If `root` could not be killed or verified.
    """
    if not inspector.exists(root):
        raise NotFound(f"process with PID {root} does not exist")

    depth = config.TREE_WALK_MAX_DEPTH if max_depth is None else max_depth
    tree = descendants(inspector, root, depth)
    protected = _protected_pids(inspector)
    log.info(f"Stopping process tree of PID {root} ({len(tree)} processes).")

    _kill_in_reverse(inspector, root, tree, protected)

    # Process groups are not signalled; the supervisor may share one with the tree.
    time.sleep(config.KILL_GRACE_PERIOD)

    if root in protected:
        return
    _verify_root_gone(inspector, root)

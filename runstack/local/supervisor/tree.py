import os
import logging
from typing import List, Optional, Set

from runstack.local.errors import ExternalToolFailed
from runstack.local.supervisor.inspector import ProcessInspector

log = logging.getLogger(__name__)


def _children_or_empty(inspector: ProcessInspector, pid: int) -> List[int]:
    try:
        return inspector.list_children(pid)
    except ExternalToolFailed as e:
        log.debug(f"Could not list children of PID {pid}: {e}")
        return []


def descendants(inspector: ProcessInspector, root: int, max_depth: int) -> List[int]:
    """
    Walks the process tree below `root` breadth-first.

    The result is a snapshot: processes may appear or exit between this walk
    and whatever acts on it.

    :param inspector: The inspector used to list children.
    :param root: PID at the top of the tree.
    :param max_depth: Maximum number of levels to descend.
    :return: PIDs in discovery order, root first, each PID once.
    """
    discovered = [root]
    seen: Set[int] = {root}
    frontier = [root]

    for _ in range(max_depth):
        next_frontier = []
        for parent in frontier:
            for child in _children_or_empty(inspector, parent):
                if child in seen:
                    continue
                seen.add(child)
                discovered.append(child)
                next_frontier.append(child)
        if not next_frontier:
            break
        frontier = next_frontier

    return discovered


def ancestor_set(inspector: ProcessInspector, start: Optional[int] = None) -> Set[int]:
    """
    Collects the parent chain of the supervisor up to, but excluding, init.

    Computed fresh on every call. The walk stops at the first failed lookup,
    self-reference or cycle.

    :param start: First ancestor to record (defaults to the supervisor's parent).
    :return: The set of ancestor PIDs.
    """
    ancestors: Set[int] = set()
    current = os.getppid() if start is None else start

    while current > 1 and current not in ancestors:
        ancestors.add(current)
        try:
            parent = inspector.parent_of(current)
        except ExternalToolFailed as e:
            log.debug(f"Ancestor walk stopped at PID {current}: {e}")
            break
        if parent is None or parent == current or parent <= 0:
            break
        current = parent

    return ancestors


def is_descendant_of(inspector: ProcessInspector, pid: int, owners: Set[int], max_hops: int) -> bool:
    """
    Returns True if walking up from `pid` reaches a member of `owners` within `max_hops` parent links.
    """
    current = pid
    for _ in range(max_hops):
        try:
            parent = inspector.parent_of(current)
        except ExternalToolFailed as e:
            log.debug(f"Parent lookup for PID {current} failed: {e}")
            return False
        if parent is None or parent == current or parent <= 1:
            return False
        if parent in owners:
            return True
        current = parent
    return False

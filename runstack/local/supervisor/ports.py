import logging
from typing import Iterable, List, Optional

from runstack.local.config import effective_settings as config
from runstack.local.errors import ExternalToolFailed
from runstack.local.supervisor.inspector import ProcessInspector
from runstack.local.supervisor.tree import descendants, is_descendant_of

log = logging.getLogger(__name__)


def _ports_of(inspector: ProcessInspector, pid: int) -> List[int]:
    try:
        return inspector.list_listening_ports(pid)
    except ExternalToolFailed as e:
        log.debug(f"Could not list sockets of PID {pid}: {e}")
        return []


def _listeners_on(inspector: ProcessInspector, port: int) -> List[int]:
    try:
        return inspector.find_listeners_on_port(port)
    except ExternalToolFailed as e:
        log.debug(f"Could not list listeners on port {port}: {e}")
        return []


def find_port(
    inspector: ProcessInspector,
    root: int,
    max_depth: Optional[int] = None,
    candidate_ports: Optional[Iterable[int]] = None,
    max_hops: Optional[int] = None,
) -> Optional[int]:
    """
    Finds the TCP port the process tree under `root` is listening on.

    Tries, in order: sockets owned by `root`; sockets owned by its descendants;
    well-known dev-server ports whose listener can be traced back to `root`.
    Results are advisory. A port outside the well-known list can be missed
    when neither root nor a descendant reports it.

    :param inspector: The inspector used to query sockets and parents.
    :param root: PID of the process tree.
    :param max_depth: Levels of descendants to check (defaults to PORT_PROBE_MAX_DEPTH).
    :param candidate_ports: Ports for the last-resort scan (defaults to WELL_KNOWN_PORTS).
    :param max_hops: Parent links to follow when checking ownership (defaults to PORT_OWNERSHIP_MAX_HOPS).
    :return: The listening port, or None if no tier found one.
    """
    depth = config.PORT_PROBE_MAX_DEPTH if max_depth is None else max_depth
    hops = config.PORT_OWNERSHIP_MAX_HOPS if max_hops is None else max_hops
    ports = config.WELL_KNOWN_PORTS if candidate_ports is None else candidate_ports

    for port in _ports_of(inspector, root):
        log.info(f"PID {root} is listening on port {port}.")
        return port

    tree = descendants(inspector, root, depth)
    for pid in tree[1:]:
        for port in _ports_of(inspector, pid):
            log.info(f"Descendant PID {pid} of {root} is listening on port {port}.")
            return port

    owners = set(tree)
    for port in ports:
        for listener in _listeners_on(inspector, port):
            if listener in owners or is_descendant_of(inspector, listener, owners, hops):
                log.info(f"Port {port} is held by PID {listener}, traced back to {root}.")
                return port
            log.debug(f"Ignoring listener PID {listener} on port {port}: not part of tree {root}.")

    return None

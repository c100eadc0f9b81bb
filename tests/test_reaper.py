import os
import subprocess

import psutil
import pytest

from conftest import FakeInspector, have_tools, wait_for
from runstack.local.errors import ExternalToolFailed, KillFailed, NotFound
from runstack.local.supervisor.inspector import CommandInspector, PsutilInspector
from runstack.local.supervisor.reaper import kill_tree

ROOT = 900_001

pytestmark = pytest.mark.usefixtures("no_grace")


def _tree():
    return FakeInspector({
        ROOT: 1,
        900_010: ROOT, 900_011: ROOT,
        900_020: 900_010,
    })


def test_children_are_killed_before_parents():
    inspector = _tree()
    kill_tree(inspector, ROOT)
    assert inspector.killed == [900_020, 900_011, 900_010, ROOT]
    assert not inspector.exists(ROOT)


def test_missing_root_raises_not_found():
    with pytest.raises(NotFound):
        kill_tree(FakeInspector({}), ROOT)


def test_failed_existence_check_propagates():
    inspector = _tree()
    inspector.broken.add(ROOT)
    with pytest.raises(ExternalToolFailed):
        kill_tree(inspector, ROOT)


@pytest.mark.skipif(os.getppid() <= 1, reason="test process has no real parent")
def test_supervisor_and_parent_are_never_killed():
    me, parent = os.getpid(), os.getppid()

    class SelfInTree(FakeInspector):
        def list_children(self, pid):
            children = super().list_children(pid)
            return children + [me, parent] if pid == ROOT else children

    inspector = SelfInTree({ROOT: 1, 900_010: ROOT})
    kill_tree(inspector, ROOT)
    assert me not in inspector.killed
    assert parent not in inspector.killed
    assert inspector.killed == [900_010, ROOT]


def test_protected_root_is_skipped_entirely():
    me = os.getpid()
    inspector = FakeInspector({me: 1, 900_010: me})
    kill_tree(inspector, me)
    assert inspector.killed == [900_010]


def test_refused_root_kill_raises():
    inspector = _tree()
    inspector.kill_refused.add(ROOT)
    with pytest.raises(KillFailed) as exc_info:
        kill_tree(inspector, ROOT)
    assert exc_info.value.pid == ROOT
    assert str(exc_info.value).startswith(f"Failed to kill process with PID {ROOT}")


def test_refused_kill_of_already_exited_root_is_fine():
    class ExitsFirst(FakeInspector):
        def kill(self, pid):
            if pid == ROOT:
                self.parents.pop(ROOT, None)
                self.killed.append(pid)
                return False
            return super().kill(pid)

    inspector = ExitsFirst({ROOT: 1, 900_010: ROOT})
    kill_tree(inspector, ROOT)
    assert inspector.killed == [900_010, ROOT]


def test_descendant_kill_failures_are_ignored():
    inspector = _tree()
    inspector.kill_refused.add(900_020)
    kill_tree(inspector, ROOT)
    assert inspector.killed[-1] == ROOT


def test_surviving_root_gets_a_second_kill():
    inspector = _tree()
    inspector.survivors.add(ROOT)
    kill_tree(inspector, ROOT)
    assert inspector.killed.count(ROOT) == 2


def test_depth_limit_leaves_deep_descendants_alone():
    inspector = FakeInspector({ROOT: 1, 900_010: ROOT, 900_020: 900_010})
    kill_tree(inspector, ROOT, max_depth=1)
    assert 900_020 not in inspector.killed


def _gone(pid):
    try:
        return psutil.Process(pid).status() == psutil.STATUS_ZOMBIE
    except psutil.NoSuchProcess:
        return True


@pytest.mark.parametrize("backend", [
    pytest.param(CommandInspector, marks=pytest.mark.skipif(
        not have_tools("ps", "pgrep", "kill"), reason="ps/pgrep/kill not available")),
    PsutilInspector,
])
def test_real_process_tree_is_terminated(backend):
    root = subprocess.Popen(
        ["/bin/sh", "-c", "sleep 30 & sleep 30; wait"],
        start_new_session=True,
    )
    try:
        assert wait_for(lambda: len(psutil.Process(root.pid).children()) == 2)
        children = psutil.Process(root.pid).children()
        child_pids = [child.pid for child in children]

        kill_tree(backend(), root.pid)

        assert root.wait(timeout=5) == -9
        assert wait_for(lambda: all(_gone(pid) for pid in child_pids))
    finally:
        if root.poll() is None:
            root.kill()
            root.wait()


def test_real_kill_of_own_tree_spares_the_test_process():
    inspector = PsutilInspector()
    child = subprocess.Popen(["sleep", "30"])
    try:
        wait_for(lambda: child.pid in [c.pid for c in psutil.Process().children()])
        kill_tree(inspector, os.getpid())
        assert child.wait(timeout=5) == -9
        assert psutil.pid_exists(os.getpid())
    finally:
        if child.poll() is None:
            child.kill()
            child.wait()

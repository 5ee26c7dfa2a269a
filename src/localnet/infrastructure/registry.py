import signal
import threading
from dataclasses import dataclass, field
from typing import Any, List, Optional

import psutil

from localnet.infrastructure.node_spec import NodeSpec


@dataclass(frozen=True)
class ExitInfo:
    """How a node process ended. Negative return codes mean killed by that signal."""
    returncode: Optional[int]

    @property
    def signal_name(self):
        if self.returncode is None or self.returncode >= 0:
            return None
        try:
            return signal.Signals(-self.returncode).name
        except ValueError:
            return None

    def __str__(self):
        if self.signal_name:
            return f"killed by {self.signal_name}"
        return f"exit code {self.returncode}"


@dataclass
class ProcessHandle:
    """Bookkeeping record for one spawned node."""
    spec: NodeSpec
    pid: int
    alive: bool = True
    exit_info: Optional[ExitInfo] = None
    process: Any = field(default=None, repr=False, compare=False)

    @property
    def name(self):
        return self.spec.name

    def poll(self):
        """Refresh liveness without blocking. Returns True while the node runs."""
        if not self.alive or self.process is None:
            return self.alive
        returncode = self.process.poll()
        if returncode is not None:
            self.mark_dead(ExitInfo(returncode))
        return self.alive

    def mark_dead(self, exit_info=None):
        self.alive = False
        if exit_info is not None and self.exit_info is None:
            self.exit_info = exit_info

    def terminate(self):
        self.process.terminate()

    def kill(self):
        self.process.kill()

    def collect(self, timeout=0):
        """Reap an exited process and record its exit status."""
        if self.process is None:
            return self.exit_info
        try:
            returncode = self.process.wait(timeout=timeout)
        except psutil.TimeoutExpired:
            return self.exit_info
        self.mark_dead(ExitInfo(returncode))
        return self.exit_info


class Registry:
    """
    Launch-ordered collection of process handles for one cluster run.
    Appended to during the spawn phase, read during teardown.
    """

    def __init__(self):
        self._handles: List[ProcessHandle] = []
        self._lock = threading.Lock()

    def append(self, handle):
        with self._lock:
            self._handles.append(handle)

    def snapshot(self):
        with self._lock:
            return tuple(self._handles)

    def get(self, name):
        for handle in self.snapshot():
            if handle.name == name:
                return handle
        return None

    def mark_dead(self, pid, exit_info=None):
        """Record that a node exited. Returns False for an unknown pid."""
        for handle in self.snapshot():
            if handle.pid == pid:
                handle.mark_dead(exit_info)
                return True
        return False

    def reap(self):
        """Poll every live handle and return those found to have exited."""
        return [h for h in self.snapshot() if h.alive and not h.poll()]

    def alive(self):
        return [h for h in self.snapshot() if h.alive]

    def pids(self):
        return [h.pid for h in self.snapshot()]

    def __len__(self):
        with self._lock:
            return len(self._handles)

    def __iter__(self):
        return iter(self.snapshot())

import logging
import signal
from dataclasses import dataclass, field
from enum import Enum
from typing import List

import psutil

from localnet.errors import TerminationError

log = logging.getLogger(__name__)

DEFAULT_GRACE = 5.0


class CoordinatorState(Enum):
    IDLE = 'idle'
    ARMED = 'armed'
    TRIGGERED = 'triggered'
    DRAINING = 'draining'
    REPORTED = 'reported'
    DONE = 'done'


@dataclass
class TerminationReport:
    targeted: List[int] = field(default_factory=list)
    already_exited: List[int] = field(default_factory=list)
    errors: List[TerminationError] = field(default_factory=list)

    @property
    def ok(self):
        return not self.errors


class SignalCoordinator:
    """
    Turns the operator's interrupt into a termination broadcast to every
    node in the registry that is still alive.

    The signal handler only flips state and cancels the token; the actual
    teardown happens in drain(), called from the orchestrator's main flow.
    """

    def __init__(self, registry, token, grace=DEFAULT_GRACE):
        self.registry = registry
        self.token = token
        self.grace = grace
        self.state = CoordinatorState.IDLE
        self._previous = {}
        self._report = None

    def arm(self, signals=(signal.SIGINT, signal.SIGTERM)):
        """Install interrupt handlers. Must run on the main thread."""
        for signum in signals:
            self._previous[signum] = signal.signal(signum, self._handle)
        if self.state is CoordinatorState.IDLE:
            self.state = CoordinatorState.ARMED
        log.info(f"Cluster running ({len(self.registry)} nodes). Press Ctrl+C to stop.")

    def disarm(self):
        for signum, handler in self._previous.items():
            signal.signal(signum, handler)
        self._previous = {}

    def _handle(self, signum, frame):
        self.trigger(signum)

    def trigger(self, signum=None):
        """Request teardown. Only the first call has any effect."""
        if self.state in (CoordinatorState.IDLE, CoordinatorState.ARMED):
            self.state = CoordinatorState.TRIGGERED
            if signum is not None:
                log.info(f"Received {signal.Signals(signum).name}, stopping cluster...")
            self.token.cancel()
            return True
        log.warning(f"Teardown already {self.state.value}, ignoring repeated interrupt")
        return False

    @property
    def report(self):
        return self._report

    def drain(self):
        """
        Terminate every live node exactly once and report the targeted pids.
        Repeated calls return the first report.
        """
        if self._report is not None:
            return self._report
        if self.state in (CoordinatorState.IDLE, CoordinatorState.ARMED):
            self.trigger()
        self.state = CoordinatorState.DRAINING

        report = TerminationReport()
        signalled = []
        for handle in self.registry.snapshot():
            if not handle.poll():
                report.already_exited.append(handle.pid)
                continue
            try:
                handle.terminate()
            except psutil.NoSuchProcess:
                handle.mark_dead()
                report.already_exited.append(handle.pid)
                continue
            except (psutil.Error, OSError) as e:
                err = TerminationError(handle.pid, handle.name, e)
                log.error(str(err))
                report.errors.append(err)
                continue
            report.targeted.append(handle.pid)
            signalled.append(handle)

        self._reclaim(signalled, report)

        self.state = CoordinatorState.REPORTED
        log.info(f"Kill All {' '.join(str(pid) for pid in report.targeted)}")
        if report.already_exited:
            log.info(f"Already exited: {' '.join(str(pid) for pid in report.already_exited)}")
        self._report = report
        self.state = CoordinatorState.DONE
        return report

    def _reclaim(self, handles, report):
        """Wait out the grace period, then SIGKILL whatever is left."""
        if not handles:
            return
        if self.grace:
            by_pid = {h.pid: h for h in handles}
            procs = [h.process for h in handles]
            _, survivors = psutil.wait_procs(procs, timeout=self.grace)
            for proc in survivors:
                handle = by_pid[proc.pid]
                log.warning(f"{handle.name} (pid {handle.pid}) ignored SIGTERM, killing")
                try:
                    handle.kill()
                except psutil.NoSuchProcess:
                    pass
                except (psutil.Error, OSError) as e:
                    err = TerminationError(handle.pid, handle.name, e)
                    log.error(str(err))
                    report.errors.append(err)
        for handle in handles:
            handle.collect(timeout=self.grace or 0)
            handle.mark_dead()

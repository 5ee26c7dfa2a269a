import logging
import sys

from localnet.infrastructure.launcher import Launcher
from localnet.infrastructure.monitor import CancelToken, FollowResult, LogMonitor
from localnet.infrastructure.node_spec import Role
from localnet.infrastructure.registry import Registry
from localnet.infrastructure.signals import SignalCoordinator
from localnet.infrastructure.stale import kill_stale_nodes
from localnet.storage.workspace import WorkspaceCleaner

log = logging.getLogger(__name__)


class Cluster:
    """
    One local cluster run: clean stale state, start every node, follow one
    node's log, and tear everything down on interrupt.
    """

    def __init__(self, config, out=None, clean=True, kill_stale=False, follow=True, poll_interval=0.2):
        self.config = config
        self.out = out if out is not None else sys.stdout
        self.clean = clean
        self.kill_stale = kill_stale
        self.follow = follow
        self.poll_interval = poll_interval
        self.registry = Registry()
        self.token = CancelToken()
        self.coordinator = SignalCoordinator(self.registry, self.token, grace=config.termination_grace)
        self.launch_report = None

    def prepare(self):
        """Validate config and clean the workspace. Errors here are fatal."""
        specs = self.config.node_specs()
        self.config.validate()
        if self.kill_stale:
            kill_stale_nodes(self.config.binaries)
        if self.clean:
            WorkspaceCleaner(self.config.workspace, self.config.cleanup_patterns).clean()
        return specs

    def start(self, specs):
        launcher = Launcher(
            self.config.binaries, self.registry,
            log_env_var=self.config.log_env_var, cwd=self.config.workspace,
        )
        self.launch_report = launcher.launch(specs)
        log.info(f"PIDs: {' '.join(str(pid) for pid in self.registry.pids())}")
        return self.launch_report

    def monitor_target(self):
        """The handle whose log is followed: configured, else first storage node, else first node."""
        handles = self.registry.snapshot()
        if self.config.monitor is not None:
            handle = self.registry.get(self.config.monitor)
            if handle is not None:
                return handle
            log.warning(f"Monitor target {self.config.monitor} did not start")
        for handle in handles:
            if handle.spec.role is Role.STORAGE:
                return handle
        return handles[0] if handles else None

    def _report_exits(self):
        for handle in self.registry.reap():
            log.warning(f"{handle.name} (pid {handle.pid}) exited on its own: {handle.exit_info}")

    def wait(self):
        """Block until interrupted, following the monitor target's log if enabled."""
        target = self.monitor_target()
        if self.follow and target is not None:
            log.info(f"Following {target.spec.log_file}")
            monitor = LogMonitor(target.spec.log_file, out=self.out, poll_interval=self.poll_interval)
            return monitor.follow(self.token, on_tick=self._report_exits)
        while not self.token.wait(self.poll_interval):
            self._report_exits()
        return FollowResult.CANCELLED

    def stop(self):
        return self.coordinator.drain()

    def run(self):
        """Full run. Returns 0 when every node started and stopped cleanly."""
        specs = self.prepare()
        try:
            self.start(specs)
            if not len(self.registry):
                log.error("No nodes started")
                return 1
            self.coordinator.arm()
            try:
                self.wait()
            finally:
                termination = self.stop()
                self.coordinator.disarm()
        except KeyboardInterrupt:
            # Interrupted before the coordinator was armed.
            termination = self.stop()
        started_ok = self.launch_report is not None and self.launch_report.ok
        return 0 if started_ok and termination.ok else 1

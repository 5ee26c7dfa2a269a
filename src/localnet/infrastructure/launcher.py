import logging
import os
import subprocess
from dataclasses import dataclass, field
from typing import List

import psutil

from localnet.errors import SpawnError
from localnet.infrastructure.registry import ProcessHandle

log = logging.getLogger(__name__)

DEFAULT_LOG_ENV_VAR = 'RUST_LOG'


@dataclass
class LaunchReport:
    handles: List[ProcessHandle] = field(default_factory=list)
    errors: List[SpawnError] = field(default_factory=list)

    @property
    def ok(self):
        return not self.errors


class Launcher:
    """
    Spawns one detached process per NodeSpec, each writing stdout and stderr
    to its own log file, and records a handle for it in the registry.
    """

    def __init__(self, binaries, registry, log_env_var=DEFAULT_LOG_ENV_VAR, cwd=None, env=None):
        self.binaries = binaries
        self.registry = registry
        self.log_env_var = log_env_var
        self.cwd = cwd
        self.env = env if env is not None else os.environ.copy()

    def command_for(self, spec):
        """Full argv for a node: the role's binary followed by the node's flags."""
        binary = self.binaries.get(spec.role.value)
        if not binary:
            raise FileNotFoundError(f"no binary configured for role {spec.role.value}")
        base = [binary] if isinstance(binary, str) else list(binary)
        return base + spec.args()

    def spawn(self, spec):
        """Start a single node. Raises SpawnError if it cannot be started."""
        env = dict(self.env)
        env[self.log_env_var] = spec.log_level
        try:
            cmd = self.command_for(spec)
            log_dir = os.path.dirname(spec.log_file)
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)
            with open(spec.log_file, 'wb') as out:
                # New session: the terminal's Ctrl+C reaches the launcher only.
                proc = psutil.Popen(
                    cmd, cwd=self.cwd, env=env,
                    stdin=subprocess.DEVNULL, stdout=out, stderr=subprocess.STDOUT,
                    start_new_session=True,
                )
        except (OSError, psutil.Error) as e:
            raise SpawnError(spec, e) from e

        handle = ProcessHandle(spec=spec, pid=proc.pid, process=proc)
        self.registry.append(handle)
        log.info(f"Started {spec.name} (pid {proc.pid}) -> {spec.log_file}")
        log.debug(f"  {self.log_env_var}={spec.log_level} {' '.join(cmd)}")
        return handle

    def launch(self, specs):
        """Spawn every spec in order; a failed node does not stop the rest."""
        report = LaunchReport()
        log.info(f"Starting {len(specs)} nodes...")
        for spec in specs:
            try:
                report.handles.append(self.spawn(spec))
            except SpawnError as e:
                log.error(str(e))
                report.errors.append(e)
        if report.errors:
            failed = ', '.join(e.spec.name for e in report.errors)
            log.warning(f"Partial startup: {len(report.handles)}/{len(specs)} nodes running, failed: {failed}")
        else:
            log.info(f"All {len(report.handles)} nodes started")
        return report

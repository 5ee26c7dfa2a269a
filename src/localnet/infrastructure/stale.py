import logging
import os
import time

import psutil

log = logging.getLogger(__name__)


def _command_prefixes(binaries):
    prefixes = []
    for binary in binaries.values():
        argv = [binary] if isinstance(binary, str) else list(binary)
        if argv:
            prefixes.append(argv)
    return prefixes


def _matches(cmdline, prefixes):
    return any(cmdline[:len(prefix)] == prefix for prefix in prefixes)


def kill_stale_nodes(binaries, exclude_pid=None, settle=1.0):
    """Kill node processes left over from an earlier run of the same binaries."""
    exclude_pid = exclude_pid if exclude_pid is not None else os.getpid()
    prefixes = _command_prefixes(binaries)
    killed = []

    for proc in psutil.process_iter(['pid', 'cmdline']):
        try:
            cmdline = proc.info['cmdline']
            if not cmdline or proc.info['pid'] == exclude_pid:
                continue
            if _matches(cmdline, prefixes):
                log.info(f"  Killing stale process {proc.info['pid']}: {' '.join(cmdline)}")
                proc.kill()
                killed.append(proc.info['pid'])
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            pass

    if killed:
        log.info(f"Killed {len(killed)} stale node(s), waiting for ports to free...")
        time.sleep(settle)
    else:
        log.info("No stale nodes found")
    return killed

class LocalnetError(Exception):
    """Base exception class for cluster launcher errors."""


class ConfigurationError(LocalnetError):
    """Malformed topology or missing configuration, fatal before any spawn."""


class CleanupError(LocalnetError):
    """Stale workspace state could not be removed."""

    def __init__(self, path, cause=None):
        detail = f": {cause}" if cause else ""
        super().__init__(f"failed to remove {path}{detail}")
        self.path = path
        self.cause = cause


class SpawnError(LocalnetError):
    """A single node failed to start."""

    def __init__(self, spec, cause):
        super().__init__(f"{spec.name} failed to start: {cause}")
        self.spec = spec
        self.cause = cause


class TerminationError(LocalnetError):
    """A termination request failed for a reason other than the process being gone."""

    def __init__(self, pid, name, cause):
        super().__init__(f"failed to terminate {name} (pid {pid}): {cause}")
        self.pid = pid
        self.name = name
        self.cause = cause

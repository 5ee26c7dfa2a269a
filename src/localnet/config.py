import json
import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Union

from localnet.errors import ConfigurationError
from localnet.infrastructure.launcher import DEFAULT_LOG_ENV_VAR
from localnet.infrastructure.node_spec import (
    DEFAULT_LOG_LEVELS, NodeEntry, Role, StartupOrder, build_node_specs,
)
from localnet.infrastructure.signals import DEFAULT_GRACE
from localnet.storage.workspace import DEFAULT_CLEANUP_PATTERNS

DEFAULT_TOPOLOGY = 'topology.json'

DEFAULT_BINARIES = {role.value: os.path.join('target', 'release', role.value) for role in Role}

_TOP_LEVEL_KEYS = {
    'config_path', 'workspace', 'log_dir', 'log_env_var', 'startup_order',
    'termination_grace', 'monitor', 'binaries', 'log_levels', 'cleanup_patterns', 'nodes',
}
_NODE_KEYS = {'role', 'index', 'compute_index', 'connect', 'log_level', 'extra_args'}


@dataclass
class ClusterConfig:
    """Everything one cluster run needs, with paths already resolved."""
    config_path: str
    nodes: List[NodeEntry]
    workspace: str = '.'
    log_dir: str = '.'
    log_env_var: str = DEFAULT_LOG_ENV_VAR
    startup_order: StartupOrder = StartupOrder.PRIORITY
    termination_grace: float = DEFAULT_GRACE
    monitor: Optional[str] = None
    binaries: Dict[str, Union[str, List[str]]] = field(default_factory=lambda: dict(DEFAULT_BINARIES))
    log_levels: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_LOG_LEVELS))
    cleanup_patterns: Tuple[str, ...] = DEFAULT_CLEANUP_PATTERNS

    def node_specs(self):
        specs = build_node_specs(
            self.nodes, self.config_path, self.log_levels, self.log_dir, self.startup_order,
        )
        if self.monitor is not None and self.monitor not in {s.name for s in specs}:
            raise ConfigurationError(f"Monitor target {self.monitor!r} is not a node in the topology")
        return specs

    def validate(self):
        """Check the parts of the configuration that touch the filesystem."""
        if not self.config_path:
            raise ConfigurationError("No node configuration path given")
        if not os.path.isdir(self.workspace):
            raise ConfigurationError(f"Workspace {self.workspace} is not a directory")
        if not os.path.isfile(os.path.join(self.workspace, self.config_path)):
            raise ConfigurationError(f"Node configuration {self.config_path} not found in {self.workspace}")


def _expect(value, kind, what):
    if not isinstance(value, kind) or (kind is int and isinstance(value, bool)):
        raise ConfigurationError(f"{what} has the wrong type: {value!r}")
    return value


def _optional_int(raw, key, what):
    value = raw.get(key)
    if value is None:
        return None
    return _expect(value, int, f"{what}.{key}")


def parse_node(raw, position):
    """Turn one topology entry into a NodeEntry."""
    what = f"nodes[{position}]"
    _expect(raw, dict, what)
    unknown = set(raw) - _NODE_KEYS
    if unknown:
        raise ConfigurationError(f"{what}: unknown keys {sorted(unknown)}")
    if 'role' not in raw:
        raise ConfigurationError(f"{what}: missing role")
    extra = raw.get('extra_args', [])
    _expect(extra, list, f"{what}.extra_args")
    log_level = raw.get('log_level')
    if log_level is not None:
        _expect(log_level, str, f"{what}.log_level")
    return NodeEntry(
        role=Role.parse(raw['role']),
        index=_optional_int(raw, 'index', what),
        peer_index=_optional_int(raw, 'compute_index', what),
        connect=_expect(raw.get('connect', False), bool, f"{what}.connect"),
        log_level=log_level,
        extra_args=tuple(str(a) for a in extra),
    )


def _resolve(base, path):
    return path if os.path.isabs(path) else os.path.normpath(os.path.join(base, path))


def _resolve_binary(base, binary, role):
    if isinstance(binary, str):
        return _resolve(base, binary) if os.sep in binary else binary
    if isinstance(binary, list) and binary and all(isinstance(a, str) for a in binary):
        return list(binary)
    raise ConfigurationError(f"binaries.{role} must be a path or a non-empty argv list")


def parse_config(raw, base_dir='.'):
    """Build a ClusterConfig from a decoded topology document."""
    _expect(raw, dict, "topology")
    unknown = set(raw) - _TOP_LEVEL_KEYS
    if unknown:
        raise ConfigurationError(f"Unknown topology keys: {sorted(unknown)}")
    if 'nodes' not in raw:
        raise ConfigurationError("Topology is missing 'nodes'")
    if not raw.get('config_path'):
        raise ConfigurationError("Topology is missing 'config_path'")

    nodes = [parse_node(n, i) for i, n in enumerate(_expect(raw['nodes'], list, "nodes"))]

    binaries = dict(DEFAULT_BINARIES)
    for role, binary in _expect(raw.get('binaries', {}), dict, "binaries").items():
        Role.parse(role)
        binaries[role.lower()] = binary
    binaries = {role: _resolve_binary(base_dir, b, role) for role, b in binaries.items()}

    log_levels = dict(DEFAULT_LOG_LEVELS)
    for role, level in _expect(raw.get('log_levels', {}), dict, "log_levels").items():
        if role != 'default':
            Role.parse(role)
        log_levels[role.lower()] = _expect(level, str, f"log_levels.{role}")

    try:
        order = StartupOrder(raw.get('startup_order', StartupOrder.PRIORITY.value))
    except ValueError:
        raise ConfigurationError(f"Unknown startup_order {raw.get('startup_order')!r}") from None

    grace = raw.get('termination_grace', DEFAULT_GRACE)
    if isinstance(grace, bool) or not isinstance(grace, (int, float)) or grace < 0:
        raise ConfigurationError(f"termination_grace must be a non-negative number: {grace!r}")

    monitor = raw.get('monitor')
    if monitor is not None:
        _expect(monitor, str, "monitor")

    patterns = _expect(raw.get('cleanup_patterns', list(DEFAULT_CLEANUP_PATTERNS)), list, "cleanup_patterns")
    for i, pattern in enumerate(patterns):
        _expect(pattern, str, f"cleanup_patterns[{i}]")

    workspace = _resolve(base_dir, _expect(raw.get('workspace', '.'), str, "workspace"))
    return ClusterConfig(
        config_path=_expect(raw['config_path'], str, "config_path"),
        nodes=nodes,
        workspace=workspace,
        log_dir=_resolve(base_dir, _expect(raw.get('log_dir', '.'), str, "log_dir")),
        log_env_var=_expect(raw.get('log_env_var', DEFAULT_LOG_ENV_VAR), str, "log_env_var"),
        startup_order=order,
        termination_grace=float(grace),
        monitor=monitor,
        binaries=binaries,
        log_levels=log_levels,
        cleanup_patterns=tuple(patterns),
    )


def load_config(path=DEFAULT_TOPOLOGY):
    """Load the cluster topology from a JSON file."""
    try:
        with open(path, 'r') as f:
            raw = json.load(f)
    except FileNotFoundError:
        raise ConfigurationError(f"Topology file {path} not found") from None
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Topology file {path} is not valid JSON: {e}") from e
    return parse_config(raw, base_dir=os.path.dirname(os.path.abspath(path)))


import os
import sys
import time

from localnet.infrastructure.node_spec import NodeSpec, Role

FAKE_NODE = '''\
import os
import signal
import sys
import time

role = sys.argv[1]
args = sys.argv[2:]
if '--ignore-term' in args:
    signal.signal(signal.SIGTERM, signal.SIG_IGN)
print(f"{role} started args={' '.join(args)} log_level={os.environ.get('RUST_LOG', '')}", flush=True)
print(f"{role} diagnostics on stderr", file=sys.stderr, flush=True)
print("ready", flush=True)
if '--exit-now' in args:
    sys.exit(3)
while True:
    time.sleep(0.1)
'''


def write_fake_node(directory):
    path = os.path.join(directory, 'fake_node.py')
    with open(path, 'w') as f:
        f.write(FAKE_NODE)
    return path


def fake_binaries(script):
    return {role.value: [sys.executable, script, role.value] for role in Role}


def make_spec(log_dir, role=Role.STORAGE, index=None, peer_index=None, connect=False,
              log_level='info', config_path='node_settings.toml', extra_args=()):
    name = f"{role.value}_{index if index is not None else 0}"
    return NodeSpec(
        role=role, index=index, peer_index=peer_index, connect=connect,
        log_level=log_level, config_path=config_path,
        log_file=os.path.join(str(log_dir), f"{name}.log"),
        extra_args=tuple(extra_args),
    )


def read(path):
    try:
        with open(path) as f:
            return f.read()
    except FileNotFoundError:
        return ''


def wait_for(predicate, timeout=10.0, interval=0.02):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


def wait_ready(spec, timeout=10.0):
    return wait_for(lambda: 'ready' in read(spec.log_file), timeout=timeout)

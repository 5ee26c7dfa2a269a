import io
import os
import threading

import pytest

from localnet.cluster import Cluster
from localnet.config import parse_config
from localnet.errors import ConfigurationError
from localnet.infrastructure.monitor import FollowResult
from localnet.main import main

from tests.helpers import read, wait_for

ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


def raft_nodes():
    miners = []
    for i in range(5, -1, -1):
        entry = {'role': 'miner', 'connect': True}
        if i:
            entry.update(index=i, compute_index=i % 2)
        miners.append(entry)
    return [
        {'role': 'storage', 'index': 1},
        {'role': 'storage'},
        {'role': 'compute', 'index': 1},
        {'role': 'compute'},
        *miners,
        {'role': 'user', 'connect': True},
    ]


@pytest.fixture
def workspace(tmp_path):
    ws = tmp_path / 'workspace'
    (ws / 'src' / 'bin').mkdir(parents=True)
    (ws / 'src' / 'bin' / 'node_settings_local_raft.toml').write_text('')
    (ws / 'src' / 'db' / 'db').mkdir(parents=True)
    (ws / 'src' / 'db' / 'db' / 'test.storage_1').write_text('stale')
    return ws


@pytest.fixture
def make_cluster(workspace, binaries):
    clusters = []

    def factory(**overrides):
        doc = {
            'config_path': 'src/bin/node_settings_local_raft.toml',
            'workspace': 'workspace',
            'log_dir': 'workspace/logs',
            'termination_grace': 5.0,
            'binaries': binaries,
            'nodes': raft_nodes(),
        }
        doc.update(overrides)
        config = parse_config(doc, base_dir=str(workspace.parent))
        cluster = Cluster(config, out=io.StringIO(), poll_interval=0.01)
        clusters.append(cluster)
        return cluster

    yield factory
    for cluster in clusters:
        cluster.stop()


def all_ready(cluster):
    return all('ready' in read(h.spec.log_file) for h in cluster.registry)


def test_eleven_node_cluster_lifecycle(make_cluster, workspace):
    cluster = make_cluster()
    specs = cluster.prepare()
    assert not (workspace / 'src' / 'db' / 'db' / 'test.storage_1').exists()

    report = cluster.start(specs)

    assert report.ok
    assert len(cluster.registry) == 11
    assert [h.spec for h in cluster.registry] == list(specs)
    assert len({h.spec.log_file for h in cluster.registry}) == 11
    assert wait_for(lambda: all_ready(cluster))

    cluster.coordinator.trigger()
    assert cluster.wait() is FollowResult.CANCELLED
    termination = cluster.stop()

    assert termination.ok
    assert len(termination.targeted) == 11
    assert termination.targeted == cluster.registry.pids()
    assert cluster.registry.alive() == []


def test_missing_role_binary_spawns_the_rest(make_cluster, workspace, binaries):
    binaries = dict(binaries, user=str(workspace / 'target' / 'release' / 'user'))
    cluster = make_cluster(binaries=binaries)

    report = cluster.start(cluster.prepare())

    assert len(report.errors) == 1
    assert report.errors[0].spec.name == 'user_0'
    assert len(cluster.registry) == 10
    assert 'user_0' not in [h.name for h in cluster.registry]
    assert len(cluster.stop().targeted) == 10


def test_monitor_target_defaults_to_first_storage_node(make_cluster):
    cluster = make_cluster()
    cluster.start(cluster.prepare())
    assert cluster.monitor_target().name == 'storage_1'


def test_monitor_target_can_be_configured(make_cluster):
    cluster = make_cluster(monitor='miner_3')
    cluster.start(cluster.prepare())
    assert cluster.monitor_target().name == 'miner_3'


def test_run_follows_log_until_interrupted(make_cluster):
    cluster = make_cluster(nodes=[{'role': 'storage', 'index': 1}, {'role': 'compute'}])

    def interrupt():
        wait_for(lambda: 'ready' in cluster.out.getvalue())
        cluster.coordinator.trigger()

    watcher = threading.Thread(target=interrupt)
    watcher.start()
    status = cluster.run()
    watcher.join()

    assert status == 0
    output = cluster.out.getvalue()
    assert 'storage started args=--config=src/bin/node_settings_local_raft.toml --index=1' in output
    assert 'log_level=debug,raft=warn' in output
    assert len(cluster.coordinator.report.targeted) == 2


def test_run_reports_failure_status(make_cluster, workspace, binaries):
    binaries = dict(binaries, compute=str(workspace / 'missing'))
    cluster = make_cluster(binaries=binaries, nodes=[{'role': 'storage'}, {'role': 'compute'}])
    threading.Timer(0.5, cluster.coordinator.trigger).start()

    assert cluster.run() == 1


def test_missing_node_config_aborts_before_spawn(make_cluster, workspace):
    (workspace / 'src' / 'bin' / 'node_settings_local_raft.toml').unlink()
    cluster = make_cluster()
    with pytest.raises(ConfigurationError):
        cluster.run()
    assert len(cluster.registry) == 0


def test_cli_reports_configuration_errors(tmp_path):
    assert main(['--topology', str(tmp_path / 'missing.json')]) == 2


def test_cli_overrides(tmp_path):
    from localnet.config import load_config
    from localnet.main import apply_overrides, build_parser

    args = build_parser().parse_args(['--follow', 'compute_1', '--order', 'declared', '--grace', '0'])
    config = apply_overrides(load_config(os.path.join(ROOT, 'topology.json')), args)
    assert config.monitor == 'compute_1'
    assert config.startup_order.value == 'declared'
    assert config.termination_grace == 0

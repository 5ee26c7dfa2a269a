import argparse
import logging
import sys

from localnet.cluster import Cluster
from localnet.config import DEFAULT_TOPOLOGY, load_config
from localnet.errors import CleanupError, ConfigurationError
from localnet.infrastructure.node_spec import StartupOrder
from localnet.logging_config import setup_logging

log = logging.getLogger(__name__)


def build_parser():
    p = argparse.ArgumentParser(prog='localnet', description='Run a local multi-role node cluster.')
    p.add_argument('--topology', default=DEFAULT_TOPOLOGY, help='cluster topology JSON file')
    p.add_argument('--config', dest='config_path', help='node configuration file passed to every node')
    p.add_argument('--log-dir', help='directory for per-node log files')
    p.add_argument('--follow', metavar='NODE', help='node whose log is tailed, e.g. storage_1')
    p.add_argument('--no-follow', action='store_true', help='do not tail any log, just wait for Ctrl+C')
    p.add_argument('--no-clean', action='store_true', help='keep database and wallet files from the last run')
    p.add_argument('--kill-stale', action='store_true', help='kill node processes left from an earlier run')
    p.add_argument('--order', choices=[o.value for o in StartupOrder], help='node startup order')
    p.add_argument('--grace', type=float, help='seconds to wait after SIGTERM before SIGKILL (0 disables)')
    p.add_argument('-v', '--verbose', action='store_true')
    return p


def apply_overrides(config, args):
    if args.config_path:
        config.config_path = args.config_path
    if args.log_dir:
        config.log_dir = args.log_dir
    if args.follow:
        config.monitor = args.follow
    if args.order:
        config.startup_order = StartupOrder(args.order)
    if args.grace is not None:
        if args.grace < 0:
            raise ConfigurationError("--grace must be non-negative")
        config.termination_grace = args.grace
    return config


def main(argv=None):
    args = build_parser().parse_args(argv)
    setup_logging(logging.DEBUG if args.verbose else logging.INFO)
    try:
        config = apply_overrides(load_config(args.topology), args)
        cluster = Cluster(config, clean=not args.no_clean, kill_stale=args.kill_stale, follow=not args.no_follow)
        return cluster.run()
    except (ConfigurationError, CleanupError) as e:
        log.error(str(e))
        return 2
    except KeyboardInterrupt:
        log.info("Interrupted")
        return 130


if __name__ == '__main__':
    sys.exit(main())

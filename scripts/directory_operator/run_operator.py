"""
Directory Operator

Runs the LDAPServer, LDAPUser and LDAPGroup controllers under kopf. Watches
the namespaces given on the command line, the configured watch namespace,
or the whole cluster.
"""

import argparse
import functools
import logging
import sys

import kopf

from controllers.config import OperatorConfig
from scripts.directory_operator.handlers import build_controllers, register_handlers

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def handle_keyboard_interrupt(exit_message="Operator interrupted by user"):
    """Decorator to handle KeyboardInterrupt and exit gracefully."""

    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except KeyboardInterrupt:
                logger.info(f"\n{exit_message}")
                sys.exit(0)

        return wrapper

    return decorator


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Directory Operator - Reconcile LDAP users, groups and servers from Kubernetes resources"
    )
    parser.add_argument(
        "--namespace",
        "-n",
        action="append",
        default=[],
        help="Namespace to watch (repeatable; default: DIRECTORY_WATCH_NAMESPACE or all namespaces)",
    )
    parser.add_argument(
        "--all-namespaces",
        action="store_true",
        help="Watch all namespaces, ignoring --namespace and DIRECTORY_WATCH_NAMESPACE",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: DIRECTORY_LOG_LEVEL or INFO)",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable debug logging"
    )
    parser.add_argument(
        "--liveness",
        metavar="URL",
        help="Serve a liveness endpoint, e.g. http://0.0.0.0:8080/healthz",
    )
    return parser


def resolve_namespaces(args: argparse.Namespace, config) -> list:
    """Namespaces to watch; an empty list means cluster-wide."""
    if args.all_namespaces:
        return []
    if args.namespace:
        return list(args.namespace)
    if config['watch_namespace']:
        return [config['watch_namespace']]
    return []


@handle_keyboard_interrupt("Operator interrupted by user")
def main(argv=None):
    """Main entry point for the directory operator."""
    args = build_parser().parse_args(argv)
    config = OperatorConfig.get_config()

    log_level = "DEBUG" if args.verbose else (args.log_level or config['log_level'])
    logging.basicConfig(level=getattr(logging, log_level, logging.INFO), format=LOG_FORMAT)

    namespaces = resolve_namespaces(args, config)
    if namespaces:
        logger.info(f"Watching namespaces: {', '.join(namespaces)}")
    else:
        logger.info("Watching all namespaces")
    logger.info(f"API group: {config['api_group']}/{config['api_version']}")
    logger.info(f"Secret backend: {config['secret_backend']}")

    logger.info("Initializing controllers...")
    controllers = build_controllers(config)
    registry = register_handlers(config, controllers)

    kopf.run(
        registry=registry,
        clusterwide=not namespaces,
        namespaces=namespaces,
        liveness_endpoint=args.liveness,
        standalone=True,
    )
    logger.info("Operator shutdown complete")


if __name__ == "__main__":
    main()

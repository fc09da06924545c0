"""
Main CLI dispatcher for Cardano-NodeKit.
"""

import os
import sys
import argparse
import logging
import logging.handlers

from cardano_nodekit.config import get_config

# Import toolkit command setup and handler functions
from cardano_nodekit.toolkit.cli import (
    setup_heartbeat_args, handle_heartbeat_command,
    setup_status_args, handle_status_command,
    setup_config_args, handle_config_command
)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
SYSLOG_FORMAT = 'cardano-nodekit[%(process)d]: %(name)s - %(levelname)s - %(message)s'


def setup_logging(verbose: bool, config) -> None:
    """Configure console logging, plus the system log when enabled and available."""
    log_level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=log_level, format=LOG_FORMAT, force=True)
    if verbose:
        logging.getLogger("cardano_nodekit").setLevel(logging.DEBUG)

    if not config.get("logging.syslog", True):
        return
    address = config.get("logging.syslog_address", "/dev/log")
    if not os.path.exists(address):
        logging.getLogger("cardano_nodekit.cli").debug(f"Syslog socket {address} not found; logging to console only")
        return
    try:
        handler = logging.handlers.SysLogHandler(address=address, facility=logging.handlers.SysLogHandler.LOG_DAEMON)
    except OSError as e:
        logging.getLogger("cardano_nodekit.cli").warning(f"Cannot connect to syslog at {address}: {e}")
        return
    # Routine no-op runs are logged at DEBUG; the system log should still get them.
    handler.setLevel(logging.DEBUG)
    handler.addFilter(logging.Filter("cardano_nodekit"))
    handler.setFormatter(logging.Formatter(SYSLOG_FORMAT))
    logging.getLogger().addHandler(handler)
    logging.getLogger().setLevel(logging.DEBUG)
    for h in logging.getLogger().handlers:
        if h is not handler:
            h.setLevel(log_level)


def main():
    """Main entry point for the unified CLI."""
    parser = argparse.ArgumentParser(
        description="Cardano-NodeKit - producer/standby failover for cardano-node hosts"
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    heartbeat_parser = subparsers.add_parser("heartbeat", help="Run one failover check: switch this node's role if the parent's reachability calls for it.")
    setup_heartbeat_args(heartbeat_parser)

    status_parser = subparsers.add_parser("status", help="Show parent reachability, current role, credentials and service state.")
    setup_status_args(status_parser)

    config_parser = subparsers.add_parser("config", help="Show or set configuration values.")
    setup_config_args(config_parser)

    # Add common arguments (apply to all commands)
    parser.add_argument("--config", help="Path to a custom TOML configuration file.")
    parser.add_argument("--version", action="store_true", help="Show version and exit.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose (DEBUG level) logging for all modules.")

    args = parser.parse_args()

    if args.version:
        from cardano_nodekit import __version__
        print(f"Cardano-NodeKit v{__version__}")
        sys.exit(0)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    config = get_config(custom_path=args.config)
    setup_logging(args.verbose, config)
    logger = logging.getLogger("cardano_nodekit.cli")
    logger.debug(f"Log level set to {'DEBUG' if args.verbose else 'INFO'}")

    # Dispatch to appropriate command handler function
    if args.command == "heartbeat":
        handle_heartbeat_command(args)
    elif args.command == "status":
        handle_status_command(args)
    elif args.command == "config":
        handle_config_command(args)
    else:
        logger.error(f"Unhandled command: {args.command}")
        parser.print_help()
        sys.exit(1)

if __name__ == "__main__":
    main()

"""CLI interface for the Toolkit component."""

import argparse
from typing import Any
import sys # For sys.exit

# --- Heartbeat Command ---
def setup_heartbeat_args(parser: argparse.ArgumentParser):
    """Set up arguments for the 'heartbeat' command."""
    # Scheduled runs take everything from config/environment; no arguments.
    parser.epilog = ("Settings come from the config files and PARENT_ADDRESS/PARENT_PORT. "
                     "Run from cron or a systemd timer, e.g. every two minutes.")

def handle_heartbeat_command(args: Any):
    """Handle the 'heartbeat' command."""
    from cardano_nodekit.toolkit.commands.heartbeat import manage_heartbeat
    exit_code = manage_heartbeat(
        config_path=args.config if hasattr(args, "config") else None
    )
    sys.exit(exit_code)

# --- Status Command ---
def setup_status_args(parser: argparse.ArgumentParser):
    """Set up arguments for the 'status' command."""
    parser.add_argument("--no-probe", action="store_true", help="Do not probe the parent's node port.")
    parser.add_argument("--lookup-parent", action="store_true", help="Show the parent's ASN/location from ipinfo.io.")

def handle_status_command(args: Any):
    """Handle the 'status' command."""
    from cardano_nodekit.toolkit.commands.status import show_status
    success = show_status(
        probe=not args.no_probe,
        lookup_parent=args.lookup_parent,
        config_path=args.config if hasattr(args, "config") else None
    )
    if not success:
        sys.exit(2) # Same code a heartbeat would exit with on bad configuration

# --- Config Command ---
def setup_config_args(parser: argparse.ArgumentParser):
    """Set up arguments for the 'config' command."""
    config_subparsers = parser.add_subparsers(dest="config_action", required=True)
    config_subparsers.add_parser("show", help="Print the merged configuration.")
    set_parser = config_subparsers.add_parser("set", help="Persist one key (dotted, e.g. failover.parent_address).")
    set_parser.add_argument("key", help="Dotted configuration key.")
    set_parser.add_argument("value", help="Value; true/false and numbers are stored as TOML booleans/numbers.")
    set_parser.add_argument("--file", help="TOML file to write (default: --config file, else ~/.config/cardano-nodekit/config.toml).")

def handle_config_command(args: Any):
    """Handle the 'config' command."""
    from cardano_nodekit.toolkit.commands.settings import show_config, set_config_value
    config_path = args.config if hasattr(args, "config") else None
    if args.config_action == "show":
        success = show_config(config_path=config_path)
    else:
        success = set_config_value(args.key, args.value, target=args.file, config_path=config_path)
    if not success:
        sys.exit(1)

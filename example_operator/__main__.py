#!/usr/bin/env python
"""
The main module provides the executable entrypoint for the example operator
"""

# Standard
from typing import Callable, Dict, List
import argparse

# First Party
import alog

# Local
from . import config
from .cmd import CheckHeartbeatCmd, RunOperatorCmd
from .config import library_config, validate_config
from .log_format import ExampleJsonFormatter

## Constants ###################################################################

log = alog.use_channel("MAIN")


def parse_bool(value: str) -> bool:
    """Parse the value of a boolean flag given as --flag=<value>"""
    lowered = value.lower()
    if lowered in ("true", "yes", "1"):
        return True
    if lowered in ("false", "no", "0"):
        return False
    raise argparse.ArgumentTypeError(f"Expected a boolean, got '{value}'")


# The library config keys that can be overridden on the command line and the
# type each flag value is parsed with. Every other key is set through the
# config file or its environment variable.
LIBRARY_CONFIG_FLAGS: Dict[str, Callable] = {
    "dry_run": parse_bool,
    "watch_namespace": str,
    "log_level": str,
    "log_filters": str,
    "log_json": parse_bool,
    "reconcile_period": str,
    "python_watch_manager.max_concurrent_reconciles": int,
    "python_watch_manager.heartbeat_file": str,
    "python_watch_manager.heartbeat_period": str,
    "python_watch_manager.lock.type": str,
    "python_watch_manager.lock.namespace": str,
    "server.enabled": parse_bool,
    "server.port": int,
}

## Helpers #####################################################################


def add_library_config_flags(parser: argparse.ArgumentParser):
    """Add a --dotted.key flag for each overridable library config key. Flags
    that are not given leave the config untouched.
    """
    flag_args = parser.add_argument_group("Library Configuration")
    for key, value_type in LIBRARY_CONFIG_FLAGS.items():
        kwargs = {
            "dest": key,
            "type": value_type,
            "default": argparse.SUPPRESS,
            "help": f"Override {key} (see example_operator/config/config.yaml)",
        }
        # A bare boolean flag turns the option on
        if value_type is parse_bool:
            kwargs["nargs"] = "?"
            kwargs["const"] = True
        flag_args.add_argument(f"--{key}", **kwargs)


def update_library_config(args: argparse.Namespace) -> List[str]:
    """Write the given flags into the library config

    Returns:
        updated:  List[str]
            The keys that were overridden
    """
    updated = []
    for key in LIBRARY_CONFIG_FLAGS:
        if not hasattr(args, key):
            continue
        *sections, leaf = key.split(".")
        config_obj = library_config
        for section in sections:
            config_obj = config_obj[section]
        config_obj[leaf] = getattr(args, key)
        updated.append(key)
    return updated


## Main ########################################################################


def main(argv=None):
    """The main module provides the executable entrypoint for the operator"""
    parser = argparse.ArgumentParser(description=__doc__)

    # Add the subcommands
    subparsers = parser.add_subparsers(help="Available commands", dest="command")
    run_operator_parser = RunOperatorCmd().add_subparser(subparsers)
    add_library_config_flags(run_operator_parser)
    add_library_config_flags(CheckHeartbeatCmd().add_subparser(subparsers))

    # Use a preliminary parser to check for the presence of a command and fall
    # back to the default command if not found
    check_parser = argparse.ArgumentParser(add_help=False)
    check_parser.add_argument("command", nargs="?")
    check_args, _ = check_parser.parse_known_args(argv)
    if check_args.command not in subparsers.choices:
        args = run_operator_parser.parse_args(argv)
    else:
        args = parser.parse_args(argv)

    # Provide overrides to the library configs and make sure they are still
    # valid
    overrides = update_library_config(args)
    validate_config(library_config)

    # Reconfigure logging
    alog.configure(
        default_level=config.log_level,
        filters=config.log_filters,
        formatter=ExampleJsonFormatter() if config.log_json else "pretty",
        thread_id=config.log_thread_id,
    )
    log.debug("Command line config overrides: %s", overrides)

    # Run the command's function
    args.func(args)


if __name__ == "__main__":  # pragma: no cover
    main()

#!/usr/bin/env python3
"""
EMSX GroupRouteEx example client

Routes several existing EMSX orders to one broker under a shared strategy
and prints the responses until ENTER is pressed.

Usage:
    emsx-grouproute
    emsx-grouproute --transport blpapi --config config.yaml
    python -m emsx_route -v
"""

import argparse
import sys
from typing import Callable, List, Optional

from loguru import logger

from .config import configure_logging, load_settings
from .controller import GroupRouteSession
from .exceptions import ConfigError, TransportError


BANNER = "Bloomberg - EMSX API Example - GroupRouteEx"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Submit an EMSX group route request and print the responses',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  emsx-grouproute                        # Simulated session, default settings
  emsx-grouproute --transport blpapi     # Real Bloomberg API session
  emsx-grouproute -v --log-dir logs      # Debug diagnostics, also written to logs/
        """
    )
    parser.add_argument('--config', default=None,
                        help='Path to config.yaml (default: project config.yaml if present)')
    parser.add_argument('--env-file', default=None,
                        help='Path to a .env file with EMSX_* overrides')
    parser.add_argument('--transport', choices=['simulated', 'blpapi'], default=None,
                        help='Session transport (overrides configuration)')
    parser.add_argument('--log-dir', default=None,
                        help='Directory for the rotating diagnostic log')
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Enable debug diagnostics on stderr')
    return parser


def main(argv: Optional[List[str]] = None, input_func: Callable[[], str] = input) -> int:
    """
    Run the example. Always returns 0; failures are reported on the console.
    """
    args = build_parser().parse_args(argv)
    configure_logging("DEBUG" if args.verbose else "WARNING", args.log_dir)

    print(BANNER, flush=True)

    try:
        settings = load_settings(args.config, args.env_file)
        if args.transport is not None:
            settings = settings.model_copy(update={"transport": args.transport})

        with GroupRouteSession(settings, input_func=input_func) as session:
            session.run()

    except TransportError as e:
        logger.error(f"Transport error: {e.description}")
        print(f"Library Exception!!!{e.description}", flush=True)
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        print(f"Configuration Error!!!{e}", flush=True)
    except (EOFError, KeyboardInterrupt):
        print("\nInterrupted", flush=True)

    # wait for enter key to exit application
    print("Press ENTER to quit", flush=True)
    try:
        input_func()
    except (EOFError, KeyboardInterrupt):
        pass
    return 0


if __name__ == "__main__":
    sys.exit(main())

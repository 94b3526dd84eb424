"""Command line tool for migrating and managing chart releases."""

import argparse
import asyncio
import logging
import sys
import traceback

from chart_operator.exceptions import ChartOperatorException
from chart_operator.project import DESCRIPTION, VERSION

from . import reconcile, run, version_bundle

_LOGGER = logging.getLogger(__name__)


def _make_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=DESCRIPTION)
    parser.add_argument("--version", action="version", version=VERSION)
    parser.add_argument(
        "--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    )

    subparsers = parser.add_subparsers(dest="command", help="Command", required=True)

    reconcile.ReconcileAction.register(subparsers)
    run.RunAction.register(subparsers)
    version_bundle.VersionBundleAction.register(subparsers)
    return parser


def main(argv: list[str] | None = None) -> None:
    """Chart-operator command line tool main entry point."""
    parser = _make_parser()
    args = parser.parse_args(argv)

    if args.log_level:
        logging.basicConfig(level=args.log_level)

    action = args.cls()
    try:
        asyncio.run(action.run(**vars(args)))
    except ChartOperatorException as err:
        if args.log_level == "DEBUG":
            traceback.print_exc(file=sys.stderr)
        print("chart-operator error: ", err, file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()

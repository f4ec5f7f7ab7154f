#!/usr/bin/env python3
"""plaintasks command line entry point."""

import logging
import sys
from typing import List, Optional

from core.errors import TasksError
from interface import cli_commands
from interface.cli_commands import CliDeps, default_deps
from interface.cli_io import error_response
from interface.cli_parser import build_parser as build_cli_parser

logger = logging.getLogger("plaintasks.cli")


def setup_logging(verbose: bool = False) -> None:
    """stderr only, so stdout stays a single JSON document."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    if not verbose:
        logging.getLogger("urllib3").setLevel(logging.ERROR)


def build_parser():
    return build_cli_parser(commands=cli_commands)


def main(argv: Optional[List[str]] = None, deps: Optional[CliDeps] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(getattr(args, "verbose", False))
    if not getattr(args, "func", None):
        parser.print_help()
        return 1
    label = getattr(args, "label", args.command)
    try:
        return args.func(args, deps or default_deps())
    except (TasksError, ValueError) as exc:
        logger.debug("%s failed", label, exc_info=True)
        return error_response(label, exc)


if __name__ == "__main__":
    sys.exit(main())

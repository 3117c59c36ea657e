from __future__ import annotations

import argparse
import logging
from pathlib import Path

from rich.console import Console

from credverify.cli.commands import doctor_cmd, init_cmd, verify_cmd, web_cmd
from credverify.cli.context import CLIContext
from credverify.core.config import load_config
from credverify.core.errors import CredVerifyError
from credverify.core.logging import configure_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="credverify",
        description="Credential verification service",
    )
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=None,
        help="Directory holding the local verification store (default: $CREDVERIFY_HOME or ./data)",
    )
    parser.add_argument("-v", "--verbose", action="count", default=0)

    subparsers = parser.add_subparsers(dest="command", required=True)
    init_cmd.register(subparsers)
    verify_cmd.register(subparsers)
    doctor_cmd.register(subparsers)
    web_cmd.register(subparsers)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging(args.verbose)
    console = Console()

    handler = getattr(args, "handler", None)
    if handler is None:
        parser.print_help()
        return 2

    try:
        ctx = CLIContext(config=load_config(args.data_dir), console=console)
        return handler(args, ctx)
    except CredVerifyError as exc:
        logger.error(str(exc))
        return 1


if __name__ == "__main__":
    raise SystemExit(main())

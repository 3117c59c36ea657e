from __future__ import annotations

import argparse

from credverify.application.services.project_service import ProjectService
from credverify.cli.context import CLIContext


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("init", help="Create the data directory and local verification store")
    parser.set_defaults(handler=run)


def run(args: argparse.Namespace, ctx: CLIContext) -> int:
    service = ProjectService(ctx.config)
    result = service.init_project()

    if result.paths_created:
        for path in result.paths_created:
            ctx.console.print(f"[green]Created[/green] {path}")
    else:
        ctx.console.print("[yellow]Data directory already existed[/yellow]")

    if result.quarantined_path is not None:
        ctx.console.print(f"[yellow]Moved unreadable store to[/yellow] {result.quarantined_path}")

    ctx.console.print(f"[green]Store ready[/green] {result.store_backend}:{result.store_path}")
    return 0

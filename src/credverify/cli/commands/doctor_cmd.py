from __future__ import annotations

import argparse

from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from credverify.application.services.health_service import HealthService
from credverify.application.services.project_service import ProjectService
from credverify.cli.context import CLIContext
from credverify.core.errors import ProjectNotInitializedError
from credverify.infrastructure.storage.factory import open_authority_store, open_verification_store


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("doctor", help="Check the local and authority stores")
    parser.set_defaults(handler=run_doctor)


def _require_initialized_project(ctx: CLIContext) -> None:
    project_service = ProjectService(ctx.config)
    if not project_service.is_initialized():
        raise ProjectNotInitializedError(
            f"Store is not initialized. Run 'credverify init' first for {ctx.config.data_dir}"
        )
    project_service.init_project()


def run_doctor(args: argparse.Namespace, ctx: CLIContext) -> int:
    _require_initialized_project(ctx)

    service = HealthService(
        verification_store=open_verification_store(ctx.config),
        authority_store=open_authority_store(ctx.config),
    )
    report = service.run_doctor()

    summary = Panel.fit(
        f"Checks run: {report.checks_run}\n"
        f"Issues: {len(report.issues)}\n"
        f"Status: {'PASS' if report.ok else 'FAIL'}",
        title="Doctor Summary",
    )
    ctx.console.print(summary)

    runtime = Table(title="Store Runtime")
    runtime.add_column("Setting")
    runtime.add_column("Value", overflow="fold")
    for key, value in report.store_runtime.items():
        runtime.add_row(str(key), escape(str(value)))
    ctx.console.print(runtime)

    if report.issues:
        out = Table(title="Doctor Issues")
        out.add_column("Level")
        out.add_column("Check")
        out.add_column("Message", overflow="fold")
        for issue in report.issues:
            out.add_row(issue.level, issue.check, escape(issue.message))
        ctx.console.print(out)

    return 0 if report.ok else 1

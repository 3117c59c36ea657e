from __future__ import annotations

import argparse

from rich.markup import escape
from rich.panel import Panel

from credverify.application.services.project_service import ProjectService
from credverify.application.services.verification_engine import build_engine
from credverify.cli.context import CLIContext
from credverify.core.errors import ProjectNotInitializedError


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("verify", help="Verify a single credential id")
    parser.add_argument("credential_id")
    parser.set_defaults(handler=run_verify)


def _require_initialized_project(ctx: CLIContext) -> None:
    project_service = ProjectService(ctx.config)
    if not project_service.is_initialized():
        raise ProjectNotInitializedError(
            f"Store is not initialized. Run 'credverify init' first for {ctx.config.data_dir}"
        )
    project_service.init_project()


def run_verify(args: argparse.Namespace, ctx: CLIContext) -> int:
    _require_initialized_project(ctx)
    engine = build_engine(ctx.config)

    decision = engine.verify(args.credential_id)
    lines = [
        f"Credential ID: {escape(decision.id)}",
        f"Valid: {'YES' if decision.is_valid else 'NO'}",
        f"Status: {decision.status}",
        f"Verified at: {decision.verified_at}",
        f"Verified by: {decision.verified_by}",
    ]
    if decision.issuer:
        lines.append(f"Issuer: {escape(decision.issuer)}")
    if decision.reason:
        lines.append(f"Reason: {decision.reason}")
    ctx.console.print(Panel.fit("\n".join(lines), title="Verify Credential"))
    return 0 if decision.is_valid else 1

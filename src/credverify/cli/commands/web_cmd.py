from __future__ import annotations

import argparse
import os

from credverify.cli.context import CLIContext
from credverify.web.app import create_app

DEFAULT_PORT = 3002


def _default_port() -> int:
    raw = os.getenv("PORT")
    if raw is None or not raw.strip():
        return DEFAULT_PORT
    try:
        return int(raw)
    except ValueError:
        return DEFAULT_PORT


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("web", help="Run the HTTP verification service")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=_default_port(), help="Defaults to $PORT or 3002")
    parser.set_defaults(handler=run)


def run(args: argparse.Namespace, ctx: CLIContext) -> int:
    import uvicorn

    app = create_app(ctx.config)
    ctx.console.print(
        f"Verification service {ctx.config.worker_id} running on port {args.port} "
        f"(store {ctx.config.store_backend}:{ctx.config.store_path})"
    )
    uvicorn.run(app, host=args.host, port=args.port)
    return 0

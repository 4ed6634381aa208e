"""
qpc.cli
=======

Command-line entrypoint for the QPC job service.

    qpc --db qpc.db submit --as alice --value 42 --algorithm shor --deposit 1000000
    qpc --db qpc.db execute 1 --as worker-1
    qpc --db qpc.db request-decrypt 1 --as alice
    qpc --db qpc.db oracle-fulfill --all
    qpc --db qpc.db job 1

All commands operate on the SQLite state file, so the asynchronous oracle
round trip can span separate invocations. `--now` pins the host clock
(UNIX seconds) for scripted timeout scenarios.

Subcommands are registered from sibling modules exposing
`register(app: typer.Typer) -> None`.

Environment:
- QPC_CONFIG_FILE / QPC_* : see qpc.config
- QPC_LOG_LEVEL           : default log level (WARNING)
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, Optional

import typer

from ..version import __version__

log = logging.getLogger(__name__)


def _state(ctx: typer.Context) -> Dict[str, Any]:
    return ctx.ensure_object(dict)


def get_node(ctx: typer.Context):
    """Build (once per invocation) the node the command operates on."""
    from ..clock import ManualClock, SystemClock
    from ..config import load
    from ..node import build_node

    st = _state(ctx)
    node = st.get("node")
    if node is None:
        cfg = load()
        if st.get("db"):
            cfg.storage.db_path = st["db"]
        clock = ManualClock(st["now"]) if st.get("now") is not None else SystemClock()
        node = build_node(cfg, clock=clock)
        st["node"] = node
        ctx.call_on_close(node.close)
    return node


def get_app() -> typer.Typer:
    """Build and return the root Typer application for the QPC CLI."""
    from . import admin, jobs

    app = typer.Typer(
        add_completion=False,
        no_args_is_help=True,
        help="QPC CLI: submit confidential jobs, drive the oracle round trip, manage refunds.",
    )

    @app.callback(invoke_without_command=True)
    def _root_callback(
        ctx: typer.Context,
        db: Optional[str] = typer.Option(None, "--db", help="State DB path or sqlite:/// URL (overrides QPC_DB)."),
        now: Optional[float] = typer.Option(None, "--now", help="Pin the host clock to this UNIX time."),
        log_level: str = typer.Option(
            os.getenv("QPC_LOG_LEVEL", "WARNING"), "--log-level", help="Python logging level."
        ),
        version: bool = typer.Option(False, "--version", help="Print version and exit.", is_eager=True),
    ):
        if version:
            typer.echo(__version__)
            raise typer.Exit(0)
        if ctx.invoked_subcommand is None:
            typer.echo(ctx.get_help())
            raise typer.Exit(0)
        logging.basicConfig(level=getattr(logging, log_level.upper(), logging.WARNING))
        st = _state(ctx)
        st["db"] = db
        st["now"] = now

    jobs.register(app)
    admin.register(app)
    return app


def main() -> None:
    """Console entrypoint (`qpc`). Allows `python -m qpc.cli`."""
    get_app()()


if __name__ == "__main__":  # pragma: no cover
    main()

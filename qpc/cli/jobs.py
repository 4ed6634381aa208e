from __future__ import annotations

"""
qpc.cli.jobs
------------

Job lifecycle commands: submit, execute, request-decrypt, oracle-pending,
oracle-fulfill, refund, claim, balance, job, history, events, reveal.

Examples
--------
qpc --db qpc.db submit --as alice --value 42 --algorithm 0 --deposit 1000000
qpc --db qpc.db execute 1 --as worker-1
qpc --db qpc.db request-decrypt 1 --as alice
qpc --db qpc.db oracle-fulfill --all
qpc --db qpc.db --now 1900000000 refund 1 --as alice
qpc --db qpc.db claim --as alice
"""

import json
from typing import Any, Callable, Dict, List, Optional

import typer

from ..errors import QPCError
from ..rpc.methods import event_view, job_view
from . import get_node


def emit(obj: Any, json_out: bool = True) -> None:
    if json_out:
        typer.echo(json.dumps(obj, indent=2, sort_keys=True, default=str))
        return
    if isinstance(obj, dict):
        for k, v in obj.items():
            typer.echo(f"- {k}: {v}")
    else:
        typer.echo(str(obj))


def run(fn: Callable[[], Any], json_out: bool = True) -> None:
    """Execute a command body; domain errors become exit code 1 with the error JSON on stderr."""
    try:
        emit(fn(), json_out)
    except QPCError as e:
        typer.echo(json.dumps(e.to_dict(), sort_keys=True), err=True)
        raise typer.Exit(1) from e


def register(app: typer.Typer) -> None:

    @app.command("submit")
    def submit(
        ctx: typer.Context,
        principal: str = typer.Option(..., "--as", help="Depositor principal."),
        value: Optional[int] = typer.Option(None, "--value", help="Plaintext input; sealed client-side."),
        handle: Optional[str] = typer.Option(None, "--handle", help="Pre-sealed ciphertext handle (0x…)."),
        algorithm: str = typer.Option("0", "--algorithm", help="Algorithm tag 0..5 or name (shor, grover, …)."),
        deposit: Optional[int] = typer.Option(None, "--deposit", help="Deposit in base units (default: minimum fee)."),
        json_out: bool = typer.Option(True, "--json/--plain"),
    ):
        """Submit a job with an encrypted input."""
        node = get_node(ctx)
        if (value is None) == (handle is None):
            typer.echo("exactly one of --value or --handle is required", err=True)
            raise typer.Exit(2)

        def body() -> Dict[str, Any]:
            h = handle if handle is not None else node.encrypt(int(value), owner=principal)
            amount = deposit if deposit is not None else node.config.fees.minimum_fee
            job_id = node.engine.submit_job(principal, h, algorithm, amount)
            return {"jobId": job_id, "status": node.engine.get_job_status(job_id).value}

        run(body, json_out)

    @app.command("execute")
    def execute(
        ctx: typer.Context,
        job_id: int = typer.Argument(..., help="Job id."),
        principal: str = typer.Option(..., "--as", help="Worker or operator principal."),
        json_out: bool = typer.Option(True, "--json/--plain"),
    ):
        """Execute a submitted job as an authorized worker."""
        node = get_node(ctx)
        run(lambda: {"jobId": job_id, "status": node.engine.execute_job(job_id, principal).value}, json_out)

    @app.command("request-decrypt")
    def request_decrypt(
        ctx: typer.Context,
        job_id: int = typer.Argument(..., help="Job id."),
        principal: str = typer.Option(..., "--as", help="Depositor principal."),
        json_out: bool = typer.Option(True, "--json/--plain"),
    ):
        """Ask the decryption oracle to disclose a job result."""
        node = get_node(ctx)

        def body() -> Dict[str, Any]:
            rid = node.engine.request_decryption(job_id, principal)
            return {"jobId": job_id, "requestId": rid, "status": node.engine.get_job_status(job_id).value}

        run(body, json_out)

    @app.command("oracle-pending")
    def oracle_pending(ctx: typer.Context):
        """List oracle requests awaiting fulfilment."""
        node = get_node(ctx)
        run(lambda: {"pending": node.oracle.pending()})

    @app.command("oracle-fulfill")
    def oracle_fulfill(
        ctx: typer.Context,
        request_id: Optional[int] = typer.Argument(None, help="Request id (omit with --all)."),
        all_: bool = typer.Option(False, "--all", help="Fulfil every pending request."),
    ):
        """Act as the decryption oracle: decrypt and deliver callbacks."""
        node = get_node(ctx)
        if request_id is None and not all_:
            typer.echo("give a request id or --all", err=True)
            raise typer.Exit(2)

        def outcome(value: Any) -> Optional[str]:
            return getattr(value, "value", None) if value is not None else "refused"

        def body() -> Dict[str, Any]:
            if all_:
                pending: List[int] = [r["request_id"] for r in node.oracle.pending()]
                return {"results": {str(rid): outcome(node.oracle.fulfill(rid)) for rid in pending}}
            return {"requestId": request_id, "outcome": outcome(node.oracle.fulfill(request_id))}

        run(body)

    @app.command("refund")
    def refund(
        ctx: typer.Context,
        job_id: int = typer.Argument(..., help="Job id."),
        principal: str = typer.Option(..., "--as", help="Depositor principal."),
    ):
        """Request a manual refund for an expired job."""
        node = get_node(ctx)
        run(lambda: {"jobId": job_id, "amount": node.engine.request_manual_refund(job_id, principal),
                     "status": node.engine.get_job_status(job_id).value})

    @app.command("claim")
    def claim(
        ctx: typer.Context,
        principal: str = typer.Option(..., "--as", help="Depositor principal."),
    ):
        """Withdraw the pending refund balance."""
        node = get_node(ctx)
        run(lambda: {"depositor": principal, "amount": node.refunds.claim(principal)})

    @app.command("balance")
    def balance(ctx: typer.Context, depositor: str = typer.Argument(...)):
        """Show a depositor's pending refund balance."""
        node = get_node(ctx)
        run(lambda: {"depositor": depositor, "amount": node.refunds.pending(depositor)})

    @app.command("job")
    def job(
        ctx: typer.Context,
        job_id: int = typer.Argument(...),
        principal: Optional[str] = typer.Option(None, "--as", help="Viewer; the depositor also sees the plaintext."),
    ):
        """Show a job record."""
        node = get_node(ctx)
        run(lambda: job_view(node.engine.get_job(job_id), principal))

    @app.command("history")
    def history(ctx: typer.Context, depositor: str = typer.Argument(...)):
        """List a depositor's job ids in submission order."""
        node = get_node(ctx)
        run(lambda: {"depositor": depositor, "jobIds": node.engine.get_job_history(depositor)})

    @app.command("events")
    def events(
        ctx: typer.Context,
        job_id: Optional[int] = typer.Option(None, "--job", help="Only events for this job."),
        limit: int = typer.Option(100, "--limit", min=1),
    ):
        """Print the audit log."""
        node = get_node(ctx)
        run(lambda: {"items": [event_view(ev) for ev in node.engine.list_events(job_id, limit=limit)]})

    @app.command("reveal")
    def reveal(
        ctx: typer.Context,
        handle: str = typer.Argument(..., help="Ciphertext handle."),
        principal: str = typer.Option(..., "--as", help="Principal holding the decrypt capability."),
    ):
        """Decrypt a handle for a principal that holds its capability."""
        node = get_node(ctx)
        if not node.ctx.acl.allowed(handle, principal):
            typer.echo(f"{principal} holds no decrypt capability for this handle", err=True)
            raise typer.Exit(1)
        run(lambda: {"value": node.ctx.fhe.decrypt(handle)})


__all__ = ["register", "emit", "run"]

from __future__ import annotations

"""
qpc.cli.admin
-------------

Registry, privacy-transform, circuit and config commands:

qpc workers list
qpc workers add worker-3 --as owner
qpc price obfuscate 7 100 --as alice
qpc price recover 7 --as alice
qpc divide 200 7 --as alice
qpc state init 128 128 0 0 --qubits 2 --as alice
qpc circuit compile 1 --gate 1:0:0 --gate 2:1:0 --as alice
qpc config
"""

from typing import List

import typer

from ..config import pretty
from . import get_node
from .jobs import run


def _parse_gate(raw: str):
    parts = raw.split(":")
    if len(parts) != 3:
        raise typer.BadParameter(f"gate must be TYPE:TARGET:CONTROL (got {raw!r})")
    try:
        return tuple(int(p) for p in parts)
    except ValueError:
        raise typer.BadParameter(f"gate fields must be integers (got {raw!r})") from None


def register(app: typer.Typer) -> None:
    workers = typer.Typer(help="Access registry administration.", no_args_is_help=True)
    price = typer.Typer(help="Obfuscated price storage.", no_args_is_help=True)
    state = typer.Typer(help="Quantum state registry.", no_args_is_help=True)
    circuit = typer.Typer(help="Circuit descriptors.", no_args_is_help=True)

    # -- workers --

    @workers.command("list")
    def workers_list(ctx: typer.Context):
        node = get_node(ctx)
        run(lambda: {"workers": node.registry.workers(), "operators": node.registry.operators()})

    @workers.command("add")
    def workers_add(ctx: typer.Context, worker: str = typer.Argument(...),
                    principal: str = typer.Option(..., "--as", help="Operator principal.")):
        node = get_node(ctx)
        run(lambda: {"worker": worker, "added": node.registry.add_worker(worker, principal)})

    @workers.command("remove")
    def workers_remove(ctx: typer.Context, worker: str = typer.Argument(...),
                       principal: str = typer.Option(..., "--as", help="Operator principal.")):
        node = get_node(ctx)
        run(lambda: {"worker": worker, "removed": node.registry.remove_worker(worker, principal)})

    # -- privacy --

    @price.command("obfuscate")
    def price_obfuscate(ctx: typer.Context, price_id: int = typer.Argument(...), value: int = typer.Argument(...),
                        principal: str = typer.Option(..., "--as")):
        node = get_node(ctx)
        run(lambda: {"priceId": price_id, "handle": node.privacy.obfuscate_price(value, price_id, principal).handle})

    @price.command("recover")
    def price_recover(ctx: typer.Context, price_id: int = typer.Argument(...),
                      principal: str = typer.Option(..., "--as")):
        node = get_node(ctx)
        run(lambda: {"priceId": price_id, "handle": node.privacy.deobfuscate_price(price_id, principal).handle})

    @app.command("divide")
    def divide(ctx: typer.Context, numerator: int = typer.Argument(...), denominator: int = typer.Argument(...),
               principal: str = typer.Option(..., "--as")):
        """Obfuscated division; prints the result handle."""
        node = get_node(ctx)
        run(lambda: {"handle": node.privacy.obfuscated_divide(numerator, denominator, principal).handle})

    # -- quantum states & circuits --

    @state.command("init")
    def state_init(ctx: typer.Context, amplitudes: List[int] = typer.Argument(...),
                   qubits: int = typer.Option(..., "--qubits"),
                   principal: str = typer.Option(..., "--as")):
        node = get_node(ctx)
        run(lambda: node.circuits.initialize_state(principal, amplitudes, qubits).to_dict())

    @state.command("show")
    def state_show(ctx: typer.Context, owner: str = typer.Argument(...)):
        node = get_node(ctx)
        run(lambda: node.circuits.state_info(owner).to_dict())

    @state.command("entangle")
    def state_entangle(ctx: typer.Context, partner: str = typer.Argument(...),
                       principal: str = typer.Option(..., "--as")):
        node = get_node(ctx)

        def body():
            node.circuits.create_entanglement(principal, partner)
            return {"owner": principal, "partner": partner}

        run(body)

    @circuit.command("compile")
    def circuit_compile(ctx: typer.Context, circuit_id: int = typer.Argument(...),
                        gate: List[str] = typer.Option(..., "--gate", help="TYPE:TARGET:CONTROL, repeatable."),
                        principal: str = typer.Option(..., "--as")):
        node = get_node(ctx)
        parsed = [_parse_gate(g) for g in gate]
        run(lambda: {"circuitId": circuit_id, "gates": node.circuits.compile_circuit(
            principal, circuit_id,
            [g[0] for g in parsed], [g[1] for g in parsed], [g[2] for g in parsed],
        )})

    @app.command("config")
    def config_cmd(ctx: typer.Context):
        """Print the effective configuration."""
        node = get_node(ctx)
        typer.echo(pretty(node.config))

    app.add_typer(workers, name="workers")
    app.add_typer(price, name="price")
    app.add_typer(state, name="state")
    app.add_typer(circuit, name="circuit")


__all__ = ["register"]

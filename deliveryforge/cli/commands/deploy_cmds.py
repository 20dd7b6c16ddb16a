"""``deliveryforge deploy enable|disable|status`` — the deployment freeze commands.

State lives in the file-backed freeze store at ``freeze_store_path`` so it
is shared with ``deliveryforge run``.
"""

from __future__ import annotations

from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from deliveryforge.cli.commands.common import build_machine
from deliveryforge.config import DeliveryConfig
from deliveryforge.core.freeze_gate import FileDeploymentStatusStore
from deliveryforge.packs.freeze import DISABLE_DEPLOY, ENABLE_DEPLOY, IS_DEPLOY_ENABLED

console = Console()

deploy_app = typer.Typer(
    name="deploy",
    help="Freeze or unfreeze production deployment per team.",
    no_args_is_help=True,
)


@deploy_app.command(name="enable", help="Lift the deployment freeze for a scope.")
def enable_cmd(scope: str = typer.Argument(..., help="Scope (repository owner).")) -> None:
    machine = build_machine(DeliveryConfig())
    console.print(f"[green]{machine.run_command(ENABLE_DEPLOY, scope)}[/green]")


@deploy_app.command(name="disable", help="Freeze deployment for a scope.")
def disable_cmd(scope: str = typer.Argument(..., help="Scope (repository owner).")) -> None:
    machine = build_machine(DeliveryConfig())
    console.print(f"[yellow]{machine.run_command(DISABLE_DEPLOY, scope)}[/yellow]")


@deploy_app.command(name="status", help="Show whether deployment is enabled.")
def status_cmd(
    scope: Optional[str] = typer.Argument(None, help="Scope to check; omit to list all."),
) -> None:
    config = DeliveryConfig()
    if scope is not None:
        enabled = build_machine(config).run_command(IS_DEPLOY_ENABLED, scope)
        state = "[green]enabled[/green]" if enabled else "[bold red]frozen[/bold red]"
        console.print(f"Deployment for [cyan]{scope}[/cyan] is {state}")
        return

    scopes = FileDeploymentStatusStore(config.freeze_store_path).scopes()
    if not scopes:
        console.print("[dim]No scopes recorded; deployment is enabled everywhere.[/dim]")
        return

    table = Table(title="Deployment status")
    table.add_column("Scope", style="cyan")
    table.add_column("State", justify="center")
    for name, frozen in sorted(scopes.items()):
        table.add_row(name, "[bold red]frozen[/bold red]" if frozen else "[green]enabled[/green]")
    console.print(table)

"""``deliveryforge packs`` — list the extension packs the machine registers."""

from __future__ import annotations

from rich.console import Console
from rich.table import Table

from deliveryforge.cli.commands.common import build_machine
from deliveryforge.config import DeliveryConfig

console = Console()


def packs_cmd() -> None:
    """List registered extension packs and what each contributes."""
    machine = build_machine(DeliveryConfig())
    packs = machine.packs.packs
    if not packs:
        console.print("[dim]No extension packs registered.[/dim]")
        return

    table = Table(title=f"Extension packs of {machine.name}")
    table.add_column("Name", style="cyan")
    table.add_column("Version", style="green")
    table.add_column("Provides")
    table.add_column("Description")

    for pack in packs:
        provides = [
            f"{len(values)} {label}"
            for label, values in (
                ("contributor(s)", pack.contributors),
                ("deploy rule(s)", pack.deploy_rules),
                ("predicate(s)", pack.predicates),
                ("goal handler(s)", pack.goal_handlers),
                ("inspection(s)", pack.inspections),
                ("artifact listener(s)", pack.artifact_listeners),
                ("push reaction(s)", pack.push_reactions),
                ("command(s)", pack.commands),
            )
            if values
        ]
        table.add_row(pack.name, pack.version, ", ".join(provides) or "-", pack.description)

    console.print(table)

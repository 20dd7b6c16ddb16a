"""Main Typer application — imports and registers all CLI commands.

Entry point: ``deliveryforge`` (configured via pyproject.toml scripts).
"""

from __future__ import annotations

import logging

import typer

from deliveryforge.cli.commands.deploy_cmds import deploy_app
from deliveryforge.cli.commands.packs_cmd import packs_cmd
from deliveryforge.cli.commands.push_cmds import dispose_cmd, plan_cmd, run_cmd
from deliveryforge.config import DeliveryConfig

app = typer.Typer(
    name="deliveryforge",
    help="Deliveryforge: goal-driven delivery and deployment for pushes.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)


@app.callback()
def main_callback() -> None:
    """Configure logging from DELIVERYFORGE_LOG_LEVEL."""
    level = DeliveryConfig().log_level.upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# Register subcommands
app.command(name="plan", help="Show the goal set for a push.")(plan_cmd)
app.command(name="run", help="Resolve and execute the goal set for a push.")(run_cmd)
app.command(name="dispose", help="Undeploy a repository everywhere.")(dispose_cmd)
app.command(name="packs", help="List registered extension packs.")(packs_cmd)
app.add_typer(deploy_app, name="deploy")


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()

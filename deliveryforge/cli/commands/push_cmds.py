"""``deliveryforge plan|run|dispose OWNER REPO`` — resolve and execute goals for a push.

Pushes are described on the command line; builds and deployments are
simulated so the goal flow can be exercised without external tooling.
"""

from __future__ import annotations

from typing import Optional

import typer
from rich.console import Console

from deliveryforge.cli.commands.common import build_machine, make_push
from deliveryforge.config import DeliveryConfig
from deliveryforge.core.errors import ConfigurationError
from deliveryforge.models.push import PushDescription
from deliveryforge.monitor.renderer import GoalRenderer

console = Console()

_OWNER = typer.Argument(..., help="Repository owner (the freeze scope).")
_REPO = typer.Argument(..., help="Repository name.")
_BRANCH = typer.Option("main", "--branch", "-b", help="Branch the push landed on.")
DEFAULT_SHA = "0" * 40

_SHA = typer.Option(DEFAULT_SHA, "--sha", help="Commit SHA.")
_DEFAULT_BRANCH = typer.Option("main", "--default-branch", help="Repository default branch.")
_MAVEN = typer.Option(False, "--maven", help="The project builds with Maven.")
_NODE = typer.Option(False, "--node", help="The project builds with npm.")
_CF_MANIFEST = typer.Option(False, "--cf-manifest", help="A Cloud Foundry manifest is present.")
_SPRING_BOOT = typer.Option(False, "--spring-boot", help="A Spring Boot application class is present.")
_ADDED_CF_MANIFEST = typer.Option(
    False, "--added-cf-manifest", help="This push added the Cloud Foundry manifest."
)
_FLAGS = typer.Option(None, "--flag", "-f", help="Set a free-form push flag (repeatable).")
_STAGING = typer.Option(
    None, "--staging/--no-staging", help="Override whether staging goals are contributed."
)


def _config(staging: Optional[bool]) -> DeliveryConfig:
    config = DeliveryConfig()
    if staging is not None:
        config = config.model_copy(update={"staging_enabled": staging})
    return config


def _push(
    owner: str,
    repo: str,
    branch: str,
    sha: str,
    default_branch: str,
    maven: bool,
    node: bool,
    cf_manifest: bool,
    spring_boot: bool,
    added_cf_manifest: bool,
    flags: Optional[list[str]],
) -> PushDescription:
    return make_push(
        owner,
        repo,
        branch=branch,
        sha=sha,
        default_branch=default_branch,
        maven=maven,
        node=node,
        cf_manifest=cf_manifest,
        spring_boot=spring_boot,
        added_cf_manifest=added_cf_manifest,
        flags=flags or [],
    )


def plan_cmd(
    owner: str = _OWNER,
    repo: str = _REPO,
    branch: str = _BRANCH,
    sha: str = _SHA,
    default_branch: str = _DEFAULT_BRANCH,
    maven: bool = _MAVEN,
    node: bool = _NODE,
    cf_manifest: bool = _CF_MANIFEST,
    spring_boot: bool = _SPRING_BOOT,
    added_cf_manifest: bool = _ADDED_CF_MANIFEST,
    flags: Optional[list[str]] = _FLAGS,
    staging: Optional[bool] = _STAGING,
) -> None:
    """Show the goal set the machine would run for a push."""
    push = _push(
        owner, repo, branch, sha, default_branch, maven, node,
        cf_manifest, spring_boot, added_cf_manifest, flags,
    )
    try:
        machine = build_machine(_config(staging))
        goal_set = machine.plan(push)
    except ConfigurationError as exc:
        console.print(f"[bold red]Configuration error:[/bold red] {exc}")
        raise typer.Exit(code=2)

    GoalRenderer(console=console).print_goal_set(goal_set, push)


def run_cmd(
    owner: str = _OWNER,
    repo: str = _REPO,
    branch: str = _BRANCH,
    sha: str = _SHA,
    default_branch: str = _DEFAULT_BRANCH,
    maven: bool = _MAVEN,
    node: bool = _NODE,
    cf_manifest: bool = _CF_MANIFEST,
    spring_boot: bool = _SPRING_BOOT,
    added_cf_manifest: bool = _ADDED_CF_MANIFEST,
    flags: Optional[list[str]] = _FLAGS,
    staging: Optional[bool] = _STAGING,
    fail_deploy: bool = typer.Option(
        False, "--fail-deploy", help="Make every simulated deploy fail."
    ),
) -> None:
    """Resolve and execute the goal set for a push with simulated deployers.

    Exits with code 1 when any goal failed.
    """
    push = _push(
        owner, repo, branch, sha, default_branch, maven, node,
        cf_manifest, spring_boot, added_cf_manifest, flags,
    )
    try:
        machine = build_machine(_config(staging), fail_deploy=fail_deploy)
        goal_set = machine.plan(push)
    except ConfigurationError as exc:
        console.print(f"[bold red]Configuration error:[/bold red] {exc}")
        raise typer.Exit(code=2)

    renderer = GoalRenderer(console=console)
    renderer.print_goal_set(goal_set, push)
    report = machine.run(push, goal_set)
    renderer.print_report(report)
    if report.failed:
        raise typer.Exit(code=1)


def dispose_cmd(
    owner: str = _OWNER,
    repo: str = _REPO,
    maven: bool = _MAVEN,
    cf_manifest: bool = _CF_MANIFEST,
    spring_boot: bool = _SPRING_BOOT,
) -> None:
    """Undeploy a repository everywhere and mark it for deletion."""
    push = _push(owner, repo, "main", DEFAULT_SHA, "main", maven, False,
                 cf_manifest, spring_boot, False, [])
    try:
        machine = build_machine(DeliveryConfig())
        goal_set = machine.resolve_disposal(push)
    except ConfigurationError as exc:
        console.print(f"[bold red]Configuration error:[/bold red] {exc}")
        raise typer.Exit(code=2)

    renderer = GoalRenderer(console=console)
    renderer.print_goal_set(goal_set, push)
    report = machine.run(push, goal_set)
    renderer.print_report(report)
    if report.failed:
        raise typer.Exit(code=1)

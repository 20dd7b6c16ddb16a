"""Shared CLI wiring — simulated machine and push construction."""

from __future__ import annotations

from pathlib import Path

from deliveryforge.config import DeliveryConfig
from deliveryforge.core.capabilities import (
    AlwaysHealthyVerifier,
    ManagedDeploymentTargeter,
    SimulatedBuilder,
    SimulatedDeployer,
)
from deliveryforge.core.freeze_gate import FileDeploymentStatusStore
from deliveryforge.core.machine import SoftwareDeliveryMachine
from deliveryforge.machines.additive_cloud_foundry import additive_cloud_foundry_machine
from deliveryforge.models.deploy import DeploySpec
from deliveryforge.models.push import PushDescription
from deliveryforge.routing.dispatcher import ChannelDispatcher
from deliveryforge.routing.sinks import LocalFileSink, LoggingSink


def build_machine(
    config: DeliveryConfig, *, fail_deploy: bool = False
) -> SoftwareDeliveryMachine:
    """The Cloud Foundry machine with simulated builder and deployers.

    Freeze state lives in the file store so separate invocations share it;
    channel messages go to the log and to JSON lines under ``events_path``.
    """
    dispatcher = ChannelDispatcher()
    dispatcher.register_sink(LoggingSink())
    dispatcher.register_sink(LocalFileSink(config.events_path))

    verifier = AlwaysHealthyVerifier()
    return additive_cloud_foundry_machine(
        config,
        builder=SimulatedBuilder(),
        staging_spec=DeploySpec(
            deployer=SimulatedDeployer(fail_deploy=fail_deploy),
            targeter=ManagedDeploymentTargeter(environment="staging"),
            verifier=verifier,
        ),
        production_spec=DeploySpec(
            deployer=SimulatedDeployer(fail_deploy=fail_deploy),
            targeter=ManagedDeploymentTargeter(environment="production", base_port=8443),
            verifier=verifier,
        ),
        store=FileDeploymentStatusStore(config.freeze_store_path),
        dispatcher=dispatcher,
        default_verifier=verifier,
    )


def make_push(
    owner: str,
    repo: str,
    *,
    branch: str,
    sha: str,
    default_branch: str,
    maven: bool,
    node: bool,
    cf_manifest: bool,
    spring_boot: bool,
    added_cf_manifest: bool,
    flags: list[str],
    cwd: Path | None = None,
) -> PushDescription:
    return PushDescription(
        owner=owner,
        repo=repo,
        branch=branch,
        sha=sha,
        default_branch=default_branch,
        is_maven=maven,
        is_node=node,
        has_cloud_foundry_manifest=cf_manifest,
        has_spring_boot_application_class=spring_boot,
        added_cloud_foundry_manifest=added_cf_manifest,
        flags={name: True for name in flags},
        cwd=cwd,
    )

"""Cloud Foundry delivery machine wired with additive goal contributors.

Each contributor adds goals; the resolver assembles them into one goal set
per push.  Staging runs on locally managed executable jars, production on
Cloud Foundry.  Both deployers are injected by the caller.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from deliveryforge.config import DeliveryConfig
from deliveryforge.core.capabilities import (
    Builder,
    EndpointVerifier,
    ManagedDeploymentTargeter,
    look_for_200_on_endpoint_root_get,
)
from deliveryforge.core.freeze_gate import DeploymentStatusStore, InMemoryDeploymentStatusStore
from deliveryforge.core.machine import SoftwareDeliveryMachine
from deliveryforge.models.deploy import DeployRule, DeploySpec, deploy_when
from deliveryforge.models.goals import (
    ArtifactGoal,
    BuildGoal,
    ChecksGoal,
    ExplainDeploymentFreezeGoal,
    GoalContributor,
    LocalDeploymentGoal,
    LocalEndpointGoal,
    LocalUndeploymentGoal,
    ProductionDeploymentGoal,
    ProductionEndpointGoal,
    ProductionUndeploymentGoal,
    PushReactionGoal,
    RepositoryDeletionGoals,
    ReviewGoal,
    StagingDeploymentGoal,
    StagingEndpointGoal,
    StagingUndeploymentGoal,
    StagingVerifiedGoal,
    UndeployEverywhereGoals,
    on_any_push,
    when_push_satisfies,
)
from deliveryforge.models.push_tests import (
    AnyPush,
    HasCloudFoundryManifest,
    HasSpringBootApplicationClass,
    IsDeploymentFrozen,
    IsMaven,
    IsNode,
    ToDefaultBranch,
    any_of,
    not_,
)
from deliveryforge.packs.cloud_foundry import CloudFoundrySupport
from deliveryforge.packs.cloud_readiness import CloudReadinessChecks
from deliveryforge.packs.freeze import deployment_freeze
from deliveryforge.packs.owasp import owasp_dependency_check
from deliveryforge.packs.registry import ExtensionPack
from deliveryforge.routing.dispatcher import ChannelDispatcher
from deliveryforge.routing.sinks import LoggingSink

logger = logging.getLogger(__name__)

MACHINE_NAME = "CloudFoundry software delivery machine"


def goal_contributors(*, staging_enabled: bool = True) -> list[GoalContributor]:
    """Contributors in registration order.

    With ``staging_enabled=False`` the staging contributor is left out and
    production deploys straight from the artifact.
    """
    contributors = [
        on_any_push().set_goals(ChecksGoal, ReviewGoal, PushReactionGoal, label="Checks"),
        when_push_satisfies(IsDeploymentFrozen).set_goals(ExplainDeploymentFreezeGoal),
        when_push_satisfies(any_of(IsMaven, IsNode)).set_goals(BuildGoal),
        when_push_satisfies(HasSpringBootApplicationClass, not_(ToDefaultBranch)).set_goals(
            LocalDeploymentGoal
        ),
    ]
    if staging_enabled:
        contributors.append(
            when_push_satisfies(HasCloudFoundryManifest, ToDefaultBranch).set_goals(
                ArtifactGoal,
                StagingDeploymentGoal,
                StagingEndpointGoal,
                StagingVerifiedGoal,
            )
        )
    contributors.append(
        when_push_satisfies(
            HasCloudFoundryManifest, not_(IsDeploymentFrozen), ToDefaultBranch
        ).set_goals(ArtifactGoal, ProductionDeploymentGoal, ProductionEndpointGoal)
    )
    return contributors


def disposal_rules() -> list[GoalContributor]:
    return [
        when_push_satisfies(IsMaven, HasSpringBootApplicationClass, HasCloudFoundryManifest)
        .it_means("Java project to undeploy from PCF")
        .set_goals(*UndeployEverywhereGoals),
        when_push_satisfies(AnyPush)
        .it_means("We can always delete the repo")
        .set_goals(*RepositoryDeletionGoals),
    ]


def deploy_rules(
    *, local_spec: DeploySpec, staging_spec: DeploySpec, production_spec: DeploySpec
) -> list[DeployRule]:
    return [
        deploy_when(HasSpringBootApplicationClass)
        .deploy_to(LocalDeploymentGoal, LocalEndpointGoal, LocalUndeploymentGoal)
        .using(local_spec, name="local executable jar"),
        deploy_when(IsMaven)
        .deploy_to(StagingDeploymentGoal, StagingEndpointGoal, StagingUndeploymentGoal)
        .using(staging_spec, name="staging executable jar"),
        deploy_when(IsMaven)
        .deploy_to(ProductionDeploymentGoal, ProductionEndpointGoal, ProductionUndeploymentGoal)
        .using(production_spec, name="Cloud Foundry production"),
    ]


def additive_cloud_foundry_machine(
    config: DeliveryConfig | None = None,
    *,
    builder: Builder,
    staging_spec: DeploySpec,
    production_spec: DeploySpec,
    local_spec: DeploySpec | None = None,
    store: DeploymentStatusStore | None = None,
    dispatcher: ChannelDispatcher | None = None,
    default_verifier: EndpointVerifier | None = None,
    extra_packs: Iterable[ExtensionPack] = (),
    max_polls: int | None = None,
) -> SoftwareDeliveryMachine:
    """Assemble the Cloud Foundry machine.

    Parameters
    ----------
    config:
        Runtime configuration; defaults are read from the environment.
    builder:
        Default build rule, used for every BUILD goal.
    staging_spec:
        Deployer/targeter for staging (locally managed executable jars).
    production_spec:
        Deployer/targeter for production (Cloud Foundry).
    local_spec:
        Deployer/targeter for feature-branch local deployments.  Defaults to
        the staging deployer with its own port range.
    store:
        Freeze store shared by the freeze pack and its commands.
    dispatcher:
        Channel dispatcher.  Defaults to one with a ``LoggingSink``.
    default_verifier:
        Endpoint verifier for specs without one.  Defaults to looking for
        HTTP 200 on a GET of the endpoint root.
    extra_packs:
        Further extension packs registered after the built-in ones.
    max_polls:
        Optional cap on endpoint probes.
    """
    config = config or DeliveryConfig()
    store = store or InMemoryDeploymentStatusStore()
    if dispatcher is None:
        dispatcher = ChannelDispatcher()
        dispatcher.register_sink(LoggingSink())
    if local_spec is None:
        local_spec = DeploySpec(
            deployer=staging_spec.deployer,
            targeter=ManagedDeploymentTargeter(environment="local", base_port=9080),
            verifier=staging_spec.verifier,
        )

    packs = [deployment_freeze(store), CloudReadinessChecks, CloudFoundrySupport]
    if config.dependency_check_enabled:
        packs.append(owasp_dependency_check(config.dependency_check_command))
    packs.extend(extra_packs)

    if not config.staging_enabled:
        logger.info("Staging disabled: production deploys straight from the artifact")

    return SoftwareDeliveryMachine(
        MACHINE_NAME,
        contributors=goal_contributors(staging_enabled=config.staging_enabled),
        builder=builder,
        deploy_rules=deploy_rules(
            local_spec=local_spec, staging_spec=staging_spec, production_spec=production_spec
        ),
        disposal_rules=disposal_rules(),
        packs=packs,
        store=store,
        dispatcher=dispatcher,
        default_verifier=default_verifier or look_for_200_on_endpoint_root_get(),
        config=config,
        max_polls=max_polls,
    )

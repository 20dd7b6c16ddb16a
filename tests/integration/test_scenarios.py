"""Integration tests — end-to-end pushes through the Cloud Foundry machine.

Builds and deployments use in-process doubles; everything between the
push and the deployer calls is the real machine.
"""

from __future__ import annotations

import pytest

from deliveryforge.core.capabilities import ManagedDeploymentTargeter
from deliveryforge.machines.additive_cloud_foundry import additive_cloud_foundry_machine
from deliveryforge.models.deploy import DeploySpec
from deliveryforge.models.goals import FailureKind, GoalState
from deliveryforge.models.routing import MessageLevel


@pytest.fixture
def make_machine(fast_config, builder, staging_spec, production_spec, store, dispatcher, healthy_verifier):
    """Factory fixture: the Cloud Foundry machine wired to test doubles."""

    def _factory(**overrides):
        kwargs = dict(
            builder=builder,
            staging_spec=staging_spec,
            production_spec=production_spec,
            store=store,
            dispatcher=dispatcher,
            default_verifier=healthy_verifier,
        )
        kwargs.update(overrides)
        config = kwargs.pop("config", fast_config)
        return additive_cloud_foundry_machine(config, **kwargs)

    return _factory


# ---------------------------------------------------------------------------
# Default branch pushes
# ---------------------------------------------------------------------------


class TestProductionDelivery:
    def test_cf_push_deploys_to_production(self, make_machine, cf_push, production_deployer):
        machine = make_machine()
        goal_set = machine.plan(cf_push)

        assert set(goal_set.names) == {
            "Checks",
            "Review",
            "PushReaction",
            "Build",
            "Artifact",
            "ProductionDeployment",
            "ProductionEndpoint",
        }
        assert goal_set.get("ProductionDeployment").depends_on == ("Artifact",)

        report = machine.run(cf_push, goal_set)
        assert report.all_succeeded, report.outcomes
        assert production_deployer.deploys == [("spring-rest-a1b2c3d.jar", "spring-rest-main")]

    def test_frozen_scope_explains_instead_of_deploying(
        self, make_machine, cf_push, store, production_deployer, memory_sink
    ):
        store.set_frozen("atomist", True)
        machine = make_machine()
        goal_set = machine.plan(cf_push)

        assert "ExplainDeploymentFreeze" in goal_set
        assert "ProductionDeployment" not in goal_set
        assert "ProductionEndpoint" not in goal_set

        report = machine.run(cf_push, goal_set)
        assert report.all_succeeded
        assert production_deployer.deploys == []
        warnings = [m for m in memory_sink.messages if m.level == MessageLevel.WARNING]
        assert any("frozen" in m.text for m in warnings)

    def test_freeze_applies_per_owner(self, make_machine, make_push, store):
        store.set_frozen("someone-else", True)
        push = make_push(is_maven=True, has_cloud_foundry_manifest=True)
        assert "ProductionDeployment" in make_machine().plan(push)

    def test_unhealthy_endpoint_times_out(
        self, make_machine, cf_push, production_deployer, make_verifier, memory_sink
    ):
        never_healthy = make_verifier(unhealthy_polls=None)
        spec = DeploySpec(
            deployer=production_deployer,
            targeter=ManagedDeploymentTargeter(environment="production"),
            verifier=never_healthy,
        )
        machine = make_machine(production_spec=spec, max_polls=3)
        report = machine.run(cf_push)

        assert report.state_of("ProductionDeployment") == GoalState.SUCCEEDED
        endpoint = report.outcome("ProductionEndpoint")
        assert endpoint.state == GoalState.FAILED
        assert endpoint.failure_kind == FailureKind.VERIFICATION_TIMEOUT
        assert never_healthy.calls == 3
        assert any(
            m.goal == "ProductionEndpoint" and m.level == MessageLevel.ERROR
            for m in memory_sink.messages
        )

    def test_deploy_failure_skips_verification(
        self, make_machine, cf_push, make_deployer, healthy_verifier
    ):
        spec = DeploySpec(
            deployer=make_deployer(fail_deploy=True),
            targeter=ManagedDeploymentTargeter(environment="production"),
            verifier=healthy_verifier,
        )
        report = make_machine(production_spec=spec).run(cf_push)

        assert report.outcome("ProductionDeployment").failure_kind == FailureKind.DEPLOY_FAILED
        assert report.state_of("ProductionEndpoint") == GoalState.SKIPPED
        assert report.state_of("Checks") == GoalState.SUCCEEDED
        assert report.state_of("Artifact") == GoalState.SUCCEEDED
        assert healthy_verifier.calls == 0


class TestStaging:
    def test_staging_precedes_production(
        self, make_machine, fast_config, cf_push, staging_deployer, production_deployer
    ):
        config = fast_config.model_copy(update={"staging_enabled": True})
        machine = make_machine(config=config)
        goal_set = machine.plan(cf_push)

        assert {"StagingDeployment", "StagingEndpoint", "StagingVerified"} <= set(goal_set.names)
        assert set(goal_set.get("ProductionDeployment").depends_on) == {
            "Artifact",
            "StagingVerified",
        }

        report = machine.run(cf_push, goal_set)
        assert report.all_succeeded, report.outcomes
        assert (
            report.outcome("StagingVerified").finished_at
            <= report.outcome("ProductionDeployment").started_at
        )
        assert len(staging_deployer.deploys) == 1
        assert len(production_deployer.deploys) == 1

    def test_staging_failure_blocks_production(
        self, make_machine, fast_config, cf_push, make_deployer, healthy_verifier, production_deployer
    ):
        config = fast_config.model_copy(update={"staging_enabled": True})
        spec = DeploySpec(
            deployer=make_deployer(fail_deploy=True),
            targeter=ManagedDeploymentTargeter(environment="staging"),
            verifier=healthy_verifier,
        )
        report = make_machine(config=config, staging_spec=spec).run(cf_push)

        assert report.state_of("StagingDeployment") == GoalState.FAILED
        assert report.state_of("ProductionDeployment") == GoalState.SKIPPED
        assert production_deployer.deploys == []


# ---------------------------------------------------------------------------
# Other pushes
# ---------------------------------------------------------------------------


class TestOtherPushes:
    def test_feature_branch_deploys_locally(self, make_machine, make_push, staging_deployer):
        push = make_push(
            branch="feature",
            is_maven=True,
            has_cloud_foundry_manifest=True,
            has_spring_boot_application_class=True,
        )
        machine = make_machine()
        goal_set = machine.plan(push)

        assert "LocalDeployment" in goal_set
        assert "ProductionDeployment" not in goal_set
        assert "Artifact" not in goal_set

        report = machine.run(push, goal_set)
        assert report.all_succeeded, report.outcomes
        assert staging_deployer.deploys == [("spring-rest-a1b2c3d.jar", "spring-rest-feature")]

    def test_push_without_build_tool_only_checks(self, make_machine, make_push):
        goal_set = make_machine().plan(make_push())
        assert goal_set.names == ["Checks", "Review", "PushReaction"]

    def test_added_manifest_triggers_push_reaction(self, make_machine, make_push, memory_sink):
        push = make_push(is_node=True, added_cloud_foundry_manifest=True)
        report = make_machine().run(push)
        assert report.all_succeeded
        assert any("Cloud Foundry manifest added" in text for text in memory_sink.texts)


# ---------------------------------------------------------------------------
# Disposal
# ---------------------------------------------------------------------------


class TestDisposal:
    def test_java_project_undeployed_everywhere(
        self, make_machine, cf_push, staging_deployer, production_deployer, memory_sink
    ):
        machine = make_machine()
        goal_set = machine.resolve_disposal(cf_push)
        assert goal_set.names == [
            "StagingUndeployment",
            "ProductionUndeployment",
            "DeleteRepository",
        ]

        report = machine.dispose(cf_push)
        assert report.all_succeeded
        assert staging_deployer.undeploys == ["spring-rest-main"]
        assert production_deployer.undeploys == ["spring-rest-main"]
        assert any("can be deleted" in text for text in memory_sink.texts)

    def test_other_projects_can_always_be_deleted(
        self, make_machine, make_push, staging_deployer, production_deployer
    ):
        report = make_machine().dispose(make_push())

        assert report.all_succeeded
        assert report.outcome("StagingUndeployment").detail == "Nothing to undeploy"
        assert staging_deployer.undeploys == []
        assert production_deployer.undeploys == []

"""Tests for the extension pack registry and the built-in packs."""

from __future__ import annotations

import subprocess
import threading

import pytest

from deliveryforge.core.errors import (
    ConfigurationError,
    DuplicateExtensionPackError,
    ExternalToolFailure,
    RegistrySealedError,
)
from deliveryforge.core.executor import GoalInvocation, RunContext
from deliveryforge.models.deploy import ArtifactRef
from deliveryforge.models.goals import (
    ArtifactGoal,
    BuildGoal,
    ExplainDeploymentFreezeGoal,
    GoalSet,
    PushReactionGoal,
    when_push_satisfies,
)
from deliveryforge.models.push_tests import IsMaven
from deliveryforge.models.routing import MessageLevel
from deliveryforge.packs.cloud_foundry import (
    CloudFoundrySupport,
    EnableDeployOnCloudFoundryManifestAddition,
)
from deliveryforge.packs.cloud_readiness import (
    HARD_CODED_IP_FLAG,
    SYSTEM_EXIT_FLAG,
    CloudReadinessChecks,
)
from deliveryforge.packs.freeze import (
    DISABLE_DEPLOY,
    ENABLE_DEPLOY,
    IS_DEPLOY_ENABLED,
    deployment_freeze,
)
from deliveryforge.packs.owasp import DependencyCheckListener, owasp_dependency_check
from deliveryforge.packs.registry import (
    ExtensionPack,
    ExtensionPackRegistry,
    ListenerInvocation,
)


def _call(goal, push, dispatcher, artifact=None) -> ListenerInvocation:
    invocation = GoalInvocation(
        goal=goal,
        goal_set=GoalSet(goals=(goal,)),
        push=push,
        context=RunContext(),
        set_cancelled=threading.Event(),
        goal_cancelled=threading.Event(),
    )
    return ListenerInvocation(invocation, dispatcher, artifact)


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class TestRegistry:
    def test_register_and_seal_in_order(self):
        registry = ExtensionPackRegistry()
        registry.register_all(ExtensionPack(name="a"), ExtensionPack(name="b"))
        assert registry.seal().pack_names == ["a", "b"]

    def test_duplicate_name_rejected(self):
        registry = ExtensionPackRegistry()
        registry.register(ExtensionPack(name="a"))
        with pytest.raises(DuplicateExtensionPackError):
            registry.register(ExtensionPack(name="a", version="2.0.0"))

    def test_duplicate_is_a_configuration_error(self):
        assert issubclass(DuplicateExtensionPackError, ConfigurationError)

    def test_sealed_registry_rejects_registration(self):
        registry = ExtensionPackRegistry()
        snapshot = registry.seal()
        assert registry.seal() is snapshot
        with pytest.raises(RegistrySealedError):
            registry.register(ExtensionPack(name="late"))

    def test_snapshot_flattens_in_registration_order(self):
        build = when_push_satisfies(IsMaven).set_goals(BuildGoal)
        artifact = when_push_satisfies(IsMaven).set_goals(ArtifactGoal)
        registry = ExtensionPackRegistry()
        registry.register_all(
            ExtensionPack(name="first", contributors=(build,)),
            ExtensionPack(name="second", contributors=(artifact,)),
        )
        snapshot = registry.seal()
        assert snapshot.pack_names == ["first", "second"]
        assert snapshot.contributors == (build, artifact)

    def test_overlapping_commands_rejected_at_seal(self):
        registry = ExtensionPackRegistry()
        registry.register_all(
            ExtensionPack(name="a", commands={"hello": lambda: "a"}),
            ExtensionPack(name="b", commands={"hello": lambda: "b"}),
        )
        with pytest.raises(ConfigurationError, match="hello"):
            registry.seal()


# ---------------------------------------------------------------------------
# Deployment freeze pack
# ---------------------------------------------------------------------------


class TestDeploymentFreezePack:
    def test_commands_bound_to_store(self, store):
        pack = deployment_freeze(store)
        pack.commands[DISABLE_DEPLOY]("atomist")
        assert store.is_frozen("atomist") is True
        assert pack.commands[IS_DEPLOY_ENABLED]("atomist") is False
        pack.commands[ENABLE_DEPLOY]("atomist")
        assert pack.commands[IS_DEPLOY_ENABLED]("atomist") is True

    def test_explanation_goal_notifies(self, store, dispatcher, memory_sink, make_push):
        pack = deployment_freeze(store)
        handler = pack.goal_handlers[ExplainDeploymentFreezeGoal.name]
        result = handler(_call(ExplainDeploymentFreezeGoal, make_push(), dispatcher))
        assert result == "Explained deployment freeze for atomist"
        [message] = memory_sink.messages
        assert message.level == MessageLevel.WARNING
        assert "frozen" in message.text
        assert message.goal == "ExplainDeploymentFreeze"


# ---------------------------------------------------------------------------
# Cloud readiness and Cloud Foundry packs
# ---------------------------------------------------------------------------


class TestCloudReadiness:
    def _inspection(self, name):
        return next(i for i in CloudReadinessChecks.inspections if i.name == name)

    def test_missing_manifest_flagged(self, make_push):
        inspect = self._inspection("Cloud Foundry manifest").inspect
        assert inspect(make_push(has_spring_boot_application_class=True))
        assert inspect(make_push(has_cloud_foundry_manifest=True)) == []

    def test_flags_drive_code_checks(self, make_push):
        ips = self._inspection("No hard-coded IP addresses").inspect
        exits = self._inspection("No System.exit").inspect
        assert ips(make_push()) == []
        assert len(ips(make_push(flags={HARD_CODED_IP_FLAG: True}))) == 1
        assert len(exits(make_push(flags={SYSTEM_EXIT_FLAG: True}))) == 1


class TestCloudFoundrySupport:
    def test_push_reaction_registered(self):
        assert CloudFoundrySupport.push_reactions == (EnableDeployOnCloudFoundryManifestAddition,)

    def test_push_reaction_announces(self, dispatcher, memory_sink, make_push):
        push = make_push(added_cloud_foundry_manifest=True)
        EnableDeployOnCloudFoundryManifestAddition.action(_call(PushReactionGoal, push, dispatcher))
        assert "Cloud Foundry manifest added to atomist/spring-rest" in memory_sink.texts[0]


# ---------------------------------------------------------------------------
# OWASP dependency check
# ---------------------------------------------------------------------------


class TestDependencyCheck:
    @pytest.fixture
    def artifact(self, tmp_path) -> ArtifactRef:
        return ArtifactRef(name="spring-rest", filename="spring-rest.jar", cwd=tmp_path)

    def test_command_line(self):
        listener = DependencyCheckListener("dependency-check --noupdate")
        assert listener.build_command("spring-rest", "app.jar") == [
            "dependency-check",
            "--noupdate",
            "--project",
            "spring-rest",
            "--out",
            ".",
            "--scan",
            "app.jar",
            "-f",
            "JSON",
        ]

    def test_success_notifies(self, monkeypatch, dispatcher, memory_sink, make_push, artifact):
        seen: dict = {}

        def fake_run(argv, **kwargs):
            seen["argv"] = argv
            seen["cwd"] = kwargs["cwd"]
            return subprocess.CompletedProcess(argv, 0, stdout="", stderr="")

        monkeypatch.setattr(subprocess, "run", fake_run)
        DependencyCheckListener()(_call(ArtifactGoal, make_push(), dispatcher, artifact))
        assert seen["cwd"] == artifact.cwd
        assert seen["argv"][0] == "dependency-check"
        assert memory_sink.texts == ["Dependency check success"]

    def test_nonzero_exit_raises(self, monkeypatch, dispatcher, make_push, artifact):
        monkeypatch.setattr(
            subprocess,
            "run",
            lambda argv, **kw: subprocess.CompletedProcess(argv, 3, stdout="", stderr="CVE found"),
        )
        with pytest.raises(ExternalToolFailure) as excinfo:
            DependencyCheckListener()(_call(ArtifactGoal, make_push(), dispatcher, artifact))
        assert excinfo.value.returncode == 3
        assert excinfo.value.output == "CVE found"

    def test_missing_tool_raises(self, monkeypatch, dispatcher, make_push, artifact):
        def missing(argv, **kwargs):
            raise FileNotFoundError("dependency-check")

        monkeypatch.setattr(subprocess, "run", missing)
        with pytest.raises(ExternalToolFailure, match="could not run"):
            DependencyCheckListener()(_call(ArtifactGoal, make_push(), dispatcher, artifact))

    def test_no_artifact_is_a_no_op(self, monkeypatch, dispatcher, make_push):
        def forbidden(argv, **kwargs):
            raise AssertionError("scanner must not run")

        monkeypatch.setattr(subprocess, "run", forbidden)
        DependencyCheckListener()(_call(ArtifactGoal, make_push(), dispatcher))

    def test_pack_gated_on_default_branch(self):
        [registration] = owasp_dependency_check().artifact_listeners
        assert registration.push_test.describe() == "ToDefaultBranch"

"""Shared test fixtures for Deliveryforge."""

from __future__ import annotations

import threading
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from deliveryforge.config import DeliveryConfig
from deliveryforge.core.capabilities import ManagedDeploymentTargeter, SimulatedBuilder
from deliveryforge.core.freeze_gate import InMemoryDeploymentStatusStore
from deliveryforge.core.push_test_evaluator import PushTestEvaluator
from deliveryforge.models.deploy import (
    ArtifactRef,
    DeploymentHandle,
    DeploymentTarget,
    DeploySpec,
)
from deliveryforge.models.push import PushDescription
from deliveryforge.routing.dispatcher import ChannelDispatcher
from deliveryforge.routing.sinks import MemorySink


# ---------------------------------------------------------------------------
# Test doubles for the external capabilities
# ---------------------------------------------------------------------------


class RecordingDeployer:
    """Deployer that records every call; optionally fails deploys."""

    def __init__(self, fail_deploy: bool = False) -> None:
        self.fail_deploy = fail_deploy
        self.deploys: list[tuple[str, str]] = []
        self.undeploys: list[str] = []
        self._lock = threading.Lock()

    def deploy(self, artifact: ArtifactRef, target: DeploymentTarget) -> DeploymentHandle:
        with self._lock:
            self.deploys.append((artifact.filename, target.name))
        if self.fail_deploy:
            raise RuntimeError("deployer exploded")
        return DeploymentHandle(
            target=target,
            endpoint=f"http://{target.options.get('host', 'localhost')}:{target.options.get('port', 8080)}",
            deployment_id=f"dep-{len(self.deploys)}",
        )

    def undeploy(self, target: DeploymentTarget) -> None:
        with self._lock:
            self.undeploys.append(target.name)


class ScriptedVerifier:
    """Verifier that reports unhealthy for the first ``unhealthy_polls`` probes.

    ``unhealthy_polls=None`` means never healthy.
    """

    def __init__(self, unhealthy_polls: int | None = 0) -> None:
        self.unhealthy_polls = unhealthy_polls
        self.calls = 0

    def verify(self, handle: DeploymentHandle) -> bool:
        self.calls += 1
        if self.unhealthy_polls is None:
            return False
        return self.calls > self.unhealthy_polls


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def make_push() -> Callable[..., PushDescription]:
    """Factory fixture: build a PushDescription with sensible defaults."""

    def _factory(**overrides: Any) -> PushDescription:
        defaults: dict[str, Any] = {
            "owner": "atomist",
            "repo": "spring-rest",
            "branch": "main",
            "sha": "a1b2c3d4e5f60718293a4b5c6d7e8f9012345678",
            "default_branch": "main",
        }
        defaults.update(overrides)
        return PushDescription(**defaults)

    return _factory


@pytest.fixture
def cf_push(make_push: Callable[..., PushDescription]) -> PushDescription:
    """A Maven Spring Boot push to the default branch with a CF manifest."""
    return make_push(
        is_maven=True,
        has_cloud_foundry_manifest=True,
        has_spring_boot_application_class=True,
    )


@pytest.fixture
def evaluator() -> PushTestEvaluator:
    return PushTestEvaluator()


@pytest.fixture
def store() -> InMemoryDeploymentStatusStore:
    return InMemoryDeploymentStatusStore()


@pytest.fixture
def memory_sink() -> MemorySink:
    return MemorySink()


@pytest.fixture
def dispatcher(memory_sink: MemorySink) -> ChannelDispatcher:
    """Provide a dispatcher that buffers every message in ``memory_sink``."""
    d = ChannelDispatcher()
    d.register_sink(memory_sink)
    return d


@pytest.fixture
def builder() -> SimulatedBuilder:
    return SimulatedBuilder()


@pytest.fixture
def staging_deployer() -> RecordingDeployer:
    return RecordingDeployer()


@pytest.fixture
def production_deployer() -> RecordingDeployer:
    return RecordingDeployer()


@pytest.fixture
def healthy_verifier() -> ScriptedVerifier:
    return ScriptedVerifier(unhealthy_polls=0)


@pytest.fixture
def staging_spec(staging_deployer: RecordingDeployer, healthy_verifier: ScriptedVerifier) -> DeploySpec:
    return DeploySpec(
        deployer=staging_deployer,
        targeter=ManagedDeploymentTargeter(environment="staging"),
        verifier=healthy_verifier,
    )


@pytest.fixture
def production_spec(
    production_deployer: RecordingDeployer, healthy_verifier: ScriptedVerifier
) -> DeploySpec:
    return DeploySpec(
        deployer=production_deployer,
        targeter=ManagedDeploymentTargeter(environment="production", base_port=8443),
        verifier=healthy_verifier,
    )


@pytest.fixture
def fast_config(tmp_path: Path) -> DeliveryConfig:
    """Config with tight verification bounds and staging off."""
    return DeliveryConfig(
        freeze_store_path=tmp_path / "deploy-status.json",
        events_path=tmp_path / "channels",
        verification_timeout_seconds=2.0,
        verification_poll_interval_seconds=0.01,
        staging_enabled=False,
        dependency_check_command="dependency-check",
    )


@pytest.fixture
def make_deployer() -> Callable[..., RecordingDeployer]:
    """Factory fixture: build a RecordingDeployer."""
    return RecordingDeployer


@pytest.fixture
def make_verifier() -> Callable[..., ScriptedVerifier]:
    """Factory fixture: build a ScriptedVerifier."""
    return ScriptedVerifier

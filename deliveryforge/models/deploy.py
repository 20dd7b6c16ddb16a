"""Deployment models — artifacts, targets, handles, and deploy rules."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from deliveryforge.models.goals import Goal
from deliveryforge.models.push_tests import PushTest, all_of


class ArtifactRef(BaseModel):
    """Reference to a built, deployable artifact."""

    model_config = ConfigDict(frozen=True)

    name: str
    version: str = ""
    filename: str
    cwd: Path
    built_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class DeploymentTarget(BaseModel):
    """Where a deploy goal puts an artifact, as chosen by a targeter."""

    model_config = ConfigDict(frozen=True)

    environment: str  # e.g. "staging", "production"
    name: str  # application or instance name
    description: str = ""
    options: dict[str, Any] = Field(default_factory=dict)


class DeploymentHandle(BaseModel):
    """What a deployer returns: enough to verify and tear down a deployment."""

    model_config = ConfigDict(frozen=True)

    target: DeploymentTarget
    endpoint: str | None = None  # base URL of the running application
    deployment_id: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)


class DeployGoalTriple(BaseModel):
    """The deploy / endpoint / undeploy goals one deploy rule covers."""

    model_config = ConfigDict(frozen=True)

    deploy: Goal
    endpoint: Goal
    undeploy: Goal

    @property
    def names(self) -> tuple[str, str, str]:
        return (self.deploy.name, self.endpoint.name, self.undeploy.name)

    def includes(self, goal_name: str) -> bool:
        return goal_name in self.names


class DeploySpec(BaseModel):
    """Concrete deployer/targeter pair (and optional endpoint verifier).

    The objects are external collaborators satisfying the protocols in
    ``deliveryforge.core.capabilities``.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    deployer: Any
    targeter: Any
    verifier: Any | None = None


class DeployRule(BaseModel):
    """Push-test-gated binding of a deploy goal triple to a deploy spec."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    test: PushTest
    goals: DeployGoalTriple
    spec: DeploySpec
    name: str = ""


class DeployRuleBuilder:
    """Fluent helper behind ``deploy_when``.

    Examples
    --------
    >>> rule = (
    ...     deploy_when(IsMaven)
    ...     .deploy_to(StagingDeploymentGoal, StagingEndpointGoal, StagingUndeploymentGoal)
    ...     .using(DeploySpec(deployer=local, targeter=ManagedDeploymentTargeter()))
    ... )
    """

    def __init__(self, test: PushTest) -> None:
        self._test = test
        self._goals: DeployGoalTriple | None = None

    def deploy_to(self, deploy: Goal, endpoint: Goal, undeploy: Goal) -> DeployRuleBuilder:
        self._goals = DeployGoalTriple(deploy=deploy, endpoint=endpoint, undeploy=undeploy)
        return self

    def using(self, spec: DeploySpec, *, name: str = "") -> DeployRule:
        if self._goals is None:
            raise ValueError("deploy_to() must be called before using()")
        return DeployRule(
            test=self._test,
            goals=self._goals,
            spec=spec,
            name=name or f"{self._goals.deploy.name} when {self._test.describe()}",
        )


def deploy_when(*tests: PushTest) -> DeployRuleBuilder:
    """Start a deploy rule gated on all of *tests*."""
    return DeployRuleBuilder(all_of(*tests))

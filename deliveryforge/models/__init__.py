"""Deliveryforge data models — all Pydantic v2, all frozen (immutable)."""

from deliveryforge.models.deploy import (
    ArtifactRef,
    DeployGoalTriple,
    DeploymentHandle,
    DeploymentTarget,
    DeployRule,
    DeploySpec,
    deploy_when,
)
from deliveryforge.models.goals import (
    VALID_TRANSITIONS,
    ExecutionReport,
    FailureKind,
    Goal,
    GoalContributor,
    GoalKind,
    GoalOutcome,
    GoalSet,
    GoalState,
    GoalTransition,
    on_any_push,
    when_push_satisfies,
)
from deliveryforge.models.push import PushDescription
from deliveryforge.models.push_tests import AllOf, AnyOf, Leaf, Not, PushTest
from deliveryforge.models.routing import ChannelMessage, MessageLevel

__all__ = [
    "AllOf",
    "AnyOf",
    "ArtifactRef",
    "ChannelMessage",
    "DeployGoalTriple",
    "DeployRule",
    "DeploySpec",
    "DeploymentHandle",
    "DeploymentTarget",
    "ExecutionReport",
    "FailureKind",
    "Goal",
    "GoalContributor",
    "GoalKind",
    "GoalOutcome",
    "GoalSet",
    "GoalState",
    "GoalTransition",
    "Leaf",
    "MessageLevel",
    "Not",
    "PushDescription",
    "PushTest",
    "VALID_TRANSITIONS",
    "deploy_when",
    "on_any_push",
    "when_push_satisfies",
]

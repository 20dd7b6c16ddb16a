"""Goal models — goals, contributors, goal sets, and execution reports."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from deliveryforge.models.push_tests import ANY_PUSH, PushTest, all_of, leaf


class GoalState(str, Enum):
    """Strict per-goal state model within one goal set execution."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


# Valid state transitions, enforced structurally by GoalMachine.
# Terminal states have no outgoing transitions; a goal never re-enters RUNNING.
VALID_TRANSITIONS: dict[GoalState, set[GoalState]] = {
    GoalState.PENDING: {GoalState.RUNNING, GoalState.SKIPPED},
    GoalState.RUNNING: {GoalState.SUCCEEDED, GoalState.FAILED},
    GoalState.SUCCEEDED: set(),  # terminal
    GoalState.FAILED: set(),  # terminal
    GoalState.SKIPPED: set(),  # terminal
}

TERMINAL_STATES: frozenset[GoalState] = frozenset(
    {GoalState.SUCCEEDED, GoalState.FAILED, GoalState.SKIPPED}
)


class GoalKind(str, Enum):
    """How the machine dispatches a goal's action."""

    GENERIC = "generic"  # handled by a goal handler contributed by a pack
    BUILD = "build"
    ARTIFACT = "artifact"
    DEPLOY = "deploy"
    ENDPOINT = "endpoint"
    UNDEPLOY = "undeploy"


DEPLOY_CLASS_KINDS: frozenset[GoalKind] = frozenset(
    {GoalKind.DEPLOY, GoalKind.ENDPOINT, GoalKind.UNDEPLOY}
)


class Goal(BaseModel):
    """A named unit of delivery-pipeline work.

    Identity is the name: two goals with the same name from different
    contributors are the same goal.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    display_name: str = ""
    kind: GoalKind = GoalKind.GENERIC
    depends_on: tuple[str, ...] = ()

    @property
    def label(self) -> str:
        return self.display_name or self.name

    def same_metadata(self, other: Goal) -> bool:
        """Whether *other* declares the same kind and dependencies."""
        return self.kind == other.kind and set(self.depends_on) == set(other.depends_on)


class GoalContributor(BaseModel):
    """A push test paired with the goals it contributes when satisfied.

    Disposal rules use the same shape; ``label`` then carries the rule's
    human-readable meaning.
    """

    model_config = ConfigDict(frozen=True)

    test: PushTest
    goals: tuple[Goal, ...]
    label: str = ""


class GoalSet(BaseModel):
    """Ordered collection of distinct goals for one push.

    Built only by the resolver, which guarantees unique names, drops
    dependencies on absent goals, and rejects cycles.
    """

    model_config = ConfigDict(frozen=True)

    goals: tuple[Goal, ...] = ()
    contributed_by: dict[str, str] = Field(default_factory=dict)  # goal name -> contributor label

    @property
    def names(self) -> list[str]:
        return [g.name for g in self.goals]

    @property
    def is_empty(self) -> bool:
        return not self.goals

    def get(self, name: str) -> Goal | None:
        for goal in self.goals:
            if goal.name == name:
                return goal
        return None

    def __contains__(self, name: object) -> bool:
        return any(g.name == name for g in self.goals)

    def __len__(self) -> int:
        return len(self.goals)


class FailureKind(str, Enum):
    """Why a goal ended Failed or Skipped."""

    GOAL_FAILED = "goal_failed"
    BUILD_FAILED = "build_failed"
    DEPLOY_FAILED = "deploy_failed"
    VERIFICATION_TIMEOUT = "verification_timeout"
    EXTERNAL_TOOL_FAILURE = "external_tool_failure"
    CANCELLED = "cancelled"
    DEPENDENCY_FAILED = "dependency_failed"


class GoalOutcome(BaseModel):
    """Terminal record of one goal in an execution report."""

    model_config = ConfigDict(frozen=True)

    name: str
    state: GoalState
    reason: str = ""
    failure_kind: FailureKind | None = None
    detail: str = ""  # description returned by a successful action
    started_at: datetime | None = None
    finished_at: datetime | None = None


class GoalTransition(BaseModel):
    """Records a single goal state transition for the audit trail."""

    model_config = ConfigDict(frozen=True)

    goal: str
    from_state: GoalState
    to_state: GoalState
    reason: str = ""
    at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ExecutionReport(BaseModel):
    """Terminal state of every goal in one goal set execution."""

    model_config = ConfigDict(frozen=True)

    push_id: str
    outcomes: tuple[GoalOutcome, ...]
    transitions: tuple[GoalTransition, ...] = ()
    cancelled: bool = False
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def outcome(self, name: str) -> GoalOutcome:
        for outcome in self.outcomes:
            if outcome.name == name:
                return outcome
        raise KeyError(f"Goal '{name}' is not part of this report.")

    def state_of(self, name: str) -> GoalState:
        return self.outcome(name).state

    def names_in(self, state: GoalState) -> list[str]:
        return [o.name for o in self.outcomes if o.state == state]

    @property
    def succeeded(self) -> list[str]:
        return self.names_in(GoalState.SUCCEEDED)

    @property
    def failed(self) -> list[str]:
        return self.names_in(GoalState.FAILED)

    @property
    def skipped(self) -> list[str]:
        return self.names_in(GoalState.SKIPPED)

    @property
    def all_succeeded(self) -> bool:
        return all(o.state == GoalState.SUCCEEDED for o in self.outcomes)


# ---------------------------------------------------------------------------
# Contribution DSL
# ---------------------------------------------------------------------------


class ContributionBuilder:
    """Fluent helper behind ``when_push_satisfies``.

    Examples
    --------
    >>> from deliveryforge.models.push_tests import IsMaven
    >>> c = when_push_satisfies(IsMaven).set_goals(BuildGoal)
    >>> c.goals[0].name
    'Build'
    """

    def __init__(self, test: PushTest) -> None:
        self._test = test
        self._meaning = ""

    def it_means(self, meaning: str) -> ContributionBuilder:
        self._meaning = meaning
        return self

    def set_goals(self, *goals: Goal, label: str | None = None) -> GoalContributor:
        return GoalContributor(
            test=self._test,
            goals=tuple(goals),
            label=label or self._meaning or self._test.describe(),
        )


def when_push_satisfies(*tests: PushTest) -> ContributionBuilder:
    """Start a contribution gated on all of *tests* (implicit conjunction)."""
    if not tests:
        raise ValueError("when_push_satisfies() needs at least one push test")
    return ContributionBuilder(all_of(*tests))


def on_any_push() -> ContributionBuilder:
    """Start a contribution that applies to every push."""
    return ContributionBuilder(leaf(ANY_PUSH))


# ---------------------------------------------------------------------------
# Standard goals
# ---------------------------------------------------------------------------

ChecksGoal = Goal(name="Checks", display_name="Code inspections")
ReviewGoal = Goal(name="Review", display_name="Code review")
PushReactionGoal = Goal(name="PushReaction", display_name="Push reactions")
BuildGoal = Goal(name="Build", display_name="Build", kind=GoalKind.BUILD)
ArtifactGoal = Goal(
    name="Artifact",
    display_name="Store artifact",
    kind=GoalKind.ARTIFACT,
    depends_on=("Build",),
)
LocalDeploymentGoal = Goal(
    name="LocalDeployment",
    display_name="Deploy locally",
    kind=GoalKind.DEPLOY,
    depends_on=("Build",),
)
LocalEndpointGoal = Goal(
    name="LocalEndpoint",
    display_name="Verify local endpoint",
    kind=GoalKind.ENDPOINT,
    depends_on=("LocalDeployment",),
)
LocalUndeploymentGoal = Goal(
    name="LocalUndeployment",
    display_name="Undeploy locally",
    kind=GoalKind.UNDEPLOY,
)
StagingDeploymentGoal = Goal(
    name="StagingDeployment",
    display_name="Deploy to staging",
    kind=GoalKind.DEPLOY,
    depends_on=("Artifact",),
)
StagingEndpointGoal = Goal(
    name="StagingEndpoint",
    display_name="Verify staging endpoint",
    kind=GoalKind.ENDPOINT,
    depends_on=("StagingDeployment",),
)
StagingVerifiedGoal = Goal(
    name="StagingVerified",
    display_name="Staging verified",
    depends_on=("StagingEndpoint",),
)
StagingUndeploymentGoal = Goal(
    name="StagingUndeployment",
    display_name="Undeploy from staging",
    kind=GoalKind.UNDEPLOY,
)
ProductionDeploymentGoal = Goal(
    name="ProductionDeployment",
    display_name="Deploy to production",
    kind=GoalKind.DEPLOY,
    depends_on=("Artifact", "StagingVerified"),
)
ProductionEndpointGoal = Goal(
    name="ProductionEndpoint",
    display_name="Verify production endpoint",
    kind=GoalKind.ENDPOINT,
    depends_on=("ProductionDeployment",),
)
ProductionUndeploymentGoal = Goal(
    name="ProductionUndeployment",
    display_name="Undeploy from production",
    kind=GoalKind.UNDEPLOY,
)
ExplainDeploymentFreezeGoal = Goal(
    name="ExplainDeploymentFreeze",
    display_name="Explain deployment freeze",
)
DeleteRepositoryGoal = Goal(
    name="DeleteRepository",
    display_name="Delete repository",
    depends_on=("StagingUndeployment", "ProductionUndeployment"),
)

UndeployEverywhereGoals: tuple[Goal, ...] = (
    StagingUndeploymentGoal,
    ProductionUndeploymentGoal,
)
RepositoryDeletionGoals: tuple[Goal, ...] = (
    StagingUndeploymentGoal,
    ProductionUndeploymentGoal,
    DeleteRepositoryGoal,
)

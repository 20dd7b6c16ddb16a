"""Per-goal state machine for one goal set execution.

Enforces:
- Valid state transitions only (VALID_TRANSITIONS table)
- Dependencies SUCCEEDED before RUNNING
- Cascade skipping on failure
- Every transition recorded in the transition log

Thread-safe: worker threads report results while the scheduler reads
eligibility, so every read and write goes through one lock.
"""

from __future__ import annotations

import threading
from datetime import datetime, timezone

from deliveryforge.core.goal_graph import GoalGraph
from deliveryforge.models.goals import (
    VALID_TRANSITIONS,
    FailureKind,
    GoalOutcome,
    GoalState,
    GoalTransition,
)


class InvalidGoalTransitionError(RuntimeError):
    """Raised when a requested goal state transition is not valid."""


class DependencyNotMetError(RuntimeError):
    """Raised when a goal is started before its dependencies succeeded."""


class GoalMachine:
    """Tracks and validates goal states for a single execution.

    Parameters
    ----------
    graph:
        The dependency graph of the goal set being executed.
    """

    def __init__(self, graph: GoalGraph) -> None:
        self._graph = graph
        self._lock = threading.RLock()
        self._states: dict[str, GoalState] = {
            name: GoalState.PENDING for name in graph.goal_names
        }
        self._reasons: dict[str, str] = {}
        self._kinds: dict[str, FailureKind] = {}
        self._details: dict[str, str] = {}
        self._started: dict[str, datetime] = {}
        self._finished: dict[str, datetime] = {}
        self._transitions: list[GoalTransition] = []

    # ------------------------------------------------------------------
    # State queries
    # ------------------------------------------------------------------

    def get_state(self, name: str) -> GoalState:
        with self._lock:
            return self._states[name]

    def eligible(self) -> list[str]:
        """Return PENDING goals whose dependencies all SUCCEEDED, in topological order."""
        with self._lock:
            return [
                name
                for name in self._graph.goal_names
                if self._states[name] == GoalState.PENDING
                and self._graph.are_dependencies_met(name, self._states)
            ]

    # ------------------------------------------------------------------
    # Transition logic
    # ------------------------------------------------------------------

    def transition(
        self,
        name: str,
        target: GoalState,
        *,
        reason: str = "",
        failure_kind: FailureKind | None = None,
        detail: str = "",
    ) -> list[str]:
        """Transition a goal, recording it in the log.

        Validates:
        1. The transition is allowed by VALID_TRANSITIONS.
        2. If target is RUNNING, dependencies have SUCCEEDED.
        3. If the goal ends FAILED or SKIPPED, cascade-skip PENDING dependents.

        Returns the names of goals skipped by the cascade.
        """
        with self._lock:
            current = self._states[name]
            allowed = VALID_TRANSITIONS.get(current, set())
            if target not in allowed:
                raise InvalidGoalTransitionError(
                    f"Cannot transition {name} from {current.value} to {target.value}. "
                    f"Allowed: {sorted(s.value for s in allowed)}"
                )

            if target == GoalState.RUNNING and not self._graph.are_dependencies_met(
                name, self._states
            ):
                raise DependencyNotMetError(
                    f"Cannot start {name}: dependencies "
                    f"{self._graph.get_dependencies(name)} have not all succeeded"
                )

            self._record(name, current, target, reason, failure_kind, detail)

            skipped: list[str] = []
            if target in (GoalState.FAILED, GoalState.SKIPPED):
                for dependent in self._graph.cascade_skip(name, self._states):
                    self._record(
                        dependent,
                        GoalState.PENDING,
                        GoalState.SKIPPED,
                        f"Skipped because dependency '{name}' {target.value}",
                        FailureKind.DEPENDENCY_FAILED,
                        "",
                    )
                    skipped.append(dependent)
            return skipped

    def skip_pending(self, reason: str, failure_kind: FailureKind) -> list[str]:
        """Skip every goal still PENDING (used on cancellation)."""
        with self._lock:
            pending = [n for n in self._graph.goal_names if self._states[n] == GoalState.PENDING]
            for name in pending:
                self._record(name, GoalState.PENDING, GoalState.SKIPPED, reason, failure_kind, "")
            return pending

    def _record(
        self,
        name: str,
        from_state: GoalState,
        to_state: GoalState,
        reason: str,
        failure_kind: FailureKind | None,
        detail: str,
    ) -> None:
        # Caller holds the lock
        now = datetime.now(timezone.utc)
        self._states[name] = to_state
        if to_state == GoalState.RUNNING:
            self._started[name] = now
        else:
            self._finished[name] = now
        if reason:
            self._reasons[name] = reason
        if failure_kind is not None:
            self._kinds[name] = failure_kind
        if detail:
            self._details[name] = detail
        self._transitions.append(
            GoalTransition(goal=name, from_state=from_state, to_state=to_state, reason=reason, at=now)
        )

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def outcomes(self, order: list[str]) -> tuple[GoalOutcome, ...]:
        """Return one outcome per goal, in *order*."""
        with self._lock:
            return tuple(
                GoalOutcome(
                    name=name,
                    state=self._states[name],
                    reason=self._reasons.get(name, ""),
                    failure_kind=self._kinds.get(name),
                    detail=self._details.get(name, ""),
                    started_at=self._started.get(name),
                    finished_at=self._finished.get(name),
                )
                for name in order
            )

    @property
    def transitions(self) -> tuple[GoalTransition, ...]:
        with self._lock:
            return tuple(self._transitions)

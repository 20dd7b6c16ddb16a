"""Goal set executor — runs a goal set as a dependency-ordered pipeline.

Goals whose dependencies all SUCCEEDED are submitted to a thread pool, so
independent branches run concurrently while goals sharing an edge run
strictly in order.  A failed goal cascades SKIPPED to its dependents;
unrelated branches keep running.  The executor returns once no goal is
PENDING or RUNNING.

Cancellation is cooperative.  Goal actions observe it at their suspension
points through ``GoalInvocation.raise_if_cancelled()`` and
``GoalInvocation.wait()``; a cancelled goal ends FAILED with
``FailureKind.CANCELLED`` and its dependents are SKIPPED.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from datetime import datetime, timezone
from typing import Any

from deliveryforge.core.errors import (
    BuildFailure,
    ConfigurationError,
    DeployFailure,
    ExternalToolFailure,
    GoalCancelled,
    GoalExecutionFailure,
    VerificationTimeout,
)
from deliveryforge.core.goal_graph import GoalGraph
from deliveryforge.core.goal_machine import GoalMachine
from deliveryforge.models.goals import (
    ExecutionReport,
    FailureKind,
    Goal,
    GoalSet,
    GoalState,
)
from deliveryforge.models.push import PushDescription

logger = logging.getLogger(__name__)

# Granularity at which a waiting goal notices per-goal cancellation
_CANCEL_CHECK_INTERVAL = 0.05

# Most specific first
_FAILURE_KINDS: list[tuple[type[BaseException], FailureKind]] = [
    (GoalCancelled, FailureKind.CANCELLED),
    (VerificationTimeout, FailureKind.VERIFICATION_TIMEOUT),
    (DeployFailure, FailureKind.DEPLOY_FAILED),
    (BuildFailure, FailureKind.BUILD_FAILED),
    (ExternalToolFailure, FailureKind.EXTERNAL_TOOL_FAILURE),
    (GoalExecutionFailure, FailureKind.GOAL_FAILED),
]


def classify_failure(exc: BaseException) -> FailureKind:
    """Map an exception raised by a goal action to its failure kind."""
    for exc_type, kind in _FAILURE_KINDS:
        if isinstance(exc, exc_type):
            return kind
    return FailureKind.GOAL_FAILED


class RunContext:
    """Thread-safe scratch space shared by the goals of one execution.

    Goals hand results downstream through it, e.g. the build goal stores
    the artifact the deploy goal picks up.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._values: dict[str, Any] = {}

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._values.get(key, default)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._values[key] = value

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._values


class GoalInvocation:
    """What a goal action receives: the goal, its push, and cancellation hooks."""

    def __init__(
        self,
        goal: Goal,
        goal_set: GoalSet,
        push: PushDescription | None,
        context: RunContext,
        set_cancelled: threading.Event,
        goal_cancelled: threading.Event,
    ) -> None:
        self.goal = goal
        self.goal_set = goal_set
        self.push = push
        self.context = context
        self._set_cancelled = set_cancelled
        self._goal_cancelled = goal_cancelled

    @property
    def cancelled(self) -> bool:
        return self._set_cancelled.is_set() or self._goal_cancelled.is_set()

    def raise_if_cancelled(self) -> None:
        """Raise ``GoalCancelled`` if cancellation has been requested."""
        if self.cancelled:
            raise GoalCancelled(f"Goal '{self.goal.name}' was cancelled")

    def wait(self, seconds: float) -> None:
        """Sleep for up to *seconds*, waking early and raising if cancelled."""
        deadline = time.monotonic() + seconds
        while True:
            self.raise_if_cancelled()
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return
            self._set_cancelled.wait(timeout=min(remaining, _CANCEL_CHECK_INTERVAL))


GoalAction = Callable[[GoalInvocation], "str | None"]


class GoalSetExecution:
    """A single, cancellable run of one goal set.

    Created by ``GoalSetExecutor.prepare``; ``run()`` may be called once.
    ``cancel()`` may be called from any thread, any number of times.
    """

    def __init__(
        self,
        goal_set: GoalSet,
        action: GoalAction,
        *,
        push: PushDescription | None = None,
        max_workers: int = 4,
        context: RunContext | None = None,
    ) -> None:
        self.goal_set = goal_set
        self.push = push
        self.context = context or RunContext()
        self._action = action
        self._max_workers = max(1, max_workers)
        self._graph = GoalGraph(goal_set.goals)
        self.machine = GoalMachine(self._graph)
        self._lock = threading.Lock()
        self._set_cancelled = threading.Event()
        self._goal_events: dict[str, threading.Event] = {
            g.name: threading.Event() for g in goal_set.goals
        }
        self._started = False

    @property
    def push_id(self) -> str:
        return self.push.short() if self.push else "adhoc"

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    def cancel(self, goal_name: str | None = None) -> None:
        """Cancel the whole goal set, or a single goal by name.  Idempotent."""
        if goal_name is None:
            if not self._set_cancelled.is_set():
                logger.info("Cancelling goal set for %s", self.push_id)
            self._set_cancelled.set()
            return
        event = self._goal_events.get(goal_name)
        if event is None:
            raise KeyError(f"Goal '{goal_name}' is not part of this goal set.")
        if not event.is_set():
            logger.info("Cancelling goal %s for %s", goal_name, self.push_id)
        event.set()

    @property
    def cancelled(self) -> bool:
        return self._set_cancelled.is_set()

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def run(self) -> ExecutionReport:
        """Run every goal to a terminal state and return the report."""
        with self._lock:
            if self._started:
                raise RuntimeError("A goal set execution can only be run once.")
            self._started = True

        started_at = datetime.now(timezone.utc)
        order = self.goal_set.names

        with ThreadPoolExecutor(
            max_workers=self._max_workers, thread_name_prefix="goal"
        ) as pool:
            futures: dict[Future, str] = {}

            while True:
                if self._set_cancelled.is_set():
                    skipped = self.machine.skip_pending(
                        "Skipped because the goal set was cancelled", FailureKind.CANCELLED
                    )
                    if skipped:
                        logger.info("Skipped %d pending goal(s) after cancellation", len(skipped))
                else:
                    self._submit_eligible(pool, futures)

                if not futures:
                    break

                done, _ = wait(futures, return_when=FIRST_COMPLETED)
                for future in done:
                    self._settle(futures.pop(future), future)

        # Nothing runs and nothing is eligible: whatever is left is unreachable
        leftover = self.machine.skip_pending(
            "Skipped because its dependencies never succeeded", FailureKind.DEPENDENCY_FAILED
        )
        if leftover:
            logger.warning("Unreachable goals skipped: %s", ", ".join(leftover))

        report = ExecutionReport(
            push_id=self.push_id,
            outcomes=self.machine.outcomes(order),
            transitions=self.machine.transitions,
            cancelled=self._set_cancelled.is_set(),
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
        )
        logger.info(
            "Goal set for %s finished: %d succeeded, %d failed, %d skipped",
            self.push_id,
            len(report.succeeded),
            len(report.failed),
            len(report.skipped),
        )
        return report

    def _submit_eligible(self, pool: ThreadPoolExecutor, futures: dict[Future, str]) -> None:
        for name in self.machine.eligible():
            if self._goal_events[name].is_set():
                self.machine.transition(
                    name,
                    GoalState.SKIPPED,
                    reason="Skipped because the goal was cancelled before it started",
                    failure_kind=FailureKind.CANCELLED,
                )
                continue
            if len(futures) >= self._max_workers:
                break
            self.machine.transition(name, GoalState.RUNNING)
            logger.debug("Goal %s started for %s", name, self.push_id)
            futures[pool.submit(self._invoke, name)] = name

    def _invoke(self, name: str) -> str | None:
        invocation = GoalInvocation(
            goal=self._graph.get_goal(name),
            goal_set=self.goal_set,
            push=self.push,
            context=self.context,
            set_cancelled=self._set_cancelled,
            goal_cancelled=self._goal_events[name],
        )
        return self._action(invocation)

    def _settle(self, name: str, future: Future) -> None:
        try:
            detail = future.result()
        except ConfigurationError as exc:
            logger.error("Goal %s hit a configuration error: %s", name, exc)
            self._fail(name, FailureKind.GOAL_FAILED, f"Configuration error: {exc}")
        except GoalExecutionFailure as exc:
            kind = classify_failure(exc)
            logger.warning("Goal %s failed (%s): %s", name, kind.value, exc)
            self._fail(name, kind, str(exc) or kind.value)
        except Exception as exc:
            logger.exception("Goal %s raised unexpectedly", name)
            self._fail(name, FailureKind.GOAL_FAILED, f"{type(exc).__name__}: {exc}")
        else:
            self.machine.transition(name, GoalState.SUCCEEDED, detail=detail or "")
            logger.debug("Goal %s succeeded for %s", name, self.push_id)

    def _fail(self, name: str, kind: FailureKind, reason: str) -> None:
        skipped = self.machine.transition(
            name, GoalState.FAILED, reason=reason, failure_kind=kind
        )
        if skipped:
            logger.info("Failure of %s skipped: %s", name, ", ".join(skipped))


class GoalSetExecutor:
    """Creates and runs goal set executions.

    Parameters
    ----------
    max_workers:
        Upper bound on goals running concurrently within one goal set.
    """

    def __init__(self, max_workers: int = 4) -> None:
        self.max_workers = max_workers

    def prepare(
        self,
        goal_set: GoalSet,
        action: GoalAction,
        *,
        push: PushDescription | None = None,
        context: RunContext | None = None,
    ) -> GoalSetExecution:
        """Return an execution that can be cancelled before or while it runs."""
        return GoalSetExecution(
            goal_set,
            action,
            push=push,
            max_workers=self.max_workers,
            context=context,
        )

    def execute(
        self,
        goal_set: GoalSet,
        action: GoalAction,
        *,
        push: PushDescription | None = None,
        context: RunContext | None = None,
    ) -> ExecutionReport:
        """Run *goal_set* to completion and return its report."""
        return self.prepare(goal_set, action, push=push, context=context).run()

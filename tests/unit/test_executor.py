"""Tests for the GoalSetExecutor — ordering, concurrency, failure isolation, cancellation."""

from __future__ import annotations

import threading

import pytest

from deliveryforge.core.errors import (
    BuildFailure,
    DeployRuleNotFoundError,
    ExternalToolFailure,
    GoalCancelled,
    VerificationTimeout,
)
from deliveryforge.core.executor import (
    GoalInvocation,
    GoalSetExecutor,
    RunContext,
    classify_failure,
)
from deliveryforge.models.goals import FailureKind, Goal, GoalSet, GoalState


def _goal_set(*goals: Goal) -> GoalSet:
    return GoalSet(goals=goals)


PIPELINE = _goal_set(
    Goal(name="Checks"),
    Goal(name="Build"),
    Goal(name="Artifact", depends_on=("Build",)),
    Goal(name="Deploy", depends_on=("Artifact",)),
)


@pytest.fixture
def executor() -> GoalSetExecutor:
    return GoalSetExecutor(max_workers=4)


class TestHappyPath:
    def test_all_goals_succeed(self, executor):
        report = executor.execute(PIPELINE, lambda inv: f"did {inv.goal.name}")
        assert report.all_succeeded
        assert [o.name for o in report.outcomes] == ["Checks", "Build", "Artifact", "Deploy"]
        assert report.outcome("Deploy").detail == "did Deploy"

    def test_dependencies_finish_before_dependents_start(self, executor):
        events: list[str] = []
        lock = threading.Lock()

        def action(inv: GoalInvocation) -> None:
            with lock:
                events.append(f"start:{inv.goal.name}")
            with lock:
                events.append(f"end:{inv.goal.name}")

        executor.execute(PIPELINE, action)
        assert events.index("end:Build") < events.index("start:Artifact")
        assert events.index("end:Artifact") < events.index("start:Deploy")

    def test_independent_goals_run_concurrently(self, executor):
        barrier = threading.Barrier(2, timeout=5)

        def action(inv: GoalInvocation) -> None:
            # Both goals must be inside the action at once to pass the barrier
            barrier.wait()

        report = executor.execute(_goal_set(Goal(name="Checks"), Goal(name="Review")), action)
        assert report.all_succeeded

    def test_context_carries_results_downstream(self, executor):
        def action(inv: GoalInvocation) -> str | None:
            if inv.goal.name == "Build":
                inv.context.set("artifact", "app.jar")
            if inv.goal.name == "Deploy":
                return f"deployed {inv.context.get('artifact')}"
            return None

        report = executor.execute(PIPELINE, action)
        assert report.outcome("Deploy").detail == "deployed app.jar"

    def test_empty_goal_set(self, executor):
        report = executor.execute(GoalSet(), lambda inv: None)
        assert report.outcomes == ()
        assert report.all_succeeded


class TestFailureIsolation:
    def test_failure_skips_dependents_but_not_siblings(self, executor):
        def action(inv: GoalInvocation) -> None:
            if inv.goal.name == "Build":
                raise BuildFailure("mvn package exited 1")

        report = executor.execute(PIPELINE, action)
        assert report.state_of("Checks") == GoalState.SUCCEEDED
        assert report.state_of("Build") == GoalState.FAILED
        assert report.outcome("Build").failure_kind == FailureKind.BUILD_FAILED
        assert report.outcome("Build").reason == "mvn package exited 1"
        for name in ("Artifact", "Deploy"):
            outcome = report.outcome(name)
            assert outcome.state == GoalState.SKIPPED
            assert outcome.failure_kind == FailureKind.DEPENDENCY_FAILED
            assert outcome.reason

    def test_dependent_of_failed_goal_never_succeeds(self, executor):
        ran: list[str] = []

        def action(inv: GoalInvocation) -> None:
            ran.append(inv.goal.name)
            if inv.goal.name == "Artifact":
                raise RuntimeError("disk full")

        report = executor.execute(PIPELINE, action)
        assert "Deploy" not in ran
        assert report.state_of("Deploy") == GoalState.SKIPPED

    def test_unexpected_exception_is_goal_failed(self, executor):
        def action(inv: GoalInvocation) -> None:
            if inv.goal.name == "Checks":
                raise ValueError("bad input")

        report = executor.execute(PIPELINE, action)
        outcome = report.outcome("Checks")
        assert outcome.failure_kind == FailureKind.GOAL_FAILED
        assert "ValueError" in outcome.reason

    def test_configuration_error_fails_only_that_goal(self, executor):
        def action(inv: GoalInvocation) -> None:
            if inv.goal.name == "Deploy":
                raise DeployRuleNotFoundError("no rule for Deploy")

        report = executor.execute(PIPELINE, action)
        assert report.state_of("Deploy") == GoalState.FAILED
        assert report.outcome("Deploy").reason.startswith("Configuration error")
        assert report.state_of("Artifact") == GoalState.SUCCEEDED

    def test_every_failed_or_skipped_goal_has_a_reason(self, executor):
        def action(inv: GoalInvocation) -> None:
            if inv.goal.name == "Build":
                raise BuildFailure("")

        report = executor.execute(PIPELINE, action)
        for outcome in report.outcomes:
            if outcome.state in (GoalState.FAILED, GoalState.SKIPPED):
                assert outcome.reason


class TestClassification:
    @pytest.mark.parametrize(
        ("exc", "kind"),
        [
            (GoalCancelled("x"), FailureKind.CANCELLED),
            (VerificationTimeout("x"), FailureKind.VERIFICATION_TIMEOUT),
            (ExternalToolFailure("x", returncode=2), FailureKind.EXTERNAL_TOOL_FAILURE),
            (BuildFailure("x"), FailureKind.BUILD_FAILED),
            (KeyError("x"), FailureKind.GOAL_FAILED),
        ],
    )
    def test_classify(self, exc, kind):
        assert classify_failure(exc) == kind


class TestCancellation:
    def _slow_set(self) -> GoalSet:
        return _goal_set(
            Goal(name="Slow"),
            Goal(name="AfterSlow", depends_on=("Slow",)),
            Goal(name="Other"),
        )

    def test_cancel_goal_set_mid_run(self, executor):
        started = threading.Event()

        def action(inv: GoalInvocation) -> None:
            if inv.goal.name == "Slow":
                started.set()
                inv.wait(10)

        execution = executor.prepare(self._slow_set(), action)
        result: dict = {}
        runner = threading.Thread(target=lambda: result.update(report=execution.run()))
        runner.start()
        assert started.wait(5)
        execution.cancel()
        runner.join(10)

        report = result["report"]
        assert report.cancelled is True
        assert report.state_of("Slow") == GoalState.FAILED
        assert report.outcome("Slow").failure_kind == FailureKind.CANCELLED
        assert report.state_of("AfterSlow") == GoalState.SKIPPED
        assert report.state_of("Other") == GoalState.SUCCEEDED

    def test_cancel_before_run_skips_everything(self, executor):
        execution = executor.prepare(self._slow_set(), lambda inv: None)
        execution.cancel()
        execution.cancel()  # idempotent
        report = execution.run()
        assert report.cancelled is True
        assert report.skipped == ["Slow", "AfterSlow", "Other"]
        assert all(o.failure_kind == FailureKind.CANCELLED for o in report.outcomes)

    def test_cancel_single_goal(self, executor):
        started = threading.Event()

        def action(inv: GoalInvocation) -> None:
            if inv.goal.name == "Slow":
                started.set()
                inv.wait(10)

        execution = executor.prepare(self._slow_set(), action)
        result: dict = {}
        runner = threading.Thread(target=lambda: result.update(report=execution.run()))
        runner.start()
        assert started.wait(5)
        execution.cancel("Slow")
        runner.join(10)

        report = result["report"]
        assert report.cancelled is False
        assert report.outcome("Slow").failure_kind == FailureKind.CANCELLED
        assert report.state_of("AfterSlow") == GoalState.SKIPPED
        assert report.state_of("Other") == GoalState.SUCCEEDED

    def test_cancel_unknown_goal(self, executor):
        execution = executor.prepare(self._slow_set(), lambda inv: None)
        with pytest.raises(KeyError):
            execution.cancel("Nope")

    def test_run_only_once(self, executor):
        execution = executor.prepare(self._slow_set(), lambda inv: None)
        execution.run()
        with pytest.raises(RuntimeError):
            execution.run()


class TestRunContext:
    def test_get_set(self):
        context = RunContext()
        assert context.get("missing", 3) == 3
        context.set("k", "v")
        assert "k" in context
        assert context.get("k") == "v"

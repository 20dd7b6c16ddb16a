"""Software delivery machine — the central coordinator for push handling.

The machine wires together the PushTestEvaluator, GoalContributionResolver,
GoalSetExecutor, DeployRuleEngine, the freeze store, the sealed extension
pack snapshot, and the ChannelDispatcher into a single engine.

For each push it resolves a goal set (``plan``) and executes it (``run``),
dispatching every goal by kind:

* BUILD — the injected builder; the artifact is handed downstream
* ARTIFACT — artifact listeners whose push test matches
* DEPLOY / ENDPOINT / UNDEPLOY — the deploy rule engine
* GENERIC — goal handlers contributed by packs (default: succeed)
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from deliveryforge.config import DeliveryConfig
from deliveryforge.core.capabilities import Builder, EndpointVerifier
from deliveryforge.core.deploy_rules import DeployRuleEngine
from deliveryforge.core.errors import (
    BuildFailure,
    ConfigurationError,
    DeployRuleNotFoundError,
    GoalConflictError,
    GoalExecutionFailure,
)
from deliveryforge.core.executor import GoalInvocation, GoalSetExecution, GoalSetExecutor
from deliveryforge.core.freeze_gate import DeploymentStatusStore, InMemoryDeploymentStatusStore
from deliveryforge.core.push_test_evaluator import BUILTIN_PREDICATES, Predicate, PushTestEvaluator
from deliveryforge.core.resolver import (
    GoalConflictPolicy,
    GoalContributionResolver,
    find_goal_conflicts,
)
from deliveryforge.models.deploy import ArtifactRef, DeployRule
from deliveryforge.models.goals import (
    DEPLOY_CLASS_KINDS,
    ChecksGoal,
    DeleteRepositoryGoal,
    ExecutionReport,
    GoalContributor,
    GoalKind,
    GoalSet,
    PushReactionGoal,
)
from deliveryforge.models.push import PushDescription
from deliveryforge.models.routing import MessageLevel
from deliveryforge.packs.registry import (
    ExtensionPack,
    ExtensionPackRegistry,
    GoalHandler,
    ListenerInvocation,
    RegistrySnapshot,
)
from deliveryforge.routing.dispatcher import ChannelDispatcher

logger = logging.getLogger(__name__)

# Run-context key under which the build goal stores its artifact
ARTIFACT_KEY = "artifact"


class SoftwareDeliveryMachine:
    """Resolves and executes goal sets for pushes.

    Parameters
    ----------
    name:
        Human-readable machine name, used in logs.
    contributors:
        Goal contributors in registration order.  Contributors from
        extension packs are appended after these.
    builder:
        Builds the artifact for BUILD goals.
    deploy_rules:
        Deploy rules in registration order, followed by those from packs.
    disposal_rules:
        Contributors consulted by ``resolve_disposal``.
    packs:
        Extension packs to register.  The registry is sealed on construction.
    store:
        Deployment freeze store shared with the freeze pack and commands.
    dispatcher:
        Channel dispatcher for notifications.
    default_verifier:
        Endpoint verifier for deploy rules that do not bring their own.
    config:
        Runtime configuration; defaults are read from the environment.
    max_polls:
        Optional cap on endpoint probes, alongside the verification timeout.

    Raises
    ------
    GoalConflictError
        Under the strict conflict policy, if two contributors declare the
        same goal name with different metadata.
    ConfigurationError
        If two packs, or a pack and a built-in, provide the same predicate id.
    """

    def __init__(
        self,
        name: str,
        *,
        contributors: Sequence[GoalContributor],
        builder: Builder,
        deploy_rules: Sequence[DeployRule] = (),
        disposal_rules: Sequence[GoalContributor] = (),
        packs: Iterable[ExtensionPack] = (),
        store: DeploymentStatusStore | None = None,
        dispatcher: ChannelDispatcher | None = None,
        default_verifier: EndpointVerifier | None = None,
        config: DeliveryConfig | None = None,
        max_polls: int | None = None,
    ) -> None:
        self.name = name
        self.config = config or DeliveryConfig()
        self.builder = builder
        self.store = store or InMemoryDeploymentStatusStore()
        self.dispatcher = dispatcher or ChannelDispatcher()

        registry = ExtensionPackRegistry()
        registry.register_all(*packs)
        self.packs: RegistrySnapshot = registry.seal()

        self.contributors: tuple[GoalContributor, ...] = (
            tuple(contributors) + self.packs.contributors
        )
        self.disposal_rules: tuple[GoalContributor, ...] = tuple(disposal_rules)
        self.deploy_rules: tuple[DeployRule, ...] = tuple(deploy_rules) + self.packs.deploy_rules

        policy = self.config.goal_conflict_policy
        if policy == GoalConflictPolicy.STRICT:
            conflicts = find_goal_conflicts(self.contributors + self.disposal_rules)
            if conflicts:
                raise GoalConflictError("; ".join(conflicts))

        self.evaluator = PushTestEvaluator(_merge_predicates(self.packs.predicates))
        self.resolver = GoalContributionResolver(self.evaluator, conflict_policy=policy)
        self.executor = GoalSetExecutor(max_workers=self.config.max_concurrent_goals)
        self.deploy_engine = DeployRuleEngine(
            self.deploy_rules,
            self.evaluator,
            default_verifier=default_verifier,
            verification_timeout=self.config.verification_timeout_seconds,
            poll_interval=self.config.verification_poll_interval_seconds,
            max_polls=max_polls,
        )

        self._goal_handlers: dict[str, GoalHandler] = {
            ChecksGoal.name: self._run_checks,
            PushReactionGoal.name: self._run_push_reactions,
            DeleteRepositoryGoal.name: self._announce_repository_deletion,
        }
        self._goal_handlers.update(self.packs.goal_handlers)
        self.commands: dict[str, Any] = self.packs.commands

        self._lock = threading.Lock()
        self._active: dict[str, list[GoalSetExecution]] = {}
        # One event per run still resolving its goal set; set by cancel()
        self._planning: dict[str, list[threading.Event]] = {}

        logger.info(
            "Machine '%s' ready: %d contributor(s), %d deploy rule(s), %d disposal rule(s)",
            self.name,
            len(self.contributors),
            len(self.deploy_rules),
            len(self.disposal_rules),
        )

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    def plan(self, push: PushDescription) -> GoalSet:
        """Resolve the goal set for *push* and check every deploy goal has a rule.

        Raises
        ------
        ConfigurationError
            On a dependency cycle, a strict-policy conflict, or a deploy-class
            goal that no deploy rule covers.
        """
        goal_set = self.resolver.resolve(self.contributors, push)
        self._check_deploy_rules(goal_set, push)
        return goal_set

    def resolve_disposal(self, push: PushDescription) -> GoalSet:
        """Resolve the goals that dispose of the repository behind *push*.

        Undeploy goals no deploy rule covers are allowed here: there is
        nothing deployed to tear down, so they succeed without acting.
        """
        goal_set = self.resolver.resolve(self.disposal_rules, push)
        self._check_deploy_rules(goal_set, push, DEPLOY_CLASS_KINDS - {GoalKind.UNDEPLOY})
        return goal_set

    def _check_deploy_rules(
        self,
        goal_set: GoalSet,
        push: PushDescription,
        kinds: frozenset[GoalKind] = DEPLOY_CLASS_KINDS,
    ) -> None:
        evaluation = self.evaluator.begin(push)
        missing = [
            goal.name
            for goal in goal_set.goals
            if goal.kind in kinds
            and self.deploy_engine.find_rule(goal.name, push, evaluation) is None
        ]
        if missing:
            raise DeployRuleNotFoundError(
                f"No deploy rule covers {', '.join(missing)} for push {push.short()}"
            )

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def prepare(self, push: PushDescription, goal_set: GoalSet | None = None) -> GoalSetExecution:
        """Plan (unless *goal_set* is given) and return a cancellable execution."""
        if goal_set is None:
            goal_set = self.plan(push)
        return self.executor.prepare(goal_set, self._act, push=push)

    def run(self, push: PushDescription, goal_set: GoalSet | None = None) -> ExecutionReport:
        """Plan and execute the goal set for *push*; return the report."""
        cancel_requested = threading.Event()
        with self._lock:
            self._planning.setdefault(push.sha, []).append(cancel_requested)
        try:
            execution = self.prepare(push, goal_set)
        except BaseException:
            with self._lock:
                _discard(self._planning, push.sha, cancel_requested)
            raise
        # Handing over under one lock leaves no gap for cancel() to miss
        with self._lock:
            _discard(self._planning, push.sha, cancel_requested)
            self._active.setdefault(push.sha, []).append(execution)
        if cancel_requested.is_set():
            execution.cancel()
        try:
            report = execution.run()
        finally:
            with self._lock:
                _discard(self._active, push.sha, execution)

        self._notify_failures(execution.goal_set, report, push)
        return report

    def dispose(self, push: PushDescription) -> ExecutionReport:
        """Execute the disposal goals for *push*."""
        return self.run(push, self.resolve_disposal(push))

    def cancel(self, push_sha: str | None = None, goal_name: str | None = None) -> int:
        """Cancel in-flight executions.

        Parameters
        ----------
        push_sha:
            Only cancel executions for this push.  ``None`` cancels all.
        goal_name:
            Cancel only this goal rather than the whole goal set.  Executions
            whose goal set lacks the goal are left alone, as are runs still
            planning, whose goal set is not yet known.  Without a goal name,
            runs still planning are cancelled as soon as planning completes.

        Returns
        -------
        int
            Number of executions affected.
        """
        with self._lock:
            if push_sha is None:
                executions = [e for running in self._active.values() for e in running]
                planning = [e for pending in self._planning.values() for e in pending]
            else:
                executions = list(self._active.get(push_sha, []))
                planning = list(self._planning.get(push_sha, []))
            affected = 0
            if goal_name is None:
                for requested in planning:
                    requested.set()
                affected += len(planning)
        if planning and goal_name is None:
            logger.info("Cancellation requested for %d run(s) still planning", len(planning))

        for execution in executions:
            if goal_name is None:
                execution.cancel()
            elif goal_name in execution.goal_set:
                execution.cancel(goal_name)
            else:
                continue
            affected += 1
        return affected

    def _notify_failures(
        self, goal_set: GoalSet, report: ExecutionReport, push: PushDescription
    ) -> None:
        for name in report.failed:
            goal = goal_set.get(name)
            label = goal.label if goal else name
            self.dispatcher.address_channels(
                f"{label} failed: {report.outcome(name).reason}",
                push=push,
                goal=name,
                level=MessageLevel.ERROR,
            )

    # ------------------------------------------------------------------
    # Goal dispatch
    # ------------------------------------------------------------------

    def _act(self, invocation: GoalInvocation) -> str | None:
        kind = invocation.goal.kind
        if kind == GoalKind.BUILD:
            return self._build(invocation)
        if kind == GoalKind.ARTIFACT:
            return self._store_artifact(invocation)
        if kind == GoalKind.DEPLOY:
            handle = self.deploy_engine.deploy(invocation, self._artifact(invocation))
            return f"Deployed to {handle.target.name} at {handle.endpoint or '-'}"
        if kind == GoalKind.ENDPOINT:
            handle = self.deploy_engine.verify_endpoint(invocation)
            return f"Endpoint {handle.endpoint or '-'} is healthy"
        if kind == GoalKind.UNDEPLOY:
            push = _require_push(invocation)
            if self.deploy_engine.find_rule(invocation.goal.name, push) is None:
                logger.info("No deploy rule covers %s; nothing to undeploy", invocation.goal.name)
                return "Nothing to undeploy"
            self.deploy_engine.undeploy(invocation)
            return "Undeployed"

        handler = self._goal_handlers.get(invocation.goal.name)
        if handler is None:
            return None
        artifact = invocation.context.get(ARTIFACT_KEY)
        return handler(ListenerInvocation(invocation, self.dispatcher, artifact))

    def _build(self, invocation: GoalInvocation) -> str:
        push = _require_push(invocation)
        invocation.raise_if_cancelled()
        try:
            artifact = self.builder.build(push)
        except GoalExecutionFailure:
            raise
        except Exception as exc:
            raise BuildFailure(f"Build of {push.short()} failed: {exc}") from exc
        invocation.context.set(ARTIFACT_KEY, artifact)
        return f"Built {artifact.filename}"

    def _artifact(self, invocation: GoalInvocation) -> ArtifactRef:
        artifact = invocation.context.get(ARTIFACT_KEY)
        if artifact is None:
            raise GoalExecutionFailure(
                f"Goal '{invocation.goal.name}' needs an artifact but none was built"
            )
        return artifact

    def _store_artifact(self, invocation: GoalInvocation) -> str:
        """Run every matching artifact listener.  A failing listener fails the goal."""
        push = _require_push(invocation)
        artifact = self._artifact(invocation)
        evaluation = self.evaluator.begin(push)
        call = ListenerInvocation(invocation, self.dispatcher, artifact)
        ran = 0
        for registration in self.packs.artifact_listeners:
            if not evaluation.evaluate(registration.push_test):
                continue
            invocation.raise_if_cancelled()
            logger.info("Running artifact listener '%s' on %s", registration.name, artifact.filename)
            registration.action(call)
            ran += 1
        return f"Stored {artifact.filename}; {ran} artifact listener(s) ran"

    # -- Built-in goal handlers -------------------------------------------

    def _run_checks(self, call: ListenerInvocation) -> str:
        push = call.push
        if push is None:
            return "No push to inspect"
        evaluation = self.evaluator.begin(push)
        ran = 0
        comments = 0
        for inspection in self.packs.inspections:
            if not evaluation.evaluate(inspection.push_test):
                continue
            call.raise_if_cancelled()
            ran += 1
            for comment in inspection.inspect(push):
                comments += 1
                call.address_channels(f"{inspection.name}: {comment}", MessageLevel.WARNING)
        return f"{ran} inspection(s) ran, {comments} comment(s)"

    def _run_push_reactions(self, call: ListenerInvocation) -> str:
        push = call.push
        if push is None:
            return "No push to react to"
        evaluation = self.evaluator.begin(push)
        ran = 0
        for reaction in self.packs.push_reactions:
            if not evaluation.evaluate(reaction.push_test):
                continue
            call.raise_if_cancelled()
            logger.info("Running push reaction '%s' for %s", reaction.name, push.short())
            reaction.action(call)
            ran += 1
        return f"{ran} push reaction(s) ran"

    def _announce_repository_deletion(self, call: ListenerInvocation) -> str:
        repo = call.push.repo_id if call.push else "repository"
        call.address_channels(f"{repo} has been undeployed everywhere and can be deleted")
        return f"{repo} ready for deletion"

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def run_command(self, name: str, *args: Any) -> Any:
        """Invoke a supporting command contributed by a pack.

        Raises
        ------
        KeyError
            If no pack provides *name*.
        """
        command = self.commands.get(name)
        if command is None:
            available = ", ".join(sorted(self.commands)) or "-"
            raise KeyError(f"Unknown command '{name}'. Available: {available}")
        logger.info("Running command %s%r", name, args)
        return command(*args)


def _merge_predicates(pack_predicates: Mapping[str, Predicate]) -> dict[str, Predicate]:
    clashes = sorted(set(pack_predicates) & set(BUILTIN_PREDICATES))
    if clashes:
        raise ConfigurationError(
            f"Extension packs redefine built-in predicate(s): {', '.join(clashes)}"
        )
    return dict(pack_predicates)


def _discard(registry: dict[str, list[Any]], sha: str, item: Any) -> None:
    entries = registry.get(sha, [])
    if item in entries:
        entries.remove(item)
    if not entries:
        registry.pop(sha, None)


def _require_push(invocation: GoalInvocation) -> PushDescription:
    if invocation.push is None:
        raise GoalExecutionFailure(f"Goal '{invocation.goal.name}' needs a push")
    return invocation.push

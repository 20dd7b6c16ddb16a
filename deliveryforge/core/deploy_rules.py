"""Deploy rule engine — maps deploy-class goals to deployers and runs them.

Rules are consulted in registration order; the first rule whose push test
matches and whose goal triple includes the requested goal wins.  No match
is a configuration error, never a silent skip.

Phases for one rule's triple:

1. deploy goal: resolve target, deploy the artifact, remember the handle
2. endpoint goal: poll the verifier until healthy, or fail with
   ``VerificationTimeout`` once the time or poll bound is exhausted
3. undeploy goal: resolve target, tear it down
"""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from typing import TYPE_CHECKING

from deliveryforge.core.capabilities import EndpointVerifier
from deliveryforge.core.errors import (
    DeployFailure,
    DeployRuleNotFoundError,
    GoalCancelled,
    GoalExecutionFailure,
    VerificationTimeout,
)
from deliveryforge.core.push_test_evaluator import EvaluationPass, PushTestEvaluator
from deliveryforge.models.deploy import ArtifactRef, DeploymentHandle, DeployRule, DeploySpec
from deliveryforge.models.goals import Goal
from deliveryforge.models.push import PushDescription

if TYPE_CHECKING:
    from deliveryforge.core.executor import GoalInvocation

logger = logging.getLogger(__name__)


def deployment_key(deploy_goal_name: str) -> str:
    """Run-context key under which a deploy goal stores its handle."""
    return f"deployment:{deploy_goal_name}"


class DeployRuleEngine:
    """Selects and drives deployers for deploy, endpoint, and undeploy goals.

    Parameters
    ----------
    rules:
        Deploy rules in registration order.
    evaluator:
        Push test evaluator for rule tests.
    default_verifier:
        Used for endpoint goals whose rule has no verifier of its own.
    verification_timeout:
        Seconds to keep polling an endpoint before giving up.
    poll_interval:
        Seconds between endpoint probes.
    max_polls:
        Optional cap on the number of probes, applied alongside the timeout.
    """

    def __init__(
        self,
        rules: Sequence[DeployRule],
        evaluator: PushTestEvaluator,
        *,
        default_verifier: EndpointVerifier | None = None,
        verification_timeout: float = 60.0,
        poll_interval: float = 2.0,
        max_polls: int | None = None,
    ) -> None:
        self._rules = tuple(rules)
        self._evaluator = evaluator
        self._default_verifier = default_verifier
        self.verification_timeout = verification_timeout
        self.poll_interval = poll_interval
        self.max_polls = max_polls

    @property
    def rules(self) -> tuple[DeployRule, ...]:
        return self._rules

    # ------------------------------------------------------------------
    # Rule selection
    # ------------------------------------------------------------------

    def find_rule(
        self,
        goal_name: str,
        push: PushDescription,
        evaluation: EvaluationPass | None = None,
    ) -> DeployRule | None:
        """Return the first rule covering *goal_name* whose test matches, or None."""
        evaluation = evaluation or self._evaluator.begin(push)
        for rule in self._rules:
            if rule.goals.includes(goal_name) and evaluation.evaluate(rule.test):
                return rule
        return None

    def rule_for(self, goal: Goal, push: PushDescription) -> DeployRule:
        rule = self.find_rule(goal.name, push)
        if rule is None:
            raise DeployRuleNotFoundError(
                f"No deploy rule covers goal '{goal.name}' for push {push.short()}"
            )
        return rule

    def deployer_for(self, goal: Goal, push: PushDescription) -> DeploySpec:
        """Return the deployer/targeter pair for *goal* and *push*.

        Raises
        ------
        DeployRuleNotFoundError
            If no registered rule matches.
        """
        return self.rule_for(goal, push).spec

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    def deploy(self, invocation: GoalInvocation, artifact: ArtifactRef) -> DeploymentHandle:
        """Resolve the target and deploy *artifact*; store the handle in the run context."""
        push = _require_push(invocation)
        rule = self.rule_for(invocation.goal, push)
        target = rule.spec.targeter.target_for(invocation.goal, push)
        invocation.raise_if_cancelled()

        logger.info(
            "Deploying %s to %s (%s) via rule '%s'",
            artifact.filename,
            target.name,
            target.environment,
            rule.name,
        )
        try:
            handle = rule.spec.deployer.deploy(artifact, target)
        except GoalExecutionFailure:
            raise
        except Exception as exc:
            raise DeployFailure(f"Deploy to {target.name} failed: {exc}") from exc

        invocation.context.set(deployment_key(rule.goals.deploy.name), handle)
        return handle

    def verify_endpoint(self, invocation: GoalInvocation) -> DeploymentHandle:
        """Poll the deployment's endpoint until healthy.

        Raises
        ------
        VerificationTimeout
            If the endpoint never became healthy within the bound.
        GoalCancelled
            If cancellation is requested between probes.
        """
        push = _require_push(invocation)
        rule = self.rule_for(invocation.goal, push)
        handle: DeploymentHandle | None = invocation.context.get(
            deployment_key(rule.goals.deploy.name)
        )
        if handle is None:
            raise GoalExecutionFailure(
                f"No deployment recorded by '{rule.goals.deploy.name}' to verify"
            )

        verifier = rule.spec.verifier or self._default_verifier
        if verifier is None:
            logger.info("No endpoint verifier for %s; treating as healthy", handle.target.name)
            return handle

        deadline = time.monotonic() + self.verification_timeout
        polls = 0
        while True:
            invocation.raise_if_cancelled()
            polls += 1
            if self._probe(verifier, handle):
                logger.info(
                    "Endpoint %s healthy after %d poll(s)", handle.endpoint, polls
                )
                return handle

            remaining = deadline - time.monotonic()
            if remaining <= 0 or (self.max_polls is not None and polls >= self.max_polls):
                raise VerificationTimeout(
                    f"Endpoint {handle.endpoint} of {handle.target.name} was not healthy "
                    f"after {polls} poll(s) within {self.verification_timeout:g}s"
                )
            invocation.wait(min(self.poll_interval, remaining))

    def undeploy(self, invocation: GoalInvocation) -> None:
        """Resolve the target for an undeploy goal and tear it down."""
        push = _require_push(invocation)
        rule = self.rule_for(invocation.goal, push)
        target = rule.spec.targeter.target_for(invocation.goal, push)
        logger.info("Undeploying %s (%s)", target.name, target.environment)
        try:
            rule.spec.deployer.undeploy(target)
        except GoalExecutionFailure:
            raise
        except Exception as exc:
            raise DeployFailure(f"Undeploy of {target.name} failed: {exc}") from exc

    @staticmethod
    def _probe(verifier: EndpointVerifier, handle: DeploymentHandle) -> bool:
        try:
            return bool(verifier.verify(handle))
        except GoalCancelled:
            raise
        except Exception:
            logger.exception("Endpoint verifier raised for %s", handle.endpoint)
            return False


def _require_push(invocation: GoalInvocation) -> PushDescription:
    if invocation.push is None:
        raise GoalExecutionFailure(
            f"Goal '{invocation.goal.name}' needs a push to resolve its deploy rule"
        )
    return invocation.push

"""Goal contribution resolver — merges contributor goals into one goal set.

Contributors are consulted in registration order.  Each satisfied
contributor appends its goals to an ordered accumulator; a goal name that
is already present is skipped, so the first registration wins.  After
accumulation, dependencies on goals that never made it into the set are
dropped: partial goal sets are valid, which is what lets contributors be
written independently of each other.

When two contributors declare the same goal name with different metadata
the outcome depends on ``GoalConflictPolicy``:

* ``FIRST_WINS`` keeps the first-registered definition and logs a warning.
* ``STRICT`` raises ``GoalConflictError``.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from enum import Enum

from deliveryforge.core.errors import GoalConflictError
from deliveryforge.core.goal_graph import GoalGraph
from deliveryforge.core.push_test_evaluator import PushTestEvaluator
from deliveryforge.models.goals import Goal, GoalContributor, GoalSet
from deliveryforge.models.push import PushDescription

logger = logging.getLogger(__name__)


class GoalConflictPolicy(str, Enum):
    """What to do when contributors disagree on a goal's metadata."""

    FIRST_WINS = "first_wins"
    STRICT = "strict"


def _describe_conflict(first: Goal, other: Goal, first_label: str, other_label: str) -> str:
    return (
        f"Goal '{first.name}' is declared by '{first_label}' as "
        f"kind={first.kind.value} depends_on={list(first.depends_on)} and by "
        f"'{other_label}' as kind={other.kind.value} depends_on={list(other.depends_on)}"
    )


def find_goal_conflicts(contributors: Iterable[GoalContributor]) -> list[str]:
    """Return a description of every same-name, different-metadata goal pair.

    Checks contributors statically, regardless of which pushes would
    satisfy them.  Used at startup under the strict policy.
    """
    seen: dict[str, tuple[Goal, str]] = {}
    conflicts: list[str] = []
    for contributor in contributors:
        for goal in contributor.goals:
            first = seen.get(goal.name)
            if first is None:
                seen[goal.name] = (goal, contributor.label)
            elif not first[0].same_metadata(goal):
                conflicts.append(_describe_conflict(first[0], goal, first[1], contributor.label))
    return conflicts


class GoalContributionResolver:
    """Resolves the goal set for a push from an ordered list of contributors.

    Parameters
    ----------
    evaluator:
        The push test evaluator used to check contributor tests.
    conflict_policy:
        How to handle same-name goals with differing metadata.
    """

    def __init__(
        self,
        evaluator: PushTestEvaluator,
        *,
        conflict_policy: GoalConflictPolicy = GoalConflictPolicy.FIRST_WINS,
    ) -> None:
        self._evaluator = evaluator
        self.conflict_policy = conflict_policy

    def resolve(
        self, contributors: Sequence[GoalContributor], push: PushDescription
    ) -> GoalSet:
        """Return the merged goal set for *push*.

        Returns an empty ``GoalSet`` when no contributor matches.

        Raises
        ------
        GoalConflictError
            Under the strict policy, if matched contributors disagree.
        CyclicGoalDependencyError
            If the merged goals' dependencies form a cycle.
        """
        evaluation = self._evaluator.begin(push)
        accumulated: dict[str, Goal] = {}
        contributed_by: dict[str, str] = {}

        for contributor in contributors:
            if not evaluation.evaluate(contributor.test):
                continue
            logger.debug("Contributor '%s' matched %s", contributor.label, push.short())
            for goal in contributor.goals:
                existing = accumulated.get(goal.name)
                if existing is None:
                    accumulated[goal.name] = goal
                    contributed_by[goal.name] = contributor.label
                    continue
                if existing.same_metadata(goal):
                    continue
                message = _describe_conflict(
                    existing, goal, contributed_by[goal.name], contributor.label
                )
                if self.conflict_policy == GoalConflictPolicy.STRICT:
                    raise GoalConflictError(message)
                logger.warning("%s; keeping the first registration", message)

        goals = tuple(
            goal.model_copy(
                update={"depends_on": tuple(d for d in goal.depends_on if d in accumulated)}
            )
            if any(d not in accumulated for d in goal.depends_on)
            else goal
            for goal in accumulated.values()
        )

        # Validates the DAG; raises CyclicGoalDependencyError
        GoalGraph(goals)

        if goals:
            logger.info(
                "Resolved %d goal(s) for %s: %s",
                len(goals),
                push.short(),
                ", ".join(g.name for g in goals),
            )
        else:
            logger.info("No contributor matched %s; nothing to do", push.short())

        return GoalSet(goals=goals, contributed_by=contributed_by)

"""Push test evaluation — pure, total, short-circuiting.

Evaluation never raises.  A leaf whose predicate id is not registered falls
back to the push's free-form ``flags`` (absent means False); a predicate that
raises is logged and treated as False.

Predicates may perform external lookups (the freeze gate queries its status
store).  An ``EvaluationPass`` memoises every leaf for one push so each
lookup happens at most once per pass.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping

from deliveryforge.models.push import PushDescription
from deliveryforge.models.push_tests import (
    ADDED_CLOUD_FOUNDRY_MANIFEST,
    ANY_PUSH,
    HAS_CLOUD_FOUNDRY_MANIFEST,
    HAS_SPRING_BOOT_APPLICATION_CLASS,
    IS_MAVEN,
    IS_NODE,
    TO_DEFAULT_BRANCH,
    AllOf,
    AnyOf,
    Leaf,
    Not,
    PushTest,
)

logger = logging.getLogger(__name__)

Predicate = Callable[[PushDescription], bool]

BUILTIN_PREDICATES: dict[str, Predicate] = {
    ANY_PUSH: lambda push: True,
    IS_MAVEN: lambda push: push.is_maven,
    IS_NODE: lambda push: push.is_node,
    HAS_CLOUD_FOUNDRY_MANIFEST: lambda push: push.has_cloud_foundry_manifest,
    HAS_SPRING_BOOT_APPLICATION_CLASS: lambda push: push.has_spring_boot_application_class,
    TO_DEFAULT_BRANCH: lambda push: push.to_default_branch,
    ADDED_CLOUD_FOUNDRY_MANIFEST: lambda push: push.added_cloud_foundry_manifest,
}


class EvaluationPass:
    """Evaluates push tests against one push, caching leaf results."""

    def __init__(self, predicates: Mapping[str, Predicate], push: PushDescription) -> None:
        self._predicates = predicates
        self.push = push
        self._cache: dict[str, bool] = {}

    def evaluate(self, test: PushTest) -> bool:
        if isinstance(test, Leaf):
            return self._leaf(test.predicate_id)
        if isinstance(test, AllOf):
            return all(self.evaluate(t) for t in test.tests)
        if isinstance(test, AnyOf):
            return any(self.evaluate(t) for t in test.tests)
        if isinstance(test, Not):
            return not self.evaluate(test.test)
        logger.warning("Unknown push test node %r treated as false", test)
        return False

    def _leaf(self, predicate_id: str) -> bool:
        if predicate_id in self._cache:
            return self._cache[predicate_id]

        predicate = self._predicates.get(predicate_id)
        if predicate is None:
            result = self.push.flag(predicate_id)
            logger.debug(
                "No predicate registered for %s; push flag value is %s",
                predicate_id,
                result,
            )
        else:
            try:
                result = bool(predicate(self.push))
            except Exception:
                logger.exception(
                    "Predicate %s raised for push %s — treated as false",
                    predicate_id,
                    self.push.short(),
                )
                result = False

        self._cache[predicate_id] = result
        return result


class PushTestEvaluator:
    """Resolves predicate ids to callables and evaluates push test trees.

    Parameters
    ----------
    predicates:
        Extra predicates keyed by id.  They override the built-ins of the
        same id.
    """

    def __init__(self, predicates: Mapping[str, Predicate] | None = None) -> None:
        self._predicates: dict[str, Predicate] = dict(BUILTIN_PREDICATES)
        if predicates:
            self._predicates.update(predicates)

    @property
    def predicate_ids(self) -> list[str]:
        return sorted(self._predicates)

    def begin(self, push: PushDescription) -> EvaluationPass:
        """Start an evaluation pass whose leaf results are shared."""
        return EvaluationPass(self._predicates, push)

    def evaluate(self, test: PushTest, push: PushDescription) -> bool:
        """Evaluate a single test in a fresh pass."""
        return self.begin(push).evaluate(test)

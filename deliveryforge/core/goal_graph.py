"""Goal dependency DAG with cascade skipping.

The graph enforces:
- No goal runs unless all of its dependencies SUCCEEDED.
- When a goal fails, all transitive dependents are SKIPPED.
- Dependencies on goals outside the graph are ignored (additive contribution).
"""

from __future__ import annotations

from collections import deque

from deliveryforge.core.errors import CyclicGoalDependencyError
from deliveryforge.models.goals import Goal, GoalState


class GoalGraph:
    """Directed acyclic graph of goal dependencies.

    Built from ``Goal.depends_on`` for the goals of one goal set.  Order of
    the input goals is the tie-breaker for topological order.
    """

    def __init__(self, goals: list[Goal] | tuple[Goal, ...]) -> None:
        self._goals: dict[str, Goal] = {g.name: g for g in goals}
        self._order: dict[str, int] = {g.name: i for i, g in enumerate(goals)}
        # Forward edges: goal -> dependencies present in this graph
        self._dependencies: dict[str, list[str]] = {
            g.name: [d for d in g.depends_on if d in self._goals] for g in goals
        }
        # Reverse edges: goal -> goals that depend on it
        self._dependents: dict[str, list[str]] = {g.name: [] for g in goals}
        for name, deps in self._dependencies.items():
            for dep in deps:
                self._dependents[dep].append(name)

        self._validate_no_cycles()

    def _validate_no_cycles(self) -> None:
        """Verify the graph is a DAG using topological sort (Kahn's algorithm)."""
        in_degree = {name: len(deps) for name, deps in self._dependencies.items()}
        queue = deque(name for name, deg in in_degree.items() if deg == 0)
        visited = 0

        while queue:
            node = queue.popleft()
            visited += 1
            for dep in self._dependents.get(node, []):
                in_degree[dep] -= 1
                if in_degree[dep] == 0:
                    queue.append(dep)

        if visited != len(self._goals):
            stuck = sorted(name for name, deg in in_degree.items() if deg > 0)
            raise CyclicGoalDependencyError(
                f"Goal dependencies contain a cycle among: {', '.join(stuck)}"
            )

    # ------------------------------------------------------------------
    # Query methods
    # ------------------------------------------------------------------

    @property
    def goal_names(self) -> list[str]:
        """Return all goal names in topological order."""
        in_degree = {name: len(deps) for name, deps in self._dependencies.items()}
        queue = deque(
            sorted(
                (name for name, deg in in_degree.items() if deg == 0),
                key=self._order.__getitem__,
            )
        )
        result = []
        while queue:
            node = queue.popleft()
            result.append(node)
            for dep in sorted(self._dependents.get(node, []), key=self._order.__getitem__):
                in_degree[dep] -= 1
                if in_degree[dep] == 0:
                    queue.append(dep)
        return result

    def get_goal(self, name: str) -> Goal:
        return self._goals[name]

    def get_dependencies(self, name: str) -> list[str]:
        """Return the direct dependencies of a goal that are in the graph."""
        return list(self._dependencies.get(name, []))

    def get_dependents(self, name: str) -> list[str]:
        """Return all transitive dependents of a goal (BFS)."""
        result = []
        queue = deque(self._dependents.get(name, []))
        visited: set[str] = set()
        while queue:
            node = queue.popleft()
            if node in visited:
                continue
            visited.add(node)
            result.append(node)
            queue.extend(self._dependents.get(node, []))
        return result

    # ------------------------------------------------------------------
    # Eligibility
    # ------------------------------------------------------------------

    def are_dependencies_met(self, name: str, states: dict[str, GoalState]) -> bool:
        """Check if all dependencies of a goal SUCCEEDED."""
        return all(
            states.get(dep) == GoalState.SUCCEEDED
            for dep in self._dependencies.get(name, [])
        )

    def failed_dependencies(self, name: str, states: dict[str, GoalState]) -> list[str]:
        """Return dependencies that ended FAILED or SKIPPED."""
        return [
            dep
            for dep in self._dependencies.get(name, [])
            if states.get(dep) in (GoalState.FAILED, GoalState.SKIPPED)
        ]

    # ------------------------------------------------------------------
    # Cascade skipping
    # ------------------------------------------------------------------

    def cascade_skip(self, failed_name: str, states: dict[str, GoalState]) -> list[str]:
        """Return transitive dependents of a failed goal that are still PENDING.

        The caller transitions them to SKIPPED; states are not modified here.
        """
        return [
            name
            for name in self.get_dependents(failed_name)
            if states.get(name, GoalState.PENDING) == GoalState.PENDING
        ]

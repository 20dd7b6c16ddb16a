"""Error taxonomy for the delivery machine.

Two families matter to callers:

* ``ConfigurationError`` and its subclasses are fatal.  They surface at
  registration or resolution time and block goal set creation.
* ``GoalExecutionFailure`` and its subclasses are scoped to one goal.  The
  executor records them on the goal's outcome, cascades Skipped to
  dependents, and keeps running unrelated branches.
"""

from __future__ import annotations


class DeliveryError(RuntimeError):
    """Base class for all delivery machine errors."""


# ---------------------------------------------------------------------------
# Configuration errors (fatal)
# ---------------------------------------------------------------------------


class ConfigurationError(DeliveryError):
    """Raised when the machine is wired inconsistently.

    This error indicates the machine cannot safely plan or run goals with
    the current configuration.  It must not be caught and ignored.
    """


class CyclicGoalDependencyError(ConfigurationError):
    """Raised when a goal set's dependency edges contain a cycle."""


class GoalConflictError(ConfigurationError):
    """Raised under the strict policy when two contributors disagree on a goal."""


class DeployRuleNotFoundError(ConfigurationError):
    """Raised when no deploy rule matches a deploy-class goal for a push."""


class DuplicateExtensionPackError(ConfigurationError):
    """Raised when an extension pack name is registered twice."""


class RegistrySealedError(ConfigurationError):
    """Raised when registering into a registry that has been sealed."""


# ---------------------------------------------------------------------------
# Goal execution errors (scoped to one goal)
# ---------------------------------------------------------------------------


class GoalExecutionFailure(DeliveryError):
    """Raised by a goal action to report a domain-specific failure."""


class BuildFailure(GoalExecutionFailure):
    """Raised by a builder when the project fails to build."""


class DeployFailure(GoalExecutionFailure):
    """Raised by a deployer when the deployment itself fails."""


class VerificationTimeout(GoalExecutionFailure):
    """Raised when a deployed endpoint never became healthy within the bound.

    Distinct from ``DeployFailure``: the deployment succeeded but the
    application never came up.
    """


class ExternalToolFailure(GoalExecutionFailure):
    """Raised when an external process (scanner, CLI tool) exits non-zero."""

    def __init__(self, message: str, *, returncode: int | None = None, output: str = "") -> None:
        super().__init__(message)
        self.returncode = returncode
        self.output = output


class GoalCancelled(GoalExecutionFailure):
    """Raised inside a goal action when cancellation has been requested."""

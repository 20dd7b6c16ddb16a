"""Deployment freeze pack — the veto predicate, the explanation goal, and commands.

When a scope is frozen the ``IsDeploymentFrozen`` predicate holds, so the
production contributor (gated on ``not IsDeploymentFrozen``) contributes
nothing and the explanation goal runs in its place.
"""

from __future__ import annotations

from functools import partial

from deliveryforge.core.freeze_gate import (
    DeploymentStatusStore,
    disable_deploy,
    enable_deploy,
    is_deploy_enabled,
    is_deployment_frozen,
)
from deliveryforge.models.goals import ExplainDeploymentFreezeGoal
from deliveryforge.models.push_tests import IS_DEPLOYMENT_FROZEN
from deliveryforge.models.routing import MessageLevel
from deliveryforge.packs.registry import ExtensionPack, ListenerInvocation

ENABLE_DEPLOY = "enableDeploy"
DISABLE_DEPLOY = "disableDeploy"
IS_DEPLOY_ENABLED = "isDeployEnabled"


def _explain_freeze(call: ListenerInvocation) -> str:
    push = call.push
    scope = push.freeze_scope if push else "this scope"
    repo = push.repo_id if push else "this repository"
    call.address_channels(
        f"Deployment of {repo} is frozen for {scope}: production goals were not planned. "
        f"Run '{ENABLE_DEPLOY}' to lift the freeze.",
        level=MessageLevel.WARNING,
    )
    return f"Explained deployment freeze for {scope}"


def deployment_freeze(store: DeploymentStatusStore) -> ExtensionPack:
    """Build the freeze pack bound to *store*."""
    return ExtensionPack(
        name="deployment-freeze",
        description="Freeze production deployment per team and explain why goals are missing",
        predicates={IS_DEPLOYMENT_FROZEN: is_deployment_frozen(store)},
        goal_handlers={ExplainDeploymentFreezeGoal.name: _explain_freeze},
        commands={
            ENABLE_DEPLOY: partial(enable_deploy, store),
            DISABLE_DEPLOY: partial(disable_deploy, store),
            IS_DEPLOY_ENABLED: partial(is_deploy_enabled, store),
        },
    )

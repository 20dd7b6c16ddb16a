"""Cloud Foundry support — push reaction for newly added manifests."""

from __future__ import annotations

from deliveryforge.models.push_tests import AddedCloudFoundryManifest
from deliveryforge.packs.registry import (
    ExtensionPack,
    ListenerInvocation,
    PushReactionRegistration,
)


def _announce_deploy_enabled(call: ListenerInvocation) -> None:
    push = call.push
    if push is None:
        return
    call.address_channels(
        f"Cloud Foundry manifest added to {push.repo_id}: "
        f"pushes to {push.default_branch} will now be deployed"
    )


EnableDeployOnCloudFoundryManifestAddition = PushReactionRegistration(
    name="Enable deploy on Cloud Foundry manifest addition",
    push_test=AddedCloudFoundryManifest,
    action=_announce_deploy_enabled,
)

CloudFoundrySupport = ExtensionPack(
    name="cloud-foundry",
    description="Cloud Foundry manifest reactions",
    push_reactions=(EnableDeployOnCloudFoundryManifestAddition,),
)

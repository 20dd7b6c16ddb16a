"""Extension packs — optional capability bundles registered at bootstrap."""

from deliveryforge.packs.registry import (
    ArtifactListenerRegistration,
    CodeInspection,
    ExtensionPack,
    ExtensionPackRegistry,
    ListenerInvocation,
    PushReactionRegistration,
    RegistrySnapshot,
)

__all__ = [
    "ArtifactListenerRegistration",
    "CodeInspection",
    "ExtensionPack",
    "ExtensionPackRegistry",
    "ListenerInvocation",
    "PushReactionRegistration",
    "RegistrySnapshot",
]

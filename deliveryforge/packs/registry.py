"""Extension pack registry — bundles of optional capability, registered once.

An extension pack contributes any mix of goal contributors, deploy rules,
push test predicates, goal handlers, code inspections, artifact listeners,
push reactions, and supporting commands.  Once registered those become part
of the machine's shared configuration; the pack owns none of them.

Lifecycle
---------
Packs are registered during process bootstrap.  ``seal()`` then produces an
immutable ``RegistrySnapshot`` and further registration raises
``RegistrySealedError``.  Registering the same pack name twice raises
``DuplicateExtensionPackError`` — duplicates are treated as a wiring mistake
rather than silently ignored.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field

from deliveryforge.core.errors import (
    ConfigurationError,
    DuplicateExtensionPackError,
    RegistrySealedError,
)
from deliveryforge.models.deploy import ArtifactRef, DeployRule
from deliveryforge.models.goals import GoalContributor
from deliveryforge.models.push import PushDescription
from deliveryforge.models.push_tests import AnyPush, PushTest
from deliveryforge.models.routing import MessageLevel

if TYPE_CHECKING:
    from deliveryforge.core.executor import GoalInvocation
    from deliveryforge.routing.dispatcher import ChannelDispatcher

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Listener plumbing
# ---------------------------------------------------------------------------


class ListenerInvocation:
    """What goal handlers and listeners receive.

    Wraps the running goal's invocation with the push, the artifact built
    earlier in the run (if any), and a fire-and-forget channel notifier.
    """

    def __init__(
        self,
        invocation: GoalInvocation,
        dispatcher: ChannelDispatcher,
        artifact: ArtifactRef | None = None,
    ) -> None:
        self.invocation = invocation
        self.artifact = artifact
        self._dispatcher = dispatcher

    @property
    def push(self) -> PushDescription | None:
        return self.invocation.push

    @property
    def goal_name(self) -> str:
        return self.invocation.goal.name

    def raise_if_cancelled(self) -> None:
        self.invocation.raise_if_cancelled()

    def address_channels(self, text: str, level: MessageLevel = MessageLevel.INFO) -> None:
        self._dispatcher.address_channels(
            text, push=self.push, goal=self.goal_name, level=level
        )


GoalHandler = Callable[[ListenerInvocation], "str | None"]
ListenerAction = Callable[[ListenerInvocation], None]


class ArtifactListenerRegistration(BaseModel):
    """Runs after an artifact is produced, when its push test matches.

    A listener that raises fails the artifact goal; the machine reports the
    failure to channels.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str
    action: Any  # ListenerAction
    push_test: PushTest = AnyPush


class PushReactionRegistration(BaseModel):
    """Runs as part of the PushReaction goal when its push test matches."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str
    action: Any  # ListenerAction
    push_test: PushTest = AnyPush


class CodeInspection(BaseModel):
    """Inspects a push and returns review comments (empty means clean)."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str
    inspect: Any  # Callable[[PushDescription], list[str]]
    push_test: PushTest = AnyPush


# ---------------------------------------------------------------------------
# Extension pack model
# ---------------------------------------------------------------------------


class ExtensionPack(BaseModel):
    """Immutable bundle of capabilities contributed to a machine.

    Identity is ``name``.

    Examples
    --------
    >>> pack = ExtensionPack(name="demo", description="Does nothing")
    >>> pack.contributors
    ()
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str
    version: str = "0.1.0"
    description: str = ""
    contributors: tuple[GoalContributor, ...] = ()
    deploy_rules: tuple[DeployRule, ...] = ()
    predicates: dict[str, Any] = Field(default_factory=dict)  # id -> Predicate
    goal_handlers: dict[str, Any] = Field(default_factory=dict)  # goal name -> GoalHandler
    inspections: tuple[CodeInspection, ...] = ()
    artifact_listeners: tuple[ArtifactListenerRegistration, ...] = ()
    push_reactions: tuple[PushReactionRegistration, ...] = ()
    commands: dict[str, Any] = Field(default_factory=dict)  # command name -> callable


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------


def _merge_unique(packs: tuple[ExtensionPack, ...], attr: str, what: str) -> dict[str, Any]:
    merged: dict[str, Any] = {}
    owners: dict[str, str] = {}
    for pack in packs:
        for key, value in getattr(pack, attr).items():
            if key in merged:
                raise ConfigurationError(
                    f"{what} '{key}' is provided by both '{owners[key]}' and '{pack.name}'"
                )
            merged[key] = value
            owners[key] = pack.name
    return merged


class RegistrySnapshot(BaseModel):
    """Read-only view of every registered pack, in registration order."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    packs: tuple[ExtensionPack, ...] = ()

    @property
    def pack_names(self) -> list[str]:
        return [p.name for p in self.packs]

    @property
    def contributors(self) -> tuple[GoalContributor, ...]:
        return tuple(c for p in self.packs for c in p.contributors)

    @property
    def deploy_rules(self) -> tuple[DeployRule, ...]:
        return tuple(r for p in self.packs for r in p.deploy_rules)

    @property
    def inspections(self) -> tuple[CodeInspection, ...]:
        return tuple(i for p in self.packs for i in p.inspections)

    @property
    def artifact_listeners(self) -> tuple[ArtifactListenerRegistration, ...]:
        return tuple(a for p in self.packs for a in p.artifact_listeners)

    @property
    def push_reactions(self) -> tuple[PushReactionRegistration, ...]:
        return tuple(r for p in self.packs for r in p.push_reactions)

    @property
    def predicates(self) -> dict[str, Any]:
        return _merge_unique(self.packs, "predicates", "Predicate")

    @property
    def goal_handlers(self) -> dict[str, Any]:
        return _merge_unique(self.packs, "goal_handlers", "Goal handler")

    @property
    def commands(self) -> dict[str, Any]:
        return _merge_unique(self.packs, "commands", "Command")


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class ExtensionPackRegistry:
    """Collects extension packs during bootstrap, then seals.

    Thread-safe; reads after sealing go through the immutable snapshot.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._packs: dict[str, ExtensionPack] = {}
        self._snapshot: RegistrySnapshot | None = None

    def register(self, pack: ExtensionPack) -> None:
        """Add a pack.

        Raises
        ------
        DuplicateExtensionPackError
            If a pack with the same name is already registered.
        RegistrySealedError
            If the registry has been sealed.
        """
        with self._lock:
            if self._snapshot is not None:
                raise RegistrySealedError(
                    f"Cannot register extension pack '{pack.name}': registry is sealed"
                )
            if pack.name in self._packs:
                raise DuplicateExtensionPackError(
                    f"Extension pack '{pack.name}' is already registered"
                )
            self._packs[pack.name] = pack
        logger.info("Registered extension pack %s v%s", pack.name, pack.version)

    def register_all(self, *packs: ExtensionPack) -> None:
        for pack in packs:
            self.register(pack)

    def seal(self) -> RegistrySnapshot:
        """Freeze the registry and return its snapshot.  Idempotent.

        Raises
        ------
        ConfigurationError
            If two packs provide the same predicate, goal handler, or command.
        """
        with self._lock:
            if self._snapshot is None:
                snapshot = RegistrySnapshot(packs=tuple(self._packs.values()))
                # Surface overlapping keys at startup rather than on first use
                snapshot.predicates
                snapshot.goal_handlers
                snapshot.commands
                self._snapshot = snapshot
                logger.info(
                    "Extension pack registry sealed with %d pack(s): %s",
                    len(snapshot.packs),
                    ", ".join(snapshot.pack_names) or "-",
                )
            return self._snapshot

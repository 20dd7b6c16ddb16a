"""Deployment freeze gate — per-scope frozen flag and the push test that reads it.

The store is a handle created at bootstrap and injected into whatever needs
it (the ``IsDeploymentFrozen`` predicate and the enable/disable commands).
A scope that has never been set is unfrozen.

Two stores are provided:

* ``InMemoryDeploymentStatusStore`` — process lifetime, lock-guarded dict.
* ``FileDeploymentStatusStore`` — JSON file, so separate CLI invocations
  share state.  Read, update and replace all happen under a ``FileLock`` on
  ``<path>.lock``, so concurrent writers in different processes never lose
  each other's changes.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Protocol, runtime_checkable

from filelock import FileLock

from deliveryforge.core.push_test_evaluator import Predicate
from deliveryforge.models.push import PushDescription

logger = logging.getLogger(__name__)


@runtime_checkable
class DeploymentStatusStore(Protocol):
    """Get/set the frozen flag by scope key."""

    def is_frozen(self, scope: str) -> bool:
        ...

    def set_frozen(self, scope: str, frozen: bool) -> None:
        ...


class InMemoryDeploymentStatusStore:
    """Deployment status held in memory for the life of the process.

    Single-writer / multi-reader: every access takes the lock, so a write
    is atomic with respect to concurrent reads.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._frozen: dict[str, bool] = {}

    def is_frozen(self, scope: str) -> bool:
        with self._lock:
            return self._frozen.setdefault(scope, False)

    def set_frozen(self, scope: str, frozen: bool) -> None:
        with self._lock:
            self._frozen[scope] = frozen
        logger.info("Deployment for scope '%s' is now %s", scope, "frozen" if frozen else "enabled")

    def scopes(self) -> dict[str, bool]:
        with self._lock:
            return dict(self._frozen)


class FileDeploymentStatusStore:
    """Deployment status persisted to a JSON file.

    Writers hold ``FileLock(<path>.lock)`` from read to replace, so updates
    from separate processes are serialised.  Readers take no lock: the file
    is only ever swapped in whole by ``os.replace``.

    Parameters
    ----------
    path:
        Path to the status file.  Created on first write.
    """

    def __init__(self, path: Path = Path(".deliveryforge/deploy-status.json")) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def _lock(self) -> FileLock:
        return FileLock(str(self._path) + ".lock")

    def _read(self) -> dict[str, bool]:
        if not self._path.exists():
            return {}
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            logger.exception("Failed to read deployment status from %s", self._path)
            return {}
        return {str(k): bool(v) for k, v in raw.items()}

    def _write(self, data: dict[str, bool]) -> None:
        # Caller holds the file lock
        with tempfile.NamedTemporaryFile(
            "w", encoding="utf-8", dir=self._path.parent, suffix=".tmp", delete=False
        ) as fh:
            fh.write(json.dumps(data, indent=2, sort_keys=True))
            fh.flush()
            os.fsync(fh.fileno())
            tmp = Path(fh.name)
        os.replace(tmp, self._path)

    def is_frozen(self, scope: str) -> bool:
        return self._read().get(scope, False)

    def set_frozen(self, scope: str, frozen: bool) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._lock():
            data = self._read()
            data[scope] = frozen
            self._write(data)
        logger.info("Deployment for scope '%s' is now %s", scope, "frozen" if frozen else "enabled")

    def scopes(self) -> dict[str, bool]:
        return self._read()


def is_deployment_frozen(store: DeploymentStatusStore) -> Predicate:
    """Return the ``IsDeploymentFrozen`` predicate bound to *store*."""

    def _predicate(push: PushDescription) -> bool:
        return store.is_frozen(push.freeze_scope)

    return _predicate


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def enable_deploy(store: DeploymentStatusStore, scope: str) -> str:
    """Lift the freeze for *scope*."""
    store.set_frozen(scope, False)
    return f"Deployment enabled for {scope}"


def disable_deploy(store: DeploymentStatusStore, scope: str) -> str:
    """Freeze deployment for *scope*."""
    store.set_frozen(scope, True)
    return f"Deployment disabled (frozen) for {scope}"


def is_deploy_enabled(store: DeploymentStatusStore, scope: str) -> bool:
    return not store.is_frozen(scope)

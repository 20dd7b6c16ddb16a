"""External capability protocols — builders, deployers, targeters, verifiers.

The delivery machine never builds or deploys anything itself.  It calls
out to collaborators that satisfy these Protocols:

* ``Builder.build(push) -> ArtifactRef`` (raises ``BuildFailure``)
* ``Targeter.target_for(goal, push) -> DeploymentTarget``
* ``Deployer.deploy(artifact, target) -> DeploymentHandle`` (raises ``DeployFailure``)
* ``Deployer.undeploy(target) -> None``
* ``EndpointVerifier.verify(handle) -> bool``

Default implementations here are lightweight: a port-allocating targeter,
an HTTP root verifier, and simulated builder/deployer backends for the CLI
and for development.  Production wires real backends via the machine
factory.
"""

from __future__ import annotations

import logging
import threading
import uuid
from pathlib import Path
from typing import Protocol, runtime_checkable

import httpx

from deliveryforge.core.errors import DeployFailure
from deliveryforge.models.deploy import ArtifactRef, DeploymentHandle, DeploymentTarget
from deliveryforge.models.goals import Goal
from deliveryforge.models.push import PushDescription

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------


@runtime_checkable
class Builder(Protocol):
    """Builds the project behind a push into a deployable artifact."""

    def build(self, push: PushDescription) -> ArtifactRef:
        ...


@runtime_checkable
class Targeter(Protocol):
    """Chooses where a deploy goal puts the artifact."""

    def target_for(self, goal: Goal, push: PushDescription) -> DeploymentTarget:
        ...


@runtime_checkable
class Deployer(Protocol):
    """Deploys artifacts to targets and tears them down again."""

    def deploy(self, artifact: ArtifactRef, target: DeploymentTarget) -> DeploymentHandle:
        ...

    def undeploy(self, target: DeploymentTarget) -> None:
        ...


@runtime_checkable
class EndpointVerifier(Protocol):
    """Checks whether a deployed endpoint is healthy.  One probe per call."""

    def verify(self, handle: DeploymentHandle) -> bool:
        ...


# ---------------------------------------------------------------------------
# Default implementations
# ---------------------------------------------------------------------------


class ManagedDeploymentTargeter:
    """Targets one local instance per repository and branch.

    Each (repo, branch) pair gets a stable port, allocated upward from
    ``base_port`` the first time it is targeted.

    Parameters
    ----------
    environment:
        Environment name recorded on every target, e.g. ``"staging"``.
    base_port:
        First port handed out.
    """

    def __init__(self, environment: str = "staging", base_port: int = 8080) -> None:
        self.environment = environment
        self._base_port = base_port
        self._lock = threading.Lock()
        self._ports: dict[tuple[str, str], int] = {}

    def port_for(self, push: PushDescription) -> int:
        key = (push.repo_id, push.branch)
        with self._lock:
            if key not in self._ports:
                self._ports[key] = self._base_port + len(self._ports)
            return self._ports[key]

    def target_for(self, goal: Goal, push: PushDescription) -> DeploymentTarget:
        port = self.port_for(push)
        return DeploymentTarget(
            environment=self.environment,
            name=f"{push.repo}-{push.branch}",
            description=f"{goal.label} of {push.repo_id} on port {port}",
            options={"port": port, "host": "localhost"},
        )


class HttpRootVerifier:
    """Looks for HTTP 200 on a GET of the endpoint root.

    Any transport error counts as "not healthy yet" so the deploy rule
    engine keeps polling until its timeout.
    """

    def __init__(self, request_timeout: float = 5.0) -> None:
        self._request_timeout = request_timeout

    def verify(self, handle: DeploymentHandle) -> bool:
        if not handle.endpoint:
            logger.warning("Deployment %s has no endpoint to verify", handle.target.name)
            return False
        url = handle.endpoint.rstrip("/") + "/"
        try:
            response = httpx.get(url, timeout=self._request_timeout, follow_redirects=True)
        except httpx.HTTPError as exc:
            logger.debug("GET %s failed: %s", url, exc)
            return False
        logger.debug("GET %s returned %d", url, response.status_code)
        return response.status_code == 200


def look_for_200_on_endpoint_root_get(request_timeout: float = 5.0) -> HttpRootVerifier:
    """Endpoint verification listener used by the Cloud Foundry machine."""
    return HttpRootVerifier(request_timeout=request_timeout)


class SimulatedBuilder:
    """Pretends to build: returns an artifact reference without running tools."""

    def build(self, push: PushDescription) -> ArtifactRef:
        cwd = push.cwd or Path(".")
        logger.info("Simulated build of %s", push.short())
        return ArtifactRef(
            name=push.repo,
            version=push.sha[:7],
            filename=f"{push.repo}-{push.sha[:7]}.jar",
            cwd=cwd,
        )


class SimulatedDeployer:
    """Pretends to deploy: records deployments in memory.

    Parameters
    ----------
    fail_deploy:
        When True, every deploy raises ``DeployFailure``.
    """

    def __init__(self, fail_deploy: bool = False) -> None:
        self.fail_deploy = fail_deploy
        self._lock = threading.Lock()
        self.deployed: dict[str, DeploymentHandle] = {}

    def deploy(self, artifact: ArtifactRef, target: DeploymentTarget) -> DeploymentHandle:
        if self.fail_deploy:
            raise DeployFailure(f"Simulated deploy of {artifact.filename} to {target.name} failed")
        port = target.options.get("port", 8080)
        host = target.options.get("host", "localhost")
        handle = DeploymentHandle(
            target=target,
            endpoint=f"http://{host}:{port}",
            deployment_id=uuid.uuid4().hex[:12],
        )
        with self._lock:
            self.deployed[target.name] = handle
        logger.info("Simulated deploy of %s to %s", artifact.filename, target.name)
        return handle

    def undeploy(self, target: DeploymentTarget) -> None:
        with self._lock:
            self.deployed.pop(target.name, None)
        logger.info("Simulated undeploy of %s", target.name)


class AlwaysHealthyVerifier:
    """Verifier that reports every endpoint healthy."""

    def verify(self, handle: DeploymentHandle) -> bool:
        return True

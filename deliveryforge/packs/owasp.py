"""OWASP dependency check — scans built artifacts for vulnerable dependencies.

Runs the external ``dependency-check`` CLI in the artifact's working
directory.  A scanner failure raises ``ExternalToolFailure``, which fails
the artifact goal and is reported to channels.
"""

from __future__ import annotations

import logging
import shlex
import subprocess

from deliveryforge.core.errors import ExternalToolFailure
from deliveryforge.models.push_tests import ToDefaultBranch
from deliveryforge.packs.registry import (
    ArtifactListenerRegistration,
    ExtensionPack,
    ListenerInvocation,
)

logger = logging.getLogger(__name__)


class DependencyCheckListener:
    """Artifact listener that shells out to OWASP dependency-check.

    Parameters
    ----------
    command:
        Scanner executable (may include extra leading arguments).
    timeout:
        Seconds before the scan is abandoned.
    """

    def __init__(self, command: str = "dependency-check", timeout: float = 600.0) -> None:
        self._command = command
        self._timeout = timeout

    def build_command(self, project: str, filename: str) -> list[str]:
        return [
            *shlex.split(self._command),
            "--project",
            project,
            "--out",
            ".",
            "--scan",
            filename,
            "-f",
            "JSON",
        ]

    def __call__(self, call: ListenerInvocation) -> None:
        artifact = call.artifact
        if artifact is None:
            logger.info("No artifact to scan for %s", call.goal_name)
            return

        argv = self.build_command(artifact.name, artifact.filename)
        logger.info("Running %s in %s", " ".join(argv), artifact.cwd)
        try:
            result = subprocess.run(
                argv,
                cwd=artifact.cwd,
                capture_output=True,
                text=True,
                timeout=self._timeout,
            )
        except (subprocess.SubprocessError, OSError) as exc:
            raise ExternalToolFailure(f"Dependency check could not run: {exc}") from exc

        if result.returncode != 0:
            output = (result.stderr or result.stdout).strip()
            raise ExternalToolFailure(
                f"Dependency check failed with exit code {result.returncode}",
                returncode=result.returncode,
                output=output,
            )
        call.address_channels("Dependency check success")


def owasp_dependency_check(command: str = "dependency-check", timeout: float = 600.0) -> ExtensionPack:
    """Build the pack that scans artifacts built from the default branch."""
    return ExtensionPack(
        name="owasp-dependency-check",
        description="Scan built artifacts with OWASP dependency-check",
        artifact_listeners=(
            ArtifactListenerRegistration(
                name="OWASP dependency check",
                push_test=ToDefaultBranch,
                action=DependencyCheckListener(command, timeout),
            ),
        ),
    )

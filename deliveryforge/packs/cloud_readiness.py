"""Cloud readiness checks — inspections run by the Checks goal."""

from __future__ import annotations

from deliveryforge.models.push import PushDescription
from deliveryforge.models.push_tests import HasSpringBootApplicationClass
from deliveryforge.packs.registry import CodeInspection, ExtensionPack

# Push flags set by the source-control listener when it scans changed files
HARD_CODED_IP_FLAG = "HasHardCodedIpAddress"
SYSTEM_EXIT_FLAG = "CallsSystemExit"


def _manifest_present(push: PushDescription) -> list[str]:
    if push.has_cloud_foundry_manifest:
        return []
    return ["Spring Boot application has no Cloud Foundry manifest (manifest.yml)"]


def _no_hard_coded_ips(push: PushDescription) -> list[str]:
    if push.flag(HARD_CODED_IP_FLAG):
        return ["Hard-coded IP address found; read it from configuration instead"]
    return []


def _no_system_exit(push: PushDescription) -> list[str]:
    if push.flag(SYSTEM_EXIT_FLAG):
        return ["System.exit() call found; let the platform manage the process lifecycle"]
    return []


CloudReadinessChecks = ExtensionPack(
    name="cloud-readiness",
    description="Inspections that flag code unlikely to run well on a cloud platform",
    inspections=(
        CodeInspection(
            name="Cloud Foundry manifest",
            inspect=_manifest_present,
            push_test=HasSpringBootApplicationClass,
        ),
        CodeInspection(name="No hard-coded IP addresses", inspect=_no_hard_coded_ips),
        CodeInspection(name="No System.exit", inspect=_no_system_exit),
    ),
)

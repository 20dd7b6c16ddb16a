"""Deliveryforge: goal-driven delivery and deployment for pushes.

A push is matched against goal contributors to produce a goal set; the goal
set runs as a dependency-ordered pipeline; deploy rules pick the deployer
for each deployment goal; a per-team freeze vetoes production deployment.
"""

__version__ = "0.1.0"
__description__ = "Goal contribution and deployment orchestration for software delivery"

from deliveryforge.core.machine import SoftwareDeliveryMachine
from deliveryforge.machines.additive_cloud_foundry import additive_cloud_foundry_machine
from deliveryforge.cli.app import app as cli

__all__ = ["SoftwareDeliveryMachine", "additive_cloud_foundry_machine", "cli", "__version__"]

"""Ready-made delivery machine configurations."""

from deliveryforge.machines.additive_cloud_foundry import additive_cloud_foundry_machine

__all__ = ["additive_cloud_foundry_machine"]

"""Runtime configuration — env-driven via pydantic-settings.

Reads from a .env file and DELIVERYFORGE_* environment variables.
"""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

from deliveryforge.core.resolver import GoalConflictPolicy


class DeliveryConfig(BaseSettings):
    """Delivery machine configuration with environment variable overrides.

    Examples
    --------
    Override via environment::

        export DELIVERYFORGE_ENVIRONMENT=staging
        export DELIVERYFORGE_LOG_LEVEL=DEBUG
        export DELIVERYFORGE_GOAL_CONFLICT_POLICY=strict

    Or via .env file::

        DELIVERYFORGE_STAGING_ENABLED=false
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="DELIVERYFORGE_",
        env_file_encoding="utf-8",
    )

    # Logging
    log_level: str = "INFO"

    # Storage paths
    freeze_store_path: Path = Path(".deliveryforge/deploy-status.json")
    events_path: Path = Path(".deliveryforge/channels")

    # Execution
    max_concurrent_goals: int = 4
    verification_timeout_seconds: float = 60.0
    verification_poll_interval_seconds: float = 2.0
    goal_conflict_policy: GoalConflictPolicy = GoalConflictPolicy.FIRST_WINS

    # Machine wiring
    staging_enabled: bool = True
    dependency_check_enabled: bool = False
    dependency_check_command: str = "dependency-check"


# Module-level singleton; import as `from deliveryforge.config import config`
config = DeliveryConfig()

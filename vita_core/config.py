# vita_core/config.py

from __future__ import annotations
from dataclasses import dataclass, field
import os

from .constants import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_COMPUTATION_TIMEOUT_S,
    DEFAULT_PRIVATE_MIN_COLLATERAL,
    DEFAULT_RETRY_ATTEMPTS,
    DEFAULT_RETRY_BACKOFF_S,
)
from .models import Algorithm, PrivacyLevel


@dataclass
class MXEConfiguration:
    """Multi-party execution environment settings."""
    number_of_parties: int = 3
    threshold: int = 2
    computation_timeout: float = DEFAULT_COMPUTATION_TIMEOUT_S
    retry_attempts: int = DEFAULT_RETRY_ATTEMPTS
    retry_backoff: float = DEFAULT_RETRY_BACKOFF_S
    priority_fee_strategy: str = "fixed"   # fixed | dynamic

    def __post_init__(self):
        if self.threshold > self.number_of_parties:
            raise ValueError("MXE threshold cannot exceed number of parties")
        if self.retry_attempts < 0:
            raise ValueError("retry_attempts cannot be negative")
        if self.priority_fee_strategy not in ("fixed", "dynamic"):
            raise ValueError(f"Unknown priority fee strategy: {self.priority_fee_strategy}")


@dataclass
class PrivacyConfig:
    default_privacy_level: PrivacyLevel = PrivacyLevel.CONFIDENTIAL
    encryption_algorithm: Algorithm = Algorithm.AES_256
    enable_liquidation_protection: bool = True
    enable_health_monitoring: bool = True
    computation_timeout: float = DEFAULT_COMPUTATION_TIMEOUT_S
    batch_computation_size: int = DEFAULT_BATCH_SIZE
    private_min_collateral: int = DEFAULT_PRIVATE_MIN_COLLATERAL
    mxe: MXEConfiguration = field(default_factory=MXEConfiguration)


def _flag(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).lower() in ("1", "true", "yes", "on")


def load_privacy_config(config: dict | None = None) -> PrivacyConfig:
    """
    Resolve the runtime privacy configuration.

    Explicit dict values win over VITA_* environment variables, which win
    over the package defaults.
    """
    config = config or {}

    def pick(key: str, env: str, default):
        if key in config and config[key] is not None:
            return config[key]
        return os.getenv(env, default)

    level = pick("default_privacy_level", "VITA_DEFAULT_PRIVACY_LEVEL", PrivacyLevel.CONFIDENTIAL)
    if isinstance(level, str) and not level.isdigit():
        level = PrivacyLevel[level.upper()]

    mxe = MXEConfiguration(
        number_of_parties=int(pick("mxe_parties", "VITA_MXE_PARTIES", 3)),
        threshold=int(pick("mxe_threshold", "VITA_MXE_THRESHOLD", 2)),
        computation_timeout=float(pick("computation_timeout", "VITA_COMPUTATION_TIMEOUT", DEFAULT_COMPUTATION_TIMEOUT_S)),
        retry_attempts=int(pick("retry_attempts", "VITA_RETRY_ATTEMPTS", DEFAULT_RETRY_ATTEMPTS)),
        retry_backoff=float(pick("retry_backoff", "VITA_RETRY_BACKOFF", DEFAULT_RETRY_BACKOFF_S)),
        priority_fee_strategy=str(pick("priority_fee_strategy", "VITA_PRIORITY_FEE_STRATEGY", "fixed")).lower(),
    )

    return PrivacyConfig(
        default_privacy_level=PrivacyLevel(int(level)),
        encryption_algorithm=Algorithm(pick("encryption_algorithm", "VITA_ENCRYPTION_ALGORITHM", Algorithm.AES_256)),
        enable_liquidation_protection=_flag(pick("enable_liquidation_protection", "VITA_LIQUIDATION_PROTECTION", True)),
        enable_health_monitoring=_flag(pick("enable_health_monitoring", "VITA_HEALTH_MONITORING", True)),
        computation_timeout=mxe.computation_timeout,
        batch_computation_size=int(pick("batch_computation_size", "VITA_BATCH_SIZE", DEFAULT_BATCH_SIZE)),
        private_min_collateral=int(pick("private_min_collateral", "VITA_PRIVATE_MIN_COLLATERAL", DEFAULT_PRIVATE_MIN_COLLATERAL)),
        mxe=mxe,
    )

"""
vita_core.policy
----------------
Privacy policy checks for collateral/debt/privacy-level combinations.

Hard constraints go to `errors` and make the result invalid. Advisory
constraints go to `warnings` only; they never flip `valid`.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import List

from .constants import DEFAULT_PRIVATE_MIN_COLLATERAL
from .errors import ValidationError
from .models import PrivacyLevel

_DESCRIPTIONS = {
    PrivacyLevel.PUBLIC: "Public - All transaction data is visible on-chain",
    PrivacyLevel.SHIELDED: "Shielded - Balance amounts are encrypted",
    PrivacyLevel.CONFIDENTIAL: "Confidential - Balance and transaction amounts are encrypted",
    PrivacyLevel.PRIVATE: "Private - Complete position privacy with encrypted computations",
}


def describe_level(level) -> str:
    try:
        return _DESCRIPTIONS[PrivacyLevel(level)]
    except ValueError:
        return "Unknown privacy level"


@dataclass
class ValidationResult:
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors


class PrivacyPolicyValidator:
    def __init__(self, private_min_collateral: int = DEFAULT_PRIVATE_MIN_COLLATERAL):
        self.private_min_collateral = private_min_collateral

    def validate(self, collateral: int, debt: int, level) -> ValidationResult:
        result = ValidationResult()
        level = PrivacyLevel(level)

        if collateral <= 0:
            result.errors.append("Collateral amount must be greater than 0")
        if debt < 0:
            result.errors.append("Debt amount cannot be negative")

        if level >= PrivacyLevel.CONFIDENTIAL and debt == 0:
            result.warnings.append("Confidential privacy level with zero debt hides nothing beyond collateral")
        if level >= PrivacyLevel.PRIVATE and collateral < self.private_min_collateral:
            result.warnings.append(
                f"Private privacy level recommends at least {self.private_min_collateral} collateral units"
            )

        return result

    def require_valid(self, collateral: int, debt: int, level, position_id: str = None) -> ValidationResult:
        result = self.validate(collateral, debt, level)
        if not result.valid:
            raise ValidationError("; ".join(result.errors), errors=result.errors,
                                  operation="validate", position_id=position_id)
        return result

"""
vita_core.models
----------------
Data model for encrypted positions and confidential computations.

EncryptedData is the wire shape owned by this package: ciphertext, key, nonce
and algorithm must always travel together, losing the key or nonce makes the
ciphertext unrecoverable.
"""

from __future__ import annotations
from dataclasses import dataclass, field, asdict
from enum import Enum, IntEnum
from typing import Any, ClassVar, Dict, List, Optional, Tuple

from .errors import ValidationError
from .utils import b64e, b64d, now_ms


class PrivacyLevel(IntEnum):
    PUBLIC = 0        # fully transparent
    SHIELDED = 1      # balance privacy only
    CONFIDENTIAL = 2  # transaction + balance privacy
    PRIVATE = 3       # complete position privacy


class Algorithm(str, Enum):
    AES_128 = "AES-128"
    AES_256 = "AES-256"

    @property
    def key_size(self) -> int:
        return 16 if self is Algorithm.AES_128 else 32


class ComputationKind(str, Enum):
    """Closed set of computation kinds; also the result kind tag on finalization."""
    HEALTH_FACTOR = "health_factor"
    LIQUIDATION_CHECK = "liquidation_check"
    INTEREST_CALCULATION = "interest_calculation"
    BALANCE_TRANSFER = "balance_transfer"

    @property
    def default_circuit(self) -> str:
        return f"{self.value}_v1"


class ComputationState(str, Enum):
    PENDING = "pending"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ComputationState.COMPLETED, ComputationState.FAILED)


class MigrationStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class PrivacyEventType(str, Enum):
    POSITION_CREATED = "POSITION_CREATED"
    HEALTH_COMPUTED = "HEALTH_COMPUTED"
    LIQUIDATION_TRIGGERED = "LIQUIDATION_TRIGGERED"
    TRANSACTION_PROCESSED = "TRANSACTION_PROCESSED"


@dataclass(frozen=True)
class EncryptedData:
    ciphertext: bytes
    key: bytes
    nonce: bytes
    algorithm: Algorithm = Algorithm.AES_256

    def to_dict(self) -> Dict[str, str]:
        return {
            "ciphertext": b64e(self.ciphertext),
            "key": b64e(self.key),
            "nonce": b64e(self.nonce),
            "algorithm": self.algorithm.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, str]) -> "EncryptedData":
        return cls(
            ciphertext=b64d(data["ciphertext"]),
            key=b64d(data["key"]),
            nonce=b64d(data["nonce"]),
            algorithm=Algorithm(data["algorithm"]),
        )


@dataclass(frozen=True)
class EncryptedPosition:
    position_id: str
    owner: str
    encrypted_collateral: EncryptedData
    encrypted_debt: EncryptedData
    position_key: bytes
    privacy_level: PrivacyLevel = PrivacyLevel.CONFIDENTIAL
    encrypted_owner: Optional[EncryptedData] = None
    created_at: int = field(default_factory=now_ms)
    last_updated: int = field(default_factory=now_ms)

    def encrypted_fields(self) -> Dict[str, EncryptedData]:
        fields = {
            "collateral": self.encrypted_collateral,
            "debt": self.encrypted_debt,
        }
        if self.encrypted_owner is not None:
            fields["owner"] = self.encrypted_owner
        return fields

    def to_dict(self) -> Dict[str, Any]:
        return {
            "position_id": self.position_id,
            "owner": self.owner,
            "encrypted_collateral": self.encrypted_collateral.to_dict(),
            "encrypted_debt": self.encrypted_debt.to_dict(),
            "encrypted_owner": self.encrypted_owner.to_dict() if self.encrypted_owner else None,
            "position_key": b64e(self.position_key),
            "privacy_level": int(self.privacy_level),
            "created_at": self.created_at,
            "last_updated": self.last_updated,
        }


@dataclass(frozen=True)
class ComputationKey:
    position_id: str
    kind: ComputationKind

    def __str__(self) -> str:
        return f"{self.position_id}-{self.kind.value}"


@dataclass(frozen=True)
class ComputationReference:
    computation_offset: int
    priority_fee: int = 0
    accounts: Tuple[str, ...] = ()

    @property
    def computation_id(self) -> str:
        return str(self.computation_offset)


@dataclass
class ComputationStatus:
    computation_id: Optional[str] = None
    status: ComputationState = ComputationState.PENDING
    progress: int = 0
    start_time: int = field(default_factory=now_ms)
    end_time: Optional[int] = None
    error: Optional[str] = None
    result: Any = None


@dataclass
class ComputationConfig:
    """
    One confidential computation request. Inputs are ciphertexts only;
    plaintext never leaves this process.
    """
    kind: ComputationKind
    inputs: List[EncryptedData]
    position_id: str
    circuit_id: Optional[str] = None
    priority_fee: int = 0
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self.kind = ComputationKind(self.kind)
        if not self.inputs:
            raise ValidationError("computation requires at least one encrypted input",
                                  operation="submit", position_id=self.position_id)
        for item in self.inputs:
            if not isinstance(item, EncryptedData):
                raise ValidationError(f"computation inputs must be EncryptedData, got {type(item).__name__}",
                                      operation="submit", position_id=self.position_id)
        if self.priority_fee < 0:
            raise ValidationError("priority fee cannot be negative",
                                  operation="submit", position_id=self.position_id)
        if not self.circuit_id:
            self.circuit_id = self.kind.default_circuit

    @property
    def key(self) -> ComputationKey:
        return ComputationKey(self.position_id, self.kind)


@dataclass(frozen=True)
class PrivacyLevelMigration:
    position_id: str
    from_level: PrivacyLevel
    to_level: PrivacyLevel
    migration_proof: bytes
    timestamp: int = field(default_factory=now_ms)
    status: MigrationStatus = MigrationStatus.PENDING
    error: Optional[str] = None


# --------- Computation results (one per ComputationKind) ----------

@dataclass(frozen=True)
class ComputationResult:
    kind: ClassVar[ComputationKind]

    computation_id: str
    position_id: str
    computed_at: int
    proof: bytes


@dataclass(frozen=True)
class HealthFactorResult(ComputationResult):
    kind: ClassVar[ComputationKind] = ComputationKind.HEALTH_FACTOR

    health_factor: bytes
    is_liquidatable: bool
    liquidation_threshold: bytes


@dataclass(frozen=True)
class LiquidationCheckResult(ComputationResult):
    kind: ClassVar[ComputationKind] = ComputationKind.LIQUIDATION_CHECK

    health_factor: bytes
    is_liquidatable: bool
    liquidation_threshold: bytes


@dataclass(frozen=True)
class InterestCalculationResult(ComputationResult):
    kind: ClassVar[ComputationKind] = ComputationKind.INTEREST_CALCULATION

    accrued_interest: bytes


@dataclass(frozen=True)
class BalanceTransferResult(ComputationResult):
    kind: ClassVar[ComputationKind] = ComputationKind.BALANCE_TRANSFER

    transfer_receipt: bytes


# --------- Facade records ----------

@dataclass
class PrivacyEvent:
    type: PrivacyEventType
    position_id: str
    timestamp: int = field(default_factory=now_ms)
    computation_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["type"] = self.type.value
        return d


@dataclass
class PrivatePositionParams:
    owner: str
    collateral_amount: int
    debt_amount: int
    collateral_type: str
    privacy_level: Optional[PrivacyLevel] = None


@dataclass
class PrivatePositionReceipt:
    position_id: str
    transaction_signature: str
    encrypted_position: EncryptedPosition
    computation_references: List[ComputationReference]
    privacy_proof: str
    warnings: List[str] = field(default_factory=list)
    health_computation: Any = None  # ComputationHandle


@dataclass
class BatchHealthResult:
    results: List[HealthFactorResult]
    total_processed: int
    processing_time: float
    errors: List[Dict[str, str]] = field(default_factory=list)


@dataclass
class IntegrationStatus:
    is_initialized: bool
    public_key: Optional[str]
    supported_algorithms: List[str]
    current_computations: int
    total_computations_processed: int
    last_computation_time: Optional[int] = None
    mempool_stats: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

"""
vita_core.client
----------------
PrivacyClient: the entry point a lending front end uses to open and monitor
private positions.

Wires the session, position manager, policy validator, orchestrator,
registry and status reporter to the ledger, oracle and event transport
supplied by the host application.
"""

from __future__ import annotations
import asyncio
import time
from typing import Dict, List, Optional

from .config import PrivacyConfig, load_privacy_config
from .crypto import EncryptionService
from .errors import PositionNotFoundError, PrivacyDisabledError
from .interfaces import LedgerProgram, OracleClient
from .logger import get_logger
from .models import (
    Algorithm,
    BatchHealthResult,
    ComputationConfig,
    ComputationKind,
    EncryptedData,
    EncryptedPosition,
    HealthFactorResult,
    IntegrationStatus,
    PrivacyEvent,
    PrivacyEventType,
    PrivacyLevel,
    PrivacyLevelMigration,
    PrivatePositionParams,
    PrivatePositionReceipt,
)
from .orchestrator import ComputationOrchestrator
from .policy import PrivacyPolicyValidator
from .positions import PositionPrivacyManager, content_hash
from .registry import ComputationRegistry
from .reporter import IntegrationStatusReporter
from .session import PrivacySession
from .storage import StorageProvider
from .transport import BaseTransport, ComputationNetworkClient, event_publisher_factory
from .utils import now_ms

log = get_logger("Vita.Client")

EVENT_TOPIC = "vita.privacy.events"


class PrivacyClient:
    def __init__(
        self,
        session: PrivacySession,
        network: ComputationNetworkClient,
        ledger: LedgerProgram,
        oracle: OracleClient,
        *,
        config: Optional[PrivacyConfig] = None,
        storage: Optional[StorageProvider] = None,
        events: Optional[BaseTransport] = None,
        default_asset: str = "SOL",
    ):
        self.config = config or load_privacy_config()
        self.session = session
        self.ledger = ledger
        self.oracle = oracle
        self.events = events if events is not None else event_publisher_factory()
        self.default_asset = default_asset

        self.encryption = EncryptionService(self.config.encryption_algorithm)
        self.validator = PrivacyPolicyValidator(self.config.private_min_collateral)
        self.manager = PositionPrivacyManager(session, self.encryption, storage, self.config)
        self.registry = ComputationRegistry()
        self.orchestrator = ComputationOrchestrator(
            network, self.registry, self.config.mxe, timeout=self.config.computation_timeout
        )
        self.reporter = IntegrationStatusReporter(session, self.registry)

        self.privacy_enabled = False
        self._assets: Dict[str, str] = {}

    def set_privacy_enabled(self, enabled: bool) -> None:
        self.privacy_enabled = enabled
        log.info(f"Privacy features {'enabled' if enabled else 'disabled'}")

    def _require_enabled(self, operation: str) -> None:
        if not self.privacy_enabled:
            raise PrivacyDisabledError("privacy features are not enabled", operation=operation)

    def _emit(self, event_type: PrivacyEventType, position_id: str,
              computation_id: Optional[str] = None, **metadata) -> None:
        event = PrivacyEvent(type=event_type, position_id=position_id,
                             computation_id=computation_id, metadata=metadata)
        self.events.publish(EVENT_TOPIC, event.to_dict(), key=position_id)

    def _position(self, position_id: str, operation: str) -> EncryptedPosition:
        position = self.manager.get(position_id)
        if position is None:
            raise PositionNotFoundError(f"unknown position {position_id}",
                                        operation=operation, position_id=position_id)
        return position

    async def _encrypted_price(self, position_id: str) -> EncryptedData:
        asset = self._assets.get(position_id, self.default_asset)
        price = await self.oracle.current_price(asset)
        return self.encryption.encrypt(price, algorithm=Algorithm.AES_256)

    @staticmethod
    def _health_config(position: EncryptedPosition, price: EncryptedData,
                       kind: ComputationKind = ComputationKind.HEALTH_FACTOR) -> ComputationConfig:
        return ComputationConfig(
            kind=kind,
            inputs=[position.encrypted_collateral, position.encrypted_debt, price],
            position_id=position.position_id,
        )

    # ------------------------------------------------------------------
    # Positions
    # ------------------------------------------------------------------
    async def open_private_position(self, params: PrivatePositionParams) -> PrivatePositionReceipt:
        """
        Validate, encrypt and register a new private position on the ledger,
        then start health monitoring over its ciphertexts. The returned
        receipt holds the monitoring handle; await it to get the first result.
        """
        self._require_enabled("open_private_position")
        level = PrivacyLevel(self.config.default_privacy_level
                             if params.privacy_level is None else params.privacy_level)
        validation = self.validator.require_valid(params.collateral_amount, params.debt_amount, level)
        for warning in validation.warnings:
            log.warning({"event": "privacy_policy_warning", "owner": params.owner, "warning": warning})

        position = self.manager.open(params.collateral_amount, params.debt_amount, params.owner, level)
        self._assets[position.position_id] = params.collateral_type

        instruction = {
            "action": "open_position",
            "address": self.ledger.derive_address(params.owner, params.collateral_type),
            "collateral_type": params.collateral_type,
            "privacy_metadata": {
                "position_id": position.position_id,
                "privacy_level": int(level),
                "encrypted_data_hash": content_hash(position),
                "timestamp": now_ms(),
            },
        }
        try:
            signature = await self.ledger.submit(instruction)
        except BaseException as e:
            self._assets.pop(position.position_id, None)
            self.manager.discard(position.position_id, f"ledger submit failed: {e!r}")
            raise

        handle = None
        references = []
        if self.config.enable_health_monitoring:
            price = await self._encrypted_price(position.position_id)
            handle = await self.orchestrator.start(self._health_config(position, price))
            references.append(handle.reference)

        self._emit(PrivacyEventType.POSITION_CREATED, position.position_id,
                   computation_id=handle.reference.computation_id if handle else None,
                   privacy_level=int(level), transaction_signature=signature)

        return PrivatePositionReceipt(
            position_id=position.position_id,
            transaction_signature=signature,
            encrypted_position=position,
            computation_references=references,
            privacy_proof=self.manager.privacy_proof(position),
            warnings=validation.warnings,
            health_computation=handle,
        )

    async def migrate_privacy_level(self, position_id: str, to_level: PrivacyLevel) -> PrivacyLevelMigration:
        self._require_enabled("migrate_privacy_level")
        position = self._position(position_id, "migrate_privacy_level")
        migration = self.manager.migrate(position, to_level)
        self._emit(PrivacyEventType.TRANSACTION_PROCESSED, position_id,
                   action="privacy_migration",
                   from_level=int(migration.from_level), to_level=int(migration.to_level))
        return migration

    # ------------------------------------------------------------------
    # Confidential computations
    # ------------------------------------------------------------------
    async def _health(self, position_id: str, price: Optional[EncryptedData],
                      kind: ComputationKind) -> HealthFactorResult:
        position = self._position(position_id, kind.value)
        if price is None:
            price = await self._encrypted_price(position_id)
        result = await self.orchestrator.run(self._health_config(position, price, kind))

        self._emit(PrivacyEventType.HEALTH_COMPUTED, position_id,
                   computation_id=result.computation_id, kind=result.kind.value)
        if getattr(result, "is_liquidatable", False) and self.config.enable_liquidation_protection:
            log.warning({"event": "liquidation_triggered", "position_id": position_id,
                         "computation_id": result.computation_id})
            self._emit(PrivacyEventType.LIQUIDATION_TRIGGERED, position_id,
                       computation_id=result.computation_id)
        return result

    async def compute_private_health(self, position_id: str) -> HealthFactorResult:
        self._require_enabled("compute_private_health")
        return await self._health(position_id, None, ComputationKind.HEALTH_FACTOR)

    async def check_liquidation(self, position_id: str):
        self._require_enabled("check_liquidation")
        return await self._health(position_id, None, ComputationKind.LIQUIDATION_CHECK)

    async def batch_health_computations(self, position_ids: List[str]) -> BatchHealthResult:
        """
        Health factors for many positions, at most `batch_computation_size`
        in flight at once. A failure on one position is recorded in `errors`
        and does not abort the rest.
        """
        self._require_enabled("batch_health_computations")
        started = time.monotonic()
        limit = asyncio.Semaphore(max(1, self.config.batch_computation_size))
        prices: Dict[str, asyncio.Future] = {}

        async def one(position_id: str):
            # one oracle read per collateral asset
            asset = self._assets.get(position_id, self.default_asset)
            if asset not in prices:
                prices[asset] = asyncio.ensure_future(self._encrypted_price(position_id))
            async with limit:
                price = await prices[asset]
                return await self._health(position_id, price, ComputationKind.HEALTH_FACTOR)

        outcomes = await asyncio.gather(*(one(pid) for pid in position_ids), return_exceptions=True)

        results, errors = [], []
        for position_id, outcome in zip(position_ids, outcomes):
            if isinstance(outcome, Exception):
                log.error({"event": "batch_health_failed", "position_id": position_id, "error": str(outcome)})
                errors.append({"position_id": position_id, "error": f"{type(outcome).__name__}: {outcome}"})
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                results.append(outcome)

        return BatchHealthResult(
            results=results,
            total_processed=len(results),
            processing_time=time.monotonic() - started,
            errors=errors,
        )

    # ------------------------------------------------------------------
    # Transaction amounts
    # ------------------------------------------------------------------
    def encrypt_transaction_amount(self, amount: int) -> EncryptedData:
        self._require_enabled("encrypt_transaction_amount")
        return self.encryption.encrypt(amount, algorithm=Algorithm.AES_256)

    def decrypt_transaction_amount(self, encrypted: EncryptedData) -> int:
        self._require_enabled("decrypt_transaction_amount")
        return self.encryption.decrypt_int(encrypted)

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------
    async def integration_status(self, include_mempool: bool = False) -> IntegrationStatus:
        stats = await self.orchestrator.network.mempool_stats() if include_mempool else None
        return self.reporter.snapshot(mempool_stats=stats)

"""
vita_core.positions
-------------------
Builds and migrates encrypted positions.

All fields of one position are encrypted under a single 32-byte position key,
each with its own random nonce. open() and migrate() are all-or-nothing:
nothing is stored until every field has been encrypted, and a migration is
committed with a compare-and-replace on the store.
"""

from __future__ import annotations
import dataclasses
import hashlib
from typing import Dict, Optional

from .config import PrivacyConfig
from .constants import POSITION_KEY_SIZE
from .crypto import EncryptionService
from .errors import MigrationError, ValidationError, VitaError
from .logger import get_logger
from .models import (
    Algorithm,
    EncryptedData,
    EncryptedPosition,
    MigrationStatus,
    PrivacyLevel,
    PrivacyLevelMigration,
)
from .session import PrivacySession
from .storage import InMemoryPositionStore, StorageProvider
from .utils import b64e, canonical_json, new_position_id, now_ms, random_bytes, sha256

log = get_logger("Vita.Positions")

# position fields always use the 256-bit family to match the 32-byte key
POSITION_ALGORITHM = Algorithm.AES_256


def _digests(position: EncryptedPosition) -> Dict[str, str]:
    return {name: sha256(enc.ciphertext) for name, enc in position.encrypted_fields().items()}


def content_hash(position: EncryptedPosition) -> str:
    """SHA-256 content-integrity hash submitted to the ledger with the position."""
    return sha256(canonical_json({
        "position_id": position.position_id,
        "privacy_level": int(position.privacy_level),
        "created_at": position.created_at,
        "fields": _digests(position),
    }))


def migration_commitment(old: EncryptedPosition, new: EncryptedPosition, timestamp: int) -> bytes:
    return hashlib.sha256(canonical_json({
        "position_id": old.position_id,
        "from_level": int(old.privacy_level),
        "to_level": int(new.privacy_level),
        "old": _digests(old),
        "new": _digests(new),
        "timestamp": timestamp,
    })).digest()


def verify_migration(migration: PrivacyLevelMigration, old: EncryptedPosition, new: EncryptedPosition) -> bool:
    return migration.migration_proof == migration_commitment(old, new, migration.timestamp)


class PositionPrivacyManager:
    def __init__(
        self,
        session: PrivacySession,
        encryption: Optional[EncryptionService] = None,
        storage: Optional[StorageProvider] = None,
        config: Optional[PrivacyConfig] = None,
    ):
        self.session = session
        self.encryption = encryption or EncryptionService()
        self.storage = storage or InMemoryPositionStore()
        self.config = config or PrivacyConfig()

    def _encrypt(self, value, key: bytes) -> EncryptedData:
        return self.encryption.encrypt(value, key=key, algorithm=POSITION_ALGORITHM)

    def open(self, collateral: int, debt: int, owner: str, privacy_level=None) -> EncryptedPosition:
        self.session.require("open_position")
        level = PrivacyLevel(self.config.default_privacy_level if privacy_level is None else privacy_level)

        position_key = random_bytes(POSITION_KEY_SIZE)
        position_id = new_position_id()

        try:
            encrypted_collateral = self._encrypt(collateral, position_key)
            encrypted_debt = self._encrypt(debt, position_key)
            encrypted_owner = self._encrypt(owner, position_key) if level >= PrivacyLevel.CONFIDENTIAL else None
        except VitaError as e:
            e.operation = "open_position"
            e.position_id = position_id
            log.error({"event": "position_encrypt_failed", **e.context()})
            raise

        ts = now_ms()
        position = EncryptedPosition(
            position_id=position_id,
            owner=owner,
            encrypted_collateral=encrypted_collateral,
            encrypted_debt=encrypted_debt,
            encrypted_owner=encrypted_owner,
            position_key=position_key,
            privacy_level=level,
            created_at=ts,
            last_updated=ts,
        )
        self.storage.put_position(position)
        log.info({"event": "position_opened", "position_id": position_id, "privacy_level": level.name})
        return position

    def get(self, position_id: str) -> Optional[EncryptedPosition]:
        return self.storage.get_position(position_id)

    def discard(self, position_id: str, reason: str) -> bool:
        """Drop a position that never made it to the ledger."""
        removed = self.storage.delete_position(position_id)
        if removed:
            self.storage.log_event("position_discarded", {"position_id": position_id, "reason": reason})
            log.warning({"event": "position_discarded", "position_id": position_id, "reason": reason})
        return removed

    def decrypt_amounts(self, position: EncryptedPosition) -> Dict[str, int]:
        return {
            "collateral": self.encryption.decrypt_int(position.encrypted_collateral),
            "debt": self.encryption.decrypt_int(position.encrypted_debt),
        }

    def _reencrypt(self, position: EncryptedPosition, to_level: PrivacyLevel, ts: int) -> EncryptedPosition:
        new_key = random_bytes(POSITION_KEY_SIZE)
        collateral = self.encryption.decrypt(position.encrypted_collateral)
        debt = self.encryption.decrypt(position.encrypted_debt)

        encrypted_owner = None
        if to_level >= PrivacyLevel.CONFIDENTIAL:
            owner = (self.encryption.decrypt(position.encrypted_owner)
                     if position.encrypted_owner is not None else position.owner)
            encrypted_owner = self._encrypt(owner, new_key)

        return dataclasses.replace(
            position,
            encrypted_collateral=self._encrypt(collateral, new_key),
            encrypted_debt=self._encrypt(debt, new_key),
            encrypted_owner=encrypted_owner,
            position_key=new_key,
            privacy_level=to_level,
            last_updated=ts,
        )

    def migrate(self, position: EncryptedPosition, to_level) -> PrivacyLevelMigration:
        self.session.require("migrate_position")
        to_level = PrivacyLevel(to_level)
        if to_level == position.privacy_level:
            raise ValidationError(f"position already at {to_level.name}",
                                  operation="migrate_position", position_id=position.position_id)

        ts = now_ms()
        migration = PrivacyLevelMigration(
            position_id=position.position_id,
            from_level=position.privacy_level,
            to_level=to_level,
            migration_proof=b"",
            timestamp=ts,
        )

        try:
            if self.storage.get_position(position.position_id) is not position:
                raise MigrationError("position is unknown or was modified concurrently")
            migrated = self._reencrypt(position, to_level, ts)
            proof = migration_commitment(position, migrated, ts)
            if not self.storage.replace_position(migrated, expected=position):
                raise MigrationError("position was modified concurrently")
        except VitaError as e:
            failed = dataclasses.replace(migration, status=MigrationStatus.FAILED, error=str(e))
            self.storage.log_event("migration_failed", {"position_id": position.position_id, "error": str(e)})
            log.error({"event": "migration_failed", "position_id": position.position_id,
                       "to_level": to_level.name, "error": str(e)})
            raise MigrationError(f"privacy level migration failed: {e}", migration=failed,
                                 operation="migrate_position", position_id=position.position_id) from e

        completed = dataclasses.replace(migration, migration_proof=proof, status=MigrationStatus.COMPLETED)
        self.storage.log_event("migration_completed", {
            "position_id": position.position_id,
            "from_level": int(migration.from_level),
            "to_level": int(to_level),
            "proof": b64e(proof),
        })
        log.info({"event": "migration_completed", "position_id": position.position_id,
                  "from_level": migration.from_level.name, "to_level": to_level.name})
        return completed

    def privacy_proof(self, position: EncryptedPosition) -> str:
        return b64e(canonical_json({
            "position_id": position.position_id,
            "privacy_level": int(position.privacy_level),
            "timestamp": position.created_at,
            "public_key": self.session.public_key,
        }))

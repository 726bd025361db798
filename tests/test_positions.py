import dataclasses
import pytest

from vita_core.errors import EncodingError, InitializationError, MigrationError, ValidationError
from vita_core.models import MigrationStatus, PrivacyLevel
from vita_core.positions import PositionPrivacyManager, content_hash, verify_migration
from vita_core.session import PrivacySession
from vita_core.utils import b64d


@pytest.fixture
def manager(session):
    return PositionPrivacyManager(session)


def test_open_confidential_position(manager):
    position = manager.open(2_000_000_000, 0, "owner-a", PrivacyLevel.CONFIDENTIAL)

    assert position.privacy_level is PrivacyLevel.CONFIDENTIAL
    assert len(position.position_key) == 32
    fields = position.encrypted_fields()
    assert set(fields) == {"collateral", "debt", "owner"}
    assert len({f.nonce for f in fields.values()}) == 3
    assert all(f.key == position.position_key for f in fields.values())
    assert position.created_at == position.last_updated

    assert manager.decrypt_amounts(position) == {"collateral": 2_000_000_000, "debt": 0}
    assert manager.encryption.decrypt_text(position.encrypted_owner) == "owner-a"
    assert manager.get(position.position_id) is position


def test_default_level_is_confidential(manager):
    assert manager.open(5, 1, "owner").privacy_level is PrivacyLevel.CONFIDENTIAL


def test_shielded_position_leaves_owner_unencrypted(manager):
    position = manager.open(5, 1, "owner", PrivacyLevel.SHIELDED)
    assert position.encrypted_owner is None


def test_positions_are_isolated(manager):
    a = manager.open(1_000, 10, "owner-a")
    b = manager.open(1_000, 10, "owner-b")

    assert a.position_id != b.position_id
    assert a.position_key != b.position_key
    for name in ("collateral", "debt", "owner"):
        fa, fb = a.encrypted_fields()[name], b.encrypted_fields()[name]
        assert fa.ciphertext != fb.ciphertext
        assert fa.nonce != fb.nonce


def test_position_ids_do_not_collide(manager):
    ids = {manager.open(1, 0, "o").position_id for _ in range(500)}
    assert len(ids) == 500
    assert all(i.startswith("pos_") for i in ids)


def test_open_requires_initialized_session():
    manager = PositionPrivacyManager(PrivacySession())
    with pytest.raises(InitializationError):
        manager.open(1, 0, "owner")


def test_open_is_all_or_nothing(manager):
    with pytest.raises(EncodingError) as exc:
        manager.open(1, 2 ** 600, "owner")
    assert exc.value.position_id is not None
    assert manager.storage.list_positions() == []


def test_content_hash_tracks_ciphertexts(manager):
    position = manager.open(7, 3, "owner")
    digest = content_hash(position)
    assert len(digest) == 64
    assert content_hash(position) == digest
    other = dataclasses.replace(position, encrypted_debt=manager.encryption.encrypt(3, key=position.position_key))
    assert content_hash(other) != digest


def test_migration_reencrypts_under_new_key(manager):
    position = manager.open(2_000_000_000, 500, "owner-a", PrivacyLevel.SHIELDED)
    migration = manager.migrate(position, PrivacyLevel.PRIVATE)

    assert migration.status is MigrationStatus.COMPLETED
    assert migration.from_level is PrivacyLevel.SHIELDED
    assert migration.to_level is PrivacyLevel.PRIVATE

    migrated = manager.get(position.position_id)
    assert migrated is not position
    assert migrated.privacy_level is PrivacyLevel.PRIVATE
    assert migrated.position_key != position.position_key
    assert migrated.created_at == position.created_at
    assert manager.decrypt_amounts(migrated) == {"collateral": 2_000_000_000, "debt": 500}
    assert manager.encryption.decrypt_text(migrated.encrypted_owner) == "owner-a"
    assert verify_migration(migration, position, migrated)

    with pytest.raises(dataclasses.FrozenInstanceError):
        migration.status = MigrationStatus.FAILED

    event_types = [e[1] for e in manager.storage.audit]
    assert event_types == ["migration_completed"]


def test_migration_to_same_level_is_rejected(manager):
    position = manager.open(1, 0, "owner")
    with pytest.raises(ValidationError):
        manager.migrate(position, PrivacyLevel.CONFIDENTIAL)


def test_stale_migration_fails_without_partial_update(manager):
    position = manager.open(10, 1, "owner")
    manager.migrate(position, PrivacyLevel.PRIVATE)
    current = manager.get(position.position_id)

    with pytest.raises(MigrationError) as exc:
        manager.migrate(position, PrivacyLevel.SHIELDED)

    assert exc.value.migration.status is MigrationStatus.FAILED
    assert exc.value.migration.migration_proof == b""
    assert manager.get(position.position_id) is current


def test_privacy_proof_binds_session_key(manager, session):
    position = manager.open(1, 0, "owner")
    proof = b64d(manager.privacy_proof(position)).decode("utf-8")
    assert position.position_id in proof
    assert session.public_key in proof

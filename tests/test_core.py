import pytest

from vita_core.config import MXEConfiguration, load_privacy_config
from vita_core.models import Algorithm, PrivacyLevel
from vita_core.registry import ComputationRegistry
from vita_core.reporter import IntegrationStatusReporter
from vita_core.session import LocalIdentity, PrivacySession


def test_sessions_are_independent():
    a = PrivacySession.create()
    b = PrivacySession.create()
    assert a.public_key != b.public_key
    assert a.is_initialized and b.is_initialized


def test_uninitialized_session_reports_nothing():
    session = PrivacySession()
    assert session.public_key is None
    snap = IntegrationStatusReporter(session, ComputationRegistry()).snapshot()
    assert snap.is_initialized is False
    assert snap.public_key is None
    assert snap.to_dict()["total_computations_processed"] == 0


def test_local_identity_signs():
    identity = LocalIdentity.generate()
    session = PrivacySession.create(identity)
    sig = session.sign(b"instruction")
    assert identity.verify(sig, b"instruction")
    assert session.public_key == identity.public_key


def test_config_defaults(monkeypatch):
    for var in ("VITA_DEFAULT_PRIVACY_LEVEL", "VITA_RETRY_ATTEMPTS", "VITA_ENCRYPTION_ALGORITHM"):
        monkeypatch.delenv(var, raising=False)
    cfg = load_privacy_config()
    assert cfg.default_privacy_level is PrivacyLevel.CONFIDENTIAL
    assert cfg.encryption_algorithm is Algorithm.AES_256
    assert cfg.mxe.retry_attempts == 3


def test_config_env_and_overrides(monkeypatch):
    monkeypatch.setenv("VITA_DEFAULT_PRIVACY_LEVEL", "private")
    monkeypatch.setenv("VITA_RETRY_ATTEMPTS", "5")
    monkeypatch.setenv("VITA_ENCRYPTION_ALGORITHM", "AES-128")
    monkeypatch.setenv("VITA_HEALTH_MONITORING", "false")

    cfg = load_privacy_config()
    assert cfg.default_privacy_level is PrivacyLevel.PRIVATE
    assert cfg.mxe.retry_attempts == 5
    assert cfg.encryption_algorithm is Algorithm.AES_128
    assert cfg.enable_health_monitoring is False

    cfg = load_privacy_config({"retry_attempts": 1, "default_privacy_level": PrivacyLevel.SHIELDED})
    assert cfg.mxe.retry_attempts == 1
    assert cfg.default_privacy_level is PrivacyLevel.SHIELDED


def test_mxe_configuration_checks():
    with pytest.raises(ValueError):
        MXEConfiguration(number_of_parties=2, threshold=3)
    with pytest.raises(ValueError):
        MXEConfiguration(priority_fee_strategy="auction")


def test_storage_provider_factory(monkeypatch):
    from vita_core.storage import InMemoryPositionStore, load_storage_provider

    monkeypatch.delenv("VITA_STORAGE_PROVIDER", raising=False)
    assert isinstance(load_storage_provider(), InMemoryPositionStore)
    with pytest.raises(ValueError):
        load_storage_provider({"provider": "sqlite"})

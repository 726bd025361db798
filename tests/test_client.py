import asyncio
import dataclasses
import pytest

from vita_core.client import EVENT_TOPIC, PrivacyClient
from vita_core.errors import (
    ComputationCancelledError,
    PositionNotFoundError,
    PrivacyDisabledError,
    ValidationError,
)
from vita_core.models import (
    ComputationKind,
    ComputationState,
    MigrationStatus,
    PrivacyLevel,
    PrivatePositionParams,
)
from vita_core.positions import content_hash
from vita_core.transport import LocalEventBus
from vita_core.transport.transport_local import result_payload

from conftest import FakeLedger, FakeOracle, wait_for_jobs


def payload(position_id, kind=ComputationKind.HEALTH_FACTOR, liquidatable=False):
    return result_payload(kind, position_id, output=b"\x07" * 32,
                          isLiquidatable=liquidatable, liquidationThreshold=b"\x08" * 32)


@pytest.fixture
def ledger():
    return FakeLedger()


@pytest.fixture
def events():
    bus = LocalEventBus()
    bus.received = []
    bus.subscribe(EVENT_TOPIC, bus.received.append)
    return bus


def make_client(session, mxe, ledger, events, config):
    client = PrivacyClient(session, mxe, ledger, FakeOracle(), config=config, events=events)
    client.set_privacy_enabled(True)
    return client


@pytest.fixture
def client(session, mxe, ledger, events, privacy_config):
    return make_client(session, mxe, ledger, events, privacy_config)


@pytest.fixture
def quiet_client(session, mxe, ledger, events, privacy_config):
    """Client that does not start health monitoring on open."""
    config = dataclasses.replace(privacy_config, enable_health_monitoring=False)
    return make_client(session, mxe, ledger, events, config)


def params(collateral=2_000_000_000, debt=500_000_000, level=None, owner="owner-1"):
    return PrivatePositionParams(owner=owner, collateral_amount=collateral, debt_amount=debt,
                                 collateral_type="SOL", privacy_level=level)


@pytest.mark.asyncio
async def test_open_private_position_end_to_end(client, mxe, ledger, events):
    receipt = await client.open_private_position(params())
    position = receipt.encrypted_position

    assert receipt.transaction_signature == "sig-1"
    assert position.privacy_level is PrivacyLevel.CONFIDENTIAL
    assert receipt.warnings == []

    instruction = ledger.instructions[0]
    meta = instruction["privacy_metadata"]
    assert meta["encrypted_data_hash"] == content_hash(position)
    assert meta["position_id"] == receipt.position_id
    assert instruction["address"] == ledger.derive_address("owner-1", "SOL")
    assert "collateral_amount" not in instruction

    handle = receipt.health_computation
    assert receipt.computation_references == [handle.reference]
    job = mxe.jobs[handle.reference.computation_offset]
    assert len(job["ciphertexts"]) == 3
    assert job["ciphertexts"][0] == position.encrypted_collateral.ciphertext

    mxe.finalize(handle.reference.computation_offset, payload(receipt.position_id))
    result = await handle
    assert result.position_id == receipt.position_id

    assert [e["type"] for e in events.received] == ["POSITION_CREATED"]
    assert events.received[0]["computation_id"] == handle.reference.computation_id


@pytest.mark.asyncio
async def test_open_reports_policy_warnings(client):
    receipt = await client.open_private_position(params(debt=0))
    assert len(receipt.warnings) == 1
    receipt.health_computation.cancel()
    with pytest.raises(ComputationCancelledError):
        await receipt.health_computation


@pytest.mark.asyncio
async def test_open_rejects_hard_violations(client, ledger, mxe):
    with pytest.raises(ValidationError):
        await client.open_private_position(params(collateral=0))
    assert ledger.instructions == []
    assert mxe.jobs == {}
    assert client.manager.storage.list_positions() == []


@pytest.mark.asyncio
async def test_privacy_must_be_enabled(client):
    client.set_privacy_enabled(False)
    with pytest.raises(PrivacyDisabledError):
        await client.open_private_position(params())
    with pytest.raises(PrivacyDisabledError):
        client.encrypt_transaction_amount(5)


@pytest.mark.asyncio
async def test_liquidation_check_emits_trigger(quiet_client, mxe, events):
    receipt = await quiet_client.open_private_position(params())
    task = asyncio.ensure_future(quiet_client.check_liquidation(receipt.position_id))
    await wait_for_jobs(mxe, 1)

    offset = next(iter(mxe.jobs))
    assert mxe.jobs[offset]["circuit_id"] == "liquidation_check_v1"
    mxe.finalize(offset, payload(receipt.position_id, ComputationKind.LIQUIDATION_CHECK, liquidatable=True))
    result = await task

    assert result.is_liquidatable
    assert [e["type"] for e in events.received] == [
        "POSITION_CREATED", "HEALTH_COMPUTED", "LIQUIDATION_TRIGGERED",
    ]


@pytest.mark.asyncio
async def test_batch_collects_per_position_errors(quiet_client, mxe):
    receipt = await quiet_client.open_private_position(params())
    task = asyncio.ensure_future(
        quiet_client.batch_health_computations([receipt.position_id, "pos_missing"])
    )
    await wait_for_jobs(mxe, 1)
    offset, job = next(iter(mxe.jobs.items()))
    mxe.finalize(offset, payload(job["metadata"]["callback_data"]["positionId"]))

    batch = await task
    assert batch.total_processed == 1
    assert batch.results[0].position_id == receipt.position_id
    assert batch.errors[0]["position_id"] == "pos_missing"
    assert "PositionNotFoundError" in batch.errors[0]["error"]


@pytest.mark.asyncio
async def test_compute_health_for_unknown_position(quiet_client):
    with pytest.raises(PositionNotFoundError):
        await quiet_client.compute_private_health("pos_nope")


@pytest.mark.asyncio
async def test_migrate_privacy_level(quiet_client, events):
    receipt = await quiet_client.open_private_position(params())
    migration = await quiet_client.migrate_privacy_level(receipt.position_id, PrivacyLevel.PRIVATE)

    assert migration.status is MigrationStatus.COMPLETED
    assert quiet_client.manager.get(receipt.position_id).privacy_level is PrivacyLevel.PRIVATE
    assert events.received[-1]["metadata"]["action"] == "privacy_migration"


def test_transaction_amount_roundtrip(quiet_client):
    sealed = quiet_client.encrypt_transaction_amount(123_456_789)
    assert len(sealed.ciphertext) == 64 + 16
    assert quiet_client.decrypt_transaction_amount(sealed) == 123_456_789


@pytest.mark.asyncio
async def test_integration_status(client, mxe, session):
    status = await client.integration_status()
    assert status.is_initialized
    assert status.public_key == session.public_key
    assert status.supported_algorithms == ["AES-128", "AES-256"]
    assert status.current_computations == 0

    receipt = await client.open_private_position(params())
    assert (await client.integration_status()).current_computations == 1

    mxe.finalize(receipt.health_computation.reference.computation_offset, payload(receipt.position_id))
    await receipt.health_computation

    status = await client.integration_status(include_mempool=True)
    assert status.current_computations == 0
    assert status.total_computations_processed == 1
    assert status.last_computation_time is not None
    assert status.mempool_stats["submitted"] == 1
    assert client.registry.get(receipt.health_computation.key).status is ComputationState.COMPLETED


@pytest.mark.asyncio
async def test_batch_prices_each_collateral_asset(session, mxe, ledger, events, privacy_config):
    config = dataclasses.replace(privacy_config, enable_health_monitoring=False)
    oracle = FakeOracle({"SOL": 150_000_000, "BTC": 60_000_000_000})
    client = PrivacyClient(session, mxe, ledger, oracle, config=config, events=events)
    client.set_privacy_enabled(True)

    sol = await client.open_private_position(params())
    btc = await client.open_private_position(dataclasses.replace(params(), collateral_type="BTC"))
    task = asyncio.ensure_future(client.batch_health_computations([sol.position_id, btc.position_id]))
    await wait_for_jobs(mxe, 2)

    price_by_position = {}
    for offset, job in mxe.jobs.items():
        position_id = job["metadata"]["callback_data"]["positionId"]
        price_by_position[position_id] = job["ciphertexts"][2]
        mxe.finalize(offset, payload(position_id))
    batch = await task

    assert batch.total_processed == 2
    assert price_by_position[sol.position_id] != price_by_position[btc.position_id]
    assert sorted(oracle.requested) == ["BTC", "SOL"]


@pytest.mark.asyncio
async def test_failed_ledger_submit_leaves_no_position(session, mxe, events, privacy_config):
    class RejectingLedger(FakeLedger):
        async def submit(self, instruction):
            raise RuntimeError("ledger rejected transaction")

    client = make_client(session, mxe, RejectingLedger(), events, privacy_config)
    with pytest.raises(RuntimeError):
        await client.open_private_position(params())

    assert client.manager.storage.list_positions() == []
    assert client.manager.storage.audit[-1][1] == "position_discarded"
    assert mxe.jobs == {}
    assert events.received == []


@pytest.mark.asyncio
async def test_events_default_to_configured_publisher(session, mxe, ledger, privacy_config, monkeypatch, caplog):
    from vita_core.transport import KafkaEventPublisher

    monkeypatch.setenv("VITA_EVENT_TRANSPORT", "kafka")
    monkeypatch.setenv("KAFKA_ENABLED", "0")
    config = dataclasses.replace(privacy_config, enable_health_monitoring=False)
    client = PrivacyClient(session, mxe, ledger, FakeOracle(), config=config)
    client.set_privacy_enabled(True)
    assert isinstance(client.events, KafkaEventPublisher)

    await client.open_private_position(params())
    assert "KAFKA-SKIP" in caplog.text

import asyncio
import pytest

from vita_core.config import MXEConfiguration, PrivacyConfig
from vita_core.crypto import EncryptionService
from vita_core.interfaces import LedgerProgram, OracleClient
from vita_core.orchestrator import ComputationOrchestrator
from vita_core.registry import ComputationRegistry
from vita_core.session import PrivacySession
from vita_core.transport import LocalMXE
from vita_core.utils import sha256


class FakeLedger(LedgerProgram):
    def __init__(self):
        self.instructions = []

    async def submit(self, instruction):
        self.instructions.append(instruction)
        return f"sig-{len(self.instructions)}"

    def derive_address(self, owner, collateral_type):
        return sha256(f"position:{owner}:{collateral_type}".encode("utf-8"))


class FakeOracle(OracleClient):
    def __init__(self, prices=None):
        self.prices = prices or {"SOL": 150_000_000}
        self.requested = []

    async def current_price(self, asset):
        self.requested.append(asset)
        return self.prices[asset]


async def wait_for_jobs(mxe: LocalMXE, count: int, timeout: float = 1.0):
    async def poll():
        while len(mxe.jobs) < count:
            await asyncio.sleep(0)
    await asyncio.wait_for(poll(), timeout)


@pytest.fixture
def session():
    return PrivacySession.create()


@pytest.fixture
def enc():
    return EncryptionService()


@pytest.fixture
def mxe():
    return LocalMXE()


@pytest.fixture
def mxe_config():
    return MXEConfiguration(retry_attempts=2, retry_backoff=0, computation_timeout=2.0)


@pytest.fixture
def registry():
    return ComputationRegistry()


@pytest.fixture
def orchestrator(mxe, registry, mxe_config):
    return ComputationOrchestrator(mxe, registry, mxe_config)


@pytest.fixture
def privacy_config(mxe_config):
    return PrivacyConfig(computation_timeout=2.0, mxe=mxe_config)

# vita_core/transport/transport_local.py
import asyncio
import json
from collections import defaultdict
from typing import Any, Dict, List, Optional

from vita_core.constants import COMPUTATION_CREATED_MARKER
from vita_core.logger import get_logger
from vita_core.models import ComputationKind, ComputationReference
from vita_core.transport.transport_base import (
    BaseTransport,
    ComputationNetworkClient,
    TransportPermanentError,
    TransportTransientError,
)
from vita_core.utils import b64e

log = get_logger("Vita.Transport.Local")


def result_payload(kind, position_id: str, output: bytes = b"", proof: bytes = b"", **fields) -> bytes:
    """Build a finalization blob in the shape the orchestrator parses."""
    body = {
        "type": ComputationKind(kind).value if isinstance(kind, ComputationKind) else kind,
        "positionId": position_id,
        "output": b64e(output),
        "proof": b64e(proof),
    }
    for k, v in fields.items():
        body[k] = b64e(v) if isinstance(v, bytes) else v
    return json.dumps(body).encode("utf-8")


class LocalMXE(ComputationNetworkClient):
    """
    In-process computation network.

    Jobs stay pending until finalize() is called for their offset, in any
    order, which mirrors the unordered finalization of the real network.
    """
    name = "local"

    def __init__(self):
        self._next_offset = 1
        self.jobs: Dict[int, Dict[str, Any]] = {}
        self._waiters: Dict[int, asyncio.Future] = {}
        self._finalized: Dict[int, bytes] = {}
        self._abandoned: set = set()
        self._failures: List[type] = []

    def fail_next(self, count: int = 1, permanent: bool = False) -> None:
        err = TransportPermanentError if permanent else TransportTransientError
        self._failures.extend([err] * count)

    async def submit(self, ciphertexts, circuit_id, metadata):
        if self._failures:
            err = self._failures.pop(0)
            log.warning(f"[LOCAL MXE] injected {err.__name__}")
            raise err("injected submission failure")

        offset = self._next_offset
        self._next_offset += 1
        self.jobs[offset] = {
            "ciphertexts": list(ciphertexts),
            "circuit_id": circuit_id,
            "metadata": dict(metadata),
        }
        log.info(f"[LOCAL MXE] submitted offset={offset} circuit={circuit_id}")
        return {
            "signature": f"local-sig-{offset}",
            "logs": [
                "Program log: Instruction: QueueComputation",
                f"Program log: {COMPUTATION_CREATED_MARKER} {offset}",
            ],
            "priority_fee": metadata.get("priority_fee", 0),
        }

    async def await_finalization(self, reference: ComputationReference) -> bytes:
        offset = reference.computation_offset
        if offset in self._finalized:
            return self._finalized.pop(offset)
        self._abandoned.discard(offset)
        fut = self._waiters.get(offset)
        if fut is None or fut.done():
            fut = asyncio.get_running_loop().create_future()
            self._waiters[offset] = fut
        try:
            return await fut
        except asyncio.CancelledError:
            self._abandoned.add(offset)
            raise
        finally:
            if self._waiters.get(offset) is fut:
                del self._waiters[offset]

    def finalize(self, offset: int, payload: bytes) -> None:
        fut = self._waiters.get(offset)
        if fut is not None and not fut.done():
            fut.set_result(payload)
        elif offset in self._abandoned:
            # nobody will ask for it again
            self._abandoned.discard(offset)
            log.info(f"[LOCAL MXE] dropped result for abandoned offset={offset}")
            return
        else:
            self._finalized[offset] = payload
        log.info(f"[LOCAL MXE] finalized offset={offset}")

    async def mempool_stats(self) -> Optional[Dict[str, Any]]:
        fees = [job["metadata"].get("priority_fee", 0) for job in self.jobs.values()]
        return {
            "submitted": len(self.jobs),
            "awaiting": len(self._waiters),
            "parked_results": len(self._finalized),
            "mean_priority_fee": (sum(fees) / len(fees)) if fees else 0,
        }


class LocalEventBus(BaseTransport):
    """Synchronous in-process pub/sub for privacy events."""
    name = "local"

    def __init__(self):
        self.handlers = defaultdict(list)

    def publish(self, topic, payload, headers=None, key=None):
        log.info(f"[LOCAL PUB] {topic}")
        message = payload if isinstance(payload, dict) else json.loads(self.to_bytes(payload))
        for handler in list(self.handlers.get(topic, [])):
            handler(message)

    def subscribe(self, topic, handler):
        self.handlers[topic].append(handler)
        log.debug(f"[LOCAL SUB] {topic}")

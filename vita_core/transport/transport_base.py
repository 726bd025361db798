from __future__ import annotations
from typing import Any, Dict, List, Optional
import json

from vita_core.models import ComputationReference

Headers = Dict[str, str]


class TransportError(Exception):
    pass


class TransportTransientError(TransportError):
    pass


class TransportPermanentError(TransportError):
    pass


class ComputationNetworkClient:
    """
    Contract for the confidential-computation (MXE) network.

    submit() returns the raw acknowledgment; the orchestrator extracts the
    computation reference from it. await_finalization() returns the opaque
    result blob once the network finalizes the job.
    """
    name: str = "base"

    async def submit(
        self,
        ciphertexts: List[bytes],
        circuit_id: str,
        metadata: Dict[str, Any],
    ) -> Dict[str, Any]:
        raise NotImplementedError

    async def await_finalization(self, reference: ComputationReference) -> bytes:
        raise NotImplementedError

    async def mempool_stats(self) -> Optional[Dict[str, Any]]:
        return None

    def healthz(self) -> dict:
        return {"status": "ok", "transport": self.name}

    def close(self) -> None:
        return


class BaseTransport:
    """
    Privacy event transport. Canonical payload at the boundary is bytes;
    dict payloads are converted.
    """
    name: str = "base"

    def publish(
        self,
        topic: str,
        payload: bytes | dict,
        headers: Optional[Headers] = None,
        key: Optional[str] = None,
    ) -> Any:
        raise NotImplementedError

    def subscribe(self, topic: str, handler) -> Any:
        raise NotImplementedError

    def healthz(self) -> dict:
        return {"status": "ok", "transport": self.name}

    def close(self) -> None:
        return

    @staticmethod
    def to_bytes(payload: bytes | dict) -> bytes:
        if isinstance(payload, bytes):
            return payload
        return json.dumps(payload, ensure_ascii=False).encode("utf-8")

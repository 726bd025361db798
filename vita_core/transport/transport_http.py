# vita_core/transport/transport_http.py
import asyncio
import requests
from typing import Any, Dict, Optional

from vita_core.logger import get_logger
from vita_core.models import ComputationReference
from vita_core.transport.transport_base import (
    ComputationNetworkClient,
    TransportPermanentError,
    TransportTransientError,
)
from vita_core.utils import b64d, b64e

log = get_logger("Vita.Transport.HTTP")


class HTTPComputationNetwork(ComputationNetworkClient):
    """
    HTTP client for an MXE gateway.

    - POST /computations            queue a computation, returns the acknowledgment
    - GET  /computations/{offset}   poll status; "finalized" carries a base64 result
    - GET  /mempool                 priority-fee statistics

    requests is blocking, so every call runs in a worker thread.
    """
    name = "http"

    def __init__(self, base_url: str, timeout: float = 5.0, poll_interval: float = 1.0):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.poll_interval = poll_interval
        self._grant = None

    def set_grant(self, grant: str):
        """Bearer token for the gateway."""
        self._grant = grant

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._grant:
            headers["Authorization"] = f"Bearer {self._grant}"
        return headers

    def _request(self, method: str, path: str, body: Optional[dict] = None) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        log.debug(f"[HTTP MXE] {method} {url}")
        try:
            res = requests.request(method, url, json=body, headers=self._headers(), timeout=self.timeout)
        except requests.RequestException as e:
            raise TransportTransientError(f"{method} {url} failed: {e}") from e

        if res.status_code == 429 or res.status_code >= 500:
            raise TransportTransientError(f"{method} {url} -> {res.status_code}: {res.text}")
        if not res.ok:
            raise TransportPermanentError(f"{method} {url} -> {res.status_code}: {res.text}")
        try:
            return res.json()
        except ValueError as e:
            raise TransportPermanentError(f"{method} {url} returned non-JSON body") from e

    async def submit(self, ciphertexts, circuit_id, metadata):
        body = {
            "ciphertexts": [b64e(c) for c in ciphertexts],
            "circuitId": circuit_id,
            "metadata": metadata,
        }
        ack = await asyncio.to_thread(self._request, "POST", "/computations", body)
        log.info(f"[HTTP MXE] queued circuit={circuit_id}")
        return ack

    async def await_finalization(self, reference: ComputationReference) -> bytes:
        path = f"/computations/{reference.computation_id}"
        while True:
            try:
                data = await asyncio.to_thread(self._request, "GET", path)
            except TransportTransientError as e:
                log.warning(f"[HTTP MXE] poll failed, retrying: {e}")
            else:
                status = data.get("status")
                if status == "finalized":
                    return b64d(data["result"])
                if status == "failed":
                    raise TransportPermanentError(data.get("error") or "computation failed in network")
            await asyncio.sleep(self.poll_interval)

    async def mempool_stats(self) -> Optional[Dict[str, Any]]:
        return await asyncio.to_thread(self._request, "GET", "/mempool")

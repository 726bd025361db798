"""
vita_core.orchestrator
----------------------
Submits confidential computations to the MXE network and awaits their
finalization.

- submit(): sends ciphertexts, retries transient submission failures with
  exponential backoff, and extracts the computation reference from the
  network acknowledgment (never fabricated).
- await_result(): waits for finalization, a registry cancellation, or the
  timeout, whichever comes first. Completion order follows the network and
  is not tied to submission order.
- start()/run(): register + submit + await, returning a ComputationHandle.

Finalization payloads are JSON with a "type" tag from ComputationKind; each
kind has exactly one materializer.
"""

from __future__ import annotations
import asyncio
import binascii
import json
from typing import Callable, Dict, Optional

from .config import MXEConfiguration
from .constants import COMPUTATION_CREATED_MARKER
from .errors import (
    ComputationCancelledError,
    ComputationFailedError,
    ComputationTimeoutError,
    ReferenceExtractionError,
    SubmissionError,
    UnknownResultKind,
    VitaError,
)
from .logger import get_logger
from .models import (
    BalanceTransferResult,
    ComputationConfig,
    ComputationKey,
    ComputationKind,
    ComputationReference,
    ComputationResult,
    ComputationState,
    HealthFactorResult,
    InterestCalculationResult,
    LiquidationCheckResult,
)
from .registry import ComputationRegistry, ResultCallback
from .transport.transport_base import (
    ComputationNetworkClient,
    TransportPermanentError,
    TransportTransientError,
)
from .utils import b64d, now_ms

log = get_logger("Vita.Orchestrator")


# --------- Reference extraction ----------
def extract_reference(ack: Dict, priority_fee: int = 0) -> ComputationReference:
    offset = None
    if isinstance(ack, dict):
        offset = ack.get("computation_offset", ack.get("computationOffset"))
        if offset is None:
            for line in ack.get("logs") or []:
                if COMPUTATION_CREATED_MARKER in line:
                    offset = line.split(COMPUTATION_CREATED_MARKER, 1)[1].strip()
                    break
    if offset is None:
        raise ReferenceExtractionError("acknowledgment carries no computation reference",
                                       operation="submit")
    try:
        offset = int(offset)
    except (TypeError, ValueError) as e:
        raise ReferenceExtractionError(f"malformed computation reference {offset!r}",
                                       operation="submit") from e
    return ComputationReference(
        computation_offset=offset,
        priority_fee=int(ack.get("priority_fee", priority_fee)),
        accounts=tuple(ack.get("accounts") or ()),
    )


# --------- Result materializers ----------
def _common(body: Dict, computation_id: str) -> Dict:
    return {
        "computation_id": computation_id,
        "position_id": body["positionId"],
        "computed_at": int(body.get("computedAt") or now_ms()),
        "proof": b64d(body.get("proof") or ""),
    }

def _health_fields(body: Dict) -> Dict:
    return {
        "health_factor": b64d(body["output"]),
        "is_liquidatable": bool(body["isLiquidatable"]),
        "liquidation_threshold": b64d(body.get("liquidationThreshold") or ""),
    }

def _materialize_health(body, computation_id) -> HealthFactorResult:
    return HealthFactorResult(**_common(body, computation_id), **_health_fields(body))

def _materialize_liquidation(body, computation_id) -> LiquidationCheckResult:
    return LiquidationCheckResult(**_common(body, computation_id), **_health_fields(body))

def _materialize_interest(body, computation_id) -> InterestCalculationResult:
    return InterestCalculationResult(**_common(body, computation_id), accrued_interest=b64d(body["output"]))

def _materialize_transfer(body, computation_id) -> BalanceTransferResult:
    return BalanceTransferResult(**_common(body, computation_id), transfer_receipt=b64d(body["output"]))


MATERIALIZERS: Dict[ComputationKind, Callable[[Dict, str], ComputationResult]] = {
    ComputationKind.HEALTH_FACTOR: _materialize_health,
    ComputationKind.LIQUIDATION_CHECK: _materialize_liquidation,
    ComputationKind.INTEREST_CALCULATION: _materialize_interest,
    ComputationKind.BALANCE_TRANSFER: _materialize_transfer,
}

if set(MATERIALIZERS) != set(ComputationKind):
    raise RuntimeError(f"missing materializers: {set(ComputationKind) - set(MATERIALIZERS)}")


def materialize(blob: bytes, computation_id: str) -> ComputationResult:
    try:
        body = json.loads(blob.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        raise UnknownResultKind("result payload is not a JSON document",
                                operation="await", computation_id=computation_id) from e
    if not isinstance(body, dict):
        raise UnknownResultKind("result payload is not a JSON object",
                                operation="await", computation_id=computation_id)

    tag = body.get("type")
    try:
        kind = ComputationKind(tag)
    except ValueError as e:
        raise UnknownResultKind(f"unrecognized result kind {tag!r}",
                                operation="await", computation_id=computation_id) from e
    try:
        return MATERIALIZERS[kind](body, computation_id)
    except (KeyError, TypeError, ValueError, binascii.Error) as e:
        raise UnknownResultKind(f"malformed {kind.value} payload: {e}", operation="await",
                                position_id=body.get("positionId"),
                                computation_id=computation_id) from e


class ComputationHandle:
    """Awaitable handle for one in-flight computation; cancel() fails its registry entry."""

    def __init__(self, key: ComputationKey, reference: ComputationReference,
                 task: asyncio.Future, registry: ComputationRegistry):
        self.key = key
        self.reference = reference
        self._task = task
        self._registry = registry

    def __await__(self):
        return self._task.__await__()

    def cancel(self, reason: str = "cancelled by caller") -> bool:
        return self._registry.cancel(self.key, reason)

    def done(self) -> bool:
        return self._task.done()

    @property
    def status(self):
        return self._registry.get(self.key)


class ComputationOrchestrator:
    def __init__(
        self,
        network: ComputationNetworkClient,
        registry: Optional[ComputationRegistry] = None,
        mxe: Optional[MXEConfiguration] = None,
        timeout: Optional[float] = None,
    ):
        self.network = network
        self.registry = registry or ComputationRegistry()
        self.mxe = mxe or MXEConfiguration()
        self.timeout = self.mxe.computation_timeout if timeout is None else timeout

    async def submit(self, config: ComputationConfig) -> ComputationReference:
        metadata = {
            **config.metadata,
            "priority_fee": config.priority_fee,
            "callback_data": {"type": config.kind.value, "positionId": config.position_id},
        }
        ciphertexts = [enc.ciphertext for enc in config.inputs]
        attempts = self.mxe.retry_attempts + 1
        last_error = None

        for attempt in range(1, attempts + 1):
            try:
                ack = await self.network.submit(ciphertexts, config.circuit_id, metadata)
                break
            except TransportPermanentError as e:
                log.error({"event": "submission_rejected", "position_id": config.position_id,
                           "circuit_id": config.circuit_id, "error": str(e)})
                raise SubmissionError(f"network rejected submission: {e}", operation="submit",
                                      position_id=config.position_id) from e
            except (TransportTransientError, SubmissionError, OSError, asyncio.TimeoutError) as e:
                last_error = e
                log.warning({"event": "submission_retry", "position_id": config.position_id,
                             "attempt": attempt, "of": attempts, "error": str(e)})
                if attempt < attempts:
                    await asyncio.sleep(self.mxe.retry_backoff * (2 ** (attempt - 1)))
            except Exception as e:
                log.error({"event": "submission_failed", "position_id": config.position_id,
                           "circuit_id": config.circuit_id, "error": repr(e)})
                raise SubmissionError(f"submission failed: {e!r}", operation="submit",
                                      position_id=config.position_id) from e
        else:
            raise SubmissionError(f"submission failed after {attempts} attempts: {last_error}",
                                  operation="submit", position_id=config.position_id) from last_error

        try:
            reference = extract_reference(ack, config.priority_fee)
        except ReferenceExtractionError as e:
            e.position_id = config.position_id
            log.error({"event": "reference_extraction_failed", **e.context()})
            raise

        log.info({"event": "computation_submitted", "position_id": config.position_id,
                  "kind": config.kind.value, "circuit_id": config.circuit_id,
                  "computation_id": reference.computation_id})
        return reference

    def _fail(self, key: Optional[ComputationKey], err: BaseException) -> None:
        if key is not None:
            self.registry.transition(key, ComputationState.FAILED, error=f"{type(err).__name__}: {err}")

    async def await_result(
        self,
        reference: ComputationReference,
        key: Optional[ComputationKey] = None,
        timeout: Optional[float] = None,
    ) -> ComputationResult:
        timeout = self.timeout if timeout is None else timeout
        cid = reference.computation_id
        position_id = key.position_id if key else None

        terminal = None
        if key is not None:
            terminal = asyncio.wrap_future(self.registry.terminal_future(key))
        finalize = asyncio.ensure_future(self.network.await_finalization(reference))
        waiters = {finalize, terminal} - {None}

        try:
            done, _ = await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            if key is not None:
                self.registry.cancel(key, "awaiting task cancelled")
            raise
        finally:
            if not finalize.done():
                finalize.cancel()

        if finalize in done:
            try:
                blob = finalize.result()
                result = materialize(blob, cid)
            except VitaError as e:
                e.position_id = e.position_id or position_id
                self._fail(key, e)
                raise
            except Exception as e:
                err = ComputationFailedError(f"finalization failed: {e}", operation="await",
                                             position_id=position_id, computation_id=cid)
                self._fail(key, err)
                raise err from e

            if key is not None and not self.registry.transition(key, ComputationState.COMPLETED, result=result):
                status = self.registry.get(key)
                log.warning({"event": "late_result_dropped", "computation_id": cid, "key": str(key)})
                raise ComputationCancelledError((status and status.error) or "computation no longer awaited",
                                                operation="await", position_id=position_id,
                                                computation_id=cid)

            log.info({"event": "computation_completed", "computation_id": cid,
                      "kind": result.kind.value, "position_id": result.position_id})
            return result

        if terminal is not None and terminal in done:
            status = terminal.result()
            if status.status is ComputationState.COMPLETED:
                return status.result
            raise ComputationCancelledError(status.error or "computation cancelled", operation="await",
                                            position_id=position_id, computation_id=cid)

        err = ComputationTimeoutError(f"no finalization within {timeout}s", operation="await",
                                      position_id=position_id, computation_id=cid)
        log.error({"event": "computation_timeout", **err.context()})
        self._fail(key, err)
        raise err

    async def start(
        self,
        config: ComputationConfig,
        on_result: Optional[ResultCallback] = None,
        timeout: Optional[float] = None,
    ) -> ComputationHandle:
        key = config.key
        self.registry.register(key, on_result)
        try:
            reference = await self.submit(config)
        except BaseException as e:
            self._fail(key, e)
            raise

        self.registry.transition(key, ComputationState.EXECUTING,
                                 computation_id=reference.computation_id,
                                 expected=ComputationState.PENDING)
        task = asyncio.ensure_future(self.await_result(reference, key=key, timeout=timeout))
        task.add_done_callback(self._log_outcome)
        return ComputationHandle(key, reference, task, self.registry)

    async def run(self, config: ComputationConfig, on_result: Optional[ResultCallback] = None,
                  timeout: Optional[float] = None) -> ComputationResult:
        handle = await self.start(config, on_result=on_result, timeout=timeout)
        return await handle

    @staticmethod
    def _log_outcome(task: asyncio.Future) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            ctx = exc.context() if isinstance(exc, VitaError) else {"error": repr(exc)}
            log.info({"event": "computation_outcome", "ok": False, **ctx})

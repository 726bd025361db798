"""
vita_core.registry
------------------
Per-(position, kind) computation state machine.

    pending -> executing -> completed
       |           |
       +-----------+-----> failed

At most one non-terminal entry exists per key; a second registration is
rejected with DuplicateComputationError. Terminal entries are never mutated
again, so a late network result for a cancelled or timed-out entry is dropped.
All transitions go through a single lock.
"""

from __future__ import annotations
import concurrent.futures
import dataclasses
import threading
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from .errors import (
    ComputationCancelledError,
    ComputationNotFoundError,
    DuplicateComputationError,
    InvalidTransitionError,
)
from .logger import get_logger
from .models import ComputationKey, ComputationState, ComputationStatus
from .utils import now_ms

log = get_logger("Vita.Registry")

ResultCallback = Callable[[ComputationStatus], None]

_EDGES = {
    ComputationState.PENDING: {ComputationState.EXECUTING, ComputationState.FAILED},
    ComputationState.EXECUTING: {ComputationState.COMPLETED, ComputationState.FAILED},
}

_PROGRESS = {
    ComputationState.EXECUTING: 25,
    ComputationState.COMPLETED: 100,
}

DEFAULT_MAX_RETAINED = 1024


@dataclass
class _Entry:
    status: ComputationStatus
    on_result: Optional[ResultCallback]
    done: concurrent.futures.Future


class ComputationRegistry:
    def __init__(self, max_retained: int = DEFAULT_MAX_RETAINED):
        self._lock = threading.Lock()
        self._entries: Dict[ComputationKey, _Entry] = {}
        # terminal keys, oldest first; only the newest max_retained are kept
        self._retired = OrderedDict()
        self.max_retained = max_retained
        self._processed = 0
        self._last_computation_time: Optional[int] = None

    def register(self, key: ComputationKey, on_result: Optional[ResultCallback] = None) -> ComputationStatus:
        with self._lock:
            existing = self._entries.get(key)
            if existing is not None and not existing.status.status.is_terminal:
                raise DuplicateComputationError(
                    f"computation already in flight for {key}",
                    operation="register",
                    position_id=key.position_id,
                    computation_id=existing.status.computation_id,
                )
            entry = _Entry(ComputationStatus(), on_result, concurrent.futures.Future())
            self._entries[key] = entry
            self._retired.pop(key, None)
            snapshot = dataclasses.replace(entry.status)

        log.debug(f"[REGISTRY] registered {key}")
        return snapshot

    def transition(
        self,
        key: ComputationKey,
        new_status: ComputationState,
        *,
        computation_id: Optional[str] = None,
        result=None,
        error: Optional[str] = None,
        expected: Optional[ComputationState] = None,
    ) -> bool:
        """
        Move `key` to `new_status`. Returns False when the entry is already
        terminal or not in `expected`; raises InvalidTransitionError on an
        edge the state machine does not allow.
        """
        new_status = ComputationState(new_status)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                raise ComputationNotFoundError(f"no computation registered for {key}",
                                               operation="transition", position_id=key.position_id)
            status = entry.status
            if status.status.is_terminal:
                return False
            if expected is not None and status.status != expected:
                return False
            if new_status not in _EDGES[status.status]:
                raise InvalidTransitionError(
                    f"{status.status.value} -> {new_status.value} not allowed for {key}",
                    operation="transition", position_id=key.position_id,
                    computation_id=status.computation_id,
                )

            status.status = new_status
            status.progress = _PROGRESS.get(new_status, status.progress)
            if computation_id is not None:
                status.computation_id = computation_id
            if new_status.is_terminal:
                status.end_time = now_ms()
                status.result = result
                status.error = error
                self._processed += 1
                if new_status is ComputationState.COMPLETED:
                    self._last_computation_time = status.end_time
                self._retired[key] = None
                while len(self._retired) > self.max_retained:
                    old, _ = self._retired.popitem(last=False)
                    del self._entries[old]
            snapshot = dataclasses.replace(status)

        log.info({"event": "computation_transition", "key": str(key),
                  "computation_id": snapshot.computation_id, "status": new_status.value})

        if new_status.is_terminal:
            if not entry.done.done():
                entry.done.set_result(snapshot)
            self._notify(key, entry, snapshot)
        return True

    def _notify(self, key: ComputationKey, entry: _Entry, snapshot: ComputationStatus) -> None:
        if entry.on_result is None:
            return
        try:
            entry.on_result(snapshot)
        except Exception:
            log.exception(f"[REGISTRY] result callback failed for {key}")

    def get(self, key: ComputationKey) -> Optional[ComputationStatus]:
        with self._lock:
            entry = self._entries.get(key)
            return dataclasses.replace(entry.status) if entry else None

    def cancel(self, key: ComputationKey, reason: str = "cancelled by caller") -> bool:
        return self.transition(
            key, ComputationState.FAILED,
            error=f"{ComputationCancelledError.__name__}: {reason}",
        )

    def terminal_future(self, key: ComputationKey) -> concurrent.futures.Future:
        """Future resolved with the final ComputationStatus of the current entry."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                raise ComputationNotFoundError(f"no computation registered for {key}",
                                               operation="terminal_future", position_id=key.position_id)
            return entry.done

    def prune(self) -> int:
        """Forget every terminal entry. Returns how many were dropped."""
        with self._lock:
            for key in self._retired:
                del self._entries[key]
            dropped = len(self._retired)
            self._retired.clear()
        return dropped

    def in_flight(self) -> List[ComputationKey]:
        with self._lock:
            return [k for k, e in self._entries.items() if not e.status.status.is_terminal]

    @property
    def processed_count(self) -> int:
        return self._processed

    @property
    def last_computation_time(self) -> Optional[int]:
        return self._last_computation_time

import threading
from typing import Any, Dict, List, Optional, Tuple

from vita_core.models import EncryptedPosition
from vita_core.storage.provider import StorageProvider
from vita_core.utils import now_ts


class InMemoryPositionStore(StorageProvider):
    """
    Working set of encrypted positions for the current process.
    Long-term persistence belongs to the ledger, not here.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self.positions: Dict[str, EncryptedPosition] = {}
        self.audit: List[Tuple[str, str, Dict[str, Any]]] = []

    def put_position(self, position: EncryptedPosition) -> None:
        with self._lock:
            if position.position_id in self.positions:
                raise KeyError(f"position already stored: {position.position_id}")
            self.positions[position.position_id] = position

    def get_position(self, position_id: str) -> Optional[EncryptedPosition]:
        with self._lock:
            return self.positions.get(position_id)

    def replace_position(self, new: EncryptedPosition, expected: EncryptedPosition) -> bool:
        # compare-and-swap: only commit if nobody replaced the record meanwhile
        with self._lock:
            if self.positions.get(new.position_id) is not expected:
                return False
            self.positions[new.position_id] = new
            return True

    def delete_position(self, position_id: str) -> bool:
        with self._lock:
            return self.positions.pop(position_id, None) is not None

    def list_positions(self) -> List[EncryptedPosition]:
        with self._lock:
            return list(self.positions.values())

    # audit
    def log_event(self, event_type: str, payload: Dict[str, Any]) -> None:
        with self._lock:
            self.audit.append((now_ts(), event_type, payload))

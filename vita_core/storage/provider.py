# vita_core/storage/provider.py
from __future__ import annotations
from typing import Any, Dict, List, Optional

from vita_core.models import EncryptedPosition


class StorageProvider:
    # Interface
    def put_position(self, position: EncryptedPosition) -> None: ...
    def get_position(self, position_id: str) -> Optional[EncryptedPosition]: ...
    def replace_position(self, new: EncryptedPosition, expected: EncryptedPosition) -> bool: ...
    def delete_position(self, position_id: str) -> bool: ...
    def list_positions(self) -> List[EncryptedPosition]: ...
    def log_event(self, event_type: str, payload: Dict[str, Any]) -> None: ...

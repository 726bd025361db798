from __future__ import annotations
from typing import Any, Dict, Optional

from .crypto import EncryptionService
from .models import IntegrationStatus
from .registry import ComputationRegistry
from .session import PrivacySession


class IntegrationStatusReporter:
    """Read-only view over session and registry state, recomputed on every call."""

    def __init__(self, session: PrivacySession, registry: ComputationRegistry):
        self.session = session
        self.registry = registry

    def snapshot(self, mempool_stats: Optional[Dict[str, Any]] = None) -> IntegrationStatus:
        return IntegrationStatus(
            is_initialized=self.session.is_initialized,
            public_key=self.session.public_key,
            supported_algorithms=list(EncryptionService.supported_algorithms),
            current_computations=len(self.registry.in_flight()),
            total_computations_processed=self.registry.processed_count,
            last_computation_time=self.registry.last_computation_time,
            mempool_stats=mempool_stats,
        )

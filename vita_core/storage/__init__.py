# vita_core/storage/__init__.py

from .provider import StorageProvider
from .providers.memory_provider import InMemoryPositionStore
import os


def load_storage_provider(config: dict | None = None) -> StorageProvider:
    """
    Factory resolver for the position working-set backend.

    For now:
        - memory (default)
    """
    config = config or {}
    provider = config.get("provider") or os.getenv("VITA_STORAGE_PROVIDER", "memory")

    if provider == "memory":
        return InMemoryPositionStore()

    raise ValueError(f"Unknown storage provider: {provider}")


__all__ = [
    "StorageProvider",
    "InMemoryPositionStore",
    "load_storage_provider",
]

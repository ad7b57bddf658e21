"""Store backends the query engine reads from."""

from __future__ import annotations

import os
from typing import Optional

from ..config import HubscopeConfig, load_config
from .base import InstanceStore
from .inmemory import InMemoryInstanceStore

_store_instance: InstanceStore | None = None


def get_store(
    backend: Optional[str] = None, config: Optional[HubscopeConfig] = None
) -> InstanceStore:
    """Factory function to obtain the configured instance store.

    The backend is selected from ``backend``, the ``HUBSCOPE_STORE``
    environment variable or the loaded configuration. Without explicit
    arguments the previously created store is reused.
    """

    global _store_instance
    if _store_instance is not None and backend is None and config is None:
        return _store_instance

    config = config or load_config()
    backend = (backend or os.getenv("HUBSCOPE_STORE") or config.store.backend).lower()

    if backend == "inmemory":
        _store_instance = InMemoryInstanceStore(task_hub=config.store.task_hub)
    else:
        raise ValueError(f"Unsupported store backend: {backend}")

    return _store_instance


__all__ = ["InstanceStore", "InMemoryInstanceStore", "get_store"]

"""Entity store contract and adapters."""

from procurement_kernel.store.base import EntityStore
from procurement_kernel.store.memory import InMemoryEntityStore

__all__ = ["EntityStore", "InMemoryEntityStore"]

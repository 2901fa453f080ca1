"""Store adapters behind the ContentStore interface."""
from app.store.base import ContentStore
from app.store.memory import InMemoryContentStore
from app.store.sql import SqlContentStore

__all__ = ["ContentStore", "InMemoryContentStore", "SqlContentStore"]

from .base import ActivityStore, DirtyMonth
from .memory import InMemoryActivityStore
from .activity import SQLActivityStore

__all__ = ["ActivityStore", "DirtyMonth", "InMemoryActivityStore", "SQLActivityStore"]

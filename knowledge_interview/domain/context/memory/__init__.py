from .profile_memory_store import InMemoryProfileStore
from .instance_memory_store import InMemoryInstanceStore

__all__ = ["InMemoryProfileStore", "InMemoryInstanceStore"]

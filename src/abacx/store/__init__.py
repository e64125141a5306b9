from __future__ import annotations

from .cached import CachingPolicyStore
from .file_store import FilePolicyStore, atomic_write
from .memory import InMemoryPolicyStore
from .reloader import HotReloader

__all__ = [
    "CachingPolicyStore",
    "FilePolicyStore",
    "atomic_write",
    "InMemoryPolicyStore",
    "HotReloader",
]

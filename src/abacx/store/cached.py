from __future__ import annotations

from typing import List, Optional

from ..core.cache import AbstractCache, DefaultInMemoryCache
from ..core.model import Permission, Policy, Role
from ..core.ports import PolicyStore, RoleStore


class CachingPolicyStore:
    """Caches policy and role lookups of another store.

    Cached entries are stale as soon as Policy or Role rows change, so the
    owner of the admin write path must call :meth:`invalidate` after every
    change. Failures of the inner store are never cached.
    """

    def __init__(
        self,
        inner: PolicyStore,
        *,
        cache: AbstractCache | None = None,
        ttl: Optional[int] = 60,
    ) -> None:
        self.inner = inner
        self.cache = cache if cache is not None else DefaultInMemoryCache()
        self.ttl = ttl

    async def load_policies(self, role_id: int, permission: Permission) -> List[Policy]:
        key = f"policies:{role_id}:{permission.value}"
        hit = self.cache.get(key)
        if hit is not None:
            return list(hit)
        policies = await self.inner.load_policies(role_id, permission)
        self.cache.set(key, tuple(policies), ttl=self.ttl)
        return list(policies)

    async def load_roles(self, subject_id: str) -> List[Role]:
        if not isinstance(self.inner, RoleStore):
            raise TypeError(f"{type(self.inner).__name__} does not resolve roles")
        key = f"roles:{subject_id}"
        hit = self.cache.get(key)
        if hit is not None:
            return list(hit)
        roles = await self.inner.load_roles(subject_id)
        self.cache.set(key, tuple(roles), ttl=self.ttl)
        return list(roles)

    def invalidate(self) -> None:
        self.cache.clear()


__all__ = ["CachingPolicyStore"]

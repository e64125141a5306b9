from __future__ import annotations

import threading
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from ..core.errors import ConfigurationError
from ..core.model import Permission, Policy, Role


def _assignment(row: Any) -> Tuple[str, int]:
    user_id = row.get("user_id", row.get("userId")) if isinstance(row, Mapping) else None
    role_id = row.get("role_id", row.get("roleId")) if isinstance(row, Mapping) else None
    if user_id is None or role_id is None:
        raise ConfigurationError(f"malformed user role assignment {row!r}")
    try:
        return str(user_id), int(role_id)
    except (TypeError, ValueError):
        raise ConfigurationError(f"non-integer role id in user role assignment {row!r}") from None


class InMemoryPolicyStore:
    """Policy and role store held in memory.

    Used for tests, seed documents and as the backing state of
    :class:`~abacx.store.file_store.FilePolicyStore`. The whole state is
    swapped atomically by :meth:`replace`.
    """

    def __init__(
        self,
        roles: Iterable[Role] = (),
        policies: Iterable[Policy] = (),
        user_roles: Iterable[Tuple[str, int]] = (),
    ) -> None:
        self._lock = threading.RLock()
        self._roles: Dict[int, Role] = {}
        self._policies: List[Policy] = []
        self._user_roles: Dict[str, List[int]] = {}
        self.replace(roles, policies, user_roles)

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> "InMemoryPolicyStore":
        store = cls()
        store.replace_document(doc)
        return store

    # ------------------------------------------------------------------ state

    def replace(
        self,
        roles: Iterable[Role],
        policies: Iterable[Policy],
        user_roles: Iterable[Tuple[str, int]] = (),
    ) -> None:
        role_map = {r.id: r for r in roles}
        policy_list = list(policies)
        for p in policy_list:
            if p.role_id not in role_map:
                raise ConfigurationError(f"policy {p.id} references unknown role {p.role_id}")
        assignments: Dict[str, List[int]] = {}
        for user_id, role_id in user_roles:
            if role_id not in role_map:
                raise ConfigurationError(f"user {user_id!r} assigned to unknown role {role_id}")
            ids = assignments.setdefault(str(user_id), [])
            if role_id not in ids:
                ids.append(role_id)
        with self._lock:
            self._roles = role_map
            self._policies = policy_list
            self._user_roles = assignments

    def replace_document(self, doc: Mapping[str, Any]) -> None:
        """Replace the state from a policy document (see :mod:`abacx.dsl.validate`)."""
        roles = [Role.from_mapping(r) for r in doc.get("roles") or ()]
        policies = [Policy.from_mapping(p) for p in doc.get("policies") or ()]
        user_roles = [_assignment(ur) for ur in doc.get("user_roles") or ()]
        self.replace(roles, policies, user_roles)

    def role(self, role_id: int) -> Optional[Role]:
        with self._lock:
            return self._roles.get(role_id)

    def role_by_name(self, name: str) -> Optional[Role]:
        with self._lock:
            return next((r for r in self._roles.values() if r.name == name), None)

    # -------------------------------------------------------------- store ports

    async def load_policies(self, role_id: int, permission: Permission) -> List[Policy]:
        with self._lock:
            return [p for p in self._policies if p.role_id == role_id and p.permission is permission]

    async def load_roles(self, subject_id: str) -> List[Role]:
        with self._lock:
            assigned = [self._roles[i] for i in self._user_roles.get(str(subject_id), ())]
            defaults = [r for r in self._roles.values() if r.is_default and r not in assigned]
        return sorted(assigned + defaults, key=lambda r: (-r.index, r.id))


__all__ = ["InMemoryPolicyStore"]

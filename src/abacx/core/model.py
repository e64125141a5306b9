from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Literal, Mapping, Optional

from .condition import Condition, parse_condition
from .errors import ConfigurationError

Effect = Literal["allow", "deny"]
AttributeBag = Mapping[str, Any]


class Permission(str, Enum):
    """Closed set of ``<resource>:<action>`` permission tags."""

    USER_CREATE = "user:create"
    USER_READ = "user:read"
    USER_LIST = "user:list"
    USER_UPDATE = "user:update"
    USER_DELETE = "user:delete"
    USER_IMPERSONATE = "user:impersonate"

    ROLE_CREATE = "role:create"
    ROLE_READ = "role:read"
    ROLE_LIST = "role:list"
    ROLE_UPDATE = "role:update"
    ROLE_DELETE = "role:delete"

    USER_ROLE_CREATE = "userRole:create"
    USER_ROLE_DELETE = "userRole:delete"

    SESSION_LIST = "session:list"
    SESSION_REVOKE = "session:revoke"

    INVITATION_CREATE = "invitation:create"
    INVITATION_READ = "invitation:read"
    INVITATION_LIST = "invitation:list"
    INVITATION_DELETE = "invitation:delete"
    INVITATION_REVOKE = "invitation:revoke"

    CRON_TASK_CREATE = "cronTask:create"
    CRON_TASK_READ = "cronTask:read"
    CRON_TASK_LIST = "cronTask:list"
    CRON_TASK_UPDATE = "cronTask:update"
    CRON_TASK_DELETE = "cronTask:delete"
    CRON_TASK_TRIGGER = "cronTask:trigger"

    AUDIT_LOG_LIST = "auditLog:list"
    AUDIT_LOG_DELETE = "auditLog:delete"

    RUNTIME_CONFIG_LIST = "runtimeConfig:list"
    RUNTIME_CONFIG_UPDATE = "runtimeConfig:update"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: Any) -> "Permission":
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise ConfigurationError(f"unknown permission {value!r}") from None


def _required_int(row: Mapping[str, Any], key: str, what: str) -> int:
    if row.get(key) is None:
        raise ConfigurationError(f"{what} is missing '{key}'")
    try:
        return int(row[key])
    except (TypeError, ValueError):
        raise ConfigurationError(f"{what} has a non-integer '{key}': {row[key]!r}") from None


def _parse_effect(value: Any) -> Effect:
    if value not in ("allow", "deny"):
        raise ConfigurationError(f"unknown policy effect {value!r}")
    return value


@dataclass(frozen=True)
class Role:
    id: int
    name: str
    label: Optional[str] = None
    description: Optional[str] = None
    index: int = 0
    is_default: bool = False
    is_super_admin: bool = False
    permissions: FrozenSet[Permission] = frozenset()

    @classmethod
    def from_mapping(cls, row: Mapping[str, Any]) -> "Role":
        """Build a Role from a document entry or a database row.

        Both snake_case keys and camelCase column names are accepted.
        """
        if not isinstance(row, Mapping):
            raise ConfigurationError(f"role entry must be an object, got {type(row).__name__}")
        name = row.get("name")
        if not isinstance(name, str) or not name:
            raise ConfigurationError(f"role {row.get('id')!r} has no name")
        perms = row.get("permissions") or ()
        return cls(
            id=_required_int(row, "id", f"role {name!r}"),
            name=name,
            label=row.get("label"),
            description=row.get("description"),
            index=int(row.get("index") or 0),
            is_default=bool(row.get("is_default", row.get("isDefault", False))),
            is_super_admin=bool(row.get("is_super_admin", row.get("isSuperAdmin", False))),
            permissions=frozenset(Permission.parse(p) for p in perms),
        )


@dataclass(frozen=True)
class Policy:
    id: int
    effect: Effect
    permission: Permission
    role_id: int
    condition: Optional[Condition] = None
    description: Optional[str] = None

    @classmethod
    def from_mapping(cls, row: Mapping[str, Any]) -> "Policy":
        """Build a Policy, parsing its serialized condition exactly once."""
        if not isinstance(row, Mapping):
            raise ConfigurationError(f"policy entry must be an object, got {type(row).__name__}")
        role_key = "role_id" if "role_id" in row else "roleId"
        if row.get(role_key) is None:
            raise ConfigurationError(f"policy {row.get('id')!r} has no role")
        return cls(
            id=_required_int(row, "id", "policy"),
            effect=_parse_effect(row.get("effect")),
            permission=Permission.parse(row.get("permission")),
            role_id=_required_int(row, role_key, f"policy {row.get('id')!r}"),
            condition=parse_condition(row.get("condition")),
            description=row.get("description"),
        )


@dataclass(frozen=True)
class Subject:
    id: str
    roles: List[Role] = field(default_factory=list)
    attrs: Dict[str, Any] = field(default_factory=dict)

    def attributes(self) -> Dict[str, Any]:
        """Attribute bag seen by ``user_attr`` references."""
        bag: Dict[str, Any] = dict(self.attrs)
        bag["id"] = self.id
        bag["roles"] = [r.name for r in self.roles]
        return bag


@dataclass(frozen=True)
class Check:
    permission: Any
    resource: Optional[AttributeBag] = None

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "Check":
        return cls(permission=raw.get("permission"), resource=raw.get("resource"))


@dataclass(frozen=True)
class Decision:
    allowed: bool
    effect: Effect
    reason: str
    permission: Optional[Permission] = None
    policy_id: Optional[int] = None
    role_id: Optional[int] = None
    error: Optional[Exception] = None

    def __bool__(self) -> bool:
        return self.allowed


def as_check(raw: Any) -> Check:
    return raw if isinstance(raw, Check) else Check.from_mapping(raw)


def role_names(roles: Iterable[Role]) -> List[str]:
    return [r.name for r in roles]


__all__ = [
    "Effect",
    "AttributeBag",
    "Permission",
    "Role",
    "Policy",
    "Subject",
    "Check",
    "Decision",
    "as_check",
    "role_names",
]

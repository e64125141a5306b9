from __future__ import annotations

from collections import Counter
from typing import Any, Dict, List, Mapping

from ..core.condition import parse_condition
from ..core.errors import ConfigurationError
from ..core.model import Permission

Issue = Dict[str, Any]

_PERMISSIONS = frozenset(p.value for p in Permission)


def _issue(code: str, message: str, **extra: Any) -> Issue:
    out: Issue = {"code": code, "message": message}
    out.update({k: v for k, v in extra.items() if v is not None})
    return out


def analyze_document(doc: Mapping[str, Any]) -> List[Issue]:
    """Semantic checks beyond the JSON schema.

    Codes:
      DUPLICATE_ROLE_ID / DUPLICATE_ROLE_NAME / DUPLICATE_POLICY_ID
      UNKNOWN_ROLE          policy or assignment references a missing role
      UNKNOWN_PERMISSION    permission outside the closed enum
      INVALID_CONDITION     condition fails to parse
      SUPER_ADMIN_POLICY    policy attached to a super-admin role is never consulted
      UNCONDITIONAL_DENY    role is denied a permission it is also granted
    """
    issues: List[Issue] = []
    roles = list(doc.get("roles") or [])
    policies = list(doc.get("policies") or [])

    ids = Counter(r.get("id") for r in roles)
    names = Counter(r.get("name") for r in roles)
    for rid, n in ids.items():
        if n > 1:
            issues.append(_issue("DUPLICATE_ROLE_ID", f"role id {rid} is defined {n} times", role_id=rid))
    for name, n in names.items():
        if n > 1:
            issues.append(_issue("DUPLICATE_ROLE_NAME", f"role name {name!r} is defined {n} times"))
    by_id = {r.get("id"): r for r in roles}

    for r in roles:
        for perm in r.get("permissions") or ():
            if perm not in _PERMISSIONS:
                issues.append(
                    _issue("UNKNOWN_PERMISSION", f"role {r.get('name')!r} grants unknown permission {perm!r}")
                )

    for pid, count in Counter(p.get("id") for p in policies).items():
        if count > 1:
            issues.append(_issue("DUPLICATE_POLICY_ID", f"policy id {pid} is defined {count} times", policy_id=pid))

    for index, p in enumerate(policies):
        pid = p.get("id")
        role = by_id.get(p.get("role_id"))
        if role is None:
            issues.append(
                _issue("UNKNOWN_ROLE", f"policy references unknown role {p.get('role_id')!r}", policy_id=pid, index=index)
            )
        elif role.get("is_super_admin"):
            issues.append(
                _issue(
                    "SUPER_ADMIN_POLICY",
                    f"role {role.get('name')!r} is super-admin; its policies are never evaluated",
                    policy_id=pid,
                    index=index,
                )
            )
        if p.get("permission") not in _PERMISSIONS:
            issues.append(
                _issue("UNKNOWN_PERMISSION", f"unknown permission {p.get('permission')!r}", policy_id=pid, index=index)
            )
        try:
            cond = parse_condition(p.get("condition"))
        except ConfigurationError as e:
            issues.append(_issue("INVALID_CONDITION", str(e), policy_id=pid, index=index))
            continue
        if cond is None and p.get("effect") == "deny" and role is not None:
            if p.get("permission") in (role.get("permissions") or ()):
                issues.append(
                    _issue(
                        "UNCONDITIONAL_DENY",
                        f"role {role.get('name')!r} is granted {p.get('permission')!r} "
                        "but an unconditional deny policy removes it",
                        policy_id=pid,
                        index=index,
                    )
                )

    for index, ur in enumerate(doc.get("user_roles") or ()):
        if ur.get("role_id") not in by_id:
            issues.append(
                _issue(
                    "UNKNOWN_ROLE",
                    f"user {ur.get('user_id')!r} assigned to unknown role {ur.get('role_id')!r}",
                    index=index,
                )
            )
    return issues


__all__ = ["analyze_document", "Issue"]

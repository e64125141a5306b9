from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .condition import evaluate
from .errors import ConfigurationError, StorageUnavailable
from .helpers import gather_isolated, maybe_await, run_sync
from .model import AttributeBag, Decision, Permission, Policy, Role, Subject, role_names
from .ports import DecisionLogSink, MetricsSink, PolicyStore

logger = logging.getLogger("abacx.engine")


def _deny(reason: str, permission: Optional[Permission], **kw: Any) -> Decision:
    return Decision(allowed=False, effect="deny", reason=reason, permission=permission, **kw)


def _allow(reason: str, permission: Permission, **kw: Any) -> Decision:
    return Decision(allowed=True, effect="allow", reason=reason, permission=permission, **kw)


class DecisionEngine:
    """Combines role membership, policy effects and the super-admin override
    into a single allow/deny verdict.

    Evaluation order:
      1. super-admin role -> allow, no store access;
      2. policies of every role are fetched concurrently;
      3. a condition that cannot be evaluated -> deny (``configuration_error``);
      4. any active ``deny`` policy wins over every ``allow``;
      5. an active ``allow`` policy, then a static role grant -> allow;
      6. otherwise deny (``no_matching_policy``).

    ``logger_sink`` and ``metrics`` may be sync or async; their failures are
    logged and never change a decision.
    """

    def __init__(
        self,
        store: PolicyStore,
        *,
        logger_sink: DecisionLogSink | None = None,
        metrics: MetricsSink | None = None,
    ) -> None:
        self.store = store
        self.logger_sink = logger_sink
        self.metrics = metrics

    # ------------------------------------------------------------------ public

    async def decide(
        self,
        roles: Sequence[Role],
        permission: Any,
        resource: Optional[AttributeBag] = None,
        *,
        subject: Subject | AttributeBag | None = None,
    ) -> Decision:
        start = time.perf_counter()
        subject_bag = subject.attributes() if isinstance(subject, Subject) else dict(subject or {})
        decision = await self._decide(list(roles), permission, subject_bag, resource or {})
        await self._observe(decision, roles, subject_bag, resource, time.perf_counter() - start)
        return decision

    def decide_sync(
        self,
        roles: Sequence[Role],
        permission: Any,
        resource: Optional[AttributeBag] = None,
        *,
        subject: Subject | AttributeBag | None = None,
    ) -> Decision:
        return run_sync(self.decide(roles, permission, resource, subject=subject))

    # ---------------------------------------------------------------- internals

    async def _decide(
        self,
        roles: List[Role],
        permission: Any,
        subject: Mapping[str, Any],
        resource: Mapping[str, Any],
    ) -> Decision:
        try:
            perm = Permission.parse(permission)
        except ConfigurationError as e:
            logger.error("abacx: %s", e)
            return _deny("configuration_error", None, error=e)

        if any(r.is_super_admin for r in roles):
            return _allow("super_admin", perm)

        fetched = await gather_isolated(*(self.store.load_policies(r.id, perm) for r in roles))

        per_role: List[tuple[Role, List[Policy]]] = []
        for role, result in zip(roles, fetched):
            if isinstance(result, ConfigurationError):
                logger.error("abacx: malformed policy data for role %s: %s", role.name, result)
                return _deny("configuration_error", perm, role_id=role.id, error=result)
            if isinstance(result, BaseException):
                err = result if isinstance(result, StorageUnavailable) else StorageUnavailable(str(result))
                if err is not result:
                    err.__cause__ = result
                logger.error("abacx: policy store unavailable for role %s: %s", role.name, result)
                return _deny("storage_unavailable", perm, role_id=role.id, error=err)
            per_role.append((role, result))

        allow: Optional[Policy] = None
        deny: Optional[Policy] = None
        for role, policies in per_role:
            for policy in policies:
                if policy.permission is not perm:
                    continue
                try:
                    active = evaluate(policy.condition, subject, resource)
                except ConfigurationError as e:
                    logger.error("abacx: policy %s has an invalid condition: %s", policy.id, e)
                    return _deny(
                        "configuration_error", perm, policy_id=policy.id, role_id=role.id, error=e
                    )
                if not active:
                    continue
                if policy.effect == "deny":
                    deny = deny or policy
                else:
                    allow = allow or policy

        if deny is not None:
            return _deny("policy_deny", perm, policy_id=deny.id, role_id=deny.role_id)
        if allow is not None:
            return _allow("policy_allow", perm, policy_id=allow.id, role_id=allow.role_id)
        for role in roles:
            if perm in role.permissions:
                return _allow("role_grant", perm, role_id=role.id)
        return _deny("no_matching_policy", perm)

    async def _observe(
        self,
        decision: Decision,
        roles: Sequence[Role],
        subject: Mapping[str, Any],
        resource: Optional[AttributeBag],
        elapsed: float,
    ) -> None:
        if self.metrics is not None:
            try:
                await maybe_await(self.metrics.inc("abacx_decisions_total", {"decision": decision.effect}))
                observe = getattr(self.metrics, "observe", None)
                if observe is not None:
                    await maybe_await(observe("abacx_decision_seconds", elapsed, {"decision": decision.effect}))
            except Exception:
                logger.debug("abacx: metrics sink failed", exc_info=True)

        if self.logger_sink is not None:
            try:
                payload = _log_payload(decision, roles, subject, resource)
                await maybe_await(self.logger_sink.log(payload))
            except Exception:
                logger.debug("abacx: decision log sink failed", exc_info=True)


def _log_payload(
    decision: Decision,
    roles: Sequence[Role],
    subject: Mapping[str, Any],
    resource: Any,
) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "decision": decision.effect,
        "allowed": decision.allowed,
        "reason": decision.reason,
        "permission": str(decision.permission) if decision.permission else None,
        "policy_id": decision.policy_id,
        "role_id": decision.role_id,
        "roles": role_names(roles),
        "env": {
            "subject": dict(subject),
            # non-mapping resources are logged as given
            "resource": dict(resource) if isinstance(resource, Mapping) else resource or {},
        },
    }
    if decision.error is not None:
        payload["error"] = f"{type(decision.error).__name__}: {decision.error}"
    return payload


__all__ = ["DecisionEngine"]

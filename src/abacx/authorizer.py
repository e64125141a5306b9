from __future__ import annotations

import dataclasses
import logging
from typing import Any, Iterable, List, Optional, Sequence

from .core.engine import DecisionEngine
from .core.errors import ConfigurationError, StorageUnavailable, Unauthenticated
from .core.helpers import gather_isolated, run_sync
from .core.model import AttributeBag, Check, Decision, Role, Subject, as_check
from .core.ports import RoleStore

logger = logging.getLogger("abacx.authorizer")


class Authorizer:
    """Entry point for route guards and the dashboard's ``authorize`` endpoint.

    The subject is always passed explicitly; nothing is read from ambient
    request state. A ``None`` subject raises :class:`Unauthenticated`, every
    other failure resolves to a denial.
    """

    def __init__(self, engine: DecisionEngine, *, roles: RoleStore | None = None) -> None:
        self.engine = engine
        self.roles = roles

    async def _roles_for(self, subject: Optional[Subject]) -> List[Role]:
        if subject is None:
            raise Unauthenticated("no authenticated subject")
        if subject.roles or self.roles is None:
            return list(subject.roles)
        return list(await self.roles.load_roles(subject.id))

    async def evaluate(
        self, subject: Optional[Subject], permission: Any, resource: Optional[AttributeBag] = None
    ) -> Decision:
        return (await self.evaluate_batch(subject, [Check(permission, resource)]))[0]

    async def authorize(
        self, subject: Optional[Subject], permission: Any, resource: Optional[AttributeBag] = None
    ) -> bool:
        return (await self.evaluate(subject, permission, resource)).allowed

    async def evaluate_batch(
        self, subject: Optional[Subject], checks: Iterable[Check | Any]
    ) -> List[Decision]:
        """Evaluate each check independently, preserving input order.

        A failing check maps to a deny Decision carrying its error; the other
        checks are unaffected.
        """
        items: Sequence[Check] = [as_check(c) for c in checks]
        try:
            roles = await self._roles_for(subject)
        except Unauthenticated:
            raise
        except ConfigurationError as e:
            logger.error("abacx: role store returned malformed roles: %s", e)
            return [
                Decision(allowed=False, effect="deny", reason="configuration_error", error=e)
                for _ in items
            ]
        except Exception as e:
            err = e if isinstance(e, StorageUnavailable) else StorageUnavailable(str(e))
            if err is not e:
                err.__cause__ = e
            logger.error("abacx: role store unavailable: %s", e)
            return [
                Decision(allowed=False, effect="deny", reason="storage_unavailable", error=err)
                for _ in items
            ]
        if not items:
            return []
        if subject is not None and not subject.roles:
            subject = dataclasses.replace(subject, roles=roles)
        results = await gather_isolated(
            *(self.engine.decide(roles, c.permission, c.resource, subject=subject) for c in items)
        )
        out: List[Decision] = []
        for check, result in zip(items, results):
            if isinstance(result, Exception):
                logger.error("abacx: check %r failed: %s", check.permission, result)
                result = Decision(allowed=False, effect="deny", reason="internal_error", error=result)
            elif isinstance(result, BaseException):
                raise result
            out.append(result)
        return out

    async def authorize_batch(
        self, subject: Optional[Subject], checks: Iterable[Check | Any]
    ) -> List[bool]:
        return [d.allowed for d in await self.evaluate_batch(subject, checks)]

    # ------------------------------------------------------------- sync variants

    def evaluate_sync(
        self, subject: Optional[Subject], permission: Any, resource: Optional[AttributeBag] = None
    ) -> Decision:
        return run_sync(self.evaluate(subject, permission, resource))

    def authorize_sync(
        self, subject: Optional[Subject], permission: Any, resource: Optional[AttributeBag] = None
    ) -> bool:
        return run_sync(self.authorize(subject, permission, resource))

    def authorize_batch_sync(
        self, subject: Optional[Subject], checks: Iterable[Check | Any]
    ) -> List[bool]:
        return run_sync(self.authorize_batch(subject, checks))


__all__ = ["Authorizer"]

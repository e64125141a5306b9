from __future__ import annotations

from typing import Any, Awaitable, Dict, List, Protocol, Union, runtime_checkable

from .model import Permission, Policy, Role


@runtime_checkable
class PolicyStore(Protocol):
    """Read side of the persistence layer.

    Implementations return an empty list when nothing matches and preserve
    storage insertion order. Transport failures surface as
    :class:`~abacx.core.errors.StorageUnavailable`.
    """

    async def load_policies(self, role_id: int, permission: Permission) -> List[Policy]: ...


@runtime_checkable
class RoleStore(Protocol):
    """Resolves the roles of a subject, default roles included."""

    async def load_roles(self, subject_id: str) -> List[Role]: ...


@runtime_checkable
class DecisionLogSink(Protocol):
    def log(self, payload: Dict[str, Any]) -> Union[None, Awaitable[None]]: ...


@runtime_checkable
class MetricsSink(Protocol):
    def inc(self, name: str, labels: Dict[str, str] | None = None) -> Union[None, Awaitable[None]]: ...


@runtime_checkable
class MetricsObserve(Protocol):
    def observe(
        self, name: str, value: float, labels: Dict[str, str] | None = None
    ) -> Union[None, Awaitable[None]]: ...


__all__ = ["PolicyStore", "RoleStore", "DecisionLogSink", "MetricsSink", "MetricsObserve"]

"""Attribute-based access policy evaluator."""

from importlib.metadata import PackageNotFoundError, version

from .authorizer import Authorizer
from .core.condition import MISSING, dump_condition, evaluate, parse_condition
from .core.engine import DecisionEngine
from .core.errors import AbacxError, ConfigurationError, StorageUnavailable, Unauthenticated
from .core.model import Check, Decision, Permission, Policy, Role, Subject
from .store.memory import InMemoryPolicyStore

try:
    __version__ = version("abacx")
except PackageNotFoundError:  # pragma: no cover - running from a source tree
    __version__ = "0.0.0"

__all__ = [
    "Authorizer",
    "DecisionEngine",
    "evaluate",
    "parse_condition",
    "dump_condition",
    "MISSING",
    "Permission",
    "Role",
    "Policy",
    "Subject",
    "Check",
    "Decision",
    "AbacxError",
    "ConfigurationError",
    "StorageUnavailable",
    "Unauthenticated",
    "InMemoryPolicyStore",
    "__version__",
]

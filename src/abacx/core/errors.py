from __future__ import annotations


class AbacxError(Exception):
    """Base class for all abacx errors."""


class Unauthenticated(AbacxError):
    """No valid subject is attached to the request."""


class ConfigurationError(AbacxError):
    """Policy data is malformed: unknown operator, bad attribute reference,
    or a permission outside the closed enum.

    This is a data-integrity problem, never a user error; callers must deny.
    """


class StorageUnavailable(AbacxError):
    """The policy or role store could not be read."""


__all__ = ["AbacxError", "Unauthenticated", "ConfigurationError", "StorageUnavailable"]

"""
Error taxonomy.

* ``ValidationError``          -- per-step, user-correctable input problems.
* ``StateConflictError``       -- lost a race or duplicated an action; the
  caller should explain "someone else got there first".
* ``ExternalDependencyError``  -- payment / storage failure; retryable and
  never to be read as success.
* ``IllegalTransitionError``   -- an event the current lifecycle state does
  not permit.

Validation failures and race losses are normally *returned* as values;
external and illegal-transition errors are raised.
"""

from __future__ import annotations


class MarketplaceError(Exception):
    """Base class for every domain error."""


class ValidationError(MarketplaceError):
    def __init__(self, failures: list | tuple = ()):
        self.failures = list(failures)
        steps = ", ".join(f.step.value for f in self.failures) or "unknown"
        super().__init__(f"Invalid booking steps: {steps}")


class StateConflictError(MarketplaceError):
    """Raised or returned when a concurrent writer won."""

    def __init__(self, message: str, code: str = "CONFLICT"):
        self.code = code
        super().__init__(message)


class ExternalDependencyError(MarketplaceError):
    def __init__(self, message: str, dependency: str = "unknown"):
        self.dependency = dependency
        super().__init__(message)


class IllegalTransitionError(MarketplaceError):
    """Raised when a status change violates a state machine."""


class NotFoundError(MarketplaceError):
    pass


class AuthorizationError(MarketplaceError):
    pass

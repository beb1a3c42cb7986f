"""
Errors
------

The failures a rental session command can end in. The HTTP layer
maps each of these to a JSend ``fail`` response.
"""

from typing import Dict, Any, Optional


class SessionError(Exception):
    """The base for every error raised by the session engine."""

    def __init__(self, message: str, data: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.data = data if data is not None else {}


class NotFoundError(SessionError):
    """A device, session, member or category does not exist."""


class ConflictError(SessionError):
    """The device is not in a state that allows the command."""


class UnauthorizedError(SessionError):
    """The supplied member PIN does not match."""


class InvalidInputError(SessionError):
    """A duration, amount or category is malformed. Raised before anything is mutated."""


class InsufficientFundsError(SessionError):
    """A member's deposit cannot cover a charge."""

    def __init__(self, balance: int, required: int):
        super().__init__("Deposit is insufficient.", {
            "balance": balance,
            "required": required,
            "shortfall": required - balance,
        })
        self.balance = balance
        self.required = required


class ActuatorFailure(SessionError):
    """The relay could not be switched. Never blocks a transition."""


class LoggingFailure(SessionError):
    """An activity could not be appended to the ledger. Never rolls back a transition."""

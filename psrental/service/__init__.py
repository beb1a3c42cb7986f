"""
.. autoclasstree:: psrental.service

The service layer for the system. Acts as the internal API.
The HTTP views and the background tasks both go through the
service layer, so that a session is billed the same way no
matter who ends it.
"""

from psrental.errors import (
    SessionError, NotFoundError, ConflictError, UnauthorizedError,
    InvalidInputError, InsufficientFundsError, ActuatorFailure, LoggingFailure
)
from .ledger import ActivityLedger, compute_usage_seconds
from .manager.session_manager import SessionManager, SessionEvent, Receipt, TimerState

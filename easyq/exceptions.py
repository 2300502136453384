"""
EasyQ Exceptions

Status codes shared by the bridge and the HTTP service, and the
exception hierarchy raised by the engines.
"""

from enum import IntEnum
from typing import Optional


class Status(IntEnum):
    """Boundary status codes. 0-5 match the narrow header variant."""
    SUCCESS = 0
    GENERAL_ERROR = 1
    NOT_INITIALIZED = 2
    INVALID_ARGUMENT = 3
    RUNTIME_ERROR = 4
    TIMEOUT = 5
    AUTHENTICATION_ERROR = 6
    CONNECTION_ERROR = 7


class EasyQError(Exception):
    """Base exception for all EasyQ failures."""

    status = Status.GENERAL_ERROR

    def __init__(self, detail: str = "", status: Optional[Status] = None):
        super().__init__(detail)
        self.detail = detail
        if status is not None:
            self.status = status


class NotInitializedError(EasyQError):
    """Runtime not initialized or no Ready connection."""
    status = Status.NOT_INITIALIZED


class InvalidArgumentError(EasyQError, ValueError):
    """Caller contract violation. Never retried automatically."""
    status = Status.INVALID_ARGUMENT


class QuantumRuntimeError(EasyQError):
    """Unexpected backend failure."""
    status = Status.RUNTIME_ERROR


class RuntimeNotReadyError(QuantumRuntimeError):
    """Runtime initialized twice without an intervening shutdown."""
    pass


class OperationTimeoutError(EasyQError):
    """Resource did not answer before the deadline. Safe to retry."""
    status = Status.TIMEOUT


class AuthenticationError(EasyQError):
    """Credential rejected by the quantum resource."""
    status = Status.AUTHENTICATION_ERROR


class BackendConnectionError(EasyQError):
    """Transport failure talking to the quantum resource."""
    status = Status.CONNECTION_ERROR


class ResourceUnavailableError(BackendConnectionError):
    """Quantum resource not reachable. Engines may fall back on this."""
    pass

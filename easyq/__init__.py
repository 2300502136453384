"""
EasyQ

Runtime between applications and a quantum resource: connection
management, Grover-style search, quantum random generation and quantum
key distribution.

    runtime = EasyQRuntime()
    runtime.initialize()
    await runtime.use_default_simulator()
    result = await runtime.search(["a", "b", "c", "d"], "equals 'c'")
"""

__version__ = "0.1.0"

from .connection import BackendType, ConnectionConfig, ConnectionManager
from .exceptions import (
    AuthenticationError,
    BackendConnectionError,
    EasyQError,
    InvalidArgumentError,
    NotInitializedError,
    OperationTimeoutError,
    QuantumRuntimeError,
    ResourceUnavailableError,
    RuntimeNotReadyError,
    Status,
)
from .models import (
    ChannelOptions,
    ChannelReport,
    KeyOptions,
    KeyResult,
    ProtocolVariant,
    Provenance,
    RandomResult,
    SearchOptions,
    SearchResult,
    SecurityVerdict,
)
from .runtime import EasyQRuntime

__all__ = [
    "AuthenticationError",
    "BackendConnectionError",
    "BackendType",
    "ChannelOptions",
    "ChannelReport",
    "ConnectionConfig",
    "ConnectionManager",
    "EasyQError",
    "EasyQRuntime",
    "InvalidArgumentError",
    "KeyOptions",
    "KeyResult",
    "NotInitializedError",
    "OperationTimeoutError",
    "ProtocolVariant",
    "Provenance",
    "QuantumRuntimeError",
    "RandomResult",
    "ResourceUnavailableError",
    "RuntimeNotReadyError",
    "SearchOptions",
    "SearchResult",
    "SecurityVerdict",
    "Status",
]

"""
Connection Management

Owns the single live connection to a quantum resource and its session
state machine:

    UNCONFIGURED → CONFIGURING → READY
                        ↓
                      FAILED → CONFIGURING (on reconfiguration)

Configure and shutdown are serialized by one lock. Readers only ever
see a connection after its handshake has completed.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Union

from pydantic import ValidationError

from ..config import Settings, get_settings
from ..exceptions import (
    EasyQError,
    InvalidArgumentError,
    NotInitializedError,
    OperationTimeoutError,
    QuantumRuntimeError,
    RuntimeNotReadyError,
)
from ..models import ResourceLimits, SessionState
from ..resources import QuantumResource, create_resource
from .models import ConnectionConfig

logger = logging.getLogger(__name__)

ResourceFactory = Callable[[ConnectionConfig, Settings], QuantumResource]


@dataclass
class Connection:
    """A Ready connection. Engines take it as a read-only snapshot."""
    connection_id: str
    config: ConnectionConfig
    resource: QuantumResource
    limits: ResourceLimits
    endpoint: str
    state: SessionState = SessionState.READY
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    usage: Dict[str, int] = field(
        default_factory=lambda: {"entropy_bytes": 0, "search_rounds": 0, "qkd_sessions": 0}
    )
    measurement_lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False, compare=False)

    def record_usage(self, kind: str, amount: int = 1) -> None:
        """Commit a usage entry. Called only once an operation has succeeded."""
        self.usage[kind] = self.usage.get(kind, 0) + amount

    def to_dict(self) -> Dict[str, Any]:
        return {
            "connection_id": self.connection_id,
            "state": self.state.value,
            "endpoint": self.endpoint,
            "backend": self.config.describe(),
            "limits": {
                "max_qubits": self.limits.max_qubits,
                "max_shots": self.limits.max_shots,
            },
            "created_at": self.created_at.isoformat(),
            "usage": dict(self.usage),
        }


class ConnectionManager:
    """
    Lifecycle control for the runtime.

    `initialize()` must precede everything else. `configure()` replaces
    any previous connection, so at most one is ever live.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        resource_factory: ResourceFactory = create_resource,
    ):
        self._settings = settings or get_settings()
        self._resource_factory = resource_factory
        self._initialized = False
        self._state = SessionState.UNCONFIGURED
        self._connection: Optional[Connection] = None
        self._lock = asyncio.Lock()

    @property
    def version(self) -> str:
        return self._settings.app_version

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def settings(self) -> Settings:
        return self._settings

    def initialize(self) -> None:
        """
        Allocate runtime state.

        Raises:
            RuntimeNotReadyError: If already initialized without a shutdown
        """
        if self._initialized:
            raise RuntimeNotReadyError("EasyQ runtime is already initialized")
        self._initialized = True
        self._state = SessionState.UNCONFIGURED
        logger.info("EasyQ runtime %s initialized", self.version)

    async def shutdown(self) -> None:
        """Release the connection and runtime state. No-op when uninitialized."""
        if not self._initialized:
            return

        async with self._lock:
            previous, self._connection = self._connection, None
            if previous is not None:
                await self._close_resource(previous.resource)
            self._state = SessionState.UNCONFIGURED
            self._initialized = False
        logger.info("EasyQ runtime shut down")

    async def disconnect(self) -> None:
        """Release the connection but keep the runtime initialized."""
        if not self._initialized:
            raise NotInitializedError("EasyQ runtime is not initialized")

        async with self._lock:
            previous, self._connection = self._connection, None
            if previous is not None:
                await self._close_resource(previous.resource)
                logger.info("Connection %s released", previous.connection_id)
            self._state = SessionState.UNCONFIGURED

    def active_connection(self) -> Connection:
        """
        Get the Ready connection.

        Raises:
            NotInitializedError: If uninitialized, unconfigured, failed or mid-transition
        """
        if not self._initialized:
            raise NotInitializedError("EasyQ runtime is not initialized")
        connection = self._connection
        if connection is None or self._state != SessionState.READY:
            raise NotInitializedError(
                f"No ready quantum connection (state: {self._state.value})"
            )
        return connection

    async def configure(self, config: Union[ConnectionConfig, Dict[str, Any]]) -> Connection:
        """
        Establish a connection, replacing any previous one.

        Args:
            config: Validated config or a raw config document

        Returns:
            The new Ready connection

        Raises:
            NotInitializedError: If the runtime is not initialized
            InvalidArgumentError: If the config is malformed
            AuthenticationError: If the resource rejects the credential
            BackendConnectionError: If the resource cannot be reached
            OperationTimeoutError: If the handshake exceeds its deadline
        """
        if not self._initialized:
            raise NotInitializedError("EasyQ runtime is not initialized")

        async with self._lock:
            previous, self._connection = self._connection, None
            logger.debug("Connection: %s → CONFIGURING", self._state.value.upper())
            self._state = SessionState.CONFIGURING

            if previous is not None:
                logger.info("Tearing down connection %s", previous.connection_id)
                await self._close_resource(previous.resource)

            try:
                connection = await self._establish(config)
            except EasyQError as e:
                self._state = SessionState.FAILED
                logger.warning("Connection configuration failed: %s", e.detail)
                raise
            except asyncio.CancelledError:
                self._state = SessionState.FAILED
                raise
            except Exception as e:
                self._state = SessionState.FAILED
                logger.exception("Unexpected failure configuring connection: %s", e)
                raise QuantumRuntimeError(f"Connection configuration failed: {e}") from e

            self._connection = connection
            self._state = SessionState.READY
            logger.debug("Connection: CONFIGURING → READY")
            logger.info(
                "Connection %s ready at %s (qubits=%d, shots=%d)",
                connection.connection_id, connection.endpoint,
                connection.limits.max_qubits, connection.limits.max_shots,
            )
            return connection

    async def use_default_simulator(self) -> Connection:
        """Configure the local simulator with default settings."""
        return await self.configure(ConnectionConfig())

    async def _establish(self, config: Union[ConnectionConfig, Dict[str, Any]]) -> Connection:
        validated = self._validate(config)
        endpoint = validated.resolve_endpoint(self._settings)
        resource = self._resource_factory(validated, self._settings)
        timeout = validated.timeout or self._settings.default_timeout

        try:
            reported = await asyncio.wait_for(resource.open(), timeout=timeout)
        except asyncio.TimeoutError as e:
            await self._close_resource(resource)
            raise OperationTimeoutError(
                f"Handshake with {endpoint} exceeded {timeout:.1f}s"
            ) from e
        except BaseException:
            await self._close_resource(resource)
            raise

        configured = ResourceLimits(
            max_qubits=validated.max_qubits or self._settings.default_max_qubits,
            max_shots=validated.max_shots or self._settings.default_max_shots,
        )
        limits = ResourceLimits(
            max_qubits=min(configured.max_qubits, reported.max_qubits),
            max_shots=min(configured.max_shots, reported.max_shots),
        )
        if limits.max_qubits <= 0 or limits.max_shots <= 0:
            await self._close_resource(resource)
            raise InvalidArgumentError("Resource limits must be positive")

        return Connection(
            connection_id=uuid.uuid4().hex,
            config=validated,
            resource=resource,
            limits=limits,
            endpoint=endpoint,
        )

    @staticmethod
    def _validate(config: Union[ConnectionConfig, Dict[str, Any]]) -> ConnectionConfig:
        if isinstance(config, ConnectionConfig):
            return config
        if not isinstance(config, dict):
            raise InvalidArgumentError("Connection config must be a JSON object")
        try:
            return ConnectionConfig.model_validate(config)
        except ValidationError as e:
            errors = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'config'}: {err['msg']}"
                for err in e.errors()
            )
            raise InvalidArgumentError(f"Invalid connection config: {errors}") from e

    @staticmethod
    async def _close_resource(resource: QuantumResource) -> None:
        try:
            await resource.close()
        except EasyQError as e:
            logger.warning("Resource did not close cleanly: %s", e.detail)

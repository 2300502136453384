"""
Randomness Engine

Uniform random integers and byte strings measured from the quantum
resource, with a flagged classical fallback when the resource is
unavailable.
"""

import asyncio
import logging
from typing import TYPE_CHECKING, List, Optional, Tuple

from ..config import Settings, get_settings
from ..exceptions import (
    InvalidArgumentError,
    OperationTimeoutError,
    QuantumRuntimeError,
    ResourceUnavailableError,
)
from ..models import Provenance, RandomResult
from ..policy import FallbackPolicy
from .classical import ChaCha20CSPRNG, get_fallback_csprng

if TYPE_CHECKING:
    from ..connection import Connection, ConnectionManager

logger = logging.getLogger(__name__)


def _require_int(name: str, value) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidArgumentError(f"{name} must be an integer")
    return value


def resolve_timeout(timeout: Optional[float], settings: Settings) -> float:
    """Per-call deadline, defaulting to the configured one."""
    if timeout is None:
        return settings.default_timeout
    if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
        raise InvalidArgumentError("Timeout must be a positive number of seconds")
    return float(timeout)


class RandomnessEngine:
    """
    Random generation against the active connection.

    Every public call validates first, then takes a snapshot of the
    active connection, then talks to its resource under a deadline.
    """

    def __init__(
        self,
        manager: "ConnectionManager",
        policy: Optional[FallbackPolicy] = None,
        fallback: Optional[ChaCha20CSPRNG] = None,
        settings: Optional[Settings] = None,
    ):
        self._manager = manager
        self._settings = settings or get_settings()
        self._policy = policy or FallbackPolicy(enabled=self._settings.allow_classical_fallback)
        self._fallback = fallback

    def _classical(self, size: int) -> bytes:
        generator = self._fallback or get_fallback_csprng()
        return generator.generate(size)

    async def draw(self, connection: "Connection", size: int) -> Tuple[bytes, Provenance]:
        """
        Draw exactly `size` bytes from the connection's resource.

        Requests are chunked to the connection's limits. Falls back to the
        classical CSPRNG only when the resource is unavailable and policy
        allows it. The caller bounds the call with its own deadline.
        """
        if size == 0:
            return b"", Provenance.QUANTUM_SOURCED

        chunk = max(1, connection.limits.positions_per_call // 8)
        output = bytearray()
        try:
            while len(output) < size:
                wanted = min(chunk, size - len(output))
                material = await connection.resource.entropy(wanted)
                if len(material) != wanted:
                    raise QuantumRuntimeError(
                        f"Short entropy read: got {len(material)} of {wanted} bytes"
                    )
                output += material
        except ResourceUnavailableError as e:
            if not self._policy.can_fallback("random", e):
                raise
            return self._classical(size), Provenance.FALLBACK_SOURCED

        return bytes(output), Provenance.QUANTUM_SOURCED

    async def random_bits(self, connection: "Connection", count: int) -> Tuple[List[int], Provenance]:
        """`count` random bits, least significant bit of each byte first."""
        material, provenance = await self.draw(connection, (count + 7) // 8)
        bits = [(material[i // 8] >> (i % 8)) & 1 for i in range(count)]
        return bits, provenance

    async def random_bytes(self, length: int, timeout: Optional[float] = None) -> RandomResult:
        """
        Generate `length` random bytes.

        Raises:
            InvalidArgumentError: If length is negative or not an integer
            NotInitializedError: If no connection is Ready
            OperationTimeoutError: If the deadline passes first
            QuantumRuntimeError: On a short read or classical failure
        """
        length = _require_int("length", length)
        if length < 0:
            raise InvalidArgumentError("length must be non-negative")
        deadline = resolve_timeout(timeout, self._settings)

        connection = self._manager.active_connection()
        if length == 0:
            return RandomResult(value=b"", provenance=Provenance.QUANTUM_SOURCED)

        try:
            data, provenance = await asyncio.wait_for(
                self.draw(connection, length), timeout=deadline
            )
        except asyncio.TimeoutError as e:
            raise OperationTimeoutError(
                f"Random byte generation exceeded {deadline:.1f}s"
            ) from e

        if provenance == Provenance.QUANTUM_SOURCED:
            connection.record_usage("entropy_bytes", length)
        return RandomResult(value=data, provenance=provenance)

    async def random_int(
        self,
        min_value: int,
        max_value: int,
        timeout: Optional[float] = None,
    ) -> RandomResult:
        """
        Generate a uniform integer in [min_value, max_value].

        Fixed-width samples are masked to the bit length of the span and
        redrawn when out of range.

        Raises:
            InvalidArgumentError: If min_value > max_value or either is not an integer
            QuantumRuntimeError: If no in-range sample appears within the draw limit
        """
        min_value = _require_int("min", min_value)
        max_value = _require_int("max", max_value)
        if min_value > max_value:
            raise InvalidArgumentError(f"min ({min_value}) must not exceed max ({max_value})")
        deadline = resolve_timeout(timeout, self._settings)

        connection = self._manager.active_connection()
        span = max_value - min_value
        if span == 0:
            return RandomResult(value=min_value, provenance=Provenance.QUANTUM_SOURCED)

        try:
            offset, provenance, used = await asyncio.wait_for(
                self._rejection_sample(connection, span), timeout=deadline
            )
        except asyncio.TimeoutError as e:
            raise OperationTimeoutError(
                f"Random integer generation exceeded {deadline:.1f}s"
            ) from e

        if used:
            connection.record_usage("entropy_bytes", used)
        return RandomResult(value=min_value + offset, provenance=provenance)

    async def _rejection_sample(self, connection: "Connection", span: int) -> Tuple[int, Provenance, int]:
        bits = span.bit_length()
        width = (bits + 7) // 8
        mask = (1 << bits) - 1
        provenance = Provenance.QUANTUM_SOURCED
        quantum_bytes = 0

        for _ in range(self._settings.max_rejection_draws):
            material, source = await self.draw(connection, width)
            if source == Provenance.FALLBACK_SOURCED:
                provenance = source
            else:
                quantum_bytes += width
            candidate = int.from_bytes(material, "little") & mask
            if candidate <= span:
                return candidate, provenance, quantum_bytes

        raise QuantumRuntimeError(
            f"No in-range sample after {self._settings.max_rejection_draws} draws"
        )

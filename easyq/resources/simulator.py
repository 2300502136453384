"""
Quantum Simulator

In-process stand-in for a QPU. Entropy comes from a seedable PRNG,
amplitude readouts follow the exact Grover success probability over
the oracle's pending matches, and the QKD channel models depolarizing
noise and an intercept-resend eavesdropper.
"""

import asyncio
import logging
import math
import random
from typing import List, Optional, Sequence

from ..exceptions import QuantumRuntimeError, ResourceUnavailableError
from ..models import ResourceLimits
from .base import AmplitudeReadout, Oracle, QuantumResource

logger = logging.getLogger(__name__)


class SimulatorResource(QuantumResource):

    name = "simulator"

    def __init__(
        self,
        limits: ResourceLimits,
        seed: Optional[int] = None,
        noise_level: float = 0.0,
        eavesdrop_rate: float = 0.0,
    ):
        self._limits = limits
        self._rng = random.Random(seed) if seed is not None else random.SystemRandom()
        self._noise_level = noise_level
        self._eavesdrop_rate = eavesdrop_rate
        self._open = False

    async def open(self) -> ResourceLimits:
        self._open = True
        logger.info(
            "Simulator session opened (noise=%.3f, eavesdrop=%.3f)",
            self._noise_level, self._eavesdrop_rate,
        )
        return self._limits

    async def close(self) -> None:
        self._open = False

    def _check_open(self) -> None:
        if not self._open:
            raise ResourceUnavailableError("Simulator session is closed")

    async def entropy(self, size: int) -> bytes:
        self._check_open()
        if size <= 0:
            return b""
        # One Hadamard-then-measure per bit.
        return self._rng.getrandbits(size * 8).to_bytes(size, "little")

    async def amplify(self, oracle: Oracle, iterations: int) -> AmplitudeReadout:
        self._check_open()
        n = len(oracle)
        marked = oracle.pending_indices()
        m = len(marked)

        if m == 0 or m == n:
            index = self._rng.randrange(n)
            await asyncio.sleep(0)
            return AmplitudeReadout(index=index, probability=1.0 / n)

        theta = math.asin(math.sqrt(m / n))
        p_marked = math.sin((2 * iterations + 1) * theta) ** 2
        p_marked = (1 - self._noise_level) * p_marked + self._noise_level * m / n

        if self._rng.random() < p_marked:
            index = self._rng.choice(marked)
            probability = p_marked / m
        else:
            marked_set = set(marked)
            unmarked = [i for i in range(n) if i not in marked_set]
            index = self._rng.choice(unmarked)
            probability = (1 - p_marked) / (n - m)

        await asyncio.sleep(0)
        return AmplitudeReadout(index=index, probability=probability)

    async def transmit(
        self,
        bits: Sequence[int],
        bases: Sequence[int],
        measure_bases: Sequence[int],
    ) -> List[int]:
        self._check_open()
        if not len(bits) == len(bases) == len(measure_bases):
            raise QuantumRuntimeError("Transmission vectors differ in length")
        if len(bits) > self._limits.positions_per_call:
            raise QuantumRuntimeError(
                f"Transmission of {len(bits)} qubits exceeds resource limits"
            )

        results = []
        for bit, basis, measure_basis in zip(bits, bases, measure_bases):
            disturbed = False
            if self._eavesdrop_rate and self._rng.random() < self._eavesdrop_rate:
                # Intercept-resend: a wrong-basis measurement randomizes the state.
                disturbed = self._rng.randint(0, 1) != basis

            if measure_basis != basis or disturbed:
                results.append(self._rng.randint(0, 1))
            elif self._rng.random() < self._noise_level:
                results.append(1 - bit)
            else:
                results.append(bit)

        await asyncio.sleep(0)
        return results

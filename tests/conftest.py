import asyncio
import math
import os
import random
import time
from typing import List, Optional, Sequence

import pytest

os.environ.setdefault("EASYQ_SECRET_KEY", "test-secret-key-for-testing-only")
os.environ.setdefault("EASYQ_API_TOKEN", "test-api-token")

from easyq.config import Settings
from easyq.exceptions import ResourceUnavailableError
from easyq.models import ResourceLimits
from easyq.randomness import ChaCha20CSPRNG
from easyq.resources import AmplitudeReadout, Oracle, QuantumResource
from easyq.runtime import EasyQRuntime


class ScriptedResource(QuantumResource):
    """
    Deterministic test backend.

    Entropy comes from a seeded generator. Amplitude readouts follow
    `readouts` when given and otherwise return the first match not yet
    found. Errors on matching-basis positions are spread evenly so the
    sifted error rate is exactly `qber`.
    """

    name = "scripted"

    def __init__(
        self,
        limits: ResourceLimits = ResourceLimits(max_qubits=8, max_shots=64),
        qber: float = 0.0,
        seed: int = 7,
        available: bool = True,
        readouts: Optional[List[int]] = None,
        handshake_delay: float = 0.0,
        amplify_delay: float = 0.0,
        blocking_delay: float = 0.0,
        fail_open: Optional[Exception] = None,
    ):
        self.limits = limits
        self.qber = qber
        self.available = available
        self.readouts = list(readouts or [])
        self.handshake_delay = handshake_delay
        self.amplify_delay = amplify_delay
        self.blocking_delay = blocking_delay
        self.fail_open = fail_open
        self.opened = False
        self.closed = False
        self.entropy_calls = 0
        self.amplify_calls = 0
        self.amplify_iterations: List[int] = []
        self.transmit_calls = 0
        self._rng = random.Random(seed)
        self._matched = 0

    async def open(self) -> ResourceLimits:
        if self.handshake_delay:
            await asyncio.sleep(self.handshake_delay)
        if self.fail_open is not None:
            raise self.fail_open
        self.opened = True
        return self.limits

    async def close(self) -> None:
        self.closed = True

    def _check(self) -> None:
        if not self.available:
            raise ResourceUnavailableError("scripted resource offline")

    async def entropy(self, size: int) -> bytes:
        self._check()
        self.entropy_calls += 1
        return bytes(self._rng.getrandbits(8) for _ in range(size))

    async def amplify(self, oracle: Oracle, iterations: int) -> AmplitudeReadout:
        self._check()
        if self.amplify_delay:
            await asyncio.sleep(self.amplify_delay)
        self.amplify_calls += 1
        self.amplify_iterations.append(iterations)
        if self.readouts:
            index = self.readouts.pop(0)
        else:
            marked = oracle.pending_indices()
            index = marked[0] if marked else 0
        return AmplitudeReadout(index=index, probability=1.0)

    async def transmit(
        self,
        bits: Sequence[int],
        bases: Sequence[int],
        measure_bases: Sequence[int],
    ) -> List[int]:
        self._check()
        self.transmit_calls += 1
        assert len(bits) <= self.limits.positions_per_call
        if self.blocking_delay:
            # Holds the event loop, like a driver call that never yields.
            time.sleep(self.blocking_delay)
        results = []
        for bit, basis, measure_basis in zip(bits, bases, measure_bases):
            if basis != measure_basis:
                results.append(self._rng.randint(0, 1))
                continue
            flip = math.floor((self._matched + 1) * self.qber) > math.floor(self._matched * self.qber)
            self._matched += 1
            results.append(bit ^ int(flip))
        return results


class ScriptedFactory:
    """Resource factory handing out a fresh ScriptedResource per configure."""

    def __init__(self, **kwargs):
        self.kwargs = kwargs
        self.created: List[ScriptedResource] = []

    def __call__(self, config, settings) -> ScriptedResource:
        resource = ScriptedResource(**self.kwargs)
        self.created.append(resource)
        return resource

    @property
    def last(self) -> ScriptedResource:
        return self.created[-1]


@pytest.fixture
def settings():
    return Settings(
        secret_key="test-secret-key-for-testing-only",
        api_token="test-api-token",
        default_timeout=5.0,
        qkd_over_provisioning=16.0,
    )


@pytest.fixture
def factory():
    return ScriptedFactory()


@pytest.fixture(scope="session")
def fallback_csprng():
    return ChaCha20CSPRNG()


@pytest.fixture
async def runtime(settings, factory, fallback_csprng):
    rt = EasyQRuntime(settings, factory, fallback=fallback_csprng)
    rt.initialize()
    await rt.configure({"backend_type": "simulator"})
    yield rt
    await rt.shutdown()


@pytest.fixture
def letters():
    return ["a", "b", "c", "d"]

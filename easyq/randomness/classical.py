"""
Classical Fallback Entropy

ChaCha20 CSPRNG keyed from a conditioned entropy pool. Used only when
the quantum resource is unavailable; everything it produces is flagged
as fallback-sourced by the caller.
"""

import hashlib
import logging
import os
import secrets
import struct
import threading
import time
from typing import Optional

from cryptography.hazmat.primitives.ciphers import Cipher, algorithms

from ..exceptions import QuantumRuntimeError

logger = logging.getLogger(__name__)

ENTROPY_POOL_SIZE = 256
HEALTH_SAMPLE_SIZE = 4096
# Chi-squared critical value for 255 degrees of freedom at p ~ 1e-4.
HEALTH_CHI_SQUARED_LIMIT = 350.0


class EntropyPool:
    """
    BLAKE2b-conditioned pool mixing OS entropy, the `secrets` module
    and timing jitter.
    """

    def __init__(self):
        self._pool = bytearray(ENTROPY_POOL_SIZE)
        self._lock = threading.Lock()
        self._total_bytes_extracted = 0
        self._reseed_count = 0
        self._healthy = True
        self._last_health_check = 0.0

        sources = {
            "os_urandom": os.urandom(64),
            "secrets_module": secrets.token_bytes(64),
            "timing_jitter": self._timing_entropy(32),
        }
        conditioned = self._condition(b"".join(sources.values()))
        with self._lock:
            self._pool[:] = conditioned

        self._sources = list(sources)
        logger.info("Fallback entropy pool initialized from %s", ", ".join(self._sources))

    @staticmethod
    def _timing_entropy(size: int) -> bytes:
        result = bytearray(size)
        for i in range(size * 8):
            start = time.perf_counter_ns()
            hashlib.sha256(os.urandom(32)).digest()
            jitter = (time.perf_counter_ns() - start) & 1
            result[i // 8] |= jitter << (i % 8)
        return bytes(result)

    @staticmethod
    def _condition(raw: bytes) -> bytes:
        output = bytearray()
        block = 0
        while len(output) < ENTROPY_POOL_SIZE:
            output += hashlib.blake2b(raw + struct.pack("<I", block), digest_size=64).digest()
            block += 1
        return bytes(output[:ENTROPY_POOL_SIZE])

    def reseed(self) -> None:
        fresh = os.urandom(32) + self._timing_entropy(16)
        with self._lock:
            self._pool[:] = self._condition(bytes(self._pool) + fresh)
            self._reseed_count += 1
        logger.debug("Fallback entropy pool reseeded (count: %d)", self._reseed_count)

    def extract(self, size: int) -> bytes:
        """Extract `size` bytes, ratcheting the pool forward after each block."""
        if size <= 0:
            raise ValueError("Size must be positive")

        with self._lock:
            output = bytearray()
            counter = 0
            while len(output) < size:
                block = hashlib.blake2b(
                    bytes(self._pool) + struct.pack("<Q", counter), digest_size=64
                ).digest()
                output += block[:32]
                for i in range(ENTROPY_POOL_SIZE):
                    self._pool[i] ^= block[32 + (i % 32)]
                counter += 1
            self._total_bytes_extracted += size
            return bytes(output[:size])

    def health_check(self) -> bool:
        """Chi-squared uniformity test over a fresh sample."""
        sample = self.extract(HEALTH_SAMPLE_SIZE)
        counts = [0] * 256
        for b in sample:
            counts[b] += 1

        expected = len(sample) / 256
        chi_squared = sum((c - expected) ** 2 / expected for c in counts)
        self._healthy = chi_squared < HEALTH_CHI_SQUARED_LIMIT
        self._last_health_check = time.time()
        if not self._healthy:
            logger.error("Fallback entropy pool failed health check (chi2=%.1f)", chi_squared)
        return self._healthy

    def get_stats(self) -> dict:
        with self._lock:
            return {
                "sources": list(self._sources),
                "total_bytes_extracted": self._total_bytes_extracted,
                "reseed_count": self._reseed_count,
                "healthy": self._healthy,
            }


class ChaCha20CSPRNG:
    """
    ChaCha20 keystream generator.

    Each call gets its own nonce (a per-key call counter) and the key is
    replaced from the pool every `reseed_threshold` bytes.
    """

    def __init__(self, entropy_pool: Optional[EntropyPool] = None, reseed_threshold: int = 64 * 1024):
        self._pool = entropy_pool or EntropyPool()
        self._lock = threading.Lock()
        self._reseed_threshold = reseed_threshold
        self._key = b""
        self._nonce_prefix = b""
        self._calls = 0
        self._bytes_generated = 0

        with self._lock:
            self._rekey()

    def _rekey(self) -> None:
        if not self._pool.health_check():
            raise QuantumRuntimeError("Classical entropy source failed its health check")
        seed = self._pool.extract(36)
        self._key = seed[:32]
        self._nonce_prefix = seed[32:36]
        self._calls = 0
        self._bytes_generated = 0

    def generate(self, size: int) -> bytes:
        """
        Generate `size` random bytes.

        Raises:
            QuantumRuntimeError: If the entropy pool is unhealthy
        """
        if size < 0:
            raise ValueError("Size must be non-negative")
        if size == 0:
            return b""

        with self._lock:
            if self._bytes_generated >= self._reseed_threshold:
                self._pool.reseed()
                self._rekey()

            # 4-byte block counter, then a 12-byte nonce unique per call under this key.
            nonce = b"\x00" * 4 + self._nonce_prefix + struct.pack("<Q", self._calls)
            encryptor = Cipher(algorithms.ChaCha20(self._key, nonce), mode=None).encryptor()
            output = encryptor.update(b"\x00" * size)

            self._calls += 1
            self._bytes_generated += size
            return output

    def get_stats(self) -> dict:
        with self._lock:
            return {
                "bytes_since_reseed": self._bytes_generated,
                "reseed_threshold": self._reseed_threshold,
                "pool": self._pool.get_stats(),
            }


_csprng: Optional[ChaCha20CSPRNG] = None
_init_lock = threading.Lock()


def get_fallback_csprng() -> ChaCha20CSPRNG:
    """Process-wide fallback generator, created on first use."""
    global _csprng

    if _csprng is not None:
        return _csprng

    with _init_lock:
        if _csprng is None:
            _csprng = ChaCha20CSPRNG()
            logger.info("Classical fallback CSPRNG initialized")
        return _csprng

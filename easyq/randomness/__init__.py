"""
Randomness Package

Quantum-sourced random generation with a flagged ChaCha20 fallback.
"""

from .classical import ChaCha20CSPRNG, EntropyPool, get_fallback_csprng
from .engine import RandomnessEngine, resolve_timeout

__all__ = [
    "ChaCha20CSPRNG",
    "EntropyPool",
    "RandomnessEngine",
    "get_fallback_csprng",
    "resolve_timeout",
]

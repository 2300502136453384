"""
Key Distribution Package

QKD sessions, their lifecycle, post-processing and channel verification.
"""

from .amplification import (
    MAX_KEY_BITS,
    amplify_privacy,
    binary_entropy,
    pack_bits,
    secure_fraction,
    secure_key_length,
)
from .engine import KeyDistributionEngine
from .lifecycle import QKDSession, QKDState
from .reconciliation import ReconciliationResult, reconcile
from .verifier import ChannelSecurityVerifier, calculate_security_margin, chsh_estimate

__all__ = [
    "MAX_KEY_BITS",
    "ChannelSecurityVerifier",
    "KeyDistributionEngine",
    "QKDSession",
    "QKDState",
    "ReconciliationResult",
    "amplify_privacy",
    "binary_entropy",
    "calculate_security_margin",
    "chsh_estimate",
    "pack_bits",
    "reconcile",
    "secure_fraction",
    "secure_key_length",
]

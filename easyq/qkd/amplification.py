"""
Privacy amplification.

Compresses a reconciled key to the length an eavesdropper provably
knows nothing about, using HKDF-SHA256 as the extractor.
"""

import math
from typing import Sequence

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

PRIVACY_AMPLIFICATION_INFO = b"easyq-privacy-amplification"
# HKDF-SHA256 output limit: 255 blocks of 32 bytes.
MAX_KEY_BITS = 255 * 32 * 8


def binary_entropy(p: float) -> float:
    if p <= 0.0 or p >= 1.0:
        return 0.0
    return -p * math.log2(p) - (1 - p) * math.log2(1 - p)


def secure_key_length(reconciled_bits: int, qber: float, leaked_bits: int) -> int:
    """⌊n·(1 − h(QBER)) − leakage⌋, never negative."""
    return max(0, math.floor(reconciled_bits * (1.0 - binary_entropy(qber)) - leaked_bits))


def secure_fraction(reconciled_bits: int, qber: float, leaked_bits: int, fixed_leak: int = 0) -> float:
    """
    Secure bits gained per reconciled bit.

    `fixed_leak` does not grow with the key and is left out, so a
    non-positive value means no amount of extra raw material helps.
    """
    if reconciled_bits <= 0:
        return 0.0
    proportional = max(0, leaked_bits - fixed_leak)
    return 1.0 - binary_entropy(qber) - proportional / reconciled_bits


def pack_bits(bits: Sequence[int]) -> bytes:
    """Pack bits most significant first; the final byte is zero-padded."""
    output = bytearray((len(bits) + 7) // 8)
    for i, bit in enumerate(bits):
        if bit:
            output[i // 8] |= 0x80 >> (i % 8)
    return bytes(output)


def amplify_privacy(bits: Sequence[int], output_bits: int, salt: bytes) -> bytes:
    """
    Derive `output_bits` of final key from reconciled `bits`.

    Bits beyond `output_bits` in the last byte are cleared.
    """
    if output_bits <= 0 or output_bits > MAX_KEY_BITS:
        raise ValueError(f"Invalid output length: {output_bits} bits")
    if not bits:
        raise ValueError("Input key material cannot be empty")

    length = (output_bits + 7) // 8
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=length,
        salt=salt or None,
        info=PRIVACY_AMPLIFICATION_INFO,
    )
    key = bytearray(hkdf.derive(pack_bits(bits)))

    spare = length * 8 - output_bits
    if spare:
        key[-1] &= (0xFF << spare) & 0xFF
    return bytes(key)

"""
Information reconciliation.

Cascade parity-block error correction: each pass compares block
parities over a shuffled ordering and binary-searches every mismatching
block for the flipped bit, then revisits the blocks of other passes
that held the corrected bit. Every disclosed parity is one bit of
leakage charged to privacy amplification.
"""

import hashlib
import logging
import math
import random
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Set, Tuple

logger = logging.getLogger(__name__)

VERIFICATION_TAG_BITS = 64


@dataclass
class ReconciliationResult:
    corrected: List[int]
    leaked_bits: int
    corrected_errors: int
    passes: int
    verified: bool


def initial_block_size(qber: float) -> int:
    return max(4, math.ceil(0.73 / max(qber, 0.01)))


def _parity(bits: Sequence[int], positions: Sequence[int]) -> int:
    value = 0
    for p in positions:
        value ^= bits[p]
    return value


def _locate_error(reference: Sequence[int], noisy: Sequence[int], positions: List[int]) -> Tuple[int, int]:
    """Binary search for one flipped position. Returns (position, parities disclosed)."""
    disclosed = 0
    while len(positions) > 1:
        half = positions[: len(positions) // 2]
        disclosed += 1
        if _parity(reference, half) != _parity(noisy, half):
            positions = half
        else:
            positions = positions[len(positions) // 2:]
    return positions[0], disclosed


def verification_tag(bits: Sequence[int]) -> bytes:
    digest = hashlib.sha256(bytes(bits)).digest()
    return digest[: VERIFICATION_TAG_BITS // 8]


class _Cascade:
    """Block layouts of every pass run so far, and the parities disclosed."""

    def __init__(self, reference: Sequence[int], noisy: Sequence[int]):
        self.reference = reference
        self.corrected = list(noisy)
        self.leaked = 0
        self.fixed = 0
        self._orders: List[List[int]] = []
        self._slots: List[List[int]] = []
        self._sizes: List[int] = []
        self._disclosed: Set[Tuple[int, int]] = set()

    @property
    def passes(self) -> int:
        return len(self._orders)

    def run_pass(self, order: List[int], size: int) -> None:
        slots = [0] * len(order)
        for slot, position in enumerate(order):
            slots[position] = slot
        self._orders.append(order)
        self._slots.append(slots)
        self._sizes.append(size)

        pass_index = self.passes - 1
        for block_index in range(math.ceil(len(order) / size)):
            self._check(pass_index, block_index)

    def _block(self, pass_index: int, block_index: int) -> List[int]:
        size = self._sizes[pass_index]
        return self._orders[pass_index][block_index * size:(block_index + 1) * size]

    def _check(self, pass_index: int, block_index: int) -> None:
        # A correction flips the error parity of the block holding that
        # position in every other pass, so those blocks are revisited.
        pending = [(pass_index, block_index)]
        while pending:
            current = pending.pop()
            if current not in self._disclosed:
                self._disclosed.add(current)
                self.leaked += 1
            positions = self._block(*current)
            if _parity(self.reference, positions) == _parity(self.corrected, positions):
                continue

            position, disclosed = _locate_error(self.reference, self.corrected, positions)
            self.leaked += disclosed
            self.corrected[position] ^= 1
            self.fixed += 1
            for other in range(self.passes):
                if other != current[0]:
                    pending.append((other, self._slots[other][position] // self._sizes[other]))


def reconcile(
    reference: Sequence[int],
    noisy: Sequence[int],
    qber: float,
    passes: int,
    rng: random.Random,
    checkpoint: Optional[Callable[[], None]] = None,
) -> ReconciliationResult:
    """
    Correct `noisy` towards `reference`.

    Passes after the first shuffle the positions and double the block
    size. When the tag comparison after the configured passes disagrees,
    up to `passes` further passes run, each followed by another tag.

    Args:
        reference: Sender's sifted key bits
        noisy: Receiver's sifted key bits
        qber: Estimated error rate, sets the first-pass block size
        passes: Number of shuffled passes
        rng: Shared permutation source
        checkpoint: Called before every pass; may raise to abandon the run

    Returns:
        ReconciliationResult; `verified` is False when the final tag
        comparison still disagrees
    """
    if len(reference) != len(noisy):
        raise ValueError("Reconciliation inputs differ in length")

    passes = max(1, passes)
    cascade = _Cascade(reference, noisy)
    n = len(reference)
    size = initial_block_size(qber)
    leaked_tags = 0
    verified = False

    while cascade.passes < 2 * passes:
        if checkpoint is not None:
            checkpoint()
        order = list(range(n))
        if cascade.passes:
            rng.shuffle(order)
        cascade.run_pass(order, size)
        size *= 2

        if cascade.passes >= passes:
            leaked_tags += VERIFICATION_TAG_BITS
            verified = verification_tag(reference) == verification_tag(cascade.corrected)
            if verified:
                break

    leaked = cascade.leaked + leaked_tags
    logger.debug(
        "Reconciliation corrected %d errors over %d passes, %d bits leaked",
        cascade.fixed, cascade.passes, leaked,
    )
    return ReconciliationResult(
        corrected=cascade.corrected,
        leaked_bits=leaked,
        corrected_errors=cascade.fixed,
        passes=cascade.passes,
        verified=verified,
    )

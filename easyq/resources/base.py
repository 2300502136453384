"""
Quantum Resource Capability

Interface every quantum backend implements. Engines only ever talk to
a resource through this class, so production, simulation and scripted
test backends are interchangeable.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Set

from ..exceptions import InvalidArgumentError
from ..models import ResourceLimits


@dataclass
class AmplitudeReadout:
    """Measurement of one amplitude-amplification round."""
    index: int
    probability: float


class Oracle:
    """
    Marking oracle over an ordered item collection.

    `verify` is the engine-side check of a candidate index and is
    counted; `marked_indices` is the full classical evaluation used by
    the linear-scan fallback. Matches already found are excluded from
    `pending_indices`, which is what simulators amplify.
    """

    def __init__(
        self,
        items: Sequence[Any],
        predicate: Callable[[Any], bool],
        document: Optional[Dict[str, Any]] = None,
    ):
        self.items = list(items)
        self.document = document
        self.calls = 0
        self._predicate = predicate
        self.excluded: Set[int] = set()
        self._cache: Dict[int, bool] = {}

    def __len__(self) -> int:
        return len(self.items)

    def _evaluate(self, index: int) -> bool:
        if index in self._cache:
            return self._cache[index]
        try:
            marked = bool(self._predicate(self.items[index]))
        except Exception as e:
            raise InvalidArgumentError(
                f"Predicate cannot be evaluated on item {index}: {e}"
            ) from e
        self._cache[index] = marked
        return marked

    def verify(self, index: int) -> bool:
        if not 0 <= index < len(self.items):
            return False
        self.calls += 1
        return self._evaluate(index)

    def marked_indices(self) -> List[int]:
        return [i for i in range(len(self.items)) if self._evaluate(i)]

    def exclude(self, index: int) -> None:
        self.excluded.add(index)

    def pending_indices(self) -> List[int]:
        return [i for i in self.marked_indices() if i not in self.excluded]


class QuantumResource(ABC):
    """A connection-scoped handle to a QPU or simulator."""

    name = "abstract"

    @abstractmethod
    async def open(self) -> ResourceLimits:
        """Perform the handshake and return the backend's limits."""

    @abstractmethod
    async def close(self) -> None:
        """Release the backend session."""

    @abstractmethod
    async def entropy(self, size: int) -> bytes:
        """Return exactly `size` bytes measured from the resource."""

    @abstractmethod
    async def amplify(self, oracle: Oracle, iterations: int) -> AmplitudeReadout:
        """Run `iterations` Grover iterations marking the oracle's pending matches and measure once."""

    @abstractmethod
    async def transmit(
        self,
        bits: Sequence[int],
        bases: Sequence[int],
        measure_bases: Sequence[int],
    ) -> List[int]:
        """
        Send prepared qubits through the quantum channel.

        Args:
            bits: Sender's bit values
            bases: Sender's preparation bases (0 = Z, 1 = X)
            measure_bases: Receiver's measurement bases

        Returns:
            Receiver's measurement outcomes, one per position
        """

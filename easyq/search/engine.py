"""
Search Engine

Grover-style search over an item collection with a bounded error
model. Every reported index has been verified against the predicate.
Confidence is 1.0 only when the match set is known to be complete;
otherwise it is a lower bound on the chance that a remaining match
would have shown up in one of the rounds that found nothing new.
"""

import asyncio
import dataclasses
import logging
import math
import random
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence, Set, Union

from ..config import Settings, get_settings
from ..exceptions import (
    InvalidArgumentError,
    OperationTimeoutError,
    QuantumRuntimeError,
    ResourceUnavailableError,
)
from ..models import IterationStrategy, SamplingStrategy, SearchOptions, SearchResult
from ..policy import FallbackPolicy
from ..randomness import resolve_timeout
from ..resources import Oracle
from . import grover
from .predicates import Predicate, compile_predicate

if TYPE_CHECKING:
    from ..connection import Connection, ConnectionManager

logger = logging.getLogger(__name__)


def validate_options(options: SearchOptions) -> None:
    if isinstance(options.max_iterations, bool) or not isinstance(options.max_iterations, int):
        raise InvalidArgumentError("max_iterations must be an integer")
    if options.max_iterations < 1:
        raise InvalidArgumentError("max_iterations must be at least 1")
    if not 0.0 < options.target_probability < 1.0:
        raise InvalidArgumentError("target_probability must be within (0, 1)")
    if options.sample_size < 1:
        raise InvalidArgumentError("sample_size must be at least 1")
    if options.custom_iteration_factor < 0:
        raise InvalidArgumentError("custom_iteration_factor must be non-negative")
    if not isinstance(options.sampling_strategy, SamplingStrategy):
        raise InvalidArgumentError(f"Unknown sampling strategy: {options.sampling_strategy!r}")
    if not isinstance(options.iteration_strategy, IterationStrategy):
        raise InvalidArgumentError(f"Unknown iteration strategy: {options.iteration_strategy!r}")


def sample_positions(total: int, sample_size: int) -> List[int]:
    """Evenly spaced positions for match-fraction estimation, √N at most."""
    count = min(sample_size, max(1, math.isqrt(total)), total)
    return sorted({i * total // count for i in range(count)})


class SearchEngine:
    """Predicate search against the active connection's resource."""

    def __init__(
        self,
        manager: "ConnectionManager",
        policy: Optional[FallbackPolicy] = None,
        settings: Optional[Settings] = None,
        rng: Optional[random.Random] = None,
    ):
        self._manager = manager
        self._settings = settings or get_settings()
        self._policy = policy or FallbackPolicy()
        # Draws the per-round iteration count.
        self._rng = rng or random.SystemRandom()

    async def search(
        self,
        items: Sequence[Any],
        predicate: Union[Dict[str, Any], str, Predicate],
        options: Optional[SearchOptions] = None,
    ) -> SearchResult:
        """
        Find the indices of items matching `predicate`.

        Args:
            items: Ordered items to search
            predicate: Predicate document, its text shorthand, or a callable
            options: Search options; defaults from settings when omitted

        Returns:
            SearchResult whose confidence meets the target, or with the
            degraded flag set

        Raises:
            InvalidArgumentError: Malformed predicate or options, or a
                predicate that cannot be evaluated on an item
            NotInitializedError: If no connection is Ready
            OperationTimeoutError: If no round completes before the deadline
            QuantumRuntimeError: On backend failure without a permitted fallback
        """
        options = options or SearchOptions()
        if isinstance(items, (str, bytes)) or not isinstance(items, (list, tuple)):
            raise InvalidArgumentError("items must be a list")
        validate_options(options)
        deadline = resolve_timeout(options.timeout, self._settings)
        compiled, document = compile_predicate(predicate)

        if not items:
            return SearchResult(indices=[], items=[], confidence=1.0, iterations=0)

        connection = self._manager.active_connection()
        oracle = Oracle(items, compiled, document)
        return await self._run(connection, oracle, options, deadline)

    async def search_one(
        self,
        items: Sequence[Any],
        predicate: Union[Dict[str, Any], str, Predicate],
        options: Optional[SearchOptions] = None,
    ) -> SearchResult:
        """Search assuming a single match; stops at the first verified one."""
        options = dataclasses.replace(
            options or SearchOptions(), sampling_strategy=SamplingStrategy.ASSUME_ONE
        )
        result = await self.search(items, predicate, options)
        result.indices = result.indices[:1]
        result.items = result.items[:1]
        return result

    async def _run(
        self,
        connection: "Connection",
        oracle: Oracle,
        options: SearchOptions,
        deadline: float,
    ) -> SearchResult:
        total = len(oracle)
        assume_one = options.sampling_strategy == SamplingStrategy.ASSUME_ONE
        found: Set[int] = set()
        verified: Set[int] = set()

        if assume_one:
            estimated = 1
        else:
            positions = sample_positions(total, options.sample_size)
            verified.update(positions)
            found.update(i for i in positions if oracle.verify(i))
            estimated = min(total, max(1, round(len(found) / len(positions) * total)))
        for index in found:
            oracle.exclude(index)

        miss = 1.0
        spent = 0
        rounds = 0
        timed_out = False

        if not self._settled(options, found, verified, total, miss):
            plan = grover.plan_schedule(
                1,
                total,
                options.target_probability,
                options.iteration_strategy,
                options.custom_iteration_factor,
                options.custom_iteration_offset,
                candidates=self._candidates(assume_one, verified, total),
                limit=options.max_iterations,
            )
            budget = min(options.max_iterations, plan.bound)
            logger.debug(
                "Search over %d items: M~%d, k<=%d, budget %d iterations",
                total, estimated, plan.cap, budget,
            )

            loop = asyncio.get_running_loop()
            ends_at = loop.time() + deadline
            scale = 1.0

            while spent < budget and not self._settled(options, found, verified, total, miss):
                remaining = ends_at - loop.time()
                if remaining <= 0:
                    timed_out = True
                    break
                span = grover.round_span(scale, plan.cap, budget - spent)
                k = self._rng.randrange(span)
                try:
                    readout = await asyncio.wait_for(
                        connection.resource.amplify(oracle, k), timeout=remaining
                    )
                except asyncio.TimeoutError:
                    timed_out = True
                    break
                except ResourceUnavailableError as e:
                    return self._classical_scan(oracle, options, e, spent, estimated)

                rounds += 1
                spent += max(k, 1)
                scale = grover.next_scale(scale, plan.cap)

                index = readout.index
                if 0 <= index < total and index not in verified:
                    verified.add(index)
                    if oracle.verify(index):
                        found.add(index)
                        oracle.exclude(index)
                        # Discovery rounds do not count against the completeness budget.
                        budget = min(options.max_iterations, budget + max(k, 1))
                        continue

                candidates = self._candidates(assume_one, verified, total)
                if candidates:
                    miss *= 1 - grover.credited_success(
                        grover.worst_case_success(total, span, 1, candidates)
                    )

        if timed_out and rounds == 0:
            raise OperationTimeoutError(
                f"Search deadline of {deadline:.1f}s passed before any round completed"
            )

        if self._complete(options, found, verified, total):
            confidence = 1.0
        else:
            confidence = 1 - miss
        degraded = confidence < options.target_probability
        if degraded:
            logger.warning(
                "Search degraded after %d rounds: confidence %.3f below target %.3f",
                rounds, confidence, options.target_probability,
            )

        if rounds:
            connection.record_usage("search_rounds", rounds)

        indices = sorted(found)
        return SearchResult(
            indices=indices,
            items=[oracle.items[i] for i in indices],
            confidence=confidence,
            iterations=spent,
            degraded=degraded,
            oracle_calls=oracle.calls,
            estimated_matches=estimated,
        )

    @staticmethod
    def _candidates(assume_one: bool, verified: Set[int], total: int) -> int:
        """Largest number of matches that could still be unfound."""
        unverified = total - len(verified)
        return min(1, unverified) if assume_one else unverified

    @staticmethod
    def _complete(
        options: SearchOptions, found: Set[int], verified: Set[int], total: int
    ) -> bool:
        if options.sampling_strategy == SamplingStrategy.ASSUME_ONE and found:
            return True
        return len(verified) == total

    def _settled(
        self,
        options: SearchOptions,
        found: Set[int],
        verified: Set[int],
        total: int,
        miss: float,
    ) -> bool:
        if self._complete(options, found, verified, total):
            return True
        return 1 - miss >= options.target_probability

    def _classical_scan(
        self,
        oracle: Oracle,
        options: SearchOptions,
        error: ResourceUnavailableError,
        iterations: int,
        estimated: int,
    ) -> SearchResult:
        if not options.allow_classical_fallback or not self._policy.can_fallback("search", error):
            raise QuantumRuntimeError(
                f"Quantum resource unavailable and classical fallback is disabled: {error.detail}"
            ) from error

        indices = oracle.marked_indices()
        return SearchResult(
            indices=indices,
            items=[oracle.items[i] for i in indices],
            confidence=1.0,
            iterations=iterations,
            classical_fallback=True,
            oracle_calls=oracle.calls,
            estimated_matches=estimated,
        )

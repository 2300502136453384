"""
Amplitude-amplification arithmetic.

With M marked items out of N, one Grover iteration rotates the state by
2θ where sin θ = √(M/N). After k iterations a measurement returns a
marked item with probability sin²((2k + 1)θ).

The number of unfound matches is never known, so rounds follow the
Boyer-Brassard-Høyer-Tapp schedule: k is drawn uniformly from [0, m)
and m grows by 6/5 after every round up to the cap. A round is
credited with the smallest mean success over every match count it
could still be facing, which keeps the reported confidence a lower
bound whatever the true count is.
"""

import functools
import math
from dataclasses import dataclass
from typing import Optional

from ..exceptions import InvalidArgumentError
from ..models import IterationStrategy

# A single round is never credited with more than this success
# probability when computing confidence.
ROUND_SUCCESS_CEILING = 0.5

SCHEDULE_GROWTH = 6 / 5

# Rounds weaker than this cannot reach any target.
MIN_ROUND_SUCCESS = 1e-12

# Wider ranges of candidate match counts use the analytic lower bound.
EXACT_WORST_CASE_LIMIT = 4096


@dataclass
class SchedulePlan:
    """Iteration cap and worst-case cost of reaching the target."""
    cap: int
    rounds_needed: int
    bound: int


def rotation_angle(marked: int, total: int) -> float:
    return math.asin(math.sqrt(marked / total))


def optimal_iterations(marked: int, total: int) -> int:
    """⌊π / 4θ⌋, the iteration count that maximizes success for M of N."""
    if marked <= 0 or marked >= total:
        return 0
    return int(math.floor(math.pi / (4 * rotation_angle(marked, total)) + 1e-9))


def success_probability(marked: int, total: int, iterations: int) -> float:
    if marked <= 0:
        return 0.0
    if marked >= total:
        return 1.0
    theta = rotation_angle(marked, total)
    return math.sin((2 * iterations + 1) * theta) ** 2


def average_success(marked: int, total: int, span: int) -> float:
    """Mean success probability when k is drawn uniformly from range(span)."""
    if marked <= 0:
        return 0.0
    if marked >= total:
        return 1.0
    theta = rotation_angle(marked, total)
    return 0.5 - math.sin(4 * span * theta) / (4 * span * math.sin(2 * theta))


@functools.lru_cache(maxsize=4096)
def worst_case_success(total: int, span: int, low: int, high: int) -> float:
    """
    Smallest mean success over every match count in [low, high].

    Ranges wider than EXACT_WORST_CASE_LIMIT fall back to two lower
    bounds: 1/4 once span ≥ 1/sin 2θ for both ends of the range, and
    otherwise the k = 0 term alone.
    """
    high = min(high, total)
    if low < 1 or low > high:
        return 0.0
    if high - low < EXACT_WORST_CASE_LIMIT:
        return min(average_success(m, total, span) for m in range(low, high + 1))

    inner = min(high, total - 1)
    widest = max(
        1 / math.sin(2 * rotation_angle(low, total)),
        1 / math.sin(2 * rotation_angle(inner, total)),
    )
    if span >= widest:
        return 0.25
    return low / (total * span)


def credited_success(p: float) -> float:
    return min(p, ROUND_SUCCESS_CEILING)


def rounds_for_target(round_success: float, target: float) -> int:
    """Smallest r with 1 - (1 - p)^r ≥ target."""
    if target <= 0:
        return 1
    if round_success >= 1.0:
        return 1
    if round_success < MIN_ROUND_SUCCESS or target >= 1.0:
        raise InvalidArgumentError(
            f"Target probability {target} is unreachable with round success {round_success:.3g}"
        )
    return max(1, math.ceil(math.log(1 - target) / math.log(1 - round_success)))


def confidence_after(round_success: float, rounds: int) -> float:
    if rounds <= 0:
        return 0.0
    return 1 - (1 - round_success) ** rounds


def iteration_cap(
    marked: int,
    total: int,
    strategy: IterationStrategy = IterationStrategy.OPTIMAL,
    factor: float = 1.0,
    offset: int = 0,
) -> int:
    """Largest k any round may draw."""
    k = optimal_iterations(marked, total)
    if strategy == IterationStrategy.CUSTOM:
        k = max(0, int(math.floor(k * factor)) + offset)
    return k


def round_span(scale: float, cap: int, remaining: Optional[int] = None) -> int:
    """Size of the range k is drawn from; a round never costs more than `remaining`."""
    span = min(math.ceil(scale - 1e-9), cap + 1)
    if remaining is not None:
        span = min(span, remaining + 1)
    return max(1, span)


def next_scale(scale: float, cap: int) -> float:
    return min(scale * SCHEDULE_GROWTH, cap + 1)


def plan_schedule(
    marked: int,
    total: int,
    target: float,
    strategy: IterationStrategy = IterationStrategy.OPTIMAL,
    factor: float = 1.0,
    offset: int = 0,
    candidates: Optional[int] = None,
    limit: Optional[int] = None,
) -> SchedulePlan:
    """
    Worst-case iterations for the schedule to rule out `marked` or more
    matches among `candidates` unverified items with confidence `target`.

    Every round is charged its largest possible k. Planning stops early
    once the cost reaches `limit`.

    Raises:
        InvalidArgumentError: If the rounds are too weak to ever reach
            the target
    """
    cap = iteration_cap(marked, total, strategy, factor, offset)
    high = total if candidates is None else candidates
    scale = 1.0
    miss = 1.0
    rounds = 0
    cost = 0

    while 1 - miss < target:
        if limit is not None and cost >= limit:
            break
        span = round_span(scale, cap)
        p = credited_success(worst_case_success(total, span, marked, high))
        if span == cap + 1:
            # Saturated: every remaining round looks the same.
            needed = rounds_for_target(p, 1 - (1 - target) / miss)
            rounds += needed
            cost += needed * max(span - 1, 1)
            break
        rounds += 1
        cost += max(span - 1, 1)
        miss *= 1 - p
        scale = next_scale(scale, cap)

    if limit is not None:
        cost = min(cost, limit)
    return SchedulePlan(cap=cap, rounds_needed=rounds, bound=cost)

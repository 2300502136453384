"""
Search Package

Grover-style search with a bounded error model and verified results.
"""

from .engine import SearchEngine, sample_positions
from .grover import SchedulePlan, optimal_iterations, plan_schedule
from .predicates import compile_predicate, parse_predicate_text

__all__ = [
    "SchedulePlan",
    "SearchEngine",
    "compile_predicate",
    "optimal_iterations",
    "parse_predicate_text",
    "plan_schedule",
    "sample_positions",
]

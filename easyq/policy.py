"""
Fallback Policy

Decides when an operation may substitute classical computation for an
unavailable quantum resource. Substitution is only ever triggered by
resource unavailability, never by a contract violation or a rejected
credential, and the result is always flagged.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional

from .exceptions import EasyQError, ResourceUnavailableError

logger = logging.getLogger(__name__)


@dataclass
class FallbackRule:
    """Fallback rule for one operation."""
    operation: str
    allows_fallback: bool
    flag: str
    description: str


class FallbackPolicy:
    """
    Classical substitution rules.

    Randomness falls back to the ChaCha20 CSPRNG, search to an exact
    linear scan. Key distribution has no classical substitute.
    """

    RULES = {
        "random": FallbackRule(
            operation="random",
            allows_fallback=True,
            flag="fallback_sourced",
            description="ChaCha20 CSPRNG seeded from the OS entropy pool",
        ),
        "search": FallbackRule(
            operation="search",
            allows_fallback=True,
            flag="classical_fallback",
            description="Exact linear scan with confidence 1.0",
        ),
        "qkd": FallbackRule(
            operation="qkd",
            allows_fallback=False,
            flag="",
            description="Key distribution needs a quantum channel",
        ),
    }

    def __init__(self, enabled: bool = True, overrides: Optional[Dict[str, bool]] = None):
        self.enabled = enabled
        self._overrides = dict(overrides or {})

    def get_rule(self, operation: str) -> Optional[FallbackRule]:
        return self.RULES.get(operation)

    def can_fallback(self, operation: str, error: EasyQError) -> bool:
        """
        Check whether `operation` may fall back after `error`.

        Args:
            operation: Operation name ("random", "search", "qkd")
            error: The failure raised by the quantum resource

        Returns:
            True if a flagged classical substitute may be used
        """
        if not isinstance(error, ResourceUnavailableError):
            return False

        rule = self.get_rule(operation)
        if rule is None or not rule.allows_fallback:
            return False

        allowed = self.enabled and self._overrides.get(operation, True)
        if allowed:
            logger.warning(
                "Quantum resource unavailable for %s, using %s (%s)",
                operation, rule.description, rule.flag,
            )
        return allowed

"""
Channel Security Verification

Pure decision logic turning sampled channel statistics into a verdict.
"""

import math
from typing import Optional

from ..config import Settings, get_settings
from ..exceptions import InvalidArgumentError
from ..models import ChannelReport, ProtocolVariant, SecurityVerdict

CLASSICAL_CHSH_LIMIT = 2.0
QUANTUM_CHSH_MAX = 2.0 * math.sqrt(2.0)


def chsh_estimate(qber: float) -> float:
    """CHSH value implied by a QBER for a Werner-state channel."""
    return QUANTUM_CHSH_MAX * (1.0 - 2.0 * qber)


def calculate_security_margin(security_parameter: float) -> float:
    """
    Percentage of the way from the classical CHSH limit (2) to the
    quantum maximum (2√2). A value of 2.5 gives about 60%.
    """
    margin = security_parameter - CLASSICAL_CHSH_LIMIT
    max_margin = QUANTUM_CHSH_MAX - CLASSICAL_CHSH_LIMIT
    if margin <= 0:
        return 0.0
    if margin >= max_margin:
        return 100.0
    return 100.0 * margin / max_margin


def _normal_cdf(z: float) -> float:
    return 0.5 * (1.0 + math.erf(z / math.sqrt(2.0)))


def verdict_confidence(qber: float, sample_size: int, threshold: float) -> float:
    """
    Φ(|threshold − QBER| / σ) with σ from the Wilson-adjusted estimate
    q̃ = (Q·n + 2) / (n + 4).
    """
    if sample_size <= 0:
        return 0.0
    n = sample_size
    adjusted = (qber * n + 2.0) / (n + 4.0)
    sigma = math.sqrt(adjusted * (1.0 - adjusted) / (n + 4.0))
    return _normal_cdf(abs(threshold - qber) / sigma)


class ChannelSecurityVerifier:
    """
    Deterministic verdicts on sampled channel statistics.

    A QBER above the threshold is Compromised even on a small sample.
    Otherwise a sample below the minimum is Inconclusive.
    """

    def __init__(self, min_sample_size: Optional[int] = None, settings: Optional[Settings] = None):
        settings = settings or get_settings()
        self.min_sample_size = (
            settings.qkd_min_sample_size if min_sample_size is None else min_sample_size
        )

    def verify(
        self,
        qber: float,
        sample_size: int,
        threshold: float,
        protocol: ProtocolVariant = ProtocolVariant.BB84,
        security_threshold: Optional[float] = None,
    ) -> ChannelReport:
        if not isinstance(qber, (int, float)) or not 0.0 <= qber <= 1.0:
            raise InvalidArgumentError("qber must be within [0, 1]")
        if not isinstance(threshold, (int, float)) or not 0.0 <= threshold <= 1.0:
            raise InvalidArgumentError("threshold must be within [0, 1]")
        if isinstance(sample_size, bool) or not isinstance(sample_size, int) or sample_size < 0:
            raise InvalidArgumentError("sample_size must be a non-negative integer")
        if not isinstance(protocol, ProtocolVariant):
            raise InvalidArgumentError(f"Unknown protocol variant: {protocol!r}")

        security_parameter = None
        security_margin = None
        if protocol == ProtocolVariant.E91:
            security_parameter = chsh_estimate(qber)
            security_margin = calculate_security_margin(security_parameter)

        confidence = verdict_confidence(qber, sample_size, threshold)

        if sample_size == 0:
            verdict = SecurityVerdict.INCONCLUSIVE
        elif qber > threshold:
            verdict = SecurityVerdict.COMPROMISED
        elif sample_size < self.min_sample_size:
            verdict = SecurityVerdict.INCONCLUSIVE
        elif (
            security_parameter is not None
            and security_threshold is not None
            and security_parameter < security_threshold
        ):
            verdict = SecurityVerdict.COMPROMISED
        else:
            verdict = SecurityVerdict.SECURE

        return ChannelReport(
            verdict=verdict,
            confidence=confidence,
            qber=qber,
            sample_size=sample_size,
            threshold=threshold,
            security_parameter=security_parameter,
            security_margin=security_margin,
        )

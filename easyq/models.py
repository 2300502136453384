"""
EasyQ Data Models

Value types exchanged with the engines. None of them holds a
reference back into caller memory.
"""

import base64
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from .config import settings


class SessionState(str, Enum):
    """Connection session states."""
    UNCONFIGURED = "unconfigured"
    CONFIGURING = "configuring"
    READY = "ready"
    FAILED = "failed"


class Provenance(str, Enum):
    """Where random material came from."""
    QUANTUM_SOURCED = "quantum_sourced"
    FALLBACK_SOURCED = "fallback_sourced"


class SecurityVerdict(str, Enum):
    SECURE = "secure"
    COMPROMISED = "compromised"
    INCONCLUSIVE = "inconclusive"


class ProtocolVariant(str, Enum):
    """QKD protocol variants."""
    BB84 = "bb84"
    E91 = "e91"


class SamplingStrategy(str, Enum):
    """How the search engine estimates the number of matches."""
    AUTO = "auto"
    ASSUME_ONE = "assume_one"


class IterationStrategy(str, Enum):
    OPTIMAL = "optimal"
    CUSTOM = "custom"


@dataclass(frozen=True)
class ResourceLimits:
    """Numeric limits of a quantum resource."""
    max_qubits: int
    max_shots: int

    @property
    def positions_per_call(self) -> int:
        return self.max_qubits * self.max_shots


@dataclass
class SearchOptions:
    """Options for a search request."""
    max_iterations: int = field(default_factory=lambda: settings.search_max_iterations)
    target_probability: float = field(default_factory=lambda: settings.search_target_probability)
    timeout: Optional[float] = None
    sampling_strategy: SamplingStrategy = SamplingStrategy.AUTO
    sample_size: int = field(default_factory=lambda: settings.search_sample_size)
    iteration_strategy: IterationStrategy = IterationStrategy.OPTIMAL
    custom_iteration_factor: float = 1.0
    custom_iteration_offset: int = 0
    allow_classical_fallback: bool = True


@dataclass
class SearchResult:
    """Outcome of a search. Check `confidence` before trusting a miss."""
    indices: List[int]
    items: List[Any]
    confidence: float
    iterations: int
    degraded: bool = False
    classical_fallback: bool = False
    oracle_calls: int = 0
    estimated_matches: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "indices": self.indices,
            "items": self.items,
            "confidence": self.confidence,
            "iterations": self.iterations,
            "degraded": self.degraded,
            "classical_fallback": self.classical_fallback,
            "oracle_calls": self.oracle_calls,
            "estimated_matches": self.estimated_matches,
        }


@dataclass
class RandomResult:
    """Random value plus the source it was drawn from."""
    value: Union[int, bytes]
    provenance: Provenance

    def to_dict(self) -> Dict[str, Any]:
        if isinstance(self.value, bytes):
            return {
                "value_b64": base64.b64encode(self.value).decode("ascii"),
                "length": len(self.value),
                "provenance": self.provenance.value,
            }
        return {"value": self.value, "provenance": self.provenance.value}


@dataclass
class KeyOptions:
    """Options for quantum key distribution. Key length is in bits."""
    key_length: int = field(default_factory=lambda: settings.qkd_key_length)
    error_rate_threshold: float = field(default_factory=lambda: settings.qkd_error_threshold)
    protocol: ProtocolVariant = ProtocolVariant.BB84
    max_attempts: int = field(default_factory=lambda: settings.qkd_max_attempts)
    enable_error_correction: bool = True
    security_threshold: float = field(default_factory=lambda: settings.qkd_security_threshold)
    timeout: Optional[float] = None


@dataclass
class ChannelOptions:
    """
    Options for a channel audit.

    When both `qber` and `sample_size` are given the audit is a pure
    check of those statistics; otherwise a short probe session runs.
    """
    error_rate_threshold: float = field(default_factory=lambda: settings.qkd_error_threshold)
    protocol: ProtocolVariant = ProtocolVariant.BB84
    qber: Optional[float] = None
    sample_size: Optional[int] = None
    probe_bits: int = field(default_factory=lambda: settings.qkd_probe_bits)
    security_threshold: float = field(default_factory=lambda: settings.qkd_security_threshold)
    timeout: Optional[float] = None


@dataclass
class ChannelReport:
    """Verdict on a quantum channel."""
    verdict: SecurityVerdict
    confidence: float
    qber: float
    sample_size: int
    threshold: float
    security_parameter: Optional[float] = None
    security_margin: Optional[float] = None

    @property
    def is_secure(self) -> bool:
        return self.verdict == SecurityVerdict.SECURE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "verdict": self.verdict.value,
            "confidence": self.confidence,
            "qber": self.qber,
            "sample_size": self.sample_size,
            "threshold": self.threshold,
            "security_parameter": self.security_parameter,
            "security_margin": self.security_margin,
        }


@dataclass
class KeyResult:
    """
    Outcome of a key distribution session.

    `key` is non-empty only when the verdict is SECURE. Sample and key
    positions are public protocol information and index the raw
    transmission.
    """
    verdict: SecurityVerdict
    qber: float
    state: str
    key: bytes = b""
    key_bits: int = 0
    confidence: float = 0.0
    raw_bits: int = 0
    sifted_bits: int = 0
    sample_size: int = 0
    leaked_bits: int = 0
    attempts: int = 0
    security_parameter: Optional[float] = None
    security_margin: Optional[float] = None
    failure_reason: Optional[str] = None
    entropy_provenance: Provenance = Provenance.QUANTUM_SOURCED
    sample_positions: List[int] = field(default_factory=list, repr=False)
    key_positions: List[int] = field(default_factory=list, repr=False)

    @property
    def success(self) -> bool:
        return self.verdict == SecurityVerdict.SECURE and bool(self.key)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "verdict": self.verdict.value,
            "state": self.state,
            "key_b64": base64.b64encode(self.key).decode("ascii") if self.key else None,
            "key_bits": self.key_bits,
            "qber": self.qber,
            "confidence": self.confidence,
            "raw_bits": self.raw_bits,
            "sifted_bits": self.sifted_bits,
            "sample_size": self.sample_size,
            "leaked_bits": self.leaked_bits,
            "attempts": self.attempts,
            "security_parameter": self.security_parameter,
            "security_margin": self.security_margin,
            "failure_reason": self.failure_reason,
            "entropy_provenance": self.entropy_provenance.value,
        }

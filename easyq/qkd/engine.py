"""
Key Distribution Engine

Runs prepare-and-measure key distribution sessions against the active
connection's quantum channel:

1. Preparing: sender bits and bases, receiver bases from the randomness engine
2. Sifting: transmission, then positions with disagreeing bases are dropped
3. Error estimation: a random sample of sifted positions estimates the QBER
   and is removed from the key material
4. Error correction: parity-block reconciliation
5. Privacy amplification: HKDF compression to the provably secret length

Sessions on one connection are serialized by its measurement lock.
"""

import asyncio
import logging
import math
import random
from typing import TYPE_CHECKING, List, Optional, Sequence, Tuple

from ..config import Settings, get_settings
from ..exceptions import (
    BackendConnectionError,
    EasyQError,
    InvalidArgumentError,
    OperationTimeoutError,
    QuantumRuntimeError,
)
from ..models import (
    ChannelOptions,
    ChannelReport,
    KeyOptions,
    KeyResult,
    ProtocolVariant,
    Provenance,
    SecurityVerdict,
)
from ..randomness import RandomnessEngine, resolve_timeout
from .amplification import MAX_KEY_BITS, amplify_privacy, secure_fraction, secure_key_length
from .lifecycle import QKDSession, QKDState
from .reconciliation import VERIFICATION_TAG_BITS, reconcile, verification_tag
from .verifier import ChannelSecurityVerifier

if TYPE_CHECKING:
    from ..connection import Connection, ConnectionManager

logger = logging.getLogger(__name__)

PRIVACY_SALT_BYTES = 16


def _check_probability(name: str, value) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not 0.0 <= value <= 1.0:
        raise InvalidArgumentError(f"{name} must be within [0, 1]")


def _check_protocol(protocol) -> None:
    if not isinstance(protocol, ProtocolVariant):
        raise InvalidArgumentError(f"Unknown protocol variant: {protocol!r}")


class _Transmission:
    """Bits and bases of one attempt, plus what the receiver measured."""

    def __init__(self, bits: List[int], bases: List[int], measure_bases: List[int]):
        self.bits = bits
        self.bases = bases
        self.measure_bases = measure_bases
        self.results: List[int] = []

    @property
    def sifted(self) -> List[int]:
        return [i for i, (a, b) in enumerate(zip(self.bases, self.measure_bases)) if a == b]


class _Deadline:
    """Absolute session deadline, checked between phases and passes."""

    def __init__(self, seconds: float):
        self.seconds = seconds
        self._loop = asyncio.get_running_loop()
        self.ends_at = self._loop.time() + seconds

    def check(self) -> None:
        if self._loop.time() >= self.ends_at:
            raise OperationTimeoutError(
                f"QKD session did not finish within {self.seconds:.1f}s"
            )

    async def checkpoint(self) -> None:
        await asyncio.sleep(0)
        self.check()


class KeyDistributionEngine:
    """QKD sessions and channel audits against the active connection."""

    def __init__(
        self,
        manager: "ConnectionManager",
        randomness: RandomnessEngine,
        verifier: Optional[ChannelSecurityVerifier] = None,
        settings: Optional[Settings] = None,
    ):
        self._manager = manager
        self._randomness = randomness
        self._settings = settings or get_settings()
        self._verifier = verifier or ChannelSecurityVerifier(settings=self._settings)

    @property
    def verifier(self) -> ChannelSecurityVerifier:
        return self._verifier

    def _validate(self, options: KeyOptions) -> None:
        length = options.key_length
        if isinstance(length, bool) or not isinstance(length, int) or length <= 0:
            raise InvalidArgumentError("key_length must be a positive number of bits")
        if length > MAX_KEY_BITS:
            raise InvalidArgumentError(f"key_length must not exceed {MAX_KEY_BITS} bits")
        _check_probability("error_rate_threshold", options.error_rate_threshold)
        _check_protocol(options.protocol)
        attempts = options.max_attempts
        if isinstance(attempts, bool) or not isinstance(attempts, int) or attempts < 1:
            raise InvalidArgumentError("max_attempts must be at least 1")
        if not isinstance(options.security_threshold, (int, float)):
            raise InvalidArgumentError("security_threshold must be a number")

    async def generate_key(self, options: Optional[KeyOptions] = None) -> KeyResult:
        """
        Distribute a shared secret key.

        Args:
            options: Key options; defaults from settings when omitted

        Returns:
            KeyResult. The key is present only when the verdict is SECURE.

        Raises:
            InvalidArgumentError: Malformed options
            NotInitializedError: If no connection is Ready
            OperationTimeoutError: If no terminal state is reached in time
            QuantumRuntimeError: On channel failure; the session is discarded
        """
        options = options or KeyOptions()
        self._validate(options)
        deadline = _Deadline(resolve_timeout(options.timeout, self._settings))
        connection = self._manager.active_connection()

        session = QKDSession()
        result = await self._guarded(
            session, deadline, self._locked(connection, self._run_session(connection, session, options, deadline))
        )
        connection.record_usage("qkd_sessions")
        logger.info(
            "QKD session %s finished: %s after %d attempt(s), QBER %.4f",
            session.session_id, result.verdict.value, result.attempts, result.qber,
        )
        return result

    async def verify_channel_security(self, options: Optional[ChannelOptions] = None) -> ChannelReport:
        """
        Audit a quantum channel.

        With both `qber` and `sample_size` supplied this is a pure check of
        those statistics. Otherwise a short probe session (sifting and
        estimation only, no key) measures them first.
        """
        options = options or ChannelOptions()
        _check_probability("error_rate_threshold", options.error_rate_threshold)
        _check_protocol(options.protocol)

        if options.qber is not None or options.sample_size is not None:
            if options.qber is None or options.sample_size is None:
                raise InvalidArgumentError("qber and sample_size must be supplied together")
            return self._verifier.verify(
                options.qber,
                options.sample_size,
                options.error_rate_threshold,
                options.protocol,
                options.security_threshold,
            )

        probe_bits = options.probe_bits
        if isinstance(probe_bits, bool) or not isinstance(probe_bits, int) or probe_bits <= 0:
            raise InvalidArgumentError("probe_bits must be a positive integer")
        deadline = _Deadline(resolve_timeout(options.timeout, self._settings))
        connection = self._manager.active_connection()

        session = QKDSession()
        report = await self._guarded(
            session, deadline, self._locked(connection, self._probe(connection, session, options, deadline))
        )
        connection.record_usage("qkd_sessions")
        return report

    async def _guarded(self, session: QKDSession, deadline: _Deadline, work):
        try:
            return await asyncio.wait_for(work, timeout=deadline.seconds)
        except asyncio.TimeoutError as e:
            if not session.terminal:
                session.abort("deadline exceeded")
            raise OperationTimeoutError(
                f"QKD session did not finish within {deadline.seconds:.1f}s"
            ) from e
        except BackendConnectionError as e:
            if not session.terminal:
                session.abort(e.detail)
            raise QuantumRuntimeError(f"Quantum channel failure: {e.detail}") from e
        except (EasyQError, asyncio.CancelledError):
            if not session.terminal:
                session.abort("session discarded")
            raise

    @staticmethod
    async def _locked(connection: "Connection", work):
        async with connection.measurement_lock:
            return await work

    async def _prepare(self, connection: "Connection", raw_bits: int) -> Tuple[_Transmission, Provenance]:
        provenance = Provenance.QUANTUM_SOURCED
        vectors = []
        for _ in range(3):
            bits, source = await self._randomness.random_bits(connection, raw_bits)
            if source == Provenance.FALLBACK_SOURCED:
                provenance = source
            vectors.append(bits)
        return _Transmission(*vectors), provenance

    async def _transmit(
        self, connection: "Connection", transmission: _Transmission, deadline: _Deadline
    ) -> None:
        step = connection.limits.positions_per_call
        results: List[int] = []
        for start in range(0, len(transmission.bits), step):
            await deadline.checkpoint()
            end = start + step
            results.extend(
                await connection.resource.transmit(
                    transmission.bits[start:end],
                    transmission.bases[start:end],
                    transmission.measure_bases[start:end],
                )
            )
        if len(results) != len(transmission.bits):
            raise QuantumRuntimeError("Quantum channel returned an incomplete measurement record")
        transmission.results = results

    async def _shared_rng(self, connection: "Connection") -> random.Random:
        seed, _ = await self._randomness.draw(connection, 8)
        return random.Random(int.from_bytes(seed, "little"))

    def _sample_size(self, sifted: int) -> int:
        wanted = max(
            self._settings.qkd_min_sample_size,
            math.ceil(self._settings.qkd_sample_fraction * sifted),
        )
        return min(wanted, sifted)

    @staticmethod
    def _error_rate(transmission: _Transmission, positions: Sequence[int]) -> float:
        if not positions:
            return 0.0
        errors = sum(1 for i in positions if transmission.bits[i] != transmission.results[i])
        return errors / len(positions)

    async def _run_session(
        self,
        connection: "Connection",
        session: QKDSession,
        options: KeyOptions,
        deadline: _Deadline,
    ) -> KeyResult:
        raw_bits = math.ceil(options.key_length * self._settings.qkd_over_provisioning)
        raw_limit = max(raw_bits, self._settings.qkd_max_raw_bits)
        provenance = Provenance.QUANTUM_SOURCED

        while True:
            session.transition(QKDState.PREPARING)
            transmission, source = await self._prepare(connection, raw_bits)
            if source == Provenance.FALLBACK_SOURCED:
                provenance = source

            await deadline.checkpoint()
            session.transition(QKDState.SIFTING)
            await self._transmit(connection, transmission, deadline)
            sifted = transmission.sifted

            await deadline.checkpoint()
            session.transition(QKDState.ERROR_ESTIMATION)
            rng = await self._shared_rng(connection)
            sample = sorted(rng.sample(sifted, self._sample_size(len(sifted))))
            qber = self._error_rate(transmission, sample)
            report = self._verifier.verify(
                qber, len(sample), options.error_rate_threshold,
                options.protocol, options.security_threshold,
            )

            sampled = set(sample)
            key_positions = [i for i in sifted if i not in sampled]
            outcome = dict(
                qber=qber,
                confidence=report.confidence,
                raw_bits=raw_bits,
                sifted_bits=len(sifted),
                sample_size=len(sample),
                security_parameter=report.security_parameter,
                security_margin=report.security_margin,
                entropy_provenance=provenance,
                sample_positions=sample,
                key_positions=key_positions,
            )

            if report.verdict != SecurityVerdict.SECURE:
                if report.verdict == SecurityVerdict.INCONCLUSIVE:
                    reason = f"Sample of {len(sample)} positions is too small to estimate the QBER"
                elif qber > options.error_rate_threshold:
                    reason = f"QBER {qber:.4f} exceeds threshold {options.error_rate_threshold:.4f}"
                else:
                    reason = (
                        f"CHSH estimate {report.security_parameter:.3f} below "
                        f"threshold {options.security_threshold:.3f}"
                    )
                return self._give_up(session, report.verdict, reason, outcome)

            sender_key = [transmission.bits[i] for i in key_positions]
            receiver_key = [transmission.results[i] for i in key_positions]

            await deadline.checkpoint()
            if options.enable_error_correction:
                session.transition(QKDState.ERROR_CORRECTION)
                reconciled = reconcile(
                    sender_key,
                    receiver_key,
                    qber,
                    self._settings.qkd_reconciliation_passes,
                    await self._shared_rng(connection),
                    checkpoint=deadline.check,
                )
                leaked = reconciled.leaked_bits
                receiver_key = reconciled.corrected
                agreed = reconciled.verified
            else:
                session.transition(QKDState.PRIVACY_AMPLIFICATION)
                leaked = VERIFICATION_TAG_BITS
                agreed = verification_tag(sender_key) == verification_tag(receiver_key)
            outcome["leaked_bits"] = leaked

            rate = secure_fraction(len(receiver_key), qber, leaked, VERIFICATION_TAG_BITS)
            if receiver_key and rate <= 0:
                # Leakage grows at least as fast as the key.
                reason = f"QBER {qber:.4f} leaves no secure key rate after {leaked} leaked bits"
                return self._give_up(session, SecurityVerdict.INCONCLUSIVE, reason, outcome)

            if not agreed:
                reason = "Reconciled keys disagree"
                if session.attempts < options.max_attempts:
                    raw_bits = min(raw_limit, math.ceil(raw_bits * 1.5))
                    logger.info(
                        "QKD session %s: %s, retrying with %d raw bits",
                        session.session_id, reason, raw_bits,
                    )
                    continue
                return self._give_up(session, SecurityVerdict.INCONCLUSIVE, reason, outcome)

            if session.state != QKDState.PRIVACY_AMPLIFICATION:
                session.transition(QKDState.PRIVACY_AMPLIFICATION)
            available = secure_key_length(len(receiver_key), qber, leaked)

            if available < options.key_length:
                reason = (
                    f"Only {available} secure bits available, {options.key_length} requested"
                )
                if session.attempts < options.max_attempts and raw_bits < raw_limit:
                    growth = 2.0
                    if rate > 0:
                        wanted = (options.key_length + VERIFICATION_TAG_BITS) / rate * 1.2
                        growth = max(1.5, wanted / len(receiver_key))
                    raw_bits = min(raw_limit, math.ceil(raw_bits * growth))
                    logger.info(
                        "QKD session %s: %s, retrying with %d raw bits",
                        session.session_id, reason, raw_bits,
                    )
                    continue
                elif raw_bits >= raw_limit:
                    reason += f"; raw material is capped at {raw_limit} bits"
                return self._give_up(session, SecurityVerdict.INCONCLUSIVE, reason, outcome)

            await deadline.checkpoint()
            salt, _ = await self._randomness.draw(connection, PRIVACY_SALT_BYTES)
            key = amplify_privacy(receiver_key, options.key_length, salt)
            session.transition(QKDState.DONE)
            return KeyResult(
                verdict=SecurityVerdict.SECURE,
                state=session.state.value,
                key=key,
                key_bits=options.key_length,
                attempts=session.attempts,
                **outcome,
            )

    @staticmethod
    def _give_up(session: QKDSession, verdict: SecurityVerdict, reason: str, outcome: dict) -> KeyResult:
        session.abort(reason)
        return KeyResult(
            verdict=verdict,
            state=session.state.value,
            attempts=session.attempts,
            failure_reason=reason,
            **outcome,
        )

    async def _probe(
        self,
        connection: "Connection",
        session: QKDSession,
        options: ChannelOptions,
        deadline: _Deadline,
    ) -> ChannelReport:
        session.transition(QKDState.PREPARING)
        transmission, _ = await self._prepare(connection, options.probe_bits)

        await deadline.checkpoint()
        session.transition(QKDState.SIFTING)
        await self._transmit(connection, transmission, deadline)
        sifted = transmission.sifted

        session.transition(QKDState.ERROR_ESTIMATION)
        qber = self._error_rate(transmission, sifted)
        report = self._verifier.verify(
            qber, len(sifted), options.error_rate_threshold,
            options.protocol, options.security_threshold,
        )
        session.transition(QKDState.DONE)
        logger.info(
            "Channel probe %s: %s (QBER %.4f over %d positions)",
            session.session_id, report.verdict.value, qber, len(sifted),
        )
        return report

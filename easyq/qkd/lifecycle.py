"""
QKD Session Lifecycle

Tracks one key distribution session through its protocol phases and
rejects transitions the protocol does not allow.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Tuple

from ..exceptions import QuantumRuntimeError

logger = logging.getLogger(__name__)


class QKDState(Enum):
    """Protocol session states."""
    IDLE = "idle"
    PREPARING = "preparing"
    SIFTING = "sifting"
    ERROR_ESTIMATION = "error_estimation"
    ERROR_CORRECTION = "error_correction"
    PRIVACY_AMPLIFICATION = "privacy_amplification"
    DONE = "done"
    ABORTED = "aborted"


TERMINAL_STATES = frozenset({QKDState.DONE, QKDState.ABORTED})

_TRANSITIONS: Dict[QKDState, FrozenSet[QKDState]] = {
    QKDState.IDLE: frozenset({QKDState.PREPARING}),
    QKDState.PREPARING: frozenset({QKDState.SIFTING}),
    QKDState.SIFTING: frozenset({QKDState.ERROR_ESTIMATION}),
    QKDState.ERROR_ESTIMATION: frozenset({
        QKDState.ERROR_CORRECTION,
        QKDState.PRIVACY_AMPLIFICATION,
        QKDState.DONE,
    }),
    QKDState.ERROR_CORRECTION: frozenset({
        QKDState.PRIVACY_AMPLIFICATION,
        QKDState.PREPARING,
    }),
    QKDState.PRIVACY_AMPLIFICATION: frozenset({QKDState.DONE, QKDState.PREPARING}),
    QKDState.DONE: frozenset(),
    QKDState.ABORTED: frozenset(),
}


@dataclass
class QKDSession:
    """
    One key distribution session.

    State Machine:

    IDLE → PREPARING → SIFTING → ERROR_ESTIMATION → ERROR_CORRECTION
                ↑                        ↓                 ↓
                └──────── retry ─── PRIVACY_AMPLIFICATION ←┘
                                         ↓
                                        DONE

    Any non-terminal state → ABORTED
    """
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    state: QKDState = QKDState.IDLE
    attempts: int = 0
    abort_reason: Optional[str] = None
    history: List[Tuple[QKDState, datetime]] = field(default_factory=list)

    @property
    def terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def transition(self, target: QKDState) -> None:
        if target == QKDState.ABORTED:
            self.abort("aborted")
            return

        if target not in _TRANSITIONS[self.state]:
            raise QuantumRuntimeError(
                f"Invalid QKD transition {self.state.value} → {target.value}"
            )

        logger.debug(
            "QKD session %s: %s → %s",
            self.session_id, self.state.name, target.name,
        )
        self.state = target
        self.history.append((target, datetime.now(timezone.utc)))
        if target == QKDState.PREPARING:
            self.attempts += 1

    def abort(self, reason: str) -> None:
        if self.terminal:
            raise QuantumRuntimeError(
                f"QKD session {self.session_id} already ended in {self.state.value}"
            )
        logger.warning(
            "QKD session %s aborted in %s: %s",
            self.session_id, self.state.name, reason,
        )
        self.state = QKDState.ABORTED
        self.abort_reason = reason
        self.history.append((QKDState.ABORTED, datetime.now(timezone.utc)))

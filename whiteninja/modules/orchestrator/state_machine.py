"""
State Machine for the build pipeline

┌──────────────────────────────────────────────────────────────────────┐
│ PLANNING → SCAFFOLDING → CODING → REVIEWING → FIXING → TESTING →     │
│ POLISHING → COMPLETE                                                 │
│                                                                      │
│ any non-terminal phase ──► ABORTED                                   │
└──────────────────────────────────────────────────────────────────────┘

Phases only move forward. All transitions are logged and kept in a
bounded history for the health endpoint and for debugging.
"""

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Tuple

from whiteninja.core.exceptions import InvalidTransitionError
from whiteninja.core.logging_config import logger


class BuildPhase(str, Enum):
    """Build pipeline phases (wire values are the upper-case names)"""
    PLANNING = "PLANNING"
    SCAFFOLDING = "SCAFFOLDING"
    CODING = "CODING"
    REVIEWING = "REVIEWING"
    FIXING = "FIXING"
    TESTING = "TESTING"
    POLISHING = "POLISHING"
    COMPLETE = "COMPLETE"
    ABORTED = "ABORTED"


PHASE_ORDER: List[BuildPhase] = [
    BuildPhase.PLANNING,
    BuildPhase.SCAFFOLDING,
    BuildPhase.CODING,
    BuildPhase.REVIEWING,
    BuildPhase.FIXING,
    BuildPhase.TESTING,
    BuildPhase.POLISHING,
    BuildPhase.COMPLETE,
]

TERMINAL_PHASES: Set[BuildPhase] = {BuildPhase.COMPLETE, BuildPhase.ABORTED}


def _forward_transitions() -> Dict[BuildPhase, Set[BuildPhase]]:
    table: Dict[BuildPhase, Set[BuildPhase]] = {}
    for current, following in zip(PHASE_ORDER, PHASE_ORDER[1:]):
        table[current] = {following, BuildPhase.ABORTED}
    table[BuildPhase.COMPLETE] = set()
    table[BuildPhase.ABORTED] = set()
    return table


# Valid phase transitions
PHASE_TRANSITIONS: Dict[BuildPhase, Set[BuildPhase]] = _forward_transitions()


@dataclass
class StateTransition:
    """Record of a state transition"""
    from_state: str
    to_state: str
    timestamp: datetime = field(default_factory=datetime.utcnow)
    reason: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from": self.from_state,
            "to": self.to_state,
            "timestamp": self.timestamp.isoformat(),
            "reason": self.reason,
            "metadata": self.metadata
        }


class StateMachine:
    """
    Generic state machine with validation and a bounded transition history.

    Runs on a single event loop, so no locking: transitions are applied
    between suspension points and never interleave.
    """

    def __init__(
        self,
        name: str,
        initial_state: Enum,
        transitions: Dict[Enum, Set[Enum]],
        max_history: int = 100
    ):
        self.name = name
        self._state = initial_state
        self._transitions = transitions
        self._history: deque = deque(maxlen=max_history)

    @property
    def state(self) -> Enum:
        return self._state

    def can_transition(self, to_state: Enum) -> bool:
        """Check if transition is valid"""
        return to_state in self._transitions.get(self._state, set())

    def transition(
        self,
        to_state: Enum,
        reason: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """
        Transition to new state.

        Returns:
            True if transition succeeded
        """
        if not self.can_transition(to_state):
            allowed = self._transitions.get(self._state, set())
            logger.warning(
                f"[{self.name}] Invalid transition: {self._state.value} → {to_state.value}. "
                f"Allowed: {sorted(s.value for s in allowed)}"
            )
            return False

        transition = StateTransition(
            from_state=self._state.value,
            to_state=to_state.value,
            reason=reason,
            metadata=metadata or {}
        )
        self._history.append(transition)

        old_state = self._state
        self._state = to_state

        logger.info(
            f"[{self.name}] State transition: {old_state.value} → {to_state.value}"
            + (f" ({reason})" if reason else "")
        )

        return True

    def get_history(self, limit: int = 10) -> List[StateTransition]:
        """Get recent transition history"""
        return list(self._history)[-limit:]


class PhaseStateMachine(StateMachine):
    """Forward-only phase machine for one build session"""

    def __init__(self, session_id: str):
        super().__init__(
            name=f"Build:{session_id[:8]}",
            initial_state=BuildPhase.PLANNING,
            transitions=PHASE_TRANSITIONS,
            max_history=len(BuildPhase) + 1,
        )

    @property
    def phase(self) -> BuildPhase:
        return self._state

    @property
    def is_terminal(self) -> bool:
        return self._state in TERMINAL_PHASES

    def advance(self, to_phase: BuildPhase, reason: Optional[str] = None) -> Tuple[BuildPhase, BuildPhase]:
        """
        Move to the next phase.

        Returns:
            The (from, to) pair for the phase-change event

        Raises:
            InvalidTransitionError: the move is backwards, skips ahead or
                leaves a terminal phase
        """
        from_phase = self.phase
        if not self.transition(to_phase, reason=reason):
            raise InvalidTransitionError(from_phase.value, to_phase.value)
        return from_phase, to_phase

    def abort(self, reason: Optional[str] = None) -> bool:
        """Move to ABORTED; a no-op once the build is already terminal"""
        if self.is_terminal:
            return False
        return self.transition(BuildPhase.ABORTED, reason=reason)

"""
Orchestration Module - drives build sessions through the phase pipeline

Components:
- PhaseStateMachine: forward-only phase transitions
- EventBus: ordered per-session event stream
- BuildSession: per-run state and event emission
- CallEnvelope: rate window, retry and timeout around agent calls
- BuildOrchestrator: admission and phase execution

Usage:
    from whiteninja.modules.orchestrator import BuildOrchestrator

    session = orchestrator.start({"brief": brief, "options": options}, sink=queue_event)
"""

from whiteninja.modules.orchestrator.state_machine import BuildPhase, PhaseStateMachine, StateTransition
from whiteninja.modules.orchestrator.event_bus import BuildEvent, BuildEventType, EventBus
from whiteninja.modules.orchestrator.build_session import BuildSession
from whiteninja.modules.orchestrator.call_envelope import CallEnvelope, SessionRateLimiter, TokenTracker
from whiteninja.modules.orchestrator.build_orchestrator import BuildOrchestrator

__all__ = [
    'BuildPhase',
    'PhaseStateMachine',
    'StateTransition',
    'BuildEvent',
    'BuildEventType',
    'EventBus',
    'BuildSession',
    'CallEnvelope',
    'SessionRateLimiter',
    'TokenTracker',
    'BuildOrchestrator',
]

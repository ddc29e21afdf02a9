"""
Build Services - the process-wide service objects

The rate limiter, token tracker, session registry, call envelope and
orchestrator are built once per application and handed to the endpoints
through app.state. Tests build their own set with a scripted client.
"""

import time
from dataclasses import dataclass, field

from whiteninja.modules.automation.response_parser import AgentResponseParser
from whiteninja.modules.orchestrator.build_orchestrator import BuildOrchestrator
from whiteninja.modules.orchestrator.call_envelope import CallEnvelope, SessionRateLimiter, TokenTracker
from whiteninja.services.session_registry import SessionRegistry


@dataclass
class BuildServices:
    rate_limiter: SessionRateLimiter
    token_tracker: TokenTracker
    registry: SessionRegistry
    envelope: CallEnvelope
    orchestrator: BuildOrchestrator
    started_at: float = field(default_factory=time.time)

    @property
    def uptime_seconds(self) -> int:
        return int(time.time() - self.started_at)


def create_build_services(
    client=None,
    max_concurrent: int = None,
    phase_delay: float = None,
    require_api_key: bool = True,
    **envelope_options,
) -> BuildServices:
    """
    Wire a fresh set of services.

    Args:
        client: Model client exposing generate(); the shared Claude client when None
        max_concurrent: Concurrent build ceiling override
        phase_delay: Pause between phases override
        require_api_key: Reject builds when no API key is configured
        envelope_options: retry_count / base_delay / timeout_seconds overrides
    """
    rate_limiter = SessionRateLimiter()
    token_tracker = TokenTracker()
    registry = SessionRegistry(rate_limiter, token_tracker, max_concurrent=max_concurrent)
    envelope = CallEnvelope(rate_limiter, token_tracker, client=client, **envelope_options)
    orchestrator = BuildOrchestrator(
        registry,
        envelope,
        parser=AgentResponseParser(),
        phase_delay=phase_delay,
        require_api_key=require_api_key,
    )
    return BuildServices(
        rate_limiter=rate_limiter,
        token_tracker=token_tracker,
        registry=registry,
        envelope=envelope,
        orchestrator=orchestrator,
    )

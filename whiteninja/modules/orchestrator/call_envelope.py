"""
Call Envelope - rate window, retry and timeout around every agent call

┌──────────────────────────────────────────────────────────────────┐
│ for attempt in 1..API_RETRY_COUNT:                                │
│   wait while paused → stop if aborted → wait for a rate slot      │
│   record call → asyncio.wait_for(generate, AGENT_CALL_TIMEOUT)    │
│   success: report reasoning + usage, return the text              │
│   failure: sleep API_RETRY_BASE_DELAY * 2 ** (attempt - 1)        │
│ exhausted: agent_error {recoverable: true}, return None           │
└──────────────────────────────────────────────────────────────────┘

The envelope never raises into the pipeline (cancellation excepted):
"no result" is how a phase learns that it has to be skipped.
"""

import asyncio
import time
from collections import deque
from typing import Any, Deque, Dict, Optional

from whiteninja.core.config import settings
from whiteninja.core.exceptions import AgentTimeoutError, EmptyAgentResponseError
from whiteninja.core.logging_config import logger, set_agent_id, set_session_id
from whiteninja.modules.agents.roster import AgentProfile
from whiteninja.modules.orchestrator.build_session import BuildSession
from whiteninja.modules.orchestrator.event_bus import BuildEventType
from whiteninja.utils.claude_client import get_claude_client


class SessionRateLimiter:
    """
    Per-session sliding window of call timestamps.

    Every check evicts timestamps older than the window, so a window never
    holds more than max_calls entries.
    """

    def __init__(self, max_calls: int = None, window_seconds: float = None,
                 poll_interval: float = None, clock=time.monotonic):
        self.max_calls = max_calls or settings.MAX_API_CALLS_PER_MINUTE
        self.window_seconds = window_seconds or settings.RATE_WINDOW_SECONDS
        self.poll_interval = poll_interval if poll_interval is not None else settings.RATE_POLL_INTERVAL
        self._clock = clock
        self._windows: Dict[str, Deque[float]] = {}

    def _evict(self, session_id: str) -> Deque[float]:
        window = self._windows.setdefault(session_id, deque())
        cutoff = self._clock() - self.window_seconds
        while window and window[0] <= cutoff:
            window.popleft()
        return window

    def calls_in_window(self, session_id: str) -> int:
        return len(self._evict(session_id))

    def can_call(self, session_id: str) -> bool:
        return len(self._evict(session_id)) < self.max_calls

    def record_call(self, session_id: str) -> None:
        self._evict(session_id).append(self._clock())

    async def wait_for_slot(self, session_id: str, session: Optional[BuildSession] = None) -> bool:
        """
        Block until the session may issue another call.

        Returns False if the session was aborted while waiting.
        """
        while not self.can_call(session_id):
            if session is not None and session.aborted:
                return False
            logger.info(f"[RateLimit] Session {session_id[:8]} at {self.max_calls} calls/window, waiting")
            await asyncio.sleep(self.poll_interval)
        return True

    def cleanup(self, session_id: str) -> None:
        self._windows.pop(session_id, None)

    def tracked_sessions(self) -> int:
        return len(self._windows)


class TokenTracker:
    """Token usage per session, split by agent (reporting only)"""

    def __init__(self):
        self._usage: Dict[str, Dict[str, Any]] = {}

    def record(self, session_id: str, agent_id: str, usage: Dict[str, Any]) -> None:
        input_tokens = int(usage.get("input_tokens") or 0)
        output_tokens = int(usage.get("output_tokens") or 0)

        ledger = self._usage.setdefault(session_id, {
            "total": {"input_tokens": 0, "output_tokens": 0, "total_tokens": 0, "calls": 0},
            "by_agent": {},
        })
        per_agent = ledger["by_agent"].setdefault(
            agent_id, {"input_tokens": 0, "output_tokens": 0, "total_tokens": 0, "calls": 0}
        )
        for bucket in (ledger["total"], per_agent):
            bucket["input_tokens"] += input_tokens
            bucket["output_tokens"] += output_tokens
            bucket["total_tokens"] += input_tokens + output_tokens
            bucket["calls"] += 1

    def get_session_usage(self, session_id: str) -> Optional[Dict[str, Any]]:
        return self._usage.get(session_id)

    def cleanup(self, session_id: str) -> None:
        self._usage.pop(session_id, None)


class CallEnvelope:
    """Wraps agent calls with admission, timeout and bounded retries"""

    def __init__(
        self,
        rate_limiter: SessionRateLimiter,
        token_tracker: TokenTracker,
        client=None,
        retry_count: int = None,
        base_delay: float = None,
        timeout_seconds: float = None,
    ):
        self._client = client
        self.rate_limiter = rate_limiter
        self.token_tracker = token_tracker
        self.retry_count = retry_count or settings.API_RETRY_COUNT
        self.base_delay = base_delay if base_delay is not None else settings.API_RETRY_BASE_DELAY
        self.timeout_seconds = timeout_seconds or settings.AGENT_CALL_TIMEOUT_SECONDS

    @property
    def client(self):
        """Model client; the shared Claude client unless one was injected"""
        if self._client is None:
            self._client = get_claude_client()
        return self._client

    def retry_delay(self, attempt: int) -> float:
        """Backoff after a failed attempt (1-based): base, 2*base, 4*base, ..."""
        return self.base_delay * (2 ** (attempt - 1))

    async def call(
        self,
        session: BuildSession,
        agent: AgentProfile,
        task: str,
        additional_context: str = "",
    ) -> Optional[str]:
        """
        Run one agent call for a session.

        Returns:
            The reply text, or None when the session was aborted or every
            attempt failed
        """
        set_session_id(session.id)
        set_agent_id(agent.id)
        last_error: Optional[Exception] = None

        for attempt in range(1, self.retry_count + 1):
            await session.wait_if_paused()
            if session.aborted:
                return None

            if not await self.rate_limiter.wait_for_slot(session.id, session):
                return None
            self.rate_limiter.record_call(session.id)

            try:
                text = await self._attempt(session, agent, task, additional_context)
                logger.log_agent_event(agent.id, f"replied on attempt {attempt}", session_id=session.short_id)
                return text
            except asyncio.CancelledError:
                raise
            except Exception as e:
                last_error = e
                if session.aborted:
                    return None
                if attempt < self.retry_count:
                    delay = self.retry_delay(attempt)
                    logger.warning(
                        f"[Envelope] Agent {agent.id} attempt {attempt}/{self.retry_count} failed "
                        f"for session {session.short_id}, retrying in {delay:g}s: {e}"
                    )
                    await asyncio.sleep(delay)

        logger.error(
            f"[Envelope] Agent {agent.id} failed after {self.retry_count} attempts "
            f"for session {session.short_id}: {last_error}"
        )
        session.emit(
            BuildEventType.AGENT_ERROR,
            agentId=agent.id,
            message=f"Agent failed after {self.retry_count} attempts: {last_error}",
            recoverable=True,
        )
        return None

    async def _attempt(self, session: BuildSession, agent: AgentProfile,
                       task: str, additional_context: str) -> str:
        prompt = session.build_context(task, additional_context)
        started = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self.client.generate(prompt=prompt, system_prompt=agent.system_prompt),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            raise AgentTimeoutError(agent.id, self.timeout_seconds)
        # Warn once a call uses more than half its timeout
        logger.log_performance(
            f"agent_call:{agent.id}",
            (time.monotonic() - started) * 1000,
            threshold_ms=self.timeout_seconds * 500,
            session_id=session.short_id,
        )

        self.token_tracker.record(session.id, agent.id, response)

        reasoning = (response.get("reasoning") or "").strip()
        if reasoning and not session.aborted:
            session.send_thinking(agent.id, reasoning[:settings.THINKING_PREVIEW_CHARS])

        text = response.get("content") or ""
        if not text.strip():
            raise EmptyAgentResponseError(agent.id)
        return text

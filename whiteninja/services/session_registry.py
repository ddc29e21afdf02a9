"""
Session Registry - the server-wide table of build sessions

Owns the concurrent-build ceiling and the idle sweep. Removing a session
also releases its rate window and token ledger.
"""

import asyncio
import time
from typing import Dict, List, Optional

from whiteninja.core.config import settings
from whiteninja.core.logging_config import logger
from whiteninja.modules.orchestrator.build_session import BuildSession
from whiteninja.modules.orchestrator.call_envelope import SessionRateLimiter, TokenTracker


class SessionRegistry:
    """In-memory session table with a background idle sweep"""

    def __init__(
        self,
        rate_limiter: SessionRateLimiter,
        token_tracker: TokenTracker,
        max_concurrent: int = None,
        idle_timeout: float = None,
        cleanup_interval: float = None,
    ):
        self.rate_limiter = rate_limiter
        self.token_tracker = token_tracker
        self.max_concurrent = max_concurrent or settings.MAX_CONCURRENT_BUILDS
        self.idle_timeout = idle_timeout or settings.SESSION_TIMEOUT_SECONDS
        self.cleanup_interval = cleanup_interval or settings.SESSION_CLEANUP_INTERVAL_SECONDS
        self._sessions: Dict[str, BuildSession] = {}
        self._cleanup_task: Optional[asyncio.Task] = None

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def get(self, session_id: str) -> Optional[BuildSession]:
        return self._sessions.get(session_id)

    def all(self) -> List[BuildSession]:
        return list(self._sessions.values())

    def active_count(self) -> int:
        """Sessions that are neither complete nor aborted"""
        return sum(1 for s in self._sessions.values() if s.is_active)

    def can_start(self) -> bool:
        return self.active_count() < self.max_concurrent

    def register(self, session: BuildSession) -> None:
        self._sessions[session.id] = session
        logger.info(
            f"[Registry] Registered session {session.short_id} "
            f"({self.active_count()}/{self.max_concurrent} active)"
        )

    def remove(self, session_id: str, reason: str = "removed") -> Optional[BuildSession]:
        """Abort (if still running) and forget a session"""
        session = self._sessions.pop(session_id, None)
        self.rate_limiter.cleanup(session_id)
        self.token_tracker.cleanup(session_id)
        if session is None:
            return None
        session.abort(reason)
        session.events.clear_subscribers()
        logger.info(f"[Registry] Removed session {session.short_id} ({reason})")
        return session

    def sweep_idle(self, now: Optional[float] = None) -> List[str]:
        """Abort and evict sessions idle longer than the timeout"""
        now = now if now is not None else time.monotonic()
        stale = [
            session_id for session_id, session in self._sessions.items()
            if session.idle_seconds(now) > self.idle_timeout
        ]
        for session_id in stale:
            session = self._sessions[session_id]
            logger.info(
                f"[Registry] Removing stale session {session.short_id} "
                f"(idle {int(session.idle_seconds(now) // 60)} min, phase {session.phase.value})"
            )
            self.remove(session_id, reason="idle timeout")
        return stale

    async def start_cleanup_task(self) -> None:
        """Start the periodic idle sweep"""
        if self._cleanup_task is not None:
            return

        async def cleanup_loop():
            while True:
                await asyncio.sleep(self.cleanup_interval)
                try:
                    self.sweep_idle()
                except Exception as e:
                    logger.error(f"[Registry] Cleanup task error: {e}")

        self._cleanup_task = asyncio.create_task(cleanup_loop())
        logger.info(f"[Registry] Started idle sweep (every {self.cleanup_interval}s, timeout {self.idle_timeout}s)")

    def stop_cleanup_task(self) -> None:
        """Stop the periodic idle sweep"""
        if self._cleanup_task:
            self._cleanup_task.cancel()
            self._cleanup_task = None

    def shutdown(self) -> None:
        """Abort every session; used on process shutdown"""
        self.stop_cleanup_task()
        for session_id in list(self._sessions):
            self.remove(session_id, reason="server shutdown")

    def snapshot(self) -> List[dict]:
        return [s.snapshot() for s in self._sessions.values()]

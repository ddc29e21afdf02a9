"""
CLI Reconnection Handler - keeps the build socket alive

Features:
1. Exponential backoff reconnection (2s, 4s, 8s, 16s, 16s, ...)
2. Outbound queue while disconnected, flushed in order on reconnect
3. Latency pings with __ping / __pong and a quality band
4. Close-code classification (server rejection vs. network loss)
5. Per-type and wildcard message handlers

Delivery is at-most-once: events the server emitted while the socket was
down are not replayed.
"""

import asyncio
import json
import time
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException
from rich.console import Console

from cli.config import CLIConfig


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"
    FAILED = "failed"


class ConnectionQuality(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    POOR = "poor"
    UNKNOWN = "unknown"


@dataclass
class ChannelError:
    """A categorized channel failure"""
    category: str  # network_error, server_error, parse_error
    message: str
    recoverable: bool = True


SEND_ERRORS = (WebSocketException, OSError)
CONNECT_ERRORS = (WebSocketException, OSError, asyncio.TimeoutError)


def categorize_close(code: Optional[int]) -> ChannelError:
    """Classify a close code; only 4001 is a non-recoverable rejection"""
    if code is not None and 4000 <= code < 5000:
        return ChannelError("server_error", f"Server rejected connection ({code})", recoverable=code != 4001)
    if code in (1006, 1001):
        return ChannelError("network_error", "Connection lost unexpectedly")
    return ChannelError("network_error", "Connection closed")


def quality_for(latency_ms: Optional[int]) -> ConnectionQuality:
    if latency_ms is None:
        return ConnectionQuality.UNKNOWN
    if latency_ms < 80:
        return ConnectionQuality.EXCELLENT
    if latency_ms < 200:
        return ConnectionQuality.GOOD
    return ConnectionQuality.POOR


def reconnect_delay(attempts: int, base_delay: float, max_delay: float) -> float:
    """Backoff before reconnect attempt number attempts + 1"""
    return min(base_delay * (2 ** attempts), max_delay)


MessageHandler = Callable[[Dict[str, Any]], None]
StateListener = Callable[[ConnectionState, Optional[ChannelError]], None]


class ResilientChannel:
    """
    Reconnecting WebSocket channel to the build server.

    Usage:
        channel = ResilientChannel(config, console)
        channel.on("build_complete", handle_complete)
        runner = asyncio.create_task(channel.run())
        await channel.start_build(brief, options)
    """

    def __init__(
        self,
        config: Optional[CLIConfig] = None,
        console: Optional[Console] = None,
        connect_factory: Optional[Callable[[str], Awaitable[Any]]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or CLIConfig()
        self.console = console or Console()
        self.url = self.config.server_url
        self.max_attempts = self.config.max_reconnect_attempts
        self.base_delay = self.config.reconnect_base_delay
        self.max_delay = self.config.reconnect_max_delay
        self.ping_interval = self.config.ping_interval
        self._connect_factory = connect_factory or websockets.connect
        self._clock = clock

        self.state = ConnectionState.DISCONNECTED
        self.attempts = 0
        self.latency_ms: Optional[int] = None
        self.quality = ConnectionQuality.UNKNOWN
        self.last_error: Optional[ChannelError] = None
        self.stats = {"sent": 0, "received": 0}

        self._ws = None
        self._queue: Deque[str] = deque()
        self._handlers: Dict[str, List[MessageHandler]] = {}
        self._state_listeners: List[StateListener] = []
        self._ping_task: Optional[asyncio.Task] = None
        self._runner: Optional[asyncio.Task] = None
        self._ping_started: Optional[float] = None
        self._closing = False

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def is_connected(self) -> bool:
        return self.state == ConnectionState.CONNECTED and self._ws is not None

    @property
    def queued_count(self) -> int:
        return len(self._queue)

    def on_state_change(self, listener: StateListener) -> None:
        self._state_listeners.append(listener)

    def _set_state(self, state: ConnectionState, error: Optional[ChannelError] = None) -> None:
        self.state = state
        if self.config.verbose:
            self.console.log(f"[dim][channel] {state.value}{f' ({error.message})' if error else ''}[/dim]")
        for listener in list(self._state_listeners):
            listener(state, error)

    def _record_latency(self, latency_ms: Optional[int]) -> None:
        self.latency_ms = latency_ms
        self.quality = quality_for(latency_ms)

    def next_reconnect_delay(self) -> float:
        """Delay before the next attempt; counts the attempt"""
        delay = reconnect_delay(self.attempts, self.base_delay, self.max_delay)
        self.attempts += 1
        return delay

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def on(self, message_type: str, handler: MessageHandler) -> Callable[[], None]:
        """Register a handler for one message type or "*"; returns an unsubscribe callable"""
        self._handlers.setdefault(message_type, []).append(handler)

        def unsubscribe():
            handlers = self._handlers.get(message_type, [])
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def handle_raw(self, raw: Any) -> None:
        """Dispatch one inbound frame"""
        self.stats["received"] += 1
        try:
            message = json.loads(raw)
        except (TypeError, ValueError) as e:
            self.last_error = ChannelError("parse_error", "Failed to parse server message")
            if self.config.verbose:
                self.console.log(f"[red][channel] Failed to parse message: {e}[/red]")
            return
        if not isinstance(message, dict):
            self.last_error = ChannelError("parse_error", "Failed to parse server message")
            return

        message_type = message.get("type")
        if message_type == "__pong":
            if self._ping_started is not None:
                self._record_latency(round((self._clock() - self._ping_started) * 1000))
                self._ping_started = None
            return

        for handler in list(self._handlers.get(message_type, [])):
            handler(message)
        for handler in list(self._handlers.get("*", [])):
            handler(message)

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    async def connect(self) -> bool:
        """
        One connection attempt.

        Returns:
            True once connected (queue flushed, pinging started)
        """
        if self.is_connected or self.state == ConnectionState.CONNECTING:
            return self.is_connected

        if self.attempts >= self.max_attempts:
            if self.state != ConnectionState.FAILED:
                self.last_error = ChannelError(
                    "network_error", f"Failed to connect after {self.max_attempts} attempts", recoverable=False
                )
                self._set_state(ConnectionState.FAILED, self.last_error)
            return False

        self._set_state(ConnectionState.CONNECTING)
        self.last_error = None
        try:
            ws = await self._connect_factory(self.url)
        except CONNECT_ERRORS as e:
            self.last_error = ChannelError("network_error", str(e) or type(e).__name__)
            self._set_state(ConnectionState.ERROR, self.last_error)
            return False

        self._ws = ws
        self._closing = False
        self.attempts = 0
        self._set_state(ConnectionState.CONNECTED)
        self._start_pinging()
        await self.flush_queue()
        return True

    async def _receive_until_closed(self) -> Optional[int]:
        """Read frames until the socket closes; returns the close code"""
        ws = self._ws
        try:
            async for raw in ws:
                self.handle_raw(raw)
        except ConnectionClosed as e:
            if self.config.verbose:
                self.console.log(f"[dim][channel] closed: {e}[/dim]")
        code = getattr(ws, "close_code", None)
        return code if code is not None else 1006

    def _on_closed(self, code: Optional[int]) -> bool:
        """Returns True when the close is worth reconnecting after"""
        self._ws = None
        self._stop_pinging()
        self.last_error = categorize_close(code)
        if not self.last_error.recoverable:
            self._set_state(ConnectionState.FAILED, self.last_error)
            return False
        self._set_state(ConnectionState.DISCONNECTED, self.last_error)
        return True

    async def run(self) -> None:
        """Connect, read, and reconnect with backoff until failed or disconnected"""
        self._closing = False
        await self._serve(connected=False)

    async def _serve(self, connected: bool) -> None:
        """Read loop with backoff reconnects; entered already connected after a manual retry"""
        while not self._closing:
            if not connected and not await self.connect():
                if self.state == ConnectionState.FAILED or self._closing:
                    return
                await asyncio.sleep(self.next_reconnect_delay())
                continue
            connected = False

            code = await self._receive_until_closed()
            if self._closing:
                return
            if not self._on_closed(code):
                return

            delay = self.next_reconnect_delay()
            if self.attempts <= self.max_attempts:
                self.console.print(
                    f"[yellow]⚠️  Connection lost. Retrying in {delay:.0f}s... "
                    f"(attempt {self.attempts}/{self.max_attempts})[/yellow]"
                )
            await asyncio.sleep(delay)

    async def retry_connection(self) -> bool:
        """Manual retry after the attempts ran out; restarts the read loop on success"""
        self.attempts = 0
        self.last_error = None
        self._closing = False
        if self.state == ConnectionState.FAILED:
            self.state = ConnectionState.DISCONNECTED
        if not await self.connect():
            return False
        self._runner = asyncio.create_task(self._serve(connected=True))
        return True

    async def disconnect(self) -> None:
        """Close for good: no reconnect, queue dropped"""
        self._closing = True
        self.attempts = 0
        self._stop_pinging()
        ws, self._ws = self._ws, None
        if ws is not None:
            await ws.close()
        runner, self._runner = self._runner, None
        if runner is not None and not runner.done() and runner is not asyncio.current_task():
            runner.cancel()
        self._queue.clear()
        self._set_state(ConnectionState.DISCONNECTED)

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    async def send(self, message_type: str, **data: Any) -> None:
        """Send now if connected, otherwise queue for the next open"""
        raw = json.dumps({"type": message_type, **data})
        if not self.is_connected:
            self._queue.append(raw)
            return
        try:
            await self._ws.send(raw)
            self.stats["sent"] += 1
        except SEND_ERRORS:
            self._queue.append(raw)

    async def flush_queue(self) -> int:
        """
        Send queued messages in order.

        On a failed send the failing message and everything after it go back
        to the front of the queue. Returns the number sent.
        """
        if not self.is_connected:
            return 0
        pending = list(self._queue)
        self._queue.clear()
        sent = 0
        for index, raw in enumerate(pending):
            try:
                await self._ws.send(raw)
            except SEND_ERRORS:
                self._queue.extendleft(reversed(pending[index:]))
                break
            self.stats["sent"] += 1
            sent += 1
        return sent

    # ------------------------------------------------------------------
    # Latency ping
    # ------------------------------------------------------------------

    async def send_ping(self) -> None:
        if not self.is_connected:
            return
        self._ping_started = self._clock()
        try:
            await self._ws.send(json.dumps({"type": "__ping"}))
        except SEND_ERRORS as e:
            # The receive loop notices the broken socket
            if self.config.verbose:
                self.console.log(f"[dim][channel] ping failed: {e}[/dim]")

    def _start_pinging(self) -> None:
        self._stop_pinging()

        async def ping_loop():
            while True:
                await asyncio.sleep(self.ping_interval)
                await self.send_ping()

        self._ping_task = asyncio.create_task(ping_loop())

    def _stop_pinging(self) -> None:
        if self._ping_task is not None:
            self._ping_task.cancel()
            self._ping_task = None
        self._ping_started = None
        self._record_latency(None)

    # ------------------------------------------------------------------
    # Build commands
    # ------------------------------------------------------------------

    async def start_build(self, brief: str, options: Optional[Dict[str, Any]] = None) -> None:
        await self.send("start_build", brief=brief, options=options or {})

    async def send_feedback(self, message: str) -> None:
        await self.send("user_feedback", message=message)

    async def resolve_conflict(self, conflict_id: Any, choice: Any, custom_solution: str = "") -> None:
        await self.send("resolve_conflict", id=conflict_id, choice=choice, customSolution=custom_solution)

    async def pause_build(self) -> None:
        await self.send("pause_build")

    async def resume_build(self) -> None:
        await self.send("resume_build")

    async def approve_phase(self) -> None:
        await self.send("approve_phase")

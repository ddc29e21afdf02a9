"""
Build WebSocket Endpoint

One connection drives at most one build at a time.

Connection URL: WS /ws

Client events:
- start_build: { brief, options }  ("config" is accepted for options)
- user_feedback: { message }
- resolve_conflict: { id, choice, customSolution? }
- pause_build / resume_build / approve_phase
- __ping: answered with __pong

Server events are the session's BuildEvents, in emission order, plus
build_error { message, code } when a start_build is rejected.
"""

import asyncio
import json
import uuid
from typing import Any, Dict, Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from whiteninja.api.v1.deps import get_socket_services
from whiteninja.core.exceptions import WhiteNinjaError
from whiteninja.core.logging_config import logger
from whiteninja.modules.orchestrator.build_session import BuildSession
from whiteninja.modules.orchestrator.event_bus import BuildEvent, BuildEventType, now_ms
from whiteninja.services.build_services import BuildServices


router = APIRouter()


class BuildConnection:
    """
    Per-socket state: the current session and an outbound queue.

    Events are queued synchronously by the session's event bus and written
    by a single writer task, so wire order equals emission order.
    """

    def __init__(self, websocket: WebSocket, services: BuildServices):
        self.websocket = websocket
        self.services = services
        self.client_id = str(uuid.uuid4())
        self.session: Optional[BuildSession] = None
        self.outbound: "asyncio.Queue[Dict[str, Any]]" = asyncio.Queue()
        self._writer: Optional[asyncio.Task] = None

    @property
    def short_id(self) -> str:
        return self.client_id[:8]

    def start_writer(self) -> None:
        self._writer = asyncio.create_task(self._write_loop())

    async def _write_loop(self) -> None:
        while True:
            message = await self.outbound.get()
            try:
                await self.websocket.send_json(message)
            except Exception as e:
                logger.warning(f"[WS] Send to {self.short_id} failed: {e}")
                return

    def push(self, event: BuildEvent) -> None:
        self.outbound.put_nowait(event.to_dict())

    def push_raw(self, message: Dict[str, Any]) -> None:
        self.outbound.put_nowait(message)

    def reject(self, error: WhiteNinjaError) -> None:
        self.push_raw({
            "type": BuildEventType.BUILD_ERROR.value,
            "message": error.message,
            "code": error.code,
            "timestamp": now_ms(),
        })

    async def close(self) -> None:
        """Tear down the session and stop the writer"""
        if self.session is not None:
            self.services.registry.remove(self.session.id, reason="client disconnected")
            self.session = None
        if self._writer is not None:
            self._writer.cancel()
            try:
                await self._writer
            except asyncio.CancelledError:
                pass
            self._writer = None

    # ------------------------------------------------------------------
    # Client events
    # ------------------------------------------------------------------

    def handle(self, message: Dict[str, Any]) -> None:
        event_type = message.get("type")

        if event_type == "__ping":
            self.push_raw({"type": "__pong", "timestamp": now_ms()})
            return

        logger.info(f"[WS] {self.short_id} -> {event_type}")

        if event_type == "start_build":
            self.start_build(message)
            return

        session = self.session
        if session is None:
            if event_type in ("user_feedback", "resolve_conflict", "pause_build", "resume_build", "approve_phase"):
                logger.debug(f"[WS] {self.short_id} sent {event_type} with no active build")
            else:
                logger.debug(f"[WS] Unknown event type from {self.short_id}: {event_type}")
            return

        if event_type == "user_feedback":
            feedback = message.get("message")
            if isinstance(feedback, str) and feedback.strip():
                session.add_feedback(feedback.strip())

        elif event_type == "resolve_conflict":
            conflict_id = message.get("id", message.get("conflictId"))
            session.resolve_conflict(conflict_id, message.get("choice"), message.get("customSolution"))

        elif event_type == "pause_build":
            session.pause()

        elif event_type == "resume_build":
            session.resume()

        elif event_type == "approve_phase":
            session.approve_phase()

        else:
            logger.debug(f"[WS] Unknown event type from {self.short_id}: {event_type}")

    def start_build(self, message: Dict[str, Any]) -> None:
        try:
            session = self.services.orchestrator.start(message, sink=self.push)
        except WhiteNinjaError as e:
            logger.warning(f"[WS] Build rejected for {self.short_id}: {e.message}")
            self.reject(e)
            return

        previous = self.session
        self.session = session
        if previous is not None:
            self.services.registry.remove(previous.id, reason="replaced by a new build")


@router.websocket("/ws")
async def build_websocket_endpoint(websocket: WebSocket):
    """
    WebSocket endpoint for live builds.

    Malformed JSON and unknown event types are logged and ignored.
    """
    await websocket.accept()
    connection = BuildConnection(websocket, get_socket_services(websocket))
    connection.start_writer()
    logger.info(f"[WS] Client connected: {connection.short_id}")

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except json.JSONDecodeError:
                logger.error(f"[WS] Message parse error from client {connection.short_id}")
                continue
            if not isinstance(message, dict):
                logger.error(f"[WS] Non-object message from client {connection.short_id}")
                continue
            connection.handle(message)

    except WebSocketDisconnect:
        logger.info(f"[WS] Client disconnected: {connection.short_id}")
    except Exception as e:
        logger.error(f"[WS] Connection error for {connection.short_id}: {e}", exc_info=True)
    finally:
        await connection.close()

"""
Build Session - per-run state and event emission

A session is one end-to-end run of the pipeline for a single request. It
owns its file store, its phase machine and its event bus; nothing outside
the orchestrator writes to it. Every outbound event and every inbound
command refreshes the idle clock used by the registry sweep.
"""

import asyncio
import json
import time
import uuid
from collections import deque
from datetime import datetime
from typing import Any, Deque, Dict, List, Optional

from whiteninja.core.config import settings
from whiteninja.core.exceptions import InvalidPathError
from whiteninja.core.logging_config import logger
from whiteninja.modules.agents.roster import get_site_guidance
from whiteninja.modules.automation.file_manager import VirtualFileManager, sanitize_path
from whiteninja.modules.orchestrator.event_bus import BuildEvent, BuildEventType, EventBus
from whiteninja.modules.orchestrator.state_machine import BuildPhase, PhaseStateMachine
from whiteninja.schemas.build import BuildOptions

# Event types that read as team activity in the next prompt
ACTIVITY_EVENTS = [
    BuildEventType.AGENT_THINKING,
    BuildEventType.AGENT_MESSAGE,
    BuildEventType.FILE_CREATED,
    BuildEventType.FILE_MODIFIED,
    BuildEventType.FILE_DELETED,
    BuildEventType.PHASE_CHANGE,
    BuildEventType.REVIEW_COMMENT,
    BuildEventType.BUG_REPORT,
]


class BuildSession:
    """State for one build run"""

    def __init__(self, brief: str, options: Optional[BuildOptions] = None, session_id: Optional[str] = None):
        self.id = session_id or str(uuid.uuid4())
        self.brief = brief
        self.options = options or BuildOptions()

        self.files = VirtualFileManager()
        self.events = EventBus(self.id)
        self.machine = PhaseStateMachine(self.id)

        self.plan: Optional[Dict[str, Any]] = None
        self.review_comments: List[Dict[str, Any]] = []
        self.bug_reports: List[Dict[str, Any]] = []
        self.resolved_conflicts: List[Dict[str, Any]] = []
        self.phase_approved = False

        self.paused = False
        self.aborted = False
        self.pending_feedback: Deque[str] = deque()
        self.progress = 0
        self.milestone = ""
        self.skipped_phases: List[str] = []

        self.created_at = datetime.utcnow()
        self._created_monotonic = time.monotonic()
        self.last_activity = datetime.utcnow()
        self._last_activity_monotonic = self._created_monotonic

        self.task: Optional[asyncio.Task] = None

    @property
    def short_id(self) -> str:
        return self.id[:8]

    @property
    def phase(self) -> BuildPhase:
        return self.machine.phase

    @property
    def is_active(self) -> bool:
        """Counts against the concurrent build ceiling"""
        return not self.aborted and self.phase != BuildPhase.COMPLETE

    @property
    def site_type(self) -> str:
        return self.options.site_type or "landing"

    # ------------------------------------------------------------------
    # Activity
    # ------------------------------------------------------------------

    def touch(self) -> None:
        self.last_activity = datetime.utcnow()
        self._last_activity_monotonic = time.monotonic()

    def idle_seconds(self, now: Optional[float] = None) -> float:
        return (now if now is not None else time.monotonic()) - self._last_activity_monotonic

    # ------------------------------------------------------------------
    # Emission
    # ------------------------------------------------------------------

    def emit(self, event_type: BuildEventType, **data: Any) -> BuildEvent:
        self.touch()
        return self.events.emit(event_type, data)

    def send_thinking(self, agent_id: str, thought: str) -> None:
        self.emit(BuildEventType.AGENT_THINKING, agentId=agent_id, thought=thought)

    def send_message(self, agent_id: str, message: str, target_agent: Optional[str] = None) -> None:
        self.emit(BuildEventType.AGENT_MESSAGE, agentId=agent_id, message=message, targetAgent=target_agent)

    def create_file(self, agent_id: str, path: str, content: str, reason: Optional[str] = None) -> None:
        entry = self.files.create(path, content, agent_id)
        self.emit(
            BuildEventType.FILE_CREATED,
            path=entry.path,
            content=entry.content,
            agentId=agent_id,
            reason=reason or f"Created by {agent_id}",
        )
        self.update_preview()

    def modify_file(self, agent_id: str, path: str, content: str, reason: Optional[str] = None) -> None:
        if self.files.get(path) is None:
            self.create_file(agent_id, path, content, reason)
            return
        entry = self.files.modify(path, content, agent_id)
        self.emit(
            BuildEventType.FILE_MODIFIED,
            path=entry.path,
            content=entry.content,
            diff=entry.diff.to_dict() if entry.diff else None,
            agentId=agent_id,
            reason=reason or f"Modified by {agent_id}",
        )
        self.update_preview()

    def delete_file(self, agent_id: str, path: str) -> bool:
        """Returns False when there was nothing to delete"""
        try:
            clean_path = sanitize_path(path)
        except InvalidPathError:
            return False
        if self.files.delete(clean_path) is None:
            return False
        self.emit(BuildEventType.FILE_DELETED, path=clean_path, agentId=agent_id)
        self.update_preview()
        return True

    def add_review_comment(self, agent_id: str, file_path: str, line: Optional[int], comment: str) -> None:
        record = {"agentId": agent_id, "file": file_path, "line": line, "comment": comment}
        self.review_comments.append(record)
        self.emit(BuildEventType.REVIEW_COMMENT, **record)

    def add_bug_report(self, agent_id: str, severity: str, description: str, body: str) -> None:
        record = {"agentId": agent_id, "severity": severity, "description": description, "body": body}
        self.bug_reports.append(record)
        self.emit(BuildEventType.BUG_REPORT, **record)

    def update_preview(self) -> None:
        self.emit(BuildEventType.PREVIEW_UPDATE, **self.files.build_preview().to_dict())

    def set_progress(self, percent: int, milestone: str) -> None:
        """Progress never moves backwards; a lower value is ignored"""
        if percent < self.progress:
            return
        self.progress = percent
        self.milestone = milestone
        self.emit(BuildEventType.BUILD_PROGRESS, percent=percent, milestone=milestone)

    def enter_phase(self, phase: BuildPhase) -> None:
        """Advance the machine and announce the (from, to) pair"""
        if phase == self.phase:
            # The first phase is announced without a transition
            from_phase, to_phase = phase, phase
        else:
            from_phase, to_phase = self.machine.advance(phase)
        self.emit(BuildEventType.PHASE_CHANGE, **{"from": from_phase.value, "to": to_phase.value})

    def skip_phase(self, phase: BuildPhase, reason: str) -> None:
        self.skipped_phases.append(phase.value)
        self.emit(BuildEventType.PHASE_SKIPPED, phase=phase.value, reason=reason)

    # ------------------------------------------------------------------
    # Observer commands
    # ------------------------------------------------------------------

    def add_feedback(self, message: str) -> None:
        self.touch()
        self.pending_feedback.append(message)

    def drain_feedback(self) -> List[str]:
        drained = list(self.pending_feedback)
        self.pending_feedback.clear()
        return drained

    def pause(self) -> None:
        self.touch()
        self.paused = True

    def resume(self) -> None:
        self.touch()
        self.paused = False

    def approve_phase(self) -> None:
        self.touch()
        self.phase_approved = True

    def resolve_conflict(self, conflict_id: Any, choice: Any, custom_solution: Optional[str] = None) -> None:
        self.touch()
        self.resolved_conflicts.append({
            "id": conflict_id,
            "choice": choice,
            "customSolution": custom_solution,
            "at": datetime.utcnow().isoformat(),
        })

    def abort(self, reason: str = "aborted") -> None:
        """Cooperative cancel: takes effect at the pipeline's next checkpoint"""
        if self.aborted:
            return
        self.aborted = True
        self.paused = False
        self.machine.abort(reason)
        logger.info(f"[Session] {self.short_id} aborted ({reason})")

    async def wait_if_paused(self) -> None:
        while self.paused and not self.aborted:
            await asyncio.sleep(settings.PAUSE_POLL_INTERVAL)

    # ------------------------------------------------------------------
    # Prompt context
    # ------------------------------------------------------------------

    def recent_activity(self, limit: int = None) -> List[str]:
        """Agent-facing lines for the prompt; progress and preview ticks are left out"""
        limit = settings.CONTEXT_RECENT_EVENTS if limit is None else limit
        lines = []
        for event in self.events.get_history(limit=limit, event_types=ACTIVITY_EVENTS):
            data = event.data
            if event.type == BuildEventType.PHASE_CHANGE:
                lines.append(f"[system]: phase {data.get('from')} → {data.get('to')}")
                continue
            if event.type in (BuildEventType.REVIEW_COMMENT, BuildEventType.BUG_REPORT):
                text = data.get("comment") or data.get("description") or ""
                text = f"{event.type.value} {data.get('file') or data.get('severity') or ''}: {text}"
            else:
                text = data.get("message") or data.get("thought") or f"{event.type.value} {data.get('path', '')}".strip()
            lines.append(f"[{data.get('agentId') or 'system'}]: {text}")
        return lines

    def build_context(self, task: str, additional_context: str = "") -> str:
        """Assemble the user prompt for one agent call"""
        options = self.options
        recent = "\n".join(self.recent_activity()) or "No recent activity"

        file_chunks = []
        for entry in self.files.list()[-settings.CONTEXT_FILE_LIMIT:]:
            body = entry.content[:settings.CONTEXT_FILE_CHARS] if entry.content else "(empty)"
            file_chunks.append(f"\n--- {entry.path} ---\n{body}")
        files_context = "\n".join(file_chunks) or "No files yet"

        plan = json.dumps(self.plan, indent=2) if self.plan else "Not yet created"
        design_guidance = get_site_guidance(self.site_type)["description"]

        sections = [
            f"## PROJECT BRIEF\n{self.brief}",
            f"## SITE TYPE\n{self.site_type}",
            "## STYLE PREFERENCES\n"
            f"Preset: {options.style_preset or 'modern-dark'}\n"
            f"Primary Color: {options.primary_color or '#3b82f6'}\n"
            f"Font: {options.font_preference or 'sans-serif'}\n"
            f"Animations: {'yes' if options.animations else 'no'}\n"
            f"Responsive: {'yes' if options.responsive else 'no'}\n"
            f"Dark mode site: {'yes' if options.dark_mode else 'no'}",
            f"## ARCHITECT'S PLAN\n{plan}",
            f"## DESIGN GUIDANCE\n{design_guidance}",
            f"## RECENT TEAM ACTIVITY\n{recent}",
            f"## CURRENT FILES\n{files_context}",
        ]
        if additional_context:
            sections.append(f"## ADDITIONAL CONTEXT\n{additional_context}")
        sections.append(
            f"## YOUR TASK\n{task}\n\n"
            "Remember to use the output formats in your system prompt. Write complete, working code."
        )
        return "\n\n".join(sections)

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def snapshot(self) -> Dict[str, Any]:
        """Summary for the health endpoint"""
        return {
            "id": f"{self.short_id}...",
            "phase": self.phase.value,
            "progress": self.progress,
            "paused": self.paused,
            "aborted": self.aborted,
            "createdAt": self.created_at.isoformat() + "Z",
            "lastActivity": self.last_activity.isoformat() + "Z",
            "idleSeconds": int(self.idle_seconds()),
            "fileCount": len(self.files),
            "skippedPhases": list(self.skipped_phases),
        }

"""
Build Orchestrator - runs the fixed phase pipeline for each session

    PLANNING(architect) → SCAFFOLDING(frontend-dev) → CODING(stylist)
    → REVIEWING(reviewer) → FIXING(stylist) → TESTING(qa-tester)
    → POLISHING → COMPLETE

Each phase makes one primary agent call through the call envelope. When
the envelope gives up, the phase is recorded as skipped and the pipeline
moves on: the observer always ends with build_complete or build_error.
Pause and abort are cooperative flags checked around every suspension.
"""

import asyncio
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional

from whiteninja.core.config import settings
from whiteninja.core.exceptions import CapacityError, ServiceUnavailableError
from whiteninja.core.logging_config import logger, set_session_id
from whiteninja.modules.agents.roster import (
    ARCHITECT, FRONTEND_DEV, QA_TESTER, REVIEWER, STYLIST, AgentProfile, get_site_guidance,
)
from whiteninja.modules.automation.response_parser import AgentResponseParser, response_parser
from whiteninja.modules.orchestrator.build_session import BuildSession
from whiteninja.modules.orchestrator.call_envelope import CallEnvelope
from whiteninja.modules.orchestrator.event_bus import BuildEvent, BuildEventType
from whiteninja.modules.orchestrator.state_machine import BuildPhase
from whiteninja.schemas.build import validate_start_request

if TYPE_CHECKING:
    from whiteninja.services.session_registry import SessionRegistry


EventSink = Callable[[BuildEvent], None]

SIGN_OFFS = [
    (ARCHITECT.id, "Project complete. Final review: all agents have signed off. The build is ready for delivery."),
    (REVIEWER.id, "Confirmed. Code quality is acceptable. Signing off."),
    (QA_TESTER.id, "QA PASS! All tests cleared. Ship it!"),
]


def _flag(value: Optional[bool], yes: str, no: str) -> str:
    return yes if value else no


class BuildOrchestrator:
    """Validates start requests and drives each session's pipeline"""

    def __init__(
        self,
        registry: "SessionRegistry",
        envelope: CallEnvelope,
        parser: AgentResponseParser = None,
        phase_delay: float = None,
        require_api_key: bool = True,
    ):
        self.registry = registry
        self.envelope = envelope
        self.parser = parser or response_parser
        self.phase_delay = settings.PHASE_TRANSITION_DELAY if phase_delay is None else phase_delay
        self.require_api_key = require_api_key

    # ------------------------------------------------------------------
    # Admission
    # ------------------------------------------------------------------

    def start(self, payload: Dict[str, Any], sink: Optional[EventSink] = None) -> BuildSession:
        """
        Validate, admit and launch a build. Does not wait for the pipeline.

        Raises:
            ValidationError: malformed brief or options
            ServiceUnavailableError: no model API key configured
            CapacityError: the concurrent build ceiling is reached
        """
        brief, options = validate_start_request(payload)

        if self.require_api_key and not settings.has_valid_api_key:
            raise ServiceUnavailableError(
                "Server is not configured with a valid API key. Please contact the administrator."
            )

        if not self.registry.can_start():
            logger.warning(
                f"[Orchestrator] Rejected build: {self.registry.active_count()} active builds "
                f"(max {self.registry.max_concurrent})"
            )
            raise CapacityError(self.registry.max_concurrent)

        session = BuildSession(brief, options)
        if sink is not None:
            session.events.subscribe("*", sink)
        self.registry.register(session)

        logger.log_build_event(session.id, f'starting -- "{brief[:60]}"', site_type=session.site_type)
        session.task = asyncio.create_task(self.run_build(session))
        return session

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def run_build(self, session: BuildSession) -> None:
        set_session_id(session.id)
        try:
            await self._pipeline(session)
        except asyncio.CancelledError:
            session.abort("cancelled")
            raise
        except Exception as e:
            logger.log_error_with_context(e, context=f"build {session.short_id}")
            if not session.aborted:
                session.emit(BuildEventType.BUILD_ERROR, message=f"Build failed: {e}")
                session.abort("pipeline error")

    async def _between_phases(self, session: BuildSession) -> None:
        if self.phase_delay > 0:
            await asyncio.sleep(self.phase_delay)
        await session.wait_if_paused()

    async def _run_agent(
        self,
        session: BuildSession,
        agent: AgentProfile,
        task: str,
        additional_context: str = "",
    ) -> Optional[str]:
        """One envelope call; a reply is applied through the parser"""
        reply = await self.envelope.call(session, agent, task, additional_context)
        if reply is not None and not session.aborted:
            self.parser.parse(session, agent.id, reply)
        return reply

    async def _primary_call(
        self,
        session: BuildSession,
        phase: BuildPhase,
        agent: AgentProfile,
        task: str,
        additional_context: str = "",
    ) -> bool:
        """
        The phase's designated call. Returns False once the session is aborted.
        """
        reply = await self._run_agent(session, agent, task, additional_context)
        if session.aborted:
            return False
        if reply is None:
            logger.warning(f"[Orchestrator] {phase.value} failed for session {session.short_id}, skipping")
            session.skip_phase(phase, f"{agent.name} ({agent.id}) failed to respond")
        return True

    def _enter(self, session: BuildSession, phase: BuildPhase, percent: int, milestone: str) -> bool:
        if session.aborted:
            return False
        session.enter_phase(phase)
        session.set_progress(percent, milestone)
        return True

    async def _pipeline(self, session: BuildSession) -> None:
        options = session.options
        guidance = get_site_guidance(session.site_type)

        # ── PLANNING ──
        if not self._enter(session, BuildPhase.PLANNING, 5, "Starting planning phase"):
            return
        session.send_thinking(
            ARCHITECT.id,
            f'Reading the brief carefully: "{session.brief[:120]}" -- determining file structure, '
            f"sections, and design direction."
        )
        if not await self._primary_call(session, BuildPhase.PLANNING, ARCHITECT, self._planning_task(session, guidance)):
            return
        session.plan = {
            "siteType": session.site_type,
            "brief": session.brief,
            "filesPlanned": list(guidance["files"]),
            "sectionsPlanned": list(guidance["sections"]),
            "designGuidance": guidance["description"],
        }
        session.set_progress(15, "Planning complete")
        await self._between_phases(session)

        # ── SCAFFOLDING ──
        if not self._enter(session, BuildPhase.SCAFFOLDING, 20, "Setting up file structure"):
            return
        if not await self._primary_call(session, BuildPhase.SCAFFOLDING, FRONTEND_DEV, self._scaffolding_task(session)):
            return
        session.set_progress(30, "Scaffolding complete")
        await self._between_phases(session)

        # ── CODING ──
        if not self._enter(session, BuildPhase.CODING, 35, "Styling in progress"):
            return
        session.send_thinking(
            STYLIST.id,
            f'Kuba and Maja have finished the structure. Brief says: "{session.brief[:100]}" -- '
            f"time to make this look incredible."
        )
        if not await self._primary_call(session, BuildPhase.CODING, STYLIST, self._coding_task(options)):
            return
        session.set_progress(50, "Styling applied")

        feedback = session.drain_feedback()
        if feedback:
            feedback_text = ". ".join(feedback)
            session.send_thinking(FRONTEND_DEV.id, f"Got user feedback! Implementing changes: {feedback_text}")
            await self._run_agent(
                session,
                FRONTEND_DEV,
                "Update the relevant files to address the user's feedback. "
                "Be specific about what you are changing and why.",
                additional_context=f"User feedback received: {feedback_text}",
            )
            if session.aborted:
                return
        await self._between_phases(session)

        # ── REVIEWING ──
        if not self._enter(session, BuildPhase.REVIEWING, 60, "Code review in progress"):
            return
        session.send_thinking(REVIEWER.id, "My turn. Going through every file: HTML structure first, then CSS, then JS.")
        if not await self._primary_call(session, BuildPhase.REVIEWING, REVIEWER, self._review_task(session)):
            return
        session.set_progress(70, "Review complete")
        await self._between_phases(session)

        # ── FIXING ──
        if not self._enter(session, BuildPhase.FIXING, 73, "Fixing review issues"):
            return
        if session.review_comments:
            session.send_thinking(
                FRONTEND_DEV.id,
                f"Nova flagged {len(session.review_comments)} issues. Prioritizing them by severity and fixing everything."
            )
            await self._run_agent(session, FRONTEND_DEV, self._fix_task(session))
            if session.aborted:
                return
        else:
            session.send_thinking(FRONTEND_DEV.id, "Nova's review came back clean. Doing a final JS polish pass anyway.")
        if not await self._primary_call(session, BuildPhase.FIXING, STYLIST, self._polish_task(session)):
            return
        session.set_progress(82, "Fixes applied")
        await self._between_phases(session)

        # ── TESTING ──
        if not self._enter(session, BuildPhase.TESTING, 85, "QA testing"):
            return
        session.send_thinking(QA_TESTER.id, "Pulling out my QA checklist. Testing everything the brief asked for.")
        if not await self._primary_call(session, BuildPhase.TESTING, QA_TESTER, self._qa_task(session)):
            return
        session.set_progress(92, "QA complete")
        await self._between_phases(session)

        # ── POLISHING ──
        if not self._enter(session, BuildPhase.POLISHING, 95, "Final polish"):
            return
        late_feedback = session.drain_feedback()
        if late_feedback:
            await self._run_agent(
                session,
                STYLIST,
                "Apply any visual or design changes requested in the late user feedback. Update the relevant files.",
                additional_context=f'Late user feedback: "{". ".join(late_feedback)}"',
            )
            if session.aborted:
                return
        for agent_id, note in SIGN_OFFS:
            session.send_message(agent_id, note, None)

        # ── COMPLETE ──
        if not self._enter(session, BuildPhase.COMPLETE, 100, "Build complete"):
            return
        self._complete(session)

    def _complete(self, session: BuildSession) -> None:
        dropped = session.drain_feedback()
        if dropped:
            logger.info(f"[Orchestrator] Dropping {len(dropped)} feedback message(s) received after polishing")

        session.update_preview()

        skipped_info = ""
        if session.skipped_phases:
            skipped_info = (
                f" ({len(session.skipped_phases)} phase(s) had agent failures and were skipped: "
                f"{', '.join(session.skipped_phases)})"
            )
        file_count = len(session.files)
        usage = self.envelope.token_tracker.get_session_usage(session.id)
        summary = (
            f"Successfully built a {session.site_type} page with {file_count} files. "
            f"The 5-agent team collaborated to create a responsive, polished website matching your brief.{skipped_info}"
        )

        session.emit(
            BuildEventType.BUILD_COMPLETE,
            files=session.files.to_list(),
            summary=summary,
            fileCount=file_count,
            skippedPhases=list(session.skipped_phases),
            tokenUsage=usage["total"] if usage else None,
        )
        logger.log_build_event(
            session.id,
            f"complete -- {file_count} files",
            skipped_phases=list(session.skipped_phases),
            stats=session.files.get_stats(),
        )

    # ------------------------------------------------------------------
    # Phase tasks
    # ------------------------------------------------------------------

    def _planning_task(self, session: BuildSession, guidance: Dict[str, Any]) -> str:
        options = session.options
        sections = "\n".join(f"- {s}" for s in guidance["sections"])
        return f"""You are starting a new website project. Read the brief carefully and build a stunning foundation.

CONFIGURATION:
- Site type: {session.site_type}
- Style preset: {options.style_preset or 'modern-dark'}
- Primary color: {options.primary_color or '#3b82f6'}
- Dark mode site: {_flag(options.dark_mode, 'YES -- dark backgrounds, light text, glowing accents', 'LIGHT -- clean whites, subtle shadows')}
- Animations: {_flag(options.animations, 'YES -- scroll-triggered entrances and hover effects', 'keep minimal')}
- Responsive: {_flag(options.responsive, 'YES -- mobile-first, 375px / 768px / 1440px', 'desktop-optimized')}

1. THINK through the audience, the conversion goal and what makes this project unique.
2. Create index.html with rich, real content, HTML5 semantics and BEM class names. Link css/styles.css and js/main.js.
3. MESSAGE @maja with every JS interaction needed and MESSAGE @leo with a specific visual direction.

TEMPLATE GUIDANCE:
{guidance['description']}

REQUIRED SECTIONS (adapt to the brief):
{sections}

PLANNED FILES: {', '.join(guidance['files'])}"""

    def _scaffolding_task(self, session: BuildSession) -> str:
        animations = session.options.animations
        return f"""Kuba finished the HTML. Your turn to make it interactive.

READ index.html carefully and create js/main.js with: mobile nav toggle on [data-nav-toggle], smooth scroll for
a[href^="#"], sticky navbar (.is-scrolled), IntersectionObserver adding .is-visible to .animate-on-scroll,
FAQ accordion on [data-accordion-trigger], inline form validation, plus anything the brief or Kuba asked for.
{'Also create js/animations.js with scroll-triggered entrance and staggered card animations.' if animations else ''}

Then MESSAGE @leo listing every state class you toggle and MESSAGE @nova that JS is ready for review.

The brief: "{session.brief[:200]}\""""

    def _coding_task(self, options) -> str:
        return f"""Kuba and Maja have built the HTML and JS. Now make this look INCREDIBLE.

Create css/styles.css as a complete design system: every section styled and every interactive state handled.

DESIGN PARAMETERS:
- Style preset: {options.style_preset or 'modern-dark'}
- {_flag(options.dark_mode, 'DARK THEME: rich dark surfaces, light text, colored glows', 'LIGHT THEME: warm off-whites, soft shadows')}
- Primary brand color: {options.primary_color or '#3b82f6'} (derive light, dark, glow and muted variants)
- {_flag(options.animations, 'ANIMATIONS: transitions on all interactive elements, .animate-on-scroll → .is-visible', 'MINIMAL ANIMATIONS: hover and focus only')}
- {_flag(options.responsive, 'RESPONSIVE: mobile-first with 768px and 1200px breakpoints', 'DESKTOP-FIRST: optimize for 1200px+')}
- Font: {options.font_preference or 'sans-serif'}

Style the state classes .is-open, .is-scrolled, .is-visible, .is-invalid, .is-valid and .is-hidden.
After styling, MESSAGE @rex that CSS is complete and ready for QA."""

    def _review_task(self, session: BuildSession) -> str:
        return f"""You are doing a thorough code review of the complete website. Read every file carefully.

USER'S BRIEF (what they wanted): "{session.brief[:300]}"

Cover brief compliance, HTML semantics and accessibility, CSS responsiveness and states, and JavaScript
robustness. Report EACH issue as a REVIEW_COMMENT block with file:approximate_line.

Then MESSAGE @maja with the top 3 priority fixes and MESSAGE @leo with the top 2 CSS improvements."""

    def _fix_task(self, session: BuildSession) -> str:
        issues = "\n".join(
            f"- {c['file']}:{c['line'] if c['line'] is not None else '?'} -- {c['comment']}"
            for c in session.review_comments
        )
        return f"""Nova (Code Reviewer) flagged these issues that need fixing:
{issues}

Fix ALL issues and output the COMPLETE updated content of every file you touch.
MESSAGE @nova confirming what you fixed and MESSAGE @leo if any class names changed."""

    def _polish_task(self, session: BuildSession) -> str:
        css_notes = "\n".join(
            f"- {c['comment']}" for c in session.review_comments if ".css" in (c.get("file") or "")
        ) or "(No specific CSS issues -- focus on polish)"
        return f"""Nova reviewed everything. Fix the issues AND do a final design polish.

Nova's CSS feedback:
{css_notes}

Check the hero, hover and focus states, mobile navigation, section rhythm, typography scale, animation states
and form validation states. Output the COMPLETE updated css/styles.css and MESSAGE @rex that design is polished."""

    def _qa_task(self, session: BuildSession) -> str:
        return f"""You are doing final QA on the complete website build. Be thorough and methodical.

ORIGINAL BRIEF (what the user requested): "{session.brief[:400]}"

Go through the brief line by line and mark each feature PASS or FAIL. Check visual rendering, responsive
behavior at 375px / 768px / 1440px, interactions and technical quality. Report every failure as a BUG_REPORT.

End with a MESSAGE @kuba with your QA verdict, or MESSAGE @maja with specific fixes for critical failures."""

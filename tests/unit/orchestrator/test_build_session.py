"""
Unit tests for build session state and emission
"""
import pytest

from whiteninja.modules.orchestrator.build_session import BuildSession
from whiteninja.modules.orchestrator.event_bus import BuildEventType
from whiteninja.modules.orchestrator.state_machine import BuildPhase
from whiteninja.schemas.build import BuildOptions


@pytest.fixture
def session(brief):
    session = BuildSession(brief, BuildOptions(siteType="portfolio", primaryColor="#10b981"))
    session.received = []
    session.events.subscribe("*", session.received.append)
    return session


def types_of(session):
    return [e.type for e in session.received]


class TestBuildSessionFiles:
    """Test file operations and their events"""

    def test_create_emits_file_then_preview(self, session):
        session.create_file("architect", "../index.html", "<body><p>Hi</p></body>")

        assert types_of(session) == [BuildEventType.FILE_CREATED, BuildEventType.PREVIEW_UPDATE]
        created = session.received[0].data
        assert created["path"] == "index.html"
        assert created["agentId"] == "architect"
        assert session.received[1].data["html"] == "<p>Hi</p>"

    def test_modify_emits_diff(self, session):
        session.create_file("stylist", "css/styles.css", "a\nb\nc")
        session.modify_file("stylist", "css/styles.css", "a\nx\nc\nd")

        modified = [e for e in session.received if e.type == BuildEventType.FILE_MODIFIED][0]
        assert modified.data["diff"] == {"added": 2, "removed": 1, "oldLines": 3, "newLines": 4}

    def test_modify_unknown_file_emits_created(self, session):
        session.modify_file("frontend-dev", "js/main.js", "init()")
        assert BuildEventType.FILE_CREATED in types_of(session)
        assert BuildEventType.FILE_MODIFIED not in types_of(session)

    def test_delete_emits_only_for_known_files(self, session):
        session.create_file("architect", "about.html", "<p>a</p>")
        session.received.clear()

        assert session.delete_file("frontend-dev", "about.html") is True
        assert session.delete_file("frontend-dev", "about.html") is False
        assert session.delete_file("frontend-dev", "..") is False

        assert session.received[0].data == {"path": "about.html", "agentId": "frontend-dev"}
        assert types_of(session) == [BuildEventType.FILE_DELETED, BuildEventType.PREVIEW_UPDATE]


class TestBuildSessionProgress:
    """Test progress and phase announcements"""

    def test_progress_is_monotonic(self, session):
        session.set_progress(30, "thirty")
        session.set_progress(20, "twenty")
        session.set_progress(30, "thirty again")

        percents = [e.data["percent"] for e in session.received]
        assert percents == [30, 30]
        assert session.progress == 30

    def test_first_phase_announced_without_transition(self, session):
        session.enter_phase(BuildPhase.PLANNING)
        session.enter_phase(BuildPhase.SCAFFOLDING)

        changes = [e.data for e in session.received]
        assert changes[0]["from"] == changes[0]["to"] == "PLANNING"
        assert (changes[1]["from"], changes[1]["to"]) == ("PLANNING", "SCAFFOLDING")

    def test_skip_phase_is_recorded(self, session):
        session.skip_phase(BuildPhase.REVIEWING, "Nova failed")
        assert session.skipped_phases == ["REVIEWING"]
        assert session.received[-1].data == {"phase": "REVIEWING", "reason": "Nova failed"}


class TestBuildSessionCommands:
    """Test observer commands"""

    def test_feedback_drains_in_order(self, session):
        session.add_feedback("make it blue")
        session.add_feedback("bigger hero")
        assert session.drain_feedback() == ["make it blue", "bigger hero"]
        assert session.drain_feedback() == []

    def test_pause_resume(self, session):
        session.pause()
        assert session.paused
        session.resume()
        assert not session.paused

    @pytest.mark.asyncio
    async def test_abort_releases_pause(self, session):
        session.pause()
        session.abort("client disconnected")
        await session.wait_if_paused()
        assert session.aborted
        assert session.phase == BuildPhase.ABORTED
        assert not session.is_active

    def test_resolve_conflict_is_stored(self, session):
        session.resolve_conflict("c-1", "option-a", "keep both")
        assert session.resolved_conflicts[0]["id"] == "c-1"
        assert session.resolved_conflicts[0]["customSolution"] == "keep both"

    def test_commands_refresh_idle_clock(self, session):
        before = session.idle_seconds(now=session._last_activity_monotonic + 100)
        session.approve_phase()
        assert session.phase_approved
        assert session.idle_seconds(now=session._last_activity_monotonic + 1) == pytest.approx(1)
        assert before == pytest.approx(100)


class TestBuildContext:
    """Test the per-call prompt context"""

    def test_context_carries_brief_options_and_files(self, session):
        session.create_file("architect", "index.html", "<h1>Portfolio</h1>")
        context = session.build_context("Write the CSS", additional_context="User feedback received: darker")

        assert session.brief in context
        assert "## SITE TYPE\nportfolio" in context
        assert "Primary Color: #10b981" in context
        assert "--- index.html ---" in context
        assert "## ADDITIONAL CONTEXT\nUser feedback received: darker" in context
        assert context.rstrip().endswith("Write complete, working code.")

    def test_context_without_files(self, session):
        context = session.build_context("Plan it")
        assert "No files yet" in context
        assert "Not yet created" in context

    def test_recent_activity_skips_progress_and_previews(self, session):
        session.send_message("architect", "please build the nav", "frontend-dev")
        session.create_file("architect", "index.html", "<body><p>Hi</p></body>")
        session.set_progress(20, "Planning done")
        session.enter_phase(BuildPhase.SCAFFOLDING)
        session.set_progress(25, "Scaffolding")
        session.add_review_comment("reviewer", "index.html", 1, "Add a lang attribute")

        assert session.recent_activity() == [
            "[architect]: please build the nav",
            "[architect]: file_created index.html",
            "[system]: phase PLANNING → SCAFFOLDING",
            "[reviewer]: review_comment index.html: Add a lang attribute",
        ]
        assert "## RECENT TEAM ACTIVITY\n[architect]: please build the nav" in session.build_context("Style it")

    def test_snapshot(self, session):
        snap = session.snapshot()
        assert snap["phase"] == "PLANNING"
        assert snap["id"] == f"{session.id[:8]}..."
        assert snap["fileCount"] == 0

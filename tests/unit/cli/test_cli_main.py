"""
Unit tests for the CLI build command
"""
import asyncio
import json

import pytest
from rich.console import Console

from cli.config import CLIConfig
from cli.main import create_parser, options_from_args, run_build, write_files
from cli.reconnection import ResilientChannel
from cli.renderer import BuildRenderer

from test_reconnection import FakeSocket, SocketFactory


COMPLETE = {
    "type": "build_complete",
    "files": [{"path": "index.html", "content": "<h1>Hi</h1>", "agentId": "architect", "byteSize": 11, "lineCount": 1}],
    "summary": "Successfully built a landing page with 1 files.",
    "fileCount": 1,
    "skippedPhases": [],
    "tokenUsage": {"input_tokens": 10, "output_tokens": 5, "calls": 1},
}


class ScriptedServer(FakeSocket):
    """Answers start_build with a fixed event sequence"""

    def __init__(self, events):
        super().__init__()
        self.events = events

    async def send(self, raw):
        await super().send(raw)
        if json.loads(raw)["type"] == "start_build":
            for event in self.events:
                self.feed(event)


@pytest.fixture
def config(tmp_path):
    return CLIConfig(
        server_url="ws://test/ws",
        max_reconnect_attempts=2,
        reconnect_base_delay=0.001,
        reconnect_max_delay=0.002,
        ping_interval=60,
        output_dir=str(tmp_path / "site"),
    )


@pytest.fixture
def console():
    return Console(record=True, width=120)


class TestRunBuild:
    """Test streaming one build"""

    @pytest.mark.asyncio
    async def test_returns_completion(self, config, console):
        server = ScriptedServer([
            {"type": "phase_change", "from": "PLANNING", "to": "PLANNING"},
            {"type": "agent_thinking", "agentId": "architect", "thought": "Reading the brief"},
            {"type": "file_created", "path": "index.html", "content": "<h1>Hi</h1>", "agentId": "architect"},
            {"type": "build_progress", "percent": 100, "milestone": "Build complete"},
            COMPLETE,
        ])
        channel = ResilientChannel(config, console, connect_factory=SocketFactory(server))

        outcome = await asyncio.wait_for(
            run_build(config, console, "a landing page for a bakery", {"siteType": "landing"}, ["warmer"], channel=channel),
            timeout=2,
        )

        assert outcome["type"] == "build_complete"
        assert [m["type"] for m in server.sent] == ["start_build", "user_feedback"]
        output = console.export_text()
        assert "index.html" in output
        assert "Build complete" in output

    @pytest.mark.asyncio
    async def test_returns_rejection(self, config, console):
        server = ScriptedServer([{"type": "build_error", "message": "Brief too short", "code": "VALIDATION_ERROR"}])
        channel = ResilientChannel(config, console, connect_factory=SocketFactory(server))

        outcome = await asyncio.wait_for(run_build(config, console, "short", {}, channel=channel), timeout=2)

        assert outcome["code"] == "VALIDATION_ERROR"
        assert "Brief too short" in console.export_text()

    @pytest.mark.asyncio
    async def test_unreachable_server_is_reported(self, config, console):
        channel = ResilientChannel(config, console, connect_factory=SocketFactory())

        outcome = await asyncio.wait_for(run_build(config, console, "a landing page", {}, channel=channel), timeout=2)

        assert outcome["type"] == "build_error"
        assert "Failed to connect after 2 attempts" in outcome["message"]

    @pytest.mark.asyncio
    async def test_dropped_connection_ends_build(self, config, console):
        first = ScriptedServer([{"type": "phase_change", "from": "PLANNING", "to": "PLANNING"}])
        channel = ResilientChannel(config, console, connect_factory=SocketFactory(first, FakeSocket()))

        build = asyncio.create_task(run_build(config, console, "a landing page", {}, channel=channel))
        await asyncio.sleep(0.02)
        first.drop(1006)
        outcome = await asyncio.wait_for(build, timeout=2)

        assert outcome["type"] == "build_error"
        assert "cancelled the build" in outcome["message"]


class TestCommandLine:
    """Test argument handling and file output"""

    def test_options_from_args(self):
        args = create_parser().parse_args([
            "build", "a portfolio for a potter", "--site-type", "portfolio", "--dark-mode", "--no-animations",
        ])
        assert options_from_args(args) == {"siteType": "portfolio", "darkMode": True, "animations": False}

    def test_unset_options_are_left_out(self):
        args = create_parser().parse_args(["build", "a portfolio for a potter"])
        assert options_from_args(args) == {}

    def test_write_files_stays_inside_output_dir(self, tmp_path):
        written = write_files(str(tmp_path / "out"), [
            {"path": "css/styles.css", "content": "body{}"},
            {"path": "../escape.txt", "content": "nope"},
        ])

        assert [p.name for p in written] == ["styles.css"]
        assert (tmp_path / "out" / "css" / "styles.css").read_text() == "body{}"
        assert not (tmp_path / "escape.txt").exists()


class TestRenderer:
    """Test event rendering"""

    def test_thinking_hidden_when_disabled(self, console):
        renderer = BuildRenderer(console, CLIConfig(show_thinking=False))
        renderer.render_event({"type": "agent_thinking", "agentId": "stylist", "thought": "secret plans"})
        assert "secret plans" not in console.export_text()

    def test_review_and_bug_lines(self, console):
        renderer = BuildRenderer(console, CLIConfig())
        renderer.render_event({"type": "review_comment", "agentId": "reviewer", "file": "js/main.js", "line": 4, "comment": "Guard null"})
        renderer.render_event({"type": "bug_report", "agentId": "qa-tester", "severity": "high", "description": "Menu stuck"})
        output = console.export_text()
        assert "js/main.js:4" in output
        assert "Menu stuck" in output

"""
Agent Response Parser
Extracts typed commands from the delimiter protocol agents answer in

Each block kind is scanned independently, so a reply may carry any number
of blocks of any kind in any order. A failure inside one block is logged
and counted; it never stops the remaining blocks from being applied.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from whiteninja.core.config import settings
from whiteninja.core.logging_config import logger
from whiteninja.modules.agents.roster import resolve_agent_id


THINKING_RE = re.compile(r'===THINKING===(.*?)===END_THINKING===', re.DOTALL)
MESSAGE_RE = re.compile(r'===MESSAGE:\s*@?(\w[\w-]*)\s*===(.*?)===END_MESSAGE===', re.DOTALL)
FILE_CREATE_RE = re.compile(r'===FILE_CREATE:\s*([^\n=]+)===(.*?)===END_FILE===', re.DOTALL)
FILE_MODIFY_RE = re.compile(r'===FILE_MODIFY:\s*([^\n=]+)===(.*?)===END_FILE===', re.DOTALL)
FILE_DELETE_RE = re.compile(r'===FILE_DELETE:\s*([^\n=]+)===')
REVIEW_RE = re.compile(r'===REVIEW_COMMENT:\s*([^\n=]+)===(.*?)===END_REVIEW===', re.DOTALL)
BUG_RE = re.compile(r'===BUG_REPORT:\s*severity=(\w+)\s*===(.*?)===END_BUG===', re.DOTALL)


@dataclass
class ParseResult:
    """Per-kind counts of applied blocks plus any per-block anomalies"""
    thoughts: int = 0
    messages: int = 0
    files_created: int = 0
    files_modified: int = 0
    files_deleted: int = 0
    review_comments: int = 0
    bug_reports: int = 0
    fallback_note: bool = False
    anomalies: List[str] = field(default_factory=list)

    @property
    def blocks_applied(self) -> int:
        return (self.thoughts + self.messages + self.files_created + self.files_modified + self.files_deleted
                + self.review_comments + self.bug_reports)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "thoughts": self.thoughts,
            "messages": self.messages,
            "files_created": self.files_created,
            "files_modified": self.files_modified,
            "files_deleted": self.files_deleted,
            "review_comments": self.review_comments,
            "bug_reports": self.bug_reports,
            "fallback_note": self.fallback_note,
            "anomalies": list(self.anomalies),
        }


def split_locator(locator: str):
    """Split "path:line" into (path, line); a non-numeric line becomes None"""
    locator = locator.strip()
    path, sep, line = locator.rpartition(":")
    if not sep:
        return locator, None
    line = line.strip()
    if line.isdigit():
        return path.strip(), int(line)
    if not line or line == "?":
        return path.strip(), None
    return locator, None


def bug_description(body: str) -> str:
    lines = body.split("\n")
    for line in lines:
        if line.strip().startswith("Issue:"):
            return line.strip()[len("Issue:"):].strip()
    return lines[0].strip() if lines else ""


class AgentResponseParser:
    """
    Applies one agent reply to a session.

    The sink is the build session: it must provide send_thinking,
    send_message, create_file, modify_file, delete_file, add_review_comment
    and add_bug_report.
    """

    def __init__(self, fallback_chars: int = None):
        self.fallback_chars = fallback_chars or settings.FALLBACK_NOTE_CHARS

    def parse(self, sink, agent_id: str, text: Optional[str]) -> ParseResult:
        result = ParseResult()
        if not text or not text.strip():
            logger.warning(f"[Parser] No response text to parse from agent {agent_id}")
            return result

        self._apply(THINKING_RE, text, result, "thinking",
                    lambda m: self._on_thinking(sink, agent_id, m, result))
        self._apply(MESSAGE_RE, text, result, "message",
                    lambda m: self._on_message(sink, agent_id, m, result))
        self._apply(FILE_CREATE_RE, text, result, "file_create",
                    lambda m: self._on_file(sink, agent_id, m, result, modify=False))
        self._apply(FILE_MODIFY_RE, text, result, "file_modify",
                    lambda m: self._on_file(sink, agent_id, m, result, modify=True))
        self._apply(FILE_DELETE_RE, text, result, "file_delete",
                    lambda m: self._on_delete(sink, agent_id, m, result))
        self._apply(REVIEW_RE, text, result, "review_comment",
                    lambda m: self._on_review(sink, agent_id, m, result))
        self._apply(BUG_RE, text, result, "bug_report",
                    lambda m: self._on_bug(sink, agent_id, m, result))

        if result.blocks_applied == 0 and not result.anomalies:
            if "===" in text:
                # Markers with nothing usable behind them are not chat
                result.anomalies.append("delimiter markers without a complete block")
            else:
                note = text.strip()[:self.fallback_chars].strip()
                sink.send_message(agent_id, note, None)
                result.fallback_note = True
                result.messages += 1

        if result.anomalies:
            logger.warning(
                f"[Parser] {len(result.anomalies)} block(s) skipped in reply from {agent_id}: "
                f"{'; '.join(result.anomalies[:3])}"
            )
        logger.debug(f"[Parser] Parsed reply from {agent_id}: {result.to_dict()}")
        return result

    def _apply(self, pattern, text: str, result: ParseResult, kind: str, handler) -> None:
        for match in pattern.finditer(text):
            try:
                handler(match)
            except Exception as e:
                result.anomalies.append(f"{kind} at offset {match.start()}: {e}")
                logger.error(f"[Parser] Error applying {kind} block: {e}")

    def _on_thinking(self, sink, agent_id: str, match, result: ParseResult) -> None:
        thought = match.group(1).strip()
        if not thought:
            result.anomalies.append("empty thinking block")
            return
        sink.send_thinking(agent_id, thought)
        result.thoughts += 1

    def _on_message(self, sink, agent_id: str, match, result: ParseResult) -> None:
        message = match.group(2).strip()
        if not message:
            result.anomalies.append(f"empty message to @{match.group(1)}")
            return
        sink.send_message(agent_id, message, resolve_agent_id(match.group(1)))
        result.messages += 1

    def _on_file(self, sink, agent_id: str, match, result: ParseResult, modify: bool) -> None:
        path = match.group(1).strip()
        content = match.group(2).strip()
        if not path or not content:
            result.anomalies.append(f"empty path or content for {path or '<no path>'}")
            return
        if modify:
            sink.modify_file(agent_id, path, content)
            result.files_modified += 1
        else:
            sink.create_file(agent_id, path, content)
            result.files_created += 1

    def _on_delete(self, sink, agent_id: str, match, result: ParseResult) -> None:
        path = match.group(1).strip()
        if not path:
            result.anomalies.append("empty path for file_delete")
            return
        if sink.delete_file(agent_id, path):
            result.files_deleted += 1
        else:
            result.anomalies.append(f"file_delete for unknown path {path}")

    def _on_review(self, sink, agent_id: str, match, result: ParseResult) -> None:
        file_path, line = split_locator(match.group(1))
        comment = match.group(2).strip()
        sink.add_review_comment(agent_id, file_path, line, comment)
        result.review_comments += 1

    def _on_bug(self, sink, agent_id: str, match, result: ParseResult) -> None:
        severity = match.group(1).strip().lower()
        body = match.group(2).strip()
        sink.add_bug_report(agent_id, severity, bug_description(body), body)
        result.bug_reports += 1


# Singleton instance
response_parser = AgentResponseParser()

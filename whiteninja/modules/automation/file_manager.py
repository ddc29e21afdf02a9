"""
Virtual File Manager - in-memory versioned store for one build session

Every session owns exactly one store. Agents never touch content directly:
create/modify/delete are the only mutation points, and each one keeps the
per-file metadata (size, lines, timestamps, bounded history) consistent.
"""

import re
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Deque, Dict, List, Optional

from whiteninja.core.config import settings
from whiteninja.core.exceptions import InvalidPathError
from whiteninja.core.logging_config import logger


_CONTROL_CHARS = re.compile(r'[\x00-\x1f\x7f]')

_BODY_RE = re.compile(r'<body\b[^>]*>(.*?)</body\s*>', re.IGNORECASE | re.DOTALL)
_STYLE_BLOCK_RE = re.compile(r'<style\b[^>]*>(.*?)</style\s*>', re.IGNORECASE | re.DOTALL)
_INLINE_SCRIPT_RE = re.compile(r'<script\b(?![^>]*\bsrc\s*=)[^>]*>(.*?)</script\s*>', re.IGNORECASE | re.DOTALL)
_ANY_SCRIPT_RE = re.compile(r'<script\b[^>]*>.*?</script\s*>', re.IGNORECASE | re.DOTALL)
_STYLESHEET_LINK_RE = re.compile(
    r'<link\b[^>]*\brel\s*=\s*["\']?stylesheet["\']?[^>]*>', re.IGNORECASE
)

PLACEHOLDER_HTML = (
    '<div style="color:#666;font-family:system-ui;padding:40px;text-align:center">'
    '<p>Building your website...</p></div>'
)


def sanitize_path(path: str) -> str:
    """
    Normalize an agent-supplied path.

    Both separators are accepted; empty, "." and ".." segments are dropped
    and the rest is rejoined with "/". The result is always relative, has no
    traversal segment and no doubled separator.

    Raises:
        InvalidPathError: nothing usable remains, or the path carries control
            characters or a protocol delimiter
    """
    if path is None:
        raise InvalidPathError("", "Empty file path")
    if _CONTROL_CHARS.search(path) or "===" in path:
        raise InvalidPathError(path, "Unsafe characters in file path")

    segments = [
        segment.strip()
        for segment in path.replace("\\", "/").split("/")
    ]
    kept = [s for s in segments if s and s not in (".", "..")]
    if not kept:
        raise InvalidPathError(path, "Empty file path")
    return "/".join(kept)


def count_lines(content: str) -> int:
    return len(content.split("\n")) if content else 0


@dataclass
class DiffSummary:
    """Positional line comparison between two versions of a file"""
    added: int
    removed: int
    old_lines: int
    new_lines: int

    def to_dict(self) -> Dict[str, int]:
        return {
            "added": self.added,
            "removed": self.removed,
            "oldLines": self.old_lines,
            "newLines": self.new_lines,
        }


def compute_line_diff(old_content: str, new_content: str) -> DiffSummary:
    """
    Walk both texts index by index.

    A line past the end of the shorter text is purely added or removed; a
    line present at the same index in both but different counts once on each
    side. This is not a minimal edit script (no LCS alignment), so inserting
    one line near the top of a file reports every following line as changed.
    """
    if not old_content:
        new_count = count_lines(new_content)
        return DiffSummary(added=new_count, removed=0, old_lines=0, new_lines=new_count)
    if not new_content:
        old_count = count_lines(old_content)
        return DiffSummary(added=0, removed=old_count, old_lines=old_count, new_lines=0)

    old_lines = old_content.split("\n")
    new_lines = new_content.split("\n")
    added = removed = 0

    for i in range(max(len(old_lines), len(new_lines))):
        if i >= len(old_lines):
            added += 1
        elif i >= len(new_lines):
            removed += 1
        elif old_lines[i] != new_lines[i]:
            added += 1
            removed += 1

    return DiffSummary(added=added, removed=removed, old_lines=len(old_lines), new_lines=len(new_lines))


@dataclass
class HistorySnapshot:
    content: str
    writer: str
    at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {"content": self.content, "agentId": self.writer, "at": self.at.isoformat()}


@dataclass
class FileEntry:
    """One named text artifact inside a session's store"""
    path: str
    content: str
    writer: str
    byte_size: int
    line_count: int
    history: Deque[HistorySnapshot]
    created_at: datetime = field(default_factory=datetime.utcnow)
    modified_at: datetime = field(default_factory=datetime.utcnow)
    modify_count: int = 0
    diff: Optional[DiffSummary] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "content": self.content,
            "agentId": self.writer,
            "byteSize": self.byte_size,
            "lineCount": self.line_count,
        }


@dataclass
class PreviewBundle:
    html: str
    css: str
    js: str

    def to_dict(self) -> Dict[str, str]:
        return {"html": self.html, "css": self.css, "js": self.js}


class VirtualFileManager:
    """Versioned in-memory file store"""

    def __init__(self, history_limit: int = None):
        self.history_limit = history_limit or settings.FILE_HISTORY_LIMIT
        self.files: Dict[str, FileEntry] = {}
        self.total_modifications = 0
        self._contributions: Dict[str, Dict[str, Any]] = {}

    def __len__(self) -> int:
        return len(self.files)

    def __contains__(self, path: str) -> bool:
        try:
            return sanitize_path(path) in self.files
        except InvalidPathError:
            return False

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create(self, path: str, content: str, writer: str) -> FileEntry:
        """Store a fresh entry (replacing any previous one at the same path)"""
        clean_path = sanitize_path(path)
        content = content or ""

        history: Deque[HistorySnapshot] = deque(maxlen=self.history_limit)
        history.append(HistorySnapshot(content=content, writer=writer))

        entry = FileEntry(
            path=clean_path,
            content=content,
            writer=writer,
            byte_size=len(content.encode("utf-8")),
            line_count=count_lines(content),
            history=history,
        )
        self.files[clean_path] = entry
        self._track_contribution(writer, clean_path)

        logger.debug(f"[FileManager] Created {clean_path} ({entry.byte_size} bytes) by {writer}")
        return entry

    def modify(self, path: str, content: str, writer: str) -> FileEntry:
        """Update an entry in place; an unknown path degrades to create"""
        clean_path = sanitize_path(path)
        existing = self.files.get(clean_path)
        if existing is None:
            return self.create(clean_path, content, writer)

        content = content or ""
        existing.diff = compute_line_diff(existing.content, content)
        existing.history.append(HistorySnapshot(content=content, writer=writer))
        existing.content = content
        existing.writer = writer
        existing.byte_size = len(content.encode("utf-8"))
        existing.line_count = count_lines(content)
        existing.modified_at = datetime.utcnow()
        existing.modify_count += 1

        self.total_modifications += 1
        self._track_contribution(writer, clean_path)

        logger.debug(
            f"[FileManager] Modified {clean_path} by {writer} "
            f"(+{existing.diff.added}/-{existing.diff.removed})"
        )
        return existing

    def delete(self, path: str) -> Optional[HistorySnapshot]:
        """Remove an entry, returning its last known snapshot"""
        entry = self.files.pop(sanitize_path(path), None)
        if entry is None:
            return None
        if entry.history:
            return entry.history[-1]
        return HistorySnapshot(content=entry.content, writer=entry.writer, at=entry.modified_at)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, path: str) -> Optional[FileEntry]:
        try:
            return self.files.get(sanitize_path(path))
        except InvalidPathError:
            return None

    def list(self) -> List[FileEntry]:
        return list(self.files.values())

    def list_paths(self) -> List[str]:
        return list(self.files.keys())

    def list_by_extension(self, *extensions: str) -> List[FileEntry]:
        return [f for f in self.files.values() if f.path.endswith(tuple(extensions))]

    def _track_contribution(self, writer: str, path: str) -> None:
        if not writer:
            return
        contrib = self._contributions.setdefault(writer, {"files": set(), "actions": 0})
        contrib["files"].add(path)
        contrib["actions"] += 1

    def get_stats(self) -> Dict[str, Any]:
        contributions = {
            writer: {
                "fileCount": len(data["files"]),
                "actionCount": data["actions"],
                "files": sorted(data["files"]),
            }
            for writer, data in self._contributions.items()
        }
        return {
            "fileCount": len(self.files),
            "totalLines": sum(f.line_count for f in self.files.values()),
            "totalBytes": sum(f.byte_size for f in self.files.values()),
            "totalModifications": self.total_modifications,
            "contributions": contributions,
        }

    def to_list(self) -> List[Dict[str, Any]]:
        """Serialize for download and completion events"""
        return [f.to_dict() for f in self.files.values()]

    # ------------------------------------------------------------------
    # Preview
    # ------------------------------------------------------------------

    def _entry_document(self) -> Optional[FileEntry]:
        root = self.files.get("index.html")
        if root is not None:
            return root
        for entry in self.files.values():
            if entry.path.endswith("/index.html"):
                return entry
        return None

    @staticmethod
    def _strip_embedded(markup: str) -> str:
        markup = _ANY_SCRIPT_RE.sub("", markup)
        markup = _STYLE_BLOCK_RE.sub("", markup)
        return _STYLESHEET_LINK_RE.sub("", markup)

    def build_preview(self) -> PreviewBundle:
        """
        Compose html/css/js for the live preview.

        Inline <style> blocks anywhere in the entry document are prepended to
        the stylesheet entries, inline scripts to the script entries, and both
        kinds of tag (plus stylesheet links) are stripped from the html since
        the consumer injects styles and scripts itself. Never mutates the store.
        """
        stylesheet_entries = [f.content for f in self.list_by_extension(".css")]
        script_entries = [f.content for f in self.list_by_extension(".js")]

        entry = self._entry_document()
        if entry is None:
            fragments = [
                self._strip_embedded(f.content)
                for f in self.list_by_extension(".html")
                if f.content
            ]
            html = "\n".join(fragments) or PLACEHOLDER_HTML
            return PreviewBundle(html=html, css="\n".join(stylesheet_entries), js="")

        document = entry.content or ""
        inline_styles = [m.strip() for m in _STYLE_BLOCK_RE.findall(document)]
        inline_scripts = [m.strip() for m in _INLINE_SCRIPT_RE.findall(document)]

        body_match = _BODY_RE.search(document)
        body = body_match.group(1) if body_match else document
        html = self._strip_embedded(body).strip()

        css = "\n".join([s for s in inline_styles if s] + stylesheet_entries)
        js = "\n".join([s for s in inline_scripts if s] + script_entries)
        return PreviewBundle(html=html, css=css, js=js)

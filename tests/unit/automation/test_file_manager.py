"""
Unit tests for the virtual file store
"""
import pytest

from whiteninja.core.exceptions import InvalidPathError
from whiteninja.modules.automation.file_manager import (
    PLACEHOLDER_HTML,
    VirtualFileManager,
    compute_line_diff,
    sanitize_path,
)


class TestSanitizePath:
    """Test agent-supplied path normalization"""

    @pytest.mark.parametrize("raw,expected", [
        ("index.html", "index.html"),
        ("css/styles.css", "css/styles.css"),
        ("../../etc/passwd", "etc/passwd"),
        ("/js//main.js", "js/main.js"),
        ("js\\main.js", "js/main.js"),
        ("./css/./styles.css", "css/styles.css"),
        ("....//....//x.js", "..../..../x.js"),
        ("  css / styles.css ", "css/styles.css"),
    ])
    def test_normalizes(self, raw, expected):
        assert sanitize_path(raw) == expected

    def test_result_never_contains_traversal(self):
        result = sanitize_path("a/../../b/./../c")
        assert ".." not in result.split("/")
        assert "//" not in result
        assert not result.startswith("/")

    @pytest.mark.parametrize("raw", ["", "/", "..", "../..", "./."])
    def test_nothing_left_is_rejected(self, raw):
        with pytest.raises(InvalidPathError):
            sanitize_path(raw)

    @pytest.mark.parametrize("raw", ["bad\x00name.js", "a\nb.css", "x===y.html"])
    def test_unsafe_characters_rejected(self, raw):
        with pytest.raises(InvalidPathError):
            sanitize_path(raw)


class TestLineDiff:
    """Test the positional line comparison"""

    def test_documented_example(self):
        diff = compute_line_diff("a\nb\nc", "a\nx\nc\nd")
        assert diff.added == 2
        assert diff.removed == 1
        assert diff.old_lines == 3
        assert diff.new_lines == 4

    def test_identical_content(self):
        diff = compute_line_diff("one\ntwo", "one\ntwo")
        assert (diff.added, diff.removed) == (0, 0)

    def test_from_empty(self):
        diff = compute_line_diff("", "a\nb")
        assert diff.to_dict() == {"added": 2, "removed": 0, "oldLines": 0, "newLines": 2}

    def test_to_empty(self):
        diff = compute_line_diff("a\nb\nc", "")
        assert (diff.added, diff.removed) == (0, 3)

    def test_shorter_new_text_counts_removed(self):
        diff = compute_line_diff("a\nb\nc", "a")
        assert (diff.added, diff.removed) == (0, 2)

    def test_insert_at_top_shifts_everything(self):
        """No alignment: an inserted first line marks every line changed"""
        diff = compute_line_diff("a\nb", "z\na\nb")
        assert diff.added == 3
        assert diff.removed == 2


class TestVirtualFileManager:
    """Test store mutations and metadata"""

    def test_create_records_metadata(self):
        store = VirtualFileManager()
        entry = store.create("../index.html", "<h1>Hé</h1>\n<p>x</p>", "architect")

        assert entry.path == "index.html"
        assert entry.writer == "architect"
        assert entry.line_count == 2
        assert entry.byte_size == len("<h1>Hé</h1>\n<p>x</p>".encode("utf-8"))
        assert len(entry.history) == 1
        assert "index.html" in store

    def test_paths_unique(self):
        store = VirtualFileManager()
        store.create("css/styles.css", "a", "stylist")
        store.create("./css/styles.css", "b", "stylist")
        assert len(store) == 1
        assert store.get("css/styles.css").content == "b"

    def test_modify_unknown_path_degrades_to_create(self):
        store = VirtualFileManager()
        entry = store.modify("js/main.js", "console.log(1)", "frontend-dev")
        assert entry.modify_count == 0
        assert entry.diff is None
        assert store.total_modifications == 0

    def test_modify_updates_diff_and_counters(self):
        store = VirtualFileManager()
        store.create("a.txt", "a\nb\nc", "architect")
        entry = store.modify("a.txt", "a\nx\nc\nd", "reviewer")

        assert entry.diff.added == 2
        assert entry.diff.removed == 1
        assert entry.writer == "reviewer"
        assert entry.modify_count == 1
        assert entry.line_count == 4
        assert store.total_modifications == 1

    def test_history_is_bounded(self):
        store = VirtualFileManager(history_limit=10)
        store.create("a.css", "v0", "stylist")
        for i in range(1, 26):
            store.modify("a.css", f"v{i}", "stylist")

        history = store.get("a.css").history
        assert len(history) == 10
        assert [h.content for h in history] == [f"v{i}" for i in range(16, 26)]

    def test_delete_returns_last_snapshot(self):
        store = VirtualFileManager()
        store.create("a.js", "1", "frontend-dev")
        store.modify("a.js", "2", "frontend-dev")

        snapshot = store.delete("a.js")
        assert snapshot.content == "2"
        assert store.get("a.js") is None
        assert store.delete("a.js") is None

    def test_get_with_invalid_path_returns_none(self):
        assert VirtualFileManager().get("..") is None

    def test_stats_track_contributions(self):
        store = VirtualFileManager()
        store.create("index.html", "<p>x</p>", "architect")
        store.create("css/styles.css", "a{}", "stylist")
        store.modify("css/styles.css", "a{}\nb{}", "stylist")

        stats = store.get_stats()
        assert stats["fileCount"] == 2
        assert stats["totalModifications"] == 1
        assert stats["contributions"]["stylist"]["fileCount"] == 1
        assert stats["contributions"]["stylist"]["actionCount"] == 2

    def test_to_list_serializes_entries(self):
        store = VirtualFileManager()
        store.create("index.html", "<p>x</p>", "architect")
        assert store.to_list() == [{
            "path": "index.html",
            "content": "<p>x</p>",
            "agentId": "architect",
            "byteSize": 8,
            "lineCount": 1,
        }]


class TestBuildPreview:
    """Test preview composition"""

    def test_inline_blocks_hoisted_and_stripped(self):
        store = VirtualFileManager()
        store.create("index.html", (
            "<html><head>"
            "<style>.hero { color: red; }</style>"
            '<link rel="stylesheet" href="css/styles.css">'
            "</head><body>"
            "<h1 class=\"hero\">Hi</h1>"
            "<script>console.log('inline');</script>"
            '<script src="js/main.js"></script>'
            "</body></html>"
        ), "architect")
        store.create("css/styles.css", "body { margin: 0; }", "stylist")
        store.create("js/main.js", "init();", "frontend-dev")

        preview = store.build_preview()

        assert preview.css.startswith(".hero { color: red; }")
        assert "body { margin: 0; }" in preview.css
        assert "console.log('inline');" in preview.js
        assert "init();" in preview.js
        assert "<style" not in preview.html
        assert "<script" not in preview.html
        assert "<link" not in preview.html
        assert '<h1 class="hero">Hi</h1>' in preview.html

    def test_preview_does_not_mutate_store(self):
        store = VirtualFileManager()
        original = "<body><style>a{}</style><p>x</p></body>"
        store.create("index.html", original, "architect")
        store.build_preview()
        assert store.get("index.html").content == original

    def test_placeholder_without_html(self):
        store = VirtualFileManager()
        store.create("css/styles.css", "a{}", "stylist")
        preview = store.build_preview()
        assert preview.html == PLACEHOLDER_HTML
        assert preview.css == "a{}"

    def test_nested_index_used_as_entry_document(self):
        store = VirtualFileManager()
        store.create("site/index.html", "<body><main>Nested</main></body>", "architect")
        assert store.build_preview().html == "<main>Nested</main>"

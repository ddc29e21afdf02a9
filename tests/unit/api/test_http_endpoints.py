"""
Unit tests for the REST endpoints
"""
import io
import json
import zipfile

import pytest

from whiteninja.api.v1.endpoints.download import create_zip_bundle
from whiteninja.api.v1.endpoints.health import format_bytes, format_uptime
from whiteninja.api.v1.endpoints.suggest import extract_suggestions
from whiteninja.core.config import settings
from whiteninja.modules.orchestrator.build_session import BuildSession
from whiteninja.schemas.build import DownloadFile


SUGGESTION = {
    "suggestedConfig": {"siteType": "ecommerce", "primaryColor": "#b45309", "darkMode": False},
    "reasoning": "A storefront with warm earthy tones suits handmade ceramics.",
    "customQuestions": [
        {"id": "glaze_focus", "label": "Glaze showcase", "options": [], "defaultValue": "gallery"},
    ],
}


class TestRoot:
    """Test the service banner"""

    @pytest.mark.asyncio
    async def test_root(self, client):
        response = await client.get("/")
        assert response.status_code == 200
        data = response.json()
        assert data["websocket"] == "/ws"
        assert data["health"] == "/api/health"


class TestHealth:
    """Test the health report"""

    @pytest.mark.asyncio
    async def test_health_report(self, client, services, brief):
        services.registry.register(BuildSession(brief))

        response = await client.get("/api/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["apiKeyConfigured"] is True
        assert data["activeSessions"] == 1
        assert data["maxConcurrentBuilds"] == services.registry.max_concurrent
        assert data["sessions"][0]["phase"] == "PLANNING"
        assert set(data["memory"]) == {"rss", "vms", "systemAvailable", "systemPercent"}
        assert data["config"]["apiRetryCount"] == 3
        assert data["uptime"]["human"].endswith("s")

    @pytest.mark.parametrize("seconds,expected", [
        (0, "0s"),
        (59, "59s"),
        (3600, "1h 0s"),
        (93784, "1d 2h 3m 4s"),
    ])
    def test_format_uptime(self, seconds, expected):
        assert format_uptime(seconds) == expected

    @pytest.mark.parametrize("size,expected", [
        (0, "0 B"),
        (512, "512.0 B"),
        (2048, "2.0 KB"),
        (5 * 1024 * 1024, "5.0 MB"),
    ])
    def test_format_bytes(self, size, expected):
        assert format_bytes(size) == expected


class TestSuggestConfig:
    """Test config suggestions"""

    @pytest.mark.asyncio
    async def test_returns_suggestions(self, client, mock_claude, brief):
        mock_claude.set_response("suggest", "Here you go:\n" + json.dumps(SUGGESTION))

        response = await client.post("/api/suggest-config", json={"brief": brief})

        assert response.status_code == 200
        data = response.json()
        assert data["suggestedConfig"]["siteType"] == "ecommerce"
        assert data["customQuestions"][0]["id"] == "glaze_focus"
        assert mock_claude.calls_for("suggest")[0]["model"] == settings.CLAUDE_SUGGEST_MODEL

    @pytest.mark.asyncio
    async def test_short_brief_is_400(self, client, mock_claude):
        response = await client.post("/api/suggest-config", json={"brief": "tiny"})

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"
        assert mock_claude.call_count == 0

    @pytest.mark.asyncio
    async def test_missing_key_is_503(self, client, brief, monkeypatch):
        monkeypatch.setattr(settings, "ANTHROPIC_API_KEY", "")

        response = await client.post("/api/suggest-config", json={"brief": brief})

        assert response.status_code == 503
        assert response.json()["error"]["code"] == "SERVICE_UNAVAILABLE"

    @pytest.mark.asyncio
    async def test_upstream_failure_degrades_to_empty(self, client, mock_claude, brief):
        mock_claude.set_response("suggest", "I cannot produce JSON today")

        response = await client.post("/api/suggest-config", json={"brief": brief})

        assert response.status_code == 200
        assert response.json() == {"suggestedConfig": {}, "reasoning": "", "customQuestions": []}
        assert len(mock_claude.calls_for("suggest")) == settings.API_RETRY_COUNT

    @pytest.mark.asyncio
    async def test_retries_after_error(self, client, mock_claude, brief):
        mock_claude.fail("suggest", times=1)
        mock_claude.set_response("suggest", json.dumps(SUGGESTION))

        response = await client.post("/api/suggest-config", json={"brief": brief})

        assert response.json()["reasoning"] == SUGGESTION["reasoning"]
        assert len(mock_claude.calls_for("suggest")) == 2

    def test_extract_suggestions_rejects_non_json(self):
        with pytest.raises(ValueError):
            extract_suggestions("")
        with pytest.raises(ValueError):
            extract_suggestions("no braces here")


class TestDownload:
    """Test zip bundling"""

    @pytest.mark.asyncio
    async def test_download_zip(self, client):
        files = [
            {"path": "index.html", "content": "<h1>Hi</h1>"},
            {"path": "../../css/styles.css", "content": "body{}"},
            {"path": "..", "content": "dropped"},
        ]

        response = await client.post("/api/download", json={"files": files})

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/zip"
        assert 'filename="white-ninja-build.zip"' in response.headers["content-disposition"]

        archive = zipfile.ZipFile(io.BytesIO(response.content))
        assert sorted(archive.namelist()) == ["css/styles.css", "index.html"]
        assert archive.read("index.html").decode() == "<h1>Hi</h1>"

    @pytest.mark.asyncio
    async def test_malformed_body_is_400(self, client):
        response = await client.post("/api/download", json={"files": "index.html"})
        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_later_duplicate_wins(self):
        data = create_zip_bundle([
            DownloadFile(path="a.js", content="1"),
            DownloadFile(path="./a.js", content="2"),
        ])
        archive = zipfile.ZipFile(io.BytesIO(data))
        assert archive.namelist() == ["a.js"]
        assert archive.read("a.js") == b"2"

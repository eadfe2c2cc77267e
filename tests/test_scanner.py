from unittest.mock import AsyncMock, MagicMock

import pytest

from qflow.config import Settings
from qflow.core import scanner as scanner_module
from qflow.core.scanner import QFlowScanner, ai_engine_label, navigation_draft
from qflow.models.types import Category, Severity


class TestNavigationDraft:

    def test_ok_status(self):
        assert navigation_draft(200, "https://example.com", 90_000) is None
        assert navigation_draft(None, "https://example.com", 90_000) is None

    def test_client_error_is_high(self):
        draft = navigation_draft(404, "https://example.com", 90_000)
        assert draft.title == "HTTP 404 on navigation"
        assert draft.severity is Severity.HIGH
        assert draft.evidence_label == "http-404"

    def test_server_error_is_critical(self):
        assert navigation_draft(503, "https://example.com", 90_000).severity is Severity.CRITICAL

    def test_timeout(self):
        draft = navigation_draft(None, "https://example.com", 90_000, error=TimeoutError("Timeout 90000ms"))
        assert draft.title == "Navigation timeout"
        assert draft.severity is Severity.CRITICAL
        assert draft.category is Category.NAVIGATION
        assert draft.description == "Page did not load within 90s."


def test_ai_engine_label():
    assert ai_engine_label(False) == "Disabled (no API key)"
    assert ai_engine_label(True).startswith("Gemini")


def test_oracle_only_with_key():
    assert QFlowScanner(Settings())._oracle() is None
    oracle = QFlowScanner(Settings(gemini_api_key="k", llm_min_delay_ms=2_000))._oracle()
    assert oracle.available


async def test_guarded_logs_and_continues():
    events = []
    scanner = QFlowScanner(Settings(), on_progress=lambda t, d: events.append(d["message"]))

    async def boom():
        raise RuntimeError("detector exploded")

    async def fine():
        return 7

    assert await scanner._guarded("Layout check", boom()) is None
    assert await scanner._guarded("SEO check", fine()) == 7
    assert events == ["Layout check failed: detector exploded"]


async def test_context_failure_closes_browser(monkeypatch, tmp_path):
    browser = MagicMock()
    browser.new_context = AsyncMock(side_effect=RuntimeError("browser crashed"))
    browser.close = AsyncMock()
    pw = MagicMock()
    pw.chromium.launch = AsyncMock(return_value=browser)
    manager = MagicMock()
    manager.__aenter__ = AsyncMock(return_value=pw)
    manager.__aexit__ = AsyncMock(return_value=False)
    monkeypatch.setattr(scanner_module, "async_playwright", lambda: manager)
    summary = MagicMock()
    monkeypatch.setattr(scanner_module, "print_summary", summary)

    with pytest.raises(RuntimeError, match="browser crashed"):
        await QFlowScanner(Settings(output_dir=str(tmp_path))).run("https://example.com")
    browser.close.assert_awaited_once()
    summary.assert_not_called()

import asyncio
import time
from unittest.mock import AsyncMock, MagicMock

import pytest
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from qflow.core.actions import ActionEngine, ActionOutcome, FaultKind
from qflow.models.context import RuntimeSignals


@pytest.fixture
def locator(page):
    loc = MagicMock()
    loc.is_visible = AsyncMock(return_value=True)
    loc.click = AsyncMock()
    loc.hover = AsyncMock()
    loc.fill = AsyncMock()
    page.get_by_text.return_value.first = loc
    page.get_by_placeholder.return_value.first = loc
    page.locator.return_value.first = loc
    return loc


@pytest.fixture
def signals():
    return RuntimeSignals()


@pytest.fixture
def engine(page, signals):
    return ActionEngine(page, signals)


async def test_click_success(engine, locator):
    outcome = await engine.click(text="Swap", settle_ms=0)
    assert outcome.ok and outcome.clean
    assert outcome.description == 'Clicked "Swap"'
    locator.click.assert_awaited_once()


async def test_unknown_action_is_a_fault(engine):
    outcome = await engine.perform("teleport")
    assert not outcome.ok
    assert outcome.fault.kind is FaultKind.UNKNOWN_ACTION


async def test_invisible_target(engine, locator):
    locator.is_visible.return_value = False
    outcome = await engine.click(selector="#hidden")
    assert not outcome.ok
    assert outcome.fault.kind is FaultKind.NOT_VISIBLE
    locator.click.assert_not_awaited()


async def test_locator_resolution_failure_is_no_target(engine, page):
    page.get_by_text.side_effect = RuntimeError("detached frame")
    outcome = await engine.click(text="Ghost")
    assert outcome.fault.kind is FaultKind.NO_TARGET


async def test_blocked_click(engine, locator):
    locator.click.side_effect = RuntimeError("element intercepts pointer events")
    outcome = await engine.click(text="Buy")
    assert not outcome.ok
    assert outcome.fault.kind is FaultKind.BLOCKED
    assert "click failed or blocked" in outcome.description


async def test_driver_timeout_becomes_timeout_fault(engine, locator):
    locator.hover.side_effect = PlaywrightTimeoutError("Timeout 3000ms exceeded")
    outcome = await engine.hover(text="Menu")
    assert not outcome.ok
    assert outcome.fault.kind is FaultKind.TIMEOUT


async def _never_resolves(*args, **kwargs):
    await asyncio.Event().wait()


@pytest.mark.parametrize("stuck", ["is_visible", "click"])
async def test_hanging_locator_returns_within_ceiling(engine, locator, stuck):
    setattr(locator, stuck, _never_resolves)
    started = time.monotonic()
    outcome = await engine.click(text="Swap", timeout_ms=100, settle_ms=0)
    assert time.monotonic() - started < 3.0
    assert not outcome.ok
    assert outcome.fault.kind is FaultKind.TIMEOUT
    assert outcome.description == "click timed out on Swap"


async def test_navigation_failure(engine, page):
    page.goto.side_effect = RuntimeError("net::ERR_NAME_NOT_RESOLVED")
    outcome = await engine.navigate("https://nope.invalid")
    assert outcome.fault.kind is FaultKind.NAVIGATION


async def test_js_errors_are_counted_per_action(engine, locator, signals):
    signals.console_errors.append("earlier error")

    async def click(**_):
        signals.page_errors.append("TypeError: boom")

    locator.click.side_effect = click
    outcome = await engine.click(text="Swap", settle_ms=0)
    assert outcome.ok
    assert outcome.js_errors == 1
    assert not outcome.clean


async def test_fill_uses_placeholder_lookup(engine, page, locator):
    outcome = await engine.fill("100", text="Amount", settle_ms=0)
    assert outcome.ok
    page.get_by_placeholder.assert_called_once_with("Amount", exact=False)
    locator.fill.assert_awaited_once_with("100", timeout=3_000)


async def test_scroll_variants(engine, page):
    assert (await engine.scroll("bottom", settle_ms=0)).description == "Scrolled to bottom"
    assert (await engine.scroll("top", settle_ms=0)).description == "Scrolled to top"
    assert (await engine.scroll("250", settle_ms=0)).description == "Scrolled down 250px"
    assert (await engine.scroll(settle_ms=0)).description == "Scrolled down 600px"


async def test_press_key_defaults_to_enter(engine, page):
    outcome = await engine.perform("press_key", settle_ms=0)
    assert outcome.description == "Pressed key: Enter"
    page.keyboard.press.assert_awaited_once_with("Enter")


def test_history_line():
    line = ActionOutcome(False, "Clicked nothing", js_errors=2).history_line("click")
    assert line == "click: Clicked nothing (FAILED) [2 JS errors]"

"""Workflow action engine: one fallible UI interaction at a time.

Every call is bounded by a timeout and returns an ActionOutcome instead
of raising. A single unreachable element must never abort the scan that
asked for it, so faults come back as values and the caller decides
whether they are reportable.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum

from playwright.async_api import Locator, Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from qflow.models.context import RuntimeSignals
from qflow.utils.smart_wait import stabilize


ACTION_KINDS = ("click", "fill", "hover", "scroll", "navigate", "press_key")


class FaultKind(str, Enum):
    NO_TARGET = "no_target"
    NOT_VISIBLE = "not_visible"
    BLOCKED = "blocked"
    TIMEOUT = "timeout"
    NAVIGATION = "navigation"
    UNKNOWN_ACTION = "unknown_action"


@dataclass
class InteractionFault:
    kind: FaultKind
    message: str = ""


@dataclass
class ActionOutcome:
    ok: bool
    description: str
    js_errors: int = 0
    fault: InteractionFault | None = None

    @property
    def clean(self) -> bool:
        """Succeeded and raised no new console/JS errors."""
        return self.ok and self.js_errors == 0

    def history_line(self, kind: str) -> str:
        status = "(OK)" if self.ok else "(FAILED)"
        return f"{kind}: {self.description} {status} [{self.js_errors} JS errors]"


class ActionEngine:
    """Executes click/fill/hover/scroll/navigate/press_key against a page."""

    TIMEOUTS_MS = {
        "click": 5_000,
        "fill": 3_000,
        "hover": 3_000,
        "scroll": 2_000,
        "navigate": 30_000,
        "press_key": 2_000,
    }
    SETTLE_MS = {
        "click": 1_500,
        "fill": 800,
        "hover": 800,
        "scroll": 1_000,
        "navigate": 2_000,
        "press_key": 800,
    }
    SCROLL_STEP_PX = 600

    def __init__(self, page: Page, signals: RuntimeSignals):
        self.page = page
        self.signals = signals

    def locate(self, selector: str | None = None, text: str | None = None,
               placeholder: bool = False) -> Locator | None:
        """Resolve a target by visible text (or placeholder) first, CSS selector second."""
        try:
            if text:
                if placeholder:
                    return self.page.get_by_placeholder(text, exact=False).first
                return self.page.get_by_text(text, exact=False).first
            if selector:
                return self.page.locator(selector).first
        except Exception:
            return None
        return None

    async def is_visible(self, locator: Locator | None) -> bool:
        if locator is None:
            return False
        try:
            return await locator.is_visible()
        except Exception:
            return False

    async def perform(
        self,
        kind: str,
        selector: str | None = None,
        text: str | None = None,
        value: str | None = None,
        timeout_ms: int | None = None,
        settle_ms: int | None = None,
    ) -> ActionOutcome:
        """Run one action and report what happened. Never raises."""
        if kind not in ACTION_KINDS:
            return ActionOutcome(False, f"Unknown action: {kind}",
                                 fault=InteractionFault(FaultKind.UNKNOWN_ACTION, kind))

        timeout_ms = timeout_ms or self.TIMEOUTS_MS[kind]
        settle_ms = self.SETTLE_MS[kind] if settle_ms is None else settle_ms
        errors_before = self.signals.error_count
        # hard ceiling: driver timeout plus the settle delay plus a little slack
        ceiling = (timeout_ms + settle_ms) / 1000 + 1.0

        try:
            outcome = await asyncio.wait_for(
                self._dispatch(kind, selector, text, value, timeout_ms, settle_ms),
                timeout=ceiling,
            )
        except (asyncio.TimeoutError, PlaywrightTimeoutError) as e:
            outcome = ActionOutcome(
                False, f"{kind} timed out on {_label(selector, text, value)}",
                fault=InteractionFault(FaultKind.TIMEOUT, str(e)[:200]),
            )
        except Exception as e:
            outcome = ActionOutcome(
                False, f"Action failed: {str(e)[:100]}",
                fault=InteractionFault(FaultKind.BLOCKED, str(e)[:200]),
            )

        outcome.js_errors = max(0, self.signals.error_count - errors_before)
        return outcome

    async def _dispatch(self, kind, selector, text, value, timeout_ms, settle_ms) -> ActionOutcome:
        page = self.page
        label = _label(selector, text, value)

        if kind in ("click", "hover", "fill"):
            locator = self.locate(selector, text, placeholder=(kind == "fill"))
            if locator is None:
                return ActionOutcome(False, f"No target for {kind}",
                                     fault=InteractionFault(FaultKind.NO_TARGET))
            if not await self.is_visible(locator):
                noun = "Input" if kind == "fill" else "Element"
                return ActionOutcome(False, f'{noun} "{label}" not visible',
                                     fault=InteractionFault(FaultKind.NOT_VISIBLE))

            if kind == "click":
                try:
                    await locator.click(timeout=timeout_ms)
                except Exception as e:
                    return ActionOutcome(False, f'"{label}" click failed or blocked',
                                         fault=InteractionFault(FaultKind.BLOCKED, str(e)[:200]))
                await stabilize(page, settle_ms)
                return ActionOutcome(True, f'Clicked "{label}"')

            if kind == "hover":
                await locator.hover(timeout=timeout_ms)
                await stabilize(page, settle_ms)
                return ActionOutcome(True, f'Hovered "{label}"')

            fill_value = "test" if value is None else value
            await locator.click(timeout=timeout_ms)
            await locator.fill(fill_value, timeout=timeout_ms)
            await stabilize(page, settle_ms)
            return ActionOutcome(True, f'Filled "{label}" with "{fill_value}"')

        if kind == "scroll":
            where = (value or selector or "").lower()
            if where == "bottom":
                await page.evaluate("() => window.scrollTo(0, document.body.scrollHeight)")
                desc = "Scrolled to bottom"
            elif where == "top":
                await page.evaluate("() => window.scrollTo(0, 0)")
                desc = "Scrolled to top"
            else:
                dy = int(value) if value and value.lstrip("-").isdigit() else self.SCROLL_STEP_PX
                await page.evaluate("(dy) => window.scrollBy(0, dy)", dy)
                desc = f"Scrolled down {dy}px"
            await stabilize(page, settle_ms)
            return ActionOutcome(True, desc)

        if kind == "navigate":
            url = value or selector
            if not url:
                return ActionOutcome(False, "No URL for navigate",
                                     fault=InteractionFault(FaultKind.NO_TARGET))
            try:
                await page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)
            except Exception as e:
                return ActionOutcome(False, f"Navigation to {url} failed",
                                     fault=InteractionFault(FaultKind.NAVIGATION, str(e)[:200]))
            await stabilize(page, settle_ms)
            return ActionOutcome(True, f"Navigated to {url}")

        key = value or selector or "Enter"
        await page.keyboard.press(key)
        await stabilize(page, settle_ms)
        return ActionOutcome(True, f"Pressed key: {key}")

    # Convenience wrappers used by the scripted workflows

    async def click(self, selector: str | None = None, text: str | None = None, **kw) -> ActionOutcome:
        return await self.perform("click", selector=selector, text=text, **kw)

    async def fill(self, value: str, selector: str | None = None, text: str | None = None, **kw) -> ActionOutcome:
        return await self.perform("fill", selector=selector, text=text, value=value, **kw)

    async def hover(self, selector: str | None = None, text: str | None = None, **kw) -> ActionOutcome:
        return await self.perform("hover", selector=selector, text=text, **kw)

    async def press(self, key: str, **kw) -> ActionOutcome:
        return await self.perform("press_key", value=key, **kw)

    async def scroll(self, where: str | None = None, **kw) -> ActionOutcome:
        return await self.perform("scroll", value=where, **kw)

    async def navigate(self, url: str, **kw) -> ActionOutcome:
        return await self.perform("navigate", value=url, **kw)


def _label(selector: str | None, text: str | None, value: str | None = None) -> str:
    return text or selector or value or ""

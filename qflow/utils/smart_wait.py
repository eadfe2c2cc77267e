"""Settling helpers used before every post-action observation.

stabilize() is a fixed delay followed by a double animation-frame yield,
so layout and transitions have flushed before the next DOM read.
"""

from __future__ import annotations

from playwright.async_api import Page


_DOUBLE_FRAME_JS = """() => new Promise(r =>
    requestAnimationFrame(() => requestAnimationFrame(() => r(undefined))))"""


async def stabilize(page: Page, ms: int = 1500):
    """Wait a fixed delay, then yield two animation frames."""
    await page.wait_for_timeout(ms)
    try:
        await page.evaluate(_DOUBLE_FRAME_JS)
    except Exception:
        pass


async def scroll_for_lazy_content(page: Page, viewport_height: int = 720, max_steps: int = 15):
    """Scroll the page one viewport at a time to trigger lazy loads, then return to top."""
    try:
        scroll_height = await page.evaluate("() => document.body ? document.body.scrollHeight : 0")
    except Exception:
        return
    steps = min(-(-scroll_height // viewport_height), max_steps)
    for i in range(1, steps + 1):
        try:
            await page.evaluate("(y) => window.scrollTo(0, y)", i * viewport_height)
        except Exception:
            break
        await page.wait_for_timeout(600)
    try:
        await page.evaluate("() => window.scrollTo(0, 0)")
    except Exception:
        pass
    await page.wait_for_timeout(1000)


async def body_text_length(page: Page) -> int:
    try:
        return await page.evaluate("() => (document.body?.innerText || '').trim().length")
    except Exception:
        return 0


async def read_page(page: Page, script: str, *args, default=None):
    """page.evaluate that yields `default` when the document went away mid-read."""
    try:
        return await page.evaluate(script, *args)
    except Exception:
        return default

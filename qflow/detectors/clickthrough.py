"""Click-through test: click visible nav links and buttons, then restore the page."""

from __future__ import annotations

from qflow.core.actions import ActionOutcome, FaultKind
from qflow.models.session import ScanSession
from qflow.models.types import BugDraft, BugEntry, Category, Severity


MAX_TARGETS = 10
MAX_CLICKS = 8

_TARGETS_JS = """() => {
    const targets = [];
    const seen = new Set();
    document.querySelectorAll('nav a, header a, button:not([disabled]), [role="button"]')
        .forEach(el => {
            if (targets.length >= 10) return;
            const text = (el.textContent || '').trim().slice(0, 40);
            if (!text || seen.has(text)) return;
            seen.add(text);
            const rect = el.getBoundingClientRect();
            if (rect.width > 0 && rect.height > 0) {
                const id = el.id ? `#${el.id}` : '';
                targets.push({ selector: `${el.tagName.toLowerCase()}${id}`, text });
            }
        });
    return targets;
}"""


def target_selector(target: dict) -> str:
    text = target["text"].replace('"', '\\"')
    return f'{target["selector"]}:has-text("{text}")'


def click_issues(text: str, outcome: ActionOutcome) -> list[str]:
    """Issue strings for one click; empty when the click was clean."""
    issues = []
    if outcome.fault and outcome.fault.kind in (FaultKind.NOT_VISIBLE, FaultKind.NO_TARGET):
        return [f'"{text}": not visible/clickable']
    if not outcome.ok:
        issues.append(f'"{text}": click failed or blocked')
    if outcome.js_errors:
        issues.append(f'"{text}": clicking triggered a JS error')
    return issues


class ClickThroughDetector:

    def analyze(self, issues: list[str]) -> BugDraft | None:
        if not issues:
            return None
        return BugDraft(
            title=f"{len(issues)} click-through issue(s)",
            severity=Severity.MEDIUM,
            category=Category.FUNCTIONAL,
            description="Some interactive elements could not be clicked or triggered errors.",
            steps=["Open target URL", "Click navigation links and buttons"],
            evidence_label="click-test",
            details=issues,
        )

    async def detect(self, session: ScanSession) -> BugEntry | None:
        page = session.page
        targets = (await page.evaluate(_TARGETS_JS))[:MAX_TARGETS]
        start_url = page.url
        issues: list[str] = []

        for target in targets[:MAX_CLICKS]:
            outcome = await session.engine.click(
                selector=target_selector(target), timeout_ms=3_000, settle_ms=800)
            issues.extend(click_issues(target["text"], outcome))
            if page.url != start_url:
                try:
                    await page.goto(start_url, wait_until="domcontentloaded", timeout=15_000)
                except Exception:
                    pass
                await page.wait_for_timeout(1_000)

        draft = self.analyze(issues)
        if draft is None:
            return None
        return await session.ledger.commit(page, draft)

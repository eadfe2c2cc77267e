"""Navigation workflows: follow each nav link, check the destination, go back."""

from __future__ import annotations

from qflow.core.actions import FaultKind
from qflow.core.ledger import slug, take_screenshot
from qflow.models.session import ScanSession
from qflow.models.types import BugDraft, Category, Severity, WorkflowResult, WorkflowStep
from qflow.utils.smart_wait import body_text_length, read_page


MAX_NAV_ITEMS = 10
NAV_ERROR_PHRASES = ("not found", "404", "error", "something went wrong", "oops")

NAV_ITEMS_JS = """() => {
    const items = [];
    const seen = new Set();
    document.querySelectorAll('nav a, header a, [role="navigation"] a').forEach(a => {
        const text = (a.textContent || '').trim().slice(0, 40);
        if (!text || seen.has(text)) return;
        const rect = a.getBoundingClientRect();
        if (rect.width === 0 || rect.height === 0) return;
        seen.add(text);
        items.push({ text, href: a.href });
    });
    return items;
}"""

_LOWER_TEXT_JS = "() => (document.body ? document.body.innerText : '').toLowerCase()"


def destination_issues(text: str, url_changed: bool, content_changed: bool, js_errors: int,
                       body_len: int, body_text: str, new_url: str) -> list[str]:
    issues = []
    if not url_changed and not content_changed:
        issues.append(f'"{text}" did not change the URL or page content')
    if js_errors:
        issues.append(f'Navigating to "{text}" triggered {js_errors} JS error(s)')
    if body_len < 20:
        issues.append(f'"{text}" leads to a blank/empty page ({new_url})')
    phrase = next((p for p in NAV_ERROR_PHRASES if p in body_text), None)
    if phrase:
        issues.append(f'"{text}" -> page shows "{phrase}" text')
    return issues


async def _follow(session: ScanSession, item: dict) -> list[str]:
    page = session.page
    text = item["text"]
    start_url = page.url
    start_len = await body_text_length(page)

    outcome = await session.engine.click(text=text, timeout_ms=3_000, settle_ms=2_000)
    if outcome.fault and outcome.fault.kind in (FaultKind.NOT_VISIBLE, FaultKind.NO_TARGET):
        return [f'Nav item "{text}" is not visible']
    if not outcome.ok:
        return [f'"{text}": navigation interaction failed']

    steps = [WorkflowStep(action="click", target=text)]
    new_url = page.url
    steps.append(WorkflowStep(action="observe", expect=f"navigate to {new_url}"))
    body_len = await body_text_length(page)
    body_text = await read_page(page, _LOWER_TEXT_JS, default="") or ""

    issues = destination_issues(text, new_url != start_url, body_len != start_len,
                                outcome.js_errors, body_len, body_text, new_url)
    if issues:
        await take_screenshot(page, session.ctx, f"nav-{slug(text)}", True)

    try:
        await page.go_back(timeout=5_000)
    except Exception:
        pass
    await page.wait_for_timeout(800)
    steps.append(WorkflowStep(action="goBack"))
    if page.url != session.base_url and await body_text_length(page) < 20:
        issues.append(f'Back button after "{text}" leads to blank page')

    session.record(WorkflowResult(
        name=f'Navigation: "{text}"',
        steps=steps,
        passed=not issues,
        error="; ".join(issues) if issues else None,
    ))
    return issues


async def run_navigation_workflows(session: ScanSession):
    page = session.page
    session.log("Testing navigation workflows...")
    items = (await read_page(page, NAV_ITEMS_JS, default=[]) or [])[:MAX_NAV_ITEMS]
    session.log(f"Found {len(items)} navigation items to test")

    issues: list[str] = []
    for item in items:
        try:
            issues.extend(await _follow(session, item))
        except Exception as e:
            session.log(f'Skipped nav item "{item["text"]}": {str(e)[:120]}')

    await session.return_to_base(settle_ms=1_500)

    if issues:
        severe = any("JS error" in i or "blank" in i for i in issues)
        await session.ledger.commit(page, BugDraft(
            title=f"{len(issues)} navigation workflow issue(s)",
            severity=Severity.HIGH if severe else Severity.MEDIUM,
            category=Category.NAVIGATION,
            description="Testing navigation links found broken flows or errors.",
            steps=["Open target URL", "Click through each navigation link"],
            evidence_label="nav-workflow",
            details=issues,
        ))

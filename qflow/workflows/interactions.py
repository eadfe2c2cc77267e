"""Hover, keyboard and scroll interaction workflows."""

from __future__ import annotations

from qflow.models.session import ScanSession
from qflow.models.types import BugDraft, Category, Severity, WorkflowResult, WorkflowStep
from qflow.utils.smart_wait import read_page


MAX_HOVER_TARGETS = 6
TAB_PRESSES = 15

HOVER_TARGETS_JS = """() => {
    const targets = [];
    const seen = new Set();
    document.querySelectorAll(
        '[title], [data-tooltip], [data-tip], [aria-describedby], ' +
        '[class*="tooltip"], [class*="Tooltip"], [class*="hover"]'
    ).forEach(el => {
        const text = (el.textContent || '').trim().slice(0, 30);
        if (!text || seen.has(text)) return;
        seen.add(text);
        const rect = el.getBoundingClientRect();
        if (rect.width > 0 && rect.height > 0) targets.push(text);
    });
    return targets;
}"""

TOOLTIP_VISIBLE_JS = """() => {
    const tips = document.querySelectorAll(
        '[role="tooltip"], [class*="tooltip"][class*="show"], [class*="tooltip"][class*="visible"], ' +
        '[class*="Tooltip"][class*="open"], [data-state="open"]');
    for (const t of tips) {
        const cs = getComputedStyle(t);
        if (cs.display !== 'none' && cs.visibility !== 'hidden' && cs.opacity !== '0') return true;
    }
    return false;
}"""

FOCUSED_JS = """() => {
    const el = document.activeElement;
    if (!el || el === document.body) return null;
    return {
        tag: el.tagName.toLowerCase(),
        text: (el.textContent || '').trim().slice(0, 30),
        has_outline: getComputedStyle(el).outlineStyle !== 'none',
        role: el.getAttribute('role') || '',
    };
}"""

SCROLL_HEIGHT_JS = "() => document.body ? document.body.scrollHeight : 0"

BACK_TO_TOP_JS = """() => {
    const btns = document.querySelectorAll(
        '[class*="back-to-top"], [class*="scroll-top"], [class*="BackToTop"], ' +
        '[class*="ScrollTop"], [aria-label*="top"]');
    for (const b of btns) {
        const cs = getComputedStyle(b);
        if (cs.display !== 'none' && cs.visibility !== 'hidden') return true;
    }
    return false;
}"""

STICKY_HEADER_JS = """() => {
    const header = document.querySelector('header, nav, [role="navigation"]');
    if (!header) return false;
    const pos = getComputedStyle(header).position;
    return pos === 'fixed' || pos === 'sticky';
}"""


def keyboard_issues(focused: list[dict | None], js_errors: int) -> list[str]:
    """Focus-order verdict from the element focused after each Tab press."""
    issues = []
    labels = []
    for f in focused:
        if not f:
            continue
        role = f"[{f['role']}]" if f.get("role") else ""
        labels.append(f'{f["tag"]}{role}: "{f["text"]}"')
        if not f.get("has_outline"):
            issues.append(f'No visible focus indicator on {f["tag"]}: "{f["text"]}"')
    if len(set(labels)) < 3 and len(labels) > 5:
        issues.append("Focus appears stuck: Tab key does not move through elements properly")
    if js_errors:
        issues.append(f"Keyboard navigation triggered {js_errors} JS error(s)")
    return issues


async def _check_hover(session: ScanSession, text: str) -> list[str]:
    outcome = await session.engine.hover(text=text, timeout_ms=2_000, settle_ms=800)
    if not outcome.ok:
        return []
    tooltip = bool(await session.page.evaluate(TOOLTIP_VISIBLE_JS))
    session.record(WorkflowResult(
        name=f'Hover: "{text}"',
        steps=[
            WorkflowStep(action="hover", target=text),
            WorkflowStep(action="observe", expect=f"tooltip appears (seen: {tooltip})"),
        ],
        passed=outcome.js_errors == 0,
    ))
    return [f'Hovering "{text}" triggered JS error'] if outcome.js_errors else []


async def run_hover_workflows(session: ScanSession):
    page = session.page
    session.log("Testing hover / tooltip interactions...")
    issues: list[str] = []

    for text in (await read_page(page, HOVER_TARGETS_JS, default=[]) or [])[:MAX_HOVER_TARGETS]:
        try:
            issues.extend(await _check_hover(session, text))
        except Exception as e:
            session.log(f'Skipped hover target "{text}": {str(e)[:120]}')

    if issues:
        await session.ledger.commit(page, BugDraft(
            title=f"{len(issues)} hover interaction issue(s)",
            severity=Severity.LOW,
            category=Category.FUNCTIONAL,
            description="Hover interactions triggered errors.",
            steps=["Open target URL", "Hover over interactive elements"],
            evidence_label="hover-issues",
            details=issues,
        ))


async def run_keyboard_workflow(session: ScanSession):
    page = session.page
    session.log("Testing keyboard navigation...")
    errors_before = session.signals.error_count
    focused = []
    for _ in range(TAB_PRESSES):
        await session.engine.press("Tab", settle_ms=200)
        focused.append(await read_page(page, FOCUSED_JS))

    issues = keyboard_issues(focused, session.signals.error_count - errors_before)
    session.record(WorkflowResult(
        name="Keyboard Navigation",
        steps=[
            WorkflowStep(action="press", target=f"Tab x{TAB_PRESSES}"),
            WorkflowStep(action="observe", expect="focus moves through interactive elements"),
        ],
        passed=not issues,
        error="; ".join(issues) if issues else None,
    ))

    if issues:
        await session.ledger.commit(page, BugDraft(
            title=f"{len(issues)} keyboard navigation issue(s)",
            severity=Severity.MEDIUM,
            category=Category.ACCESSIBILITY,
            description="Keyboard-only navigation found focus management problems.",
            steps=["Open target URL", "Press Tab repeatedly"],
            evidence_label="keyboard-nav",
            details=issues[:15],
        ))


async def run_scroll_workflow(session: ScanSession):
    page = session.page
    engine = session.engine
    session.log("Testing scroll-based interactions...")
    errors_before = session.signals.error_count

    await engine.scroll("bottom", settle_ms=1_500)
    first_height = await read_page(page, SCROLL_HEIGHT_JS, default=0) or 0
    await engine.scroll("bottom", settle_ms=2_000)
    infinite = (await read_page(page, SCROLL_HEIGHT_JS, default=0) or 0) > first_height
    back_to_top = bool(await read_page(page, BACK_TO_TOP_JS))

    await engine.scroll("top", settle_ms=500)
    await engine.scroll("500", settle_ms=500)
    sticky = bool(await read_page(page, STICKY_HEADER_JS))
    await engine.scroll("top", settle_ms=300)

    issues = []
    js_errors = session.signals.error_count - errors_before
    if js_errors:
        issues.append(f"Scrolling triggered {js_errors} JS error(s)")

    session.record(WorkflowResult(
        name="Scroll Interactions",
        steps=[
            WorkflowStep(action="scroll", target="bottom"),
            WorkflowStep(action="observe",
                         expect=f"infinite scroll: {infinite}, back-to-top: {back_to_top}, sticky header: {sticky}"),
            WorkflowStep(action="scroll", target="top"),
        ],
        passed=not issues,
        error="; ".join(issues) if issues else None,
    ))

    if issues:
        await session.ledger.commit(page, BugDraft(
            title=f"{len(issues)} scroll interaction issue(s)",
            severity=Severity.MEDIUM,
            category=Category.FUNCTIONAL,
            description="Scroll-based interactions triggered problems.",
            steps=["Open target URL", "Scroll to bottom and back"],
            evidence_label="scroll-issues",
            details=issues,
        ))

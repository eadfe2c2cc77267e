"""Tab panels and dropdowns: clicking must toggle the expected UI state."""

from __future__ import annotations

from qflow.models.session import ScanSession
from qflow.models.types import BugDraft, Category, Severity, WorkflowResult, WorkflowStep
from qflow.utils.smart_wait import read_page


MAX_TABS = 8
MAX_DROPDOWNS = 8

TABS_JS = """() => {
    const results = [];
    const seen = new Set();
    document.querySelectorAll(
        '[role="tab"], [role="tablist"] > *, .tab, [class*="tab-item"], [class*="tab-btn"], ' +
        '[class*="TabItem"], [class*="TabBtn"], [data-tab], .nav-tab, .nav-pill'
    ).forEach(el => {
        const text = (el.textContent || '').trim().slice(0, 30);
        if (!text || seen.has(text)) return;
        seen.add(text);
        const rect = el.getBoundingClientRect();
        if (rect.width === 0 || rect.height === 0) return;
        results.push({
            text,
            active: el.classList.contains('active') ||
                el.getAttribute('aria-selected') === 'true' ||
                el.getAttribute('data-state') === 'active',
        });
    });
    return results;
}"""

# true / false when a matching tab exists, null when its state can't be read
TAB_ACTIVE_JS = """(txt) => {
    for (const el of document.querySelectorAll('[role="tab"], [class*="tab"]')) {
        if ((el.textContent || '').trim().startsWith(txt)) {
            return el.classList.contains('active') ||
                el.getAttribute('aria-selected') === 'true' ||
                el.getAttribute('data-state') === 'active';
        }
    }
    return null;
}"""

DROPDOWNS_JS = """() => {
    const results = [];
    const seen = new Set();
    document.querySelectorAll(
        'select, [role="listbox"], [role="combobox"], [role="menu"], ' +
        '[class*="dropdown"], [class*="select"], [class*="Dropdown"], [class*="Select"], ' +
        '[aria-haspopup="listbox"], [aria-haspopup="menu"], [aria-haspopup="true"]'
    ).forEach(el => {
        const text = (el.textContent || '').trim().slice(0, 40);
        if (!text || seen.has(text)) return;
        seen.add(text);
        const rect = el.getBoundingClientRect();
        if (rect.width === 0 || rect.height === 0) return;
        results.push({ text, has_popup: el.tagName === 'SELECT' || !!el.getAttribute('aria-haspopup') });
    });
    return results;
}"""

MENU_OPEN_JS = """() => {
    const menus = document.querySelectorAll(
        '[role="listbox"], [role="menu"], [class*="dropdown-menu"], [class*="options"], ' +
        '[class*="menu-list"], [data-state="open"], [class*="DropdownMenu"], [class*="SelectMenu"]');
    for (const m of menus) {
        const cs = getComputedStyle(m);
        if (cs.display !== 'none' && cs.visibility !== 'hidden') return true;
    }
    return false;
}"""


def tab_verdict(text: str, became_active: bool | None, js_errors: int) -> list[str]:
    """Issues for one tab click. None (state undeterminable) is not a failure."""
    issues = []
    if became_active is False:
        issues.append(f'Tab "{text}" did not become active after click')
    if js_errors:
        issues.append(f'Tab "{text}" triggered {js_errors} JS error(s)')
    return issues


def dropdown_verdict(text: str, has_popup: bool, menu_opened: bool, js_errors: int) -> list[str]:
    label = text[:30]
    issues = []
    if has_popup and not menu_opened:
        issues.append(f'Dropdown "{label}" did not open on click')
    if js_errors:
        issues.append(f'Dropdown "{label}" triggered JS error')
    return issues


async def _check_tab(session: ScanSession, tab: dict) -> list[str]:
    outcome = await session.engine.click(text=tab["text"], timeout_ms=2_000, settle_ms=800)
    if not outcome.ok:
        return []
    became_active = await session.page.evaluate(TAB_ACTIVE_JS, tab["text"])
    found = tab_verdict(tab["text"], became_active, outcome.js_errors)
    session.record(WorkflowResult(
        name=f'Tab switch: "{tab["text"]}"',
        steps=[
            WorkflowStep(action="click", target=tab["text"]),
            WorkflowStep(action="observe", expect="tab content changes"),
        ],
        passed=not found,
        error="; ".join(found) if found else None,
    ))
    return found


async def _check_dropdown(session: ScanSession, dd: dict) -> list[str]:
    label = dd["text"][:30]
    outcome = await session.engine.click(text=dd["text"], timeout_ms=2_000, settle_ms=600)
    if not outcome.ok:
        return []
    opened = bool(await session.page.evaluate(MENU_OPEN_JS))
    found = dropdown_verdict(dd["text"], dd.get("has_popup", False), opened, outcome.js_errors)
    await session.engine.press("Escape", settle_ms=300)
    session.record(WorkflowResult(
        name=f'Dropdown: "{label}"',
        steps=[
            WorkflowStep(action="click", target=label),
            WorkflowStep(action="observe", expect="dropdown opens"),
        ],
        passed=not found,
        error="; ".join(found) if found else None,
    ))
    return found


async def run_tab_workflows(session: ScanSession):
    page = session.page
    session.log("Testing dropdowns and tab panels...")
    issues: list[str] = []

    tabs = (await read_page(page, TABS_JS, default=[]) or [])[:MAX_TABS]
    for tab in tabs:
        if tab.get("active"):
            continue
        try:
            issues.extend(await _check_tab(session, tab))
        except Exception as e:
            session.log(f'Skipped tab "{tab["text"]}": {str(e)[:120]}')

    dropdowns = (await read_page(page, DROPDOWNS_JS, default=[]) or [])[:MAX_DROPDOWNS]
    for dd in dropdowns:
        try:
            issues.extend(await _check_dropdown(session, dd))
        except Exception as e:
            session.log(f'Skipped dropdown "{dd["text"][:30]}": {str(e)[:120]}')

    if issues:
        await session.ledger.commit(page, BugDraft(
            title=f"{len(issues)} dropdown/tab issue(s)",
            severity=Severity.MEDIUM,
            category=Category.FUNCTIONAL,
            description="Tab panel or dropdown interactions failed or triggered errors.",
            steps=["Open target URL", "Click tabs and dropdowns"],
            evidence_label="dropdown-tab-issues",
            details=issues,
        ))

"""Modal/dialog workflows and the wallet / sign-in connect flow."""

from __future__ import annotations

from qflow.core.ledger import slug, take_screenshot
from qflow.models.session import ScanSession
from qflow.models.types import BugDraft, Category, Severity, WorkflowResult, WorkflowStep
from qflow.utils.smart_wait import read_page


MAX_MODAL_TRIGGERS = 8
MAX_CONNECT_TRIGGERS = 4

MODAL_KEYWORDS = ("connect", "wallet", "settings", "menu", "open", "sign", "login",
                  "select", "choose", "filter", "more", "detail")
CONNECT_KEYWORDS = ("connect", "wallet", "sign in", "login", "authenticate",
                    "phantom", "solflare", "metamask")

TRIGGERS_JS = """(keywords) => {
    const triggers = [];
    const seen = new Set();
    document.querySelectorAll(
        'button, [role="button"], a[href="#"], [data-toggle="modal"], [data-bs-toggle="modal"], ' +
        '[class*="modal"], [class*="dialog"], [class*="popup"], [class*="connect"], [class*="wallet"]'
    ).forEach(el => {
        const text = (el.textContent || '').trim().slice(0, 50);
        if (!text || seen.has(text)) return;
        const rect = el.getBoundingClientRect();
        if (rect.width === 0 || rect.height === 0) return;
        seen.add(text);
        const lower = text.toLowerCase();
        if (keywords.some(k => lower.includes(k)) || el.getAttribute('data-toggle') ||
            el.getAttribute('data-bs-toggle') || el.getAttribute('aria-haspopup')) {
            triggers.push(text);
        }
    });
    return triggers;
}"""

DIALOG_SELECTORS = [
    '[role="dialog"]', '[role="alertdialog"]',
    ".modal.show", '.modal[style*="display: block"]',
    '[class*="modal"][class*="open"]', '[class*="modal"][class*="active"]',
    '[class*="overlay"][class*="open"]', '[class*="overlay"][class*="active"]',
    '[class*="popup"][class*="open"]', '[class*="popup"][class*="visible"]',
    '[class*="dialog"][class*="open"]', ".ReactModal__Content",
    '[data-state="open"]', '[aria-modal="true"]',
]

DIALOG_JS = """(selectors) => {
    for (const sel of selectors) {
        const el = document.querySelector(sel);
        if (!el) continue;
        return {
            found: true,
            selector: sel,
            has_close: !!el.querySelector(
                'button[aria-label="Close"], button[class*="close"], .close, [class*="dismiss"]'),
            text: (el.textContent || '').trim().slice(0, 100),
        };
    }
    return { found: false, selector: '', has_close: false, text: '' };
}"""

STILL_OPEN_JS = "(sel) => !!document.querySelector(sel)"

CLICK_CLOSE_JS = """() => {
    const btn = document.querySelector(
        '[role="dialog"] button[aria-label="Close"], .modal button.close, [class*="close"]');
    if (btn) { btn.click(); return true; }
    return false;
}"""

CONNECT_TRIGGERS_JS = """(keywords) => {
    const found = [];
    document.querySelectorAll('button, [role="button"], a').forEach(btn => {
        const text = (btn.textContent || '').trim();
        if (!keywords.some(k => text.toLowerCase().includes(k))) return;
        const rect = btn.getBoundingClientRect();
        if (rect.width > 0 && rect.height > 0) found.push(text.slice(0, 50));
    });
    return found;
}"""

CONNECT_PANEL_JS = """() => {
    const indicators = ['[class*="wallet"]', '[class*="Wallet"]', '[class*="adapter"]',
                        '[class*="Adapter"]', '[class*="connect"]', '[class*="Connect"]',
                        '[role="dialog"]', '.modal'];
    for (const sel of indicators) {
        const el = document.querySelector(sel);
        if (!el) continue;
        const rect = el.getBoundingClientRect();
        if (rect.width > 50 && rect.height > 50) {
            return {
                found: true,
                has_options: !!el.querySelector('li, button, [class*="option"], [class*="item"]'),
            };
        }
    }
    return { found: false, has_options: false };
}"""


def modal_issues(trigger: str, info: dict, dismissed: bool, js_errors: int) -> list[str]:
    """Verdict for one opened modal."""
    issues = []
    if not info.get("has_close"):
        issues.append(f'Modal opened by "{trigger}" has no visible close button')
    if len((info.get("text") or "").strip()) < 5:
        issues.append(f'Modal opened by "{trigger}" appears empty')
    if not dismissed:
        issues.append(f'Modal opened by "{trigger}" cannot be dismissed with Escape key')
    if js_errors:
        issues.append(f'Modal "{trigger}" triggered {js_errors} JS error(s)')
    return issues


def connect_issues(trigger: str, panel: dict, js_errors: int) -> list[str]:
    issues = []
    if panel.get("found") and not panel.get("has_options"):
        issues.append(f'"{trigger}" opened but shows no wallet options')
    if js_errors:
        issues.append(f'"{trigger}" triggered {js_errors} JS error(s)')
    return issues


async def _dismiss(session: ScanSession, selector: str) -> bool:
    """Escape first, then one close-button click."""
    page = session.page
    await session.engine.press("Escape", settle_ms=600)
    if not await page.evaluate(STILL_OPEN_JS, selector):
        return True
    closed = await page.evaluate(CLICK_CLOSE_JS)
    await page.wait_for_timeout(500)
    return bool(closed)


async def _check_modal(session: ScanSession, trigger: str) -> list[str]:
    page = session.page
    errors_before = session.signals.error_count
    clicked = await session.engine.click(text=trigger, timeout_ms=3_000, settle_ms=1_200)
    if not clicked.ok:
        return []

    info = await page.evaluate(DIALOG_JS, DIALOG_SELECTORS)
    if not info.get("found"):
        return []
    await take_screenshot(page, session.ctx, f"modal-{slug(trigger)}", full_page=False)
    dismissed = await _dismiss(session, info["selector"])
    found = modal_issues(trigger, info, dismissed, session.signals.error_count - errors_before)
    session.record(WorkflowResult(
        name=f'Modal: "{trigger}"',
        steps=[
            WorkflowStep(action="click", target=trigger),
            WorkflowStep(action="observe", expect="modal opens"),
            WorkflowStep(action="press", target="Escape"),
            WorkflowStep(action="observe", expect="modal closes"),
        ],
        passed=not found,
        error="; ".join(found) if found else None,
    ))
    return found


async def run_modal_workflows(session: ScanSession):
    page = session.page
    session.log("Testing modals and dialogs...")
    triggers = (await read_page(page, TRIGGERS_JS, list(MODAL_KEYWORDS), default=[]) or [])[:MAX_MODAL_TRIGGERS]
    issues: list[str] = []

    for trigger in triggers:
        try:
            issues.extend(await _check_modal(session, trigger))
        except Exception as e:
            session.log(f'Skipped modal trigger "{trigger}": {str(e)[:120]}')
        await session.engine.press("Escape", settle_ms=300)

    if issues:
        await session.ledger.commit(page, BugDraft(
            title=f"{len(issues)} modal/dialog issue(s)",
            severity=Severity.MEDIUM,
            category=Category.FUNCTIONAL,
            description="Modal and dialog interactions have usability problems.",
            steps=["Open target URL", "Click buttons that open modals", "Try to dismiss them"],
            evidence_label="modal-issues",
            details=issues,
        ))


async def _check_connect(session: ScanSession, trigger: str) -> list[str]:
    page = session.page
    errors_before = session.signals.error_count
    clicked = await session.engine.click(text=trigger, timeout_ms=3_000, settle_ms=1_500)
    if not clicked.ok:
        return []
    await take_screenshot(page, session.ctx, f"wallet-{slug(trigger)}", full_page=False)

    panel = await page.evaluate(CONNECT_PANEL_JS)
    found = connect_issues(trigger, panel, session.signals.error_count - errors_before)
    await session.engine.press("Escape", settle_ms=500)

    session.record(WorkflowResult(
        name=f'Wallet/Connect: "{trigger}"',
        steps=[
            WorkflowStep(action="click", target=trigger),
            WorkflowStep(action="observe", expect="wallet modal or prompt appears"),
            WorkflowStep(action="press", target="Escape"),
        ],
        passed=not found,
        error="; ".join(found) if found else None,
    ))
    return found


async def run_connect_flow(session: ScanSession):
    page = session.page
    session.log("Testing wallet connection flows...")
    triggers = (await read_page(page, CONNECT_TRIGGERS_JS, list(CONNECT_KEYWORDS), default=[])
                or [])[:MAX_CONNECT_TRIGGERS]
    issues: list[str] = []

    for trigger in triggers:
        try:
            issues.extend(await _check_connect(session, trigger))
        except Exception as e:
            session.log(f'Skipped connect trigger "{trigger}": {str(e)[:120]}')

    if issues:
        await session.ledger.commit(page, BugDraft(
            title=f"{len(issues)} wallet/connect flow issue(s)",
            severity=Severity.HIGH,
            category=Category.FUNCTIONAL,
            description="Wallet connection workflow encountered errors or UX problems.",
            steps=["Open target URL", "Click Connect Wallet / Sign In"],
            evidence_label="wallet-flow",
            details=issues,
        ))

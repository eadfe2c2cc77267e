"""Static checks on buttons, links and form controls."""

from __future__ import annotations

from qflow.config import SeverityPolicy
from qflow.models.session import ScanSession
from qflow.models.types import BugDraft, BugEntry, Category, Severity


_INTERACTIVE_JS = """() => {
    const dead = new Set(['#', 'javascript:void(0)', 'javascript:;', '']);
    let disabled = 0, deadLinks = 0, emptySelects = 0, tiny = 0;
    document.querySelectorAll('button, [role="button"]').forEach(b => { if (b.disabled) disabled++; });
    document.querySelectorAll('a[href]').forEach(a => {
        if (dead.has(a.getAttribute('href') || '')) deadLinks++;
    });
    document.querySelectorAll('select').forEach(s => { if (s.options.length === 0) emptySelects++; });
    document.querySelectorAll('a, button, [role="button"], input[type="checkbox"], input[type="radio"]')
        .forEach(el => {
            const r = el.getBoundingClientRect();
            if (r.width > 0 && r.height > 0 && (r.width < 24 || r.height < 24)) tiny++;
        });
    return {
        disabled_buttons: disabled,
        dead_links: deadLinks,
        untyped_inputs: document.querySelectorAll('input:not([type])').length,
        empty_selects: emptySelects,
        tiny_targets: tiny,
    };
}"""


class InteractiveDetector:

    def __init__(self, policy: SeverityPolicy | None = None):
        self.policy = policy or SeverityPolicy()

    def issues(self, snap: dict) -> list[str]:
        issues = []
        if snap.get("disabled_buttons"):
            issues.append(f"{snap['disabled_buttons']} disabled button(s) on the page")
        if snap.get("dead_links"):
            issues.append(f"{snap['dead_links']} link(s) with dead href (# or javascript:void)")
        if snap.get("untyped_inputs"):
            issues.append(f"{snap['untyped_inputs']} <input> element(s) without type attribute")
        if snap.get("empty_selects"):
            issues.append(f"{snap['empty_selects']} <select> element(s) with no options")
        if snap.get("tiny_targets", 0) > self.policy.touch_targets_min:
            issues.append(
                f"{snap['tiny_targets']} interactive element(s) smaller than 24x24px (poor touch target)")
        return issues

    def analyze(self, snap: dict) -> BugDraft | None:
        issues = self.issues(snap)
        if not issues:
            return None
        high = len(issues) > self.policy.interactive_high_over
        return BugDraft(
            title=f"{len(issues)} interactive/functional issue(s)",
            severity=Severity.HIGH if high else Severity.MEDIUM,
            category=Category.FUNCTIONAL,
            description="Interactive elements have usability or functional concerns.",
            steps=["Open target URL", "Inspect buttons, links, and form controls"],
            evidence_label="interactive",
            details=issues,
        )

    async def detect(self, session: ScanSession) -> BugEntry | None:
        draft = self.analyze(await session.page.evaluate(_INTERACTIVE_JS))
        if draft is None:
            return None
        return await session.ledger.commit(session.page, draft)

"""Accessibility audit based on DOM queries (no axe-core)."""

from __future__ import annotations

from qflow.config import SeverityPolicy
from qflow.models.session import ScanSession
from qflow.models.types import BugDraft, BugEntry, Category, Severity


_A11Y_JS = """() => {
    let missingAlt = 0, emptyButtons = 0, emptyLinks = 0, unlabeled = 0,
        tinyText = 0, positiveTabindex = 0;

    document.querySelectorAll('img').forEach(img => {
        if (!img.hasAttribute('alt')) missingAlt++;
    });
    document.querySelectorAll('button').forEach(btn => {
        const text = (btn.textContent || '').trim() || btn.getAttribute('aria-label') || '';
        if (!text) emptyButtons++;
    });
    document.querySelectorAll('a').forEach(a => {
        const text = (a.textContent || '').trim() || a.getAttribute('aria-label') || '';
        if (!text && !a.querySelector('img')) emptyLinks++;
    });
    document.querySelectorAll('input, select, textarea').forEach(el => {
        if (el.type === 'hidden') return;
        const byFor = el.id && document.querySelector(`label[for="${el.id}"]`);
        const byAria = el.getAttribute('aria-label') || el.getAttribute('aria-labelledby');
        if (!byFor && !byAria && !el.closest('label')) unlabeled++;
    });
    document.querySelectorAll('body *').forEach(el => {
        const fs = parseFloat(getComputedStyle(el).fontSize);
        if (fs > 0 && fs < 10 && (el.textContent || '').trim()) tinyText++;
    });
    document.querySelectorAll('[tabindex]').forEach(el => {
        if (parseInt(el.getAttribute('tabindex') || '0', 10) > 0) positiveTabindex++;
    });

    return {
        missing_alt: missingAlt,
        empty_buttons: emptyButtons,
        empty_links: emptyLinks,
        unlabeled_inputs: unlabeled,
        heading_levels: Array.from(document.querySelectorAll('h1,h2,h3,h4,h5,h6'))
            .map(h => parseInt(h.tagName[1], 10)),
        tiny_text: tinyText,
        positive_tabindex: positiveTabindex,
    };
}"""


class AccessibilityDetector:

    def __init__(self, policy: SeverityPolicy | None = None):
        self.policy = policy or SeverityPolicy()

    def issues(self, snap: dict) -> list[str]:
        issues = []
        if snap.get("missing_alt"):
            issues.append(f"{snap['missing_alt']} <img> element(s) missing alt attribute")
        if snap.get("empty_buttons"):
            issues.append(f"{snap['empty_buttons']} <button>(s) without accessible label")
        if snap.get("empty_links"):
            issues.append(f"{snap['empty_links']} <a> link(s) without accessible text")
        if snap.get("unlabeled_inputs"):
            issues.append(f"{snap['unlabeled_inputs']} form input(s) without associated label")

        levels = snap.get("heading_levels") or []
        if levels and levels[0] != 1:
            issues.append(f"First heading is <h{levels[0]}> instead of <h1>")
        # only the first skip is reported
        for prev, cur in zip(levels, levels[1:]):
            if cur - prev > 1:
                issues.append(f"Heading level jumps from <h{prev}> to <h{cur}>")
                break

        tiny = snap.get("tiny_text", 0)
        if tiny > self.policy.tiny_text_min:
            issues.append(f"{tiny} elements with font-size < 10px (potential readability issue)")
        if snap.get("positive_tabindex"):
            issues.append(f"{snap['positive_tabindex']} element(s) with positive tabindex (anti-pattern)")
        return issues

    def analyze(self, snap: dict) -> BugDraft | None:
        issues = self.issues(snap)
        if not issues:
            return None
        high = len(issues) > self.policy.accessibility_high_over
        return BugDraft(
            title=f"{len(issues)} accessibility issue(s)",
            severity=Severity.HIGH if high else Severity.MEDIUM,
            category=Category.ACCESSIBILITY,
            description="Automated accessibility scan found potential WCAG violations.",
            steps=["Open target URL", "Run accessibility audit"],
            evidence_label="accessibility",
            details=issues,
        )

    async def detect(self, session: ScanSession) -> BugEntry | None:
        draft = self.analyze(await session.page.evaluate(_A11Y_JS))
        if draft is None:
            return None
        return await session.ledger.commit(session.page, draft)

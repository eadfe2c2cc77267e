"""Overflow, truncation, occlusion and empty-container checks at the desktop viewport."""

from __future__ import annotations

from qflow.config import SeverityPolicy
from qflow.models.session import ScanSession
from qflow.models.types import BugDraft, BugEntry, Category, Severity


_LAYOUT_JS = """() => {
    const vw = document.documentElement.clientWidth;
    let overflow = 0, truncated = 0, occluded = 0, empty = 0;

    document.querySelectorAll('body *').forEach(el => {
        const rect = el.getBoundingClientRect();
        if (rect.width > 0 && rect.right > vw + 10) overflow++;
        const cs = getComputedStyle(el);
        if (cs.overflow === 'hidden' && cs.textOverflow === 'ellipsis' &&
            el.scrollWidth > el.clientWidth) truncated++;
    });

    const interactive = Array.from(
        document.querySelectorAll('button, a, input, select, [role="button"]')).slice(0, 50);
    for (const el of interactive) {
        const rect = el.getBoundingClientRect();
        if (rect.width === 0 || rect.height === 0) continue;
        const cx = rect.left + rect.width / 2;
        const cy = rect.top + rect.height / 2;
        if (cx < 0 || cy < 0 || cx > vw) continue;
        const top = document.elementFromPoint(cx, cy);
        if (top && top !== el && !el.contains(top) && !top.contains(el)) occluded++;
    }

    document.querySelectorAll('div, section, main, article').forEach(el => {
        const rect = el.getBoundingClientRect();
        if (rect.height > 50 && rect.width > 100 &&
            !(el.textContent || '').trim() && el.children.length === 0) empty++;
    });

    return {
        viewport_width: vw,
        scroll_width: document.documentElement.scrollWidth,
        overflow_elements: overflow,
        truncated: truncated,
        occluded: occluded,
        empty_containers: empty,
    };
}"""


class LayoutDetector:

    def __init__(self, policy: SeverityPolicy | None = None):
        self.policy = policy or SeverityPolicy()

    def issues(self, snap: dict) -> list[str]:
        issues = []
        vw = snap.get("viewport_width", 0)
        sw = snap.get("scroll_width", 0)
        if sw > vw + 5:
            issues.append(f"Page is {sw - vw}px wider than viewport, causing horizontal scroll")
        if snap.get("overflow_elements"):
            issues.append(f"{snap['overflow_elements']} element(s) overflow the viewport horizontally")
        if snap.get("truncated", 0) > self.policy.truncated_text_min:
            issues.append(f"{snap['truncated']} element(s) show truncated text (ellipsis)")
        if snap.get("occluded"):
            issues.append(f"{snap['occluded']} interactive element(s) may be obscured by overlapping elements")
        if snap.get("empty_containers"):
            issues.append(f"{snap['empty_containers']} visible empty container(s) detected")
        return issues

    def analyze(self, snap: dict) -> BugDraft | None:
        issues = self.issues(snap)
        if not issues:
            return None
        return BugDraft(
            title=f"{len(issues)} layout/visual issue(s)",
            severity=Severity.MEDIUM,
            category=Category.LAYOUT,
            description="Visual inspection found layout irregularities.",
            steps=["Open target URL", "Inspect page layout"],
            evidence_label="layout",
            details=issues,
        )

    async def detect(self, session: ScanSession) -> BugEntry | None:
        draft = self.analyze(await session.page.evaluate(_LAYOUT_JS))
        if draft is None:
            return None
        return await session.ledger.commit(session.page, draft)

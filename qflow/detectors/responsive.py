"""Mobile viewport layout checks, run on a separate page."""

from __future__ import annotations

from qflow.config import SeverityPolicy
from qflow.core.ledger import take_screenshot
from qflow.models.session import ScanSession
from qflow.models.types import BugDraft, BugEntry, Category, Severity


MOBILE_VIEWPORT = {"width": 375, "height": 812}

_MOBILE_JS = """(vw) => {
    let tinyText = 0, overflow = 0;
    document.querySelectorAll('p, span, a, li, td, th, label').forEach(el => {
        const fs = parseFloat(getComputedStyle(el).fontSize);
        if (fs > 0 && fs < 12 && (el.textContent || '').trim()) tinyText++;
    });
    document.querySelectorAll('body *').forEach(el => {
        const rect = el.getBoundingClientRect();
        if (rect.width > 0 && rect.right > vw + 5) overflow++;
    });
    return {
        viewport_width: vw,
        scroll_width: document.documentElement.scrollWidth,
        tiny_text: tinyText,
        overflow_elements: overflow,
    };
}"""


class ResponsiveDetector:

    def __init__(self, policy: SeverityPolicy | None = None):
        self.policy = policy or SeverityPolicy()

    def issues(self, snap: dict) -> list[str]:
        issues = []
        vw = snap.get("viewport_width", MOBILE_VIEWPORT["width"])
        if snap.get("scroll_width", 0) > vw + 10:
            issues.append(
                f"Mobile: page is {snap['scroll_width']}px wide on {vw}px viewport, causing horizontal scroll")
        if snap.get("tiny_text", 0) > self.policy.mobile_tiny_text_min:
            issues.append(f"Mobile: {snap['tiny_text']} text element(s) with font-size < 12px")
        if snap.get("overflow_elements"):
            issues.append(f"Mobile: {snap['overflow_elements']} element(s) overflow the viewport")
        return issues

    def analyze(self, snap: dict) -> BugDraft | None:
        issues = self.issues(snap)
        if not issues:
            return None
        return BugDraft(
            title=f"{len(issues)} responsive design issue(s)",
            severity=Severity.MEDIUM,
            category=Category.LAYOUT,
            description=f"Page has layout problems at mobile viewport ({MOBILE_VIEWPORT['width']}px).",
            steps=[f"Open target URL on a {MOBILE_VIEWPORT['width']}px-wide viewport"],
            evidence_label="responsive-mobile",
            details=issues,
        )

    async def detect(self, session: ScanSession) -> BugEntry | None:
        """Best-effort: any failure on the mobile page is logged and skipped."""
        mobile = await session.page.context.new_page()
        try:
            await mobile.set_viewport_size(MOBILE_VIEWPORT)
            await mobile.goto(session.base_url, wait_until="domcontentloaded",
                              timeout=session.settings.nav_timeout_ms)
            await mobile.wait_for_timeout(3_000)
            draft = self.analyze(await mobile.evaluate(_MOBILE_JS, MOBILE_VIEWPORT["width"]))
            if draft is None:
                return None
            label = f"{session.ledger.next_id()}-{draft.evidence_label}"
            shot = await take_screenshot(mobile, session.ctx, label, full_page=True)
            return session.ledger.record(draft, shot)
        except Exception as e:
            session.log(f"Mobile viewport check skipped: {str(e)[:120]}")
            return None
        finally:
            await mobile.close()

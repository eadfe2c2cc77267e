"""Broken links and broken images."""

from __future__ import annotations

from qflow.config import SeverityPolicy
from qflow.models.session import ScanSession
from qflow.models.types import BugDraft, BugEntry, Category, Severity


MAX_LINKS = 30
LINK_TIMEOUT_MS = 8_000

_LINKS_JS = """() => Array.from(document.querySelectorAll('a[href]'))
    .map(a => a.href)
    .filter(h => h.startsWith('http'))"""

_BROKEN_IMAGES_JS = """() => {
    const broken = [];
    document.querySelectorAll('img').forEach(img => {
        if (!img.complete || img.naturalWidth === 0) {
            broken.push(img.src || img.getAttribute('data-src') || '(unknown src)');
        }
    });
    return broken;
}"""


def unique_links(hrefs: list[str], limit: int = MAX_LINKS) -> list[str]:
    """Absolute http(s) links, de-duplicated in document order, capped at `limit`."""
    seen: dict[str, None] = {}
    for href in hrefs:
        if href.startswith("http"):
            seen.setdefault(href, None)
    return list(seen)[:limit]


def link_failure(url: str, status: int | None) -> str | None:
    """Issue string for a probed link; status None means the probe raised."""
    if status is None:
        return f"{url} -> timeout/network error"
    if status >= 400:
        return f"{url} -> {status}"
    return None


class ContentDetector:

    def __init__(self, policy: SeverityPolicy | None = None):
        self.policy = policy or SeverityPolicy()

    def analyze_links(self, broken: list[str]) -> BugDraft | None:
        if not broken:
            return None
        high = len(broken) > self.policy.broken_links_high_over
        return BugDraft(
            title=f"{len(broken)} broken / unreachable link(s)",
            severity=Severity.HIGH if high else Severity.MEDIUM,
            category=Category.CONTENT,
            description="Links on the page point to unreachable or error-returning URLs.",
            steps=["Open target URL", "Click links"],
            evidence_label="broken-links",
            details=broken[:20],
        )

    def analyze_images(self, broken_srcs: list[str]) -> BugDraft | None:
        if not broken_srcs:
            return None
        return BugDraft(
            title=f"{len(broken_srcs)} broken image(s)",
            severity=Severity.MEDIUM,
            category=Category.CONTENT,
            description="Image elements failed to load or have zero natural dimensions.",
            steps=["Open target URL", "Scroll through page"],
            evidence_label="broken-images",
            details=broken_srcs[:15],
        )

    async def probe_links(self, session: ScanSession) -> list[str]:
        page = session.page
        broken = []
        for url in unique_links(await page.evaluate(_LINKS_JS)):
            try:
                resp = await page.request.head(url, timeout=LINK_TIMEOUT_MS)
                status = resp.status
            except Exception:
                status = None
            issue = link_failure(url, status)
            if issue:
                broken.append(issue)
        return broken

    async def detect_links(self, session: ScanSession) -> BugEntry | None:
        draft = self.analyze_links(await self.probe_links(session))
        if draft is None:
            return None
        return await session.ledger.commit(session.page, draft)

    async def detect_images(self, session: ScanSession) -> BugEntry | None:
        draft = self.analyze_images(await session.page.evaluate(_BROKEN_IMAGES_JS))
        if draft is None:
            return None
        return await session.ledger.commit(session.page, draft)

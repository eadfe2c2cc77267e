"""SEO and <head> metadata checks."""

from __future__ import annotations

from qflow.models.session import ScanSession
from qflow.models.types import BugDraft, BugEntry, Category, Severity


_HEAD_JS = """() => {
    const meta = (name) =>
        (document.querySelector(`meta[name="${name}"]`)?.content || '').trim();
    const og = (prop) =>
        (document.querySelector(`meta[property="${prop}"]`)?.content || '').trim();
    return {
        description: meta('description'),
        viewport: meta('viewport'),
        og_title: og('og:title'),
        og_image: og('og:image'),
        lang: (document.documentElement.lang || '').trim(),
        favicon: !!(document.querySelector('link[rel="icon"]') ||
                    document.querySelector('link[rel="shortcut icon"]')),
    };
}"""


class SEODetector:
    """One bug per missing head element; no aggregation."""

    def analyze(self, snapshot: dict) -> list[BugDraft]:
        drafts = []
        if not (snapshot.get("title") or "").strip():
            drafts.append(BugDraft(
                title="Missing page title",
                severity=Severity.MEDIUM,
                category=Category.SEO,
                description="The page has no <title> or it is empty. This hurts SEO and browser tab UX.",
                steps=["Open target URL", "Inspect <head>"],
                evidence_label="missing-title",
            ))
        if not snapshot.get("description"):
            drafts.append(BugDraft(
                title="Missing meta description",
                severity=Severity.LOW,
                category=Category.SEO,
                description='No <meta name="description"> found; search engines will build their own snippet.',
                steps=["Inspect <head>"],
                evidence_label="missing-description",
            ))
        if not snapshot.get("viewport"):
            drafts.append(BugDraft(
                title="Missing viewport meta tag",
                severity=Severity.MEDIUM,
                category=Category.SEO,
                description="Without a viewport meta tag the page may not render correctly on mobile.",
                steps=["Inspect <head>"],
                evidence_label="missing-viewport",
            ))
        if not snapshot.get("lang"):
            drafts.append(BugDraft(
                title="Missing lang attribute on <html>",
                severity=Severity.LOW,
                category=Category.ACCESSIBILITY,
                description="Screen readers need a lang attribute to choose the right pronunciation.",
                steps=["Inspect <html> element"],
                evidence_label="missing-lang",
            ))
        if not snapshot.get("favicon"):
            drafts.append(BugDraft(
                title="Missing favicon",
                severity=Severity.LOW,
                category=Category.UX,
                description="No favicon link detected; the browser will show a generic icon.",
                steps=["Check browser tab icon"],
                evidence_label="missing-favicon",
            ))
        if not snapshot.get("og_title") and not snapshot.get("og_image"):
            drafts.append(BugDraft(
                title="Missing Open Graph tags",
                severity=Severity.LOW,
                category=Category.SEO,
                description="No og:title or og:image found, so shared links get poor previews.",
                steps=["Inspect <head> for og: meta tags"],
                evidence_label="missing-og",
            ))
        return drafts

    async def detect(self, session: ScanSession) -> list[BugEntry]:
        page = session.page
        snapshot = await page.evaluate(_HEAD_JS)
        snapshot["title"] = await page.title()
        return await session.ledger.commit_all(page, self.analyze(snapshot))

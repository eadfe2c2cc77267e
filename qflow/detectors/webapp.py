"""Rendered-content checks for single-page apps: error text, blank screens, stuck loaders."""

from __future__ import annotations

from qflow.models.session import ScanSession
from qflow.models.types import BugDraft, BugEntry, Category, Severity


ERROR_PHRASES = [
    "something went wrong",
    "error occurred",
    "page not found",
    "internal server error",
    "undefined is not",
    "cannot read properties",
    "null reference",
    "loading failed",
    "network error",
    "connection refused",
    "oops",
    "sorry, something",
    "unexpected error",
    "an error has occurred",
    "failed to fetch",
    "module not found",
    "chunk load error",
]

MIN_BODY_TEXT = 20

_WEBAPP_JS = """() => {
    const main = document.querySelector('main') ||
        document.querySelector('[role="main"]') ||
        document.querySelector('#root > div') ||
        document.querySelector('#app > div') ||
        document.querySelector('#__next > div');
    let spinners = 0;
    for (const sel of ['.spinner', '.loading', '.loader', '[class*="spin"]',
                       '[class*="load"]', '[class*="skeleton"]']) {
        document.querySelectorAll(sel).forEach(el => {
            const cs = getComputedStyle(el);
            if (cs.display !== 'none' && cs.visibility !== 'hidden') spinners++;
        });
    }
    return {
        body_text: (document.body ? document.body.innerText : '').slice(0, 50000),
        main: main ? {
            height: main.getBoundingClientRect().height,
            text_length: (main.textContent || '').trim().length,
        } : null,
        spinners: spinners,
        dev_overlay: !!(document.querySelector('nextjs-portal') ||
                        document.querySelector('[data-nextjs-toast]') ||
                        document.querySelector('#webpack-dev-server-client-overlay')),
    };
}"""


def error_text_matches(body_text: str) -> list[str]:
    """Snippets around each known error phrase found in the visible text."""
    text = body_text.lower()
    found = []
    for phrase in ERROR_PHRASES:
        idx = text.find(phrase)
        if idx < 0:
            continue
        context = text[max(0, idx - 40):idx + len(phrase) + 40].replace("\n", " ").strip()
        found.append(f'Error text in page: "...{context}..."')
    return found


def first_error_phrase(body_text: str) -> str | None:
    text = body_text.lower()
    return next((p for p in ERROR_PHRASES if p in text), None)


class WebAppDetector:

    def issues(self, snap: dict) -> list[str]:
        body = snap.get("body_text") or ""
        issues = error_text_matches(body)

        main = snap.get("main")
        if main and main.get("height", 0) < 50 and main.get("text_length", 0) < 10:
            issues.append("Main content area appears empty or collapsed")
        if snap.get("spinners"):
            issues.append(f"{snap['spinners']} loading/spinner element(s) still visible after page settle")
        if snap.get("dev_overlay"):
            issues.append("Development error overlay is visible")
        if len(body.strip()) < MIN_BODY_TEXT:
            issues.append("Page body has almost no visible text: possible blank screen or rendering failure")
        return issues

    def analyze(self, snap: dict) -> BugDraft | None:
        issues = self.issues(snap)
        if not issues:
            return None
        severe = any("Error text" in i or "blank screen" in i for i in issues)
        return BugDraft(
            title=f"{len(issues)} web-app content issue(s)",
            severity=Severity.HIGH if severe else Severity.MEDIUM,
            category=Category.FUNCTIONAL,
            description="Page content analysis detected error states or suspicious visual patterns.",
            steps=["Open target URL", "Observe page content"],
            evidence_label="webapp-issues",
            details=issues,
        )

    async def detect(self, session: ScanSession) -> BugEntry | None:
        draft = self.analyze(await session.page.evaluate(_WEBAPP_JS))
        if draft is None:
            return None
        return await session.ledger.commit(session.page, draft)

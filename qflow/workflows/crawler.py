"""Site crawler: visit internal pages linked from the landing page and sanity-check each."""

from __future__ import annotations

import os
from urllib.parse import urlparse

from qflow.core.ledger import slug, take_screenshot
from qflow.core.oracle import candidate_draft
from qflow.models.session import ScanSession
from qflow.models.types import BugDraft, Category, Severity, WorkflowResult, WorkflowStep
from qflow.utils.smart_wait import read_page, stabilize


MAX_PAGES = 12
MAX_ORACLE_PAGES = 5
PAGE_TIMEOUT_MS = 30_000
CRAWL_ERROR_PHRASES = ("something went wrong", "error", "404", "500", "not found", "oops")

_LINKS_JS = "() => Array.from(document.querySelectorAll('a[href]')).map(a => a.href)"
_BODY_TEXT_JS = "() => (document.body ? document.body.innerText : '').toLowerCase()"


def origin_of(url: str) -> str:
    parts = urlparse(url)
    return f"{parts.scheme}://{parts.netloc}"


def internal_links(hrefs: list[str], base_url: str, limit: int = MAX_PAGES) -> list[str]:
    """Same-origin page links, query stripped, de-duplicated, base URL excluded."""
    origin = origin_of(base_url)
    pages: dict[str, None] = {}
    for href in hrefs:
        if not href.startswith(origin):
            continue
        if "#" in href or "mailto:" in href or "javascript:" in href:
            continue
        pages.setdefault(href.split("?")[0], None)
    return [u for u in pages if u != base_url][:limit]


def page_issues(url: str, status: int, new_exceptions: int, new_console: int, body_text: str) -> list[str]:
    issues = []
    if status >= 400:
        issues.append(f"{url} -> HTTP {status}")
    if new_exceptions:
        issues.append(f"{url} -> {new_exceptions} JS error(s) on load")
    if new_console:
        issues.append(f"{url} -> {new_console} console error(s)")
    if len(body_text.strip()) < 20:
        issues.append(f"{url} -> blank or near-empty page")
    if any(p in body_text.lower() for p in CRAWL_ERROR_PHRASES):
        issues.append(f"{url} -> error message visible in page content")
    return issues


async def _inspect_with_oracle(session: ScanSession, url: str):
    rel = await take_screenshot(session.page, session.ctx, f"llm-crawl-{slug(url)}", full_page=False)
    candidates = await session.oracle.inspect_screenshot(
        os.path.join(session.ctx.output_root, rel), f"Page: {url}")
    for c in candidates:
        await session.ledger.commit(session.page, candidate_draft(
            c,
            prefix="[AI Visual]",
            default_category=Category.LAYOUT,
            steps=[f"Navigate to {url}", "Visual inspection"],
            evidence_label=f"llm-crawl-visual-{slug(url)}",
            context=f"On page {url}: ",
        ))


async def crawl_site(session: ScanSession) -> list[dict]:
    """Crawl up to MAX_PAGES internal pages; returns what was visited."""
    page = session.page
    session.log("Crawling site: discovering internal pages...")
    pages = internal_links(await read_page(page, _LINKS_JS, default=[]) or [], session.base_url)
    session.log(f"Found {len(pages)} internal page(s) to crawl")

    signals = session.signals
    issues: list[str] = []
    visited: list[dict] = []

    for url in pages:
        exc_before = len(signals.page_errors)
        console_before = len(signals.console_errors)
        try:
            resp = await page.goto(url, wait_until="domcontentloaded", timeout=PAGE_TIMEOUT_MS)
        except Exception:
            issues.append(f"{url} -> failed to load (timeout or crash)")
            continue
        await stabilize(page, 2_000)

        status = resp.status if resp else 0
        new_exc = len(signals.page_errors) - exc_before
        new_console = len(signals.console_errors) - console_before
        try:
            title = await page.title()
        except Exception:
            title = ""
        visited.append({
            "url": url,
            "title": title,
            "status": status,
            "errors": new_exc + new_console,
        })

        body = await read_page(page, _BODY_TEXT_JS, default="") or ""
        found = page_issues(url, status, new_exc, new_console, body)
        if found:
            await take_screenshot(page, session.ctx, f"crawl-{slug(url)}", True)
        issues.extend(found)

        if session.oracle and session.oracle.available and len(visited) <= MAX_ORACLE_PAGES:
            await _inspect_with_oracle(session, url)

    await session.return_to_base(settle_ms=1_500)

    if issues:
        high = len(issues) > session.settings.severity.crawl_high_over
        await session.ledger.commit(page, BugDraft(
            title=f"{len(issues)} issue(s) across {len(pages)} crawled pages",
            severity=Severity.HIGH if high else Severity.MEDIUM,
            category=Category.NAVIGATION,
            description=f"Site crawl visited {len(pages)} internal pages and found issues.",
            steps=["Open target URL", "Navigate through all internal links"],
            evidence_label="site-crawl",
            details=[f"Pages visited: {len(visited)}", *issues],
        ))

    session.record(WorkflowResult(
        name="Site Page Crawl",
        steps=[WorkflowStep(action="navigate", target=u) for u in pages],
        passed=not issues,
        error=f"{len(issues)} issue(s) found" if issues else None,
    ))
    return visited

"""Run orchestrator: launches the browser and drives every stage in order.

Detectors run against the landing page first, then the deterministic
workflows, then (when the oracle is available) the autonomous explorer,
and finally the runtime signals collected over the whole run are turned
into bugs. A failing stage is reported as a progress line and the run
continues with the next one.
"""

from __future__ import annotations

import os
from typing import Awaitable

from playwright.async_api import async_playwright

from qflow.config import TEXT_MODEL, VISION_MODEL, Settings
from qflow.core.actions import ActionEngine
from qflow.core.explorer import AutonomousExplorer
from qflow.core.ledger import BugLedger, take_screenshot
from qflow.core.oracle import GeminiOracle
from qflow.core.report import compile_report, print_summary, write_report
from qflow.detectors.accessibility import AccessibilityDetector
from qflow.detectors.clickthrough import ClickThroughDetector
from qflow.detectors.content import ContentDetector
from qflow.detectors.interactive import InteractiveDetector
from qflow.detectors.layout import LayoutDetector
from qflow.detectors.performance import PerformanceDetector
from qflow.detectors.responsive import ResponsiveDetector
from qflow.detectors.runtime import RuntimeDetector
from qflow.detectors.security import SecurityDetector
from qflow.detectors.seo import SEODetector
from qflow.detectors.webapp import WebAppDetector
from qflow.models.context import RuntimeSignals
from qflow.models.session import ProgressCallback, ScanSession
from qflow.models.types import BugDraft, Category, RunContext, Severity
from qflow.utils.smart_wait import scroll_for_lazy_content
from qflow.utils.throttle import CallThrottle
from qflow.workflows.crawler import crawl_site
from qflow.workflows.forms import run_form_workflows
from qflow.workflows.interactions import run_hover_workflows, run_keyboard_workflow, run_scroll_workflow
from qflow.workflows.modals import run_connect_flow, run_modal_workflows
from qflow.workflows.navigation import run_navigation_workflows
from qflow.workflows.tabs import run_tab_workflows


DEFAULT_SCOPE = "Full site QA"

BROWSER_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--single-process",
]

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


def navigation_draft(status: int | None, url: str, nav_timeout_ms: int,
                     error: Exception | None = None) -> BugDraft | None:
    """Bug for the initial navigation, or None when the page loaded fine."""
    if error is not None:
        return BugDraft(
            title="Navigation timeout",
            severity=Severity.CRITICAL,
            category=Category.NAVIGATION,
            description=f"Page did not load within {nav_timeout_ms // 1000}s.",
            steps=[f"Navigate to {url}"],
            evidence_label="nav-timeout",
            details=[str(error)[:300]],
        )
    if status is not None and status >= 400:
        return BugDraft(
            title=f"HTTP {status} on navigation",
            severity=Severity.CRITICAL if status >= 500 else Severity.HIGH,
            category=Category.NAVIGATION,
            description=f"Server returned status {status}.",
            steps=[f"Navigate to {url}"],
            evidence_label=f"http-{status}",
        )
    return None


def ai_engine_label(oracle_on: bool) -> str:
    return "Gemini 2.5 Flash + 2.5 Flash Lite" if oracle_on else "Disabled (no API key)"


class QFlowScanner:
    """One QA run against one URL."""

    def __init__(self, settings: Settings | None = None, on_progress: ProgressCallback | None = None):
        self.settings = settings or Settings.from_env()
        self._on_progress = on_progress
        self.session: ScanSession | None = None

    def _emit(self, event_type: str, data: dict):
        if not self._on_progress:
            return
        try:
            self._on_progress(event_type, data)
        except Exception:
            pass

    def _log(self, message: str):
        self._emit("log", {"message": message})

    def _oracle(self) -> GeminiOracle | None:
        s = self.settings
        if not s.oracle_available:
            return None
        return GeminiOracle(
            api_key=s.gemini_api_key,
            text_model=TEXT_MODEL,
            vision_model=VISION_MODEL,
            throttle=CallThrottle(s.llm_min_delay_ms / 1000),
            retry_backoff_s=s.llm_retry_backoff_ms / 1000,
            log=self._log,
        )

    async def _guarded(self, name: str, work: Awaitable):
        """Await one stage; a fault is logged and the run moves on."""
        try:
            return await work
        except Exception as e:
            self._log(f"{name} failed: {str(e)[:200]}")
            return None

    async def run(self, url: str, scope: str = DEFAULT_SCOPE) -> ScanSession:
        settings = self.settings
        ctx = RunContext.create(settings.output_dir)
        os.makedirs(ctx.screenshot_dir, exist_ok=True)
        oracle = self._oracle()

        self._log(f"Run {ctx.run_id}")
        self._log(f"Target: {url}")
        self._log(f"Scope: {scope}")
        self._log(f"AI engine: {ai_engine_label(oracle is not None)}")

        session: ScanSession | None = None
        async with async_playwright() as pw:
            browser = await pw.chromium.launch(headless=settings.headless, args=BROWSER_ARGS)
            try:
                context = await browser.new_context(
                    viewport=settings.viewport,
                    ignore_https_errors=True,
                    user_agent=USER_AGENT,
                )
                page = await context.new_page()
                signals = RuntimeSignals()
                signals.attach(page)

                session = ScanSession(
                    page=page,
                    ctx=ctx,
                    base_url=url,
                    ledger=BugLedger(ctx, on_progress=self._on_progress),
                    signals=signals,
                    engine=ActionEngine(page, signals),
                    settings=settings,
                    oracle=oracle,
                    on_progress=self._on_progress,
                )
                self.session = session
                await self._scan(session, scope)
            finally:
                await browser.close()

        if session is not None:
            print_summary(ctx, url, session.ledger.bugs, session.results, oracle is not None)
        return session

    async def _scan(self, session: ScanSession, scope: str):
        page = session.page
        settings = self.settings

        self._log(f"Navigating to {session.base_url}...")
        response = None
        try:
            response = await page.goto(session.base_url, wait_until="domcontentloaded",
                                       timeout=settings.nav_timeout_ms)
            draft = navigation_draft(response.status if response else None,
                                     session.base_url, settings.nav_timeout_ms)
        except Exception as e:
            draft = navigation_draft(None, session.base_url, settings.nav_timeout_ms, error=e)
        if draft:
            await session.ledger.commit(page, draft)

        await page.wait_for_timeout(settings.settle_ms)
        await self._guarded("Baseline screenshot", take_screenshot(page, session.ctx, "baseline", True))
        await self._guarded("Lazy content", scroll_for_lazy_content(page, settings.viewport["height"]))

        await self._run_detectors(session, response)
        await self._run_workflows(session)

        explorer = AutonomousExplorer(session)
        if explorer.enabled:
            self._log("Starting LLM-powered autonomous exploration...")
            await session.return_to_base(settle_ms=3_000)
            await self._guarded("Autonomous exploration", explorer.run())
            await session.return_to_base(settle_ms=2_000)

        runtime = RuntimeDetector(settings.severity)
        await self._guarded("Console check", runtime.detect_console(session))
        await self._guarded("Network check", runtime.detect_network(session))

        summary = ""
        if session.oracle is not None:
            self._log("Generating executive summary...")
            summary = await self._guarded("Executive summary", self._executive_summary(session, scope)) or ""

        report = compile_report(
            session.ctx, session.base_url, scope, session.ledger.bugs, session.signals,
            session.results, ai_engine_label(session.oracle is not None), summary,
            browser=f"Chromium (Playwright, {'headless' if settings.headless else 'headful'})",
        )
        path = write_report(session.ctx, report)
        self._emit("scan_complete", {"bugs": len(session.ledger), "workflows": len(session.results),
                                     "report": path})

    async def _run_detectors(self, session: ScanSession, response):
        policy = self.settings.severity
        content = ContentDetector(policy)
        stages = [
            ("SEO check", lambda: SEODetector().detect(session)),
            ("Accessibility check", lambda: AccessibilityDetector(policy).detect(session)),
            ("Broken image check", lambda: content.detect_images(session)),
            ("Broken link check", lambda: content.detect_links(session)),
        ]
        if response is not None:
            stages.append(("Security check", lambda: SecurityDetector(policy).detect(session, response)))
        stages += [
            ("Performance check", lambda: PerformanceDetector().detect(session)),
            ("Layout check", lambda: LayoutDetector(policy).detect(session)),
            ("Interactive element check", lambda: InteractiveDetector(policy).detect(session)),
            ("Web app check", lambda: WebAppDetector().detect(session)),
            ("Click-through check", lambda: ClickThroughDetector().detect(session)),
            ("Responsive check", lambda: ResponsiveDetector(policy).detect(session)),
        ]
        for name, stage in stages:
            self._log(f"Running {name.lower()}...")
            await self._guarded(name, stage())

    async def _run_workflows(self, session: ScanSession):
        self._log("Starting workflow tests...")
        stages = [
            ("Site crawl", crawl_site),
            ("Return to base", lambda s: s.return_to_base(settle_ms=3_000)),
            ("Navigation workflows", run_navigation_workflows),
            ("Return to base", lambda s: s.return_to_base(settle_ms=3_000)),
            ("Form workflows", run_form_workflows),
            ("Modal workflows", run_modal_workflows),
            ("Tab and dropdown workflows", run_tab_workflows),
            ("Connect flow", run_connect_flow),
            ("Hover workflows", run_hover_workflows),
            ("Keyboard workflow", run_keyboard_workflow),
            ("Scroll workflow", run_scroll_workflow),
        ]
        for name, stage in stages:
            await self._guarded(name, stage(session))
        passed = sum(1 for r in session.results if r.passed)
        self._log(f"Workflows: {len(session.results)} total, {passed} passed, "
                  f"{len(session.results) - passed} failed")

    async def _executive_summary(self, session: ScanSession, scope: str) -> str:
        bugs = session.ledger.bugs
        counts: dict[str, int] = {}
        for b in bugs:
            counts[b.severity.value] = counts.get(b.severity.value, 0) + 1
        return await session.oracle.executive_summary(
            session.base_url,
            scope,
            [f"[{b.severity.value}] {b.title}: {b.description}" for b in bugs],
            counts,
            [f"{'PASS' if r.passed else 'FAIL'}: {r.name}" + (f" ({r.error})" if r.error else "")
             for r in session.results],
        )

"""End-of-run aggregate detectors over the console and network accumulators."""

from __future__ import annotations

from qflow.config import SeverityPolicy
from qflow.models.context import RuntimeSignals
from qflow.models.session import ScanSession
from qflow.models.types import BugDraft, BugEntry, Category, FailedRequest, Severity


ASSET_TYPES = ("stylesheet", "script", "font", "image")


def is_api_failure(req: FailedRequest) -> bool:
    return (req.status or 0) >= 500 or req.resource_type in ("fetch", "xhr")


def is_asset_failure(req: FailedRequest) -> bool:
    return req.resource_type in ASSET_TYPES


class RuntimeDetector:

    def __init__(self, policy: SeverityPolicy | None = None):
        self.policy = policy or SeverityPolicy()

    def analyze_console(self, signals: RuntimeSignals) -> list[BugDraft]:
        drafts = []
        if signals.console_errors:
            drafts.append(BugDraft(
                title=f"{len(signals.console_errors)} console error(s)",
                severity=Severity.HIGH,
                category=Category.CONSOLE,
                description="JavaScript errors were logged in the browser console during page load and interaction.",
                steps=["Open target URL", "Open browser DevTools -> Console"],
                evidence_label="console-errors",
                details=signals.console_errors[:20],
            ))
        if signals.page_errors:
            drafts.append(BugDraft(
                title=f"{len(signals.page_errors)} uncaught exception(s)",
                severity=Severity.HIGH,
                category=Category.CONSOLE,
                description="Unhandled JavaScript exceptions were thrown.",
                steps=["Open target URL"],
                evidence_label="page-errors",
                details=signals.page_errors[:20],
            ))
        if len(signals.console_warnings) > self.policy.console_warnings_min:
            drafts.append(BugDraft(
                title=f"{len(signals.console_warnings)} console warnings",
                severity=Severity.LOW,
                category=Category.CONSOLE,
                description="Excessive console warnings may indicate underlying problems.",
                steps=["Open target URL", "Open browser DevTools -> Console"],
                evidence_label="console-warnings",
                details=signals.console_warnings[:15],
            ))
        return drafts

    def analyze_network(self, failed: list[FailedRequest]) -> list[BugDraft]:
        drafts = []
        api = [r for r in failed if is_api_failure(r)]
        assets = [r for r in failed if is_asset_failure(r)]
        if api:
            drafts.append(BugDraft(
                title=f"{len(api)} failed API/server request(s)",
                severity=Severity.HIGH,
                category=Category.NETWORK,
                description="XHR/fetch requests failed or returned server errors.",
                steps=["Open target URL", "Monitor Network tab"],
                evidence_label="network-api-fails",
                details=[f"{r.method} {r.url} -> {r.outcome}" for r in api[:15]],
            ))
        if assets:
            drafts.append(BugDraft(
                title=f"{len(assets)} failed asset request(s)",
                severity=Severity.MEDIUM,
                category=Category.NETWORK,
                description="Static assets (CSS, JS, fonts, images) failed to load.",
                steps=["Open target URL", "Monitor Network tab"],
                evidence_label="network-asset-fails",
                details=[f"{r.resource_type}: {r.url} -> {r.outcome}" for r in assets[:15]],
            ))
        return drafts

    async def detect_console(self, session: ScanSession) -> list[BugEntry]:
        return await session.ledger.commit_all(session.page, self.analyze_console(session.signals))

    async def detect_network(self, session: ScanSession) -> list[BugEntry]:
        return await session.ledger.commit_all(
            session.page, self.analyze_network(session.signals.failed_requests))

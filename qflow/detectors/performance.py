"""Navigation timing, paint timing and payload size checks."""

from __future__ import annotations

from qflow.models.session import ScanSession
from qflow.models.types import BugDraft, BugEntry, Category, Severity


FCP_MS = 3_000
DOM_READY_MS = 5_000
LOAD_MS = 10_000
DOM_NODES = 3_000
LARGE_RESOURCE_BYTES = 500_000

_PERF_JS = """() => {
    const nav = performance.getEntriesByType('navigation')[0];
    const fcp = performance.getEntriesByType('paint')
        .find(p => p.name === 'first-contentful-paint');
    const resources = performance.getEntriesByType('resource');
    return {
        fcp: fcp ? fcp.startTime : 0,
        dom_ready: nav ? nav.domContentLoadedEventEnd : 0,
        load_complete: nav ? nav.loadEventEnd : 0,
        dom_nodes: document.querySelectorAll('*').length,
        resources: resources.map(r => ({ name: r.name, size: r.transferSize || 0 })),
    };
}"""


class PerformanceDetector:

    def analyze(self, perf: dict) -> BugDraft | None:
        issues = []
        fcp_slow = perf.get("fcp", 0) > FCP_MS
        if fcp_slow:
            issues.append(f"First Contentful Paint: {perf['fcp'] / 1000:.1f}s (should be < 1.8s)")
        if perf.get("dom_ready", 0) > DOM_READY_MS:
            issues.append(f"DOM ready: {perf['dom_ready'] / 1000:.1f}s")
        if perf.get("load_complete", 0) > LOAD_MS:
            issues.append(f"Full load: {perf['load_complete'] / 1000:.1f}s")
        if perf.get("dom_nodes", 0) > DOM_NODES:
            issues.append(f"{perf['dom_nodes']} DOM nodes (>1500 is heavy)")

        large = [
            f"{r['name'].rstrip('/').split('/')[-1]} ({r['size'] / 1024:.0f} KB)"
            for r in perf.get("resources", [])
            if r.get("size", 0) > LARGE_RESOURCE_BYTES
        ]
        if large:
            issues.append(f"Large assets: {', '.join(large)}")

        if not issues:
            return None
        return BugDraft(
            title=f"{len(issues)} performance concern(s)",
            severity=Severity.HIGH if fcp_slow else Severity.MEDIUM,
            category=Category.PERFORMANCE,
            description="Page performance metrics exceed recommended thresholds.",
            steps=["Open target URL", "Run Lighthouse / DevTools Performance tab"],
            evidence_label="performance",
            details=issues,
        )

    async def detect(self, session: ScanSession) -> BugEntry | None:
        draft = self.analyze(await session.page.evaluate(_PERF_JS))
        if draft is None:
            return None
        return await session.ledger.commit(session.page, draft)

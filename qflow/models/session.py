"""Per-run session handed to every detector and workflow.

A ScanSession bundles the page being driven with the run-owned state
(ledger, runtime signals, workflow results) so nothing is module-global.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable

from qflow.config import Settings
from qflow.models.context import RuntimeSignals
from qflow.models.types import RunContext, WorkflowResult

if TYPE_CHECKING:
    from playwright.async_api import Page

    from qflow.core.actions import ActionEngine
    from qflow.core.ledger import BugLedger
    from qflow.core.oracle import GeminiOracle


ProgressCallback = Callable[[str, dict], None]


@dataclass
class ScanSession:
    page: "Page"
    ctx: RunContext
    base_url: str
    ledger: "BugLedger"
    signals: RuntimeSignals
    engine: "ActionEngine"
    settings: Settings
    oracle: "GeminiOracle | None" = None
    results: list[WorkflowResult] = field(default_factory=list)
    on_progress: ProgressCallback | None = None

    def emit(self, event_type: str, data: dict):
        if not self.on_progress:
            return
        try:
            self.on_progress(event_type, data)
        except Exception:
            pass

    def log(self, message: str):
        self.emit("log", {"message": message})

    def record(self, result: WorkflowResult) -> WorkflowResult:
        self.results.append(result)
        self.emit("workflow_complete", {"name": result.name, "passed": result.passed})
        return result

    async def return_to_base(self, settle_ms: int | None = None):
        """Navigate back to the target URL; failures are ignored."""
        try:
            await self.page.goto(self.base_url, wait_until="domcontentloaded",
                                 timeout=self.settings.nav_timeout_ms)
        except Exception:
            pass
        await self.page.wait_for_timeout(self.settings.settle_ms if settle_ms is None else settle_ms)

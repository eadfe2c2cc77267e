"""Bug ledger and evidence capture.

The ledger is the single source of truth for what a run found. Commits
allocate the next BUG-NNN id, grab a screenshot, and append; nothing is
ever updated or removed.
"""

from __future__ import annotations

import os
import re
import time

from playwright.async_api import Page

from qflow.models.session import ProgressCallback
from qflow.models.types import BugDraft, BugEntry, RunContext


def slug(value: str) -> str:
    s = re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")
    return s or "ev"


async def take_screenshot(page: Page, ctx: RunContext, label: str, full_page: bool = True) -> str:
    """Save a screenshot and return its path relative to the run output root.

    Capture is best-effort: a failed screenshot still yields the path so
    callers always have an evidence reference.
    """
    filename = f"{slug(label)}-{int(time.time() * 1000)}.png"
    abs_path = os.path.join(ctx.screenshot_dir, filename)
    try:
        await page.screenshot(path=abs_path, full_page=full_page)
    except Exception:
        pass
    return os.path.relpath(abs_path, ctx.output_root).replace(os.sep, "/")


class BugLedger:
    """Append-only ordered list of bugs for one run."""

    def __init__(self, ctx: RunContext, on_progress: ProgressCallback | None = None):
        self._ctx = ctx
        self._bugs: list[BugEntry] = []
        self._emit_fn = on_progress or (lambda *_: None)

    def __len__(self) -> int:
        return len(self._bugs)

    def __iter__(self):
        return iter(self._bugs)

    @property
    def bugs(self) -> tuple[BugEntry, ...]:
        return tuple(self._bugs)

    def next_id(self) -> str:
        return f"BUG-{len(self._bugs) + 1:03d}"

    async def commit(self, page: Page, draft: BugDraft) -> BugEntry:
        bug_id = self.next_id()
        shot = await take_screenshot(page, self._ctx, f"{bug_id}-{draft.evidence_label}", draft.full_page)
        return self._append(bug_id, draft, shot)

    async def commit_all(self, page: Page, drafts: list[BugDraft]) -> list[BugEntry]:
        return [await self.commit(page, d) for d in drafts]

    def record(self, draft: BugDraft, evidence: str) -> BugEntry:
        """Append a bug whose evidence was captured by the caller (e.g. on another page)."""
        return self._append(self.next_id(), draft, evidence)

    def _append(self, bug_id: str, draft: BugDraft, evidence: str) -> BugEntry:
        bug = BugEntry(
            id=bug_id,
            title=draft.title,
            severity=draft.severity,
            category=draft.category,
            description=draft.description,
            steps=list(draft.steps),
            evidence=[evidence],
            details=list(draft.details) if draft.details is not None else None,
        )
        self._bugs.append(bug)
        try:
            self._emit_fn("bug_found", {
                "id": bug.id,
                "severity": bug.severity.value,
                "title": bug.title,
                "category": bug.category.value,
            })
        except Exception:
            pass
        return bug

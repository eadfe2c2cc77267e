"""Oracle-steered exploration loop.

UNDERSTAND the landing page once, then repeat PLAN -> ACT -> OBSERVE ->
JUDGE until the oracle says "done" twice in a row or the iteration cap is
hit, and finish with one full-page visual inspection. Every reply from
the oracle is untrusted: unparseable plans count as "done" and
unparseable judgments as "no bugs".

Without an available oracle the explorer is a no-op.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from qflow.core.actions import ACTION_KINDS, ActionOutcome
from qflow.core.ledger import take_screenshot
from qflow.core.oracle import OracleReply, ParseError, candidate_draft
from qflow.models.session import ScanSession
from qflow.models.types import Category, WorkflowResult, WorkflowStep
from qflow.workflows.crawler import origin_of


HISTORY_WINDOW = 15

DOM_DIGEST_JS = """() => {
    const MAX = 200;
    const lines = [];
    const skip = ['svg', 'script', 'style', 'noscript'];
    const walk = (el, depth) => {
        if (lines.length >= MAX) return;
        const tag = el.tagName.toLowerCase();
        const rect = el.getBoundingClientRect();
        if (rect.width === 0 && rect.height === 0) return;

        const attrs = [];
        if (el.id) attrs.push(`id="${el.id}"`);
        const cls = typeof el.className === 'string' ? el.className.trim().slice(0, 60) : '';
        if (cls) attrs.push(`class="${cls}"`);
        for (const name of ['role', 'aria-label', 'placeholder']) {
            if (el.getAttribute(name)) attrs.push(`${name}="${el.getAttribute(name)}"`);
        }
        if (el.getAttribute('href')) attrs.push(`href="${el.getAttribute('href').slice(0, 80)}"`);
        if (el.type) attrs.push(`type="${el.type}"`);
        if (el.disabled) attrs.push('disabled');

        const text = el.childNodes.length <= 3
            ? Array.from(el.childNodes).filter(n => n.nodeType === 3)
                .map(n => (n.textContent || '').trim()).filter(Boolean).join(' ').slice(0, 50)
            : '';
        const indent = '  '.repeat(Math.min(depth, 6));
        lines.push(`${indent}<${tag}${attrs.length ? ' ' + attrs.join(' ') : ''}>${text ? ` "${text}"` : ''}`);

        if (!skip.includes(tag)) {
            for (const child of el.children) walk(child, depth + 1);
        }
    };
    if (document.body) walk(document.body, 0);
    return lines.join('\\n');
}"""


@dataclass
class PlannedAction:
    action: str
    selector: str | None = None
    text: str | None = None
    value: str | None = None
    url: str | None = None
    key: str | None = None
    reasoning: str = ""

    @classmethod
    def from_reply(cls, reply: OracleReply) -> "PlannedAction":
        """A ParseError or a reply without an action is treated as "done"."""
        if isinstance(reply, ParseError):
            return cls(action="done", reasoning="unparseable plan")
        data = reply.data

        def opt(key):
            v = data.get(key)
            return str(v) if v not in (None, "") else None

        return cls(
            action=str(data.get("action") or "done").strip().lower(),
            selector=opt("selector"),
            text=opt("text"),
            value=opt("value"),
            url=opt("url"),
            key=opt("key"),
            reasoning=str(data.get("reasoning") or ""),
        )

    @property
    def is_done(self) -> bool:
        return self.action == "done"

    @property
    def target(self) -> str:
        return self.text or self.selector or self.url or ""


class AutonomousExplorer:
    """Drives the page with the oracle choosing each next action."""

    def __init__(self, session: ScanSession, max_iterations: int | None = None):
        self.session = session
        self.max_iterations = max_iterations or session.settings.max_ai_iterations
        self.history: list[str] = []
        self.understanding = ""

    @property
    def enabled(self) -> bool:
        oracle = self.session.oracle
        return oracle is not None and oracle.available

    async def run(self):
        if not self.enabled:
            return
        s = self.session
        s.log("LLM analyzing page...")
        shot = await self._shot("llm-page-understand")
        self.understanding = await s.oracle.understand_page(
            shot, s.page.url, await s.page.title(), await self._digest())
        if self.understanding:
            s.log("LLM page understanding acquired")

        consecutive_done = 0
        for i in range(self.max_iterations):
            s.log(f"LLM iteration {i + 1}/{self.max_iterations}...")
            before = await self._shot(f"llm-before-{i}")
            plan = PlannedAction.from_reply(await s.oracle.next_action(
                before, self.understanding, s.page.url, await self._digest(),
                self.history[-HISTORY_WINDOW:]))
            s.log(f"LLM action: {plan.action}: {plan.reasoning[:80]}")

            if plan.is_done:
                consecutive_done += 1
                if consecutive_done >= 2:
                    s.log("LLM has finished autonomous exploration")
                    break
                self.history.append("LLM indicated done, continuing for confirmation...")
                continue
            consecutive_done = 0

            await self._turn(i, plan, before)

        await self._final_inspection()
        s.log(f"LLM exploration complete: {len(self.history)} history entries")

    async def _turn(self, i: int, plan: PlannedAction, before: str):
        s = self.session
        console_before = len(s.signals.console_errors)
        outcome = await self.act(plan)
        self.history.append(outcome.history_line(plan.action))
        s.log(f"  Result: {outcome.description}")

        after = await self._shot(f"llm-eval-{i}")
        candidates = await s.oracle.evaluate_action(
            before, after, outcome.description, outcome.js_errors,
            s.signals.console_errors[console_before:])
        for c in candidates:
            await s.ledger.commit(s.page, candidate_draft(
                c,
                prefix="[AI]",
                default_category=Category.FUNCTIONAL,
                steps=[f'LLM action: {plan.action} on "{plan.text or plan.selector or ""}"',
                       f"Reasoning: {plan.reasoning}"],
                evidence_label=f"llm-bug-{i}",
            ))
            self.history.append(f"BUG FOUND: {c['title']}")
        if outcome.js_errors:
            self.history.append(f"{outcome.js_errors} JS error(s) triggered")

        if origin_of(s.page.url) != origin_of(s.base_url):
            await s.return_to_base(settle_ms=2_000)
            self.history.append("Navigated back to base URL (went off-site)")

        if not outcome.ok:
            error = outcome.description
        elif outcome.js_errors:
            error = f"{outcome.js_errors} JS error(s)"
        else:
            error = None
        s.record(WorkflowResult(
            name=f"AI Action {i + 1}: {plan.action}",
            steps=[WorkflowStep(action=plan.action, target=plan.target,
                                value=plan.value, expect=plan.reasoning)],
            passed=outcome.clean and not candidates,
            error=error or (f"{len(candidates)} issue(s) reported" if candidates else None),
        ))

    async def act(self, plan: PlannedAction) -> ActionOutcome:
        engine = self.session.engine
        if plan.action not in ACTION_KINDS:
            return await engine.perform(plan.action)
        if plan.action == "navigate":
            return await engine.perform("navigate", value=plan.url)
        if plan.action == "press_key":
            return await engine.perform("press_key", value=plan.key or "Enter")
        if plan.action == "scroll":
            return await engine.perform("scroll")
        return await engine.perform(plan.action, selector=plan.selector, text=plan.text, value=plan.value)

    async def _final_inspection(self):
        s = self.session
        s.log("LLM performing final visual inspection...")
        shot = await self._shot("llm-final-visual", full_page=True)
        for c in await s.oracle.inspect_screenshot(shot, self.understanding[:1000]):
            await s.ledger.commit(s.page, candidate_draft(
                c,
                prefix="[AI Visual]",
                default_category=Category.LAYOUT,
                steps=["Visual inspection of page screenshot"],
                evidence_label="llm-visual",
            ))

    async def _shot(self, label: str, full_page: bool = False) -> str:
        rel = await take_screenshot(self.session.page, self.session.ctx, label, full_page)
        return os.path.join(self.session.ctx.output_root, rel)

    async def _digest(self) -> str:
        try:
            return await self.session.page.evaluate(DOM_DIGEST_JS)
        except Exception:
            return ""

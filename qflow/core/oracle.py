"""Gemini oracle -- the language-model side of the QA agent.

Used for page understanding, next-action planning, judging the result
of an action, visual inspection, and the report's executive summary.
Responses are untrusted text: every structured reply is parsed into
Parsed | ParseError and callers treat ParseError as "done" / "no bugs".

Usage: one GeminiOracle per run. Without GEMINI_API_KEY every call
returns an empty result.
"""

from __future__ import annotations

import asyncio
import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from qflow.config import TEXT_MODEL, VISION_MODEL
from qflow.models.types import BugDraft, Category, Severity
from qflow.utils.throttle import CallThrottle


@dataclass
class Parsed:
    data: dict


@dataclass
class ParseError:
    raw: str


OracleReply = Parsed | ParseError

_RATE_LIMIT_MARKERS = ("429", "RESOURCE_EXHAUSTED", "rate limit")


def strip_fences(text: str) -> str:
    cleaned = text.strip()
    cleaned = re.sub(r"^```[a-zA-Z]*\s*\n?", "", cleaned)
    cleaned = re.sub(r"\n?```\s*$", "", cleaned)
    return cleaned.strip()


def parse_reply(text: str | None) -> OracleReply:
    """Parse an oracle response as a JSON object, tolerating code fences."""
    if not text:
        return ParseError(raw="")
    cleaned = strip_fences(text)
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError:
        return ParseError(raw=cleaned)
    if not isinstance(data, dict):
        return ParseError(raw=cleaned)
    return Parsed(data=data)


def bug_candidates(reply: OracleReply) -> list[dict]:
    """Extract {title, severity, description, category} dicts from a judged reply."""
    if isinstance(reply, ParseError):
        return []
    bugs = reply.data.get("bugs")
    if not isinstance(bugs, list):
        return []
    out = []
    for b in bugs:
        if isinstance(b, dict) and str(b.get("title", "")).strip():
            out.append({
                "title": str(b.get("title", "")).strip(),
                "severity": str(b.get("severity", "")).strip(),
                "description": str(b.get("description", "")).strip(),
                "category": str(b.get("category", "")).strip(),
            })
    return out


def candidate_draft(candidate: dict, *, prefix: str, default_category: Category,
                    steps: list[str], evidence_label: str, context: str = "") -> BugDraft:
    """Coerce an oracle bug candidate into a draft; unknown enums fall back to defaults."""
    description = candidate.get("description", "")
    return BugDraft(
        title=f"{prefix} {candidate['title']}",
        severity=Severity.coerce(candidate.get("severity"), Severity.MEDIUM),
        category=Category.coerce(candidate.get("category"), default_category),
        description=f"{context}{description}" if context else description,
        steps=steps,
        evidence_label=evidence_label,
    )


def _is_rate_limited(err: Exception) -> bool:
    msg = str(err)
    return any(m.lower() in msg.lower() for m in _RATE_LIMIT_MARKERS)


class GeminiOracle:
    """Throttled, retrying wrapper around the Gemini text and vision models."""

    def __init__(
        self,
        api_key: str = "",
        text_model: str = TEXT_MODEL,
        vision_model: str = VISION_MODEL,
        throttle: CallThrottle | None = None,
        retry_backoff_s: float = 15.0,
        sleep=asyncio.sleep,
        generate_fn: Callable[[str, list], str] | None = None,
        log: Callable[[str], None] | None = None,
    ):
        self._api_key = api_key
        self._text_model_name = text_model
        self._vision_model_name = vision_model
        self._throttle = throttle or CallThrottle(7.0)
        self._retry_backoff_s = retry_backoff_s
        self._sleep = sleep
        self._generate_fn = generate_fn
        self._models: dict[str, object] = {}
        self._log = log or (lambda _msg: None)
        self._call_count = 0

    @property
    def available(self) -> bool:
        return bool(self._api_key)

    @property
    def stats(self) -> dict:
        return {
            "calls": self._call_count,
            "text_model": self._text_model_name,
            "vision_model": self._vision_model_name,
        }

    def _model(self, name: str):
        if name not in self._models:
            import google.generativeai as genai
            genai.configure(api_key=self._api_key)
            self._models[name] = genai.GenerativeModel(name)
        return self._models[name]

    def _generate(self, model_name: str, parts: list) -> str:
        if self._generate_fn:
            return self._generate_fn(model_name, parts)
        resp = self._model(model_name).generate_content(parts)
        return resp.text if resp and resp.text else ""

    async def complete(self, prompt: str, images: list[str] | None = None) -> str:
        """Send a prompt (plus optional PNG screenshots) and return the raw text.

        One retry after a fixed backoff on rate-limit errors; any other
        failure, or a second failure, yields "".
        """
        if not self.available:
            return ""

        parts: list = [prompt]
        for path in images or []:
            try:
                data = await asyncio.to_thread(Path(path).read_bytes)
            except OSError:
                continue
            parts.append({"mime_type": "image/png", "data": data})
        model_name = self._vision_model_name if len(parts) > 1 else self._text_model_name

        await self._throttle.acquire()
        self._call_count += 1
        try:
            return await asyncio.to_thread(self._generate, model_name, parts)
        except Exception as e:
            if not _is_rate_limited(e):
                self._log(f"LLM call failed: {str(e)[:200]}")
                return ""
            self._log(f"Rate limited, waiting {self._retry_backoff_s:.0f}s...")

        await self._sleep(self._retry_backoff_s)
        await self._throttle.acquire()
        self._call_count += 1
        try:
            return await asyncio.to_thread(self._generate, model_name, parts)
        except Exception:
            return ""

    async def understand_page(self, screenshot: str, url: str, title: str, dom_digest: str) -> str:
        prompt = f"""You are an expert QA tester analyzing a web application.

Page URL: {url}
Page Title: {title}

Here is a simplified DOM structure of the visible page:
```
{dom_digest[:4000]}
```

I'm also showing you a screenshot of this page.

Please analyze and return:
1. What kind of application/website is this? (e.g., DeFi exchange, e-commerce, blog, dashboard)
2. What are the main features/sections visible?
3. What are the most important user workflows to test?
4. What areas look potentially buggy or problematic from the screenshot?
5. List 10 specific test actions we should perform (be specific: "click the Swap button", "enter 100 in the amount field", etc.)

Return your analysis in a structured format."""
        return await self.complete(prompt, [screenshot])

    async def next_action(self, screenshot: str, understanding: str, url: str,
                          dom_digest: str, history: list[str]) -> OracleReply:
        performed = "\n".join(f"{i + 1}. {h}" for i, h in enumerate(history[-15:]))
        prompt = f"""You are an autonomous QA testing agent. You control a browser and must decide what to test next.

Page Understanding: {understanding[:1500]}

Current URL: {url}
Current DOM (simplified):
```
{dom_digest[:3000]}
```

Actions already performed:
{performed}

I'm showing you a screenshot of the current page state.

Your goal: Find bugs by interacting with the page. Choose ONE next action to test something that hasn't been tested yet.

Rules:
- Prefer testing core functionality (forms, buttons, navigation) over cosmetic elements
- Try edge cases: empty inputs, special characters, very long values, negative numbers
- Test all visible interactive elements
- If you've tested most things, say "done"
- Make selector values that Playwright can find (CSS selectors or text content)
- For 'click', provide either a CSS selector OR text content to find the element
- For 'fill', provide the selector and value to type

Return ONLY valid JSON (no markdown fences) in this exact format:
{{
  "action": "click|fill|scroll|hover|navigate|press_key|done",
  "selector": "CSS selector like button.submit or #email-input",
  "text": "visible text to find element by (alternative to selector)",
  "value": "value to type (for fill action)",
  "url": "url to navigate to (for navigate action)",
  "key": "key name (for press_key action, e.g. Enter, Tab, Escape)",
  "reasoning": "Why this action is a good test"
}}"""
        return parse_reply(await self.complete(prompt, [screenshot]))

    async def evaluate_action(self, before_shot: str, after_shot: str, action_desc: str,
                              js_errors: int, new_console_errors: list[str]) -> list[dict]:
        if new_console_errors:
            errors_block = "New console errors:\n" + "\n".join(new_console_errors[:5])
        else:
            errors_block = "No new console errors."
        prompt = f"""You are an expert QA tester evaluating the result of a test action.

Action performed: {action_desc}
JS errors triggered: {js_errors}
{errors_block}

I'm showing you two screenshots: the page BEFORE the action, then the page AFTER it.

Evaluate:
1. Did the action produce the expected result?
2. Are there any visual bugs, error messages, or unexpected behavior visible?
3. Did the UI respond correctly?
4. Any crashes, blank screens, or broken elements?

Return ONLY valid JSON (no markdown fences):
{{
  "bugs": [
    {{
      "title": "Short descriptive title",
      "severity": "Critical|High|Medium|Low",
      "description": "What went wrong and why it matters",
      "category": "Layout|Content|UX|Accessibility|Functional|Navigation"
    }}
  ]
}}

If everything looks correct, return: {{"bugs": []}}"""
        return bug_candidates(parse_reply(await self.complete(prompt, [before_shot, after_shot])))

    async def inspect_screenshot(self, screenshot: str, page_context: str) -> list[dict]:
        prompt = f"""You are a QA reporting system for a real software product.
Your role is to produce a USER-FACING QA BUG REPORT of CONFIRMED issues visible in this screenshot.

Context about the website and its purpose:
{page_context}

Rules:
- Report ONLY issues that a real user would experience
- Do NOT mention testing, automation, tools, screenshots, or analysis
- Do NOT speculate (no "appears", "seems", "might", "possibly")
- Write as a senior QA engineer documenting confirmed findings

A bug is any user-visible behavior or UI state that blocks or breaks a workflow,
causes confusion, gives no feedback for an action, misrepresents system state,
or degrades trust in the product (broken layout, unresolved loading states,
empty or error pages, unreadable or overlapping content, inaccessible controls).

Return ONLY valid JSON (no markdown, no commentary) in EXACTLY this format:
{{
  "bugs": [
    {{
      "title": "Concise summary of the broken user experience",
      "severity": "Critical | High | Medium | Low",
      "description": "What the user experiences, where it occurs, and why it matters",
      "category": "Functional | UX | Layout | Accessibility | Content"
    }}
  ]
}}

Severity: Critical blocks a core task; High causes major confusion or repeated failure;
Medium completes but is unclear or inconsistent; Low is minor.

If there are no confirmed user-impacting issues, return exactly: {{"bugs": []}}"""
        return bug_candidates(parse_reply(await self.complete(prompt, [screenshot])))

    async def executive_summary(self, url: str, scope: str, bug_lines: list[str],
                                severity_counts: dict[str, int], workflow_lines: list[str]) -> str:
        counts = "\n".join(f"{sev}: {n}" for sev, n in severity_counts.items())
        prompt = f"""You are a senior QA engineer writing an executive summary for a QA test report.

Website tested: {url}
Scope: {scope}
Total bugs found: {len(bug_lines)}
{counts}

Bugs found:
{chr(10).join(bug_lines)[:3000]}

Workflow results:
{chr(10).join(workflow_lines)[:2000]}

Write a concise executive summary (3-5 paragraphs) that:
1. Describes the overall quality of the website
2. Highlights the most critical issues that need immediate attention
3. Groups related issues into themes
4. Provides prioritized recommendations
5. Notes any positive aspects of the site

Write in professional QA report style. Use markdown formatting."""
        return (await self.complete(prompt)).strip()

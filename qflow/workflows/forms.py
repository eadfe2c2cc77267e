"""Form workflows: fill every field with plausible data, submit, watch for errors."""

from __future__ import annotations

from qflow.models.session import ScanSession
from qflow.models.types import BugDraft, Category, Severity, WorkflowResult, WorkflowStep
from qflow.utils.test_data import get_test_value


MAX_FORM_INPUTS = 6
MAX_STANDALONE_INPUTS = 5

FORMS_JS = """() => Array.from(document.querySelectorAll('form')).map((form, i) => {
    const inputs = Array.from(form.querySelectorAll('input, textarea, select')).map((el, j) => ({
        type: el.type || 'text',
        name: el.name || el.id || `input-${j}`,
        placeholder: el.placeholder || '',
        selector: el.id ? `#${el.id}` : `form:nth-of-type(${i + 1}) input:nth-of-type(${j + 1})`,
    }));
    return {
        index: i,
        has_submit: !!form.querySelector('button[type="submit"], input[type="submit"]'),
        inputs: inputs.filter(inp => inp.type !== 'hidden'),
    };
})"""

STANDALONE_JS = """() => Array.from(
        document.querySelectorAll('input:not(form input), textarea:not(form textarea)'))
    .filter(el => el.type !== 'hidden')
    .map(el => ({
        type: el.type || 'text',
        placeholder: el.placeholder || '',
        selector: el.id ? `#${el.id}` : `input[placeholder="${el.placeholder}"]`,
    }))"""

VALIDATION_JS = """(sel) => {
    const el = document.querySelector(sel);
    if (!el || !el.parentElement) return false;
    return !!el.parentElement.querySelector(
        '.error, .invalid, [class*="error"], [class*="invalid"]');
}"""


def submit_selector(index: int) -> str:
    n = index + 1
    return f'form:nth-of-type({n}) button[type="submit"], form:nth-of-type({n}) input[type="submit"]'


async def _shows_validation_error(session: ScanSession, selector: str) -> bool:
    try:
        return bool(await session.page.evaluate(VALIDATION_JS, selector))
    except Exception:
        return False


async def _run_form(session: ScanSession, form: dict) -> list[str]:
    engine = session.engine
    steps: list[WorkflowStep] = []
    issues: list[str] = []

    for inp in form["inputs"][:MAX_FORM_INPUTS]:
        value = get_test_value(inp["type"], inp["placeholder"], inp["name"])
        outcome = await engine.fill(value, selector=inp["selector"], timeout_ms=2_000, settle_ms=500)
        if not outcome.ok:
            continue
        steps.append(WorkflowStep(action="fill", target=inp["name"], value=value))
        if await _shows_validation_error(session, inp["selector"]):
            issues.append(f'Form input "{inp["name"]}" showed validation error for test value "{value}"')
            steps.append(WorkflowStep(action="observe", expect="validation error shown"))

    if form.get("has_submit"):
        outcome = await engine.click(selector=submit_selector(form["index"]), timeout_ms=3_000, settle_ms=1_500)
        if outcome.ok:
            steps.append(WorkflowStep(action="click", target="submit button"))
        if outcome.js_errors:
            issues.append(f"Form submission triggered {outcome.js_errors} JS error(s)")

    first = form["inputs"][0]["name"] if form["inputs"] else f"form-{form['index']}"
    session.record(WorkflowResult(
        name=f"Form Workflow ({first})",
        steps=steps,
        passed=not issues,
        error="; ".join(issues) if issues else None,
    ))
    return issues


async def _run_standalone(session: ScanSession, inp: dict) -> list[str]:
    engine = session.engine
    value = get_test_value(inp["type"], inp["placeholder"], "")
    filled = await engine.fill(value, selector=inp["selector"], timeout_ms=2_000, settle_ms=300)
    if not filled.ok:
        return []
    pressed = await engine.press("Enter", settle_ms=1_000)
    await engine.fill("", selector=inp["selector"], timeout_ms=1_000, settle_ms=0)
    if filled.js_errors + pressed.js_errors:
        return [f'Input "{inp["placeholder"] or inp["type"]}" triggered JS error on Enter']
    return []


async def run_form_workflows(session: ScanSession):
    page = session.page
    session.log("Testing form workflows...")
    forms = await page.evaluate(FORMS_JS)
    standalone = await page.evaluate(STANDALONE_JS)

    issues: list[str] = []
    for form in forms:
        issues.extend(await _run_form(session, form))
    for inp in standalone[:MAX_STANDALONE_INPUTS]:
        issues.extend(await _run_standalone(session, inp))

    if issues:
        await session.ledger.commit(page, BugDraft(
            title=f"{len(issues)} form workflow issue(s)",
            severity=Severity.HIGH,
            category=Category.FUNCTIONAL,
            description="Form interaction testing found validation or submission problems.",
            steps=["Open target URL", "Fill in form fields", "Submit"],
            evidence_label="form-workflow",
            details=issues,
        ))

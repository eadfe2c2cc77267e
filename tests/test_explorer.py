from unittest.mock import AsyncMock, MagicMock

from qflow.core.actions import ActionOutcome
from qflow.core.explorer import AutonomousExplorer, PlannedAction
from qflow.core.oracle import Parsed, ParseError
from qflow.models.types import Category, Severity


def _oracle(plans, judged=(), visual=()):
    oracle = MagicMock()
    oracle.available = True
    oracle.understand_page = AsyncMock(return_value="A token swap app")
    oracle.next_action = AsyncMock(side_effect=plans)
    oracle.evaluate_action = AsyncMock(return_value=list(judged))
    oracle.inspect_screenshot = AsyncMock(return_value=list(visual))
    return oracle


class TestPlannedAction:

    def test_parse_error_means_done(self):
        assert PlannedAction.from_reply(ParseError(raw="???")).is_done

    def test_missing_action_means_done(self):
        assert PlannedAction.from_reply(Parsed(data={"reasoning": "nothing left"})).is_done

    def test_fields(self):
        plan = PlannedAction.from_reply(Parsed(data={
            "action": " Fill ", "selector": "#amount", "value": 100, "text": "", "reasoning": "edge case"}))
        assert plan.action == "fill"
        assert plan.value == "100"
        assert plan.text is None
        assert plan.target == "#amount"


class TestExplorer:

    async def test_no_oracle_is_a_noop(self, session):
        explorer = AutonomousExplorer(session)
        assert not explorer.enabled
        await explorer.run()
        assert len(session.ledger) == 0
        assert session.results == []

    async def test_unavailable_oracle_is_a_noop(self, session):
        session.oracle = MagicMock(available=False)
        await AutonomousExplorer(session).run()
        assert len(session.ledger) == 0
        assert session.results == []

    async def test_stops_after_two_consecutive_dones(self, session, engine):
        session.oracle = _oracle([
            Parsed(data={"action": "click", "text": "Swap", "reasoning": "core flow"}),
            ParseError(raw=""),
            Parsed(data={"action": "done"}),
            Parsed(data={"action": "click", "text": "never reached"}),
        ], judged=[{"title": "Swap does nothing", "severity": "High", "description": "d", "category": ""}])
        engine.perform.return_value = ActionOutcome(True, 'Clicked "Swap"')

        explorer = AutonomousExplorer(session)
        await explorer.run()

        assert session.oracle.next_action.await_count == 3
        engine.perform.assert_awaited_once_with("click", selector=None, text="Swap", value=None)
        bug = session.ledger.bugs[0]
        assert bug.title == "[AI] Swap does nothing"
        assert bug.severity is Severity.HIGH
        assert bug.category is Category.FUNCTIONAL
        assert [r.name for r in session.results] == ["AI Action 1: click"]
        assert not session.results[0].passed
        assert "BUG FOUND: Swap does nothing" in explorer.history

    async def test_respects_iteration_cap(self, session, engine):
        session.oracle = _oracle([Parsed(data={"action": "scroll"})] * 3)
        await AutonomousExplorer(session, max_iterations=3).run()
        assert engine.perform.await_count == 3
        assert all(r.passed for r in session.results)

    async def test_returns_to_base_when_off_site(self, session, page, engine):
        session.oracle = _oracle([Parsed(data={"action": "navigate", "url": "https://elsewhere.org"}),
                                  ParseError(raw=""), ParseError(raw="")])

        async def navigate(*args, **kwargs):
            page.url = "https://elsewhere.org/"
            return ActionOutcome(True, "Navigated")

        engine.perform.side_effect = navigate
        await AutonomousExplorer(session).run()
        page.goto.assert_awaited_once()
        assert page.goto.await_args.args[0] == "https://example.com/"

    async def test_final_visual_inspection(self, session):
        session.oracle = _oracle([ParseError(raw=""), ParseError(raw="")],
                                 visual=[{"title": "Footer overlaps", "severity": "Low",
                                          "description": "", "category": "Layout"}])
        await AutonomousExplorer(session).run()
        assert [b.title for b in session.ledger] == ["[AI Visual] Footer overlaps"]

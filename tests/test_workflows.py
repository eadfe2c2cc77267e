from unittest.mock import MagicMock

from qflow.core.actions import ActionOutcome, FaultKind, InteractionFault
from qflow.models.types import Severity
from qflow.utils.test_data import DEFAULT_VALUE, WALLET_ADDRESS, get_test_value
from qflow.workflows.crawler import _BODY_TEXT_JS, _LINKS_JS, crawl_site, internal_links, origin_of, page_issues
from qflow.workflows.forms import FORMS_JS, STANDALONE_JS, VALIDATION_JS, run_form_workflows
from qflow.workflows.interactions import (
    BACK_TO_TOP_JS,
    HOVER_TARGETS_JS,
    SCROLL_HEIGHT_JS,
    STICKY_HEADER_JS,
    TOOLTIP_VISIBLE_JS,
    keyboard_issues,
    run_hover_workflows,
    run_keyboard_workflow,
    run_scroll_workflow,
)
from qflow.workflows.modals import (
    CLICK_CLOSE_JS,
    CONNECT_PANEL_JS,
    CONNECT_TRIGGERS_JS,
    DIALOG_JS,
    STILL_OPEN_JS,
    TRIGGERS_JS,
    connect_issues,
    modal_issues,
    run_connect_flow,
    run_modal_workflows,
)
from qflow.workflows.navigation import _LOWER_TEXT_JS, NAV_ITEMS_JS, destination_issues, run_navigation_workflows
from qflow.workflows.tabs import (
    DROPDOWNS_JS,
    MENU_OPEN_JS,
    TAB_ACTIVE_JS,
    TABS_JS,
    dropdown_verdict,
    run_tab_workflows,
    tab_verdict,
)

from conftest import BASE_URL, dispatch


SIGNUP_FORM = {
    "index": 0,
    "has_submit": True,
    "inputs": [
        {"selector": "#email", "type": "email", "placeholder": "", "name": "email"},
        {"selector": "#amount", "type": "number", "placeholder": "Amount", "name": "amount"},
    ],
}


CONTEXT_GONE = RuntimeError("Execution context was destroyed, most likely because of a navigation")


def replies(*values):
    """Successive answers for one script; exceptions are raised."""
    answers = iter(values)

    def answer(*args):
        value = next(answers)
        if isinstance(value, Exception):
            raise value
        return value

    return answer


class TestTestData:

    def test_type_wins(self):
        assert get_test_value("email") == "test@example.com"
        assert get_test_value("number") == "100"
        assert get_test_value("password", name="pw") == "TestPass123!"

    def test_hints(self):
        assert get_test_value("text", placeholder="Search tokens") == "test search query"
        assert get_test_value("text", name="wallet_address") == WALLET_ADDRESS
        assert get_test_value("text", placeholder="Enter amount") == "100"

    def test_default(self):
        assert get_test_value("text", placeholder="", name="") == DEFAULT_VALUE


class TestForms:

    async def test_fills_with_realistic_values(self, session, page, engine):
        page.evaluate.side_effect = dispatch({FORMS_JS: [SIGNUP_FORM], STANDALONE_JS: [], VALIDATION_JS: False})
        await run_form_workflows(session)

        filled = [(c.args[0], c.kwargs["selector"]) for c in engine.fill.await_args_list]
        assert filled == [("test@example.com", "#email"), ("100", "#amount")]
        engine.click.assert_awaited_once()
        assert len(session.results) == 1
        assert session.results[0].name == "Form Workflow (email)"
        assert session.results[0].passed
        assert len(session.ledger) == 0

    async def test_validation_errors_become_one_bug(self, session, page):
        page.evaluate.side_effect = dispatch({FORMS_JS: [SIGNUP_FORM], STANDALONE_JS: [], VALIDATION_JS: True})
        await run_form_workflows(session)

        bug = session.ledger.bugs[0]
        assert bug.title == "2 form workflow issue(s)"
        assert bug.severity is Severity.HIGH
        assert not session.results[0].passed

    async def test_standalone_input_is_cleared(self, session, page, engine):
        inp = {"selector": "#search", "type": "search", "placeholder": "Search"}
        page.evaluate.side_effect = dispatch({FORMS_JS: [], STANDALONE_JS: [inp], VALIDATION_JS: False})
        await run_form_workflows(session)

        values = [c.args[0] for c in engine.fill.await_args_list]
        assert values == ["test search query", ""]
        engine.press.assert_awaited_once()


class TestTabs:

    def test_verdicts(self):
        assert tab_verdict("Stats", False, 0) == ['Tab "Stats" did not become active after click']
        assert tab_verdict("Stats", None, 0) == []
        assert dropdown_verdict("Network", True, False, 0) == ['Dropdown "Network" did not open on click']
        assert dropdown_verdict("Network", False, False, 0) == []

    async def test_tab_that_stays_inactive(self, session, page):
        page.evaluate.side_effect = dispatch({
            TABS_JS: [{"text": "Home", "active": True}, {"text": "Stats", "active": False}],
            TAB_ACTIVE_JS: False,
            DROPDOWNS_JS: [],
        })
        await run_tab_workflows(session)

        assert [r.name for r in session.results] == ['Tab switch: "Stats"']
        assert not session.results[0].passed
        bug = session.ledger.bugs[0]
        assert bug.title == "1 dropdown/tab issue(s)"
        assert bug.severity is Severity.MEDIUM
        assert bug.details == ['Tab "Stats" did not become active after click']

    async def test_undeterminable_state_passes(self, session, page):
        page.evaluate.side_effect = dispatch({
            TABS_JS: [{"text": "Stats", "active": False}],
            TAB_ACTIVE_JS: None,
            DROPDOWNS_JS: [],
        })
        await run_tab_workflows(session)
        assert session.results[0].passed
        assert len(session.ledger) == 0

    async def test_faulting_tab_is_skipped_and_found_issues_kept(self, session, page):
        def active(text):
            if text == "Docs":
                raise CONTEXT_GONE
            return False

        page.evaluate.side_effect = dispatch({
            TABS_JS: [{"text": "Stats", "active": False}, {"text": "Docs", "active": False}],
            TAB_ACTIVE_JS: active,
            DROPDOWNS_JS: [],
        })
        await run_tab_workflows(session)

        assert [(r.name, r.passed) for r in session.results] == [('Tab switch: "Stats"', False)]
        assert len(session.ledger) == 1
        assert session.ledger.bugs[0].details == ['Tab "Stats" did not become active after click']

    async def test_faulting_dropdown_does_not_stop_the_rest(self, session, page, engine):
        page.evaluate.side_effect = dispatch({
            TABS_JS: [],
            DROPDOWNS_JS: [{"text": "Network", "has_popup": True}, {"text": "Sort by", "has_popup": True}],
            MENU_OPEN_JS: replies(CONTEXT_GONE, False),
        })
        await run_tab_workflows(session)

        assert [r.name for r in session.results] == ['Dropdown: "Sort by"']
        assert session.ledger.bugs[0].details == ['Dropdown "Sort by" did not open on click']
        assert engine.click.await_count == 2


class TestKeyboard:

    def test_stuck_focus(self):
        focused = [{"tag": "a", "text": "Home", "has_outline": True, "role": ""}] * 6
        assert keyboard_issues(focused, 0) == [
            "Focus appears stuck: Tab key does not move through elements properly"]

    def test_missing_outline_and_errors(self):
        focused = [None, {"tag": "button", "text": "Go", "has_outline": False, "role": ""}]
        assert keyboard_issues(focused, 2) == [
            'No visible focus indicator on button: "Go"',
            "Keyboard navigation triggered 2 JS error(s)",
        ]

    async def test_workflow_presses_tab(self, session, page, engine):
        page.evaluate.return_value = {"tag": "a", "text": "x", "has_outline": True, "role": ""}
        await run_keyboard_workflow(session)
        assert engine.press.await_count == 15
        assert session.results[0].name == "Keyboard Navigation"
        assert len(session.ledger) == 1


class TestVerdicts:

    def test_modal_issues(self):
        issues = modal_issues("Settings", {"has_close": False, "text": "Hi"}, dismissed=False, js_errors=0)
        assert issues == [
            'Modal opened by "Settings" has no visible close button',
            'Modal opened by "Settings" appears empty',
            'Modal opened by "Settings" cannot be dismissed with Escape key',
        ]

    def test_connect_issues(self):
        assert connect_issues("Connect", {"found": True, "has_options": False}, 0) == [
            '"Connect" opened but shows no wallet options']
        assert connect_issues("Connect", {"found": False}, 0) == []

    def test_destination_issues(self):
        issues = destination_issues("Docs", url_changed=False, content_changed=False, js_errors=0,
                                    body_len=5, body_text="", new_url="https://example.com/")
        assert issues == [
            '"Docs" did not change the URL or page content',
            '"Docs" leads to a blank/empty page (https://example.com/)',
        ]


class TestCrawler:

    def test_internal_links(self):
        hrefs = [
            "https://example.com/",
            "https://example.com/about?ref=nav",
            "https://example.com/about",
            "https://example.com/#top",
            "https://other.com/x",
            "https://example.com/pricing",
        ]
        assert internal_links(hrefs, "https://example.com/") == [
            "https://example.com/about", "https://example.com/pricing"]
        assert origin_of("https://example.com/a/b?c") == "https://example.com"

    def test_page_issues(self):
        assert page_issues("u", 200, 0, 0, "plenty of ordinary body text here") == []
        assert page_issues("u", 404, 1, 0, "page not found") == [
            "u -> HTTP 404", "u -> 1 JS error(s) on load", "u -> blank or near-empty page",
            "u -> error message visible in page content"]

    async def test_crawl_records_one_workflow(self, session, page):
        page.evaluate.return_value = []
        visited = await crawl_site(session)
        assert visited == []
        assert [r.name for r in session.results] == ["Site Page Crawl"]

    async def test_unreadable_title_still_records_crawl(self, session, page):
        page.evaluate.side_effect = dispatch({
            _LINKS_JS: ["https://example.com/about"],
            _BODY_TEXT_JS: "about us: we build tools for everyone",
        })
        page.goto.return_value = MagicMock(status=200)
        page.title.side_effect = CONTEXT_GONE

        visited = await crawl_site(session)

        assert visited == [{"url": "https://example.com/about", "title": "", "status": 200, "errors": 0}]
        assert [(r.name, r.passed) for r in session.results] == [("Site Page Crawl", True)]
        assert len(session.ledger) == 0


SETTINGS_DIALOG = {"found": True, "selector": '[role="dialog"]', "has_close": True, "text": "Preferences panel"}


class TestModals:

    async def test_close_button_used_when_escape_fails(self, session, page, engine):
        page.evaluate.side_effect = dispatch({
            TRIGGERS_JS: ["Settings"],
            DIALOG_JS: SETTINGS_DIALOG,
            STILL_OPEN_JS: True,
            CLICK_CLOSE_JS: True,
        })
        await run_modal_workflows(session)

        scripts = [c.args[0] for c in page.evaluate.await_args_list]
        assert CLICK_CLOSE_JS in scripts
        assert [(r.name, r.passed) for r in session.results] == [('Modal: "Settings"', True)]
        assert len(session.ledger) == 0
        assert engine.press.await_args_list[0].args == ("Escape",)

    async def test_undismissable_modal_is_reported(self, session, page):
        page.evaluate.side_effect = dispatch({
            TRIGGERS_JS: ["Settings"],
            DIALOG_JS: SETTINGS_DIALOG,
            STILL_OPEN_JS: True,
            CLICK_CLOSE_JS: False,
        })
        await run_modal_workflows(session)

        bug = session.ledger.bugs[0]
        assert bug.title == "1 modal/dialog issue(s)"
        assert bug.details == ['Modal opened by "Settings" cannot be dismissed with Escape key']

    async def test_faulting_trigger_is_skipped(self, session, page):
        filter_dialog = {"found": True, "selector": ".modal", "has_close": False, "text": "Filter options"}
        page.evaluate.side_effect = dispatch({
            TRIGGERS_JS: ["Settings", "Filter"],
            DIALOG_JS: replies(CONTEXT_GONE, filter_dialog),
            STILL_OPEN_JS: False,
        })
        await run_modal_workflows(session)

        assert [r.name for r in session.results] == ['Modal: "Filter"']
        assert session.ledger.bugs[0].details == ['Modal opened by "Filter" has no visible close button']

    async def test_no_dialog_records_nothing(self, session, page):
        page.evaluate.side_effect = dispatch({TRIGGERS_JS: ["More"], DIALOG_JS: {"found": False}})
        await run_modal_workflows(session)
        assert session.results == []
        assert len(session.ledger) == 0


class TestConnectFlow:

    async def test_panel_without_options(self, session, page):
        page.evaluate.side_effect = dispatch({
            CONNECT_TRIGGERS_JS: ["Connect Wallet"],
            CONNECT_PANEL_JS: {"found": True, "has_options": False},
        })
        await run_connect_flow(session)

        assert [(r.name, r.passed) for r in session.results] == [('Wallet/Connect: "Connect Wallet"', False)]
        bug = session.ledger.bugs[0]
        assert bug.title == "1 wallet/connect flow issue(s)"
        assert bug.severity is Severity.HIGH

    async def test_faulting_panel_read_is_skipped(self, session, page):
        page.evaluate.side_effect = dispatch({
            CONNECT_TRIGGERS_JS: ["Connect Wallet", "Sign in"],
            CONNECT_PANEL_JS: replies(CONTEXT_GONE, {"found": True, "has_options": True}),
        })
        await run_connect_flow(session)

        assert [(r.name, r.passed) for r in session.results] == [('Wallet/Connect: "Sign in"', True)]
        assert len(session.ledger) == 0


NAV_ITEMS = [{"text": "Docs", "href": "https://example.com/docs"}]


class TestNavigation:

    def _click_goes_to_docs(self, page, engine):
        def click(**kwargs):
            page.url = "https://example.com/docs"
            return ActionOutcome(True, 'Clicked "Docs"')

        engine.click.side_effect = click

    async def test_healthy_link(self, session, page, engine):
        page.evaluate.side_effect = dispatch(
            {NAV_ITEMS_JS: NAV_ITEMS, _LOWER_TEXT_JS: "documentation home"}, default=500)
        self._click_goes_to_docs(page, engine)

        def back(**kwargs):
            page.url = BASE_URL

        page.go_back.side_effect = back
        await run_navigation_workflows(session)

        result = session.results[0]
        assert result.name == 'Navigation: "Docs"'
        assert result.passed
        assert [s.action for s in result.steps] == ["click", "observe", "goBack"]
        assert len(session.ledger) == 0

    async def test_blank_destination_and_broken_back(self, session, page, engine):
        page.evaluate.side_effect = dispatch({NAV_ITEMS_JS: NAV_ITEMS, _LOWER_TEXT_JS: ""}, default=0)
        self._click_goes_to_docs(page, engine)
        await run_navigation_workflows(session)

        assert not session.results[0].passed
        bug = session.ledger.bugs[0]
        assert bug.title == "2 navigation workflow issue(s)"
        assert bug.severity is Severity.HIGH
        assert bug.details == [
            '"Docs" leads to a blank/empty page (https://example.com/docs)',
            'Back button after "Docs" leads to blank page',
        ]

    async def test_hidden_nav_item(self, session, page, engine):
        page.evaluate.side_effect = dispatch({NAV_ITEMS_JS: NAV_ITEMS})
        engine.click.return_value = ActionOutcome(
            False, 'Element "Docs" not visible', fault=InteractionFault(FaultKind.NOT_VISIBLE))
        await run_navigation_workflows(session)

        assert session.results == []
        assert session.ledger.bugs[0].details == ['Nav item "Docs" is not visible']
        assert session.ledger.bugs[0].severity is Severity.MEDIUM


class TestHover:

    async def test_js_error_on_hover_and_faulting_target(self, session, page, engine):
        page.evaluate.side_effect = dispatch({
            HOVER_TARGETS_JS: ["Fee info", "APR"],
            TOOLTIP_VISIBLE_JS: replies(True, CONTEXT_GONE),
        })
        engine.hover.return_value = ActionOutcome(True, "hovered", js_errors=1)
        await run_hover_workflows(session)

        assert [(r.name, r.passed) for r in session.results] == [('Hover: "Fee info"', False)]
        assert "seen: True" in session.results[0].steps[1].expect
        bug = session.ledger.bugs[0]
        assert bug.severity is Severity.LOW
        assert bug.details == ['Hovering "Fee info" triggered JS error']


class TestScroll:

    async def test_infinite_scroll_detected(self, session, page, engine):
        page.evaluate.side_effect = dispatch({
            SCROLL_HEIGHT_JS: replies(2_000, 3_400),
            BACK_TO_TOP_JS: True,
            STICKY_HEADER_JS: False,
        })
        await run_scroll_workflow(session)

        result = session.results[0]
        assert result.name == "Scroll Interactions"
        assert result.passed
        assert result.steps[1].expect == "infinite scroll: True, back-to-top: True, sticky header: False"
        assert [c.args[0] for c in engine.scroll.await_args_list] == ["bottom", "bottom", "top", "500", "top"]

    async def test_lost_document_still_records_result(self, session, page):
        page.evaluate.side_effect = CONTEXT_GONE
        await run_scroll_workflow(session)

        result = session.results[0]
        assert result.passed
        assert result.steps[1].expect == "infinite scroll: False, back-to-top: False, sticky header: False"

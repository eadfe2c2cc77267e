from datetime import datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from qflow.config import Settings
from qflow.core.actions import ActionOutcome
from qflow.core.ledger import BugLedger
from qflow.models.context import RuntimeSignals
from qflow.models.session import ScanSession
from qflow.models.types import RunContext


BASE_URL = "https://example.com/"


@pytest.fixture
def ctx(tmp_path):
    return RunContext.create(str(tmp_path), now=datetime(2026, 1, 15, 10, 30, 0))


@pytest.fixture
def page():
    page = MagicMock()
    page.url = BASE_URL
    page.evaluate = AsyncMock(return_value=None)
    page.screenshot = AsyncMock()
    page.title = AsyncMock(return_value="Example")
    page.wait_for_timeout = AsyncMock()
    page.goto = AsyncMock()
    page.go_back = AsyncMock()
    page.keyboard.press = AsyncMock()
    return page


@pytest.fixture
def settings(tmp_path):
    return Settings(output_dir=str(tmp_path), settle_ms=0)


@pytest.fixture
def engine():
    eng = MagicMock()
    for name in ("perform", "click", "fill", "hover", "press", "scroll", "navigate"):
        setattr(eng, name, AsyncMock(return_value=ActionOutcome(True, "ok")))
    return eng


@pytest.fixture
def session(page, ctx, engine, settings):
    return ScanSession(
        page=page,
        ctx=ctx,
        base_url=BASE_URL,
        ledger=BugLedger(ctx),
        signals=RuntimeSignals(),
        engine=engine,
        settings=settings,
    )


def dispatch(table: dict, default=None):
    """page.evaluate side effect that answers by script identity."""

    async def evaluate(script, *args):
        for key, value in table.items():
            if script is key:
                return value(*args) if callable(value) else value
        return default

    return evaluate

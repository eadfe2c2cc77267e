import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from backend.app import main


@pytest.fixture(autouse=True)
def clean_state():
    main.scans.clear()
    main._event_queues.clear()
    main._processes.clear()
    main._active["scan_id"] = None
    yield
    main._active["scan_id"] = None


@pytest.fixture
def client():
    return TestClient(main.app)


def _scan(scan_id="abc12345", status="running"):
    main.scans[scan_id] = {
        "scan_id": scan_id,
        "url": "https://example.com",
        "scope": "",
        "status": status,
        "started_at": "2026-01-15T10:30:00",
        "completed_at": None,
        "logs": ["  -> Navigating to https://example.com..."],
        "report_path": None,
        "exit_code": None,
    }
    main._event_queues[scan_id] = []
    return scan_id


def _fake_process(lines, code=0):
    stdout = asyncio.StreamReader()
    for line in lines:
        stdout.feed_data(line.encode() + b"\n")
    stdout.feed_eof()
    proc = MagicMock()
    proc.stdout = stdout
    proc.returncode = None
    proc.wait = AsyncMock(return_value=code)
    return proc


def test_health(client):
    assert client.get("/health").json()["status"] == "ok"


def test_second_run_is_rejected(client):
    main._active["scan_id"] = _scan()
    resp = client.post("/api/v1/scan", json={"url": "https://example.com"})
    assert resp.status_code == 409


def test_unknown_scan_is_404(client):
    assert client.get("/api/v1/scan/nope").status_code == 404
    assert client.post("/api/v1/scan/nope/cancel").status_code == 404


def test_get_scan(client):
    scan_id = _scan()
    body = client.get(f"/api/v1/scan/{scan_id}").json()
    assert body["status"] == "running"
    assert body["log_count"] == 1


def test_cancel_terminates_process(client):
    scan_id = _scan()
    proc = MagicMock(returncode=None)
    main._processes[scan_id] = proc
    assert client.post(f"/api/v1/scan/{scan_id}/cancel").json()["status"] == "cancelled"
    proc.terminate.assert_called_once()
    assert main.scans[scan_id]["status"] == "cancelled"


def test_stream_of_finished_scan_replays_log(client):
    scan_id = _scan(status="completed")
    resp = client.get(f"/api/v1/scan/{scan_id}/stream")
    assert resp.headers["content-type"].startswith("text/event-stream")
    assert "event: log" in resp.text
    assert "Navigating to https://example.com" in resp.text
    assert "event: scan_complete" in resp.text


async def test_run_scan_collects_output(monkeypatch):
    scan_id = _scan()
    main.scans[scan_id]["logs"] = []
    main._active["scan_id"] = scan_id
    proc = _fake_process(["  -> Running seo check...", "", "  -> Report written to /tmp/out/report.md"])
    spawn = AsyncMock(return_value=proc)
    monkeypatch.setattr(main, "_spawn", spawn)
    listener: asyncio.Queue = asyncio.Queue()
    main._event_queues[scan_id].append(listener)

    await main.run_scan(scan_id, "https://example.com", "Login")

    env = spawn.await_args.kwargs["env"]
    assert env["QFLOW_NON_INTERACTIVE"] == "1"
    assert env["QFLOW_URL"] == "https://example.com"
    assert env["QFLOW_SCOPE"] == "Login"
    scan = main.scans[scan_id]
    assert scan["status"] == "completed"
    assert scan["logs"] == ["  -> Running seo check...", "  -> Report written to /tmp/out/report.md"]
    assert scan["report_path"] == "/tmp/out/report.md"
    assert main._active["scan_id"] is None

    events = []
    while not listener.empty():
        events.append(listener.get_nowait())
    assert [e["type"] for e in events if e] == ["log", "log", "scan_complete"]
    assert events[-1] is None


async def test_run_scan_nonzero_exit_is_failed(monkeypatch):
    scan_id = _scan()
    monkeypatch.setattr(main, "_spawn", AsyncMock(return_value=_fake_process([], code=1)))
    await main.run_scan(scan_id, "https://example.com", "")
    assert main.scans[scan_id]["status"] == "failed"
    assert main.scans[scan_id]["exit_code"] == 1

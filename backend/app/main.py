"""QFlow API: starts CLI runs in a subprocess and streams their progress over SSE."""

import asyncio
import json
import os
import sys
import uuid
from datetime import datetime
from pathlib import Path

from fastapi import BackgroundTasks, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

ROOT = Path(__file__).resolve().parent.parent.parent
SCAN_SCRIPT = ROOT / "scan.py"
REPORT_MARKER = "Report written to "
MAX_LOG_LINES = 2_000

app = FastAPI(title="QFlow API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

scans: dict[str, dict] = {}
# Per-scan event queues for SSE streaming
_event_queues: dict[str, list[asyncio.Queue]] = {}
_processes: dict[str, asyncio.subprocess.Process] = {}
_active: dict[str, str | None] = {"scan_id": None}

_spawn = asyncio.create_subprocess_exec


class ScanRequest(BaseModel):
    url: str
    scope: str = ""


class ScanResponse(BaseModel):
    scan_id: str
    status: str
    url: str


@app.get("/health")
def health():
    return {"status": "ok", "service": "qflow-api", "version": "0.1.0"}


@app.post("/api/v1/scan", response_model=ScanResponse)
async def start_scan(req: ScanRequest, background_tasks: BackgroundTasks):
    if _active["scan_id"] is not None:
        raise HTTPException(status_code=409, detail=f"Scan {_active['scan_id']} is already running")

    url = req.url.strip()
    if not url:
        raise HTTPException(status_code=422, detail="url is required")
    if not url.startswith("http"):
        url = f"https://{url}"

    scan_id = str(uuid.uuid4())[:8]
    scans[scan_id] = {
        "scan_id": scan_id,
        "url": url,
        "scope": req.scope,
        "status": "running",
        "started_at": datetime.now().isoformat(),
        "completed_at": None,
        "logs": [],
        "report_path": None,
        "exit_code": None,
    }
    _event_queues[scan_id] = []
    _active["scan_id"] = scan_id

    background_tasks.add_task(run_scan, scan_id, url, req.scope)

    return ScanResponse(scan_id=scan_id, status="running", url=url)


@app.get("/api/v1/scan/{scan_id}/stream")
async def scan_stream(scan_id: str, request: Request):
    """SSE endpoint: replays the log so far, then streams new lines live."""
    if scan_id not in scans:
        raise HTTPException(status_code=404, detail="Scan not found")

    queue: asyncio.Queue = asyncio.Queue()
    backlog = list(scans[scan_id]["logs"])
    finished = scans[scan_id]["status"] != "running"
    if not finished:
        _event_queues.setdefault(scan_id, []).append(queue)

    async def event_generator():
        try:
            for line in backlog:
                yield _sse("log", {"type": "log", "message": line})
            if finished:
                yield _sse("scan_complete", {"type": "scan_complete", "status": scans[scan_id]["status"]})
                return

            while True:
                if await request.is_disconnected():
                    break

                try:
                    event = await asyncio.wait_for(queue.get(), timeout=30.0)
                except asyncio.TimeoutError:
                    yield ": keepalive\n\n"
                    continue

                if event is None:
                    break

                event_type = event.get("type", "update")
                yield _sse(event_type, event)

                if event_type == "scan_complete":
                    break
        finally:
            if scan_id in _event_queues and queue in _event_queues[scan_id]:
                _event_queues[scan_id].remove(queue)

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@app.get("/api/v1/scan/{scan_id}")
async def get_scan(scan_id: str):
    if scan_id not in scans:
        raise HTTPException(status_code=404, detail="Scan not found")
    scan = scans[scan_id]
    return {**scan, "logs": scan["logs"][-200:], "log_count": len(scan["logs"])}


@app.post("/api/v1/scan/{scan_id}/cancel")
async def cancel_scan(scan_id: str):
    if scan_id not in scans:
        raise HTTPException(status_code=404, detail="Scan not found")
    scan = scans[scan_id]
    if scan["status"] != "running":
        return {"scan_id": scan_id, "status": scan["status"]}

    scan["status"] = "cancelled"
    proc = _processes.get(scan_id)
    if proc is not None and proc.returncode is None:
        try:
            proc.terminate()
        except ProcessLookupError:
            pass
    return {"scan_id": scan_id, "status": "cancelled"}


def _sse(event_type: str, data: dict) -> str:
    return f"event: {event_type}\ndata: {json.dumps(data)}\n\n"


def _broadcast_event(scan_id: str, event_type: str, data: dict):
    """Push an SSE event to all connected clients for this scan."""
    event = {"type": event_type, **data}
    for q in _event_queues.get(scan_id, []):
        try:
            q.put_nowait(event)
        except asyncio.QueueFull:
            pass


def _append_log(scan_id: str, line: str):
    scan = scans[scan_id]
    if len(scan["logs"]) < MAX_LOG_LINES:
        scan["logs"].append(line)
    if REPORT_MARKER in line:
        scan["report_path"] = line.split(REPORT_MARKER, 1)[1].strip()
    _broadcast_event(scan_id, "log", {"message": line})


async def run_scan(scan_id: str, url: str, scope: str):
    scan = scans[scan_id]
    env = {
        **os.environ,
        "QFLOW_NON_INTERACTIVE": "1",
        "QFLOW_URL": url,
        "QFLOW_SCOPE": scope,
        "PYTHONUNBUFFERED": "1",
    }
    try:
        proc = await _spawn(
            sys.executable, str(SCAN_SCRIPT),
            cwd=str(ROOT),
            env=env,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )
        _processes[scan_id] = proc

        async for raw in proc.stdout:
            line = raw.decode("utf-8", errors="replace").rstrip()
            if line:
                _append_log(scan_id, line)

        code = await proc.wait()
        scan["exit_code"] = code
        if scan["status"] == "running":
            scan["status"] = "completed" if code == 0 else "failed"
    except Exception as e:
        scan["status"] = "failed"
        scan["error"] = str(e)[:500]
        _broadcast_event(scan_id, "scan_failed", {"error": str(e)[:500]})
    finally:
        scan["completed_at"] = datetime.now().isoformat()
        _processes.pop(scan_id, None)
        if _active["scan_id"] == scan_id:
            _active["scan_id"] = None

    _broadcast_event(scan_id, "scan_complete", {"status": scan["status"]})
    # Signal end to all SSE listeners
    for q in _event_queues.get(scan_id, []):
        try:
            q.put_nowait(None)
        except asyncio.QueueFull:
            pass

#!/usr/bin/env python3
"""
QFlow CLI
Usage: python scan.py https://example.com [--scope "Checkout flow"] [--output DIR] [--no-ai] [--headful]
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys
from typing import Callable

from rich.console import Console

from qflow.config import Settings
from qflow.core.scanner import DEFAULT_SCOPE, QFlowScanner


console = Console(highlight=False)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="qflow",
        description="QFlow: autonomous QA agent for websites",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="Examples:\n"
               "  python scan.py https://example.com\n"
               "  python scan.py https://myapp.com --scope \"Swap page\" --headful\n"
               "  QFLOW_NON_INTERACTIVE=1 QFLOW_URL=https://example.com python scan.py",
    )
    parser.add_argument("url", nargs="?", help="Website URL to test (prompted for when omitted)")
    parser.add_argument("--scope", help=f"What to focus on (default: {DEFAULT_SCOPE})")
    parser.add_argument("--output", help="Output directory for reports and screenshots")
    parser.add_argument("--no-ai", action="store_true", help="Skip the Gemini-powered exploration")
    parser.add_argument("--headful", action="store_true", help="Run the browser visibly")
    return parser


def resolve_inputs(args: argparse.Namespace, env, prompt: Callable[[str], str]) -> tuple[str, str]:
    """URL and scope from arguments, the environment or the prompt.

    Returns an empty URL when none was given.
    """
    url = (args.url or "").strip()
    scope = (args.scope or "").strip()

    if not url:
        if env.get("QFLOW_NON_INTERACTIVE") == "1":
            url = env.get("QFLOW_URL", "").strip()
            scope = scope or env.get("QFLOW_SCOPE", "").strip()
        else:
            url = prompt("Enter the URL to test: ").strip()
            if url and not scope:
                scope = prompt(f"Testing scope (Enter for '{DEFAULT_SCOPE}'): ").strip()

    if url and not url.startswith("http"):
        url = f"https://{url}"
    return url, scope or DEFAULT_SCOPE


def _cli_progress(event_type: str, data: dict):
    if event_type == "log":
        console.print(f"  -> {data.get('message', '')}")
    elif event_type == "bug_found":
        console.print(f"  -> [BUG] {data.get('id', '')} {data.get('severity', '')}: {data.get('title', '')[:80]}")
    elif event_type == "workflow_complete":
        status = "PASS" if data.get("passed") else "FAIL"
        console.print(f"  -> [{status}] {data.get('name', '')[:80]}")
    elif event_type == "scan_complete":
        console.print(f"  -> Report written to {data.get('report', '')}")


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    interactive = os.environ.get("QFLOW_NON_INTERACTIVE") != "1"
    url, scope = resolve_inputs(args, os.environ, input if interactive else (lambda _: ""))
    if not url:
        console.print("  No URL provided. Pass a URL or set QFLOW_URL in non-interactive mode.")
        sys.exit(1)

    settings = Settings.from_env()
    if args.output:
        settings.output_dir = args.output
    if args.no_ai:
        settings.ai_enabled = False
    if args.headful:
        settings.headless = False

    console.print(f"\n  QFlow testing {url}")
    console.print(f"  Scope: {scope}\n")

    try:
        asyncio.run(QFlowScanner(settings, on_progress=_cli_progress).run(url, scope))
    except KeyboardInterrupt:
        console.print("\n  Interrupted.")
        sys.exit(1)
    except Exception as e:
        console.print(f"\n  Error during scan: {e}")
        sys.exit(1)
    return 0


if __name__ == "__main__":
    main()

"""Run configuration, read from the environment.

Severity escalation thresholds live in SeverityPolicy so they can be
tuned per run instead of being buried in each detector.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field


TEXT_MODEL = "gemini-2.5-flash-lite"
VISION_MODEL = "gemini-2.5-flash"


@dataclass
class SeverityPolicy:
    """Issue-count thresholds above which a detector escalates to High."""

    accessibility_high_over: int = 5
    broken_links_high_over: int = 5
    security_headers_high_over: int = 3
    interactive_high_over: int = 3
    crawl_high_over: int = 3
    console_warnings_min: int = 10
    tiny_text_min: int = 3
    truncated_text_min: int = 5
    touch_targets_min: int = 3
    mobile_tiny_text_min: int = 5


@dataclass
class Settings:
    gemini_api_key: str = ""
    nav_timeout_ms: int = 90_000
    settle_ms: int = 5_000
    output_dir: str = "output"
    max_ai_iterations: int = 20
    llm_min_delay_ms: int = 7_000
    llm_retry_backoff_ms: int = 15_000
    headless: bool = True
    ai_enabled: bool = True
    viewport: dict = field(default_factory=lambda: {"width": 1280, "height": 720})
    severity: SeverityPolicy = field(default_factory=SeverityPolicy)

    @property
    def oracle_available(self) -> bool:
        return self.ai_enabled and bool(self.gemini_api_key)

    @classmethod
    def from_env(cls, env: dict | None = None) -> "Settings":
        env = os.environ if env is None else env
        return cls(
            gemini_api_key=env.get("GEMINI_API_KEY", ""),
            nav_timeout_ms=_int(env, "NAV_TIMEOUT_MS", 90_000),
            settle_ms=_int(env, "QFLOW_SETTLE_MS", 5_000),
            output_dir=env.get("QFLOW_OUTPUT_DIR", "output"),
            max_ai_iterations=_int(env, "QFLOW_MAX_AI_ITERATIONS", 20),
            llm_min_delay_ms=_int(env, "QFLOW_LLM_MIN_DELAY_MS", 7_000),
        )


def _int(env, key: str, default: int) -> int:
    raw = env.get(key, "")
    try:
        return int(raw) if raw else default
    except ValueError:
        return default

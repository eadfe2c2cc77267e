from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class Severity(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"

    @property
    def rank(self) -> int:
        """Display order: Critical first, Low last."""
        return _SEVERITY_RANK[self]

    @classmethod
    def coerce(cls, value, default: "Severity") -> "Severity":
        try:
            return cls(value)
        except ValueError:
            return default


_SEVERITY_RANK = {
    Severity.CRITICAL: 0,
    Severity.HIGH: 1,
    Severity.MEDIUM: 2,
    Severity.LOW: 3,
}

SEVERITY_ORDER = sorted(Severity, key=lambda s: s.rank)


class Category(str, Enum):
    NAVIGATION = "Navigation"
    CONSOLE = "Console"
    NETWORK = "Network"
    ACCESSIBILITY = "Accessibility"
    SEO = "SEO"
    SECURITY = "Security"
    PERFORMANCE = "Performance"
    LAYOUT = "Layout"
    FUNCTIONAL = "Functional"
    CONTENT = "Content"
    UX = "UX"

    @classmethod
    def coerce(cls, value, default: "Category") -> "Category":
        try:
            return cls(value)
        except ValueError:
            return default


@dataclass
class BugDraft:
    """A bug a detector wants recorded; the ledger turns it into a BugEntry."""

    title: str
    severity: Severity
    category: Category
    description: str
    steps: list[str]
    evidence_label: str
    details: list[str] | None = None
    full_page: bool = True


@dataclass
class BugEntry:
    id: str
    title: str
    severity: Severity
    category: Category
    description: str
    steps: list[str] = field(default_factory=list)
    evidence: list[str] = field(default_factory=list)
    details: list[str] | None = None

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "title": self.title,
            "severity": self.severity.value,
            "category": self.category.value,
            "description": self.description,
            "steps": list(self.steps),
            "evidence": list(self.evidence),
        }
        if self.details is not None:
            data["details"] = list(self.details)
        return data


@dataclass
class WorkflowStep:
    """A single planned or executed interaction."""

    action: str    # click | fill | hover | scroll | navigate | press | observe | goBack
    target: str | None = None
    value: str | None = None
    expect: str | None = None

    def to_dict(self) -> dict:
        return {
            "action": self.action,
            "target": self.target,
            "value": self.value,
            "expect": self.expect,
        }


@dataclass
class WorkflowResult:
    name: str
    steps: list[WorkflowStep] = field(default_factory=list)
    passed: bool = True
    error: str | None = None

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "steps": [s.to_dict() for s in self.steps],
            "passed": self.passed,
            "error": self.error,
        }


@dataclass
class FailedRequest:
    url: str
    method: str
    resource_type: str
    status: int | None = None
    failure: str | None = None

    @property
    def outcome(self) -> str:
        if self.status is not None:
            return str(self.status)
        return self.failure or "unknown"


@dataclass(frozen=True)
class RunContext:
    """Identity and output paths of one run. Never mutated after creation."""

    run_id: str
    output_root: str
    screenshot_dir: str
    report_path: str
    started_at: datetime

    @classmethod
    def create(cls, base_dir: str, now: datetime | None = None) -> "RunContext":
        now = now or datetime.now()
        run_id = f"run-{now.strftime('%Y-%m-%dT%H-%M-%S-%f')[:-3]}"
        output_root = os.path.join(os.path.abspath(base_dir), run_id)
        return cls(
            run_id=run_id,
            output_root=output_root,
            screenshot_dir=os.path.join(output_root, "screenshots"),
            report_path=os.path.join(output_root, "report.md"),
            started_at=now,
        )

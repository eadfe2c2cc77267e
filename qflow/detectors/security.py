"""Security response headers and mixed content."""

from __future__ import annotations

from playwright.async_api import Response

from qflow.config import SeverityPolicy
from qflow.models.session import ScanSession
from qflow.models.types import BugDraft, BugEntry, Category, Severity


SECURITY_HEADERS = [
    ("content-security-policy", "Content-Security-Policy: protects against XSS"),
    ("x-content-type-options", "X-Content-Type-Options: prevents MIME sniffing"),
    ("x-frame-options", "X-Frame-Options: prevents clickjacking"),
    ("strict-transport-security", "Strict-Transport-Security: enforces HTTPS"),
    ("referrer-policy", "Referrer-Policy: controls referrer leakage"),
    ("permissions-policy", "Permissions-Policy: restricts browser features"),
]

_MIXED_CONTENT_JS = """() => {
    const mixed = [];
    if (location.protocol !== 'https:') return mixed;
    document.querySelectorAll('img, script, link[rel="stylesheet"], iframe, video, audio, source')
        .forEach(el => {
            const src = el.getAttribute('src') || el.getAttribute('href') || '';
            if (src.startsWith('http://')) mixed.push(`${el.tagName.toLowerCase()}: ${src}`);
        });
    return mixed;
}"""


def missing_headers(headers: dict) -> list[str]:
    present = {k.lower() for k, v in headers.items() if v}
    return [desc for name, desc in SECURITY_HEADERS if name not in present]


class SecurityDetector:

    def __init__(self, policy: SeverityPolicy | None = None):
        self.policy = policy or SeverityPolicy()

    def analyze(self, headers: dict, mixed: list[str]) -> list[BugDraft]:
        drafts = []
        missing = missing_headers(headers)
        if missing:
            high = len(missing) > self.policy.security_headers_high_over
            drafts.append(BugDraft(
                title=f"{len(missing)} missing security header(s)",
                severity=Severity.HIGH if high else Severity.MEDIUM,
                category=Category.SECURITY,
                description="Important HTTP security headers are not set on the response.",
                steps=["Open target URL", "Inspect response headers"],
                evidence_label="security-headers",
                details=missing,
            ))
        if mixed:
            drafts.append(BugDraft(
                title=f"{len(mixed)} mixed content resource(s)",
                severity=Severity.HIGH,
                category=Category.SECURITY,
                description="HTTPS page loads HTTP resources; browsers may block them.",
                steps=["Open target URL on HTTPS", "Check console for mixed content warnings"],
                evidence_label="mixed-content",
                details=mixed[:15],
            ))
        return drafts

    async def detect(self, session: ScanSession, response: Response | None) -> list[BugEntry]:
        """Needs the main navigation response; without one there is nothing to inspect."""
        if response is None:
            return []
        mixed = await session.page.evaluate(_MIXED_CONTENT_JS)
        drafts = self.analyze(response.headers, mixed)
        return await session.ledger.commit_all(session.page, drafts)

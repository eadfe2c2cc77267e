"""Runtime signals gathered passively from the page during one run.

RuntimeSignals owns the console, exception, and network accumulators
that every detector and workflow reads. It is created once per run and
passed explicitly; nothing is ever removed from it.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from qflow.models.types import FailedRequest


@dataclass
class RuntimeSignals:
    """Append-only console/network accumulators for a single run."""

    console_errors: list[str] = field(default_factory=list)
    console_warnings: list[str] = field(default_factory=list)
    page_errors: list[str] = field(default_factory=list)
    failed_requests: list[FailedRequest] = field(default_factory=list)

    def attach(self, page):
        """Attach Playwright page listeners that feed the accumulators."""

        def on_console(msg):
            loc = msg.location or {}
            where = f"{loc.get('url')}:{loc.get('lineNumber', 0)}" if loc.get("url") else ""
            text = f"{msg.text} ({where})" if where else msg.text
            if msg.type == "error":
                self.console_errors.append(text.strip())
            elif msg.type == "warning":
                self.console_warnings.append(text.strip())

        def on_page_error(error):
            self.page_errors.append(getattr(error, "message", None) or str(error))

        def on_request_failed(request):
            self.failed_requests.append(FailedRequest(
                url=request.url,
                method=request.method,
                resource_type=request.resource_type,
                failure=request.failure,
            ))

        def on_response(response):
            if response.status >= 400:
                self.failed_requests.append(FailedRequest(
                    url=response.url,
                    method=response.request.method,
                    resource_type=response.request.resource_type,
                    status=response.status,
                ))

        page.on("console", on_console)
        page.on("pageerror", on_page_error)
        page.on("requestfailed", on_request_failed)
        page.on("response", on_response)

    @property
    def error_count(self) -> int:
        """Console errors plus uncaught exceptions, used for per-action deltas."""
        return len(self.console_errors) + len(self.page_errors)

    def summary(self) -> dict:
        return {
            "console_errors": len(self.console_errors),
            "console_warnings": len(self.console_warnings),
            "uncaught_exceptions": len(self.page_errors),
            "failed_requests": len(self.failed_requests),
        }

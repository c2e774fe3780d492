from typing import Optional


class ConsoleError(Exception):
    """Base class for errors the access-key operations report to callers."""


class ValidationError(ConsoleError):
    """Malformed or disallowed input. Raised before any upstream call."""


class UpstreamError(ConsoleError):
    """The managed cluster rejected or failed to service a request."""

    def __init__(self, summary: str, detail: Optional[str] = None) -> None:
        self.summary = summary
        self.detail = detail or ""
        message = f"{summary}: {self.detail}" if self.detail else summary
        super().__init__(message)

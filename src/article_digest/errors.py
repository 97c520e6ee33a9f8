"""Error taxonomy shared by the fetcher, the pipelines and the service layer."""

from __future__ import annotations


class ArticleDigestError(Exception):
    """Base class for every failure raised by this package."""


class TransportError(ArticleDigestError):
    """DNS, connection or timeout failure talking to a remote host."""


class UpstreamStatusError(ArticleDigestError):
    """A remote service answered with a non-2xx status."""

    def __init__(self, message: str, status_code: int):
        super().__init__(message)
        self.status_code = status_code


class ContentError(ArticleDigestError):
    """Well-formed response without the content we need (empty body, non-image...)."""


class ConfigurationError(ArticleDigestError):
    """A required credential or setting is missing."""

    def __init__(self, setting: str):
        super().__init__(f"{setting} is not configured")
        self.setting = setting


class RateLimitError(ArticleDigestError):
    """Provider-wide throttling; carries the advisory wait in seconds."""

    def __init__(self, retry_after: int, message: str | None = None):
        super().__init__(message or f"Rate limited; retry after {retry_after}s.")
        self.retry_after = retry_after


class AccountError(ArticleDigestError):
    """Authentication or billing problem that no other candidate can fix."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ProvidersUnavailableError(ArticleDigestError):
    """Every candidate was tried and none produced a usable result."""

    def __init__(
        self, task: str, last_error: str | None = None, retry_after: int | None = None
    ):
        detail = f": {last_error}" if last_error else ""
        super().__init__(f"All providers unavailable for {task}{detail}")
        self.task = task
        self.last_error = last_error
        # Seconds until the last candidate should be ready, when it reported one.
        self.retry_after = retry_after

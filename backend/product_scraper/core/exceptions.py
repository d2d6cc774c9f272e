"""Custom exception classes for the application."""


class ProductScraperException(Exception):
    """Base exception for all product scraper errors."""

    def __init__(self, message: str = "An unexpected error occurred"):
        self.message = message
        super().__init__(self.message)


class ExtractorNotFoundError(ProductScraperException):
    """Raised when no extractor is registered for a site."""

    def __init__(self, site_id: str):
        self.site_id = site_id
        super().__init__(f"No extractor registered for site '{site_id}'")


class FetchError(ProductScraperException):
    """Base class for failures while fetching a product page.

    ``category`` is the short error label surfaced to callers in the
    ``error`` field of a failed result.
    """

    category = "fetch failed"


class TransientFetchError(FetchError):
    """A failure worth retrying with a fresh session."""


class NavigationError(TransientFetchError):
    """Navigation produced no response or a non-2xx status."""

    category = "navigation failed"

    def __init__(self, url: str, status: int = None, reason: str = None):
        self.url = url
        self.status = status
        if reason:
            super().__init__(f"{reason} ({url})")
        elif status is None:
            super().__init__(f"No response received for {url}")
        else:
            super().__init__(f"HTTP status code {status} for {url}")


class NavigationTimeoutError(TransientFetchError):
    """Navigation did not complete within its timeout."""

    category = "navigation timeout"


class BotBlockedError(TransientFetchError):
    """The page matched a known bot-block or CAPTCHA signature."""

    category = "blocked"

    def __init__(self, url: str, marker: str):
        self.url = url
        self.marker = marker
        super().__init__(f"Bot-block page detected for {url} (matched '{marker}')")


class SessionBrokenError(TransientFetchError):
    """The browsing session or its engine died mid-attempt."""

    category = "session broken"


class HttpStatusError(TransientFetchError):
    """The lightweight HTTP fetch returned a non-2xx status."""

    category = "http error"

    def __init__(self, url: str, status: int):
        self.url = url
        self.status = status
        super().__init__(f"HTTP status code: {status} for {url}")


class TerminalFetchError(FetchError):
    """A failure that no amount of retrying will fix."""


class InvalidTargetError(TerminalFetchError):
    """The requested URL or product id cannot be scraped."""

    category = "invalid input"


class EngineUnavailableError(TerminalFetchError):
    """The headless browser engine could not be launched."""

    category = "engine unavailable"

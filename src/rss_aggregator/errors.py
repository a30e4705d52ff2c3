"""Error types for the RSS aggregator."""


class AggregatorError(Exception):
    """Base class for all aggregator errors."""


class ValidationError(AggregatorError):
    """Raised when user input (such as a feed URL) is invalid."""


class DuplicateUrlError(AggregatorError):
    """Raised when registering a feed URL that already exists."""

    def __init__(self, url: str):
        super().__init__(f"A feed with URL {url} already exists")
        self.url = url


class NotFoundError(AggregatorError):
    """Raised when a feed or item id does not exist."""

    def __init__(self, kind: str, object_id: int):
        super().__init__(f"{kind.capitalize()} {object_id} not found")
        self.kind = kind
        self.object_id = object_id


class FetchError(AggregatorError):
    """Raised when a feed URL cannot be retrieved."""

    def __init__(self, url: str, detail: str):
        super().__init__(detail)
        self.url = url
        self.detail = detail


class NetworkError(FetchError):
    """DNS failure, refused connection, timeout and the like."""


class HttpStatusError(FetchError):
    """The server answered with a status code of 400 or above."""

    def __init__(self, url: str, status_code: int, reason: str = ""):
        detail = f"HTTP {status_code} {reason}".rstrip()
        super().__init__(url, detail)
        self.status_code = status_code
        self.reason = reason


class FeedParseError(AggregatorError):
    """Raised when a document cannot be parsed as RSS or Atom."""


class IngestError(AggregatorError):
    """Raised when ingesting a single feed fails.

    The feed's error fields have already been written when this is raised.
    """

    def __init__(self, feed_id: int, cause: Exception):
        super().__init__(str(cause))
        self.feed_id = feed_id
        self.cause = cause

"""Feed URL validation and test-source classification."""

from typing import Iterable
from urllib.parse import urlparse

from rss_aggregator.errors import ValidationError


def validate_feed_url(url: str) -> str:
    """Return the trimmed URL, or raise ValidationError if it is not http(s)."""
    url = (url or "").strip()
    if not url:
        raise ValidationError("URL is required")
    try:
        result = urlparse(url)
    except ValueError:
        raise ValidationError("URL must be a valid URL with http or https protocol")
    if result.scheme not in ("http", "https") or not result.netloc:
        raise ValidationError("URL must be a valid URL with http or https protocol")
    return url


def is_test_source(url: str, patterns: Iterable[str]) -> bool:
    """Whether a feed URL matches any of the sandbox path patterns."""
    return any(pattern and pattern in url for pattern in patterns)

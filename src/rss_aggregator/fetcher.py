"""HTTP retrieval of feed documents using httpx."""

import logging
import time
from dataclasses import dataclass

import httpx

from rss_aggregator.config import DEFAULT_FETCH_TIMEOUT
from rss_aggregator.errors import HttpStatusError, NetworkError

logger = logging.getLogger(__name__)

USER_AGENT = "rss-aggregator/0.1"
ACCEPT = (
    "application/rss+xml, application/atom+xml, application/rdf+xml, "
    "application/xml;q=0.9, text/xml;q=0.9, */*;q=0.8"
)


@dataclass
class FetchedDocument:
    """Raw feed content as returned by the server."""

    url: str
    content: bytes
    content_type: str | None
    status_code: int


class FeedFetcher:
    """Fetches feed documents with a bounded timeout. Never retries."""

    def __init__(
        self,
        timeout: float = DEFAULT_FETCH_TIMEOUT,
        transport: httpx.BaseTransport | None = None,
    ):
        self.timeout = timeout
        self._client = httpx.Client(
            timeout=timeout,
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT, "Accept": ACCEPT},
            transport=transport,
        )

    def __enter__(self) -> "FeedFetcher":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def fetch(self, url: str) -> FetchedDocument:
        """Retrieve a feed document.

        The whole fetch, body included, must finish within ``timeout``
        seconds; a server that keeps trickling bytes is cut off.

        Raises:
            NetworkError: On DNS failure, refused connection, timeout, etc.
            HttpStatusError: If the server answers with status 400 or above.
        """
        deadline = time.monotonic() + self.timeout
        try:
            with self._client.stream("GET", url) as response:
                if response.status_code >= 400:
                    raise HttpStatusError(url, response.status_code, response.reason_phrase)
                chunks = []
                for chunk in response.iter_bytes():
                    if time.monotonic() > deadline:
                        raise NetworkError(
                            url, f"Request timed out after {self.timeout}s: body incomplete"
                        )
                    chunks.append(chunk)
        except httpx.TimeoutException as e:
            raise NetworkError(url, f"Request timed out after {self.timeout}s: {e}")
        except httpx.TransportError as e:
            raise NetworkError(url, f"Network error: {e}")
        except httpx.RequestError as e:
            # Redirect loops, undecodable bodies
            raise NetworkError(url, f"Request failed: {e}")
        except httpx.InvalidURL as e:
            raise NetworkError(url, f"Invalid URL: {e}")

        content = b"".join(chunks)
        logger.debug("Fetched %s (%d bytes)", url, len(content))
        return FetchedDocument(
            url=str(response.url),
            content=content,
            content_type=response.headers.get("content-type"),
            status_code=response.status_code,
        )

"""HTTP retrieval for ingestion sources."""

from dataclasses import dataclass

import httpx

from regintel.ingestion.base import SourceKind
from regintel.ingestion.errors import FetchError
from regintel.logging import get_logger

logger = get_logger(__name__)

ACCEPT_HEADERS: dict[SourceKind, str] = {
    "feed": (
        "application/rss+xml, application/atom+xml, application/xml;q=0.9, "
        "text/xml;q=0.8, */*;q=0.5"
    ),
    "html": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
}


@dataclass
class FetchResult:
    """Body and metadata of a successful retrieval."""

    body: str
    content_type: str
    status_code: int
    url: str


class Fetcher:
    """
    Performs single HTTP GETs with a timeout, user agent and Accept header.

    Does not retry; callers own the retry policy. A shared
    ``httpx.AsyncClient`` may be injected, otherwise one is opened per call.
    """

    def __init__(
        self,
        user_agent: str,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.user_agent = user_agent
        self.timeout = timeout
        self._client = client

    def build_headers(self, kind: SourceKind, extra: dict[str, str] | None = None) -> dict[str, str]:
        headers = {
            "User-Agent": self.user_agent,
            "Accept": ACCEPT_HEADERS[kind],
            "Accept-Language": "en-US,en;q=0.8,de;q=0.5",
        }
        if extra:
            headers.update(extra)
        return headers

    async def fetch(
        self,
        url: str,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
        kind: SourceKind = "feed",
    ) -> FetchResult:
        """Fetch a URL; raises FetchError on timeout, transport error or non-2xx status."""
        request_headers = self.build_headers(kind, headers)
        request_timeout = timeout if timeout is not None else self.timeout

        try:
            if self._client is not None:
                response = await self._client.get(
                    url, headers=request_headers, timeout=request_timeout
                )
            else:
                async with httpx.AsyncClient(
                    timeout=request_timeout,
                    follow_redirects=True,
                ) as client:
                    response = await client.get(url, headers=request_headers)
        except httpx.TimeoutException as e:
            raise FetchError(url, "timeout", str(e) or "request timed out") from e
        except httpx.HTTPError as e:
            raise FetchError(url, "network", str(e) or type(e).__name__) from e

        if not response.is_success:
            raise FetchError(
                url,
                "http_status",
                response.reason_phrase,
                status_code=response.status_code,
            )

        content_type = response.headers.get("content-type", "")
        logger.debug(
            "Fetched",
            url=url,
            status=response.status_code,
            content_type=content_type,
            bytes=len(response.content),
        )
        return FetchResult(
            body=response.text,
            content_type=content_type,
            status_code=response.status_code,
            url=str(response.url),
        )

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()

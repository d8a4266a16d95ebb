"""Network retrieval of source documents.

The ingestion job only depends on the ``DocumentFetcher`` protocol, so the
transport is an injected capability; ``HttpFetcher`` is the httpx-backed
implementation used in production.
"""

import asyncio
from typing import Protocol

import httpx
from loguru import logger
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

DEFAULT_TIMEOUT_SECONDS = 15.0


class DocumentFetcher(Protocol):
    async def fetch(
        self, url: str, headers: dict[str, str], timeout: float | None = None
    ) -> bytes: ...


def _is_retryable(exc: BaseException) -> bool:
    """Retry connection failures and upstream 5xx errors only.

    Timeouts and 4xx responses fail the source for this cycle; the next
    scheduled run retries naturally.
    """
    if isinstance(exc, httpx.ConnectError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500
    return False


class HttpFetcher:
    """Fetches documents over HTTP with per-request timeout and retry.

    Args:
        default_timeout: Timeout in seconds when the caller gives none.
        transport: Optional httpx transport (tests pass httpx.MockTransport).
    """

    def __init__(
        self,
        default_timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.default_timeout = default_timeout
        self._transport = transport

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception(_is_retryable),
        reraise=True,
    )
    async def fetch(
        self, url: str, headers: dict[str, str], timeout: float | None = None
    ) -> bytes:
        """GET a document and return its raw body.

        The timeout bounds the whole attempt, including a slowly streamed body.

        Raises:
            httpx.HTTPStatusError: on non-2xx responses.
            httpx.TimeoutException: when the request exceeds its timeout.
            httpx.TransportError: on other network failures.
        """
        budget = timeout or self.default_timeout
        try:
            async with asyncio.timeout(budget):
                async with httpx.AsyncClient(
                    timeout=budget,
                    follow_redirects=True,
                    transport=self._transport,
                ) as client:
                    response = await client.get(url, headers=headers)
                    response.raise_for_status()
        except TimeoutError as exc:
            raise httpx.ReadTimeout(f"fetching {url} exceeded {budget}s") from exc

        logger.debug(
            "Fetched document | url={url} status={status} bytes={size}",
            url=url,
            status=response.status_code,
            size=len(response.content),
        )
        return response.content

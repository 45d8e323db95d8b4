"""HTTP fetcher shared by every dataset in a sync run."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import httpx
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type, stop_after_attempt, wait_exponential

from fedsync.core.logging import get_logger

log = get_logger("core.fetcher")

RETRYABLE_STATUS = {429, 500, 502, 503, 504}


class FetchError(Exception):
    """Raised when a download fails after all retries."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code

    @property
    def not_found(self) -> bool:
        return self.status_code == 404


class RetryableStatusError(FetchError):
    """A 429 or 5xx response; retried until attempts run out."""


class HTTPFetcher:
    """Downloads files over HTTP, retrying 429, 5xx and transport errors.

    One instance (and one underlying ``httpx.AsyncClient``) is shared by all
    datasets of a run; it is safe to use from concurrent tasks.
    """

    def __init__(
        self,
        user_agent: str,
        timeout: float = 120.0,
        max_retries: int = 3,
        backoff_seconds: float = 1.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.max_retries = max(1, max_retries)
        self.backoff_seconds = backoff_seconds
        self._client = httpx.AsyncClient(
            headers={"User-Agent": user_agent},
            timeout=timeout,
            follow_redirects=True,
            transport=transport,
        )

    async def __aenter__(self) -> "HTTPFetcher":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def download(self, url: str) -> bytes:
        """Fetch a URL into memory."""
        try:
            async for attempt in self._retrying(url):
                with attempt:
                    resp = await self._client.get(url)
                    _raise_for_status(url, resp)
                    content = resp.content
        except httpx.TransportError as exc:
            raise FetchError(f"fetcher: GET {url}: transport error after {self.max_retries} attempts: {exc}") from exc
        return content

    async def download_to_file(self, url: str, path: str | Path) -> int:
        """Stream a URL to ``path`` and return the number of bytes written."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        try:
            async for attempt in self._retrying(url):
                with attempt:
                    async with self._client.stream("GET", url) as resp:
                        _raise_for_status(url, resp)
                        written = 0
                        with path.open("wb") as f:
                            async for chunk in resp.aiter_bytes():
                                f.write(chunk)
                                written += len(chunk)
        except httpx.TransportError as exc:
            raise FetchError(f"fetcher: GET {url}: transport error after {self.max_retries} attempts: {exc}") from exc

        log.debug(f"Downloaded {url} -> {path} ({written} bytes)")
        return written

    def _retrying(self, url: str) -> AsyncRetrying:
        def log_retry(state: RetryCallState) -> None:
            log.warning(
                f"Retrying {url} ({state.outcome.exception()}), "
                f"attempt {state.attempt_number}/{self.max_retries}"
            )

        return AsyncRetrying(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=self.backoff_seconds, max=30),
            retry=retry_if_exception_type((httpx.TransportError, RetryableStatusError)),
            before_sleep=log_retry,
            reraise=True,
        )


def _raise_for_status(url: str, resp: httpx.Response) -> None:
    if resp.status_code in RETRYABLE_STATUS:
        raise RetryableStatusError(f"fetcher: GET {url}: status {resp.status_code}", resp.status_code)
    if resp.is_error:
        raise FetchError(f"fetcher: GET {url}: status {resp.status_code}", resp.status_code)

"""
HTTP transport - non-blocking requests the scheduler can poll once per tick.

Requests run on a small worker pool using httpx; the tick thread only reads
the PendingRequest's done flag and progress counters.
"""

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Iterator, Optional, Protocol

import httpx

logger = logging.getLogger(__name__)


UPLOAD_CHUNK_SIZE = 64 * 1024


@dataclass
class TransportResponse:
    """Finished HTTP exchange.

    status_code is 0 when no response was received. error carries the
    transport's description of a failure (connection problem or non-2xx
    status line) and is empty on success.
    """
    status_code: int = 0
    text: str = ""
    error: str = ""

    @property
    def ok(self) -> bool:
        return not self.error and 200 <= self.status_code < 300


class PendingRequest:
    """Handle for an in-flight request."""

    def __init__(self, future: Optional[Future] = None):
        self.future: Future = future if future is not None else Future()
        self.upload_progress = 0.0
        self.download_progress = 0.0

    @classmethod
    def completed(cls, response: TransportResponse) -> "PendingRequest":
        """A request that has already finished (mostly for tests)."""
        pending = cls()
        pending.future.set_result(response)
        pending.upload_progress = pending.download_progress = 1.0
        return pending

    @property
    def done(self) -> bool:
        return self.future.done()

    @property
    def progress(self) -> float:
        """Overall progress in [0, 1]: first half upload, second half download."""
        if self.done:
            return 1.0
        return min(1.0, 0.5 * self.upload_progress + 0.5 * self.download_progress)

    def result(self) -> TransportResponse:
        return self.future.result()


class HttpTransport(Protocol):
    """Anything that can start an HTTP request and hand back a PendingRequest."""

    def send(
        self,
        method: str,
        url: str,
        headers: dict[str, str],
        content: Optional[bytes] = None,
        timeout: float = 30.0,
    ) -> PendingRequest:
        ...


class ThreadedHttpTransport:
    """httpx-based transport that performs requests on worker threads."""

    def __init__(self, client: Optional[httpx.Client] = None, max_workers: int = 4):
        self.client = client or httpx.Client()
        self._owns_client = client is None
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="banana-http")

    def send(
        self,
        method: str,
        url: str,
        headers: dict[str, str],
        content: Optional[bytes] = None,
        timeout: float = 30.0,
    ) -> PendingRequest:
        pending = PendingRequest()
        if not pending.future.set_running_or_notify_cancel():
            return pending

        def run() -> None:
            try:
                pending.future.set_result(self._perform(pending, method, url, headers, content, timeout))
            except BaseException as e:
                pending.future.set_exception(e)

        self._executor.submit(run)
        return pending

    def _perform(
        self,
        pending: PendingRequest,
        method: str,
        url: str,
        headers: dict[str, str],
        content: Optional[bytes],
        timeout: float,
    ) -> TransportResponse:
        request_headers = dict(headers)
        body = None
        if content is not None:
            request_headers["Content-Length"] = str(len(content))
            body = self._iter_upload(pending, content)
        else:
            pending.upload_progress = 1.0

        logger.debug(f"HTTP {method} {url}")

        try:
            with self.client.stream(
                method, url, headers=request_headers, content=body, timeout=timeout
            ) as response:
                pending.upload_progress = 1.0
                text = self._read_body(pending, response)
        except (httpx.HTTPError, httpx.InvalidURL, UnicodeEncodeError) as e:
            logger.warning(f"HTTP {method} {url} failed: {type(e).__name__}: {e}")
            return TransportResponse(status_code=0, text="", error=str(e) or type(e).__name__)

        error = ""
        if not response.is_success:
            error = f"{response.http_version} {response.status_code} {response.reason_phrase}"

        logger.debug(f"HTTP {method} {url} -> {response.status_code} ({len(text)} chars)")
        return TransportResponse(status_code=response.status_code, text=text, error=error)

    @staticmethod
    def _iter_upload(pending: PendingRequest, content: bytes) -> Iterator[bytes]:
        total = len(content) or 1
        for offset in range(0, len(content), UPLOAD_CHUNK_SIZE):
            chunk = content[offset:offset + UPLOAD_CHUNK_SIZE]
            yield chunk
            pending.upload_progress = min(1.0, (offset + len(chunk)) / total)

    @staticmethod
    def _read_body(pending: PendingRequest, response: httpx.Response) -> str:
        expected = response.headers.get("Content-Length")
        total = int(expected) if expected and expected.isdigit() else 0
        received = 0
        chunks = []
        for chunk in response.iter_bytes():
            chunks.append(chunk)
            received += len(chunk)
            if total:
                pending.download_progress = min(1.0, received / total)
        pending.download_progress = 1.0
        encoding = response.encoding or "utf-8"
        return b"".join(chunks).decode(encoding, errors="replace")

    def close(self) -> None:
        """Stop the worker pool and close the client if we created it."""
        self._executor.shutdown(wait=False, cancel_futures=True)
        if self._owns_client:
            self.client.close()

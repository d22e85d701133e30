"""Async HTTP client for the InnodataLabs prediction microservices.

WHY: Every prediction is a multi-step job: upload the document, start a task
in a prediction domain, wait for the task to finish, download the result.
This module puts the whole lifecycle behind one client class so callers
only have to say which domain and which content.

HOW: Uses httpx.AsyncClient for non-blocking HTTP. IlabsClient is an async
context manager: enter it to open the connection pool, exit to close it.
Each API step is a separate method:
upload → submit → await_completion → download, chained by run().

RULES:
- Always use the async context manager (async with IlabsClient(...) as client:)
- Only 200, 201 and 202 count as success; anything else raises TransportError
- No request is retried; only the status poll repeats, on its own schedule
- Polling uses truncated exponential backoff: 1s, 2s, 4s ... 32s, then 60s
- A task that was not seen completed is cancelled exactly once before the
  original error propagates
- ping() sends no auth headers and works without a user key
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterator, Mapping
from pathlib import Path
from typing import IO, Any, Union

import httpx

from ilabs_api.api.models import ClientConfig, RequestOptions, StatusReport
from ilabs_api.config import (
    HTTP_CONNECT_TIMEOUT_S,
    HTTP_TIMEOUT_S,
    ILABS_ENDPOINT,
    ILABS_USER_AGENT,
    POLL_INITIAL_INTERVAL_S,
    POLL_MAX_ATTEMPTS,
    POLL_MAX_INTERVAL_S,
    POLL_PIN_THRESHOLD_S,
    SUCCESS_STATUS_CODES,
    get_user_key,
)

logger = logging.getLogger(__name__)

Content = Union[bytes, bytearray, str, Path, IO[bytes]]
SleepFn = Callable[[float], Awaitable[Any]]


class TransportError(Exception):
    """Raised when the ilabs API answers with a non-success status.

    WHY: Callers need a typed exception to tell a rejected request apart
    from a network failure (httpx.HTTPError) or a failed task.

    HOW: Wraps the HTTP status code and response body.

    RULES:
    - Always include status_code and message
    - message is the response body text
    """

    def __init__(self, status_code: int, message: str) -> None:
        self.status_code = status_code
        self.message = message
        super().__init__(f"ilabs API error {status_code}: {message}")


class TaskFailedError(Exception):
    """Raised when the service reports a task completed with an error.

    The exception message is the service's error string, unchanged.
    """

    def __init__(
        self,
        message: str,
        domain: str | None = None,
        task_id: str | None = None,
    ) -> None:
        self.message = message
        self.domain = domain
        self.task_id = task_id
        super().__init__(message)


class TaskTimeoutError(TimeoutError):
    """Raised when a task is still pending after the last allowed poll."""


def backoff_schedule(
    initial: float = POLL_INITIAL_INTERVAL_S,
) -> Iterator[float]:
    """Yield the delay to sleep before each status poll, in seconds.

    WHY: Short jobs should be picked up within a second or two, long ones
    should not hammer the service.

    HOW: The first delay is `initial`. After that each delay doubles, except
    that a delay above POLL_PIN_THRESHOLD_S jumps straight to
    POLL_MAX_INTERVAL_S and stays there.

    RULES:
    - Infinite; the caller bounds the number of polls
    - Default schedule: 1, 2, 4, 8, 16, 32, 60, 60, ...
    """
    delay = initial
    while True:
        yield delay
        delay = POLL_MAX_INTERVAL_S if delay > POLL_PIN_THRESHOLD_S else delay * 2


def _read_content(content: Content) -> bytes:
    """Turn any accepted upload content into the raw bytes to send."""
    if isinstance(content, bytes):
        return content
    if isinstance(content, (bytearray, memoryview)):
        return bytes(content)
    if isinstance(content, str):
        return content.encode("utf-8")
    if isinstance(content, Path):
        return content.read_bytes()
    if hasattr(content, "read"):
        data = content.read()
        return data.encode("utf-8") if isinstance(data, str) else bytes(data)
    raise TypeError(
        "Unsupported content type {}: expected bytes, str, Path "
        "or a file object open for reading".format(type(content).__name__)
    )


class IlabsClient:
    """Async client for the ilabs prediction API.

    WHY: Provides a typed interface for the full prediction workflow:
    upload → submit → poll → download. Handles auth headers, backoff,
    cleanup of abandoned tasks, and error wrapping.

    HOW: Wraps httpx.AsyncClient. Auth headers come from an immutable
    ClientConfig and are merged into each request, so the unauthenticated
    ping() can share the same connection pool.

    RULES:
    - Use as: async with IlabsClient() as client: ...
    - user_key defaults to ILABS_USER_KEY from .env; it may stay unset
      when only ping() is used
    - endpoint and user_agent default to the values in ilabs_api.config
    - transport replaces the network layer (httpx.MockTransport in tests)
    - sleep replaces asyncio.sleep in the polling loop
    """

    def __init__(
        self,
        user_key: str | None = None,
        endpoint: str | None = None,
        user_agent: str | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: SleepFn | None = None,
        max_poll_attempts: int = POLL_MAX_ATTEMPTS,
    ) -> None:
        self._config = ClientConfig(
            user_key=user_key or get_user_key(),
            endpoint=endpoint or ILABS_ENDPOINT,
            user_agent=user_agent or ILABS_USER_AGENT,
        )
        self._transport = transport
        self._sleep = sleep or asyncio.sleep
        self._max_poll_attempts = max_poll_attempts
        self._client: httpx.AsyncClient | None = None

    @property
    def config(self) -> ClientConfig:
        return self._config

    async def __aenter__(self) -> IlabsClient:
        self._client = httpx.AsyncClient(
            base_url=self._config.endpoint,
            transport=self._transport,
            timeout=httpx.Timeout(HTTP_TIMEOUT_S, connect=HTTP_CONNECT_TIMEOUT_S),
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        if self._client:
            await self._client.aclose()
            self._client = None

    def _ensure_client(self) -> httpx.AsyncClient:
        """Return the active httpx client, raising if not in context manager."""
        if self._client is None:
            raise RuntimeError(
                "IlabsClient must be used as an async context manager: "
                "async with IlabsClient() as client: ..."
            )
        return self._client

    async def _request(
        self,
        path: str,
        options: RequestOptions | None = None,
        params: Mapping[str, str] | None = None,
    ) -> httpx.Response:
        """Send one authenticated request and check its status.

        Per-request headers override the auth headers. Raises TransportError
        for any status outside SUCCESS_STATUS_CODES; httpx network errors
        propagate unchanged.
        """
        client = self._ensure_client()
        options = options or RequestOptions()
        headers = {**self._config.auth_headers(), **options.headers}

        logger.debug("%s %s", options.method, path)
        resp = await client.request(
            options.method,
            path,
            headers=headers,
            content=options.body,
            params=dict(params) if params else None,
        )

        if resp.status_code not in SUCCESS_STATUS_CODES:
            raise TransportError(resp.status_code, resp.text)
        return resp

    # ------------------------------------------------------------------
    # Liveness
    # ------------------------------------------------------------------

    async def ping(self) -> dict:
        """Check that the endpoint is reachable. Does not need a user key.

        Returns the service payload, normally {"ping": "pong"}.
        """
        client = self._ensure_client()
        resp = await client.get("/ping")
        if resp.status_code not in SUCCESS_STATUS_CODES:
            raise TransportError(resp.status_code, resp.text)
        return resp.json()

    # ------------------------------------------------------------------
    # Document store
    # ------------------------------------------------------------------

    async def upload(self, content: Content) -> str:
        """Upload content to the input document store.

        WHY: Prediction services only work on documents that are already in
        the store.

        HOW: POSTs the raw bytes as application/octet-stream. str content is
        sent UTF-8 encoded; a Path or a file object is read fully first.

        Args:
            content: bytes, str, Path, or a binary file object.

        Returns:
            The remote file name chosen by the service.
        """
        resp = await self._request(
            "/documents/input",
            RequestOptions(
                method="POST",
                headers={"Content-Type": "application/octet-stream"},
                body=_read_content(content),
            ),
        )
        name = resp.json()["input_filename"]
        logger.debug("Uploaded content as %s", name)
        return name

    async def download(self, name: str) -> bytes:
        """Download a processed file from the output document store."""
        resp = await self._request(f"/documents/output/{name}")
        return resp.content

    # ------------------------------------------------------------------
    # Prediction tasks
    # ------------------------------------------------------------------

    async def submit(
        self,
        domain: str,
        name: str,
        params: Mapping[str, str] | None = None,
    ) -> str:
        """Start a prediction task on an uploaded file.

        Args:
            domain: Prediction domain.
            name: Remote file name returned by upload().
            params: Optional query parameters for the microservice, encoded
                in insertion order.

        Returns:
            The task id.
        """
        resp = await self._request(f"/reference/{domain}/{name}", params=params)
        task_id = resp.json()["task_id"]
        logger.info("Submitted %s to domain %s as task %s", name, domain, task_id)
        return task_id

    predict = submit

    async def poll_status(self, domain: str, task_id: str) -> StatusReport:
        """Fetch the current status of a task once."""
        resp = await self._request(f"/reference/{domain}/{task_id}/status")
        return StatusReport.from_dict(resp.json())

    async def cancel(self, domain: str, task_id: str) -> None:
        """Ask the service to cancel a task."""
        await self._request(f"/reference/{domain}/{task_id}/cancel")
        logger.info("Cancelled task %s in domain %s", task_id, domain)

    async def await_completion(
        self,
        domain: str,
        task_id: str,
        on_status: Callable[[StatusReport], None] | None = None,
    ) -> StatusReport:
        """Poll a task until it completes, fails, or runs out of attempts.

        WHY: Prediction is not instant. The service only reports progress
        through the status endpoint, so the client has to poll.

        HOW: Sleeps for the next backoff_schedule() delay, then polls. A
        try/finally keyed on the last observed status cancels the task on
        every exit that did not see it complete.

        RULES:
        - Returns the final StatusReport when completed without error
        - Raises TaskFailedError when completed with an error
        - Raises TaskTimeoutError after max_poll_attempts pending polls
        - Cancels exactly once unless the last status was completed,
          whether or not it carried an error
        - A failing cancel is logged and never replaces the original error

        Args:
            domain: Prediction domain.
            task_id: The id returned by submit().
            on_status: Optional callback invoked with every StatusReport.
        """
        status: StatusReport | None = None
        delays = backoff_schedule()
        try:
            for attempt in range(1, self._max_poll_attempts + 1):
                delay = next(delays)
                logger.debug(
                    "Waiting %.0fs before poll %d for task %s", delay, attempt, task_id
                )
                await self._sleep(delay)

                status = await self.poll_status(domain, task_id)
                if on_status:
                    on_status(status)

                if status.completed:
                    if status.error:
                        raise TaskFailedError(status.error, domain=domain, task_id=task_id)
                    logger.info("Task %s completed after %d polls", task_id, attempt)
                    return status

            raise TaskTimeoutError(
                f"Task {task_id} in domain {domain} still pending after "
                f"{self._max_poll_attempts} polls"
            )
        finally:
            if status is None or not status.completed:
                await self._cancel_quietly(domain, task_id)

    async def _cancel_quietly(self, domain: str, task_id: str) -> None:
        # Runs while another exception is propagating
        try:
            await self.cancel(domain, task_id)
        except Exception:
            logger.warning(
                "Failed to cancel task %s in domain %s", task_id, domain, exc_info=True
            )

    # ------------------------------------------------------------------
    # Full pipeline
    # ------------------------------------------------------------------

    async def run(
        self,
        domain: str,
        content: Content,
        params: Mapping[str, str] | None = None,
        on_status: Callable[[StatusReport], None] | None = None,
    ) -> bytes:
        """Run a prediction end to end and return the processed content.

        Uploads, submits, waits, then downloads the output stored under the
        uploaded name. Any error propagates unchanged; nothing is resumed,
        so a retry means calling run() again from the start.
        """
        name = await self.upload(content)
        task_id = await self.submit(domain, name, params)
        await self.await_completion(domain, task_id, on_status=on_status)
        return await self.download(name)


def run_sync(
    domain: str,
    content: Content,
    params: Mapping[str, str] | None = None,
    **client_kwargs: Any,
) -> bytes:
    """Blocking wrapper around IlabsClient.run() for synchronous callers.

    client_kwargs are passed to the IlabsClient constructor.
    """

    async def _run() -> bytes:
        async with IlabsClient(**client_kwargs) as client:
            return await client.run(domain, content, params)

    return asyncio.run(_run())

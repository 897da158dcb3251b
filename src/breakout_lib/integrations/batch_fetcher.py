"""
Rate-limited batch fetcher for the Gate.io public futures API.

Runs a list of independent GET requests in fixed-size concurrent batches:

  - at most ``concurrency_limit`` requests are in flight at any instant
  - after every full batch the fetcher pauses ``delay_seconds`` (an
    ``asyncio.sleep``, so the event loop keeps serving other work) before
    issuing the next one; no pause follows the final batch
  - every request yields exactly one ``FetchResult``; HTTP errors, bad JSON,
    unexpected payload shapes and transport failures are recorded on the
    result instead of raised, so one bad symbol never sinks the batch
  - nothing is retried - the caller re-runs the whole scan on its schedule

An optional ``deadline`` (``loop.time()`` value) bounds the whole call.
Requests still pending when it passes are cancelled and reported as
``"Deadline exceeded"``; requests not yet issued are reported the same way.

Usage::

    fetcher = BatchFetcher(concurrency_limit=10, delay_seconds=0.35)
    results = await fetcher.fetch_all(requests, headers={"Accept": "application/json"})
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional, Sequence

import httpx

from src.breakout_lib.core.config import (
    BATCH_DELAY_MS,
    CONCURRENCY_LIMIT,
    UPSTREAM_TIMEOUT_SECONDS,
)
from src.breakout_lib.core.logging_config import get_logger
from src.breakout_lib.core.models import FetchRequest, FetchResult
from src.breakout_lib.services.data.api.metrics import record_upstream_request

logger = get_logger("batch_fetcher")

DEADLINE_ERROR = "Deadline exceeded"

# Raw body kept on decode failures for diagnostics
_RAW_TEXT_LIMIT = 500


class BatchFetcher:
    """Bounded-concurrency GET executor with inter-batch pauses."""

    def __init__(
        self,
        concurrency_limit: int = CONCURRENCY_LIMIT,
        delay_seconds: float = BATCH_DELAY_MS / 1000.0,
        timeout: float = UPSTREAM_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if concurrency_limit < 1:
            raise ValueError("concurrency_limit must be >= 1")
        self.concurrency_limit = concurrency_limit
        self.delay_seconds = delay_seconds
        self.timeout = timeout
        self._transport = transport

    # ----- public API -----

    async def fetch_all(
        self,
        requests: Sequence[FetchRequest],
        headers: Optional[dict[str, str]] = None,
        deadline: Optional[float] = None,
    ) -> list[FetchResult]:
        """Execute *requests* and return one ``FetchResult`` per request.

        Results come back grouped by batch; no ordering is promised within
        the list, so callers key them by ``symbol``.
        """
        if not requests:
            return []

        results: list[FetchResult] = []
        batches = [
            requests[i : i + self.concurrency_limit]
            for i in range(0, len(requests), self.concurrency_limit)
        ]
        loop = asyncio.get_running_loop()

        async with httpx.AsyncClient(
            headers=headers or {},
            timeout=self.timeout,
            transport=self._transport,
        ) as client:
            for index, batch in enumerate(batches):
                remaining = None if deadline is None else deadline - loop.time()
                if remaining is not None and remaining <= 0:
                    results.extend(self._expired(batch))
                    continue

                results.extend(await self._run_batch(client, batch, remaining))

                if index < len(batches) - 1:
                    await self._pause()

        errors = sum(1 for r in results if not r.ok)
        logger.debug(
            "batch_fetch_complete",
            requests=len(requests),
            batches=len(batches),
            errors=errors,
        )
        return results

    # ----- internals -----

    async def _pause(self) -> None:
        if self.delay_seconds > 0:
            await asyncio.sleep(self.delay_seconds)

    async def _run_batch(
        self,
        client: httpx.AsyncClient,
        batch: Sequence[FetchRequest],
        timeout: Optional[float],
    ) -> list[FetchResult]:
        tasks = {
            asyncio.ensure_future(self._fetch_one(client, req)): req for req in batch
        }
        try:
            done, pending = await asyncio.wait(tasks, timeout=timeout)
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        for task in pending:
            task.cancel()
        if pending:
            # Let cancellations unwind before the client closes
            await asyncio.gather(*pending, return_exceptions=True)
            logger.warning("batch_deadline_exceeded", abandoned=len(pending))

        batch_results: list[FetchResult] = []
        for task, req in tasks.items():
            if task in done:
                batch_results.append(self._settled(task, req))
            else:
                record_upstream_request(req.kind, "deadline")
                batch_results.append(self._error(req, DEADLINE_ERROR))
        return batch_results

    def _settled(
        self, task: asyncio.Future[FetchResult], req: FetchRequest
    ) -> FetchResult:
        """Result of a finished task; a task that died becomes an error result."""
        if task.cancelled():
            record_upstream_request(req.kind, "deadline")
            return self._error(req, DEADLINE_ERROR)
        exc = task.exception()
        if exc is not None:
            logger.error(
                "upstream_fetch_crashed", symbol=req.symbol, kind=req.kind, error=repr(exc)
            )
            record_upstream_request(req.kind, "transport_error")
            return self._error(req, f"Fetch Error: {exc}")
        return task.result()

    def _expired(self, batch: Sequence[FetchRequest]) -> list[FetchResult]:
        for req in batch:
            record_upstream_request(req.kind, "deadline")
        return [self._error(req, DEADLINE_ERROR) for req in batch]

    async def _fetch_one(
        self, client: httpx.AsyncClient, req: FetchRequest
    ) -> FetchResult:
        try:
            response = await client.get(req.url)
        except Exception as exc:
            logger.warning(
                "upstream_fetch_failed", symbol=req.symbol, kind=req.kind, error=str(exc)
            )
            record_upstream_request(req.kind, "transport_error")
            return self._error(req, f"Fetch Error: {exc}")

        if not response.is_success:
            logger.warning(
                "upstream_http_error",
                symbol=req.symbol,
                kind=req.kind,
                status=response.status_code,
            )
            record_upstream_request(req.kind, "http_error")
            return self._error(
                req, f"HTTP Error: {response.status_code} - {response.reason_phrase}"
            )

        try:
            data: Any = response.json()
        except Exception as exc:
            logger.warning(
                "upstream_decode_error", symbol=req.symbol, kind=req.kind, error=str(exc)
            )
            record_upstream_request(req.kind, "decode_error")
            result = self._error(req, f"JSON Parse Error: {exc}")
            result.extra["raw_text"] = response.text[:_RAW_TEXT_LIMIT]
            return result

        if not isinstance(data, list):
            record_upstream_request(req.kind, "decode_error")
            return self._error(
                req, f"Unexpected payload shape: {type(data).__name__}"
            )

        record_upstream_request(req.kind, "ok")
        return FetchResult(
            symbol=req.symbol, kind=req.kind, data=data, extra=dict(req.extra)
        )

    @staticmethod
    def _error(req: FetchRequest, message: str) -> FetchResult:
        return FetchResult(
            symbol=req.symbol, kind=req.kind, error=message, extra=dict(req.extra)
        )

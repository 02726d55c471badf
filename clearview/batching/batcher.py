"""
Request batcher for the ClearView classifier client.

Collects single-item classification requests into batches and fans the
results back out.  A batch is cut when the queue reaches ``batch_size``
or when the flush timer fires, whichever comes first, so a caller never
waits longer than ``max_wait_ms`` plus one network round trip.

Runs on a single asyncio event loop.  The queue splice and timer
cancellation in :meth:`RequestBatcher.process_batch` happen without an
intervening ``await``, so no other coroutine can observe a half-cut queue.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Protocol, Sequence, Set

from pydantic import BaseModel, Field

from clearview.config import get_settings
from clearview.exceptions import InvalidArgumentError
from clearview.models import BatchItem, ClassificationResult, PendingRequest
from clearview.transport.client import fail_open

logger = logging.getLogger(__name__)


class BatcherConfig(BaseModel):
    """Configuration for the request batcher.

    Attributes:
        batch_size: Maximum requests per batch; reaching it cuts a batch
            immediately.
        max_wait_ms: Longest a request waits for a batch to fill (ms).
        redrain_delay_ms: Delay before cutting the next batch when a
            backlog remains after a cut (ms).
    """

    batch_size: int = Field(default=25, ge=1)
    max_wait_ms: int = Field(default=5000, ge=0)
    redrain_delay_ms: int = Field(default=100, ge=0)


class BatchSender(Protocol):
    """Anything that can classify a batch (normally :class:`RetryingTransport`)."""

    async def send_batch(
        self, items: Sequence[BatchItem]
    ) -> Dict[str, ClassificationResult]:
        ...


class RequestBatcher:
    """Queue of pending requests with size- and time-triggered flushing.

    Args:
        transport: Sends each cut batch and returns a fingerprint map.
        config: Batch configuration; built from settings if omitted.
    """

    def __init__(
        self,
        transport: BatchSender,
        config: Optional[BatcherConfig] = None,
    ) -> None:
        if config is None:
            _s = get_settings().batching
            config = BatcherConfig(
                batch_size=_s.batch_size,
                max_wait_ms=_s.max_wait_ms,
                redrain_delay_ms=_s.redrain_delay_ms,
            )
        self._transport = transport
        self._config = config

        self._queue: List[PendingRequest] = []
        self._timer: Optional[asyncio.TimerHandle] = None
        self._cut_task: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()

        # Counters
        self._batches_sent: int = 0
        self._requests_resolved: int = 0
        self._defaulted_results: int = 0
        self._failed_open_results: int = 0
        self._cleared_requests: int = 0

        logger.info(
            "RequestBatcher initialised",
            extra={
                "batch_size": config.batch_size,
                "max_wait_ms": config.max_wait_ms,
                "redrain_delay_ms": config.redrain_delay_ms,
            },
        )

    @property
    def config(self) -> BatcherConfig:
        return self._config.model_copy()

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def enqueue(self, fingerprint: str, content: str) -> "asyncio.Future[ClassificationResult]":
        """Queue one item and return a future for its result.

        The future always resolves with a :class:`ClassificationResult`;
        it is never failed with an exception.

        Raises:
            InvalidArgumentError: If *fingerprint* or *content* is empty.
            RuntimeError: If called outside a running event loop.
        """
        if not fingerprint or not content:
            raise InvalidArgumentError("Fingerprint and content are required")

        future = asyncio.get_running_loop().create_future()
        request = PendingRequest(fingerprint=fingerprint, content=content, future=future)
        self._queue.append(request)

        logger.debug(
            "Request enqueued",
            extra={"fingerprint": fingerprint[:8], "queue_size": len(self._queue)},
        )

        if len(self._queue) >= self._config.batch_size:
            if self._cut_task is None or self._cut_task.done():
                self._spawn_cut()
        elif self._timer is None:
            self._arm_timer(self._config.max_wait_ms)

        return future

    async def process_batch(self) -> None:
        """Cut up to ``batch_size`` requests from the queue head and classify them.

        Every request in the cut is resolved before this returns: with the
        transport's result, or an ALLOW/confidence-0 default when the
        result map has no entry for its fingerprint.  If a backlog
        remains, the re-drain timer is armed.
        """
        self._cancel_timer()
        if not self._queue:
            return

        size = self._config.batch_size
        batch = self._queue[:size]
        del self._queue[:size]

        try:
            results = await self._transport.send_batch(batch)
        except asyncio.CancelledError:
            self._abandon(batch)
            raise
        except Exception as exc:
            logger.error(
                "Batch send raised; allowing all requests in batch",
                extra={"batch_size": len(batch), "error": str(exc)},
                exc_info=True,
            )
            results = fail_open(batch)
        self._resolve(batch, results)

        self._batches_sent += 1
        logger.info(
            "Batch resolved",
            extra={"batch_size": len(batch), "remaining": len(self._queue)},
        )

        if self._queue:
            self._arm_timer(self._config.redrain_delay_ms)

    async def flush(self) -> None:
        """Cut and classify a batch now, without waiting for the timer."""
        self._cancel_timer()
        await self.process_batch()

    async def drain(self) -> None:
        """Flush until the queue is empty and in-flight cuts have finished."""
        while self._queue or self._tasks:
            if self._queue:
                await self.flush()
            else:
                await asyncio.gather(*list(self._tasks), return_exceptions=True)
        self._cancel_timer()

    def clear(self) -> int:
        """Resolve every queued request with ALLOW without contacting the network.

        Returns:
            Number of requests abandoned.
        """
        self._cancel_timer()
        pending, self._queue = self._queue, []
        self._abandon(pending)
        self._cleared_requests += len(pending)

        if pending:
            logger.info("Queue cleared", extra={"requests_cleared": len(pending)})
        return len(pending)

    def size(self) -> int:
        """Number of requests waiting to be cut."""
        return len(self._queue)

    def stats(self) -> Dict[str, Any]:
        """Return batcher statistics.

        ``defaulted_results`` counts requests whose fingerprint was absent
        from the transport's result map (for example a positional response
        shorter than the batch).
        """
        return {
            "batches_sent": self._batches_sent,
            "requests_resolved": self._requests_resolved,
            "defaulted_results": self._defaulted_results,
            "failed_open_results": self._failed_open_results,
            "cleared_requests": self._cleared_requests,
            "queue_size": len(self._queue),
            "timer_armed": self._timer is not None,
        }

    # ------------------------------------------------------------------
    # Timer and task handling
    # ------------------------------------------------------------------

    def _arm_timer(self, delay_ms: int) -> None:
        self._cancel_timer()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(delay_ms / 1000, self._on_timer)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_timer(self) -> None:
        self._timer = None
        self._spawn_cut()

    def _spawn_cut(self) -> None:
        task = asyncio.ensure_future(self.process_batch())
        self._cut_task = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _resolve(
        self,
        batch: List[PendingRequest],
        results: Dict[str, ClassificationResult],
    ) -> None:
        missing = 0
        for request in batch:
            result = results.get(request.fingerprint)
            if result is None:
                missing += 1
                result = ClassificationResult.allow(request.fingerprint)
            elif result.failed_open:
                self._failed_open_results += 1
            if request.resolve(result):
                self._requests_resolved += 1

        self._defaulted_results += missing
        if missing:
            logger.warning(
                "Results missing for part of batch; defaulted to ALLOW",
                extra={"batch_size": len(batch), "missing": missing},
            )

    def _abandon(self, requests: List[PendingRequest]) -> None:
        for request in requests:
            request.resolve(ClassificationResult.allow(request.fingerprint, abandoned=True))

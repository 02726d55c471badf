"""
Caller-facing ClearView classification client.

Wires the result cache, in-flight deduplication, the request batcher and
the retrying transport into the operations a content filter needs:
classify one post (batched), classify a list now, observe and flush the
queue, and probe the classifier.

Typical use::

    client = ClassificationClient.from_settings()
    result = await client.classify_post(post_fingerprint(post_id, text), text)
    if result.is_blocked:
        hide(post)
    ...
    await client.aclose()
"""

import asyncio
import logging
from functools import partial
from typing import Any, Dict, Optional, Sequence

import httpx

from clearview.batching.batcher import BatcherConfig, RequestBatcher
from clearview.cache.results import ResultCache
from clearview.config import Settings, get_settings
from clearview.exceptions import InvalidArgumentError
from clearview.models import BatchItem, ClassificationResult
from clearview.transport.client import RetryingTransport, TransportConfig

logger = logging.getLogger(__name__)


class ClassificationClient:
    """Batched, cached, fail-open access to the remote classifier.

    Args:
        transport: Sends batches to the classifier.
        batcher: Queues single-post requests; must wrap *transport*.
        cache: Optional result cache.  ``None`` disables caching.
    """

    def __init__(
        self,
        transport: RetryingTransport,
        batcher: RequestBatcher,
        cache: Optional[ResultCache] = None,
    ) -> None:
        self._transport = transport
        self._batcher = batcher
        self._cache = cache
        self._inflight: Dict[str, "asyncio.Future[ClassificationResult]"] = {}

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "ClassificationClient":
        """Build the full client stack from :class:`Settings`."""
        settings = settings or get_settings()
        transport = RetryingTransport(
            config=TransportConfig(
                endpoint=settings.transport.endpoint,
                timeout_ms=settings.transport.timeout_ms,
                retry_attempts=settings.transport.retry_attempts,
                retry_backoff_base_ms=settings.transport.retry_backoff_base_ms,
                batch_size=settings.batching.batch_size,
                api_key=settings.transport.api_key or None,
            ),
            http_transport=http_transport,
        )
        batcher = RequestBatcher(
            transport,
            BatcherConfig(
                batch_size=settings.batching.batch_size,
                max_wait_ms=settings.batching.max_wait_ms,
                redrain_delay_ms=settings.batching.redrain_delay_ms,
            ),
        )
        cache = None
        if settings.cache.enabled:
            cache = ResultCache(
                ttl_seconds=settings.cache.ttl_seconds,
                max_entries=settings.cache.max_entries,
            )
        return cls(transport, batcher, cache)

    # ------------------------------------------------------------------
    # Classification
    # ------------------------------------------------------------------

    async def classify_post(self, fingerprint: str, content: str) -> ClassificationResult:
        """Classify one post through the batch queue.

        Served from the cache when possible; concurrent calls for the same
        fingerprint share a single queued request.

        Raises:
            InvalidArgumentError: If *fingerprint* or *content* is empty.
        """
        if not fingerprint or not content:
            raise InvalidArgumentError("Fingerprint and content are required")

        if self._cache is not None:
            cached = self._cache.get(fingerprint)
            if cached is not None:
                return cached

        future = self._inflight.get(fingerprint)
        if future is None:
            future = self._batcher.enqueue(fingerprint, content)
            self._inflight[fingerprint] = future
            future.add_done_callback(partial(self._on_result, fingerprint))
        else:
            logger.debug("Joined in-flight request", extra={"fingerprint": fingerprint[:8]})

        return await asyncio.shield(future)

    async def classify_batch(
        self,
        items: Sequence[BatchItem],
    ) -> Dict[str, ClassificationResult]:
        """Send exactly *items* now, bypassing the queue.

        Returns:
            Fingerprint-keyed results; empty for empty input.
        """
        if not items:
            return {}
        results = await self._transport.send_batch(items)
        if self._cache is not None:
            for result in results.values():
                self._cache.set(result)
        return results

    # ------------------------------------------------------------------
    # Queue control
    # ------------------------------------------------------------------

    def get_queue_size(self) -> int:
        return self._batcher.size()

    async def flush_queue(self) -> None:
        """Classify the next batch immediately."""
        await self._batcher.flush()

    def clear_queue(self) -> int:
        """Abandon all queued posts, allowing each of them.

        The placeholder answers are not cached, so the same posts are
        classified for real the next time they are requested.
        """
        return self._batcher.clear()

    # ------------------------------------------------------------------
    # Transport passthrough
    # ------------------------------------------------------------------

    def set_endpoint(self, url: str) -> None:
        self._transport.set_endpoint(url)

    def get_config(self) -> TransportConfig:
        return self._transport.get_config()

    async def health_check(self) -> bool:
        return await self._transport.health_check()

    def stats(self) -> Dict[str, Any]:
        return {
            "batcher": self._batcher.stats(),
            "cache": self._cache.stats().model_dump() if self._cache is not None else None,
            "inflight": len(self._inflight),
        }

    async def aclose(self) -> None:
        """Classify everything still queued, then release the HTTP client."""
        await self._batcher.drain()
        await self._transport.aclose()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _on_result(
        self,
        fingerprint: str,
        future: "asyncio.Future[ClassificationResult]",
    ) -> None:
        if self._inflight.get(fingerprint) is future:
            del self._inflight[fingerprint]
        if future.cancelled() or self._cache is None:
            return
        self._cache.set(future.result())

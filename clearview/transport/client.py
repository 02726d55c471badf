"""
Retrying HTTP transport for the remote ClearView classifier.

Delivers one batch per call, bounded by a per-attempt timeout and retried
with exponential backoff.  Whatever happens on the network, callers get a
result for every item: when the classifier cannot be reached the batch
fails open and every item is allowed.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional, Sequence, Tuple

import httpx
from pydantic import BaseModel, Field, ValidationError

from clearview.config import get_settings
from clearview.exceptions import (
    ClassifierError,
    InvalidArgumentError,
    ProtocolError,
    RequestTimeoutError,
    TransportError,
)
from clearview.models import BatchItem, ClassificationResult, Label

logger = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[None]]


class TransportConfig(BaseModel):
    """Configuration for the classifier transport.

    Attributes:
        endpoint: URL that receives ``POST`` batches and ``HEAD`` probes.
        timeout_ms: Upper bound for a single attempt (ms).
        retry_attempts: Total attempts per batch, including the first.
        retry_backoff_base_ms: Delay before the second attempt; doubles
            for each further attempt.
        batch_size: Maximum items per batch.
        api_key: Optional bearer token sent as ``Authorization``.
    """

    endpoint: str = Field(default="http://localhost:3000/classify", min_length=1)
    timeout_ms: int = Field(default=10000, ge=1)
    retry_attempts: int = Field(default=3, ge=1)
    retry_backoff_base_ms: int = Field(default=2000, ge=0)
    batch_size: int = Field(default=25, ge=1)
    api_key: Optional[str] = None

    model_config = {"frozen": True}

    def backoff_ms(self, attempt: int) -> int:
        """Delay to wait after failed attempt number *attempt* (1-based)."""
        return self.retry_backoff_base_ms * 2 ** (attempt - 1)


def normalize_response(
    body: Any,
    items: Sequence[BatchItem],
) -> Dict[str, ClassificationResult]:
    """Convert either response shape into a fingerprint-keyed map.

    Accepts ``{"classifications": [...]}``, aligned by index with
    *items*, or ``{"results": {fingerprint: {...}}}``.  Items beyond the
    end of a positional list are left unmapped.

    Raises:
        ProtocolError: If the body is not an object, has neither shape,
            or contains an entry that is not a valid classification.
    """
    if not isinstance(body, dict):
        raise ProtocolError("Invalid API response format: expected a JSON object")

    entries: Iterable[Tuple[str, Any]]
    classifications = body.get("classifications")
    results = body.get("results")

    if isinstance(classifications, list):
        if len(classifications) < len(items):
            logger.warning(
                "Positional response shorter than batch",
                extra={"batch_size": len(items), "returned": len(classifications)},
            )
        entries = zip((item.fingerprint for item in items), classifications)
    elif isinstance(results, dict):
        entries = results.items()
    else:
        raise ProtocolError(
            f"Unrecognized response shape (keys: {sorted(body)})"
        )

    normalized: Dict[str, ClassificationResult] = {}
    for fingerprint, entry in entries:
        normalized[fingerprint] = _to_result(str(fingerprint), entry)
    return normalized


def _to_result(fingerprint: str, entry: Any) -> ClassificationResult:
    if not isinstance(entry, dict):
        raise ProtocolError(f"Classification for {fingerprint[:8]} is not an object")
    try:
        return ClassificationResult(
            fingerprint=fingerprint,
            label=str(entry.get("label") or Label.ALLOW.value),
            confidence=entry.get("confidence") or 0.0,
        )
    except ValidationError as exc:
        raise ProtocolError(
            f"Invalid classification for {fingerprint[:8]}: {exc.errors()[0]['msg']}"
        ) from exc


def fail_open(items: Sequence[BatchItem]) -> Dict[str, ClassificationResult]:
    """ALLOW every item, flagged as a degraded result."""
    return {
        item.fingerprint: ClassificationResult.allow(item.fingerprint, failed_open=True)
        for item in items
    }


class RetryingTransport:
    """Send batches to the classifier with timeout, retry and fail-open.

    The configuration is read afresh on every call, so
    :meth:`set_endpoint` takes effect for the next batch.

    Args:
        config: Transport configuration; built from settings if omitted.
        http_transport: Optional ``httpx`` transport (tests inject
            ``httpx.MockTransport``).
        sleep: Coroutine used for backoff delays.
    """

    def __init__(
        self,
        config: Optional[TransportConfig] = None,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        if config is None:
            _s = get_settings().transport
            config = TransportConfig(
                endpoint=_s.endpoint,
                timeout_ms=_s.timeout_ms,
                retry_attempts=_s.retry_attempts,
                retry_backoff_base_ms=_s.retry_backoff_base_ms,
                batch_size=get_settings().batching.batch_size,
                api_key=_s.api_key or None,
            )
        self._config = config
        self._http_transport = http_transport
        self._sleep = sleep
        self._client: Optional[httpx.AsyncClient] = None

        logger.info(
            "RetryingTransport initialised",
            extra={
                "endpoint": config.endpoint,
                "timeout_ms": config.timeout_ms,
                "retry_attempts": config.retry_attempts,
            },
        )

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def get_config(self) -> TransportConfig:
        """Return a copy of the current configuration."""
        return self._config.model_copy()

    def set_endpoint(self, url: str) -> None:
        """Point subsequent requests at *url*.

        Raises:
            InvalidArgumentError: If *url* is empty.
        """
        if not url or not url.strip():
            raise InvalidArgumentError("Endpoint must not be empty")
        self._config = self._config.model_copy(update={"endpoint": url.strip()})
        logger.info("Classifier endpoint updated", extra={"endpoint": self._config.endpoint})

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def send_batch(
        self,
        items: Sequence[BatchItem],
    ) -> Dict[str, ClassificationResult]:
        """Classify *items* in one request chain.

        Never raises for network or protocol failures; in that case every
        item maps to an ALLOW result with ``failed_open=True``.

        Returns:
            Mapping of fingerprint to result.  May lack fingerprints the
            server did not answer for.
        """
        if not items:
            return {}

        config = self._config
        payload = {
            "posts": [item.to_payload() for item in items],
            "timestamp": int(time.time() * 1000),
        }

        logger.debug("Sending batch", extra={"batch_size": len(items)})
        try:
            results = await self._fetch_with_retry(config, payload, items)
        except ClassifierError as exc:
            logger.error(
                "Classifier unavailable; failing open",
                extra={
                    "batch_size": len(items),
                    "attempts": config.retry_attempts,
                    "error": str(exc),
                },
            )
            return fail_open(items)
        except Exception as exc:
            logger.error(
                "Unexpected transport failure; failing open",
                extra={"batch_size": len(items), "error": str(exc)},
                exc_info=True,
            )
            return fail_open(items)

        logger.info(
            "Batch classified",
            extra={"batch_size": len(items), "returned": len(results)},
        )
        return results

    async def health_check(self) -> bool:
        """Probe the endpoint with ``HEAD``.

        Returns:
            ``True`` on a 2xx response, ``False`` on anything else.
        """
        config = self._config
        try:
            response = await self._request(config, "HEAD")
        except Exception as exc:
            logger.warning("Health check failed", extra={"error": str(exc)})
            return False
        return response.is_success

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _fetch_with_retry(
        self,
        config: TransportConfig,
        payload: Dict[str, Any],
        items: Sequence[BatchItem],
    ) -> Dict[str, ClassificationResult]:
        """POST *payload* and normalise the reply, retrying on failure.

        Raises:
            ClassifierError: The last failure, once attempts are exhausted.
        """
        last_error: Optional[ClassifierError] = None

        for attempt in range(1, config.retry_attempts + 1):
            try:
                body = await self._post_json(config, payload)
                return normalize_response(body, items)
            except ClassifierError as exc:
                last_error = exc
                if attempt < config.retry_attempts:
                    wait_ms = config.backoff_ms(attempt)
                    logger.warning(
                        "Classifier request failed, retrying",
                        extra={
                            "attempt": attempt,
                            "wait_ms": wait_ms,
                            "error": str(exc),
                        },
                    )
                    await self._sleep(wait_ms / 1000)

        assert last_error is not None
        raise last_error

    async def _post_json(self, config: TransportConfig, payload: Dict[str, Any]) -> Any:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if config.api_key:
            headers["Authorization"] = f"Bearer {config.api_key}"

        response = await self._request(config, "POST", json=payload, headers=headers)
        if not response.is_success:
            raise TransportError(
                f"HTTP {response.status_code}: {response.reason_phrase}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as exc:
            raise ProtocolError("Response body is not valid JSON") from exc

    async def _request(
        self,
        config: TransportConfig,
        method: str,
        **kwargs: Any,
    ) -> httpx.Response:
        """One HTTP exchange, cancelled if it outlives ``timeout_ms``."""
        client = self._get_client()
        try:
            return await asyncio.wait_for(
                client.request(method, config.endpoint, **kwargs),
                timeout=config.timeout_ms / 1000,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            raise RequestTimeoutError(
                f"Request timeout after {config.timeout_ms}ms"
            ) from exc
        except httpx.HTTPError as exc:
            raise TransportError(f"{type(exc).__name__}: {exc}") from exc

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(transport=self._http_transport, timeout=None)
        return self._client

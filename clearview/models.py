"""
Data records shared by the ClearView transport, batcher and client.
"""

import asyncio
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, model_validator


class Label(str, Enum):
    """Labels the classifier is known to return.

    Any other label string from the server is passed through unchanged.
    """

    ALLOW = "ALLOW"
    BLOCK = "BLOCK"


class ClassificationResult(BaseModel):
    """Classification outcome for one fingerprint.

    Attributes:
        fingerprint: Identifier of the classified item.
        label: ``ALLOW``, ``BLOCK`` or a server-defined label.
        confidence: Classifier confidence in ``[0, 1]``.
        failed_open: ``True`` when the result is a fallback produced
            because the classifier could not be reached.
        abandoned: ``True`` when the request was dropped before the
            classifier answered (queue cleared or batch cancelled).
    """

    fingerprint: str
    label: str = Label.ALLOW.value
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    failed_open: bool = False
    abandoned: bool = False

    @model_validator(mode="after")
    def _degraded_has_no_confidence(self) -> "ClassificationResult":
        if self.failed_open:
            self.confidence = 0.0
        return self

    @property
    def is_blocked(self) -> bool:
        return self.label == Label.BLOCK.value

    @classmethod
    def allow(
        cls, fingerprint: str, failed_open: bool = False, abandoned: bool = False
    ) -> "ClassificationResult":
        """Default ALLOW / confidence-0 result."""
        return cls(fingerprint=fingerprint, failed_open=failed_open, abandoned=abandoned)


class BatchItem(BaseModel):
    """One item sent to the classifier (``{hash, content}`` on the wire)."""

    fingerprint: str
    content: str

    def to_payload(self) -> dict:
        return {"hash": self.fingerprint, "content": self.content}


class PendingRequest(BatchItem):
    """A batch item waiting in the queue for its result.

    Attributes:
        enqueued_at: UTC timestamp when the request entered the queue.
        future: Resolved exactly once with a :class:`ClassificationResult`.
            Excluded from Pydantic serialisation.
    """

    enqueued_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    future: Optional[asyncio.Future] = Field(default=None, exclude=True)

    model_config = {"arbitrary_types_allowed": True}

    def resolve(self, result: ClassificationResult) -> bool:
        """Complete the future if still pending.  Returns ``True`` if set."""
        if self.future is None or self.future.done():
            return False
        self.future.set_result(result)
        return True

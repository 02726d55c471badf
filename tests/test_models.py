"""Tests for the shared data records."""

import asyncio

import pytest
from pydantic import ValidationError

from clearview.models import BatchItem, ClassificationResult, Label, PendingRequest


class TestClassificationResult:
    def test_defaults(self) -> None:
        result = ClassificationResult(fingerprint="fp")
        assert result.label == "ALLOW"
        assert result.confidence == 0.0
        assert result.failed_open is False
        assert result.is_blocked is False

    def test_failed_open_forces_zero_confidence(self) -> None:
        result = ClassificationResult(fingerprint="fp", confidence=0.7, failed_open=True)
        assert result.confidence == 0.0

    @pytest.mark.parametrize("confidence", [-0.1, 1.01])
    def test_confidence_bounds(self, confidence: float) -> None:
        with pytest.raises(ValidationError):
            ClassificationResult(fingerprint="fp", confidence=confidence)

    def test_allow_factory(self) -> None:
        result = ClassificationResult.allow("fp", failed_open=True)
        assert result.label == Label.ALLOW.value
        assert result.failed_open is True

    def test_block_label(self) -> None:
        assert ClassificationResult(fingerprint="fp", label="BLOCK").is_blocked


class TestBatchItem:
    def test_wire_payload_uses_hash_key(self) -> None:
        item = BatchItem(fingerprint="post_abc", content="text")
        assert item.to_payload() == {"hash": "post_abc", "content": "text"}


class TestPendingRequest:
    async def test_resolves_once(self) -> None:
        future = asyncio.get_running_loop().create_future()
        request = PendingRequest(fingerprint="fp", content="text", future=future)

        assert request.resolve(ClassificationResult(fingerprint="fp", label="BLOCK")) is True
        assert request.resolve(ClassificationResult(fingerprint="fp")) is False
        assert future.result().label == "BLOCK"

    def test_future_excluded_from_dump(self) -> None:
        request = PendingRequest(fingerprint="fp", content="text")
        assert "future" not in request.model_dump()
        assert request.resolve(ClassificationResult(fingerprint="fp")) is False

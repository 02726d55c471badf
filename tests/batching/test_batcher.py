"""Tests for RequestBatcher -- size/timer triggered batching."""

import asyncio
from typing import Dict, List, Optional, Sequence

import pytest

from clearview.batching.batcher import BatcherConfig, RequestBatcher
from clearview.exceptions import InvalidArgumentError
from clearview.models import BatchItem, ClassificationResult


class RecordingSender:
    """Fake transport that records batches and blocks every item."""

    def __init__(self, skip: Optional[set] = None, error: Optional[Exception] = None) -> None:
        self.batches: List[List[str]] = []
        self._skip = skip or set()
        self._error = error

    async def send_batch(self, items: Sequence[BatchItem]) -> Dict[str, ClassificationResult]:
        self.batches.append([item.fingerprint for item in items])
        await asyncio.sleep(0)
        if self._error is not None:
            raise self._error
        return {
            item.fingerprint: ClassificationResult(
                fingerprint=item.fingerprint, label="BLOCK", confidence=0.9
            )
            for item in items
            if item.fingerprint not in self._skip
        }


def _batcher(sender: RecordingSender, **overrides) -> RequestBatcher:
    values = dict(batch_size=25, max_wait_ms=5000, redrain_delay_ms=100)
    values.update(overrides)
    return RequestBatcher(sender, BatcherConfig(**values))


async def _gather(futures, timeout: float = 2.0):
    return await asyncio.wait_for(asyncio.gather(*futures), timeout=timeout)


class TestEnqueueValidation:
    """enqueue() rejects missing input before touching the queue."""

    @pytest.mark.parametrize(
        "fingerprint,content",
        [("", "text"), ("fp", ""), (None, "text"), ("fp", None)],
    )
    def test_missing_argument_raises(self, fingerprint, content) -> None:
        batcher = _batcher(RecordingSender())
        with pytest.raises(InvalidArgumentError, match="required"):
            batcher.enqueue(fingerprint, content)
        assert batcher.size() == 0


class TestTriggers:
    """Size threshold and timer triggers."""

    async def test_full_batch_sends_without_waiting(self) -> None:
        sender = RecordingSender()
        batcher = _batcher(sender, batch_size=3, max_wait_ms=5000)

        futures = [batcher.enqueue(f"fp-{i}", f"post {i}") for i in range(3)]
        results = await _gather(futures, timeout=1.0)

        assert sender.batches == [["fp-0", "fp-1", "fp-2"]]
        assert [r.fingerprint for r in results] == ["fp-0", "fp-1", "fp-2"]
        assert all(r.label == "BLOCK" for r in results)
        assert batcher.size() == 0

    async def test_single_item_sent_when_timer_fires(self) -> None:
        sender = RecordingSender()
        batcher = _batcher(sender, max_wait_ms=50)

        future = batcher.enqueue("only", "lonely post")
        await asyncio.sleep(0.01)
        assert sender.batches == []
        assert batcher.stats()["timer_armed"] is True

        result = await asyncio.wait_for(future, timeout=1.0)
        assert sender.batches == [["only"]]
        assert result.label == "BLOCK"
        assert batcher.stats()["timer_armed"] is False

    async def test_timer_armed_once_for_several_items(self) -> None:
        sender = RecordingSender()
        batcher = _batcher(sender, max_wait_ms=50)

        futures = [batcher.enqueue(f"fp-{i}", "text") for i in range(4)]
        await _gather(futures)
        assert sender.batches == [["fp-0", "fp-1", "fp-2", "fp-3"]]

    async def test_backlog_drains_fifo_in_batch_sized_cuts(self) -> None:
        sender = RecordingSender()
        batcher = _batcher(sender, batch_size=2, redrain_delay_ms=10)

        futures = [batcher.enqueue(f"fp-{i}", "text") for i in range(5)]
        await _gather(futures)
        assert sender.batches == [["fp-0", "fp-1"], ["fp-2", "fp-3"], ["fp-4"]]

    async def test_thirty_items_two_batches_with_quick_redrain(self) -> None:
        sender = RecordingSender()
        batcher = _batcher(sender, batch_size=25, max_wait_ms=5000, redrain_delay_ms=100)
        loop = asyncio.get_running_loop()

        start = loop.time()
        futures = [batcher.enqueue(f"fp-{i}", f"post {i}") for i in range(30)]
        results = await _gather(futures, timeout=2.0)
        elapsed = loop.time() - start

        assert [len(b) for b in sender.batches] == [25, 5]
        assert sender.batches[0] == [f"fp-{i}" for i in range(25)]
        assert sender.batches[1] == [f"fp-{i}" for i in range(25, 30)]
        assert {r.fingerprint for r in results} == {f"fp-{i}" for i in range(30)}
        assert elapsed < 1.0
        assert batcher.size() == 0
        assert batcher.stats()["requests_resolved"] == 30


class TestResolution:
    """How results are fanned back out."""

    async def test_missing_result_defaults_to_allow(self) -> None:
        sender = RecordingSender(skip={"fp-1"})
        batcher = _batcher(sender, batch_size=2)

        first, second = await _gather([
            batcher.enqueue("fp-0", "a"),
            batcher.enqueue("fp-1", "b"),
        ])
        assert first.label == "BLOCK"
        assert second.label == "ALLOW"
        assert second.confidence == 0.0
        assert second.failed_open is False
        assert batcher.stats()["defaulted_results"] == 1

    async def test_raising_sender_still_resolves_everyone(self) -> None:
        sender = RecordingSender(error=RuntimeError("transport bug"))
        batcher = _batcher(sender, batch_size=2)

        results = await _gather([
            batcher.enqueue("fp-0", "a"),
            batcher.enqueue("fp-1", "b"),
        ])
        assert all(r.label == "ALLOW" and r.failed_open for r in results)
        assert batcher.stats()["failed_open_results"] == 2

    async def test_process_batch_on_empty_queue_is_noop(self) -> None:
        sender = RecordingSender()
        batcher = _batcher(sender)
        await batcher.process_batch()
        assert sender.batches == []
        assert batcher.stats()["batches_sent"] == 0


class TestQueueControl:
    """flush(), clear(), drain() and size()."""

    async def test_flush_sends_immediately(self) -> None:
        sender = RecordingSender()
        batcher = _batcher(sender)

        futures = [batcher.enqueue(f"fp-{i}", "text") for i in range(2)]
        assert batcher.size() == 2

        await batcher.flush()
        assert sender.batches == [["fp-0", "fp-1"]]
        assert all(f.done() for f in futures)
        assert batcher.stats()["timer_armed"] is False

    async def test_clear_resolves_without_network(self) -> None:
        sender = RecordingSender()
        batcher = _batcher(sender)

        futures = [batcher.enqueue(f"fp-{i}", "text") for i in range(3)]
        assert batcher.clear() == 3

        assert batcher.size() == 0
        assert sender.batches == []
        for future in futures:
            assert future.done()
            result = future.result()
            assert result.label == "ALLOW"
            assert result.confidence == 0.0
            assert result.abandoned is True
            assert result.failed_open is False
        assert batcher.stats()["timer_armed"] is False
        assert batcher.stats()["cleared_requests"] == 3

    async def test_clear_cancels_timer(self) -> None:
        sender = RecordingSender()
        batcher = _batcher(sender, max_wait_ms=20)

        batcher.enqueue("fp", "text")
        batcher.clear()
        await asyncio.sleep(0.05)
        assert sender.batches == []

    async def test_drain_empties_queue(self) -> None:
        sender = RecordingSender()
        batcher = _batcher(sender, batch_size=2, redrain_delay_ms=5000)

        futures = [batcher.enqueue(f"fp-{i}", "text") for i in range(5)]
        await asyncio.wait_for(batcher.drain(), timeout=1.0)

        assert batcher.size() == 0
        assert all(f.done() for f in futures)
        assert sorted(sum(sender.batches, [])) == sorted(f"fp-{i}" for i in range(5))
        assert batcher.stats()["timer_armed"] is False

    async def test_drain_sends_items_enqueued_during_a_pending_cut(self) -> None:
        late: List[asyncio.Future] = []

        class EnqueueingSender(RecordingSender):
            async def send_batch(self, items):
                result = await super().send_batch(items)
                if not late:
                    late.append(batcher.enqueue("fp-late", "text"))
                return result

        sender = EnqueueingSender()
        batcher = _batcher(sender, batch_size=2, max_wait_ms=5000)
        first = [batcher.enqueue(f"fp-{i}", "text") for i in range(2)]
        await asyncio.sleep(0)
        assert batcher.size() == 0

        await asyncio.wait_for(batcher.drain(), timeout=1.0)

        assert all(f.done() for f in first)
        assert late[0].done()
        assert late[0].result().label == "BLOCK"
        assert sender.batches == [["fp-0", "fp-1"], ["fp-late"]]
        assert batcher.size() == 0
        assert batcher.stats()["timer_armed"] is False


class TestCancellation:
    """A cancelled cut still resolves its requests."""

    async def test_cancelled_send_resolves_batch_as_abandoned(self) -> None:
        release = asyncio.Event()

        class HangingSender(RecordingSender):
            async def send_batch(self, items):
                self.batches.append([item.fingerprint for item in items])
                await release.wait()
                return {}

        sender = HangingSender()
        batcher = _batcher(sender)
        futures = [batcher.enqueue(f"fp-{i}", "text") for i in range(2)]

        cut = asyncio.ensure_future(batcher.flush())
        await asyncio.sleep(0.01)
        assert sender.batches == [["fp-0", "fp-1"]]
        cut.cancel()
        with pytest.raises(asyncio.CancelledError):
            await cut

        results = await _gather(futures, timeout=1.0)
        assert all(r.label == "ALLOW" and r.abandoned for r in results)
        assert batcher.stats()["batches_sent"] == 0

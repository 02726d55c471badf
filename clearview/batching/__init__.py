"""Request batching (size- and time-bounded)."""

from clearview.batching.batcher import BatcherConfig, BatchSender, RequestBatcher

__all__ = [
    "BatcherConfig",
    "BatchSender",
    "RequestBatcher",
]

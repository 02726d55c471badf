"""Deterministic fingerprints for posts and content."""

from clearview.hashing.benchmark import HASH_FUNCTIONS, HashBenchmark, benchmark_hash
from clearview.hashing.functions import (
    combined_hash,
    content_fingerprint,
    djb_xor_hash,
    fnv1a,
    murmur32,
    post_fingerprint,
)

__all__ = [
    "HASH_FUNCTIONS",
    "HashBenchmark",
    "benchmark_hash",
    "combined_hash",
    "content_fingerprint",
    "djb_xor_hash",
    "fnv1a",
    "murmur32",
    "post_fingerprint",
]

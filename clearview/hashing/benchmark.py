"""
Micro-benchmark for the hash suite.

Used from the command line (``python main.py benchmark``) to compare the
per-call cost of each digest on representative post text.
"""

import logging
import time
from typing import Callable, Dict

from pydantic import BaseModel, Field

from clearview.exceptions import InvalidArgumentError
from clearview.hashing.functions import combined_hash, djb_xor_hash, fnv1a, murmur32

logger = logging.getLogger(__name__)

HASH_FUNCTIONS: Dict[str, Callable[[str], str]] = {
    "fnv1a": fnv1a,
    "murmur": murmur32,
    "simple": djb_xor_hash,
    "combined": combined_hash,
}


class HashBenchmark(BaseModel):
    """Timing for one hash function.

    Attributes:
        function: Registered name of the hash function.
        iterations: How many times it was called.
        total_ms: Wall time for all iterations in milliseconds.
        avg_microseconds: Mean time per call in microseconds.
    """

    function: str
    iterations: int = Field(ge=1)
    total_ms: float = Field(ge=0.0)
    avg_microseconds: float = Field(ge=0.0)


def benchmark_hash(
    name: str,
    text: str = "test tweet content here",
    iterations: int = 100_000,
) -> HashBenchmark:
    """Time *iterations* calls of the hash function registered as *name*.

    Raises:
        InvalidArgumentError: If *name* is unknown or *iterations* < 1.
    """
    fn = HASH_FUNCTIONS.get(name)
    if fn is None:
        raise InvalidArgumentError(
            f"Unknown hash function: {name} (expected one of {sorted(HASH_FUNCTIONS)})"
        )
    if iterations < 1:
        raise InvalidArgumentError("iterations must be at least 1")

    start = time.perf_counter()
    for _ in range(iterations):
        fn(text)
    total_ms = (time.perf_counter() - start) * 1000

    result = HashBenchmark(
        function=name,
        iterations=iterations,
        total_ms=total_ms,
        avg_microseconds=(total_ms * 1000) / iterations,
    )
    logger.debug(
        "Hash benchmark complete",
        extra={"function": name, "iterations": iterations, "total_ms": round(total_ms, 3)},
    )
    return result

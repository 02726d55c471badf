"""
CLI entry point for the ClearView classifier client.

Usage:
    python main.py hash --text "..." [--post-id 123]
    python main.py benchmark [--iterations 100000] [--text "..."]
    python main.py health [--endpoint URL]
    python main.py classify --text "..." [--text "..."] [--endpoint URL]
"""

import argparse
import asyncio
import json
import logging
import sys

from clearview.client import ClassificationClient
from clearview.config import get_settings
from clearview.hashing import (
    HASH_FUNCTIONS,
    benchmark_hash,
    combined_hash,
    content_fingerprint,
    djb_xor_hash,
    fnv1a,
    murmur32,
    post_fingerprint,
)
from clearview.models import BatchItem


def configure_logging() -> None:
    """Configure the root logger from ``settings.logging``."""
    _s = get_settings().logging
    logging.basicConfig(level=_s.level.upper(), format=_s.format)


def cmd_hash(args):
    """Print every digest of a text."""
    digests = {
        "fnv1a": fnv1a(args.text),
        "murmur32": murmur32(args.text),
        "djb_xor": djb_xor_hash(args.text),
        "combined": combined_hash(args.text),
        "content_fingerprint": content_fingerprint(args.text),
    }
    if args.post_id is not None:
        digests["post_fingerprint"] = post_fingerprint(args.post_id, args.text)
    print(json.dumps(digests, indent=2))


def cmd_benchmark(args):
    """Time each hash function."""
    names = [args.function] if args.function else list(HASH_FUNCTIONS)
    for name in names:
        result = benchmark_hash(name, args.text, args.iterations)
        print(
            f"  {result.function:<9} {result.total_ms:10.2f} ms total, "
            f"{result.avg_microseconds:8.3f} us/call"
        )


def _client(args) -> ClassificationClient:
    client = ClassificationClient.from_settings()
    if args.endpoint:
        client.set_endpoint(args.endpoint)
    return client


def cmd_health(args):
    """Probe the classifier endpoint."""

    async def run() -> bool:
        client = _client(args)
        try:
            return await client.health_check()
        finally:
            await client.aclose()

    healthy = asyncio.run(run())
    print(f"{args.endpoint or get_settings().transport.endpoint}: {'OK' if healthy else 'UNREACHABLE'}")
    if not healthy:
        sys.exit(1)


def cmd_classify(args):
    """Classify texts immediately and print the results."""

    async def run():
        client = _client(args)
        items = [
            BatchItem(fingerprint=content_fingerprint(text), content=text)
            for text in args.text
        ]
        try:
            return await client.classify_batch(items)
        finally:
            await client.aclose()

    results = asyncio.run(run())
    print(json.dumps(
        {fp: result.model_dump() for fp, result in results.items()},
        indent=2,
    ))


def main():
    parser = argparse.ArgumentParser(
        description="ClearView - batched content classification client"
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # hash
    p_hash = subparsers.add_parser("hash", help="Print fingerprints of a text")
    p_hash.add_argument("--text", required=True, help="Input text")
    p_hash.add_argument("--post-id", default=None, help="Post id for post_fingerprint")

    # benchmark
    p_bench = subparsers.add_parser("benchmark", help="Time the hash functions")
    p_bench.add_argument("--text", default="test tweet content here")
    p_bench.add_argument("--iterations", type=int, default=100000)
    p_bench.add_argument("--function", choices=sorted(HASH_FUNCTIONS), default=None)

    # health
    p_health = subparsers.add_parser("health", help="Probe the classifier")
    p_health.add_argument("--endpoint", default=None, help="Override endpoint")

    # classify
    p_classify = subparsers.add_parser("classify", help="Classify texts now")
    p_classify.add_argument("--text", action="append", required=True,
                            help="Text to classify (repeatable)")
    p_classify.add_argument("--endpoint", default=None, help="Override endpoint")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    configure_logging()

    commands = {
        "hash": cmd_hash,
        "benchmark": cmd_benchmark,
        "health": cmd_health,
        "classify": cmd_classify,
    }
    commands[args.command](args)


if __name__ == "__main__":
    main()

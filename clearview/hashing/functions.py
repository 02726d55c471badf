"""
Fast, deterministic, non-cryptographic hashes for short strings.

These digests are used as batch keys and deduplication fingerprints, so
their exact bit-level output is part of the wire contract: a post
fingerprinted by one client must map to the same key everywhere.

``fnv1a`` is true 32-bit FNV-1a with exact wraparound.  Browser code that
computes ``(hash * prime) >>> 0`` in floating point loses low bits once
the product passes 2**53, so its digests differ for most inputs (for
``"hello world"`` it yields ``cad44818`` where this module gives
``d58b3fa7``).  Fingerprints built on ``fnv1a`` (``content_fingerprint``
and the first half of ``combined_hash``) therefore do not match such
clients.  ``murmur32`` and ``djb_xor_hash`` stay within safe integer
range and match them exactly.

Strings are consumed as UTF-16 code units (the same units browsers
expose through ``charCodeAt``).  For text in the Basic Multilingual Plane
this is identical to iterating over code points; characters outside it
contribute their two surrogate units.  Length, where it is mixed in, is
likewise the number of UTF-16 units.

None of these functions are collision resistant in the cryptographic
sense and must not be used where an adversary chooses the input.
"""

import struct
from typing import Tuple

_MASK32 = 0xFFFFFFFF

FNV_OFFSET_BASIS = 0x811C9DC5
FNV_PRIME = 0x01000193

MURMUR_C1 = 0xCC9E2D51
MURMUR_C2 = 0x1B873593

DJB_SEED = 5381


def _code_units(text: str) -> Tuple[int, ...]:
    """Return the UTF-16 code units of *text*."""
    data = text.encode("utf-16-le", "surrogatepass")
    return struct.unpack(f"<{len(data) // 2}H", data)


def _rotl32(value: int, bits: int) -> int:
    return ((value << bits) | (value >> (32 - bits))) & _MASK32


def _hex32(value: int) -> str:
    return format(value & _MASK32, "08x")


def fnv1a(text: str) -> str:
    """32-bit FNV-1a digest as 8 lowercase hex characters.

    The multiply wraps modulo 2**32 exactly, unlike float-based browser
    variants.
    """
    h = FNV_OFFSET_BASIS
    for unit in _code_units(text):
        h ^= unit
        h = (h * FNV_PRIME) & _MASK32
    return _hex32(h)


def murmur32(text: str) -> str:
    """MurmurHash3-style 32-bit digest, one code unit per block.

    Each unit is mixed as its own block (``c1``, rotl 15, ``c2``), folded
    into the running hash (rotl 13, ``h * 5 + 0xe6546b64``), then the
    length is XORed in and the standard ``fmix32`` avalanche applied.
    """
    units = _code_units(text)
    h = 0
    for unit in units:
        k = (unit * MURMUR_C1) & _MASK32
        k = _rotl32(k, 15)
        k = (k * MURMUR_C2) & _MASK32

        h ^= k
        h = _rotl32(h, 13)
        h = (h * 5 + 0xE6546B64) & _MASK32

    h ^= len(units)

    h ^= h >> 16
    h = (h * 0x85EBCA6B) & _MASK32
    h ^= h >> 13
    h = (h * 0xC2B2AE35) & _MASK32
    h ^= h >> 16
    return _hex32(h)


def djb_xor_hash(text: str) -> str:
    """DJB2 variant using XOR: ``h = h * 33 ^ c``, seeded with 5381."""
    h = DJB_SEED
    for unit in _code_units(text):
        h = (((h << 5) + h) ^ unit) & _MASK32
    return _hex32(h)


def combined_hash(text: str) -> str:
    """16 hex characters: ``fnv1a(text) + murmur32(text)``."""
    return fnv1a(text) + murmur32(text)


def post_fingerprint(post_id: str, content: str) -> str:
    """Fingerprint for a specific post: id and content together."""
    return "post_" + combined_hash(f"{post_id}|{content}")


def content_fingerprint(content: str) -> str:
    """Fingerprint for text alone, for deduplication.

    Case and surrounding whitespace are normalised away, so cosmetically
    different copies of the same text share a fingerprint.
    """
    return "hash_" + fnv1a(content.strip().lower())

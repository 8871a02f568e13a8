"""
Governance Hashing

All digests are SHA-256. Hex output is lowercase with no prefix, matching
the ``target_hash`` field of signature envelopes.
"""

import hashlib
import hmac
from pathlib import Path
from typing import BinaryIO, Iterable, Union

from .config import HASH_CHUNK_SIZE

DIGEST_SIZE = 32


def sha256_bytes(data: Union[bytes, str]) -> bytes:
    """Compute SHA-256 and return the raw 32-byte digest."""
    if isinstance(data, str):
        data = data.encode('utf-8')
    return hashlib.sha256(data).digest()


def sha256_hex(data: Union[bytes, str]) -> str:
    """Compute SHA-256 and return it as lowercase hex."""
    return sha256_bytes(data).hex()


def sha256_chunks(chunks: Iterable[bytes]) -> bytes:
    """Digest an iterable of byte chunks without joining them."""
    h = hashlib.sha256()
    for chunk in chunks:
        h.update(chunk)
    return h.digest()


def sha256_stream(stream: BinaryIO, chunk_size: int = HASH_CHUNK_SIZE) -> bytes:
    """Digest a binary stream, reading ``chunk_size`` bytes at a time."""
    return sha256_chunks(iter(lambda: stream.read(chunk_size), b""))


def sha256_file(path: Union[str, Path], chunk_size: int = HASH_CHUNK_SIZE) -> bytes:
    """
    Digest a file on disk.

    Reads in fixed-size chunks so multi-gigabyte release binaries never
    have to fit in memory.
    """
    with open(path, "rb") as f:
        return sha256_stream(f, chunk_size)


def digests_equal(a: bytes, b: bytes) -> bool:
    """Compare two digests in constant time."""
    return hmac.compare_digest(a, b)

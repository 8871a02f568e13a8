"""
Release Artifact Targets

Maps release artifacts (binaries, verification bundles and SHA256SUMS
manifests) to the content digests that get signed.

All three kinds hash the raw file bytes. A checksums manifest is treated
as an opaque blob: its "hash  filename" lines are never parsed, so any
byte-level change (reordering, whitespace, line endings) invalidates a
prior signature.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Union

from .config import HASH_CHUNK_SIZE
from .errors import InvalidInputError
from .hashing import DIGEST_SIZE, sha256_bytes, sha256_file, sha256_stream
from .messages import ARTIFACT_TYPES, TargetType

logger = logging.getLogger(__name__)


class BinaryType:
    """Binary classes recorded in envelope metadata."""
    CONSENSUS = "consensus"
    PROTOCOL = "protocol"
    APPLICATION = "application"

    ALL = (CONSENSUS, PROTOCOL, APPLICATION)


@dataclass(frozen=True)
class ArtifactTarget:
    """
    A release artifact reduced to its type tag and SHA-256 content digest.

    The type is part of what gets signed, so the same digest under two
    different types yields two unrelated signing payloads.
    """
    target_type: TargetType
    content_hash: bytes

    def __post_init__(self):
        try:
            target_type = TargetType(self.target_type)
        except ValueError:
            raise InvalidInputError(f"Unknown artifact type: {self.target_type!r}")
        if target_type not in ARTIFACT_TYPES:
            raise InvalidInputError(f"{target_type.value} is not an artifact type")
        if len(self.content_hash) != DIGEST_SIZE:
            raise InvalidInputError(
                f"content hash must be {DIGEST_SIZE} bytes, got {len(self.content_hash)}"
            )
        object.__setattr__(self, "target_type", target_type)
        object.__setattr__(self, "content_hash", bytes(self.content_hash))

    @property
    def content_hash_hex(self) -> str:
        return self.content_hash.hex()

    @classmethod
    def from_bytes(cls, target_type: TargetType, data: bytes) -> 'ArtifactTarget':
        """Build a target from in-memory artifact bytes."""
        return cls(target_type, sha256_bytes(data))

    @classmethod
    def from_stream(
        cls,
        target_type: TargetType,
        stream: BinaryIO,
        chunk_size: int = HASH_CHUNK_SIZE
    ) -> 'ArtifactTarget':
        return cls(target_type, sha256_stream(stream, chunk_size))

    @classmethod
    def from_file(
        cls,
        target_type: TargetType,
        path: Union[str, Path],
        chunk_size: int = HASH_CHUNK_SIZE
    ) -> 'ArtifactTarget':
        """
        Build a target by streaming a file from disk.

        The file is read in ``chunk_size`` pieces, so memory use is bounded
        regardless of artifact size.
        """
        digest = sha256_file(path, chunk_size)
        logger.debug("Hashed %s artifact %s: %s", TargetType(target_type).value, path, digest.hex())
        return cls(target_type, digest)

    # Per-kind constructors

    @classmethod
    def binary(cls, data: bytes) -> 'ArtifactTarget':
        return cls.from_bytes(TargetType.BINARY, data)

    @classmethod
    def bundle(cls, data: bytes) -> 'ArtifactTarget':
        return cls.from_bytes(TargetType.BUNDLE, data)

    @classmethod
    def checksums(cls, data: Union[bytes, str]) -> 'ArtifactTarget':
        """Checksums manifests are signed byte-for-byte, never normalized."""
        if isinstance(data, str):
            data = data.encode('utf-8')
        return cls.from_bytes(TargetType.CHECKSUMS, data)


def validate_binary_type(binary_type: str) -> str:
    if binary_type not in BinaryType.ALL:
        raise InvalidInputError(
            f"Invalid binary type '{binary_type}': must be one of {list(BinaryType.ALL)}"
        )
    return binary_type

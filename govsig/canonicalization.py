"""
Governance Canonical Encoding

Produces the exact byte sequence that is hashed and signed for every
governance message and artifact target.

Rules:
- First byte is a tag unique to the target type, so a signature over one
  type can never be replayed as a signature over another
- Message fields follow a fixed per-variant order, never sorted or map order
- Each message field is UTF-8, prefixed by its length as a 4-byte
  big-endian unsigned integer
- Artifact targets are the tag followed by the raw 32-byte content digest
"""

import struct
from typing import Dict, Tuple

from .hashing import DIGEST_SIZE
from .messages import (
    BudgetDecision,
    GovernanceMessage,
    ModuleApproval,
    Release,
    TargetType,
)

TARGET_TAGS: Dict[TargetType, int] = {
    TargetType.RELEASE: 0x01,
    TargetType.MODULE_APPROVAL: 0x02,
    TargetType.BUDGET_DECISION: 0x03,
    TargetType.BINARY: 0x11,
    TargetType.BUNDLE: 0x12,
    TargetType.CHECKSUMS: 0x13,
}


def target_tag(target_type: TargetType) -> bytes:
    """Return the single tag byte for a target type."""
    return bytes([TARGET_TAGS[TargetType(target_type)]])


def encode_field(value: str) -> bytes:
    """Length-prefix a UTF-8 string field."""
    raw = value.encode('utf-8')
    return struct.pack(">I", len(raw)) + raw


def message_fields(message: GovernanceMessage) -> Tuple[str, ...]:
    """Fields of a message in their signing order."""
    if isinstance(message, Release):
        return (message.version, message.commit_hash)
    if isinstance(message, ModuleApproval):
        return (message.module_name, message.version)
    if isinstance(message, BudgetDecision):
        return (str(message.amount), message.purpose)
    raise TypeError(f"Cannot encode message of type {type(message).__name__}")


def encode_message(message: GovernanceMessage) -> bytes:
    """
    Canonically encode a governance message.

    Returns:
        tag || len(field_1) || field_1 || ... || len(field_n) || field_n
    """
    fields = message_fields(message)
    return target_tag(message.target_type) + b"".join(encode_field(f) for f in fields)


def encode_artifact(target_type: TargetType, content_digest: bytes) -> bytes:
    """
    Canonically encode an artifact target.

    Returns:
        tag || content_digest (33 bytes)
    """
    target_type = TargetType(target_type)
    if not target_type.is_artifact:
        raise TypeError(f"{target_type.value} is not an artifact target")
    if len(content_digest) != DIGEST_SIZE:
        raise ValueError(f"content digest must be {DIGEST_SIZE} bytes, got {len(content_digest)}")
    return target_tag(target_type) + bytes(content_digest)

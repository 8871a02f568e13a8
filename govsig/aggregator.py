"""
Signature Aggregation

Merges independently produced envelopes (single-signer or previously
aggregated) for the same target into one aggregated envelope.

Merge rules:
- Every input must carry the same target_type and target_hash
- The result is the union of well-formed entries; entries whose signer
  or signature does not decode are dropped and logged
- An entry that verifies under its claimed signer is keyed by that
  signer, and the first one seen wins
- An entry that does not verify under its claimed signer is kept, keyed
  by its signature bytes, so it can neither shadow nor be shadowed by
  that signer's real entry
- Whether an entry counts toward quorum is decided by MultisigPolicy at
  verification time, never here
- The result's signer set does not depend on input order or grouping
- The embedded threshold is informational only
"""

import logging
from typing import Iterable, List, Optional, Set

from .envelope import AggregatedEnvelope, Envelope, SignatureEntry
from .errors import GovernanceError, InvalidInputError, TargetMismatchError
from .logging_config import audit_log
from .signing import signing_digest_for

logger = logging.getLogger(__name__)


def _check_same_target(envelopes: List[Envelope]) -> None:
    first = envelopes[0]
    for index, envelope in enumerate(envelopes[1:], start=1):
        if envelope.target_type != first.target_type:
            raise TargetMismatchError(
                f"input {index} targets {envelope.target_type.value}, "
                f"input 0 targets {first.target_type.value}"
            )
        if envelope.target_hash != first.target_hash:
            raise TargetMismatchError(
                f"input {index} has target_hash {envelope.target_hash}, "
                f"input 0 has {first.target_hash}"
            )


def _entry_key(entry: SignatureEntry, digest: bytes) -> Optional[str]:
    """
    Deduplication key for an entry.

    Returns:
        The signer hex when the entry verifies under its claimed signer,
        otherwise "sig:" plus the signature hex; None when the entry is
        malformed
    """
    try:
        public_key = entry.public_key()
        signature = entry.signature_obj()
    except GovernanceError as e:
        audit_log.signature_rejected(entry.signer, e.code)
        return None
    if public_key.verify(digest, signature):
        return entry.signer
    logger.debug("Entry claiming signer %s does not verify under it; keyed by signature", entry.signer)
    return "sig:" + entry.signature


def merge_entries(envelopes: Iterable[Envelope], digest: bytes) -> List[SignatureEntry]:
    """Union of well-formed signature entries in first-seen order."""
    seen: Set[str] = set()
    merged: List[SignatureEntry] = []
    for envelope in envelopes:
        for entry in envelope.entries():
            key = _entry_key(entry, digest)
            if key is None:
                continue
            if key in seen:
                logger.debug("Dropping duplicate entry for signer %s", entry.signer)
                continue
            seen.add(key)
            merged.append(entry)
    return merged


def _informational_threshold(envelopes: List[Envelope]) -> Optional[int]:
    for envelope in envelopes:
        threshold = getattr(envelope, "threshold", None)
        if threshold is not None:
            return threshold
    return None


def aggregate(envelopes: Iterable[Envelope], threshold: Optional[int] = None) -> AggregatedEnvelope:
    """
    Merge envelopes into one aggregated envelope.

    Args:
        envelopes: Single-signer and/or aggregated envelopes for one target
        threshold: Informational threshold to record; defaults to the first
            threshold found in the inputs

    Raises:
        InvalidInputError: no envelopes given
        TargetMismatchError: inputs disagree on target_type or target_hash
    """
    envelopes = list(envelopes)
    if not envelopes:
        raise InvalidInputError("at least one envelope is required")
    if threshold is not None and (isinstance(threshold, bool) or not isinstance(threshold, int) or threshold < 1):
        raise InvalidInputError(f"threshold must be a positive integer, got {threshold!r}")
    _check_same_target(envelopes)

    first = envelopes[0]
    for envelope in envelopes[1:]:
        if envelope.metadata != first.metadata:
            logger.warning(
                "Envelope metadata differs between inputs; keeping the first (%s)",
                first.metadata.model_dump(exclude_none=True)
            )
            break

    digest = signing_digest_for(first.target_type, first.target_hash_bytes)
    entries = merge_entries(envelopes, digest)

    result = AggregatedEnvelope(
        target_type=first.target_type,
        target_hash=first.target_hash,
        signatures=entries,
        threshold=threshold if threshold is not None else _informational_threshold(envelopes),
        metadata=first.metadata,
    )
    audit_log.envelopes_aggregated(
        result.target_type.value,
        result.target_hash,
        len(envelopes),
        result.signers()
    )
    return result

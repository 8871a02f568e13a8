"""
Multisig Threshold Policy

A policy is an ordered set of authorized maintainer keys plus a threshold.
It is always supplied by the verifier, never read from the envelope being
checked.

Evaluation rules:
- Each signature is matched by scanning the authorized keys; a
  signature's self-reported signer is never trusted
- Signatures that match no authorized key are dropped, not errors
- Two signatures resolving to the same key count once
- Quorum is met when the number of distinct matched keys >= threshold
- Input order never affects the result
"""

import logging
import re
from dataclasses import dataclass
from typing import FrozenSet, Iterable, Optional, Sequence, Tuple

from .errors import (
    InsufficientSignaturesError,
    InvalidInputError,
    InvalidMultisigError,
    InvalidThresholdError,
)
from .keys import PublicKey, Signature

logger = logging.getLogger(__name__)

THRESHOLD_PATTERN = re.compile(r'^\s*(\d+)-of-(\d+)\s*$')


@dataclass(frozen=True)
class QuorumResult:
    """Outcome of evaluating signatures against a policy."""
    signer_indices: FrozenSet[int]
    need: int
    rejected: int = 0

    @property
    def got(self) -> int:
        return len(self.signer_indices)

    @property
    def met(self) -> bool:
        return self.got >= self.need

    def to_dict(self):
        return {
            "got": self.got,
            "need": self.need,
            "met": self.met,
            "signer_indices": sorted(self.signer_indices),
            "rejected": self.rejected,
        }


class MultisigPolicy:
    """
    Immutable t-of-n policy over authorized public keys.

    Raises:
        InvalidThresholdError: threshold outside [1, n]
        InvalidMultisigError: the same key listed twice
    """

    __slots__ = ("_threshold", "_keys")

    def __init__(self, threshold: int, public_keys: Sequence[PublicKey]):
        keys = tuple(public_keys)
        if isinstance(threshold, bool) or not isinstance(threshold, int):
            raise InvalidThresholdError(threshold, len(keys))
        if threshold < 1 or threshold > len(keys):
            raise InvalidThresholdError(threshold, len(keys))
        if len(set(keys)) != len(keys):
            raise InvalidMultisigError("authorized keys must be unique")
        self._threshold = threshold
        self._keys = keys

    @classmethod
    def from_hex(cls, threshold: int, public_keys_hex: Iterable[str]) -> 'MultisigPolicy':
        return cls(threshold, [PublicKey.from_hex(k) for k in public_keys_hex])

    @property
    def threshold(self) -> int:
        return self._threshold

    @property
    def total(self) -> int:
        return len(self._keys)

    @property
    def public_keys(self) -> Tuple[PublicKey, ...]:
        return self._keys

    def is_valid_signature(self, signature: Signature, digest: bytes) -> Optional[int]:
        """
        Find the authorized key that produced ``signature``.

        Returns:
            Index of the first authorized key that verifies the signature
            over ``digest``, or None
        """
        for index, key in enumerate(self._keys):
            if key.verify(digest, signature):
                return index
        return None

    def evaluate(self, digest: bytes, signatures: Iterable[Signature]) -> QuorumResult:
        """Match every signature and report the distinct signers found."""
        found = set()
        rejected = 0
        for signature in signatures:
            index = self.is_valid_signature(signature, digest)
            if index is None:
                rejected += 1
                logger.debug("Signature %s matches no authorized key", signature.to_hex()[:16])
                continue
            found.add(index)
        return QuorumResult(frozenset(found), self._threshold, rejected)

    def collect_valid_signatures(self, digest: bytes, signatures: Iterable[Signature]) -> FrozenSet[int]:
        """Indices of authorized keys with at least one valid signature."""
        return self.evaluate(digest, signatures).signer_indices

    def verify(self, digest: bytes, signatures: Iterable[Signature]) -> bool:
        """True iff distinct valid signers >= threshold. Never raises."""
        return self.evaluate(digest, signatures).met

    def require(self, digest: bytes, signatures: Iterable[Signature]) -> QuorumResult:
        """
        Like verify, but raise when quorum is not met.

        Raises:
            InsufficientSignaturesError: with how many approvals were found
                and how many are needed
        """
        result = self.evaluate(digest, signatures)
        if not result.met:
            raise InsufficientSignaturesError(result.got, result.need)
        return result

    def __repr__(self) -> str:
        return f"MultisigPolicy({self._threshold}-of-{self.total})"


def parse_threshold(value: str) -> Tuple[int, int]:
    """
    Parse a threshold string like "3-of-5".

    Returns:
        Tuple of (threshold, total). Range checking is left to MultisigPolicy.
    """
    match = THRESHOLD_PATTERN.match(value or "")
    if not match:
        raise InvalidInputError(f"Invalid threshold format '{value}': expected 'N-of-M'")
    return int(match.group(1)), int(match.group(2))

"""
Governance Signing

Single-signer signing of governance messages and release artifacts.

What gets signed:
- Governance message: SHA-256(encode_message(message)); this is also the
  envelope's target_hash
- Artifact: SHA-256(tag || SHA-256(file bytes)); the envelope's
  target_hash is the plain content digest so it can be compared with
  independently computed checksums
"""

import time
from typing import Callable, Optional, Union

from .artifacts import ArtifactTarget, BinaryType, validate_binary_type
from .canonicalization import encode_artifact, encode_message
from .envelope import EnvelopeMetadata, SignatureEnvelope
from .hashing import sha256_bytes
from .keys import Keypair, PublicKey, Signature
from .logging_config import audit_log
from .messages import (
    BudgetDecision,
    GovernanceMessage,
    ModuleApproval,
    Release,
    TargetType,
)


Target = Union[ArtifactTarget, Release, ModuleApproval, BudgetDecision]


def target_type_of(target: Target) -> TargetType:
    if isinstance(target, ArtifactTarget):
        return target.target_type
    if isinstance(target, (Release, ModuleApproval, BudgetDecision)):
        return target.target_type
    raise TypeError(f"Not a signing target: {type(target).__name__}")


def target_hash(target: Target) -> bytes:
    """The 32-byte hash recorded in an envelope for this target."""
    if isinstance(target, ArtifactTarget):
        return target.content_hash
    if isinstance(target, (Release, ModuleApproval, BudgetDecision)):
        return sha256_bytes(encode_message(target))
    raise TypeError(f"Not a signing target: {type(target).__name__}")


def signing_digest_for(target_type: TargetType, hash_bytes: bytes) -> bytes:
    """
    Digest that signatures cover, given an envelope's type and hash.

    Lets verifiers evaluate signatures from envelope fields alone, once the
    hash itself has been checked against the real target.
    """
    target_type = TargetType(target_type)
    if target_type.is_artifact:
        return sha256_bytes(encode_artifact(target_type, hash_bytes))
    # Message hashes already commit to the tagged encoding
    return bytes(hash_bytes)


def signing_digest(target: Target) -> bytes:
    """Digest that signatures over ``target`` cover."""
    return signing_digest_for(target_type_of(target), target_hash(target))


def sign_message(keypair: Keypair, message: GovernanceMessage) -> Signature:
    """Sign a governance message and return the bare signature."""
    return keypair.sign(signing_digest(message))


def verify_message(signature: Signature, message: GovernanceMessage, public_key: PublicKey) -> bool:
    """Verify a bare signature over a governance message."""
    return public_key.verify(signing_digest(message), signature)


def _metadata_for(target: Target, binary_type: Optional[str], version: Optional[str]) -> EnvelopeMetadata:
    if isinstance(target, ArtifactTarget):
        # Only binaries default a binary_type; bundles and manifests carry one if given
        if binary_type is None and target.target_type == TargetType.BINARY:
            binary_type = BinaryType.APPLICATION
        return EnvelopeMetadata(
            binary_type=validate_binary_type(binary_type) if binary_type is not None else None,
            version=version,
        )
    if isinstance(target, (Release, ModuleApproval)):
        return EnvelopeMetadata(version=version or target.version)
    if isinstance(target, BudgetDecision):
        return EnvelopeMetadata(version=version)
    raise TypeError(f"Not a signing target: {type(target).__name__}")


class SigningService:
    """
    Produces single-signer envelopes for one maintainer key.

    Stateless apart from the key and clock; safe to share across threads.
    """

    def __init__(self, keypair: Keypair, clock: Optional[Callable[[], float]] = None):
        self._keypair = keypair
        self._clock = clock or time.time

    @property
    def public_key(self) -> PublicKey:
        return self._keypair.public_key

    def sign_target(
        self,
        target: Target,
        binary_type: Optional[str] = None,
        version: Optional[str] = None
    ) -> SignatureEnvelope:
        """
        Sign a message or artifact target.

        Args:
            target: ArtifactTarget or governance message
            binary_type: consensus, protocol or application (artifacts only;
                binaries default to application)
            version: Release version recorded in metadata

        Returns:
            SignatureEnvelope stamped with the current time
        """
        hash_bytes = target_hash(target)
        target_type = target_type_of(target)
        signature = self._keypair.sign(signing_digest_for(target_type, hash_bytes))

        envelope = SignatureEnvelope(
            target_type=target_type,
            target_hash=hash_bytes.hex(),
            signer=self._keypair.public_key.to_hex(),
            signature=signature.to_hex(),
            timestamp=int(self._clock()),
            metadata=_metadata_for(target, binary_type, version),
        )
        audit_log.envelope_signed(target_type.value, envelope.target_hash, envelope.signer)
        return envelope

    def sign_artifact(
        self,
        target_type: TargetType,
        data: bytes,
        binary_type: Optional[str] = None,
        version: Optional[str] = None
    ) -> SignatureEnvelope:
        """Sign in-memory artifact bytes."""
        return self.sign_target(ArtifactTarget.from_bytes(target_type, data), binary_type, version)


# Convenience functions

def sign_target(
    keypair: Keypair,
    target: Target,
    binary_type: Optional[str] = None,
    version: Optional[str] = None
) -> SignatureEnvelope:
    """Sign a target with a keypair, stamping the current time."""
    return SigningService(keypair).sign_target(target, binary_type, version)

"""
govsig: Governance Signing for Release Artifacts

Version: 0.1.0

Maintainers sign governance decisions (releases, module approvals,
budget decisions) and release artifacts (binaries, verification bundles,
SHA256SUMS manifests) with secp256k1 keys. Signatures travel in JSON
envelopes, can be merged across maintainers, and are checked against a
t-of-n multisig policy that the verifier supplies.

Usage:
    from govsig import (
        ArtifactTarget,
        Keypair,
        MultisigPolicy,
        Release,
        SigningService,
        aggregate,
        verify_quorum,
    )

    # Each maintainer signs independently
    envelope = SigningService(keypair).sign_target(Release("1.0.0", "deadbeef"))

    # Merge envelopes and check quorum
    merged = aggregate([env_a, env_b, env_c])
    policy = MultisigPolicy(3, [pk_a, pk_b, pk_c])
    result = verify_quorum(merged, Release("1.0.0", "deadbeef"), policy)

    if result.is_valid():
        ...
    else:
        result.failure  # e.g. FailureReason.INSUFFICIENT_SIGNATURES
"""

__version__ = "0.1.0"

# Errors
from .errors import (
    GovernanceError,
    InvalidKeyError,
    InvalidSignatureFormatError,
    SignatureVerificationError,
    TargetMismatchError,
    InvalidThresholdError,
    InsufficientSignaturesError,
    InvalidMultisigError,
    MessageFormatError,
    SerializationError,
    InvalidInputError,
)

# Messages and canonical encoding
from .messages import (
    TargetType,
    Release,
    ModuleApproval,
    BudgetDecision,
    GovernanceMessage,
)
from .canonicalization import encode_message, encode_artifact, target_tag
from .hashing import sha256_bytes, sha256_hex, sha256_file

# Keys
from .keys import (
    Keypair,
    PublicKey,
    Signature,
    generate_keypair,
    sign_digest,
    verify_digest,
)

# Artifacts and envelopes
from .artifacts import ArtifactTarget, BinaryType
from .envelope import (
    SignatureEnvelope,
    AggregatedEnvelope,
    SignatureEntry,
    EnvelopeMetadata,
    parse_envelope,
    parse_envelope_json,
    load_envelope,
)

# Signing, multisig, verification, aggregation
from .signing import SigningService, sign_message, verify_message, sign_target, signing_digest
from .multisig import MultisigPolicy, QuorumResult, parse_threshold
from .verifier import (
    EnvelopeVerifier,
    VerificationResult,
    VerificationOutcome,
    FailureReason,
    verify_target,
    verify_quorum,
)
from .aggregator import aggregate


__all__ = [
    "__version__",

    # Errors
    "GovernanceError",
    "InvalidKeyError",
    "InvalidSignatureFormatError",
    "SignatureVerificationError",
    "TargetMismatchError",
    "InvalidThresholdError",
    "InsufficientSignaturesError",
    "InvalidMultisigError",
    "MessageFormatError",
    "SerializationError",
    "InvalidInputError",

    # Messages
    "TargetType",
    "Release",
    "ModuleApproval",
    "BudgetDecision",
    "GovernanceMessage",
    "encode_message",
    "encode_artifact",
    "target_tag",
    "sha256_bytes",
    "sha256_hex",
    "sha256_file",

    # Keys
    "Keypair",
    "PublicKey",
    "Signature",
    "generate_keypair",
    "sign_digest",
    "verify_digest",

    # Envelopes
    "ArtifactTarget",
    "BinaryType",
    "SignatureEnvelope",
    "AggregatedEnvelope",
    "SignatureEntry",
    "EnvelopeMetadata",
    "parse_envelope",
    "parse_envelope_json",
    "load_envelope",

    # Signing and verification
    "SigningService",
    "sign_message",
    "verify_message",
    "sign_target",
    "signing_digest",
    "MultisigPolicy",
    "QuorumResult",
    "parse_threshold",
    "EnvelopeVerifier",
    "VerificationResult",
    "VerificationOutcome",
    "FailureReason",
    "verify_target",
    "verify_quorum",
    "aggregate",
]

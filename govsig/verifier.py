"""
Governance Verification

Checks envelopes against the real target and either a single public key
or a multisig policy.

Verification steps:
1. Target type in the envelope matches the expected target
2. target_hash matches the hash recomputed from the expected target
   (failure here means the artifact changed since signing)
3. Signature(s) verify over the signing digest
4. For multisig: distinct authorized signers >= policy threshold

Tamper (step 1-2) and forgery (step 3) are reported as distinct failures.
Verification returns a VerificationResult rather than raising; call
``raise_for_failure`` to convert a failure into the matching exception.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from .artifacts import ArtifactTarget
from .envelope import Envelope
from .errors import GovernanceError, InvalidSignatureFormatError, error_for_code
from .hashing import digests_equal
from .keys import PublicKey, Signature
from .logging_config import audit_log
from .messages import BudgetDecision, ModuleApproval, Release
from .multisig import MultisigPolicy
from .signing import Target, signing_digest_for, target_hash, target_type_of

Expected = Union[bytes, bytearray, memoryview, ArtifactTarget, Release, ModuleApproval, BudgetDecision]


class VerificationOutcome(str, Enum):
    VALID = "VALID"
    INVALID = "INVALID"


class FailureReason(str, Enum):
    """Why verification failed. Values match GovernanceError codes."""
    TARGET_MISMATCH = "TARGET_MISMATCH"
    SIGNATURE_VERIFICATION = "SIGNATURE_VERIFICATION"
    INSUFFICIENT_SIGNATURES = "INSUFFICIENT_SIGNATURES"
    INVALID_SIGNATURE_FORMAT = "INVALID_SIGNATURE_FORMAT"
    INVALID_KEY = "INVALID_KEY"
    MESSAGE_FORMAT = "MESSAGE_FORMAT"


@dataclass
class VerificationResult:
    """Result of verifying an envelope."""
    outcome: VerificationOutcome
    failure: Optional[FailureReason] = None
    reason: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def is_valid(self) -> bool:
        return self.outcome == VerificationOutcome.VALID

    @classmethod
    def valid(cls, details: Optional[Dict[str, Any]] = None) -> 'VerificationResult':
        return cls(outcome=VerificationOutcome.VALID, details=details or {})

    @classmethod
    def invalid(
        cls,
        failure: FailureReason,
        reason: str,
        details: Optional[Dict[str, Any]] = None
    ) -> 'VerificationResult':
        return cls(
            outcome=VerificationOutcome.INVALID,
            failure=failure,
            reason=reason,
            details=details or {}
        )

    def raise_for_failure(self) -> None:
        """Raise the GovernanceError matching this failure, if any."""
        if self.is_valid():
            return
        raise error_for_code(self.failure.value, self.reason or "", self.details)

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"outcome": self.outcome.value}
        if self.failure:
            d["failure"] = self.failure.value
        if self.reason:
            d["reason"] = self.reason
        if self.details:
            d["details"] = self.details
        return d


def resolve_expected(envelope: Envelope, expected: Expected) -> Target:
    """
    Turn the caller's expected target into a signing target.

    Raw bytes are read as artifact content of the envelope's own type.
    """
    if isinstance(expected, (bytes, bytearray, memoryview)):
        if not envelope.target_type.is_artifact:
            raise TypeError(
                f"raw bytes cannot be checked against a {envelope.target_type.value} envelope"
            )
        return ArtifactTarget.from_bytes(envelope.target_type, bytes(expected))
    target_type_of(expected)  # raises TypeError for anything else
    return expected


class EnvelopeVerifier:
    """
    Verifies envelopes against an expected target.

    With a policy, quorum is decided by the policy alone; the envelope's
    ``threshold`` and ``signer`` fields are ignored for the decision.
    """

    def __init__(self, policy: Optional[MultisigPolicy] = None):
        self.policy = policy

    def check_target(self, envelope: Envelope, expected: Expected) -> Optional[VerificationResult]:
        """Steps 1-2: return a TARGET_MISMATCH result, or None if the target matches."""
        target = resolve_expected(envelope, expected)
        expected_type = target_type_of(target)
        if expected_type != envelope.target_type:
            return VerificationResult.invalid(
                FailureReason.TARGET_MISMATCH,
                "Target type mismatch",
                {"declared": envelope.target_type.value, "expected": expected_type.value}
            )

        computed = target_hash(target)
        if not digests_equal(computed, envelope.target_hash_bytes):
            return VerificationResult.invalid(
                FailureReason.TARGET_MISMATCH,
                "Target hash mismatch - content changed since signing",
                {"declared": envelope.target_hash, "computed": computed.hex()}
            )
        return None

    def verify_single(
        self,
        envelope: Envelope,
        expected: Expected,
        public_key: PublicKey
    ) -> VerificationResult:
        """Verify that ``public_key`` signed ``envelope`` over ``expected``."""
        result = self.check_target(envelope, expected)
        if result is None:
            result = self._verify_signed_by(envelope, public_key)
        self._log(envelope, result)
        return result

    def verify_quorum(self, envelope: Envelope, expected: Expected) -> VerificationResult:
        """Verify that the policy's threshold of authorized keys signed ``envelope``."""
        if self.policy is None:
            raise ValueError("verify_quorum requires a MultisigPolicy")
        result = self.check_target(envelope, expected)
        if result is None:
            result = self._evaluate_quorum(envelope)
        self._log(envelope, result)
        return result

    def verify(self, envelope: Envelope, expected: Expected) -> VerificationResult:
        return self.verify_quorum(envelope, expected)

    def _verify_signed_by(self, envelope: Envelope, public_key: PublicKey) -> VerificationResult:
        digest = signing_digest_for(envelope.target_type, envelope.target_hash_bytes)
        entries = envelope.entries()
        format_errors: List[str] = []

        for entry in entries:
            try:
                signature = entry.signature_obj()
            except InvalidSignatureFormatError as e:
                format_errors.append(str(e))
                continue
            if public_key.verify(digest, signature):
                return VerificationResult.valid({"signer": public_key.to_hex()})

        if format_errors and len(format_errors) == len(entries):
            return VerificationResult.invalid(
                FailureReason.INVALID_SIGNATURE_FORMAT,
                "Malformed signature",
                {"errors": format_errors}
            )
        return VerificationResult.invalid(
            FailureReason.SIGNATURE_VERIFICATION,
            "Signature does not verify under the supplied public key",
            {"public_key": public_key.to_hex()}
        )

    def _evaluate_quorum(self, envelope: Envelope) -> VerificationResult:
        digest = signing_digest_for(envelope.target_type, envelope.target_hash_bytes)
        signatures: List[Signature] = []
        malformed = 0

        for entry in envelope.entries():
            try:
                signatures.append(entry.signature_obj())
            except GovernanceError as e:
                # Non-counting, like a foreign signature
                malformed += 1
                audit_log.signature_rejected(entry.signer, e.code)

        quorum = self.policy.evaluate(digest, signatures)
        details = quorum.to_dict()
        details["rejected"] += malformed

        if not quorum.met:
            return VerificationResult.invalid(
                FailureReason.INSUFFICIENT_SIGNATURES,
                f"Insufficient signatures: got {quorum.got}, need {quorum.need}",
                details
            )
        return VerificationResult.valid(details)

    def _log(self, envelope: Envelope, result: VerificationResult) -> None:
        audit_log.verification_decision(
            envelope.target_type.value,
            envelope.target_hash,
            result.outcome.value,
            failure=result.failure.value if result.failure else None,
        )


def verify_target(envelope: Envelope, expected: Expected, public_key: PublicKey) -> VerificationResult:
    """
    Verify a single-signer envelope.

    Failures:
        TARGET_MISMATCH: target type or content hash differs (tamper)
        SIGNATURE_VERIFICATION: signature invalid for this key (forgery)
    """
    return EnvelopeVerifier().verify_single(envelope, expected, public_key)


def verify_quorum(envelope: Envelope, expected: Expected, policy: MultisigPolicy) -> VerificationResult:
    """
    Verify a single or aggregated envelope against a multisig policy.

    Failures:
        TARGET_MISMATCH: target type or content hash differs (tamper)
        INSUFFICIENT_SIGNATURES: details carry ``got`` and ``need``
    """
    return EnvelopeVerifier(policy).verify_quorum(envelope, expected)


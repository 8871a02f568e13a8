"""
Governance Error Taxonomy

Every failure surfaced by govsig is a GovernanceError subclass with a
stable ``code`` that CLI tools print and downstream tooling can match on.
"""

from typing import Optional


class GovernanceError(Exception):
    """Base class for all governance signing errors."""
    code = "GOVERNANCE_ERROR"

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"{self.code}: {self.message}" if self.message else self.code


class InvalidKeyError(GovernanceError):
    """Key bytes are malformed or do not decode to a curve point."""
    code = "INVALID_KEY"


class InvalidSignatureFormatError(GovernanceError):
    """Signature bytes or hex are malformed."""
    code = "INVALID_SIGNATURE_FORMAT"


class SignatureVerificationError(GovernanceError):
    """Signature is well-formed but cryptographically invalid."""
    code = "SIGNATURE_VERIFICATION"


class TargetMismatchError(GovernanceError):
    """Declared target disagrees with the recomputed content hash or type."""
    code = "TARGET_MISMATCH"


class InvalidThresholdError(GovernanceError):
    code = "INVALID_THRESHOLD"

    def __init__(self, threshold: int, total: int):
        super().__init__(f"threshold {threshold} of {total}")
        self.threshold = threshold
        self.total = total


class InsufficientSignaturesError(GovernanceError):
    code = "INSUFFICIENT_SIGNATURES"

    def __init__(self, got: int, need: int):
        super().__init__(f"got {got}, need {need}")
        self.got = got
        self.need = need


class InvalidMultisigError(GovernanceError):
    """Multisig policy is malformed (e.g. duplicate authorized keys)."""
    code = "INVALID_MULTISIG"


class MessageFormatError(GovernanceError):
    """Message or envelope content is structurally invalid."""
    code = "MESSAGE_FORMAT"


class SerializationError(GovernanceError):
    """Envelope or key file could not be decoded."""
    code = "SERIALIZATION"


class InvalidInputError(GovernanceError):
    code = "INVALID_INPUT"


def error_for_code(code: str, message: str = "", details: Optional[dict] = None) -> GovernanceError:
    """Build the exception matching a failure code."""
    details = details or {}
    if code == InsufficientSignaturesError.code:
        return InsufficientSignaturesError(details.get("got", 0), details.get("need", 0))
    if code == InvalidThresholdError.code:
        return InvalidThresholdError(details.get("threshold", 0), details.get("total", 0))
    for cls in (
        InvalidKeyError,
        InvalidSignatureFormatError,
        SignatureVerificationError,
        TargetMismatchError,
        InvalidMultisigError,
        MessageFormatError,
        SerializationError,
        InvalidInputError,
    ):
        if cls.code == code:
            return cls(message)
    return GovernanceError(message)

"""
Signature Envelopes

JSON containers for signatures and what they attest to.

Single-signer:
    {target_type, target_hash, signer, signature, timestamp, metadata}

Aggregated (multisig):
    {target_type, target_hash, signatures: [{signer, signature, timestamp}],
     threshold, metadata}

An envelope's ``signer`` and ``threshold`` fields are informational. Quorum
decisions always come from an externally supplied MultisigPolicy.
"""

import json
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import (
    InvalidKeyError,
    InvalidSignatureFormatError,
    MessageFormatError,
    SerializationError,
)
from .keys import PublicKey, Signature
from .messages import TargetType

HASH_PATTERN = r"^[0-9a-fA-F]{64}$"
PUBKEY_PATTERN = r"^[0-9a-fA-F]{66}$"
SIGNATURE_PATTERN = r"^[0-9a-fA-F]{128}$"


class EnvelopeMetadata(BaseModel):
    model_config = ConfigDict(frozen=True, extra="allow")

    binary_type: Optional[Literal["consensus", "protocol", "application"]] = None
    version: Optional[str] = None


class SignatureEntry(BaseModel):
    """One signer's contribution inside an envelope."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    signer: str = Field(pattern=PUBKEY_PATTERN)
    signature: str = Field(pattern=SIGNATURE_PATTERN)
    timestamp: int = Field(ge=0, strict=True)

    @field_validator("signer", "signature")
    @classmethod
    def lowercase_hex(cls, value: str) -> str:
        return value.lower()

    def public_key(self) -> PublicKey:
        """Decode the self-reported signer. Untrusted for quorum purposes."""
        return PublicKey.from_hex(self.signer)

    def signature_obj(self) -> Signature:
        return Signature.from_hex(self.signature)


class _EnvelopeBase(BaseModel):
    """
    Fields shared by both envelope shapes.

    Abstract base: SignatureEnvelope and AggregatedEnvelope each
    implement ``entries``.
    """
    model_config = ConfigDict(frozen=True, extra="forbid")

    target_type: TargetType
    target_hash: str = Field(pattern=HASH_PATTERN)
    metadata: EnvelopeMetadata = Field(default_factory=EnvelopeMetadata)

    @field_validator("target_hash")
    @classmethod
    def lowercase_hash(cls, value: str) -> str:
        return value.lower()

    @property
    def target_hash_bytes(self) -> bytes:
        return bytes.fromhex(self.target_hash)

    def entries(self) -> List[SignatureEntry]:
        raise NotImplementedError

    def signers(self) -> List[str]:
        return [entry.signer for entry in self.entries()]

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)

    def to_json(self, indent: Optional[int] = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)


class SignatureEnvelope(_EnvelopeBase):
    """Envelope produced by a single maintainer."""
    signer: str = Field(pattern=PUBKEY_PATTERN)
    signature: str = Field(pattern=SIGNATURE_PATTERN)
    timestamp: int = Field(ge=0, strict=True)

    @field_validator("signer", "signature")
    @classmethod
    def lowercase_hex(cls, value: str) -> str:
        return value.lower()

    def entry(self) -> SignatureEntry:
        return SignatureEntry(signer=self.signer, signature=self.signature, timestamp=self.timestamp)

    def entries(self) -> List[SignatureEntry]:
        return [self.entry()]


class AggregatedEnvelope(_EnvelopeBase):
    """Envelope carrying signatures from several maintainers."""
    signatures: List[SignatureEntry] = Field(default_factory=list)
    threshold: Optional[int] = Field(default=None, ge=1, strict=True)

    def entries(self) -> List[SignatureEntry]:
        return list(self.signatures)

    def without_signer(self, signer: str) -> 'AggregatedEnvelope':
        """Copy of this envelope with one signer's entry removed."""
        signer = signer.lower()
        return self.model_copy(
            update={"signatures": [e for e in self.signatures if e.signer != signer]}
        )


Envelope = Union[SignatureEnvelope, AggregatedEnvelope]


def _error_for(exc: ValidationError):
    """Map the first pydantic error onto the governance taxonomy."""
    for err in exc.errors():
        if err.get("type") == "missing":
            continue
        loc = err.get("loc", ())
        if "signature" in loc:
            return InvalidSignatureFormatError(f"signature field invalid: {err.get('msg')}")
        if "signer" in loc:
            return InvalidKeyError(f"signer field invalid: {err.get('msg')}")
    first = exc.errors()[0] if exc.errors() else {}
    where = ".".join(str(p) for p in first.get("loc", ()))
    return MessageFormatError(f"{where}: {first.get('msg', 'invalid envelope')}")


def parse_envelope(data: Any) -> Envelope:
    """
    Validate a decoded JSON object as an envelope.

    Objects with a ``signatures`` list are aggregated envelopes; all others
    are single-signer envelopes.
    """
    if not isinstance(data, dict):
        raise MessageFormatError(f"envelope must be a JSON object, got {type(data).__name__}")
    model = AggregatedEnvelope if "signatures" in data else SignatureEnvelope
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise _error_for(e) from e


def parse_envelope_json(text: Union[str, bytes]) -> Envelope:
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise SerializationError(f"envelope is not valid JSON: {e}") from e
    return parse_envelope(data)


def as_aggregate(envelope: Envelope) -> AggregatedEnvelope:
    """View any envelope as an aggregate."""
    if isinstance(envelope, AggregatedEnvelope):
        return envelope
    return AggregatedEnvelope(
        target_type=envelope.target_type,
        target_hash=envelope.target_hash,
        signatures=envelope.entries(),
        metadata=envelope.metadata,
    )


def load_envelope(path) -> Envelope:
    """Read and validate an envelope file."""
    with open(path, 'rb') as f:
        return parse_envelope_json(f.read())

"""
Governance Keys and Signatures

secp256k1 keypairs, public keys and compact ECDSA signatures, backed by
the ``ecdsa`` library.

Signatures are deterministic (RFC 6979), low-S normalized and always 64
bytes (r || s). Verification rejects high-S encodings so each signer has
exactly one valid signature per digest.
"""

import hashlib
import hmac
from typing import Union

from ecdsa import SECP256k1, BadSignatureError, SigningKey, VerifyingKey
from ecdsa.der import UnexpectedDER
from ecdsa.errors import MalformedPointError
from ecdsa.keys import BadDigestError
from ecdsa.util import (
    sigdecode_der,
    sigdecode_string,
    sigencode_der,
    sigencode_string,
    sigencode_string_canonize,
)

from .errors import InvalidKeyError, InvalidSignatureFormatError
from .hashing import DIGEST_SIZE

CURVE = SECP256k1
CURVE_ORDER = SECP256k1.order
HALF_ORDER = CURVE_ORDER // 2

SECRET_KEY_SIZE = 32
COMPRESSED_KEY_SIZE = 33
UNCOMPRESSED_KEY_SIZE = 65
SIGNATURE_SIZE = 64
MIN_SEED_SIZE = 32


def _decode_hex(value: str, what: str, error_cls) -> bytes:
    try:
        return bytes.fromhex(value)
    except (TypeError, ValueError) as e:
        raise error_cls(f"{what} is not valid hex") from e


class PublicKey:
    """
    Immutable secp256k1 public key.

    Equality and hashing use the compressed encoding, so the same point
    given in compressed or uncompressed form is one key.
    """

    __slots__ = ("_vk", "_compressed")

    def __init__(self, verifying_key: VerifyingKey):
        self._vk = verifying_key
        self._compressed = verifying_key.to_string("compressed")

    @classmethod
    def from_bytes(cls, data: bytes) -> 'PublicKey':
        """Decode a 33-byte compressed or 65-byte uncompressed point."""
        if len(data) not in (COMPRESSED_KEY_SIZE, UNCOMPRESSED_KEY_SIZE):
            raise InvalidKeyError(f"public key must be 33 or 65 bytes, got {len(data)}")
        try:
            vk = VerifyingKey.from_string(bytes(data), curve=CURVE)
        except (MalformedPointError, ValueError) as e:
            raise InvalidKeyError(f"public key is not a valid curve point: {e}") from e
        return cls(vk)

    @classmethod
    def from_hex(cls, value: str) -> 'PublicKey':
        return cls.from_bytes(_decode_hex(value, "public key", InvalidKeyError))

    def to_bytes(self) -> bytes:
        """Compressed 33-byte encoding."""
        return self._compressed

    def to_uncompressed(self) -> bytes:
        """Uncompressed 65-byte encoding."""
        return self._vk.to_string("uncompressed")

    def to_hex(self) -> str:
        return self._compressed.hex()

    def verify(self, digest: bytes, signature: 'Signature') -> bool:
        """
        Verify a compact signature over a 32-byte digest.

        Returns False for any cryptographic failure, including high-S
        signatures; never raises for a well-typed signature.
        """
        if len(digest) != DIGEST_SIZE:
            return False
        if not signature.is_low_s():
            return False
        try:
            return self._vk.verify_digest(
                signature.to_bytes(), digest, sigdecode=sigdecode_string
            )
        except (BadSignatureError, BadDigestError):
            return False

    def __eq__(self, other) -> bool:
        if not isinstance(other, PublicKey):
            return NotImplemented
        return self._compressed == other._compressed

    def __hash__(self) -> int:
        return hash(self._compressed)

    def __repr__(self) -> str:
        return f"PublicKey({self.to_hex()})"

    def __str__(self) -> str:
        return self.to_hex()


class Signature:
    """Immutable 64-byte compact ECDSA signature."""

    __slots__ = ("_raw", "_r", "_s")

    def __init__(self, raw: bytes):
        if len(raw) != SIGNATURE_SIZE:
            raise InvalidSignatureFormatError(
                f"signature must be {SIGNATURE_SIZE} bytes, got {len(raw)}"
            )
        r, s = sigdecode_string(bytes(raw), CURVE_ORDER)
        if r >= CURVE_ORDER or s >= CURVE_ORDER:
            raise InvalidSignatureFormatError("signature scalar overflows curve order")
        self._raw = bytes(raw)
        self._r = r
        self._s = s

    @classmethod
    def from_bytes(cls, data: bytes) -> 'Signature':
        return cls(data)

    @classmethod
    def from_hex(cls, value: str) -> 'Signature':
        return cls(_decode_hex(value, "signature", InvalidSignatureFormatError))

    @classmethod
    def from_der(cls, der: bytes) -> 'Signature':
        """Parse a DER-encoded ECDSA signature."""
        try:
            r, s = sigdecode_der(bytes(der), CURVE_ORDER)
        except (UnexpectedDER, ValueError) as e:
            raise InvalidSignatureFormatError(f"malformed DER signature: {e}") from e
        if not (0 <= r < CURVE_ORDER and 0 <= s < CURVE_ORDER):
            raise InvalidSignatureFormatError("signature scalar overflows curve order")
        return cls(sigencode_string(r, s, CURVE_ORDER))

    def to_bytes(self) -> bytes:
        return self._raw

    def to_hex(self) -> str:
        return self._raw.hex()

    def to_der(self) -> bytes:
        return sigencode_der(self._r, self._s, CURVE_ORDER)

    def is_low_s(self) -> bool:
        return self._s <= HALF_ORDER

    def __eq__(self, other) -> bool:
        if not isinstance(other, Signature):
            return NotImplemented
        return self._raw == other._raw

    def __hash__(self) -> int:
        return hash(self._raw)

    def __repr__(self) -> str:
        return f"Signature({self.to_hex()})"

    def __str__(self) -> str:
        return self.to_hex()


class Keypair:
    """
    secp256k1 keypair.

    The signing key is held privately; only the derived public key and
    signatures leave this object. ``export_secret`` exists solely for
    writing key files.
    """

    __slots__ = ("__sk", "_public_key")

    def __init__(self, signing_key: SigningKey):
        self.__sk = signing_key
        self._public_key = PublicKey(signing_key.get_verifying_key())

    @classmethod
    def generate(cls) -> 'Keypair':
        """Generate a random keypair."""
        return cls(SigningKey.generate(curve=CURVE))

    @classmethod
    def from_secret_bytes(cls, secret: bytes) -> 'Keypair':
        """Import a 32-byte secret scalar."""
        if len(secret) != SECRET_KEY_SIZE:
            raise InvalidKeyError(f"secret key must be {SECRET_KEY_SIZE} bytes, got {len(secret)}")
        try:
            sk = SigningKey.from_string(bytes(secret), curve=CURVE)
        except (MalformedPointError, ValueError) as e:
            raise InvalidKeyError(f"secret key out of range: {e}") from e
        return cls(sk)

    @classmethod
    def from_secret_hex(cls, value: str) -> 'Keypair':
        return cls.from_secret_bytes(_decode_hex(value, "secret key", InvalidKeyError))

    @classmethod
    def from_seed(cls, seed: Union[bytes, str]) -> 'Keypair':
        """
        Derive a keypair deterministically from a seed.

        The seed must be at least 32 bytes; its first 32 bytes become the
        secret scalar.
        """
        if isinstance(seed, str):
            seed = seed.encode('utf-8')
        if len(seed) < MIN_SEED_SIZE:
            raise InvalidKeyError(f"seed must be at least {MIN_SEED_SIZE} bytes")
        return cls.from_secret_bytes(seed[:SECRET_KEY_SIZE])

    @property
    def public_key(self) -> PublicKey:
        return self._public_key

    def sign(self, digest: bytes) -> Signature:
        """Sign a 32-byte digest."""
        if len(digest) != DIGEST_SIZE:
            raise ValueError(f"digest must be {DIGEST_SIZE} bytes, got {len(digest)}")
        raw = self.__sk.sign_digest_deterministic(
            digest, hashfunc=hashlib.sha256, sigencode=sigencode_string_canonize
        )
        return Signature(raw)

    def export_secret(self) -> bytes:
        return self.__sk.to_string()

    def matches(self, public_key: PublicKey) -> bool:
        return hmac.compare_digest(self._public_key.to_bytes(), public_key.to_bytes())

    def __repr__(self) -> str:
        return f"Keypair(public_key={self._public_key.to_hex()})"


# Convenience functions

def generate_keypair() -> Keypair:
    return Keypair.generate()


def sign_digest(keypair: Keypair, digest: bytes) -> Signature:
    """Sign a digest with a keypair."""
    return keypair.sign(digest)


def verify_digest(public_key: PublicKey, digest: bytes, signature: Signature) -> bool:
    """Verify a signature over a digest."""
    return public_key.verify(digest, signature)

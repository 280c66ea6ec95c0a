"""RSA PKCS#1 v1.5 (RFC 8017 section 9.2) signature verification with SHA-256."""

from __future__ import annotations

import hashlib
import hmac
from typing import NamedTuple

from modexp import mod_exp


SHA256_DIGEST_SIZE = 32

# DigestInfo prefixes for SHA-256. Only the first is accepted by
# verify_pkcs1_sha256; the second exists so the padding builder can express
# the absent-parameters form that some signers emit.
SHA256_PREFIX_WITH_NULL = bytes.fromhex("3031300d060960864801650304020105000420")
SHA256_PREFIX_WITHOUT_NULL = bytes.fromhex("302f300b06096086480165030402010420")

MIN_PADDING_STRING = 8

# SHA-256 accepts at most 2**64 - 1 bits of input.
MAX_MESSAGE_BYTES = (1 << 61) - 1


class MessageTooShort(ValueError):
    """The modulus cannot hold DigestInfo plus the mandatory padding."""


class RsaPublicKey(NamedTuple):
    modulus: bytes
    exponent: bytes

    @classmethod
    def from_ints(cls, modulus: int, exponent: int) -> RsaPublicKey:
        return cls(
            modulus=modulus.to_bytes((modulus.bit_length() + 7) // 8, "big"),
            exponent=exponent.to_bytes((exponent.bit_length() + 7) // 8, "big"),
        )


def build_padded_block(modulus_length: int, digest: bytes, include_null_parameter: bool = True) -> bytes:
    if len(digest) != SHA256_DIGEST_SIZE:
        raise ValueError(f"expected {SHA256_DIGEST_SIZE}-byte SHA-256 digest, got {len(digest)}")

    prefix = SHA256_PREFIX_WITH_NULL if include_null_parameter else SHA256_PREFIX_WITHOUT_NULL
    em_len = (modulus_length * 8 - 1 + 7) // 8
    if em_len < len(prefix) + len(digest) + 3 + MIN_PADDING_STRING:
        raise MessageTooShort(
            f"modulus of {modulus_length} bytes is too short for PKCS#1 v1.5 SHA-256 padding"
        )

    ps_len = em_len - len(prefix) - len(digest) - 3
    return b"\x00\x01" + b"\xff" * ps_len + b"\x00" + prefix + digest


def verify_pkcs1_sha256(message: bytes, signature: bytes, modulus: bytes, exponent: bytes) -> bool:
    """Check an RSASSA-PKCS1-v1_5 SHA-256 signature.

    Every mismatch, including a signature whose length differs from the
    modulus, yields ``False`` rather than an exception; a modulus too small
    for the padding raises ``MessageTooShort``. Only the DigestInfo
    encoding that carries an explicit NULL parameter is recognised; a
    signature made over the parameter-less encoding is rejected.
    """
    if len(signature) != len(modulus) or not modulus:
        return False
    if len(message) > MAX_MESSAGE_BYTES:
        return False
    if int.from_bytes(signature, "big") >= int.from_bytes(modulus, "big"):
        return False

    expected = build_padded_block(len(modulus), hashlib.sha256(message).digest(), include_null_parameter=True)

    recovered = mod_exp(signature, exponent, modulus)
    if len(recovered) > len(modulus):
        return False
    recovered = recovered.rjust(len(modulus), b"\x00")

    return hmac.compare_digest(recovered, expected)


def verify_with_key(message: bytes, signature: bytes, key: RsaPublicKey) -> bool:
    return verify_pkcs1_sha256(message, signature, key.modulus, key.exponent)

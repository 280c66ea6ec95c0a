"""Single-link X.509 verification for RSA/SHA-256 certificates, walked with der_cursor."""

from __future__ import annotations

from collections.abc import Iterable

import der_cursor as der
from rsa_pkcs1 import RsaPublicKey, verify_pkcs1_sha256


class SignatureVerificationFailed(ValueError):
    """A well-formed object whose RSA signature does not verify."""


def _expect_tag(buffer: bytes, node: der.DerNode, tag: int, label: str) -> None:
    actual = der.tag_of(buffer, node)
    if actual != tag:
        raise der.MalformedEncoding(f"{label}: expected tag 0x{tag:02x}, got 0x{actual:02x}")


def split_certificate(cert: bytes) -> tuple[bytes, bytes]:
    """Return (tbsCertificate encoding, signature) from a DER certificate."""
    top = der.root(cert)
    _expect_tag(cert, top, der.TAG_SEQUENCE, "Certificate")

    tbs = der.first_child_of(cert, top)
    _expect_tag(cert, tbs, der.TAG_SEQUENCE, "tbsCertificate")
    signature_algorithm = der.next_sibling_of(cert, tbs)
    signature_value = der.next_sibling_of(cert, signature_algorithm)

    return der.all_bytes_at(cert, tbs), der.bitstring_at(cert, signature_value)


def extract_subject_public_key(cert: bytes) -> RsaPublicKey:
    top = der.root(cert)
    tbs = der.first_child_of(cert, top)

    node = der.first_child_of(cert, tbs)
    if der.tag_of(cert, node) == der.TAG_CONTEXT_0:
        node = der.next_sibling_of(cert, node)

    # serialNumber, signature, issuer, validity, subject
    for _ in range(5):
        node = der.next_sibling_of(cert, node)
    spki = node
    _expect_tag(cert, spki, der.TAG_SEQUENCE, "subjectPublicKeyInfo")

    algorithm = der.first_child_of(cert, spki)
    subject_public_key = der.next_sibling_of(cert, algorithm)
    key_der = der.bitstring_at(cert, subject_public_key)

    key_root = der.root(key_der)
    _expect_tag(key_der, key_root, der.TAG_SEQUENCE, "RSAPublicKey")
    modulus_node = der.first_child_of(key_der, key_root)
    exponent_node = der.next_sibling_of(key_der, modulus_node)

    return RsaPublicKey(
        modulus=der.unsigned_integer_at(key_der, modulus_node),
        exponent=der.unsigned_integer_at(key_der, exponent_node),
    )


def verify_signed_certificate(cert: bytes, parent_modulus: bytes, parent_exponent: bytes) -> RsaPublicKey:
    """Verify ``cert`` under the parent key and return the certificate's own key.

    The signature algorithm field is not consulted: SHA-256 with the
    NULL-parameter DigestInfo is always assumed. notBefore/notAfter,
    basic constraints and path length are not checked.
    """
    message, signature = split_certificate(cert)
    if not verify_pkcs1_sha256(message, signature, parent_modulus, parent_exponent):
        raise SignatureVerificationFailed("certificate signature does not verify under the parent key")
    return extract_subject_public_key(cert)


def verify_certificate_chain(certificates: Iterable[bytes], root_key: RsaPublicKey) -> RsaPublicKey:
    key = root_key
    for index, cert in enumerate(certificates):
        try:
            key = verify_signed_certificate(cert, key.modulus, key.exponent)
        except SignatureVerificationFailed as exc:
            raise SignatureVerificationFailed(f"chain link {index}: {exc}") from exc
    return key

"""Authentication of remote-attestation reports signed by an RSA certificate."""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol

from ias_report import decode_report
from rsa_pkcs1 import RsaPublicKey, verify_with_key
from x509_rsa import SignatureVerificationFailed, verify_signed_certificate


class ReportFields(Protocol):
    payload: bytes
    mr_enclave: bytes
    mr_signer: bytes


ReportDecoder = Callable[[bytes], ReportFields]


class MeasurementMismatch(ValueError):
    """An authentic report describes a different enclave or signer."""

    def __init__(self, label: str, expected: bytes, actual: bytes) -> None:
        super().__init__(f"{label} mismatch (expected={expected.hex()}, actual={actual.hex()})")
        self.label = label
        self.expected = expected
        self.actual = actual


def authenticate_report(
    report_body: bytes,
    report_signature: bytes,
    signing_certificate: bytes,
    root_key: RsaPublicKey,
) -> bytes:
    signing_key = verify_signed_certificate(signing_certificate, root_key.modulus, root_key.exponent)
    if not verify_with_key(report_body, report_signature, signing_key):
        raise SignatureVerificationFailed("report signature does not verify under the signing certificate key")
    return report_body


def verify_attestation(
    report_body: bytes,
    report_signature: bytes,
    signing_certificate: bytes,
    root_modulus: bytes,
    root_exponent: bytes,
    expected_mrenclave: bytes | None = None,
    expected_mrsigner: bytes | None = None,
    decoder: ReportDecoder = decode_report,
) -> bytes:
    """Authenticate a report and return its payload.

    The signing certificate must verify under the root key and the report
    signature under the certificate's key; either failure raises
    ``SignatureVerificationFailed``. The authenticated body is then handed to
    ``decoder`` and any supplied measurement is compared with the decoded one.
    """
    body = authenticate_report(
        report_body,
        report_signature,
        signing_certificate,
        RsaPublicKey(modulus=root_modulus, exponent=root_exponent),
    )
    fields = decoder(body)

    if expected_mrenclave is not None and fields.mr_enclave != expected_mrenclave:
        raise MeasurementMismatch("MRENCLAVE", expected_mrenclave, fields.mr_enclave)
    if expected_mrsigner is not None and fields.mr_signer != expected_mrsigner:
        raise MeasurementMismatch("MRSIGNER", expected_mrsigner, fields.mr_signer)

    return fields.payload

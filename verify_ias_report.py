#!/usr/bin/env python3
"""Offline verifier for Intel SGX IAS attestation reports signed under an RSA certificate chain."""

from __future__ import annotations

import argparse
import base64
import binascii
import json
import os
import re
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from urllib.parse import unquote

try:
    from cryptography import x509
    from cryptography.hazmat.primitives import serialization
    from cryptography.hazmat.primitives.asymmetric import rsa
except Exception as exc:  # pragma: no cover
    print(f"error: failed to import cryptography package: {exc}", file=sys.stderr)
    sys.exit(2)

from der_cursor import DerError
from ias_report import (
    WARNING_QUOTE_STATUSES,
    ReportFormatError,
    build_report_dump,
    decode_report,
    format_yaml_like,
)
from remote_attestation import MeasurementMismatch, verify_attestation
from rsa_pkcs1 import MessageTooShort, RsaPublicKey
from x509_rsa import SignatureVerificationFailed, verify_certificate_chain


MEASUREMENT_SIZE = 32


@dataclass
class Result:
    checks: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def ok(self, message: str) -> None:
        self.checks.append(message)

    def warn(self, message: str) -> None:
        self.warnings.append(message)

    def fail(self, message: str) -> None:
        self.errors.append(message)


@dataclass
class ReportInput:
    report_body: bytes
    signature: bytes
    certificates: list[bytes]


def _normalize_hex(value: str) -> str:
    return value.lower().strip().removeprefix("0x")


def _must_hex_to_bytes(label: str, value: str) -> bytes:
    cleaned = _normalize_hex(value)
    if not re.fullmatch(r"[0-9a-f]*", cleaned):
        raise ValueError(f"{label} is not valid hex")
    if len(cleaned) % 2 != 0:
        raise ValueError(f"{label} has odd hex length")
    return bytes.fromhex(cleaned)


def _b64_field(payload: dict[str, Any], key: str) -> bytes:
    value = payload.get(key)
    if not isinstance(value, str):
        raise ValueError(f"missing or invalid '{key}' field")
    try:
        return base64.b64decode(value.strip(), validate=True)
    except binascii.Error as exc:
        raise ValueError(f"'{key}' is not valid base64: {exc}") from exc


def _extract_pem_certificates(data: bytes) -> list[x509.Certificate]:
    pem_pattern = re.compile(
        b"-----BEGIN CERTIFICATE-----\\s+.+?\\s+-----END CERTIFICATE-----",
        re.DOTALL,
    )
    return [x509.load_pem_x509_certificate(block) for block in pem_pattern.findall(data)]


def _to_der(cert: x509.Certificate) -> bytes:
    return cert.public_bytes(serialization.Encoding.DER)


def load_root_certificate(data: bytes) -> x509.Certificate:
    if b"-----BEGIN CERTIFICATE-----" in data:
        certs = _extract_pem_certificates(data)
        if len(certs) != 1:
            raise ValueError(f"expected exactly one root certificate, found {len(certs)}")
        return certs[0]
    return x509.load_der_x509_certificate(data)


def rsa_key_from_certificate(cert: x509.Certificate) -> RsaPublicKey:
    public_key = cert.public_key()
    if not isinstance(public_key, rsa.RSAPublicKey):
        raise ValueError("trusted root certificate does not carry an RSA key")
    numbers = public_key.public_numbers()
    return RsaPublicKey.from_ints(numbers.n, numbers.e)


def extract_report_input(payload: dict[str, Any]) -> ReportInput:
    report = payload.get("report")
    if isinstance(report, str):
        report_body = report.encode("utf-8")
    elif isinstance(report, dict):
        raise ValueError("'report' must be the exact response body text, not a parsed object")
    else:
        report_body = _b64_field(payload, "report_base64")

    signature = _b64_field(payload, "signature")

    chain_text = payload.get("certificate_chain")
    if not isinstance(chain_text, str):
        raise ValueError("missing or invalid 'certificate_chain' field")
    certs = _extract_pem_certificates(unquote(chain_text).encode("ascii", errors="replace"))
    if not certs:
        raise ValueError("'certificate_chain' does not contain a PEM certificate")

    return ReportInput(
        report_body=report_body,
        signature=signature,
        certificates=[_to_der(cert) for cert in certs],
    )


def _find_expected_value(payload: dict[str, Any], *keys: str) -> Any:
    sources: list[dict[str, Any]] = []
    expected = payload.get("expected")
    if isinstance(expected, dict):
        sources.append(expected)
    sources.append(payload)

    for source in sources:
        for key in keys:
            if key in source:
                return source[key]
    return None


def _resolve_measurement(label: str, override: str | None, payload: dict[str, Any], *keys: str) -> bytes | None:
    value = override if override is not None else _find_expected_value(payload, *keys)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"{label} expected value must be a hex string")
    parsed = _must_hex_to_bytes(label, value)
    if len(parsed) != MEASUREMENT_SIZE:
        raise ValueError(f"{label} expected value length is {len(parsed)} bytes (expected {MEASUREMENT_SIZE})")
    return parsed


def verify_report_payload(
    payload: dict[str, Any],
    root_key: RsaPublicKey,
    root_der: bytes | None = None,
    expected_mrenclave: str | None = None,
    expected_mrsigner: str | None = None,
) -> Result:
    result = Result()

    try:
        report_input = extract_report_input(payload)
    except ValueError as exc:
        result.fail(str(exc))
        return result

    measurements: dict[str, bytes | None] = {}
    for label, override, keys in (
        ("MRENCLAVE", expected_mrenclave, ("expected_mrenclave", "mrenclave", "mr_enclave")),
        ("MRSIGNER", expected_mrsigner, ("expected_mrsigner", "mrsigner", "mr_signer")),
    ):
        try:
            measurements[label] = _resolve_measurement(label, override, payload, *keys)
        except ValueError as exc:
            result.fail(str(exc))
            return result

    # The header chain may repeat the trusted root; it is never used as a link.
    chain = [cert for cert in report_input.certificates if cert != root_der]
    if not chain:
        result.fail("certificate chain contains no signing certificate besides the trusted root")
        return result
    signing_certificate, intermediates = chain[0], chain[1:]

    try:
        issuer_key = verify_certificate_chain(reversed(intermediates), root_key)
    except SignatureVerificationFailed as exc:
        result.fail(f"intermediate certificate verification failed: {exc}")
        return result
    except (DerError, MessageTooShort) as exc:
        result.fail(f"malformed intermediate certificate: {exc}")
        return result
    if intermediates:
        result.ok(f"{len(intermediates)} intermediate certificate(s) verify from the trusted root")

    try:
        verify_attestation(
            report_input.report_body,
            report_input.signature,
            signing_certificate,
            issuer_key.modulus,
            issuer_key.exponent,
            expected_mrenclave=measurements["MRENCLAVE"],
            expected_mrsigner=measurements["MRSIGNER"],
        )
    except SignatureVerificationFailed as exc:
        result.fail(f"signature verification failed: {exc}")
        return result
    except (DerError, MessageTooShort) as exc:
        result.fail(f"malformed signing certificate: {exc}")
        return result
    except ReportFormatError as exc:
        result.ok("signing certificate and report signature verify")
        result.fail(f"authenticated report could not be decoded: {exc}")
        return result
    except MeasurementMismatch:
        # Reported per field below.
        pass

    result.ok("signing certificate verifies under the trusted root chain")
    result.ok("report signature verifies under the signing certificate key")

    report = decode_report(report_input.report_body)

    for label, actual in (("MRENCLAVE", report.mr_enclave), ("MRSIGNER", report.mr_signer)):
        expected = measurements[label]
        if expected is None:
            continue
        if expected == actual:
            result.ok(f"{label} matches expected value")
        else:
            result.fail(f"{label} mismatch (expected={expected.hex()}, actual={actual.hex()})")
    if measurements["MRENCLAVE"] is None and measurements["MRSIGNER"] is None:
        result.warn("no expected MRENCLAVE/MRSIGNER policy values were provided")

    if report.quote_status == "OK":
        result.ok("isvEnclaveQuoteStatus is OK")
    elif report.quote_status in WARNING_QUOTE_STATUSES:
        advisories = ", ".join(report.advisory_ids) or "none listed"
        result.warn(f"isvEnclaveQuoteStatus is {report.quote_status} (advisories: {advisories})")
    else:
        result.fail(f"isvEnclaveQuoteStatus is {report.quote_status}")

    if report.is_debug:
        result.fail("enclave ATTRIBUTES.DEBUG is set; enclave memory is not protected")
    else:
        result.ok("enclave is not in debug mode")

    result.warn(
        "offline checks do not validate certificate validity periods, revocation, "
        "or report timestamp freshness"
    )
    return result


def print_local_result(result: Result) -> None:
    for check in result.checks:
        print(f"[OK] {check}")
    for warning in result.warnings:
        print(f"[WARN] {warning}")
    for error in result.errors:
        print(f"[FAIL] {error}")

    if result.errors:
        print(f"\nVERDICT: FAIL ({len(result.errors)} error(s))")
        return

    print(f"\nVERDICT: PASS ({len(result.checks)} check(s), {len(result.warnings)} warning(s))")


def print_report_dump(payload: dict[str, Any], dump_format: str) -> None:
    try:
        report = decode_report(extract_report_input(payload).report_body)
        dump: dict[str, Any] = build_report_dump(report)
    except ValueError as exc:
        dump = {"error": str(exc)}
    if dump_format == "json":
        print(json.dumps(dump, indent=2, sort_keys=False))
    else:
        print(format_yaml_like(dump))


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "input",
        nargs="?",
        default="report.json",
        help="Path to report JSON file with report, signature and certificate_chain (default: report.json)",
    )
    parser.add_argument(
        "--root-ca",
        default=os.environ.get("IAS_ROOT_CA_CERT"),
        help="Trusted root CA certificate, PEM or DER (default: IAS_ROOT_CA_CERT env var).",
    )
    parser.add_argument(
        "--expected-mrenclave",
        help="Expected MRENCLAVE (hex). Overrides any value in the input file.",
    )
    parser.add_argument(
        "--expected-mrsigner",
        help="Expected MRSIGNER (hex). Overrides any value in the input file.",
    )
    parser.add_argument(
        "--dump-report",
        action="store_true",
        help="Print the decoded report fields.",
    )
    parser.add_argument(
        "--dump-format",
        choices=("yaml", "json"),
        default="yaml",
        help="Output format for --dump-report (default: yaml).",
    )
    parser.add_argument(
        "--dump-only",
        action="store_true",
        help="Only print the report dump and skip verification.",
    )
    args = parser.parse_args(argv)

    path = Path(args.input)
    if not path.exists():
        print(f"error: file not found: {path}", file=sys.stderr)
        return 2

    try:
        payload = json.loads(path.read_text())
    except Exception as exc:
        print(f"error: failed to parse JSON from {path}: {exc}", file=sys.stderr)
        return 2
    if not isinstance(payload, dict):
        print(f"error: top-level JSON in {path} must be an object", file=sys.stderr)
        return 2

    if args.dump_report or args.dump_only:
        print_report_dump(payload, dump_format=args.dump_format)
        if args.dump_only:
            return 0
        print()

    if not args.root_ca:
        print("error: verification requires --root-ca or IAS_ROOT_CA_CERT", file=sys.stderr)
        return 2

    try:
        root_cert = load_root_certificate(Path(args.root_ca).read_bytes())
        root_key = rsa_key_from_certificate(root_cert)
    except (OSError, ValueError) as exc:
        print(f"error: failed to load trusted root from {args.root_ca}: {exc}", file=sys.stderr)
        return 2

    result = verify_report_payload(
        payload,
        root_key,
        root_der=_to_der(root_cert),
        expected_mrenclave=args.expected_mrenclave,
        expected_mrsigner=args.expected_mrsigner,
    )
    print_local_result(result)
    return 1 if result.errors else 0


if __name__ == "__main__":
    raise SystemExit(main())

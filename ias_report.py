"""Decoding of Intel IAS attestation verification reports (API version 4)."""

from __future__ import annotations

import base64
import binascii
import json
import re
import struct
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any


SGX_QUOTE_SIZE = 432
QUOTE_HEADER_SIZE = 48
SGX_REPORT_BODY_SIZE = 384

SUPPORTED_REPORT_VERSION = 4

# Status values IAS returns for a genuine platform that needs attention.
WARNING_QUOTE_STATUSES = {
    "GROUP_OUT_OF_DATE",
    "CONFIGURATION_NEEDED",
    "SW_HARDENING_NEEDED",
    "CONFIGURATION_AND_SW_HARDENING_NEEDED",
}

ATTRIBUTE_FLAGS = {
    "init": 1 << 0,
    "debug": 1 << 1,
    "mode64bit": 1 << 2,
    "provision_key": 1 << 4,
    "einittoken_key": 1 << 5,
}


class ReportFormatError(ValueError):
    """Raised when a report body cannot be decoded."""


@dataclass
class AttestationReport:
    id: str
    timestamp: str
    version: int
    quote_status: str
    quote_body: bytes
    quote_version: int
    sign_type: int
    epid_group_id: bytes
    qe_svn: int
    pce_svn: int
    basename: bytes
    cpu_svn: bytes
    misc_select: int
    attributes: bytes
    mr_enclave: bytes
    mr_signer: bytes
    isv_prod_id: int
    isv_svn: int
    report_data: bytes
    advisory_ids: list[str] = field(default_factory=list)
    advisory_url: str | None = None
    nonce: str | None = None

    @property
    def payload(self) -> bytes:
        return self.report_data

    @property
    def attribute_flags(self) -> int:
        return int.from_bytes(self.attributes[:8], "little")

    @property
    def is_debug(self) -> bool:
        return bool(self.attribute_flags & ATTRIBUTE_FLAGS["debug"])


def _require_str(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str):
        raise ReportFormatError(f"report field '{key}' is missing or not a string")
    return value


def decode_report(report_body: bytes) -> AttestationReport:
    try:
        data = json.loads(report_body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ReportFormatError(f"report body is not JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ReportFormatError("report body must be a JSON object")

    version = data.get("version")
    if version != SUPPORTED_REPORT_VERSION:
        raise ReportFormatError(f"unsupported report version: {version!r} (expected {SUPPORTED_REPORT_VERSION})")

    try:
        quote = base64.b64decode(_require_str(data, "isvEnclaveQuoteBody"), validate=True)
    except binascii.Error as exc:
        raise ReportFormatError(f"isvEnclaveQuoteBody is not valid base64: {exc}") from exc
    if len(quote) != SGX_QUOTE_SIZE:
        raise ReportFormatError(f"invalid SGX quote length: {len(quote)} (expected {SGX_QUOTE_SIZE})")

    # sgx_quote_t header
    quote_version, sign_type = struct.unpack_from("<HH", quote, 0)
    epid_group_id = quote[4:8]
    qe_svn, pce_svn = struct.unpack_from("<HH", quote, 8)
    basename = quote[16:48]

    # sgx_report_body_t
    o = QUOTE_HEADER_SIZE
    cpu_svn = quote[o : o + 16]
    o += 16
    misc_select = struct.unpack_from("<I", quote, o)[0]
    o += 4 + 28
    attributes = quote[o : o + 16]
    o += 16
    mr_enclave = quote[o : o + 32]
    o += 32 + 32
    mr_signer = quote[o : o + 32]
    o += 32 + 96
    isv_prod_id, isv_svn = struct.unpack_from("<HH", quote, o)
    o += 4 + 60
    report_data = quote[o : o + 64]
    o += 64
    if o != SGX_QUOTE_SIZE:
        raise ReportFormatError("internal parse error in SGX quote")

    advisory_ids = data.get("advisoryIDs", [])
    if not isinstance(advisory_ids, list) or not all(isinstance(a, str) for a in advisory_ids):
        raise ReportFormatError("advisoryIDs must be a list of strings")

    return AttestationReport(
        id=_require_str(data, "id"),
        timestamp=_require_str(data, "timestamp"),
        version=version,
        quote_status=_require_str(data, "isvEnclaveQuoteStatus"),
        quote_body=quote,
        quote_version=quote_version,
        sign_type=sign_type,
        epid_group_id=epid_group_id,
        qe_svn=qe_svn,
        pce_svn=pce_svn,
        basename=basename,
        cpu_svn=cpu_svn,
        misc_select=misc_select,
        attributes=attributes,
        mr_enclave=mr_enclave,
        mr_signer=mr_signer,
        isv_prod_id=isv_prod_id,
        isv_svn=isv_svn,
        report_data=report_data,
        advisory_ids=advisory_ids,
        advisory_url=data.get("advisoryURL") if isinstance(data.get("advisoryURL"), str) else None,
        nonce=data.get("nonce") if isinstance(data.get("nonce"), str) else None,
    )


def _decode_attributes(attributes: bytes) -> dict[str, Any]:
    flags = int.from_bytes(attributes[:8], "little")
    return {
        "raw_hex": attributes.hex(),
        "flags_u64": flags,
        "xfrm_u64": int.from_bytes(attributes[8:16], "little"),
        "flags": {name: bool(flags & bit) for name, bit in ATTRIBUTE_FLAGS.items()},
    }


def build_report_dump(report: AttestationReport) -> dict[str, Any]:
    dump: dict[str, Any] = {
        "id": report.id,
        "timestamp": report.timestamp,
        "version": report.version,
        "isv_enclave_quote_status": report.quote_status,
        "quote": {
            "version": report.quote_version,
            "sign_type": report.sign_type,
            "epid_group_id": report.epid_group_id.hex(),
            "qe_svn": report.qe_svn,
            "pce_svn": report.pce_svn,
            "basename": report.basename.hex(),
        },
        "report_body": {
            "cpu_svn": report.cpu_svn.hex(),
            "misc_select": report.misc_select,
            "attributes": _decode_attributes(report.attributes),
            "mr_enclave": report.mr_enclave.hex(),
            "mr_signer": report.mr_signer.hex(),
            "isv_prod_id": report.isv_prod_id,
            "isv_svn": report.isv_svn,
            "report_data": report.report_data.hex(),
        },
    }
    if report.advisory_ids:
        dump["advisory_ids"] = list(report.advisory_ids)
    if report.advisory_url:
        dump["advisory_url"] = report.advisory_url
    if report.nonce is not None:
        dump["nonce"] = report.nonce
    return dump


# Strings made only of these characters are printed without quotes.
_PLAIN_TEXT = re.compile(r"[A-Za-z0-9_./:+=,()-]+")


def _scalar_text(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, str) and _PLAIN_TEXT.fullmatch(value):
        return value
    if isinstance(value, (int, float)):
        return repr(value)
    return json.dumps(value)


def _render(value: Any, depth: int) -> Iterator[str]:
    """Yield one output line per scalar entry of a report dump."""
    pad = "  " * depth
    if isinstance(value, dict):
        entries = [(f"{key}:", item) for key, item in value.items()]
        empty = "{}"
    elif isinstance(value, list):
        entries = [("-", item) for item in value]
        empty = "[]"
    else:
        yield pad + _scalar_text(value)
        return

    if not entries:
        yield pad + empty
    for label, item in entries:
        if isinstance(item, (dict, list)):
            yield pad + label
            yield from _render(item, depth + 1)
        else:
            yield f"{pad}{label} {_scalar_text(item)}"


def format_yaml_like(value: Any) -> str:
    return "\n".join(_render(value, 0))

"""Shared fixtures: RSA keys and certificates produced by the cryptography package."""

from __future__ import annotations

import base64
import datetime
import json
import struct

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.x509.oid import NameOID

from rsa_pkcs1 import RsaPublicKey


SAMPLE_MRENCLAVE = bytes.fromhex("a1" * 32)
SAMPLE_MRSIGNER = bytes.fromhex("b2" * 32)
SAMPLE_REPORT_DATA = bytes(range(64))

# init | mode64bit
PRODUCTION_ATTRIBUTES = 0x05
DEBUG_ATTRIBUTES = 0x07


def _name(common_name: str) -> x509.Name:
    return x509.Name(
        [
            x509.NameAttribute(NameOID.COUNTRY_NAME, "US"),
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, "Example Attestation Services"),
            x509.NameAttribute(NameOID.COMMON_NAME, common_name),
        ]
    )


def build_certificate(
    subject: str,
    public_key,
    issuer: str,
    issuer_key,
    ca: bool = False,
    algorithm=None,
) -> x509.Certificate:
    now = datetime.datetime(2024, 1, 1, tzinfo=datetime.timezone.utc)
    return (
        x509.CertificateBuilder()
        .subject_name(_name(subject))
        .issuer_name(_name(issuer))
        .public_key(public_key)
        .serial_number(x509.random_serial_number())
        .not_valid_before(now)
        .not_valid_after(now + datetime.timedelta(days=3650))
        .add_extension(x509.BasicConstraints(ca=ca, path_length=None), critical=True)
        .sign(issuer_key, algorithm or hashes.SHA256())
    )


def rsa_public_key(private_key: rsa.RSAPrivateKey) -> RsaPublicKey:
    numbers = private_key.public_key().public_numbers()
    return RsaPublicKey.from_ints(numbers.n, numbers.e)


def to_der(cert: x509.Certificate) -> bytes:
    return cert.public_bytes(serialization.Encoding.DER)


def to_pem(cert: x509.Certificate) -> str:
    return cert.public_bytes(serialization.Encoding.PEM).decode("ascii")


def sign_pkcs1_sha256(private_key: rsa.RSAPrivateKey, message: bytes) -> bytes:
    return private_key.sign(message, padding.PKCS1v15(), hashes.SHA256())


def build_quote(
    mr_enclave: bytes = SAMPLE_MRENCLAVE,
    mr_signer: bytes = SAMPLE_MRSIGNER,
    report_data: bytes = SAMPLE_REPORT_DATA,
    attributes: int = PRODUCTION_ATTRIBUTES,
) -> bytes:
    quote = bytearray(432)
    struct.pack_into("<HH", quote, 0, 2, 1)
    quote[4:8] = bytes.fromhex("c00b0000")
    struct.pack_into("<HH", quote, 8, 11, 10)
    struct.pack_into("<I", quote, 64, 0)
    struct.pack_into("<QQ", quote, 96, attributes, 0x07)
    quote[112:144] = mr_enclave
    quote[176:208] = mr_signer
    struct.pack_into("<HH", quote, 304, 7, 3)
    quote[368:432] = report_data
    return bytes(quote)


def build_report_body(quote: bytes | None = None, status: str = "OK", **extra) -> bytes:
    report = {
        "id": "165171271757108173876306223827987629752",
        "timestamp": "2024-03-01T12:00:00.000000",
        "version": 4,
        "isvEnclaveQuoteStatus": status,
        "isvEnclaveQuoteBody": base64.b64encode(quote if quote is not None else build_quote()).decode("ascii"),
    }
    report.update(extra)
    return json.dumps(report, separators=(",", ":")).encode("utf-8")


# =============================================================================
# Keys and certificates
# =============================================================================

@pytest.fixture(scope="session")
def root_private_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=3072)


@pytest.fixture(scope="session")
def signing_private_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def private_key_4096() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=4096)


@pytest.fixture(scope="session")
def root_certificate(root_private_key) -> x509.Certificate:
    return build_certificate(
        "Example Attestation Root CA",
        root_private_key.public_key(),
        "Example Attestation Root CA",
        root_private_key,
        ca=True,
    )


@pytest.fixture(scope="session")
def signing_certificate(root_private_key, signing_private_key) -> x509.Certificate:
    return build_certificate(
        "Example Attestation Report Signing",
        signing_private_key.public_key(),
        "Example Attestation Root CA",
        root_private_key,
    )


@pytest.fixture(scope="session")
def root_key(root_private_key) -> RsaPublicKey:
    return rsa_public_key(root_private_key)


@pytest.fixture(scope="session")
def signing_key(signing_private_key) -> RsaPublicKey:
    return rsa_public_key(signing_private_key)


@pytest.fixture(scope="session")
def signing_der(signing_certificate) -> bytes:
    return to_der(signing_certificate)


# =============================================================================
# Signed attestation report
# =============================================================================

@pytest.fixture(scope="session")
def report_body() -> bytes:
    return build_report_body()


@pytest.fixture(scope="session")
def report_signature(signing_private_key, report_body) -> bytes:
    return sign_pkcs1_sha256(signing_private_key, report_body)


# =============================================================================
# Intel SGX Attestation Report Signing certificates (IAS, published by Intel)
# =============================================================================

INTEL_IAS_ROOT_CA_PEM = """\
-----BEGIN CERTIFICATE-----
MIIFSzCCA7OgAwIBAgIJANEHdl0yo7CUMA0GCSqGSIb3DQEBCwUAMH4xCzAJBgNV
BAYTAlVTMQswCQYDVQQIDAJDQTEUMBIGA1UEBwwLU2FudGEgQ2xhcmExGjAYBgNV
BAoMEUludGVsIENvcnBvcmF0aW9uMTAwLgYDVQQDDCdJbnRlbCBTR1ggQXR0ZXN0
YXRpb24gUmVwb3J0IFNpZ25pbmcgQ0EwIBcNMTYxMTE0MTUzNzMxWhgPMjA0OTEy
MzEyMzU5NTlaMH4xCzAJBgNVBAYTAlVTMQswCQYDVQQIDAJDQTEUMBIGA1UEBwwL
U2FudGEgQ2xhcmExGjAYBgNVBAoMEUludGVsIENvcnBvcmF0aW9uMTAwLgYDVQQD
DCdJbnRlbCBTR1ggQXR0ZXN0YXRpb24gUmVwb3J0IFNpZ25pbmcgQ0EwggGiMA0G
CSqGSIb3DQEBAQUAA4IBjwAwggGKAoIBgQCfPGR+tXc8u1EtJzLA10Feu1Wg+p7e
LmSRmeaCHbkQ1TF3Nwl3RmpqXkeGzNLd69QUnWovYyVSndEMyYc3sHecGgfinEeh
rgBJSEdsSJ9FpaFdesjsxqzGRa20PYdnnfWcCTvFoulpbFR4VBuXnnVLVzkUvlXT
L/TAnd8nIZk0zZkFJ7P5LtePvykkar7LcSQO85wtcQe0R1Raf/sQ6wYKaKmFgCGe
NpEJUmg4ktal4qgIAxk+QHUxQE42sxViN5mqglB0QJdUot/o9a/V/mMeH8KvOAiQ
byinkNndn+Bgk5sSV5DFgF0DffVqmVMblt5p3jPtImzBIH0QQrXJq39AT8cRwP5H
afuVeLHcDsRp6hol4P+ZFIhu8mmbI1u0hH3W/0C2BuYXB5PC+5izFFh/nP0lc2Lf
6rELO9LZdnOhpL1ExFOq9H/B8tPQ84T3Sgb4nAifDabNt/zu6MmCGo5U8lwEFtGM
RoOaX4AS+909x00lYnmtwsDVWv9vBiJCXRsCAwEAAaOByTCBxjBgBgNVHR8EWTBX
MFWgU6BRhk9odHRwOi8vdHJ1c3RlZHNlcnZpY2VzLmludGVsLmNvbS9jb250ZW50
L0NSTC9TR1gvQXR0ZXN0YXRpb25SZXBvcnRTaWduaW5nQ0EuY3JsMB0GA1UdDgQW
BBR4Q3t2pn680K9+QjfrNXw7hwFRPDAfBgNVHSMEGDAWgBR4Q3t2pn680K9+Qjfr
NXw7hwFRPDAOBgNVHQ8BAf8EBAMCAQYwEgYDVR0TAQH/BAgwBgEB/wIBADANBgkq
hkiG9w0BAQsFAAOCAYEAeF8tYMXICvQqeXYQITkV2oLJsp6J4JAqJabHWxYJHGir
IEqucRiJSSx+HjIJEUVaj8E0QjEud6Y5lNmXlcjqRXaCPOqK0eGRz6hi+ripMtPZ
sFNaBwLQVV905SDjAzDzNIDnrcnXyB4gcDFCvwDFKKgLRjOB/WAqgscDUoGq5ZVi
zLUzTqiQPmULAQaB9c6Oti6snEFJiCQ67JLyW/E83/frzCmO5Ru6WjU4tmsmy8Ra
Ud4APK0wZTGtfPXU7w+IBdG5Ez0kE1qzxGQaL4gINJ1zMyleDnbuS8UicjJijvqA
152Sq049ESDz+1rRGc2NVEqh1KaGXmtXvqxXcTB+Ljy5Bw2ke0v8iGngFBPqCTVB
3op5KBG3RjbF6RRSzwzuWfL7QErNC8WEy5yDVARzTA5+xmBc388v9Dm21HGfcC8O
DD+gT9sSpssq0ascmvH49MOgjt1yoysLtdCtJW/9FZpoOypaHx0R+mJTLwPXVMrv
DaVzWh5aiEx+idkSGMnX
-----END CERTIFICATE-----
"""

INTEL_IAS_SIGNING_PEM = """\
-----BEGIN CERTIFICATE-----
MIIEoTCCAwmgAwIBAgIJANEHdl0yo7CWMA0GCSqGSIb3DQEBCwUAMH4xCzAJBgNV
BAYTAlVTMQswCQYDVQQIDAJDQTEUMBIGA1UEBwwLU2FudGEgQ2xhcmExGjAYBgNV
BAoMEUludGVsIENvcnBvcmF0aW9uMTAwLgYDVQQDDCdJbnRlbCBTR1ggQXR0ZXN0
YXRpb24gUmVwb3J0IFNpZ25pbmcgQ0EwHhcNMTYxMTIyMDkzNjU4WhcNMjYxMTIw
MDkzNjU4WjB7MQswCQYDVQQGEwJVUzELMAkGA1UECAwCQ0ExFDASBgNVBAcMC1Nh
bnRhIENsYXJhMRowGAYDVQQKDBFJbnRlbCBDb3Jwb3JhdGlvbjEtMCsGA1UEAwwk
SW50ZWwgU0dYIEF0dGVzdGF0aW9uIFJlcG9ydCBTaWduaW5nMIIBIjANBgkqhkiG
9w0BAQEFAAOCAQ8AMIIBCgKCAQEAqXot4OZuphR8nudFrAFiaGxxkgma/Es/BA+t
beCTUR106AL1ENcWA4FX3K+E9BBL0/7X5rj5nIgX/R/1ubhkKWw9gfqPG3KeAtId
cv/uTO1yXv50vqaPvE1CRChvzdS/ZEBqQ5oVvLTPZ3VEicQjlytKgN9cLnxbwtuv
LUK7eyRPfJW/ksddOzP8VBBniolYnRCD2jrMRZ8nBM2ZWYwnXnwYeOAHV+W9tOhA
ImwRwKF/95yAsVwd21ryHMJBcGH70qLagZ7Ttyt++qO/6+KAXJuKwZqjRlEtSEz8
gZQeFfVYgcwSfo96oSMAzVr7V0L6HSDLRnpb6xxmbPdqNol4tQIDAQABo4GkMIGh
MB8GA1UdIwQYMBaAFHhDe3amfrzQr35CN+s1fDuHAVE8MA4GA1UdDwEB/wQEAwIG
wDAMBgNVHRMBAf8EAjAAMGAGA1UdHwRZMFcwVaBToFGGT2h0dHA6Ly90cnVzdGVk
c2VydmljZXMuaW50ZWwuY29tL2NvbnRlbnQvQ1JML1NHWC9BdHRlc3RhdGlvblJl
cG9ydFNpZ25pbmdDQS5jcmwwDQYJKoZIhvcNAQELBQADggGBAGcIthtcK9IVRz4r
Rq+ZKE+7k50/OxUsmW8aavOzKb0iCx07YQ9rzi5nU73tME2yGRLzhSViFs/LpFa9
lpQL6JL1aQwmDR74TxYGBAIi5f4I5TJoCCEqRHz91kpG6Uvyn2tLmnIdJbPE4vYv
WLrtXXfFBSSPD4Afn7+3/XUggAlc7oCTizOfbbtOFlYA4g5KcYgS1J2ZAeMQqbUd
ZseZCcaZZZn65tdqee8UXZlDvx0+NdO0LR+5pFy+juM0wWbu59MvzcmTXbjsi7HY
6zd53Yq5K244fwFHRQ8eOB0IWB+4PfM7FeAApZvlfqlKOlLcZL2uyVmzRkyR5yW7
2uo9mehX44CiPJ2fse9Y6eQtcfEhMPkmHXI01sN+KwPbpA39+xOsStjhP9N1Y1a2
tQAVo+yVgLgV2Hws73Fc0o3wC78qPEA+v2aRs/Be3ZFDgDyghc/1fgU+7C+P6kbq
d4poyb6IW8KCJbxfMJvkordNOgOUUxndPHEi/tb/U7uLjLOgPA==
-----END CERTIFICATE-----
"""

INTEL_IAS_SIGNING_MODULUS = bytes.fromhex(
    "a97a2de0e66ea6147c9ee745ac0162686c7192099afc4b3f040fad6de093511d"
    "74e802f510d716038157dcaf84f4104bd3fed7e6b8f99c8817fd1ff5b9b86429"
    "6c3d81fa8f1b729e02d21d72ffee4ced725efe74bea68fbc4d4244286fcdd4bf"
    "64406a439a15bcb4cf67754489c423972b4a80df5c2e7c5bc2dbaf2d42bb7b24"
    "4f7c95bf92c75d3b33fc5410678a89589d1083da3acc459f2704cd99598c275e"
    "7c1878e00757e5bdb4e840226c11c0a17ff79c80b15c1ddb5af21cc2417061fb"
    "d2a2da819ed3b72b7efaa3bfebe2805c9b8ac19aa346512d484cfc81941e15f5"
    "5881cc127e8f7aa12300cd5afb5742fa1d20cb467a5beb1c666cf76a368978b5"
)


@pytest.fixture(scope="session")
def intel_root_certificate() -> x509.Certificate:
    return x509.load_pem_x509_certificate(INTEL_IAS_ROOT_CA_PEM.encode("ascii"))


@pytest.fixture(scope="session")
def intel_root_key(intel_root_certificate) -> RsaPublicKey:
    numbers = intel_root_certificate.public_key().public_numbers()
    return RsaPublicKey.from_ints(numbers.n, numbers.e)


@pytest.fixture(scope="session")
def intel_signing_der() -> bytes:
    return to_der(x509.load_pem_x509_certificate(INTEL_IAS_SIGNING_PEM.encode("ascii")))

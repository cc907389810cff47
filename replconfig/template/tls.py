"""Generated TLS material for templates.

Certificates are generated on first use and cached by name, so every template
that asks for ``TLSCert "web" ...`` and ``TLSKey "web" ...`` during a pass
receives halves of the same pair.  Cache keys:

* ``certName:cn`` for self-signed pairs (plus ``certName`` alone, so the
  one-argument ``TLSKey "certName"`` form can find the last pair generated)
* ``caName:certName:cn`` for CA-signed pairs
* ``caName`` in a separate map for certificate authorities
"""

from __future__ import annotations

import datetime
import ipaddress
import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

logger = logging.getLogger(__name__)

KEY_SIZE = 2048


@dataclass(frozen=True)
class TLSPair:
    """PEM-encoded certificate and private key."""

    cert: str
    key: str
    cn: str = ""


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------


def _new_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=KEY_SIZE)


def _key_pem(key: rsa.RSAPrivateKey) -> str:
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")


def _cert_pem(cert: x509.Certificate) -> str:
    return cert.public_bytes(serialization.Encoding.PEM).decode("ascii")


def _san(ips: Optional[Sequence[Any]], alternate_dns: Optional[Sequence[Any]]) -> List[x509.GeneralName]:
    names: List[x509.GeneralName] = []
    for ip in ips or []:
        names.append(x509.IPAddress(ipaddress.ip_address(str(ip))))
    for dns in alternate_dns or []:
        names.append(x509.DNSName(str(dns)))
    return names


def _base_builder(
    cn: str,
    issuer: x509.Name,
    public_key: rsa.RSAPublicKey,
    days_valid: int,
) -> x509.CertificateBuilder:
    now = datetime.datetime.now(datetime.timezone.utc)
    return (
        x509.CertificateBuilder()
        .subject_name(x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, cn)]))
        .issuer_name(issuer)
        .public_key(public_key)
        .serial_number(x509.random_serial_number())
        .not_valid_before(now)
        .not_valid_after(now + datetime.timedelta(days=int(days_valid)))
    )


def _leaf_extensions(
    builder: x509.CertificateBuilder,
    ips: Optional[Sequence[Any]],
    alternate_dns: Optional[Sequence[Any]],
) -> x509.CertificateBuilder:
    builder = builder.add_extension(
        x509.BasicConstraints(ca=False, path_length=None),
        critical=True,
    ).add_extension(
        x509.KeyUsage(
            digital_signature=True,
            content_commitment=False,
            key_encipherment=True,
            data_encipherment=False,
            key_agreement=False,
            key_cert_sign=False,
            crl_sign=False,
            encipher_only=False,
            decipher_only=False,
        ),
        critical=True,
    ).add_extension(
        x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH, ExtendedKeyUsageOID.CLIENT_AUTH]),
        critical=False,
    )
    names = _san(ips, alternate_dns)
    if names:
        builder = builder.add_extension(x509.SubjectAlternativeName(names), critical=False)
    return builder


def generate_ca(cn: str, days_valid: int) -> TLSPair:
    """Generate a self-signed certificate authority."""
    key = _new_key()
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, cn)])
    cert = (
        _base_builder(cn, name, key.public_key(), days_valid)
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .add_extension(
            x509.KeyUsage(
                digital_signature=True,
                content_commitment=False,
                key_encipherment=True,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=True,
                crl_sign=False,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
        .add_extension(x509.SubjectKeyIdentifier.from_public_key(key.public_key()), critical=False)
        .sign(key, hashes.SHA256())
    )
    return TLSPair(cert=_cert_pem(cert), key=_key_pem(key), cn=cn)


def generate_self_signed(
    cn: str,
    ips: Optional[Sequence[Any]],
    alternate_dns: Optional[Sequence[Any]],
    days_valid: int,
) -> TLSPair:
    key = _new_key()
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, cn)])
    builder = _base_builder(cn, name, key.public_key(), days_valid)
    cert = _leaf_extensions(builder, ips, alternate_dns).sign(key, hashes.SHA256())
    return TLSPair(cert=_cert_pem(cert), key=_key_pem(key), cn=cn)


def generate_signed(
    ca: TLSPair,
    cn: str,
    ips: Optional[Sequence[Any]],
    alternate_dns: Optional[Sequence[Any]],
    days_valid: int,
) -> TLSPair:
    """Generate a certificate for *cn* signed by the CA pair *ca*."""
    ca_cert = x509.load_pem_x509_certificate(ca.cert.encode("ascii"))
    ca_key = serialization.load_pem_private_key(ca.key.encode("ascii"), password=None)

    key = _new_key()
    builder = _base_builder(cn, ca_cert.subject, key.public_key(), days_valid)
    builder = _leaf_extensions(builder, ips, alternate_dns).add_extension(
        x509.AuthorityKeyIdentifier.from_issuer_public_key(ca_cert.public_key()),  # type: ignore[arg-type]
        critical=False,
    )
    cert = builder.sign(ca_key, hashes.SHA256())  # type: ignore[arg-type]
    return TLSPair(cert=_cert_pem(cert), key=_key_pem(key), cn=cn)


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------


def _is_list_or_none(value: Any) -> bool:
    return value is None or isinstance(value, (list, tuple))


class TLSCache:
    """Thread-safe store of generated pairs shared by the TLS template functions."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._pairs: Dict[str, TLSPair] = {}
        self._cas: Dict[str, TLSPair] = {}

    def clear(self) -> None:
        with self._lock:
            self._pairs.clear()
            self._cas.clear()

    def get(self, key: str) -> Optional[TLSPair]:
        with self._lock:
            return self._pairs.get(key)

    def ca(self, ca_name: str, days_valid: int) -> TLSPair:
        """Return the CA named *ca_name*, generating it on first use."""
        with self._lock:
            pair = self._cas.get(ca_name)
            if pair is None:
                logger.debug("Generating certificate authority %s", ca_name)
                pair = generate_ca(ca_name, days_valid)
                self._cas[ca_name] = pair
            return pair

    # ── template functions ───────────────────────────────────────────

    def tls_cert(
        self,
        cert_name: str,
        cn: str,
        ips: Optional[Sequence[Any]],
        alternate_dns: Optional[Sequence[Any]],
        days_valid: int,
    ) -> str:
        key = f"{cert_name}:{cn}"
        with self._lock:
            pair = self._pairs.get(key)
            if pair is None:
                logger.debug("Generating self-signed certificate %s", key)
                pair = generate_self_signed(cn, ips, alternate_dns, days_valid)
                self._pairs[key] = pair
                self._pairs[cert_name] = pair
            return pair.cert

    def tls_key(self, cert_name: str, *args: Any) -> str:
        """Return the key for *cert_name*.

        With only a certificate name, returns the key of the pair most
        recently generated by ``TLSCert`` for that name (``""`` if none).
        With ``cn, ips, alternateDNS, daysValid`` it looks up or generates
        the pair itself; arguments of the wrong type yield ``""``.
        """
        if len(args) != 4:
            pair = self.get(cert_name)
            return pair.key if pair else ""

        cn, ips, alternate_dns, days_valid = args
        if not isinstance(cn, str) or not _is_list_or_none(ips) or not _is_list_or_none(alternate_dns):
            return ""
        if not isinstance(days_valid, int) or isinstance(days_valid, bool):
            return ""

        key = f"{cert_name}:{cn}"
        with self._lock:
            pair = self._pairs.get(key)
            if pair is None:
                logger.debug("Generating self-signed certificate %s", key)
                pair = generate_self_signed(cn, ips, alternate_dns, days_valid)
                self._pairs[key] = pair
            return pair.key

    def tls_ca_cert(self, ca_name: str, days_valid: int) -> str:
        return self.ca(ca_name, days_valid).cert

    def _signed_pair(
        self,
        ca_name: str,
        cert_name: str,
        cn: str,
        ips: Optional[Sequence[Any]],
        alternate_dns: Optional[Sequence[Any]],
        days_valid: int,
    ) -> TLSPair:
        key = f"{ca_name}:{cert_name}:{cn}"
        with self._lock:
            pair = self._pairs.get(key)
            if pair is None:
                logger.debug("Generating certificate %s signed by %s", key, ca_name)
                pair = generate_signed(self.ca(ca_name, days_valid), cn, ips, alternate_dns, days_valid)
                self._pairs[key] = pair
            return pair

    def tls_cert_from_ca(self, ca_name, cert_name, cn, ips, alternate_dns, days_valid) -> str:
        return self._signed_pair(ca_name, cert_name, cn, ips, alternate_dns, days_valid).cert

    def tls_key_from_ca(self, ca_name, cert_name, cn, ips, alternate_dns, days_valid) -> str:
        return self._signed_pair(ca_name, cert_name, cn, ips, alternate_dns, days_valid).key

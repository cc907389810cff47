"""Static template functions.

Functions here depend only on their arguments, the process environment and
the TLS cache; they are available before any config value is known, which is
why the Config Value Resolver renders first-pass defaults with this provider
alone.
"""

from __future__ import annotations

import base64
import datetime
import logging
import math
import os
import re
import secrets
import struct
from typing import Any, Callable, Dict, List, Optional, Union
from urllib.parse import quote_plus

import yaml
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from replconfig import __version__
from replconfig.template.funcs import (
    parse_go_bool,
    parse_go_float,
    parse_go_int,
    parse_go_uint,
)
from replconfig.template.tls import TLSCache

logger = logging.getLogger(__name__)

DEFAULT_CHARSET = "[_A-Za-z0-9]"

Number = Union[int, float]

# ── Go time layouts ──────────────────────────────────────────────────

_GO_LAYOUT_RE = re.compile(
    r"January|Jan|Monday|Mon|MST|2006|Z07:00|Z0700|Z07|-07:00|-0700|-07"
    r"|\.0+|\.9+|01|02|_2|03|04|05|06|15|PM|pm|1|2|3|4|5"
)


def _go_layout_token(token: str, now: datetime.datetime) -> str:
    if token == "2006":
        return f"{now.year:04d}"
    if token == "06":
        return f"{now.year % 100:02d}"
    if token == "January":
        return now.strftime("%B")
    if token == "Jan":
        return now.strftime("%b")
    if token == "01":
        return f"{now.month:02d}"
    if token == "1":
        return str(now.month)
    if token == "Monday":
        return now.strftime("%A")
    if token == "Mon":
        return now.strftime("%a")
    if token == "02":
        return f"{now.day:02d}"
    if token == "_2":
        return f"{now.day:>2d}"
    if token == "2":
        return str(now.day)
    if token == "15":
        return f"{now.hour:02d}"
    if token == "03":
        return f"{(now.hour % 12) or 12:02d}"
    if token == "3":
        return str((now.hour % 12) or 12)
    if token == "04":
        return f"{now.minute:02d}"
    if token == "4":
        return str(now.minute)
    if token == "05":
        return f"{now.second:02d}"
    if token == "5":
        return str(now.second)
    if token == "PM":
        return "PM" if now.hour >= 12 else "AM"
    if token == "pm":
        return "pm" if now.hour >= 12 else "am"
    if token == "MST":
        return "UTC"
    if token.startswith("Z"):
        return "Z"
    if token in ("-07:00", "-0700", "-07"):
        return {"-07:00": "+00:00", "-0700": "+0000", "-07": "+00"}[token]
    digits = len(token) - 1
    fraction = f"{now.microsecond:06d}{'0' * max(0, digits - 6)}"[:digits]
    if token[1] == "9":
        fraction = fraction.rstrip("0")
        return f".{fraction}" if fraction else ""
    return f".{fraction}"


def go_time_format(now: datetime.datetime, layout: str) -> str:
    """Format *now* with a Go reference-time layout such as ``2006-01-02``."""
    return _GO_LAYOUT_RE.sub(lambda m: _go_layout_token(m.group(0), now), layout)


RFC3339 = "2006-01-02T15:04:05Z07:00"

# ── numbers ──────────────────────────────────────────────────────────


def _is_float(value: Any) -> bool:
    return isinstance(value, float)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _to_float(value: Any) -> float:
    if _is_float(value) or _is_int(value):
        return float(value)
    return 0.0


def _to_int(value: Any) -> int:
    if _is_float(value):
        return int(value)
    if _is_int(value):
        return value
    return 0


def _float_div(a: float, b: float) -> float:
    if b != 0:
        return a / b
    if a == 0 or math.isnan(a):
        return math.nan
    return math.copysign(math.inf, a) * math.copysign(1.0, b)


def _int_div(a: int, b: int) -> int:
    if b == 0:
        raise ZeroDivisionError("integer divide by zero")
    quotient = abs(a) // abs(b)
    return quotient if (a < 0) == (b < 0) else -quotient


def _arith(
    float_op: Callable[[float, float], float],
    int_op: Callable[[int, int], int],
) -> Callable[[Any, Any], Number]:
    def apply(a: Any, b: Any) -> Number:
        if _is_float(a) or _is_float(b):
            return float_op(_to_float(a), _to_float(b))
        if _is_int(a):
            return int_op(a, _to_int(b))
        return 0

    return apply


_DECIMAL_UNITS = ("B", "kB", "MB", "GB", "TB", "PB", "EB", "ZB", "YB")


def human_size(size: Any) -> str:
    """Size in decimal units with four significant digits (``1.5MB``)."""
    value = _to_float(size)
    unit = 0
    while value >= 1000.0 and unit < len(_DECIMAL_UNITS) - 1:
        value /= 1000.0
        unit += 1
    return f"{value:.4g}{_DECIMAL_UNITS[unit]}"


# ── sealed secrets ───────────────────────────────────────────────────


def kube_seal(cert_data: str, namespace: str, name: str, value: str) -> str:
    """Encrypt *value* for a SealedSecret scoped to ``namespace/name``.

    The output matches what the kubeseal controller decrypts: a two byte
    big-endian length, the RSA-OAEP (SHA-256) wrapped session key, then the
    AES-256-GCM ciphertext sealed under a zero nonce, base64 encoded.
    """
    try:
        cert = x509.load_pem_x509_certificate(cert_data.encode("utf-8"))
    except ValueError as exc:
        raise ValueError(f"failed to parse cert: {exc}") from exc

    public_key = cert.public_key()
    if not isinstance(public_key, rsa.RSAPublicKey):
        raise ValueError("failed to get public key")

    session_key = secrets.token_bytes(32)
    label = f"{namespace}/{name}".encode("utf-8")
    rsa_ciphertext = public_key.encrypt(
        session_key,
        padding.OAEP(mgf=padding.MGF1(algorithm=hashes.SHA256()), algorithm=hashes.SHA256(), label=label),
    )

    sealed = AESGCM(session_key).encrypt(bytes(12), value.encode("utf-8"), None)
    payload = struct.pack(">H", len(rsa_ciphertext)) + rsa_ciphertext + sealed
    return base64.b64encode(payload).decode("ascii")


# ── strings ──────────────────────────────────────────────────────────


def _trim(text: str, *cutset: str) -> str:
    if not cutset:
        return text.strip()
    return text.strip(cutset[0])


def _split(text: str, sep: str) -> List[str]:
    if sep == "":
        return list(text)
    return text.split(sep)


def _base64_decode(encoded: str) -> str:
    try:
        return base64.b64decode(encoded, validate=True).decode("utf-8")
    except ValueError:
        return ""


def random_string(length: int, charset: str = DEFAULT_CHARSET) -> str:
    """Random string of *length* characters matching the regex *charset*."""
    try:
        pattern = re.compile(charset)
    except re.error:
        logger.debug("Invalid RandomString charset %r", charset)
        return ""
    alphabet = [chr(c) for c in range(32, 127) if pattern.fullmatch(chr(c))]
    if not alphabet:
        return ""
    return "".join(secrets.choice(alphabet) for _ in range(int(length)))


def random_bytes(length: int) -> str:
    return base64.b64encode(secrets.token_bytes(int(length))).decode("ascii")


def yaml_escape(plain: str) -> str:
    """Quote *plain* as a YAML scalar, indented so it can sit under a key."""
    marshalled = yaml.safe_dump(plain, default_style='"', allow_unicode=True, width=float("inf"))
    pad = " " * 20
    return pad + marshalled.replace("\n", "\n" + pad)


def _default_on_error(parse: Callable[..., Any], zero: Any) -> Callable[..., Any]:
    def wrapped(text: str, *args: Any) -> Any:
        try:
            return parse(text, *args)
        except ValueError:
            return zero

    return wrapped


# ── provider ─────────────────────────────────────────────────────────


class StaticCtx:
    """Provider of context-free template functions.

    *tls_cache* is shared by every render that must hand out the same
    certificates; a fresh cache is created when omitted.  *kots_version*
    defaults to the installed package version.
    """

    def __init__(self, tls_cache: Optional[TLSCache] = None, kots_version: Optional[str] = None) -> None:
        self.tls_cache = tls_cache if tls_cache is not None else TLSCache()
        self._kots_version = kots_version

    def now(self) -> str:
        return self.now_fmt("")

    def now_fmt(self, layout: str) -> str:
        now = datetime.datetime.now(datetime.timezone.utc)
        return go_time_format(now, layout or RFC3339)

    def namespace(self) -> str:
        return os.environ.get("DEV_NAMESPACE") or os.environ.get("POD_NAMESPACE") or "default"

    def kots_version(self) -> str:
        return (self._kots_version or __version__).lstrip("v")

    def func_map(self) -> Dict[str, Callable[..., Any]]:
        cache = self.tls_cache
        return {
            "Now": self.now,
            "NowFmt": self.now_fmt,
            "ToLower": lambda text: text.lower(),
            "ToUpper": lambda text: text.upper(),
            "TrimSpace": lambda text: text.strip(),
            "Trim": _trim,
            "UrlEncode": quote_plus,
            "Base64Encode": lambda plain: base64.b64encode(plain.encode("utf-8")).decode("ascii"),
            "Base64Decode": _base64_decode,
            "Split": _split,
            "RandomBytes": random_bytes,
            "RandomString": random_string,
            "Add": _arith(lambda a, b: a + b, lambda a, b: a + b),
            "Sub": _arith(lambda a, b: a - b, lambda a, b: a - b),
            "Mult": _arith(lambda a, b: a * b, lambda a, b: a * b),
            "Div": _arith(_float_div, _int_div),
            "ParseBool": _default_on_error(parse_go_bool, False),
            "ParseFloat": _default_on_error(parse_go_float, 0.0),
            "ParseInt": _default_on_error(parse_go_int, 0),
            "ParseUint": _default_on_error(parse_go_uint, 0),
            "HumanSize": human_size,
            "KubeSeal": kube_seal,
            "Namespace": self.namespace,
            "HTTPSProxy": lambda: os.environ.get("HTTPS_PROXY", ""),
            "HTTPProxy": lambda: os.environ.get("HTTP_PROXY", ""),
            "NoProxy": lambda: os.environ.get("NO_PROXY", ""),
            "PrivateCACert": lambda: os.environ.get("SSL_CERT_CONFIGMAP", ""),
            "YamlEscape": yaml_escape,
            "KotsVersion": self.kots_version,
            "TLSCert": cache.tls_cert,
            "TLSKey": cache.tls_key,
            "TLSCACert": cache.tls_ca_cert,
            "TLSCertFromCA": cache.tls_cert_from_ca,
            "TLSKeyFromCA": cache.tls_key_from_ca,
        }

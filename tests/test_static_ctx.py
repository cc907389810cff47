"""Tests for replconfig.template.static_ctx: context-free template functions."""

from __future__ import annotations

import base64
import datetime
import math
import re
import struct

import pytest
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from replconfig.template.builder import Builder
from replconfig.template.static_ctx import (
    StaticCtx,
    go_time_format,
    human_size,
    kube_seal,
    random_string,
    yaml_escape,
)
from replconfig.template.tls import generate_self_signed


def _render(text: str) -> str:
    return Builder([StaticCtx()]).render_template("t", text)


# ── Arithmetic ───────────────────────────────────────────────────────


class TestArithmetic:
    def test_int_ops(self):
        assert _render("repl{{ Add 2 3 }}") == "5"
        assert _render("repl{{ Sub 2 3 }}") == "-1"
        assert _render("repl{{ Mult 4 3 }}") == "12"

    def test_int_division_truncates_toward_zero(self):
        assert _render("repl{{ Div 7 2 }}") == "3"
        assert _render("repl{{ Div -7 2 }}") == "-3"

    def test_float_wins(self):
        assert _render("repl{{ Add 1 2.5 }}") == "3.5"
        assert _render("repl{{ Div 7.0 2 }}") == "3.5"

    def test_non_numeric_left_operand_is_zero(self):
        assert _render('repl{{ Add "a" 1 }}') == "0"

    def test_non_numeric_right_operand_counts_as_zero(self):
        assert _render('repl{{ Add 1 "a" }}') == "1"

    def test_float_division_by_zero(self):
        fm = StaticCtx().func_map()
        assert fm["Div"](1.0, 0) == math.inf
        assert fm["Div"](-1.0, 0) == -math.inf
        assert math.isnan(fm["Div"](0.0, 0))

    def test_int_division_by_zero_raises(self):
        with pytest.raises(ZeroDivisionError):
            StaticCtx().func_map()["Div"](1, 0)


# ── Parsing ──────────────────────────────────────────────────────────


class TestParsing:
    def test_parse_int_base(self):
        assert _render('repl{{ ParseInt "ff" 16 }}') == "255"

    def test_parse_failures_yield_zero_values(self):
        assert _render('repl{{ ParseInt "x" }}') == "0"
        assert _render('repl{{ ParseBool "nope" }}') == "false"
        assert _render('repl{{ ParseUint "-3" }}') == "0"
        assert _render('repl{{ ParseFloat "" }}') == "0"

    def test_parse_float(self):
        assert _render('repl{{ ParseFloat "2.25" }}') == "2.25"


# ── Strings ──────────────────────────────────────────────────────────


class TestStrings:
    def test_case_and_trim(self):
        assert _render('repl{{ TrimSpace "  a b  " }}') == "a b"
        assert _render('repl{{ Trim "xxaxx" "x" }}') == "a"

    def test_url_encode(self):
        assert _render('repl{{ UrlEncode "a b&c" }}') == "a+b%26c"

    def test_base64_round_trip(self):
        assert _render('repl{{ Base64Encode "hello" }}') == "aGVsbG8="
        assert _render('repl{{ Base64Decode "aGVsbG8=" }}') == "hello"

    def test_base64_decode_garbage_is_empty(self):
        assert _render('repl{{ Base64Decode "%%%" }}') == ""

    def test_split(self):
        assert StaticCtx().func_map()["Split"]("a,b", ",") == ["a", "b"]

    def test_yaml_escape_is_quoted_and_indented(self):
        out = yaml_escape("a: b")
        assert out.startswith(" " * 20 + '"a: b"')

    def test_human_size(self):
        assert human_size(0) == "0B"
        assert human_size(999) == "999B"
        assert human_size(1500) == "1.5kB"
        assert human_size(1000000) == "1MB"


# ── Random ───────────────────────────────────────────────────────────


class TestRandom:
    def test_default_charset(self):
        value = random_string(32)
        assert len(value) == 32
        assert re.fullmatch(r"[_A-Za-z0-9]+", value)

    def test_custom_charset(self):
        value = random_string(20, "[a-c]")
        assert set(value) <= {"a", "b", "c"}

    def test_invalid_charset_is_empty(self):
        assert random_string(5, "[") == ""

    def test_random_bytes_length(self):
        encoded = _render("repl{{ RandomBytes 16 }}")
        assert len(base64.b64decode(encoded)) == 16


# ── Environment ──────────────────────────────────────────────────────


class TestEnvironment:
    def test_namespace_prefers_dev(self, monkeypatch):
        monkeypatch.setenv("DEV_NAMESPACE", "dev")
        monkeypatch.setenv("POD_NAMESPACE", "pod")
        assert StaticCtx().namespace() == "dev"

    def test_namespace_from_pod(self, monkeypatch):
        monkeypatch.delenv("DEV_NAMESPACE", raising=False)
        monkeypatch.setenv("POD_NAMESPACE", "pod")
        assert StaticCtx().namespace() == "pod"

    def test_namespace_default(self, monkeypatch):
        monkeypatch.delenv("DEV_NAMESPACE", raising=False)
        monkeypatch.delenv("POD_NAMESPACE", raising=False)
        assert StaticCtx().namespace() == "default"

    def test_proxies(self, monkeypatch):
        monkeypatch.setenv("HTTPS_PROXY", "https://proxy:3128")
        monkeypatch.delenv("NO_PROXY", raising=False)
        assert _render("repl{{ HTTPSProxy }}") == "https://proxy:3128"
        assert _render("repl{{ NoProxy }}") == ""

    def test_kots_version_strips_v(self):
        assert StaticCtx(kots_version="v1.2.3").kots_version() == "1.2.3"


# ── Time ─────────────────────────────────────────────────────────────


class TestTime:
    NOW = datetime.datetime(2024, 3, 5, 14, 7, 9, tzinfo=datetime.timezone.utc)

    def test_layouts(self):
        assert go_time_format(self.NOW, "2006-01-02 15:04:05") == "2024-03-05 14:07:09"
        assert go_time_format(self.NOW, "Jan _2 3:04PM") == "Mar  5 2:07PM"

    def test_rfc3339(self):
        assert go_time_format(self.NOW, "2006-01-02T15:04:05Z07:00") == "2024-03-05T14:07:09Z"

    def test_now_is_rfc3339(self):
        assert re.fullmatch(r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}Z", StaticCtx().now())


# ── KubeSeal ─────────────────────────────────────────────────────────


class TestKubeSeal:
    def test_sealed_value_decrypts_with_cert_key(self):
        pair = generate_self_signed("sealed-secrets", None, None, 30)
        sealed = base64.b64decode(kube_seal(pair.cert, "ns", "secret", "s3cret"))

        (length,) = struct.unpack(">H", sealed[:2])
        wrapped, body = sealed[2:2 + length], sealed[2 + length:]
        private_key = serialization.load_pem_private_key(pair.key.encode("ascii"), password=None)
        session_key = private_key.decrypt(
            wrapped,
            padding.OAEP(mgf=padding.MGF1(algorithm=hashes.SHA256()), algorithm=hashes.SHA256(), label=b"ns/secret"),
        )
        assert AESGCM(session_key).decrypt(bytes(12), body, None) == b"s3cret"

    def test_bad_cert(self):
        with pytest.raises(ValueError, match="failed to parse cert"):
            kube_seal("not a cert", "ns", "name", "v")

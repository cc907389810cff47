"""Functions available to every template regardless of registered providers.

Two groups live here:

* the Go ``text/template`` builtins (``and``, ``or``, ``eq``, ``printf``, ...)
* a subset of the Sprig library that config authors routinely rely on
  (``default``, ``list``, ``dict``, ``quote``, ``randAlphaNum``, ...)

Output formatting follows Go's ``%v`` verb so rendered values read the same
as they did for authors used to Go templates.
"""

from __future__ import annotations

import base64
import hashlib
import json
import re
import secrets
import string
import uuid
from collections.abc import Mapping
from typing import Any, Callable, Dict, Iterable, Tuple
from urllib.parse import quote_plus

import yaml


# ---------------------------------------------------------------------------
# Go value formatting
# ---------------------------------------------------------------------------


def format_value(value: Any) -> str:
    """Format *value* the way Go's ``fmt`` ``%v`` verb does."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if value.is_integer() and abs(value) < 1e21:
            return str(int(value))
        return repr(value)
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, Mapping):
        inner = " ".join(f"{format_value(k)}:{format_value(value[k])}" for k in sorted(value, key=str))
        return f"map[{inner}]"
    if isinstance(value, (list, tuple, set, frozenset)):
        return "[" + " ".join(format_value(v) for v in value) + "]"
    return str(value)


def is_true(value: Any) -> bool:
    """Go template truthiness (empty values are false)."""
    if value is None:
        return False
    if isinstance(value, (bool, int, float, str, bytes, list, tuple, dict, set)):
        return bool(value)
    return True


def field(obj: Any, *names: str) -> Any:
    """Resolve a ``.Field.Chain`` against mappings or attributes."""
    for name in names:
        if isinstance(obj, Mapping):
            obj = obj.get(name)
        else:
            obj = getattr(obj, name)
    return obj


def range_items(value: Any) -> Iterable[Tuple[Any, Any]]:
    """Yield ``(key, element)`` pairs the way ``{{range}}`` walks values."""
    if value is None:
        return []
    if isinstance(value, Mapping):
        return [(k, value[k]) for k in sorted(value, key=str)]
    if isinstance(value, int) and not isinstance(value, bool):
        return [(i, i) for i in range(value)]
    return list(enumerate(value))


# ---------------------------------------------------------------------------
# Go builtins
# ---------------------------------------------------------------------------


def _and(*args: Any) -> Any:
    result: Any = None
    for result in args:
        if not is_true(result):
            return result
    return result


def _or(*args: Any) -> Any:
    result: Any = None
    for result in args:
        if is_true(result):
            return result
    return result


def _eq(first: Any, *others: Any) -> bool:
    return any(first == other for other in others)


def _index(item: Any, *keys: Any) -> Any:
    for key in keys:
        if item is None:
            return None
        if isinstance(item, Mapping):
            item = item.get(key)
        else:
            item = item[int(key)]
    return item


_GO_VERB_RE = re.compile(r"%([-+# 0]*)(\d+|\*)?(?:\.(\d+))?([vsdqtfFeEgGxXobc%])")


def go_sprintf(fmt: str, *args: Any) -> str:
    """Subset of Go's ``fmt.Sprintf`` covering the verbs templates use."""
    remaining = list(args)

    def _sub(match: re.Match) -> str:
        flags, width, precision, verb = match.groups()
        if verb == "%":
            return "%"
        if not remaining:
            return f"%!{verb}(MISSING)"
        arg = remaining.pop(0)
        if verb in "vs":
            text = format_value(arg)
        elif verb == "q":
            text = json.dumps(format_value(arg)) if not isinstance(arg, int) else repr(chr(arg))
        elif verb == "t":
            text = format_value(bool(arg))
        elif verb in "dxXob":
            spec = {"d": "d", "x": "x", "X": "X", "o": "o", "b": "b"}[verb]
            text = format(int(arg), spec)
        elif verb == "c":
            text = chr(int(arg))
        else:
            spec = f".{precision}{verb}" if precision else ("f" if verb in "fF" else verb)
            if verb in "fF" and not precision:
                spec = ".6f"
            text = format(float(arg), spec)
        if width and width != "*":
            pad = int(width)
            flags = flags or ""
            if "-" in flags:
                text = text.ljust(pad)
            elif "0" in flags and verb not in "vsq":
                text = text.rjust(pad, "0")
            else:
                text = text.rjust(pad)
        return text

    out = _GO_VERB_RE.sub(_sub, fmt)
    if remaining:
        out += "%!(EXTRA " + ", ".join(format_value(a) for a in remaining) + ")"
    return out


def _go_print(*args: Any) -> str:
    out = ""
    for i, arg in enumerate(args):
        if i > 0 and not isinstance(arg, str) and not isinstance(args[i - 1], str):
            out += " "
        out += format_value(arg)
    return out


def go_builtins() -> Dict[str, Callable[..., Any]]:
    return {
        "and": _and,
        "or": _or,
        "not": lambda value: not is_true(value),
        "eq": _eq,
        "ne": lambda a, b: a != b,
        "lt": lambda a, b: a < b,
        "le": lambda a, b: a <= b,
        "gt": lambda a, b: a > b,
        "ge": lambda a, b: a >= b,
        "len": len,
        "index": _index,
        "print": _go_print,
        "printf": go_sprintf,
        "println": lambda *args: " ".join(format_value(a) for a in args) + "\n",
        "urlquery": lambda *args: quote_plus("".join(format_value(a) for a in args)),
    }


# ---------------------------------------------------------------------------
# Sprig subset
# ---------------------------------------------------------------------------


def _empty(value: Any) -> bool:
    return not is_true(value)


def _default(default: Any, *given: Any) -> Any:
    if not given or _empty(given[0]):
        return default
    return given[0]


def _coalesce(*values: Any) -> Any:
    for value in values:
        if not _empty(value):
            return value
    return None


def _dict(*pairs: Any) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for i in range(0, len(pairs), 2):
        out[format_value(pairs[i])] = pairs[i + 1] if i + 1 < len(pairs) else ""
    return out


def _indent(spaces: int, text: str) -> str:
    pad = " " * int(spaces)
    return pad + text.replace("\n", "\n" + pad)


def _random(length: int, alphabet: str) -> str:
    return "".join(secrets.choice(alphabet) for _ in range(int(length)))


def _to_int(value: Any) -> int:
    try:
        return int(float(value)) if isinstance(value, str) and "." in value else int(value)
    except (TypeError, ValueError):
        return 0


def _to_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _b64dec(encoded: str) -> str:
    try:
        return base64.b64decode(encoded, validate=True).decode("utf-8")
    except (ValueError, UnicodeDecodeError):
        return ""


def _to_yaml(value: Any) -> str:
    return yaml.safe_dump(value, default_flow_style=False, sort_keys=True).rstrip("\n")


def sprig_functions() -> Dict[str, Callable[..., Any]]:
    alnum = string.ascii_letters + string.digits
    return {
        "default": _default,
        "empty": _empty,
        "coalesce": _coalesce,
        "ternary": lambda a, b, cond: a if is_true(cond) else b,
        "list": lambda *items: list(items),
        "dict": _dict,
        "get": lambda d, key: d.get(key, "") if isinstance(d, Mapping) else "",
        "hasKey": lambda d, key: isinstance(d, Mapping) and key in d,
        "keys": lambda *ds: [k for d in ds for k in d],
        "join": lambda sep, items: sep.join(format_value(i) for i in (items or [])),
        "splitList": lambda sep, text: text.split(sep),
        "contains": lambda sub, text: sub in text,
        "hasPrefix": lambda prefix, text: text.startswith(prefix),
        "hasSuffix": lambda suffix, text: text.endswith(suffix),
        "trimPrefix": lambda prefix, text: text[len(prefix):] if prefix and text.startswith(prefix) else text,
        "trimSuffix": lambda suffix, text: text[: -len(suffix)] if suffix and text.endswith(suffix) else text,
        "trim": lambda text: text.strip(),
        "upper": lambda text: text.upper(),
        "lower": lambda text: text.lower(),
        "title": lambda text: string.capwords(text),
        "replace": lambda old, new, text: text.replace(old, new),
        "repeat": lambda count, text: text * int(count),
        "quote": lambda *items: " ".join(json.dumps(format_value(i)) for i in items if i is not None),
        "squote": lambda *items: " ".join(f"'{format_value(i)}'" for i in items if i is not None),
        "indent": _indent,
        "nindent": lambda spaces, text: "\n" + _indent(spaces, text),
        "b64enc": lambda text: base64.b64encode(format_value(text).encode("utf-8")).decode("ascii"),
        "b64dec": _b64dec,
        "toJson": lambda value: json.dumps(value, sort_keys=True, separators=(",", ":")),
        "toYaml": _to_yaml,
        "toString": format_value,
        "atoi": _to_int,
        "int": _to_int,
        "int64": _to_int,
        "float64": _to_float,
        "add": lambda *nums: sum(_to_int(n) for n in nums),
        "add1": lambda n: _to_int(n) + 1,
        "sub": lambda a, b: _to_int(a) - _to_int(b),
        "mul": lambda *nums: _product(_to_int(n) for n in nums),
        "div": lambda a, b: int(_to_int(a) / _to_int(b)),
        "mod": lambda a, b: _to_int(a) % _to_int(b),
        "max": lambda *nums: max(_to_int(n) for n in nums),
        "min": lambda *nums: min(_to_int(n) for n in nums),
        "randAlphaNum": lambda n: _random(n, alnum),
        "randAlpha": lambda n: _random(n, string.ascii_letters),
        "randNumeric": lambda n: _random(n, string.digits),
        "randAscii": lambda n: _random(n, "".join(chr(c) for c in range(33, 127))),
        "uuidv4": lambda: str(uuid.uuid4()),
        "sha256sum": lambda text: hashlib.sha256(text.encode("utf-8")).hexdigest(),
        "regexMatch": lambda pattern, text: re.search(pattern, text) is not None,
        "regexReplaceAll": lambda pattern, text, repl: re.sub(pattern, repl.replace("$", "\\"), text),
    }


def _product(values: Iterable[int]) -> int:
    out = 1
    for value in values:
        out *= value
    return out


def builtin_functions() -> Dict[str, Callable[..., Any]]:
    """Go builtins plus the Sprig subset, Go builtins taking precedence."""
    funcs: Dict[str, Callable[..., Any]] = {}
    funcs.update(sprig_functions())
    funcs.update(go_builtins())
    return funcs


# ---------------------------------------------------------------------------
# Go strconv parsing
# ---------------------------------------------------------------------------

_GO_TRUE = frozenset({"1", "t", "T", "TRUE", "true", "True"})
_GO_FALSE = frozenset({"0", "f", "F", "FALSE", "false", "False"})


def parse_go_bool(text: str) -> bool:
    """Parse *text* like ``strconv.ParseBool``; raises :class:`ValueError`."""
    if text in _GO_TRUE:
        return True
    if text in _GO_FALSE:
        return False
    raise ValueError(f"invalid syntax for bool: {text!r}")


def parse_go_int(text: str, base: int = 10) -> int:
    """Parse *text* like ``strconv.ParseInt``; raises :class:`ValueError`."""
    if not text or text != text.strip() or ("_" in text and base != 0):
        raise ValueError(f"invalid syntax for int: {text!r}")
    return int(text, base)


def parse_go_uint(text: str, base: int = 10) -> int:
    """Parse *text* like ``strconv.ParseUint``; raises :class:`ValueError`."""
    if text.startswith(("-", "+")):
        raise ValueError(f"invalid syntax for uint: {text!r}")
    return parse_go_int(text, base)


def parse_go_float(text: str) -> float:
    """Parse *text* like ``strconv.ParseFloat``; raises :class:`ValueError`."""
    if not text or text != text.strip():
        raise ValueError(f"invalid syntax for float: {text!r}")
    return float(text)

"""Translation of Go-style template actions into Jinja2 source.

Config authors write actions the way Go's ``text/template`` reads::

    repl{{ ConfigOption "hostname" | ToUpper }}
    {{repl if ConfigOptionEquals "tls" "1" }}...{{repl end }}

Jinja2 executes the result.  Each action body is tokenized, parsed into
pipelines and commands, and emitted as a Jinja2 expression that calls the
merged function map through ``_repl_fn``.  Literal values are never inlined
into the generated source; they are collected into a constants table
(``_repl_c``) that is handed to the template at render time.

Literal text outside actions goes into the constants table too, so Jinja2
never parses it and it comes back byte for byte (line endings included).
Any other ``{{ }}`` text (e.g. Helm templates inside a manifest) therefore
survives both passes.
"""

from __future__ import annotations

import ast
import re
from dataclasses import dataclass
from typing import Any, Container, List, Optional, Set, Tuple


class TemplateError(RuntimeError):
    """A template could not be parsed or executed."""


class TemplateParseError(TemplateError):
    """A template action is malformed or names an unknown function."""


# ── delimiters ───────────────────────────────────────────────────────


@dataclass(frozen=True)
class Delimiters:
    """Delimiter set for one render pass."""

    open: str
    close: str
    block_open: str
    block_close: str
    comment_open: str
    comment_close: str


#: First pass: ``{{repl ... }}``.
PRE_DELIMITERS = Delimiters("{{repl", "}}", "{%repl", "%}", "{#repl", "#}")

#: Second pass: ``repl{{ ... }}``.
POST_DELIMITERS = Delimiters("repl{{", "}}", "repl{%", "%}", "repl{#", "#}")


# ── tokens ───────────────────────────────────────────────────────────

STRING = "string"
NUMBER = "number"
CONST = "const"
VAR = "var"
FIELD = "field"
DOT = "dot"
IDENT = "ident"
LPAREN = "("
RPAREN = ")"
PIPE = "|"
COMMA = ","
DECLARE = ":="
ASSIGN = "="

_IDENT_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
_NUMBER_RE = re.compile(
    r"[+-]?(?:0[xX][0-9a-fA-F_]+|0[oO][0-7_]+|0[bB][01_]+"
    r"|(?:\d[\d_]*)?\.?\d[\d_]*(?:[eE][+-]?\d+)?)"
)
_FIELD_RE = re.compile(r"(?:\.[A-Za-z_][A-Za-z0-9_]*)+")
_KEYWORDS = {"true": True, "false": False, "nil": None}
_UNSUPPORTED = ("define", "template", "block")


@dataclass
class Token:
    kind: str
    value: Any
    spaced: bool  # whitespace precedes the token


def _parse_number(text: str) -> Any:
    body = text.lstrip("+-")
    negative = text.startswith("-")
    if re.fullmatch(r"0\d+", body.replace("_", "")):
        # Go-style leading-zero octal
        number: Any = int(body, 8)
    else:
        try:
            number = int(body, 0)
        except ValueError:
            number = float(body)
    return -number if negative else number


def tokenize(body: str) -> List[Token]:
    """Split an action body into tokens."""
    tokens: List[Token] = []
    pos = 0
    spaced = True
    length = len(body)
    while pos < length:
        char = body[pos]
        if char.isspace():
            spaced = True
            pos += 1
            continue

        if char in "\"'":
            end = pos + 1
            while end < length and body[end] != char:
                end += 2 if body[end] == "\\" else 1
            if end >= length:
                raise TemplateParseError(f"unterminated quoted string in action: {body!r}")
            try:
                literal = ast.literal_eval(body[pos:end + 1])
            except (SyntaxError, ValueError) as exc:
                raise TemplateParseError(f"invalid quoted literal {body[pos:end + 1]}") from exc
            if char == "'":
                if len(literal) != 1:
                    raise TemplateParseError(f"invalid character constant {body[pos:end + 1]}")
                tokens.append(Token(NUMBER, ord(literal), spaced))
            else:
                tokens.append(Token(STRING, literal, spaced))
            pos = end + 1
        elif char == "`":
            end = body.find("`", pos + 1)
            if end < 0:
                raise TemplateParseError(f"unterminated raw string in action: {body!r}")
            tokens.append(Token(STRING, body[pos + 1:end], spaced))
            pos = end + 1
        elif body.startswith(":=", pos):
            tokens.append(Token(DECLARE, ":=", spaced))
            pos += 2
        elif char in "()|,=":
            tokens.append(Token(char, char, spaced))
            pos += 1
        elif char == "$":
            match = _IDENT_RE.match(body, pos + 1)
            name = match.group(0) if match else ""
            tokens.append(Token(VAR, name, spaced))
            pos += 1 + len(name)
        elif char == "." and not (pos + 1 < length and body[pos + 1].isdigit()):
            match = _FIELD_RE.match(body, pos)
            if match:
                tokens.append(Token(FIELD, match.group(0)[1:].split("."), spaced))
                pos = match.end()
            else:
                tokens.append(Token(DOT, ".", spaced))
                pos += 1
        elif char.isdigit() or char in "+-.":
            match = _NUMBER_RE.match(body, pos)
            if not match or not match.group(0).lstrip("+-"):
                raise TemplateParseError(f"bad number syntax in action: {body!r}")
            try:
                number = _parse_number(match.group(0))
            except ValueError as exc:
                raise TemplateParseError(f"bad number syntax: {match.group(0)!r}") from exc
            tokens.append(Token(NUMBER, number, spaced))
            pos = match.end()
        elif _IDENT_RE.match(body, pos):
            name = _IDENT_RE.match(body, pos).group(0)
            if name in _KEYWORDS:
                tokens.append(Token(CONST, _KEYWORDS[name], spaced))
            else:
                tokens.append(Token(IDENT, name, spaced))
            pos += len(name)
        else:
            raise TemplateParseError(f"unexpected {char!r} in action: {body!r}")
        spaced = False
    return tokens


# ── translator ───────────────────────────────────────────────────────


class Translator:
    """Rewrites one pass's actions into Jinja2 source.

    ``functions`` is the set of names callable from the template; any other
    identifier in command position is a parse error, matching Go's
    behaviour of rejecting undefined functions before execution.
    """

    def __init__(self, delimiters: Delimiters, functions: Container[str]) -> None:
        self.delims = delimiters
        self.functions = functions
        self.constants: List[Any] = []
        self._stack: List[str] = []
        # variables declared per Jinja2 scope; range and with open a new one
        self._scopes: List[Set[str]] = [set()]
        self._tokens: List[Token] = []
        self._pos = 0

    # -- public -------------------------------------------------------

    def translate(self, text: str) -> Tuple[str, List[Any]]:
        """Return ``(jinja_source, constants)`` for *text*."""
        out: List[str] = []
        pos = 0
        opener = self.delims.open
        while True:
            start = text.find(opener, pos)
            if start < 0:
                out.append(self._literal(text[pos:]))
                break
            out.append(self._literal(text[pos:start]))
            body_start = start + len(opener)
            end = self._find_close(text, body_start)
            out.append(self._action(text[body_start:end]))
            pos = end + len(self.delims.close)

        if self._stack:
            raise TemplateParseError(f"unexpected EOF: unclosed {self._stack[-1]!r} action")
        return "".join(out), self.constants

    # -- scanning -----------------------------------------------------

    def _find_close(self, text: str, pos: int) -> int:
        close = self.delims.close
        stripped = text[pos:].lstrip()
        if stripped.startswith("/*"):
            comment_end = text.find("*/", pos)
            if comment_end < 0:
                raise TemplateParseError("unclosed comment")
            end = text.find(close, comment_end + 2)
            if end < 0:
                raise TemplateParseError("unclosed action")
            return end

        quote = ""
        length = len(text)
        while pos < length:
            char = text[pos]
            if quote:
                if char == "\\" and quote != "`":
                    pos += 2
                    continue
                if char == quote:
                    quote = ""
            elif char in "\"'`":
                quote = char
            elif text.startswith(close, pos):
                return pos
            pos += 1
        raise TemplateParseError("unclosed action")

    def _literal(self, text: str) -> str:
        return self._emit_value(text) if text else ""

    # -- emission helpers ---------------------------------------------

    def _const(self, value: Any) -> str:
        self.constants.append(value)
        return f"_repl_c[{len(self.constants) - 1}]"

    def _emit_value(self, expr_or_value: Any) -> str:
        return f"{self.delims.open} {self._const(expr_or_value)} {self.delims.close}"

    def _emit_expr(self, expr: str) -> str:
        return f"{self.delims.open} {expr} {self.delims.close}"

    def _emit_block(self, statement: str) -> str:
        return f"{self.delims.block_open} {statement} {self.delims.block_close}"

    @staticmethod
    def _var(name: str) -> str:
        return f"_repl_v_{name}" if name else "_repl_root"

    # -- actions ------------------------------------------------------

    def _action(self, body: str) -> str:
        stripped = body.strip()
        if stripped.startswith("/*"):
            if not stripped.endswith("*/"):
                raise TemplateParseError("comment ends before closing delimiter")
            return ""

        self._tokens = tokenize(body)
        self._pos = 0
        if not self._tokens:
            raise TemplateParseError("missing value for command")

        head = self._tokens[0]
        keyword = head.value if head.kind == IDENT else None
        if keyword in _UNSUPPORTED:
            raise TemplateParseError(f"{keyword!r} actions are not supported")
        if keyword == "end":
            return self._end()
        if keyword == "else":
            return self._else()
        if keyword == "if":
            self._pos = 1
            expr = self._pipeline_expr(allow_decl=False)
            self._stack.append("if")
            return self._emit_block(f"if {expr}")
        if keyword == "range":
            return self._range()
        if keyword == "with":
            return self._with()
        if keyword in ("break", "continue"):
            if len(self._tokens) != 1:
                raise TemplateParseError(f"unexpected arguments to {keyword}")
            if "range" not in self._stack:
                raise TemplateParseError(f"{{{{{keyword}}}}} outside {{{{range}}}}")
            return self._emit_block(keyword)

        names, is_declare = self._declaration()
        expr = self._pipeline()
        self._expect_end()
        if not names:
            return self._emit_expr(expr)
        name = names[-1]
        if is_declare:
            self._scopes[-1].add(name)
        else:
            self._check_assign(name)
        return self._emit_block(f"set {self._var(name)} = {expr}")

    def _check_assign(self, name: str) -> None:
        """Reject ``$x = v`` unless ``$x`` lives in the current Jinja2 scope.

        A Jinja2 ``set`` inside a loop or ``with`` block never reaches the
        enclosing scope, so assigning to an outer variable there would
        silently keep the old value.
        """
        if name in self._scopes[-1]:
            return
        if any(name in scope for scope in self._scopes):
            raise TemplateParseError(
                f"assignment to ${name} inside range or with is not supported; "
                f"declare it with := in the same block"
            )
        raise TemplateParseError(f'undefined variable "${name}"')

    def _open_scope(self, kind: str, names: List[str], is_declare: bool) -> None:
        if names and not is_declare:
            raise TemplateParseError(f"variable assignment with = is not supported in {kind}, use :=")
        self._stack.append(kind)
        self._scopes.append(set(names))

    def _end(self) -> str:
        if len(self._tokens) != 1:
            raise TemplateParseError("unexpected arguments to end")
        if not self._stack:
            raise TemplateParseError("unexpected {{end}}")
        kind = self._stack.pop()
        if kind == "if":
            return self._emit_block("endif")
        self._scopes.pop()
        if kind == "range":
            return self._emit_block("endfor")
        return self._emit_block("endif") + self._emit_block("endwith")

    def _else(self) -> str:
        if not self._stack:
            raise TemplateParseError("unexpected {{else}}")
        if len(self._tokens) == 1:
            return self._emit_block("else")
        chained = self._tokens[1]
        if chained.kind == IDENT and chained.value == "if" and self._stack[-1] == "if":
            self._pos = 2
            expr = self._pipeline_expr(allow_decl=False)
            return self._emit_block(f"elif {expr}")
        raise TemplateParseError("unsupported {{else}} form")

    def _range(self) -> str:
        self._pos = 1
        names, is_declare = self._declaration()
        expr = self._pipeline()
        self._expect_end()
        self._open_scope("range", names, is_declare)
        if len(names) == 2:
            target = f"{self._var(names[0])}, _repl_dot"
        else:
            target = "_repl_k, _repl_dot"
        out = self._emit_block(f"for {target} in _repl_range({expr})")
        if names:
            out += self._emit_block(f"set {self._var(names[-1])} = _repl_dot")
        return out

    def _with(self) -> str:
        self._pos = 1
        names, is_declare = self._declaration()
        expr = self._pipeline()
        self._expect_end()
        self._open_scope("with", names, is_declare)
        out = self._emit_block(f"with _repl_dot = {expr}") + self._emit_block("if _repl_dot")
        if names:
            out += self._emit_block(f"set {self._var(names[-1])} = _repl_dot")
        return out

    # -- pipelines ----------------------------------------------------

    def _peek(self) -> Optional[Token]:
        if self._pos < len(self._tokens):
            return self._tokens[self._pos]
        return None

    def _next(self) -> Token:
        token = self._peek()
        if token is None:
            raise TemplateParseError("unexpected end of action")
        self._pos += 1
        return token

    def _expect_end(self) -> None:
        token = self._peek()
        if token is not None:
            raise TemplateParseError(f"unexpected {token.value!r} in operand")

    def _declaration(self) -> Tuple[List[str], bool]:
        tokens = self._tokens[self._pos:]
        if len(tokens) >= 2 and tokens[0].kind == VAR:
            if tokens[1].kind in (DECLARE, ASSIGN):
                self._pos += 2
                return [tokens[0].value], tokens[1].kind == DECLARE
            if (
                len(tokens) >= 4
                and tokens[1].kind == COMMA
                and tokens[2].kind == VAR
                and tokens[3].kind in (DECLARE, ASSIGN)
            ):
                self._pos += 4
                return [tokens[0].value, tokens[2].value], tokens[3].kind == DECLARE
        return [], False

    def _pipeline_expr(self, allow_decl: bool) -> str:
        names, _ = self._declaration()
        if names and not allow_decl:
            raise TemplateParseError("variable declarations are only supported in plain actions, range and with")
        expr = self._pipeline()
        self._expect_end()
        return expr

    def _pipeline(self) -> str:
        expr = self._command(None)
        while True:
            token = self._peek()
            if token is None or token.kind != PIPE:
                return expr
            self._next()
            expr = self._command(expr)

    def _command(self, piped: Optional[str]) -> str:
        operands: List[Tuple[str, Optional[str]]] = []
        while True:
            token = self._peek()
            if token is None or token.kind in (PIPE, RPAREN):
                break
            operands.append(self._operand())
        if not operands:
            raise TemplateParseError("missing value for command")

        expr, func = operands[0]
        if func is not None:
            # bare identifiers in argument position are niladic calls
            args = [arg for arg, _ in operands[1:]]
            if piped is not None:
                args.append(piped)
            return f'_repl_fn["{func}"]({", ".join(args)})'

        if len(operands) > 1 or piped is not None:
            raise TemplateParseError("can't give argument to non-function")
        return expr

    def _operand(self) -> Tuple[str, Optional[str]]:
        """Return ``(expression, function_name)``.

        ``function_name`` is set when the operand is a bare function
        identifier so the caller can decide between command and niladic
        call semantics.
        """
        token = self._next()
        func: Optional[str] = None
        if token.kind in (STRING, NUMBER, CONST):
            expr = self._const(token.value)
        elif token.kind == LPAREN:
            expr = f"({self._pipeline()})"
            closing = self._next()
            if closing.kind != RPAREN:
                raise TemplateParseError("unclosed left paren")
        elif token.kind == VAR:
            expr = self._var(token.value)
        elif token.kind == DOT:
            expr = "_repl_dot"
        elif token.kind == FIELD:
            expr = self._field("_repl_dot", token.value)
        elif token.kind == IDENT:
            if token.value not in self.functions:
                raise TemplateParseError(f'function "{token.value}" not defined')
            expr = f'_repl_fn["{token.value}"]()'
            func = token.value
        else:
            raise TemplateParseError(f"unexpected {token.value!r} in operand")

        following = self._peek()
        while following is not None and following.kind == FIELD and not following.spaced:
            self._next()
            expr = self._field(expr, following.value)
            func = None
            following = self._peek()
        return expr, func

    def _field(self, expr: str, names: List[str]) -> str:
        quoted = ", ".join(self._const(name) for name in names)
        return f"_repl_field({expr}, {quoted})"


def translate(text: str, delimiters: Delimiters, functions: Container[str]) -> Tuple[str, List[Any]]:
    """Translate *text* for one pass; see :class:`Translator`."""
    return Translator(delimiters, functions).translate(text)

"""Template builder.

A :class:`Builder` owns an ordered list of capability providers.  Each
provider contributes a function map; maps are merged left to right so a
provider added later shadows earlier ones on a name collision, and explicit
``functions`` passed to the builder override every provider.

Rendering runs two passes over the text::

    pass 1  {{repl ... }}
    pass 2  repl{{ ... }}

The second pass parses the complete output of the first, so values produced
by ``{{repl`` actions may themselves contain ``repl{{`` actions.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Protocol

import jinja2
from jinja2 import Environment, StrictUndefined

from replconfig.template.funcs import (
    builtin_functions,
    field,
    format_value,
    parse_go_bool,
    parse_go_float,
    parse_go_int,
    parse_go_uint,
    range_items,
)
from replconfig.template.syntax import (
    POST_DELIMITERS,
    PRE_DELIMITERS,
    Delimiters,
    TemplateError,
    TemplateParseError,
    translate,
)

logger = logging.getLogger(__name__)

FuncMap = Dict[str, Callable[..., Any]]


class TemplateFunctionSet(Protocol):
    """A capability provider: a named bundle of template functions."""

    def func_map(self) -> FuncMap:
        ...


#: Render passes, in order.
RENDER_PASSES = (PRE_DELIMITERS, POST_DELIMITERS)

_ENVIRONMENTS: Dict[Delimiters, Environment] = {}


def _environment(delims: Delimiters) -> Environment:
    env = _ENVIRONMENTS.get(delims)
    if env is None:
        env = Environment(
            variable_start_string=delims.open,
            variable_end_string=delims.close,
            block_start_string=delims.block_open,
            block_end_string=delims.block_close,
            comment_start_string=delims.comment_open,
            comment_end_string=delims.comment_close,
            undefined=StrictUndefined,
            keep_trailing_newline=True,
            autoescape=False,
            finalize=format_value,
            extensions=["jinja2.ext.loopcontrols"],
        )
        env.globals.update(_repl_field=field, _repl_range=range_items)
        _ENVIRONMENTS[delims] = env
    return env


class Builder:
    """Composes capability providers and renders templates against them."""

    def __init__(
        self,
        ctx: Optional[List[TemplateFunctionSet]] = None,
        functions: Optional[FuncMap] = None,
    ) -> None:
        self.ctx: List[TemplateFunctionSet] = list(ctx or [])
        self.functions: FuncMap = dict(functions or {})

    def add_ctx(self, ctx: TemplateFunctionSet) -> None:
        """Append a provider; it shadows earlier providers on collision."""
        self.ctx.append(ctx)

    def build_func_map(self) -> FuncMap:
        """Merge builtins, every provider, then explicit overrides."""
        func_map = builtin_functions()
        for ctx in self.ctx:
            func_map.update(ctx.func_map())
        func_map.update(self.functions)
        return func_map

    # ── rendering ────────────────────────────────────────────────────

    def render_template(self, name: str, text: str, data: Any = None) -> str:
        """Render *text* through both delimiter passes.

        Raises :class:`TemplateError` if either pass fails to parse or
        execute; nothing is returned for a partially rendered template.
        """
        func_map = self.build_func_map()
        rendered = text
        for delims in RENDER_PASSES:
            rendered = self._render_pass(name, rendered, delims, func_map, data)
        return rendered

    @staticmethod
    def _render_pass(
        name: str,
        text: str,
        delims: Delimiters,
        func_map: FuncMap,
        data: Any,
    ) -> str:
        if delims.open not in text:
            return text

        try:
            source, constants = translate(text, delims, func_map)
        except TemplateParseError as exc:
            raise TemplateParseError(f"failed to parse template {name}: {exc}") from exc

        try:
            template = _environment(delims).from_string(source)
        except jinja2.TemplateSyntaxError as exc:
            raise TemplateParseError(f"failed to parse template {name}: {exc}") from exc

        try:
            return template.render(
                _repl_fn=func_map,
                _repl_c=constants,
                _repl_dot=data,
                _repl_root=data,
            )
        except TemplateError as exc:
            raise TemplateError(f"failed to execute template {name}: {exc}") from exc
        except Exception as exc:  # noqa: BLE001 - any function failure aborts the render
            raise TemplateError(f"failed to execute template {name}: {exc}") from exc

    # ── typed wrappers ───────────────────────────────────────────────

    def render_string(self, text: str) -> str:
        return self.render_template("template", text)

    def render_bool(self, text: str, default: bool) -> bool:
        """Render *text* as a bool, returning *default* if it does not parse."""
        rendered = self.render_string(text)
        if rendered == "":
            return default
        try:
            return parse_go_bool(rendered)
        except ValueError:
            logger.debug("Rendered value %r is not a bool, using default %r", rendered, default)
            return default

    def render_int(self, text: str, default: int) -> int:
        rendered = self.render_string(text)
        if rendered == "":
            return default
        try:
            return parse_go_int(rendered)
        except ValueError:
            logger.debug("Rendered value %r is not an int, using default %r", rendered, default)
            return default

    def render_uint(self, text: str, default: int) -> int:
        rendered = self.render_string(text)
        if rendered == "":
            return default
        try:
            return parse_go_uint(rendered)
        except ValueError:
            logger.debug("Rendered value %r is not a uint, using default %r", rendered, default)
            return default

    def render_float(self, text: str, default: float) -> float:
        rendered = self.render_string(text)
        if rendered == "":
            return default
        try:
            return parse_go_float(rendered)
        except ValueError:
            logger.debug("Rendered value %r is not a float, using default %r", rendered, default)
            return default

"""Dependency graph between config items.

Dependencies are discovered by rendering every item's ``default`` and
``value`` with :class:`RecordingCtx`, a function set whose ``ConfigOption*``
and ``TLS*`` functions note what they were asked for instead of computing
anything.  Certificate relationships are then folded into ordinary edges:
an item that reads the key of certificate ``web`` depends on the item that
generates ``web``.

Evaluation order comes from repeatedly taking the head nodes (items with no
unresolved dependencies), computing them, and resolving them::

    graph = DepGraph()
    graph.parse_config_groups(groups)
    while heads := graph.get_head_nodes():
        for name in heads:
            ...
            graph.resolve_dep(name)
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field, fields
from typing import Any, Callable, Dict, List, Set

from replconfig.config.models import ConfigGroup
from replconfig.template.builder import Builder
from replconfig.template.static_ctx import StaticCtx
from replconfig.template.syntax import TemplateError

logger = logging.getLogger(__name__)

#: Config functions whose first argument names another item.  Used to pick
#: the dependency-bearing calls out of a template that does not render.
REPL_FUNC_RE = re.compile(
    r'\bConfigOption(?:Index|Data|Filename|Equals|NotEquals)?\s+"[^"]+"'
)


class CircularDependencyError(RuntimeError):
    """No item can be evaluated because every remaining item waits on another.

    ``waiting`` maps each stuck item to the sorted names it is waiting on.
    """

    def __init__(self, waiting: Dict[str, List[str]]) -> None:
        self.waiting = waiting
        parts = [
            f'"{name}" depends on ' + ", ".join(f'"{dep}"' for dep in deps)
            for name, deps in waiting.items()
        ]
        super().__init__("no config options exist with 0 dependencies - " + "; ".join(parts))


Edges = Dict[str, Set[str]]


def _add(mapping: Edges, key: str, value: str) -> None:
    mapping.setdefault(key, set()).add(value)


@dataclass
class DepGraph:
    """Item dependency graph.

    ``dependencies`` maps each item to the items it waits on.  The other
    maps record certificate usage found while parsing:

    - ``cert_items``: certificate name -> items calling ``TLSCert``
    - ``key_items``: item -> certificate names passed to ``TLSKey``
    - ``ca_items``: CA name -> items calling ``TLSCACert``
    - ``ca_from_cert_items``: item -> CA names passed to ``TLSCertFromCA``
    - ``cert_from_ca_cert_items``: ``ca:cert`` -> items calling ``TLSCertFromCA``
    - ``ca_items_from_key``: item -> CA names passed to ``TLSKeyFromCA``
    - ``ca_cert_items_from_key``: item -> ``ca:cert`` passed to ``TLSKeyFromCA``

    ``resolved`` lists resolved items in resolution order.
    """

    dependencies: Edges = field(default_factory=dict)
    cert_items: Edges = field(default_factory=dict)
    key_items: Edges = field(default_factory=dict)
    ca_items: Edges = field(default_factory=dict)
    ca_from_cert_items: Edges = field(default_factory=dict)
    cert_from_ca_cert_items: Edges = field(default_factory=dict)
    ca_items_from_key: Edges = field(default_factory=dict)
    ca_cert_items_from_key: Edges = field(default_factory=dict)
    resolved: List[str] = field(default_factory=list)

    # ── construction ─────────────────────────────────────────────────

    def add_node(self, name: str) -> None:
        self.dependencies.setdefault(name, set())

    def add_dep(self, source: str, dependency: str) -> None:
        self.add_node(source)
        self.dependencies[source].add(dependency)

    def add_cert(self, source: str, cert_name: str) -> None:
        _add(self.cert_items, cert_name, source)

    def add_key(self, source: str, cert_name: str) -> None:
        _add(self.key_items, source, cert_name)

    def add_ca(self, source: str, ca_name: str) -> None:
        _add(self.ca_items, ca_name, source)

    def add_cert_from_ca(self, source: str, ca_name: str, cert_name: str) -> None:
        _add(self.ca_from_cert_items, source, ca_name)
        _add(self.cert_from_ca_cert_items, f"{ca_name}:{cert_name}", source)

    def add_key_from_ca(self, source: str, ca_name: str, cert_name: str) -> None:
        _add(self.ca_items_from_key, source, ca_name)
        _add(self.ca_cert_items_from_key, source, f"{ca_name}:{cert_name}")

    def parse_config_groups(self, groups: List[ConfigGroup]) -> None:
        """Add a node per item and the edges its templates imply."""
        static_ctx = StaticCtx()
        known: Set[str] = set()
        for group in groups:
            for item in group.items:
                known.add(item.name)
                self.add_node(item.name)
                builder = Builder([static_ctx, RecordingCtx(self, item.name)])
                for text in (item.default, item.value):
                    self._record(builder, item.name, text)

        self._resolve_cert_keys()
        self._resolve_ca_certs()
        self._resolve_ca_cert_keys()
        self._drop_unknown(known)

    @staticmethod
    def _record(builder: Builder, name: str, text: str) -> None:
        try:
            builder.render_template(name, text)
            return
        except TemplateError as exc:
            logger.debug("Full render of %s failed, scanning for config functions: %s", name, exc)

        calls = REPL_FUNC_RE.findall(text)
        if not calls:
            return
        cleaned = " ".join(f"repl{{{{ {call} }}}}" for call in calls)
        try:
            builder.render_template(name, cleaned)
        except TemplateError as exc:
            logger.info("Could not determine config dependencies for item %r: %s", name, exc)

    def _link(self, usages: Edges, providers: Edges) -> None:
        for source, names in usages.items():
            for name in names:
                for provider in providers.get(name, ()):
                    if provider != source:
                        self.add_dep(source, provider)

    def _resolve_cert_keys(self) -> None:
        self._link(self.key_items, self.cert_items)

    def _resolve_ca_certs(self) -> None:
        self._link(self.ca_from_cert_items, self.ca_items)

    def _resolve_ca_cert_keys(self) -> None:
        self._link(self.ca_items_from_key, self.ca_items)
        self._link(self.ca_cert_items_from_key, self.cert_from_ca_cert_items)

    def _drop_unknown(self, known: Set[str]) -> None:
        for name in list(self.dependencies):
            if name not in known:
                del self.dependencies[name]
                continue
            unknown = self.dependencies[name] - known
            if unknown:
                logger.debug("Ignoring references from %s to unknown items %s", name, sorted(unknown))
                self.dependencies[name] -= unknown

    # ── evaluation ───────────────────────────────────────────────────

    def get_head_nodes(self) -> List[str]:
        """Sorted names of items with no unresolved dependencies.

        Raises :class:`CircularDependencyError` when items remain but none
        of them is free.
        """
        heads = sorted(name for name, deps in self.dependencies.items() if not deps)
        if not heads and self.dependencies:
            waiting = {name: sorted(deps) for name, deps in sorted(self.dependencies.items())}
            raise CircularDependencyError(waiting)
        return heads

    def resolve_dep(self, name: str) -> None:
        """Remove *name* as a node and from every dependency set."""
        for deps in self.dependencies.values():
            deps.discard(name)
        if self.dependencies.pop(name, None) is not None:
            self.resolved.append(name)

    # ── serialization ────────────────────────────────────────────────

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, dict):
                out[f.name] = {key: sorted(members) for key, members in value.items()}
            else:
                out[f.name] = list(value)
        return out

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DepGraph":
        kwargs: Dict[str, Any] = {}
        for f in fields(cls):
            if f.name not in data:
                continue
            if f.name == "resolved":
                kwargs[f.name] = list(data[f.name])
            else:
                kwargs[f.name] = {key: set(members) for key, members in data[f.name].items()}
        return cls(**kwargs)

    def copy(self) -> "DepGraph":
        """Independent deep copy."""
        return DepGraph.from_dict(json.loads(json.dumps(self.to_dict())))


class RecordingCtx:
    """Function set that records what the item *parent* references.

    Each function returns the name it was given so nested calls keep
    rendering.
    """

    def __init__(self, graph: DepGraph, parent: str) -> None:
        self.graph = graph
        self.parent = parent

    def _dep(self, name: str, *_: Any) -> str:
        self.graph.add_dep(self.parent, name)
        return name

    def _cert(self, cert_name: str, *_: Any) -> str:
        self.graph.add_cert(self.parent, cert_name)
        return cert_name

    def _key(self, cert_name: str, *_: Any) -> str:
        self.graph.add_key(self.parent, cert_name)
        return cert_name

    def _ca(self, ca_name: str, *_: Any) -> str:
        self.graph.add_ca(self.parent, ca_name)
        return ca_name

    def _cert_from_ca(self, ca_name: str, cert_name: str, *_: Any) -> str:
        self.graph.add_cert_from_ca(self.parent, ca_name, cert_name)
        return cert_name

    def _key_from_ca(self, ca_name: str, cert_name: str, *_: Any) -> str:
        self.graph.add_key_from_ca(self.parent, ca_name, cert_name)
        return cert_name

    def func_map(self) -> Dict[str, Callable[..., Any]]:
        return {
            "ConfigOption": self._dep,
            "ConfigOptionIndex": self._dep,
            "ConfigOptionData": self._dep,
            "ConfigOptionFilename": self._dep,
            "ConfigOptionEquals": self._dep,
            "ConfigOptionNotEquals": self._dep,
            "TLSCACert": self._ca,
            "TLSCert": self._cert,
            "TLSCertFromCA": self._cert_from_ca,
            "TLSKey": self._key,
            "TLSKeyFromCA": self._key_from_ca,
        }

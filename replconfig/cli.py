"""CLI entry point for replconfig.

Provides ``resolve``, ``render`` and ``graph`` commands over a ``kind:
Config`` document.

Usage::

    replconfig resolve --config config.yaml --values values.yaml
    replconfig render --config config.yaml deployment.yaml service.yaml
    replconfig graph --config config.yaml

Environment variables:
  API_ENCRYPTION_KEY    Cipher used to decrypt stored password values.

Exit codes: 0 = success, 1 = validation or template failure,
2 = input error, 3 = dependency cycle.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import typer
import yaml
from pydantic import ValidationError

from replconfig import __version__, ui
from replconfig.config.loader import (
    items_to_config_values,
    load_config,
    load_config_values,
    load_license,
    password_item_names,
    write_config_values,
)
from replconfig.config.models import Config, ItemValue, License, LocalRegistry
from replconfig.crypto import ENV_KEY, AESCipher
from replconfig.template.config_ctx import ConfigCtx
from replconfig.template.depgraph import CircularDependencyError, DepGraph
from replconfig.template.resolver import (
    evaluation_order,
    missing_required_items,
    new_builder,
    render_document,
    resolve_config_values,
)
from replconfig.template.static_ctx import StaticCtx
from replconfig.template.syntax import TemplateError

EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_INPUT = 2
EXIT_CYCLE = 3

app = typer.Typer(
    name="replconfig",
    help="Render application config templates and resolve config values.",
    no_args_is_help=True,
    add_completion=False,
)


# ── shared options ───────────────────────────────────────────────────────────

_CONFIG_OPT = typer.Option(..., "--config", "-c", help="Path to a kind: Config YAML.")
_VALUES_OPT = typer.Option(None, "--values", "-v", help="Path to a kind: ConfigValues YAML.")
_LICENSE_OPT = typer.Option(None, "--license", "-l", help="Path to a kind: License YAML.")
_REGISTRY_OPT = typer.Option(None, "--registry", help="Local registry host[/namespace].")
_DEBUG_OPT = typer.Option(False, "--debug", help="Enable debug logging.")


def _setup(debug: bool) -> None:
    if debug:
        logging.basicConfig(level=logging.DEBUG)


def _load_inputs(
    config: str,
    values: Optional[str],
    license: Optional[str],
) -> Tuple[Config, Dict[str, ItemValue], Optional[License], Optional[AESCipher]]:
    """Load every input document; exits with :data:`EXIT_INPUT` on failure."""
    try:
        cfg = load_config(config)
        stored = load_config_values(values) if values else {}
        lic = load_license(license) if license else None
        cipher = AESCipher.from_env()
    except (OSError, ValueError, ValidationError, yaml.YAMLError) as exc:
        ui.error_msg(str(exc))
        raise typer.Exit(EXIT_INPUT) from exc
    return cfg, stored, lic, cipher


def _local_registry(registry: Optional[str]) -> Optional[LocalRegistry]:
    if not registry:
        return None
    host, _, namespace = registry.partition("/")
    return LocalRegistry(host=host, namespace=namespace)


def _resolve(
    cfg: Config,
    stored: Dict[str, ItemValue],
    lic: Optional[License],
    cipher: Optional[AESCipher],
    registry: Optional[str],
    static_ctx: StaticCtx,
) -> ConfigCtx:
    try:
        return resolve_config_values(
            cfg.spec.groups,
            stored,
            cipher,
            license=lic,
            local_registry=_local_registry(registry),
            static_ctx=static_ctx,
        )
    except CircularDependencyError as exc:
        ui.error_panel("Dependency cycle", str(exc))
        raise typer.Exit(EXIT_CYCLE) from exc


# ── version callback ─────────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(__version__)
        raise typer.Exit()


@app.callback()
def _root_callback(
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show the version and exit.",
    ),
) -> None:
    """Application config templating and dependency resolution."""


# ── resolve command ──────────────────────────────────────────────────────────


@app.command()
def resolve(
    config: str = _CONFIG_OPT,
    values: Optional[str] = _VALUES_OPT,
    license: Optional[str] = _LICENSE_OPT,
    registry: Optional[str] = _REGISTRY_OPT,
    output: Optional[str] = typer.Option(
        None,
        "--output",
        "-o",
        help="Write resolved values as ConfigValues YAML to this path.",
    ),
    table: bool = typer.Option(False, "--table", help="Print a table instead of YAML."),
    debug: bool = _DEBUG_OPT,
) -> None:
    """Resolve every config item in dependency order.

    Prints the resolved values as a ConfigValues document (or writes it to
    ``--output``).  Exits 1 when required items are left empty.
    """
    _setup(debug)
    cfg, stored, lic, cipher = _load_inputs(config, values, license)
    stored_passwords = [
        name for name in password_item_names(cfg.spec.groups) if name in stored and stored[name].has_value()
    ]
    if cipher is None and stored_passwords:
        ui.warn(f"{ENV_KEY} is not set, password values are kept as stored")
    static_ctx = StaticCtx()
    ctx = _resolve(cfg, stored, lic, cipher, registry, static_ctx)

    if output:
        path = write_config_values(
            ctx.item_values, output, name=cfg.metadata.get("name", ""), groups=cfg.spec.groups, cipher=cipher
        )
        ui.ok(f"Wrote {len(ctx.item_values)} values to {path}")
    elif table:
        ui.values_table(ctx.item_values)
    else:
        doc = items_to_config_values(
            ctx.item_values, name=cfg.metadata.get("name", ""), groups=cfg.spec.groups, cipher=cipher
        )
        typer.echo(yaml.dump(doc.model_dump(mode="json", by_alias=True), default_flow_style=False, sort_keys=False), nl=False)

    builder = new_builder(ctx, static_ctx=static_ctx, license=lic)
    missing = missing_required_items(cfg.spec.groups, ctx.item_values, builder)
    if missing:
        for name in missing:
            ui.fail(f"Required config item {name} has no value")
        raise typer.Exit(EXIT_FAILURE)
    raise typer.Exit(EXIT_SUCCESS)


# ── render command ───────────────────────────────────────────────────────────


@app.command()
def render(
    documents: List[Path] = typer.Argument(..., help="Documents to render."),
    config: str = _CONFIG_OPT,
    values: Optional[str] = _VALUES_OPT,
    license: Optional[str] = _LICENSE_OPT,
    registry: Optional[str] = _REGISTRY_OPT,
    debug: bool = _DEBUG_OPT,
) -> None:
    """Render documents against resolved config values.

    Rendered documents are written to stdout separated by ``---``.
    """
    _setup(debug)
    cfg, stored, lic, cipher = _load_inputs(config, values, license)
    static_ctx = StaticCtx()
    ctx = _resolve(cfg, stored, lic, cipher, registry, static_ctx)
    builder = new_builder(ctx, static_ctx=static_ctx, license=lic)

    rendered: List[str] = []
    for doc in documents:
        try:
            text = doc.read_text(encoding="utf-8")
        except OSError as exc:
            ui.error_msg(f"Cannot read {doc}: {exc}")
            raise typer.Exit(EXIT_INPUT) from exc
        try:
            rendered.append(render_document(text, builder, name=str(doc)))
        except TemplateError as exc:
            ui.error_msg(str(exc))
            raise typer.Exit(EXIT_FAILURE) from exc

    typer.echo("---\n".join(rendered), nl=False)
    raise typer.Exit(EXIT_SUCCESS)


# ── graph command ────────────────────────────────────────────────────────────


@app.command()
def graph(
    config: str = _CONFIG_OPT,
    debug: bool = _DEBUG_OPT,
) -> None:
    """Show item dependencies and the order items resolve in.

    Exit codes: 0 = acyclic, 3 = cycle detected, 2 = input error.
    """
    _setup(debug)
    cfg, _, _, _ = _load_inputs(config, None, None)

    deps = DepGraph()
    deps.parse_config_groups(cfg.spec.groups)
    dependencies = deps.to_dict()["dependencies"]

    try:
        batches = evaluation_order(deps)
    except CircularDependencyError as exc:
        ui.graph_table(dependencies, [])
        ui.error_panel("Dependency cycle", str(exc))
        raise typer.Exit(EXIT_CYCLE) from exc

    ui.graph_table(dependencies, batches)
    ui.ok(f"{len(dependencies)} items resolve in {len(batches)} batches")
    raise typer.Exit(EXIT_SUCCESS)


# ── Entry point ──────────────────────────────────────────────────────────────


def main() -> int:
    """Run the CLI and return an exit code."""
    try:
        app()
        return 0
    except SystemExit as exc:
        return exc.code if isinstance(exc.code, int) else 0


if __name__ == "__main__":
    sys.exit(main())

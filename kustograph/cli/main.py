"""Click commands for tracing a Kustomize apps directory.

Every command scans ``--apps-dir``, builds the graph once and prints paths
relative to the apps directory. ``--output`` writes the same data as YAML.
Build and query errors exit with status 1 after printing the error kind,
the offending reference and the chain of declaring nodes.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Any, NoReturn

import click
import yaml

from kustograph import __version__
from kustograph.config import load_config
from kustograph.graph.errors import GraphBuildError, GraphQueryError, UnknownNodeError
from kustograph.graph.models import NodeIdentity
from kustograph.models.config import KustographConfig
from kustograph.observability.logging import setup_logging
from kustograph.trace import OverlayTrace

_LOG_LEVELS = ("debug", "info", "warning", "error")


@dataclass
class _CliState:
    apps_dir: Path
    config: KustographConfig


def _fail(message: str) -> NoReturn:
    click.echo(message, err=True)
    raise click.exceptions.Exit(1)


def _report_build_error(exc: GraphBuildError) -> NoReturn:
    lines = [f"Error [{exc.kind}]: {exc.message}"]
    if exc.raw_reference is not None:
        lines.append(f"  reference:   {exc.raw_reference}")
    if exc.declared_by is not None:
        lines.append(f"  declared by: {exc.declared_by}")
    if exc.chain:
        lines.append("  chain:       " + " -> ".join(str(i) for i in exc.chain))
    _fail("\n".join(lines))


def _load_trace(state: _CliState) -> OverlayTrace:
    try:
        return asyncio.run(OverlayTrace.from_directory(state.apps_dir, state.config))
    except GraphBuildError as exc:
        _report_build_error(exc)
    except FileNotFoundError as exc:
        _fail(f"Error: {exc}")


def _relative(trace: OverlayTrace, identity: NodeIdentity, apps_dir: Path, as_file: bool = False) -> str:
    path = trace.file_path(identity) if as_file else str(identity)
    if identity.is_remote:
        return path
    try:
        return Path(path).relative_to(apps_dir.resolve()).as_posix()
    except ValueError:
        return path


def _emit(header: str, items: list[str], output: Path | None, key: str) -> None:
    if output is not None:
        _write_yaml({key: items}, output)
        return
    click.echo(f"{header}:")
    if not items:
        click.echo("  - None")
    for item in items:
        click.echo(f"  - {item}")


def _write_yaml(data: dict[str, Any], output: Path) -> None:
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(yaml.safe_dump(data, sort_keys=False, default_flow_style=False), encoding="utf-8")


@click.group()
@click.version_option(__version__, prog_name="kustograph")
@click.option(
    "-a",
    "--apps-dir",
    required=True,
    envvar="KUSTOGRAPH_APPS_DIR",
    type=click.Path(file_okay=False, path_type=Path),
    help="Root directory of the Kustomize applications.",
)
@click.option("--log-level", type=click.Choice(_LOG_LEVELS), default=None, help="Overrides KUSTOGRAPH_LOG_LEVEL.")
@click.pass_context
def cli(ctx: click.Context, apps_dir: Path, log_level: str | None) -> None:
    """Trace dependencies between Kustomize overlays and the files they use."""
    try:
        config = load_config()
    except ValueError as exc:
        raise click.UsageError(str(exc)) from exc
    if log_level is not None:
        config.log.level = log_level
    setup_logging(config.log.level, config.log.format)
    ctx.obj = _CliState(apps_dir=apps_dir, config=config)


@cli.command("list-root-apps")
@click.option("-o", "--output", type=click.Path(dir_okay=False, path_type=Path), help="Write the list as YAML.")
@click.pass_obj
def list_root_apps(state: _CliState, output: Path | None) -> None:
    """List applications: overlays that no other overlay references."""
    trace = _load_trace(state)
    apps = sorted(_relative(trace, app, state.apps_dir) for app in trace.root_apps())
    _emit("Root Applications", apps, output, "root-apps")


@cli.command("affected-apps")
@click.argument("files", nargs=-1, type=click.Path(path_type=Path))
@click.option(
    "-f",
    "--files-from-file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Read modified file paths from this file, one per line.",
)
@click.option("-o", "--output", type=click.Path(dir_okay=False, path_type=Path), help="Write the result as YAML.")
@click.pass_obj
def affected_apps(
    state: _CliState,
    files: tuple[Path, ...],
    files_from_file: Path | None,
    output: Path | None,
) -> None:
    """Find applications affected by changes to FILES."""
    modified = list(files)
    if files_from_file is not None:
        lines = files_from_file.read_text(encoding="utf-8").splitlines()
        modified.extend(Path(line.strip()) for line in lines if line.strip())

    if not modified:
        if output is not None:
            _write_yaml({"affected-apps": {}}, output)
        else:
            click.echo("Affected Applications:")
            click.echo("  No modified files provided to check.")
        return

    trace = _load_trace(state)
    affected: dict[str, list[str]] = {}
    unreferenced: list[str] = []
    for path in modified:
        key = path.as_posix()
        try:
            apps = trace.apps_with(path)
        except UnknownNodeError:
            unreferenced.append(key)
            continue
        affected[key] = sorted(_relative(trace, app, state.apps_dir) for app in apps)

    if output is not None:
        data: dict[str, Any] = {"affected-apps": affected}
        if unreferenced:
            data["unreferenced-files"] = unreferenced
        _write_yaml(data, output)
        return

    click.echo("Affected Applications:")
    for key, apps in affected.items():
        click.echo(f"Affected apps by {key}:")
        if not apps:
            click.echo("  - None")
        for app in apps:
            click.echo(f"  - {app}")
    if unreferenced:
        click.echo("Unreferenced files:")
        for key in unreferenced:
            click.echo(f"  - {key}")


@cli.command("app-files")
@click.argument("app", type=click.Path(path_type=Path))
@click.option("-o", "--output", type=click.Path(dir_okay=False, path_type=Path), help="Write the list as YAML.")
@click.pass_obj
def app_files(state: _CliState, app: Path, output: Path | None) -> None:
    """List every file APP is assembled from."""
    trace = _load_trace(state)
    try:
        identities = trace.app_files(app)
    except GraphQueryError as exc:
        _fail(f"Error: {exc}")
    files = [_relative(trace, identity, state.apps_dir, as_file=True) for identity in identities]
    _emit(f"Files used by {app.as_posix()}", files, output, "app-files")


@cli.command("apply-order")
@click.argument("app", type=click.Path(path_type=Path))
@click.pass_obj
def apply_order(state: _CliState, app: Path) -> None:
    """Show the order APP's bases and components are merged in."""
    trace = _load_trace(state)
    try:
        order = trace.application_order(app)
    except GraphQueryError as exc:
        _fail(f"Error: {exc}")
    click.echo(f"Application order for {app.as_posix()}:")
    for position, identity in enumerate(order, start=1):
        click.echo(f"  {position}. {_relative(trace, identity, state.apps_dir)}")

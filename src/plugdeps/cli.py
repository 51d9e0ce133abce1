# cli.py
from __future__ import annotations

import sys
from dataclasses import replace
from pathlib import Path

import click

from plugdeps.errors import PlugdepsError, SnapshotParseError, ValidationError
from plugdeps.loader import load_plugins
from plugdeps.session import Session
from plugdeps.settings import DEFAULT_PLUGINS_FILE, Settings
from plugdeps.spec import SpecStatus
from plugdeps.ui.console import Console, get_console, set_console


def build_session(ctx) -> Session:
    """Create a session from settings and register plugins from the plugins file."""
    console = get_console()
    settings = Settings.from_env()
    if ctx.obj.get("workers"):
        settings = replace(settings, concurrency=ctx.obj["workers"])

    session = Session(settings, notifier=console)
    plugins_file = Path(ctx.obj["plugins"])
    try:
        load_plugins(plugins_file, session)
    except FileNotFoundError:
        console.print_error(
            "Plugins file not found",
            f"Could not find plugins file: {plugins_file}",
            suggestion=f"Create {DEFAULT_PLUGINS_FILE} defining PLUGINS = [...] or pass --plugins PATH",
        )
        sys.exit(1)
    except ValidationError as e:
        console.print_error("Invalid plugin spec", str(e))
        sys.exit(1)
    except (TypeError, ValueError) as e:
        console.print_error("Failed to load plugins", f"Could not load plugins from {plugins_file}", details=[str(e)])
        if ctx.obj.get("debug", False):
            import traceback
            traceback.print_exc()
        sys.exit(1)

    console.print_debug(f"Loaded {len(session.specs)} plugin(s) from {plugins_file}")
    return session


def _exit_on_errors(specs) -> None:
    if any(s.status == SpecStatus.ERROR for s in specs):
        sys.exit(1)


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and detailed output)",
)
@click.option("--plugins", default=DEFAULT_PLUGINS_FILE, show_default=True, help="Python file declaring plugins")
@click.option("--workers", default=None, type=int, help="Number of parallel git processes")
@click.pass_context
def cli(ctx, debug, plugins, workers):
    """plugdeps: Git-backed plugin manager."""
    console = Console(debug=debug)
    set_console(console)
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug
    ctx.obj["plugins"] = plugins
    ctx.obj["workers"] = workers


@cli.command("list")
@click.pass_context
def list_plugins(ctx):
    """List registered plugins."""
    console = get_console()
    session = build_session(ctx)
    console.print_header("Plugins")
    for spec in session.specs:
        state = "installed" if session.is_installed(spec) else "not installed"
        console.print_plugin(spec.name, state, spec.source)


@cli.command()
@click.pass_context
def install(ctx):
    """Clone plugins that are not installed yet."""
    console = get_console()
    session = build_session(ctx)
    specs = session.install()
    if not specs:
        console.print_info("Nothing to install")
        return
    console.print_header("Install")
    for spec in specs:
        console.print_plugin(spec.name, spec.status.value)
    _exit_on_errors(specs)


@cli.command()
@click.argument("names", nargs=-1)
@click.option("--offline", is_flag=True, default=False, help="Do not download new data")
@click.option("--force", is_flag=True, default=False, help="Apply updates without asking")
@click.pass_context
def update(ctx, names, offline, force):
    """Compute and apply plugin updates."""
    console = get_console()
    session = build_session(ctx)
    try:
        specs = session.update(list(names) or None, offline=offline, force=force)
    except ValueError as e:
        console.print_error("Unknown plugin", str(e))
        sys.exit(1)
    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(130)

    console.print_header("Update")
    for spec in specs:
        if spec.error:
            console.print_plugin(spec.name, "error")
            continue
        if not spec.has_updates:
            console.print_plugin(spec.name, "no changes", spec.head or "")
            continue
        status = spec.status.value if force else "pending"
        console.print_plugin(spec.name, status, f"{spec.head} -> {spec.checkout_to}")
        console.print_log(spec.checkout_log or "")
    if not force and any(s.has_updates and not s.error for s in specs):
        console.print_info("\nRun `plugdeps update --force` to apply.")
    _exit_on_errors(specs)


@cli.command()
@click.argument("path", required=False)
@click.pass_context
def snapshot(ctx, path):
    """Save current commit of every plugin."""
    console = get_console()
    session = build_session(ctx)
    out_path = session.write_snapshot(path)
    console.print_info(f"Snapshot written to {out_path}")


@cli.command()
@click.argument("target", required=False)
@click.pass_context
def checkout(ctx, target):
    """Check out plugins according to their specs or a snapshot file."""
    console = get_console()
    session = build_session(ctx)
    try:
        entries = session.checkout(target)
    except SnapshotParseError as e:
        console.print_error("Invalid checkout target", str(e))
        sys.exit(1)
    except PlugdepsError as e:
        console.print_exception(e)
        sys.exit(1)

    console.print_header("Checkout")
    for spec, ref in entries:
        console.print_plugin(spec.name, spec.status.value, ref)
    _exit_on_errors([spec for spec, _ in entries])


@cli.command()
@click.pass_context
def clean(ctx):
    """Delete plugin directories that are not declared."""
    console = get_console()
    session = build_session(ctx)
    removed = session.clean()
    if not removed:
        console.print_info("Nothing to clean")


if __name__ == "__main__":
    cli()

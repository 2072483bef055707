import logging
import pathlib

import click
from dotenv import load_dotenv

from . import paths
from .config import ConfigError, load_project_config
from .context import find_project_root, sanitize_name
from .envfile import port_variables_for_project
from .registry import (
    RegistryError,
    allocate_ports,
    allocations_for_project,
    ports_for_environment,
    registry_summary,
    release_ports,
)

load_dotenv()


def _project_root() -> str:
    root = find_project_root()
    if not root:
        click.echo("Error: Not in a git repository", err=True)
        click.echo("  Run this command from within a git repository", err=True)
        raise SystemExit(1)
    return root


def _env_name(name: str) -> str:
    try:
        return sanitize_name(name)
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="NAME")


def _fail(exc: Exception) -> None:
    logging.debug("Command failed", exc_info=exc)
    click.echo(f"Error: {exc}", err=True)
    raise SystemExit(1)


@click.group()
@click.option("--verbose", "-V", is_flag=True, help="Show detailed output.")
@click.option(
    "--registry",
    type=click.Path(dir_okay=False, path_type=pathlib.Path),
    envvar="GROVE_REGISTRY",
    help="Port registry file (default: $XDG_STATE_HOME/grove/ports.json).",
)
@click.pass_context
def cli(ctx, verbose, registry):
    """Isolated worktree environments with collision-free ports."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
    )
    ctx.obj = registry or paths.port_registry_path()
    logging.debug("Port registry: %s", ctx.obj)


@cli.group()
def ports():
    """Allocate, release and inspect environment ports."""


@ports.command("allocate")
@click.argument("name")
@click.argument("variables", nargs=-1)
@click.pass_obj
def allocate(registry, name, variables):
    """
    Allocate one port per VARIABLE for environment NAME.

    Without VARIABLES, the project's .env.example (or .env) is scanned for
    names matching its port variable patterns.
    """
    root = _project_root()
    env_name = _env_name(name)
    try:
        config = load_project_config(root)
        if not variables:
            variables = port_variables_for_project(root, config.port_var_patterns)
            logging.debug("Found port variables: %s", ", ".join(variables) or "(none)")
        if not variables:
            click.echo("No port variables found.")
            return
        allocated = allocate_ports(root, env_name, variables, config.port_range, path=registry)
    except (ConfigError, RegistryError) as exc:
        _fail(exc)

    for var_name, port in allocated.items():
        click.echo(f"{var_name}={port}")


@ports.command("release")
@click.argument("name")
@click.pass_obj
def release(registry, name):
    """Release every port held by environment NAME."""
    root = _project_root()
    try:
        count = release_ports(root, _env_name(name), path=registry)
    except RegistryError as exc:
        _fail(exc)
    click.echo(f"Released {count} port(s)")


@ports.command("show")
@click.argument("name")
@click.pass_obj
def show(registry, name):
    """Print the ports held by environment NAME."""
    root = _project_root()
    try:
        held = ports_for_environment(root, _env_name(name), path=registry)
    except RegistryError as exc:
        _fail(exc)
    if not held:
        click.echo("No ports allocated")
        return
    for var_name, port in held.items():
        click.echo(f"{var_name}={port}")


@cli.command()
@click.pass_obj
def status(registry):
    """Show project and global port usage."""
    root = _project_root()
    try:
        config = load_project_config(root)
        project_allocs = allocations_for_project(root, path=registry)
        summary = registry_summary(path=registry)
    except (ConfigError, RegistryError) as exc:
        _fail(exc)

    click.echo(f"Project: {pathlib.Path(root).name}")
    click.echo(f"Port range: {config.port_range[0]}-{config.port_range[1]}")
    if project_allocs:
        lo, hi = project_allocs[0].port, project_allocs[-1].port
        click.echo(f"Ports in use: {lo}-{hi} ({len(project_allocs)} ports)")
        for alloc in project_allocs:
            logging.debug("  %s: %s=%s", alloc.environment, alloc.var_name, alloc.port)
    else:
        click.echo("Ports in use: none")

    click.echo(
        f"Global registry: {summary.total_ports} ports in use "
        f"across {len(summary.projects)} projects"
    )


if __name__ == "__main__":
    cli()

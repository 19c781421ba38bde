"""
CLI interface for ddcompile.

Provides commands: compile, qualify, status, list.
"""

import json
import sys
from pathlib import Path

import click

from ddcompile import __version__
from ddcompile.build import Builder
from ddcompile.config import load_config
from ddcompile.errors import ConfigError, DdcompileError, WorkspaceError
from ddcompile.qualifier import qualify_document
from ddcompile.registry import create_default_registries
from ddcompile.utils import (
    console,
    format_duration,
    load_document,
    print_banner,
    print_error,
    print_info,
    print_success,
    print_warning,
)
from ddcompile.workspace import ALIASES, BuildDirectory


def _load_input(path: Path) -> dict:
    try:
        return load_document(path)
    except ValueError as e:
        print_error(str(e))
        raise SystemExit(ConfigError.exit_status)


@click.group()
@click.version_option(version=__version__, prog_name="ddcompile")
def main():
    """
    ddcompile - Dataflow configuration compiler.

    Compiles extractor and factor definitions into a qualified execution
    plan and generated code fragments under a versioned build directory.
    """
    pass


@main.command("compile")
@click.argument("input_path", metavar="INPUT", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--project",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Project directory (default: current directory)",
)
@click.option(
    "--config",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Custom configuration file (default: <project>/ddcompile.yaml)",
)
@click.option(
    "--verbose/--quiet",
    default=None,
    help="Stream the build log to the console (default: logging.mode)",
)
@click.option("--wait", is_flag=True, help="Wait for a running build instead of failing")
@click.option("--json", "as_json", is_flag=True, help="Print the build result as JSON")
def compile_command(input_path, project, config, verbose, wait, as_json):
    """
    Compile a config document.

    Examples:

      # Compile into ./run
      ddcompile compile app.yaml

      # Stream the log while compiling
      ddcompile compile app.yaml --verbose

      # Machine-readable result
      ddcompile compile app.yaml --json
    """
    try:
        build_config = load_config(config, project_dir=project)
    except ConfigError as e:
        print_error(f"Configuration invalid: {e}")
        raise SystemExit(e.exit_status)

    document = _load_input(input_path)
    quiet = None if verbose is None else not verbose
    builder = Builder(build_config, quiet=quiet, lock_wait=wait or None)

    if not builder.quiet and not as_json:
        print_banner(f"ddcompile {input_path.name}")

    try:
        result = builder.run(document)
    except DdcompileError as e:
        print_error(f"Build failed: {e}")
        raise SystemExit(e.exit_status)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    print_success(
        f"Compiled {result.workspace_key} in {format_duration(result.duration_seconds)}"
    )
    if result.previous_compiled:
        print_info(f"Previous build kept as compiled-backup ({result.previous_compiled})")


@main.command()
@click.argument("input_path", metavar="INPUT", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def qualify(input_path):
    """
    Print the qualified form of a config document.

    Runs name qualification and the extractor merge only; nothing is
    written to the build directory.
    """
    document = _load_input(input_path)
    click.echo(json.dumps(qualify_document(document), indent=2, sort_keys=True))


@main.command()
@click.option(
    "--project",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Project directory (default: current directory)",
)
@click.option(
    "--config",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Custom configuration file",
)
def status(project, config):
    """
    Show the build pointers and the status of each bound workspace.
    """
    try:
        build_config = load_config(config, project_dir=project)
        build_dir = BuildDirectory(build_config.get_build_root(), links=build_config.links)
        pointers = build_dir.pointers.read()
    except DdcompileError as e:
        print_error(f"Could not retrieve status: {e}")
        raise SystemExit(e.exit_status)

    if not pointers:
        print_info(f"No builds found in {build_dir.root}")
        return

    print_info(f"Build directory: {build_dir.root}")
    for alias in ALIASES:
        key = pointers.get(alias)
        if key is None:
            continue
        try:
            record = build_dir.workspace(key).record
        except WorkspaceError:
            print_warning(f"{alias:<16} {key}  (workspace missing)")
            continue
        line = f"{alias:<16} {key}  {record.status}"
        if record.exit_status:
            line += f" (exit {record.exit_status})"
        console.print(line, highlight=False)
        if record.error:
            console.print(f"{'':<16} {record.error}", highlight=False)


@main.command("list")
def list_units():
    """
    List registered stages, generators and checks.
    """
    registries = create_default_registries()

    click.echo("Stages (in execution order):")
    for stage in registries.stages.units():
        click.echo(
            f"  {stage.name:<28} {stage.requires.value} -> {stage.produces.value}"
        )

    click.echo("\nGenerators:")
    for generator in registries.generators.units():
        click.echo(f"  {generator.name:<28} {generator.description}")

    click.echo("\nChecks:")
    for check in registries.checks.units():
        click.echo(f"  {check.name:<28} [{check.phase}] {check.description}")


if __name__ == "__main__":
    sys.exit(main())

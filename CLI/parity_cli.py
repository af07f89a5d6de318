import json
import logging
import os
import sys
from typing import List, Optional

import click
import yaml
from rich.console import Console
from rich.table import Table
from rich.text import Text

from resource_graph.equivalence import EquivalenceResult
from resource_graph.errors import ParityError
from resource_graph.provider import load_provider_schema
from resource_graph.values import to_plain
from .error_mapping.diagnostics import DiagnosticMapper, format_diagnostic
from .executors.check import ParityCheckExecutor, evaluate_file
from .utils.bindings import load_bindings
from .utils.settings import Settings, config_dir, config_file, init_config_dir, load_settings

VERSION = '0.1.0'

EXIT_EQUIVALENT = 0
EXIT_MISMATCH = 1
EXIT_ERROR = 2

logger = logging.getLogger(__name__)

_installed_handlers: List[logging.Handler] = []


def setup_logging(debug: bool = False, level: str = 'INFO'):
    """Configure logging for the CLI"""

    # Replace handlers from an earlier invocation in the same process
    root_logger = logging.getLogger()
    while _installed_handlers:
        handler = _installed_handlers.pop()
        root_logger.removeHandler(handler)
        handler.close()

    log_dir = config_dir() / 'logs'
    os.makedirs(log_dir, exist_ok=True)

    # Set up file handler
    file_handler = logging.FileHandler(log_dir / 'tfparity.log')
    file_handler.setLevel(logging.DEBUG if debug else getattr(logging, str(level).upper(), logging.INFO))

    # Set up console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG if debug else logging.WARNING)

    file_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
    console_handler.setFormatter(logging.Formatter('%(levelname)s: %(message)s'))

    root_logger.setLevel(logging.DEBUG)
    for handler in (file_handler, console_handler):
        root_logger.addHandler(handler)
        _installed_handlers.append(handler)


def version_callback(ctx, param, value):
    """Print version information"""
    if not value or ctx.resilient_parsing:
        return
    click.echo(f"tfparity v{VERSION}")
    ctx.exit()


def report_error(error: Exception):
    """Print an error diagnostic to stderr"""
    click.echo(format_diagnostic(DiagnosticMapper().map_error(error)), err=True)


def _cell(value) -> Text:
    if value is None:
        return Text("-", style="bright_black")
    return Text(json.dumps(to_plain(value), sort_keys=True))


def display_check_results(result: EquivalenceResult, console: Console, elapsed: Optional[float] = None):
    """Display the comparison result in formatted tables"""
    timing = f" in {elapsed:.2f}s" if elapsed is not None else ""
    if result.equivalent:
        console.print(f"[green]✓ Equivalent[/green]: {len(result.pairing)} resources matched "
                      f"by {result.strategy} pairing{timing}")
        return

    console.print(f"[red]✗ Not equivalent[/red]{timing}")

    if result.removed or result.added:
        table = Table(title="Unmatched resources", show_header=True)
        table.add_column("Side")
        table.add_column("Resource")
        for key in result.removed:
            table.add_row("HCL only", Text(f"{key[0]}.{key[1]}"))
        for key in result.added:
            table.add_row("target only", Text(f"{key[0]}.{key[1]}"))
        console.print(table)

    attribute_rows = [(diff, change) for diff in result.changed for change in diff.attributes]
    if attribute_rows:
        table = Table(title="Attribute differences", show_header=True)
        table.add_column("Resource")
        table.add_column("Path")
        table.add_column("Change")
        table.add_column("HCL")
        table.add_column("Target")
        for diff, change in attribute_rows:
            table.add_row(Text(f"{diff.left[0]}.{diff.left[1]}"), Text(change.path), change.kind,
                          _cell(change.left), _cell(change.right))
        console.print(table)

    dependency_rows = [diff for diff in result.changed
                       if diff.dependencies_only_left or diff.dependencies_only_right]
    if dependency_rows:
        table = Table(title="Dependency differences", show_header=True)
        table.add_column("Resource")
        table.add_column("Only in HCL")
        table.add_column("Only in target")
        for diff in dependency_rows:
            table.add_row(
                Text(f"{diff.left[0]}.{diff.left[1]}"),
                Text(", ".join(f"{t}.{n}" for t, n in diff.dependencies_only_left)),
                Text(", ".join(f"{t}.{n}" for t, n in diff.dependencies_only_right)),
            )
        console.print(table)

    if result.outputs:
        table = Table(title="Output differences", show_header=True)
        table.add_column("Output")
        table.add_column("Change")
        table.add_column("HCL")
        table.add_column("Target")
        for change in result.outputs:
            table.add_row(Text(change.path), change.kind, _cell(change.left), _cell(change.right))
        console.print(table)


@click.group()
@click.option('--debug/--no-debug', default=False, help='Enable debug logging on the console')
@click.option('--version', is_flag=True, callback=version_callback,
              expose_value=False, is_eager=True, help='Show version information')
@click.pass_context
def cli(ctx, debug):
    """tfparity: check that a Terraform HCL configuration and a Pulumi-style
    TypeScript program produce equivalent resource graphs.
    """
    try:
        settings = load_settings()
        setup_logging(debug, settings.log_level)
    except (OSError, ValueError, TypeError, yaml.YAMLError) as e:
        click.echo(click.style(f"Error during initialization: {e}", fg="red"), err=True)
        ctx.exit(EXIT_ERROR)
    if debug:
        click.echo(click.style("Debug mode enabled", fg="yellow"), err=True)
    ctx.obj = settings


@cli.command()
@click.argument('hcl_file', type=click.Path(exists=True, dir_okay=False))
@click.argument('target_file', type=click.Path(exists=True, dir_okay=False))
@click.option('--bindings', type=click.Path(exists=True, dir_okay=False),
              help='Variable / config values (.json, .yaml, .yml or .tfvars)')
@click.option('--max-resources', type=click.IntRange(min=0), default=None,
              help='Largest graph the renaming search may try')
@click.option('--provider-schema', type=click.Path(exists=True, dir_okay=False), default=None,
              help='YAML mock provider model used to validate resources')
@click.option('--step-budget', type=click.IntRange(min=1), default=None,
              help='Search steps allowed before giving up')
@click.option('--deadline', type=click.FloatRange(min=0), default=None,
              help='Seconds the renaming search may run')
@click.option('--compare-outputs', is_flag=True, help='Also require equal outputs')
@click.option('--json', 'as_json', is_flag=True, help='Print the result as JSON')
@click.pass_context
def check(ctx, hcl_file, target_file, bindings, max_resources, provider_schema, step_budget, deadline,
          compare_outputs, as_json):
    """Check HCL_FILE against TARGET_FILE.

    Exits 0 when the graphs are equivalent, 1 on a mismatch and 2 on errors.
    """
    settings: Settings = ctx.obj or Settings()
    settings.override(max_resources=max_resources, step_budget=step_budget,
                      deadline_seconds=deadline, provider_schema=provider_schema)
    try:
        values = load_bindings(bindings) if bindings else {}
        schema = load_provider_schema(settings.provider_schema) if settings.provider_schema else None
        executor = ParityCheckExecutor(hcl_file, target_file, values, schema)
        result, elapsed = executor.execute_check(settings.max_resources, settings.step_budget,
                                                 settings.deadline_seconds, compare_outputs)
    except (ParityError, OSError, ValueError) as e:
        logger.debug("Check failed", exc_info=True)
        report_error(e)
        ctx.exit(EXIT_ERROR)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
    else:
        display_check_results(result, Console(no_color=not settings.colors), elapsed)
    ctx.exit(EXIT_EQUIVALENT if result.equivalent else EXIT_MISMATCH)


@cli.command()
@click.argument('file', type=click.Path(exists=True, dir_okay=False))
@click.option('--bindings', type=click.Path(exists=True, dir_okay=False),
              help='Variable / config values (.json, .yaml, .yml or .tfvars)')
@click.option('--provider-schema', type=click.Path(exists=True, dir_okay=False), default=None,
              help='YAML mock provider model used to validate resources')
@click.pass_context
def graph(ctx, file, bindings, provider_schema):
    """Print the evaluated resource graph of FILE (.tf/.hcl or .ts/.js) as JSON"""
    settings: Settings = ctx.obj or Settings()
    schema_path = provider_schema or settings.provider_schema
    try:
        values = load_bindings(bindings) if bindings else {}
        schema = load_provider_schema(schema_path) if schema_path else None
        evaluated = evaluate_file(file, values, schema)
    except (ParityError, OSError, ValueError) as e:
        report_error(e)
        ctx.exit(EXIT_ERROR)
    click.echo(json.dumps(evaluated.to_dict(), indent=2))


@cli.command()
def init():
    """Write the default settings file"""
    existed = config_file().exists()
    path = init_config_dir()
    if existed:
        click.echo(click.style(f"Settings already exist at {path}", fg="yellow"))
    else:
        click.echo(click.style(f"\n✓ Wrote default settings to {path}", fg="green"))


@cli.command()
def help():
    """Display help information about tfparity commands"""
    click.echo("\ntfparity - HCL / TypeScript resource graph equivalence checker\n")

    click.echo("USAGE:")
    click.echo("  tfparity [OPTIONS] COMMAND [ARGS]\n")

    click.echo("COMMANDS:")
    click.echo("  check     Compare an HCL configuration with a target program")
    click.echo("  graph     Print the evaluated resource graph of one file")
    click.echo("  init      Write the default settings file")
    click.echo("  help      Display this help message\n")

    click.echo("EXIT CODES:")
    click.echo("  0  equivalent")
    click.echo("  1  structural mismatch")
    click.echo("  2  parse or evaluation error\n")

    click.echo("EXAMPLES:")
    click.echo("  tfparity check main.tf index.ts --bindings vars.tfvars")
    click.echo("  tfparity check main.tf index.ts --provider-schema aws.yaml --json")
    click.echo("  tfparity graph index.ts")
    click.echo("\nRun 'tfparity COMMAND --help' for more information about a command")


if __name__ == '__main__':
    sys.exit(cli())

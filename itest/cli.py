"""CLI entry point for the scenario runner."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

import click
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table
from rich.tree import Tree

from itest.executor.context import ExecutionContext
from itest.executor.debugger import COMMAND_KEYS, DebugSession, DebugState
from itest.models.config import DEFAULT_BASE_URL, RunnerConfig
from itest.orchestrator import Orchestrator
from itest.parser.scenario_parser import parse_scenario_file
from itest.patterns.registry import PatternRegistry, load_custom_patterns
from itest.translator.translator import Translator

console = Console()

DEFAULT_CONFIG = "itest-config.json"


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def _load_config(path: str) -> RunnerConfig:
    try:
        return RunnerConfig.load_or_default(path)
    except (ValidationError, json.JSONDecodeError) as e:
        console.print(f"[red]Invalid config file {path}:[/red] {e}")
        sys.exit(1)


def _parse_vars(pairs: tuple[str, ...]) -> dict[str, str]:
    variables = {}
    for pair in pairs:
        name, sep, value = pair.partition("=")
        if not sep or not name:
            raise click.BadParameter(f"expected NAME=VALUE, got {pair!r}", param_hint="--var")
        variables[name] = value
    return variables


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def cli(verbose: bool) -> None:
    """Natural-language test scenario runner"""
    setup_logging(verbose)


@cli.command()
@click.argument("paths", nargs=-1, required=True)
@click.option("--config", "-c", default=DEFAULT_CONFIG, help="Config file path")
@click.option("--parallel", "-p", type=int, default=None, help="Max test cases run at once")
def run(paths: tuple[str, ...], config: str, parallel: int | None) -> None:
    """Run scenario files (or directories of .txt files)."""
    cfg = _load_config(config)
    if parallel is not None:
        cfg.max_parallel_cases = max(1, parallel)

    orchestrator = Orchestrator(cfg)
    try:
        results = orchestrator.run_files(list(paths))
    except FileNotFoundError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)

    summary = results["summary"]
    console.print("\n[bold green]Run Complete[/bold green]")
    table = Table(title="Results Summary")
    table.add_column("Metric", style="bold")
    table.add_column("Value")
    table.add_row("Run ID", results["run_id"])
    table.add_row("Duration", f"{results['duration']}s")
    table.add_row("Test Cases", str(summary.total_cases))
    table.add_row("Passed", f"[green]{summary.passed_cases}[/green]")
    table.add_row("Failed", f"[red]{summary.failed_cases}[/red]")
    table.add_row("Steps Passed", f"{summary.passed_steps}/{summary.total_steps}")
    table.add_row("Success Rate", f"{summary.success_rate}%")
    console.print(table)

    failed = [r for r in results["results"] if not r.passed]
    if failed:
        failures = Table(title="Failures")
        failures.add_column("Case", style="bold")
        failures.add_column("Step")
        failures.add_column("Error", style="red")
        for r in failed:
            failures.add_row(r.name, r.failed_action or "", r.first_error or "unknown error")
        console.print(failures)

    for fmt, path in results["reports"].items():
        console.print(f"  {fmt.upper()}: [blue]{path}[/blue]")

    if failed:
        sys.exit(1)


def _prompt_command(session: DebugSession) -> str:
    step = session.current_step
    if session.state == DebugState.PENDING:
        console.print(f"\n[bold]{session.case.name}[/bold] "
                      f"step {session.index + 1}/{len(session.case.steps)}: {step.action}")
        if step.comment:
            console.print(f"  [dim]# {step.comment}[/dim]")
    elif session.last_record is not None:
        console.print(f"[red]Failed:[/red] {session.last_record.error_message}")

    allowed = session.allowed_commands()
    keys = [k for k, name in COMMAND_KEYS.items() if name in allowed]
    labels = ", ".join(f"{k}={COMMAND_KEYS[k]}" for k in keys)
    return click.prompt(f"Command ({labels})", type=click.Choice(keys), show_choices=False)


@cli.command()
@click.argument("path")
@click.option("--config", "-c", default=DEFAULT_CONFIG, help="Config file path")
@click.option("--max-retries", default=3, show_default=True, help="Retries allowed per failed step")
def debug(path: str, config: str, max_retries: int) -> None:
    """Step through a scenario file interactively."""
    cfg = _load_config(config)
    scenario = Path(path)
    if not scenario.exists():
        scenario = Path("tests") / "scenarios" / path
    if not scenario.exists():
        console.print(f"[red]Scenario file not found: {path}[/red]")
        sys.exit(1)

    console.print(f"Debugging [blue]{scenario}[/blue]")
    sessions = Orchestrator(cfg).debug_file(scenario, _prompt_command, max_retries=max_retries)
    if not sessions:
        console.print("[yellow]No test cases found[/yellow]")
        return
    for s in sessions:
        ok = sum(1 for r in s.records if r.success)
        console.print(f"  {s.case.name}: {s.state} ({ok}/{len(s.records)} executions succeeded, "
                      f"{len(s.skipped)} skipped)")


@cli.command()
@click.argument("step")
@click.option("--config", "-c", default=DEFAULT_CONFIG, help="Config file path")
@click.option("--var", "variables", multiple=True, help="Placeholder value as NAME=VALUE")
@click.option("--json", "as_json", is_flag=True, help="Print the descriptor as JSON")
def translate(step: str, config: str, variables: tuple[str, ...], as_json: bool) -> None:
    """Show how a single step is translated."""
    cfg = _load_config(config)
    translator = Translator(PatternRegistry.from_config_file(cfg.patterns_file))
    context = ExecutionContext.from_environment(cfg).with_variables(**_parse_vars(variables))
    explained = translator.explain(step, context)
    descriptor = explained["descriptor"]

    if as_json:
        console.print_json(json.dumps(descriptor.model_dump(), ensure_ascii=False, default=str))
        return

    table = Table(title=explained["description"])
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_row("Type", descriptor.kind)
    table.add_row("Pattern", f"{descriptor.matched_pattern_name} "
                             f"({'builtin' if descriptor.is_builtin else 'custom'}, "
                             f"priority {descriptor.priority})")
    table.add_row("Engine", descriptor.engine)
    table.add_row("Params", json.dumps(descriptor.params, ensure_ascii=False))
    if descriptor.captured_variables:
        table.add_row("Variables", ", ".join(descriptor.captured_variables))
    if descriptor.unresolved_placeholders:
        table.add_row("Unresolved", "[yellow]" + ", ".join(descriptor.unresolved_placeholders) + "[/yellow]")
    if descriptor.generated_code:
        table.add_row("Script", descriptor.generated_code.rstrip())
    table.add_row("Valid", "[green]yes[/green]" if explained["valid"] else "[red]no[/red]")
    console.print(table)


@cli.command()
@click.option("--config", "-c", default=DEFAULT_CONFIG, help="Config file path")
@click.option("--type", "kind", default=None, help="Only show one action type")
def patterns(config: str, kind: str | None) -> None:
    """List the active step patterns in match order."""
    cfg = _load_config(config)
    registry = PatternRegistry.from_config_file(cfg.patterns_file)
    kinds = [kind] if kind else registry.kinds()

    table = Table(title="Step Patterns")
    table.add_column("Type", style="bold")
    table.add_column("Name")
    table.add_column("Priority", justify="right")
    table.add_column("Origin")
    table.add_column("Engine")
    table.add_column("Description")
    for k in kinds:
        for p in registry.patterns_for_type(k):
            table.add_row(k, p.name, str(p.priority), p.origin, p.engine, p.description)
    console.print(table)

    stats = registry.stats()
    console.print(f"Total: {stats.total} ({stats.builtin} builtin, {stats.custom} custom)")


@cli.command()
@click.argument("path")
def parse(path: str) -> None:
    """Show the test cases and steps parsed from a scenario file."""
    try:
        cases = parse_scenario_file(path)
    except FileNotFoundError:
        console.print(f"[red]Scenario file not found: {path}[/red]")
        sys.exit(1)

    tree = Tree(f"[blue]{path}[/blue]")
    for case in cases:
        branch = tree.add(f"[bold]{case.name}[/bold] ({len(case.steps)} steps)")
        for step in case.steps:
            label = step.action + (f"  [dim]# {step.comment}[/dim]" if step.comment else "")
            branch.add(label)
    console.print(tree)


@cli.command()
@click.option("--base-url", prompt="Base URL", default=DEFAULT_BASE_URL, help="Default URL for navigation steps")
def init(base_url: str) -> None:
    """Create a default configuration file."""
    config_path = Path(DEFAULT_CONFIG)
    if config_path.exists():
        if not click.confirm(f"{DEFAULT_CONFIG} already exists. Overwrite?"):
            return

    cfg = RunnerConfig(base_url=base_url)
    cfg.save(config_path)
    console.print(f"[green]Created {config_path}[/green]")
    console.print("\nWrite scenarios under tests/scenarios/ and run:")
    console.print("  [blue]itest run tests/scenarios[/blue]")
    console.print("\nOptional: add your own step patterns in:")
    console.print(f"  [blue]{cfg.patterns_file}[/blue]")


@cli.group("config")
def config_group() -> None:
    """Inspect configuration."""
    pass


@config_group.command("validate")
@click.option("--config", "-c", default=DEFAULT_CONFIG, help="Config file path")
def config_validate(config: str) -> None:
    """Validate the config file and the custom pattern file it points to."""
    try:
        cfg = RunnerConfig.load(config)
    except FileNotFoundError:
        console.print(f"[yellow]No config at {config}; defaults would be used[/yellow]")
        cfg = RunnerConfig()
    except (ValidationError, json.JSONDecodeError) as e:
        console.print(f"[red]Invalid config:[/red] {e}")
        sys.exit(1)
    console.print(f"[green]Config OK[/green] (base_url={cfg.base_url})")

    if cfg.patterns_file and Path(cfg.patterns_file).exists():
        custom = load_custom_patterns(cfg.patterns_file)
        count = sum(len(v) for v in custom.values())
        console.print(f"Custom patterns: {count} in {len(custom)} categories")
    registry = PatternRegistry.from_config_file(cfg.patterns_file)
    stats = registry.stats()
    console.print(f"Active patterns: {stats.total} ({stats.builtin} builtin, {stats.custom} custom)")


if __name__ == "__main__":
    cli()

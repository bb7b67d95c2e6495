"""Main CLI entry point."""

import signal
import sys
import threading
from contextlib import contextmanager
from typing import Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from global_tables.config.parser import Config, ConfigValidationError
from global_tables.orchestrator.executor import ExecutionStatus, RunResult
from global_tables.orchestrator.orchestrator import GlobalTableOrchestrator
from global_tables.utils.aws_client import AWSClientManager
from global_tables.utils.errors import DeploymentError, error_handler
from global_tables.utils.logging import get_logger, setup_logging

console = Console()
logger = get_logger(__name__)

STATUS_STYLES = {
    ExecutionStatus.SUCCESS: "[green]success[/green]",
    ExecutionStatus.FAILED: "[red]failed[/red]",
    ExecutionStatus.SKIPPED: "[dim]skipped[/dim]",
}


class DotProgress:
    """Prints one dot per in-progress status check, like a heartbeat."""

    def __init__(self, out: Console):
        self.out = out
        self.printed = False
        self._lock = threading.Lock()

    def __call__(self, status: str) -> None:
        with self._lock:
            self.out.print(".", end="")
            self.printed = True

    def finish(self) -> None:
        with self._lock:
            if self.printed:
                self.out.print()
                self.printed = False


@click.group()
@click.option('--config', 'config_path', default='serverless.yml', help='Path to the service configuration file')
@click.option('--profile', help='AWS profile to use')
@click.option('--region', help='Source region (overrides provider.region)')
@click.option('--stage', help='Stage (overrides provider.stage)')
@click.option('--log-level', default='info', type=click.Choice(['debug', 'info', 'warning', 'error']))
@click.option('--log-dir', default='.global-tables/logs', help='Directory for JSON log files')
@click.pass_context
def cli(ctx, config_path, profile, region, stage, log_level, log_dir):
    """Set up and tear down DynamoDB global tables for a deployed stack."""
    ctx.ensure_object(dict)
    ctx.obj['config_path'] = config_path
    ctx.obj['profile'] = profile
    ctx.obj['region'] = region
    ctx.obj['stage'] = stage

    setup_logging(log_level, log_dir=log_dir)


def load_config(config_path: str, stage: Optional[str] = None, region: Optional[str] = None) -> Config:
    """Load and validate configuration file."""
    try:
        return Config(config_path, stage=stage, region=region).load()
    except FileNotFoundError:
        console.print(f"[red]Error:[/red] Configuration file not found: {config_path}")
        sys.exit(1)
    except ConfigValidationError as e:
        console.print("[red]Configuration validation failed:[/red]\n")
        console.print(str(e), markup=False)
        sys.exit(1)


def create_orchestrator(ctx, config: Config, progress: Optional[DotProgress] = None,
                        cancel_event: Optional[threading.Event] = None) -> GlobalTableOrchestrator:
    """Create the orchestrator with its AWS client manager."""
    template = None
    settings = config.global_tables
    if settings and settings.deploy_stack and ctx.command.name == 'deploy':
        try:
            template = config.load_template()
        except ConfigValidationError as e:
            console.print(f"[red]Error:[/red] {e}")
            sys.exit(1)

    client_manager = AWSClientManager(profile=ctx.obj['profile'], region=config.service.region)
    return GlobalTableOrchestrator(
        config=config.service,
        client_manager=client_manager,
        template=template,
        observer=progress,
        cancel_event=cancel_event
    )


@contextmanager
def cancel_on_interrupt():
    """Turn Ctrl-C into a cancel event so region workers stop waiting."""
    cancel_event = threading.Event()

    def handler(signum, frame):
        console.print("\n[yellow]Interrupted, cancelling waits...[/yellow]")
        cancel_event.set()

    previous = signal.signal(signal.SIGINT, handler)
    try:
        yield cancel_event
    finally:
        signal.signal(signal.SIGINT, previous)


def print_result(result: RunResult, title: str) -> None:
    """Render a run result as a table."""
    if result.status == ExecutionStatus.SKIPPED and not result.table_results:
        console.print(f"[dim]{title} skipped: {result.message}[/dim]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Table", style="cyan")
    table.add_column("Status")
    table.add_column("Regions")
    for table_result in result.table_results.values():
        table.add_row(
            table_result.table_name,
            STATUS_STYLES[table_result.status],
            ", ".join(table_result.regions) or "-"
        )
    console.print(table)

    if result.stack_results:
        stacks = ", ".join(
            f"{region} {'[green]ok[/green]' if ok else '[red]failed[/red]'}"
            for region, ok in result.stack_results.items()
        )
        console.print(f"Regional stacks: {stacks}")

    if result.is_success():
        console.print(Panel(f"{title} completed in {result.duration:.1f}s", style="green"))
    else:
        message = result.error.message if result.error else f"{len(result.failed_tables())} table(s) failed"
        console.print(Panel(f"{title} failed: {message}", style="red"))


def run_command(ctx, title: str, action: str) -> None:
    config = load_config(ctx.obj['config_path'], ctx.obj['stage'], ctx.obj['region'])
    progress = DotProgress(console)

    try:
        with cancel_on_interrupt() as cancel_event:
            orchestrator = create_orchestrator(ctx, config, progress, cancel_event)
            result = getattr(orchestrator, action)()
    except DeploymentError as e:
        progress.finish()
        error_handler.log_error(e)
        sys.exit(1)
    progress.finish()

    print_result(result, title)
    if not result.is_success():
        sys.exit(1)


@cli.command()
@click.pass_context
def deploy(ctx):
    """Set up global tables for the tables in the deployed stack."""
    run_command(ctx, "Global table setup", "deploy")


@cli.command()
@click.pass_context
def remove(ctx):
    """Remove replicas in the configured regions (run before removing the stack)."""
    run_command(ctx, "Global table removal", "remove")


@cli.command()
@click.pass_context
def status(ctx):
    """Show which regions replicate each table and which are missing."""
    config = load_config(ctx.obj['config_path'], ctx.obj['stage'], ctx.obj['region'])
    orchestrator = create_orchestrator(ctx, config)

    try:
        reports = orchestrator.status()
    except Exception as e:
        error = error_handler.handle_exception(e)
        error_handler.log_error(error)
        sys.exit(1)

    settings = config.global_tables
    console.print(Panel(
        f"Stack {config.service.stack_name} in {config.service.region} "
        f"(global tables {settings.version})",
        style="bold blue"
    ))

    table = Table(show_header=True, header_style="bold")
    table.add_column("Table", style="cyan")
    table.add_column("Replicated in")
    table.add_column("Missing", style="yellow")
    for report in reports:
        table.add_row(
            report.table_name,
            ", ".join(report.replicated_regions) or "-",
            ", ".join(report.diff.missing_regions) or "[green]none[/green]"
        )
    console.print(table)


def main():
    cli(obj={})


if __name__ == '__main__':
    main()

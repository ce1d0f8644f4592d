"""Hotswap CLI entry point."""

import asyncio
import logging
import signal
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskID, TextColumn

from hotswap.cancellation import CancellationToken
from hotswap.config import ConfigError, UpdaterConfig, load_config
from hotswap.domain.enums import LogLevel, RunState
from hotswap.domain.models import RunResult

console = Console()

logger = logging.getLogger(__name__)

EXIT_FAILED = 1
EXIT_CANCELLED = 130

_LEVEL_STYLES = {
    LogLevel.INFO: "",
    LogLevel.WARNING: "yellow",
    LogLevel.ERROR: "red",
    LogLevel.SUCCESS: "green",
}


def setup_logging(verbose: bool = False) -> None:
    """Configure logging with rich handler."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, console=console)],
    )


class ConsoleReporter:
    """Renders run progress as a rich progress bar and log lines on the console."""

    def __init__(self, progress: Progress):
        self.progress = progress
        self.task_id: TaskID = progress.add_task("Starting update...", total=100)

    async def on_progress(self, percent: int | None, label: str) -> None:
        if percent is None:
            self.progress.update(self.task_id, description=label)
        else:
            self.progress.update(self.task_id, completed=percent, description=label)

    async def on_log(self, message: str, level: LogLevel) -> None:
        style = _LEVEL_STYLES[level]
        if style:
            self.progress.console.print(f"[{style}]{message}[/{style}]")
        else:
            self.progress.console.print(message)


def _exit_code(result: RunResult) -> int:
    if result.state == RunState.DONE:
        return 0
    if result.state == RunState.CANCELLED:
        return EXIT_CANCELLED
    return EXIT_FAILED


async def _run_update(locator: str | None, config: UpdaterConfig) -> RunResult:
    from hotswap.orchestrator import UpdateOrchestrator
    from hotswap.transport import SchemeTransport

    token = CancellationToken()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, token.cancel, "Interrupted by user")
        handles_sigint = True
    except (NotImplementedError, RuntimeError):
        # No loop signal handlers here (Windows, or not the main thread); Ctrl-C
        # then cancels the task, which rolls back just the same
        handles_sigint = False

    progress = Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
        console=console,
        transient=True,
    )
    try:
        async with SchemeTransport(
            timeout=config.http_timeout,
            chunk_size=config.chunk_size,
            verify=config.verify_tls,
        ) as transport:
            with progress:
                orchestrator = UpdateOrchestrator(transport, ConsoleReporter(progress), config=config)
                return await orchestrator.run(locator, token)
    finally:
        if handles_sigint:
            loop.remove_signal_handler(signal.SIGINT)


def _print_summary(result: RunResult) -> None:
    outcome = result.outcome
    if result.succeeded:
        console.print(
            f"[green]✓[/green] Update complete: {len(outcome.committed)} replaced, "
            f"{len(outcome.skipped)} already up to date"
        )
    elif result.cancelled:
        console.print(f"[yellow]Update cancelled[/yellow], {len(result.rolled_back)} file(s) restored")
    else:
        console.print(f"[red]✗[/red] Update failed: {result.error}")
        if result.rolled_back:
            console.print(f"[dim]{len(result.rolled_back)} file(s) restored from backup[/dim]")

    for target, error in result.rollback_failures:
        console.print(f"[red]Could not restore {target.current_path}: {error}[/red]")
    for target, error in result.restart_failures:
        console.print(f"[yellow]Could not restart {target.name}: {error}[/yellow]")


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose logging")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """Hotswap - transactional file updater."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    setup_logging(verbose)


@cli.command()
@click.argument("locator", required=False)
@click.option("--config", "config_path", type=click.Path(dir_okay=False, path_type=Path), help="Config file (YAML)")
@click.option("--no-restart", is_flag=True, help="Do not start executables after the update")
@click.option("--keep-backups", is_flag=True, help="Keep backup files after a successful update")
def run(locator: str | None, config_path: Path | None, no_restart: bool, keep_backups: bool) -> None:
    """Apply the update described by the manifest at LOCATOR (URL or path)."""
    try:
        config = load_config(config_path)
    except ConfigError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        raise SystemExit(EXIT_FAILED) from e

    if no_restart:
        config.restart_executables = False
    if keep_backups:
        config.cleanup_backups = False

    if not locator and not config.manifest_url:
        console.print("[red]No manifest given[/red]")
        console.print("[dim]Pass a URL or path, or set manifest_url in the config file[/dim]")
        raise SystemExit(EXIT_FAILED)

    try:
        result = asyncio.run(_run_update(locator, config))
    except KeyboardInterrupt:
        console.print("\n[yellow]Update interrupted[/yellow]")
        raise SystemExit(EXIT_CANCELLED) from None
    except Exception as e:
        logger.debug("Unhandled error during update", exc_info=True)
        console.print(f"[red]✗[/red] Update aborted: {e}")
        raise SystemExit(EXIT_FAILED) from e

    _print_summary(result)
    code = _exit_code(result)
    if code:
        raise SystemExit(code)


@cli.command("hash")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def hash_file(file: Path) -> None:
    """Print the SHA-256 digest of FILE, for use as expectedHash."""
    from hotswap.verifier import compute_digest

    digest = asyncio.run(compute_digest(file))
    console.print(f"{digest}  {file}", highlight=False)


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("expected")
def verify(file: Path, expected: str) -> None:
    """Check FILE against the EXPECTED SHA-256 digest."""
    from hotswap.verifier import verify as verify_digest

    try:
        matches = asyncio.run(verify_digest(file, expected))
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise SystemExit(EXIT_FAILED) from e

    if matches:
        console.print(f"[green]✓[/green] {file} matches")
    else:
        console.print(f"[red]✗[/red] {file} does not match {expected}")
        raise SystemExit(EXIT_FAILED)


def main() -> None:
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()

"""Command line interface for the translation pipeline using Typer."""

from __future__ import annotations

import logging
from contextlib import contextmanager, nullcontext
from pathlib import Path
from typing import Iterator

import typer
from rich.console import Console
from rich.table import Table

from canon import __version__
from canon.config import Settings, get_settings
from canon.core.errors import CanonError
from canon.core.models import RunSummary, TaskState
from canon.core.registry import RegistryStore
from canon.i18n.cache import ResponseCache
from canon.i18n.generator import TranslationGenerator
from canon.i18n.languages import validate_languages
from canon.integrations import sentry
from canon.ledgers.progress import ProgressLedger
from canon.ledgers.tokens import TokenLedger
from canon.services.ai.provider import create_provider
from canon.services.assigner import CanonicalIdAssigner
from canon.services.conflicts import ConflictReporter, ConflictSink, LocalConflictSink
from canon.services.detector import TaskDetector, dump_tasks, read_tasks, write_tasks
from canon.services.overrides import OverridePolicy
from canon.storage.git import GitVersionControl, NullVersionControl
from canon.storage.local import LocalContentStorage

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="canon",
    help="Content identity registry and AI translation pipeline.",
    add_completion=False,
)
console = Console()
err_console = Console(stderr=True)


def version_callback(value: bool) -> None:
    if value:
        console.print(f"canon {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v",
        help="Log at DEBUG level.",
    ),
) -> None:
    """canon: keep content identities and translations in step."""
    settings = get_settings()
    logging.basicConfig(
        level=logging.DEBUG if verbose else settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    sentry.init_sentry(settings, command=ctx.invoked_subcommand)


# =============================================================================
# Wiring
# =============================================================================


def _store(settings: Settings) -> RegistryStore:
    return RegistryStore(settings.registry_path)


def _storage(settings: Settings) -> LocalContentStorage:
    return LocalContentStorage(settings.content_root_path)


def _sink(settings: Settings) -> ConflictSink:
    if settings.conflict_sink == "github":
        from canon.integrations.github import GitHubIssueSink

        try:
            return GitHubIssueSink(
                repository=settings.github_repository,
                token=settings.github_token,
                api_url=settings.github_api_url,
            )
        except ValueError as e:
            raise CanonError(f"GitHub conflict sink is not configured: {e}", code="CFG_001") from e
    return LocalConflictSink(settings.conflicts_path)


def _languages(settings: Settings) -> list[str]:
    try:
        return validate_languages(settings.languages_list)
    except ValueError as e:
        raise CanonError(f"SUPPORTED_LANGUAGES is invalid: {e}", code="CFG_001") from e


def _locked(store: RegistryStore, settings: Settings):
    return store.lock() if settings.lock_registry else nullcontext()


@contextmanager
def _fatal_errors() -> Iterator[None]:
    """Turn pipeline errors into a clean exit with status 2."""
    try:
        yield
    except CanonError as e:
        if e.fatal:
            sentry.capture_exception(e, code=e.code)
        err_console.print(f"[red]Error ({e.code}):[/red] {e}")
        raise typer.Exit(2) from e


# =============================================================================
# Commands
# =============================================================================


@app.command()
def scan() -> None:
    """Assign canonical IDs and update the registry."""
    settings = get_settings()
    store = _store(settings)

    with _fatal_errors(), _locked(store, settings):
        assigner = CanonicalIdAssigner(
            store,
            _storage(settings),
            settings.collections_list,
            settings.extensions_list,
            _languages(settings),
        )
        report = assigner.scan()

    table = Table(title="Content scan")
    table.add_column("Result")
    table.add_column("Count", justify="right")
    table.add_row("Registered", str(len(report.registered)))
    table.add_row("Linked translations", str(len(report.linked)))
    table.add_row("Updated", str(len(report.updated)))
    table.add_row("Files written", str(len(report.files_written)))
    table.add_row("Malformed", str(len(report.malformed)), style="yellow" if report.malformed else None)
    table.add_row("Needs review", str(len(report.needs_review)), style="red" if report.needs_review else None)
    console.print(table)

    for error in report.malformed:
        console.print(f"[yellow]Malformed:[/yellow] {error.path}: {error.reason}")
    for item in report.needs_review:
        console.print(f"[red]Review:[/red] {item.collection}/{item.slug}: {item.reason}")
        for path in item.paths:
            console.print(f"    {path}")

    if report.needs_review:
        raise typer.Exit(1)


@app.command()
def validate() -> None:
    """Check that the registry matches the content tree."""
    settings = get_settings()

    with _fatal_errors():
        assigner = CanonicalIdAssigner(
            _store(settings),
            _storage(settings),
            settings.collections_list,
            settings.extensions_list,
            _languages(settings),
        )
        result = assigner.validate()

    for error in result.errors:
        console.print(f"[red]Error:[/red] {error}")
    for warning in result.warnings:
        console.print(f"[yellow]Warning:[/yellow] {warning}")

    if not result.valid:
        console.print(f"[red]Registry invalid:[/red] {len(result.errors)} errors")
        raise typer.Exit(1)
    console.print(f"[green]Registry valid[/green] ({len(result.warnings)} warnings)")


@app.command()
def detect(
    output: Path | None = typer.Option(
        None, "--output", "-o",
        help="Write the task list here instead of stdout.",
    ),
) -> None:
    """Compute translation tasks from the registry."""
    settings = get_settings()

    with _fatal_errors():
        registry = _store(settings).load()
        detector = TaskDetector(
            _storage(settings),
            _languages(settings),
            OverridePolicy.load(settings.override_path, settings.pause_file),
        )
        tasks = detector.detect(registry)

    if output is None:
        typer.echo(dump_tasks(tasks), nl=False)
    else:
        write_tasks(output, tasks)
        err_console.print(f"Wrote {len(tasks)} tasks to {output}")


@app.command()
def generate(
    tasks_file: Path = typer.Argument(
        ..., help="Task list written by 'canon detect'.",
    ),
    commit: bool = typer.Option(
        True, "--commit/--no-commit",
        help="Commit each translation with git.",
    ),
) -> None:
    """Translate every task in a task list."""
    settings = get_settings()
    if not tasks_file.exists():
        err_console.print(f"[red]Error:[/red] File not found: {tasks_file}")
        raise typer.Exit(1)

    store = _store(settings)
    with _fatal_errors(), _locked(store, settings):
        tasks = read_tasks(tasks_file)
        storage = _storage(settings)
        generator = TranslationGenerator(
            store=store,
            registry=store.load(),
            storage=storage,
            provider=create_provider(settings),
            progress=ProgressLedger(settings.progress_path),
            tokens=TokenLedger(settings.token_ledger_path, settings.daily_token_cap),
            reporter=ConflictReporter(_sink(settings), storage),
            vcs=GitVersionControl() if commit and settings.git_commit else NullVersionControl(),
            cache=ResponseCache(settings.cache_dir),
            policy=OverridePolicy.load(settings.override_path, settings.pause_file),
            settings=settings,
        )
        summary = generator.run(tasks)

    _print_summary(summary)
    if summary.failed:
        raise typer.Exit(1)


def _print_summary(summary: RunSummary) -> None:
    styles = {
        TaskState.COMMITTED: "green",
        TaskState.REPORTED: "red",
        TaskState.FAILED: "red",
        TaskState.SKIPPED: "dim",
    }
    table = Table(title="Translation run")
    table.add_column("Content", style="dim")
    table.add_column("Lang")
    table.add_column("State")
    table.add_column("Message")
    for outcome in summary.outcomes:
        state = f"[{styles.get(outcome.state, 'white')}]{outcome.state.value}[/]"
        message = f"{outcome.error_code}: {outcome.message}" if outcome.error_code else outcome.message
        table.add_row(outcome.canonical_id, outcome.target_language, state, message)
    console.print(table)
    console.print(
        f"Processed: {summary.processed}  Failed: {summary.failed}  "
        f"Skipped: {summary.skipped}  Rejected: {summary.rejected}"
    )


@app.command()
def conflicts(
    tasks_file: Path | None = typer.Option(
        None, "--tasks",
        help="Report the stale tasks in this task list instead of scanning.",
    ),
) -> None:
    """File conflict reports for stale translations."""
    settings = get_settings()

    with _fatal_errors():
        registry = _store(settings).load()
        reporter = ConflictReporter(_sink(settings), _storage(settings))
        if tasks_file is None:
            refs = reporter.scan(registry)
        else:
            refs = reporter.report_stale_tasks(read_tasks(tasks_file), registry)

    console.print(f"Filed {len(refs)} new conflict reports")
    for ref in refs:
        console.print(f"  {ref}")


@app.command()
def usage(
    day: str | None = typer.Option(
        None, "--date",
        help="Day to report on (YYYY-MM-DD). Defaults to today (UTC).",
    ),
) -> None:
    """Print the token usage report."""
    settings = get_settings()

    with _fatal_errors():
        ledger = TokenLedger(settings.token_ledger_path, settings.daily_token_cap)
        report = ledger.render_report(day)

    typer.echo(report, nl=False)


if __name__ == "__main__":
    app()

"""Operator command line for the contract gateway."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

import typer
import uvicorn
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from . import __version__
from .api import create_app
from .config import Settings, get_settings
from .contract import ContractCategory, ContractStore, summarise_document
from .doctor import CheckStatus, DoctorCheckResult, has_failures, run_checks
from .errors import GatewayError
from .logging_config import configure_logging
from .validation import ContractValidationResult, validate_contracts

app = typer.Typer(
    help='Serve and inspect the Keiko API contract artifacts.',
    no_args_is_help=False,
)
specs_app = typer.Typer(help='List and validate the provisioned contracts.')

app.add_typer(specs_app, name='specs')


ROOT_OPTION = typer.Option(
    None,
    '--root',
    help='Override the contracts directory (defaults to CONTRACTS_ROOT or ./contracts).',
    dir_okay=True,
    file_okay=False,
)

HOST_OPTION = typer.Option(None, '--host', help='Interface to bind (defaults to HOST).')
PORT_OPTION = typer.Option(None, '--port', '-p', help='Port to listen on (defaults to PORT).')
LOG_LEVEL_OPTION = typer.Option(None, '--log-level', help='Log level (defaults to LOG_LEVEL).')

STRICT_OPTION = typer.Option(
    default=False,
    help='Treat contract validation warnings as errors.',
)
STRICT_OPTION.param_decls = ('--strict',)

VERSION_OPTION = typer.Option(
    default=False,
    help='Show version and exit.',
)
VERSION_OPTION.param_decls = ('--version', '-v')


@dataclass
class CLIState:
    """Holds the resolved settings and console shared by every command."""

    settings: Settings
    console: Console

    @property
    def store(self) -> ContractStore:
        return ContractStore(self.settings.contracts_root)


def _get_state(ctx: typer.Context) -> CLIState:
    return ctx.ensure_object(CLIState)


def _status_style(status: CheckStatus) -> str:
    return {
        CheckStatus.PASS: 'green',
        CheckStatus.WARN: 'yellow',
        CheckStatus.FAIL: 'red',
    }[status]


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    root: Path | None = ROOT_OPTION,
    version: bool = VERSION_OPTION,  # noqa: FBT001
) -> None:
    """Resolve settings for the selected command."""
    console = Console()
    if version:
        console.print(f'Keiko contracts gateway version {__version__}')
        raise typer.Exit(0)

    if ctx.invoked_subcommand is None:
        console.print('[yellow]No command specified. Use --help to see available commands.[/]')
        raise typer.Exit(0)

    settings = get_settings()
    if root is not None:
        settings = settings.model_copy(update={'contracts_root': root.resolve()})
    ctx.obj = CLIState(settings=settings, console=console)


@app.command('serve')
def serve(
    ctx: typer.Context,
    host: str | None = HOST_OPTION,
    port: int | None = PORT_OPTION,
    log_level: str | None = LOG_LEVEL_OPTION,
) -> None:
    """Run the HTTP gateway."""
    state = _get_state(ctx)
    overrides = {
        key: value
        for key, value in {'host': host, 'port': port, 'log_level': log_level}.items()
        if value is not None
    }
    settings = state.settings.model_copy(update=overrides)
    configure_logging(settings)
    state.console.print(
        f'[bold cyan]Keiko API contracts[/] v{__version__} on '
        f'[bold]{settings.host}:{settings.port}[/], contracts at [bold]{settings.contracts_root}[/]'
    )
    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        access_log=False,
    )


def _render_listing(console: Console, store: ContractStore) -> None:
    table = Table(title='Available Contracts', show_lines=False)
    table.add_column('Category', style='cyan')
    table.add_column('Resource', style='white', overflow='fold')
    table.add_column('Title', style='white')
    table.add_column('Version', justify='center')
    listing = store.list_contracts()
    for category, names in listing.items():
        for name in names:
            title = version = '—'
            if category.is_yaml:
                try:
                    info = summarise_document(store.load(category, name).parse())
                except GatewayError:
                    title = '[red]unreadable[/]'
                else:
                    title = info.title or '—'
                    version = info.version or '—'
            table.add_row(category.value, f'/{category.value}/{name}', title, version)
    if not any(listing.values()):
        table.add_row('—', 'No contracts found.', '—', '—')
    console.print(table)


@specs_app.command('list')
def specs_list(ctx: typer.Context) -> None:
    """Show every contract the gateway would serve."""
    state = _get_state(ctx)
    try:
        _render_listing(state.console, state.store)
    except GatewayError as exc:
        state.console.print(f'[red]✗[/] {exc.message}: {escape(str(exc.__cause__))}')
        raise typer.Exit(code=1) from None


def _render_messages(console: Console, title: str, messages: Iterable[str], style: str) -> None:
    table = Table(title=title, show_header=False)
    table.add_column('Message', style=style, overflow='fold')
    for message in messages:
        table.add_row(escape(message))
    console.print(table)


def _render_validation_summary(console: Console, result: ContractValidationResult) -> None:
    if result.warnings:
        _render_messages(console, 'Contract validation warnings', result.warnings, 'yellow')


@specs_app.command('validate')
def specs_validate(
    ctx: typer.Context,
    *,
    strict: bool = STRICT_OPTION,
) -> None:
    """Validate the OpenAPI/AsyncAPI documents and the version manifest."""
    state = _get_state(ctx)
    console = state.console
    try:
        result = validate_contracts(state.store, strict=strict)
    except GatewayError as exc:
        console.print(f'[red]✗[/] {exc.message}: {escape(str(exc.__cause__))}')
        raise typer.Exit(code=1) from None

    if result.is_valid:
        console.print(Panel('[green]Contract validation passed.[/]', border_style='green'))
        _render_validation_summary(console, result)
        return

    _render_messages(console, 'Contract validation errors', result.errors, 'red')
    if not strict:
        _render_validation_summary(console, result)
    raise typer.Exit(code=1)


def _render_check_table(console: Console, results: Iterable[DoctorCheckResult]) -> None:
    table = Table(title='Provisioning Checks')
    table.add_column('Check', style='cyan')
    table.add_column('Status', justify='center')
    table.add_column('Message', style='white')
    table.add_column('Remediation', style='magenta')
    for result in results:
        style = _status_style(result.status)
        table.add_row(
            result.name,
            f'[{style}]{result.status.value.upper()}[/]',
            result.message,
            result.remediation or '—',
        )
    console.print(table)


@app.command('doctor')
def doctor(ctx: typer.Context) -> None:
    """Check that the contracts directory is provisioned correctly."""
    state = _get_state(ctx)
    results = run_checks(state.settings)
    _render_check_table(state.console, results)
    if has_failures(results):
        raise typer.Exit(code=1)


def run() -> None:
    """Entry point for the CLI script."""
    app()

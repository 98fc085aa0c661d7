"""
Main CLI application using Typer.
"""

import asyncio
import logging
from pathlib import Path
from typing import Annotated, Dict, List, Optional, Sequence

import pendulum
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from ..adapters.google_calendar_client import GoogleCalendarClient
from ..adapters.graph_authenticator import GraphAuthenticator
from ..adapters.graph_client import GraphClient
from ..adapters.json_calendar_client import MOCK_DATA_FILE, JsonCalendarClient
from ..config import AppConfig, get_default_config_path
from ..domain.availability_resolver import AvailabilityResolver, group_slots_by_day
from ..domain.exceptions import HangoutFinderError
from ..domain.models import AvailabilityQuery, WEEKDAY_NAMES
from ..services.availability_finder import AvailabilityFinderService
from ..services.busy_time_aggregator import BusyTimeAggregator, CalendarProviderAdapter, UnavailableProvider

app = typer.Typer(
    name="hangoutfinder",
    help="Find time slots where everybody is free",
    add_completion=False
)

console = Console()
logger = logging.getLogger(__name__)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _load_config(config_file: Optional[Path]) -> AppConfig:
    config_path = config_file or get_default_config_path()
    return AppConfig.load_from_yaml(config_path)


def _determine_time_range(
    *,
    tz: str,
    this_week: bool,
    next_week: bool,
    start_option: Optional[str],
    end_option: Optional[str],
    search_days: int,
):
    """
    Resolve the search window from shortcut flags or explicit dates.

    The end date is inclusive on the command line, so the returned range ends
    at the start of the following day.
    """
    if this_week and next_week:
        raise typer.BadParameter("--this-week and --next-week cannot be combined")

    now = pendulum.now(tz)

    if this_week:
        return now, now.end_of("week").add(microseconds=1)

    if next_week:
        next_monday = now.next(pendulum.MONDAY).start_of("day")
        return next_monday, next_monday.add(days=7)

    try:
        if start_option:
            start_date = pendulum.from_format(start_option, "YYYY-MM-DD", tz=tz).start_of("day")
        else:
            start_date = now

        if end_option:
            end_date = pendulum.from_format(end_option, "YYYY-MM-DD", tz=tz).start_of("day").add(days=1)
        else:
            end_date = start_date.start_of("day").add(days=search_days)
    except ValueError as e:
        raise typer.BadParameter(f"Could not parse date: {e}") from e

    return start_date, end_date


def _build_adapters(
    config: AppConfig,
    provider_names: Sequence[str],
    mock: bool,
) -> List[CalendarProviderAdapter]:
    """
    Instantiate only the providers that the query actually needs.

    A provider that fails to set up is replaced by an ``UnavailableProvider``,
    so its participants are reported as degraded instead of aborting the run.
    """
    if mock:
        return [
            JsonCalendarClient(
                data_file=MOCK_DATA_FILE,
                calendar_ids=config.calendar_ids(),
                timezone=config.timezone,
            )
        ]

    adapters: List[CalendarProviderAdapter] = []
    wanted = set(provider_names)
    timeout = config.aggregation.timeout_seconds

    def outlook_client() -> GraphClient:
        authenticator = GraphAuthenticator(
            client_id=config.outlook.client_id,
            tenant_id=config.outlook.tenant_id,
            authority_url=config.outlook.get_authority_url(),
            console=console,
        )
        return GraphClient(
            access_token=authenticator.get_access_token(),
            timezone=config.timezone,
            timeout=timeout,
        )

    def google_client() -> GoogleCalendarClient:
        return GoogleCalendarClient.from_tokens_file(
            config.google.tokens_file,
            calendar_id=config.google.calendar_id,
            timeout=timeout,
        )

    def json_client() -> JsonCalendarClient:
        return JsonCalendarClient(
            data_file=config.json_calendar.path,
            calendar_ids=config.calendar_ids(),
            timezone=config.timezone,
        )

    factories = [
        ("outlook", config.outlook, outlook_client),
        ("google", config.google, google_client),
        ("json", config.json_calendar, json_client),
    ]

    for name, section, factory in factories:
        if name not in wanted or section is None:
            continue
        try:
            adapters.append(factory())
        except HangoutFinderError as e:
            logger.warning("Could not set up the %s provider: %s", name, e)
            adapters.append(UnavailableProvider(name, str(e)))

    return adapters


def _query_connections(
    config: AppConfig,
    participant_ids: Sequence[str],
    mock: bool,
) -> Dict[str, List[str]]:
    configured = config.connections()
    if mock:
        return {pid: ["json"] for pid in participant_ids if pid in configured}
    return {pid: configured.get(pid, []) for pid in participant_ids}


def _print_slots(slots) -> None:
    for day_slots in group_slots_by_day(slots).values():
        first = day_slots[0].start
        console.print(f"[bold]{WEEKDAY_NAMES[first.weekday()]}, {first.format('DD.MM.YYYY')}[/bold]")
        for slot in day_slots:
            console.print(f"  {slot.start.format('HH:mm')} – {slot.end.format('HH:mm')}")


@app.command()
def find(
    participants: Annotated[List[str], typer.Argument(help="Participant names or email addresses.")],
    config_file: Annotated[Optional[Path], typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml")] = None,
    start: Annotated[Optional[str], typer.Option("--start", help="Start date (YYYY-MM-DD)")] = None,
    end: Annotated[Optional[str], typer.Option("--end", help="Last day to search, inclusive (YYYY-MM-DD)")] = None,
    duration: Annotated[Optional[int], typer.Option("--duration", "-d", help="Hangout duration in minutes")] = None,
    mock: Annotated[bool, typer.Option("--mock", help="Use bundled mock calendar data and skip authentication.")] = False,
    this_week: Annotated[bool, typer.Option("--this-week", help="Search from now until the end of this week.")] = False,
    next_week: Annotated[bool, typer.Option("--next-week", help="Search next week (Monday–Sunday).")] = False,
    alternatives: Annotated[bool, typer.Option("--alternatives/--no-alternatives", help="Suggest alternatives when nothing is free.")] = True,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable debug logging.")] = False,
):
    """
    Find slots in which all participants are free.

    Examples:

        hangoutfinder find alice bob --duration 60

        hangoutfinder find alice bob --next-week

        hangoutfinder find alice bob --mock --start 2024-11-25 --end 2024-11-29
    """
    _configure_logging(verbose)

    try:
        config = _load_config(config_file)
        tz = config.timezone

        range_start, range_end = _determine_time_range(
            tz=tz,
            this_week=this_week,
            next_week=next_week,
            start_option=start,
            end_option=end,
            search_days=config.defaults.search_days,
        )

        try:
            participant_ids = config.resolve_participants(participants)
        except ValueError as e:
            console.print(f"[bold red]Error:[/bold red] {e}")
            raise typer.Exit(1)

        duration_minutes = duration if duration is not None else config.defaults.duration_minutes
        query = AvailabilityQuery.create(
            participant_ids=participant_ids,
            range_start=range_start,
            range_end=range_end,
            duration_minutes=duration_minutes,
        )
        query.validate()

        connections = _query_connections(config, participant_ids, mock)

        if mock:
            console.print("[yellow]Mock mode: using bundled calendar data[/yellow]\n")

        console.print("[bold cyan]Search[/bold cyan]")
        console.print(f"   Participants: {', '.join(participant_ids)}")
        console.print(f"   Range: {range_start.format('DD.MM.YYYY HH:mm')} - {range_end.format('DD.MM.YYYY HH:mm')}")
        console.print(f"   Duration: {duration_minutes} minutes")
        console.print(
            f"   Business hours: {config.business_hours.start_hour}:00 - {config.business_hours.end_hour}:00"
        )
        console.print()

        provider_names = {name for names in connections.values() for name in names}
        logger.debug("Connections for this query: %s", connections)
        aggregator = BusyTimeAggregator(
            adapters=_build_adapters(config, sorted(provider_names), mock),
            max_concurrency=config.aggregation.max_concurrency,
            timeout_seconds=config.aggregation.timeout_seconds,
        )
        resolver = AvailabilityResolver(
            policy=config.business_hours_policy(),
            missing_participant_policy=config.missing_participant_policy,
        )
        service = AvailabilityFinderService(aggregator=aggregator, resolver=resolver)

        report = asyncio.run(service.find_slots(query=query, connections=connections))

        if report.is_degraded:
            console.print("[yellow]Some calendars could not be read; results may be too optimistic:[/yellow]")
            for failure in report.failures:
                console.print(f"   [yellow]{failure.participant_id} ({failure.provider}): {escape(failure.reason)}[/yellow]")
            console.print()

        if report.slots:
            console.print(f"[bold green]{len(report.slots)} free slot(s) found:[/bold green]\n")
            _print_slots(report.slots)
        else:
            console.print("[yellow]No free slots found.[/yellow]")

            if alternatives:
                suggestions = asyncio.run(
                    service.suggest_alternatives(query=query, connections=connections)
                )
                for suggestion in suggestions:
                    console.print(f"\n[bold]Alternative: {suggestion.reason}[/bold]")
                    for slot in suggestion.slots:
                        console.print(f"  {slot.format_display()}")
                if not suggestions:
                    console.print("Try a longer range or a shorter duration.")

        console.print()

    except typer.BadParameter as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    except HangoutFinderError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


@app.command()
def list_participants(
    config_file: Optional[Path] = typer.Option(
        None,
        "--config", "-c",
        help="Path to config file"
    )
):
    """
    List all configured participants.
    """
    try:
        config = _load_config(config_file)
    except HangoutFinderError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    if not config.participants:
        console.print("[yellow]No participants defined in the config file.[/yellow]")
        return

    table = Table(
        title="Configured participants",
        show_header=True,
        header_style="bold cyan"
    )
    table.add_column("Name (alias)", style="bold yellow")
    table.add_column("Email", style="dim")
    table.add_column("Providers")

    for participant in config.participants:
        table.add_row(
            participant.name,
            participant.email,
            ", ".join(participant.providers) or "-"
        )

    console.print()
    console.print(table)
    console.print()


@app.command()
def test_auth(
    config_file: Optional[Path] = typer.Option(
        None,
        "--config", "-c",
        help="Path to config file"
    ),
    force: bool = typer.Option(
        False,
        "--force",
        help="Force re-authentication"
    )
):
    """
    Test Microsoft Graph authentication.
    """
    try:
        config = _load_config(config_file)
        if not config.outlook:
            console.print("[bold red]Error:[/bold red] No outlook section in the config file.")
            raise typer.Exit(1)

        authenticator = GraphAuthenticator(
            client_id=config.outlook.client_id,
            tenant_id=config.outlook.tenant_id,
            authority_url=config.outlook.get_authority_url(),
            console=console,
        )

        access_token = authenticator.get_access_token(force_refresh=force)
        user_info = GraphClient(access_token=access_token).test_connection()

        console.print(Panel.fit(
            f"[bold green]Authentication successful![/bold green]\n\n"
            f"[bold]User:[/bold] {user_info.get('displayName', 'N/A')}\n"
            f"[bold]Email:[/bold] {user_info.get('mail') or user_info.get('userPrincipalName', 'N/A')}",
            title="Connection test"
        ))
        console.print()

    except HangoutFinderError as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}\n")
        raise typer.Exit(1)


@app.command()
def clear_cache(
    config_file: Optional[Path] = typer.Option(
        None,
        "--config", "-c",
        help="Path to config file"
    )
):
    """
    Clear the Microsoft authentication token cache.
    """
    try:
        config = _load_config(config_file)
    except HangoutFinderError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    if not config.outlook:
        console.print("[yellow]No outlook section in the config file, nothing to clear.[/yellow]")
        return

    authenticator = GraphAuthenticator(
        client_id=config.outlook.client_id,
        tenant_id=config.outlook.tenant_id
    )
    authenticator.clear_cache()
    console.print("\n[green]Token cache cleared.[/green]")
    console.print("You will be asked to sign in again next time.\n")


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]hangoutfinder[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()

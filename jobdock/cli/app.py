"""
Main CLI application using Typer.
"""

import logging
from pathlib import Path
from typing import Annotated, Any, Dict, List, Optional, Tuple

import pendulum
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from ..adapters.memory_store import InMemoryStore
from ..config import AppConfig, get_default_config_path
from ..domain.exceptions import ConflictError, SchedulingError
from ..domain.models import BookingResult, Job
from ..services.booking import BookingService

app = typer.Typer(
    name="jobdock",
    help="Schedule jobs and book service slots from the command line",
    add_completion=False
)

console = Console()

ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to config file. Defaults to ./jobdock.yaml"),
]
TenantOption = Annotated[
    Optional[str],
    typer.Option("--tenant", "-t", help="Tenant id. Defaults to default_tenant_id from the config."),
]
FrequencyOption = Annotated[
    Optional[str],
    typer.Option("--frequency", "-f", help="Repeat daily, weekly, monthly or custom."),
]
IntervalOption = Annotated[int, typer.Option("--interval", help="Repeat every N periods.")]
CountOption = Annotated[Optional[int], typer.Option("--count", help="Number of occurrences.")]
UntilOption = Annotated[Optional[str], typer.Option("--until", help="Last date (YYYY-MM-DD).")]
DaysOption = Annotated[
    Optional[List[int]],
    typer.Option("--day", help="Weekday for weekly/custom patterns (0=Sunday). Repeatable."),
]


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
        force=True,
    )


def _load_context(config_file: Optional[Path]) -> Tuple[AppConfig, Path, InMemoryStore, BookingService]:
    """Load config, data file and wire up the booking service."""
    config_path = config_file or get_default_config_path()
    config = AppConfig.load_from_yaml(config_path)
    _configure_logging(config.log_level)

    store = config.build_store(config_path)
    service = BookingService(store=store, notifier=config.notifications.build_notifier())
    return config, config_path, store, service


def _recurrence_block(
    frequency: Optional[str],
    interval: int,
    count: Optional[int],
    until: Optional[str],
    days: Optional[List[int]],
) -> Optional[Dict[str, Any]]:
    if not frequency:
        return None
    return {
        "frequency": frequency,
        "interval": interval,
        "count": count,
        "untilDate": until,
        "daysOfWeek": days or [],
    }


def _fail(error: Exception) -> None:
    console.print(f"[bold red]Error:[/bold red] {escape(str(error))}")
    if isinstance(error, ConflictError) and len(error.conflicts) > 1:
        console.print(f"[dim]{len(error.conflicts)} occurrence(s) conflict in total.[/dim]")
    raise typer.Exit(1)


def _print_result(result: BookingResult) -> None:
    job = result.primary_job
    lines = [
        f"[bold]Job:[/bold] {job.title}",
        f"[bold]Status:[/bold] {job.status.value}",
        f"[bold]First occurrence:[/bold] {job.time_range or 'to be scheduled'}",
        f"[bold]Occurrences:[/bold] {result.occurrence_count}",
    ]
    if result.recurrence:
        lines.append(f"[bold]Recurrence:[/bold] {result.recurrence.id}")
    if result.contact:
        lines.append(f"[bold]Contact:[/bold] {result.contact.full_name} ({result.contact.email or 'no email'})")
    console.print(Panel.fit("\n".join(lines), title="✓ Saved"))


def _jobs_table(jobs: List[Job], title: str) -> Table:
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("ID", style="dim")
    table.add_column("Title", style="bold yellow")
    table.add_column("When")
    table.add_column("Status")
    table.add_column("Series", style="dim")

    for job in jobs:
        table.add_row(
            job.id,
            job.title,
            str(job.time_range) if job.time_range else "to be scheduled",
            job.status.value,
            job.recurrence_id or "",
        )
    return table


@app.command()
def availability(
    service_id: Annotated[str, typer.Argument(help="Service to inspect")],
    config_file: ConfigOption = None,
    start: Annotated[Optional[str], typer.Option("--start", help="Start date (YYYY-MM-DD)")] = None,
    end: Annotated[Optional[str], typer.Option("--end", help="End date (YYYY-MM-DD)")] = None,
):
    """
    Show open slots of a service.

    Examples:

        jobdock availability svc-cleaning
        jobdock availability svc-cleaning --start 2026-11-02 --end 2026-11-06
    """
    try:
        _, _, _, booking = _load_context(config_file)
        range_end = pendulum.parse(end, tz="UTC").end_of("day") if end else None
        days = booking.get_availability(service_id, start=start, end=range_end)
    except (SchedulingError, ValueError) as e:
        _fail(e)

    if not days:
        console.print("[yellow]⚠ No open slots found in this window.[/yellow]")
        return

    table = Table(title=f"Open slots for {service_id}", show_header=True, header_style="bold cyan")
    table.add_column("Date", style="bold yellow")
    table.add_column("Slots (UTC)")

    for day in days:
        table.add_row(
            day.date,
            ", ".join(slot.start.in_timezone("UTC").format("HH:mm") for slot in day.slots),
        )

    console.print()
    console.print(table)
    console.print()


@app.command()
def book(
    service_id: Annotated[str, typer.Argument(help="Service to book")],
    start: Annotated[str, typer.Option("--start", help="Slot start (ISO-8601, UTC if no offset)")],
    name: Annotated[Optional[str], typer.Option("--name", help="Client name")] = None,
    email: Annotated[Optional[str], typer.Option("--email", help="Client email")] = None,
    phone: Annotated[Optional[str], typer.Option("--phone", help="Client phone")] = None,
    config_file: ConfigOption = None,
    frequency: FrequencyOption = None,
    interval: IntervalOption = 1,
    count: CountOption = None,
    until: UntilOption = None,
    days: DaysOption = None,
):
    """
    Book a slot the way a client would on the public booking page.
    """
    try:
        config, config_path, store, booking = _load_context(config_file)
        payload = {
            "startTime": start,
            "contact": {"name": name, "email": email, "phone": phone},
            "recurrence": _recurrence_block(frequency, interval, count, until, days),
        }
        result = booking.book_slot(
            service_id,
            payload,
            notify_email=config.notifications.contractor_email,
        )
        store.save_to_json(config.resolve_data_file(config_path))
    except (SchedulingError, ValueError) as e:
        _fail(e)

    _print_result(result)


@app.command()
def schedule(
    title: Annotated[str, typer.Argument(help="Job title")],
    start: Annotated[Optional[str], typer.Option("--start", help="Start (ISO-8601)")] = None,
    end: Annotated[Optional[str], typer.Option("--end", help="End (ISO-8601)")] = None,
    tenant: TenantOption = None,
    contact_id: Annotated[Optional[str], typer.Option("--contact", help="Existing contact id")] = None,
    config_file: ConfigOption = None,
    frequency: FrequencyOption = None,
    interval: IntervalOption = 1,
    count: CountOption = None,
    until: UntilOption = None,
    days: DaysOption = None,
):
    """
    Schedule a job directly for a tenant. Without --start/--end the job is
    created as to be scheduled.
    """
    try:
        config, config_path, store, booking = _load_context(config_file)
        payload = {
            "tenantId": config.resolve_tenant(tenant),
            "title": title,
            "contactId": contact_id,
            "startTime": start,
            "endTime": end,
            "toBeScheduled": start is None and end is None,
            "recurrence": _recurrence_block(frequency, interval, count, until, days),
        }
        result = booking.create_job(payload)
        store.save_to_json(config.resolve_data_file(config_path))
    except (SchedulingError, ValueError) as e:
        _fail(e)

    _print_result(result)


@app.command()
def confirm(
    job_id: Annotated[str, typer.Argument(help="Pending job to confirm")],
    tenant: TenantOption = None,
    series: Annotated[bool, typer.Option("--series", help="Confirm every pending occurrence of the series.")] = False,
    config_file: ConfigOption = None,
):
    """
    Confirm a pending booking.
    """
    try:
        config, config_path, store, booking = _load_context(config_file)
        job = booking.confirm_job(config.resolve_tenant(tenant), job_id, whole_series=series)
        store.save_to_json(config.resolve_data_file(config_path))
    except (SchedulingError, ValueError) as e:
        _fail(e)

    console.print(f"\n[green]✓ {job.title} confirmed ({job.time_range}).[/green]\n")


@app.command()
def decline(
    job_id: Annotated[str, typer.Argument(help="Pending job to decline")],
    reason: Annotated[Optional[str], typer.Option("--reason", help="Reason stored in the job notes")] = None,
    tenant: TenantOption = None,
    series: Annotated[bool, typer.Option("--series", help="Decline every pending occurrence of the series.")] = False,
    config_file: ConfigOption = None,
):
    """
    Decline a pending booking and release its slot.
    """
    try:
        config, config_path, store, booking = _load_context(config_file)
        job = booking.decline_job(
            config.resolve_tenant(tenant), job_id, reason=reason, whole_series=series
        )
        store.save_to_json(config.resolve_data_file(config_path))
    except (SchedulingError, ValueError) as e:
        _fail(e)

    console.print(f"\n[green]✓ {job.title} declined.[/green]\n")


@app.command()
def jobs(
    tenant: TenantOption = None,
    archived: Annotated[bool, typer.Option("--archived", help="Include archived jobs.")] = False,
    config_file: ConfigOption = None,
):
    """
    List the jobs of a tenant.
    """
    try:
        config, _, _, booking = _load_context(config_file)
        tenant_id = config.resolve_tenant(tenant)
        tenant_jobs = booking.list_jobs(tenant_id, include_archived=archived)
    except (SchedulingError, ValueError) as e:
        _fail(e)

    if not tenant_jobs:
        console.print("[yellow]No jobs found.[/yellow]")
        return

    console.print()
    console.print(_jobs_table(tenant_jobs, title=f"Jobs of {tenant_id}"))
    console.print()


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]jobdock[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()

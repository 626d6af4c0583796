"""
Meal booking CLI.

Operator commands for auto-registration and the serving queue.
"""

from datetime import datetime

import typer
from rich.console import Console
from rich.table import Table

from meal_booking.services.domain.windows import meal_clock
from meal_booking.services.meal_service import MealService
from meal_booking.services.scheduling.triggers import load_trigger_specs
from shared.config.logging import setup_logging
from shared.infrastructure.db import get_db_context

app = typer.Typer(
    name="meal-booking",
    help="Meal booking operator CLI",
    add_completion=False,
)
console = Console()


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show service logs"),
):
    """Meal booking operator CLI."""
    if verbose:
        setup_logging()


def _service(db) -> MealService:
    return MealService(db, clock=meal_clock)


def _fail(message: str) -> None:
    console.print(f"[red]✗ {message}[/red]")
    raise typer.Exit(1)


# =============================================================================
# Auto-registration Commands
# =============================================================================

@app.command()
def trigger(
    tenant_id: int = typer.Argument(..., help="Tenant to auto-register"),
    meal_type: str = typer.Argument(..., help="lunch or dinner"),
    meal_date: datetime = typer.Option(None, "--date", formats=["%Y-%m-%d"], help="Meal date (default: today)"),
):
    """Run the auto-registration batch for one tenant now."""
    with get_db_context() as db:
        result = _service(db).trigger_auto_registration(
            tenant_id, meal_type, meal_date.date() if meal_date else None
        )

    if not result.ok:
        _fail(result.message)

    batch = result.payload
    table = Table(title=f"Auto-registration: tenant {tenant_id}, {batch.meal_type} {batch.meal_date}")
    table.add_column("Outcome", style="cyan")
    table.add_column("Count", justify="right")
    table.add_row("Eligible", str(batch.total_students))
    table.add_row("Registered", str(batch.registered_count))
    table.add_row("Skipped (already registered)", str(batch.skipped_count))
    table.add_row("Errored", str(batch.errored_count))
    console.print(table)

    for error in batch.errors:
        console.print(f"[yellow]  {error}[/yellow]")
    console.print(f"[green]✓ {result.message}[/green]")


@app.command("trigger-all")
def trigger_all(
    meal_type: str = typer.Argument(..., help="lunch or dinner"),
):
    """Run today's auto-registration batch for every active tenant."""
    with get_db_context() as db:
        result = _service(db).trigger_all_tenants(meal_type)

    if not result.ok:
        _fail(result.message)

    summary = result.payload
    table = Table(title=f"Auto-registration: all tenants, {summary.meal_type}")
    table.add_column("Tenant", style="cyan", justify="right")
    table.add_column("Result")
    table.add_column("Registered", justify="right")
    table.add_column("Skipped", justify="right")
    table.add_column("Errored", justify="right")

    for entry in summary.results:
        if entry.success and entry.data is not None:
            table.add_row(
                str(entry.tenant_id),
                "[green]ok[/green]",
                str(entry.data.registered_count),
                str(entry.data.skipped_count),
                str(entry.data.errored_count),
            )
        else:
            table.add_row(str(entry.tenant_id), f"[red]{entry.message}[/red]", "-", "-", "-")

    console.print(table)
    console.print(
        f"[green]✓ {summary.success_count} succeeded[/green], "
        f"[red]{summary.fail_count} failed[/red]"
    )


@app.command()
def schedule():
    """Show the auto-registration schedule computed from current settings."""
    now = meal_clock()
    with get_db_context() as db:
        specs = load_trigger_specs(db)

    if not specs:
        console.print("[yellow]No auto-registration schedules configured[/yellow]")
        return

    table = Table(title="Auto-registration schedule")
    table.add_column("Key", style="cyan")
    table.add_column("Tenant", justify="right")
    table.add_column("Weekday")
    table.add_column("Meal")
    table.add_column("Fires at")
    table.add_column("Next run")

    for spec in specs:
        table.add_row(
            spec.key,
            str(spec.tenant_id),
            spec.weekday,
            spec.meal_type,
            spec.fire_at.strftime("%H:%M"),
            spec.next_fire_after(now).strftime("%Y-%m-%d %H:%M"),
        )

    console.print(table)


# =============================================================================
# Serving Commands
# =============================================================================

@app.command()
def queue(
    tenant_id: int = typer.Argument(..., help="Tenant"),
    meal_type: str = typer.Argument(..., help="lunch or dinner"),
    meal_date: datetime = typer.Option(None, "--date", formats=["%Y-%m-%d"], help="Meal date (default: today)"),
):
    """Show the serving queue (registered, not yet consumed) by token."""
    with get_db_context() as db:
        result = _service(db).get_queue(tenant_id, meal_type, meal_date.date() if meal_date else None)

    if not result.ok:
        _fail(result.message)

    meal_queue = result.payload
    table = Table(title=f"{meal_queue.meal_type.capitalize()} queue {meal_queue.meal_date} ({meal_queue.total})")
    table.add_column("Token", justify="right", style="cyan")
    table.add_column("Student")
    table.add_column("Reg No")
    table.add_column("Preference")
    table.add_column("Special")

    for registration in meal_queue.registrations:
        table.add_row(
            str(registration.token_number),
            registration.student_name,
            registration.student_reg_no or "-",
            registration.preference,
            registration.special_remarks or ("yes" if registration.is_special else ""),
        )

    console.print(table)


if __name__ == "__main__":
    app()

"""
Formulation Costing CLI.

Command-line interface for common operator tasks.
"""

import sys
import time

import httpx
import typer
from rich.console import Console
from rich.table import Table

app = typer.Typer(
    name="costing",
    help="Formulation Costing operator CLI",
    add_completion=False,
)
console = Console()


# =============================================================================
# Database Commands
# =============================================================================


@app.command()
def init_db():
    """Create database tables."""
    from sqlalchemy.exc import SQLAlchemyError

    from costing_api.models import Base
    from shared.infrastructure.db import engine

    console.print("[blue]Creating tables[/blue]")
    try:
        Base.metadata.create_all(bind=engine)
    except SQLAlchemyError as e:
        console.print(f"[red]✗ Table creation failed: {e}[/red]")
        raise typer.Exit(1)
    console.print("[green]✓ Tables created/verified[/green]")


@app.command()
def seed(
    force: bool = typer.Option(False, "--force", "-f", help="Allow seeding in production"),
):
    """Seed a demo tenant with users, materials and a formulation."""
    from costing_api.models import Base
    from costing_api.seed import DEMO_PASSWORD, DEMO_USERS, seed as seed_demo
    from shared.config.settings import settings
    from shared.infrastructure.db import SessionLocal, engine

    if settings.environment == "production" and not force:
        console.print("[red]Cannot seed production without --force[/red]")
        raise typer.Exit(1)

    Base.metadata.create_all(bind=engine)
    with SessionLocal() as db:
        tenant = seed_demo(db)

    table = Table(title=f"Demo tenant '{tenant.slug}' (id {tenant.id})")
    table.add_column("Email", style="cyan")
    table.add_column("Role", style="green")
    for email, role in DEMO_USERS:
        table.add_row(email, role)
    console.print(table)
    console.print(f"[yellow]Password for all demo users: {DEMO_PASSWORD}[/yellow]")


# =============================================================================
# Costing Commands
# =============================================================================


@app.command()
def recalculate(
    tenant_id: int = typer.Option(..., "--tenant-id", help="Tenant to recompute"),
):
    """Recompute every formulation of a tenant from current material prices."""
    from costing_api.services.audit import Actor
    from costing_api.services.propagation import PropagationEngine
    from shared.config.logging import setup_logging
    from shared.infrastructure.db import SessionLocal

    setup_logging()
    with SessionLocal() as db:
        report = PropagationEngine(db).recalculate_all(tenant_id, actor=Actor.system())

    table = Table(title=f"Recalculation for tenant {tenant_id}")
    table.add_column("Formulation", style="cyan")
    table.add_column("Total before", justify="right")
    table.add_column("Total after", justify="right")
    table.add_column("Unit after", justify="right")
    table.add_column("Changed", style="yellow")
    for result in report.results:
        table.add_row(
            str(result.formulation_id),
            str(result.total_cost_before),
            str(result.total_cost_after),
            str(result.unit_cost_after),
            "yes" if result.changed else "no",
        )
    console.print(table)
    console.print(
        f"Scanned {report.scanned}, recalculated {len(report.recalculated)}, "
        f"failed {len(report.failed)}"
    )
    if not report.ok:
        console.print(f"[red]✗ Failed formulations: {report.failed}[/red]")
        raise typer.Exit(1)
    console.print("[green]✓ Recalculation complete[/green]")


@app.command()
def plan_usage(
    tenant_id: int = typer.Option(..., "--tenant-id", help="Tenant to inspect"),
):
    """Show usage against the tenant's subscription plan limits."""
    from costing_api.services.plan_policy import PlanGate
    from shared.infrastructure.db import SessionLocal

    with SessionLocal() as db:
        summary = PlanGate.for_tenant(db, tenant_id).summary()

    table = Table(title=f"Plan usage for tenant {tenant_id} ({summary['plan']})")
    table.add_column("Resource", style="cyan")
    table.add_column("Used", justify="right")
    table.add_column("Limit", justify="right")
    table.add_column("Read-only ids", style="red")
    for item in summary["resources"]:
        table.add_row(
            item["resource"],
            str(item["used"]),
            str(item["limit"]),
            ", ".join(str(i) for i in item["read_only_ids"]) or "-",
        )
    console.print(table)


# =============================================================================
# Health Commands
# =============================================================================


@app.command()
def health(
    url: str = typer.Option("http://localhost:8000/api/health", help="Health endpoint URL"),
):
    """Check API health."""
    table = Table(title="Service Health")
    table.add_column("Service", style="cyan")
    table.add_column("Status", style="green")
    table.add_column("Response Time", style="yellow")

    healthy = True
    start = time.time()
    try:
        response = httpx.get(url, timeout=5.0)
        elapsed = (time.time() - start) * 1000
        if response.status_code == 200:
            table.add_row("Costing API", "✓ Healthy", f"{elapsed:.0f}ms")
        else:
            healthy = False
            table.add_row("Costing API", f"✗ Status {response.status_code}", f"{elapsed:.0f}ms")
    except httpx.HTTPError as e:
        healthy = False
        table.add_row("Costing API", f"✗ {type(e).__name__}", "-")

    console.print(table)
    if not healthy:
        raise typer.Exit(1)


@app.command()
def version():
    """Show version information."""
    from costing_api import __version__

    table = Table(title="Formulation Costing Version")
    table.add_column("Component", style="cyan")
    table.add_column("Version", style="green")

    table.add_row("API", __version__)
    table.add_row("Python", sys.version.split()[0])

    console.print(table)


if __name__ == "__main__":
    app()

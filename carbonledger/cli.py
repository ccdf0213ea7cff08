# -*- coding: utf-8 -*-
"""
CarbonLedger CLI
================

Operational commands: database setup, factor seeding, user creation,
offline ingestion preview and the API server.
"""

from pathlib import Path

import typer
import uvicorn
from rich.console import Console
from rich.table import Table

from carbonledger import __version__
from carbonledger.auth.security import hash_password
from carbonledger.calculation.factors import seed_default_factors
from carbonledger.config import get_config
from carbonledger.db.base import get_session, init_db
from carbonledger.db.models import ROLES, Customer, User
from carbonledger.ingestion.service import get_ingest_service
from carbonledger.logging_config import configure_logging

app = typer.Typer(
    name="carbonledger",
    help="CarbonLedger: carbon accounting and GHG Protocol reporting",
    no_args_is_help=True,
    add_completion=False,
)
console = Console()


@app.callback()
def _root():
    """
    CarbonLedger - carbon accounting platform
    """
    config = get_config()
    configure_logging(config.log_level, config.log_file)


@app.command()
def version():
    """Show CarbonLedger version"""
    console.print(f"[bold green]CarbonLedger v{__version__}[/bold green]")


@app.command("init-db")
def init_db_command(
    drop: bool = typer.Option(False, "--drop", help="Drop all tables before creating them"),
):
    """Create the database schema"""
    if drop:
        console.print("[yellow][WARN][/yellow] Dropping all tables")
    init_db(drop_all=drop)
    console.print(f"[green][OK][/green] Database initialised: {get_config().database_url}")


@app.command("seed-factors")
def seed_factors():
    """Load the default emission factor library"""
    with get_session() as session:
        inserted = seed_default_factors(session)
    console.print(f"[green][OK][/green] Seeded {inserted} emission factors")


@app.command("create-user")
def create_user(
    email: str = typer.Argument(..., help="Login email"),
    password: str = typer.Option(..., "--password", prompt=True, hide_input=True),
    role: str = typer.Option("VIEWER", "--role", help="ADMIN, EDITOR or VIEWER"),
    customer_code: str = typer.Option(None, "--customer-code", help="Customer code (created if missing)"),
):
    """Create a user, optionally attached to a customer"""
    role = role.upper()
    if role not in ROLES:
        console.print(f"[red][FAIL][/red] Unknown role {role}; expected one of {', '.join(ROLES)}")
        raise typer.Exit(1)
    if len(password) < 6:
        console.print("[red][FAIL][/red] Password must be at least 6 characters")
        raise typer.Exit(1)

    email = email.strip().lower()
    with get_session() as session:
        if session.query(User).filter(User.email == email).first() is not None:
            console.print(f"[red][FAIL][/red] User {email} already exists")
            raise typer.Exit(1)

        customer_id = None
        if customer_code:
            code = customer_code.strip().upper()
            customer = session.query(Customer).filter(Customer.code == code).first()
            if customer is None:
                customer = Customer(name=code, code=code)
                session.add(customer)
                session.flush()
                console.print(f"[blue][INFO][/blue] Created customer {code}")
            customer_id = customer.id

        user = User(
            email=email,
            password_hash=hash_password(password),
            role=role,
            customer_id=customer_id,
        )
        session.add(user)
        session.flush()
        user_id = user.id

    console.print(f"[green][OK][/green] Created {role} user {email} ({user_id})")


@app.command("ingest-preview")
def ingest_preview(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True),
):
    """Run the ingestion pipeline on a file without saving anything"""
    service = get_ingest_service()
    result = service.ingest_file(file.read_bytes(), file.name)

    if result.status == "error":
        console.print(f"[red][FAIL][/red] {result.message}")
        if result.missing_targets:
            console.print(f"Missing columns: {', '.join(result.missing_targets)}")
        if result.detected_columns:
            console.print(f"Detected columns: {', '.join(result.detected_columns)}")
        raise typer.Exit(1)

    table = Table(title="Header mappings", show_header=True, header_style="bold magenta")
    table.add_column("Target field", style="cyan")
    table.add_column("Source column", style="yellow")
    table.add_column("Confidence", justify="right", style="green")
    for mapping in result.header_mappings or []:
        table.add_row(mapping.target_field, mapping.source_column, f"{mapping.confidence:.2f}")
    console.print(table)

    if result.sheet_info is not None:
        info = result.sheet_info
        console.print(f"[blue][INFO][/blue] Sheet: {info.selected_sheet} ({info.total_sheets} in workbook)")
    console.print(f"[green][OK][/green] Rows imported: {result.rows_imported}")
    status = "[yellow][WARN][/yellow]" if result.rows_failed else "[green][OK][/green]"
    console.print(f"{status} Rows failed: {result.rows_failed}")
    for issue in result.issues[:10]:
        messages = "; ".join(str(e.get("message", e)) for e in issue.errors)
        console.print(f"  row {issue.row_index}: {messages}")


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host"),
    port: int = typer.Option(8000, "--port"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
):
    """Run the HTTP API with uvicorn"""
    console.print(f"[bold]CarbonLedger API[/bold] on http://{host}:{port}")
    uvicorn.run(
        "carbonledger.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_level=get_config().log_level.lower(),
    )


def main():
    app()


if __name__ == "__main__":
    main()

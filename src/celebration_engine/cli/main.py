"""
Celebration Engine CLI

Command-line interface for the donation compliance engine.
Provides commands for donors, celebrations, limits and periodic work.

Usage:
    celebrate init --db celebrations.db
    celebrate donor register --first-name Ada --last-name Lovelace
    celebrate limits show --donor <id> --recipient pol-1
    celebrate celebration create --donor <id> --recipient pol-1 --bill hr-42 --amount 25
    celebrate celebration resolve --id <celebration_id> --reason "Bill passed"
    celebrate tick
    celebrate health
"""

import json
from decimal import Decimal
from pathlib import Path
from typing import NoReturn, Optional

import typer
from typing_extensions import Annotated

from celebration_engine.engine import CelebrationEngine
from celebration_engine.kernel.compliance_policy import CompliancePolicy
from celebration_engine.kernel.errors import (
    CelebrationEngineError,
    InvalidTransition,
    ValidationRejected,
)
from celebration_engine.kernel.logging import configure_logging

# Configure logging to stderr (avoids polluting stdout for JSON output)
configure_logging(json_output=False, log_level="INFO")

app = typer.Typer(
    name="celebrate",
    help="Celebration Engine - donation compliance and celebration lifecycle",
    add_completion=False,
)

# Sub-apps
donor_app = typer.Typer(help="Donor registration commands")
celebration_app = typer.Typer(help="Celebration lifecycle commands")
limits_app = typer.Typer(help="Contribution limit commands")
pac_app = typer.Typer(help="PAC tip limit commands")
session_app = typer.Typer(help="Congressional session commands")

app.add_typer(donor_app, name="donor")
app.add_typer(celebration_app, name="celebration")
app.add_typer(limits_app, name="limits")
app.add_typer(pac_app, name="pac")
app.add_typer(session_app, name="session")

# Global state
DEFAULT_DB = Path(".celebrations.db")


def get_engine(db_path: Optional[Path] = None) -> CelebrationEngine:
    """Get CelebrationEngine instance"""
    db = db_path or DEFAULT_DB
    if not db.exists():
        typer.echo(f"Error: Database not found: {db}", err=True)
        typer.echo(f"Run 'celebrate init --db {db}' to initialize", err=True)
        raise typer.Exit(1)
    return CelebrationEngine(str(db), policy=CompliancePolicy.from_env())


def fail(message: str) -> NoReturn:
    typer.echo(f"Error: {message}", err=True)
    raise typer.Exit(1)


# Initialization command


@app.command()
def init(
    db: Annotated[
        Path,
        typer.Option(help="Database path"),
    ] = DEFAULT_DB,
) -> None:
    """Initialize a new celebrations database"""
    if db.exists():
        typer.echo(f"Error: Database already exists: {db}", err=True)
        raise typer.Exit(1)

    # Create database by initializing the engine
    CelebrationEngine(str(db))
    typer.echo(f"✓ Initialized celebrations database: {db}")


# Donor commands


@donor_app.command("register")
def donor_register(
    first_name: Annotated[str, typer.Option("--first-name", help="First name")] = "",
    last_name: Annotated[str, typer.Option("--last-name", help="Last name")] = "",
    email: Annotated[str, typer.Option("--email", help="Email address")] = "",
    address: Annotated[str, typer.Option("--address", help="Street address")] = "",
    city: Annotated[str, typer.Option("--city", help="City")] = "",
    state: Annotated[str, typer.Option("--state", help="Two-letter state code")] = "",
    zip_code: Annotated[str, typer.Option("--zip", help="ZIP code")] = "",
    occupation: Annotated[str, typer.Option("--occupation", help="Occupation")] = "",
    employer: Annotated[str, typer.Option("--employer", help="Employer")] = "",
    tier: Annotated[
        str,
        typer.Option("--tier", help="Compliance tier (unverified, verified)"),
    ] = "unverified",
    user_id: Annotated[
        Optional[str],
        typer.Option("--id", help="Donor ID (generated if omitted)"),
    ] = None,
    no_updates: Annotated[
        bool,
        typer.Option("--no-updates", help="Opt out of celebration update emails"),
    ] = False,
    db: Annotated[
        Optional[Path],
        typer.Option("--db", help="Database path"),
    ] = None,
) -> None:
    """Register a donor"""
    engine = get_engine(db)

    try:
        donor = engine.register_donor(
            user_id=user_id,
            compliance_tier=tier,
            first_name=first_name,
            last_name=last_name,
            email=email,
            address=address,
            city=city,
            state=state,
            zip=zip_code,
            occupation=occupation,
            employer=employer,
            subscribed_to_updates=not no_updates,
        )
    except CelebrationEngineError as e:
        fail(str(e))

    typer.echo(f"✓ Registered donor: {donor['user_id']}")
    typer.echo(f"  Tier: {donor['compliance_tier']}")


@donor_app.command("promote")
def donor_promote(
    user_id: Annotated[str, typer.Option("--id", help="Donor ID")],
    tier: Annotated[str, typer.Option("--tier", help="New compliance tier")],
    db: Annotated[
        Optional[Path],
        typer.Option("--db", help="Database path"),
    ] = None,
) -> None:
    """Promote a donor to a higher compliance tier"""
    engine = get_engine(db)

    try:
        donor = engine.promote_tier(user_id, tier)
    except CelebrationEngineError as e:
        fail(str(e))

    typer.echo(f"✓ Donor {donor['user_id']} is now {donor['compliance_tier']}")


@donor_app.command("show")
def donor_show(
    user_id: Annotated[str, typer.Option("--id", help="Donor ID")],
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
    db: Annotated[
        Optional[Path],
        typer.Option("--db", help="Database path"),
    ] = None,
) -> None:
    """Show donor details"""
    engine = get_engine(db)

    donor = engine.donor_registry.get(user_id)
    if not donor:
        fail(f"Donor not found: {user_id}")

    if json_output:
        typer.echo(json.dumps(donor, indent=2, default=str))
        return

    typer.echo(f"\nDonor: {donor['user_id']}")
    typer.echo(f"  Name: {donor['first_name']} {donor['last_name']}".rstrip())
    typer.echo(f"  Tier: {donor['compliance_tier']}")
    typer.echo(f"  Celebrations: {len(donor['celebration_ids'])}")
    if donor["tip_limit_reached"]:
        typer.echo(f"  ⚠️  PAC tip limit reached at {donor['tip_limit_reached_at']}")


# Limit commands


@limits_app.command("show")
def limits_show(
    donor_id: Annotated[str, typer.Option("--donor", help="Donor ID")],
    recipient: Annotated[
        Optional[str],
        typer.Option("--recipient", help="Recipient ID (needed for per-election limits)"),
    ] = None,
    state: Annotated[
        Optional[str],
        typer.Option("--state", help="Recipient's state"),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
    db: Annotated[
        Optional[Path],
        typer.Option("--db", help="Database path"),
    ] = None,
) -> None:
    """Show a donor's effective and remaining limit"""
    engine = get_engine(db)

    try:
        summary = engine.get_limits(donor_id, recipient, state)
    except CelebrationEngineError as e:
        fail(str(e))

    if json_output:
        typer.echo(json.dumps(summary.to_client(), indent=2, default=str))
        return

    typer.echo(f"\nLimits for {donor_id} ({summary.compliance_tier}):")
    typer.echo(f"  Effective limit: ${summary.effective_limit}")
    typer.echo(f"  Remaining: ${summary.remaining_limit}")
    typer.echo(f"  Given so far: ${summary.current_total}")
    typer.echo(f"  Resets: {summary.next_reset_date}")


@pac_app.command("show")
def pac_show(
    donor_id: Annotated[str, typer.Option("--donor", help="Donor ID")],
    tip: Annotated[
        str,
        typer.Option("--tip", help="Attempted tip amount"),
    ] = "0",
    db: Annotated[
        Optional[Path],
        typer.Option("--db", help="Database path"),
    ] = None,
) -> None:
    """Show the donor's annual PAC tip status"""
    engine = get_engine(db)

    try:
        status = engine.check_pac(donor_id, Decimal(tip))
    except CelebrationEngineError as e:
        fail(str(e))

    typer.echo(f"\nPAC tips for {donor_id}:")
    typer.echo(f"  Limit: ${status.pac_limit}")
    typer.echo(f"  This year: ${status.current_pac_total}")
    typer.echo(f"  Remaining: ${status.remaining_pac_limit}")
    if status.would_exceed:
        typer.echo(f"  ⚠️  A ${tip} tip would exceed the limit")


# Celebration commands


@celebration_app.command("create")
def celebration_create(
    donor_id: Annotated[str, typer.Option("--donor", help="Donor ID")],
    recipient: Annotated[str, typer.Option("--recipient", help="Recipient ID")],
    bill: Annotated[str, typer.Option("--bill", help="Tracked bill ID")],
    amount: Annotated[str, typer.Option("--amount", help="Donation amount")],
    tip: Annotated[str, typer.Option("--tip", help="Optional PAC tip")] = "0",
    state: Annotated[
        Optional[str],
        typer.Option("--state", help="Recipient's state"),
    ] = None,
    idempotency_key: Annotated[
        Optional[str],
        typer.Option("--idempotency-key", help="Retry-safe request key"),
    ] = None,
    db: Annotated[
        Optional[Path],
        typer.Option("--db", help="Database path"),
    ] = None,
) -> None:
    """Validate a donation and create an active celebration"""
    engine = get_engine(db)

    try:
        celebration = engine.create_celebration(
            donor_id=donor_id,
            recipient_id=recipient,
            bill_id=bill,
            donation_amount=Decimal(amount),
            tip_amount=Decimal(tip),
            recipient_state=state,
            idempotency_key=idempotency_key,
        )
    except ValidationRejected as e:
        typer.echo(f"✗ Donation rejected: {e}", err=True)
        raise typer.Exit(2)
    except CelebrationEngineError as e:
        fail(str(e))

    typer.echo(f"✓ Created celebration: {celebration['celebration_id']}")
    typer.echo(f"  Donation: ${celebration['donation_amount']}")
    typer.echo(f"  Tip: ${celebration['tip_amount']}")
    typer.echo(f"  Status: {celebration['current_status']}")


def _transition(action: str, celebration_id: str, reason: str, db: Optional[Path]) -> None:
    engine = get_engine(db)
    try:
        celebration = getattr(engine, action)(celebration_id, reason=reason)
    except InvalidTransition as e:
        typer.echo(f"✗ {e}", err=True)
        raise typer.Exit(2)
    except CelebrationEngineError as e:
        fail(str(e))

    typer.echo(f"✓ Celebration {celebration_id} is now {celebration['current_status']}")


@celebration_app.command("pause")
def celebration_pause(
    celebration_id: Annotated[str, typer.Option("--id", help="Celebration ID")],
    reason: Annotated[str, typer.Option("--reason", help="Reason for pausing")],
    db: Annotated[
        Optional[Path],
        typer.Option("--db", help="Database path"),
    ] = None,
) -> None:
    """Pause an active celebration"""
    _transition("pause", celebration_id, reason, db)


@celebration_app.command("resume")
def celebration_resume(
    celebration_id: Annotated[str, typer.Option("--id", help="Celebration ID")],
    reason: Annotated[
        str,
        typer.Option("--reason", help="Reason for resuming"),
    ] = "Celebration activated",
    db: Annotated[
        Optional[Path],
        typer.Option("--db", help="Database path"),
    ] = None,
) -> None:
    """Resume a paused celebration"""
    _transition("activate", celebration_id, reason, db)


@celebration_app.command("resolve")
def celebration_resolve(
    celebration_id: Annotated[str, typer.Option("--id", help="Celebration ID")],
    reason: Annotated[str, typer.Option("--reason", help="What happened to the bill")],
    db: Annotated[
        Optional[Path],
        typer.Option("--db", help="Database path"),
    ] = None,
) -> None:
    """Resolve a celebration (the bill saw action)"""
    _transition("resolve", celebration_id, reason, db)


@celebration_app.command("history")
def celebration_history(
    celebration_id: Annotated[str, typer.Option("--id", help="Celebration ID")],
    limit: Annotated[int, typer.Option("--limit", help="Entries to show")] = 10,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
    db: Annotated[
        Optional[Path],
        typer.Option("--db", help="Database path"),
    ] = None,
) -> None:
    """Show a celebration's status ledger"""
    engine = get_engine(db)

    try:
        history = engine.get_status_history(celebration_id, limit)
    except CelebrationEngineError as e:
        fail(str(e))

    if json_output:
        typer.echo(json.dumps(history, indent=2, default=str))
        return

    typer.echo(f"\nCelebration {celebration_id}: {history['current_status']}")
    typer.echo(f"  Status changes: {history['total_changes']}")
    for entry in history["recent_changes"]:
        typer.echo(
            f"  {entry['change_datetime']}: {entry['previous_status']} -> "
            f"{entry['new_status']} ({entry['reason']})"
        )


@celebration_app.command("list")
def celebration_list(
    status: Annotated[
        Optional[str],
        typer.Option("--status", help="Filter by status (active, paused, resolved, defunct)"),
    ] = None,
    db: Annotated[
        Optional[Path],
        typer.Option("--db", help="Database path"),
    ] = None,
) -> None:
    """List celebrations"""
    engine = get_engine(db)
    rows = engine.list_celebrations(status)

    if not rows:
        typer.echo("No celebrations")
        return

    typer.echo(f"Celebrations ({len(rows)}):")
    for row in rows:
        typer.echo(
            f"  {row.celebration_id}: {row.current_status} ${row.donation_amount} "
            f"-> {row.recipient_id} ({row.bill_id})"
        )


# Session and periodic work


@session_app.command("status")
def session_status(
    db: Annotated[
        Optional[Path],
        typer.Option("--db", help="Database path"),
    ] = None,
) -> None:
    """Show the current congressional session"""
    engine = get_engine(db)
    info = engine.session_info()

    typer.echo(f"\nCongress {info.current_congress}, session {info.current_session}")
    typer.echo(f"  Ends: {info.session_end_date}")
    typer.echo(f"  Next election: {info.next_election_date}")
    if info.has_ended:
        typer.echo("  🛑 Session has ended")
    elif info.in_warning_period:
        typer.echo("  ⚠️  In warning period")


@app.command()
def tick(
    db: Annotated[
        Optional[Path],
        typer.Option("--db", help="Database path"),
    ] = None,
) -> None:
    """Run the periodic session sweep and annual resets"""
    engine = get_engine(db)

    result = engine.tick()

    typer.echo(f"✓ Tick completed: {result.tick_id}")
    typer.echo(f"  Session check: {result.defunct.action}")
    typer.echo(f"  Events triggered: {len(result.triggered_events)}")

    if result.has_sweeps():
        typer.echo(f"  🛑 {result.defunct_count} celebration(s) made defunct")
    if result.has_warnings():
        typer.echo("  ⚠️  Session-end warnings sent")

    # Show triggered events
    if result.triggered_events:
        typer.echo("\n  Triggered events:")
        for event in result.triggered_events:
            typer.echo(f"    - {event.event_type}")


@app.command()
def health(
    db: Annotated[
        Optional[Path],
        typer.Option("--db", help="Database path"),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show ledger and lifecycle overview"""
    engine = get_engine(db)

    overview = engine.health()

    if json_output:
        typer.echo(json.dumps(overview, indent=2, default=str))
        return

    typer.echo("\nCelebration Engine Status:")
    typer.echo(f"  Events: {overview['event_count']}")
    typer.echo(f"  Donors: {overview['donors']}")
    typer.echo("\nCelebrations by status:")
    for status, count in overview["celebrations_by_status"].items():
        typer.echo(f"  {status}: {count}")
    typer.echo(f"\nLast tick: {overview['last_tick_at'] or 'never'}")


if __name__ == "__main__":
    app()

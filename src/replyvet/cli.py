"""replyvet command-line interface."""

from __future__ import annotations

import json
from typing import Optional

import typer

app = typer.Typer(
    name="replyvet",
    help="Reply-intent classification and booking auto-reply with retry and escalation.",
    no_args_is_help=True,
)

# --- Database commands ---

db_app = typer.Typer(help="Database management commands.")
app.add_typer(db_app, name="db")


def _open(config):
    from replyvet.database import get_db, init_db

    conn = get_db(config)
    init_db(conn)
    return conn


def _load():
    from replyvet.config import configure_logging, load_config

    config = load_config()
    configure_logging(config)
    return config


@db_app.callback(invoke_without_command=True)
def db_callback(
    ctx: typer.Context,
    reset: bool = typer.Option(False, "--reset", help="Wipe and recreate the database."),
    stats: bool = typer.Option(False, "--stats", help="Show row counts for all tables."),
    migrate: bool = typer.Option(False, "--migrate", help="Run pending schema migrations."),
):
    """Database management."""
    from replyvet.database import db_stats, migrate_db, reset_db

    config = _load()

    if reset:
        conn = reset_db(config)
        typer.echo("Database reset and initialized.")
        conn.close()
        return

    if stats:
        conn = _open(config)
        typer.echo("Table row counts:")
        for table, count in db_stats(conn).items():
            status = f"{count}" if count >= 0 else "missing"
            typer.echo(f"  {table:25s} {status}")
        conn.close()
        return

    if migrate:
        conn = _open(config)
        actions = migrate_db(conn)
        for action in actions:
            typer.echo(f"  {action}")
        typer.echo(f"Schema migrations applied ({len(actions)} changes).")
        conn.close()
        return

    typer.echo(ctx.get_help())


# --- Classification preview ---

@app.command()
def classify(
    text: str = typer.Argument(..., help="Reply text to classify."),
    as_json: bool = typer.Option(False, "--json", help="Print the full result as JSON."),
):
    """Preview the two-pass classification for a reply. Writes nothing."""
    from replyvet.classifier import build_classifier
    from replyvet.detector import Detector, classify_intent
    from replyvet.errors import ClassificationFailure

    config = _load()
    detector = Detector(build_classifier(config.ai), thresholds=config.verdict)

    try:
        result = classify_intent(text, detector)
    except ClassificationFailure as e:
        typer.echo(f"Classification failed: {e}", err=True)
        raise typer.Exit(1)

    if as_json:
        typer.echo(json.dumps(result.to_dict(), indent=2))
        return

    verdict = result.final_verdict
    if result.fast_path:
        typer.echo("Fast path: negation language, AI passes skipped.")
    else:
        typer.echo(f"Pass 1: {result.pass1.intent_type.value} ({result.pass1.confidence:.0f}) - {result.pass1.reasoning}")
        typer.echo(f"Pass 2: {result.pass2.intent_type.value} ({result.pass2.confidence:.0f}) - {result.pass2.reasoning}")
    typer.echo(f"Patterns: {', '.join(result.pattern_validation.patterns) or 'none'}")
    typer.echo(f"Verdict: {verdict.decision.value} ({verdict.confidence:.0f}) - {verdict.reasoning}")
    typer.echo("Trace:")
    for entry in result.trace:
        typer.echo(f"  {entry.timestamp:%H:%M:%S} {entry.step:20s} {entry.result}")


# --- Settings ---

@app.command()
def settings(
    user_id: int = typer.Argument(..., help="User ID."),
    enable: Optional[bool] = typer.Option(None, "--enable/--disable", help="Turn auto-reply on or off."),
    link: Optional[str] = typer.Option(None, "--link", help="Booking link to send."),
    template: Optional[str] = typer.Option(
        None, "--template", help="Custom message; supports {{first_name}}, {{name}}, {{booking_link}}.",
    ),
):
    """Show or update a user's auto-reply settings."""
    from replyvet.stores import SettingsStore

    config = _load()
    conn = _open(config)
    store = SettingsStore(conn)

    if enable is not None or link is not None or template is not None:
        try:
            current = store.update(user_id, enabled=enable, booking_link=link, custom_template=template)
        except ValueError as e:
            typer.echo(str(e), err=True)
            conn.close()
            raise typer.Exit(1)
        typer.echo("Settings updated.")
    else:
        current = store.get(user_id)

    typer.echo(f"  enabled:      {current.enabled}")
    typer.echo(f"  booking_link: {current.booking_link or '(not set)'}")
    typer.echo(f"  template:     {'custom' if current.custom_template else 'default'}")
    conn.close()


# --- Processing ---

def _build_service(config, conn, dry_run: bool):
    from replyvet.service import AutoReplyService, build_sender

    return AutoReplyService(config, conn, sender=build_sender(config, dry_run=dry_run))


@app.command()
def process(
    user_id: int = typer.Argument(..., help="User ID."),
    dry_run: bool = typer.Option(False, "--dry-run", help="Decide and log, but do not deliver email."),
):
    """Process one user's eligible replies now."""
    config = _load()
    conn = _open(config)
    service = _build_service(config, conn, dry_run)

    summary = service.scheduler().process_user(user_id)
    typer.echo(
        f"Processed {summary.processed} replies: {summary.auto_replies_sent} sent, "
        f"{summary.flagged_for_review} flagged, {summary.retried} retried, "
        f"{summary.errors} errors, {summary.escalated} escalated."
    )
    conn.close()


@app.command()
def run(
    once: bool = typer.Option(False, "--once", help="Run a single tick and exit."),
    dry_run: bool = typer.Option(False, "--dry-run", help="Decide and log, but do not deliver email."),
):
    """Run the auto-reply scheduler loop."""
    config = _load()
    conn = _open(config)
    service = _build_service(config, conn, dry_run)
    scheduler = service.scheduler()

    if once:
        summary = scheduler.tick()
        typer.echo(
            f"Tick complete: {summary.users} users, {summary.processed} processed, "
            f"{summary.auto_replies_sent} sent, {summary.escalated} escalated."
        )
        conn.close()
        return

    typer.echo(
        f"Scheduler running every {config.scheduler.interval_seconds}s "
        f"(+ up to {config.scheduler.jitter_seconds}s jitter). Ctrl-C to stop."
    )
    try:
        scheduler.run_forever()
    except KeyboardInterrupt:
        typer.echo("Stopping.")
    finally:
        conn.close()


# --- Operator views ---

def _print_entries(entries) -> None:
    for e in entries:
        when = e.sent_at.strftime("%Y-%m-%d %H:%M") if e.sent_at else "?"
        typer.echo(
            f"  #{e.id} {when} reply={e.reply_id} {e.status.value:18s} "
            f"{e.intent_type or '-':16s} {e.confidence:5.1f}  {e.error_message or ''}"
        )


@app.command()
def logs(
    user_id: int = typer.Argument(..., help="User ID."),
    limit: int = typer.Option(50, "--limit", "-n", help="Max rows to show."),
):
    """Show recent auto-reply log rows for a user."""
    from replyvet.stores import LogStore

    config = _load()
    conn = _open(config)
    entries = LogStore(conn).get_logs(user_id, limit)
    if not entries:
        typer.echo("No auto-reply activity.")
    else:
        _print_entries(entries)
    conn.close()


@app.command()
def review(
    user_id: int = typer.Argument(..., help="User ID."),
):
    """List replies waiting for a human: flagged and retry-exhausted."""
    from replyvet.stores import LogStore

    config = _load()
    conn = _open(config)
    entries = LogStore(conn).get_pending_review(user_id)
    if not entries:
        typer.echo("Nothing pending review.")
    else:
        typer.echo(f"{len(entries)} replies pending review:")
        _print_entries(entries)
    conn.close()


@app.command()
def selftest():
    """Run the labelled reply suite through the detector and summarize."""
    from replyvet.classifier import build_classifier
    from replyvet.detector import Detector
    from replyvet.errors import ClassificationFailure
    from replyvet.service import SELFTEST_CASES

    config = _load()
    detector = Detector(build_classifier(config.ai), thresholds=config.verdict)

    matched = 0
    errors = 0
    for label, text, expected in SELFTEST_CASES:
        try:
            result = detector.detect(text)
        except ClassificationFailure as e:
            errors += 1
            typer.echo(f"  ERROR    {label}: {e}")
            continue
        decision = result.final_verdict.decision.value
        ok = decision == expected
        matched += ok
        mark = "ok" if ok else "MISMATCH"
        typer.echo(f"  {mark:8s} {label}: {decision} (expected {expected})")

    typer.echo(f"{matched}/{len(SELFTEST_CASES)} matched, {errors} errors.")
    if errors or matched != len(SELFTEST_CASES):
        raise typer.Exit(1)

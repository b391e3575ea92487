"""Errata CLI: analysis, flag actions, timeline views and the HTTP server."""

import asyncio
import dataclasses
import json
import logging
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Annotated, Any, Literal

import typer

from errata.application.config import AppConfig, resolve_config
from errata.domain.errors import ErrataError, MissingIdentifierError

# ---------------------------------------------------------------------------
# Root app
# ---------------------------------------------------------------------------

app = typer.Typer(
    help="errata: track study mistakes and find the cards that keep coming back.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

config_app = typer.Typer(help="Manage errata configuration.")
app.add_typer(config_app, name="config")

session_app = typer.Typer(help="Review sessions over problematic cards.")
app.add_typer(session_app, name="session")

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.WARNING,
    format="%(levelname)s:%(name)s:%(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Global callback
# ---------------------------------------------------------------------------


@app.callback()
def main_callback(
    ctx: typer.Context,
    backend: Annotated[
        str | None, typer.Option(help="Persistence backend: snapshot, supabase.")
    ] = None,
    snapshot: Annotated[
        Path | None, typer.Option(help="Snapshot file for the snapshot backend.")
    ] = None,
    verbose: Annotated[
        int,
        typer.Option(
            "--verbose", "-v", count=True, help="Increase verbosity. Repeat for more detail."
        ),
    ] = 0,
):
    """Global settings for errata."""
    ctx.ensure_object(dict)
    ctx.obj["overrides"] = {"backend": backend, "snapshot_path": snapshot}
    if verbose:
        ctx.obj["overrides"]["log_level"] = "DEBUG" if verbose > 1 else "INFO"

    log_level = _config(ctx).log_level
    if log_level:
        logging.getLogger().setLevel(log_level)


def _config(ctx: typer.Context) -> AppConfig:
    return resolve_config((ctx.obj or {}).get("overrides"))


def _run(ctx: typer.Context, action):
    """Build the service and run one async action, mapping errors to exit codes."""
    from errata.application.factory import get_analysis_service

    try:
        service = get_analysis_service(_config(ctx))
        return asyncio.run(_call(service, action))
    except MissingIdentifierError as e:
        typer.secho(f"Error: {e}", fg="red", err=True)
        raise typer.Exit(2) from e
    except ErrataError as e:
        typer.secho(f"Error: {e}", fg="red", err=True)
        raise typer.Exit(1) from e


async def _call(service, action):
    try:
        return await action(service)
    finally:
        await service.close()


def _dump(obj: Any) -> str:
    data = dataclasses.asdict(obj) if dataclasses.is_dataclass(obj) else obj
    return json.dumps(data, indent=2, default=str)


# ---------------------------------------------------------------------------
# Analysis commands
# ---------------------------------------------------------------------------


@app.command()
def analyze(
    ctx: typer.Context,
    user_id: Annotated[str, typer.Argument(help="User whose cards to analyze.")],
    subject: Annotated[str | None, typer.Option(help="Only cards of this subject id.")] = None,
    only_flagged: Annotated[
        bool, typer.Option("--only-flagged", help="Only cards flagged for intervention.")
    ] = False,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON.")] = False,
):
    """[bold green]Analyze[/bold green] problem indices and show critical cards."""
    result = _run(ctx, lambda s: s.analyze(user_id, subject_id=subject, only_flagged=only_flagged))

    if json_output:
        typer.echo(_dump(result))
        return

    stats = result.stats
    typer.echo(
        f"Cards: {stats.total}  Flagged: {stats.flagged}"
        f"  Outliers: {stats.outliers}  Attention: {stats.attention_zone}"
    )
    if stats.most_problematic_subject:
        subj = stats.most_problematic_subject
        typer.echo(f"Most problematic subject: {subj.name or subj.subject_id} ({subj.count} cards)")

    threshold = result.outlier_threshold
    typer.echo(f"Outlier cutoff: {'none' if threshold is None else f'{threshold:g}'}")
    typer.echo(
        f"Trend: slope={result.regression.slope:.3f} intercept={result.regression.intercept:.3f}"
    )

    critical = [c for c in result.cards if c.zone == "critical"]
    if critical:
        typer.secho(f"\nCritical: {len(critical)}", fg="red")
        for card in critical:
            label = card.error_text or card.id
            typer.echo(
                f"  {label}  index={card.problem_index:g} reviews={card.review_count}"
                f" status={card.status_name}"
            )

    attention = [c for c in result.cards if c.zone == "attention"]
    if attention:
        typer.secho(f"\nAttention: {len(attention)}", fg="yellow")
        for card in attention:
            typer.echo(f"  {card.error_text or card.id}  index={card.problem_index:g}")

    if result.auto_flag_candidates:
        typer.secho(f"\nAuto-flagged: {len(result.auto_flag_candidates)}", fg="yellow")


@app.command()
def flag(
    ctx: typer.Context,
    user_id: Annotated[str, typer.Argument(help="Owner of the cards.")],
    card_ids: Annotated[list[str], typer.Argument(help="Card ids to update.")],
    clear: Annotated[
        bool, typer.Option("--clear", help="Remove the intervention flag instead.")
    ] = False,
):
    """Flag cards for intervention (or clear the flag)."""
    updated = _run(ctx, lambda s: s.set_critical_flag(user_id, card_ids, not clear))
    typer.secho(f"{'Unflagged' if clear else 'Flagged'} {updated} card(s).", fg="green")


@app.command()
def review(
    ctx: typer.Context,
    card_id: Annotated[str, typer.Argument(help="Card that was just reviewed.")],
):
    """Mark a card as reviewed once more."""
    _run(ctx, lambda s: s.mark_reviewed(card_id))
    typer.secho(f"Recorded review for {card_id}.", fg="green")


# ---------------------------------------------------------------------------
# Timeline commands
# ---------------------------------------------------------------------------


@app.command()
def week(
    ctx: typer.Context,
    user_id: Annotated[str, typer.Argument(help="User to summarize.")],
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON.")] = False,
):
    """Summarize the mistakes logged this week."""
    from errata.application.timeline import week_summary

    async def load(service):
        return await service.list_cards(user_id), await service.list_statuses(user_id)

    cards, statuses = _run(ctx, load)
    summary = week_summary(cards, statuses, datetime.now(timezone.utc))

    if json_output:
        typer.echo(_dump(summary))
        return

    typer.echo(f"Week {summary.week_start} .. {summary.week_end}: {summary.total} errors")
    for entry in summary.by_status:
        typer.echo(f"  {entry.label}: {entry.count}")
    typer.echo("By day: " + "  ".join(f"{e.label} {e.count}" for e in summary.by_weekday))
    for entry in summary.by_subject:
        typer.echo(f"  {entry.label}: {entry.count}")


@app.command()
def trend(
    ctx: typer.Context,
    user_id: Annotated[str, typer.Argument(help="User to chart.")],
    period: Annotated[
        Literal["week", "month"], typer.Option(help="Bucket size: week or month.")
    ] = "week",
):
    """Show how many mistakes were logged per week or month."""
    from errata.application.timeline import error_trend

    cards = _run(ctx, lambda s: s.list_cards(user_id))
    for bucket in error_trend(cards, period, datetime.now(timezone.utc)):
        typer.echo(f"{bucket.label}  {'#' * bucket.count} {bucket.count}")


# ---------------------------------------------------------------------------
# Review sessions
# ---------------------------------------------------------------------------


def _print_session(session) -> None:
    if session is None:
        typer.echo("No review session in progress.")
        return
    done = len(session.reviewed_card_ids)
    typer.echo(
        f"Session {session.id} [{session.status}]: {done}/{len(session.card_ids)} reviewed"
    )
    for card_id in session.remaining_card_ids:
        typer.echo(f"  {card_id}")


@session_app.command("start")
def session_start(
    ctx: typer.Context,
    user_id: Annotated[str, typer.Argument(help="User who reviews.")],
    card: Annotated[
        list[str] | None,
        typer.Option("--card", help="Queue this card (repeatable). Default: problematic cards."),
    ] = None,
    subject: Annotated[
        str | None, typer.Option(help="Only problematic cards of this subject id.")
    ] = None,
):
    """Start a session, cancelling the one in progress."""
    filters = {"subject_id": subject} if subject else {}
    session = _run(ctx, lambda s: s.start_session(user_id, card or None, filters))
    _print_session(session)


@session_app.command("show")
def session_show(
    ctx: typer.Context,
    user_id: Annotated[str, typer.Argument(help="User whose session to show.")],
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON.")] = False,
):
    """Show the session in progress."""
    session = _run(ctx, lambda s: s.active_session(user_id))
    if json_output:
        typer.echo(_dump(session))
        return
    _print_session(session)


@session_app.command("review")
def session_review(
    ctx: typer.Context,
    session_id: Annotated[str, typer.Argument(help="Session id.")],
    card_id: Annotated[str, typer.Argument(help="Card just reviewed.")],
):
    """Record a reviewed card; the last one completes the session."""
    _print_session(_run(ctx, lambda s: s.record_session_review(session_id, card_id)))


@session_app.command("complete")
def session_complete(
    ctx: typer.Context,
    session_id: Annotated[str, typer.Argument(help="Session id.")],
):
    _print_session(_run(ctx, lambda s: s.complete_session(session_id)))


@session_app.command("cancel")
def session_cancel(
    ctx: typer.Context,
    session_id: Annotated[str, typer.Argument(help="Session id.")],
):
    _print_session(_run(ctx, lambda s: s.cancel_session(session_id)))


# ---------------------------------------------------------------------------
# Server
# ---------------------------------------------------------------------------


@app.command()
def server(
    ctx: typer.Context,
    host: Annotated[str | None, typer.Option(help="Bind address.")] = None,
    port: Annotated[int | None, typer.Option(help="Port to listen on.")] = None,
    reload: Annotated[bool, typer.Option("--reload", help="Auto-reload on code changes.")] = False,
):
    """Run the HTTP API."""
    import uvicorn

    config = _config(ctx)
    # uvicorn imports the app fresh; hand it the global options via the environment
    for key, value in (ctx.obj or {}).get("overrides", {}).items():
        if value is not None:
            os.environ[f"ERRATA_{key.upper()}"] = str(getattr(config, key))

    uvicorn.run(
        "errata.server:app",
        host=host or config.host,
        port=port or config.port,
        reload=reload,
    )


# ---------------------------------------------------------------------------
# Config subgroup
# ---------------------------------------------------------------------------


@config_app.command("show")
def config_show(ctx: typer.Context):
    """Display final resolved configuration."""
    config = _config(ctx)
    d = {k: str(v) if isinstance(v, Path) else v for k, v in config.model_dump().items()}
    if d.get("supabase_key"):
        d["supabase_key"] = "***"
    typer.echo(json.dumps(d, indent=2))

"""Cadence CLI: study commands, settings and config subgroups."""

import asyncio
import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Annotated

import typer

from cadence.application.config import AppConfig, load_project_settings, resolve_config
from cadence.application.session import SessionStatus
from cadence.application.study_service import StudyContext, StudyService
from cadence.domain.errors import CadenceError
from cadence.domain.models import CardPhase, CardState
from cadence.domain.settings import load_settings_file
from cadence.infrastructure.adapters.sqlite import (
    SqliteCardStateRepository,
    SqliteReviewLog,
    SqliteStore,
)

# ---------------------------------------------------------------------------
# Root app
# ---------------------------------------------------------------------------

app = typer.Typer(
    help="cadence: spaced-repetition scheduling for your flashcards.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

settings_app = typer.Typer(help="Inspect and validate scheduler settings.", no_args_is_help=True)
app.add_typer(settings_app, name="settings")

config_app = typer.Typer(help="Manage cadence configuration.", no_args_is_help=True)
app.add_typer(config_app, name="config")

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
    verbose: Annotated[
        int,
        typer.Option(
            "--verbose", "-v", count=True, help="Increase verbosity. Repeat for more detail."
        ),
    ] = 0,
    db: Annotated[Path | None, typer.Option(help="SQLite database path.")] = None,
    user: Annotated[str | None, typer.Option(help="User id.")] = None,
    project: Annotated[str | None, typer.Option(help="Project (deck) id.")] = None,
    settings_file: Annotated[
        Path | None, typer.Option("--settings", help="Project settings YAML file.")
    ] = None,
    tz: Annotated[str | None, typer.Option("--timezone", help="IANA timezone of the study day.")] = None,
):
    """Global settings for cadence."""
    level = logging.DEBUG if verbose >= 2 else logging.INFO if verbose == 1 else logging.WARNING
    logging.getLogger().setLevel(level)
    ctx.ensure_object(dict)
    ctx.obj["overrides"] = {
        "db_path": db,
        "user_id": user,
        "project_id": project,
        "settings_file": settings_file,
        "timezone": tz,
    }


def _config(ctx: typer.Context) -> AppConfig:
    overrides = (ctx.obj or {}).get("overrides", {})
    try:
        return resolve_config(overrides)
    except ValueError as e:
        typer.secho(f"Invalid configuration: {e}", fg="red", err=True)
        raise typer.Exit(1) from None


def _now() -> datetime:
    return datetime.now(timezone.utc)


async def _open(config: AppConfig) -> tuple[StudyService, StudyContext]:
    settings = load_project_settings(config)
    store = SqliteStore(config.db_path)
    states = SqliteCardStateRepository(store, settings)
    service = StudyService(states, SqliteReviewLog(store), settings, timezone=config.timezone)
    card_ids = await states.list_card_ids(config.user_id, config.project_id)
    study = await service.open(
        config.user_id, config.project_id, card_ids, _now(), seed=config.seed
    )
    return service, study


def _run(coro):
    """Run a coroutine, mapping cadence errors to a red message and exit code 1."""
    try:
        return asyncio.run(coro)
    except CadenceError as e:
        logger.debug(f"Command failed: {e!r}", exc_info=True)
        typer.secho(str(e), fg="red", err=True)
        raise typer.Exit(1) from None


def _describe(state: CardState) -> str:
    text = f"{state.card_id}  [{state.phase.value}]  due {state.due.isoformat(timespec='minutes')}"
    if state.phase in (CardPhase.REVIEW, CardPhase.RELEARNING):
        text += f"  interval {state.interval}d  ease {state.ease:.2f}"
    return text


# ---------------------------------------------------------------------------
# Study commands
# ---------------------------------------------------------------------------


@app.command()
def add(
    ctx: typer.Context,
    card_id: Annotated[str, typer.Argument(help="Id of the newly created flashcard.")],
    note: Annotated[str | None, typer.Option(help="Source note shared by sibling cards.")] = None,
):
    """Initialize scheduling state for a new flashcard."""
    config = _config(ctx)

    async def run():
        service, study = await _open(config)
        if card_id in study.states:
            typer.secho(f"{card_id} already has scheduling state.", fg="yellow", err=True)
            raise typer.Exit(1)
        return await service.add_card(study, card_id, _now(), note_id=note)

    state = _run(run())
    typer.secho(f"Added {state.card_id}", fg="green")


@app.command("next")
def next_cmd(ctx: typer.Context):
    """Show the next card to study."""
    config = _config(ctx)

    async def run():
        service, study = await _open(config)
        now = _now()
        return service.next_card(study, now), service.status(study, now)

    state, status = _run(run())
    if state is not None:
        typer.echo(_describe(state))
    elif status is SessionStatus.NO_CARDS:
        typer.secho("No cards in this project yet.", fg="yellow")
    else:
        typer.secho("Done for today!", fg="green")


@app.command("grade")
def grade_cmd(
    ctx: typer.Context,
    card_id: Annotated[str, typer.Argument(help="Card to grade.")],
    grade: Annotated[str, typer.Argument(help="again, hard, good, easy (or 0-3).")],
):
    """Grade a card and schedule its next review."""
    config = _config(ctx)

    async def run():
        service, study = await _open(config)
        return await service.answer(study, card_id, grade, _now())

    result = _run(run())
    typer.echo(_describe(result.state))
    if result.became_leech:
        action = "suspended" if result.state.is_suspended else "tagged"
        typer.secho(f"{card_id} is now a leech ({action}).", fg="yellow")


@app.command()
def stats(
    ctx: typer.Context,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON.")] = False,
):
    """Show what is left to study today."""
    config = _config(ctx)

    async def run():
        service, study = await _open(config)
        return service.stats(study, _now())

    result = _run(run())
    if json_output:
        typer.echo(json.dumps(result.as_dict(), indent=2))
        return

    typer.echo(
        f"New: {result.available_new_cards}  Learning: {result.due_learning_cards}"
        f"  Review: {result.due_review_cards}  Due: {result.due_cards}"
        f"  Total: {result.total_cards}"
    )


@app.command()
def suspend(ctx: typer.Context, card_id: Annotated[str, typer.Argument()]):
    """Exclude a card from study until unsuspended."""
    config = _config(ctx)

    async def run():
        service, study = await _open(config)
        return await service.suspend(study, card_id)

    _run(run())
    typer.secho(f"Suspended {card_id}", fg="green")


@app.command()
def unsuspend(ctx: typer.Context, card_id: Annotated[str, typer.Argument()]):
    """Return a suspended card to study."""
    config = _config(ctx)

    async def run():
        service, study = await _open(config)
        return await service.unsuspend(study, card_id)

    _run(run())
    typer.secho(f"Unsuspended {card_id}", fg="green")


@app.command()
def reset(ctx: typer.Context, card_id: Annotated[str, typer.Argument()]):
    """Forget a card's progress and make it New again."""
    config = _config(ctx)

    async def run():
        service, study = await _open(config)
        return await service.reset(study, card_id, _now())

    _run(run())
    typer.secho(f"Reset {card_id}", fg="green")


@app.command()
def serve(
    port: Annotated[int, typer.Option(help="Port to bind the server to.")] = 8787,
    host: Annotated[str, typer.Option(help="Host to bind the server to.")] = "127.0.0.1",
    reload: Annotated[bool, typer.Option(help="Enable auto-reload.")] = False,
):
    """Run the stateless scheduling HTTP server."""
    import uvicorn

    uvicorn.run("cadence.server:app", host=host, port=port, reload=reload)


# ---------------------------------------------------------------------------
# Settings subgroup
# ---------------------------------------------------------------------------


@settings_app.command("show")
def settings_show(ctx: typer.Context):
    """Display the resolved scheduler settings for the project."""
    config = _config(ctx)
    try:
        settings = load_project_settings(config)
    except CadenceError as e:
        typer.secho(str(e), fg="red", err=True)
        raise typer.Exit(1) from None
    typer.echo(json.dumps(settings.model_dump(mode="json", by_alias=True), indent=2))


@settings_app.command("check")
def settings_check(
    path: Annotated[Path, typer.Argument(help="Settings YAML file to validate.")],
):
    """Validate a settings file without using it."""
    try:
        load_settings_file(path)
    except CadenceError as e:
        typer.secho(str(e), fg="red", err=True)
        raise typer.Exit(1) from None
    typer.secho(f"{path} is valid.", fg="green")


# ---------------------------------------------------------------------------
# Config subgroup
# ---------------------------------------------------------------------------


@config_app.command("show")
def config_show(ctx: typer.Context):
    """Display final resolved configuration."""
    config = _config(ctx)
    d = {k: str(v) if isinstance(v, Path) else v for k, v in config.model_dump().items()}
    typer.echo(json.dumps(d, indent=2))

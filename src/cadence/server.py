"""
Stateless scheduling server.

Every request carries the card states, settings and today's review log it
needs; a fresh Session is built per request, so daily quotas hold across
requests exactly as they do across re-opened study screens.
"""

import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from cadence.application import scheduler
from cadence.application.session import Session, SessionStatus
from cadence.consts import VERSION
from cadence.domain.errors import (
    InvalidGradeError,
    InvalidSettingsError,
    MalformedCardError,
    SuspendedCardError,
)
from cadence.domain.models import CardState, ReviewLogEntry
from cadence.domain.settings import SchedulerSettings, load_settings

# Setup logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("cadence.server")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info(f"Cadence Server v{VERSION} starting up...")
    yield
    # Shutdown
    logger.info("Cadence Server shutting down...")


app = FastAPI(
    title="Cadence Server",
    description="Stateless spaced-repetition scheduling API.",
    version=VERSION,
    lifespan=lifespan,
)


class HealthResponse(BaseModel):
    status: str
    version: str
    uptime_seconds: float


start_time = time.time()


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """
    Simple health check to verify server is reachable.
    """
    return HealthResponse(status="ok", version=VERSION, uptime_seconds=time.time() - start_time)


@app.get("/version")
async def get_version():
    return {"version": VERSION}


def _settings_or_422(raw: dict[str, Any] | None) -> SchedulerSettings:
    try:
        return load_settings(raw)
    except InvalidSettingsError as e:
        raise HTTPException(status_code=422, detail={"message": "Invalid settings", "errors": e.errors}) from e


class SettingsRequest(BaseModel):
    settings: dict[str, Any] | None = None


@app.post("/settings/validate")
async def validate_settings(req: SettingsRequest):
    """Validate project settings and echo the resolved values."""
    settings = _settings_or_422(req.settings)
    return {"valid": True, "settings": settings.model_dump(mode="json", by_alias=True)}


class GradeRequest(BaseModel):
    card: CardState
    grade: int | str
    now: datetime | None = None
    settings: dict[str, Any] | None = None


class GradeResponse(BaseModel):
    card: CardState
    became_leech: bool


@app.post("/grade", response_model=GradeResponse)
async def grade_card(req: GradeRequest):
    """
    Compute a card's next state. The caller persists it.
    """
    settings = _settings_or_422(req.settings)
    now = req.now or datetime.now(timezone.utc)

    try:
        updated = scheduler.grade(req.card, settings, req.grade, now)
    except SuspendedCardError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    except (InvalidGradeError, MalformedCardError) as e:
        raise HTTPException(status_code=422, detail=str(e)) from e

    became_leech = updated.is_leech and not req.card.is_leech
    if became_leech:
        logger.info(f"Card {updated.card_id} became a leech")
    return GradeResponse(card=updated, became_leech=became_leech)


class QueueRequest(BaseModel):
    states: list[CardState] = Field(default_factory=list)
    history: list[ReviewLogEntry] = Field(default_factory=list)
    settings: dict[str, Any] | None = None
    now: datetime | None = None
    timezone: str = "UTC"
    seed: int | None = None


def _open_session(req: QueueRequest) -> tuple[Session, dict[str, CardState], datetime]:
    settings = _settings_or_422(req.settings)
    now = req.now or datetime.now(timezone.utc)
    try:
        session = Session.from_history(
            settings, req.history, now, timezone=req.timezone, seed=req.seed
        )
    except (ValueError, KeyError) as e:
        raise HTTPException(status_code=422, detail=f"Invalid session parameters: {e}") from e
    return session, {s.card_id: s for s in req.states}, now


class NextCardResponse(BaseModel):
    card_id: str | None
    status: SessionStatus


@app.post("/next", response_model=NextCardResponse)
async def next_card(req: QueueRequest):
    """Pick the next card to present."""
    session, states, now = _open_session(req)
    card_id = session.next_card(states, now)
    return NextCardResponse(card_id=card_id, status=session.status(states, now))


@app.post("/stats")
async def study_stats(req: QueueRequest):
    """Session-aware study statistics."""
    session, states, now = _open_session(req)
    return session.stats(states, now).as_dict()

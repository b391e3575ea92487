import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Literal

from fastapi import Depends, FastAPI, HTTPException
from pydantic import BaseModel, Field

from errata.application.analysis.service import AnalysisService
from errata.consts import VERSION
from errata.domain.analysis.models import AnalysisConfig, StatusConfig
from errata.domain.constants import (
    DEFAULT_AUTO_FLAG_ENABLED,
    DEFAULT_OUTLIER_PERCENTAGE,
    DEFAULT_PROBLEM_THRESHOLD,
)
from errata.domain.errors import MissingIdentifierError, NotFoundError

# Setup logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("errata.server")


@asynccontextmanager
async def lifespan(app: FastAPI):
    from errata.application.config import resolve_config

    # Startup
    log_level = resolve_config().log_level
    if log_level:
        logging.getLogger().setLevel(log_level)
    logger.info(f"Errata Server v{VERSION} starting up...")
    yield
    # Shutdown
    logger.info("Errata Server shutting down...")


app = FastAPI(
    title="Errata Server",
    description="Study-error tracking and problem-index analysis.",
    version=VERSION,
    lifespan=lifespan,
)


class HealthResponse(BaseModel):
    status: str
    version: str
    uptime_seconds: float


start_time = time.time()


async def get_service() -> AsyncIterator[AnalysisService]:
    """One service per request; its repositories are closed when the request ends."""
    from errata.application.config import resolve_config
    from errata.application.factory import get_analysis_service

    try:
        service = get_analysis_service(resolve_config())
    except Exception as e:
        logger.error(f"Could not build service: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e)) from e

    try:
        yield service
    finally:
        await service.close()


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """
    Simple health check to verify server is reachable.
    """
    return HealthResponse(status="ok", version=VERSION, uptime_seconds=time.time() - start_time)


@app.get("/version")
async def get_version():
    return {"version": VERSION}


@app.get("/analysis")
async def get_analysis(
    user_id: str | None = None,
    subject_id: str | None = None,
    only_flagged: bool = False,
    service: AnalysisService = Depends(get_service),
):
    """
    Score the user's cards and return zones, stats, effective config and
    the regression diagnostic.
    """
    try:
        return await service.analyze(user_id, subject_id=subject_id, only_flagged=only_flagged)
    except MissingIdentifierError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except Exception as e:
        logger.error(f"Analysis failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e)) from e


class FlagRequest(BaseModel):
    user_id: str | None = None
    card_ids: list[str] = Field(default_factory=list)
    needs_intervention: bool = True


@app.put("/analysis")
async def set_flags(req: FlagRequest, service: AnalysisService = Depends(get_service)):
    """Flag or unflag cards for intervention."""
    try:
        updated = await service.set_critical_flag(
            req.user_id, req.card_ids, req.needs_intervention
        )
        return {"success": True, "updated": updated}
    except MissingIdentifierError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except Exception as e:
        logger.error(f"Flag update failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e)) from e


@app.post("/cards/{card_id}/review")
async def mark_reviewed(card_id: str, service: AnalysisService = Depends(get_service)):
    """Increment a card's review count."""
    try:
        await service.mark_reviewed(card_id)
        return {"success": True}
    except MissingIdentifierError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except Exception as e:
        logger.error(f"Mark reviewed failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e)) from e


class StatusConfigPayload(BaseModel):
    weight: float = Field(ge=0)
    expected_reviews: int = Field(ge=1)


class AnalysisConfigPayload(BaseModel):
    status_config: dict[str, StatusConfigPayload] = Field(default_factory=dict)
    problem_threshold: float = Field(default=DEFAULT_PROBLEM_THRESHOLD, gt=0)
    outlier_percentage: float = Field(default=DEFAULT_OUTLIER_PERCENTAGE, gt=0, le=100)
    auto_flag_enabled: bool = DEFAULT_AUTO_FLAG_ENABLED

    def to_domain(self) -> AnalysisConfig:
        return AnalysisConfig(
            status_config={
                name: StatusConfig(weight=cfg.weight, expected_reviews=cfg.expected_reviews)
                for name, cfg in self.status_config.items()
            },
            problem_threshold=self.problem_threshold,
            outlier_percentage=self.outlier_percentage,
            auto_flag_enabled=self.auto_flag_enabled,
        )


class SaveConfigRequest(BaseModel):
    user_id: str | None = None
    analysis_config: AnalysisConfigPayload


@app.get("/preferences/analysis")
async def get_analysis_config(
    user_id: str | None = None, service: AnalysisService = Depends(get_service)
):
    """Effective analysis config, with defaults for statuses never configured."""
    try:
        return await service.get_config(user_id)
    except MissingIdentifierError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except Exception as e:
        logger.error(f"Config fetch failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e)) from e


@app.put("/preferences/analysis")
async def save_analysis_config(
    req: SaveConfigRequest, service: AnalysisService = Depends(get_service)
):
    try:
        return await service.save_config(req.user_id, req.analysis_config.to_domain())
    except MissingIdentifierError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except Exception as e:
        logger.error(f"Config save failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e)) from e


@app.get("/timeline/week")
async def get_week_summary(
    user_id: str | None = None, service: AnalysisService = Depends(get_service)
):
    """Cards logged this week, by status, weekday and subject."""
    from errata.application.timeline import week_summary

    try:
        cards = await service.list_cards(user_id)
        statuses = await service.list_statuses(user_id)
        return week_summary(cards, statuses, datetime.now(timezone.utc))
    except MissingIdentifierError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except Exception as e:
        logger.error(f"Week summary failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e)) from e


@app.get("/timeline/trend")
async def get_error_trend(
    user_id: str | None = None,
    period: Literal["week", "month"] = "week",
    service: AnalysisService = Depends(get_service),
):
    """Cards logged per week (last 8) or per month (last 6)."""
    from errata.application.timeline import error_trend

    try:
        cards = await service.list_cards(user_id)
        return error_trend(cards, period, datetime.now(timezone.utc))
    except MissingIdentifierError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except Exception as e:
        logger.error(f"Trend failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e)) from e


# --- Review sessions ---


class StartSessionRequest(BaseModel):
    user_id: str | None = None
    # None queues the problematic cards of a fresh analysis
    card_ids: list[str] | None = None
    filters: dict[str, Any] = Field(default_factory=dict)


class SessionActionRequest(BaseModel):
    action: Literal["mark_reviewed", "complete", "cancel"]
    card_id: str | None = None


@app.get("/review-sessions")
async def get_active_session(
    user_id: str | None = None, service: AnalysisService = Depends(get_service)
):
    """The user's session in progress, or null."""
    try:
        return await service.active_session(user_id)
    except MissingIdentifierError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except Exception as e:
        logger.error(f"Session fetch failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e)) from e


@app.post("/review-sessions")
async def start_session(req: StartSessionRequest, service: AnalysisService = Depends(get_service)):
    try:
        return await service.start_session(req.user_id, req.card_ids, req.filters)
    except MissingIdentifierError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except Exception as e:
        logger.error(f"Session start failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e)) from e


@app.put("/review-sessions/{session_id}")
async def update_session(
    session_id: str,
    req: SessionActionRequest,
    service: AnalysisService = Depends(get_service),
):
    """Record a reviewed card, or complete or cancel the session."""
    try:
        if req.action == "mark_reviewed":
            return await service.record_session_review(session_id, req.card_id)
        if req.action == "complete":
            return await service.complete_session(session_id)
        return await service.cancel_session(session_id)
    except MissingIdentifierError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except Exception as e:
        logger.error(f"Session update failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e)) from e


@app.delete("/review-sessions/{session_id}")
async def cancel_session(session_id: str, service: AnalysisService = Depends(get_service)):
    try:
        await service.cancel_session(session_id)
        return {"success": True}
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except Exception as e:
        logger.error(f"Session cancel failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e)) from e

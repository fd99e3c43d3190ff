"""
NutriLens AI - FastAPI Application

Main entry point for the NutriLens backend API.
Implements the /analyze and /feedback endpoints and health checks.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from nutrilens import __version__
from nutrilens.config import Settings, get_settings
from nutrilens.core.errors import (
    AgentError,
    FeedbackInputError,
    InputError,
    NoConfidentItemsError,
)
from nutrilens.core.feedback import FeedbackRecorder
from nutrilens.core.image_input import decode_image_payload
from nutrilens.core.inference import InferenceClient
from nutrilens.core.orchestrator import AnalysisOrchestrator
from nutrilens.core.state import MealType
from nutrilens.core.storage import InMemoryFeedbackStorage
from nutrilens.core.tracing import Tracer

# Configure logging
logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

SHUTDOWN_DRAIN_SECONDS = 30.0


# === Lifespan Management ===
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the shared service handles, then drain and flush on shutdown."""
    settings = get_settings()

    # Startup
    logger.info("🚀 Starting NutriLens AI Backend")
    logger.info(f"Environment: {settings.environment}")

    key_status = settings.validate_required_keys()
    for key, configured in key_status.items():
        status = "✅" if configured else "⚠️ Missing"
        logger.info(f"  {key}: {status}")

    inference = InferenceClient(
        api_key=settings.google_api_key,
        default_model=settings.text_model,
        timeout_seconds=settings.inference_timeout_seconds,
    )
    tracer = Tracer.from_settings(settings)
    storage = InMemoryFeedbackStorage()

    app.state.settings = settings
    app.state.tracer = tracer
    app.state.storage = storage
    app.state.orchestrator = AnalysisOrchestrator(inference, tracer, settings)
    app.state.feedback_recorder = FeedbackRecorder(
        tracer,
        storage,
        store_feedback=settings.enable_feedback_loop,
    )

    yield

    # Shutdown
    await app.state.orchestrator.drain_evaluations(timeout=SHUTDOWN_DRAIN_SECONDS)
    tracer.flush()
    logger.info("👋 Shutting down NutriLens AI Backend")


# === FastAPI Application ===
app = FastAPI(
    title="NutriLens AI",
    description="Uncertainty-aware meal analysis with reflective coaching",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# === Dependencies ===
def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_orchestrator(request: Request) -> AnalysisOrchestrator:
    return request.app.state.orchestrator


def get_feedback_recorder(request: Request) -> FeedbackRecorder:
    return request.app.state.feedback_recorder


def get_feedback_storage(request: Request) -> InMemoryFeedbackStorage:
    return request.app.state.storage


# === Request/Response Models ===
class AnalyzeRequest(BaseModel):
    """Body of the /analyze endpoint."""
    image: Optional[str] = None
    mealType: Optional[str] = None
    userGoals: Optional[list[str]] = None


class FeedbackRequest(BaseModel):
    """Body of the /feedback endpoint."""
    analysisId: Optional[str] = None
    correctedFoods: Optional[list[str]] = None
    correctedPortions: Optional[list[str]] = None
    satisfactionScore: Optional[Any] = None  # range and type checked by UserFeedback
    comments: Optional[str] = None


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    version: str
    environment: str
    services: dict[str, bool]


def _error(status_code: int, error: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error, **extra})


def _parse_meal_type(meal_type: Optional[str]) -> Optional[MealType]:
    if not meal_type:
        return None
    try:
        return MealType(meal_type.lower())
    except ValueError:
        logger.warning(f"Ignoring unknown meal type: {meal_type}")
        return None


# === Endpoints ===
@app.get("/", tags=["root"])
async def root():
    """Root endpoint with API information."""
    return {
        "name": "NutriLens AI",
        "version": __version__,
        "description": "Meal photo analysis with nutrition ranges, reflection prompts and habit nudges",
        "docs_url": "/docs",
    }


@app.get("/health", response_model=HealthResponse, tags=["health"])
async def health_check(settings: Settings = Depends(get_app_settings)):
    """Health check endpoint for monitoring."""
    key_status = settings.validate_required_keys()
    return HealthResponse(
        status="ok",
        timestamp=datetime.now(timezone.utc).isoformat(),
        version=__version__,
        environment=settings.environment,
        services={
            "inference": key_status["google_api_key"],
            "tracing": key_status["opik_api_key"] and settings.enable_tracing,
            "evaluation": settings.enable_evaluation,
            "feedbackStorage": settings.enable_feedback_loop,
        },
    )


@app.post("/analyze", tags=["analysis"])
async def analyze_meal(
    body: AnalyzeRequest,
    orchestrator: AnalysisOrchestrator = Depends(get_orchestrator),
    settings: Settings = Depends(get_app_settings),
):
    """
    Analyze a meal photo.

    1. **Recognize**: list visible foods with confidence, drop uncertain ones
    2. **Estimate**: nutrition ranges per food, summed into meal totals
    3. **Reflect**: non-judgmental reflection prompts and habit nudges

    Quality evaluation runs in the background after the response is ready.
    """
    try:
        image = decode_image_payload(body.image)
    except InputError as e:
        message = str(e)
        if message == "Image is required":
            return _error(400, message)
        return _error(400, "Invalid image payload", details=message)

    if image.size > settings.max_image_bytes:
        return _error(
            413,
            "Image too large",
            details=f"{image.size} bytes exceeds the {settings.max_image_bytes} byte limit",
        )

    logger.info(f"Received image: {image.size} bytes")

    try:
        outcome = await orchestrator.process(
            image,
            meal_type=_parse_meal_type(body.mealType),
            user_goals=body.userGoals,
        )
    except NoConfidentItemsError as e:
        return _error(422, str(e), warnings=e.warnings)
    except AgentError as e:
        logger.error(f"Analysis failed: {e}")
        return _error(500, "Failed to analyze image", details=str(e))
    except Exception as e:
        logger.exception(f"Unexpected analysis failure: {e}")
        return _error(500, "Failed to analyze image", details=str(e))

    response = {
        "success": True,
        "analysis": outcome.analysis.model_dump(mode="json", by_alias=True),
        "totals": outcome.totals.model_dump(mode="json", by_alias=True),
    }
    if outcome.low_confidence_items:
        response["lowConfidenceItems"] = [
            item.model_dump(mode="json", by_alias=True) for item in outcome.low_confidence_items
        ]
    return response


@app.post("/feedback", tags=["feedback"])
async def submit_feedback(
    body: FeedbackRequest,
    recorder: FeedbackRecorder = Depends(get_feedback_recorder),
):
    """Record corrections or a satisfaction rating for a past analysis."""
    try:
        feedback = recorder.record(
            body.analysisId,
            corrected_foods=body.correctedFoods,
            corrected_portions=body.correctedPortions,
            satisfaction_score=body.satisfactionScore,
            comments=body.comments,
        )
    except FeedbackInputError as e:
        return _error(400, str(e))
    except Exception as e:
        logger.exception(f"Feedback recording failed: {e}")
        return _error(500, "Failed to record feedback", details=str(e))

    return {
        "success": True,
        "message": "Feedback recorded successfully",
        "feedbackId": feedback.feedback_id,
    }


@app.get("/feedback", tags=["feedback"])
async def list_feedback(
    analysisId: str = Query(..., min_length=1),
    storage: InMemoryFeedbackStorage = Depends(get_feedback_storage),
):
    """All feedback recorded for one analysis, newest first."""
    entries = storage.find_by_analysis_id(analysisId)
    return {
        "success": True,
        "feedback": [entry.model_dump(mode="json", by_alias=True) for entry in entries],
    }


@app.get("/feedback/stats", tags=["feedback"])
async def feedback_stats(
    days: Optional[int] = Query(None, ge=1),
    storage: InMemoryFeedbackStorage = Depends(get_feedback_storage),
):
    """Average satisfaction and correction counts, optionally over the last N days."""
    satisfaction = storage.get_average_satisfaction(days)
    corrections = storage.get_correction_stats(days)
    return {
        "success": True,
        "satisfaction": {
            "average": satisfaction.average,
            "count": satisfaction.count,
        },
        "corrections": {
            "total": corrections.total_corrections,
            "foods": corrections.food_corrections,
            "portions": corrections.portion_corrections,
        },
    }


# === Run with Uvicorn ===
if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(
        "nutrilens.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
    )

"""
API route definitions.

Endpoints:
    GET  /health                                       Gateway connection state
    GET  /recommendations/{seeker_id}                  Ranked recommendations
    POST /seekers                                      Create a seeker profile
    POST /providers                                    Create a provider profile
    POST /outcomes                                     Record a matching outcome
    POST /recommendations/{recommendation_id}/interactions
                                                       Record click/book/complete
    POST /bookings                                     Learn from a completed booking
    GET  /policy                                       Current policy and performance
    GET  /metrics                                      Prometheus metrics

Handlers run the blocking agent/gateway calls in a worker thread.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any, Literal

from fastapi import APIRouter, Body, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from craftmatch.adapters.gateway import OperationResult
from craftmatch.api.metrics import metrics_response
from craftmatch.config import get_logger
from craftmatch.core.errors import RecordValidationError
from craftmatch.core.models import (
    BookingEvent,
    ProviderProfile,
    Recommendation,
    SeekerProfile,
    parse_datetime,
    utcnow,
)

logger = get_logger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class OutcomeRequest(BaseModel):
    """Request body for /outcomes."""

    seeker_id: str = Field(..., min_length=1)
    provider_id: str = Field(..., min_length=1)
    satisfaction: float = Field(..., ge=0.0, le=1.0)
    cultural_learning: float = Field(..., ge=0.0, le=1.0)
    economic_impact: float = Field(..., ge=0.0, le=1.0)


class InteractionRequest(BaseModel):
    """Request body for /recommendations/{id}/interactions."""

    kind: Literal["click", "book", "complete"]
    rating: float | None = Field(None, ge=0.0, le=1.0)


class BookingRequest(BaseModel):
    """Completed-booking event from the booking flow."""

    seeker_id: str = Field(..., min_length=1)
    provider_id: str = Field(..., min_length=1)
    satisfaction: float = Field(..., ge=0.0, le=1.0, description="Normalized rating")
    date: datetime | None = None
    cultural_learning: float | None = Field(None, ge=0.0, le=1.0)
    economic_impact: float | None = Field(None, ge=0.0, le=1.0)
    expert_approval: bool | None = None


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class HealthResponse(BaseModel):
    status: str
    store: str
    policy_version: int
    providers: int


class RecommendationItem(BaseModel):
    """A single ranked provider recommendation."""

    rank: int
    recommendation_id: str
    provider_id: str
    confidence: float
    cultural_score: float
    economic_score: float
    reasoning: str
    experience_type: str | None = None
    title: str | None = None
    price: float | None = None
    duration_hours: float | None = None
    expires_at: datetime
    policy_version: int


class RecommendationResponse(BaseModel):
    seeker_id: str
    recommendations: list[RecommendationItem]


class BookingResponse(BaseModel):
    experience_id: str
    reward: float
    policy_version: int


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------


def _error_response(status_code: int, error_msg: str) -> JSONResponse:
    """Build a standardized JSON error response."""
    return JSONResponse(status_code=status_code, content={"error": error_msg})


def _result_error(result: OperationResult) -> JSONResponse:
    if result.error_kind == "validation":
        return _error_response(422, result.error or "Invalid request")
    return _error_response(503, "Store unavailable. Please try again later.")


def _build_item(rank: int, rec: Recommendation) -> dict:
    template = rec.template
    return {
        "rank": rank,
        "recommendation_id": rec.recommendation_id,
        "provider_id": rec.provider_id,
        "confidence": round(rec.confidence, 3),
        "cultural_score": round(rec.cultural_score, 3),
        "economic_score": round(rec.economic_score, 3),
        "reasoning": rec.reasoning,
        "experience_type": rec.experience_type.value if rec.experience_type else None,
        "title": template.title if template else None,
        "price": template.price if template else None,
        "duration_hours": template.duration_hours if template else None,
        "expires_at": rec.expires_at,
        "policy_version": rec.policy_version,
    }


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


@router.get("/health", response_model=HealthResponse)
async def health(request: Request):
    """Liveness plus store mode. A degraded store still serves requests."""
    gateway = request.app.state.gateway
    agent = request.app.state.agent
    return {
        "status": "degraded" if gateway.degraded else "healthy",
        "store": gateway.state.value,
        "policy_version": agent.policy_version,
        "providers": len(agent.providers),
    }


# ---------------------------------------------------------------------------
# Recommendations
# ---------------------------------------------------------------------------


@router.get("/recommendations/{seeker_id}", response_model=RecommendationResponse)
async def recommendations(request: Request, seeker_id: str):
    """Ranked, unexpired recommendations. Unknown seekers get an empty list."""
    agent = request.app.state.agent
    recs = await asyncio.to_thread(agent.get_recommendations, seeker_id)
    return {
        "seeker_id": seeker_id,
        "recommendations": [_build_item(i, r) for i, r in enumerate(recs, 1)],
    }


@router.post("/recommendations/{recommendation_id}/interactions")
async def record_interaction(
    request: Request, recommendation_id: str, body: InteractionRequest
):
    agent = request.app.state.agent
    result = await asyncio.to_thread(
        agent.record_interaction, recommendation_id, body.kind, body.rating
    )
    if not result.success:
        return _result_error(result)
    rec = result.data
    return {
        "recommendation_id": rec.recommendation_id,
        "clicked": rec.clicked,
        "booked": rec.booked,
        "completed": rec.completed,
        "rating": rec.rating,
    }


# ---------------------------------------------------------------------------
# Profiles
# ---------------------------------------------------------------------------


@router.post("/seekers", status_code=201)
async def create_seeker(request: Request, payload: dict[str, Any] = Body(...)):
    try:
        profile = SeekerProfile.from_dict(payload)
    except RecordValidationError as e:
        return _error_response(422, str(e))

    result = await asyncio.to_thread(request.app.state.agent.add_seeker_profile, profile)
    if not result.success:
        return _result_error(result)
    return {"seeker_id": profile.seeker_id}


@router.post("/providers", status_code=201)
async def create_provider(request: Request, payload: dict[str, Any] = Body(...)):
    try:
        profile = ProviderProfile.from_dict(payload)
    except RecordValidationError as e:
        return _error_response(422, str(e))

    result = await asyncio.to_thread(request.app.state.agent.add_provider_profile, profile)
    if not result.success:
        return _result_error(result)
    return {"provider_id": profile.provider_id}


# ---------------------------------------------------------------------------
# Outcomes and bookings
# ---------------------------------------------------------------------------


@router.post("/outcomes", status_code=201)
async def record_outcome(request: Request, body: OutcomeRequest):
    agent = request.app.state.agent
    try:
        record = await asyncio.to_thread(
            agent.record_outcome,
            body.seeker_id,
            body.provider_id,
            body.satisfaction,
            body.cultural_learning,
            body.economic_impact,
        )
    except RecordValidationError as e:
        return _error_response(422, str(e))
    return record.to_dict()


@router.post("/bookings", response_model=BookingResponse)
async def record_booking(request: Request, body: BookingRequest):
    """Convert a completed booking into an experience and learn from it."""
    agent = request.app.state.agent
    event = BookingEvent(
        seeker_id=body.seeker_id,
        provider_id=body.provider_id,
        satisfaction=body.satisfaction,
        date=parse_datetime(body.date, "date") if body.date else utcnow(),
        cultural_learning=body.cultural_learning,
        economic_impact=body.economic_impact,
        expert_approval=body.expert_approval,
    )
    experience = await asyncio.to_thread(agent.record_booking, event)
    if experience is None:
        return _error_response(422, "Booking could not be converted into an experience")
    return {
        "experience_id": experience.experience_id,
        "reward": round(experience.reward, 6),
        "policy_version": agent.policy_version,
    }


# ---------------------------------------------------------------------------
# Policy
# ---------------------------------------------------------------------------


@router.get("/policy")
async def policy(request: Request):
    agent = request.app.state.agent
    return {
        "agent_type": agent.agent_type.value,
        "policy": agent.policy_snapshot().to_dict(),
        "performance": agent.performance_snapshot().to_dict(),
    }


# ---------------------------------------------------------------------------
# Prometheus metrics
# ---------------------------------------------------------------------------


@router.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint."""
    body, content_type = metrics_response()
    return Response(content=body, media_type=content_type)

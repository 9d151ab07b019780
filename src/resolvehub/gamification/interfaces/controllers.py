"""
Gamification Controllers (API Routes)
=====================================

Leaderboard and aggregate statistics, recomputed from complaint history
on every request.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from resolvehub.complaints.interfaces.dependencies import EngineServices, get_services
from resolvehub.gamification.application import (
    StatsResponse, StandingResponse, LeaderboardResponse
)

gamification_router = APIRouter(prefix="/gamification", tags=["Gamification"])


@gamification_router.get(
    "/stats",
    response_model=StatsResponse,
    response_model_by_alias=True,
    summary="Staff performance statistics",
)
async def get_stats(
    city: Optional[str] = Query(None),
    department: Optional[str] = Query(None),
    services: EngineServices = Depends(get_services)
) -> StatsResponse:
    stats = await services.scorer.get_stats(city=city, department=department)
    return StatsResponse.from_stats(stats)


@gamification_router.get(
    "/leaderboard",
    response_model=LeaderboardResponse,
    response_model_by_alias=True,
    summary="Staff leaderboard",
)
async def get_leaderboard(
    limit: int = Query(10, ge=1, le=100),
    city: Optional[str] = Query(None),
    department: Optional[str] = Query(None),
    services: EngineServices = Depends(get_services)
) -> LeaderboardResponse:
    standings = await services.scorer.get_leaderboard(limit=limit, city=city, department=department)
    return LeaderboardResponse(
        leaderboard=[StandingResponse.from_standing(s) for s in standings]
    )

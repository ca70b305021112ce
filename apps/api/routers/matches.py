"""Candidate search and match endpoints."""

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from apps.api.deps import get_db, get_enricher, get_policy
from apps.engine.likes import LikeMatchStateMachine
from apps.engine.search import MatchEngine, SearchFilters, candidate_card
from apps.persona.provider import PersonaEnricher
from core.auth import current_user_id
from core.clock import utcnow
from core.config import MatchPolicy

router = APIRouter(prefix="/matches", tags=["matches"])


class SearchIn(BaseModel):
    """Input model for a candidate search."""

    search_query: str | None = Field(None, max_length=500)
    filters: SearchFilters = Field(default_factory=SearchFilters)
    exclude_ids: list[int] = Field(default_factory=list, max_length=500)
    is_on_grid: bool | None = None
    limit: int | None = Field(None, ge=1, le=50)
    charge_credits: bool = False


class RefreshIn(BaseModel):
    exclude_ids: list[int] = Field(default_factory=list, max_length=500)


@router.post("/search")
async def search(
    body: SearchIn,
    user_id: int = Depends(current_user_id),
    db: AsyncSession = Depends(get_db),
    policy: MatchPolicy = Depends(get_policy),
    enricher: PersonaEnricher = Depends(get_enricher),
) -> dict[str, Any]:
    """
    Search for candidates.

    With is_on_grid set, returns a single feed under "matches"; otherwise
    returns both feeds and the AI context.
    """
    engine = MatchEngine(db, policy, enricher)
    result = await engine.search(
        user_id,
        query=body.search_query,
        filters=body.filters,
        exclude_ids=body.exclude_ids,
        is_on_grid=body.is_on_grid,
        limit=body.limit,
        charge_credits=body.charge_credits,
    )

    if body.is_on_grid is not None:
        return {
            "matches": result.on_grid if body.is_on_grid else result.off_grid,
            "credit_balance": result.credit_balance,
        }

    return {
        "on_grid_matches": result.on_grid,
        "off_grid_matches": result.off_grid,
        "ai_context": result.ai_context,
        "credit_balance": result.credit_balance,
    }


@router.post("/refresh-off-grid")
async def refresh_off_grid(
    body: RefreshIn | None = None,
    user_id: int = Depends(current_user_id),
    db: AsyncSession = Depends(get_db),
    policy: MatchPolicy = Depends(get_policy),
    enricher: PersonaEnricher = Depends(get_enricher),
) -> dict[str, Any]:
    """Re-run the last search as an off-grid-only exploration feed."""
    engine = MatchEngine(db, policy, enricher)
    result = await engine.refresh_off_grid(user_id, exclude_ids=body.exclude_ids if body else None)
    return {"matches": result.off_grid, "credit_balance": result.credit_balance}


@router.get("/user/{target_id}")
async def candidate_details(
    target_id: int,
    user_id: int = Depends(current_user_id),
    db: AsyncSession = Depends(get_db),
    policy: MatchPolicy = Depends(get_policy),
    enricher: PersonaEnricher = Depends(get_enricher),
) -> dict[str, Any]:
    engine = MatchEngine(db, policy, enricher)
    return {"user": await engine.details(user_id, target_id)}


@router.get("")
async def list_matches(
    user_id: int = Depends(current_user_id),
    db: AsyncSession = Depends(get_db),
    policy: MatchPolicy = Depends(get_policy),
) -> dict[str, Any]:
    """The caller's matches, most recently active first."""
    now = utcnow()
    rows = await LikeMatchStateMachine(db, policy).matches_for(user_id)
    return {
        "matches": [
            {
                "match_id": match.id,
                "matched_at": match.matched_at.isoformat(),
                "last_message_at": match.last_message_at.isoformat() if match.last_message_at else None,
                "user": candidate_card(other, profile, privacy, None, None, now),
            }
            for match, other, profile, privacy in rows
        ]
    }


@router.post("/{match_id}/unmatch")
async def unmatch(
    match_id: int,
    user_id: int = Depends(current_user_id),
    db: AsyncSession = Depends(get_db),
    policy: MatchPolicy = Depends(get_policy),
) -> dict[str, str]:
    await LikeMatchStateMachine(db, policy).unmatch(user_id, match_id)
    return {"message": "Unmatched successfully"}

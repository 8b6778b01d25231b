"""bw_betting REST endpoints.

POST /bets            — place a single or multi-leg bet
GET  /bets            — the caller's bets (status filter, search, sort)
GET  /bets/{bet_id}   — one leg with its group
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.bw_betting.application.schemas import PlaceBetRequest
from src.bw_betting.application.service import StakeReservationService
from src.bw_common.database import get_db_session
from src.bw_common.enums import BetSort, BetStatusFilter
from src.bw_common.response import ApiResponse, success_response
from src.bw_gateway.auth.dependencies import get_current_user
from src.bw_gateway.user.db_models import UserModel

router = APIRouter(prefix="/bets", tags=["bets"])

_service = StakeReservationService()


@router.post("")
async def place_bet(
    body: PlaceBetRequest,
    request: Request,
    current_user: Annotated[UserModel, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    result = await _service.reserve(
        db,
        str(current_user.id),
        [leg.to_domain() for leg in body.legs],
        body.stake_cents,
    )
    return success_response(result.model_dump(), request)


@router.get("")
async def list_bets(
    request: Request,
    current_user: Annotated[UserModel, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    status: BetStatusFilter | None = Query(None),
    search: str | None = Query(None, max_length=100, description="Match on selection label or team name"),
    sort: BetSort = Query(BetSort.RECENT),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
) -> ApiResponse:
    result = await _service.list_bets(
        db,
        str(current_user.id),
        status.value if status else None,
        search,
        sort.value,
        limit,
        offset,
    )
    return success_response(result.model_dump(), request)


@router.get("/{bet_id}")
async def get_bet(
    bet_id: str,
    request: Request,
    current_user: Annotated[UserModel, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    result = await _service.get_bet(db, str(current_user.id), bet_id)
    return success_response(result.model_dump(), request)

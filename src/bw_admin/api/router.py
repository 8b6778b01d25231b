"""Admin REST API. Every route requires users.is_admin."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from src.bw_admin.application.service import AdminService
from src.bw_common.database import get_db_session
from src.bw_common.enums import BetOutcome
from src.bw_common.response import ApiResponse, success_response
from src.bw_gateway.auth.dependencies import require_admin
from src.bw_gateway.user.db_models import UserModel

router = APIRouter(prefix="/admin", tags=["admin"])
_service = AdminService()


class SettleRequest(BaseModel):
    outcome: BetOutcome


@router.post("/bets/{bet_id}/settle")
async def settle_bet(
    bet_id: str,
    body: SettleRequest,
    request: Request,
    admin: Annotated[UserModel, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    result = await _service.settle_bet(db, bet_id, body.outcome)
    return success_response(result.model_dump(), request)


@router.post("/payments/expire")
async def expire_payments(
    request: Request,
    admin: Annotated[UserModel, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    limit: int = Query(200, ge=1, le=1000),
) -> ApiResponse:
    result = await _service.expire_payments(db, limit=limit)
    return success_response(result.model_dump(), request)


@router.get("/ledger/verify")
async def verify_ledger(
    request: Request,
    admin: Annotated[UserModel, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    result = await _service.verify_ledger(db)
    return success_response(result, request)

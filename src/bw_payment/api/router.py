"""bw_payment REST endpoints.

Client:
    POST /payments/deposits
    POST /payments/withdrawals
    GET  /payments/{gateway_ref}
    POST /payments/{gateway_ref}/verify
M-Pesa webhooks (shared-secret ?token=, answered with the Daraja ack):
    POST /payments/mpesa/callback
    POST /payments/mpesa/b2c-result
"""

import hmac
import logging
from typing import Annotated, Any

from fastapi import APIRouter, Body, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.bw_common.database import get_db_session
from src.bw_common.enums import PaymentDirection
from src.bw_common.errors import InvalidWebhookTokenError
from src.bw_common.response import ApiResponse, success_response
from src.bw_gateway.auth.dependencies import get_current_user
from src.bw_gateway.user.db_models import UserModel
from src.bw_payment.application.schemas import DepositRequest, MpesaAck, WithdrawalRequest
from src.bw_payment.application.service import PaymentService
from src.bw_payment.application.webhooks import parse_b2c_result, parse_stk_callback

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])

_service = PaymentService()


def verify_webhook_token(token: str | None = Query(None)) -> None:
    secret = settings.MPESA_CALLBACK_SECRET
    if not secret or not token or not hmac.compare_digest(token.encode(), secret.encode()):
        raise InvalidWebhookTokenError()


@router.post("/mpesa/callback", dependencies=[Depends(verify_webhook_token)])
async def mpesa_stk_callback(
    db: Annotated[AsyncSession, Depends(get_db_session)],
    payload: Annotated[dict[str, Any], Body()],
) -> MpesaAck:
    cb = parse_stk_callback(payload)
    await _service.on_gateway_confirmed(
        db,
        cb.gateway_ref,
        amount=cb.amount,
        direction=PaymentDirection.IN,
        confirmed=cb.confirmed,
        reason=cb.reason,
    )
    logger.info(
        "mpesa stk callback ref=%s confirmed=%s receipt=%s", cb.gateway_ref, cb.confirmed, cb.receipt
    )
    return MpesaAck()


@router.post("/mpesa/b2c-result", dependencies=[Depends(verify_webhook_token)])
async def mpesa_b2c_result(
    db: Annotated[AsyncSession, Depends(get_db_session)],
    payload: Annotated[dict[str, Any], Body()],
) -> MpesaAck:
    cb = parse_b2c_result(payload)
    await _service.on_gateway_confirmed(
        db,
        cb.gateway_ref,
        amount=cb.amount,
        direction=PaymentDirection.OUT,
        confirmed=cb.confirmed,
        reason=cb.reason,
        payment_id=cb.payment_id,
    )
    logger.info(
        "mpesa b2c result ref=%s confirmed=%s receipt=%s", cb.gateway_ref, cb.confirmed, cb.receipt
    )
    return MpesaAck()


@router.post("/deposits")
async def create_deposit(
    body: DepositRequest,
    request: Request,
    current_user: Annotated[UserModel, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    result = await _service.initiate_deposit(
        db,
        str(current_user.id),
        body.gateway,
        body.amount_cents,
        body.phone_number,
        purpose=body.purpose,
    )
    return success_response(result.model_dump(), request)


@router.post("/withdrawals")
async def create_withdrawal(
    body: WithdrawalRequest,
    request: Request,
    current_user: Annotated[UserModel, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    result = await _service.initiate_withdrawal(
        db, str(current_user.id), body.amount_cents, body.phone_number
    )
    return success_response(result.model_dump(), request)


@router.get("/{gateway_ref}")
async def get_payment(
    gateway_ref: str,
    request: Request,
    current_user: Annotated[UserModel, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    result = await _service.get_payment(db, str(current_user.id), gateway_ref)
    return success_response(result.model_dump(), request)


@router.post("/{gateway_ref}/verify")
async def verify_payment(
    gateway_ref: str,
    request: Request,
    current_user: Annotated[UserModel, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    result = await _service.verify(db, str(current_user.id), gateway_ref)
    return success_response(result.model_dump(), request)

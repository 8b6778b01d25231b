"""Identity endpoints under /auth.

    POST /auth/register   user + zero-balance wallet
    POST /auth/login      access/refresh token pair
    POST /auth/refresh    new access token
    GET  /auth/me         profile with current balance
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.bw_common.database import get_db_session
from src.bw_common.response import ApiResponse, success_response
from src.bw_gateway.auth.dependencies import get_current_user
from src.bw_gateway.user.db_models import UserModel
from src.bw_gateway.user.schemas import LoginRequest, RefreshRequest, RegisterRequest
from src.bw_gateway.user.service import UserService

router = APIRouter(prefix="/auth", tags=["auth"])
_service = UserService()


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(
    body: RegisterRequest,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    result = await _service.register(db, body.username, body.email, body.password)
    resp = success_response(result.model_dump(), request)
    resp.message = "User registered successfully"
    return resp


@router.post("/login")
async def login(
    body: LoginRequest,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    result = await _service.login(db, body.username, body.password)
    return success_response(result.model_dump(), request)


@router.post("/refresh")
async def refresh(body: RefreshRequest, request: Request) -> ApiResponse:
    result = await _service.refresh(body.refresh_token)
    return success_response(result.model_dump(), request)


@router.get("/me")
async def me(
    request: Request,
    current_user: Annotated[UserModel, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    result = await _service.profile(db, current_user)
    return success_response(result.model_dump(), request)

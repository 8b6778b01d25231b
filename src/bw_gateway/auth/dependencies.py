"""FastAPI dependencies: get_current_user, require_admin.

Usage in any protected router:
    from src.bw_gateway.auth.dependencies import get_current_user

    @router.get("/protected")
    async def protected(user: Annotated[UserModel, Depends(get_current_user)]):
        ...

Both raise AppError subclasses so auth failures share the ApiResponse envelope.
"""

import uuid
from typing import Annotated

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from src.bw_common.database import get_db_session
from src.bw_common.errors import (
    AccountDisabledError,
    AdminRequiredError,
    InvalidCredentialsError,
    NotAuthenticatedError,
)
from src.bw_gateway.auth.jwt_handler import decode_token
from src.bw_gateway.user.db_models import UserModel

# auto_error=False: a missing header is reported as NotAuthenticatedError below
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login", auto_error=False)


async def get_current_user(
    token: Annotated[str | None, Depends(oauth2_scheme)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> UserModel:
    """Resolve the Bearer access token to an active user.

    Raises NotAuthenticatedError (401) for a missing, malformed or expired
    token or an unknown user; AccountDisabledError (403) for a disabled one.
    """
    if not token:
        raise NotAuthenticatedError()
    try:
        payload = decode_token(token, expected_type="access")
        user_id = uuid.UUID(str(payload.get("sub")))
    except (InvalidCredentialsError, ValueError):
        raise NotAuthenticatedError() from None

    user = await db.get(UserModel, user_id)
    if user is None:
        raise NotAuthenticatedError()
    if not user.is_active:
        raise AccountDisabledError()
    return user


async def require_admin(
    current_user: Annotated[UserModel, Depends(get_current_user)],
) -> UserModel:
    """Gate for settlement, payment sweeps and ledger reconciliation."""
    if not current_user.is_admin:
        raise AdminRequiredError()
    return current_user

"""Identity service: register, login, refresh, profile.

Register is the one write here: the user row and its zero-balance wallet
commit together or not at all. Callers pass `user_id` on to the ledger core
explicitly; nothing below this layer looks at tokens.
"""

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.bw_common.cents import cents_to_display
from src.bw_common.datetime_utils import to_iso, utc_now
from src.bw_common.errors import (
    AccountDisabledError,
    EmailExistsError,
    InvalidCredentialsError,
    UsernameExistsError,
)
from src.bw_gateway.auth.jwt_handler import (
    create_access_token,
    create_refresh_token,
    decode_token,
)
from src.bw_gateway.auth.password import hash_password, verify_password
from src.bw_gateway.user.db_models import UserModel
from src.bw_gateway.user.schemas import (
    LoginResponse,
    ProfileResponse,
    RefreshResponse,
    RegisterResponse,
    UserInfo,
)
from src.bw_wallet.domain.repository import LedgerStoreProtocol
from src.bw_wallet.infrastructure.persistence import LedgerStore

logger = logging.getLogger(__name__)


def _user_info(user: UserModel) -> UserInfo:
    return UserInfo(
        user_id=str(user.id),
        username=user.username,
        email=user.email,
        is_admin=user.is_admin,
    )


class UserService:
    def __init__(self, ledger: LedgerStoreProtocol | None = None) -> None:
        self._ledger: LedgerStoreProtocol = ledger or LedgerStore()

    @staticmethod
    async def _find(db: AsyncSession, column: Any, value: str) -> UserModel | None:
        result = await db.execute(select(UserModel).where(column == value))
        return result.scalar_one_or_none()

    async def register(
        self, db: AsyncSession, username: str, email: str, password: str
    ) -> RegisterResponse:
        """Create the user and open their wallet in one transaction.

        Raises UsernameExistsError / EmailExistsError, also when a concurrent
        registration wins the unique index after the pre-checks passed.
        """
        try:
            if await self._find(db, UserModel.username, username) is not None:
                raise UsernameExistsError()
            if await self._find(db, UserModel.email, email) is not None:
                raise EmailExistsError()

            user = UserModel(
                username=username,
                email=email,
                password_hash=hash_password(password),
                is_active=True,
                is_admin=False,
            )
            db.add(user)
            await db.flush()
            wallet = await self._ledger.create_wallet(db, str(user.id))
            await db.commit()
        except IntegrityError as exc:
            await db.rollback()
            if "uq_users_email" in str(exc.orig):
                raise EmailExistsError() from exc
            raise UsernameExistsError() from exc
        except Exception:
            await db.rollback()
            raise

        logger.info("registered user=%s", user.id)
        return RegisterResponse(
            user_id=str(user.id),
            username=user.username,
            email=user.email,
            wallet_balance_cents=wallet.balance,
            created_at=to_iso(user.created_at),
        )

    async def login(self, db: AsyncSession, username: str, password: str) -> LoginResponse:
        """Issue an access/refresh pair.

        Unknown user and wrong password raise the same InvalidCredentialsError.
        """
        user = await self._find(db, UserModel.username, username)
        if user is None or not verify_password(password, user.password_hash):
            raise InvalidCredentialsError()
        if not user.is_active:
            raise AccountDisabledError()

        user_id = str(user.id)
        return LoginResponse(
            access_token=create_access_token(user_id),
            refresh_token=create_refresh_token(user_id),
            expires_in=settings.JWT_EXPIRE_MINUTES * 60,
            user=_user_info(user),
        )

    async def refresh(self, refresh_token: str) -> RefreshResponse:
        payload = decode_token(refresh_token, expected_type="refresh")
        return RefreshResponse(
            access_token=create_access_token(str(payload["sub"])),
            expires_in=settings.JWT_EXPIRE_MINUTES * 60,
        )

    async def profile(self, db: AsyncSession, user: UserModel) -> ProfileResponse:
        balance = await self._ledger.get_balance(db, str(user.id))
        access_until = user.daily_access_granted_until
        return ProfileResponse(
            user=_user_info(user),
            balance_cents=balance,
            balance_display=cents_to_display(balance),
            daily_access_until=to_iso(access_until),
            has_daily_access=access_until is not None and access_until > utc_now(),
        )

"""Unit tests for UserService (mocked DB and ledger store)."""

import uuid
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy.exc import IntegrityError

from src.bw_common.datetime_utils import utc_now
from src.bw_common.errors import (
    AccountDisabledError,
    EmailExistsError,
    InvalidCredentialsError,
    InvalidRefreshTokenError,
    UsernameExistsError,
)
from src.bw_gateway.auth.jwt_handler import create_access_token, create_refresh_token, decode_token
from src.bw_gateway.user.db_models import UserModel
from src.bw_gateway.user.service import UserService
from src.bw_wallet.domain.models import Wallet


def _make_user(is_active: bool = True) -> UserModel:
    user = UserModel()
    user.id = uuid.uuid4()
    user.username = "wanjiku"
    user.email = "wanjiku@example.com"
    user.password_hash = "$2b$12$fakehash"
    user.is_active = is_active
    user.is_admin = False
    return user


def _scalar(value: object) -> MagicMock:
    result = MagicMock()
    result.scalar_one_or_none.return_value = value
    return result


@pytest.fixture
def mock_db() -> AsyncMock:
    db = AsyncMock()
    db.add = MagicMock()
    return db


@pytest.fixture
def ledger() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def service(ledger: AsyncMock) -> UserService:
    return UserService(ledger=ledger)


class TestRegister:
    async def test_duplicate_username(self, service: UserService, mock_db: AsyncMock) -> None:
        mock_db.execute = AsyncMock(return_value=_scalar(_make_user()))
        with pytest.raises(UsernameExistsError):
            await service.register(mock_db, "wanjiku", "new@example.com", "Pass1word")
        mock_db.rollback.assert_awaited_once()
        mock_db.commit.assert_not_awaited()

    async def test_duplicate_email(self, service: UserService, mock_db: AsyncMock) -> None:
        mock_db.execute = AsyncMock(side_effect=[_scalar(None), _scalar(_make_user())])
        with pytest.raises(EmailExistsError):
            await service.register(mock_db, "otieno", "wanjiku@example.com", "Pass1word")

    async def test_opens_zero_wallet_and_commits(
        self, service: UserService, mock_db: AsyncMock, ledger: AsyncMock
    ) -> None:
        mock_db.execute = AsyncMock(side_effect=[_scalar(None), _scalar(None)])
        new_id = uuid.uuid4()

        async def _flush() -> None:
            added = mock_db.add.call_args.args[0]
            added.id = new_id

        mock_db.flush = AsyncMock(side_effect=_flush)
        ledger.create_wallet.return_value = Wallet(
            id="w-1", user_id=str(new_id), balance=0, version=0
        )

        with patch("src.bw_gateway.user.service.hash_password", return_value="hashed"):
            resp = await service.register(mock_db, "otieno", "otieno@example.com", "Pass1word")

        assert resp.user_id == str(new_id)
        assert resp.wallet_balance_cents == 0
        ledger.create_wallet.assert_awaited_once_with(mock_db, str(new_id))
        mock_db.commit.assert_awaited_once()
        assert mock_db.add.call_args.args[0].is_admin is False

    @pytest.mark.parametrize(
        ("constraint", "error"),
        [("uq_users_email", EmailExistsError), ("uq_users_username", UsernameExistsError)],
    )
    async def test_lost_race_on_unique_index(
        self,
        service: UserService,
        mock_db: AsyncMock,
        constraint: str,
        error: type[Exception],
    ) -> None:
        mock_db.execute = AsyncMock(side_effect=[_scalar(None), _scalar(None)])
        mock_db.flush = AsyncMock(
            side_effect=IntegrityError("INSERT", {}, Exception(f"violates {constraint}"))
        )

        with (
            patch("src.bw_gateway.user.service.hash_password", return_value="hashed"),
            pytest.raises(error),
        ):
            await service.register(mock_db, "otieno", "otieno@example.com", "Pass1word")
        mock_db.rollback.assert_awaited_once()


class TestLogin:
    async def test_unknown_user(self, service: UserService, mock_db: AsyncMock) -> None:
        mock_db.execute = AsyncMock(return_value=_scalar(None))
        with pytest.raises(InvalidCredentialsError):
            await service.login(mock_db, "nobody", "Pass1word")

    async def test_wrong_password(self, service: UserService, mock_db: AsyncMock) -> None:
        mock_db.execute = AsyncMock(return_value=_scalar(_make_user()))
        with (
            patch("src.bw_gateway.user.service.verify_password", return_value=False),
            pytest.raises(InvalidCredentialsError),
        ):
            await service.login(mock_db, "wanjiku", "WrongPass1")

    async def test_disabled_account(self, service: UserService, mock_db: AsyncMock) -> None:
        mock_db.execute = AsyncMock(return_value=_scalar(_make_user(is_active=False)))
        with (
            patch("src.bw_gateway.user.service.verify_password", return_value=True),
            pytest.raises(AccountDisabledError),
        ):
            await service.login(mock_db, "wanjiku", "Pass1word")

    async def test_success_returns_token_pair(
        self, service: UserService, mock_db: AsyncMock
    ) -> None:
        user = _make_user()
        mock_db.execute = AsyncMock(return_value=_scalar(user))
        with patch("src.bw_gateway.user.service.verify_password", return_value=True):
            resp = await service.login(mock_db, "wanjiku", "Pass1word")

        assert resp.user.username == "wanjiku"
        assert resp.token_type == "Bearer"
        assert decode_token(resp.access_token, "access")["sub"] == str(user.id)
        assert decode_token(resp.refresh_token, "refresh")["sub"] == str(user.id)


class TestRefresh:
    async def test_issues_access_token(self, service: UserService) -> None:
        resp = await service.refresh(create_refresh_token("user-123"))
        assert decode_token(resp.access_token, "access")["sub"] == "user-123"

    async def test_garbage_token(self, service: UserService) -> None:
        with pytest.raises(InvalidRefreshTokenError):
            await service.refresh("not.a.real.token")

    async def test_access_token_rejected(self, service: UserService) -> None:
        with pytest.raises(InvalidRefreshTokenError):
            await service.refresh(create_access_token("user-123"))


class TestProfile:
    async def test_includes_balance(self, service: UserService, ledger: AsyncMock) -> None:
        ledger.get_balance.return_value = 108_000
        user = _make_user()

        resp = await service.profile(AsyncMock(), user)

        assert resp.user.user_id == str(user.id)
        assert resp.balance_cents == 108_000
        assert resp.balance_display == "KES 1,080.00"
        ledger.get_balance.assert_awaited_once()
        assert resp.has_daily_access is False
        assert resp.daily_access_until is None

    @pytest.mark.parametrize(
        ("offset", "active"), [(timedelta(hours=5), True), (timedelta(hours=-1), False)]
    )
    async def test_daily_access_window(
        self, service: UserService, ledger: AsyncMock, offset: timedelta, active: bool
    ) -> None:
        ledger.get_balance.return_value = 0
        user = _make_user()
        user.daily_access_granted_until = utc_now() + offset

        resp = await service.profile(AsyncMock(), user)

        assert resp.has_daily_access is active
        assert resp.daily_access_until is not None

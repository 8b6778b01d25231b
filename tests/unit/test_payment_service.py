"""Unit tests for PaymentService — fake gateways, mock repository and ledger."""

from dataclasses import replace
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.bw_common.enums import PaymentDirection, PaymentGateway, PaymentPurpose
from src.bw_common.errors import (
    DuplicateExternalRefError,
    InsufficientFundsError,
    InvalidPaymentAmountError,
    InvalidPhoneNumberError,
    PaymentGatewayError,
    PaymentMismatchError,
    PaymentOutcomeUnknownError,
    UnknownPaymentError,
)
from src.bw_payment.application.service import (
    PaymentService,
    daily_access_expiry,
    normalize_phone,
)
from src.bw_payment.domain.models import GatewayInitiation, GatewayStatus, Payment
from src.bw_wallet.domain.models import Wallet

PHONE = "254712345678"


def _payment(
    status: str = "pending",
    direction: str = "in",
    amount: int = 50_000,
    gateway: str = "mpesa",
    ref: str = "ws_CO_1",
    purpose: str = "deposit",
) -> Payment:
    return Payment(
        id="pay_1",
        user_id="user-1",
        gateway=gateway,
        gateway_ref=ref,
        amount=amount,
        direction=direction,
        status=status,
        phone_number=PHONE,
        purpose=purpose,
    )


def _service(
    payment: Payment | None = None,
) -> tuple[PaymentService, AsyncMock, AsyncMock, AsyncMock, AsyncMock]:
    repo = AsyncMock()
    repo.insert.side_effect = lambda db, p: p
    repo.lock_by_ref.return_value = payment
    repo.get_by_ref.return_value = payment
    if payment is not None:
        repo.mark_resolved.side_effect = lambda db, pid, status, reason: replace(
            payment, status=status, failure_reason=reason
        )
    ledger = AsyncMock()
    ledger.append.return_value = (
        Wallet(id="w1", user_id="user-1", balance=0, version=1),
        MagicMock(),
    )
    mpesa = AsyncMock()
    mpesa.start_deposit.return_value = GatewayInitiation(
        gateway_ref="ws_CO_1", message="Check your phone"
    )
    mpesa.start_payout.return_value = GatewayInitiation(gateway_ref="AG_2024_1")
    paypal = AsyncMock()
    paypal.start_deposit.return_value = GatewayInitiation(
        gateway_ref="ORDER-1", approval_url="https://paypal.test/approve"
    )
    svc = PaymentService(
        repo=repo,
        ledger=ledger,
        gateways={"mpesa": mpesa, "paypal": paypal},
        payout=mpesa,
    )
    return svc, repo, ledger, mpesa, paypal


class TestNormalizePhone:
    @pytest.mark.parametrize("raw", ["254712345678", "+254712345678", " 254112345678 "])
    def test_accepts(self, raw: str) -> None:
        assert normalize_phone(raw).startswith("254")

    @pytest.mark.parametrize("raw", [None, "", "0712345678", "25471234567", "254812345678"])
    def test_rejects(self, raw: str | None) -> None:
        with pytest.raises(InvalidPhoneNumberError):
            normalize_phone(raw)


class TestInitiateDeposit:
    async def test_mpesa_writes_pending_after_gateway_accepts(self) -> None:
        svc, repo, ledger, mpesa, _ = _service()
        db = AsyncMock()

        resp = await svc.initiate_deposit(db, "user-1", PaymentGateway.MPESA, 50_000, "+" + PHONE)

        mpesa.start_deposit.assert_awaited_once()
        stored = repo.insert.await_args.args[1]
        assert stored.gateway_ref == "ws_CO_1"
        assert stored.status == "pending"
        assert stored.direction == "in"
        assert stored.phone_number == PHONE
        assert stored.purpose == "deposit"
        ledger.append.assert_not_awaited()
        db.commit.assert_awaited_once()
        assert resp.message == "Check your phone"

    async def test_paypal_returns_approval_url(self) -> None:
        svc, _, _, _, paypal = _service()

        resp = await svc.initiate_deposit(AsyncMock(), "user-1", PaymentGateway.PAYPAL, 10_050)

        paypal.start_deposit.assert_awaited_once()
        assert resp.approval_url == "https://paypal.test/approve"
        assert resp.gateway_ref == "ORDER-1"

    async def test_gateway_refusal_writes_nothing(self) -> None:
        svc, repo, _, mpesa, _ = _service()
        mpesa.start_deposit.side_effect = PaymentGatewayError("M-Pesa", "rejected")
        db = AsyncMock()

        with pytest.raises(PaymentGatewayError):
            await svc.initiate_deposit(db, "user-1", PaymentGateway.MPESA, 50_000, PHONE)

        repo.insert.assert_not_awaited()
        db.commit.assert_not_awaited()

    @pytest.mark.parametrize("amount", [0, 9_999, 10_000_001])
    async def test_amount_out_of_range(self, amount: int) -> None:
        svc, _, _, mpesa, _ = _service()
        with pytest.raises(InvalidPaymentAmountError):
            await svc.initiate_deposit(AsyncMock(), "user-1", PaymentGateway.MPESA, amount, PHONE)
        mpesa.start_deposit.assert_not_awaited()

    async def test_mpesa_needs_whole_shillings(self) -> None:
        svc, _, _, _, _ = _service()
        with pytest.raises(InvalidPaymentAmountError):
            await svc.initiate_deposit(AsyncMock(), "user-1", PaymentGateway.MPESA, 10_050, PHONE)

    async def test_mpesa_needs_phone(self) -> None:
        svc, _, _, _, _ = _service()
        with pytest.raises(InvalidPhoneNumberError):
            await svc.initiate_deposit(AsyncMock(), "user-1", PaymentGateway.MPESA, 50_000)

    async def test_daily_access_records_purpose(self) -> None:
        svc, repo, _, _, paypal = _service()

        resp = await svc.initiate_deposit(
            AsyncMock(),
            "user-1",
            PaymentGateway.PAYPAL,
            50_000,
            purpose=PaymentPurpose.DAILY_ACCESS,
        )

        paypal.start_deposit.assert_awaited_once()
        assert repo.insert.await_args.args[1].purpose == "daily_access"
        assert resp.purpose == "daily_access"

    @pytest.mark.parametrize("amount", [10_000, 49_900, 100_000])
    async def test_daily_access_must_pay_the_price(self, amount: int) -> None:
        svc, _, _, mpesa, _ = _service()
        with pytest.raises(InvalidPaymentAmountError, match="daily access costs KES 500.00"):
            await svc.initiate_deposit(
                AsyncMock(),
                "user-1",
                PaymentGateway.MPESA,
                amount,
                PHONE,
                purpose=PaymentPurpose.DAILY_ACCESS,
            )
        mpesa.start_deposit.assert_not_awaited()

    async def test_withdrawal_purpose_refused(self) -> None:
        svc, _, _, mpesa, _ = _service()
        with pytest.raises(ValueError):
            await svc.initiate_deposit(
                AsyncMock(),
                "user-1",
                PaymentGateway.MPESA,
                200_000,
                PHONE,
                purpose=PaymentPurpose.WITHDRAWAL,
            )
        mpesa.start_deposit.assert_not_awaited()


class TestInitiateWithdrawal:
    async def test_debits_then_sends_payout(self) -> None:
        svc, repo, ledger, mpesa, _ = _service()
        db = AsyncMock()

        resp = await svc.initiate_withdrawal(db, "user-1", 200_000, PHONE)

        entry = ledger.append.await_args.args[1]
        assert entry.kind.value == "withdrawal"
        assert entry.amount == -200_000
        stored = repo.insert.await_args.args[1]
        assert entry.external_ref == stored.id
        assert stored.direction == "out"
        assert stored.purpose == "withdrawal"
        mpesa.start_payout.assert_awaited_once_with(stored.id, 200_000, PHONE)
        repo.update_gateway_ref.assert_awaited_once_with(db, stored.id, "AG_2024_1")
        assert resp.gateway_ref == "AG_2024_1"
        assert db.commit.await_count == 2

    async def test_insufficient_funds_sends_nothing(self) -> None:
        svc, repo, ledger, mpesa, _ = _service()
        ledger.append.side_effect = InsufficientFundsError(200_000, 1_000)
        db = AsyncMock()

        with pytest.raises(InsufficientFundsError):
            await svc.initiate_withdrawal(db, "user-1", 200_000, PHONE)

        repo.insert.assert_not_awaited()
        mpesa.start_payout.assert_not_awaited()
        db.rollback.assert_awaited_once()

    async def test_payout_rejection_reverses_debit(self) -> None:
        svc, repo, ledger, mpesa, _ = _service()
        pending = _payment(direction="out", amount=200_000, ref="pay_1")
        repo.lock_by_ref.return_value = pending
        repo.mark_resolved.side_effect = lambda db, pid, status, reason: replace(
            pending, status=status, failure_reason=reason
        )
        mpesa.start_payout.side_effect = PaymentGatewayError("M-Pesa", "insufficient float")

        with pytest.raises(PaymentGatewayError):
            await svc.initiate_withdrawal(AsyncMock(), "user-1", 200_000, PHONE)

        kinds = [c.args[1].kind.value for c in ledger.append.await_args_list]
        assert kinds == ["withdrawal", "withdrawal_reversed"]
        reversal = ledger.append.await_args_list[1].args[1]
        assert reversal.amount == 200_000
        assert repo.mark_resolved.await_args.args[2] == "failed"
        repo.update_gateway_ref.assert_not_awaited()

    async def test_unanswered_payout_stays_pending(self) -> None:
        svc, repo, ledger, mpesa, _ = _service()
        mpesa.start_payout.side_effect = PaymentOutcomeUnknownError("M-Pesa", "ReadTimeout")
        db = AsyncMock()

        resp = await svc.initiate_withdrawal(db, "user-1", 200_000, PHONE)

        assert resp.status == "pending"
        assert resp.gateway_ref == repo.insert.await_args.args[1].id
        assert [c.args[1].kind.value for c in ledger.append.await_args_list] == ["withdrawal"]
        repo.mark_resolved.assert_not_awaited()
        repo.update_gateway_ref.assert_not_awaited()

    async def test_below_minimum(self) -> None:
        svc, _, ledger, _, _ = _service()
        with pytest.raises(InvalidPaymentAmountError):
            await svc.initiate_withdrawal(AsyncMock(), "user-1", 199_900, PHONE)
        ledger.append.assert_not_awaited()


class TestOnGatewayConfirmed:
    async def test_confirmed_deposit_credits_once(self) -> None:
        svc, repo, ledger, _, _ = _service(_payment())
        db = AsyncMock()

        result = await svc.on_gateway_confirmed(
            db, "ws_CO_1", amount=50_000, direction=PaymentDirection.IN
        )

        assert result.applied is True
        assert result.payment.status == "confirmed"
        entry = ledger.append.await_args.args[1]
        assert entry.kind.value == "deposit"
        assert entry.amount == 50_000
        assert entry.external_ref == "ws_CO_1"
        db.commit.assert_awaited_once()

    async def test_replay_is_a_no_op(self) -> None:
        svc, repo, ledger, _, _ = _service(_payment(status="confirmed"))
        db = AsyncMock()

        result = await svc.on_gateway_confirmed(db, "ws_CO_1")

        assert result.applied is False
        repo.mark_resolved.assert_not_awaited()
        ledger.append.assert_not_awaited()
        db.commit.assert_not_awaited()

    async def test_lost_cas_race_is_a_no_op(self) -> None:
        svc, repo, ledger, _, _ = _service(_payment())
        repo.mark_resolved.side_effect = None
        repo.mark_resolved.return_value = None

        result = await svc.on_gateway_confirmed(AsyncMock(), "ws_CO_1")

        assert result.applied is False
        ledger.append.assert_not_awaited()

    async def test_duplicate_ledger_ref_is_a_replay(self) -> None:
        svc, _, ledger, _, _ = _service(_payment())
        ledger.append.side_effect = DuplicateExternalRefError("ws_CO_1")
        db = AsyncMock()

        result = await svc.on_gateway_confirmed(db, "ws_CO_1")

        assert result.applied is False
        db.rollback.assert_awaited_once()
        db.commit.assert_not_awaited()

    async def test_unknown_reference(self) -> None:
        svc, _, _, _, _ = _service(None)
        db = AsyncMock()

        with pytest.raises(UnknownPaymentError):
            await svc.on_gateway_confirmed(db, "nope")
        db.rollback.assert_awaited_once()

    @pytest.mark.parametrize(
        ("kwargs", "fragment"),
        [
            ({"amount": 49_900}, "amount"),
            ({"user_id": "user-2"}, "user"),
            ({"direction": PaymentDirection.OUT}, "direction"),
        ],
    )
    async def test_mismatch_writes_nothing(self, kwargs: dict, fragment: str) -> None:
        svc, repo, ledger, _, _ = _service(_payment())

        with pytest.raises(PaymentMismatchError, match=fragment):
            await svc.on_gateway_confirmed(AsyncMock(), "ws_CO_1", **kwargs)

        repo.mark_resolved.assert_not_awaited()
        ledger.append.assert_not_awaited()

    async def test_failed_deposit_moves_no_money(self) -> None:
        svc, repo, ledger, _, _ = _service(_payment())

        result = await svc.on_gateway_confirmed(
            AsyncMock(), "ws_CO_1", confirmed=False, reason="Cancelled by customer"
        )

        assert result.applied is True
        assert result.payment.status == "failed"
        assert result.payment.failure_reason == "Cancelled by customer"
        ledger.append.assert_not_awaited()

    async def test_confirmed_withdrawal_moves_no_money(self) -> None:
        svc, _, ledger, _, _ = _service(_payment(direction="out", ref="AG_1"))

        result = await svc.on_gateway_confirmed(AsyncMock(), "AG_1", direction=PaymentDirection.OUT)

        assert result.applied is True
        ledger.append.assert_not_awaited()

    async def test_failed_withdrawal_is_credited_back(self) -> None:
        svc, _, ledger, _, _ = _service(_payment(direction="out", amount=200_000, ref="AG_1"))

        await svc.on_gateway_confirmed(AsyncMock(), "AG_1", confirmed=False, reason="timeout")

        entry = ledger.append.await_args.args[1]
        assert entry.kind.value == "withdrawal_reversed"
        assert entry.amount == 200_000
        assert entry.external_ref == "pay_1"

    async def test_unanswered_payout_matched_by_payment_id(self) -> None:
        svc, repo, ledger, _, _ = _service()
        pending = _payment(direction="out", amount=200_000, ref="pay_1")
        repo.lock_by_ref.side_effect = lambda db, ref: pending if ref == "pay_1" else None
        repo.mark_resolved.side_effect = lambda db, pid, status, reason: replace(
            pending, status=status, failure_reason=reason
        )

        result = await svc.on_gateway_confirmed(
            AsyncMock(), "AG_late", direction=PaymentDirection.OUT, payment_id="pay_1"
        )

        assert result.applied is True
        assert result.payment.status == "confirmed"
        assert [c.args[1] for c in repo.lock_by_ref.await_args_list] == ["AG_late", "pay_1"]
        ledger.append.assert_not_awaited()

    async def test_payment_id_not_tried_when_ref_matches(self) -> None:
        svc, repo, _, _, _ = _service(_payment(direction="out", ref="AG_1"))

        await svc.on_gateway_confirmed(AsyncMock(), "AG_1", payment_id="pay_1")

        repo.lock_by_ref.assert_awaited_once()


class TestDailyAccess:
    def test_expiry_is_end_of_next_nairobi_day(self) -> None:
        # 22:30 UTC is already 01:30 on the 20th in Nairobi
        paid_at = datetime(2026, 10, 19, 22, 30, tzinfo=UTC)

        until = daily_access_expiry(paid_at)

        assert until.astimezone(UTC) == datetime(2026, 10, 21, 20, 59, 59, 999_999, tzinfo=UTC)

    async def test_confirmation_grants_access_without_ledger_entry(self) -> None:
        svc, repo, ledger, _, _ = _service(_payment(purpose="daily_access"))
        granted = datetime(2026, 10, 21, 20, 59, 59, tzinfo=UTC)
        repo.grant_daily_access.return_value = granted
        db = AsyncMock()

        result = await svc.on_gateway_confirmed(db, "ws_CO_1", amount=50_000)

        assert result.applied is True
        assert result.access_until == granted
        assert repo.grant_daily_access.await_args.args[1] == "user-1"
        ledger.append.assert_not_awaited()
        db.commit.assert_awaited_once()

    async def test_replayed_confirmation_grants_nothing(self) -> None:
        svc, repo, _, _, _ = _service(_payment(status="confirmed", purpose="daily_access"))

        result = await svc.on_gateway_confirmed(AsyncMock(), "ws_CO_1")

        assert result.applied is False
        repo.grant_daily_access.assert_not_awaited()

    async def test_failed_payment_grants_nothing(self) -> None:
        svc, repo, ledger, _, _ = _service(_payment(purpose="daily_access"))

        result = await svc.on_gateway_confirmed(
            AsyncMock(), "ws_CO_1", confirmed=False, reason="Cancelled by customer"
        )

        assert result.payment.status == "failed"
        repo.grant_daily_access.assert_not_awaited()
        ledger.append.assert_not_awaited()


class TestVerify:
    async def test_paypal_capture_confirms(self) -> None:
        svc, _, ledger, _, paypal = _service(_payment(gateway="paypal", ref="ORDER-1"))
        paypal.check.return_value = GatewayStatus("ORDER-1", "confirmed", amount=50_000)

        resp = await svc.verify(AsyncMock(), "user-1", "ORDER-1")

        assert resp.status == "confirmed"
        ledger.append.assert_awaited_once()

    async def test_still_pending(self) -> None:
        svc, repo, _, mpesa, _ = _service(_payment())
        mpesa.check.return_value = GatewayStatus("ws_CO_1", "pending")

        resp = await svc.verify(AsyncMock(), "user-1", "ws_CO_1")

        assert resp.status == "pending"
        repo.lock_by_ref.assert_not_awaited()

    async def test_resolved_payment_skips_gateway(self) -> None:
        svc, _, _, mpesa, _ = _service(_payment(status="confirmed"))

        resp = await svc.verify(AsyncMock(), "user-1", "ws_CO_1")

        assert resp.status == "confirmed"
        mpesa.check.assert_not_awaited()

    async def test_other_users_payment(self) -> None:
        svc, _, _, mpesa, _ = _service(_payment())
        with pytest.raises(UnknownPaymentError):
            await svc.verify(AsyncMock(), "user-2", "ws_CO_1")
        mpesa.check.assert_not_awaited()


class TestExpireStale:
    async def test_counts_outcomes(self) -> None:
        svc, repo, ledger, _, _ = _service()
        fresh = _payment(ref="a")
        done = _payment(ref="b", status="confirmed")
        repo.list_stale.return_value = [fresh, done, _payment(ref="c")]
        repo.lock_by_ref.side_effect = [fresh, done, None]
        repo.mark_resolved.side_effect = lambda db, pid, status, reason: replace(
            fresh, status=status, failure_reason=reason
        )
        now = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)

        report = await svc.expire_stale(AsyncMock(), now=now, limit=50)

        assert report.examined == 3
        assert report.expired == 1
        assert report.already_resolved == 1
        assert len(report.errors) == 1
        cutoff = repo.list_stale.await_args.args[1]
        assert cutoff == datetime(2026, 1, 1, 11, 45, tzinfo=UTC)
        assert repo.list_stale.await_args.args[2] == 50
        ledger.append.assert_not_awaited()

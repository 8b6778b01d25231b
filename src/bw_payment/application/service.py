"""Payment credit gateway adapter.

Money moves only through `on_gateway_confirmed`, which resolves a pending
payment under a row lock and appends the matching ledger entry in the same
transaction. Replays of an already-resolved payment change nothing, and the
ledger's unique (user, kind, external_ref) index stops a second credit even
if two confirmations race past the status check.

A daily_access payment buys a day of odds access at the gateway. Its money
never enters the wallet, so confirming it writes no ledger entry; it extends
users.daily_access_granted_until under the same payment row lock.

Withdrawals are debited up front, together with their pending row, before
the payout request goes out. A payout the gateway rejects, or that fails or
never confirms, is credited back with a `withdrawal_reversed` entry. A payout
whose request got no answer stays pending: its result callback, matched on
our payment id, or the expiry sweep resolves it.
"""

import logging
import re
from datetime import datetime, time, timedelta, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.bw_common.cents import cents_to_display
from src.bw_common.datetime_utils import utc_now
from src.bw_common.enums import (
    LedgerEntryKind,
    PaymentDirection,
    PaymentGateway,
    PaymentPurpose,
    PaymentStatus,
)
from src.bw_common.errors import (
    AppError,
    DuplicateExternalRefError,
    InvalidPaymentAmountError,
    InvalidPhoneNumberError,
    PaymentGatewayError,
    PaymentMismatchError,
    PaymentOutcomeUnknownError,
    UnknownPaymentError,
)
from src.bw_common.id_generator import generate_id
from src.bw_payment.application.schemas import ExpireReport, PaymentResponse
from src.bw_payment.domain.gateway import DepositGateway, PayoutGateway
from src.bw_payment.domain.models import ConfirmationResult, Payment
from src.bw_payment.domain.repository import PaymentRepositoryProtocol
from src.bw_payment.infrastructure.mpesa_client import MpesaClient
from src.bw_payment.infrastructure.paypal_client import PayPalClient
from src.bw_payment.infrastructure.persistence import PaymentRepository
from src.bw_wallet.domain.models import NewLedgerEntry
from src.bw_wallet.domain.repository import LedgerStoreProtocol
from src.bw_wallet.infrastructure.persistence import LedgerStore

logger = logging.getLogger(__name__)

_KENYAN_PHONE = re.compile(r"^254[17]\d{8}$")

# Daily access runs on Nairobi calendar days
_EAT = timezone(timedelta(hours=3))


def normalize_phone(phone_number: str | None) -> str:
    phone = (phone_number or "").strip().lstrip("+")
    if not _KENYAN_PHONE.match(phone):
        raise InvalidPhoneNumberError(phone_number or "")
    return phone


def daily_access_expiry(paid_at: datetime) -> datetime:
    """End of the day after payment, Nairobi time."""
    day = paid_at.astimezone(_EAT).date() + timedelta(days=1)
    return datetime.combine(day, time.max, tzinfo=_EAT)


class PaymentService:
    def __init__(
        self,
        repo: PaymentRepositoryProtocol | None = None,
        ledger: LedgerStoreProtocol | None = None,
        gateways: dict[str, DepositGateway] | None = None,
        payout: PayoutGateway | None = None,
    ) -> None:
        self._repo: PaymentRepositoryProtocol = repo or PaymentRepository()
        self._ledger: LedgerStoreProtocol = ledger or LedgerStore()
        if gateways is None or payout is None:
            mpesa = MpesaClient()
            gateways = gateways or {
                PaymentGateway.MPESA.value: mpesa,
                PaymentGateway.PAYPAL.value: PayPalClient(),
            }
            payout = payout or mpesa
        self._gateways = gateways
        self._payout = payout

    # ------------------------------------------------------------------
    # Initiation
    # ------------------------------------------------------------------

    async def initiate_deposit(
        self,
        db: AsyncSession,
        user_id: str,
        gateway: PaymentGateway,
        amount: int,
        phone_number: str | None = None,
        purpose: PaymentPurpose = PaymentPurpose.DEPOSIT,
    ) -> PaymentResponse:
        """Start an inbound payment at the gateway, then record it as pending.

        Nothing is written if the gateway refuses, so a failed start leaves
        no row behind. on_gateway_confirmed later credits the wallet, or
        grants daily access for a daily_access payment.
        """
        if purpose == PaymentPurpose.WITHDRAWAL:
            raise ValueError("withdrawals go through initiate_withdrawal")
        if purpose == PaymentPurpose.DAILY_ACCESS:
            if amount != settings.DAILY_ACCESS_PRICE_CENTS:
                raise InvalidPaymentAmountError(
                    f"daily access costs {cents_to_display(settings.DAILY_ACCESS_PRICE_CENTS)}"
                )
        elif amount < settings.MIN_DEPOSIT_CENTS or amount > settings.MAX_DEPOSIT_CENTS:
            raise InvalidPaymentAmountError(
                f"deposits must be between {cents_to_display(settings.MIN_DEPOSIT_CENTS)}"
                f" and {cents_to_display(settings.MAX_DEPOSIT_CENTS)}"
            )
        phone: str | None = None
        if gateway == PaymentGateway.MPESA:
            if amount % 100:
                raise InvalidPaymentAmountError("M-Pesa amounts must be whole shillings")
            phone = normalize_phone(phone_number)

        payment_id = generate_id("pay_")
        initiation = await self._gateways[gateway.value].start_deposit(
            payment_id, user_id, amount, phone
        )
        try:
            payment = await self._repo.insert(
                db,
                Payment(
                    id=payment_id,
                    user_id=user_id,
                    gateway=gateway.value,
                    gateway_ref=initiation.gateway_ref,
                    amount=amount,
                    direction=PaymentDirection.IN.value,
                    status=PaymentStatus.PENDING.value,
                    phone_number=phone,
                    purpose=purpose.value,
                ),
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info(
            "deposit initiated user=%s payment=%s gateway=%s purpose=%s ref=%s amount=%d",
            user_id,
            payment_id,
            gateway.value,
            purpose.value,
            initiation.gateway_ref,
            amount,
        )
        return PaymentResponse.from_payment(
            payment, approval_url=initiation.approval_url, message=initiation.message
        )

    async def initiate_withdrawal(
        self, db: AsyncSession, user_id: str, amount: int, phone_number: str
    ) -> PaymentResponse:
        """Debit the wallet and send an M-Pesa B2C payout.

        Raises InsufficientFundsError before anything is sent. A gateway
        rejection fails the payment, credits the amount back, and re-raises.
        An unanswered request leaves the payment pending and debited.
        """
        if amount < settings.MIN_WITHDRAWAL_CENTS:
            raise InvalidPaymentAmountError(
                f"minimum withdrawal is {cents_to_display(settings.MIN_WITHDRAWAL_CENTS)}"
            )
        if amount % 100:
            raise InvalidPaymentAmountError("M-Pesa amounts must be whole shillings")
        phone = normalize_phone(phone_number)

        payment_id = generate_id("pay_")
        try:
            await self._ledger.append(
                db,
                NewLedgerEntry(
                    user_id=user_id,
                    kind=LedgerEntryKind.WITHDRAWAL,
                    amount=-amount,
                    external_ref=payment_id,
                    description=f"M-Pesa withdrawal to {phone}",
                ),
            )
            # gateway_ref is the payment id until the gateway assigns its own
            payment = await self._repo.insert(
                db,
                Payment(
                    id=payment_id,
                    user_id=user_id,
                    gateway=PaymentGateway.MPESA.value,
                    gateway_ref=payment_id,
                    amount=amount,
                    direction=PaymentDirection.OUT.value,
                    status=PaymentStatus.PENDING.value,
                    phone_number=phone,
                    purpose=PaymentPurpose.WITHDRAWAL.value,
                ),
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        try:
            initiation = await self._payout.start_payout(payment_id, amount, phone)
        except PaymentOutcomeUnknownError as exc:
            logger.warning(
                "withdrawal outcome unknown user=%s payment=%s amount=%d: %s",
                user_id,
                payment_id,
                amount,
                exc.message,
            )
            return PaymentResponse.from_payment(
                payment, message="Withdrawal submitted. Awaiting M-Pesa confirmation."
            )
        except PaymentGatewayError as exc:
            await self.on_gateway_confirmed(
                db, payment_id, confirmed=False, reason=exc.message
            )
            raise

        try:
            await self._repo.update_gateway_ref(db, payment_id, initiation.gateway_ref)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        payment.gateway_ref = initiation.gateway_ref

        logger.info(
            "withdrawal initiated user=%s payment=%s ref=%s amount=%d",
            user_id,
            payment_id,
            initiation.gateway_ref,
            amount,
        )
        return PaymentResponse.from_payment(payment, message=initiation.message)

    # ------------------------------------------------------------------
    # Confirmation
    # ------------------------------------------------------------------

    async def on_gateway_confirmed(
        self,
        db: AsyncSession,
        gateway_ref: str,
        user_id: str | None = None,
        amount: int | None = None,
        direction: PaymentDirection | None = None,
        confirmed: bool = True,
        reason: str | None = None,
        payment_id: str | None = None,
    ) -> ConfirmationResult:
        """Resolve a pending payment exactly once.

        payment_id is tried when gateway_ref matches nothing: a payout whose
        request went unanswered is still filed under its own id.

        Raises:
            UnknownPaymentError: no payment with this gateway_ref.
            PaymentMismatchError: user, amount or direction disagree with the record.
        """
        try:
            payment = await self._repo.lock_by_ref(db, gateway_ref)
            if payment is None and payment_id and payment_id != gateway_ref:
                payment = await self._repo.lock_by_ref(db, payment_id)
            if payment is None:
                raise UnknownPaymentError(gateway_ref)
            self._check_matches(payment, user_id, amount, direction)

            if payment.status != PaymentStatus.PENDING.value:
                await db.rollback()
                self._log_replay(payment, confirmed)
                return ConfirmationResult(payment=payment, applied=False)

            new_status = PaymentStatus.CONFIRMED if confirmed else PaymentStatus.FAILED
            resolved = await self._repo.mark_resolved(
                db, payment.id, new_status.value, None if confirmed else reason
            )
            if resolved is None:
                await db.rollback()
                self._log_replay(payment, confirmed)
                return ConfirmationResult(payment=payment, applied=False)

            access_until: datetime | None = None
            if confirmed and payment.purpose == PaymentPurpose.DAILY_ACCESS.value:
                access_until = await self._repo.grant_daily_access(
                    db, payment.user_id, daily_access_expiry(utc_now())
                )
            elif confirmed and payment.direction == PaymentDirection.IN.value:
                await self._ledger.append(
                    db,
                    NewLedgerEntry(
                        user_id=payment.user_id,
                        kind=LedgerEntryKind.DEPOSIT,
                        amount=payment.amount,
                        external_ref=payment.gateway_ref,
                        description=f"{payment.gateway} deposit {payment.gateway_ref}",
                    ),
                )
            elif not confirmed and payment.direction == PaymentDirection.OUT.value:
                await self._ledger.append(
                    db,
                    NewLedgerEntry(
                        user_id=payment.user_id,
                        kind=LedgerEntryKind.WITHDRAWAL_REVERSED,
                        amount=payment.amount,
                        external_ref=payment.id,
                        description=f"Withdrawal {payment.id} failed: {reason or 'no reason given'}",
                    ),
                )
            await db.commit()
        except DuplicateExternalRefError:
            await db.rollback()
            logger.info("payment already credited ref=%s, treating as replay", gateway_ref)
            return ConfirmationResult(payment=payment, applied=False)
        except Exception:
            await db.rollback()
            raise

        logger.info(
            "payment resolved payment=%s ref=%s direction=%s purpose=%s status=%s amount=%d",
            resolved.id,
            gateway_ref,
            resolved.direction,
            resolved.purpose,
            resolved.status,
            resolved.amount,
        )
        if access_until is not None:
            logger.info(
                "daily access granted user=%s until=%s", resolved.user_id, access_until.isoformat()
            )
        return ConfirmationResult(payment=resolved, applied=True, access_until=access_until)

    @staticmethod
    def _check_matches(
        payment: Payment,
        user_id: str | None,
        amount: int | None,
        direction: PaymentDirection | None,
    ) -> None:
        if user_id is not None and user_id != payment.user_id:
            raise PaymentMismatchError(payment.gateway_ref, "user differs")
        if amount is not None and amount != payment.amount:
            raise PaymentMismatchError(
                payment.gateway_ref, f"amount {amount} != expected {payment.amount}"
            )
        if direction is not None and direction.value != payment.direction:
            raise PaymentMismatchError(
                payment.gateway_ref, f"direction {direction.value} != {payment.direction}"
            )

    @staticmethod
    def _log_replay(payment: Payment, confirmed: bool) -> None:
        incoming = PaymentStatus.CONFIRMED.value if confirmed else PaymentStatus.FAILED.value
        if incoming != payment.status:
            # e.g. money arrived after the sweeper expired the payment
            logger.warning(
                "late %s for resolved payment=%s ref=%s status=%s, needs manual review",
                incoming,
                payment.id,
                payment.gateway_ref,
                payment.status,
            )
            return
        logger.info(
            "duplicate confirmation ignored payment=%s ref=%s status=%s",
            payment.id,
            payment.gateway_ref,
            payment.status,
        )

    # ------------------------------------------------------------------
    # Client verification and reconciliation
    # ------------------------------------------------------------------

    async def get_payment(
        self, db: AsyncSession, user_id: str, gateway_ref: str
    ) -> PaymentResponse:
        payment = await self._repo.get_by_ref(db, gateway_ref)
        if payment is None or payment.user_id != user_id:
            raise UnknownPaymentError(gateway_ref)
        return PaymentResponse.from_payment(payment)

    async def verify(
        self, db: AsyncSession, user_id: str, gateway_ref: str
    ) -> PaymentResponse:
        """Ask the gateway about a pending deposit (PayPal capture, M-Pesa STK query)."""
        payment = await self._repo.get_by_ref(db, gateway_ref)
        if payment is None or payment.user_id != user_id:
            raise UnknownPaymentError(gateway_ref)
        if (
            payment.status != PaymentStatus.PENDING.value
            or payment.direction != PaymentDirection.IN.value
        ):
            return PaymentResponse.from_payment(payment)

        status = await self._gateways[payment.gateway].check(gateway_ref)
        if status.state == PaymentStatus.PENDING.value:
            return PaymentResponse.from_payment(payment)

        result = await self.on_gateway_confirmed(
            db,
            gateway_ref,
            user_id=user_id,
            amount=status.amount,
            direction=PaymentDirection.IN,
            confirmed=status.state == PaymentStatus.CONFIRMED.value,
            reason=status.reason,
        )
        return PaymentResponse.from_payment(result.payment)

    async def expire_stale(
        self, db: AsyncSession, now: datetime | None = None, limit: int = 200
    ) -> ExpireReport:
        """Fail pending payments older than the timeout; outbound ones are credited back."""
        timeout = settings.PENDING_PAYMENT_TIMEOUT_MINUTES
        cutoff = (now or utc_now()) - timedelta(minutes=timeout)
        stale = await self._repo.list_stale(db, cutoff, limit)

        expired = 0
        already_resolved = 0
        errors: list[str] = []
        for payment in stale:
            try:
                result = await self.on_gateway_confirmed(
                    db,
                    payment.gateway_ref,
                    confirmed=False,
                    reason=f"Expired: no gateway confirmation within {timeout} minutes",
                )
            except AppError as exc:
                logger.error("payment expiry failed payment=%s: %s", payment.id, exc.message)
                errors.append(f"{payment.id}: {exc.message}")
                continue
            if result.applied:
                expired += 1
            else:
                already_resolved += 1

        logger.info(
            "payment sweep cutoff=%s examined=%d expired=%d already_resolved=%d errors=%d",
            cutoff.isoformat(),
            len(stale),
            expired,
            already_resolved,
            len(errors),
        )
        return ExpireReport(
            examined=len(stale),
            expired=expired,
            already_resolved=already_resolved,
            errors=errors,
        )

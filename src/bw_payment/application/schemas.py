"""Pydantic schemas for bw_payment API."""

from pydantic import BaseModel, Field, field_validator

from src.bw_common.cents import cents_to_display
from src.bw_common.datetime_utils import to_iso
from src.bw_common.enums import PaymentGateway, PaymentPurpose
from src.bw_payment.domain.models import Payment


class DepositRequest(BaseModel):
    gateway: PaymentGateway
    amount_cents: int
    phone_number: str | None = Field(None, max_length=20)
    purpose: PaymentPurpose = PaymentPurpose.DEPOSIT

    @field_validator("purpose")
    @classmethod
    def inbound_purpose(cls, v: PaymentPurpose) -> PaymentPurpose:
        if v == PaymentPurpose.WITHDRAWAL:
            raise ValueError("use /payments/withdrawals to withdraw")
        return v


class WithdrawalRequest(BaseModel):
    amount_cents: int
    phone_number: str = Field(..., max_length=20)


class PaymentResponse(BaseModel):
    id: str
    gateway: str
    gateway_ref: str
    direction: str
    purpose: str
    status: str
    amount_cents: int
    amount_display: str
    phone_number: str | None
    failure_reason: str | None
    created_at: str | None
    resolved_at: str | None
    approval_url: str | None = None
    message: str | None = None

    @classmethod
    def from_payment(
        cls, p: Payment, approval_url: str | None = None, message: str | None = None
    ) -> "PaymentResponse":
        return cls(
            id=p.id,
            gateway=p.gateway,
            gateway_ref=p.gateway_ref,
            direction=p.direction,
            purpose=p.purpose,
            status=p.status,
            amount_cents=p.amount,
            amount_display=cents_to_display(p.amount),
            phone_number=p.phone_number,
            failure_reason=p.failure_reason,
            created_at=to_iso(p.created_at),
            resolved_at=to_iso(p.resolved_at),
            approval_url=approval_url,
            message=message,
        )


class ExpireReport(BaseModel):
    examined: int
    expired: int
    already_resolved: int
    errors: list[str]


class MpesaAck(BaseModel):
    """The acknowledgement body Daraja expects on every callback."""

    ResultCode: int = 0
    ResultDesc: str = "Accepted"

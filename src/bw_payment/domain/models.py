"""Domain models for bw_payment — pure dataclasses, no SQLAlchemy dependency."""

from dataclasses import dataclass
from datetime import datetime


@dataclass
class Payment:
    """A payment waiting on (or resolved by) an external gateway."""

    id: str
    user_id: str
    gateway: str                  # PaymentGateway value
    gateway_ref: str              # CheckoutRequestID / ConversationID / PayPal order id
    amount: int                   # cents, always positive
    direction: str                # PaymentDirection value
    status: str                   # PaymentStatus value
    phone_number: str | None = None
    purpose: str = "deposit"      # PaymentPurpose value
    failure_reason: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    resolved_at: datetime | None = None


@dataclass(frozen=True)
class GatewayInitiation:
    """What a gateway hands back when a payment is started."""

    gateway_ref: str
    approval_url: str | None = None
    message: str | None = None


@dataclass(frozen=True)
class GatewayStatus:
    """A gateway's verdict on a payment. state is pending, confirmed or failed."""

    gateway_ref: str
    state: str
    amount: int | None = None     # cents, when the gateway reports it
    reason: str | None = None


@dataclass(frozen=True)
class GatewayCallback:
    """A parsed webhook body, ready for on_gateway_confirmed."""

    gateway_ref: str
    confirmed: bool
    amount: int | None = None
    reason: str | None = None
    receipt: str | None = None
    # our payment id, when the gateway echoes it back (B2C OriginatorConversationID)
    payment_id: str | None = None


@dataclass
class ConfirmationResult:
    payment: Payment
    # False for replays: the payment was already resolved, nothing was written
    applied: bool
    # daily_access payments: the grant now on the user
    access_until: datetime | None = None

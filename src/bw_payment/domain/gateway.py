"""Gateway protocols — the service talks to M-Pesa and PayPal only through these."""

from typing import Protocol

from src.bw_payment.domain.models import GatewayInitiation, GatewayStatus


class DepositGateway(Protocol):
    async def start_deposit(
        self, payment_id: str, user_id: str, amount: int, phone_number: str | None
    ) -> GatewayInitiation: ...

    async def check(self, gateway_ref: str) -> GatewayStatus: ...


class PayoutGateway(Protocol):
    async def start_payout(
        self, payment_id: str, amount: int, phone_number: str
    ) -> GatewayInitiation: ...

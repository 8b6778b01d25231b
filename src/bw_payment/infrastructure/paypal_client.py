"""PayPal Orders v2 client: OAuth, create order, capture order.

A deposit is an order created with intent CAPTURE. The customer approves it
on PayPal, then `check` captures it; the capture result is the confirmation.
"""

import logging
from typing import Any

import httpx

from config.settings import settings
from src.bw_common.cents import cents_to_major, major_to_cents
from src.bw_common.enums import PaymentStatus
from src.bw_common.errors import PaymentGatewayError
from src.bw_payment.domain.models import GatewayInitiation, GatewayStatus

logger = logging.getLogger(__name__)

_BASE_URLS = {
    "live": "https://api-m.paypal.com",
    "sandbox": "https://api-m.sandbox.paypal.com",
}

_GATEWAY = "PayPal"


class PayPalClient:
    def __init__(self, client: httpx.AsyncClient | None = None) -> None:
        base_url = _BASE_URLS.get(settings.PAYPAL_ENVIRONMENT, _BASE_URLS["sandbox"])
        self._client = client or httpx.AsyncClient(
            base_url=base_url, timeout=settings.GATEWAY_TIMEOUT_SECONDS
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _access_token(self) -> str:
        if not settings.PAYPAL_CLIENT_ID or not settings.PAYPAL_CLIENT_SECRET:
            raise PaymentGatewayError(_GATEWAY, "credentials not configured")
        try:
            resp = await self._client.post(
                "/v1/oauth2/token",
                data={"grant_type": "client_credentials"},
                auth=(settings.PAYPAL_CLIENT_ID, settings.PAYPAL_CLIENT_SECRET),
            )
        except httpx.HTTPError as exc:
            raise PaymentGatewayError(_GATEWAY, f"authentication failed: {exc}") from exc
        if resp.status_code != 200:
            raise PaymentGatewayError(_GATEWAY, f"authentication failed: HTTP {resp.status_code}")
        token = resp.json().get("access_token")
        if not token:
            raise PaymentGatewayError(_GATEWAY, "authentication returned no access token")
        return str(token)

    async def _request(
        self, method: str, path: str, payload: dict[str, Any] | None = None
    ) -> tuple[int, dict[str, Any]]:
        token = await self._access_token()
        try:
            resp = await self._client.request(
                method,
                path,
                json=payload,
                headers={
                    "Authorization": f"Bearer {token}",
                    "Content-Type": "application/json",
                },
            )
        except httpx.HTTPError as exc:
            raise PaymentGatewayError(_GATEWAY, f"{path} failed: {exc}") from exc
        try:
            body = resp.json() if resp.content else {}
        except ValueError as exc:
            raise PaymentGatewayError(
                _GATEWAY, f"unreadable response (HTTP {resp.status_code})"
            ) from exc
        return resp.status_code, body

    async def start_deposit(
        self, payment_id: str, user_id: str, amount: int, phone_number: str | None
    ) -> GatewayInitiation:
        payload = {
            "intent": "CAPTURE",
            "purchase_units": [
                {
                    "reference_id": payment_id,
                    "amount": {
                        "currency_code": settings.CURRENCY,
                        "value": cents_to_major(amount),
                    },
                    "description": "BetWise wallet deposit",
                    "custom_id": user_id,
                }
            ],
            "application_context": {
                "return_url": settings.PAYPAL_RETURN_URL,
                "cancel_url": settings.PAYPAL_CANCEL_URL,
                "brand_name": "BetWise",
                "landing_page": "LOGIN",
                "user_action": "PAY_NOW",
                "shipping_preference": "NO_SHIPPING",
            },
        }
        status_code, body = await self._request("POST", "/v2/checkout/orders", payload)
        if status_code not in (200, 201) or body.get("status") != "CREATED":
            logger.warning(
                "paypal order rejected payment=%s http=%d status=%s",
                payment_id,
                status_code,
                body.get("status") or body.get("name"),
            )
            raise PaymentGatewayError(_GATEWAY, f"order creation failed: HTTP {status_code}")
        approval_url = next(
            (
                link.get("href")
                for link in body.get("links", [])
                if link.get("rel") in ("approve", "payer-action")
            ),
            None,
        )
        logger.info("paypal order created payment=%s order=%s", payment_id, body["id"])
        return GatewayInitiation(
            gateway_ref=str(body["id"]),
            approval_url=approval_url,
            message="Complete the payment on PayPal to add funds to your wallet.",
        )

    async def check(self, gateway_ref: str) -> GatewayStatus:
        """Capture the order. Unapproved orders stay pending; voided ones fail."""
        status_code, body = await self._request(
            "POST", f"/v2/checkout/orders/{gateway_ref}/capture"
        )
        if status_code == 422:
            issues = {d.get("issue") for d in body.get("details", [])}
            if "ORDER_ALREADY_CAPTURED" in issues:
                status_code, body = await self._request(
                    "GET", f"/v2/checkout/orders/{gateway_ref}"
                )
            elif "ORDER_NOT_APPROVED" in issues:
                return GatewayStatus(gateway_ref=gateway_ref, state=PaymentStatus.PENDING.value)
        if status_code == 404:
            return GatewayStatus(
                gateway_ref=gateway_ref,
                state=PaymentStatus.FAILED.value,
                reason="Order not found at PayPal",
            )
        if status_code not in (200, 201):
            raise PaymentGatewayError(_GATEWAY, f"capture failed: HTTP {status_code}")

        order_status = body.get("status")
        if order_status == "COMPLETED":
            return GatewayStatus(
                gateway_ref=gateway_ref,
                state=PaymentStatus.CONFIRMED.value,
                amount=self._captured_amount(body),
            )
        if order_status == "VOIDED":
            return GatewayStatus(
                gateway_ref=gateway_ref,
                state=PaymentStatus.FAILED.value,
                reason="Order voided",
            )
        return GatewayStatus(gateway_ref=gateway_ref, state=PaymentStatus.PENDING.value)

    @staticmethod
    def _captured_amount(body: dict[str, Any]) -> int | None:
        try:
            unit = body["purchase_units"][0]
            captures = unit.get("payments", {}).get("captures", [])
            value = captures[0]["amount"]["value"] if captures else unit["amount"]["value"]
            return major_to_cents(value)
        except (KeyError, IndexError, TypeError, ValueError):
            logger.warning("paypal capture without readable amount order=%s", body.get("id"))
            return None

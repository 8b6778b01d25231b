"""M-Pesa Daraja client: OAuth, STK push, STK query and B2C payouts.

Amounts cross this boundary in cents and go on the wire as whole shillings.
A request that never left (connect failure, pool timeout) or a non-success
answer becomes PaymentGatewayError. A transport failure after the request was
sent becomes PaymentOutcomeUnknownError: Safaricom may already be acting on it.
"""

import base64
import logging
from datetime import datetime, timedelta, timezone
from typing import Any
from urllib.parse import urlencode

import httpx

from config.settings import settings
from src.bw_common.enums import PaymentStatus
from src.bw_common.errors import PaymentGatewayError, PaymentOutcomeUnknownError
from src.bw_payment.domain.models import GatewayInitiation, GatewayStatus

logger = logging.getLogger(__name__)

_BASE_URLS = {
    "live": "https://api.safaricom.co.ke",
    "sandbox": "https://sandbox.safaricom.co.ke",
}

# Daraja timestamps are in Nairobi local time
_EAT = timezone(timedelta(hours=3))

# STK query answers this while the customer has not responded yet
_STILL_PROCESSING = "500.001.1001"
_CANCELLED_BY_USER = "1032"

_GATEWAY = "M-Pesa"

_NOT_SENT = (httpx.ConnectError, httpx.ConnectTimeout, httpx.PoolTimeout)


def _with_token(url: str) -> str:
    if not settings.MPESA_CALLBACK_SECRET:
        return url
    sep = "&" if "?" in url else "?"
    return f"{url}{sep}{urlencode({'token': settings.MPESA_CALLBACK_SECRET})}"


class MpesaClient:
    def __init__(self, client: httpx.AsyncClient | None = None) -> None:
        base_url = _BASE_URLS.get(settings.MPESA_ENVIRONMENT, _BASE_URLS["sandbox"])
        self._client = client or httpx.AsyncClient(
            base_url=base_url, timeout=settings.GATEWAY_TIMEOUT_SECONDS
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    def _timestamp_and_password(self) -> tuple[str, str]:
        timestamp = datetime.now(_EAT).strftime("%Y%m%d%H%M%S")
        raw = f"{settings.MPESA_SHORTCODE}{settings.MPESA_PASSKEY}{timestamp}"
        return timestamp, base64.b64encode(raw.encode()).decode()

    async def _access_token(self) -> str:
        if not settings.MPESA_CONSUMER_KEY or not settings.MPESA_CONSUMER_SECRET:
            raise PaymentGatewayError(_GATEWAY, "credentials not configured")
        try:
            resp = await self._client.get(
                "/oauth/v1/generate",
                params={"grant_type": "client_credentials"},
                auth=(settings.MPESA_CONSUMER_KEY, settings.MPESA_CONSUMER_SECRET),
            )
        except httpx.HTTPError as exc:
            raise PaymentGatewayError(_GATEWAY, f"authentication failed: {exc}") from exc
        if resp.status_code != 200:
            raise PaymentGatewayError(_GATEWAY, f"authentication failed: HTTP {resp.status_code}")
        token = resp.json().get("access_token")
        if not token:
            raise PaymentGatewayError(_GATEWAY, "authentication returned no access token")
        return str(token)

    async def _post(self, path: str, payload: dict[str, Any]) -> httpx.Response:
        token = await self._access_token()
        try:
            return await self._client.post(
                path, json=payload, headers={"Authorization": f"Bearer {token}"}
            )
        except _NOT_SENT as exc:
            raise PaymentGatewayError(_GATEWAY, f"{path} failed: {exc}") from exc
        except httpx.TransportError as exc:
            raise PaymentOutcomeUnknownError(_GATEWAY, f"{path}: {exc!r}") from exc
        except httpx.HTTPError as exc:
            raise PaymentGatewayError(_GATEWAY, f"{path} failed: {exc}") from exc

    @staticmethod
    def _json(resp: httpx.Response) -> dict[str, Any]:
        try:
            body = resp.json()
        except ValueError as exc:
            raise PaymentGatewayError(
                _GATEWAY, f"unreadable response (HTTP {resp.status_code})"
            ) from exc
        if not isinstance(body, dict):
            raise PaymentGatewayError(_GATEWAY, f"unexpected response (HTTP {resp.status_code})")
        return body

    async def start_deposit(
        self, payment_id: str, user_id: str, amount: int, phone_number: str | None
    ) -> GatewayInitiation:
        """STK push: the customer gets a PIN prompt; the result arrives on the callback."""
        if not phone_number:
            raise PaymentGatewayError(_GATEWAY, "phone number is required")
        if not settings.MPESA_PASSKEY:
            raise PaymentGatewayError(_GATEWAY, "passkey not configured")
        timestamp, password = self._timestamp_and_password()
        payload = {
            "BusinessShortCode": settings.MPESA_SHORTCODE,
            "Password": password,
            "Timestamp": timestamp,
            "TransactionType": "CustomerPayBillOnline",
            "Amount": amount // 100,
            "PartyA": phone_number,
            "PartyB": settings.MPESA_SHORTCODE,
            "PhoneNumber": phone_number,
            "CallBackURL": _with_token(settings.MPESA_CALLBACK_URL),
            "AccountReference": f"BetWise-{payment_id}"[:20],
            "TransactionDesc": "BetWise deposit",
        }
        resp = await self._post("/mpesa/stkpush/v1/processrequest", payload)
        body = self._json(resp)
        if resp.status_code != 200 or str(body.get("ResponseCode")) != "0":
            detail = body.get("errorMessage") or body.get("ResponseDescription") or resp.status_code
            logger.warning("mpesa stk push rejected payment=%s detail=%s", payment_id, detail)
            raise PaymentGatewayError(_GATEWAY, f"deposit rejected: {detail}")
        checkout_id = body.get("CheckoutRequestID")
        if not checkout_id:
            raise PaymentGatewayError(_GATEWAY, "STK push returned no CheckoutRequestID")
        logger.info("mpesa stk push sent payment=%s checkout=%s", payment_id, checkout_id)
        return GatewayInitiation(
            gateway_ref=str(checkout_id),
            message=body.get("CustomerMessage")
            or "Check your phone and enter your M-Pesa PIN to complete the deposit.",
        )

    async def check(self, gateway_ref: str) -> GatewayStatus:
        """STK query. Daraja does not echo the amount here, so amount stays None."""
        timestamp, password = self._timestamp_and_password()
        payload = {
            "BusinessShortCode": settings.MPESA_SHORTCODE,
            "Password": password,
            "Timestamp": timestamp,
            "CheckoutRequestID": gateway_ref,
        }
        resp = await self._post("/mpesa/stkpushquery/v1/query", payload)
        body = self._json(resp)
        if body.get("errorCode") == _STILL_PROCESSING:
            return GatewayStatus(gateway_ref=gateway_ref, state=PaymentStatus.PENDING.value)
        if resp.status_code != 200 or "ResultCode" not in body:
            detail = body.get("errorMessage") or resp.status_code
            raise PaymentGatewayError(_GATEWAY, f"STK query failed: {detail}")

        result_code = str(body["ResultCode"])
        if result_code == "0":
            return GatewayStatus(gateway_ref=gateway_ref, state=PaymentStatus.CONFIRMED.value)
        reason = str(body.get("ResultDesc") or f"ResultCode {result_code}")
        if result_code == _CANCELLED_BY_USER:
            reason = "Cancelled by customer"
        return GatewayStatus(
            gateway_ref=gateway_ref, state=PaymentStatus.FAILED.value, reason=reason
        )

    async def start_payout(
        self, payment_id: str, amount: int, phone_number: str
    ) -> GatewayInitiation:
        """B2C BusinessPayment. The ConversationID becomes the payment's gateway_ref.

        OriginatorConversationID carries our payment id and comes back in the
        result callback, so the result can be matched even when this call
        never returned a ConversationID.
        """
        if not settings.MPESA_B2C_SECURITY_CREDENTIAL:
            raise PaymentGatewayError(_GATEWAY, "B2C security credential not configured")
        payload = {
            "InitiatorName": settings.MPESA_B2C_INITIATOR,
            "SecurityCredential": settings.MPESA_B2C_SECURITY_CREDENTIAL,
            "CommandID": "BusinessPayment",
            "Amount": amount // 100,
            "PartyA": settings.MPESA_SHORTCODE,
            "PartyB": phone_number,
            "Remarks": "BetWise withdrawal",
            "QueueTimeOutURL": _with_token(settings.MPESA_B2C_TIMEOUT_URL),
            "ResultURL": _with_token(settings.MPESA_B2C_RESULT_URL),
            "Occasion": payment_id,
            "OriginatorConversationID": payment_id,
        }
        resp = await self._post("/mpesa/b2c/v1/paymentrequest", payload)
        body = self._json(resp)
        if resp.status_code != 200 or str(body.get("ResponseCode")) != "0":
            detail = body.get("errorMessage") or body.get("ResponseDescription") or resp.status_code
            logger.warning("mpesa b2c rejected payment=%s detail=%s", payment_id, detail)
            raise PaymentGatewayError(_GATEWAY, f"withdrawal rejected: {detail}")
        conversation_id = body.get("ConversationID")
        if not conversation_id:
            # accepted (ResponseCode 0) but unidentified: the payout may still go out
            raise PaymentOutcomeUnknownError(_GATEWAY, "B2C accepted without a ConversationID")
        logger.info("mpesa b2c sent payment=%s conversation=%s", payment_id, conversation_id)
        return GatewayInitiation(
            gateway_ref=str(conversation_id),
            message="Withdrawal initiated. Funds will be sent to your M-Pesa account.",
        )

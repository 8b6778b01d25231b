"""Gateway client tests against httpx.MockTransport — no network."""

import base64
import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from config.settings import settings
from src.bw_common.errors import PaymentGatewayError, PaymentOutcomeUnknownError
from src.bw_payment.application.service import PaymentService
from src.bw_payment.infrastructure.mpesa_client import MpesaClient
from src.bw_payment.infrastructure.paypal_client import PayPalClient
from src.bw_wallet.domain.models import Wallet


@pytest.fixture
def gateway_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "MPESA_CONSUMER_KEY", "ck")
    monkeypatch.setattr(settings, "MPESA_CONSUMER_SECRET", "cs")
    monkeypatch.setattr(settings, "MPESA_PASSKEY", "passkey")
    monkeypatch.setattr(settings, "MPESA_SHORTCODE", "174379")
    monkeypatch.setattr(settings, "MPESA_B2C_SECURITY_CREDENTIAL", "cred")
    monkeypatch.setattr(settings, "MPESA_CALLBACK_SECRET", "s3cret")
    monkeypatch.setattr(settings, "PAYPAL_CLIENT_ID", "pid")
    monkeypatch.setattr(settings, "PAYPAL_CLIENT_SECRET", "psecret")


def _mpesa(routes: dict[str, httpx.Response], seen: list[httpx.Request]) -> MpesaClient:
    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.url.path == "/oauth/v1/generate":
            return httpx.Response(200, json={"access_token": "tok", "expires_in": "3599"})
        return routes[request.url.path]

    transport = httpx.MockTransport(handler)
    return MpesaClient(httpx.AsyncClient(transport=transport, base_url="https://daraja.test"))


def _b2c_timing_out() -> MpesaClient:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/oauth/v1/generate":
            return httpx.Response(200, json={"access_token": "tok"})
        raise httpx.ReadTimeout("timed out", request=request)

    transport = httpx.MockTransport(handler)
    return MpesaClient(httpx.AsyncClient(transport=transport, base_url="https://daraja.test"))


def _paypal(responses: list[httpx.Response], seen: list[httpx.Request]) -> PayPalClient:
    queue = list(responses)

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.url.path == "/v1/oauth2/token":
            return httpx.Response(200, json={"access_token": "tok"})
        return queue.pop(0)

    transport = httpx.MockTransport(handler)
    return PayPalClient(httpx.AsyncClient(transport=transport, base_url="https://paypal.test"))


@pytest.mark.usefixtures("gateway_settings")
class TestMpesaClient:
    async def test_stk_push(self) -> None:
        seen: list[httpx.Request] = []
        client = _mpesa(
            {
                "/mpesa/stkpush/v1/processrequest": httpx.Response(
                    200,
                    json={
                        "MerchantRequestID": "m1",
                        "CheckoutRequestID": "ws_CO_1",
                        "ResponseCode": "0",
                        "CustomerMessage": "Success. Request accepted for processing",
                    },
                )
            },
            seen,
        )

        init = await client.start_deposit("pay_1", "user-1", 50_000, "254712345678")

        assert init.gateway_ref == "ws_CO_1"
        body = json.loads(seen[1].content)
        assert body["Amount"] == 500
        assert body["PhoneNumber"] == "254712345678"
        assert body["CallBackURL"].endswith("?token=s3cret")
        password = base64.b64decode(body["Password"]).decode()
        assert password == f"174379passkey{body['Timestamp']}"
        assert seen[1].headers["Authorization"] == "Bearer tok"

    async def test_stk_push_rejected(self) -> None:
        client = _mpesa(
            {
                "/mpesa/stkpush/v1/processrequest": httpx.Response(
                    400, json={"errorCode": "400.002.02", "errorMessage": "Bad Request"}
                )
            },
            [],
        )
        with pytest.raises(PaymentGatewayError, match="Bad Request"):
            await client.start_deposit("pay_1", "user-1", 50_000, "254712345678")

    async def test_oauth_failure(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, text="unauthorized")

        client = MpesaClient(
            httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="https://d.test")
        )
        with pytest.raises(PaymentGatewayError, match="authentication failed"):
            await client.start_deposit("pay_1", "user-1", 50_000, "254712345678")

    @pytest.mark.parametrize(
        ("response", "state", "reason"),
        [
            (httpx.Response(200, json={"ResultCode": "0", "ResultDesc": "ok"}), "confirmed", None),
            (
                httpx.Response(200, json={"ResultCode": "1032", "ResultDesc": "cancelled"}),
                "failed",
                "Cancelled by customer",
            ),
            (
                httpx.Response(200, json={"ResultCode": "1", "ResultDesc": "Insufficient balance"}),
                "failed",
                "Insufficient balance",
            ),
            (
                httpx.Response(
                    500,
                    json={"errorCode": "500.001.1001", "errorMessage": "still processing"},
                ),
                "pending",
                None,
            ),
        ],
    )
    async def test_stk_query(self, response: httpx.Response, state: str, reason: str | None) -> None:
        client = _mpesa({"/mpesa/stkpushquery/v1/query": response}, [])

        status = await client.check("ws_CO_1")

        assert status.state == state
        assert status.reason == reason
        assert status.amount is None

    async def test_b2c_payout(self) -> None:
        seen: list[httpx.Request] = []
        client = _mpesa(
            {
                "/mpesa/b2c/v1/paymentrequest": httpx.Response(
                    200,
                    json={
                        "ConversationID": "AG_1",
                        "OriginatorConversationID": "o1",
                        "ResponseCode": "0",
                    },
                )
            },
            seen,
        )

        init = await client.start_payout("pay_9", 200_000, "254712345678")

        assert init.gateway_ref == "AG_1"
        body = json.loads(seen[1].content)
        assert body["Amount"] == 2_000
        assert body["Occasion"] == "pay_9"
        assert body["OriginatorConversationID"] == "pay_9"
        assert body["CommandID"] == "BusinessPayment"

    async def test_b2c_read_timeout_is_outcome_unknown(self) -> None:
        client = _b2c_timing_out()

        with pytest.raises(PaymentOutcomeUnknownError):
            await client.start_payout("pay_9", 200_000, "254712345678")

    async def test_b2c_accepted_without_conversation_id(self) -> None:
        client = _mpesa(
            {"/mpesa/b2c/v1/paymentrequest": httpx.Response(200, json={"ResponseCode": "0"})},
            [],
        )

        with pytest.raises(PaymentOutcomeUnknownError):
            await client.start_payout("pay_9", 200_000, "254712345678")

    async def test_b2c_rejection_is_definite(self) -> None:
        client = _mpesa(
            {
                "/mpesa/b2c/v1/paymentrequest": httpx.Response(
                    200, json={"ResponseCode": "1", "ResponseDescription": "Insufficient float"}
                )
            },
            [],
        )

        with pytest.raises(PaymentGatewayError, match="Insufficient float"):
            await client.start_payout("pay_9", 200_000, "254712345678")

    async def test_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("unreachable", request=request)

        client = MpesaClient(
            httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="https://d.test")
        )
        with pytest.raises(PaymentGatewayError):
            await client.check("ws_CO_1")


@pytest.mark.usefixtures("gateway_settings")
class TestPayPalClient:
    async def test_create_order(self) -> None:
        seen: list[httpx.Request] = []
        client = _paypal(
            [
                httpx.Response(
                    201,
                    json={
                        "id": "ORDER-1",
                        "status": "CREATED",
                        "links": [
                            {"rel": "self", "href": "https://paypal.test/self"},
                            {"rel": "approve", "href": "https://paypal.test/approve"},
                        ],
                    },
                )
            ],
            seen,
        )

        init = await client.start_deposit("pay_1", "user-1", 10_050, None)

        assert init.gateway_ref == "ORDER-1"
        assert init.approval_url == "https://paypal.test/approve"
        unit = json.loads(seen[1].content)["purchase_units"][0]
        assert unit["amount"]["value"] == "100.50"
        assert unit["reference_id"] == "pay_1"
        assert unit["custom_id"] == "user-1"

    async def test_create_order_rejected(self) -> None:
        client = _paypal([httpx.Response(400, json={"name": "INVALID_REQUEST"})], [])
        with pytest.raises(PaymentGatewayError):
            await client.start_deposit("pay_1", "user-1", 10_000, None)

    async def test_capture_completed(self) -> None:
        client = _paypal(
            [
                httpx.Response(
                    201,
                    json={
                        "id": "ORDER-1",
                        "status": "COMPLETED",
                        "purchase_units": [
                            {
                                "payments": {
                                    "captures": [{"amount": {"value": "100.50", "currency_code": "KES"}}]
                                }
                            }
                        ],
                    },
                )
            ],
            [],
        )

        status = await client.check("ORDER-1")

        assert status.state == "confirmed"
        assert status.amount == 10_050

    async def test_already_captured_reads_order(self) -> None:
        seen: list[httpx.Request] = []
        client = _paypal(
            [
                httpx.Response(422, json={"details": [{"issue": "ORDER_ALREADY_CAPTURED"}]}),
                httpx.Response(
                    200,
                    json={
                        "id": "ORDER-1",
                        "status": "COMPLETED",
                        "purchase_units": [{"amount": {"value": "100.00"}}],
                    },
                ),
            ],
            seen,
        )

        status = await client.check("ORDER-1")

        assert status.state == "confirmed"
        assert status.amount == 10_000
        assert seen[-1].method == "GET"

    async def test_not_approved_is_pending(self) -> None:
        client = _paypal(
            [httpx.Response(422, json={"details": [{"issue": "ORDER_NOT_APPROVED"}]})], []
        )
        assert (await client.check("ORDER-1")).state == "pending"

    async def test_missing_order_fails(self) -> None:
        client = _paypal([httpx.Response(404, json={"name": "RESOURCE_NOT_FOUND"})], [])
        status = await client.check("ORDER-1")
        assert status.state == "failed"

    async def test_missing_credentials(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(settings, "PAYPAL_CLIENT_ID", "")
        client = _paypal([], [])
        with pytest.raises(PaymentGatewayError, match="credentials"):
            await client.check("ORDER-1")


@pytest.mark.usefixtures("gateway_settings")
class TestWithdrawalTimeout:
    async def test_unanswered_payout_stays_debited_and_pending(self) -> None:
        repo = AsyncMock()
        repo.insert.side_effect = lambda db, p: p
        ledger = AsyncMock()
        ledger.append.return_value = (
            Wallet(id="w1", user_id="user-1", balance=0, version=2),
            MagicMock(),
        )
        mpesa = _b2c_timing_out()
        service = PaymentService(
            repo=repo, ledger=ledger, gateways={"mpesa": mpesa}, payout=mpesa
        )

        resp = await service.initiate_withdrawal(AsyncMock(), "user-1", 200_000, "254712345678")

        kinds = [c.args[1].kind.value for c in ledger.append.await_args_list]
        assert kinds == ["withdrawal"]
        assert resp.status == "pending"
        repo.mark_resolved.assert_not_awaited()
        repo.update_gateway_ref.assert_not_awaited()

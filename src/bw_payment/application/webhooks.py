"""Parse M-Pesa webhook bodies into GatewayCallback.

STK callback:
    {"Body": {"stkCallback": {"CheckoutRequestID": ..., "ResultCode": 0,
      "ResultDesc": ..., "CallbackMetadata": {"Item": [{"Name": "Amount", "Value": 100}, ...]}}}}

B2C result / queue timeout:
    {"Result": {"ConversationID": ..., "OriginatorConversationID": <payment id>,
      "ResultCode": 0, "ResultDesc": ...,
      "TransactionID": ..., "ResultParameters": {"ResultParameter": [{"Key": ..., "Value": ...}]}}}
"""

from typing import Any

from src.bw_common.cents import major_to_cents
from src.bw_common.errors import MalformedCallbackError
from src.bw_payment.domain.models import GatewayCallback


def _result_code(raw: Any) -> int:
    try:
        return int(raw)
    except (TypeError, ValueError) as exc:
        raise MalformedCallbackError(f"ResultCode {raw!r} is not a number") from exc


def _amount(raw: Any) -> int | None:
    if raw is None:
        return None
    try:
        return major_to_cents(raw)
    except ValueError as exc:
        raise MalformedCallbackError(f"amount {raw!r} is not a money value") from exc


def parse_stk_callback(payload: dict[str, Any]) -> GatewayCallback:
    try:
        cb = payload["Body"]["stkCallback"]
        checkout_id = cb["CheckoutRequestID"]
    except (KeyError, TypeError) as exc:
        raise MalformedCallbackError("missing Body.stkCallback.CheckoutRequestID") from exc

    code = _result_code(cb.get("ResultCode"))
    if code != 0:
        return GatewayCallback(
            gateway_ref=str(checkout_id),
            confirmed=False,
            reason=str(cb.get("ResultDesc") or f"ResultCode {code}"),
        )

    items = (cb.get("CallbackMetadata") or {}).get("Item") or []
    meta = {item.get("Name"): item.get("Value") for item in items if isinstance(item, dict)}
    return GatewayCallback(
        gateway_ref=str(checkout_id),
        confirmed=True,
        amount=_amount(meta.get("Amount")),
        receipt=str(meta["MpesaReceiptNumber"]) if meta.get("MpesaReceiptNumber") else None,
    )


def parse_b2c_result(payload: dict[str, Any]) -> GatewayCallback:
    try:
        result = payload["Result"]
        conversation_id = result["ConversationID"]
    except (KeyError, TypeError) as exc:
        raise MalformedCallbackError("missing Result.ConversationID") from exc

    originator = result.get("OriginatorConversationID")
    payment_id = str(originator) if originator else None

    code = _result_code(result.get("ResultCode"))
    if code != 0:
        return GatewayCallback(
            gateway_ref=str(conversation_id),
            confirmed=False,
            reason=str(result.get("ResultDesc") or f"ResultCode {code}"),
            payment_id=payment_id,
        )

    params = (result.get("ResultParameters") or {}).get("ResultParameter") or []
    if isinstance(params, dict):
        params = [params]
    values = {p.get("Key"): p.get("Value") for p in params if isinstance(p, dict)}
    return GatewayCallback(
        gateway_ref=str(conversation_id),
        confirmed=True,
        amount=_amount(values.get("TransactionAmount")),
        receipt=str(result["TransactionID"]) if result.get("TransactionID") else None,
        payment_id=payment_id,
    )

# storefront/domain/payments.py
"""
Objetos de valor del flujo STK Push de M-Pesa.

La pasarela responde códigos de resultado crudos ("0", 1032, "17", ...); aquí se
traducen a `StkResultCode` para que el resto del código no compare literales.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from .exceptions import ValidationError

SUCCESS_CODE = "0"
PENDING_CODE = "1032"


class StkResultCode(str, Enum):
    SUCCESS = "success"
    PENDING = "pending"
    FAILED = "failed"

    @classmethod
    def from_raw(cls, value: Any) -> Optional["StkResultCode"]:
        """None cuando la respuesta no trae código (resultado no concluyente)."""
        if value is None:
            return None
        raw = str(value).strip()
        if not raw:
            return None
        if raw == SUCCESS_CODE:
            return cls.SUCCESS
        if raw == PENDING_CODE:
            return cls.PENDING
        return cls.FAILED


@dataclass
class StkPushResponse:
    checkout_request_id: str
    merchant_request_id: Optional[str] = None
    response_code: Optional[str] = None
    response_description: Optional[str] = None
    customer_message: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "StkPushResponse":
        return cls(
            checkout_request_id=payload["CheckoutRequestID"],
            merchant_request_id=payload.get("MerchantRequestID"),
            response_code=payload.get("ResponseCode"),
            response_description=payload.get("ResponseDescription"),
            customer_message=payload.get("CustomerMessage"),
            payload=payload,
        )


@dataclass
class StkStatus:
    """Resultado de la consulta de estado de un STK Push."""
    code: Optional[StkResultCode]
    result_code: Optional[str]
    result_desc: Optional[str]
    payload: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "StkStatus":
        raw = payload.get("ResultCode")
        return cls(
            code=StkResultCode.from_raw(raw),
            result_code=str(raw) if raw is not None else None,
            result_desc=payload.get("ResultDesc"),
            payload=payload,
        )


@dataclass
class StkCallback:
    """Callback asíncrono que envía Safaricom al terminar un STK Push."""
    merchant_request_id: Optional[str]
    checkout_request_id: str
    result_code: str
    result_desc: Optional[str]
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def code(self) -> Optional[StkResultCode]:
        return StkResultCode.from_raw(self.result_code)

    @property
    def is_success(self) -> bool:
        return self.code == StkResultCode.SUCCESS

    @property
    def receipt_number(self) -> Optional[str]:
        return self.metadata.get("MpesaReceiptNumber")

    @property
    def amount(self) -> Optional[Any]:
        return self.metadata.get("Amount")

    @property
    def phone_number(self) -> Optional[Any]:
        return self.metadata.get("PhoneNumber")

    @property
    def transaction_date(self) -> Optional[Any]:
        return self.metadata.get("TransactionDate")

    @classmethod
    def from_payload(cls, body: Any) -> "StkCallback":
        """
        Parsea {"Body": {"stkCallback": {...}}}.
        Lanza ValidationError si falta la estructura o el CheckoutRequestID.
        """
        try:
            callback = body["Body"]["stkCallback"]
        except (KeyError, TypeError):
            raise ValidationError.for_field("Body.stkCallback", "Callback payload is missing Body.stkCallback")
        if not isinstance(callback, dict):
            raise ValidationError.for_field("Body.stkCallback", "Callback payload is missing Body.stkCallback")

        checkout_request_id = callback.get("CheckoutRequestID")
        if not checkout_request_id:
            raise ValidationError.for_field("CheckoutRequestID", "CheckoutRequestID is required")
        if callback.get("ResultCode") is None:
            raise ValidationError.for_field("ResultCode", "ResultCode is required")

        metadata = {}
        items = (callback.get("CallbackMetadata") or {}).get("Item") or []
        for item in items:
            if isinstance(item, dict) and "Name" in item:
                metadata[item["Name"]] = item.get("Value")

        return cls(
            merchant_request_id=callback.get("MerchantRequestID"),
            checkout_request_id=checkout_request_id,
            result_code=str(callback["ResultCode"]),
            result_desc=callback.get("ResultDesc"),
            metadata=metadata,
        )

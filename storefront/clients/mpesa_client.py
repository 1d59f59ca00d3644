"""Cliente HTTP para la API Daraja de M-Pesa (STK Push)."""

import base64
import logging
import re
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Optional

import requests

from storefront.config import Config
from storefront.domain.exceptions import AuthError, GatewayError, ValidationError
from storefront.domain.interfaces import PaymentGateway
from storefront.domain.payments import StkPushResponse, StkStatus

logger = logging.getLogger(__name__)

PHONE_PATTERN = re.compile(r"^254\d{9}$")
TRANSACTION_IN_PROGRESS = "500.001.1001"


def normalize_phone(phone_number: str) -> str:
    """
    Lleva el teléfono al formato internacional que espera Daraja (2547XXXXXXXX).
    Acepta +254..., 254..., 07... y 7... con espacios o guiones.
    """
    phone = re.sub(r"[\s\-()]", "", str(phone_number or ""))
    phone = phone.lstrip("+")
    if phone.startswith("0"):
        phone = "254" + phone[1:]
    elif len(phone) == 9 and phone[0] in ("7", "1"):
        phone = "254" + phone

    if not PHONE_PATTERN.match(phone):
        raise ValidationError.for_field("phoneNumber", f"Invalid phone number: {phone_number}")
    return phone


class MpesaClient(PaymentGateway):
    """Cliente para comunicarse con la pasarela M-Pesa. No cachea el token: se pide uno por operación."""

    def __init__(self, consumer_key: str, consumer_secret: str, shortcode: str, passkey: str,
                 base_url: str, callback_url: str, timeout: int = 30):
        self.consumer_key = consumer_key
        self.consumer_secret = consumer_secret
        self.shortcode = shortcode
        self.passkey = passkey
        self.base_url = base_url.rstrip("/")
        self.callback_url = callback_url
        self.timeout = timeout

        self.auth_url = f"{self.base_url}/oauth/v1/generate?grant_type=client_credentials"
        self.stk_url = f"{self.base_url}/mpesa/stkpush/v1/processrequest"
        self.query_url = f"{self.base_url}/mpesa/stkpushquery/v1/query"

    @classmethod
    def from_config(cls, config=Config) -> "MpesaClient":
        return cls(
            consumer_key=config.MPESA_CONSUMER_KEY,
            consumer_secret=config.MPESA_CONSUMER_SECRET,
            shortcode=config.MPESA_SHORTCODE,
            passkey=config.MPESA_PASSKEY,
            base_url=config.MPESA_BASE_URL,
            callback_url=config.MPESA_CALLBACK_URL,
            timeout=config.MPESA_REQUEST_TIMEOUT,
        )

    def get_access_token(self) -> str:
        """Intercambia consumer key/secret por un token Bearer (HTTP Basic)."""
        try:
            response = requests.get(
                self.auth_url,
                auth=(self.consumer_key, self.consumer_secret),
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"M-Pesa: no se pudo obtener el token de acceso: {e}")
            raise AuthError("Failed to get M-Pesa access token") from e

        if not response.ok:
            logger.error(f"M-Pesa: credenciales rechazadas ({response.status_code}): {response.text}")
            raise AuthError("Failed to get M-Pesa access token")

        try:
            token = response.json().get("access_token")
        except ValueError:
            token = None
        if not token:
            raise AuthError("M-Pesa auth response did not include an access token")
        return token

    def generate_password(self, timestamp: Optional[str] = None):
        """Retorna (password, timestamp); password = base64(shortcode + passkey + timestamp)."""
        timestamp = timestamp or datetime.now().strftime("%Y%m%d%H%M%S")
        raw = f"{self.shortcode}{self.passkey}{timestamp}".encode("utf-8")
        return base64.b64encode(raw).decode("utf-8"), timestamp

    def _post(self, url: str, body: Dict[str, Any], operation: str) -> Dict[str, Any]:
        token = self.get_access_token()
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }
        try:
            response = requests.post(url, json=body, headers=headers, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.error(f"M-Pesa {operation}: error de transporte: {e}")
            raise GatewayError(f"M-Pesa {operation} request failed") from e

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if not response.ok:
            logger.error(f"M-Pesa {operation}: respuesta {response.status_code}: {payload or response.text}")
            message = (payload or {}).get("errorMessage") if isinstance(payload, dict) else None
            raise GatewayError(message or f"M-Pesa {operation} failed", response.status_code, payload)

        if not isinstance(payload, dict):
            raise GatewayError(f"M-Pesa {operation} returned a malformed response", response.status_code)
        return payload

    def initiate_push(self, phone_number: str, amount, reference: str, description: str) -> StkPushResponse:
        """Envía el STK Push al teléfono del comprador y retorna el CheckoutRequestID."""
        phone = normalize_phone(phone_number)
        password, timestamp = self.generate_password()
        # Daraja solo acepta montos enteros
        whole_amount = max(int(Decimal(str(amount)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)), 1)

        body = {
            "BusinessShortCode": self.shortcode,
            "Password": password,
            "Timestamp": timestamp,
            "TransactionType": "CustomerPayBillOnline",
            "Amount": whole_amount,
            "PartyA": phone,
            "PartyB": self.shortcode,
            "PhoneNumber": phone,
            "CallBackURL": self.callback_url,
            "AccountReference": reference,
            "TransactionDesc": description,
        }
        logger.info(f"M-Pesa: iniciando STK Push ref={reference} monto={whole_amount} telefono={phone}")
        payload = self._post(self.stk_url, body, "STK push")

        if not payload.get("CheckoutRequestID"):
            raise GatewayError("M-Pesa STK push response is missing CheckoutRequestID", payload=payload)
        if str(payload.get("ResponseCode", "0")) != "0":
            raise GatewayError(payload.get("ResponseDescription") or "M-Pesa rejected the STK push", payload=payload)

        logger.info(f"M-Pesa: STK Push aceptado CheckoutRequestID={payload['CheckoutRequestID']}")
        return StkPushResponse.from_payload(payload)

    def query_status(self, checkout_request_id: str) -> StkStatus:
        """Consulta el código de resultado actual de un STK Push."""
        password, timestamp = self.generate_password()
        body = {
            "BusinessShortCode": self.shortcode,
            "Password": password,
            "Timestamp": timestamp,
            "CheckoutRequestID": checkout_request_id,
        }
        try:
            payload = self._post(self.query_url, body, "STK query")
        except GatewayError as e:
            # Daraja responde HTTP 500 mientras el comprador no ha contestado el prompt
            if isinstance(e.payload, dict) and e.payload.get("errorCode") == TRANSACTION_IN_PROGRESS:
                return StkStatus.from_payload(e.payload)
            raise
        return StkStatus.from_payload(payload)

"""Cliente HTTP para los endpoints de pago del servicio storefront."""

import logging
import os
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)


class PaymentServiceError(Exception):
    """La API de pagos no respondió o respondió con error."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class PaymentsClient:
    """Cliente para iniciar pagos M-Pesa y consultar su estado desde la aplicación cliente."""

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[int] = None):
        self.base_url = (base_url or os.getenv('PAYMENTS_API_URL', 'http://localhost:8080')).rstrip('/')
        self.timeout = timeout or int(os.getenv('PAYMENTS_API_TIMEOUT', '15'))

    def _request(self, method: str, endpoint: str, **kwargs) -> Dict[str, Any]:
        url = f"{self.base_url}{endpoint}"
        try:
            response = requests.request(method, url, timeout=self.timeout, **kwargs)
        except requests.exceptions.RequestException as e:
            logger.error(f"Error al consumir la API de pagos en {endpoint}: {e}")
            raise PaymentServiceError(f"Payment service unavailable: {e}") from e

        try:
            body = response.json()
        except ValueError:
            body = {}

        if not response.ok:
            message = body.get('message') if isinstance(body, dict) else None
            logger.warning(f"API de pagos respondió {response.status_code} en {endpoint}: {message}")
            raise PaymentServiceError(message or f"Payment service error ({response.status_code})",
                                      response.status_code)
        return body

    def initiate_mpesa_payment(self, order_id: int, phone_number: str) -> Dict[str, Any]:
        """
        POST /payments/mpesa/initiate
        Retorna {"success": True, "data": {"CheckoutRequestID": ..., ...}}.
        """
        return self._request('POST', '/payments/mpesa/initiate',
                             json={"orderId": order_id, "phoneNumber": phone_number})

    def query_payment_status(self, checkout_request_id: str) -> Dict[str, Any]:
        """
        GET /payments/mpesa/status/<checkout_request_id>
        Retorna {"success": True, "data": {"ResultCode": ..., "ResultDesc": ...}}.
        """
        return self._request('GET', f'/payments/mpesa/status/{checkout_request_id}')

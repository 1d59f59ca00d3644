# storefront/application/payment_use_cases.py
"""
Casos de uso del flujo STK Push:

1. InitiatePaymentUseCase: orden -> STK Push -> guardar CheckoutRequestID.
2. HandlePaymentCallbackUseCase / HandlePaymentTimeoutUseCase: la pasarela avisa el
   resultado de forma asíncrona y se concilia la orden.
3. QueryPaymentStatusUseCase: consulta directa a la pasarela (la usa el poller del cliente).

No existe un proceso del servidor que vuelva a consultar pagos que quedaron
pendientes más allá de la ventana de sondeo del cliente.
"""
import logging
from enum import Enum
from typing import Any, Optional

from storefront.domain.entities import Order, PaymentStatus
from storefront.domain.exceptions import NotFoundError, RepositoryError, ValidationError
from storefront.domain.interfaces import OrderRepository, PaymentGateway
from storefront.domain.payments import StkCallback, StkPushResponse, StkStatus

logger = logging.getLogger(__name__)


class CallbackOutcome(str, Enum):
    APPLIED = "applied"
    DUPLICATE = "duplicate"
    UNMATCHED = "unmatched"
    STALE = "stale"


class InitiatePaymentUseCase:
    """
    Caso de uso: Enviar el STK Push para una orden.
    Si la pasarela falla, la orden no se modifica.
    """

    def __init__(self, order_repository: OrderRepository, gateway: PaymentGateway):
        self.repository = order_repository
        self.gateway = gateway

    def execute(self, order_id: int, phone_number: str) -> StkPushResponse:
        order = self.repository.get_order_by_id(order_id)
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")
        if not order.can_accept_payment():
            raise ValidationError(f"Order {order.order_number} cannot accept a new payment")

        push = self.gateway.initiate_push(
            phone_number,
            order.total_price,
            order.order_number,
            f"Payment for order {order.order_number}",
        )

        order.attach_transaction(push.checkout_request_id)
        try:
            self.repository.attach_payment_transaction(order)
        except RepositoryError:
            # El prompt ya se envió al teléfono.
            logger.error(
                f"Orden {order.order_number}: STK Push enviado pero no se pudo registrar "
                f"CheckoutRequestID={push.checkout_request_id}"
            )
            raise
        logger.info(f"Orden {order.order_number}: pago pendiente con CheckoutRequestID={push.checkout_request_id}")
        return push


class _PaymentResultHandler:
    def __init__(self, order_repository: OrderRepository):
        self.repository = order_repository

    def _find_order(self, checkout_request_id: str) -> Optional[Order]:
        order = self.repository.get_order_by_transaction_id(checkout_request_id)
        if order is None:
            logger.warning(f"No existe una orden para CheckoutRequestID={checkout_request_id}. Se ignora.")
        return order

    def _persist(self, order: Order, previous_status: PaymentStatus) -> CallbackOutcome:
        if not self.repository.save_payment_result(order, previous_status):
            logger.warning(
                f"Orden {order.order_number}: el pago cambió mientras se procesaba el aviso "
                f"(esperado {previous_status.value}). Se descarta."
            )
            return CallbackOutcome.STALE
        return CallbackOutcome.APPLIED


class HandlePaymentCallbackUseCase(_PaymentResultHandler):
    """
    Caso de uso: Conciliar el callback del STK Push con la orden.
    Un callback exitoso repetido no vuelve a escribir recibo ni fecha de pago.
    """

    def execute(self, payload: Any) -> CallbackOutcome:
        callback = StkCallback.from_payload(payload)

        if callback.is_success:
            logger.info(
                f"M-Pesa pago exitoso CheckoutRequestID={callback.checkout_request_id} "
                f"recibo={callback.receipt_number} monto={callback.amount} "
                f"telefono={callback.phone_number} fecha={callback.transaction_date}"
            )
        else:
            logger.info(
                f"M-Pesa pago fallido CheckoutRequestID={callback.checkout_request_id} "
                f"ResultCode={callback.result_code} ResultDesc={callback.result_desc}"
            )

        order = self._find_order(callback.checkout_request_id)
        if order is None:
            return CallbackOutcome.UNMATCHED

        previous_status = order.payment_info.status
        if callback.is_success:
            changed = order.record_payment_success(callback.receipt_number)
        else:
            changed = order.record_payment_failure()

        if not changed:
            logger.info(
                f"Orden {order.order_number}: callback repetido ignorado "
                f"(pago ya en estado {order.payment_info.status.value})."
            )
            return CallbackOutcome.DUPLICATE

        outcome = self._persist(order, previous_status)
        if outcome == CallbackOutcome.APPLIED:
            logger.info(
                f"Orden {order.order_number} actualizada: estado={order.status.value} "
                f"pago={order.payment_info.status.value}"
            )
        return outcome


class HandlePaymentTimeoutUseCase(_PaymentResultHandler):
    """Caso de uso: La pasarela avisa que el STK Push expiró; el pago queda fallido."""

    def execute(self, checkout_request_id: Optional[str]) -> CallbackOutcome:
        if not checkout_request_id:
            raise ValidationError.for_field("CheckoutRequestID", "CheckoutRequestID is required")

        order = self._find_order(checkout_request_id)
        if order is None:
            return CallbackOutcome.UNMATCHED

        previous_status = order.payment_info.status
        if not order.record_payment_failure():
            return CallbackOutcome.DUPLICATE

        outcome = self._persist(order, previous_status)
        if outcome == CallbackOutcome.APPLIED:
            logger.info(f"Orden {order.order_number}: STK Push expirado, pago marcado como fallido.")
        return outcome


class QueryPaymentStatusUseCase:
    """Caso de uso: Consultar a la pasarela el estado de un STK Push."""

    def __init__(self, gateway: PaymentGateway):
        self.gateway = gateway

    def execute(self, checkout_request_id: str) -> StkStatus:
        if not checkout_request_id:
            raise ValidationError.for_field("checkoutRequestID", "checkoutRequestID is required")
        return self.gateway.query_status(checkout_request_id)

# storefront/domain/interfaces.py
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import List, Optional

from .entities import Order, PaymentStatus
from .payments import StkPushResponse, StkStatus


class OrderRepository(ABC):
    """
    Contrato (Interfaz) para la capa de acceso a datos de Órdenes.
    La capa de Aplicación solo conoce esta Interfaz, no la implementación.
    """

    @abstractmethod
    def insert_order(self, order: Order) -> Order:
        """Inserta una orden nueva y retorna la entidad con su order_id asignado."""
        pass

    @abstractmethod
    def get_order_by_id(self, order_id: int) -> Optional[Order]:
        pass

    @abstractmethod
    def get_order_by_transaction_id(self, transaction_id: str) -> Optional[Order]:
        """Busca la orden cuyo payment_info.transaction_id coincide con el CheckoutRequestID."""
        pass

    @abstractmethod
    def get_orders_by_user_id(self, user_id: str) -> List[Order]:
        pass

    @abstractmethod
    def get_all_orders(self, status: Optional[str] = None) -> List[Order]:
        pass

    @abstractmethod
    def update_order(self, order: Order) -> Order:
        """Persiste estado, entrega, seguimiento, cancelación y reembolso."""
        pass

    @abstractmethod
    def attach_payment_transaction(self, order: Order) -> Order:
        """Persiste transaction_id, método y estado de pago tras iniciar un STK Push."""
        pass

    @abstractmethod
    def save_payment_result(self, order: Order, expected_payment_status: PaymentStatus) -> bool:
        """
        Actualización condicional del resultado de pago: solo escribe si el pago
        sigue en `expected_payment_status` para ese transaction_id.
        Retorna False si otra petición ya lo modificó.
        """
        pass


class PaymentGateway(ABC):
    """Contrato de la pasarela de pagos móviles (STK Push)."""

    @abstractmethod
    def get_access_token(self) -> str:
        pass

    @abstractmethod
    def initiate_push(self, phone_number: str, amount: Decimal, reference: str, description: str) -> StkPushResponse:
        pass

    @abstractmethod
    def query_status(self, checkout_request_id: str) -> StkStatus:
        pass

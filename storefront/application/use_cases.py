# storefront/application/use_cases.py
import logging
from typing import Any, Dict, List, Optional

from storefront.domain.entities import (
    Order,
    OrderItem,
    OrderStatus,
    PaymentMethod,
    PricingRules,
    ShippingAddress,
)
from storefront.domain.exceptions import (
    DuplicateOrderNumberError,
    ForbiddenError,
    NotFoundError,
    RepositoryError,
)
from storefront.domain.interfaces import OrderRepository

logger = logging.getLogger(__name__)

MAX_ORDER_NUMBER_ATTEMPTS = 3


def _load_order(repository: OrderRepository, order_id: int) -> Order:
    order = repository.get_order_by_id(order_id)
    if order is None:
        raise NotFoundError(f"Order {order_id} not found")
    return order


def _check_owner(order: Order, requester_id: str, is_admin: bool) -> None:
    if not is_admin and str(order.user_id) != str(requester_id):
        raise ForbiddenError("Not authorized to access this order")


class CreateOrderUseCase:
    """
    Caso de uso: Crear una nueva orden a partir del carrito.
    Calcula totales, número de orden y entrega estimada (Order.create).
    """

    def __init__(self, order_repository: OrderRepository, pricing: Optional[PricingRules] = None,
                 currency: str = "KES"):
        self.repository = order_repository
        self.pricing = pricing or PricingRules()
        self.currency = currency

    def execute(self, user_id: str, items: List[OrderItem], shipping_address: ShippingAddress,
                payment_method: PaymentMethod, notes: Optional[str] = None) -> Order:
        for attempt in range(1, MAX_ORDER_NUMBER_ATTEMPTS + 1):
            order = Order.create(
                user_id=user_id,
                items=items,
                shipping_address=shipping_address,
                payment_method=payment_method,
                notes=notes,
                pricing=self.pricing,
                currency=self.currency,
            )
            try:
                created = self.repository.insert_order(order)
            except DuplicateOrderNumberError:
                logger.warning(f"Número de orden duplicado {order.order_number} (intento {attempt}). Regenerando...")
                continue
            logger.info(f"Orden {created.order_number} creada para el usuario {user_id} (total {created.total_price}).")
            return created

        raise RepositoryError("Could not generate a unique order number.")


class GetOrderUseCase:
    """Caso de uso: Obtener una orden (dueño o administrador)."""

    def __init__(self, order_repository: OrderRepository):
        self.repository = order_repository

    def execute(self, order_id: int, requester_id: str, is_admin: bool = False) -> Order:
        order = _load_order(self.repository, order_id)
        _check_owner(order, requester_id, is_admin)
        return order


class ListUserOrdersUseCase:
    """Caso de uso: Órdenes del comprador, de la más reciente a la más antigua."""

    def __init__(self, order_repository: OrderRepository):
        self.repository = order_repository

    def execute(self, user_id: str) -> List[Order]:
        orders = self.repository.get_orders_by_user_id(user_id)
        orders.sort(key=lambda order: order.created_at, reverse=True)
        return orders


class ListAllOrdersUseCase:
    def __init__(self, order_repository: OrderRepository):
        self.repository = order_repository

    def execute(self, status: Optional[OrderStatus] = None) -> List[Order]:
        return self.repository.get_all_orders(status.value if status else None)


class UpdateOrderStatusUseCase:
    """
    Caso de uso: El personal avanza la orden por el camino
    pending -> confirmed -> processing -> shipped -> delivered.
    """

    def __init__(self, order_repository: OrderRepository):
        self.repository = order_repository

    def execute(self, order_id: int, status: OrderStatus, tracking_number: Optional[str] = None) -> Order:
        order = _load_order(self.repository, order_id)
        previous = order.status
        order.transition_to(status)
        if tracking_number:
            order.tracking_number = tracking_number
        self.repository.update_order(order)
        logger.info(f"Orden {order.order_number}: {previous.value} -> {order.status.value}")
        return order


class CancelOrderUseCase:
    def __init__(self, order_repository: OrderRepository):
        self.repository = order_repository

    def execute(self, order_id: int, requester_id: str, is_admin: bool = False,
                reason: Optional[str] = None) -> Order:
        order = _load_order(self.repository, order_id)
        _check_owner(order, requester_id, is_admin)
        order.cancel(reason)
        self.repository.update_order(order)
        logger.info(f"Orden {order.order_number} cancelada por {requester_id}.")
        return order


class RefundOrderUseCase:
    """Caso de uso: Reembolso de una orden entregada con pago completado (solo administrador)."""

    def __init__(self, order_repository: OrderRepository):
        self.repository = order_repository

    def execute(self, order_id: int, amount: Any, reason: Optional[str] = None) -> Order:
        order = _load_order(self.repository, order_id)
        order.refund(amount, reason)
        self.repository.update_order(order)
        logger.info(f"Orden {order.order_number} reembolsada por {order.refund_amount}.")
        return order


def summarize_orders(orders: List[Order]) -> Dict[str, Any]:
    """Conteo de órdenes por estado, usado en el listado de administración."""
    counts: Dict[str, int] = {status.value: 0 for status in OrderStatus}
    for order in orders:
        counts[order.status.value] += 1
    return {"total": len(orders), "by_status": counts}

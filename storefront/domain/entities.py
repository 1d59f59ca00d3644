# storefront/domain/entities.py
import random
import string
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Any, Dict, List, Optional

from .exceptions import ValidationError

TWO_PLACES = Decimal("0.01")
ORDER_NUMBER_ALPHABET = string.digits + string.ascii_uppercase


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentMethod(str, Enum):
    MOBILE_MONEY = "mobile-money"
    CARD = "card"
    CASH = "cash"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


# Camino de estados que el personal puede recorrer (uno a la vez).
ORDER_STATUS_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.PROCESSING, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: set(),
    OrderStatus.CANCELLED: set(),
}

CANCELLABLE_STATUSES = {OrderStatus.PENDING, OrderStatus.CONFIRMED}


def to_money(value: Any) -> Decimal:
    """Convierte a Decimal con dos decimales (redondeo comercial)."""
    return Decimal(str(value)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def generate_order_number(now: Optional[datetime] = None) -> str:
    """ORD + AAMMDD + 6 caracteres base36 en mayúscula, p.ej. ORD250114K3F9ZQ."""
    now = now or datetime.now(timezone.utc)
    suffix = "".join(random.choices(ORDER_NUMBER_ALPHABET, k=6))
    return f"ORD{now:%y%m%d}{suffix}"


@dataclass(frozen=True)
class PricingRules:
    """Reglas de cálculo de impuestos y envío."""
    tax_rate: Decimal = Decimal("0.16")
    free_shipping_threshold: Decimal = Decimal("2000")
    shipping_flat_fee: Decimal = Decimal("100")

    def tax_for(self, items_price: Decimal) -> Decimal:
        return to_money(items_price * self.tax_rate)

    def shipping_for(self, items_price: Decimal) -> Decimal:
        if items_price >= self.free_shipping_threshold:
            return to_money(0)
        return to_money(self.shipping_flat_fee)


@dataclass
class OrderItem:
    """Producto dentro de una orden, con el precio congelado al momento de la compra."""
    product_id: str
    name: str
    price: Decimal
    quantity: int
    unit: str
    image: str = ""

    @property
    def line_total(self) -> Decimal:
        return to_money(self.price * self.quantity)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "price": float(self.price),
            "quantity": self.quantity,
            "unit": self.unit,
            "image": self.image,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OrderItem":
        return cls(
            product_id=str(data["product_id"]),
            name=data["name"],
            price=to_money(data["price"]),
            quantity=int(data["quantity"]),
            unit=data.get("unit", ""),
            image=data.get("image", ""),
        )


@dataclass
class ShippingAddress:
    first_name: str
    last_name: str
    email: str
    phone: str
    street: str
    city: str
    state: str
    zip_code: str
    country: str = "Kenya"
    instructions: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "first_name": self.first_name,
            "last_name": self.last_name,
            "email": self.email,
            "phone": self.phone,
            "street": self.street,
            "city": self.city,
            "state": self.state,
            "zip_code": self.zip_code,
            "country": self.country,
            "instructions": self.instructions,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ShippingAddress":
        return cls(
            first_name=data["first_name"],
            last_name=data["last_name"],
            email=data["email"],
            phone=data["phone"],
            street=data["street"],
            city=data["city"],
            state=data["state"],
            zip_code=data["zip_code"],
            country=data.get("country") or "Kenya",
            instructions=data.get("instructions"),
        )


@dataclass
class PaymentInfo:
    """Sub-registro de pago embebido en la orden."""
    method: PaymentMethod
    amount: Decimal
    status: PaymentStatus = PaymentStatus.PENDING
    transaction_id: Optional[str] = None
    mpesa_receipt_number: Optional[str] = None
    currency: str = "KES"
    paid_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "method": self.method.value,
            "transaction_id": self.transaction_id,
            "mpesa_receipt_number": self.mpesa_receipt_number,
            "status": self.status.value,
            "amount": float(self.amount),
            "currency": self.currency,
            "paid_at": self.paid_at.isoformat() if self.paid_at else None,
        }


@dataclass
class Order:
    """
    Entidad central de Pedido.
    `Order.create()` se usa para órdenes nuevas (calcula totales, número y entrega
    estimada); el constructor queda simple para que el repositorio reconstruya
    órdenes persistidas sin recalcular nada.
    """
    order_id: Optional[int]
    order_number: str
    user_id: str
    items: List[OrderItem]
    shipping_address: ShippingAddress
    payment_info: PaymentInfo
    items_price: Decimal
    tax_price: Decimal
    shipping_price: Decimal
    total_price: Decimal
    estimated_delivery: datetime
    status: OrderStatus = OrderStatus.PENDING
    delivery_date: Optional[datetime] = None
    notes: Optional[str] = None
    tracking_number: Optional[str] = None
    cancel_reason: Optional[str] = None
    refund_amount: Optional[Decimal] = None
    refund_reason: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @staticmethod
    def create(
        user_id: str,
        items: List[OrderItem],
        shipping_address: ShippingAddress,
        payment_method: PaymentMethod,
        notes: Optional[str] = None,
        pricing: Optional[PricingRules] = None,
        currency: str = "KES",
        now: Optional[datetime] = None,
    ) -> "Order":
        if not items:
            raise ValidationError.for_field("items", "Order must have at least one item")
        for item in items:
            if item.quantity < 1:
                raise ValidationError.for_field("items", f"Quantity for {item.name} must be at least 1")
            if item.price < 0:
                raise ValidationError.for_field("items", f"Price for {item.name} cannot be negative")

        pricing = pricing or PricingRules()
        now = now or datetime.now(timezone.utc)
        items_price, tax_price, shipping_price, total_price = Order.calculate_totals(items, pricing)

        # 2 días dentro de Nairobi, 5 días para el resto del país
        delivery_days = 2 if shipping_address.city.strip().lower() == "nairobi" else 5

        return Order(
            order_id=None,
            order_number=generate_order_number(now),
            user_id=user_id,
            items=list(items),
            shipping_address=shipping_address,
            payment_info=PaymentInfo(method=payment_method, amount=total_price, currency=currency),
            items_price=items_price,
            tax_price=tax_price,
            shipping_price=shipping_price,
            total_price=total_price,
            estimated_delivery=now + timedelta(days=delivery_days),
            notes=notes,
            created_at=now,
            updated_at=now,
        )

    @staticmethod
    def calculate_totals(items: List[OrderItem], pricing: PricingRules):
        """Devuelve (items_price, tax_price, shipping_price, total_price)."""
        items_price = to_money(sum((item.price * item.quantity for item in items), Decimal("0")))
        tax_price = pricing.tax_for(items_price)
        shipping_price = pricing.shipping_for(items_price)
        return items_price, tax_price, shipping_price, items_price + tax_price + shipping_price

    # --- Reglas de estado ---------------------------------------------------

    def can_be_cancelled(self) -> bool:
        return self.status in CANCELLABLE_STATUSES

    def can_be_refunded(self) -> bool:
        return self.status == OrderStatus.DELIVERED and self.payment_info.status == PaymentStatus.COMPLETED

    def transition_to(self, new_status: OrderStatus, now: Optional[datetime] = None) -> None:
        if new_status == OrderStatus.CANCELLED:
            self.cancel(now=now)
            return
        if new_status not in ORDER_STATUS_TRANSITIONS[self.status]:
            raise ValidationError.for_field(
                "status",
                f"Cannot change order status from {self.status.value} to {new_status.value}",
            )
        now = now or datetime.now(timezone.utc)
        self.status = new_status
        if new_status == OrderStatus.DELIVERED:
            self.delivery_date = now
        self.updated_at = now

    def cancel(self, reason: Optional[str] = None, now: Optional[datetime] = None) -> None:
        if not self.can_be_cancelled():
            raise ValidationError("Order cannot be cancelled at this stage")
        self.status = OrderStatus.CANCELLED
        self.cancel_reason = reason
        self.updated_at = now or datetime.now(timezone.utc)

    def refund(self, amount: Any, reason: Optional[str] = None, now: Optional[datetime] = None) -> None:
        if not self.can_be_refunded():
            raise ValidationError("Only delivered orders with a completed payment can be refunded")
        amount = to_money(amount)
        if amount <= 0 or amount > self.total_price:
            raise ValidationError.for_field("amount", "Refund amount must be greater than 0 and not exceed the order total")
        self.payment_info.status = PaymentStatus.REFUNDED
        self.refund_amount = amount
        self.refund_reason = reason
        self.updated_at = now or datetime.now(timezone.utc)

    # --- Pagos ----------------------------------------------------------------

    def can_accept_payment(self) -> bool:
        return (
            self.status != OrderStatus.CANCELLED
            and self.payment_info.status not in (PaymentStatus.COMPLETED, PaymentStatus.REFUNDED)
        )

    def attach_transaction(self, checkout_request_id: str, now: Optional[datetime] = None) -> None:
        """Vincula un nuevo intento de STK Push; el pago vuelve a quedar pendiente."""
        if not self.can_accept_payment():
            raise ValidationError("Order cannot accept a new payment")
        self.payment_info.transaction_id = checkout_request_id
        self.payment_info.method = PaymentMethod.MOBILE_MONEY
        self.payment_info.status = PaymentStatus.PENDING
        self.updated_at = now or datetime.now(timezone.utc)

    def record_payment_success(self, receipt_number: Optional[str], now: Optional[datetime] = None) -> bool:
        """
        Marca el pago como completado y confirma la orden si seguía pendiente.
        Retorna False (sin cambios) si el pago ya estaba completado: un callback
        duplicado no sobreescribe el recibo ni `paid_at`.
        """
        if self.payment_info.status in (PaymentStatus.COMPLETED, PaymentStatus.REFUNDED):
            return False
        now = now or datetime.now(timezone.utc)
        self.payment_info.status = PaymentStatus.COMPLETED
        self.payment_info.mpesa_receipt_number = receipt_number
        self.payment_info.paid_at = now
        if self.status == OrderStatus.PENDING:
            self.status = OrderStatus.CONFIRMED
        self.updated_at = now
        return True

    def record_payment_failure(self, now: Optional[datetime] = None) -> bool:
        """Marca el pago como fallido; el estado de la orden no cambia (permite reintentar)."""
        if self.payment_info.status in (PaymentStatus.COMPLETED, PaymentStatus.REFUNDED, PaymentStatus.FAILED):
            return False
        self.payment_info.status = PaymentStatus.FAILED
        self.updated_at = now or datetime.now(timezone.utc)
        return True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "order_id": self.order_id,
            "order_number": self.order_number,
            "user_id": self.user_id,
            "items": [item.to_dict() for item in self.items],
            "shipping_address": self.shipping_address.to_dict(),
            "payment_info": self.payment_info.to_dict(),
            "items_price": float(self.items_price),
            "tax_price": float(self.tax_price),
            "shipping_price": float(self.shipping_price),
            "total_price": float(self.total_price),
            "status": self.status.value,
            "estimated_delivery": self.estimated_delivery.isoformat(),
            "delivery_date": self.delivery_date.isoformat() if self.delivery_date else None,
            "notes": self.notes,
            "tracking_number": self.tracking_number,
            "cancel_reason": self.cancel_reason,
            "refund_amount": float(self.refund_amount) if self.refund_amount is not None else None,
            "refund_reason": self.refund_reason,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

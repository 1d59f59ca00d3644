"""Validación de los cuerpos JSON de las peticiones; acumula errores por campo."""
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Tuple

from storefront.domain.entities import OrderItem, OrderStatus, PaymentMethod, ShippingAddress, to_money
from storefront.domain.exceptions import ValidationError

SHIPPING_REQUIRED_FIELDS = ("first_name", "last_name", "email", "phone", "street", "city", "state", "zip_code")
SHIPPING_OPTIONAL_FIELDS = ("country", "instructions")
ITEM_REQUIRED_FIELDS = ("product_id", "name", "price", "quantity", "unit")
ITEM_TEXT_FIELDS = ("name", "unit")


def _is_text(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def _raise_if(errors: List[Dict[str, str]]) -> None:
    if errors:
        raise ValidationError("Validation failed", errors)


def require_json_object(data: Any) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise ValidationError.for_field("body", "Request body must be a JSON object")
    return data


def _parse_items(raw_items: Any, errors: List[Dict[str, str]]) -> List[OrderItem]:
    if not isinstance(raw_items, list) or not raw_items:
        errors.append({"field": "items", "message": "Order must have at least one item"})
        return []

    items = []
    for index, raw in enumerate(raw_items):
        prefix = f"items[{index}]"
        if not isinstance(raw, dict):
            errors.append({"field": prefix, "message": "Item must be an object"})
            continue
        missing = [name for name in ITEM_REQUIRED_FIELDS if raw.get(name) in (None, "")]
        for name in missing:
            errors.append({"field": f"{prefix}.{name}", "message": f"{name} is required"})
        if missing:
            continue

        not_text = [name for name in ITEM_TEXT_FIELDS if not _is_text(raw[name])]
        for name in not_text:
            errors.append({"field": f"{prefix}.{name}", "message": f"{name} must be a non-empty string"})
        if not_text:
            continue

        try:
            price = to_money(raw["price"])
        except (InvalidOperation, ValueError):
            errors.append({"field": f"{prefix}.price", "message": "price must be a number"})
            continue
        if not price.is_finite() or price < 0:
            errors.append({"field": f"{prefix}.price", "message": "price must be at least 0"})
            continue

        quantity = raw["quantity"]
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            errors.append({"field": f"{prefix}.quantity", "message": "quantity must be an integer of at least 1"})
            continue

        items.append(OrderItem(
            product_id=str(raw["product_id"]),
            name=raw["name"],
            price=price,
            quantity=quantity,
            unit=raw["unit"],
            image=raw.get("image") or "",
        ))
    return items


def _parse_shipping(raw: Any, errors: List[Dict[str, str]]) -> Optional[ShippingAddress]:
    if not isinstance(raw, dict):
        errors.append({"field": "shippingAddress", "message": "Shipping address is required"})
        return None
    invalid = False
    for name in SHIPPING_REQUIRED_FIELDS:
        value = raw.get(name)
        if value in (None, ""):
            errors.append({"field": f"shippingAddress.{name}", "message": f"{name} is required"})
            invalid = True
        elif not _is_text(value):
            errors.append({"field": f"shippingAddress.{name}", "message": f"{name} must be a non-empty string"})
            invalid = True
    for name in SHIPPING_OPTIONAL_FIELDS:
        if raw.get(name) is not None and not isinstance(raw[name], str):
            errors.append({"field": f"shippingAddress.{name}", "message": f"{name} must be a string"})
            invalid = True
    if invalid:
        return None
    return ShippingAddress.from_dict(raw)


def _parse_payment_method(raw: Any, errors: List[Dict[str, str]]) -> Optional[PaymentMethod]:
    if not isinstance(raw, dict):
        errors.append({"field": "paymentInfo", "message": "Payment info is required"})
        return None
    try:
        return PaymentMethod(raw.get("method"))
    except ValueError:
        allowed = ", ".join(method.value for method in PaymentMethod)
        errors.append({"field": "paymentInfo.method", "message": f"method must be one of: {allowed}"})
        return None


def parse_create_order(data: Any) -> Tuple[List[OrderItem], ShippingAddress, PaymentMethod, Optional[str]]:
    """Valida el snapshot del carrito: items, shippingAddress, paymentInfo y notes opcional."""
    data = require_json_object(data)
    errors: List[Dict[str, str]] = []
    items = _parse_items(data.get("items"), errors)
    shipping = _parse_shipping(data.get("shippingAddress"), errors)
    method = _parse_payment_method(data.get("paymentInfo"), errors)
    _raise_if(errors)
    return items, shipping, method, data.get("notes")


def parse_status_update(data: Any) -> Tuple[OrderStatus, Optional[str]]:
    data = require_json_object(data)
    try:
        status = OrderStatus(data.get("status"))
    except ValueError:
        allowed = ", ".join(status.value for status in OrderStatus)
        raise ValidationError.for_field("status", f"status must be one of: {allowed}")
    return status, data.get("trackingNumber")


def parse_refund(data: Any) -> Tuple[Decimal, Optional[str]]:
    data = require_json_object(data)
    try:
        amount = to_money(data.get("amount"))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError.for_field("amount", "amount must be a number")
    if not amount.is_finite():
        raise ValidationError.for_field("amount", "amount must be a number")
    return amount, data.get("reason")


def _parse_order_id(value: Any) -> Optional[int]:
    """Solo enteros JSON o cadenas de dígitos; 1.9 o true no se truncan a 1."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdecimal():
        return int(value.strip())
    return None


def parse_payment_initiation(data: Any) -> Tuple[int, str]:
    data = require_json_object(data)
    errors: List[Dict[str, str]] = []

    order_id = data.get("orderId")
    if order_id in (None, ""):
        errors.append({"field": "orderId", "message": "orderId is required"})
    else:
        order_id = _parse_order_id(order_id)
        if order_id is None:
            errors.append({"field": "orderId", "message": "orderId must be an integer"})

    phone_number = data.get("phoneNumber")
    if not phone_number:
        errors.append({"field": "phoneNumber", "message": "phoneNumber is required"})

    _raise_if(errors)
    return order_id, str(phone_number)

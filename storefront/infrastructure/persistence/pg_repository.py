import logging
from typing import Any, Dict, List, Optional

import psycopg2
from psycopg2 import errors, extras

from storefront.domain.entities import (
    Order,
    OrderItem,
    OrderStatus,
    PaymentInfo,
    PaymentMethod,
    PaymentStatus,
    ShippingAddress,
    to_money,
)
from storefront.domain.exceptions import DuplicateOrderNumberError, RepositoryError
from storefront.domain.interfaces import OrderRepository
from .db_connector import get_connection, release_connection

logger = logging.getLogger(__name__)

ORDER_COLUMNS = """
    order_id, order_number, user_id, items, shipping_address,
    items_price, tax_price, shipping_price, total_price, status,
    payment_method, payment_transaction_id, payment_receipt_number,
    payment_status, payment_amount, payment_currency, payment_paid_at,
    estimated_delivery, delivery_date, notes, tracking_number,
    cancel_reason, refund_amount, refund_reason, created_at, updated_at
"""


def row_to_order(row: Dict[str, Any]) -> Order:
    """Reconstruye la entidad Order a partir de una fila (RealDictCursor)."""
    return Order(
        order_id=row["order_id"],
        order_number=row["order_number"],
        user_id=row["user_id"],
        items=[OrderItem.from_dict(item) for item in row["items"] or []],
        shipping_address=ShippingAddress.from_dict(row["shipping_address"]),
        payment_info=PaymentInfo(
            method=PaymentMethod(row["payment_method"]),
            amount=to_money(row["payment_amount"]),
            status=PaymentStatus(row["payment_status"]),
            transaction_id=row["payment_transaction_id"],
            mpesa_receipt_number=row["payment_receipt_number"],
            currency=row["payment_currency"],
            paid_at=row["payment_paid_at"],
        ),
        items_price=to_money(row["items_price"]),
        tax_price=to_money(row["tax_price"]),
        shipping_price=to_money(row["shipping_price"]),
        total_price=to_money(row["total_price"]),
        status=OrderStatus(row["status"]),
        estimated_delivery=row["estimated_delivery"],
        delivery_date=row["delivery_date"],
        notes=row["notes"],
        tracking_number=row["tracking_number"],
        cancel_reason=row["cancel_reason"],
        refund_amount=to_money(row["refund_amount"]) if row["refund_amount"] is not None else None,
        refund_reason=row["refund_reason"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class PgOrderRepository(OrderRepository):
    """
    Implementación concreta que persiste las órdenes en PostgreSQL usando psycopg2.
    Los ítems y la dirección de envío se guardan como JSONB; el sub-registro de
    pago vive en columnas payment_* de la misma fila.
    """

    def _fetch_one(self, sql: str, params: tuple, action: str) -> Optional[Order]:
        conn = None
        try:
            conn = get_connection()
            cursor = conn.cursor(cursor_factory=extras.RealDictCursor)
            cursor.execute(sql, params)
            row = cursor.fetchone()
            return row_to_order(row) if row else None
        except psycopg2.Error as e:
            logger.error(f"ERROR de base de datos al {action}: {e}")
            if conn:
                conn.rollback()
            raise RepositoryError(f"Database error while trying to {action}.") from e
        finally:
            if conn:
                release_connection(conn)

    def _fetch_all(self, sql: str, params: tuple, action: str) -> List[Order]:
        conn = None
        try:
            conn = get_connection()
            cursor = conn.cursor(cursor_factory=extras.RealDictCursor)
            cursor.execute(sql, params)
            return [row_to_order(row) for row in cursor.fetchall()]
        except psycopg2.Error as e:
            logger.error(f"ERROR de base de datos al {action}: {e}")
            if conn:
                conn.rollback()
            raise RepositoryError(f"Database error while trying to {action}.") from e
        finally:
            if conn:
                release_connection(conn)

    def _execute_update(self, sql: str, params: tuple, action: str) -> int:
        """Ejecuta un UPDATE en su propia transacción y retorna las filas afectadas."""
        conn = None
        try:
            conn = get_connection()
            cursor = conn.cursor()
            cursor.execute(sql, params)
            affected = cursor.rowcount
            conn.commit()
            return affected
        except psycopg2.Error as e:
            logger.error(f"ERROR de base de datos al {action}: {e}")
            if conn:
                conn.rollback()
            raise RepositoryError(f"Database error while trying to {action}.") from e
        finally:
            if conn:
                release_connection(conn)

    def insert_order(self, order: Order) -> Order:
        conn = None
        try:
            conn = get_connection()
            cursor = conn.cursor()

            sql = """
                INSERT INTO storefront.orders (
                    order_number, user_id, items, shipping_address,
                    items_price, tax_price, shipping_price, total_price, status,
                    payment_method, payment_status, payment_amount, payment_currency,
                    estimated_delivery, notes, created_at, updated_at
                )
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                RETURNING order_id;
            """
            cursor.execute(sql, (
                order.order_number,
                order.user_id,
                extras.Json([item.to_dict() for item in order.items]),
                extras.Json(order.shipping_address.to_dict()),
                order.items_price,
                order.tax_price,
                order.shipping_price,
                order.total_price,
                order.status.value,
                order.payment_info.method.value,
                order.payment_info.status.value,
                order.payment_info.amount,
                order.payment_info.currency,
                order.estimated_delivery,
                order.notes,
                order.created_at,
                order.updated_at,
            ))
            order.order_id = cursor.fetchone()[0]
            conn.commit()
            return order

        except errors.UniqueViolation as e:
            if conn:
                conn.rollback()
            raise DuplicateOrderNumberError(order.order_number) from e
        except psycopg2.Error as e:
            logger.error(f"ERROR de base de datos al insertar orden: {e}")
            if conn:
                conn.rollback()
            raise RepositoryError("Database error during order insertion.") from e
        finally:
            if conn:
                release_connection(conn)

    def get_order_by_id(self, order_id: int) -> Optional[Order]:
        sql = f"SELECT {ORDER_COLUMNS} FROM storefront.orders WHERE order_id = %s;"
        return self._fetch_one(sql, (order_id,), "obtener la orden por id")

    def get_order_by_transaction_id(self, transaction_id: str) -> Optional[Order]:
        sql = f"SELECT {ORDER_COLUMNS} FROM storefront.orders WHERE payment_transaction_id = %s;"
        return self._fetch_one(sql, (transaction_id,), "obtener la orden por transaction_id")

    def get_orders_by_user_id(self, user_id: str) -> List[Order]:
        sql = f"""
            SELECT {ORDER_COLUMNS} FROM storefront.orders
            WHERE user_id = %s
            ORDER BY created_at DESC;
        """
        return self._fetch_all(sql, (user_id,), "obtener órdenes por usuario")

    def get_all_orders(self, status: Optional[str] = None) -> List[Order]:
        if status:
            sql = f"SELECT {ORDER_COLUMNS} FROM storefront.orders WHERE status = %s ORDER BY created_at DESC;"
            return self._fetch_all(sql, (status,), "consultar todas las órdenes")
        sql = f"SELECT {ORDER_COLUMNS} FROM storefront.orders ORDER BY created_at DESC;"
        return self._fetch_all(sql, (), "consultar todas las órdenes")

    def update_order(self, order: Order) -> Order:
        # El estado de pago solo se toca aquí para reembolsos; el resto lo escribe el webhook.
        sql = """
            UPDATE storefront.orders
            SET status = %s,
                delivery_date = %s,
                tracking_number = %s,
                cancel_reason = %s,
                refund_amount = %s,
                refund_reason = %s,
                payment_status = CASE WHEN %s = 'refunded' THEN 'refunded' ELSE payment_status END,
                updated_at = %s
            WHERE order_id = %s;
        """
        affected = self._execute_update(sql, (
            order.status.value,
            order.delivery_date,
            order.tracking_number,
            order.cancel_reason,
            order.refund_amount,
            order.refund_reason,
            order.payment_info.status.value,
            order.updated_at,
            order.order_id,
        ), "actualizar la orden")
        if affected == 0:
            raise RepositoryError(f"Order {order.order_id} was not updated.")
        return order

    def attach_payment_transaction(self, order: Order) -> Order:
        sql = """
            UPDATE storefront.orders
            SET payment_transaction_id = %s,
                payment_method = %s,
                payment_status = %s,
                updated_at = %s
            WHERE order_id = %s
              AND payment_status NOT IN ('completed', 'refunded');
        """
        affected = self._execute_update(sql, (
            order.payment_info.transaction_id,
            order.payment_info.method.value,
            order.payment_info.status.value,
            order.updated_at,
            order.order_id,
        ), "registrar la transacción de pago")
        if affected == 0:
            raise RepositoryError(f"Payment transaction for order {order.order_id} was not recorded.")
        return order

    def save_payment_result(self, order: Order, expected_payment_status: PaymentStatus) -> bool:
        sql = """
            UPDATE storefront.orders
            SET payment_status = %s,
                payment_receipt_number = %s,
                payment_paid_at = %s,
                status = CASE WHEN status = 'pending' THEN %s ELSE status END,
                updated_at = %s
            WHERE order_id = %s
              AND payment_transaction_id = %s
              AND payment_status = %s;
        """
        # Solo una orden que sigue en 'pending' cambia de estado; cualquier otro estado se conserva.
        affected = self._execute_update(sql, (
            order.payment_info.status.value,
            order.payment_info.mpesa_receipt_number,
            order.payment_info.paid_at,
            order.status.value,
            order.updated_at,
            order.order_id,
            order.payment_info.transaction_id,
            expected_payment_status.value,
        ), "guardar el resultado del pago")
        return affected == 1

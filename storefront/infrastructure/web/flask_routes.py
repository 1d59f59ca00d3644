from flask import Blueprint, g, jsonify, request

from storefront.application.use_cases import (
    CancelOrderUseCase,
    CreateOrderUseCase,
    GetOrderUseCase,
    ListAllOrdersUseCase,
    ListUserOrdersUseCase,
    RefundOrderUseCase,
    UpdateOrderStatusUseCase,
    summarize_orders,
)
from storefront.domain.entities import OrderStatus
from storefront.domain.exceptions import ValidationError
from .auth import require_admin, require_auth
from .errors import register_error_handlers
from .validators import parse_create_order, parse_refund, parse_status_update


def create_orders_blueprint(
    create_case: CreateOrderUseCase,
    get_case: GetOrderUseCase,
    my_orders_case: ListUserOrdersUseCase,
    all_orders_case: ListAllOrdersUseCase,
    update_status_case: UpdateOrderStatusUseCase,
    cancel_case: CancelOrderUseCase,
    refund_case: RefundOrderUseCase,
):
    """
    Función de fábrica para inyectar los Casos de Uso en el Blueprint.
    Crea un nuevo Blueprint en cada llamada para evitar conflictos en tests.
    """
    orders_bp = Blueprint('orders', __name__)
    register_error_handlers(orders_bp)

    @orders_bp.route('/', methods=['POST'])
    @require_auth
    def create_order():
        items, shipping_address, payment_method, notes = parse_create_order(request.get_json(silent=True))
        order = create_case.execute(g.user_id, items, shipping_address, payment_method, notes)
        return jsonify({"success": True, "message": "Order created", "data": order.to_dict()}), 201

    @orders_bp.route('/', methods=['GET'])
    @require_admin
    def get_all_orders():
        """Listado de administración con filtro opcional ?status=."""
        status = request.args.get('status')
        if status:
            try:
                status = OrderStatus(status)
            except ValueError:
                raise ValidationError.for_field("status", f"Unknown order status: {status}")
        orders = all_orders_case.execute(status or None)
        return jsonify({
            "success": True,
            "data": [order.to_dict() for order in orders],
            "summary": summarize_orders(orders),
        }), 200

    @orders_bp.route('/my', methods=['GET'])
    @require_auth
    def get_my_orders():
        orders = my_orders_case.execute(g.user_id)
        return jsonify({"success": True, "data": [order.to_dict() for order in orders]}), 200

    @orders_bp.route('/<int:order_id>', methods=['GET'])
    @require_auth
    def get_order(order_id):
        order = get_case.execute(order_id, g.user_id, g.is_admin)
        return jsonify({"success": True, "data": order.to_dict()}), 200

    @orders_bp.route('/<int:order_id>/status', methods=['PUT'])
    @require_admin
    def update_order_status(order_id):
        status, tracking_number = parse_status_update(request.get_json(silent=True))
        order = update_status_case.execute(order_id, status, tracking_number)
        return jsonify({"success": True, "message": "Order status updated", "data": order.to_dict()}), 200

    @orders_bp.route('/<int:order_id>', methods=['DELETE'])
    @require_auth
    def cancel_order(order_id):
        body = request.get_json(silent=True) or {}
        order = cancel_case.execute(order_id, g.user_id, g.is_admin, body.get('reason'))
        return jsonify({"success": True, "message": "Order cancelled", "data": order.to_dict()}), 200

    @orders_bp.route('/<int:order_id>/refund', methods=['POST'])
    @require_admin
    def refund_order(order_id):
        amount, reason = parse_refund(request.get_json(silent=True))
        order = refund_case.execute(order_id, amount, reason)
        return jsonify({"success": True, "message": "Order refunded", "data": order.to_dict()}), 200

    return orders_bp

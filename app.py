# app.py
import logging
from decimal import Decimal

from dotenv import load_dotenv  # Necesario para cargar variables de entorno
from flask import Flask, jsonify
from flask_cors import CORS

# Cargar variables de entorno del archivo .env (si existe) antes de leer Config
load_dotenv()

from storefront.config import Config  # noqa: E402
from storefront.application.use_cases import (  # noqa: E402
    CancelOrderUseCase,
    CreateOrderUseCase,
    GetOrderUseCase,
    ListAllOrdersUseCase,
    ListUserOrdersUseCase,
    RefundOrderUseCase,
    UpdateOrderStatusUseCase,
)
from storefront.application.payment_use_cases import (  # noqa: E402
    HandlePaymentCallbackUseCase,
    HandlePaymentTimeoutUseCase,
    InitiatePaymentUseCase,
    QueryPaymentStatusUseCase,
)
from storefront.clients.mpesa_client import MpesaClient  # noqa: E402
from storefront.domain.entities import PricingRules  # noqa: E402
from storefront.infrastructure.persistence.db_connector import init_db_pool  # noqa: E402
from storefront.infrastructure.persistence.db_initializer import initialize_database  # noqa: E402
from storefront.infrastructure.persistence.pg_repository import PgOrderRepository  # noqa: E402
from storefront.infrastructure.web.flask_payment_routes import create_payments_blueprint  # noqa: E402
from storefront.infrastructure.web.flask_routes import create_orders_blueprint  # noqa: E402

logger = logging.getLogger(__name__)


def create_app(order_repository=None, gateway=None, init_db=True):
    """Crea, configura y cablea la aplicación Flask siguiendo la Arquitectura Limpia."""
    logging.basicConfig(
        level=getattr(logging, Config.LOG_LEVEL, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    app = Flask(__name__)
    app.config.from_object(Config)

    # --- INICIALIZACIÓN DE LA BASE DE DATOS ---
    if init_db:
        init_db_pool()
        initialize_database()

    # --- CABLEADO DE DEPENDENCIAS ---

    # 1. Infraestructura (PostgreSQL y pasarela M-Pesa)
    order_repository = order_repository or PgOrderRepository()
    gateway = gateway or MpesaClient.from_config(Config)

    pricing = PricingRules(
        tax_rate=Decimal(Config.TAX_RATE),
        free_shipping_threshold=Decimal(Config.FREE_SHIPPING_THRESHOLD),
        shipping_flat_fee=Decimal(Config.SHIPPING_FLAT_FEE),
    )

    # 2. Capa de Aplicación (Casos de Uso)
    orders_bp = create_orders_blueprint(
        create_case=CreateOrderUseCase(order_repository, pricing, Config.CURRENCY),
        get_case=GetOrderUseCase(order_repository),
        my_orders_case=ListUserOrdersUseCase(order_repository),
        all_orders_case=ListAllOrdersUseCase(order_repository),
        update_status_case=UpdateOrderStatusUseCase(order_repository),
        cancel_case=CancelOrderUseCase(order_repository),
        refund_case=RefundOrderUseCase(order_repository),
    )
    payments_bp = create_payments_blueprint(
        initiate_case=InitiatePaymentUseCase(order_repository, gateway),
        callback_case=HandlePaymentCallbackUseCase(order_repository),
        timeout_case=HandlePaymentTimeoutUseCase(order_repository),
        status_case=QueryPaymentStatusUseCase(gateway),
    )

    # Configurar CORS
    CORS(app, resources={
        r"/*": {
            "origins": [origin.strip() for origin in Config.CORS_ORIGINS.split(",")],
            "methods": ["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
            "allow_headers": ["Content-Type", "Authorization", "X-Requested-With"]
        }
    })

    # 3. Capa de Presentación (Web)
    app.register_blueprint(orders_bp, url_prefix='/orders')
    app.register_blueprint(payments_bp, url_prefix='/payments')

    # --- Ruta de control ---
    @app.route('/health', methods=['GET'])
    def health():
        return jsonify({'status': 'ok'})

    logger.info("Aplicación storefront inicializada.")
    return app


if __name__ == '__main__':
    app = create_app()
    app.run(host='0.0.0.0', port=8080, debug=False)

# storefront/config.py
import os


class Config:
    """Configuración del servicio leída de variables de entorno."""
    # Base de datos (PostgreSQL)
    DB_HOST = os.environ.get('DB_HOST', 'localhost')
    DB_PORT = os.environ.get('DB_PORT', '5432')
    DB_NAME = os.environ.get('DB_NAME', 'storefront')
    DB_USER = os.environ.get('DB_USER', 'postgres')
    DB_PASSWORD = os.environ.get('DB_PASSWORD', 'postgres')
    DB_POOL_MIN = int(os.environ.get('DB_POOL_MIN', '1'))
    DB_POOL_MAX = int(os.environ.get('DB_POOL_MAX', '10'))
    RUN_DB_INIT_ON_STARTUP = os.environ.get('RUN_DB_INIT_ON_STARTUP', 'False').lower() == 'true'

    # M-Pesa Daraja
    MPESA_CONSUMER_KEY = os.environ.get('MPESA_CONSUMER_KEY', '')
    MPESA_CONSUMER_SECRET = os.environ.get('MPESA_CONSUMER_SECRET', '')
    MPESA_SHORTCODE = os.environ.get('MPESA_SHORTCODE', '174379')
    MPESA_PASSKEY = os.environ.get('MPESA_PASSKEY', '')
    MPESA_BASE_URL = os.environ.get('MPESA_BASE_URL', 'https://sandbox.safaricom.co.ke')
    MPESA_CALLBACK_URL = os.environ.get('MPESA_CALLBACK_URL', 'http://localhost:8080/payments/mpesa/callback')
    MPESA_REQUEST_TIMEOUT = int(os.environ.get('MPESA_REQUEST_TIMEOUT', '30'))

    # Autenticación
    JWT_SECRET_KEY = os.environ.get('JWT_SECRET_KEY', 'change-me')

    # Reglas de precios (16% IVA, envío gratis desde 2000 KES)
    TAX_RATE = os.environ.get('TAX_RATE', '0.16')
    FREE_SHIPPING_THRESHOLD = os.environ.get('FREE_SHIPPING_THRESHOLD', '2000')
    SHIPPING_FLAT_FEE = os.environ.get('SHIPPING_FLAT_FEE', '100')
    CURRENCY = os.environ.get('CURRENCY', 'KES')

    CORS_ORIGINS = os.environ.get('CORS_ORIGINS', '*')
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO').upper()

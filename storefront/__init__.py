"""Servicio de órdenes y pagos M-Pesa de la tienda."""

__version__ = "0.1.0"

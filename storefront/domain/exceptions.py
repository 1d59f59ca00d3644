# storefront/domain/exceptions.py
from typing import Any, Dict, List, Optional


class StorefrontError(Exception):
    """Clase base para todos los errores del servicio."""


class ValidationError(StorefrontError):
    """
    Una regla de negocio o el cuerpo de la petición no es válido.
    `errors` lleva la lista de errores por campo: [{"field": ..., "message": ...}].
    """

    def __init__(self, message: str, errors: Optional[List[Dict[str, str]]] = None):
        super().__init__(message)
        self.message = message
        self.errors = errors or []

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        return cls(message, [{"field": field, "message": message}])


class NotFoundError(StorefrontError):
    """La orden (o el usuario) solicitado no existe."""


class ForbiddenError(StorefrontError):
    """El usuario autenticado no tiene permiso sobre el recurso."""


class AuthenticationError(StorefrontError):
    """Token del cliente ausente o inválido."""


class AuthError(StorefrontError):
    """La pasarela de pagos rechazó las credenciales o no respondió al pedir el token."""


class GatewayError(StorefrontError):
    """Respuesta no exitosa o malformada de la pasarela de pagos."""

    def __init__(self, message: str, status_code: Optional[int] = None, payload: Any = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload


class DuplicateOrderNumberError(StorefrontError):
    """El número de orden generado ya existe en la base de datos."""


class RepositoryError(StorefrontError):
    """Fallo de la base de datos."""

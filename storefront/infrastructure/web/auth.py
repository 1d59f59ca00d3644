"""
Autorización por JWT para las rutas de órdenes.
El token (HS256, firmado con JWT_SECRET_KEY) lleva `sub` (id de usuario) y `role`.
"""
import logging
from functools import wraps

import jwt
from flask import current_app, g, request

from storefront.domain.exceptions import AuthenticationError, ForbiddenError

logger = logging.getLogger(__name__)

ADMIN_ROLE = 'admin'


def _decode_token():
    auth_header = request.headers.get('Authorization', '')
    if not auth_header.startswith('Bearer '):
        raise AuthenticationError('No token, authorization denied')

    token = auth_header[7:]  # Remover 'Bearer '
    try:
        payload = jwt.decode(token, current_app.config['JWT_SECRET_KEY'], algorithms=['HS256'])
    except jwt.ExpiredSignatureError:
        raise AuthenticationError('Token has expired')
    except jwt.InvalidTokenError as e:
        logger.warning(f"Token inválido desde {request.remote_addr}: {e}")
        raise AuthenticationError('Token is not valid')

    if not payload.get('sub'):
        raise AuthenticationError('Token is not valid')
    return payload


def require_auth(f):
    """Decorador: exige un usuario autenticado y lo deja en `g.user_id` / `g.is_admin`."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        payload = _decode_token()
        g.user_id = str(payload['sub'])
        g.is_admin = payload.get('role') == ADMIN_ROLE
        return f(*args, **kwargs)
    return decorated_function


def require_admin(f):
    """Decorador: exige rol de administrador."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        payload = _decode_token()
        if payload.get('role') != ADMIN_ROLE:
            logger.warning(f"Acceso denegado a {request.endpoint} para el usuario {payload.get('sub')}")
            raise ForbiddenError('Access denied. Admin only.')
        g.user_id = str(payload['sub'])
        g.is_admin = True
        return f(*args, **kwargs)
    return decorated_function

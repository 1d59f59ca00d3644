from flask import current_app, jsonify
from werkzeug.exceptions import HTTPException

from storefront.domain.exceptions import (
    AuthError,
    AuthenticationError,
    ForbiddenError,
    GatewayError,
    NotFoundError,
    StorefrontError,
    ValidationError,
)


def error_response(message, status_code, errors=None):
    body = {"success": False, "message": message}
    if errors:
        body["errors"] = errors
    return jsonify(body), status_code


def register_error_handlers(bp):
    """Traduce las excepciones del dominio al sobre {success, message, errors?}."""

    @bp.errorhandler(ValidationError)
    def handle_validation(e):
        message = "Validation failed" if e.errors else e.message
        return error_response(message, 400, e.errors)

    @bp.errorhandler(AuthenticationError)
    def handle_authentication(e):
        return error_response(str(e), 401)

    @bp.errorhandler(ForbiddenError)
    def handle_forbidden(e):
        return error_response(str(e), 403)

    @bp.errorhandler(NotFoundError)
    def handle_not_found(e):
        return error_response(str(e), 404)

    @bp.errorhandler(AuthError)
    @bp.errorhandler(GatewayError)
    def handle_gateway(e):
        current_app.logger.error(f"Error de la pasarela de pagos: {e}")
        return error_response(str(e) or "Payment gateway error", 502)

    @bp.errorhandler(StorefrontError)
    def handle_storefront(e):
        current_app.logger.error(f"Error interno del servicio: {e}")
        return error_response("Internal server error", 500)

    @bp.errorhandler(Exception)
    def handle_unexpected(e):
        if isinstance(e, HTTPException):
            return e
        current_app.logger.error(f"Error inesperado: {e}", exc_info=True)
        return error_response("Internal server error", 500)

    return bp

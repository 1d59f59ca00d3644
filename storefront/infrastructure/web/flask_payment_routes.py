import json

from flask import Blueprint, current_app, jsonify, request

from storefront.application.payment_use_cases import (
    HandlePaymentCallbackUseCase,
    HandlePaymentTimeoutUseCase,
    InitiatePaymentUseCase,
    QueryPaymentStatusUseCase,
)
from .errors import register_error_handlers
from .validators import parse_payment_initiation

# Safaricom espera exactamente esta respuesta; cualquier otra cosa provoca reintentos.
CALLBACK_ACK = {"C2BPaymentConfirmationResult": "Success"}
TIMEOUT_ACK = {"message": "Timeout processed successfully"}


def create_payments_blueprint(
    initiate_case: InitiatePaymentUseCase,
    callback_case: HandlePaymentCallbackUseCase,
    timeout_case: HandlePaymentTimeoutUseCase,
    status_case: QueryPaymentStatusUseCase,
):
    """
    Función de fábrica para el Blueprint de pagos M-Pesa.
    Los webhooks de la pasarela siempre responden 200, incluso si el procesamiento falla.
    """
    payments_bp = Blueprint('payments', __name__)
    register_error_handlers(payments_bp)

    @payments_bp.route('/mpesa/initiate', methods=['POST'])
    def initiate_mpesa_payment():
        order_id, phone_number = parse_payment_initiation(request.get_json(silent=True))
        push = initiate_case.execute(order_id, phone_number)
        return jsonify({
            "success": True,
            "message": "Payment initiated successfully",
            "data": push.payload,
        }), 200

    @payments_bp.route('/mpesa/callback', methods=['POST'])
    def mpesa_callback():
        payload = request.get_json(silent=True)
        current_app.logger.info(f"M-Pesa callback recibido: {json.dumps(payload)}")
        try:
            outcome = callback_case.execute(payload)
            current_app.logger.info(f"M-Pesa callback procesado: {outcome.value}")
        except Exception as e:
            current_app.logger.error(f"Error procesando el callback de M-Pesa: {e}", exc_info=True)
        return jsonify(CALLBACK_ACK), 200

    # El cuerpo del STK Push no lleva URL de timeout; esta ruta se registra en el portal Daraja.
    @payments_bp.route('/mpesa/timeout', methods=['POST'])
    def mpesa_timeout():
        payload = request.get_json(silent=True) or {}
        current_app.logger.info(f"M-Pesa timeout recibido: {json.dumps(payload)}")
        try:
            checkout_request_id = payload.get('CheckoutRequestID') if isinstance(payload, dict) else None
            outcome = timeout_case.execute(checkout_request_id)
            current_app.logger.info(f"M-Pesa timeout procesado: {outcome.value}")
        except Exception as e:
            current_app.logger.error(f"Error procesando el timeout de M-Pesa: {e}", exc_info=True)
        return jsonify(TIMEOUT_ACK), 200

    @payments_bp.route('/mpesa/status/<checkout_request_id>', methods=['GET'])
    def query_payment_status(checkout_request_id):
        status = status_case.execute(checkout_request_id)
        return jsonify({"success": True, "data": status.payload}), 200

    return payments_bp

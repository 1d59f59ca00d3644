"""
Sondeo del estado de un pago M-Pesa desde el cliente.

Después de iniciar el STK Push el cliente consulta el endpoint de estado cada
`interval` segundos hasta ver un resultado terminal o agotar los intentos
(30 x 10 s = ~5 minutos). El estado del sondeo vive solo en este proceso:
si el cliente se cierra, el sondeo se pierde y el usuario debe revisar la orden.
"""
import logging
import threading
from enum import Enum
from typing import Any, Callable, Dict, Optional

from storefront.clients.payments_client import PaymentServiceError, PaymentsClient
from storefront.domain.payments import StkResultCode

logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 10
MAX_POLL_ATTEMPTS = 30
MAX_CONSECUTIVE_ERRORS = 5
ERROR_BACKOFF_FACTOR = 0.5


class PollState(str, Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMEOUT = "timeout"
    ERROR = "error"


TERMINAL_STATES = {PollState.COMPLETED, PollState.FAILED, PollState.TIMEOUT, PollState.ERROR}

STATE_MESSAGES = {
    PollState.PROCESSING: "Payment request sent to your phone",
    PollState.COMPLETED: "Payment completed successfully!",
    PollState.FAILED: "Payment failed. Please try again or check your M-Pesa PIN.",
    PollState.TIMEOUT: "Payment timeout. Please check your M-Pesa messages.",
    PollState.ERROR: "Unable to verify payment status. Please contact support if payment was made.",
}


class PollTask:
    """
    Tarea de sondeo cancelable para un CheckoutRequestID.
    Lleva su propio contador de intentos, de errores consecutivos y el estado actual.
    """

    def __init__(self, checkout_request_id: str, status_client: PaymentsClient,
                 interval: float = POLL_INTERVAL_SECONDS,
                 max_attempts: int = MAX_POLL_ATTEMPTS,
                 max_consecutive_errors: int = MAX_CONSECUTIVE_ERRORS,
                 on_update: Optional[Callable[["PollTask"], None]] = None):
        self.checkout_request_id = checkout_request_id
        self.status_client = status_client
        self.interval = interval
        self.max_attempts = max_attempts
        self.max_consecutive_errors = max_consecutive_errors
        self.on_update = on_update

        self.state = PollState.PROCESSING
        self.message = STATE_MESSAGES[PollState.PROCESSING]
        self.polls = 0
        self.attempts = 0
        self.consecutive_errors = 0
        self.last_response: Optional[Dict[str, Any]] = None
        self.last_error: Optional[Exception] = None

        self._cancel_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def done(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def start(self) -> "PollTask":
        """Ejecuta el sondeo en un hilo daemon y retorna inmediatamente."""
        if self._thread is not None:
            return self
        self._thread = threading.Thread(
            target=self.run,
            name=f"payment-poll-{self.checkout_request_id}",
            daemon=True,
        )
        self._thread.start()
        return self

    def cancel(self) -> None:
        """Detiene el sondeo; el estado queda como estaba (no es un resultado del pago)."""
        self._cancel_event.set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Espera a que termine el hilo; retorna True si se alcanzó un estado terminal."""
        if self._thread is not None:
            self._thread.join(timeout)
        return self.done

    def run(self) -> PollState:
        """Bucle de sondeo bloqueante. La primera consulta es inmediata."""
        self._notify()
        delay: Optional[float] = 0
        while delay is not None and not self.done:
            if self._cancel_event.wait(delay):
                logger.info(f"Sondeo de {self.checkout_request_id} cancelado tras {self.polls} consultas.")
                break
            delay = self._poll_once()
        return self.state

    def _poll_once(self) -> Optional[float]:
        """Hace una consulta; retorna la espera hasta la siguiente o None si terminó."""
        self.polls += 1
        try:
            response = self.status_client.query_payment_status(self.checkout_request_id)
        except PaymentServiceError as e:
            return self._handle_error(e)

        self.consecutive_errors = 0
        self.last_response = response
        data = response.get('data') if isinstance(response, dict) else None
        data = data if isinstance(data, dict) else {}

        code = StkResultCode.from_raw(data.get('ResultCode'))
        if code == StkResultCode.SUCCESS:
            self._finish(PollState.COMPLETED)
            return None
        if code == StkResultCode.FAILED:
            self._finish(PollState.FAILED, data.get('ResultDesc'))
            return None

        # Pendiente (1032) o respuesta sin código: se sigue esperando
        self.attempts += 1
        if self.attempts >= self.max_attempts:
            self._finish(PollState.TIMEOUT)
            return None
        return self.interval

    def _handle_error(self, error: PaymentServiceError) -> Optional[float]:
        self.attempts += 1
        self.consecutive_errors += 1
        self.last_error = error
        logger.warning(
            f"Error consultando el pago {self.checkout_request_id} "
            f"(consecutivos {self.consecutive_errors}/{self.max_consecutive_errors}): {error}"
        )

        if self.consecutive_errors >= self.max_consecutive_errors:
            self._finish(PollState.ERROR)
            return None
        if self.attempts >= self.max_attempts:
            self._finish(PollState.ERROR, "Payment verification error. Please check your M-Pesa messages.")
            return None
        return self.interval * (1 + self.consecutive_errors * ERROR_BACKOFF_FACTOR)

    def _finish(self, state: PollState, message: Optional[str] = None) -> None:
        self.state = state
        self.message = message or STATE_MESSAGES[state]
        logger.info(f"Pago {self.checkout_request_id}: {state.value} tras {self.polls} consultas.")
        self._notify()

    def _notify(self) -> None:
        if self.on_update is None:
            return
        try:
            self.on_update(self)
        except Exception:
            logger.exception(f"El callback on_update falló para {self.checkout_request_id}")


class PaymentPoller:
    """Crea tareas de sondeo con la misma configuración de intervalo e intentos."""

    def __init__(self, status_client: PaymentsClient,
                 interval: float = POLL_INTERVAL_SECONDS,
                 max_attempts: int = MAX_POLL_ATTEMPTS,
                 max_consecutive_errors: int = MAX_CONSECUTIVE_ERRORS,
                 on_update: Optional[Callable[[PollTask], None]] = None):
        self.status_client = status_client
        self.interval = interval
        self.max_attempts = max_attempts
        self.max_consecutive_errors = max_consecutive_errors
        self.on_update = on_update

    def start(self, checkout_request_id: str, background: bool = True) -> PollTask:
        task = PollTask(
            checkout_request_id,
            self.status_client,
            interval=self.interval,
            max_attempts=self.max_attempts,
            max_consecutive_errors=self.max_consecutive_errors,
            on_update=self.on_update,
        )
        if background:
            return task.start()
        task.run()
        return task


def initiate_and_poll(payments_client: PaymentsClient, poller: PaymentPoller,
                      order_id: int, phone_number: str, background: bool = True) -> PollTask:
    """Inicia el pago de la orden y arranca el sondeo con el CheckoutRequestID recibido."""
    response = payments_client.initiate_mpesa_payment(order_id, phone_number)
    data = response.get('data') if isinstance(response, dict) else None
    checkout_request_id = data.get('CheckoutRequestID') if isinstance(data, dict) else None

    if not response.get('success') or not checkout_request_id:
        raise PaymentServiceError(response.get('message') or 'Failed to get transaction ID from M-Pesa.')

    logger.info(f"Pago de la orden {order_id} iniciado; sondeando {checkout_request_id}.")
    return poller.start(checkout_request_id, background=background)

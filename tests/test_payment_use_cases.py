import unittest
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import Mock

from storefront.application.payment_use_cases import (
    CallbackOutcome,
    HandlePaymentCallbackUseCase,
    HandlePaymentTimeoutUseCase,
    InitiatePaymentUseCase,
    QueryPaymentStatusUseCase,
)
from storefront.domain.entities import (
    Order,
    OrderItem,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    ShippingAddress,
)
from storefront.domain.exceptions import GatewayError, NotFoundError, RepositoryError, ValidationError
from storefront.domain.payments import StkPushResponse, StkResultCode, StkStatus

MOCK_NOW = datetime(2025, 1, 15, 10, 30, tzinfo=timezone.utc)
CHECKOUT_ID = "ws_CO_191220191020363925"


def make_order(transaction_id=None):
    items = [OrderItem(product_id="p1", name="Sukuma wiki", price=Decimal("1800"), quantity=1, unit="bunch")]
    address = ShippingAddress(first_name="Wanjiru", last_name="Kamau", email="wanjiru@example.com",
                              phone="0712345678", street="Moi Avenue 12", city="Nairobi",
                              state="Nairobi County", zip_code="00100")
    order = Order.create("user-1", items, address, PaymentMethod.MOBILE_MONEY, now=MOCK_NOW)
    order.order_id = 7
    order.payment_info.transaction_id = transaction_id
    return order


def callback_payload(result_code=0, checkout_id=CHECKOUT_ID, receipt="NLJ7RT61SV"):
    stk_callback = {
        "MerchantRequestID": "29115-34620561-1",
        "CheckoutRequestID": checkout_id,
        "ResultCode": result_code,
        "ResultDesc": "The service request is processed successfully." if result_code == 0
        else "Request cancelled by user",
    }
    if result_code == 0:
        stk_callback["CallbackMetadata"] = {"Item": [
            {"Name": "Amount", "Value": 2188},
            {"Name": "MpesaReceiptNumber", "Value": receipt},
            {"Name": "TransactionDate", "Value": 20250115103500},
            {"Name": "PhoneNumber", "Value": 254712345678},
        ]}
    return {"Body": {"stkCallback": stk_callback}}


class TestInitiatePaymentUseCase(unittest.TestCase):

    def setUp(self):
        self.mock_repository = Mock()
        self.mock_gateway = Mock()
        self.use_case = InitiatePaymentUseCase(self.mock_repository, self.mock_gateway)

    def test_initiates_push_and_records_transaction(self):
        order = make_order()
        self.mock_repository.get_order_by_id.return_value = order
        self.mock_gateway.initiate_push.return_value = StkPushResponse.from_payload({
            "MerchantRequestID": "29115-34620561-1",
            "CheckoutRequestID": CHECKOUT_ID,
            "ResponseCode": "0",
        })

        push = self.use_case.execute(7, "0712345678")

        self.assertEqual(push.checkout_request_id, CHECKOUT_ID)
        self.mock_gateway.initiate_push.assert_called_once_with(
            "0712345678", Decimal("2188.00"), order.order_number, f"Payment for order {order.order_number}"
        )
        self.mock_repository.attach_payment_transaction.assert_called_once_with(order)
        self.assertEqual(order.payment_info.transaction_id, CHECKOUT_ID)
        self.assertEqual(order.payment_info.status, PaymentStatus.PENDING)

    def test_missing_order_makes_no_gateway_call(self):
        self.mock_repository.get_order_by_id.return_value = None

        with self.assertRaises(NotFoundError):
            self.use_case.execute(999, "0712345678")

        self.mock_gateway.initiate_push.assert_not_called()
        self.mock_repository.attach_payment_transaction.assert_not_called()

    def test_paid_order_rejected(self):
        order = make_order(CHECKOUT_ID)
        order.record_payment_success("NLJ7RT61SV")
        self.mock_repository.get_order_by_id.return_value = order

        with self.assertRaises(ValidationError):
            self.use_case.execute(7, "0712345678")
        self.mock_gateway.initiate_push.assert_not_called()

    def test_gateway_failure_leaves_order_untouched(self):
        order = make_order()
        self.mock_repository.get_order_by_id.return_value = order
        self.mock_gateway.initiate_push.side_effect = GatewayError("Bad Request - Invalid PhoneNumber", 400)

        with self.assertRaises(GatewayError):
            self.use_case.execute(7, "0712345678")

        self.assertIsNone(order.payment_info.transaction_id)
        self.mock_repository.attach_payment_transaction.assert_not_called()

    def test_attach_failure_logs_checkout_request_id(self):
        order = make_order()
        self.mock_repository.get_order_by_id.return_value = order
        self.mock_repository.attach_payment_transaction.side_effect = RepositoryError("db down")
        self.mock_gateway.initiate_push.return_value = StkPushResponse.from_payload({
            "MerchantRequestID": "29115-34620561-1",
            "CheckoutRequestID": CHECKOUT_ID,
            "ResponseCode": "0",
        })

        with self.assertLogs('storefront.application.payment_use_cases', level='ERROR') as logs:
            with self.assertRaises(RepositoryError):
                self.use_case.execute(7, "0712345678")

        self.assertEqual(len(logs.records), 1)
        self.assertIn(CHECKOUT_ID, logs.output[0])
        self.assertIn(order.order_number, logs.output[0])


class TestHandlePaymentCallbackUseCase(unittest.TestCase):

    def setUp(self):
        self.mock_repository = Mock()
        self.mock_repository.save_payment_result.return_value = True
        self.use_case = HandlePaymentCallbackUseCase(self.mock_repository)

    def test_success_confirms_order(self):
        order = make_order(CHECKOUT_ID)
        self.mock_repository.get_order_by_transaction_id.return_value = order

        outcome = self.use_case.execute(callback_payload(0))

        self.assertEqual(outcome, CallbackOutcome.APPLIED)
        self.mock_repository.get_order_by_transaction_id.assert_called_once_with(CHECKOUT_ID)
        self.mock_repository.save_payment_result.assert_called_once_with(order, PaymentStatus.PENDING)
        self.assertEqual(order.status, OrderStatus.CONFIRMED)
        self.assertEqual(order.payment_info.status, PaymentStatus.COMPLETED)
        self.assertEqual(order.payment_info.mpesa_receipt_number, "NLJ7RT61SV")
        self.assertIsNotNone(order.payment_info.paid_at)

    def test_failure_marks_payment_failed(self):
        order = make_order(CHECKOUT_ID)
        self.mock_repository.get_order_by_transaction_id.return_value = order

        outcome = self.use_case.execute(callback_payload(1032))

        self.assertEqual(outcome, CallbackOutcome.APPLIED)
        self.assertEqual(order.payment_info.status, PaymentStatus.FAILED)
        self.assertEqual(order.status, OrderStatus.PENDING)

    def test_unknown_checkout_request_is_ignored(self):
        self.mock_repository.get_order_by_transaction_id.return_value = None

        outcome = self.use_case.execute(callback_payload(0, checkout_id="ws_CO_unknown"))

        self.assertEqual(outcome, CallbackOutcome.UNMATCHED)
        self.mock_repository.save_payment_result.assert_not_called()

    def test_duplicate_success_is_not_rewritten(self):
        order = make_order(CHECKOUT_ID)
        order.record_payment_success("NLJ7RT61SV", now=MOCK_NOW)
        self.mock_repository.get_order_by_transaction_id.return_value = order

        outcome = self.use_case.execute(callback_payload(0, receipt="OTHER00000"))

        self.assertEqual(outcome, CallbackOutcome.DUPLICATE)
        self.assertEqual(order.payment_info.mpesa_receipt_number, "NLJ7RT61SV")
        self.assertEqual(order.payment_info.paid_at, MOCK_NOW)
        self.mock_repository.save_payment_result.assert_not_called()

    def test_concurrent_change_is_reported_stale(self):
        self.mock_repository.get_order_by_transaction_id.return_value = make_order(CHECKOUT_ID)
        self.mock_repository.save_payment_result.return_value = False

        outcome = self.use_case.execute(callback_payload(0))

        self.assertEqual(outcome, CallbackOutcome.STALE)

    def test_malformed_payload(self):
        with self.assertRaises(ValidationError):
            self.use_case.execute({"unexpected": True})
        self.mock_repository.get_order_by_transaction_id.assert_not_called()


class TestHandlePaymentTimeoutUseCase(unittest.TestCase):

    def setUp(self):
        self.mock_repository = Mock()
        self.mock_repository.save_payment_result.return_value = True
        self.use_case = HandlePaymentTimeoutUseCase(self.mock_repository)

    def test_timeout_marks_payment_failed(self):
        order = make_order(CHECKOUT_ID)
        self.mock_repository.get_order_by_transaction_id.return_value = order

        outcome = self.use_case.execute(CHECKOUT_ID)

        self.assertEqual(outcome, CallbackOutcome.APPLIED)
        self.assertEqual(order.payment_info.status, PaymentStatus.FAILED)
        self.mock_repository.save_payment_result.assert_called_once_with(order, PaymentStatus.PENDING)

    def test_timeout_after_payment_is_ignored(self):
        order = make_order(CHECKOUT_ID)
        order.record_payment_success("NLJ7RT61SV")
        self.mock_repository.get_order_by_transaction_id.return_value = order

        outcome = self.use_case.execute(CHECKOUT_ID)

        self.assertEqual(outcome, CallbackOutcome.DUPLICATE)
        self.assertEqual(order.payment_info.status, PaymentStatus.COMPLETED)

    def test_unknown_checkout_request(self):
        self.mock_repository.get_order_by_transaction_id.return_value = None
        self.assertEqual(self.use_case.execute("ws_CO_unknown"), CallbackOutcome.UNMATCHED)

    def test_missing_checkout_request_id(self):
        with self.assertRaises(ValidationError):
            self.use_case.execute(None)


class TestQueryPaymentStatusUseCase(unittest.TestCase):

    def test_delegates_to_gateway(self):
        mock_gateway = Mock()
        mock_gateway.query_status.return_value = StkStatus.from_payload({"ResultCode": "1032"})

        status = QueryPaymentStatusUseCase(mock_gateway).execute(CHECKOUT_ID)

        self.assertEqual(status.code, StkResultCode.PENDING)
        mock_gateway.query_status.assert_called_once_with(CHECKOUT_ID)

    def test_requires_checkout_request_id(self):
        mock_gateway = Mock()
        with self.assertRaises(ValidationError):
            QueryPaymentStatusUseCase(mock_gateway).execute("")
        mock_gateway.query_status.assert_not_called()


if __name__ == '__main__':
    unittest.main()

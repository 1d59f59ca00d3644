from unittest.mock import MagicMock, patch

import pytest
import requests

from storefront.clients.payments_client import PaymentServiceError, PaymentsClient


def mock_response(status_code=200, body=None):
    resp = MagicMock()
    resp.status_code = status_code
    resp.ok = 200 <= status_code < 300
    if body is None:
        resp.json.side_effect = ValueError("no json")
    else:
        resp.json.return_value = body
    return resp


class TestPaymentsClient:
    """Tests para PaymentsClient"""

    def test_defaults_from_environment(self, monkeypatch):
        monkeypatch.setenv('PAYMENTS_API_URL', 'https://api.shop.example.com/')
        monkeypatch.setenv('PAYMENTS_API_TIMEOUT', '7')
        client = PaymentsClient()
        assert client.base_url == 'https://api.shop.example.com'
        assert client.timeout == 7

    @patch('storefront.clients.payments_client.requests.request')
    def test_initiate_mpesa_payment(self, mock_request):
        body = {"success": True, "data": {"CheckoutRequestID": "ws_CO_1"}}
        mock_request.return_value = mock_response(200, body)

        res = PaymentsClient('http://payments', timeout=3).initiate_mpesa_payment(12, "0712345678")

        assert res == body
        mock_request.assert_called_once_with(
            'POST', 'http://payments/payments/mpesa/initiate', timeout=3,
            json={"orderId": 12, "phoneNumber": "0712345678"},
        )

    @patch('storefront.clients.payments_client.requests.request')
    def test_query_payment_status(self, mock_request):
        body = {"success": True, "data": {"ResultCode": "1032"}}
        mock_request.return_value = mock_response(200, body)

        res = PaymentsClient('http://payments', timeout=3).query_payment_status("ws_CO_1")

        assert res == body
        mock_request.assert_called_once_with('GET', 'http://payments/payments/mpesa/status/ws_CO_1', timeout=3)

    @patch('storefront.clients.payments_client.requests.request')
    def test_error_response_uses_server_message(self, mock_request):
        mock_request.return_value = mock_response(404, {"success": False, "message": "Order 12 not found"})

        with pytest.raises(PaymentServiceError) as exc:
            PaymentsClient('http://payments').initiate_mpesa_payment(12, "0712345678")

        assert exc.value.message == "Order 12 not found"
        assert exc.value.status_code == 404

    @patch('storefront.clients.payments_client.requests.request')
    def test_error_response_without_body(self, mock_request):
        mock_request.return_value = mock_response(502, None)

        with pytest.raises(PaymentServiceError) as exc:
            PaymentsClient('http://payments').query_payment_status("ws_CO_1")

        assert exc.value.status_code == 502

    @patch('storefront.clients.payments_client.requests.request')
    def test_connection_error(self, mock_request):
        mock_request.side_effect = requests.exceptions.ConnectionError('boom')

        with pytest.raises(PaymentServiceError) as exc:
            PaymentsClient('http://payments').query_payment_status("ws_CO_1")

        assert exc.value.status_code is None

"""Tests for TapConnector implementation."""

import pytest
import httpx

from tap_checkout.config import GatewayConfig
from tap_checkout.connectors.tap_connector import TapConnector
from tap_checkout.connectors.base import (
    AuthorizeRequest,
    CardDetails,
    CustomerDetails,
    FailureKind,
    PaymentValidationError,
)


class TestTapConnectorInit:
    """Tests for TapConnector initialization."""

    def test_init_with_config(self, gateway_config):
        connector = TapConnector(gateway_config)
        assert connector.config.secret_key == "sk_test_mock_key"
        connector.close()

    def test_init_without_secret_raises(self):
        with pytest.raises(ValueError) as exc_info:
            TapConnector(GatewayConfig(secret_key=""))
        assert "TAP_SECRET_KEY" in str(exc_info.value)


class TestTapConnectorTokenize:
    """Tests for TapConnector.tokenize."""

    def test_tokenize_success(self, make_tap_connector, valid_card):
        connector, transport = make_tap_connector(
            lambda request: httpx.Response(200, json={"id": "tok_abc", "object": "token"})
        )
        result = connector.tokenize(CardDetails(**valid_card), client_ip="203.0.113.7")

        assert result.ok
        assert result.id == "tok_abc"
        request = transport.requests[0]
        assert request.method == "POST"
        assert request.url == "https://api.tap.test/v2/tokens"
        body = transport.json_bodies()[0]
        assert body["card"]["number"] == "5123450000000008"
        assert body["card"]["cvc"] == "100"
        assert body["client_ip"] == "203.0.113.7"

    def test_tokenize_omits_missing_client_ip(self, make_tap_connector, valid_card):
        connector, transport = make_tap_connector(
            lambda request: httpx.Response(200, json={"id": "tok_abc"})
        )
        connector.tokenize(CardDetails(**valid_card))
        assert "client_ip" not in transport.json_bodies()[0]

    def test_tokenize_requires_card_number(self, make_tap_connector):
        connector, transport = make_tap_connector(lambda request: httpx.Response(200, json={}))
        with pytest.raises(PaymentValidationError) as exc_info:
            connector.tokenize(CardDetails(number=""))
        assert exc_info.value.reason == "card_number_required"
        assert transport.requests == []

    def test_tokenize_gateway_error_passthrough(self, make_tap_connector, valid_card):
        error_body = {"errors": [{"code": "1108", "description": "Invalid card number"}]}
        connector, _ = make_tap_connector(lambda request: httpx.Response(400, json=error_body))
        result = connector.tokenize(CardDetails(**valid_card))

        assert not result.ok
        assert result.kind == FailureKind.GATEWAY
        assert result.status_code == 400
        assert result.raw == error_body


class TestTapConnectorAuthorize:
    """Tests for TapConnector.authorize."""

    def test_authorize_with_token(self, make_tap_connector, authorized_payload):
        connector, transport = make_tap_connector(
            lambda request: httpx.Response(200, json=authorized_payload)
        )
        request = AuthorizeRequest(amount=10, currency="USD", token_id="tok_test", order_id="ORD-1")
        result = connector.authorize(request)

        assert result.ok
        assert result.status == "AUTHORIZED"
        assert result.id == "auth_TS0123456789"
        assert result.amount == 10
        assert result.transaction_url is None
        assert result.raw == authorized_payload

        assert len(transport.requests) == 1
        assert transport.requests[0].url == "https://api.tap.test/v2/authorize"
        body = transport.json_bodies()[0]
        assert body["amount"] == 10
        assert body["currency"] == "USD"
        assert body["threeDSecure"] is True
        assert body["source"] == {"id": "tok_test"}
        assert body["merchant"] == {"id": "merchant_123"}
        assert body["description"] == "Order ORD-1"
        assert body["reference"] == {"order": "ORD-1"}
        assert body["redirect"]["url"] == "https://shop.example.com/pay/return?order=ORD-1"

    def test_authorize_sends_bearer_secret(self, make_tap_connector, authorized_payload):
        connector, transport = make_tap_connector(
            lambda request: httpx.Response(200, json=authorized_payload)
        )
        connector.authorize(AuthorizeRequest(amount=10, token_id="tok_test"))
        headers = transport.requests[0].headers
        assert headers["Authorization"] == "Bearer sk_test_mock_key"
        assert headers["Content-Type"] == "application/json"

    def test_authorize_customer_placeholders(self, make_tap_connector, authorized_payload):
        connector, transport = make_tap_connector(
            lambda request: httpx.Response(200, json=authorized_payload)
        )
        connector.authorize(AuthorizeRequest(amount=10, token_id="tok_test"))
        body = transport.json_bodies()[0]

        assert body["customer"] == {
            "first_name": "NA",
            "last_name": "NA",
            "email": "na@example.com",
        }
        assert body["description"] == "Order"
        assert "reference" not in body
        assert body["redirect"]["url"] == "https://shop.example.com/pay/return"

    def test_authorize_customer_phone(self, make_tap_connector, authorized_payload):
        connector, transport = make_tap_connector(
            lambda request: httpx.Response(200, json=authorized_payload)
        )
        customer = CustomerDetails(first_name="Ada", last_name="Lovelace", email="ada@example.com", phone="5550100")
        connector.authorize(AuthorizeRequest(amount=10, token_id="tok_test", customer=customer))
        body = transport.json_bodies()[0]

        assert body["customer"]["first_name"] == "Ada"
        assert body["customer"]["phone"] == {"country_code": "1", "number": "5550100"}

    def test_authorize_custom_return_path(self, make_tap_connector, authorized_payload):
        connector, transport = make_tap_connector(
            lambda request: httpx.Response(200, json=authorized_payload)
        )
        connector.authorize(
            AuthorizeRequest(amount=10, token_id="tok_test", return_path="/checkout/done", order_id="A 1")
        )
        url = httpx.URL(transport.json_bodies()[0]["redirect"]["url"])
        assert url.path == "/checkout/done"
        assert url.params["order"] == "A 1"

    def test_authorize_with_card_tokenizes_first(self, make_tap_connector, valid_card, initiated_payload):
        def handler(request):
            if request.url.path.endswith("/tokens"):
                return httpx.Response(200, json={"id": "tok_from_card"})
            return httpx.Response(200, json=initiated_payload)

        connector, transport = make_tap_connector(handler)
        request = AuthorizeRequest(amount=10, card=CardDetails(**valid_card))
        result = connector.authorize(request)

        assert [r.url.path for r in transport.requests] == ["/v2/tokens", "/v2/authorize"]
        assert transport.json_bodies()[1]["source"] == {"id": "tok_from_card"}
        assert result.transaction_url == "https://acs.tap.test/3ds/auth_TS3DS000001"
        assert result.status == "INITIATED"

    def test_authorize_tokenize_failure_stops(self, make_tap_connector, valid_card):
        connector, transport = make_tap_connector(
            lambda request: httpx.Response(400, json={"errors": [{"code": "1108"}]})
        )
        result = connector.authorize(AuthorizeRequest(amount=10, card=CardDetails(**valid_card)))

        assert not result.ok
        assert result.status_code == 400
        assert len(transport.requests) == 1

    def test_authorize_token_takes_precedence_over_card(self, make_tap_connector, valid_card, authorized_payload):
        connector, transport = make_tap_connector(
            lambda request: httpx.Response(200, json=authorized_payload)
        )
        connector.authorize(AuthorizeRequest(amount=10, token_id="tok_test", card=CardDetails(**valid_card)))
        assert len(transport.requests) == 1

    @pytest.mark.parametrize("amount", [0, -5, None, float("nan")])
    def test_authorize_rejects_bad_amount_before_network(self, make_tap_connector, amount):
        connector, transport = make_tap_connector(lambda request: httpx.Response(200, json={}))
        with pytest.raises(PaymentValidationError) as exc_info:
            connector.authorize(AuthorizeRequest(amount=amount, token_id="tok_test"))
        assert exc_info.value.reason == "invalid_amount"
        assert transport.requests == []

    def test_authorize_rejects_bad_amount_on_card_path(self, make_tap_connector, valid_card):
        connector, transport = make_tap_connector(lambda request: httpx.Response(200, json={}))
        with pytest.raises(PaymentValidationError):
            connector.authorize(AuthorizeRequest(amount=0, card=CardDetails(**valid_card)))
        assert transport.requests == []

    def test_authorize_requires_token_or_card(self, make_tap_connector):
        connector, transport = make_tap_connector(lambda request: httpx.Response(200, json={}))
        with pytest.raises(PaymentValidationError) as exc_info:
            connector.authorize(AuthorizeRequest(amount=10))
        assert exc_info.value.reason == "token_or_card_required"
        assert transport.requests == []

    def test_authorize_ok_follows_http_status_not_business_status(self, make_tap_connector):
        connector, _ = make_tap_connector(
            lambda request: httpx.Response(200, json={"id": "auth_x", "status": "DECLINED"})
        )
        result = connector.authorize(AuthorizeRequest(amount=10, token_id="tok_test"))
        assert result.ok
        assert result.status == "DECLINED"


class TestTapConnectorCapture:
    """Tests for TapConnector.capture."""

    def test_capture_success(self, make_tap_connector, captured_payload):
        connector, transport = make_tap_connector(
            lambda request: httpx.Response(200, json=captured_payload)
        )
        result = connector.capture("auth_TS0123456789", amount=10, order_id="ORD-1")

        assert result.ok
        assert result.status == "CAPTURED"
        request = transport.requests[0]
        assert request.url == "https://api.tap.test/v2/charges"
        assert request.headers["Idempotency-Key"] == "cap-auth_TS0123456789"
        body = transport.json_bodies()[0]
        assert body["source"] == {"id": "auth_TS0123456789"}
        assert body["amount"] == 10
        assert body["currency"] == "USD"
        assert body["description"] == "Capture for ORD-1"

    def test_capture_uses_supplied_idempotency_key(self, make_tap_connector, captured_payload):
        connector, transport = make_tap_connector(
            lambda request: httpx.Response(200, json=captured_payload)
        )
        connector.capture("auth_1", amount=10, idempotency_key="client-key-9")
        assert transport.requests[0].headers["Idempotency-Key"] == "client-key-9"

    def test_capture_derived_key_is_stable(self, make_tap_connector, captured_payload):
        connector, transport = make_tap_connector(
            lambda request: httpx.Response(200, json=captured_payload)
        )
        connector.capture("auth_same", amount=10)
        connector.capture("auth_same", amount=10)
        keys = {r.headers["Idempotency-Key"] for r in transport.requests}
        assert keys == {"cap-auth_same"}

    def test_capture_defaults(self, make_tap_connector, captured_payload):
        connector, transport = make_tap_connector(
            lambda request: httpx.Response(200, json=captured_payload)
        )
        connector.capture("auth_1")
        body = transport.json_bodies()[0]
        assert body["amount"] == 1
        assert body["currency"] == "USD"
        assert body["description"] == "Capture for auth_1"

    def test_capture_requires_authorize_id(self, make_tap_connector):
        connector, transport = make_tap_connector(lambda request: httpx.Response(200, json={}))
        with pytest.raises(PaymentValidationError) as exc_info:
            connector.capture("")
        assert exc_info.value.reason == "authorize_id_required"
        assert transport.requests == []

    def test_capture_gateway_error_passthrough(self, make_tap_connector):
        error_body = {"errors": [{"code": "1126", "description": "Authorize not found"}]}
        connector, transport = make_tap_connector(lambda request: httpx.Response(404, json=error_body))
        result = connector.capture("auth_bad", amount=10)

        assert not result.ok
        assert result.kind == FailureKind.GATEWAY
        assert result.status_code == 404
        assert result.raw == error_body
        assert len(transport.requests) == 1


class TestTapConnectorFetch:
    """Tests for TapConnector.fetch_authorization."""

    def test_fetch_authorization(self, make_tap_connector, authorized_payload):
        connector, transport = make_tap_connector(
            lambda request: httpx.Response(200, json=authorized_payload)
        )
        result = connector.fetch_authorization("auth_TS0123456789")

        assert result.ok
        assert result.status == "AUTHORIZED"
        assert transport.requests[0].method == "GET"
        assert transport.requests[0].url.path == "/v2/authorize/auth_TS0123456789"

    def test_fetch_authorization_encodes_id(self, make_tap_connector, authorized_payload):
        connector, transport = make_tap_connector(
            lambda request: httpx.Response(200, json=authorized_payload)
        )
        connector.fetch_authorization("auth 1")
        assert transport.requests[0].url.raw_path == b"/v2/authorize/auth%201"


class TestTapConnectorWebhook:
    """Tests for TapConnector.parse_webhook."""

    def test_parse_json_event(self, gateway_config):
        connector = TapConnector(gateway_config)
        body = b'{"id": "chg_1", "object": "charge", "status": "CAPTURED"}'
        event = connector.parse_webhook({}, body)

        assert event["provider"] == "tap"
        assert event["verified"] is False
        assert event["type"] == "charge"
        assert event["object_id"] == "chg_1"
        assert event["status"] == "CAPTURED"

    def test_parse_nested_object(self, gateway_config):
        connector = TapConnector(gateway_config)
        body = b'{"type": "authorize.updated", "object": {"id": "auth_1", "status": "AUTHORIZED"}}'
        event = connector.parse_webhook({}, body)

        assert event["type"] == "authorize.updated"
        assert event["object_id"] == "auth_1"
        assert event["status"] == "AUTHORIZED"

    def test_parse_non_json_keeps_text(self, gateway_config):
        connector = TapConnector(gateway_config)
        event = connector.parse_webhook({}, b"not json")
        assert event["payload"] == "not json"
        assert event["type"] is None

    def test_parse_invalid_utf8_is_replaced(self, gateway_config):
        connector = TapConnector(gateway_config)
        event = connector.parse_webhook({}, b"\xff\xfe\xfa")
        assert event["payload"] == "\ufffd\ufffd\ufffd"
        assert event["type"] is None

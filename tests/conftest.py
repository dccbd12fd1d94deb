"""Shared test fixtures and configuration."""

import json
import os
import pytest
import httpx
from typing import Dict, Any, List

# Set up test environment variables before importing modules
os.environ.setdefault("TAP_SECRET_KEY", "sk_test_dummy_key_for_testing")
os.environ.setdefault("TAP_MERCHANT_ID", "merchant_123")
os.environ.setdefault("TAP_API_BASE", "https://api.tap.test/v2")
os.environ.setdefault("WEB_BASE_URL", "https://shop.example.com")

from tap_checkout.config import GatewayConfig
from tap_checkout.connectors.tap_connector import TapConnector
from tap_checkout.connectors.simulator_connector import SimulatorConnector


class RecordingTransport(httpx.MockTransport):
    """MockTransport that keeps every request it served."""

    def __init__(self, handler):
        self.requests: List[httpx.Request] = []

        def recording_handler(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        super().__init__(recording_handler)

    def json_bodies(self) -> List[Dict[str, Any]]:
        return [json.loads(r.content) if r.content else None for r in self.requests]


@pytest.fixture
def gateway_config() -> GatewayConfig:
    """Return a fixed gateway configuration."""
    return GatewayConfig(
        api_base="https://api.tap.test/v2",
        secret_key="sk_test_mock_key",
        merchant_id="merchant_123",
        web_base_url="https://shop.example.com",
    )


@pytest.fixture
def make_tap_connector(gateway_config):
    """Build a TapConnector whose HTTP calls are answered by `handler`."""
    def factory(handler):
        transport = RecordingTransport(handler)
        connector = TapConnector(gateway_config, client=httpx.Client(transport=transport))
        return connector, transport
    return factory


@pytest.fixture
def simulator() -> SimulatorConnector:
    """Create a fresh simulator gateway."""
    return SimulatorConnector()


@pytest.fixture
def authorized_payload() -> Dict[str, Any]:
    """Tap authorize payload with no 3DS step left."""
    return {
        "id": "auth_TS0123456789",
        "object": "authorize",
        "status": "AUTHORIZED",
        "amount": 10,
        "currency": "USD",
        "reference": {"order": "ORD-1"},
    }


@pytest.fixture
def initiated_payload() -> Dict[str, Any]:
    """Tap authorize payload that still needs the 3DS redirect."""
    return {
        "id": "auth_TS3DS000001",
        "object": "authorize",
        "status": "INITIATED",
        "amount": 10,
        "currency": "USD",
        "transaction": {"url": "https://acs.tap.test/3ds/auth_TS3DS000001"},
    }


@pytest.fixture
def captured_payload() -> Dict[str, Any]:
    """Tap charge payload for a successful capture."""
    return {
        "id": "chg_TS0000000001",
        "object": "charge",
        "status": "CAPTURED",
        "amount": 10,
        "currency": "USD",
    }


@pytest.fixture
def valid_card() -> Dict[str, Any]:
    """Return card fields the frontend posts."""
    return {
        "number": "5123450000000008",
        "exp_month": 11,
        "exp_year": 25,
        "cvc": "100",
        "name": "Test User",
    }

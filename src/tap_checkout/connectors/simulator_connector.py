"""Simulator connector that mimics the Tap API in memory, for tests and local runs."""

import uuid
import random
import logging
from typing import Dict, Any, List, Optional
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from .base import (
    ConnectorBase,
    AuthorizeRequest,
    CardDetails,
    FailureKind,
    GatewayFailure,
    GatewayResult,
    GatewaySuccess,
    PaymentValidationError,
    DEFAULT_CURRENCY,
    STATUS_AUTHORIZED,
    STATUS_CAPTURED,
    capture_idempotency_key,
    decode_webhook_body,
    validate_amount,
)

logger = logging.getLogger(__name__)


class SimulatorScenario(str, Enum):
    """Predefined test scenarios for the simulator."""
    SUCCESS = "success"
    DECLINE = "decline"
    REQUIRES_3DS = "requires_3ds"
    GATEWAY_ERROR = "gateway_error"
    TIMEOUT = "timeout"


@dataclass
class SimulatedAuthorization:
    """In-memory representation of a simulated authorization."""
    id: str
    amount: float
    currency: str
    status: str
    order_id: Optional[str] = None
    redirect_url: Optional[str] = None
    requires_3ds: bool = False
    three_ds_completed: bool = False
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "id": self.id,
            "object": "authorize",
            "status": self.status,
            "amount": self.amount,
            "currency": self.currency,
            "reference": {"order": self.order_id},
            "simulator": True,
        }
        if self.requires_3ds and not self.three_ds_completed:
            payload["transaction"] = {"url": f"https://sim.tap.local/3ds/{self.id}"}
        return payload


@dataclass
class SimulatorConfig:
    """Configuration for simulator behavior."""
    success_rate: float = 1.0  # 0.0 to 1.0
    three_ds_rate: float = 0.0  # Rate of 3DS challenges
    seed: Optional[int] = None  # Random seed for reproducibility


class SimulatorConnector(ConnectorBase):
    """
    Simulator connector for exercising the checkout flow without calling Tap.

    Features:
    - In-memory authorization and charge storage
    - Configurable decline and 3DS rates
    - Special tokens and card numbers for specific scenarios
    - Idempotent captures keyed on the Idempotency-Key value
    - A record of every simulated outbound call in `calls`
    """

    # Special tokens for triggering specific behaviors
    TOKEN_SUCCESS = "tok_sim_success"
    TOKEN_DECLINE = "tok_sim_decline"
    TOKEN_3DS = "tok_sim_3ds"
    TOKEN_GATEWAY_ERROR = "tok_sim_gateway_error"
    TOKEN_TIMEOUT = "tok_sim_timeout"

    # Card numbers map onto the tokens above when tokenized
    CARD_NUMBERS = {
        "5123450000000008": TOKEN_SUCCESS,
        "4000000000000002": TOKEN_3DS,
        "4000000000000069": TOKEN_DECLINE,
    }

    def __init__(self, config: Optional[SimulatorConfig] = None):
        """Initialize the simulator with optional configuration."""
        self.config = config or SimulatorConfig()
        self._authorizations: Dict[str, SimulatedAuthorization] = {}
        self._charges: Dict[str, Dict[str, Any]] = {}
        self._rng = random.Random(self.config.seed)
        self.calls: List[str] = []
        logger.info("SimulatorConnector initialized")

    def _generate_id(self, prefix: str) -> str:
        return f"{prefix}_{uuid.uuid4().hex[:24]}"

    def _determine_scenario(self, token: str) -> SimulatorScenario:
        """Determine scenario based on token or random config."""
        token_scenarios = {
            self.TOKEN_SUCCESS: SimulatorScenario.SUCCESS,
            self.TOKEN_DECLINE: SimulatorScenario.DECLINE,
            self.TOKEN_3DS: SimulatorScenario.REQUIRES_3DS,
            self.TOKEN_GATEWAY_ERROR: SimulatorScenario.GATEWAY_ERROR,
            self.TOKEN_TIMEOUT: SimulatorScenario.TIMEOUT,
        }
        if token in token_scenarios:
            return token_scenarios[token]
        if self._rng.random() >= self.config.success_rate:
            return SimulatorScenario.DECLINE
        if self._rng.random() < self.config.three_ds_rate:
            return SimulatorScenario.REQUIRES_3DS
        return SimulatorScenario.SUCCESS

    @staticmethod
    def _not_found(operation: str, object_id: str) -> GatewayFailure:
        raw = {"errors": [{"code": "1140", "description": f"{object_id} not found"}]}
        return GatewayFailure(
            kind=FailureKind.GATEWAY, status_code=404, error=f"{operation}_failed", raw=raw
        )

    def tokenize(self, card: CardDetails, client_ip: Optional[str] = None) -> GatewayResult:
        if card is None or not card.number:
            raise PaymentValidationError("card_number_required", "card.number required")
        self.calls.append("tokenize")
        token_id = self.CARD_NUMBERS.get(card.number) or self._generate_id("tok")
        raw = {
            "id": token_id,
            "object": "token",
            "card": {"last_four": card.number[-4:]},
            "client_ip": client_ip,
        }
        return GatewaySuccess(status_code=200, id=token_id, raw=raw)

    def authorize(self, request: AuthorizeRequest) -> GatewayResult:
        """Authorize a simulated payment."""
        if not request.token_id and request.card is None:
            raise PaymentValidationError("token_or_card_required", "tokenId or card required")
        amount = validate_amount(request.amount)

        token_id = request.token_id
        if not token_id:
            tokenized = self.tokenize(request.card, request.client_ip)
            if not tokenized.ok:
                return tokenized
            token_id = tokenized.id

        self.calls.append("authorize")
        scenario = self._determine_scenario(token_id)

        if scenario == SimulatorScenario.TIMEOUT:
            return GatewayFailure(
                kind=FailureKind.TRANSPORT,
                status_code=500,
                error="authorize_failed",
                detail="Simulated timeout",
            )

        if scenario == SimulatorScenario.GATEWAY_ERROR:
            raw = {"errors": [{"code": "1117", "description": "Invalid source"}]}
            return GatewayFailure(
                kind=FailureKind.GATEWAY, status_code=400, error="authorize_failed", raw=raw
            )

        requires_3ds = scenario == SimulatorScenario.REQUIRES_3DS
        if scenario == SimulatorScenario.DECLINE:
            status = "DECLINED"
        elif requires_3ds:
            status = "INITIATED"
        else:
            status = STATUS_AUTHORIZED

        auth = SimulatedAuthorization(
            id=self._generate_id("auth"),
            amount=amount,
            currency=request.currency or DEFAULT_CURRENCY,
            status=status,
            order_id=request.order_id,
            requires_3ds=requires_3ds,
        )
        self._authorizations[auth.id] = auth
        payload = auth.to_payload()
        return GatewaySuccess(
            status_code=200,
            status=auth.status,
            id=auth.id,
            amount=auth.amount,
            currency=auth.currency,
            transaction_url=(payload.get("transaction") or {}).get("url"),
            raw=payload,
        )

    def capture(
        self,
        authorize_id: str,
        amount: Optional[float] = None,
        currency: Optional[str] = None,
        order_id: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> GatewayResult:
        """Capture a previously authorized payment."""
        if not authorize_id:
            raise PaymentValidationError("authorize_id_required", "authorizeId required")
        amt = 1.0 if amount is None else validate_amount(amount)
        self.calls.append("capture")

        key = idempotency_key or capture_idempotency_key(authorize_id)
        if key in self._charges:
            raw = self._charges[key]
            return GatewaySuccess(
                status_code=200, status=raw["status"], id=raw["id"],
                amount=raw["amount"], currency=raw["currency"], raw=raw,
            )

        auth = self._authorizations.get(authorize_id)
        if not auth:
            return self._not_found("capture", authorize_id)

        if auth.status != STATUS_AUTHORIZED:
            raw = {
                "errors": [{"code": "1126", "description": f"cannot capture {auth.status}"}],
                "status": auth.status,
            }
            return GatewayFailure(
                kind=FailureKind.GATEWAY, status_code=400, error="capture_failed",
                status=auth.status, raw=raw,
            )

        auth.status = STATUS_CAPTURED
        raw = {
            "id": self._generate_id("chg"),
            "object": "charge",
            "status": STATUS_CAPTURED,
            "amount": amt,
            "currency": currency or auth.currency,
            "source": {"id": authorize_id},
            "description": f"Capture for {order_id or authorize_id}",
            "simulator": True,
        }
        self._charges[key] = raw
        return GatewaySuccess(
            status_code=200, status=STATUS_CAPTURED, id=raw["id"],
            amount=amt, currency=raw["currency"], raw=raw,
        )

    def fetch_authorization(self, authorize_id: str) -> GatewayResult:
        if not authorize_id:
            raise PaymentValidationError("authorize_id_required", "authorize id required")
        self.calls.append("fetch_authorize")
        auth = self._authorizations.get(authorize_id)
        if not auth:
            return self._not_found("fetch_authorize", authorize_id)
        payload = auth.to_payload()
        return GatewaySuccess(
            status_code=200,
            status=auth.status,
            id=auth.id,
            amount=auth.amount,
            currency=auth.currency,
            transaction_url=(payload.get("transaction") or {}).get("url"),
            raw=payload,
        )

    def parse_webhook(self, headers: Dict[str, str], body: bytes) -> Dict[str, Any]:
        """Parse a simulated webhook payload."""
        payload = decode_webhook_body(body)
        data = payload if isinstance(payload, dict) else {}
        return {
            "type": data.get("object"),
            "provider": "simulator",
            "verified": False,
            "object_id": data.get("id"),
            "status": data.get("status"),
            "payload": payload,
        }

    def complete_3ds(self, authorize_id: str, success: bool = True) -> GatewayResult:
        """Finish a pending 3DS challenge, as the cardholder's browser would."""
        auth = self._authorizations.get(authorize_id)
        if not auth:
            return self._not_found("complete_3ds", authorize_id)

        if not auth.requires_3ds or auth.three_ds_completed:
            raw = {"error": "3ds_not_required_or_completed", "simulator": True}
            return GatewayFailure(
                kind=FailureKind.GATEWAY, status_code=400, error="complete_3ds_failed",
                status=auth.status, id=auth.id, raw=raw,
            )

        auth.three_ds_completed = True
        auth.status = STATUS_AUTHORIZED if success else "FAILED"
        return GatewaySuccess(
            status_code=200, status=auth.status, id=auth.id,
            amount=auth.amount, currency=auth.currency, raw=auth.to_payload(),
        )

    def get_authorization(self, authorize_id: str) -> Optional[SimulatedAuthorization]:
        """Get an authorization from in-memory storage (for testing)."""
        return self._authorizations.get(authorize_id)

    def clear(self) -> None:
        """Clear all stored state (for test cleanup)."""
        self._authorizations.clear()
        self._charges.clear()
        self.calls.clear()

    def health_check(self) -> Dict[str, Any]:
        """Return health status of the simulator."""
        return {
            "ok": True,
            "provider": "simulator",
            "authorization_count": len(self._authorizations),
            "config": {
                "success_rate": self.config.success_rate,
                "three_ds_rate": self.config.three_ds_rate,
            },
        }

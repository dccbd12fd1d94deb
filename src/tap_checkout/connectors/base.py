import json
import math
from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional, Dict, Any, Union, Literal
from pydantic import BaseModel, ConfigDict, Field

DEFAULT_CURRENCY = "USD"
DEFAULT_RETURN_PATH = "/pay/return"

# Gateway business statuses the sequencer branches on
STATUS_AUTHORIZED = "AUTHORIZED"
STATUS_CAPTURED = "CAPTURED"


class PaymentValidationError(ValueError):
    """Raised before any network call when required input is missing or malformed."""

    def __init__(self, reason: str, detail: Optional[str] = None):
        super().__init__(detail or reason)
        self.reason = reason
        self.detail = detail


# Canonical request models
class CardDetails(BaseModel):
    model_config = ConfigDict(extra="allow")

    number: str = ""
    exp_month: Optional[int] = None
    exp_year: Optional[int] = None
    cvc: Optional[str] = None
    name: Optional[str] = None


class CustomerDetails(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None


class AuthorizeRequest(BaseModel):
    amount: Optional[float] = None  # major units, as Tap expects
    currency: str = DEFAULT_CURRENCY
    token_id: Optional[str] = None
    card: Optional[CardDetails] = None
    customer: Optional[CustomerDetails] = None
    return_path: Optional[str] = None
    order_id: Optional[str] = None
    client_ip: Optional[str] = None


# Tagged results, one of which every gateway call returns
class FailureKind(str, Enum):
    VALIDATION = "validation"
    GATEWAY = "gateway"
    TRANSPORT = "transport"


class GatewaySuccess(BaseModel):
    ok: Literal[True] = True
    status_code: int = 200
    status: Optional[str] = None
    id: Optional[str] = None
    amount: Optional[float] = None
    currency: Optional[str] = None
    transaction_url: Optional[str] = None
    raw: Dict[str, Any] = Field(default_factory=dict)


class GatewayFailure(BaseModel):
    ok: Literal[False] = False
    kind: FailureKind
    status_code: int
    error: str
    detail: Optional[str] = None
    status: Optional[str] = None
    id: Optional[str] = None
    raw: Any = None


GatewayResult = Union[GatewaySuccess, GatewayFailure]


class ConnectorBase(ABC):
    """
    Gateway client interface. Each operation performs its outbound call(s)
    and normalizes the reply into a GatewayResult; input problems raise
    PaymentValidationError before anything is sent.
    """

    @abstractmethod
    def tokenize(self, card: CardDetails, client_ip: Optional[str] = None) -> GatewayResult:
        raise NotImplementedError

    @abstractmethod
    def authorize(self, request: AuthorizeRequest) -> GatewayResult:
        """
        Reserve funds. A transaction_url on the result means the browser
        must complete 3-D-Secure before capture.
        """
        raise NotImplementedError

    @abstractmethod
    def capture(
        self,
        authorize_id: str,
        amount: Optional[float] = None,
        currency: Optional[str] = None,
        order_id: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> GatewayResult:
        raise NotImplementedError

    @abstractmethod
    def fetch_authorization(self, authorize_id: str) -> GatewayResult:
        raise NotImplementedError

    @abstractmethod
    def parse_webhook(self, headers: Dict[str, str], body: bytes) -> Dict[str, Any]:
        """
        Canonicalize a gateway webhook payload. Events are never verified.
        """
        raise NotImplementedError

    def health_check(self) -> Dict[str, Any]:
        return {"ok": True}

    def close(self) -> None:
        """Release any transport resources."""


def capture_idempotency_key(authorize_id: str) -> str:
    """Stable key so repeated captures of one authorization dedupe at the gateway."""
    return f"cap-{authorize_id}"


def validate_amount(amount: Any) -> float:
    """Return amount as a float, or raise PaymentValidationError unless it is a positive number."""
    if isinstance(amount, bool):
        raise PaymentValidationError("invalid_amount", "Invalid amount")
    try:
        value = float(amount)
    except (TypeError, ValueError):
        raise PaymentValidationError("invalid_amount", "Invalid amount")
    if not value > 0 or math.isinf(value):
        raise PaymentValidationError("invalid_amount", "Invalid amount")
    return value


def decode_webhook_body(body: bytes) -> Any:
    """Decode raw webhook bytes; JSON when it parses, otherwise the text itself."""
    text = body.decode("utf-8", errors="replace") if isinstance(body, (bytes, bytearray)) else str(body or "")
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return text

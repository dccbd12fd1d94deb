import logging
from typing import Dict, Any, Optional
from urllib.parse import quote, urljoin

import httpx

from ..config import GatewayConfig
from .base import (
    ConnectorBase,
    AuthorizeRequest,
    CardDetails,
    CustomerDetails,
    FailureKind,
    GatewayFailure,
    GatewayResult,
    GatewaySuccess,
    PaymentValidationError,
    DEFAULT_CURRENCY,
    DEFAULT_RETURN_PATH,
    capture_idempotency_key,
    decode_webhook_body,
    validate_amount,
)

logger = logging.getLogger(__name__)

# Used when the caller sends no amount to capture
DEFAULT_CAPTURE_AMOUNT = 1.0


class TapConnector(ConnectorBase):
    """
    Tap Payments connector over the v2 REST API. The frontend either collects
    a token with Tap's card SDK or posts raw card fields, which are tokenized
    here before authorizing. Authorizations always request 3-D-Secure and
    are captured through the Charges API with source.id = authorize id.
    """

    def __init__(self, config: GatewayConfig, client: Optional[httpx.Client] = None):
        if not config.secret_key:
            raise ValueError("TAP_SECRET_KEY is required to call the Tap API")
        self.config = config
        self._client = client or httpx.Client(timeout=config.timeout_seconds)

    def _headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.config.secret_key}",
        }
        if extra:
            headers.update(extra)
        return headers

    def _url(self, path: str) -> str:
        return f"{self.config.api_base.rstrip('/')}/{path.lstrip('/')}"

    def _send(
        self,
        operation: str,
        method: str,
        path: str,
        body: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> GatewayResult:
        """Make one call to Tap and normalize the reply."""
        try:
            response = self._client.request(
                method, self._url(path), json=body, headers=self._headers(headers)
            )
        except httpx.HTTPError as e:
            logger.error(f"{operation} failed: {e}")
            return GatewayFailure(
                kind=FailureKind.TRANSPORT,
                status_code=500,
                error=f"{operation}_failed",
                detail=str(e) or type(e).__name__,
            )

        try:
            data = response.json()
        except ValueError:
            data = None

        if not response.is_success:
            logger.warning(f"{operation} rejected by Tap with HTTP {response.status_code}")
            payload = data if data is not None else response.text
            return GatewayFailure(
                kind=FailureKind.GATEWAY,
                status_code=response.status_code,
                error=f"{operation}_failed",
                status=payload.get("status") if isinstance(payload, dict) else None,
                id=payload.get("id") if isinstance(payload, dict) else None,
                raw=payload,
            )

        if not isinstance(data, dict):
            logger.error(f"{operation} returned a non-JSON body (HTTP {response.status_code})")
            return GatewayFailure(
                kind=FailureKind.TRANSPORT,
                status_code=500,
                error=f"{operation}_failed",
                detail="Gateway response was not a JSON object",
                raw=response.text,
            )

        return self._to_success(response.status_code, data)

    @staticmethod
    def _to_success(status_code: int, data: Dict[str, Any]) -> GatewaySuccess:
        transaction = data.get("transaction") or {}
        amount = data.get("amount")
        return GatewaySuccess(
            status_code=status_code,
            status=data.get("status"),
            id=data.get("id"),
            amount=amount if isinstance(amount, (int, float)) and not isinstance(amount, bool) else None,
            currency=data.get("currency"),
            transaction_url=transaction.get("url") if isinstance(transaction, dict) else None,
            raw=data,
        )

    def build_redirect_url(self, return_path: Optional[str], order_id: Optional[str]) -> str:
        """Where Tap sends the browser after the 3-D-Secure challenge."""
        url = httpx.URL(urljoin(self.config.web_base_url, return_path or DEFAULT_RETURN_PATH))
        if order_id:
            url = url.copy_set_param("order", str(order_id))
        return str(url)

    @staticmethod
    def _customer_body(customer: Optional[CustomerDetails]) -> Dict[str, Any]:
        customer = customer or CustomerDetails()
        body: Dict[str, Any] = {
            "first_name": customer.first_name or "NA",
            "last_name": customer.last_name or "NA",
            "email": customer.email or "na@example.com",
        }
        if customer.phone:
            body["phone"] = {"country_code": "1", "number": customer.phone}
        return body

    def tokenize(self, card: CardDetails, client_ip: Optional[str] = None) -> GatewayResult:
        if card is None or not card.number:
            raise PaymentValidationError("card_number_required", "card.number required")
        body: Dict[str, Any] = {"card": card.model_dump(exclude_none=True)}
        if client_ip:
            body["client_ip"] = client_ip
        return self._send("tokenize", "POST", "/tokens", body)

    def authorize(self, request: AuthorizeRequest) -> GatewayResult:
        if not request.token_id and request.card is None:
            raise PaymentValidationError("token_or_card_required", "tokenId or card required")
        amount = validate_amount(request.amount)
        if request.card is not None and not request.card.number:
            raise PaymentValidationError("card_number_required", "card.number required")

        token_id = request.token_id
        if not token_id:
            tokenized = self.tokenize(request.card, request.client_ip)
            if not tokenized.ok:
                return tokenized
            token_id = tokenized.id
            if not token_id:
                return GatewayFailure(
                    kind=FailureKind.GATEWAY,
                    status_code=tokenized.status_code,
                    error="tokenize_failed",
                    detail="Gateway returned no token id",
                    raw=tokenized.raw,
                )

        body: Dict[str, Any] = {
            "amount": amount,
            "currency": request.currency or DEFAULT_CURRENCY,
            "threeDSecure": True,
            "description": f"Order {request.order_id or ''}".strip(),
            "statement_descriptor": self.config.statement_descriptor,
            "merchant": {"id": self.config.merchant_id},
            "customer": self._customer_body(request.customer),
            "source": {"id": token_id},
            "redirect": {"url": self.build_redirect_url(request.return_path, request.order_id)},
        }
        if request.order_id:
            body["reference"] = {"order": str(request.order_id)}

        result = self._send("authorize", "POST", "/authorize", body)
        if result.ok:
            logger.info(f"Authorization {result.id} created with status {result.status}")
        return result

    def capture(
        self,
        authorize_id: str,
        amount: Optional[float] = None,
        currency: Optional[str] = None,
        order_id: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> GatewayResult:
        if not authorize_id:
            raise PaymentValidationError("authorize_id_required", "authorizeId required")
        amt = DEFAULT_CAPTURE_AMOUNT if amount is None else validate_amount(amount)

        body = {
            "amount": amt,
            "currency": currency or DEFAULT_CURRENCY,
            "merchant": {"id": self.config.merchant_id},
            "source": {"id": authorize_id},
            "description": f"Capture for {order_id or authorize_id}",
        }
        key = idempotency_key or capture_idempotency_key(authorize_id)
        result = self._send(
            "capture", "POST", "/charges", body, headers={"Idempotency-Key": key}
        )
        logger.info(
            f"[CAPTURE] HTTP {result.status_code} status={result.status} "
            f"id={result.id} for auth {authorize_id}"
        )
        return result

    def fetch_authorization(self, authorize_id: str) -> GatewayResult:
        if not authorize_id:
            raise PaymentValidationError("authorize_id_required", "authorize id required")
        return self._send(
            "fetch_authorize", "GET", f"/authorize/{quote(authorize_id, safe='')}"
        )

    def parse_webhook(self, headers: Dict[str, str], body: bytes) -> Dict[str, Any]:
        # Tap's hashstring header is not checked, so events stay informational
        payload = decode_webhook_body(body)
        event: Dict[str, Any] = {
            "type": None,
            "provider": "tap",
            "verified": False,
            "object_id": None,
            "status": None,
            "payload": payload,
        }
        if isinstance(payload, dict):
            obj = payload.get("object")
            event["type"] = obj if isinstance(obj, str) else payload.get("type")
            event["object_id"] = payload.get("id")
            event["status"] = payload.get("status")
            if isinstance(obj, dict):
                event["object_id"] = obj.get("id", event["object_id"])
                event["status"] = obj.get("status", event["status"])
        return event

    def health_check(self) -> Dict[str, Any]:
        return {"ok": True, "provider": "tap", "api_base": self.config.api_base}

    def close(self) -> None:
        self._client.close()

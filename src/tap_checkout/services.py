"""Finalization sequencer: authorize, wait out 3-D-Secure if needed, then capture."""

import enum
import logging
from typing import Optional

from pydantic import BaseModel

from .connectors.base import (
    ConnectorBase,
    AuthorizeRequest,
    FailureKind,
    GatewayFailure,
    GatewayResult,
    GatewaySuccess,
    PaymentValidationError,
    STATUS_AUTHORIZED,
    STATUS_CAPTURED,
    capture_idempotency_key,
    validate_amount,
)

logger = logging.getLogger(__name__)


class FinalizationState(str, enum.Enum):
    """States of one payment attempt."""
    START = "start"
    PENDING_REDIRECT = "pending_redirect"
    CAPTURING = "capturing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class FinalizationOutcome(BaseModel):
    """Where a payment attempt ended up, with every gateway result seen on the way."""
    state: FinalizationState
    status: Optional[str] = None
    authorize_id: Optional[str] = None
    transaction_url: Optional[str] = None
    authorization: Optional[GatewaySuccess] = None
    capture: Optional[GatewaySuccess] = None
    failure: Optional[GatewayFailure] = None

    @property
    def status_code(self) -> int:
        """HTTP status to surface for this outcome."""
        return self.failure.status_code if self.failure is not None else 200


def _validation_failure(error: PaymentValidationError) -> GatewayFailure:
    return GatewayFailure(
        kind=FailureKind.VALIDATION,
        status_code=400,
        error=error.reason,
        detail=error.detail,
    )


class FinalizationSequencer:
    """Drive a payment attempt through the gateway without retries.

    The sequencer holds no state between calls: `start` handles the first
    leg and `resume` picks the flow back up from the authorization id once
    the browser returns from the 3-D-Secure challenge.
    """

    def __init__(self, connector: ConnectorBase):
        """Initialize the sequencer with a gateway connector.

        Args:
            connector: Gateway client used for every outbound call.
        """
        self.connector = connector

    def start(self, request: AuthorizeRequest) -> FinalizationOutcome:
        """Authorize and, when no 3-D-Secure redirect is needed, capture.

        Args:
            request: Authorization input (token or card, amount, customer).

        Returns:
            The outcome. PENDING_REDIRECT means the caller must send the
            browser to `transaction_url` and call `resume` afterwards.
        """
        try:
            result = self.connector.authorize(request)
        except PaymentValidationError as e:
            logger.info(f"Authorization rejected before sending: {e.reason}")
            return FinalizationOutcome(state=FinalizationState.FAILED, failure=_validation_failure(e))

        if not result.ok:
            return self._failed(result)

        # The redirect wins even when the status already reads AUTHORIZED
        if result.transaction_url:
            logger.info(f"Authorization {result.id} awaiting 3-D-Secure")
            return FinalizationOutcome(
                state=FinalizationState.PENDING_REDIRECT,
                status=result.status,
                authorize_id=result.id,
                transaction_url=result.transaction_url,
                authorization=result,
            )

        if result.status == STATUS_AUTHORIZED:
            amount = result.amount if result.amount is not None else request.amount
            return self._capture(result, request.order_id, amount)

        logger.info(f"Authorization {result.id} ended with status {result.status}")
        return FinalizationOutcome(
            state=FinalizationState.FAILED,
            status=result.status,
            authorize_id=result.id,
            authorization=result,
        )

    def resume(
        self,
        authorize_id: str,
        order_id: Optional[str] = None,
        amount: Optional[float] = None,
    ) -> FinalizationOutcome:
        """Confirm a returned 3-D-Secure authorization and capture it.

        Args:
            authorize_id: Authorization id from the return URL.
            order_id: Order reference to thread into the capture.
            amount: Optional amount the caller expects to capture. It may not
                exceed the authorized amount.

        Returns:
            The outcome after the re-fetch and, if authorized, the capture.
        """
        try:
            if amount is not None:
                amount = validate_amount(amount)
            result = self.connector.fetch_authorization(authorize_id)
        except PaymentValidationError as e:
            return FinalizationOutcome(
                state=FinalizationState.FAILED,
                authorize_id=authorize_id or None,
                failure=_validation_failure(e),
            )

        if not result.ok:
            return self._failed(result, authorize_id)

        if result.status != STATUS_AUTHORIZED:
            logger.info(f"Authorization {authorize_id} not capturable: {result.status}")
            return FinalizationOutcome(
                state=FinalizationState.FAILED,
                status=result.status,
                authorize_id=result.id or authorize_id,
                authorization=result,
            )

        if amount is not None and result.amount is not None and amount > result.amount:
            error = PaymentValidationError(
                "amount_exceeds_authorized",
                f"Capture amount {amount} exceeds authorized amount {result.amount}",
            )
            return FinalizationOutcome(
                state=FinalizationState.FAILED,
                status=result.status,
                authorize_id=result.id or authorize_id,
                authorization=result,
                failure=_validation_failure(error),
            )

        return self._capture(result, order_id, amount, authorize_id=result.id or authorize_id)

    def _capture(
        self,
        authorization: GatewaySuccess,
        order_id: Optional[str],
        amount: Optional[float] = None,
        authorize_id: Optional[str] = None,
    ) -> FinalizationOutcome:
        authorize_id = authorize_id or authorization.id
        logger.info(f"Capturing authorization {authorize_id}")
        try:
            result = self.connector.capture(
                authorize_id,
                amount=amount if amount is not None else authorization.amount,
                currency=authorization.currency,
                order_id=order_id,
                idempotency_key=capture_idempotency_key(authorize_id) if authorize_id else None,
            )
        except PaymentValidationError as e:
            return FinalizationOutcome(
                state=FinalizationState.FAILED,
                status=authorization.status,
                authorize_id=authorize_id,
                authorization=authorization,
                failure=_validation_failure(e),
            )

        if not result.ok:
            outcome = self._failed(result, authorize_id)
            outcome.authorization = authorization
            return outcome

        state = FinalizationState.SUCCEEDED if result.status == STATUS_CAPTURED else FinalizationState.FAILED
        logger.info(f"Capture for {authorize_id} finished as {state.value} ({result.status})")
        return FinalizationOutcome(
            state=state,
            status=result.status,
            authorize_id=authorize_id,
            authorization=authorization,
            capture=result,
        )

    @staticmethod
    def _failed(result: GatewayResult, authorize_id: Optional[str] = None) -> FinalizationOutcome:
        return FinalizationOutcome(
            state=FinalizationState.FAILED,
            status=result.status,
            authorize_id=result.id or authorize_id,
            failure=result,
        )

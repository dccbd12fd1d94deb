"""Payment gateway connectors."""

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
    STATUS_AUTHORIZED,
    STATUS_CAPTURED,
    capture_idempotency_key,
    validate_amount,
)
from .tap_connector import TapConnector
from .simulator_connector import (
    SimulatorConnector,
    SimulatorConfig,
    SimulatorScenario,
    SimulatedAuthorization,
)

__all__ = [
    # Base classes and models
    "ConnectorBase",
    "AuthorizeRequest",
    "CardDetails",
    "CustomerDetails",
    # Results and errors
    "FailureKind",
    "GatewayFailure",
    "GatewayResult",
    "GatewaySuccess",
    "PaymentValidationError",
    "STATUS_AUTHORIZED",
    "STATUS_CAPTURED",
    "capture_idempotency_key",
    "validate_amount",
    # Connectors
    "TapConnector",
    "SimulatorConnector",
    "SimulatorConfig",
    "SimulatorScenario",
    "SimulatedAuthorization",
]

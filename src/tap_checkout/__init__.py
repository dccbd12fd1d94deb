# tap_checkout package
__version__ = "0.1.0"

from .config import GatewayConfig
from .connectors import (
    ConnectorBase,
    AuthorizeRequest,
    GatewayFailure,
    GatewaySuccess,
    PaymentValidationError,
    TapConnector,
    SimulatorConnector,
)
from .services import (
    FinalizationSequencer,
    FinalizationOutcome,
    FinalizationState,
)

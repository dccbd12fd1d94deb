import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Depends, Header, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, ConfigDict, Field

from .config import GatewayConfig
from .connectors.base import (
    ConnectorBase,
    AuthorizeRequest,
    CardDetails,
    CustomerDetails,
    FailureKind,
    GatewayFailure,
    GatewayResult,
    PaymentValidationError,
)
from .connectors.tap_connector import TapConnector
from .services import FinalizationSequencer

logger = logging.getLogger(__name__)


class TokenBody(BaseModel):
    card: Optional[CardDetails] = None
    client_ip: Optional[str] = None


class AuthorizeBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    amount: Optional[float] = None
    currency: Optional[str] = None
    order_id: Optional[str] = Field(None, alias="orderId")
    token_id: Optional[str] = Field(None, alias="tokenId")
    card: Optional[CardDetails] = None
    customer: Optional[CustomerDetails] = None
    return_path: Optional[str] = Field(None, alias="returnPath")
    client_ip: Optional[str] = None

    def to_request(self) -> AuthorizeRequest:
        data = self.model_dump(exclude_none=True)
        return AuthorizeRequest(**data)


class CaptureBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    authorize_id: Optional[str] = Field(None, alias="authorizeId")
    amount: Optional[float] = None
    currency: Optional[str] = None
    order_id: Optional[str] = Field(None, alias="orderId")


class FinalizeBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    order_id: Optional[str] = Field(None, alias="orderId")
    amount: Optional[float] = None


def get_connector(request: Request) -> ConnectorBase:
    """Return the app's connector, building the Tap connector on first use."""
    state = request.app.state
    if state.connector is None:
        state.connector = TapConnector(state.config)
    return state.connector


def get_sequencer(connector: ConnectorBase = Depends(get_connector)) -> FinalizationSequencer:
    return FinalizationSequencer(connector)


def _failure_response(failure: GatewayFailure) -> JSONResponse:
    """Non-gateway failures get a generic error body; gateway ones are handled by callers."""
    content = {"error": failure.error}
    if failure.detail:
        content["detail"] = failure.detail
    return JSONResponse(status_code=failure.status_code, content=content)


def _passthrough(result: GatewayResult) -> JSONResponse:
    """Relay the gateway body and status code untouched."""
    if not result.ok and result.kind != FailureKind.GATEWAY:
        return _failure_response(result)
    return JSONResponse(status_code=result.status_code, content=jsonable_encoder(result.raw))


def _reshape(result: GatewayResult, *fields: str) -> JSONResponse:
    """Build the {ok, status, id, ..., raw} body the frontend reads."""
    if not result.ok and result.kind != FailureKind.GATEWAY:
        return _failure_response(result)
    content = {"ok": result.ok, "status": result.status, "id": result.id}
    for name in fields:
        content[name] = getattr(result, name, None)
    content["raw"] = result.raw
    return JSONResponse(status_code=result.status_code, content=jsonable_encoder(content))


def create_app(
    config: Optional[GatewayConfig] = None,
    connector: Optional[ConnectorBase] = None,
) -> FastAPI:
    """Build the checkout API.

    Args:
        config: Gateway settings. Loaded from the environment when omitted.
        connector: Gateway client. A TapConnector is created lazily from
            `config` when omitted.

    Returns:
        The configured FastAPI application.
    """
    config = config or GatewayConfig.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        if app.state.connector is not None:
            app.state.connector.close()

    app = FastAPI(title="Tap Checkout Connector", lifespan=lifespan)
    app.state.config = config
    app.state.connector = connector

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.allowed_origins) or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(PaymentValidationError)
    async def payment_validation_handler(request: Request, exc: PaymentValidationError):
        return JSONResponse(status_code=400, content={"error": exc.reason})

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={"error": "invalid_request", "detail": jsonable_encoder(exc.errors())},
        )

    # Registered with a raw Request so the body is read as bytes, not parsed
    @app.post("/api/tap/webhook")
    async def tap_webhook(request: Request, connector: ConnectorBase = Depends(get_connector)):
        try:
            body = await request.body()
            headers = {k.lower(): v for k, v in request.headers.items()}
            event = connector.parse_webhook(headers, body)
        except ValueError as e:
            logger.error(f"webhook error: {e}")
            return PlainTextResponse("bad", status_code=400)
        # Unverified, so the event is recorded and never acted upon
        logger.info(
            f"Webhook received: type={event.get('type')} id={event.get('object_id')} "
            f"status={event.get('status')} verified={event.get('verified')}"
        )
        return PlainTextResponse("ok")

    @app.post("/api/tap/token")
    def create_token(body: TokenBody, connector: ConnectorBase = Depends(get_connector)):
        result = connector.tokenize(body.card, body.client_ip)
        return _passthrough(result)

    @app.post("/api/tap/authorize")
    def create_authorize(body: AuthorizeBody, connector: ConnectorBase = Depends(get_connector)):
        result = connector.authorize(body.to_request())
        return _reshape(result, "amount", "transaction_url")

    @app.post("/api/tap/capture")
    def capture_authorize(
        body: CaptureBody,
        idempotency_key: Optional[str] = Header(None),
        connector: ConnectorBase = Depends(get_connector),
    ):
        result = connector.capture(
            body.authorize_id,
            amount=body.amount,
            currency=body.currency,
            order_id=body.order_id,
            idempotency_key=idempotency_key,
        )
        return _reshape(result)

    @app.get("/api/tap/authorize/{authorize_id}")
    def get_authorize(authorize_id: str, connector: ConnectorBase = Depends(get_connector)):
        return _passthrough(connector.fetch_authorization(authorize_id))

    @app.post("/api/tap/checkout")
    def checkout(body: AuthorizeBody, sequencer: FinalizationSequencer = Depends(get_sequencer)):
        outcome = sequencer.start(body.to_request())
        return JSONResponse(status_code=outcome.status_code, content=outcome.model_dump(mode="json"))

    @app.post("/api/tap/finalize/{authorize_id}")
    def finalize(
        authorize_id: str,
        body: Optional[FinalizeBody] = None,
        sequencer: FinalizationSequencer = Depends(get_sequencer),
    ):
        body = body or FinalizeBody()
        outcome = sequencer.resume(authorize_id, order_id=body.order_id, amount=body.amount)
        return JSONResponse(status_code=outcome.status_code, content=outcome.model_dump(mode="json"))

    @app.get("/health")
    def health(connector: ConnectorBase = Depends(get_connector)):
        return connector.health_check()

    return app


app = create_app()

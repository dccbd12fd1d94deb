"""Gateway configuration loaded once from the environment."""

import os
import logging
from typing import Optional, Tuple

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

DEFAULT_API_BASE = "https://api.tap.company/v2"
DEFAULT_WEB_BASE_URL = "http://localhost:3000"
DEFAULT_PORT = 4000


def parse_origins(value: Optional[str]) -> Tuple[str, ...]:
    """Split a comma-separated origin list, dropping blanks."""
    if not value:
        return ()
    return tuple(origin.strip() for origin in value.split(",") if origin.strip())


class GatewayConfig(BaseModel):
    """Immutable settings for the Tap connector and the HTTP app."""

    model_config = ConfigDict(frozen=True)

    api_base: str = Field(default=DEFAULT_API_BASE, description="Tap REST API base URL")
    secret_key: str = Field(default="", description="Tap secret key (Bearer token)")
    merchant_id: str = Field(default="", description="Tap merchant identifier")
    web_base_url: str = Field(
        default=DEFAULT_WEB_BASE_URL,
        description="Public frontend URL used to build the 3-D-Secure return link",
    )
    allowed_origins: Tuple[str, ...] = Field(default=(), description="CORS origins; empty allows any")
    port: int = Field(default=DEFAULT_PORT, description="Listen port")
    timeout_seconds: float = Field(default=30.0, gt=0)
    statement_descriptor: str = Field(default="Sample Auth")

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "GatewayConfig":
        """Build the configuration from environment variables.

        Args:
            env_file: Optional path to a dotenv file. When omitted, a `.env`
                file in the working directory is loaded if present. Values
                already set in the environment win.

        Returns:
            A frozen GatewayConfig.
        """
        load_dotenv(dotenv_path=env_file)
        config = cls(
            api_base=os.getenv("TAP_API_BASE") or DEFAULT_API_BASE,
            secret_key=os.getenv("TAP_SECRET_KEY", ""),
            merchant_id=os.getenv("TAP_MERCHANT_ID", ""),
            web_base_url=os.getenv("WEB_BASE_URL") or DEFAULT_WEB_BASE_URL,
            allowed_origins=parse_origins(os.getenv("ALLOWED_ORIGINS")),
            port=int(os.getenv("PORT") or DEFAULT_PORT),
            timeout_seconds=float(os.getenv("TAP_TIMEOUT_SECONDS") or 30.0),
            statement_descriptor=os.getenv("TAP_STATEMENT_DESCRIPTOR") or "Sample Auth",
        )
        if not config.secret_key:
            logger.warning("TAP_SECRET_KEY is not set; gateway calls will be rejected")
        return config

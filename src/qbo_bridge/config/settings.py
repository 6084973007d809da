"""Process configuration for the QBO bridge.

Values come from the environment, with `.env` loaded first (python-dotenv).
Secrets are never given defaults.
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass, field

from dotenv import dotenv_values, load_dotenv

from qbo_bridge.integrations.qbo_errors import QBOConfigError

load_dotenv(override=False)

# Convenience: allow local runs with only `.env.example` filled.
# Blank placeholders in `.env.example` must not override real values.
if not os.environ.get("QBO_CLIENT_ID"):
    example_path = os.path.abspath(".env.example")
    if os.path.exists(example_path):
        for k, v in (dotenv_values(example_path) or {}).items():
            if not k or v is None or v == "":
                continue
            if not os.environ.get(k):
                os.environ[k] = v

DEFAULT_ROUTE_PREFIX = "/apps/quickbooks"
DEFAULT_TOKENS_FILENAME = "qbo-bridge-token.json"
VALID_ENVIRONMENTS = {"sandbox", "production"}


def default_tokens_path() -> str:
    return os.path.join(tempfile.gettempdir(), DEFAULT_TOKENS_FILENAME)


def _split_csv(value: str | None) -> list[str]:
    return [part.strip() for part in (value or "").split(",") if part.strip()]


def _truthy(value: str | None) -> bool:
    return (value or "").strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True, slots=True)
class AppSettings:
    client_id: str
    client_secret: str
    jwt_secret: str
    environment: str = "sandbox"
    callback_domain_root: str = "http://localhost:8000"
    redirect_uri_override: str | None = None
    frontend_url: str = "http://localhost:3000/"
    route_prefix: str = DEFAULT_ROUTE_PREFIX
    tokens_path: str = field(default_factory=default_tokens_path)
    timeout_seconds: int = 30
    refresh_interval_seconds: int = 1800
    minor_version: str | None = None
    cors_allowed_origins: list[str] = field(
        default_factory=lambda: ["http://localhost:3000"]
    )
    log_level: str = "INFO"
    debug: bool = False

    @property
    def redirect_uri(self) -> str:
        """Redirect URI registered with Intuit; must match the developer portal exactly."""

        if self.redirect_uri_override:
            return self.redirect_uri_override
        return f"{self.callback_domain_root.rstrip('/')}{self.route_prefix}/callback"

    @classmethod
    def from_env(cls) -> "AppSettings":
        load_dotenv(override=False)
        client_id = os.environ.get("QBO_CLIENT_ID")
        client_secret = os.environ.get("QBO_CLIENT_SECRET")
        if not client_id or not client_secret:
            raise QBOConfigError("Missing QBO_CLIENT_ID or QBO_CLIENT_SECRET")

        jwt_secret = os.environ.get("JWT_SECRET")
        if not jwt_secret:
            raise QBOConfigError("Missing JWT_SECRET")

        environment = os.environ.get("QBO_ENVIRONMENT", "sandbox").strip().lower()
        if environment not in VALID_ENVIRONMENTS:
            raise QBOConfigError(
                f"QBO_ENVIRONMENT must be one of {sorted(VALID_ENVIRONMENTS)}, got {environment!r}"
            )

        try:
            timeout_seconds = int(os.environ.get("QBO_HTTP_TIMEOUT_SECONDS", "30"))
            refresh_interval = int(os.environ.get("QBO_REFRESH_INTERVAL_SECONDS", "1800"))
        except ValueError as e:
            raise QBOConfigError(f"Invalid numeric setting: {e}") from e

        origins = _split_csv(os.environ.get("CORS_ALLOWED_ORIGINS")) or [
            "http://localhost:3000"
        ]

        return cls(
            client_id=client_id,
            client_secret=client_secret,
            jwt_secret=jwt_secret,
            environment=environment,
            callback_domain_root=os.environ.get(
                "QBO_CALLBACK_DOMAIN_ROOT", "http://localhost:8000"
            ),
            redirect_uri_override=os.environ.get("QBO_REDIRECT_URI") or None,
            frontend_url=os.environ.get("QBO_FRONTEND_URL", "http://localhost:3000/"),
            route_prefix=os.environ.get("QBO_ROUTE_PREFIX", DEFAULT_ROUTE_PREFIX),
            tokens_path=os.environ.get("QBO_TOKENS_PATH") or default_tokens_path(),
            timeout_seconds=timeout_seconds,
            refresh_interval_seconds=refresh_interval,
            minor_version=os.environ.get("QBO_MINORVERSION") or None,
            cors_allowed_origins=origins,
            log_level=os.environ.get("LOG_LEVEL", "INFO"),
            debug=_truthy(os.environ.get("QBO_DEBUG")),
        )

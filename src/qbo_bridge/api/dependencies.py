"""FastAPI dependencies: identity-token check and access to the app's QBO objects."""

from __future__ import annotations

import logging
from typing import Any

import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from qbo_bridge.config.settings import AppSettings
from qbo_bridge.integrations.qbo_client import QBOGateway
from qbo_bridge.integrations.qbo_session import QBOOAuthSession
from qbo_bridge.services.customer_bridge import CustomerListBridge

logger = logging.getLogger(__name__)

_bearer_scheme = HTTPBearer(auto_error=False)


def get_settings(request: Request) -> AppSettings:
    return request.app.state.settings


def get_session(request: Request) -> QBOOAuthSession:
    return request.app.state.qbo_session


def get_gateway(request: Request) -> QBOGateway:
    return request.app.state.qbo_gateway


def get_customer_bridge(request: Request) -> CustomerListBridge:
    return request.app.state.customer_bridge


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
    settings: AppSettings = Depends(get_settings),
) -> dict[str, Any]:
    """Verify the caller's HS256 session token and return its user payload.

    Tokens issued by the host application carry the user under `data`
    (with a `uuid`); a plain `sub` claim is accepted as well.
    """

    if credentials is None or not credentials.credentials:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    try:
        payload = jwt.decode(
            credentials.credentials, settings.jwt_secret, algorithms=["HS256"]
        )
    except jwt.InvalidTokenError as e:
        logger.debug("Rejected identity token: %s", e)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid or expired token: {e}",
        ) from e

    data = payload.get("data")
    if isinstance(data, dict) and data.get("uuid"):
        return data
    if payload.get("sub"):
        return {"uuid": str(payload["sub"])}
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED, detail="Token carries no user identity"
    )

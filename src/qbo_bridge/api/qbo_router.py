"""QBO API Router.

Connection lifecycle (authorize / callback / refresh / disconnect) and the
read-only business endpoints (company info, customers). Every route except
`/callback` requires the caller's identity token; Intuit calls `/callback`
directly.
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse, PlainTextResponse, RedirectResponse

from qbo_bridge.api.dependencies import (
    get_current_user,
    get_customer_bridge,
    get_gateway,
    get_session,
    get_settings,
)
from qbo_bridge.config.settings import AppSettings
from qbo_bridge.integrations.qbo_client import QBOGateway
from qbo_bridge.integrations.qbo_errors import (
    QBOAuthorizationError,
    QBOError,
    QBONotConnectedError,
    QBOProviderFaultError,
    QBORefreshFailedError,
    QBOTransportError,
)
from qbo_bridge.integrations.qbo_session import QBOOAuthSession
from qbo_bridge.services.customer_bridge import CustomerListBridge

logger = logging.getLogger(__name__)

qbo_router = APIRouter(tags=["QuickBooks"])


# ---------------------------------------------------------------------------
# Helper Functions
# ---------------------------------------------------------------------------


def _error_response(err: QBOError) -> JSONResponse:
    """Map a QBO error to a 4xx response that keeps the provider detail."""

    if isinstance(err, (QBOProviderFaultError, QBOTransportError)):
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=err.to_dict())

    content: dict[str, Any] = {"error": str(err)}
    payload = getattr(err, "payload", None)
    if payload is not None:
        content["detail"] = payload
    if isinstance(err, (QBONotConnectedError, QBORefreshFailedError, QBOAuthorizationError)):
        return JSONResponse(status_code=status.HTTP_401_UNAUTHORIZED, content=content)
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=content)


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@qbo_router.get("/", dependencies=[Depends(get_current_user)])
def qbo_status(session: QBOOAuthSession = Depends(get_session)):
    return {
        "appAuthorized": session.is_authorized,
        "tokenPresent": session.current_credential() is not None,
        "realmId": session.current_tenant_id(),
    }


@qbo_router.get(
    "/authorize",
    response_class=PlainTextResponse,
    dependencies=[Depends(get_current_user)],
)
def authorize(session: QBOOAuthSession = Depends(get_session)):
    """Return the Intuit consent URL; the front end navigates the user there."""

    return session.begin_authorization()


@qbo_router.get("/callback")
def qbo_callback(
    request: Request,
    session: QBOOAuthSession = Depends(get_session),
    settings: AppSettings = Depends(get_settings),
):
    try:
        session.complete_authorization(str(request.url))
    except QBOAuthorizationError as e:
        logger.error("QBO callback failed: %s", e)
        return _error_response(e)

    return RedirectResponse(settings.frontend_url, status_code=status.HTTP_302_FOUND)


@qbo_router.get("/token/refresh", dependencies=[Depends(get_current_user)])
def refresh_token(session: QBOOAuthSession = Depends(get_session)):
    try:
        credential = session.refresh()
    except (QBORefreshFailedError, QBONotConnectedError) as e:
        logger.error("QBO token refresh failed: %s", e)
        return _error_response(e)
    return credential.to_dict()


@qbo_router.get("/token/valid", dependencies=[Depends(get_current_user)])
def token_valid(session: QBOOAuthSession = Depends(get_session)) -> bool:
    return session.is_access_token_valid()


@qbo_router.get("/company", dependencies=[Depends(get_current_user)])
def company_info(gateway: QBOGateway = Depends(get_gateway)):
    try:
        return gateway.get_company_info()
    except QBOError as e:
        logger.error("QBO company info failed: %s", e)
        return _error_response(e)


@qbo_router.get("/customers", dependencies=[Depends(get_current_user)])
async def customers(bridge: CustomerListBridge = Depends(get_customer_bridge)):
    try:
        return await bridge.request_customer_list()
    except QBOError as e:
        logger.error("QBO customer list failed: %s", e)
        return _error_response(e)


@qbo_router.post("/disconnect", dependencies=[Depends(get_current_user)])
def disconnect(session: QBOOAuthSession = Depends(get_session)):
    session.disconnect()
    return {"appAuthorized": False}

"""OAuth2 session for a single connected QBO company.

Holds the current credential in memory and drives the two grant exchanges
(authorization code, refresh token) through intuitlib's `AuthClient`.
The session is passed explicitly to the gateway and the refresh scheduler;
there is no module-level credential state.
"""

from __future__ import annotations

import enum
import functools
import json
import logging
import threading
import time
from collections import OrderedDict
from typing import Any, Callable
from urllib.parse import parse_qs, urlparse

import requests
from intuitlib.client import AuthClient
from intuitlib.enums import Scopes
from intuitlib.exceptions import AuthClientError

from qbo_bridge.integrations.qbo_errors import (
    QBOAuthorizationError,
    QBONotConnectedError,
    QBORefreshFailedError,
)
from qbo_bridge.integrations.qbo_tokens import QBOCredential, QBOCredentialStore

logger = logging.getLogger(__name__)

AuthClientFactory = Callable[..., AuthClient]

DEFAULT_AUTH_TIMEOUT_SECONDS = 30
# Abandoned consent flows never reach the callback; the oldest states are dropped.
MAX_PENDING_STATES = 32


class QBOSessionState(str, enum.Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHORIZING = "authorizing"
    AUTHORIZED = "authorized"
    EXPIRED = "expired"
    REFRESH_FAILED = "refresh_failed"


def _provider_error_payload(err: AuthClientError) -> dict[str, Any]:
    content = getattr(err, "content", None)
    if isinstance(content, bytes):
        content = content.decode("utf-8", errors="replace")
    if isinstance(content, str):
        try:
            content = json.loads(content)
        except ValueError:
            pass
    return {
        "status_code": getattr(err, "status_code", None),
        "content": content,
        "intuit_tid": getattr(err, "intuit_tid", None),
    }


class TimeoutAuthClient(AuthClient):
    """AuthClient whose discovery and grant requests carry a timeout.

    intuitlib sends everything through the client's own `requests.Session`
    without a timeout, so a hung token endpoint would otherwise block a
    refresh (and the refresh lock) indefinitely.
    """

    def __init__(
        self, *args: Any, timeout_seconds: float = DEFAULT_AUTH_TIMEOUT_SECONDS, **kwargs: Any
    ) -> None:
        # Set before the base constructor, which already fetches the discovery doc.
        self.timeout_seconds = timeout_seconds
        super().__init__(*args, **kwargs)

    def request(self, method, url, *args, **kwargs):
        kwargs.setdefault("timeout", self.timeout_seconds)
        return super().request(method, url, *args, **kwargs)


class QBOOAuthSession:
    def __init__(
        self,
        *,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        environment: str,
        store: QBOCredentialStore,
        timeout_seconds: float = DEFAULT_AUTH_TIMEOUT_SECONDS,
        auth_client_factory: AuthClientFactory | None = None,
    ) -> None:
        self._client_id = client_id
        self._client_secret = client_secret
        self._redirect_uri = redirect_uri
        self._environment = environment
        self._store = store
        self._auth_client_factory = auth_client_factory or functools.partial(
            TimeoutAuthClient, timeout_seconds=timeout_seconds
        )

        self._credential: QBOCredential | None = None
        self._refresh_failed = False
        self._pending_states: OrderedDict[str, None] = OrderedDict()
        self._refresh_lock = threading.Lock()

    @property
    def environment(self) -> str:
        return self._environment

    @property
    def store(self) -> QBOCredentialStore:
        return self._store

    @property
    def state(self) -> QBOSessionState:
        if self._credential is None:
            if self._pending_states:
                return QBOSessionState.AUTHORIZING
            return QBOSessionState.UNAUTHENTICATED
        if self._refresh_failed:
            return QBOSessionState.REFRESH_FAILED
        if not self._credential.is_access_token_valid():
            return QBOSessionState.EXPIRED
        return QBOSessionState.AUTHORIZED

    @property
    def is_authorized(self) -> bool:
        return self.state is QBOSessionState.AUTHORIZED

    def _auth_client(self, credential: QBOCredential | None = None) -> AuthClient:
        if credential is None:
            return self._auth_client_factory(
                client_id=self._client_id,
                client_secret=self._client_secret,
                redirect_uri=self._redirect_uri,
                environment=self._environment,
            )
        return self._auth_client_factory(
            client_id=self._client_id,
            client_secret=self._client_secret,
            redirect_uri=self._redirect_uri,
            environment=credential.environment,
            access_token=credential.access_token,
            refresh_token=credential.refresh_token,
            realm_id=credential.realm_id,
        )

    def _credential_from_client(
        self, auth: AuthClient, *, realm_id: str | None, issued_at: float
    ) -> QBOCredential:
        return QBOCredential.from_grant(
            access_token=auth.access_token,
            refresh_token=auth.refresh_token,
            expires_in=getattr(auth, "expires_in", None),
            refresh_expires_in=getattr(auth, "x_refresh_token_expires_in", None),
            realm_id=getattr(auth, "realm_id", None) or realm_id,
            environment=self._environment,
            issued_at=issued_at,
        )

    def _replace_credential(self, credential: QBOCredential) -> None:
        self._credential = credential
        self._refresh_failed = False
        self._store.save(credential)

    # -- read side ---------------------------------------------------------

    def current_credential(self) -> QBOCredential | None:
        return self._credential

    def current_tenant_id(self) -> str | None:
        credential = self._credential
        return credential.realm_id if credential else None

    def is_access_token_valid(self) -> bool:
        credential = self._credential
        return bool(credential and credential.is_access_token_valid())

    def restore(self) -> QBOCredential | None:
        """Adopt the stored credential (if any) at process start."""

        credential = self._store.load()
        if credential is not None:
            self._credential = credential
            self._refresh_failed = False
        return credential

    # -- grant exchanges ---------------------------------------------------

    def begin_authorization(self) -> str:
        """Return the Intuit consent URL for the accounting scope."""

        auth = self._auth_client()
        url = auth.get_authorization_url([Scopes.ACCOUNTING])
        self._pending_states[auth.state_token] = None
        while len(self._pending_states) > MAX_PENDING_STATES:
            self._pending_states.popitem(last=False)
        return url

    def complete_authorization(self, callback_url: str) -> QBOCredential:
        """Exchange the code carried by the OAuth callback URL for a token pair."""

        query = parse_qs(urlparse(callback_url).query)
        error = query.get("error", [None])[0]
        code = query.get("code", [None])[0]
        realm_id = query.get("realmId", [None])[0]
        state = query.get("state", [None])[0]

        if not state or state not in self._pending_states:
            raise QBOAuthorizationError("Unknown or missing OAuth state token")
        # State tokens are single use, even when the exchange below fails.
        del self._pending_states[state]

        if error:
            raise QBOAuthorizationError(f"OAuth error: {error}", payload={"error": error})
        if not code or not realm_id:
            raise QBOAuthorizationError("OAuth callback is missing code or realmId")

        auth = self._auth_client()
        issued_at = time.time()
        try:
            auth.get_bearer_token(code, realm_id=realm_id)
        except AuthClientError as e:
            logger.error("QBO authorization code exchange failed: %s", e)
            raise QBOAuthorizationError(
                "QBO authorization code exchange failed", payload=_provider_error_payload(e)
            ) from e
        except requests.RequestException as e:
            logger.error("QBO authorization code exchange could not be sent: %s", e)
            raise QBOAuthorizationError(f"QBO authorization request failed: {e}") from e

        try:
            credential = self._credential_from_client(auth, realm_id=realm_id, issued_at=issued_at)
        except ValueError as e:
            raise QBOAuthorizationError(f"QBO returned an incomplete token: {e}") from e

        self._replace_credential(credential)
        logger.info("Connected QBO realm %s", credential.realm_id)
        return credential

    def refresh(self) -> QBOCredential:
        """Exchange the refresh token for a new pair, replacing the credential."""

        with self._refresh_lock:
            current = self._credential
            if current is None:
                raise QBONotConnectedError("No QBO credential to refresh. Not connected to QBO?")

            auth = self._auth_client(current)
            issued_at = time.time()
            try:
                auth.refresh(refresh_token=current.refresh_token)
                credential = self._credential_from_client(
                    auth, realm_id=current.realm_id, issued_at=issued_at
                )
            except AuthClientError as e:
                self._refresh_failed = True
                raise QBORefreshFailedError(
                    f"QBO token refresh rejected: {e}", payload=_provider_error_payload(e)
                ) from e
            except requests.RequestException as e:
                self._refresh_failed = True
                raise QBORefreshFailedError(f"QBO token refresh request failed: {e}") from e
            except ValueError as e:
                self._refresh_failed = True
                raise QBORefreshFailedError(
                    f"QBO token refresh failed (incomplete token): {e}"
                ) from e

            self._replace_credential(credential)

        logger.info("Successfully refreshed QBO access token for realm %s", credential.realm_id)
        return credential

    def disconnect(self) -> None:
        """Revoke the refresh token at Intuit and forget the credential."""

        current = self._credential
        if current is not None:
            try:
                self._auth_client(current).revoke(token=current.refresh_token)
            except (AuthClientError, requests.RequestException) as e:
                logger.warning("QBO token revocation failed for realm %s: %s", current.realm_id, e)
        self._credential = None
        self._refresh_failed = False
        self._store.clear()
        logger.info("Disconnected QBO")

"""Shared fixtures for QBO bridge tests."""

from __future__ import annotations

import time
from types import SimpleNamespace

import pytest

from qbo_bridge.config.settings import AppSettings
from qbo_bridge.integrations.qbo_session import QBOOAuthSession
from qbo_bridge.integrations.qbo_tokens import QBOCredential, QBOCredentialStore
from qbo_bridge.tests.fakes import TEST_JWT_SECRET, FakeAuthClient


@pytest.fixture
def auth_plan() -> SimpleNamespace:
    return SimpleNamespace(
        clients=[],
        codes=[],
        refreshes=[],
        revoked=[],
        scopes=None,
        exchange_error=None,
        refresh_error=None,
    )


@pytest.fixture
def token_store(tmp_path) -> QBOCredentialStore:
    return QBOCredentialStore(str(tmp_path / "qbo-token.json"))


@pytest.fixture
def qbo_session(auth_plan, token_store) -> QBOOAuthSession:
    return QBOOAuthSession(
        client_id="cid",
        client_secret="secret",
        redirect_uri="http://localhost:8000/apps/quickbooks/callback",
        environment="sandbox",
        store=token_store,
        auth_client_factory=lambda **kwargs: FakeAuthClient(auth_plan, **kwargs),
    )


@pytest.fixture
def credential() -> QBOCredential:
    now = int(time.time())
    return QBOCredential(
        access_token="ok",
        refresh_token="refresh",
        expires_at=now + 3600,
        refresh_expires_at=now + 8726400,
        realm_id="123",
        environment="sandbox",
    )


@pytest.fixture
def connected_session(qbo_session, credential) -> QBOOAuthSession:
    qbo_session.store.save(credential)
    qbo_session.restore()
    return qbo_session


@pytest.fixture
def settings(tmp_path) -> AppSettings:
    return AppSettings(
        client_id="cid",
        client_secret="secret",
        jwt_secret=TEST_JWT_SECRET,
        tokens_path=str(tmp_path / "qbo-token.json"),
        frontend_url="http://localhost:3000/",
    )

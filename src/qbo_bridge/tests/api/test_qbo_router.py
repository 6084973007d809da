from __future__ import annotations

import jwt
import pytest
from fastapi.testclient import TestClient

from qbo_bridge.app import create_app
from qbo_bridge.tests.fakes import TEST_JWT_SECRET, FakeResp, make_auth_client_error

PREFIX = "/apps/quickbooks"


def _auth_headers(secret: str = TEST_JWT_SECRET) -> dict[str, str]:
    token = jwt.encode({"data": {"uuid": "user-1"}}, secret, algorithm="HS256")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def client(settings, qbo_session) -> TestClient:
    return TestClient(create_app(settings, session=qbo_session))


@pytest.fixture
def connected_client(settings, connected_session) -> TestClient:
    return TestClient(create_app(settings, session=connected_session))


def _connect(client: TestClient) -> None:
    consent = client.get(f"{PREFIX}/authorize", headers=_auth_headers())
    state = consent.text.rsplit("state=", 1)[1]
    resp = client.get(
        f"{PREFIX}/callback",
        params={"code": "abc", "state": state, "realmId": "9130"},
        follow_redirects=False,
    )
    assert resp.status_code == 302
    assert resp.headers["location"] == "http://localhost:3000/"


def test_routes_require_identity_token(client) -> None:
    for path in ("/", "/authorize", "/token/refresh", "/token/valid", "/company", "/customers"):
        assert client.get(f"{PREFIX}{path}").status_code == 401


def test_routes_reject_token_signed_with_other_secret(client) -> None:
    resp = client.get(f"{PREFIX}/", headers=_auth_headers("another-secret-that-is-also-long-enough"))
    assert resp.status_code == 401


def test_status_when_unauthenticated(client) -> None:
    resp = client.get(f"{PREFIX}/", headers=_auth_headers())

    assert resp.status_code == 200
    assert resp.json() == {"appAuthorized": False, "tokenPresent": False, "realmId": None}


def test_authorize_returns_consent_url(client) -> None:
    resp = client.get(f"{PREFIX}/authorize", headers=_auth_headers())

    assert resp.status_code == 200
    assert resp.text.startswith("https://appcenter.intuit.com/connect/oauth2")


def test_authorize_callback_then_token_is_valid(client, token_store) -> None:
    _connect(client)

    assert token_store.load().realm_id == "9130"
    valid = client.get(f"{PREFIX}/token/valid", headers=_auth_headers())
    assert valid.status_code == 200
    assert valid.json() is True

    status = client.get(f"{PREFIX}/", headers=_auth_headers()).json()
    assert status == {"appAuthorized": True, "tokenPresent": True, "realmId": "9130"}


def test_callback_with_forged_state_is_rejected(client, auth_plan) -> None:
    resp = client.get(
        f"{PREFIX}/callback",
        params={"code": "abc", "state": "forged", "realmId": "1"},
        follow_redirects=False,
    )

    assert resp.status_code == 401
    assert "state" in resp.json()["error"]
    assert auth_plan.codes == []


def test_token_valid_is_false_when_unauthenticated(client) -> None:
    assert client.get(f"{PREFIX}/token/valid", headers=_auth_headers()).json() is False


def test_token_refresh_success_returns_new_token(connected_client) -> None:
    resp = connected_client.get(f"{PREFIX}/token/refresh", headers=_auth_headers())

    assert resp.status_code == 200
    body = resp.json()
    assert body["access_token"] == "access-r1"
    assert body["realm_id"] == "123"


def test_token_refresh_with_invalid_refresh_token_is_401(connected_client, auth_plan) -> None:
    auth_plan.refresh_error = make_auth_client_error(400, {"error": "invalid_grant"})

    resp = connected_client.get(f"{PREFIX}/token/refresh", headers=_auth_headers())

    assert resp.status_code == 401
    assert "refresh" in resp.json()["error"]
    assert resp.json()["detail"]["status_code"] == 400


def test_company_returns_provider_payload(connected_client, monkeypatch) -> None:
    monkeypatch.setattr(
        "requests.request",
        lambda *a, **k: FakeResp(200, {"CompanyInfo": {"CompanyName": "Acme", "Id": "1"}}),
    )

    resp = connected_client.get(f"{PREFIX}/company", headers=_auth_headers())

    assert resp.status_code == 200
    assert resp.json()["CompanyInfo"]["CompanyName"] == "Acme"


def test_company_fault_is_400_with_fault_payload(connected_client, monkeypatch) -> None:
    fault = {"Error": [{"Message": "AuthorizationFault"}], "type": "AuthorizationFault"}
    monkeypatch.setattr("requests.request", lambda *a, **k: FakeResp(200, {"Fault": fault}))

    resp = connected_client.get(f"{PREFIX}/company", headers=_auth_headers())

    assert resp.status_code == 400
    assert resp.json() == {"error": "AuthorizationFault", "fault": fault}


def test_company_when_not_connected_is_401(client) -> None:
    resp = client.get(f"{PREFIX}/company", headers=_auth_headers())

    assert resp.status_code == 401
    assert "Not connected" in resp.json()["error"]


def test_customers_two_pages_are_concatenated(connected_client, monkeypatch) -> None:
    queries: list[str] = []

    def fake_request(method, url, headers=None, params=None, json=None, timeout=None):
        queries.append(params["query"])
        if len(queries) == 1:
            page = [{"Id": str(i)} for i in range(1000)]
        else:
            page = [{"Id": "1000"}]
        return FakeResp(200, {"QueryResponse": {"Customer": page, "maxResults": len(page)}})

    monkeypatch.setattr("requests.request", fake_request)

    resp = connected_client.get(f"{PREFIX}/customers", headers=_auth_headers())

    assert resp.status_code == 200
    assert len(resp.json()) == 1001
    assert len(queries) == 2
    assert "STARTPOSITION 1 " in queries[0]
    assert "STARTPOSITION 1001 " in queries[1]


def test_customers_empty_set_is_empty_list(connected_client, monkeypatch) -> None:
    monkeypatch.setattr(
        "requests.request", lambda *a, **k: FakeResp(200, {"QueryResponse": {}})
    )

    resp = connected_client.get(f"{PREFIX}/customers", headers=_auth_headers())

    assert resp.status_code == 200
    assert resp.json() == []


def test_customers_fault_is_400(connected_client, monkeypatch) -> None:
    fault = {"Error": [{"Message": "ThrottleExceeded"}]}
    monkeypatch.setattr("requests.request", lambda *a, **k: FakeResp(429, {"Fault": fault}))

    resp = connected_client.get(f"{PREFIX}/customers", headers=_auth_headers())

    assert resp.status_code == 400
    assert resp.json()["fault"] == fault


def test_disconnect_clears_credential(connected_client, auth_plan, token_store) -> None:
    resp = connected_client.post(f"{PREFIX}/disconnect", headers=_auth_headers())

    assert resp.status_code == 200
    assert auth_plan.revoked == ["refresh"]
    assert token_store.load() is None
    assert connected_client.get(f"{PREFIX}/", headers=_auth_headers()).json()["tokenPresent"] is False


def test_lifespan_restores_and_refreshes_stored_credential(settings, connected_session, auth_plan) -> None:
    app = create_app(settings, session=connected_session)

    with TestClient(app) as client:
        assert app.state.refresh_scheduler.running
        status = client.get(f"{PREFIX}/", headers=_auth_headers()).json()

    assert auth_plan.refreshes == ["refresh"]
    assert status["appAuthorized"] is True
    assert not app.state.refresh_scheduler.running

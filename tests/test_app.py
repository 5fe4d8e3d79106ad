import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterator, List, Tuple

import pytest
from fastapi.testclient import TestClient

from app import api
from app.main import create_app
from datastore.device_directory import JsonDeviceDirectory, build_default_directory
from models.errors import AlreadyExists, NotFound
from models.users import Credentials, Token, User
from services.devices import DeviceService
from services.ingestion import IngestionService, build_default_ingestion
from services.users import UserService
from services.writer import BatchWriter
from settings import get_settings
from storage.timeseries import InMemoryTimeSeriesStore, build_default_store

Wiring = Tuple[TestClient, JsonDeviceDirectory, InMemoryTimeSeriesStore]
HEADERS = {"X-User-Id": "u1", "X-User-Scope": "write:metrics"}


class StubProvider:
    def __init__(self) -> None:
        self.users: Dict[str, User] = {}
        self.signed_in: List[Credentials] = []

    def create_account(self, account: User) -> None:
        if account.email in self.users:
            raise AlreadyExists()
        self.users[account.email] = User(
            id=f"auth0|{account.email}", name=account.name, email=account.email, role=account.role
        )

    def get_user(self, email: str) -> User:
        if email not in self.users:
            raise NotFound().with_msg("user not found")
        return self.users[email]

    def assign_role(self, role_id: str, user_id: str) -> None:
        return None

    def get_role_permissions(self, role_id: str) -> str:
        return "write:metrics"

    def sign_in(self, credentials: Credentials) -> Token:
        self.signed_in.append(credentials)
        return Token(access_token="access-token", id_token="id-token")

    def close(self) -> None:
        return None


@pytest.fixture
def wiring(tmp_path, monkeypatch) -> Iterator[Wiring]:
    directory = JsonDeviceDirectory(name="test", persistence_path=tmp_path / "devices.json")
    store = InMemoryTimeSeriesStore()
    ingestion = IngestionService(
        directory=directory, writer=BatchWriter(store=store, database="test")
    )
    devices = DeviceService(directory=directory)
    users = UserService(provider=StubProvider(), role_id="role-1")

    monkeypatch.setattr("app.api.build_default_ingestion", lambda: ingestion)
    monkeypatch.setattr("app.api.build_default_device_service", lambda: devices)
    monkeypatch.setattr("app.api.build_default_user_service", lambda: users)
    monkeypatch.setattr("app.main.build_default_ingestion", lambda: ingestion)
    monkeypatch.setattr("app.main.build_default_store", lambda: store)

    app = create_app()
    with TestClient(app) as client:
        yield client, directory, store


def _metric(sensor_id: str, **overrides) -> dict:
    payload = {
        "sensor_id": sensor_id,
        "sensor_version": "1.0.0",
        "alias": "lettuce 1",
        "temperature": 24.5,
        "ph": 6.1,
        "timestamp": datetime.now(timezone.utc).timestamp(),
    }
    payload.update(overrides)
    return payload


def test_lifespan_closes_store_and_clears_cache(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("INFLUXDB_HOST", "")
    monkeypatch.setenv("DEVICE_DIRECTORY_PATH", str(tmp_path / "devices.json"))
    monkeypatch.setenv("TIMESERIES_ROOT_PATH", str(tmp_path / "ts"))
    get_settings.cache_clear()
    try:
        app = create_app()
        with TestClient(app):
            during = build_default_ingestion()

        after = build_default_ingestion()
        assert after is not during
    finally:
        build_default_ingestion.cache_clear()
        build_default_store.cache_clear()
        build_default_directory.cache_clear()
        get_settings.cache_clear()


def test_register_metrics_persists_batch(wiring: Wiring) -> None:
    client, directory, store = wiring
    directory.create_user_devices("u1", "s1")
    directory.add_device("u1", "s2")

    response = client.post(
        "/metrics",
        json={"metrics": [_metric("s1"), _metric("s2", humidity=55.0)]},
        headers=HEADERS,
    )

    assert response.status_code == 201
    assert response.json() == {"accepted": 2}
    records = store.records("test")
    assert [record.sensor_id for record in records] == ["s1", "s2"]
    assert records[1].humidity == 55.0
    assert records[0].temperature == 24.5


def test_register_metrics_requires_user(wiring: Wiring) -> None:
    client, _, store = wiring

    response = client.post("/metrics", json={"metrics": [_metric("s1")]})

    assert response.status_code == 401
    assert response.json()["error"] == "unauthorized"
    assert store.records("test") == []


def test_register_metrics_for_foreign_device_is_forbidden(wiring: Wiring) -> None:
    client, directory, store = wiring
    directory.create_user_devices("u1", "s1")

    response = client.post(
        "/metrics",
        json={"metrics": [_metric("s1"), _metric("s3")]},
        headers=HEADERS,
    )

    assert response.status_code == 403
    body = response.json()
    assert body["error"] == "forbidden"
    assert body["details"]["sensor_id"] == "s3"
    assert store.records("test") == []


def test_register_metrics_for_user_without_devices_is_not_found(wiring: Wiring) -> None:
    client, _, _ = wiring

    response = client.post(
        "/metrics",
        json={"metrics": [_metric("s1")]},
        headers={**HEADERS, "X-User-Id": "ghost"},
    )

    assert response.status_code == 404
    assert response.json()["message"] == "user without correlated devices"


def test_register_stale_metrics_is_bad_request(wiring: Wiring) -> None:
    client, directory, _ = wiring
    directory.create_user_devices("u1", "s1")
    stale = (datetime.now(timezone.utc) - timedelta(days=45)).timestamp()

    response = client.post(
        "/metrics",
        json={"metrics": [_metric("s1", timestamp=stale)]},
        headers=HEADERS,
    )

    assert response.status_code == 400
    assert response.json()["message"] == "timestamp before 30 days is not acceptable"


def test_malformed_payload_is_bad_request(wiring: Wiring) -> None:
    client, _, _ = wiring

    response = client.post(
        "/metrics",
        json={"metrics": [_metric("s1", temperature="warm")]},
        headers=HEADERS,
    )

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "bad request"
    assert any("temperature" in field for field in body["details"]["fields"])


def test_empty_batch_is_bad_request(wiring: Wiring) -> None:
    client, _, _ = wiring

    response = client.post("/metrics", json={"metrics": []}, headers=HEADERS)

    assert response.status_code == 400


def test_unexpected_error_hides_details(wiring: Wiring, monkeypatch) -> None:
    client, directory, _ = wiring
    directory.create_user_devices("u1", "s1")

    def explode(*_args, **_kwargs):
        raise RuntimeError("database password is hunter2")

    monkeypatch.setattr(IngestionService, "ingest", explode)
    safe_client = TestClient(client.app, raise_server_exceptions=False)

    response = safe_client.post(
        "/metrics",
        json={"metrics": [_metric("s1")]},
        headers=HEADERS,
    )

    assert response.status_code == 500
    assert response.json() == {"error": "internal server error", "message": "", "details": {}}


def test_device_endpoints(wiring: Wiring) -> None:
    client, _, _ = wiring
    owner = {"X-User-Id": "u1"}

    missing = client.get("/users/u1/devices", headers=owner)
    assert missing.status_code == 404

    added = client.post("/users/u1/devices", json={"device": "s2"}, headers=owner)
    assert added.status_code == 202
    client.post("/users/u1/devices", json={"device": "s1"}, headers=owner)

    listed = client.get("/users/u1/devices", headers=owner)
    assert listed.status_code == 200
    assert listed.json() == {"user_id": "u1", "devices": ["s1", "s2"]}


def test_device_endpoints_require_identity(wiring: Wiring) -> None:
    client, directory, _ = wiring

    listed = client.get("/users/u1/devices")
    added = client.post("/users/u1/devices", json={"device": "s9"})

    assert listed.status_code == 401
    assert added.status_code == 401
    with pytest.raises(NotFound):
        directory.get_devices("u1")


def test_devices_of_another_user_are_forbidden(wiring: Wiring) -> None:
    client, directory, _ = wiring
    directory.create_user_devices("victim", "s1")
    attacker = {"X-User-Id": "attacker"}

    listed = client.get("/users/victim/devices", headers=attacker)
    added = client.post("/users/victim/devices", json={"device": "evil"}, headers=attacker)

    assert listed.status_code == 403
    assert added.status_code == 403
    assert directory.get_devices("victim") == {"s1"}


def test_register_metrics_without_write_scope_is_forbidden(wiring: Wiring) -> None:
    client, directory, store = wiring
    directory.create_user_devices("u1", "s1")

    missing = client.post(
        "/metrics", json={"metrics": [_metric("s1")]}, headers={"X-User-Id": "u1"}
    )
    wrong = client.post(
        "/metrics",
        json={"metrics": [_metric("s1")]},
        headers={"X-User-Id": "u1", "X-User-Scope": "read:metrics"},
    )

    assert missing.status_code == 403
    assert wrong.status_code == 403
    assert store.records("test") == []


def test_failed_write_is_logged_once(wiring: Wiring, caplog) -> None:
    client, directory, store = wiring
    directory.create_user_devices("u1", "s1")

    def fail(database, records):
        raise ConnectionError("store unavailable")

    store.write = fail
    with caplog.at_level(logging.DEBUG):
        response = client.post("/metrics", json={"metrics": [_metric("s1")]}, headers=HEADERS)

    assert response.status_code == 500
    assert response.json()["message"] == "failed to write data"
    loud = [record for record in caplog.records if record.levelno >= logging.WARNING]
    assert len(loud) == 1
    assert loud[0].name == "app.main"
    assert loud[0].exc_info is not None


def test_create_account(wiring: Wiring) -> None:
    client, _, _ = wiring
    provider = api.build_default_user_service().provider
    account = {"name": "Ana", "email": "ana@example.com", "password": "pw"}

    created = client.post("/users", json=account)
    duplicate = client.post("/users", json=account)

    assert created.status_code == 201
    assert provider.users["ana@example.com"].role == "role-1"
    assert duplicate.status_code == 409
    assert duplicate.json()["error"] == "resource already exists"


def test_create_account_with_missing_fields_is_bad_request(wiring: Wiring) -> None:
    client, _, _ = wiring

    response = client.post("/users", json={"email": "ana@example.com"})

    assert response.status_code == 400


def test_sign_in_returns_access_token(wiring: Wiring) -> None:
    client, _, _ = wiring
    provider = api.build_default_user_service().provider
    client.post("/users", json={"name": "Ana", "email": "ana@example.com", "password": "pw"})
    provider.users["ana@example.com"].email_verified = True

    response = client.post("/signin", auth=("ana@example.com", "pw"))

    assert response.status_code == 200
    assert response.json() == {"access_token": "access-token"}
    assert provider.signed_in[0].scope == "write:metrics"


def test_sign_in_without_credentials_is_bad_request(wiring: Wiring) -> None:
    client, _, _ = wiring

    response = client.post("/signin")

    assert response.status_code == 400


def test_sign_in_with_unverified_email_is_forbidden(wiring: Wiring) -> None:
    client, _, _ = wiring
    client.post("/users", json={"name": "Ana", "email": "ana@example.com", "password": "pw"})

    response = client.post("/signin", auth=("ana@example.com", "pw"))

    assert response.status_code == 403

def test_healthcheck(wiring: Wiring) -> None:
    client, _, _ = wiring

    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}

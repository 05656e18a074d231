from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from wikitype_api import main
from wikitype_api.config import Settings
from wikitype_api.database.backends import SqliteExerciseStore
from wikitype_api.security.openid_connect import IdTokenVerifier


@pytest.fixture
def app_client(tmp_path, monkeypatch):
    """Run the real application lifespan against a temporary SQLite file."""
    settings = Settings(database_url=f"sqlite:///{tmp_path / 'wikitype.db'}")
    monkeypatch.setattr(main, "settings", settings)
    with TestClient(main.app) as client:
        yield client


def test_healthz(app_client):
    response = app_client.get("/healthz")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_lifespan_opens_store_and_migrates(app_client):
    store = app_client.app.state.exercise_store
    assert isinstance(store, SqliteExerciseStore)
    assert app_client.app.state.id_token_verifier is None

    response = app_client.post(
        "/graphql",
        json={
            "query": "mutation { createExercise(input: {title: \"Albatross\", body: \"Seabird.\"}) { id } }"
        },
    )
    assert response.status_code == 200
    assert response.json()["data"]["createExercise"]["id"]


def test_metrics_expose_dao_error_counter(app_client):
    app_client.post("/graphql", json={"query": '{ exercise(id: "missing") { id } }'})

    response = app_client.get("/metrics")

    assert response.status_code == 200
    assert 'exercise_dao_errors_total{kind="not_found"}' in response.text


def test_verifier_is_disabled_without_issuer():
    assert main.build_id_token_verifier(Settings(oidc_issuer="")) is None


def test_required_auth_needs_an_issuer():
    with pytest.raises(RuntimeError):
        main.build_id_token_verifier(Settings(oidc_issuer="", oidc_required=True))


def test_verifier_targets_configured_issuer():
    verifier = main.build_id_token_verifier(
        Settings(oidc_issuer="https://accounts.google.com", oidc_audience="wikitype-web")
    )
    assert isinstance(verifier, IdTokenVerifier)
    assert verifier.provider.discovery_url == (
        "https://accounts.google.com/.well-known/openid-configuration"
    )
    verifier.provider.close()

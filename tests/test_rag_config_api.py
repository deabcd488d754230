"""Tests for the RAG config endpoints."""

from fastapi.testclient import TestClient


def test_list_embedding_models(api_client: TestClient):
    response = api_client.get("/api/v1/embedding-models")

    assert response.status_code == 200
    models = {m["id"]: m for m in response.json()}
    assert models["text-embedding-3-small"]["credential_kind"] == "OPENAI_API_KEY"
    assert models["nomic-embed-text"]["credential_kind"] is None
    assert models["nomic-embed-text"]["dimensions"] == 768


def test_get_config_creates_defaults(api_client: TestClient):
    response = api_client.get("/api/v1/projects/proj-1/rag-config")

    assert response.status_code == 200
    data = response.json()
    assert data["version"] == 1
    assert data["embedding_model"] == "nomic-embed-text"
    assert data["similarity_metric"] == "cosine"


def test_defaults_follow_available_credentials(api_client: TestClient):
    api_client.post(
        "/api/v1/credentials",
        json={
            "scope": "SYSTEM",
            "kind": "OPENAI_API_KEY",
            "secret": "sk-system-123456789",
        },
    )

    response = api_client.get("/api/v1/projects/proj-1/rag-config/defaults")

    assert response.status_code == 200
    assert response.json()["embedding_model"] == "text-embedding-3-small"
    assert response.json()["version"] == 0


def test_validate_reports_violations_and_warnings(api_client: TestClient):
    response = api_client.post(
        "/api/v1/projects/proj-1/rag-config/validate",
        json={"chunk_size": 100, "chunk_overlap": 100, "embedding_model": "text-embedding-3-large"},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["valid"] is False
    assert {v["field"] for v in data["violations"]} == {"chunk_overlap", "embedding_model"}
    assert data["warnings"]


def test_validate_does_not_store(api_client: TestClient):
    api_client.post("/api/v1/projects/proj-1/rag-config/validate", json={"top_k": 9})

    assert api_client.get("/api/v1/projects/proj-1/rag-config").json()["top_k"] == 5


def test_update_config(api_client: TestClient):
    response = api_client.put(
        "/api/v1/projects/proj-1/rag-config", json={"embedding_model": "mxbai-embed-large"}
    )

    assert response.status_code == 200
    data = response.json()
    assert data["reembed_required"] is True
    assert data["config"]["version"] == 2
    assert data["job"] is None


def test_update_top_k_only(api_client: TestClient):
    response = api_client.put("/api/v1/projects/proj-1/rag-config", json={"top_k": 8})

    assert response.status_code == 200
    assert response.json()["reembed_required"] is False


def test_rejected_update_returns_all_violations(api_client: TestClient):
    before = api_client.get("/api/v1/projects/proj-1/rag-config").json()

    response = api_client.put(
        "/api/v1/projects/proj-1/rag-config", json={"chunk_size": 0, "top_k": 0}
    )

    assert response.status_code == 422
    fields = {v["field"] for v in response.json()["violations"]}
    assert fields == {"chunk_size", "chunk_overlap", "top_k"}
    assert api_client.get("/api/v1/projects/proj-1/rag-config").json() == before


def test_unknown_field_rejected(api_client: TestClient):
    response = api_client.put("/api/v1/projects/proj-1/rag-config", json={"temperature": 0.2})

    assert response.status_code == 422


def test_update_with_auto_reembed_starts_job(api_client: TestClient):
    response = api_client.put(
        "/api/v1/projects/proj-1/rag-config",
        params={"auto_reembed": True},
        json={"chunk_size": 256},
    )

    assert response.status_code == 200
    job = response.json()["job"]
    assert job is not None
    assert job["config_version"] == 2

"""
Test cases for the HTTP query service.
"""

import json

import pytest
from fastapi.testclient import TestClient
from unittest.mock import patch

from filler_index.api import main
from filler_index.core.codec import encode
from filler_index.core.filler_table import FillerTable
from filler_index.vector.embeddings import DeterministicHashEmbedding, EmbeddingsService
from filler_index.vector.index import IndexLifecycleManager
from filler_index.vector.query import IndexHandle, QueryOrchestrator


TEXTS = ["can you hear me", "what should we do next"]


@pytest.fixture
def service():
    embedder = EmbeddingsService(DeterministicHashEmbedding(dimension=16))
    index = IndexLifecycleManager().build(
        16, 10, embedder.embed_texts(TEXTS), [encode(0, 3), encode(1, 5)],
        embedding_model=embedder.model_name,
    )
    table = FillerTable({3: "Okay.", 5: "Hmm."})
    return QueryOrchestrator(embedder, IndexHandle(index), table)


@pytest.fixture
def client(service):
    main.app.dependency_overrides[main.get_query_service] = lambda: service
    main.app.dependency_overrides[main.get_optional_query_service] = lambda: service
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["index_loaded"] is True
    assert data["index"]["count"] == 2
    assert data["index"]["metric"] == "l2"
    assert data["filler_categories"] == 2


def test_match_filler(client):
    response = client.post("/filler", json={"text": "what should we do next", "k": 1})

    assert response.status_code == 200
    data = response.json()
    assert data["fillers"] == ["Hmm."]
    assert data["neighbors"] == [encode(1, 5)]
    assert data["distances"][0] == pytest.approx(0.0, abs=1e-4)
    assert set(data["timings_ms"]) == {"embed", "search", "resolve"}


def test_match_filler_default_k_is_a_ceiling(client):
    response = client.post("/filler", json={"text": "can you hear me"})

    assert response.status_code == 200
    assert response.json()["fillers"][0] == "Okay."
    assert len(response.json()["fillers"]) == 2


@pytest.mark.parametrize("payload", [{"text": "   "}, {"text": "hi", "k": 0}, {}])
def test_match_filler_rejects_bad_requests(client, payload):
    assert client.post("/filler", json=payload).status_code == 422


def test_match_filler_reports_missing_filler(client, service):
    service.filler_table = FillerTable({3: "Okay."})

    response = client.post("/filler", json={"text": "what should we do next", "k": 1})

    assert response.status_code == 500
    assert "Filler category 5" in response.json()["detail"]


def test_reload_swaps_in_persisted_index(client, service, tmp_path):
    manager = IndexLifecycleManager()
    rebuilt = manager.build(16, 10, service.embeddings_service.embed_texts(TEXTS[:1]), [encode(0, 5)])
    path = tmp_path / "index.faiss"
    manager.persist(rebuilt, str(path))

    with patch("filler_index.core.config.INDEX_PATH", str(path)):
        response = client.post("/index/reload")

    assert response.status_code == 200
    assert response.json()["index"]["count"] == 1
    assert client.post("/filler", json={"text": TEXTS[0], "k": 1}).json()["fillers"] == ["Hmm."]


def test_reload_failure_keeps_serving(client, service, tmp_path):
    with patch("filler_index.core.config.INDEX_PATH", str(tmp_path / "absent.faiss")):
        response = client.post("/index/reload")

    assert response.status_code == 503
    assert service.index_handle.current().ntotal == 2
    assert client.post("/filler", json={"text": TEXTS[0], "k": 1}).status_code == 200


def test_service_initialized_once_from_config(tmp_path):
    embedder = EmbeddingsService(DeterministicHashEmbedding(dimension=16))
    manager = IndexLifecycleManager()
    path = tmp_path / "index.faiss"
    manager.persist(manager.build(16, 10, embedder.embed_texts(TEXTS), [encode(0, 3), encode(1, 5)]), str(path))
    fillers = tmp_path / "fillers.json"
    fillers.write_text(json.dumps({"3": "Okay.", "5": "Hmm."}))

    main.app.state.query_service = None
    with patch("filler_index.core.config.INDEX_PATH", str(path)), \
         patch("filler_index.core.config.FILLER_TABLE_PATH", str(fillers)), \
         patch("filler_index.core.config.EMBED_PROVIDER", "hash"), \
         patch("filler_index.core.config.EMBED_DIM", 16):
        client = TestClient(main.app)
        first = client.post("/filler", json={"text": TEXTS[1], "k": 1})
        service = main.app.state.query_service
        client.get("/health")

    assert first.status_code == 200
    assert first.json()["fillers"] == ["Hmm."]
    assert main.app.state.query_service is service
    main.app.state.query_service = None


def test_broken_filler_table_reported_unavailable(tmp_path):
    embedder = EmbeddingsService(DeterministicHashEmbedding(dimension=16))
    manager = IndexLifecycleManager()
    path = tmp_path / "index.faiss"
    manager.persist(manager.build(16, 10, embedder.embed_texts(TEXTS), [encode(0, 3), encode(1, 5)]), str(path))
    fillers = tmp_path / "fillers.json"
    fillers.write_text("{broken")

    main.app.state.query_service = None
    with patch("filler_index.core.config.INDEX_PATH", str(path)), \
         patch("filler_index.core.config.FILLER_TABLE_PATH", str(fillers)), \
         patch("filler_index.core.config.EMBED_PROVIDER", "hash"), \
         patch("filler_index.core.config.EMBED_DIM", 16):
        client = TestClient(main.app)
        health = client.get("/health")
        match = client.post("/filler", json={"text": TEXTS[0]})

    assert health.status_code == 200
    assert health.json()["status"] == "degraded"
    assert health.json()["index_loaded"] is False
    assert match.status_code == 503
    assert "Query service unavailable" in match.json()["detail"]
    assert main.app.state.query_service is None


def test_health_degraded_without_index(tmp_path):
    main.app.state.query_service = None
    with patch("filler_index.core.config.INDEX_PATH", str(tmp_path / "absent.faiss")), \
         patch("filler_index.core.config.EMBED_PROVIDER", "hash"), \
         patch("filler_index.core.config.EMBED_DIM", 16):
        response = TestClient(main.app).get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "degraded"
    assert response.json()["filler_categories"] == 0

"""
Test cases for the ingestion run and query-side initialization.
Ingestion and querying share nothing but the persisted index file.
"""

import json

import pytest
from unittest.mock import MagicMock

from filler_index.core.codec import decode
from filler_index.core.errors import (
    CapacityExceededError,
    EmbeddingServiceError,
    IndexCorruptError,
    IndexNotFoundError,
    IngestionError,
)
from filler_index.core.pipeline import init_query_service, reload_index, run_ingestion
from filler_index.vector.embeddings import DeterministicHashEmbedding, EmbeddingsService
from filler_index.vector.index import IndexLifecycleManager
from filler_index.vector.query import IndexHandle


DIMENSION = 32


@pytest.fixture
def workspace(tmp_path):
    source = tmp_path / "to_process"
    source.mkdir()
    fillers = tmp_path / "filler_map.json"
    fillers.write_text(json.dumps({"3": "Okay.", "5": "Hmm.", "7": "Oh, interesting."}))
    return {
        "source": source,
        "processed": tmp_path / "processed",
        "index": tmp_path / "index" / "index.faiss",
        "fillers": fillers,
    }


@pytest.fixture
def embedder():
    return EmbeddingsService(DeterministicHashEmbedding(dimension=DIMENSION))


def _write(directory, name, pairs):
    records = [{"pageContent": text, "metadata": {"fillerCategory": c}} for text, c in pairs]
    (directory / name).write_text(json.dumps(records))


def _ingest(workspace, embedder, capacity=100):
    return run_ingestion(
        embedder,
        IndexLifecycleManager(),
        source_dir=str(workspace["source"]),
        processed_dir=str(workspace["processed"]),
        record_extension="json",
        index_path=str(workspace["index"]),
        dimension=DIMENSION,
        capacity=capacity,
    )


def test_ingest_then_query_in_separate_stages(workspace, embedder):
    _write(workspace["source"], "a.json", [("can you hear me", 3), ("what now", 5)])
    _write(workspace["source"], "b.json", [("I went to Iceland", 7)])

    summary = _ingest(workspace, embedder)

    assert summary.persisted
    assert summary.files == 2
    assert summary.entries == 3
    assert workspace["index"].exists()

    # Fresh objects, as a separate query process would build them
    service = init_query_service(
        embeddings_service=EmbeddingsService(DeterministicHashEmbedding(dimension=DIMENSION)),
        manager=IndexLifecycleManager(),
        index_path=str(workspace["index"]),
        filler_table_path=str(workspace["fillers"]),
    )
    result = service.resolve("I went to Iceland", 1)

    assert result.fillers == ["Oh, interesting."]
    assert decode(result.neighbors[0]) == 7
    assert result.distances[0] == pytest.approx(0.0, abs=1e-4)


def test_embeds_whole_corpus_in_one_call(workspace):
    _write(workspace["source"], "a.json", [("one", 3), ("two", 5), ("three", 7)])
    provider = MagicMock(wraps=DeterministicHashEmbedding(dimension=DIMENSION))
    provider.model_name = "hash-32"

    _ingest(workspace, EmbeddingsService(provider))

    provider.embed_texts.assert_called_once()
    assert len(provider.embed_texts.call_args[0][0]) == 3


def test_empty_run_keeps_existing_index(workspace, embedder):
    _write(workspace["source"], "a.json", [("hello", 3)])
    _ingest(workspace, embedder)
    before = workspace["index"].read_bytes()

    summary = _ingest(workspace, embedder)

    assert not summary.persisted
    assert summary.entries == 0
    assert workspace["index"].read_bytes() == before


def test_malformed_file_aborts_before_persist(workspace, embedder):
    _write(workspace["source"], "good.json", [("hello", 3)])
    (workspace["source"] / "bad.json").write_text("[{\"pageContent\": \"x\"}]")

    with pytest.raises(IngestionError):
        _ingest(workspace, embedder)

    assert not workspace["index"].exists()
    assert (workspace["source"] / "bad.json").exists()
    assert (workspace["processed"] / "good.json").exists()


def test_capacity_overflow_aborts_before_persist(workspace, embedder):
    _write(workspace["source"], "a.json", [("one", 3), ("two", 5), ("three", 7)])

    with pytest.raises(CapacityExceededError):
        _ingest(workspace, embedder, capacity=2)

    assert not workspace["index"].exists()
    assert (workspace["source"] / "a.json").exists()


def test_init_query_service_without_index(workspace, embedder):
    with pytest.raises(IndexNotFoundError):
        init_query_service(
            embeddings_service=embedder,
            manager=IndexLifecycleManager(),
            index_path=str(workspace["index"]),
            filler_table_path=str(workspace["fillers"]),
        )


def test_reload_keeps_previous_index_on_corrupt_file(workspace, embedder):
    _write(workspace["source"], "a.json", [("hello", 3)])
    _ingest(workspace, embedder)
    manager = IndexLifecycleManager()
    handle = IndexHandle()
    original = reload_index(manager, handle, str(workspace["index"]))

    workspace["index"].write_bytes(b"garbage")

    with pytest.raises(IndexCorruptError):
        reload_index(manager, handle, str(workspace["index"]))
    assert handle.current() is original


def test_reload_picks_up_new_ingestion(workspace, embedder):
    _write(workspace["source"], "a.json", [("hello", 3)])
    _ingest(workspace, embedder)
    service = init_query_service(
        embeddings_service=embedder,
        manager=IndexLifecycleManager(),
        index_path=str(workspace["index"]),
        filler_table_path=str(workspace["fillers"]),
    )
    assert service.resolve("hello", 5).fillers == ["Okay."]

    _write(workspace["source"], "b.json", [("hello", 5), ("bye", 7)])
    _ingest(workspace, embedder)
    reload_index(IndexLifecycleManager(), service.index_handle, str(workspace["index"]))

    assert service.resolve("hello", 1).fillers == ["Hmm."]


def test_embedding_failure_returns_files_for_retry(workspace, embedder):
    _write(workspace["source"], "a.json", [("can you hear me", 3), ("what now", 5)])
    failing = MagicMock()
    failing.model_name = "hash-32"
    failing.embed_texts.side_effect = RuntimeError("model timeout")

    with pytest.raises(EmbeddingServiceError):
        _ingest(workspace, EmbeddingsService(failing))

    assert (workspace["source"] / "a.json").exists()
    assert list(workspace["processed"].iterdir()) == []
    assert not workspace["index"].exists()

    summary = _ingest(workspace, embedder)

    assert summary.persisted
    assert summary.entries == 2
    assert (workspace["processed"] / "a.json").exists()

import asyncio

import pytest

from note_embeddings.constants import UNLABELLED_EMBEDDING_MODEL
from note_embeddings.documents import DocumentRef
from note_embeddings.embedding import EmbeddingModel, build_embedder
from note_embeddings.errors import ConfigurationError
from note_embeddings.service import IndexService
from note_embeddings.vector_store.settings_store import InMemorySettingsStore


def test_missing_api_key_fails_before_any_request(config, documents):
    service = IndexService(config=config, store=InMemorySettingsStore(), documents=documents)

    with pytest.raises(ConfigurationError):
        asyncio.run(service.index_note(DocumentRef("Permanent/alpha.md")))
    with pytest.raises(ConfigurationError):
        build_embedder(config, EmbeddingModel.V2)


def test_reindex_uses_allow_pattern_when_group_has_no_folder(service, settings_store):
    summary = asyncio.run(service.reindex())

    assert summary.total == 5
    assert service.index.count() == 5
    assert len(settings_store.blob["vectors"]) == 5


def test_reindex_uses_active_group_folder(service):
    service.set_group_folder(0, "Permanent")

    summary = asyncio.run(service.reindex())

    assert summary.total == 3
    assert service.status().documents_needing_index == 0


def test_vectors_survive_reload(service, settings_store, config, documents, embedder):
    asyncio.run(service.reindex())

    reloaded = IndexService(
        config=config,
        store=settings_store,
        documents=documents,
        embedder_factory=lambda cfg, model: embedder,
    )

    assert reloaded.index.count() == 5
    assert reloaded.settings.embeddings_model_version == EmbeddingModel.V3_SMALL.key


def test_switching_group_clears_and_reindexes(service, embedder):
    service.set_group_folder(1, "Literature")
    asyncio.run(service.reindex())
    assert service.index.count() == 5

    summary = asyncio.run(service.set_active_group(1))

    assert service.settings.indexed_note_group == 1
    assert summary.total == 1
    assert [r.identity for r in service.index.records()] == ["Literature/book"]


def test_switching_to_unknown_group_fails(service):
    with pytest.raises(ConfigurationError):
        asyncio.run(service.set_active_group(5))


def test_change_embedding_model_rebuilds_index(service, settings_store, embedder):
    asyncio.run(service.reindex())
    embedder.calls.clear()

    asyncio.run(service.change_embedding_model("minilm"))

    assert service.settings.embeddings_model_version == "minilm"
    assert service.embedder().model is EmbeddingModel.MINILM
    assert len(embedder.calls) == 5
    assert settings_store.blob["embeddingsModelVersion"] == "minilm"


def test_change_to_unknown_model_fails(service):
    with pytest.raises(ConfigurationError):
        asyncio.run(service.change_embedding_model("v9"))


def test_failed_model_change_keeps_vectors(config, documents):
    store = InMemorySettingsStore(
        {"vectors": [{"linktext": "a", "path": "a.md", "embedding": [1.0], "sha": "s"}]}
    )
    service = IndexService(config=config, store=store, documents=documents)
    assert service.settings.embeddings_model_version == UNLABELLED_EMBEDDING_MODEL

    with pytest.raises(ConfigurationError):
        asyncio.run(service.change_embedding_model("v3_small"))

    assert service.settings.embeddings_model_version == UNLABELLED_EMBEDDING_MODEL
    assert service.index.count() == 1


def test_clear_vectors(service, settings_store):
    asyncio.run(service.reindex())

    dropped = service.clear_vectors()

    assert dropped == 5
    assert service.index.count() == 0
    assert settings_store.blob["vectors"] == []


def test_search_similar_limits_results(service):
    asyncio.run(service.reindex())

    results = asyncio.run(service.search_similar(DocumentRef("Permanent/alpha.md"), limit=2))

    assert len(results) == 2


def test_status(service, notes_dir):
    asyncio.run(service.index_note(DocumentRef("Permanent/alpha.md")))

    status = service.status()

    assert status.stored_vectors == 1
    assert status.documents_in_scope == 5
    assert status.documents_needing_index == 4
    assert status.model == "v3_small"
    assert status.active_group == "Permanent Notes"


def test_content_marker_change_is_persisted(service, settings_store):
    service.set_content_marker("## Body")

    assert service.index.content_marker == "## Body"
    assert settings_store.blob["contentMarker"] == "## Body"


def test_status_skips_undecodable_note(service, notes_dir):
    (notes_dir / "Permanent" / "latin1.md").write_bytes("café note".encode("latin-1"))

    status = service.status()

    assert status.documents_in_scope == 6
    assert status.documents_needing_index == 5


def test_hash_model_indexes_offline(config, documents):
    config.embedding_model = EmbeddingModel.HASH.key
    store = InMemorySettingsStore()
    service = IndexService(config=config, store=store, documents=documents)

    summary = asyncio.run(service.reindex())
    results = asyncio.run(service.search_similar(DocumentRef("Permanent/alpha.md")))

    assert summary.completed == 5
    assert store.blob["embeddingsModelVersion"] == "hash"
    assert all(len(r.stored_vector.embedding) == 64 for r in results)
    assert "Permanent/alpha" not in [r.stored_vector.identity for r in results]

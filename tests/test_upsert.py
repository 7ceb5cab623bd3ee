import asyncio

import pytest

from note_embeddings.errors import ExtractionError, ProviderError
from note_embeddings.hashing import digest
from note_embeddings.vector_store.index import VectorIndex

from conftest import StubEmbedder, char_sum_vector, doc


def upsert(index, document, embedder):
    return asyncio.run(index.upsert(document, embedder))


def test_new_document_is_embedded_and_saved(index, embedder):
    rec = upsert(index, doc("A", "hello world"), embedder)

    assert rec.identity == "A"
    assert rec.digest == digest("hello world")
    assert rec.embedding == char_sum_vector("hello world")
    assert index.get("A") is rec
    assert embedder.calls == ["hello world"]


def test_unchanged_document_is_a_no_op(index, embedder):
    first = upsert(index, doc("A", "hello world"), embedder)
    second = upsert(index, doc("A", "hello world"), embedder)

    assert second is first
    assert len(embedder.calls) == 1


def test_identical_text_is_stored_once(index, embedder):
    upsert(index, doc("A", "same text"), embedder)
    upsert(index, doc("B", "same text"), embedder)

    assert index.count() == 1
    assert index.has(digest("same text"))
    assert len(embedder.calls) == 1


def test_rename_repairs_identity_without_embedding(index, embedder):
    original = upsert(index, doc("A", "renamed content", path="old/A.md"), embedder)
    embedder.calls.clear()

    rec = upsert(index, doc("B", "renamed content", path="new/B.md"), embedder)

    assert embedder.calls == []
    assert index.count() == 1
    assert index.get("A") is None
    assert index.get("B") is rec
    assert rec.digest == original.digest
    assert rec.path == "new/B.md"


def test_edit_replaces_record_for_identity(index, embedder):
    upsert(index, doc("A", "first draft"), embedder)
    old_digest = digest("first draft")

    rec = upsert(index, doc("A", "second draft"), embedder)

    assert index.count() == 1
    assert index.get("A") is rec
    assert rec.digest == digest("second draft")
    assert not index.has(old_digest)
    assert len(embedder.calls) == 2


def test_edit_into_existing_content_reuses_vector(index, embedder):
    upsert(index, doc("A", "alpha"), embedder)
    upsert(index, doc("B", "beta"), embedder)
    embedder.calls.clear()

    rec = upsert(index, doc("B", "alpha"), embedder)

    assert embedder.calls == []
    assert rec.identity == "B"
    assert index.count() == 1
    assert not index.has(digest("beta"))


def test_empty_extraction_raises(index, embedder):
    with pytest.raises(ExtractionError):
        upsert(index, doc("A", "---\ntitle: x\n---\n   "), embedder)

    assert embedder.calls == []
    assert index.count() == 0


def test_content_marker_limits_embedded_text(embedder):
    index = VectorIndex(content_marker="## Body")
    text = "# Title\nrelated: [[x]]\n## Body\nThe idea."

    rec = upsert(index, doc("A", text), embedder)

    assert embedder.calls == ["The idea."]
    assert rec.digest == digest("The idea.")


def test_provider_failure_stores_nothing(index):
    embedder = StubEmbedder(fail_on=["boom"])

    with pytest.raises(ProviderError):
        upsert(index, doc("A", "boom"), embedder)

    assert index.count() == 0
    assert not index.has(digest("boom"))


def test_concurrent_duplicates_keep_digests_unique(index):
    embedder = StubEmbedder(delay=0.01)

    async def run():
        await asyncio.gather(
            index.upsert(doc("A", "twin"), embedder),
            index.upsert(doc("B", "twin"), embedder),
        )

    asyncio.run(run())

    assert index.count() == 1
    assert index.has(digest("twin"))


def test_scenario_dedup_and_search(index, embedder):
    for identity, text in [("A", "hello world"), ("B", "hello world"), ("C", "goodbye")]:
        upsert(index, doc(identity, text), embedder)

    assert index.count() == 2

    query = index.get("C")
    results = index.search(query)

    assert len(results) == 1
    assert results[0].stored_vector.identity in {"A", "B"}
    assert results[0].stored_vector.digest == digest("hello world")
    assert results[0].similarity < 1.0
    assert all(r.stored_vector.identity != "C" for r in results)

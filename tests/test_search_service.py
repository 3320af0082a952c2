"""
Tests for similarity retrieval over stored contexts.
"""

from unittest.mock import MagicMock

import pytest

from context_keeper.core.schema import Context
from context_keeper.core.search_service import SimilarityConfig, find_related, find_similar, rank_contexts
from context_keeper.core.store import ContextStore
from context_keeper.vector.embeddings import DeterministicHashEmbedding, EmbeddingError


@pytest.fixture
def provider():
    return DeterministicHashEmbedding(dimension=32)


@pytest.fixture
def semantic_store(tmp_path, provider):
    store = ContextStore(tmp_path / "contexts", embedding_provider=provider, seed_examples=False)
    store.initialize()
    return store


def test_rank_contexts_threshold_and_limit():
    """Only contexts above the threshold are returned, best first."""
    contexts = [
        Context(id="exact", content="", embedding=[1.0, 0.0]),
        Context(id="close", content="", embedding=[1.0, 0.2]),
        Context(id="none", content="", embedding=None),
        Context(id="far", content="", embedding=[0.0, 1.0]),
    ]
    hits = rank_contexts([1.0, 0.0], contexts, SimilarityConfig(min_relevance_score=0.6, max_related_contexts=5))
    assert [h.context.id for h in hits] == ["exact", "close"]


def test_rank_contexts_respects_max_related():
    """max_related_contexts caps the result size."""
    contexts = [Context(id=str(i), content="", embedding=[1.0, 0.01 * i]) for i in range(10)]
    hits = rank_contexts([1.0, 0.0], contexts, SimilarityConfig(min_relevance_score=0.0, max_related_contexts=3))
    assert [h.context.id for h in hits] == ["0", "1", "2"]


def test_find_similar(semantic_store):
    """The matching context scores highest."""
    target = semantic_store.add("backup retention policy")
    semantic_store.add("unrelated cooking recipe")

    hits = find_similar(semantic_store, "backup retention policy")

    assert hits[0].context.id == target.id
    assert hits[0].score == pytest.approx(1.0)
    assert hits[0].to_dict()["context"]["id"] == target.id


def test_find_similar_without_provider(store):
    """No provider yields no hits."""
    store.add("text only")
    assert find_similar(store, "text only") == []


def test_find_similar_provider_failure(semantic_store, provider):
    """A failing provider yields no hits instead of raising."""
    semantic_store.add("something")
    failing = MagicMock()
    failing.embed_text.side_effect = EmbeddingError("offline")

    assert find_similar(semantic_store, "something", provider=failing) == []


def test_find_similar_blank_query(semantic_store):
    """Blank text finds nothing."""
    semantic_store.add("something")
    assert find_similar(semantic_store, "   ") == []


def test_find_related_excludes_source(semantic_store):
    """Related contexts never include the context itself."""
    source = semantic_store.add("duplicate text")
    twin = semantic_store.add("duplicate text")

    hits = find_related(semantic_store, source.id)

    assert [h.context.id for h in hits] == [twin.id]


def test_find_related_unknown_id(semantic_store):
    """Unknown ids yield no hits."""
    assert find_related(semantic_store, "missing") == []

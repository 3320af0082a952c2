"""
Similarity retrieval over stored contexts.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence

from .config import MAX_RELATED_CONTEXTS, MIN_RELEVANCE_SCORE
from .schema import Context
from ..util.logging import logger
from ..vector.embeddings import IEmbeddingProvider
from ..vector.ops import rank_by_similarity


@dataclass
class SimilarityConfig:
    """Only matches scoring strictly above min_relevance_score are returned."""
    min_relevance_score: float = MIN_RELEVANCE_SCORE
    max_related_contexts: int = MAX_RELATED_CONTEXTS


@dataclass
class SearchHit:
    context: Context
    score: float

    def to_dict(self):
        return {"context": self.context.to_dict(), "score": self.score}


def rank_contexts(query_vector: Sequence[float], contexts: Sequence[Context],
                  config: SimilarityConfig, max_results: Optional[int] = None) -> List[SearchHit]:
    """Rank contexts with embeddings against a query vector."""
    limit = config.max_related_contexts if max_results is None else max_results
    ranked = rank_by_similarity(
        query_vector,
        contexts,
        min_score=config.min_relevance_score,
        max_results=limit,
        get_vector=lambda c: c.embedding,
    )
    return [SearchHit(context=context, score=score) for context, score in ranked]


def find_similar(store, query_text: str, provider: Optional[IEmbeddingProvider] = None,
                 config: Optional[SimilarityConfig] = None) -> List[SearchHit]:
    """
    Contexts semantically similar to free text.

    Returns an empty list when no provider is available or embedding fails.
    """
    config = config or store.similarity_config
    provider = provider or store.embedding_provider
    if provider is None or not query_text.strip():
        return []

    try:
        query_vector = provider.embed_text(query_text)
    except Exception as e:
        logger.log_vector_operation("find_similar", "-", {"error": str(e)}, status="degraded")
        return []

    hits = [
        SearchHit(context=context, score=score)
        for context, score in store.find_similar_by_vector(
            query_vector, config.min_relevance_score, config.max_related_contexts)
    ]
    logger.log_vector_operation("find_similar", "-", {"hits": len(hits)})
    return hits


def find_related(store, context_id: str, config: Optional[SimilarityConfig] = None) -> List[SearchHit]:
    """Contexts similar to an existing one, excluding itself."""
    config = config or store.similarity_config
    source = store.get(context_id)
    if source is None or not source.embedding:
        return []

    # One extra result so dropping the source still leaves a full page
    ranked = store.find_similar_by_vector(
        source.embedding, config.min_relevance_score, config.max_related_contexts + 1)
    hits = [SearchHit(context=c, score=s) for c, s in ranked if c.id != context_id]
    hits = hits[:config.max_related_contexts]
    logger.log_vector_operation("find_related", context_id, {"hits": len(hits)})
    return hits

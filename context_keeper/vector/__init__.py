"""
Embeddings, vector math and the in-memory similarity index.
"""

# Package initialization for vector module
from .index import IVectorStore, SimpleInMemoryVectorStore
from .types import VectorRecord, QueryResult
from .embeddings import (
    IEmbeddingProvider,
    DeterministicHashEmbedding,
    SentenceTransformerEmbedding,
    OpenAIEmbedding,
    EmbeddingError,
    get_embedding_provider,
)
from .ops import DimensionMismatchError

__all__ = [
    'IVectorStore',
    'SimpleInMemoryVectorStore',
    'VectorRecord',
    'QueryResult',
    'IEmbeddingProvider',
    'DeterministicHashEmbedding',
    'SentenceTransformerEmbedding',
    'OpenAIEmbedding',
    'EmbeddingError',
    'get_embedding_provider',
    'DimensionMismatchError',
]

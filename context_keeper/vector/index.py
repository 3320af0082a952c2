"""
Embedding index kept beside the context store.

A linear scan over every stored vector; rebuilt from the context files on
load, so it is a cache and never the source of truth.
"""

from abc import ABC, abstractmethod
from typing import List, Optional
import numpy as np

from .ops import rank_by_similarity
from .types import VectorRecord, QueryResult


class IVectorStore(ABC):
    """Abstract interface for vector storage operations."""

    @abstractmethod
    def add(self, record: VectorRecord) -> None:
        """Add a single vector record to the store."""
        pass

    @abstractmethod
    def batch_add(self, records: List[VectorRecord]) -> None:
        """Add multiple vector records to the store."""
        pass

    @abstractmethod
    def search(self, query_vector: np.ndarray, top_k: int = 5, min_score: Optional[float] = None) -> List[QueryResult]:
        """Search for similar vectors and return ranked results."""
        pass

    @abstractmethod
    def delete(self, record_id: str) -> None:
        """Delete a vector record by ID."""
        pass

    @abstractmethod
    def clear(self) -> None:
        """Clear all records from the store."""
        pass

    @abstractmethod
    def count(self) -> int:
        """Number of indexed vectors."""
        pass


class SimpleInMemoryVectorStore(IVectorStore):
    """In-memory implementation of IVectorStore using cosine similarity."""

    def __init__(self):
        self._vectors = {}  # record_id -> VectorRecord, insertion ordered

    def add(self, record: VectorRecord) -> None:
        """Add or replace a vector record; records without a vector are dropped."""
        if record.vector is None or len(record.vector) == 0:
            self._vectors.pop(record.id, None)
            return

        self._vectors[record.id] = VectorRecord(
            id=record.id,
            vector=np.asarray(record.vector, dtype=float),
            metadata=record.metadata,
        )

    def batch_add(self, records: List[VectorRecord]) -> None:
        """Add multiple vector records to the store."""
        for record in records:
            self.add(record)

    def search(self, query_vector: np.ndarray, top_k: int = 5, min_score: Optional[float] = None) -> List[QueryResult]:
        """Search for similar vectors and return ranked results.

        Without min_score every indexed vector is a candidate (scores down to -1).
        """
        if not self._vectors:
            return []

        threshold = -1.0 - 1e-9 if min_score is None else min_score
        ranked = rank_by_similarity(
            query_vector,
            list(self._vectors.values()),
            min_score=threshold,
            max_results=top_k,
            get_vector=lambda record: record.vector,
        )

        return [
            QueryResult(id=record.id, score=score, metadata=record.metadata)
            for record, score in ranked
        ]

    def delete(self, record_id: str) -> None:
        """Delete a vector record by ID."""
        self._vectors.pop(record_id, None)

    def clear(self) -> None:
        """Clear all records from the store."""
        self._vectors.clear()

    def count(self) -> int:
        return len(self._vectors)

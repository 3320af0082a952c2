"""
Context store - one JSON file per context record.

The files are the source of truth. Every mutation is written to disk first;
the in-memory map and the embedding index are only updated once the write
has succeeded, so a failed write never leaves them ahead of the disk.
"""

import json
import os
import secrets
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union

from .schema import Context, now_ms
from .search_service import SimilarityConfig, rank_contexts
from ..util.logging import logger
from ..vector.embeddings import IEmbeddingProvider
from ..vector.index import SimpleInMemoryVectorStore
from ..vector.types import VectorRecord

DEFAULT_SEARCH_LIMIT = 10

# Written on first run when the store directory does not exist yet
SAMPLE_CONTEXTS = [
    {
        "id": "1682341200000",
        "content": "In this conversation, we discussed the implementation of a new feature that would allow users to export their data in multiple formats including CSV, JSON, and XML.",
        "metadata": {
            "timestamp": 1682341200000,
            "topic": "Feature Implementation",
            "participants": ["User", "Assistant"],
            "tags": ["export", "data", "formats"],
        },
    },
    {
        "id": "1687536000000",
        "content": "The user asked about performance optimization techniques for their React application. We covered code splitting, memoization, virtualization for long lists, and proper state management.",
        "metadata": {
            "timestamp": 1687536000000,
            "topic": "Performance Optimization",
            "participants": ["User", "Assistant"],
            "tags": ["react", "performance", "optimization"],
        },
    },
    {
        "id": "1693526400000",
        "content": "We discussed database schema design for a social media application, covering user profiles, posts, comments, likes, and relationships between these entities.",
        "metadata": {
            "timestamp": 1693526400000,
            "topic": "Database Design",
            "participants": ["User", "Assistant"],
            "tags": ["database", "schema", "social media"],
        },
    },
    {
        "id": "1701388800000",
        "content": "The conversation was about implementing authentication and authorization using JWT tokens, including token refresh mechanisms and secure storage.",
        "metadata": {
            "timestamp": 1701388800000,
            "topic": "Authentication",
            "participants": ["User", "Assistant"],
            "tags": ["jwt", "auth", "security"],
        },
    },
    {
        "id": "1706745600000",
        "content": "We worked on setting up a CI/CD pipeline using GitHub Actions for a Node.js project, including testing, building, and deployment to a cloud provider.",
        "metadata": {
            "timestamp": 1706745600000,
            "topic": "CI/CD Setup",
            "participants": ["User", "Assistant"],
            "tags": ["github", "ci/cd", "automation"],
        },
    },
]


class StorageError(Exception):
    """Raised when a context file cannot be written or removed."""
    pass


@dataclass
class SearchOptions:
    """Structured search: tag filter, query text and result limit."""
    tags: List[str] = field(default_factory=list)
    query_text: Optional[str] = None
    limit: Optional[int] = DEFAULT_SEARCH_LIMIT

    @classmethod
    def from_query(cls, query: Union[str, Dict[str, Any], 'SearchOptions']) -> 'SearchOptions':
        if isinstance(query, SearchOptions):
            return query
        if isinstance(query, str):
            # Free-text searches are not truncated
            return cls(query_text=query, limit=None)
        return cls(
            tags=list(query.get("tags") or []),
            query_text=query.get("query_text", query.get("query")),
            limit=query.get("limit") or DEFAULT_SEARCH_LIMIT,
        )


def _is_safe_id(context_id: str) -> bool:
    return bool(context_id) and not any(sep in context_id for sep in ("/", "\\", "\0")) and context_id not in (".", "..")


class ContextStore:
    """
    File-backed store for context records.

    Features:
    - Write-through persistence (one file per record, atomic replace)
    - Strictly increasing ``updated`` stamps
    - Free-text, tag and embedding search
    """

    def __init__(self, contexts_dir: Union[str, Path],
                 embedding_provider: Optional[IEmbeddingProvider] = None,
                 seed_examples: bool = True,
                 similarity_config: Optional[SimilarityConfig] = None,
                 clock: Callable[[], int] = now_ms):
        """
        Args:
            contexts_dir: Directory holding one ``<id>.json`` file per context
            embedding_provider: Optional provider; without one search is text-only
            seed_examples: Write example records when the directory is new
            similarity_config: Threshold used by embedding-mode search
            clock: Source of epoch-millisecond timestamps
        """
        self._dir = Path(contexts_dir)
        self.embedding_provider = embedding_provider
        self.seed_examples = seed_examples
        self.similarity_config = similarity_config or SimilarityConfig()
        self._clock = clock
        self._contexts: Dict[str, Context] = {}
        self._index = SimpleInMemoryVectorStore()
        self._last_stamp = 0
        self._initialized = False

    @property
    def contexts_dir(self) -> Path:
        return self._dir

    def is_initialized(self) -> bool:
        return self._initialized

    def initialize(self) -> None:
        """Load records from disk; seed examples on first run. Idempotent."""
        if self._initialized:
            return

        first_run = not self._dir.exists()
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot create context directory {self._dir}: {e}")

        if first_run and self.seed_examples:
            self._seed()
        else:
            self._load()

        self._initialized = True
        logger.log_operation("context_store.initialize", "success", {
            "contexts": len(self._contexts),
            "indexed_vectors": self._index.count(),
            "seeded": first_run and self.seed_examples,
        })

    # -------------------------------------------------------------------------
    # Disk helpers
    # -------------------------------------------------------------------------

    def _path_for(self, context_id: str) -> Path:
        return self._dir / f"{context_id}.json"

    def _load(self) -> None:
        for path in sorted(self._dir.glob("*.json")):
            try:
                with open(path, "r", encoding="utf-8") as f:
                    context = Context.from_dict(json.load(f))
            except (OSError, ValueError, KeyError, TypeError) as e:
                logger.warning(f"Skipping unreadable context file {path.name}: {e}")
                continue
            self._remember(context)

    def _seed(self) -> None:
        for sample in SAMPLE_CONTEXTS:
            context = Context.from_dict(sample)
            context.metadata.setdefault("created", context.metadata["timestamp"])
            context.metadata.setdefault("updated", context.metadata["timestamp"])
            context.embedding = self._embed(context.content)
            self._write(context)
            self._remember(context)

    def _write(self, context: Context) -> None:
        """Atomically write one record; raises StorageError."""
        if not _is_safe_id(context.id):
            raise StorageError(f"Invalid context id: {context.id!r}")

        tmp_path = None
        try:
            fd, tmp_path = tempfile.mkstemp(dir=self._dir, prefix=".ctx-", suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(context.to_dict(), f, indent=2, ensure_ascii=False)
            os.replace(tmp_path, self._path_for(context.id))
        except (OSError, TypeError, ValueError) as e:
            if tmp_path and os.path.exists(tmp_path):
                os.unlink(tmp_path)
            logger.log_context_operation("write", context.id, status="failed")
            raise StorageError(f"Failed to persist context {context.id}: {e}")

    def _remember(self, context: Context) -> None:
        self._contexts[context.id] = context
        self._index.add(VectorRecord(
            id=context.id,
            vector=context.embedding,
            metadata={"tags": context.tags},
        ))
        self._last_stamp = max(self._last_stamp, context.updated)

    def _forget(self, context_id: str) -> None:
        self._contexts.pop(context_id, None)
        self._index.delete(context_id)

    def _embed(self, text: str) -> Optional[List[float]]:
        """Embedding for text, or None when no provider is configured or it fails."""
        if self.embedding_provider is None:
            return None
        try:
            return list(self.embedding_provider.embed_text(text))
        except Exception as e:
            logger.log_vector_operation("embed", "-", {"error": str(e)}, status="degraded")
            return None

    def _stamp(self, previous: int = 0) -> int:
        """Timestamp strictly greater than every stamp issued so far."""
        stamp = max(self._clock(), self._last_stamp + 1, previous + 1)
        self._last_stamp = stamp
        return stamp

    def _new_id(self, stamp: int) -> str:
        while True:
            context_id = f"{stamp}-{secrets.token_hex(3)}"
            if context_id not in self._contexts:
                return context_id

    # -------------------------------------------------------------------------
    # Write Operations
    # -------------------------------------------------------------------------

    def add(self, content: str, metadata: Optional[Dict[str, Any]] = None) -> Context:
        """
        Create and persist a new context.

        Returns:
            The stored Context

        Raises:
            StorageError: If the record cannot be written
        """
        self.initialize()

        stamp = self._stamp()
        meta = dict(metadata or {})
        meta.setdefault("timestamp", stamp)
        meta["created"] = stamp
        meta["updated"] = stamp

        context = Context(
            id=self._new_id(stamp),
            content=content,
            metadata=meta,
            embedding=self._embed(content),
        )

        self._write(context)
        self._remember(context)
        logger.log_context_operation("added", context.id, content)
        return context

    def update(self, context_id: str, content: str, metadata: Optional[Dict[str, Any]] = None) -> Optional[Context]:
        """
        Replace content and merge metadata of an existing context.

        Supplied metadata keys replace prior values; omitted keys are kept.
        ``created`` is never changed and ``updated`` always moves forward.

        Returns:
            The updated Context, or None when the id is unknown
        """
        self.initialize()

        existing = self._contexts.get(context_id)
        if existing is None:
            return None

        meta = dict(existing.metadata)
        if metadata:
            meta.update(metadata)
        if "created" in existing.metadata:
            meta["created"] = existing.metadata["created"]
        meta["updated"] = self._stamp(existing.updated)

        if content != existing.content:
            embedding = self._embed(content)
        else:
            embedding = existing.embedding

        updated = Context(id=context_id, content=content, metadata=meta, embedding=embedding)
        self._write(updated)
        self._remember(updated)
        logger.log_context_operation("updated", context_id, content)
        return updated

    def delete(self, context_id: str) -> bool:
        """Delete a context. True only if it existed and its file was removed."""
        self.initialize()

        if context_id not in self._contexts:
            return False

        try:
            self._path_for(context_id).unlink(missing_ok=True)
        except OSError as e:
            logger.log_context_operation("delete", context_id, status="failed")
            raise StorageError(f"Failed to delete context {context_id}: {e}")

        self._forget(context_id)
        logger.log_context_operation("deleted", context_id)
        return True

    def clear_all(self) -> None:
        """Remove every context record from disk and memory."""
        self.initialize()

        try:
            for path in self._dir.glob("*.json"):
                path.unlink()
        except OSError as e:
            logger.log_operation("context_store.clear_all", "failed", {"error": str(e)})
            raise StorageError(f"Failed to clear context files: {e}")

        removed = len(self._contexts)
        self._contexts.clear()
        self._index.clear()
        logger.log_operation("context_store.clear_all", "success", {"removed": removed})

    def insert_many(self, contexts: Iterable[Context]) -> int:
        """Re-insert restored contexts verbatim (ids and metadata preserved)."""
        self.initialize()

        inserted = 0
        for context in contexts:
            self._write(context)
            self._remember(context)
            inserted += 1

        logger.log_operation("context_store.insert_many", "success", {"inserted": inserted})
        return inserted

    # -------------------------------------------------------------------------
    # Read Operations
    # -------------------------------------------------------------------------

    def get(self, context_id: str) -> Optional[Context]:
        self.initialize()
        return self._contexts.get(context_id)

    def get_all(self) -> List[Context]:
        """All contexts, newest ``updated``/``timestamp`` first."""
        self.initialize()
        return sorted(self._contexts.values(), key=lambda c: c.updated, reverse=True)

    def count(self) -> int:
        self.initialize()
        return len(self._contexts)

    def count_on_disk(self) -> int:
        """Number of context files present, without loading or seeding the store."""
        if not self._dir.exists():
            return 0
        return sum(1 for _ in self._dir.glob("*.json"))

    def search(self, query: Union[str, Dict[str, Any], SearchOptions]) -> List[Context]:
        """
        Search contexts by free text, tags, or embedding similarity.

        With an embedding provider the query text is embedded and candidates are
        ranked by cosine similarity; otherwise (or if embedding fails) a
        case-insensitive substring match runs over content and metadata.
        Failures degrade to an empty result.
        """
        try:
            self.initialize()
            options = SearchOptions.from_query(query)

            candidates = self.get_all()
            if options.tags:
                wanted = set(options.tags)
                candidates = [c for c in candidates if wanted.intersection(c.tags)]

            text = (options.query_text or "").strip()
            if text:
                results = self._semantic_matches(text, candidates)
                if results is None:
                    results = [c for c in candidates if self._matches_text(c, text)]
            elif options.tags:
                results = candidates
            else:
                results = []

            if options.limit is not None:
                results = results[:options.limit]
            return results
        except Exception as e:
            logger.log_operation("context_store.search", "degraded", {"error": str(e)})
            return []

    def _semantic_matches(self, text: str, candidates: List[Context]) -> Optional[List[Context]]:
        if self.embedding_provider is None:
            return None
        query_vector = self._embed(text)
        if query_vector is None:
            return None

        hits = rank_contexts(query_vector, candidates, self.similarity_config, max_results=len(candidates))
        return [hit.context for hit in hits]

    @staticmethod
    def _matches_text(context: Context, text: str) -> bool:
        needle = text.lower()
        if needle in context.content.lower():
            return True
        return needle in json.dumps(context.metadata or {}, default=str).lower()

    def find_similar_by_vector(self, vector: List[float], min_score: float, max_results: int) -> List[Tuple[Context, float]]:
        """Rank stored contexts against a vector using the embedding index."""
        self.initialize()
        results = self._index.search(vector, top_k=max_results, min_score=min_score)
        return [(self._contexts[r.id], r.score) for r in results if r.id in self._contexts]

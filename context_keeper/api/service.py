"""
ContextKeeper - one object wiring the store, backups, capture and scheduler.

Construct it once and pass it around; every collaborator is created here
from a Settings snapshot rather than looked up globally.
"""

from typing import Any, Dict, List, Optional

from .schemas import BackupConfigRequest, ContextCreateRequest, ContextUpdateRequest, SearchRequest
from ..core.backup import BackupConfig, BackupManager
from ..core.capture import CaptureConfig, ContextCaptureService
from ..core.config import VERSION, Settings, load_settings, validate_settings
from ..core.heartbeat import Heartbeat
from ..core.schema import ActiveSession, BackupMetadata, Context
from ..core.search_service import SearchHit, SimilarityConfig, find_related, find_similar
from ..core.session import SessionManager
from ..core.store import ContextStore
from ..util.logging import audit_event, logger
from ..vector.embeddings import IEmbeddingProvider, get_embedding_provider


class ContextKeeper:
    """Service facade over context storage, backups and session capture."""

    def __init__(self, settings: Optional[Settings] = None,
                 embedding_provider: Optional[IEmbeddingProvider] = None,
                 scheduler: Optional[Heartbeat] = None,
                 clock=None):
        self.settings = settings or load_settings()
        if embedding_provider is None:
            embedding_provider = get_embedding_provider(self.settings)
        self.embedding_provider = embedding_provider
        self.scheduler = scheduler or Heartbeat()

        self.similarity_config = SimilarityConfig(
            min_relevance_score=self.settings.min_relevance_score,
            max_related_contexts=self.settings.max_related_contexts,
        )
        self.store = ContextStore(
            self.settings.contexts_dir,
            embedding_provider=embedding_provider,
            seed_examples=self.settings.seed_examples,
            similarity_config=self.similarity_config,
        )
        self.backups = BackupManager(
            self.settings.backups_dir,
            contexts_source=self.store.get_all,
            config=BackupConfig(
                auto_backup_enabled=self.settings.backup_enabled,
                backup_frequency_ms=self.settings.backup_frequency_ms,
                retention_period_days=self.settings.backup_retention_days,
                initial_backup_delay_ms=self.settings.backup_initial_delay_ms,
            ),
            scheduler=self.scheduler,
        )
        self.capture = ContextCaptureService(
            self.store,
            self.settings.sessions_dir,
            config=CaptureConfig(
                enabled=self.settings.capture_enabled,
                auto_capture=self.settings.capture_auto,
                capture_interval_ms=self.settings.capture_interval_ms,
                min_content_length=self.settings.capture_min_content_length,
                max_sessions_to_track=self.settings.capture_max_sessions,
                idle_capture_ms=self.settings.capture_idle_ms,
                max_session_age_ms=self.settings.capture_max_age_ms,
                initial_capture_delay_ms=self.settings.capture_initial_delay_ms,
            ),
            scheduler=self.scheduler,
            clock=clock,
        )
        self.sessions = SessionManager(self.capture)
        self._initialized = False

    def initialize(self) -> None:
        """Load the store and register background jobs. Idempotent."""
        if self._initialized:
            return

        for issue in validate_settings(self.settings):
            logger.warning(f"Configuration issue: {issue}")

        self.store.initialize()
        self.backups.initialize()
        self.sessions.initialize()
        self._initialized = True
        logger.log_operation("context_keeper.initialize", "success", {"data_dir": str(self.settings.data_dir)})

    def start(self) -> None:
        """Initialize and start the scheduler; call from inside a running event loop."""
        self.initialize()
        self.scheduler.start()

    async def stop(self) -> None:
        await self.scheduler.stop()
        self.capture.shutdown()
        self.backups.shutdown()

    # -------------------------------------------------------------------------
    # Contexts
    # -------------------------------------------------------------------------

    def create_context(self, content: str, metadata: Optional[Dict[str, Any]] = None) -> Context:
        request = ContextCreateRequest(content=content, metadata=metadata or {})
        self.initialize()
        return self.store.add(request.content, request.metadata)

    def get_context(self, context_id: str) -> Optional[Context]:
        self.initialize()
        return self.store.get(context_id)

    def list_contexts(self) -> List[Context]:
        self.initialize()
        return self.store.get_all()

    def update_context(self, context_id: str, content: str, metadata: Optional[Dict[str, Any]] = None) -> Optional[Context]:
        request = ContextUpdateRequest(content=content, metadata=metadata)
        self.initialize()
        return self.store.update(context_id, request.content, request.metadata)

    def delete_context(self, context_id: str) -> bool:
        self.initialize()
        return self.store.delete(context_id)

    def search_contexts(self, query_text: Optional[str] = None, tags: Optional[List[str]] = None,
                        limit: int = 10) -> List[Context]:
        request = SearchRequest(query_text=query_text, tags=tags or [], limit=limit)
        self.initialize()
        return self.store.search({
            "query_text": request.query_text,
            "tags": request.tags,
            "limit": request.limit,
        })

    def find_similar_contexts(self, query_text: Optional[str] = None,
                              context_id: Optional[str] = None) -> List[SearchHit]:
        """Semantic neighbours of free text, or of an existing context when context_id is given."""
        self.initialize()
        if context_id is not None:
            return find_related(self.store, context_id, self.similarity_config)
        return find_similar(self.store, query_text or "", self.embedding_provider, self.similarity_config)

    # -------------------------------------------------------------------------
    # Backups
    # -------------------------------------------------------------------------

    def create_backup(self) -> str:
        self.initialize()
        return self.backups.create_backup(self.store.get_all())

    def list_backups(self) -> List[BackupMetadata]:
        self.initialize()
        return self.backups.list_backups()

    def restore_backup(self, backup_id: str) -> int:
        """
        Replace the store contents with a backup.

        The backup is fully read and validated before the store is cleared.

        Returns:
            Number of contexts restored
        """
        self.initialize()
        contexts = self.backups.restore_backup(backup_id)

        logger.log_backup_operation("restore", backup_id, {"step": "clear_all", "incoming": len(contexts)}, status="started")
        self.store.clear_all()
        restored = self.store.insert_many(contexts)
        logger.log_backup_operation("restore", backup_id, {"step": "insert_many", "restored": restored})

        audit_event("context_keeper.restore", {"backup_id": backup_id}, payload={"restored": restored})
        return restored

    def delete_backup(self, backup_id: str) -> bool:
        self.initialize()
        return self.backups.delete_backup(backup_id)

    def set_backup_config(self, **changes) -> BackupConfig:
        request = BackupConfigRequest(**changes)
        self.initialize()
        return self.backups.set_config(**request.changes())

    # -------------------------------------------------------------------------
    # Sessions
    # -------------------------------------------------------------------------

    def register_session(self, session_id: str, initial_content: str = "", project_path: Optional[str] = None) -> None:
        self.initialize()
        self.capture.register_session(session_id, initial_content, project_path)

    def update_session(self, session_id: str, content: str) -> None:
        self.initialize()
        self.capture.update_session(session_id, content)

    def capture_session(self, session_id: str, metadata: Optional[Dict[str, Any]] = None) -> bool:
        self.initialize()
        return self.capture.capture_session(session_id, metadata)

    def end_session(self, session_id: str, capture_content: bool = True) -> bool:
        self.initialize()
        return self.capture.end_session(session_id, capture_content)

    def get_active_sessions(self) -> List[ActiveSession]:
        self.initialize()
        return self.capture.get_active_sessions()

    # -------------------------------------------------------------------------
    # Status
    # -------------------------------------------------------------------------

    def get_status(self) -> Dict[str, Any]:
        """Return current service status for monitoring."""
        self.initialize()
        return {
            "version": VERSION,
            "data_dir": str(self.settings.data_dir),
            "contexts": self.store.count(),
            "backups": len(self.backups.list_backups()),
            "active_sessions": len(self.capture.get_active_sessions()),
            "embedding_provider": type(self.embedding_provider).__name__ if self.embedding_provider else None,
            "backup_config": self.backups.get_config().to_dict(),
            "capture_config": self.capture.get_config().to_dict(),
            "heartbeat": self.scheduler.get_status(),
        }

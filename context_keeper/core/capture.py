"""
Session capture - buffers in-progress conversations and commits them as contexts.

Active sessions survive restarts through ``active-sessions.json``, a JSON
list of ``[id, session]`` pairs. A periodic sweep commits sessions that have
gone idle or grown old; callers can also capture or end a session directly.
"""

import json
import os
import tempfile
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from .config import (
    CAPTURE_AUTO,
    CAPTURE_ENABLED,
    CAPTURE_IDLE_MS,
    CAPTURE_INITIAL_DELAY_MS,
    CAPTURE_INTERVAL_MS,
    CAPTURE_MAX_AGE_MS,
    CAPTURE_MAX_SESSIONS,
    CAPTURE_MIN_CONTENT_LENGTH,
)
from .schema import ActiveSession, now_ms
from .store import ContextStore
from ..util.logging import logger

SESSIONS_FILE = "active-sessions.json"
AUTO_CAPTURE_TASK = "context_capture"

# Growth beyond this factor of the captured length re-arms a session
RECAPTURE_GROWTH = 1.2


@dataclass
class CaptureConfig:
    enabled: bool = CAPTURE_ENABLED
    auto_capture: bool = CAPTURE_AUTO
    capture_interval_ms: int = CAPTURE_INTERVAL_MS
    min_content_length: int = CAPTURE_MIN_CONTENT_LENGTH
    max_sessions_to_track: int = CAPTURE_MAX_SESSIONS
    idle_capture_ms: int = CAPTURE_IDLE_MS
    max_session_age_ms: int = CAPTURE_MAX_AGE_MS
    initial_capture_delay_ms: int = CAPTURE_INITIAL_DELAY_MS

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class ContextCaptureService:
    """
    Tracks a bounded set of active sessions and turns them into stored contexts.

    Session persistence is best effort: write and read failures are logged
    and the in-memory state carries on.
    """

    def __init__(self, store: ContextStore, sessions_dir: Union[str, Path],
                 config: Optional[CaptureConfig] = None,
                 scheduler=None,
                 clock: Optional[Callable[[], int]] = None):
        self.store = store
        self.sessions_dir = Path(sessions_dir)
        self.config = config or CaptureConfig()
        self.scheduler = scheduler
        self._clock = clock or now_ms
        self._sessions: Dict[str, ActiveSession] = {}
        self._initialized = False

    @property
    def sessions_file(self) -> Path:
        return self.sessions_dir / SESSIONS_FILE

    def initialize(self) -> None:
        """Initialize the store, reload saved sessions and start auto-capture. Idempotent."""
        if self._initialized:
            return

        self.store.initialize()
        try:
            self.sessions_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.log_operation("capture.initialize", "degraded", {"error": str(e)})

        self._sessions = self._load_sessions()
        self._initialized = True

        if self.config.enabled and self.config.auto_capture:
            self._schedule(self.config.initial_capture_delay_ms)

        logger.log_operation("capture.initialize", "success", {"active_sessions": len(self._sessions)})

    def shutdown(self) -> None:
        self._unschedule()
        self._save_sessions()
        logger.log_operation("capture.shutdown", "success", {"active_sessions": len(self._sessions)})

    # -------------------------------------------------------------------------
    # Configuration and scheduling
    # -------------------------------------------------------------------------

    def _schedule(self, initial_delay_ms: int) -> None:
        if self.scheduler is None:
            return
        self.scheduler.schedule(
            AUTO_CAPTURE_TASK,
            self.config.capture_interval_ms / 1000,
            self.capture_all_sessions,
            initial_delay_sec=initial_delay_ms / 1000,
        )

    def _unschedule(self) -> None:
        if self.scheduler is not None:
            self.scheduler.cancel(AUTO_CAPTURE_TASK)

    def set_config(self, **changes) -> CaptureConfig:
        """
        Update capture settings and restart the sweep under the new interval.

        The restarted sweep first runs after the warm-up delay. Disabling
        cancels the sweep; buffered sessions are kept. Lowering
        max_sessions_to_track evicts the least recently updated sessions.
        """
        unknown = set(changes) - set(CaptureConfig.__dataclass_fields__)
        if unknown:
            raise ValueError(f"Unknown capture settings: {sorted(unknown)}")

        for key, value in changes.items():
            setattr(self.config, key, value)

        if self._initialized:
            self._unschedule()
            if self.config.enabled and self.config.auto_capture:
                self._schedule(self.config.initial_capture_delay_ms)
            self._evict_least_recent()
            self._save_sessions()

        logger.log_operation("capture.set_config", "success", self.config.to_dict())
        return self.get_config()

    def get_config(self) -> CaptureConfig:
        return CaptureConfig(**self.config.to_dict())

    # -------------------------------------------------------------------------
    # Session tracking
    # -------------------------------------------------------------------------

    def register_session(self, session_id: str, initial_content: str = "", project_path: Optional[str] = None) -> None:
        """Start tracking a session, replacing any session with the same id."""
        if not self.config.enabled:
            return
        self.initialize()

        now = self._clock()
        self._sessions.pop(session_id, None)
        self._sessions[session_id] = ActiveSession(
            id=session_id,
            start_time=now,
            last_update_time=now,
            content=initial_content,
            captured=False,
            project_path=project_path,
        )
        self._evict_least_recent()
        self._save_sessions()
        logger.log_session_operation("registered", session_id, {"content_length": len(initial_content)})

    def _evict_least_recent(self) -> None:
        excess = len(self._sessions) - self.config.max_sessions_to_track
        if excess <= 0:
            return

        oldest_first = sorted(self._sessions.values(), key=lambda s: s.last_update_time)
        for session in oldest_first[:excess]:
            del self._sessions[session.id]
            logger.log_session_operation("evicted", session.id, status="skipped")

    def update_session(self, session_id: str, content: str) -> None:
        """Replace a session's buffered content; unknown ids are registered."""
        if not self.config.enabled:
            return
        self.initialize()

        session = self._sessions.get(session_id)
        if session is None:
            self.register_session(session_id, content)
            return

        session.content = content
        session.last_update_time = self._clock()

        if session.captured and len(content) > session.captured_length * RECAPTURE_GROWTH:
            session.captured = False

        self._save_sessions()

    def get_active_sessions(self) -> List[ActiveSession]:
        return list(self._sessions.values())

    def get_session(self, session_id: str) -> Optional[ActiveSession]:
        return self._sessions.get(session_id)

    # -------------------------------------------------------------------------
    # Capture
    # -------------------------------------------------------------------------

    def capture_session(self, session_id: str, metadata: Optional[Dict[str, Any]] = None) -> bool:
        """
        Commit a session's content to the store.

        Returns:
            False for an unknown id or content below ``min_content_length``

        Raises:
            StorageError: If the store cannot persist the context
        """
        self.initialize()

        session = self._sessions.get(session_id)
        if session is None:
            logger.log_session_operation("capture", session_id, {"reason": "not found"}, status="skipped")
            return False

        if len(session.content) < self.config.min_content_length:
            logger.log_session_operation("capture", session_id, {"reason": "content too short"}, status="skipped")
            return False

        context_metadata = dict(metadata or {})
        if session.project_path:
            context_metadata["projectPath"] = session.project_path
        context_metadata["sessionId"] = session.id
        context_metadata["sessionStartTime"] = session.start_time
        context_metadata["captureTime"] = self._clock()

        context = self.store.add(session.content, context_metadata)

        session.captured = True
        session.captured_length = len(session.content)
        self._save_sessions()
        logger.log_session_operation("captured", session_id, {"context_id": context.id})
        return True

    def capture_all_sessions(self) -> int:
        """
        Sweep: capture every uncaptured session that went idle or grew old.

        Returns:
            Number of sessions captured
        """
        self.initialize()
        if not self.config.enabled:
            return 0

        now = self._clock()
        captured_count = 0
        for session in list(self._sessions.values()):
            if session.captured or len(session.content) < self.config.min_content_length:
                continue

            idle = now - session.last_update_time > self.config.idle_capture_ms
            too_old = now - session.start_time > self.config.max_session_age_ms
            if not (idle or too_old):
                continue

            try:
                if self.capture_session(session.id):
                    captured_count += 1
            except Exception as e:
                logger.log_session_operation("capture", session.id, {"error": str(e)}, status="failed")

        if captured_count > 0:
            logger.log_operation("capture.sweep", "success", {"captured": captured_count})
        return captured_count

    def end_session(self, session_id: str, capture_content: bool = True) -> bool:
        """
        Stop tracking a session, capturing it first unless already captured.

        The session is removed even when the capture fails.

        Returns:
            Whether a capture happened
        """
        self.initialize()

        session = self._sessions.get(session_id)
        if session is None:
            return False

        captured = False
        try:
            if capture_content and not session.captured:
                captured = self.capture_session(session_id)
        finally:
            self._sessions.pop(session_id, None)
            self._save_sessions()

        logger.log_session_operation("ended", session_id, {"captured": captured})
        return captured

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def _save_sessions(self) -> None:
        pairs = [[session_id, session.to_dict()] for session_id, session in self._sessions.items()]
        tmp_path = None
        try:
            self.sessions_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self.sessions_dir, prefix=".sessions-", suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(pairs, f)
            os.replace(tmp_path, self.sessions_file)
        except (OSError, TypeError, ValueError) as e:
            if tmp_path and os.path.exists(tmp_path):
                os.unlink(tmp_path)
            logger.log_operation("capture.save_sessions", "failed", {"error": str(e)})

    def _load_sessions(self) -> Dict[str, ActiveSession]:
        if not self.sessions_file.exists():
            return {}

        try:
            with open(self.sessions_file, "r", encoding="utf-8") as f:
                pairs = json.load(f)
            sessions = {str(session_id): ActiveSession.from_dict(data) for session_id, data in pairs}
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.log_operation("capture.load_sessions", "failed", {"error": str(e)})
            return {}

        logger.log_operation("capture.load_sessions", "success", {"loaded": len(sessions)})
        return sessions

"""
Conversation session tracking on top of the capture service.
"""

import os
from typing import List, Optional

from .capture import ContextCaptureService
from .schema import now_ms
from ..util.logging import logger


class SessionManager:
    """Keeps one current conversation and mirrors its transcript into a capture session."""

    def __init__(self, capture_service: ContextCaptureService, project_path: Optional[str] = None):
        self.capture_service = capture_service
        self.project_path = project_path if project_path is not None else os.getcwd()
        self._current_session_id: Optional[str] = None
        self._conversation_buffer: List[str] = []
        self._last_session_stamp = 0

    @property
    def current_session_id(self) -> Optional[str]:
        return self._current_session_id

    def initialize(self) -> None:
        self.capture_service.initialize()
        logger.info("Session manager initialized")

    def start_new_session(self) -> str:
        """Begin a new conversation with an empty transcript."""
        stamp = max(now_ms(), self._last_session_stamp + 1)
        self._last_session_stamp = stamp

        session_id = f"session_{stamp}"
        self._current_session_id = session_id
        self._conversation_buffer = []
        self.capture_service.register_session(session_id, "", self.project_path)

        logger.log_session_operation("started", session_id)
        return session_id

    def add_to_conversation(self, user_message: str, assistant_message: str) -> None:
        """Append one exchange and push the full transcript to the capture service."""
        if self._current_session_id is None:
            self.start_new_session()

        self._conversation_buffer.append(
            f"User: {user_message}\n\nAssistant: {assistant_message}\n\n---\n\n"
        )
        self.capture_service.update_session(self._current_session_id, "".join(self._conversation_buffer))

    def end_session(self) -> bool:
        """
        End the current conversation, capturing its transcript.

        Returns:
            False when no conversation is in progress, True otherwise
        """
        if self._current_session_id is None:
            return False

        session_id = self._current_session_id
        try:
            self.capture_service.end_session(session_id, capture_content=True)
        finally:
            self._current_session_id = None
            self._conversation_buffer = []

        logger.log_session_operation("closed", session_id)
        return True

    def get_conversation_buffer(self) -> List[str]:
        return list(self._conversation_buffer)

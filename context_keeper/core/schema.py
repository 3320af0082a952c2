"""
Records persisted by the store, the backup manager and the capture service.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

PRIORITIES = ["low", "medium", "high", "critical"]


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


@dataclass
class Context:
    """A persisted unit of content with metadata and an optional embedding."""
    id: str
    content: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    embedding: Optional[List[float]] = None

    @property
    def updated(self) -> int:
        """Recency key: updated, then timestamp, then created."""
        for key in ("updated", "timestamp", "created"):
            value = self.metadata.get(key)
            if isinstance(value, (int, float)):
                return int(value)
        return 0

    @property
    def tags(self) -> List[str]:
        return list(self.metadata.get("tags") or [])

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the JSON form written to disk and into backups."""
        data = {
            "id": self.id,
            "content": self.content,
            "metadata": self.metadata,
        }
        if self.embedding is not None:
            data["embedding"] = list(self.embedding)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Context':
        """Create a Context from its JSON form.

        Older records kept ``timestamp`` beside ``metadata``; it is folded in.
        """
        metadata = dict(data.get("metadata") or {})
        if "timestamp" in data and "timestamp" not in metadata:
            metadata["timestamp"] = data["timestamp"]

        embedding = data.get("embedding")
        return cls(
            id=str(data["id"]),
            content=data.get("content", ""),
            metadata=metadata,
            embedding=list(embedding) if embedding else None,
        )


@dataclass
class ActiveSession:
    """A buffered, not-yet-committed unit of conversation content."""
    id: str
    start_time: int
    last_update_time: int
    content: str = ""
    captured: bool = False
    project_path: Optional[str] = None
    # Content length when last captured
    captured_length: int = 0

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "startTime": self.start_time,
            "lastUpdateTime": self.last_update_time,
            "content": self.content,
            "captured": self.captured,
            "capturedLength": self.captured_length,
        }
        if self.project_path is not None:
            data["projectPath"] = self.project_path
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ActiveSession':
        return cls(
            id=str(data["id"]),
            start_time=int(data["startTime"]),
            last_update_time=int(data["lastUpdateTime"]),
            content=data.get("content", ""),
            captured=bool(data.get("captured", False)),
            project_path=data.get("projectPath"),
            captured_length=int(data.get("capturedLength", 0)),
        )


@dataclass
class BackupMetadata:
    """Listing entry for one backup file."""
    timestamp: int
    context_count: int
    version: str
    filename: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Metadata block as embedded in the backup file (no filename)."""
        return {
            "timestamp": self.timestamp,
            "contextCount": self.context_count,
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], filename: Optional[str] = None) -> 'BackupMetadata':
        return cls(
            timestamp=int(data["timestamp"]),
            context_count=int(data["contextCount"]),
            version=str(data["version"]),
            filename=filename,
        )

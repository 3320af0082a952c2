"""
Request models validated at the service boundary.
"""

from pydantic import BaseModel, field_validator, ConfigDict
from typing import Optional, List, Dict, Any

from ..core.schema import PRIORITIES


def _validate_metadata(metadata: Dict[str, Any]) -> Dict[str, Any]:
    """Normalise recognised metadata keys; other keys pass through untouched."""
    metadata = dict(metadata)

    if "tags" in metadata:
        tags = metadata["tags"]
        if not isinstance(tags, (list, tuple, set)) or not all(isinstance(t, str) for t in tags):
            raise ValueError('tags must be a list of strings')
        # Tags behave as a set; keep first-seen order
        metadata["tags"] = list(dict.fromkeys(tags))

    if "priority" in metadata and metadata["priority"] not in PRIORITIES:
        raise ValueError(f'priority must be one of: {PRIORITIES}')

    if "project" in metadata and not isinstance(metadata["project"], str):
        raise ValueError('project must be a string')

    for key in ("timestamp", "created", "updated"):
        value = metadata.get(key)
        if value is not None and (isinstance(value, bool) or not isinstance(value, int) or value < 0):
            raise ValueError(f'{key} must be a non-negative epoch milliseconds integer')

    return metadata


class ContextCreateRequest(BaseModel):
    content: str
    metadata: Dict[str, Any] = {}

    @field_validator('content')
    @classmethod
    def content_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('content cannot be empty')
        return v

    @field_validator('metadata')
    @classmethod
    def metadata_must_be_valid(cls, v):
        return _validate_metadata(v)


class ContextUpdateRequest(BaseModel):
    content: str
    metadata: Optional[Dict[str, Any]] = None

    @field_validator('content')
    @classmethod
    def content_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('content cannot be empty')
        return v

    @field_validator('metadata')
    @classmethod
    def metadata_must_be_valid(cls, v):
        if v is None:
            return v
        return _validate_metadata(v)


class SearchRequest(BaseModel):
    query_text: Optional[str] = None
    tags: List[str] = []
    limit: int = 10

    @field_validator('tags')
    @classmethod
    def tags_are_unique(cls, v):
        return list(dict.fromkeys(v))

    @field_validator('limit')
    @classmethod
    def limit_must_be_positive(cls, v):
        if v < 1:
            raise ValueError('limit must be >= 1')
        return v


class BackupConfigRequest(BaseModel):
    model_config = ConfigDict(extra='forbid')

    auto_backup_enabled: Optional[bool] = None
    backup_frequency_ms: Optional[int] = None
    retention_period_days: Optional[float] = None

    @field_validator('backup_frequency_ms')
    @classmethod
    def frequency_must_be_reasonable(cls, v):
        if v is not None and v < 1000:
            raise ValueError('backup_frequency_ms must be >= 1000')
        return v

    @field_validator('retention_period_days')
    @classmethod
    def retention_must_be_positive(cls, v):
        if v is not None and v <= 0:
            raise ValueError('retention_period_days must be > 0')
        return v

    def changes(self) -> Dict[str, Any]:
        """Only the settings the caller supplied."""
        return self.model_dump(exclude_none=True)

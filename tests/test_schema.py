"""
Tests for persisted record shapes.
"""

from context_keeper.core.schema import ActiveSession, BackupMetadata, Context


class TestContext:
    """Context JSON form and derived fields."""

    def test_to_dict_omits_missing_embedding(self):
        """Contexts without an embedding serialize without the key."""
        data = Context(id="1", content="c", metadata={"tags": ["a"]}).to_dict()
        assert data == {"id": "1", "content": "c", "metadata": {"tags": ["a"]}}

    def test_from_dict_folds_top_level_timestamp(self):
        """A top-level timestamp moves into metadata."""
        context = Context.from_dict({"id": 42, "content": "c", "timestamp": 1000, "metadata": {}})
        assert context.id == "42"
        assert context.metadata["timestamp"] == 1000

    def test_updated_falls_back(self):
        """Recency uses updated, then timestamp, then created."""
        assert Context(id="a", content="", metadata={"updated": 3, "timestamp": 2}).updated == 3
        assert Context(id="b", content="", metadata={"timestamp": 2, "created": 1}).updated == 2
        assert Context(id="c", content="", metadata={"created": 1}).updated == 1
        assert Context(id="d", content="").updated == 0

    def test_tags_default_empty(self):
        """Missing tags read as an empty list."""
        assert Context(id="a", content="").tags == []


class TestActiveSession:
    """Session JSON form uses camelCase keys."""

    def test_camel_case_keys(self):
        """Keys match the session file format."""
        data = ActiveSession(id="s1", start_time=1, last_update_time=2, content="x", project_path="/p").to_dict()
        assert data == {
            "id": "s1",
            "startTime": 1,
            "lastUpdateTime": 2,
            "content": "x",
            "captured": False,
            "capturedLength": 0,
            "projectPath": "/p",
        }

    def test_from_dict_without_project(self):
        """projectPath is optional."""
        session = ActiveSession.from_dict({"id": "s1", "startTime": 1, "lastUpdateTime": 2, "content": "", "captured": True})
        assert session.project_path is None
        assert session.captured is True
        assert session.captured_length == 0


def test_backup_metadata_excludes_filename():
    """The embedded metadata block has no filename."""
    metadata = BackupMetadata(timestamp=5, context_count=2, version="1.0.0", filename="backup-5.json")
    assert metadata.to_dict() == {"timestamp": 5, "contextCount": 2, "version": "1.0.0"}
    assert BackupMetadata.from_dict(metadata.to_dict(), filename="backup-5.json") == metadata

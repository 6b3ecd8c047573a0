"""
Tests for Session Storage
=========================

Tests for todoforge/storage.py
"""

import json

import pytest

from todoforge.errors import FileSystemError
from todoforge.models import (
    Action,
    ActionChanges,
    ActionExecution,
    ActionMetadata,
    ActionStatus,
    ActionType,
    RiskLevel,
    Session,
    SessionConfig,
    SessionStatus,
    TodoItem,
    utc_now,
)
from todoforge.storage import SessionStorage, StaleSessionError


def make_action(session_id: str) -> Action:
    todo = TodoItem(id="todo-1", file_path="/w/a.ts", line=1, column=1, content="add comment")
    return Action(
        id="action-1",
        session_id=session_id,
        timestamp=utc_now(),
        type=ActionType.ADD_COMMENT,
        status=ActionStatus.PENDING,
        description="Add Comment",
        file_path=todo.file_path,
        line_number=1,
        todo=todo,
        execution=ActionExecution(),
        changes=ActionChanges(file_path=todo.file_path),
        metadata=ActionMetadata("add comment", "add-comment", 0.9, RiskLevel.LOW),
    )


@pytest.fixture
def storage(tmp_path):
    return SessionStorage(str(tmp_path))


class TestSessionStorage:
    """Tests for SessionStorage."""

    def test_create_and_get(self, storage, tmp_path):
        session = storage.create_session(SessionConfig(max_actions=3))

        path = tmp_path / ".todoforge" / "sessions" / f"{session.id}.json"
        assert path.exists()
        assert json.loads(path.read_text(encoding="utf-8"))["config"]["maxActions"] == 3

        loaded = storage.get_session(session.id)
        assert loaded == session
        assert loaded.workspace_path == str(tmp_path)

    def test_get_missing(self, storage):
        assert storage.get_session("nope") is None

    def test_add_action_and_complete(self, storage):
        session = storage.create_session()
        action = make_action(session_id=session.id)

        updated = storage.add_action(session.id, action)
        assert updated.version == session.version + 1
        assert storage.get_session(session.id).get_action(action.id) == action

        finished = storage.complete_session(session.id, SessionStatus.COMPLETED, "done")
        stored = storage.get_session(session.id)
        assert stored.status == SessionStatus.COMPLETED
        assert stored.end_time is not None
        assert stored.message == "done"
        assert stored.version == finished.version

    def test_stale_snapshot_refused(self, storage):
        session = storage.create_session()
        storage.add_action(session.id, make_action(session_id=session.id))

        with pytest.raises(StaleSessionError):
            storage.save_session(session)

    def test_same_version_can_be_rewritten(self, storage):
        session = storage.create_session()
        assert storage.save_session(session) is session

    def test_no_temp_files_left(self, storage, tmp_path):
        session = storage.create_session()
        names = [p.name for p in (tmp_path / ".todoforge" / "sessions").iterdir()]
        assert names == [f"{session.id}.json"]

    def test_missing_session_operations(self, storage):
        with pytest.raises(FileSystemError):
            storage.add_action("nope", make_action(session_id="nope"))
        with pytest.raises(FileSystemError):
            storage.complete_session("nope")

    def test_list_newest_first(self, storage, tmp_path):
        storage.save_session(Session(id="old", start_time="2024-01-01T00:00:00+00:00", workspace_path=str(tmp_path)))
        storage.save_session(Session(id="new", start_time="2024-06-01T00:00:00+00:00", workspace_path=str(tmp_path)))
        (tmp_path / ".todoforge" / "sessions" / "junk.json").write_text("{", encoding="utf-8")

        assert [s.id for s in storage.list_sessions()] == ["new", "old"]

    def test_list_without_directory(self, storage):
        assert storage.list_sessions() == []

    def test_delete(self, storage):
        session = storage.create_session()

        assert storage.delete_session(session.id)
        assert storage.get_session(session.id) is None
        assert not storage.delete_session(session.id)

    def test_absolute_sessions_dir(self, tmp_path):
        target = tmp_path / "elsewhere"
        storage = SessionStorage(str(tmp_path / "ws"), sessions_dir=str(target))
        session = storage.create_session()

        assert (target / f"{session.id}.json").exists()

"""
Session Storage
===============

Persists sessions as one JSON document per session under
``.todoforge/sessions/<session id>.json``.

Every save writes the whole snapshot through a temporary file and an atomic
rename, so a crash mid-write leaves the previous snapshot intact. A snapshot
whose ``version`` is older than the stored one is refused: the stored document
only moves forward.
"""

import json
import logging
import os
import uuid
from pathlib import Path
from typing import List, Optional

from todoforge.errors import FileSystemError
from todoforge.models import Action, Session, SessionConfig, SessionStatus, utc_now

logger = logging.getLogger(__name__)


class StaleSessionError(FileSystemError):
    """A save was attempted with an older snapshot than the one on disk."""


class SessionStorage:
    """
    JSON-file session persistence.

    Args:
        workspace: Workspace root
        sessions_dir: Directory for session documents, relative to the workspace
    """

    def __init__(self, workspace: str, sessions_dir: str = ".todoforge/sessions"):
        self.workspace = Path(workspace)
        self.sessions_dir = Path(sessions_dir)
        if not self.sessions_dir.is_absolute():
            self.sessions_dir = self.workspace / self.sessions_dir

    def _path(self, session_id: str) -> Path:
        return self.sessions_dir / f"{session_id}.json"

    def create_session(self, config: Optional[SessionConfig] = None, workspace_path: Optional[str] = None) -> Session:
        session = Session(
            id=str(uuid.uuid4()),
            start_time=utc_now(),
            workspace_path=str(workspace_path or self.workspace),
            config=config or SessionConfig(),
        )
        self.save_session(session)
        logger.info("Session created: %s", session.id)
        return session

    def get_session(self, session_id: str) -> Optional[Session]:
        path = self._path(session_id)
        if not path.exists():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise FileSystemError(f"Cannot read session {session_id}: {e}", path=str(path)) from e
        return Session.from_dict(data)

    def save_session(self, session: Session) -> Session:
        """
        Write ``session`` to disk.

        Raises:
            StaleSessionError: if the stored document has a newer version
            FileSystemError: if the document cannot be written
        """
        path = self._path(session.id)
        stored = self.get_session(session.id)
        if stored is not None and stored.version > session.version:
            raise StaleSessionError(
                f"Session {session.id}: refusing to overwrite version {stored.version} "
                f"with version {session.version}",
                path=str(path),
            )

        tmp = path.with_name(f".{path.name}.tmp-{os.getpid()}")
        try:
            self.sessions_dir.mkdir(parents=True, exist_ok=True)
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(session.to_dict(), f, indent=2)
            os.replace(tmp, path)
        except OSError as e:
            tmp.unlink(missing_ok=True)
            raise FileSystemError(f"Cannot save session {session.id}: {e}", path=str(path)) from e
        return session

    def add_action(self, session_id: str, action: Action) -> Session:
        session = self._require(session_id)
        return self.save_session(session.with_action(action))

    def complete_session(
        self,
        session_id: str,
        status: SessionStatus = SessionStatus.COMPLETED,
        message: Optional[str] = None,
    ) -> Session:
        session = self._require(session_id)
        session = self.save_session(session.with_status(status, message))
        logger.info("Session %s: %s", status.value, session_id)
        return session

    def list_sessions(self) -> List[Session]:
        """All stored sessions, newest first. Unreadable documents are skipped."""
        if not self.sessions_dir.exists():
            return []
        sessions = []
        for path in self.sessions_dir.glob("*.json"):
            try:
                sessions.append(Session.from_dict(json.loads(path.read_text(encoding="utf-8"))))
            except (OSError, ValueError, KeyError) as e:
                logger.warning("Skipping unreadable session file %s: %s", path, e)
        return sorted(sessions, key=lambda s: s.start_time, reverse=True)

    def delete_session(self, session_id: str) -> bool:
        path = self._path(session_id)
        if not path.exists():
            return False
        try:
            path.unlink()
        except OSError as e:
            raise FileSystemError(f"Cannot delete session {session_id}: {e}", path=str(path)) from e
        return True

    def _require(self, session_id: str) -> Session:
        session = self.get_session(session_id)
        if session is None:
            raise FileSystemError(f"Session not found: {session_id}", path=str(self._path(session_id)))
        return session

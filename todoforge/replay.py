"""
Action Replay
=============

Records every action of a session together with the content of the file it
touched, before and after execution, so a run can be inspected step by step
afterwards.

Recordings are stored in the workspace database (``.todoforge/project.db``).
Only the most recent ``max_steps`` steps of a session are kept.

Usage:
    replay = ReplayService(workspace)
    await replay.start_recording(session.id)
    await replay.record_step(action)
    ...
    await replay.update_step_after_execution(action.id, session.id, action)
    await replay.stop_recording(session.id)

    comparison = await replay.compare_file_states(session.id, 1)
"""

import difflib
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.orm import selectinload

from todoforge.actions import count_line_changes
from todoforge.db import ProjectDatabase, ReplaySessionModel, ReplayStepModel
from todoforge.errors import FileSystemError
from todoforge.file_ops import FileOps
from todoforge.models import Action, ActionStatus

logger = logging.getLogger(__name__)

MAX_STEPS = 100


@dataclass
class ReplayStep:
    step_number: int
    action: Action
    file_state_before: str
    file_state_after: Optional[str]
    working_directory: str
    recorded_at: Optional[datetime] = None


@dataclass
class ReplayRecording:
    session_id: str
    status: str
    total_steps: int
    start_time: Optional[datetime]
    end_time: Optional[datetime]
    steps: List[ReplayStep] = field(default_factory=list)


@dataclass
class StepSummary:
    step_number: int
    action_type: str
    description: str
    status: str
    duration_ms: Optional[int]
    file_modified: str
    success: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stepNumber": self.step_number,
            "actionType": self.action_type,
            "description": self.description,
            "status": self.status,
            "duration": self.duration_ms,
            "fileModified": self.file_modified,
            "success": self.success,
        }


@dataclass
class FileStateComparison:
    """Unified diff of the file a step touched, before against after execution."""
    step_number: int
    file_path: str
    diff: str
    lines_added: int
    lines_removed: int
    after_recorded: bool

    @property
    def changed(self) -> bool:
        return bool(self.diff)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ReplayService:
    """
    Records and reads back action replays.

    Args:
        workspace: Workspace root, home of the database
        database: Shared database handle (one is created if omitted)
        max_steps: Steps kept per recording; older ones are dropped
        include_file_states: Capture the file after execution as well
    """

    def __init__(
        self,
        workspace: Path,
        database: Optional[ProjectDatabase] = None,
        max_steps: int = MAX_STEPS,
        include_file_states: bool = True,
    ):
        self.workspace = Path(workspace)
        self.database = database or ProjectDatabase(self.workspace)
        self.max_steps = max_steps
        self.include_file_states = include_file_states

    async def _ready(self) -> ProjectDatabase:
        return await self.database.init()

    async def close(self) -> None:
        await self.database.dispose()

    @staticmethod
    def _capture_file_state(file_path: str) -> str:
        try:
            return FileOps.read_text(file_path)
        except FileSystemError as e:
            logger.debug("Could not capture %s: %s", file_path, e)
            return ""

    async def _find(self, db_session, session_id: str) -> Optional[ReplaySessionModel]:
        result = await db_session.execute(
            select(ReplaySessionModel).where(ReplaySessionModel.session_id == session_id)
        )
        return result.scalar_one_or_none()

    # =========================================================================
    # Recording
    # =========================================================================

    async def start_recording(self, session_id: str) -> None:
        db = await self._ready()
        async with db.session() as db_session:
            recording = await self._find(db_session, session_id)
            if recording is None:
                db_session.add(ReplaySessionModel(session_id=session_id, start_time=_utc_now()))
            else:
                recording.status = "recording"
                recording.end_time = None
            await db_session.commit()
        logger.info("Started recording replay for session %s", session_id)

    async def record_step(self, action: Action) -> Optional[int]:
        """
        Record ``action`` with the current content of its file.

        Returns:
            The step number, or None if the session is not being recorded
        """
        db = await self._ready()
        async with db.session() as db_session:
            recording = await self._find(db_session, action.session_id)
            if recording is None or recording.status != "recording":
                logger.warning("No active replay recording for session %s", action.session_id)
                return None

            step_number = recording.total_steps + 1
            db_session.add(ReplayStepModel(
                replay_session_id=recording.id,
                step_number=step_number,
                action_id=action.id,
                action=action.to_dict(),
                file_state_before=self._capture_file_state(action.file_path),
                working_directory=str(Path(action.file_path).parent),
                recorded_at=_utc_now(),
            ))
            recording.total_steps = step_number
            await db_session.flush()

            kept = await db_session.scalar(
                select(func.count(ReplayStepModel.id)).where(ReplayStepModel.replay_session_id == recording.id)
            )
            if kept > self.max_steps:
                oldest = (
                    select(ReplayStepModel.id)
                    .where(ReplayStepModel.replay_session_id == recording.id)
                    .order_by(ReplayStepModel.step_number)
                    .limit(kept - self.max_steps)
                )
                await db_session.execute(delete(ReplayStepModel).where(ReplayStepModel.id.in_(oldest)))
            await db_session.commit()

        logger.debug("Recorded step %d for session %s", step_number, action.session_id)
        return step_number

    async def update_step_after_execution(
        self,
        action_id: str,
        session_id: str,
        action: Optional[Action] = None,
    ) -> bool:
        """Attach the post-execution file state (and final action) to a recorded step."""
        db = await self._ready()
        async with db.session() as db_session:
            recording = await self._find(db_session, session_id)
            if recording is None:
                return False
            result = await db_session.execute(
                select(ReplayStepModel)
                .where(ReplayStepModel.replay_session_id == recording.id)
                .where(ReplayStepModel.action_id == action_id)
                .order_by(ReplayStepModel.step_number.desc())
            )
            step = result.scalars().first()
            if step is None:
                logger.warning("Replay step not found for action %s", action_id)
                return False
            if action is not None:
                step.action = action.to_dict()
            if self.include_file_states:
                step.file_state_after = self._capture_file_state(step.action["filePath"])
            await db_session.commit()
        return True

    async def stop_recording(self, session_id: str, status: str = "completed") -> bool:
        db = await self._ready()
        async with db.session() as db_session:
            recording = await self._find(db_session, session_id)
            if recording is None:
                logger.warning("No replay recording for session %s", session_id)
                return False
            recording.status = status
            recording.end_time = _utc_now()
            await db_session.commit()
        logger.info("Stopped recording replay for session %s", session_id)
        return True

    # =========================================================================
    # Reading
    # =========================================================================

    async def get_replay_session(self, session_id: str) -> Optional[ReplayRecording]:
        db = await self._ready()
        async with db.session() as db_session:
            result = await db_session.execute(
                select(ReplaySessionModel)
                .options(selectinload(ReplaySessionModel.steps))
                .where(ReplaySessionModel.session_id == session_id)
            )
            recording = result.scalar_one_or_none()
            if recording is None:
                return None
            return ReplayRecording(
                session_id=recording.session_id,
                status=recording.status,
                total_steps=recording.total_steps,
                start_time=recording.start_time,
                end_time=recording.end_time,
                steps=[
                    ReplayStep(
                        step_number=step.step_number,
                        action=Action.from_dict(step.action),
                        file_state_before=step.file_state_before,
                        file_state_after=step.file_state_after,
                        working_directory=step.working_directory,
                        recorded_at=step.recorded_at,
                    )
                    for step in recording.steps
                ],
            )

    async def list_replay_sessions(self) -> List[str]:
        """Recorded session ids, newest first."""
        db = await self._ready()
        async with db.session() as db_session:
            result = await db_session.execute(
                select(ReplaySessionModel.session_id).order_by(ReplaySessionModel.start_time.desc())
            )
            return list(result.scalars().all())

    async def get_step_breakdown(self, session_id: str) -> Optional[List[StepSummary]]:
        recording = await self.get_replay_session(session_id)
        if recording is None:
            return None
        return [
            StepSummary(
                step_number=step.step_number,
                action_type=step.action.type.value,
                description=step.action.description,
                status=step.action.status.value,
                duration_ms=step.action.execution.duration_ms,
                file_modified=step.action.file_path,
                success=step.action.status == ActionStatus.COMPLETED,
            )
            for step in recording.steps
        ]

    async def get_step(self, session_id: str, step_number: int) -> Optional[ReplayStep]:
        db = await self._ready()
        async with db.session() as db_session:
            result = await db_session.execute(
                select(ReplayStepModel)
                .join(ReplaySessionModel)
                .where(ReplaySessionModel.session_id == session_id)
                .where(ReplayStepModel.step_number == step_number)
            )
            step = result.scalar_one_or_none()
            if step is None:
                logger.warning("Step %d not found in replay of session %s", step_number, session_id)
                return None
            return ReplayStep(
                step_number=step.step_number,
                action=Action.from_dict(step.action),
                file_state_before=step.file_state_before,
                file_state_after=step.file_state_after,
                working_directory=step.working_directory,
                recorded_at=step.recorded_at,
            )

    async def compare_file_states(self, session_id: str, step_number: int) -> Optional[FileStateComparison]:
        """
        Diff the recorded file content around one step.

        A step whose after-state was never captured (failed action, or file
        states disabled) yields an empty diff with ``after_recorded`` False.

        Returns:
            The comparison, or None if the step is not recorded
        """
        step = await self.get_step(session_id, step_number)
        if step is None:
            return None

        file_path = step.action.file_path
        if step.file_state_after is None:
            return FileStateComparison(step.step_number, file_path, "", 0, 0, after_recorded=False)

        before, after = step.file_state_before, step.file_state_after
        diff = "".join(difflib.unified_diff(
            before.splitlines(keepends=True),
            after.splitlines(keepends=True),
            fromfile=f"{file_path} (before)",
            tofile=f"{file_path} (after)",
        ))
        added, removed = count_line_changes(before, after)
        return FileStateComparison(step.step_number, file_path, diff, added, removed, after_recorded=True)

    async def cleanup_old_replays(self, days: int = 7) -> int:
        """Delete recordings started more than ``days`` days ago; returns how many."""
        cutoff = _utc_now() - timedelta(days=days)
        db = await self._ready()
        async with db.session() as db_session:
            result = await db_session.execute(
                select(ReplaySessionModel.id).where(ReplaySessionModel.start_time < cutoff)
            )
            stale = list(result.scalars().all())
            if stale:
                await db_session.execute(delete(ReplayStepModel).where(ReplayStepModel.replay_session_id.in_(stale)))
                await db_session.execute(delete(ReplaySessionModel).where(ReplaySessionModel.id.in_(stale)))
                await db_session.commit()
        logger.info("Cleaned up %d old replay recordings", len(stale))
        return len(stale)

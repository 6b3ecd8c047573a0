"""
Core Data Model
===============

TODO items, actions and sessions.

Every record here is an immutable value. Mutating operations (``Action.transition``,
``Session.with_action`` ...) return a new instance, which lets the session loop
persist a fresh snapshot after every change without worrying about who else is
holding a reference to the previous one.

JSON documents use camelCase keys, the same shape the session files on disk have.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


def utc_now() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value)


# =============================================================================
# Enumerations
# =============================================================================

class TodoType(str, Enum):
    TODO = "TODO"
    FIXME = "FIXME"
    HACK = "HACK"
    NOTE = "NOTE"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ActionType(str, Enum):
    """Kinds of source transformation the loop knows how to perform."""
    ADD_COMMENT = "add_comment"
    FIX_FORMATTING = "fix_formatting"
    UPDATE_DOCUMENTATION = "update_documentation"
    RENAME_VARIABLE = "rename_variable"
    IMPLEMENT_FUNCTION = "implement_function"
    ADD_IMPORT = "add_import"
    REMOVE_UNUSED_IMPORTS = "remove_unused_imports"
    REMOVE_UNUSED_VARIABLES = "remove_unused_variables"


class ActionStatus(str, Enum):
    PENDING = "pending"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"
    REQUIRES_APPROVAL = "requires_approval"


TERMINAL_STATUSES = frozenset({ActionStatus.COMPLETED, ActionStatus.FAILED, ActionStatus.SKIPPED})

_ALLOWED_TRANSITIONS = {
    ActionStatus.PENDING: {ActionStatus.EXECUTING, ActionStatus.REQUIRES_APPROVAL, ActionStatus.SKIPPED},
    ActionStatus.REQUIRES_APPROVAL: {ActionStatus.EXECUTING, ActionStatus.SKIPPED},
    ActionStatus.EXECUTING: {ActionStatus.COMPLETED, ActionStatus.FAILED},
}


class SessionStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"
    PAUSED = "paused"
    CANCELLED = "cancelled"


# =============================================================================
# TODO items
# =============================================================================

@dataclass(frozen=True)
class TodoItem:
    """One actionable comment found by the scanner."""
    id: str
    file_path: str
    line: int
    column: int
    content: str
    type: TodoType = TodoType.TODO
    confidence: float = 0.5
    context_before: Tuple[str, ...] = ()
    context_after: Tuple[str, ...] = ()

    @property
    def key(self) -> Tuple[str, str, str]:
        """Identity of the TODO independent of its current line number."""
        return (self.file_path, self.type.value, self.content)

    def moved_to(self, line: int) -> "TodoItem":
        return replace(self, line=line)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "filePath": self.file_path,
            "line": self.line,
            "column": self.column,
            "content": self.content,
            "type": self.type.value,
            "confidence": self.confidence,
            "context": {
                "before": list(self.context_before),
                "after": list(self.context_after),
            },
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TodoItem":
        context = data.get("context") or {}
        return cls(
            id=data["id"],
            file_path=data["filePath"],
            line=int(data["line"]),
            column=int(data.get("column", 0)),
            content=data["content"],
            type=TodoType(data.get("type", "TODO")),
            confidence=float(data.get("confidence", 0.5)),
            context_before=tuple(context.get("before", [])),
            context_after=tuple(context.get("after", [])),
        )


# =============================================================================
# Actions
# =============================================================================

@dataclass(frozen=True)
class ActionExecution:
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    duration_ms: Optional[int] = None
    output: str = ""
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "startTime": self.start_time,
            "endTime": self.end_time,
            "duration": self.duration_ms,
            "output": self.output,
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ActionExecution":
        return cls(
            start_time=data.get("startTime"),
            end_time=data.get("endTime"),
            duration_ms=data.get("duration"),
            output=data.get("output", ""),
            error=data.get("error"),
        )


@dataclass(frozen=True)
class ActionChanges:
    file_path: str
    before_checksum: str = ""
    after_checksum: Optional[str] = None
    backup_path: Optional[str] = None
    lines_added: int = 0
    lines_removed: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "filePath": self.file_path,
            "beforeChecksum": self.before_checksum,
            "afterChecksum": self.after_checksum,
            "backupPath": self.backup_path,
            "linesAdded": self.lines_added,
            "linesRemoved": self.lines_removed,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ActionChanges":
        return cls(
            file_path=data["filePath"],
            before_checksum=data.get("beforeChecksum", ""),
            after_checksum=data.get("afterChecksum"),
            backup_path=data.get("backupPath"),
            lines_added=int(data.get("linesAdded", 0)),
            lines_removed=int(data.get("linesRemoved", 0)),
        )


@dataclass(frozen=True)
class ActionMetadata:
    todo_text: str
    pattern_id: str
    confidence: float
    risk_level: RiskLevel
    requires_approval: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "todoText": self.todo_text,
            "patternId": self.pattern_id,
            "confidence": self.confidence,
            "riskLevel": self.risk_level.value,
            "requiresApproval": self.requires_approval,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ActionMetadata":
        return cls(
            todo_text=data.get("todoText", ""),
            pattern_id=data.get("patternId", ""),
            confidence=float(data.get("confidence", 0.0)),
            risk_level=RiskLevel(data.get("riskLevel", "low")),
            requires_approval=bool(data.get("requiresApproval", False)),
        )


class InvalidTransitionError(ValueError):
    """Raised when an action is moved to a status it cannot reach."""


@dataclass(frozen=True)
class Action:
    """A proposed or executed transformation for one TODO."""
    id: str
    session_id: str
    timestamp: str
    type: ActionType
    status: ActionStatus
    description: str
    file_path: str
    line_number: int
    todo: TodoItem
    execution: ActionExecution
    changes: ActionChanges
    metadata: ActionMetadata

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def transition(self, status: ActionStatus, **updates: Any) -> "Action":
        """
        Move the action to ``status``.

        Status only moves forward (pending -> executing -> terminal); a terminal
        action is immutable. Extra keyword arguments replace other fields.
        """
        if status not in _ALLOWED_TRANSITIONS.get(self.status, set()):
            raise InvalidTransitionError(
                f"Action {self.id}: cannot move from {self.status.value} to {status.value}"
            )
        return replace(self, status=status, **updates)

    def start(self, before_checksum: str, backup_path: Optional[str] = None) -> "Action":
        return self.transition(
            ActionStatus.EXECUTING,
            execution=replace(self.execution, start_time=utc_now()),
            changes=replace(self.changes, before_checksum=before_checksum, backup_path=backup_path),
        )

    def complete(
        self,
        output: str,
        after_checksum: Optional[str],
        lines_added: int = 0,
        lines_removed: int = 0,
    ) -> "Action":
        return self.transition(
            ActionStatus.COMPLETED,
            execution=self._finished_execution(output=output),
            changes=replace(
                self.changes,
                after_checksum=after_checksum,
                lines_added=lines_added,
                lines_removed=lines_removed,
            ),
        )

    def fail(self, error: str) -> "Action":
        return self.transition(ActionStatus.FAILED, execution=self._finished_execution(error=error))

    def require_approval(self) -> "Action":
        return self.transition(
            ActionStatus.REQUIRES_APPROVAL,
            metadata=replace(self.metadata, requires_approval=True),
        )

    def skip(self, reason: str) -> "Action":
        return self.transition(ActionStatus.SKIPPED, execution=replace(self.execution, output=reason))

    def _finished_execution(self, **updates: Any) -> ActionExecution:
        end = datetime.now(timezone.utc)
        start = _parse_time(self.execution.start_time)
        duration = int((end - start).total_seconds() * 1000) if start else None
        return replace(self.execution, end_time=end.isoformat(), duration_ms=duration, **updates)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "sessionId": self.session_id,
            "timestamp": self.timestamp,
            "type": self.type.value,
            "status": self.status.value,
            "description": self.description,
            "filePath": self.file_path,
            "lineNumber": self.line_number,
            "todo": self.todo.to_dict(),
            "execution": self.execution.to_dict(),
            "changes": self.changes.to_dict(),
            "metadata": self.metadata.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Action":
        return cls(
            id=data["id"],
            session_id=data["sessionId"],
            timestamp=data["timestamp"],
            type=ActionType(data["type"]),
            status=ActionStatus(data["status"]),
            description=data.get("description", ""),
            file_path=data["filePath"],
            line_number=int(data["lineNumber"]),
            todo=TodoItem.from_dict(data["todo"]),
            execution=ActionExecution.from_dict(data.get("execution") or {}),
            changes=ActionChanges.from_dict(data["changes"]),
            metadata=ActionMetadata.from_dict(data.get("metadata") or {}),
        )


# =============================================================================
# Sessions
# =============================================================================

@dataclass(frozen=True)
class SessionConfig:
    """The slice of configuration a session is bound to when it starts."""
    max_actions: int = 5
    timeout_minutes: int = 60
    safety_threshold: float = 0.7
    auto_approve_threshold: float = 0.7
    enable_backups: bool = True
    enabled_patterns: Tuple[str, ...] = ()
    disabled_patterns: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "maxActions": self.max_actions,
            "timeoutMinutes": self.timeout_minutes,
            "safetyThreshold": self.safety_threshold,
            "autoApproveThreshold": self.auto_approve_threshold,
            "enableBackups": self.enable_backups,
            "enabledPatterns": list(self.enabled_patterns),
            "disabledPatterns": list(self.disabled_patterns),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SessionConfig":
        return cls(
            max_actions=int(data.get("maxActions", 5)),
            timeout_minutes=int(data.get("timeoutMinutes", 60)),
            safety_threshold=float(data.get("safetyThreshold", 0.7)),
            auto_approve_threshold=float(data.get("autoApproveThreshold", 0.7)),
            enable_backups=bool(data.get("enableBackups", True)),
            enabled_patterns=tuple(data.get("enabledPatterns", [])),
            disabled_patterns=tuple(data.get("disabledPatterns", [])),
        )


@dataclass(frozen=True)
class SessionMetrics:
    total_actions: int = 0
    completed_actions: int = 0
    failed_actions: int = 0
    skipped_actions: int = 0
    pending_approval: int = 0
    average_confidence: float = 0.0
    risk_distribution: Dict[str, int] = field(
        default_factory=lambda: {level.value: 0 for level in RiskLevel}
    )

    @classmethod
    def from_actions(cls, actions: Tuple[Action, ...]) -> "SessionMetrics":
        risk = {level.value: 0 for level in RiskLevel}
        for action in actions:
            risk[action.metadata.risk_level.value] += 1
        confidences = [a.metadata.confidence for a in actions]
        return cls(
            total_actions=len(actions),
            completed_actions=sum(1 for a in actions if a.status == ActionStatus.COMPLETED),
            failed_actions=sum(1 for a in actions if a.status == ActionStatus.FAILED),
            skipped_actions=sum(1 for a in actions if a.status == ActionStatus.SKIPPED),
            pending_approval=sum(1 for a in actions if a.status == ActionStatus.REQUIRES_APPROVAL),
            average_confidence=round(sum(confidences) / len(confidences), 4) if confidences else 0.0,
            risk_distribution=risk,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalActions": self.total_actions,
            "completedActions": self.completed_actions,
            "failedActions": self.failed_actions,
            "skippedActions": self.skipped_actions,
            "pendingApproval": self.pending_approval,
            "averageConfidence": self.average_confidence,
            "riskDistribution": dict(self.risk_distribution),
        }


@dataclass(frozen=True)
class Session:
    """
    One bounded run of the autonomous loop over a workspace.

    ``version`` increases by one with every derived snapshot, so a persisted
    document can always be compared against the in-memory one.
    """
    id: str
    start_time: str
    workspace_path: str
    status: SessionStatus = SessionStatus.ACTIVE
    config: SessionConfig = field(default_factory=SessionConfig)
    actions: Tuple[Action, ...] = ()
    metrics: SessionMetrics = field(default_factory=SessionMetrics)
    end_time: Optional[str] = None
    message: str = ""
    version: int = 1

    @property
    def is_active(self) -> bool:
        return self.status == SessionStatus.ACTIVE

    @property
    def is_finished(self) -> bool:
        return self.status in (SessionStatus.COMPLETED, SessionStatus.FAILED, SessionStatus.CANCELLED)

    def get_action(self, action_id: str) -> Optional[Action]:
        for action in self.actions:
            if action.id == action_id:
                return action
        return None

    def with_action(self, action: Action) -> "Session":
        """Append ``action``, or replace the stored action with the same id."""
        if action.session_id != self.id:
            raise ValueError(f"Action {action.id} belongs to session {action.session_id}, not {self.id}")
        actions = list(self.actions)
        for index, existing in enumerate(actions):
            if existing.id == action.id:
                actions[index] = action
                break
        else:
            actions.append(action)
        new_actions = tuple(actions)
        return replace(
            self,
            actions=new_actions,
            metrics=SessionMetrics.from_actions(new_actions),
            version=self.version + 1,
        )

    def with_status(self, status: SessionStatus, message: Optional[str] = None) -> "Session":
        finished = status in (SessionStatus.COMPLETED, SessionStatus.FAILED, SessionStatus.CANCELLED)
        return replace(
            self,
            status=status,
            end_time=utc_now() if finished and not self.end_time else self.end_time,
            message=self.message if message is None else message,
            version=self.version + 1,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "version": self.version,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "status": self.status.value,
            "workspacePath": self.workspace_path,
            "message": self.message,
            "config": self.config.to_dict(),
            "actions": [a.to_dict() for a in self.actions],
            "metrics": self.metrics.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Session":
        actions: List[Action] = [Action.from_dict(a) for a in data.get("actions", [])]
        return cls(
            id=data["id"],
            start_time=data["startTime"],
            workspace_path=data["workspacePath"],
            status=SessionStatus(data.get("status", "active")),
            config=SessionConfig.from_dict(data.get("config") or {}),
            actions=tuple(actions),
            metrics=SessionMetrics.from_actions(tuple(actions)),
            end_time=data.get("endTime"),
            message=data.get("message", ""),
            version=int(data.get("version", 1)),
        )

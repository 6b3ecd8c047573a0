"""
Session Controller
==================

The autonomous loop. A session repeatedly scans the workspace for TODOs, runs
each one through the pattern matcher and the confidence gate, and executes the
resulting action, until it runs out of budget, out of time, or out of TODOs it
can resolve.

Session lifecycle:
    active -> completed   no TODOs left, nothing resolvable, or action cap reached
    active -> failed      a fatal error (configuration, unsupported action, retries exhausted)
    active -> cancelled   stop_session() or the session timeout

Action lifecycle:
    pending -> executing -> completed | failed
    pending -> requires_approval

Everything in one session runs sequentially: one TODO, one action, one file at
a time. The session is held as an immutable snapshot and every change replaces
it and is written through to storage.
"""

import asyncio
import logging
import time
import uuid
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional, Set, Tuple

from sqlalchemy.exc import SQLAlchemyError

from todoforge.actions import ActionExecutor, ExecutionRequest
from todoforge.config import AutoContinueConfig, load_config
from todoforge.error_context import ErrorContext, ErrorContextCollector, ErrorSummary, ErrorType, OperationContext
from todoforge.errors import FatalError, FileSystemError, GitError, RecoverableError, TodoForgeError, ValidationError
from todoforge.file_ops import FileOps, checksum
from todoforge.gate import ConfidenceGate, GateDecision, GateOutcome
from todoforge.git_tools import GitTools
from todoforge.models import (
    Action,
    ActionChanges,
    ActionExecution,
    ActionMetadata,
    ActionStatus,
    Session,
    SessionConfig,
    SessionStatus,
    TodoItem,
    utc_now,
)
from todoforge.patterns import SAFE_PATTERNS, PatternMatch, PatternMatcher
from todoforge.replay import ReplayService
from todoforge.scanner import TodoScanner
from todoforge.storage import SessionStorage
from todoforge.timeouts import (
    ACTION_EXECUTION_TIMEOUT,
    LIST_TODOS_TIMEOUT,
    PATTERN_ANALYSIS_TIMEOUT,
    READ_CONTEXT_TIMEOUT,
    run_blocking,
)
from todoforge.validation import SyntaxValidator

logger = logging.getLogger(__name__)

RATE_WINDOW_SECONDS = 60.0

NO_TODOS_MESSAGE = "No actionable TODOs found"


# =============================================================================
# Results
# =============================================================================

class OutcomeKind(str, Enum):
    APPLIED = "applied"
    ROLLED_BACK = "rolled_back"
    REJECTED = "rejected"
    AWAITING_APPROVAL = "awaiting_approval"
    FAILED = "failed"


@dataclass(frozen=True)
class TodoOutcome:
    """What happened to one TODO."""
    kind: OutcomeKind
    todo: TodoItem
    action: Optional[Action] = None
    decision: Optional[GateDecision] = None
    error: Optional[str] = None

    @property
    def executed(self) -> bool:
        return self.kind == OutcomeKind.APPLIED


@dataclass
class SessionResult:
    success: bool
    session_id: str
    actions_executed: int
    status: SessionStatus
    message: str
    errors: List[ErrorContext] = field(default_factory=list)
    error_summary: ErrorSummary = field(default_factory=ErrorSummary)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "sessionId": self.session_id,
            "actionsExecuted": self.actions_executed,
            "status": self.status.value,
            "message": self.message,
            "errors": [e.to_dict() for e in self.errors],
            "errorSummary": {
                "totalErrors": self.error_summary.total_errors,
                "byType": self.error_summary.by_type,
                "bySeverity": self.error_summary.by_severity,
                "topSuggestions": self.error_summary.top_suggestions,
                "recommendedActions": self.error_summary.recommended_actions,
            },
        }


# =============================================================================
# Rate limiting
# =============================================================================

class RateLimiter:
    """
    Sliding one-minute window of executed actions plus a fixed cooldown.

    Args:
        max_per_minute: Executions allowed in any 60 second window
        cooldown_seconds: Pause after every executed action
        sleep: Awaitable sleep (injected in tests)
        clock: Monotonic clock
    """

    def __init__(
        self,
        max_per_minute: int,
        cooldown_seconds: float,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_per_minute = max_per_minute
        self.cooldown_seconds = cooldown_seconds
        self._sleep = sleep
        self._clock = clock
        self._stamps: Deque[float] = deque()

    def _prune(self, now: float) -> None:
        while self._stamps and now - self._stamps[0] >= RATE_WINDOW_SECONDS:
            self._stamps.popleft()

    async def acquire(self) -> None:
        """Wait until another execution fits in the window, then claim it."""
        self._prune(self._clock())
        if len(self._stamps) >= self.max_per_minute:
            wait = RATE_WINDOW_SECONDS - (self._clock() - self._stamps[0])
            if wait > 0:
                logger.info("Rate limit reached, waiting %.1fs", wait)
                await self._sleep(wait)
            # the oldest claim has now left the window
            self._stamps.popleft()
        self._stamps.append(self._clock())

    async def cooldown(self) -> None:
        if self.cooldown_seconds > 0:
            await self._sleep(self.cooldown_seconds)


@dataclass
class _LoopState:
    executed: int = 0
    consecutive_failures: int = 0
    awaiting_approval: int = 0
    handled: Set[Tuple[str, str, str]] = field(default_factory=set)


# =============================================================================
# Controller
# =============================================================================

class SessionController:
    """
    Runs autonomous TODO-resolution sessions over one workspace.

    Collaborators are created from the configuration unless given; tests pass
    their own scanner, executor or ``sleep``.
    """

    def __init__(
        self,
        workspace_path: str,
        config: Optional[AutoContinueConfig] = None,
        *,
        scanner: Optional[TodoScanner] = None,
        executor: Optional[ActionExecutor] = None,
        validator: Optional[SyntaxValidator] = None,
        storage: Optional[SessionStorage] = None,
        git: Optional[GitTools] = None,
        replay: Optional[ReplayService] = None,
        errors: Optional[ErrorContextCollector] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        session_timeout_seconds: Optional[float] = None,
    ):
        self.workspace = Path(workspace_path).resolve()
        self.config = (config or load_config(self.workspace)).validate(SAFE_PATTERNS.ids)

        self.matcher = PatternMatcher(SAFE_PATTERNS.with_confidence_overrides(self.config.patterns.confidence))
        self.gate = ConfidenceGate(
            safety_threshold=self.config.safety_threshold,
            auto_approve_threshold=self.config.auto_approve_threshold,
            patterns=self.config.patterns,
            honor_pattern_auto_approve=self.config.honor_pattern_auto_approve,
        )
        self.scanner = scanner or TodoScanner(self.config.file_patterns)
        self.executor = executor or ActionExecutor()
        self.validator = validator or SyntaxValidator()
        self.storage = storage or SessionStorage(str(self.workspace), self.config.sessions_dir)
        if git is None and self.config.enable_git_integration:
            git = GitTools(str(self.workspace))
        self.git = git
        if replay is None and self.config.enable_replay:
            replay = ReplayService(self.workspace)
        self.replay = replay
        self.errors = errors or ErrorContextCollector(self.config.max_retries)

        self._sleep = sleep
        self._clock = clock
        self.session_timeout_seconds = (
            session_timeout_seconds
            if session_timeout_seconds is not None
            else self.config.session_timeout_minutes * 60
        )
        self.rate_limiter = RateLimiter(
            self.config.rate_limiting.max_actions_per_minute,
            self.config.rate_limiting.cooldown_seconds,
            sleep=sleep,
            clock=clock,
        )

        self._sessions: Dict[str, Session] = {}
        self._tasks: Dict[str, asyncio.Task] = {}
        self._timers: Dict[str, asyncio.TimerHandle] = {}
        self._timed_out: Set[str] = set()
        self._states: Dict[str, _LoopState] = {}

    # =========================================================================
    # Session state
    # =========================================================================

    def _session_config(self) -> SessionConfig:
        return SessionConfig(
            max_actions=self.config.max_actions_per_session,
            timeout_minutes=self.config.session_timeout_minutes,
            safety_threshold=self.config.safety_threshold,
            auto_approve_threshold=self.config.auto_approve_threshold,
            enable_backups=self.config.enable_backups,
            enabled_patterns=tuple(self.config.patterns.enabled),
            disabled_patterns=tuple(self.config.patterns.disabled),
        )

    def _commit(self, session: Session) -> Session:
        self._sessions[session.id] = session
        return self.storage.save_session(session)

    def _record_action(self, action: Action) -> Action:
        self._commit(self._sessions[action.session_id].with_action(action))
        return action

    def _set_status(self, session_id: str, status: SessionStatus, message: str) -> Session:
        return self._commit(self._sessions[session_id].with_status(status, message))

    def _set_message(self, session_id: str, message: str) -> None:
        session = self._sessions[session_id]
        if session.is_active:
            self._commit(session.with_status(session.status, message))

    def get_session_status(self, session_id: str) -> Optional[Session]:
        """Live snapshot of a running session, or the stored one."""
        return self._sessions.get(session_id) or self.storage.get_session(session_id)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start_session(self) -> SessionResult:
        """
        Run one session to completion.

        Failures are reported in the result; only cancellation of the caller
        propagates.
        """
        session = self.storage.create_session(self._session_config(), str(self.workspace))
        session_id = session.id
        self._sessions[session_id] = session
        self._states[session_id] = _LoopState()
        logger.info("Session %s started in %s", session_id, self.workspace)

        if self.replay is not None:
            await self._replay_call(session_id, self.replay.start_recording(session_id))
        if self.git is not None:
            self._create_session_branch(session_id)

        loop = asyncio.get_running_loop()
        task = asyncio.create_task(self._run_loop(session_id))
        self._tasks[session_id] = task
        self._timers[session_id] = loop.call_later(self.session_timeout_seconds, self._on_timeout, session_id)

        try:
            await task
        except asyncio.CancelledError:
            if session_id not in self._timed_out:
                self._finish(session_id, SessionStatus.CANCELLED, "Session task was cancelled")
                raise
        except FatalError as e:
            self.errors.record_error(
                session_id, ErrorType.FATAL, e,
                OperationContext(operation="session_loop", max_retries=self.config.max_retries),
            )
            self._finish(session_id, SessionStatus.FAILED, e.message)
        finally:
            timer = self._timers.pop(session_id, None)
            if timer is not None:
                timer.cancel()
            self._tasks.pop(session_id, None)

        session = self._finish(session_id, SessionStatus.COMPLETED, self._sessions[session_id].message)
        if self.replay is not None:
            status = "failed" if session.status == SessionStatus.FAILED else "completed"
            await self._replay_call(session_id, self.replay.stop_recording(session_id, status))

        state = self._states.pop(session_id)
        self._sessions.pop(session_id, None)
        logger.info(
            "Session %s %s: %d action(s) executed. %s",
            session_id, session.status.value, state.executed, session.message,
        )
        return SessionResult(
            success=session.status == SessionStatus.COMPLETED,
            session_id=session_id,
            actions_executed=state.executed,
            status=session.status,
            message=session.message,
            errors=self.errors.get_session_errors(session_id),
            error_summary=self.errors.get_session_error_summary(session_id),
        )

    def _finish(self, session_id: str, status: SessionStatus, message: str) -> Session:
        """Give the session its final status unless it already has one."""
        session = self._sessions[session_id]
        if session.is_finished:
            return session
        return self._set_status(session_id, status, message)

    def stop_session(self, session_id: str, message: str = "Stopped by request") -> bool:
        """
        Cancel a running session.

        The action in flight is allowed to finish; the loop exits before the
        next TODO.
        """
        session = self._sessions.get(session_id)
        if session is None or not session.is_active:
            return False
        self._set_status(session_id, SessionStatus.CANCELLED, message)
        timer = self._timers.pop(session_id, None)
        if timer is not None:
            timer.cancel()
        logger.info("Session %s cancelled: %s", session_id, message)
        return True

    def _on_timeout(self, session_id: str) -> None:
        session = self._sessions.get(session_id)
        if session is None or not session.is_active:
            return
        minutes = self.session_timeout_seconds / 60
        message = f"Session timed out after {minutes:g} minutes"
        self._timed_out.add(session_id)
        self.errors.record_error(
            session_id, ErrorType.TIMEOUT, message, OperationContext(operation="session_timeout"),
        )
        self._set_status(session_id, SessionStatus.CANCELLED, message)
        self._timers.pop(session_id, None)
        task = self._tasks.get(session_id)
        if task is not None:
            task.cancel()

    def _create_session_branch(self, session_id: str) -> None:
        branch = f"{self.config.git.branch_prefix}{session_id[:8]}"
        try:
            self.git.create_branch(branch)
            logger.info("Working on branch %s", branch)
        except GitError as e:
            self.errors.record_error(session_id, ErrorType.RECOVERABLE, e, OperationContext(operation="create_branch"))

    async def _replay_call(self, session_id: str, call: Awaitable[Any]) -> Any:
        try:
            return await call
        except (SQLAlchemyError, OSError) as e:
            self.errors.record_error(
                session_id, ErrorType.RECOVERABLE, f"Replay recording failed: {e}",
                OperationContext(operation="replay"),
            )
            return None

    # =========================================================================
    # Loop
    # =========================================================================

    async def _run_loop(self, session_id: str) -> None:
        state = self._states[session_id]
        max_retries = self.config.max_retries

        while self._sessions[session_id].is_active:
            if state.executed >= self.config.max_actions_per_session:
                self._set_message(session_id, f"Reached the limit of {self.config.max_actions_per_session} actions")
                break
            try:
                finished = await self._run_iteration(session_id, state)
            except (FatalError, asyncio.CancelledError):
                raise
            except Exception as e:
                state.consecutive_failures += 1
                self.errors.record_error(
                    session_id, ErrorType.RECOVERABLE, e,
                    OperationContext(
                        operation="session_iteration",
                        attempt=state.consecutive_failures,
                        max_retries=max_retries,
                    ),
                )
                if state.consecutive_failures >= max_retries:
                    raise FatalError(
                        f"Iteration failed {state.consecutive_failures} times in a row: {e}",
                        "MAX_RETRIES_EXCEEDED",
                    ) from e
                await self._sleep(self.config.retry_backoff_seconds)
                continue

            state.consecutive_failures = 0
            if finished:
                break

    async def _run_iteration(self, session_id: str, state: _LoopState) -> bool:
        """One scan and one pass over its TODOs. Returns True when the session is done."""
        todos = await run_blocking(
            self.scanner.list_todos,
            str(self.workspace),
            self.config.file_patterns,
            seconds=LIST_TODOS_TIMEOUT,
            operation="list_todos",
        )
        if not todos:
            self._set_message(session_id, NO_TODOS_MESSAGE)
            return True

        pending = [todo for todo in todos if todo.key not in state.handled]
        executed_before = state.executed
        for todo in pending:
            if not self._sessions[session_id].is_active:
                return True
            if state.executed >= self.config.max_actions_per_session:
                break
            state.handled.add(todo.key)

            try:
                outcome = await self.process_todo(session_id, todo)
            except RecoverableError as e:
                self.errors.record_exception(
                    session_id, e,
                    OperationContext(
                        operation="process_todo",
                        file_path=todo.file_path,
                        line=todo.line,
                        todo_content=todo.content,
                    ),
                )
                continue

            if outcome.kind == OutcomeKind.AWAITING_APPROVAL:
                state.awaiting_approval += 1
            if outcome.executed:
                state.executed += 1
                if state.executed < self.config.max_actions_per_session:
                    await self.rate_limiter.cooldown()

        if state.executed == executed_before:
            if state.awaiting_approval:
                message = (
                    f"{state.awaiting_approval} action(s) awaiting approval; "
                    "no other TODOs can be resolved automatically"
                )
            elif state.executed:
                message = "No further TODOs can be resolved automatically"
            else:
                message = "No TODOs could be resolved automatically"
            self._set_message(session_id, message)
            return True
        return False

    # =========================================================================
    # One TODO
    # =========================================================================

    async def process_todo(self, session_id: str, todo: TodoItem) -> TodoOutcome:
        """
        Match, gate and (when approved) execute one TODO.

        Raises:
            RecoverableError: if the TODO's file cannot be read or analysed in time
            FatalError: from action execution
        """
        content = await run_blocking(
            FileOps.read_text, todo.file_path, seconds=READ_CONTEXT_TIMEOUT, operation="read_file_context",
        )
        located = TodoScanner.locate(todo, content)
        if located is None:
            return TodoOutcome(OutcomeKind.REJECTED, todo, error="TODO is no longer in the file")
        todo = located

        matches = await run_blocking(
            self.matcher.analyze_pattern,
            todo.content,
            content,
            todo.file_path,
            seconds=PATTERN_ANALYSIS_TIMEOUT,
            operation="pattern_analysis",
        )
        decision = self.gate.decide(PatternMatcher.best_of(matches))

        if decision.outcome == GateOutcome.REJECTED_NO_MATCH:
            self.errors.record_pattern_match_failure(session_id, todo.content, todo.file_path, todo.line)
            return TodoOutcome(OutcomeKind.REJECTED, todo, decision=decision)
        if decision.outcome == GateOutcome.REJECTED_LOW_CONFIDENCE:
            self.errors.record_safety_rejection(
                session_id, todo.content, decision.confidence, self.config.safety_threshold,
                todo.file_path, todo.line, decision.match.pattern_id,
            )
            return TodoOutcome(OutcomeKind.REJECTED, todo, decision=decision)
        if decision.outcome == GateOutcome.REJECTED_DISABLED:
            self.errors.record_disabled_pattern(
                session_id, todo.content, decision.match.pattern_id, decision.confidence,
                self.config.safety_threshold, todo.file_path, todo.line,
            )
            return TodoOutcome(OutcomeKind.REJECTED, todo, decision=decision)

        action = self._new_action(session_id, todo, decision.match)
        if decision.outcome == GateOutcome.REQUIRES_APPROVAL:
            action = self._record_action(action.require_approval())
            logger.info("Action requires approval (%s): %s", decision.reason, action.description)
            return TodoOutcome(OutcomeKind.AWAITING_APPROVAL, todo, action=action, decision=decision)

        self._record_action(action)
        await self.rate_limiter.acquire()
        outcome = await self.execute_action(action, decision.match, content)
        return TodoOutcome(outcome.kind, todo, action=outcome.action, decision=decision, error=outcome.error)

    def _new_action(self, session_id: str, todo: TodoItem, match: PatternMatch) -> Action:
        return Action(
            id=f"action-{uuid.uuid4().hex[:12]}",
            session_id=session_id,
            timestamp=utc_now(),
            type=match.action_type,
            status=ActionStatus.PENDING,
            description=f"{match.pattern.name}: {todo.content}",
            file_path=todo.file_path,
            line_number=todo.line,
            todo=todo,
            execution=ActionExecution(),
            changes=ActionChanges(file_path=todo.file_path),
            metadata=ActionMetadata(
                todo_text=todo.content,
                pattern_id=match.pattern_id,
                confidence=match.confidence,
                risk_level=match.risk_level,
            ),
        )

    # =========================================================================
    # One action
    # =========================================================================

    async def execute_action(self, action: Action, match: PatternMatch, content: Optional[str] = None) -> TodoOutcome:
        """
        Execute a pending (or approved) action against its file.

        The file is backed up, rewritten, validated and, on any failure,
        restored from the backup before this returns. Failures other than
        fatal ones come back as a ROLLED_BACK or FAILED outcome.

        Raises:
            FatalError: e.g. no executor for the action type
        """
        session_id = action.session_id
        path = action.file_path
        before = content if content is not None else FileOps.read_text(path)
        backup_path = FileOps.create_backup(path) if self.config.enable_backups else None
        action = self._record_action(action.start(checksum(before.encode("utf-8")), backup_path))
        logger.info("Executing action: %s", action.description)
        if self.replay is not None:
            await self._replay_call(session_id, self.replay.record_step(action))

        wrote = False
        try:
            result = await run_blocking(
                self.executor.execute,
                action.type,
                ExecutionRequest(
                    file_path=path,
                    content=before,
                    todo=action.todo,
                    extracted=dict(match.extracted_data),
                    strategy=self.config.implementation_strategy,
                ),
                seconds=ACTION_EXECUTION_TIMEOUT,
                operation=f"execute {action.type.value}",
            )
            after_checksum = action.changes.before_checksum
            if result.content != before:
                wrote = True
                after_checksum = FileOps.write_file(path, result.content, create_backup=False).checksum
                validation = self.validator.validate_syntax(path, result.content)
                if not validation.is_valid:
                    raise ValidationError(
                        f"Validation failed: {validation.summary()}",
                        issues=[issue.to_dict() for issue in validation.errors],
                        path=path,
                    )
        except asyncio.CancelledError:
            self._record_action(action.fail("Cancelled before the action finished"))
            raise
        except Exception as e:
            return await self._fail_action(action, e, wrote)

        action = self._record_action(action.complete(
            result.output,
            after_checksum,
            lines_added=result.lines_added,
            lines_removed=result.lines_removed,
        ))
        logger.info("Action completed: %s (%s)", action.description, result.output)

        if self.git is not None and wrote:
            self._commit_action(action)
        if self.replay is not None:
            await self._replay_call(
                session_id, self.replay.update_step_after_execution(action.id, session_id, action),
            )
        return TodoOutcome(OutcomeKind.APPLIED, action.todo, action=action)

    async def _fail_action(self, action: Action, error: Exception, wrote: bool) -> TodoOutcome:
        session_id = action.session_id
        restored = False
        backup_path = action.changes.backup_path
        if backup_path is not None:
            try:
                FileOps.restore_backup(action.file_path, backup_path)
                restored = True
            except FileSystemError as restore_error:
                self.errors.record_exception(
                    session_id, restore_error,
                    OperationContext(operation="restore_backup", file_path=action.file_path),
                    action_id=action.id,
                )

        message = error.message if isinstance(error, TodoForgeError) else str(error)
        if isinstance(error, FatalError):
            self._record_action(action.fail(message))
            raise error

        self.errors.record_exception(
            session_id, error,
            OperationContext(
                operation="execute_action",
                file_path=action.file_path,
                line=action.line_number,
                todo_content=action.todo.content,
                confidence=action.metadata.confidence,
                pattern_id=action.metadata.pattern_id,
            ),
            action_id=action.id,
        )
        action = self._record_action(action.fail(message))
        logger.warning("Action failed: %s (%s)%s", action.description, message, " - restored backup" if restored else "")
        if self.replay is not None:
            await self._replay_call(
                session_id, self.replay.update_step_after_execution(action.id, session_id, action),
            )

        kind = OutcomeKind.ROLLED_BACK if restored and wrote else OutcomeKind.FAILED
        return TodoOutcome(kind, action.todo, action=action, error=message)

    def _commit_action(self, action: Action) -> None:
        message = f"{self.config.git.commit_prefix} {action.description}"
        try:
            commit = self.git.commit_changes([action.file_path], message)
            logger.info("Committed %s", commit[:8])
        except GitError as e:
            self.errors.record_error(
                action.session_id, ErrorType.RECOVERABLE, e,
                OperationContext(operation="commit_changes", file_path=action.file_path),
                action_id=action.id,
            )

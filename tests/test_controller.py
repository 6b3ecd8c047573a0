"""
Tests for the Session Controller
================================

Tests for todoforge/controller.py
"""

import time
from pathlib import Path

import pytest

from todoforge.actions import ActionResult
from todoforge.config import AutoContinueConfig
from todoforge.controller import NO_TODOS_MESSAGE, RateLimiter, SessionController
from todoforge.error_context import ErrorType, Severity
from todoforge.errors import ConfigurationError, UnsupportedActionError
from todoforge.file_ops import FileOps
from todoforge.models import ActionStatus, SessionStatus


INIT_SOURCE = """export function init() {
  // TODO: add comment about initialization
  return 1;
}
"""


async def no_sleep(seconds):
    return None


def make_controller(workspace, config=None, **kwargs):
    data = {"rateLimiting": {"maxActionsPerMinute": 60, "cooldownSeconds": 0}}
    data.update(config or {})
    kwargs.setdefault("sleep", no_sleep)
    return SessionController(str(workspace), AutoContinueConfig.from_dict(data), **kwargs)


def write(workspace, relative, content):
    path = Path(workspace) / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


class BrokenExecutor:
    """Produces content that does not parse."""

    def execute(self, action_type, request):
        return ActionResult("export function init( {\n", "broke it", 1, 0)


class UnsupportedExecutor:
    def execute(self, action_type, request):
        raise UnsupportedActionError(action_type.value)


class FailingScanner:
    """Raises on the first ``failures`` scans, then finds nothing."""

    def __init__(self, failures=1000):
        self.failures = failures
        self.calls = 0

    def list_todos(self, workspace_path, file_patterns=None):
        self.calls += 1
        if self.calls <= self.failures:
            raise RuntimeError("disk on fire")
        return []


class SlowScanner:
    def list_todos(self, workspace_path, file_patterns=None):
        time.sleep(0.3)
        return []


class FakeGit:
    def __init__(self):
        self.branches = []
        self.commits = []

    def create_branch(self, name, checkout=True):
        self.branches.append(name)
        return name

    def commit_changes(self, files, message):
        self.commits.append((list(files), message))
        return "0123456789abcdef"


class TestSessionLifecycle:
    """Tests for complete sessions."""

    @pytest.mark.asyncio
    async def test_add_comment_session(self, tmp_path):
        """A single safe TODO is resolved and the session completes."""
        path = write(tmp_path, "src/app.ts", INIT_SOURCE)
        controller = make_controller(tmp_path)

        result = await controller.start_session()

        assert result.success
        assert result.status == SessionStatus.COMPLETED
        assert result.actions_executed == 1
        assert result.message == "No further TODOs can be resolved automatically"
        assert path.read_text(encoding="utf-8").splitlines()[1] == "  // Initialization"

        session = controller.get_session_status(result.session_id)
        assert session.status == SessionStatus.COMPLETED
        assert session.end_time is not None
        assert session.metrics.completed_actions == 1

        action = session.actions[0]
        assert action.status == ActionStatus.COMPLETED
        assert action.metadata.pattern_id == "add-comment"
        assert action.changes.lines_added == 1
        assert action.changes.after_checksum == FileOps.file_checksum(str(path))
        assert Path(action.changes.backup_path).read_text(encoding="utf-8") == INIT_SOURCE

    @pytest.mark.asyncio
    async def test_empty_workspace(self, tmp_path):
        result = await make_controller(tmp_path).start_session()

        assert result.success
        assert result.actions_executed == 0
        assert result.message == NO_TODOS_MESSAGE
        assert result.errors == []

    @pytest.mark.asyncio
    async def test_action_cap(self, tmp_path):
        for name in ("a", "b", "c"):
            write(tmp_path, f"{name}.ts", f"// TODO: add comment about {name}\nconst {name} = 1;\n")
        controller = make_controller(tmp_path, {"maxActionsPerSession": 2})

        result = await controller.start_session()

        assert result.actions_executed == 2
        assert result.message == "Reached the limit of 2 actions"
        assert "// TODO" in (tmp_path / "c.ts").read_text(encoding="utf-8").splitlines()[0]

    @pytest.mark.asyncio
    async def test_no_backups(self, tmp_path):
        write(tmp_path, "app.ts", INIT_SOURCE)
        result = await make_controller(tmp_path, {"enableBackups": False}).start_session()

        assert result.actions_executed == 1
        assert FileOps.list_backups(str(tmp_path / "app.ts")) == []

    @pytest.mark.asyncio
    async def test_invalid_config_rejected(self, tmp_path):
        with pytest.raises(ConfigurationError):
            make_controller(tmp_path, {"safetyThreshold": 2})


class TestGate:
    """Tests for TODOs the gate does not let through."""

    @pytest.mark.asyncio
    async def test_low_confidence(self, tmp_path):
        path = write(tmp_path, "app.ts", INIT_SOURCE)
        result = await make_controller(tmp_path, {"safetyThreshold": 0.95}).start_session()

        assert result.success
        assert result.actions_executed == 0
        assert result.message == "No TODOs could be resolved automatically"
        assert [e.error_type for e in result.errors] == [ErrorType.SAFETY]
        assert path.read_text(encoding="utf-8") == INIT_SOURCE

    @pytest.mark.asyncio
    async def test_requires_approval(self, tmp_path):
        path = write(tmp_path, "app.ts", INIT_SOURCE)
        controller = make_controller(tmp_path, {"autoApproveThreshold": 0.95})

        result = await controller.start_session()

        assert result.actions_executed == 0
        assert result.message.startswith("1 action(s) awaiting approval")
        action = controller.get_session_status(result.session_id).actions[0]
        assert action.status == ActionStatus.REQUIRES_APPROVAL
        assert action.metadata.requires_approval
        assert path.read_text(encoding="utf-8") == INIT_SOURCE

    @pytest.mark.asyncio
    async def test_disabled_pattern(self, tmp_path):
        write(tmp_path, "app.ts", "// TODO: rename count to total\nlet count = 0;\n")
        result = await make_controller(tmp_path).start_session()

        assert result.actions_executed == 0
        assert result.errors[0].error_type == ErrorType.SAFETY
        assert result.errors[0].severity == Severity.LOW

    @pytest.mark.asyncio
    async def test_no_matching_pattern(self, tmp_path):
        write(tmp_path, "app.ts", "// TODO: make it faster\nconst a = 1;\n")
        result = await make_controller(tmp_path).start_session()

        assert result.actions_executed == 0
        assert result.errors[0].error_type == ErrorType.PATTERN_MATCH
        assert result.error_summary.total_errors == 1


class TestFailures:
    """Tests for failed actions and failed sessions."""

    @pytest.mark.asyncio
    async def test_validation_failure_rolls_back(self, tmp_path):
        path = write(tmp_path, "app.ts", INIT_SOURCE)
        controller = make_controller(tmp_path, executor=BrokenExecutor())

        result = await controller.start_session()

        assert path.read_text(encoding="utf-8") == INIT_SOURCE
        assert result.actions_executed == 0
        assert result.status == SessionStatus.COMPLETED
        assert result.errors[0].error_type == ErrorType.VALIDATION

        action = controller.get_session_status(result.session_id).actions[0]
        assert action.status == ActionStatus.FAILED
        assert action.execution.error.startswith("Validation failed")

    @pytest.mark.asyncio
    async def test_unsupported_action_fails_session(self, tmp_path):
        write(tmp_path, "app.ts", INIT_SOURCE)
        controller = make_controller(tmp_path, executor=UnsupportedExecutor())

        result = await controller.start_session()

        assert not result.success
        assert result.status == SessionStatus.FAILED
        assert "No executor registered" in result.message
        assert result.errors[-1].error_type == ErrorType.FATAL
        action = controller.get_session_status(result.session_id).actions[0]
        assert action.status == ActionStatus.FAILED

    @pytest.mark.asyncio
    async def test_retries_exhausted(self, tmp_path):
        scanner = FailingScanner()
        controller = make_controller(tmp_path, {"maxRetries": 3}, scanner=scanner)

        result = await controller.start_session()

        assert result.status == SessionStatus.FAILED
        assert result.message == "Iteration failed 3 times in a row: disk on fire"
        assert scanner.calls == 3
        types = [e.error_type for e in result.errors]
        assert types == [ErrorType.RECOVERABLE] * 3 + [ErrorType.FATAL]

    @pytest.mark.asyncio
    async def test_transient_failure_recovers(self, tmp_path):
        controller = make_controller(tmp_path, scanner=FailingScanner(failures=1))

        result = await controller.start_session()

        assert result.success
        assert result.message == NO_TODOS_MESSAGE
        assert len(result.errors) == 1

    @pytest.mark.asyncio
    async def test_session_timeout(self, tmp_path):
        controller = make_controller(tmp_path, scanner=SlowScanner(), session_timeout_seconds=0.05)

        result = await controller.start_session()

        assert result.status == SessionStatus.CANCELLED
        assert "timed out" in result.message
        assert ErrorType.TIMEOUT in [e.error_type for e in result.errors]


class TestStopSession:
    """Tests for SessionController.stop_session()"""

    @pytest.mark.asyncio
    async def test_stop_between_actions(self, tmp_path):
        write(tmp_path, "a.ts", "// TODO: add comment about a\nconst a = 1;\n")
        second = write(tmp_path, "b.ts", "// TODO: add comment about b\nconst b = 1;\n")
        stopped = []

        async def stop_on_cooldown(seconds):
            session = controller.storage.list_sessions()[0]
            stopped.append(controller.stop_session(session.id))

        controller = make_controller(
            tmp_path,
            {"rateLimiting": {"maxActionsPerMinute": 60, "cooldownSeconds": 1}},
            sleep=stop_on_cooldown,
        )
        result = await controller.start_session()

        assert stopped == [True]
        assert result.status == SessionStatus.CANCELLED
        assert result.message == "Stopped by request"
        assert result.actions_executed == 1
        assert second.read_text(encoding="utf-8").startswith("// TODO")

    def test_stop_unknown_session(self, tmp_path):
        assert not make_controller(tmp_path).stop_session("nope")


class TestIntegrations:
    """Tests for git and replay hooks."""

    @pytest.mark.asyncio
    async def test_git_branch_and_commit(self, tmp_path):
        path = write(tmp_path, "app.ts", INIT_SOURCE)
        git = FakeGit()

        result = await make_controller(tmp_path, git=git).start_session()

        assert git.branches == [f"todoforge-auto-{result.session_id[:8]}"]
        assert git.commits == [
            ([str(path.resolve())], "[TodoForge Auto] Add Comment: add comment about initialization"),
        ]

    @pytest.mark.asyncio
    async def test_replay_recording(self, tmp_path):
        write(tmp_path, "app.ts", INIT_SOURCE)
        controller = make_controller(tmp_path, {"enableReplay": True})
        try:
            result = await controller.start_session()
            recording = await controller.replay.get_replay_session(result.session_id)
        finally:
            await controller.replay.close()

        assert recording.status == "completed"
        assert recording.total_steps == 1
        step = recording.steps[0]
        assert step.file_state_before == INIT_SOURCE
        assert "// Initialization" in step.file_state_after
        assert step.action.status == ActionStatus.COMPLETED


class TestRateLimiter:
    """Tests for RateLimiter."""

    @pytest.mark.asyncio
    async def test_waits_for_window(self):
        now = [0.0]
        sleeps = []

        async def fake_sleep(seconds):
            sleeps.append(seconds)
            now[0] += seconds

        limiter = RateLimiter(2, 10.0, sleep=fake_sleep, clock=lambda: now[0])
        await limiter.acquire()
        await limiter.acquire()
        now[0] = 10.0
        await limiter.acquire()

        assert sleeps == [50.0]

    @pytest.mark.asyncio
    async def test_window_expires(self):
        now = [0.0]
        sleeps = []

        async def fake_sleep(seconds):
            sleeps.append(seconds)

        limiter = RateLimiter(1, 0.0, sleep=fake_sleep, clock=lambda: now[0])
        await limiter.acquire()
        now[0] = 61.0
        await limiter.acquire()
        await limiter.cooldown()

        assert sleeps == []

    @pytest.mark.asyncio
    async def test_cooldown(self):
        sleeps = []

        async def fake_sleep(seconds):
            sleeps.append(seconds)

        await RateLimiter(3, 10.0, sleep=fake_sleep).cooldown()
        assert sleeps == [10.0]

#!/usr/bin/env python
"""
TodoForge CLI - Resolve TODO comments autonomously and inspect the results.

Usage:
    todoforge run [--workspace DIR] [--max-actions N] [--safety-threshold X] ...
    todoforge todos [--workspace DIR]
    todoforge analyze FILE
    todoforge implement FILE [--function NAME] [--line N] [--strategy S] [--dry-run]
    todoforge sessions [SESSION_ID] [--workspace DIR]
    todoforge replay [SESSION_ID] [--cleanup DAYS] [--workspace DIR]
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

from todoforge.analysis import FunctionImplementor, SourceAnalyzer, UnusedVariableAnalyzer, find_unused_imports
from todoforge.config import STRATEGIES, load_config
from todoforge.controller import SessionController
from todoforge.errors import ConfigurationError, GitError, RecoverableError
from todoforge.file_ops import FileOps
from todoforge.gate import ConfidenceGate, GateOutcome
from todoforge.git_tools import GitTools
from todoforge.models import ActionStatus, Session, SessionStatus
from todoforge.output import (
    console,
    create_table,
    icon,
    print_code,
    print_error,
    print_header,
    print_info,
    print_key_value_table,
    print_muted,
    print_panel,
    print_success,
    print_table,
    print_warning,
    risk_style,
    setup_rich_logging,
)
from todoforge.patterns import SAFE_PATTERNS, PatternMatcher
from todoforge.replay import ReplayService
from todoforge.scanner import TodoScanner
from todoforge.storage import SessionStorage

load_dotenv()


_STATUS_STYLES = {
    SessionStatus.ACTIVE: "tf.info",
    SessionStatus.COMPLETED: "tf.ok",
    SessionStatus.FAILED: "tf.err",
    SessionStatus.CANCELLED: "tf.warn",
}

_ACTION_STYLES = {
    ActionStatus.COMPLETED: "tf.ok",
    ActionStatus.FAILED: "tf.err",
    ActionStatus.REQUIRES_APPROVAL: "tf.warn",
    ActionStatus.SKIPPED: "tf.muted",
}


def _config_overrides(args) -> dict:
    """camelCase config values given on the command line."""
    overrides = {}
    if args.max_actions is not None:
        overrides["maxActionsPerSession"] = args.max_actions
    if args.timeout is not None:
        overrides["sessionTimeoutMinutes"] = args.timeout
    if args.safety_threshold is not None:
        overrides["safetyThreshold"] = args.safety_threshold
    if args.auto_approve_threshold is not None:
        overrides["autoApproveThreshold"] = args.auto_approve_threshold
    if args.strategy is not None:
        overrides["implementationStrategy"] = args.strategy
    if args.enable_git:
        overrides["enableGitIntegration"] = True
    if args.replay:
        overrides["enableReplay"] = True
    if args.no_backups:
        overrides["enableBackups"] = False
    if args.enable:
        overrides.setdefault("patterns", {})["enabled"] = args.enable
    return overrides


def _status(session_status: SessionStatus) -> str:
    style = _STATUS_STYLES.get(session_status, "tf.text")
    return f"[{style}]{session_status.value}[/]"


def _prepare_git(git: GitTools, stash: bool) -> bool:
    """Check the repository a session is about to commit into."""
    if not git.is_repository():
        print_error(f"{git.workspace} is not a git repository (run `git init` or drop --enable-git)")
        return False
    status = git.get_status()
    if status.is_clean:
        return True
    if stash:
        git.stash("todoforge: before session")
        print_info(f"Stashed {len(status.changed_files)} uncommitted change(s) on {status.branch}")
    else:
        print_warning(
            f"{len(status.changed_files)} uncommitted change(s) on {status.branch}; "
            "session commits only include the files it edits"
        )
    return True


def _relative(path: str, workspace: Path) -> str:
    try:
        return str(Path(path).resolve().relative_to(workspace.resolve()))
    except ValueError:
        return path


# =============================================================================
# run
# =============================================================================

def cmd_run(args):
    """Run one autonomous session."""
    try:
        config = load_config(args.workspace, _config_overrides(args))
        controller = SessionController(str(args.workspace), config)
    except ConfigurationError as e:
        print_error(e.message)
        return 2

    if controller.git is not None:
        try:
            if not _prepare_git(controller.git, args.stash):
                return 2
        except GitError as e:
            print_error(e.message)
            return 2

    print_header("TodoForge Session")
    print_key_value_table({
        "Workspace": str(controller.workspace),
        "Max actions": config.max_actions_per_session,
        "Safety threshold": f"{config.safety_threshold:.2f}",
        "Auto-approve threshold": f"{config.auto_approve_threshold:.2f}",
        "Strategy": config.implementation_strategy,
        "Patterns": ", ".join(config.patterns.enabled) or "none",
    })
    console.print()

    try:
        result = asyncio.run(controller.start_session())
    except KeyboardInterrupt:
        print_warning("Interrupted")
        return 130

    session = controller.storage.get_session(result.session_id)
    if session is not None and session.actions:
        table = create_table(title="Actions", columns=["Status", "Type", "File", "Line", "Description"])
        for action in session.actions:
            style = _ACTION_STYLES.get(action.status, "tf.info")
            table.add_row(
                f"[{style}]{action.status.value}[/]",
                action.type.value,
                f"[tf.path]{_relative(action.file_path, controller.workspace)}[/]",
                str(action.line_number),
                action.description,
            )
        print_table(table)
        console.print()

    print_key_value_table({
        "Session": result.session_id,
        "Status": _status(result.status),
        "Actions executed": result.actions_executed,
        "Errors": result.error_summary.total_errors,
        "Message": result.message,
    }, title="Result")

    if result.errors:
        console.print()
        print_panel(controller.errors.generate_error_report(result.session_id), title="Errors", border_style="tf.warn")

    if result.success:
        print_success(f"Session finished: {result.message}")
        return 0
    print_error(f"Session {result.status.value}: {result.message}")
    return 1


# =============================================================================
# todos
# =============================================================================

def cmd_todos(args):
    """List the workspace's TODOs with the action each one would get."""
    try:
        config = load_config(args.workspace).validate(SAFE_PATTERNS.ids)
    except ConfigurationError as e:
        print_error(e.message)
        return 2

    todos = TodoScanner(config.file_patterns).list_todos(str(args.workspace))
    if not todos:
        print_info("No TODOs found")
        return 0

    matcher = PatternMatcher(SAFE_PATTERNS.with_confidence_overrides(config.patterns.confidence))
    gate = ConfidenceGate(
        config.safety_threshold,
        config.auto_approve_threshold,
        config.patterns,
        honor_pattern_auto_approve=config.honor_pattern_auto_approve,
    )

    print_header(f"TODOs ({len(todos)})")
    table = create_table(columns=["Location", "Type", "TODO", "Pattern", "Confidence", "Decision"])
    counts = {}
    for todo in todos:
        try:
            content = FileOps.read_text(todo.file_path)
        except RecoverableError:
            content = ""
        decision = gate.decide(PatternMatcher.best_of(matcher.analyze_pattern(todo.content, content, todo.file_path)))
        counts[decision.outcome] = counts.get(decision.outcome, 0) + 1

        if decision.match is not None:
            pattern = f"[{risk_style(decision.match.risk_level.value)}]{decision.match.pattern_id}[/]"
            confidence = f"{decision.confidence:.0%}"
        else:
            pattern, confidence = "[tf.muted]-[/]", "[tf.muted]-[/]"
        if decision.outcome == GateOutcome.EXECUTE:
            verdict = f"[tf.ok]{icon('check')} execute[/]"
        elif decision.outcome == GateOutcome.REQUIRES_APPROVAL:
            verdict = f"[tf.warn]{icon('warning')} approval[/]"
        else:
            verdict = f"[tf.muted]{decision.outcome.value.replace('rejected_', 'rejected: ')}[/]"

        table.add_row(
            f"[tf.path]{_relative(todo.file_path, args.workspace)}:{todo.line}[/]",
            todo.type.value,
            todo.content,
            pattern,
            confidence,
            verdict,
        )
    print_table(table)

    console.print()
    print_muted(
        f"{counts.get(GateOutcome.EXECUTE, 0)} executable, "
        f"{counts.get(GateOutcome.REQUIRES_APPROVAL, 0)} need approval, "
        f"{len(todos) - counts.get(GateOutcome.EXECUTE, 0) - counts.get(GateOutcome.REQUIRES_APPROVAL, 0)} rejected"
    )
    return 0


# =============================================================================
# analyze
# =============================================================================

def cmd_analyze(args):
    """Report unused imports, unused variables and function stubs in a file."""
    path = str(args.file)
    analyzer = SourceAnalyzer()
    try:
        content = FileOps.read_text(path)
        tree = analyzer.parse(path, content)
    except RecoverableError as e:
        print_error(e.message)
        return 1

    print_header(f"Analysis: {args.file}")

    unused_imports = find_unused_imports(tree)
    if unused_imports:
        table = create_table(title="Unused imports", columns=["Line", "Name", "Kind", "Source"])
        for item in unused_imports:
            table.add_row(str(item.line), item.name, item.kind, item.source)
        print_table(table)
    else:
        print_success("No unused imports")

    variables = UnusedVariableAnalyzer(analyzer).analyze_tree(tree)
    if variables.unused_variables:
        table = create_table(title="Unused variables", columns=["Line", "Name", "Kind", "Scope", "Removal"])
        for item in variables.unused_variables:
            removal = "[tf.ok]safe[/]" if item.safe_to_remove else "[tf.warn]review[/]"
            table.add_row(str(item.line), item.name, item.kind, item.scope, removal)
        print_table(table)
    else:
        print_success(f"No unused variables ({variables.total_variables} declared)")

    implementor = FunctionImplementor(analyzer)
    functions = implementor.detector.find_functions(tree)
    stubs = implementor.detector.find_stubs(tree)
    if stubs:
        table = create_table(title="Function stubs", columns=["Line", "Function", "Purpose", "Best suggestion"])
        for fn in stubs:
            purpose = implementor.synthesizer.inferencer.infer(fn)
            suggestions = implementor.suggestions_for(tree, fn, functions)
            best = f"{suggestions[0].category} ({suggestions[0].confidence:.0%})" if suggestions else "-"
            table.add_row(str(fn.line), fn.signature, purpose.description, best)
        print_table(table)
    else:
        print_success(f"No function stubs ({len(functions)} functions)")
    return 0


# =============================================================================
# implement
# =============================================================================

def cmd_implement(args):
    """Fill in function stubs in a file."""
    path = str(args.file)
    try:
        content = FileOps.read_text(path)
        report = FunctionImplementor().implement_functions(
            path, content, function_name=args.function, line=args.line, strategy=args.strategy,
        )
    except RecoverableError as e:
        print_error(e.message)
        return 1

    for name, reason in report.skipped:
        print_warning(f"Skipped {name}: {reason}")
    if not report.changed:
        for message in report.messages:
            print_info(message)
        return 1

    for message in report.messages:
        print_success(message)

    if args.dry_run:
        console.print()
        print_code(report.content, "javascript" if path.endswith((".js", ".jsx", ".mjs", ".cjs")) else "typescript")
        print_muted("Dry run: file not modified")
        return 0

    try:
        result = FileOps.write_file(path, report.content, create_backup=not args.no_backup)
    except RecoverableError as e:
        print_error(e.message)
        return 1
    if result.backup_path:
        print_muted(f"Backup: {result.backup_path}")
    return 0


# =============================================================================
# sessions
# =============================================================================

def _show_session(session: Session, workspace: Path) -> None:
    print_header(f"Session: {session.id}")
    print_key_value_table({
        "Status": _status(session.status),
        "Started": session.start_time,
        "Ended": session.end_time or "N/A",
        "Message": session.message or "",
        "Max actions": session.config.max_actions,
        "Safety threshold": f"{session.config.safety_threshold:.2f}",
    }, title="Basic Info")
    console.print()

    metrics = session.metrics
    print_key_value_table({
        "Total": metrics.total_actions,
        "Completed": metrics.completed_actions,
        "Failed": metrics.failed_actions,
        "Skipped": metrics.skipped_actions,
        "Awaiting approval": metrics.pending_approval,
        "Average confidence": f"{metrics.average_confidence:.0%}",
    }, title="Metrics")

    if session.actions:
        console.print()
        table = create_table(title="Actions", columns=["ID", "Status", "Type", "Location", "Duration", "Error"])
        for action in session.actions:
            style = _ACTION_STYLES.get(action.status, "tf.info")
            duration = action.execution.duration_ms
            table.add_row(
                action.id,
                f"[{style}]{action.status.value}[/]",
                action.type.value,
                f"[tf.path]{_relative(action.file_path, workspace)}:{action.line_number}[/]",
                f"{duration}ms" if duration is not None else "-",
                action.execution.error or "",
            )
        print_table(table)


def cmd_sessions(args):
    """List stored sessions, or show one."""
    storage = SessionStorage(str(args.workspace), load_config(args.workspace).sessions_dir)

    if args.session_id:
        session = storage.get_session(args.session_id)
        if session is None:
            print_error(f"Session '{args.session_id}' not found")
            return 1
        _show_session(session, args.workspace)
        return 0

    sessions = storage.list_sessions()[: args.limit]
    if not sessions:
        print_info("No sessions found")
        return 0

    print_header(f"Sessions ({len(sessions)})")
    table = create_table(columns=["ID", "Started", "Status", "Actions", "Message"])
    for session in sessions:
        table.add_row(
            f"[tf.accent]{session.id}[/]",
            session.start_time[:19],
            _status(session.status),
            f"{session.metrics.completed_actions}/{session.metrics.total_actions}",
            session.message or "",
        )
    print_table(table)
    return 0


# =============================================================================
# replay
# =============================================================================

async def _show_step(service: ReplayService, args) -> int:
    step = await service.get_step(args.session_id, args.step)
    if step is None:
        print_error(f"Step {args.step} not found in replay of session '{args.session_id}'")
        return 1

    action = step.action
    print_header(f"Replay: {args.session_id}, step {step.step_number}")
    details = {
        "Type": action.type.value,
        "Description": action.description,
        "File": f"{_relative(action.file_path, args.workspace)}:{action.line_number}",
        "Status": action.status.value,
        "Confidence": f"{action.metadata.confidence:.2f}",
        "Risk": f"[{risk_style(action.metadata.risk_level.value)}]{action.metadata.risk_level.value}[/]",
        "Duration": f"{action.execution.duration_ms}ms" if action.execution.duration_ms is not None else "-",
    }
    if action.execution.error:
        details["Error"] = action.execution.error
    print_key_value_table(details)
    console.print()

    comparison = await service.compare_file_states(args.session_id, args.step)
    if not comparison.after_recorded:
        print_muted("File state after this step was not recorded")
    elif not comparison.changed:
        print_muted("No file changes")
    else:
        print_info(f"+{comparison.lines_added} -{comparison.lines_removed} lines")
        print_code(comparison.diff, "diff", line_numbers=False)
    return 0


async def _replay(args) -> int:
    service = ReplayService(args.workspace)
    try:
        if args.cleanup is not None:
            removed = await service.cleanup_old_replays(args.cleanup)
            print_success(f"Removed {removed} recording(s) older than {args.cleanup} days")
            return 0

        if not args.session_id:
            session_ids = await service.list_replay_sessions()
            if not session_ids:
                print_info("No replay recordings found")
                return 0
            print_header(f"Replay recordings ({len(session_ids)})")
            for session_id in session_ids:
                console.print(f"  {icon('bullet')} [tf.accent]{session_id}[/]")
            return 0

        if args.step is not None:
            return await _show_step(service, args)

        steps = await service.get_step_breakdown(args.session_id)
        if steps is None:
            print_error(f"No replay recording for session '{args.session_id}'")
            return 1

        print_header(f"Replay: {args.session_id}")
        table = create_table(columns=["Step", "Type", "Status", "Duration", "File", "Description"])
        for step in steps:
            style = "tf.ok" if step.success else "tf.err"
            table.add_row(
                str(step.step_number),
                step.action_type,
                f"[{style}]{step.status}[/]",
                f"{step.duration_ms}ms" if step.duration_ms is not None else "-",
                f"[tf.path]{_relative(step.file_modified, args.workspace)}[/]",
                step.description,
            )
        print_table(table)
        return 0
    finally:
        await service.close()


def cmd_replay(args):
    """List replay recordings, show one, or delete old ones."""
    return asyncio.run(_replay(args))


# =============================================================================
# Entry point
# =============================================================================

def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="todoforge",
        description="Resolve TODO comments autonomously, within safety thresholds",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--workspace", "-w",
        type=Path,
        default=Path("."),
        help="Workspace to operate on (default: current dir)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # run command
    run_parser = subparsers.add_parser("run", help="Run an autonomous session")
    run_parser.add_argument("--max-actions", "-n", type=int, help="Maximum actions to execute")
    run_parser.add_argument("--timeout", type=int, help="Session timeout in minutes")
    run_parser.add_argument("--safety-threshold", type=float, help="Minimum confidence to act at all")
    run_parser.add_argument("--auto-approve-threshold", type=float, help="Minimum confidence to act without approval")
    run_parser.add_argument("--strategy", choices=STRATEGIES, help="Function implementation strategy")
    run_parser.add_argument("--enable", nargs="+", metavar="PATTERN", help="Pattern ids to enable (replaces the list)")
    run_parser.add_argument("--enable-git", action="store_true", help="Work on a branch and commit each action")
    run_parser.add_argument("--stash", action="store_true", help="Stash uncommitted changes before a git-integrated session")
    run_parser.add_argument("--replay", action="store_true", help="Record the session for replay")
    run_parser.add_argument("--no-backups", action="store_true", help="Do not back files up before editing")

    # todos command
    subparsers.add_parser("todos", help="List TODOs and how each would be handled")

    # analyze command
    analyze_parser = subparsers.add_parser("analyze", help="Analyze a TypeScript/JavaScript file")
    analyze_parser.add_argument("file", type=Path, help="File to analyze")

    # implement command
    implement_parser = subparsers.add_parser("implement", help="Implement function stubs in a file")
    implement_parser.add_argument("file", type=Path, help="File containing stubs")
    implement_parser.add_argument("--function", "-f", help="Only implement this function")
    implement_parser.add_argument("--line", "-l", type=int, help="Only implement the stub at this line")
    implement_parser.add_argument("--strategy", choices=STRATEGIES, default="balanced", help="Implementation strategy")
    implement_parser.add_argument("--dry-run", action="store_true", help="Print the result instead of writing it")
    implement_parser.add_argument("--no-backup", action="store_true", help="Do not back the file up")

    # sessions command
    sessions_parser = subparsers.add_parser("sessions", help="List sessions or show one")
    sessions_parser.add_argument("session_id", nargs="?", help="Session ID to show")
    sessions_parser.add_argument("--limit", type=int, default=20, help="Max sessions to list")

    # replay command
    replay_parser = subparsers.add_parser("replay", help="List replay recordings or show one")
    replay_parser.add_argument("session_id", nargs="?", help="Session ID to show")
    replay_parser.add_argument("--step", "-s", type=int, help="Show one step and the diff it made")
    replay_parser.add_argument("--cleanup", type=int, metavar="DAYS", help="Delete recordings older than DAYS")

    args = parser.parse_args(argv)
    setup_rich_logging(logging.DEBUG if args.verbose else logging.INFO)

    if not args.command:
        parser.print_help()
        return 1

    commands = {
        "run": cmd_run,
        "todos": cmd_todos,
        "analyze": cmd_analyze,
        "implement": cmd_implement,
        "sessions": cmd_sessions,
        "replay": cmd_replay,
    }

    handler = commands.get(args.command)
    if handler:
        return handler(args)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())

"""Command-line interface router for guardrail-suite."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final

from guardrail_suite.config import (
    ConfigLoadError,
    ConfigValidationError,
    LifecycleConfig,
    load_config,
    load_lifecycle_config,
    redact_config,
)
from guardrail_suite.constants import DEFAULT_COMMIT_LIMIT, ExitCode
from guardrail_suite.control_plane import (
    DuplicateTaskError,
    RunReport,
    Scheduler,
    SchedulerOptions,
    TaskRegistry,
    render_text,
)
from guardrail_suite.errors import GuardrailError, ValidationFailed
from guardrail_suite.integration_plane import GitClient, HostingClient
from guardrail_suite.observability.logging import (
    CLI_LOG_LEVELS,
    generate_run_id,
    resolve_log_level,
    setup_logging,
    shutdown_logging,
)
from guardrail_suite.sandbox import LocalProcessRunner
from guardrail_suite.ui.render import CLIRenderer, create_renderer
from guardrail_suite.verification_plane.drift import (
    DriftOptions,
    GhProjectStatusSource,
    SnapshotStatusSource,
    StatusSource,
    detect_drift,
    render_drift_text,
)
from guardrail_suite.verification_plane.naming_guards import (
    GuardName,
    GuardResult,
    check_branch,
    check_commits,
    check_pr_title,
)
from guardrail_suite.verification_plane.policy_validator import (
    PolicyOptions,
    render_policy_text,
    split_csv,
    validate_scripts,
)
from guardrail_suite.verification_plane.smoke import SmokeOptions, render_smoke_text, run_smoke

PROG: Final[str] = "guardrails"
SMOKE_OUTPUT_LINE_LIMIT: Final[int] = 10_000

logger = logging.getLogger(__name__)

Handler = Callable[[argparse.Namespace], int]


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = 1

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True, slots=True)
class _Context:
    """Per-invocation state shared by every command handler."""

    root: Path
    config: dict[str, Any]
    run_id: str
    renderer: CLIRenderer
    json_output: bool
    verbose: bool


@dataclass(frozen=True, slots=True)
class _Command:
    name: str
    help: str
    description: str
    add_arguments: Callable[[argparse.ArgumentParser], None]
    handler: Handler


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def _common_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    contract = common.add_argument_group("common options")
    contract.add_argument(
        "--dry-run",
        action="store_true",
        default=False,
        help="Plan without executing (checks are read-only; suite lists its queue).",
    )
    contract.add_argument(
        "--yes",
        action="store_true",
        default=False,
        help="Skip confirmations (no effect: every command is non-interactive).",
    )
    contract.add_argument(
        "--output",
        choices=("text", "json"),
        default="text",
        help="Output format (default: text).",
    )
    contract.add_argument(
        "--log-level",
        choices=CLI_LOG_LEVELS,
        default=None,
        help="Log level for stderr diagnostics (default: LOG_LEVEL env or config).",
    )
    contract.add_argument(
        "--cwd",
        default=".",
        help="Repository root directory (default: current working directory).",
    )
    contract.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to guardrails TOML config (default: ./guardrails.toml if present).",
    )
    contract.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        default=False,
        help="Show detailed output (implies debug logging unless --log-level is set).",
    )
    contract.add_argument(
        "--no-color",
        action="store_true",
        default=False,
        help="Disable colored output (also respects NO_COLOR env var).",
    )
    return common


def _add_suite_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--scope",
        action="append",
        default=None,
        help="Scope(s) to run, comma separated or repeated (default: all).",
    )
    parser.add_argument(
        "--concurrency",
        type=_positive_int,
        default=None,
        help="Maximum tasks in flight (default: 3).",
    )
    parser.add_argument(
        "--sequential", action="store_true", default=False, help="Run one task at a time."
    )
    parser.add_argument(
        "--fail-fast",
        action="store_true",
        default=False,
        help="Stop after the first required failure (forces sequential execution).",
    )
    parser.add_argument(
        "--timeout",
        type=_positive_float,
        default=None,
        help="Per-task timeout in seconds (default: none).",
    )
    parser.add_argument(
        "--list", action="store_true", default=False, help="List scopes and their tasks."
    )


def _add_policy_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--strict", action="store_true", default=False, help="Treat warnings as failures."
    )
    parser.add_argument(
        "--filter",
        action="append",
        default=None,
        help="Only check scripts whose relative path contains one of these substrings.",
    )
    parser.add_argument(
        "--ignore",
        action="append",
        default=None,
        help="Directory names to skip (default: DEPRECATED).",
    )
    parser.add_argument(
        "--include-deprecated",
        action="store_true",
        default=False,
        help="Also check scripts inside ignored directories.",
    )
    parser.add_argument("--scripts-dir", default=None, help="Scripts directory to inspect.")
    _add_report_argument(parser)


def _add_branch_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--branch", default=None, help="Branch to validate (default: current).")
    _add_report_argument(parser)


def _add_commit_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--range", dest="revision_range", default=None, help="Git revision range.")
    parser.add_argument("--from", dest="from_ref", default=None, help="Start revision.")
    parser.add_argument("--to", dest="to_ref", default=None, help="End revision (default: HEAD).")
    parser.add_argument(
        "--max",
        dest="max_count",
        type=_positive_int,
        default=DEFAULT_COMMIT_LIMIT,
        help=f"Check at most this many commits (default: {DEFAULT_COMMIT_LIMIT}).",
    )
    _add_report_argument(parser)


def _add_pr_title_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--branch", default=None, help="Head branch (default: current).")
    parser.add_argument(
        "--pr", dest="pr_number", type=_positive_int, default=None, help="Pull request number."
    )
    _add_report_argument(parser)


def _add_drift_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--paths",
        action="append",
        default=None,
        help="Artifact ids or markdown paths to inspect, comma separated (default: all).",
    )
    parser.add_argument(
        "--snapshot",
        default=None,
        help="YAML/JSON file mapping artifact id to tracked status (skips gh).",
    )
    parser.add_argument("--ideas-dir", default=None, help="Directory of artifact markdown files.")


def _add_smoke_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--filter",
        action="append",
        default=None,
        help="Only probe scripts whose relative path contains one of these substrings.",
    )
    parser.add_argument(
        "--timeout",
        type=_positive_float,
        default=None,
        help="Per-script timeout in seconds (default: 5).",
    )
    parser.add_argument("--scripts-dir", default=None, help="Scripts directory to probe.")


def _add_config_arguments(parser: argparse.ArgumentParser) -> None:
    """The config command only takes the common options."""


def _add_report_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--report",
        action="store_true",
        default=False,
        help='Emit the machine-readable {"<check>": {...}} JSON envelope.',
    )


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router for every guardrail command."""

    parser = argparse.ArgumentParser(
        prog=PROG,
        description=(
            "guardrail-suite: verification task orchestrator and compliance checks.\n\n"
            "Common workflows:\n"
            "  guardrails suite --scope app,pr     Run selected guardrail scopes\n"
            "  guardrails policy-lint --strict     Lint automation scripts\n"
            "  guardrails branch-guard             Validate the current branch name\n"
            "  guardrails drift-check              Compare local and tracked statuses\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common = _common_parser()
    subparsers = parser.add_subparsers(dest="command", required=True)
    for command in _COMMANDS.values():
        sub = subparsers.add_parser(
            command.name,
            parents=[common],
            help=command.help,
            description=command.description,
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        command.add_arguments(sub)
        sub.set_defaults(handler=command.handler, command=command.name)
    return parser


def build_tool_parser(name: str) -> argparse.ArgumentParser:
    """Standalone parser for one command, used by the per-tool console scripts."""

    command = _COMMANDS.get(name)
    if command is None:
        raise KeyError(f"unknown guardrail command: {name}")
    parser = argparse.ArgumentParser(
        prog=command.name,
        parents=[_common_parser()],
        description=command.description,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    command.add_arguments(parser)
    parser.set_defaults(handler=command.handler, command=command.name)
    return parser


def run_cli(argv: Sequence[str] | None = None, *, tool: str | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_tool_parser(tool) if tool is not None else build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return int(ExitCode.CONFIG_ERROR)

    try:
        result = handler(namespace)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    except ValidationFailed as exc:
        logger.info("check failed", extra={"reason": str(exc), "issues": len(exc.issues)})
        return int(exc.exit_code)
    finally:
        shutdown_logging()
    return int(result)


def main(argv: Sequence[str] | None = None) -> int:
    """Compatibility wrapper for main-module wiring."""

    return run_cli(argv)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_suite(args: argparse.Namespace) -> int:
    ctx = _prepare(
        args,
        overrides={
            "suite.concurrency": args.concurrency,
            "suite.fail_fast": True if args.fail_fast else None,
            "suite.sequential": True if args.sequential else None,
            "suite.task_timeout_seconds": args.timeout,
        },
    )
    suite_cfg = ctx.config["suite"]
    try:
        registry = TaskRegistry.from_config(ctx.config["scopes"])
    except DuplicateTaskError as exc:
        raise CLIError(str(exc), exit_code=int(ExitCode.CONFIG_ERROR)) from exc

    if args.list:
        return _list_scopes(ctx, registry)

    requested = args.scope or suite_cfg["default_scopes"] or None
    options = SchedulerOptions(
        concurrency=suite_cfg["concurrency"],
        fail_fast=suite_cfg["fail_fast"],
        sequential=suite_cfg["sequential"],
        task_timeout_seconds=suite_cfg["task_timeout_seconds"] or None,
        cwd=ctx.root.as_posix(),
        dry_run=bool(args.dry_run),
    )
    runner = LocalProcessRunner(max_output_lines=suite_cfg["output_line_limit"])
    report = Scheduler(registry, runner).run_sync(requested, options, run_id=ctx.run_id)

    if ctx.json_output:
        _emit_json(report.to_dict())
    else:
        _render_suite(ctx, report)
    return int(report.exit_code)


def _cmd_policy_lint(args: argparse.Namespace) -> int:
    ctx = _prepare(
        args,
        overrides={
            "policy.strict": True if args.strict else None,
            "policy.scripts_dir": args.scripts_dir,
        },
    )
    policy_cfg = ctx.config["policy"]
    ignore_dirs = split_csv(args.ignore) or tuple(policy_cfg["ignore_dirs"])
    options = PolicyOptions(
        scripts_dir=Path(policy_cfg["scripts_dir"]),
        strict=policy_cfg["strict"],
        filters=split_csv(args.filter),
        ignore_dirs=ignore_dirs,
        include_deprecated=bool(args.include_deprecated),
        ignore_patterns=tuple(policy_cfg["ignore"]),
        library_dirs=tuple(policy_cfg["library_dirs"]),
        max_script_lines=policy_cfg["max_script_lines"],
        max_function_lines=policy_cfg["max_function_lines"],
        deprecation_max_days=policy_cfg["deprecation_max_days"],
    )
    report = validate_scripts(options, run_id=ctx.run_id)

    if args.report:
        _emit_json({"policy-lint": report.to_dict()})
    elif ctx.json_output:
        _emit_json(report.to_dict())
    else:
        ctx.renderer.lines(render_policy_text(report, verbose=ctx.verbose))
    report.raise_for_status()
    return int(ExitCode.SUCCESS)


def _cmd_branch_guard(args: argparse.Namespace) -> int:
    ctx = _prepare(args)
    return _run_guard(
        ctx,
        args,
        GuardName.BRANCH,
        lambda lifecycle: check_branch(lifecycle, branch=args.branch, git=GitClient(ctx.root)),
    )


def _cmd_commit_guard(args: argparse.Namespace) -> int:
    ctx = _prepare(args)
    return _run_guard(
        ctx,
        args,
        GuardName.COMMIT,
        lambda lifecycle: check_commits(
            lifecycle,
            GitClient(ctx.root),
            revision_range=args.revision_range,
            from_ref=args.from_ref,
            to_ref=args.to_ref,
            max_count=args.max_count,
        ),
    )


def _cmd_pr_title_guard(args: argparse.Namespace) -> int:
    ctx = _prepare(args)
    return _run_guard(
        ctx,
        args,
        GuardName.PR_TITLE,
        lambda lifecycle: check_pr_title(
            lifecycle,
            _hosting_client(ctx),
            branch=args.branch,
            pr_number=args.pr_number,
            git=GitClient(ctx.root),
        ),
    )


def _cmd_drift_check(args: argparse.Namespace) -> int:
    ctx = _prepare(args, overrides={"lifecycle.ideas_dir": args.ideas_dir})
    lifecycle = _lifecycle(ctx)
    hosting_cfg = ctx.config["hosting"]

    source: StatusSource
    if args.snapshot:
        source = SnapshotStatusSource(_resolve_path(args.snapshot, ctx.root))
    else:
        source = GhProjectStatusSource(
            client=_hosting_client(ctx),
            project_number=hosting_cfg["project_number"],
            owner=hosting_cfg["project_owner"],
            status_field=hosting_cfg["status_field"],
            id_field=hosting_cfg["id_field"],
        )

    options = DriftOptions(
        root=ctx.root,
        ideas_dir=Path(ctx.config["lifecycle"]["ideas_dir"]),
        paths=split_csv(args.paths),
    )
    report = detect_drift(options, source, lifecycle, run_id=ctx.run_id)

    if ctx.json_output:
        _emit_json(report.to_dict())
    else:
        ctx.renderer.lines(render_drift_text(report, verbose=ctx.verbose))
    report.raise_for_status()
    return int(ExitCode.SUCCESS)


def _cmd_script_smoke(args: argparse.Namespace) -> int:
    ctx = _prepare(
        args,
        overrides={"smoke.timeout_seconds": args.timeout, "smoke.scripts_dir": args.scripts_dir},
    )
    smoke_cfg = ctx.config["smoke"]
    options = SmokeOptions(
        scripts_dir=Path(smoke_cfg["scripts_dir"]),
        filters=split_csv(args.filter),
        timeout_seconds=smoke_cfg["timeout_seconds"],
        dry_run_dirs=tuple(smoke_cfg["dry_run_dirs"]),
        skip_dirs=(*ctx.config["policy"]["library_dirs"], *ctx.config["policy"]["ignore_dirs"]),
        cwd=ctx.root,
    )
    runner = LocalProcessRunner(max_output_lines=SMOKE_OUTPUT_LINE_LIMIT)
    report = asyncio.run(run_smoke(options, runner, run_id=ctx.run_id))

    if ctx.json_output:
        _emit_json(report.to_dict())
    else:
        ctx.renderer.lines(render_smoke_text(report, verbose=ctx.verbose))
    report.raise_for_status()
    return int(ExitCode.SUCCESS)


def _cmd_config(args: argparse.Namespace) -> int:
    ctx = _prepare(args)
    redacted = redact_config(ctx.config)

    if ctx.json_output:
        _emit_json({"command": "config", "config": redacted})
        return 0

    ctx.renderer.kv("Config file", args.config_path or "(default: guardrails.toml)")
    ctx.renderer.text(json.dumps(redacted, indent=2, sort_keys=True, ensure_ascii=False))
    return 0


_COMMANDS: Final[dict[str, _Command]] = {
    command.name: command
    for command in (
        _Command(
            "suite",
            "Run guardrail scopes through the task scheduler",
            "Run verification tasks grouped by scope and aggregate one report.\n\n"
            "Examples:\n"
            "  guardrails suite\n"
            "  guardrails suite --scope app,scripts --fail-fast\n"
            "  guardrails suite --scope pr --output json\n\n"
            "Exit codes: 0 all required tasks passed, 11 otherwise.",
            _add_suite_arguments,
            _cmd_suite,
        ),
        _Command(
            "policy-lint",
            "Lint automation scripts against the script policy",
            "Check script headers, CLI contract flags, dangerous patterns and size budgets.\n\n"
            "Exit codes: 0 clean, 11 violations, 13 dangerous pattern found.",
            _add_policy_arguments,
            _cmd_policy_lint,
        ),
        _Command(
            "branch-guard",
            "Validate the branch name (type/ID-slug)",
            "Validate a branch name against the lifecycle branch pattern.\n"
            "Protected branches (main, master, develop, HEAD) are always valid.\n\n"
            "Exit codes: 0 valid, 12 violation, 1 error.",
            _add_branch_arguments,
            _cmd_branch_guard,
        ),
        _Command(
            "commit-guard",
            "Validate commit headers ([ID-slug] message)",
            "Validate every commit subject in a revision range.\n"
            "Range: --range, then --from/--to, then upstream merge-base..HEAD, then HEAD.\n\n"
            "Exit codes: 0 valid, 12 violation, 1 error.",
            _add_commit_arguments,
            _cmd_commit_guard,
        ),
        _Command(
            "pr-title-guard",
            "Validate the open pull request title ([ID] Title)",
            "Validate the title of the branch's open pull request via the gh CLI.\n\n"
            "Exit codes: 0 valid or no open PR, 12 violation, 1 error, 3 gh unavailable.",
            _add_pr_title_arguments,
            _cmd_pr_title_guard,
        ),
        _Command(
            "drift-check",
            "Detect lifecycle status drift",
            "Compare locally declared artifact statuses with the tracked project statuses.\n\n"
            "Exit codes: 0 no drift, 11 drift detected, 3 status source unavailable.",
            _add_drift_arguments,
            _cmd_drift_check,
        ),
        _Command(
            "script-smoke",
            "Smoke test automation scripts",
            "Run every script with --help; scripts in ops directories also with\n"
            "--dry-run --output json.\n\n"
            "Exit codes: 0 all probes passed, 11 otherwise.",
            _add_smoke_arguments,
            _cmd_script_smoke,
        ),
        _Command(
            "config",
            "Show the effective configuration",
            "Print the merged, redacted configuration (defaults < file < env < CLI).",
            _add_config_arguments,
            _cmd_config,
        ),
    )
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _prepare(
    args: argparse.Namespace, *, overrides: Mapping[str, object] | None = None
) -> _Context:
    root = _repo_root(args)
    try:
        config = load_config(args.config_path, base_dir=root, cli_overrides=overrides)
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise CLIError(str(exc), exit_code=int(ExitCode.CONFIG_ERROR)) from exc

    run_id = generate_run_id()
    observability = config["observability"]
    level = resolve_log_level(
        args.log_level,
        verbose=bool(args.verbose),
        configured=observability["log_level"],
    )
    setup_logging(observability, run_id=run_id, level=level)
    return _Context(
        root=root,
        config=config,
        run_id=run_id,
        renderer=create_renderer(no_color=bool(args.no_color), verbose=bool(args.verbose)),
        json_output=args.output == "json",
        verbose=bool(args.verbose),
    )


def _run_guard(
    ctx: _Context,
    args: argparse.Namespace,
    name: GuardName,
    check: Callable[[LifecycleConfig], GuardResult],
) -> int:
    try:
        result = check(_lifecycle(ctx))
    except GuardrailError as exc:
        if not (args.report or ctx.json_output):
            raise
        failure = {"valid": False, "error": str(exc)}
        _emit_json({name.value: failure} if args.report else {"script": name.value, **failure})
        return int(exc.exit_code)

    if args.report:
        _emit_json(result.envelope())
    elif ctx.json_output:
        _emit_json({"script": name.value, "run_id": ctx.run_id, **result.to_dict()})
    else:
        _render_guard(ctx.renderer, result)
    result.raise_for_status()
    return int(ExitCode.SUCCESS)


def _render_guard(renderer: CLIRenderer, result: GuardResult) -> None:
    if result.valid:
        renderer.ok(f"{result.check.value}: {result.message}")
        return
    renderer.fail(f"{result.check.value}: {result.message}")
    violations = result.payload.get("violations")
    if isinstance(violations, list):
        renderer.items(
            [
                f"{item['hash'][:12]} {item['subject']}"
                for item in violations
                if isinstance(item, dict)
            ]
        )
    pattern = result.payload.get("pattern")
    if isinstance(pattern, str):
        renderer.kv("  pattern", pattern)
    examples = result.payload.get("examples")
    if isinstance(examples, list) and examples:
        renderer.text("  valid examples:")
        renderer.items([str(item) for item in examples])


def _render_suite(ctx: _Context, report: RunReport) -> None:
    if report.dry_run:
        ctx.renderer.heading(f"guardrails (dry run): {report.queued} task(s) planned")
        ctx.renderer.items(list(report.planned))
        return
    ctx.renderer.lines(render_text(report, verbose=ctx.verbose))


def _list_scopes(ctx: _Context, registry: TaskRegistry) -> int:
    rows = [
        (scope, task.id, "yes" if task.optional else "", task.display_command)
        for scope in registry.scope_names
        for task in registry.tasks_for(scope)
    ]
    if ctx.json_output:
        _emit_json(
            {
                "scopes": {
                    scope: [task.to_dict() for task in registry.tasks_for(scope)]
                    for scope in registry.scope_names
                }
            }
        )
        return 0
    ctx.renderer.table(("scope", "task", "optional", "command"), rows)
    return 0


def _lifecycle(ctx: _Context) -> LifecycleConfig:
    return load_lifecycle_config(ctx.config["lifecycle"]["config_path"])


def _hosting_client(ctx: _Context) -> HostingClient:
    hosting_cfg = ctx.config["hosting"]
    token = os.environ.get(hosting_cfg["token_env"]) if hosting_cfg["token_env"] else None
    return HostingClient(ctx.root, cli=hosting_cfg["cli"], token=token or None)


def _emit_json(payload: Mapping[str, object]) -> None:
    """Emit a JSON payload to stdout with deterministic formatting."""

    print(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False))


def _repo_root(args: argparse.Namespace) -> Path:
    candidate = Path(args.cwd).expanduser().resolve()
    if not candidate.is_dir():
        raise CLIError(
            f"--cwd is not a directory: {candidate}", exit_code=int(ExitCode.CONFIG_ERROR)
        )
    return candidate


def _resolve_path(raw: str, root: Path) -> Path:
    candidate = Path(raw).expanduser()
    return candidate if candidate.is_absolute() else (root / candidate)


def _positive_int(raw: str) -> int:
    try:
        value = int(raw)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {raw!r}") from exc
    if value < 1:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {raw!r}")
    return value


def _positive_float(raw: str) -> float:
    try:
        value = float(raw)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected a positive number, got {raw!r}") from exc
    if value <= 0:
        raise argparse.ArgumentTypeError(f"expected a positive number, got {raw!r}")
    return value


__all__ = ["CLIError", "PROG", "build_parser", "build_tool_parser", "main", "run_cli"]

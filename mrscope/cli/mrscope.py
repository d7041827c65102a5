"""Main CLI entry point for mrscope - merge request review analytics for GitLab."""

import argparse
import sys
from pathlib import Path

from .init_config import init_config


def _add_project_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--project",
        "-p",
        type=str,
        default=None,
        help="GitLab project or group path, or numeric project id (default: detect from git remote)",
    )


def _add_analysis_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--timeframe",
        "-t",
        choices=["7d", "30d", "90d"],
        default=None,
        help="Analysis window (default: TIMEFRAME from .env, or 30d)",
    )
    parser.add_argument(
        "--no-cache",
        action="store_true",
        help="Recompute instead of using cached results",
    )
    _add_project_argument(parser)


def main():
    """Main CLI entry point for mrscope."""
    parser = argparse.ArgumentParser(
        prog="mrscope",
        description="Merge request review analytics for GitLab",
        epilog="Run 'mrscope <command> --help' for more information on a command.",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # init command - generate config
    init_parser = subparsers.add_parser(
        "init",
        help="Generate mrscope.yaml config for this repository",
        description="Detect the GitLab project and CODEOWNERS reviewers and write a starter config.",
    )
    init_parser.add_argument(
        "--root",
        type=Path,
        default=Path.cwd(),
        help="Repository root directory (default: current directory)",
    )
    init_parser.add_argument(
        "--output",
        "-o",
        type=Path,
        default=None,
        help="Output file path (default: mrscope.yaml in root)",
    )

    # team command - review speed, size and load across the team
    team_parser = subparsers.add_parser(
        "team",
        help="Team review analytics",
        description="Time to merge, time to first review, change size and reviewer load for a project or group.",
    )
    _add_analysis_arguments(team_parser)

    # engineer command - one engineer's history
    engineer_parser = subparsers.add_parser(
        "engineer",
        help="Review history for one engineer",
        description="Authored and reviewed MRs, feedback themes and response times for one engineer.",
    )
    engineer_parser.add_argument("username", type=str, help="GitLab username")
    _add_analysis_arguments(engineer_parser)

    # dashboard command - current open work
    dashboard_parser = subparsers.add_parser(
        "dashboard",
        help="Open MR workload and next reviewer",
        description="Open merge requests, per-engineer workload and the suggested next reviewer.",
    )
    _add_project_argument(dashboard_parser)

    # cache command - inspect and clear cached results
    cache_parser = subparsers.add_parser(
        "cache",
        help="Inspect or clear cached results",
        description="Cached results live in ~/.cache/mrscope/{project}/cache/",
    )
    cache_subparsers = cache_parser.add_subparsers(dest="cache_command")

    clear_parser = cache_subparsers.add_parser("clear", help="Remove cached results")
    clear_parser.add_argument(
        "--kind",
        "-k",
        choices=["complexity", "analytics", "engineer"],
        default=None,
        help="Only clear this kind of result (default: all)",
    )
    clear_parser.add_argument("--user", "-u", type=str, default=None, help="Only clear results for this engineer")
    _add_project_argument(clear_parser)

    info_parser = cache_subparsers.add_parser("info", help="Show when results were last cached")
    info_parser.add_argument("--user", "-u", type=str, default=None, help="Show engineer results for this user")
    _add_project_argument(info_parser)

    args = parser.parse_args()

    if args.command == "init":
        output = args.output or args.root / "mrscope.yaml"
        init_config(args.root, output)
        return

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    if args.command == "cache" and args.cache_command is None:
        cache_parser.print_help()
        sys.exit(1)

    # Import here to avoid slow startup for init/help
    import trio
    from rich.console import Console

    from .. import main as runners
    from ..cache import CacheKind
    from ..pipeline import AnalysisError
    from ..project import get_project

    console = Console()

    try:
        project = get_project(args.project)
        runners.setup_logging(project.log_file)

        if args.command == "team":
            timeframe = runners.parse_timeframe(args.timeframe)
            trio.run(runners.run_team, project, timeframe, not args.no_cache, console)

        elif args.command == "engineer":
            timeframe = runners.parse_timeframe(args.timeframe)
            trio.run(runners.run_engineer, project, args.username, timeframe, not args.no_cache, console)

        elif args.command == "dashboard":
            trio.run(runners.run_dashboard, project, console)

        elif args.cache_command == "clear":
            kind = CacheKind(args.kind) if args.kind else None
            removed = runners.clear_cache(project, kind=kind, user=args.user)
            console.print(f"Removed {removed} cached results for {project.path}")

        elif args.cache_command == "info":
            runners.show_cache_info(project, user=args.user, console=console)

        else:
            print(f"Unknown command: {args.command}")
            parser.print_help()
            sys.exit(1)

    except (ValueError, AnalysisError) as e:
        console.print(f"[red]Error: {e}[/]")
        sys.exit(1)


if __name__ == "__main__":
    main()

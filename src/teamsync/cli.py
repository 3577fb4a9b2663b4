from __future__ import annotations

import argparse
import sys

from rich.console import Console
from rich.markup import escape
from rich.text import Text

from . import __version__
from .client import GitHubCollaboratorClient
from .config import load_settings
from .engine import ReconciliationEngine
from .errors import TeamSyncError
from .logging_config import setup_logging
from .models import OutcomeStatus, ReconcilePlan, ReconcileReport
from .service import CollaboratorSync
from .store import YamlProjectStore

console = Console()


# =============================================================================
# Output Helpers
# =============================================================================


def _print_header(project_id: str, store_path: str, mode: str | None = None) -> None:
    title = Text()
    title.append("teamsync", style="bold magenta")
    title.append(f" v{__version__}", style="dim")
    if mode:
        title.append(f"  [{mode}]", style="bold yellow")

    console.print()
    console.print(title)
    console.print()
    console.print(f"  [bold]{escape(project_id)}[/bold] [dim]({escape(store_path)})[/dim]")
    console.print()


def _print_separator() -> None:
    console.print("  " + "─" * 50, style="dim")
    console.print()


def _print_audit(plan: ReconcilePlan) -> None:
    console.print(f"  [dim]repository[/dim]  {escape(plan.repository.full_name)}")
    console.print()

    if not plan.has_drift:
        console.print("  [green]✓ no drift detected[/green]")
        console.print()
        return

    console.print("  [yellow]⚠ drift detected[/yellow]")
    console.print()

    if plan.to_add:
        console.print("  [bold]Missing[/bold] (should have access):")
        for member, permission in plan.to_add:
            console.print(
                f"    [green]+[/green] {escape(member.github_username)} ({permission.value}) "
                f"[dim]user {escape(member.user_id)}[/dim]"
            )
        console.print()

    if plan.to_remove:
        console.print("  [bold]Extra[/bold] (should not have access):")
        for login in plan.to_remove:
            console.print(f"    [red]-[/red] {escape(login)}")
        console.print()

    _print_separator()
    total = len(plan.to_add) + len(plan.to_remove)
    console.print(f"  [bold]total drift:[/bold] {total} item(s)")
    console.print()
    console.print("  [dim]run without --audit to apply changes[/dim]")
    console.print()


def _print_report(report: ReconcileReport) -> None:
    console.print(f"  [dim]repository[/dim]  {escape(report.repository.full_name)}")
    console.print(f"  [dim]mode[/dim]        {report.mode}")
    console.print()

    for outcome in report.outcomes:
        name = escape(outcome.username or f"user {outcome.user_id}")
        detail = escape(outcome.reason or "")
        if outcome.status == OutcomeStatus.ADDED:
            perm = f"[{outcome.permission.value}]" if outcome.permission else ""
            if report.dry_run:
                console.print(f"  [blue]○[/blue] {name:<20} [dim]would add {escape(perm)}[/dim]")
            else:
                console.print(f"  [green]✓[/green] {name:<20} [dim]added {escape(perm)} {detail}[/dim]")
        elif outcome.status == OutcomeStatus.REMOVED:
            if report.dry_run:
                console.print(f"  [blue]○[/blue] {name:<20} [dim]would remove[/dim]")
            else:
                console.print(f"  [green]✓[/green] {name:<20} [dim]removed {detail}[/dim]")
        elif outcome.status == OutcomeStatus.FAILED:
            if len(detail) > 60:
                detail = detail[:57] + "..."
            console.print(f"  [red]✗[/red] {name:<20} [red]{detail}[/red]")
        elif outcome.status == OutcomeStatus.SKIPPED:
            console.print(f"  [dim]·[/dim] {name:<20} [dim]{detail}[/dim]")
        else:
            console.print(f"  [dim]·[/dim] {name:<20} [dim]unchanged[/dim]")
    console.print()

    _print_separator()
    parts = []
    if report.dry_run:
        if report.adds_succeeded:
            parts.append(f"[blue]{report.adds_succeeded} would add[/blue]")
        if report.removes_succeeded:
            parts.append(f"[blue]{report.removes_succeeded} would remove[/blue]")
    else:
        if report.adds_succeeded:
            parts.append(f"[green]{report.adds_succeeded} added[/green]")
        if report.removes_succeeded:
            parts.append(f"[yellow]{report.removes_succeeded} removed[/yellow]")
    if report.failed:
        parts.append(f"[red]{len(report.failed)} failed[/red]")

    summary = " · ".join(parts) if parts else "[dim]nothing to do[/dim]"
    console.print(f"  [bold]done[/bold]  {summary}")
    console.print()


def _normalize_argv(argv: list[str]) -> list[str]:
    normalized: list[str] = []
    for arg in argv:
        for prefix in ("--file", "--config", "--org", "--log-level", "--actor"):
            if arg.startswith(prefix) and arg != prefix and not arg.startswith(f"{prefix}="):
                value = arg[len(prefix):]
                if value:
                    normalized.extend([prefix, value])
                    break
        else:
            normalized.append(arg)
    return normalized


# =============================================================================
# Main Entry Point
# =============================================================================


def run(argv: list[str] | None = None) -> int:
    if argv is None:
        argv = sys.argv[1:]
    argv = _normalize_argv(argv)

    parser = argparse.ArgumentParser(
        prog="teamsync",
        description="Keep GitHub repository collaborators in line with ERP project teams.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
examples:
  teamsync proj1                  # converge collaborators on the team
  teamsync proj1 -n               # dry-run (preview)
  teamsync proj1 --audit          # show drift without changes
  teamsync proj1 -t u1 u2         # set the team and sync the change
  teamsync proj1 -f projects.yaml # use a custom store file
""",
    )
    parser.add_argument("project", metavar="PROJECT", help="Project id in the store")
    parser.add_argument("-f", "--file", metavar="FILE", help="Project store file (default: projects.yaml)")
    parser.add_argument("-c", "--config", metavar="FILE", help="Settings file (default: teamsync.yaml if present)")
    parser.add_argument("-o", "--org", metavar="ORG", help="Owner for repositories stored without one")
    parser.add_argument("-t", "--set-team", nargs="*", metavar="USER_ID",
                        help="Replace the project's team and sync only the change")
    parser.add_argument("-n", "--dry-run", action="store_true", help="Preview without making changes")
    parser.add_argument("-a", "--audit", action="store_true", help="Show drift without making changes")
    parser.add_argument("--actor", metavar="NAME", help="Who is running the sync (for the log)")
    parser.add_argument("--log-level", metavar="LEVEL", help="Log level (default: INFO)")
    parser.add_argument("-v", "--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-q", "--quiet", action="store_true", help="Minimal output")
    args = parser.parse_args(argv)

    if args.set_team is not None and (args.audit or args.dry_run):
        console.print("[red]error:[/red] --set-team cannot be combined with --audit or --dry-run")
        return 2

    try:
        settings = load_settings(args.config)
    except TeamSyncError as exc:
        console.print(f"[red]error:[/red] {escape(str(exc))}")
        return 1

    setup_logging(args.log_level or settings.log_level)
    store_path = args.file or settings.store_path
    organization = args.org or settings.organization

    mode = None
    if args.dry_run:
        mode = "dry-run"
    elif args.audit:
        mode = "audit"
    elif args.set_team is not None:
        mode = "team edit"

    if not args.quiet:
        _print_header(args.project, store_path, mode)

    try:
        store = YamlProjectStore(store_path)
        client = GitHubCollaboratorClient(settings.github_config())
    except TeamSyncError as exc:
        console.print(f"[red]error:[/red] {escape(str(exc))}")
        return 1

    with client:
        engine = ReconciliationEngine(client, default_owner=organization, dry_run=args.dry_run)
        sync = CollaboratorSync(store, engine)

        try:
            if args.audit:
                plan = sync.audit(args.project)
                if not args.quiet:
                    _print_audit(plan)
                return 0

            if args.set_team is not None:
                reports: list[ReconcileReport | None] = []
                store.subscribe(
                    lambda project_id, old, new: reports.append(
                        sync.reconcile_on_team_edit(project_id, old, new, actor=args.actor)
                    )
                )
                store.set_team(args.project, args.set_team)
                report = reports[0] if reports else None
                if report is None:
                    if not args.quiet:
                        console.print("  [dim]team saved; no linked repository, nothing to sync[/dim]")
                        console.print()
                    return 0
            else:
                report = sync.force_reconcile(args.project, actor=args.actor)
        except TeamSyncError as exc:
            console.print(f"[red]error:[/red] {escape(str(exc))}")
            return 1

    if not args.quiet:
        _print_report(report)
    return 0 if report.ok else 1


def main() -> None:
    raise SystemExit(run())


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        sys.exit(130)

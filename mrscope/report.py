"""Terminal reports for team, engineer and dashboard views.

Each view is a list of sections (headline, summary, details, table)
rendered with rich.
"""

from __future__ import annotations

from dataclasses import dataclass

from rich.console import Console
from rich.table import Table

from .analytics.engineer import EngineerReport
from .analytics.metrics import TeamAnalytics
from .pipeline import DashboardData


@dataclass
class ReportSection:
    """A section of the report with headline and details."""

    headline: str
    summary: str
    details: list[str] | None = None
    table: list[dict] | None = None


def format_pct(value: float | None) -> str:
    """Format percentage with one decimal."""
    if value is None:
        return "N/A"
    return f"{value:.1f}%"


def format_hours(value: float | None) -> str:
    """Format hours in human-readable way."""
    if value is None:
        return "N/A"
    if value < 1:
        return f"{int(value * 60)} min"
    if value < 24:
        return f"{value:.1f} hrs"
    return f"{value / 24:.1f} days"


def print_section(console: Console, section: ReportSection) -> None:
    """Print a report section."""
    console.print(f"\n[bold cyan]## {section.headline}[/]")
    console.print(section.summary)

    if section.details:
        for detail in section.details:
            console.print(f"  - {detail}")

    if section.table:
        table = Table(show_header=True, header_style="bold")
        headers = list(section.table[0].keys())
        for header in headers:
            table.add_column(header)
        for row in section.table:
            table.add_row(*(str(row.get(h, "")) for h in headers))
        console.print(table)


def team_sections(analytics: TeamAnalytics) -> list[ReportSection]:
    """How fast does review move, and how big are the changes?"""
    if not analytics.total_mrs_analyzed:
        return [ReportSection("Team review", "No merge requests found in this timeframe.")]

    sections = []

    details = [
        f"Time to first review: {format_hours(analytics.avg_time_to_first_review)}",
        f"Draft time (merged MRs): {format_hours(analytics.avg_draft_duration)}",
        f"Review time (merged MRs): {format_hours(analytics.avg_review_duration)}",
    ]
    if analytics.estimated_mrs:
        details.append(
            f"{analytics.estimated_mrs} of {analytics.detailed_mrs_analyzed} MRs used estimated metrics"
        )
    sections.append(
        ReportSection(
            headline="Review speed",
            summary=(
                f"{analytics.merged_mrs_analyzed} of {analytics.total_mrs_analyzed} MRs merged, "
                f"taking {format_hours(analytics.avg_time_to_merge)} on average."
            ),
            details=details,
        )
    )

    sections.append(
        ReportSection(
            headline="Review load",
            summary=(
                f"{analytics.avg_reviewers_per_mr:.1f} reviewers and "
                f"{analytics.avg_comments_per_mr:.1f} review comments per MR."
            ),
            table=[
                {"Reviewers": label, "MRs": count}
                for label, count in analytics.mrs_by_reviewers.model_dump().items()
            ],
        )
    )

    sections.append(
        ReportSection(
            headline="Change size",
            summary=(
                f"+{analytics.avg_lines_added_per_mr:.0f} / -{analytics.avg_lines_deleted_per_mr:.0f} lines "
                f"across {analytics.avg_files_changed_per_mr:.1f} files per MR."
            ),
            table=[{"Size": label, "MRs": count} for label, count in analytics.mrs_by_size.model_dump().items()],
        )
    )

    if analytics.weekly_trends:
        sections.append(
            ReportSection(
                headline="Weekly trend",
                summary=f"Last {len(analytics.weekly_trends)} weeks by creation date.",
                table=[
                    {
                        "Week": t.week,
                        "Merged": t.merged_mrs,
                        "Time to merge": format_hours(t.avg_time_to_merge),
                        "Avg lines": f"{t.avg_lines_changed:.0f}",
                        "Avg reviewers": f"{t.avg_reviewers:.1f}",
                    }
                    for t in analytics.weekly_trends
                ],
            )
        )

    if analytics.slowest_merges:
        sections.append(
            ReportSection(
                headline="Slowest merges",
                summary="Where review took the longest.",
                table=[
                    {
                        "MR": f"!{mr.iid}",
                        "Title": mr.title[:50],
                        "Author": mr.author,
                        "Time to merge": format_hours(mr.time_to_merge),
                        "Lines": mr.lines_changed,
                    }
                    for mr in analytics.slowest_merges
                ],
            )
        )

    return sections


def engineer_sections(report: EngineerReport) -> list[ReportSection]:
    """Activity, feedback received and responsiveness for one engineer."""
    headline = report.username if not report.title else f"{report.username} ({report.title})"
    detailed = report.detailed
    responses = report.response_time_metrics
    comments = report.comment_analysis

    sections = [
        ReportSection(
            headline=headline,
            summary=(
                f"{len(report.authored_mrs)} authored, {len(report.reviewed_mrs)} reviewed, "
                f"{len(report.merged_mrs)} merged in the last {report.timeframe.days} days."
            ),
            details=[
                f"Review comments per authored MR: {detailed.avg_comments_per_authored_mr:.1f}",
                f"Reviewers commenting per MR: {detailed.avg_review_cycles_as_author:.1f}",
                f"Time to merge: {format_hours(detailed.avg_time_to_merge)}",
                f"Time to first review comment: {format_hours(detailed.avg_time_to_first_comment)}",
            ],
            table=[s.model_dump() for s in report.weekly_stats],
        ),
        ReportSection(
            headline="Responsiveness",
            summary=(
                f"Responded to {responses.responded_comments} of {responses.total_comments} review comments "
                f"({format_pct(responses.response_rate)}), median {format_hours(responses.median_response_time)}."
            ),
            table=[
                {"Response time": label, "Comments": count}
                for label, count in responses.distribution.model_dump().items()
            ],
        ),
    ]

    if comments.total_comments:
        sections.append(
            ReportSection(
                headline="Feedback themes",
                summary=f"{comments.total_comments} review comments, quality score {comments.overall_score:.0f}/100.",
                details=[
                    f"{r.principle} ({r.priority}): {r.action_items[0]}" for r in comments.recommendations
                ],
                table=[
                    {
                        "Category": issue.category,
                        "Comments": issue.count,
                        "Share": format_pct(issue.percentage),
                        "Severity": issue.severity,
                    }
                    for issue in comments.top_issues
                ],
            )
        )

    if report.notes_unavailable:
        sections.append(
            ReportSection(
                headline="Data gaps",
                summary=f"Notes could not be fetched for {report.notes_unavailable} MRs; they are left out above.",
            )
        )

    return sections


def dashboard_sections(data: DashboardData) -> list[ReportSection]:
    """Current open work per engineer and the suggested next reviewer."""
    complexities = {(c.project_id, c.iid): c for c in data.complexities}
    estimated = sum(1 for c in data.complexities if c.source == "estimated")

    sections = [
        ReportSection(
            headline="Workload",
            summary=f"{len(data.merge_requests)} open MRs across {len(data.engineer_stats)} engineers.",
            details=[f"{estimated} MRs use an estimated complexity"] if estimated else None,
            table=[
                {
                    "Engineer": s.user.username,
                    "Open": s.open_mrs,
                    "Draft": s.draft_mrs,
                    "Reviews": s.assigned_reviews,
                    "Review complexity": f"{s.review_complexity:.1f}",
                    "Workload": f"{s.workload_score:.1f}",
                }
                for s in data.engineer_stats
            ],
        )
    ]

    if data.merge_requests:
        rows = []
        for mr in data.merge_requests:
            complexity = complexities.get((mr.project_id, mr.iid))
            rows.append(
                {
                    "MR": f"!{mr.iid}",
                    "Title": mr.title[:50],
                    "Author": mr.author.username,
                    "Reviewers": ", ".join(r.username for r in mr.reviewers) or "-",
                    "Complexity": f"{complexity.complexity_score:.1f}" if complexity else "-",
                }
            )
        sections.append(ReportSection("Open merge requests", "Most recently updated first.", table=rows))

    if data.next_reviewer:
        sections.append(
            ReportSection(
                headline="Next reviewer",
                summary=(
                    f"{data.next_reviewer.user.username} has the lightest load "
                    f"(workload {data.next_reviewer.workload_score:.1f})."
                ),
            )
        )
    else:
        sections.append(ReportSection("Next reviewer", "No eligible reviewer found."))

    return sections


def print_report(sections: list[ReportSection], console: Console | None = None) -> None:
    console = console or Console()
    for section in sections:
        print_section(console, section)

"""Report generation and export.

A report freezes the dashboard aggregations for a date range into one row.
Exports render that stored payload; they never recompute it.
"""

import csv
import io
import json
import logging
from dataclasses import dataclass
from datetime import date

from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from errors import UnsupportedExportFormat
from models.report import Report
from models.social_account import as_utc
from services import account_store, analytics_service

logger = logging.getLogger(__name__)

TOP_POSTS_IN_REPORT = 10
EXPORT_FORMATS = ("csv", "json", "pdf")


class DateRange(BaseModel):
    start: date
    end: date


@dataclass
class ExportedReport:
    content: str
    media_type: str
    filename: str


async def generate_report(
    db: AsyncSession,
    user_id: str,
    report_type: str,
    date_range: DateRange,
) -> Report:
    """Assemble every section first, then insert the report in one commit."""
    accounts = await account_store.list_accounts(db, user_id, active_only=True)

    overview = await analytics_service.compute_overview(db, accounts)
    platform_stats = await analytics_service.compute_platform_stats(db, accounts)
    top_posts = await analytics_service.compute_top_posts(db, accounts, TOP_POSTS_IN_REPORT)
    follower_growth = await analytics_service.compute_follower_growth(
        db, accounts, date_range.start, date_range.end
    )
    distribution = await analytics_service.compute_platform_distribution(db, accounts)

    time_range = {"start": date_range.start.isoformat(), "end": date_range.end.isoformat()}
    payload = {
        "overview": overview.model_dump(mode="json"),
        "platform_stats": [s.model_dump(mode="json") for s in platform_stats],
        "top_posts": [p.model_dump(mode="json") for p in top_posts],
        "follower_growth": [g.model_dump(mode="json") for g in follower_growth],
        "platform_distribution": distribution,
        "time_range": time_range,
    }

    report = Report(
        user_id=user_id,
        report_type=report_type,
        title=f"{report_type[:1].upper()}{report_type[1:]} Analytics Report",
        data=payload,
        date_range=time_range,
    )
    db.add(report)
    await db.commit()
    await db.refresh(report)

    logger.info(f"Generated {report_type} report {report.id} for user {user_id}")
    return report


def report_to_dict(report: Report) -> dict:
    """Serializable view of a stored report, payload under "data"."""
    created_at = as_utc(report.created_at)
    return {
        "id": report.id,
        "user_id": report.user_id,
        "report_type": report.report_type,
        "title": report.title,
        "data": report.data,
        "date_range": report.date_range,
        "created_at": created_at.isoformat() if created_at else None,
    }


# ============== Export ==============

def _header_lines(report: Report) -> list[str]:
    time_range = report.data.get("time_range", report.date_range)
    created_at = as_utc(report.created_at)
    return [
        f"Report: {report.title}",
        f"Generated: {created_at.isoformat() if created_at else ''}",
        f"Time Range: {time_range.get('start')} to {time_range.get('end')}",
    ]


def export_csv(report: Report) -> str:
    """CSV with OVERVIEW, PLATFORM STATISTICS and TOP PERFORMING POSTS sections.

    Every section ends with a blank line.
    """
    data = report.data
    overview = data.get("overview", {})
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")

    for line in _header_lines(report):
        writer.writerow([line])
    writer.writerow([])

    writer.writerow(["OVERVIEW"])
    writer.writerow(["Total Followers", overview.get("total_followers", 0)])
    writer.writerow(["Engagement Rate", f"{overview.get('engagement_rate', 0):.2f}%"])
    writer.writerow(["Total Impressions", overview.get("total_impressions", 0)])
    writer.writerow(["Active Platforms", overview.get("active_platforms", 0)])
    writer.writerow([])

    writer.writerow(["PLATFORM STATISTICS"])
    writer.writerow(["Platform", "Username", "Followers", "Engagement Rate", "Impressions", "Reach"])
    for stat in data.get("platform_stats", []):
        writer.writerow([
            stat["platform"],
            stat["username"],
            stat["followers"],
            f"{stat['engagement']:.2f}%",
            stat.get("impressions", 0),
            stat.get("reach", 0),
        ])
    writer.writerow([])

    writer.writerow(["TOP PERFORMING POSTS"])
    writer.writerow(["Platform", "Content", "Likes", "Comments", "Shares", "Views", "Engagement Rate"])
    for post in data.get("top_posts", []):
        writer.writerow([
            post["platform"],
            " ".join((post.get("content") or "").split())[:100],
            post["likes"],
            post["comments"],
            post["shares"],
            post["views"],
            f"{post['engagement_rate']:.2f}%",
        ])
    writer.writerow([])

    return buffer.getvalue()


def export_text(report: Report) -> str:
    """Plain-text rendering used for the "pdf" format."""
    data = report.data
    overview = data.get("overview", {})
    lines = ["SOCIAL MEDIA ANALYTICS REPORT", ""]
    lines += _header_lines(report)
    lines += [
        "",
        "OVERVIEW",
        f"Total Followers: {overview.get('total_followers', 0)}",
        f"Engagement Rate: {overview.get('engagement_rate', 0):.2f}%",
        f"Total Impressions: {overview.get('total_impressions', 0)}",
        f"Active Platforms: {overview.get('active_platforms', 0)}",
        "",
        "PLATFORM STATISTICS",
    ]
    for stat in data.get("platform_stats", []):
        lines.append(
            f"{stat['platform']} ({stat['username']}): {stat['followers']} followers, "
            f"{stat['engagement']:.2f}% engagement"
        )
    lines += ["", "TOP PERFORMING POSTS"]
    for index, post in enumerate(data.get("top_posts", []), start=1):
        content = post.get("content") or ""
        lines.append(f"{index}. {post['platform']}: {content[:100]}")
        lines.append(
            f"   Likes: {post['likes']}, Comments: {post['comments']}, Shares: {post['shares']}"
        )
    lines.append("")
    return "\n".join(lines) + "\n"


def export_report(report: Report, fmt: str) -> ExportedReport:
    """Render a stored report. Raises UnsupportedExportFormat for unknown formats."""
    fmt = (fmt or "").lower()
    stem = f"report-{report.id}"

    if fmt == "csv":
        return ExportedReport(export_csv(report), "text/csv", f"{stem}.csv")
    if fmt == "json":
        return ExportedReport(
            json.dumps(report_to_dict(report), indent=2),
            "application/json",
            f"{stem}.json",
        )
    if fmt == "pdf":
        # No binary PDF rendering; the text layout is served as-is
        return ExportedReport(export_text(report), "text/plain", f"{stem}.txt")

    raise UnsupportedExportFormat(
        f"Unsupported format: {fmt}. Use one of: {', '.join(EXPORT_FORMATS)}"
    )

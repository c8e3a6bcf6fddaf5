"""Reports router - generate, list, fetch and export analytics reports."""

import logging
from datetime import datetime
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import Response
from pydantic import BaseModel, Field, model_validator
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from middleware.auth import CurrentUser
from middleware.rate_limit import REPORT_GENERATE_LIMIT, limiter
from models.report import Report
from models.social_account import as_utc
from services import account_store, report_service
from services.report_service import DateRange

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/reports", tags=["reports"])


# ============== Request/Response Models ==============

class GenerateReportRequest(BaseModel):
    report_type: str = Field(..., min_length=1, max_length=50)
    date_range: DateRange

    @model_validator(mode="after")
    def check_range(self) -> "GenerateReportRequest":
        if self.date_range.end < self.date_range.start:
            raise ValueError("date_range.end must not be before date_range.start")
        return self


class ReportResponse(BaseModel):
    id: str
    report_type: str
    title: str
    data: dict[str, Any]
    date_range: dict[str, Any]
    created_at: datetime

    @classmethod
    def from_report(cls, report: Report) -> "ReportResponse":
        return cls(
            id=report.id,
            report_type=report.report_type,
            title=report.title,
            data=report.data,
            date_range=report.date_range,
            created_at=as_utc(report.created_at),
        )


# ============== Endpoints ==============

@router.post("/generate", response_model=ReportResponse)
@limiter.limit(REPORT_GENERATE_LIMIT)
async def generate_report(
    request: Request,
    body: GenerateReportRequest,
    current_user: CurrentUser,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Aggregate the caller's analytics for a date range into a stored report."""
    report = await report_service.generate_report(
        db, current_user.user_id, body.report_type, body.date_range
    )
    return ReportResponse.from_report(report)


@router.get("", response_model=list[ReportResponse])
async def list_reports(
    current_user: CurrentUser,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Caller's reports, newest first."""
    reports = await account_store.list_reports(db, current_user.user_id)
    return [ReportResponse.from_report(r) for r in reports]


@router.get("/{report_id}", response_model=ReportResponse)
async def get_report(
    report_id: str,
    current_user: CurrentUser,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    report = await account_store.get_report(db, current_user.user_id, report_id)
    return ReportResponse.from_report(report)


@router.get("/{report_id}/export")
async def export_report(
    report_id: str,
    current_user: CurrentUser,
    db: Annotated[AsyncSession, Depends(get_db)],
    fmt: str = Query("csv", alias="format"),
) -> Response:
    """Download a stored report as csv, json or pdf (plain text)."""
    report = await account_store.get_report(db, current_user.user_id, report_id)
    exported = report_service.export_report(report, fmt)
    return Response(
        content=exported.content,
        media_type=exported.media_type,
        headers={"Content-Disposition": f'attachment; filename="{exported.filename}"'},
    )

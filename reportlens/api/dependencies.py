"""
Request Dependencies
Medical Report Insights

Services live on `app.state` (wired in the lifespan) so tests can swap
them through `app.dependency_overrides`.
"""

from fastapi import Depends, Header, HTTPException, Request

from reportlens.models.report import Report
from reportlens.services.report_pipeline import ReportPipeline
from reportlens.services.report_store import ReportStore


def get_report_store(request: Request) -> ReportStore:
    return request.app.state.report_store


def get_pipeline(request: Request) -> ReportPipeline:
    return request.app.state.pipeline


async def get_current_owner_id(
    x_user_id: int = Header(..., alias="X-User-ID", ge=1, description="Authenticated user id"),
) -> int:
    """The upstream gateway authenticates the caller and forwards their id."""
    return x_user_id


async def get_owned_report(
    report_id: str,
    owner_id: int = Depends(get_current_owner_id),
    store: ReportStore = Depends(get_report_store),
) -> Report:
    report = await store.get_by_id(report_id)
    if report is None:
        raise HTTPException(status_code=404, detail=f"Report {report_id} not found")
    if report.owner_id != owner_id:
        raise HTTPException(status_code=403, detail="Access denied")
    return report

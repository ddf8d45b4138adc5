"""
Reports API Routes
Medical Report Insights

Endpoints:
  POST   /api/v1/reports/upload          - Upload a report and queue it for analysis
  GET    /api/v1/reports                 - List the caller's reports (paginated)
  GET    /api/v1/reports/{id}            - Report metadata and processing status
  GET    /api/v1/reports/{id}/analysis   - Parsed analysis (completed reports only)
  GET    /api/v1/reports/{id}/metrics    - Health metrics (completed reports only)
  GET    /api/v1/reports/{id}/export     - Export report analysis as JSON
  DELETE /api/v1/reports/{id}            - Delete a report and its stored file
"""

import io
import json
import logging

from fastapi import APIRouter, UploadFile, File, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse
from pydantic import ValidationError

from reportlens.api.dependencies import (
    get_current_owner_id,
    get_owned_report,
    get_pipeline,
    get_report_store,
)
from reportlens.core.config import settings
from reportlens.core.errors import StoreError
from reportlens.models.report import Report
from reportlens.schemas.report import (
    Analysis,
    AnalysisResponse,
    ErrorResponse,
    MetricsResponse,
    PaginatedReports,
    ReportResponse,
    ReportStatus,
    UploadResponse,
)
from reportlens.services.report_pipeline import ReportPipeline
from reportlens.services.report_store import ReportStore
from reportlens.services.response_normalizer import parse_payload
from reportlens.services.text_extractor import content_type_for
from reportlens.utils.file_handler import remove_file, save_upload, validate_upload

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/reports", tags=["Medical Reports"])


def _completed_analysis(report: Report) -> Analysis:
    """Parsed analysis of a completed report; 400 for any other status."""
    if report.processing_status != ReportStatus.COMPLETED.value:
        raise HTTPException(status_code=400, detail="Report is not ready yet")
    try:
        return parse_payload(report.analysis_payload or "")
    except ValidationError as e:
        logger.error("Stored analysis for report %s is unreadable: %s", report.id, e)
        raise HTTPException(status_code=500, detail="Stored analysis could not be read")


# ── Upload ─────────────────────────────────────────────────────────
@router.post(
    "/upload",
    status_code=202,
    response_model=UploadResponse,
    summary="Upload a medical report for analysis",
    description=(
        "Upload a PDF, DOCX or TXT medical report. The file is stored and queued; "
        "poll `GET /api/v1/reports/{id}` until `processing_status` is `completed`. "
        "**Disclaimer:** This system is for informational purposes only and does not provide medical diagnosis."
    ),
    responses={
        400: {"model": ErrorResponse},
        413: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
async def upload_report(
    file: UploadFile = File(..., description="Medical report (PDF, DOCX or TXT, max 20MB)"),
    owner_id: int = Depends(get_current_owner_id),
    store: ReportStore = Depends(get_report_store),
    pipeline: ReportPipeline = Depends(get_pipeline),
):
    if not file.filename:
        raise HTTPException(status_code=400, detail="No filename provided")

    content = await file.read()
    try:
        validate_upload(
            file.filename,
            len(content),
            settings.allowed_extensions_list,
            settings.max_file_size_bytes,
        )
    except OverflowError as e:
        raise HTTPException(status_code=413, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    try:
        storage_path = save_upload(settings.upload_dir, file.filename, content)
    except OSError as e:
        logger.error("Failed to store upload '%s': %s", file.filename, e)
        raise HTTPException(status_code=500, detail="Failed to save file")

    report = Report(
        owner_id=owner_id,
        original_filename=file.filename,
        storage_path=storage_path,
        declared_file_type=content_type_for(file.filename),
        file_size_bytes=len(content),
    )
    try:
        report_id = await store.create(report)
    except StoreError as e:
        logger.error("Failed to save report metadata for '%s': %s", file.filename, e)
        remove_file(storage_path)
        raise HTTPException(status_code=500, detail="Failed to save report metadata")

    pipeline.schedule(report_id)

    return UploadResponse(
        message="File uploaded successfully and queued for processing",
        success=True,
        report_id=report_id,
    )


# ── List History ───────────────────────────────────────────────────
@router.get(
    "",
    response_model=PaginatedReports,
    summary="List the caller's reports",
)
async def list_reports(
    limit: int = Query(default=20, ge=1, le=100, description="Items per page"),
    offset: int = Query(default=0, ge=0, description="Items to skip"),
    owner_id: int = Depends(get_current_owner_id),
    store: ReportStore = Depends(get_report_store),
):
    items = await store.get_by_owner(owner_id, limit=limit, offset=offset)
    total = await store.count_by_owner(owner_id)
    return PaginatedReports(
        items=[ReportResponse.from_report(item) for item in items],
        total=total,
        limit=limit,
        offset=offset,
    )


# ── Get Single Report ──────────────────────────────────────────────
@router.get(
    "/{report_id}",
    response_model=ReportResponse,
    summary="Get report metadata and processing status",
)
async def get_report(report: Report = Depends(get_owned_report)):
    return ReportResponse.from_report(report)


# ── Get Analysis ───────────────────────────────────────────────────
@router.get(
    "/{report_id}/analysis",
    response_model=AnalysisResponse,
    summary="Get the parsed analysis of a completed report",
    responses={400: {"model": ErrorResponse}},
)
async def get_analysis(report: Report = Depends(get_owned_report)):
    analysis = _completed_analysis(report)
    return AnalysisResponse(
        report_id=report.id,
        analysis=analysis,
        processed_at=report.processed_at,
    )


# ── Get Metrics ────────────────────────────────────────────────────
@router.get(
    "/{report_id}/metrics",
    response_model=MetricsResponse,
    summary="Get health metrics for gauge display",
    responses={400: {"model": ErrorResponse}},
)
async def get_metrics(report: Report = Depends(get_owned_report)):
    analysis = _completed_analysis(report)
    return MetricsResponse(report_id=report.id, metrics=analysis.health_metrics)


# ── Export JSON ────────────────────────────────────────────────────
@router.get(
    "/{report_id}/export",
    summary="Export report analysis as JSON file",
)
async def export_report(report: Report = Depends(get_owned_report)):
    """Download the complete analysis JSON for a completed report."""
    analysis = _completed_analysis(report)

    export_data = {
        "id": report.id,
        "filename": report.original_filename,
        "status": report.processing_status,
        "disclaimer": settings.disclaimer,
        "analysis": analysis.model_dump(),
        "metadata": {
            "file_type": report.declared_file_type,
            "file_size_bytes": report.file_size_bytes,
            "uploaded_at": report.uploaded_at.isoformat(),
            "processed_at": report.processed_at.isoformat() if report.processed_at else None,
        },
    }

    json_bytes = json.dumps(export_data, indent=2, default=str).encode("utf-8")
    filename = f"medical_analysis_{report.id[:8]}.json"

    return StreamingResponse(
        io.BytesIO(json_bytes),
        media_type="application/json",
        headers={
            "Content-Disposition": f'attachment; filename="{filename}"'
        },
    )


# ── Delete Report ──────────────────────────────────────────────────
@router.delete(
    "/{report_id}",
    status_code=204,
    summary="Delete a report",
)
async def delete_report(
    report: Report = Depends(get_owned_report),
    store: ReportStore = Depends(get_report_store),
):
    """Permanently delete a report, then its stored file."""
    if not await store.delete(report.id):
        raise HTTPException(status_code=404, detail=f"Report {report.id} not found")
    remove_file(report.storage_path)

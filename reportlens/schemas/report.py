"""
Pydantic Schemas - Analysis Payload & Request/Response Models
Medical Report Insights
"""

from pydantic import BaseModel, Field, field_validator
from typing import Any, List, Optional
from datetime import datetime
from enum import Enum

DISCLAIMER = (
    "This system is for informational purposes only and does not provide medical diagnosis."
)


# ── Enums ──────────────────────────────────────────────────────────
class ReportStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class MetricStatus(str, Enum):
    NORMAL = "normal"
    WARNING = "warning"
    CRITICAL = "critical"


STATUS_MESSAGES = {
    ReportStatus.PENDING: "Your report is queued for analysis.",
    ReportStatus.PROCESSING: "Your report is being analyzed.",
    ReportStatus.COMPLETED: "Analysis complete.",
    ReportStatus.FAILED: (
        "We couldn't process this file. Please check that it is a readable "
        "PDF, DOCX or text report and try uploading it again."
    ),
}


# ── Health Metric ──────────────────────────────────────────────────
class HealthMetric(BaseModel):
    """One measured health parameter, scored 0-100 where 100 is optimal."""

    name: str = ""
    # Number, text or compound (e.g. [128, 84] for blood pressure), kept as sent.
    value: Any = None
    unit: str = ""
    score: float = 0.0
    status: str = ""
    range_min: float = 0.0
    range_max: float = 0.0
    description: str = ""

    @field_validator("name", "unit", "status", "description", mode="before")
    @classmethod
    def _null_as_empty_string(cls, v):
        return "" if v is None else v

    @field_validator("score", "range_min", "range_max", mode="before")
    @classmethod
    def _null_as_zero(cls, v):
        return 0.0 if v is None else v


# ── Analysis ───────────────────────────────────────────────────────
class Analysis(BaseModel):
    """
    Structured result of interpreting a report.

    Stored as JSON in `Report.analysis_payload`; field names are part of
    the persisted contract and must not change.
    """

    summary: str = ""
    simple_summary: str = ""
    health_metrics: List[HealthMetric] = Field(default_factory=list)
    key_findings: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    risk_level: str = ""

    @field_validator("summary", "simple_summary", "risk_level", mode="before")
    @classmethod
    def _null_as_empty_string(cls, v):
        return "" if v is None else v

    @field_validator("health_metrics", "key_findings", "recommendations", mode="before")
    @classmethod
    def _null_as_empty_list(cls, v):
        return [] if v is None else v


# ── Upload Response ────────────────────────────────────────────────
class UploadResponse(BaseModel):
    message: str
    success: bool
    report_id: str
    status: ReportStatus = ReportStatus.PENDING


# ── Report Response ────────────────────────────────────────────────
class ReportResponse(BaseModel):
    """Report metadata and processing state. Never carries the raw error note."""

    id: str
    owner_id: int
    original_filename: str
    declared_file_type: str
    file_size_bytes: int
    processing_status: ReportStatus
    status_message: str
    uploaded_at: datetime
    processed_at: Optional[datetime] = None
    disclaimer: str = DISCLAIMER

    @classmethod
    def from_report(cls, report) -> "ReportResponse":
        status = ReportStatus(report.processing_status)
        return cls(
            id=report.id,
            owner_id=report.owner_id,
            original_filename=report.original_filename,
            declared_file_type=report.declared_file_type,
            file_size_bytes=report.file_size_bytes,
            processing_status=status,
            status_message=STATUS_MESSAGES[status],
            uploaded_at=report.uploaded_at,
            processed_at=report.processed_at,
        )


# ── Paginated History ──────────────────────────────────────────────
class PaginatedReports(BaseModel):
    items: List[ReportResponse]
    total: int
    limit: int
    offset: int
    disclaimer: str = DISCLAIMER


# ── Analysis Response ──────────────────────────────────────────────
class AnalysisResponse(BaseModel):
    report_id: str
    analysis: Analysis
    processed_at: Optional[datetime] = None
    disclaimer: str = DISCLAIMER


class MetricsResponse(BaseModel):
    report_id: str
    metrics: List[HealthMetric]
    status: ReportStatus = ReportStatus.COMPLETED


# ── Health Check ───────────────────────────────────────────────────
class HealthResponse(BaseModel):
    status: str
    version: str
    database: str
    ai: str
    timestamp: datetime
    disclaimer: str = DISCLAIMER


# ── Error Response ─────────────────────────────────────────────────
class ErrorResponse(BaseModel):
    error: str
    detail: Optional[str] = None
    disclaimer: str = DISCLAIMER

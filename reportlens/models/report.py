"""
SQLAlchemy ORM Models
Medical Report Insights
"""

import uuid
from datetime import datetime, timezone
from sqlalchemy import CheckConstraint, Column, String, Text, Integer, DateTime, Index

from reportlens.database.session import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Report(Base):
    """One uploaded medical report and its processing lifecycle."""

    __tablename__ = "reports"
    __table_args__ = (
        Index("ix_reports_owner_uploaded", "owner_id", "uploaded_at"),
        CheckConstraint(
            "processing_status IN ('pending', 'processing', 'completed', 'failed')",
            name="ck_reports_processing_status",
        ),
    )

    # Primary Key - use String for SQLite compatibility
    id = Column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )

    owner_id = Column(Integer, nullable=False, index=True)

    # File metadata (immutable after creation)
    original_filename = Column(String(255), nullable=False)
    storage_path = Column(String(1024), nullable=False)
    declared_file_type = Column(String(255), nullable=False)
    file_size_bytes = Column(Integer, nullable=False, default=0)

    # Processing state
    processing_status = Column(
        String(20),
        nullable=False,
        default="pending",
        index=True,
    )

    # Analysis JSON when completed, error note when failed
    analysis_payload = Column(Text, nullable=True)

    # Timestamps
    uploaded_at = Column(
        DateTime(timezone=True),
        default=_utcnow,
        nullable=False,
    )
    processed_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(
        DateTime(timezone=True),
        default=_utcnow,
        onupdate=_utcnow,
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<Report id={self.id} filename={self.original_filename} "
            f"status={self.processing_status}>"
        )

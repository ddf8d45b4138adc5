"""
Report Store
Medical Report Insights

Persists report rows. Every operation opens its own session, so the
store can be shared between request handlers and background tasks.
"Not found" is an absent result (None / False), never an exception;
driver failures are raised as StoreError.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import delete, desc, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from reportlens.core.errors import StoreError
from reportlens.models.report import Report
from reportlens.schemas.report import ReportStatus

logger = logging.getLogger(__name__)

# Each target state may only be entered from these states.
ALLOWED_PREDECESSORS: dict[ReportStatus, tuple[ReportStatus, ...]] = {
    ReportStatus.PROCESSING: (ReportStatus.PENDING,),
    ReportStatus.COMPLETED: (ReportStatus.PROCESSING,),
    ReportStatus.FAILED: (ReportStatus.PROCESSING,),
}


class ReportStore:
    """Async SQLAlchemy repository for Report rows."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def create(self, report: Report) -> str:
        """Insert a new report in `pending` state and return its id."""
        report.processing_status = ReportStatus.PENDING.value
        try:
            async with self._session_factory() as session:
                session.add(report)
                await session.commit()
                await session.refresh(report)
        except SQLAlchemyError as e:
            raise StoreError(f"failed to create report: {e}") from e
        logger.info("Created pending report %s for '%s'", report.id, report.original_filename)
        return report.id

    async def get_by_id(self, report_id: str) -> Optional[Report]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(Report).where(Report.id == report_id)
                )
                return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise StoreError(f"failed to load report {report_id}: {e}") from e

    async def update_status(
        self,
        report_id: str,
        status: ReportStatus,
        payload: Optional[str] = None,
    ) -> bool:
        """
        Move a report to `status` in one atomic UPDATE.

        The row's payload is replaced with `payload`; `processed_at` is set
        only when entering `completed`. Returns False when the row does not
        exist or is not in a state that may transition to `status`.
        """
        status = ReportStatus(status)
        predecessors = ALLOWED_PREDECESSORS.get(status)
        if not predecessors:
            raise ValueError(f"'{status.value}' is not a valid transition target")

        now = datetime.now(timezone.utc)
        values = {
            "processing_status": status.value,
            "analysis_payload": payload,
            "updated_at": now,
        }
        if status == ReportStatus.COMPLETED:
            values["processed_at"] = now

        stmt = (
            update(Report)
            .where(Report.id == report_id)
            .where(Report.processing_status.in_([p.value for p in predecessors]))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                await session.commit()
        except SQLAlchemyError as e:
            raise StoreError(f"failed to update report {report_id} to {status.value}: {e}") from e

        updated = result.rowcount == 1
        if not updated:
            logger.warning(
                "Report %s: transition to %s rejected (missing or not in %s)",
                report_id, status.value, "/".join(p.value for p in predecessors),
            )
        return updated

    async def get_by_owner(self, owner_id: int, limit: int = 20, offset: int = 0) -> List[Report]:
        """Owner's reports, newest first."""
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(Report)
                    .where(Report.owner_id == owner_id)
                    .order_by(desc(Report.uploaded_at))
                    .offset(offset)
                    .limit(limit)
                )
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise StoreError(f"failed to list reports for owner {owner_id}: {e}") from e

    async def count_by_owner(self, owner_id: int) -> int:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(func.count(Report.id)).where(Report.owner_id == owner_id)
                )
                return result.scalar_one()
        except SQLAlchemyError as e:
            raise StoreError(f"failed to count reports for owner {owner_id}: {e}") from e

    async def list_pending(self, limit: int = 50) -> List[Report]:
        """Reports still waiting for processing, oldest first."""
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(Report)
                    .where(Report.processing_status == ReportStatus.PENDING.value)
                    .order_by(Report.uploaded_at)
                    .limit(limit)
                )
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise StoreError(f"failed to list pending reports: {e}") from e

    async def delete(self, report_id: str) -> bool:
        try:
            async with self._session_factory() as session:
                result = await session.execute(delete(Report).where(Report.id == report_id))
                await session.commit()
        except SQLAlchemyError as e:
            raise StoreError(f"failed to delete report {report_id}: {e}") from e
        return result.rowcount == 1

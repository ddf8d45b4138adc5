"""
Report Processing Pipeline
Medical Report Insights

Runs in the background after an upload has been accepted:

    pending -> processing -> (extract -> prompt -> AI call -> normalize)
            -> completed | failed

Exactly one store write marks the report `processing` before any work
starts, and exactly one store write records the terminal state.
"""

import time
import asyncio
import logging
from typing import Callable, Coroutine, Optional, Protocol, Set

from reportlens.core.errors import FormatError, StoreError, TransportError
from reportlens.models.report import Report
from reportlens.schemas.report import ReportStatus
from reportlens.services.prompt_builder import PromptBuilder
from reportlens.services.report_store import ReportStore
from reportlens.services.response_normalizer import normalize, serialize_analysis
from reportlens.services.text_extractor import TextExtractor

logger = logging.getLogger(__name__)

AI_UNAVAILABLE_NOTE = "AI service not available - missing API key"
UNEXPECTED_FAILURE_NOTE = "Processing failed: an unexpected error occurred. Please try again later."


class AnalysisClient(Protocol):
    async def analyze(self, prompt: str) -> str: ...


TaskSpawner = Callable[[Coroutine], asyncio.Task]


class ReportPipeline:
    """Orchestrates extraction, prompting, the AI call and persistence per report."""

    def __init__(
        self,
        store: ReportStore,
        extractor: TextExtractor,
        prompt_builder: PromptBuilder,
        client: Optional[AnalysisClient],
        spawn: Optional[TaskSpawner] = None,
    ):
        self._store = store
        self._extractor = extractor
        self._prompt_builder = prompt_builder
        self._client = client
        self._spawn = spawn or asyncio.create_task
        self._tasks: Set[asyncio.Task] = set()

    @property
    def ai_available(self) -> bool:
        return self._client is not None

    # ── Scheduling ───────────────────────────────────────────────
    def schedule(self, report_id: str) -> asyncio.Task:
        """Start processing in the background and return the task."""
        task = self._spawn(self.run(report_id))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.info("Report %s queued for processing", report_id)
        return task

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """
        Wait for every scheduled task to finish.

        Cancelling the wait (e.g. a shutdown timeout) leaves the tasks running.
        """
        while self._tasks:
            await asyncio.shield(asyncio.gather(*list(self._tasks), return_exceptions=True))

    async def resume_pending(self, limit: int = 50) -> int:
        """Schedule reports left in `pending`, e.g. by a restart before their task ran."""
        pending = await self._store.list_pending(limit)
        for report in pending:
            self.schedule(report.id)
        if pending:
            logger.info("Resumed %d pending report(s)", len(pending))
        return len(pending)

    # ── State machine ────────────────────────────────────────────
    async def run(self, report_id: str) -> Optional[ReportStatus]:
        """
        Process one report to a terminal state.

        Returns the terminal status written, or None when the report was
        missing, already claimed, or the store failed mid-way.
        """
        try:
            return await self._run(report_id)
        except StoreError as e:
            # The row keeps its last persisted state.
            logger.error("Report %s: store failure, processing abandoned: %s", report_id, e)
            return None

    async def _run(self, report_id: str) -> Optional[ReportStatus]:
        report = await self._store.get_by_id(report_id)
        if report is None:
            logger.warning("Report %s not found; nothing to process", report_id)
            return None

        if not await self._store.update_status(report_id, ReportStatus.PROCESSING):
            return None
        logger.info("Report %s: pending -> processing", report_id)

        if self._client is None:
            logger.error("Report %s: %s", report_id, AI_UNAVAILABLE_NOTE)
            return await self._fail(report_id, AI_UNAVAILABLE_NOTE)

        wall_start = time.monotonic()
        try:
            payload = await self._analyze(report)
        except FormatError as e:
            logger.error("Report %s: text extraction failed: %s", report_id, e)
            return await self._fail(report_id, f"Processing failed: {e}")
        except TransportError as e:
            logger.error("Report %s: AI analysis failed: %s", report_id, e, exc_info=e.__cause__ is not None)
            return await self._fail(report_id, f"Processing failed: {e}")
        except StoreError:
            raise
        except Exception as e:
            logger.error("Unexpected error processing report %s: %s", report_id, e, exc_info=True)
            return await self._fail(report_id, UNEXPECTED_FAILURE_NOTE)

        processing_ms = (time.monotonic() - wall_start) * 1000
        if not await self._store.update_status(report_id, ReportStatus.COMPLETED, payload):
            return None
        logger.info("Report %s: processing -> completed in %.0fms", report_id, processing_ms)
        return ReportStatus.COMPLETED

    async def _analyze(self, report: Report) -> str:
        text = await asyncio.to_thread(
            self._extractor.extract, report.storage_path, report.declared_file_type
        )
        logger.info("Report %s: extracted %d chars", report.id, len(text))

        prompt = self._prompt_builder.build_prompt(text)
        raw = await self._client.analyze(prompt)

        analysis = normalize(raw)
        logger.info(
            "Report %s: analysis normalized — %d metric(s), risk=%s",
            report.id, len(analysis.health_metrics), analysis.risk_level,
        )
        return serialize_analysis(analysis)

    async def _fail(self, report_id: str, note: str) -> Optional[ReportStatus]:
        if not await self._store.update_status(report_id, ReportStatus.FAILED, note):
            return None
        logger.info("Report %s: processing -> failed", report_id)
        return ReportStatus.FAILED

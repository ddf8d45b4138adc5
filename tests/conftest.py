import json
from typing import List, Optional, Tuple

import pytest

from reportlens.core.errors import StoreError
from reportlens.database.session import build_engine, build_session_factory, init_db
from reportlens.models.report import Report
from reportlens.schemas.report import ReportStatus
from reportlens.services.report_store import ReportStore


SAMPLE_REPORT_TEXT = """COMPLETE BLOOD COUNT
Patient: Jane Doe    Age: 42
Hemoglobin: 13.5 g/dL (12.0 - 15.5)
Fasting Glucose: 112 mg/dL (70 - 99)
LDL Cholesterol: 165 mg/dL (< 100)
"""


def make_model_payload() -> dict:
    return {
        "summary": "Mild hyperglycemia and elevated LDL; hemoglobin within range.",
        "simple_summary": "Most results look fine, but your sugar and cholesterol are a bit high.",
        "health_metrics": [
            {
                "name": "Hemoglobin",
                "value": 13.5,
                "unit": "g/dL",
                "score": 92,
                "status": "normal",
                "range_min": 12.0,
                "range_max": 15.5,
                "description": "Carries oxygen in your blood. Your level is healthy.",
            },
            {
                "name": "Fasting Glucose",
                "value": 112,
                "unit": "mg/dL",
                "score": 64,
                "status": "warning",
                "range_min": 70,
                "range_max": 99,
                "description": "Your blood sugar is slightly above the normal range.",
            },
        ],
        "key_findings": ["Elevated fasting glucose", "Elevated LDL cholesterol"],
        "recommendations": ["Repeat fasting glucose in 3 months", "Reduce saturated fat intake"],
        "risk_level": "medium",
    }


@pytest.fixture
def model_payload() -> dict:
    return make_model_payload()


@pytest.fixture
def model_json(model_payload) -> str:
    return json.dumps(model_payload)


# ── Fakes ──────────────────────────────────────────────────────────
class FakeAnalysisClient:
    """Stands in for GeminiAnalysisClient; records every prompt."""

    def __init__(self, response: str = "", error: Optional[Exception] = None):
        self.response = response
        self.error = error
        self.prompts: List[str] = []

    async def analyze(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.response


class RecordingStore(ReportStore):
    """ReportStore that records every status write, optionally failing one target."""

    def __init__(self, session_factory, fail_on: Optional[ReportStatus] = None):
        super().__init__(session_factory)
        self.transitions: List[Tuple[str, ReportStatus, Optional[str]]] = []
        self.fail_on = fail_on

    async def update_status(self, report_id, status, payload=None):
        self.transitions.append((report_id, ReportStatus(status), payload))
        if self.fail_on is not None and ReportStatus(status) == self.fail_on:
            raise StoreError("database is locked")
        return await super().update_status(report_id, status, payload)

    def statuses(self) -> List[ReportStatus]:
        return [status for _, status, _ in self.transitions]


# ── Database fixtures ──────────────────────────────────────────────
@pytest.fixture
async def engine(tmp_path):
    eng = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'reports.db'}")
    await init_db(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def store(session_factory) -> RecordingStore:
    return RecordingStore(session_factory)


@pytest.fixture
def create_report(store, tmp_path):
    """Write a file to disk and insert a pending report row for it."""

    async def _create(
        content=SAMPLE_REPORT_TEXT,
        filename: str = "blood_panel.txt",
        owner_id: int = 1,
        declared_file_type: str = "text/plain",
    ) -> str:
        path = tmp_path / filename
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content, encoding="utf-8")
        report = Report(
            owner_id=owner_id,
            original_filename=filename,
            storage_path=str(path),
            declared_file_type=declared_file_type,
            file_size_bytes=path.stat().st_size,
        )
        return await store.create(report)

    return _create

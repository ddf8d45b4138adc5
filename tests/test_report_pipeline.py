import asyncio
from types import SimpleNamespace

import pytest

from reportlens.core.config import Settings
from reportlens.core.errors import TransportError
from reportlens.schemas.report import ReportStatus
from reportlens.services.ai_service import GeminiAnalysisClient
from reportlens.services.prompt_builder import PromptBuilder
from reportlens.services.report_pipeline import (
    AI_UNAVAILABLE_NOTE,
    UNEXPECTED_FAILURE_NOTE,
    ReportPipeline,
)
from reportlens.services.response_normalizer import DEGRADED_SUMMARY, normalize, parse_payload
from reportlens.services.text_extractor import TextExtractor

from conftest import SAMPLE_REPORT_TEXT, FakeAnalysisClient, RecordingStore


def make_pipeline(store, client, spawn=None) -> ReportPipeline:
    return ReportPipeline(store, TextExtractor(), PromptBuilder(None), client, spawn=spawn)


class ExplodingClient:
    async def analyze(self, prompt: str) -> str:
        raise RuntimeError("unexpected internal bug")


async def test_successful_report_completes(store, create_report, model_json):
    client = FakeAnalysisClient(response=model_json)
    report_id = await create_report()

    status = await make_pipeline(store, client).run(report_id)

    assert status == ReportStatus.COMPLETED
    assert store.statuses() == [ReportStatus.PROCESSING, ReportStatus.COMPLETED]
    report = await store.get_by_id(report_id)
    assert report.processing_status == "completed"
    assert report.processed_at is not None
    assert parse_payload(report.analysis_payload) == normalize(model_json)


async def test_full_report_text_reaches_the_model(store, create_report, model_json):
    client = FakeAnalysisClient(response=model_json)
    report_id = await create_report()

    await make_pipeline(store, client).run(report_id)

    assert len(client.prompts) == 1
    assert SAMPLE_REPORT_TEXT in client.prompts[0]


async def test_legacy_word_fails_without_calling_the_model(store, create_report):
    client = FakeAnalysisClient(response="{}")
    report_id = await create_report(
        content=b"\xd0\xcf\x11\xe0legacy", filename="old.doc", declared_file_type="application/msword",
    )

    status = await make_pipeline(store, client).run(report_id)

    assert status == ReportStatus.FAILED
    assert store.statuses() == [ReportStatus.PROCESSING, ReportStatus.FAILED]
    assert client.prompts == []
    report = await store.get_by_id(report_id)
    assert report.processing_status == "failed"
    assert "not yet supported" in report.analysis_payload
    assert report.processed_at is None


async def test_transport_error_fails_the_report(store, create_report):
    client = FakeAnalysisClient(error=TransportError("AI service error (429): quota exceeded"))
    report_id = await create_report()

    status = await make_pipeline(store, client).run(report_id)

    assert status == ReportStatus.FAILED
    assert store.statuses() == [ReportStatus.PROCESSING, ReportStatus.FAILED]
    report = await store.get_by_id(report_id)
    assert report.analysis_payload == "Processing failed: AI service error (429): quota exceeded"
    assert report.processed_at is None


async def test_missing_client_fails_with_unavailable_note(store, create_report):
    report_id = await create_report()

    status = await make_pipeline(store, None).run(report_id)

    assert status == ReportStatus.FAILED
    report = await store.get_by_id(report_id)
    assert report.analysis_payload == AI_UNAVAILABLE_NOTE


async def test_malformed_model_output_still_completes(store, create_report):
    client = FakeAnalysisClient(response="The report shows mostly normal values overall.")
    report_id = await create_report()

    status = await make_pipeline(store, client).run(report_id)

    assert status == ReportStatus.COMPLETED
    analysis = parse_payload((await store.get_by_id(report_id)).analysis_payload)
    assert analysis.summary == DEGRADED_SUMMARY
    assert analysis.simple_summary == "The report shows mostly normal values overall."
    assert analysis.risk_level == "medium"


async def test_unexpected_error_records_generic_note(store, create_report):
    report_id = await create_report()

    status = await make_pipeline(store, ExplodingClient()).run(report_id)

    assert status == ReportStatus.FAILED
    report = await store.get_by_id(report_id)
    assert report.analysis_payload == UNEXPECTED_FAILURE_NOTE
    assert "internal bug" not in report.analysis_payload


async def test_missing_report_is_ignored(store):
    client = FakeAnalysisClient(response="{}")

    assert await make_pipeline(store, client).run("does-not-exist") is None
    assert store.transitions == []
    assert client.prompts == []


async def test_already_claimed_report_is_not_processed_twice(store, create_report, model_json):
    client = FakeAnalysisClient(response=model_json)
    report_id = await create_report()
    await store.update_status(report_id, ReportStatus.PROCESSING)

    assert await make_pipeline(store, client).run(report_id) is None
    assert client.prompts == []


async def test_store_failure_leaves_last_persisted_state(session_factory, create_report, model_json):
    failing_store = RecordingStore(session_factory, fail_on=ReportStatus.COMPLETED)
    report_id = await create_report()

    status = await make_pipeline(failing_store, FakeAnalysisClient(response=model_json)).run(report_id)

    assert status is None
    report = await failing_store.get_by_id(report_id)
    assert report.processing_status == "processing"
    assert report.analysis_payload is None


async def test_schedule_runs_in_background_until_drained(store, create_report, model_json):
    pipeline = make_pipeline(store, FakeAnalysisClient(response=model_json))
    first = await create_report(filename="a.txt")
    second = await create_report(filename="b.txt")

    pipeline.schedule(first)
    pipeline.schedule(second)
    assert pipeline.in_flight == 2

    await pipeline.drain()

    assert pipeline.in_flight == 0
    for report_id in (first, second):
        assert (await store.get_by_id(report_id)).processing_status == "completed"


async def test_injected_spawner_is_used(store, create_report, model_json):
    spawned = []

    def spawn(coro):
        task = asyncio.get_running_loop().create_task(coro)
        spawned.append(task)
        return task

    pipeline = make_pipeline(store, FakeAnalysisClient(response=model_json), spawn=spawn)
    report_id = await create_report()

    task = pipeline.schedule(report_id)
    await pipeline.drain()

    assert spawned == [task]
    assert task.result() == ReportStatus.COMPLETED


class GatedClient:
    """Holds every call until `release` is set."""

    def __init__(self, response: str):
        self.response = response
        self.release = asyncio.Event()

    async def analyze(self, prompt: str) -> str:
        await self.release.wait()
        return self.response


async def test_timed_out_drain_leaves_reports_running(store, create_report, model_json):
    client = GatedClient(model_json)
    pipeline = make_pipeline(store, client)
    report_id = await create_report()
    task = pipeline.schedule(report_id)

    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(pipeline.drain(), timeout=0.05)

    assert not task.cancelled()
    assert pipeline.in_flight == 1

    client.release.set()
    await pipeline.drain()

    assert task.result() == ReportStatus.COMPLETED
    assert (await store.get_by_id(report_id)).processing_status == "completed"


async def test_resume_pending_schedules_only_pending_reports(store, create_report, model_json):
    client = FakeAnalysisClient(response=model_json)
    pipeline = make_pipeline(store, client)
    waiting = await create_report(filename="waiting.txt")
    stuck = await create_report(filename="stuck.txt")
    await store.update_status(stuck, ReportStatus.PROCESSING)

    resumed = await pipeline.resume_pending()
    await pipeline.drain()

    assert resumed == 1
    assert (await store.get_by_id(waiting)).processing_status == "completed"
    assert (await store.get_by_id(stuck)).processing_status == "processing"
    assert len(client.prompts) == 1


class _HangingModels:
    async def generate_content(self, model, contents, config=None):
        await asyncio.sleep(30)


async def test_hung_model_call_ends_as_failed(store, create_report):
    settings = Settings(_env_file=None, medical_ai_api_key="test-key", ai_timeout_seconds=0.05)
    client = GeminiAnalysisClient(
        settings, client=SimpleNamespace(aio=SimpleNamespace(models=_HangingModels()))
    )
    report_id = await create_report()

    status = await make_pipeline(store, client).run(report_id)

    assert status == ReportStatus.FAILED
    report = await store.get_by_id(report_id)
    assert report.processing_status == "failed"
    assert "timed out" in report.analysis_payload


@pytest.mark.parametrize("content", ["", "   \n\t"])
async def test_blank_text_file_is_still_sent(store, create_report, model_json, content):
    client = FakeAnalysisClient(response=model_json)
    report_id = await create_report(content=content)

    status = await make_pipeline(store, client).run(report_id)

    assert status == ReportStatus.COMPLETED
    assert len(client.prompts) == 1

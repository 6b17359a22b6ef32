import asyncio
import dataclasses
import json

import pytest

from study_processor.core.errors import InvalidRequest, MaterialNotFound, PersistenceError, ProviderError
from study_processor.services.processor import (
    JobRun,
    JobStage,
    ProcessorContext,
    StudyProcessor,
    parse_request,
)

from fakes import FakeBucket, FakeGateway, FakeStore, make_material


def _processor(settings, gateway, store, bucket=None):
    return StudyProcessor(ProcessorContext(settings=settings, gateway=gateway, store=store, bucket=bucket or FakeBucket()))


def _run(processor, payload, on_stage=None):
    return asyncio.run(processor.process(payload, on_stage=on_stage))


def test_summary_end_to_end(test_settings):
    store = FakeStore(make_material("m1"))
    gateway = FakeGateway("Cells are the basic unit of life.")

    result = _run(
        _processor(test_settings, gateway, store),
        {"materialId": "m1", "contentType": "summary", "content": "Cells are the basic unit of life..."},
    )

    assert result.to_response()["success"] is True
    assert result.title == "Smart Summary"
    assert result.content["summary"] == "Cells are the basic unit of life."
    assert store.status_history["m1"] == ["processing", "processed"]
    assert store.inserted[0]["content_type"] == "summary"
    assert store.inserted[0]["title"] == "Smart Summary"
    assert result.stages == (
        JobStage.RECEIVED,
        JobStage.VALIDATING,
        JobStage.GENERATING,
        JobStage.PERSISTING,
        JobStage.COMPLETED,
    )


@pytest.mark.parametrize(
    "payload",
    [
        {"contentType": "summary", "content": "x"},
        {"materialId": "m1", "content": "x"},
        {"materialId": "m1", "contentType": "summary"},
        {"materialId": "m1", "contentType": "summary", "content": "   "},
        {"materialId": "m1", "contentType": "mindmap", "content": "x"},
        ["not", "an", "object"],
    ],
)
def test_invalid_requests_have_no_side_effects(test_settings, payload):
    store = FakeStore(make_material("m1"))
    gateway = FakeGateway()

    with pytest.raises(InvalidRequest):
        _run(_processor(test_settings, gateway, store), payload)

    assert store.calls == []
    assert gateway.requests == []


def test_missing_fields_message():
    with pytest.raises(InvalidRequest) as ei:
        parse_request({"materialId": "m1"})

    assert ei.value.message == "Missing required fields: materialId, contentType, and content"


def test_image_data_url_must_be_data_url():
    with pytest.raises(InvalidRequest):
        parse_request({"materialId": "m1", "contentType": "quiz", "content": "x", "imageDataUrl": "https://x/y.png"})


def test_pass_through_content_is_truncated(test_settings):
    settings = dataclasses.replace(test_settings, content_max_chars=20)
    store = FakeStore(make_material("m1"))
    gateway = FakeGateway("short summary")

    _run(_processor(settings, gateway, store), {"materialId": "m1", "contentType": "summary", "content": "a" * 50})

    assert "a" * 20 in gateway.requests[0].user_text
    assert "a" * 21 not in gateway.requests[0].user_text


def test_stored_pdf_is_extracted_before_generation(test_settings):
    store = FakeStore(make_material("m1", needs_extraction=True))
    bucket = FakeBucket({"u1/bio.pdf": b"%PDF"})
    cards = json.dumps([{"front": "Cell", "back": "Unit of life"}])
    gateway = FakeGateway("Extracted biology notes", cards)

    result = _run(
        _processor(test_settings, gateway, store, bucket),
        {"materialId": "m1", "contentType": "flashcard", "content": "pending", "fileUrl": "u1/bio.pdf"},
    )

    assert JobStage.EXTRACTING in result.stages
    assert bucket.downloads == ["u1/bio.pdf"]
    assert "Extracted biology notes" in gateway.requests[1].user_text
    assert result.content["flashcards"] == [{"front": "Cell", "back": "Unit of life"}]


def test_file_url_ignored_once_extracted(test_settings):
    store = FakeStore(make_material("m1", needs_extraction=False))
    bucket = FakeBucket()
    gateway = FakeGateway("summary")

    _run(
        _processor(test_settings, gateway, store, bucket),
        {"materialId": "m1", "contentType": "summary", "content": "existing text", "fileUrl": "u1/bio.pdf"},
    )

    assert bucket.downloads == []
    assert len(gateway.requests) == 1


def test_unparseable_quiz_is_stored_as_fallback(test_settings):
    store = FakeStore(make_material("m1"))
    gateway = FakeGateway("Sorry, I can't make a quiz from this.")

    result = _run(_processor(test_settings, gateway, store), {"materialId": "m1", "contentType": "quiz", "content": "x"})

    assert result.fallback is True
    assert result.title == "Practice Quiz"
    assert len(result.content["questions"]) == 1
    assert store.status_history["m1"] == ["processing", "processed"]


def test_provider_failure_leaves_material_processing(test_settings):
    store = FakeStore(make_material("m1"))
    gateway = FakeGateway(ProviderError("OpenAI API error: Internal Server Error", provider_status=500))

    with pytest.raises(ProviderError):
        _run(_processor(test_settings, gateway, store), {"materialId": "m1", "contentType": "summary", "content": "x"})

    assert store.status_history["m1"] == ["processing"]
    assert store.inserted == []


def test_failure_marks_material_failed_when_enabled(test_settings):
    settings = dataclasses.replace(test_settings, mark_failed_on_error=True)
    store = FakeStore(make_material("m1"))
    gateway = FakeGateway(ProviderError("boom"))

    with pytest.raises(ProviderError):
        _run(_processor(settings, gateway, store), {"materialId": "m1", "contentType": "summary", "content": "x"})

    assert store.status_history["m1"] == ["processing", "failed"]


def test_unknown_material(test_settings):
    store = FakeStore()

    with pytest.raises(MaterialNotFound):
        _run(_processor(test_settings, FakeGateway(), store), {"materialId": "nope", "contentType": "summary", "content": "x"})


def test_stage_callback_sees_every_transition(test_settings):
    seen = []

    async def on_stage(stage, error):
        seen.append((stage, error))

    store = FakeStore(make_material("m1"))
    gateway = FakeGateway(ProviderError("boom"))

    with pytest.raises(ProviderError):
        _run(
            _processor(test_settings, gateway, store),
            {"materialId": "m1", "contentType": "summary", "content": "x"},
            on_stage=on_stage,
        )

    assert seen == [(JobStage.VALIDATING, None), (JobStage.GENERATING, None), (JobStage.FAILED, "boom")]


def test_job_run_rejects_illegal_transitions():
    run = JobRun()
    run.advance(JobStage.VALIDATING)

    with pytest.raises(RuntimeError):
        run.advance(JobStage.PERSISTING)

    run.advance(JobStage.FAILED)
    assert run.finished
    with pytest.raises(RuntimeError):
        run.advance(JobStage.FAILED)


def test_missing_api_key_fails_before_status_change(test_settings):
    settings = dataclasses.replace(test_settings, openai_api_key=None)
    store = FakeStore(make_material("m1"))
    gateway = FakeGateway()

    with pytest.raises(ProviderError) as ei:
        _run(_processor(settings, gateway, store), {"materialId": "m1", "contentType": "summary", "content": "x"})

    assert ei.value.message == "OpenAI API key not configured"
    assert store.calls == []
    assert gateway.requests == []
    assert store.materials["m1"].status == "uploaded"


def test_failing_stage_callback_keeps_the_run_error(test_settings):
    settings = dataclasses.replace(test_settings, mark_failed_on_error=True)
    store = FakeStore(make_material("m1"))
    gateway = FakeGateway(ProviderError("real provider failure"))

    async def on_stage(stage, error):
        if stage is JobStage.FAILED:
            raise PersistenceError("job row write failed")

    with pytest.raises(ProviderError) as ei:
        _run(
            _processor(settings, gateway, store),
            {"materialId": "m1", "contentType": "summary", "content": "x"},
            on_stage=on_stage,
        )

    assert ei.value.message == "real provider failure"
    assert store.status_history["m1"] == ["processing", "failed"]


def test_aclose_closes_gateway(test_settings):
    gateway = FakeGateway()

    asyncio.run(_processor(test_settings, gateway, FakeStore()).aclose())

    assert gateway.closed

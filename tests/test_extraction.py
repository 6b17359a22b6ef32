import asyncio
import base64

import pytest

from study_processor.core.errors import ExtractionError, ProviderError, UnsupportedFileType
from study_processor.services.extraction import (
    EXTRACTION_MAX_TOKENS,
    NO_IMAGE_CONTENT,
    NO_PDF_CONTENT,
    ContentExtractor,
    ExtractionSource,
)

from fakes import FakeBucket, FakeGateway


def _extract(extractor, **kwargs):
    kwargs.setdefault("content", "placeholder")
    return asyncio.run(extractor.extract(ExtractionSource(**kwargs)))


def test_inline_image_goes_to_vision_without_storage():
    gateway = FakeGateway("Diagram of the water cycle")
    bucket = FakeBucket()

    text = _extract(ContentExtractor(gateway, bucket), image_data_url="data:image/png;base64,AAAA")

    assert text == "Diagram of the water cycle"
    assert bucket.downloads == []
    request = gateway.requests[0]
    assert request.image_url == "data:image/png;base64,AAAA"
    assert request.image_detail == "high"
    assert request.max_tokens == EXTRACTION_MAX_TOKENS
    assert request.temperature == 0.1


def test_inline_image_wins_over_stored_file():
    gateway = FakeGateway("from image")
    bucket = FakeBucket({"u1/notes.pdf": b"%PDF"})

    text = _extract(
        ContentExtractor(gateway, bucket),
        image_data_url="data:image/jpeg;base64,BBBB",
        file_url="u1/notes.pdf",
        needs_extraction=True,
    )

    assert text == "from image"
    assert bucket.downloads == []


def test_stored_pdf_is_sent_as_document():
    gateway = FakeGateway("Chapter 1: Cells")
    bucket = FakeBucket({"u1/notes.pdf": b"%PDF-1.7 data"})

    text = _extract(ContentExtractor(gateway, bucket), file_url="u1/notes.pdf", needs_extraction=True)

    assert text == "Chapter 1: Cells"
    assert bucket.downloads == ["u1/notes.pdf"]
    filename, data_url = gateway.requests[0].document
    assert filename == "notes.pdf"
    assert data_url == "data:application/pdf;base64," + base64.b64encode(b"%PDF-1.7 data").decode()


def test_stored_image_becomes_data_url():
    gateway = FakeGateway("whiteboard notes")
    bucket = FakeBucket({"u1/board.JPG": b"\xff\xd8"})

    text = _extract(ContentExtractor(gateway, bucket), file_url="u1/board.JPG", needs_extraction=True)

    assert text == "whiteboard notes"
    assert gateway.requests[0].image_url == "data:image/jpeg;base64," + base64.b64encode(b"\xff\xd8").decode()


def test_unsupported_type_rejected_before_download():
    gateway = FakeGateway()
    bucket = FakeBucket({"u1/notes.docx": b"PK"})

    with pytest.raises(UnsupportedFileType) as ei:
        _extract(ContentExtractor(gateway, bucket), file_url="u1/notes.docx", needs_extraction=True)

    assert ei.value.extension == "docx"
    assert "Unsupported file type" in ei.value.message
    assert bucket.downloads == []
    assert gateway.requests == []


def test_empty_model_answers_use_placeholders():
    bucket = FakeBucket({"a.pdf": b"x", "b.png": b"y"})

    assert _extract(ContentExtractor(FakeGateway(""), bucket), file_url="a.pdf", needs_extraction=True) == NO_PDF_CONTENT
    assert _extract(ContentExtractor(FakeGateway(""), bucket), file_url="b.png", needs_extraction=True) == NO_IMAGE_CONTENT


def test_existing_text_passes_through():
    gateway = FakeGateway()

    text = _extract(ContentExtractor(gateway, FakeBucket()), content="already text", file_url="u1/notes.pdf")

    assert text == "already text"
    assert gateway.requests == []


def test_provider_failure_becomes_extraction_error():
    gateway = FakeGateway(ProviderError("OpenAI API error: boom", provider_status=500))

    with pytest.raises(ExtractionError) as ei:
        _extract(ContentExtractor(gateway, FakeBucket()), image_data_url="data:image/png;base64,AA")

    assert ei.value.message == "Content extraction failed: OpenAI API error: boom"

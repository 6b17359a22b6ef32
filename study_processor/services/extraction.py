"""
Turns an upload into one normalized text blob.

Priority:
  1. inline image data URL   -> vision request (storage never touched)
  2. stored file, still needs extraction -> download, then PDF analysis or vision
  3. otherwise               -> existing text, unchanged
"""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from typing import Optional, Protocol

from study_processor.core.errors import ExtractionError, ProviderError, UnsupportedFileType
from study_processor.services.llm.gateway import CompletionRequest, ModelGateway
from study_processor.services.llm.prompts import (
    DOCUMENT_ANALYSIS_SYSTEM,
    DOCUMENT_ANALYSIS_USER,
    IMAGE_ANALYSIS_SYSTEM,
    IMAGE_ANALYSIS_USER,
)
from study_processor.services.storage import file_extension

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = {"png", "jpg", "jpeg", "gif", "bmp", "webp"}

EXTRACTION_MAX_TOKENS = 3000
EXTRACTION_TEMPERATURE = 0.1

NO_PDF_CONTENT = "Could not extract content from PDF"
NO_IMAGE_CONTENT = "Could not extract content from image"


class Bucket(Protocol):
    async def download_async(self, file_url: str) -> bytes: ...


@dataclass(frozen=True)
class ExtractionSource:
    content: str
    file_url: Optional[str] = None
    image_data_url: Optional[str] = None
    needs_extraction: bool = False


def _mime_for(extension: str) -> str:
    if extension in ("jpg", "jpeg"):
        return "image/jpeg"
    return f"image/{extension}"


def image_request(image_url: str) -> CompletionRequest:
    return CompletionRequest(
        system=IMAGE_ANALYSIS_SYSTEM,
        user_text=IMAGE_ANALYSIS_USER,
        image_url=image_url,
        image_detail="high",
        max_tokens=EXTRACTION_MAX_TOKENS,
        temperature=EXTRACTION_TEMPERATURE,
    )


def document_request(filename: str, data: bytes) -> CompletionRequest:
    encoded = base64.b64encode(data).decode("ascii")
    return CompletionRequest(
        system=DOCUMENT_ANALYSIS_SYSTEM,
        user_text=DOCUMENT_ANALYSIS_USER,
        document=(filename, f"data:application/pdf;base64,{encoded}"),
        max_tokens=EXTRACTION_MAX_TOKENS,
        temperature=EXTRACTION_TEMPERATURE,
    )


class ContentExtractor:
    def __init__(self, gateway: ModelGateway, bucket: Bucket) -> None:
        self.gateway = gateway
        self.bucket = bucket

    async def extract(self, source: ExtractionSource) -> str:
        if source.image_data_url:
            logger.info("extracting content from inline image data URL")
            return await self._vision(source.image_data_url)

        if source.file_url and source.needs_extraction:
            logger.info("extracting content from file: %s", source.file_url)
            return await self._from_file(source.file_url)

        return source.content

    async def _from_file(self, file_url: str) -> str:
        extension = file_extension(file_url)
        # unsupported uploads are rejected before any download
        if extension != "pdf" and extension not in IMAGE_EXTENSIONS:
            raise UnsupportedFileType(extension, context={"file_url": file_url})

        data = await self.bucket.download_async(file_url)

        if extension == "pdf":
            return await self._document(file_url.rsplit("/", 1)[-1], data)

        encoded = base64.b64encode(data).decode("ascii")
        return await self._vision(f"data:{_mime_for(extension)};base64,{encoded}")

    async def _vision(self, image_url: str) -> str:
        text = await self._complete(image_request(image_url))
        return text if text.strip() else NO_IMAGE_CONTENT

    async def _document(self, filename: str, data: bytes) -> str:
        logger.info("analysing PDF document %s (%d bytes)", filename, len(data))
        text = await self._complete(document_request(filename, data))
        return text if text.strip() else NO_PDF_CONTENT

    async def _complete(self, request: CompletionRequest) -> str:
        try:
            return await self.gateway.complete(request)
        except ProviderError as e:
            raise ExtractionError(
                f"Content extraction failed: {e.message}",
                context={"provider_status": e.provider_status},
            ) from e

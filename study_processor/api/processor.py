from __future__ import annotations

import logging
from typing import AsyncIterator

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse

from study_processor.core.config import settings
from study_processor.core.errors import StudyProcessorError
from study_processor.services.processor import StudyProcessor, build_context

logger = logging.getLogger(__name__)

router = APIRouter(tags=["ai_study_processor"])

DEFAULT_ERROR = "An error occurred processing the study material"

# sent on every response, not only when the browser supplies an Origin
CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
}


async def get_processor() -> AsyncIterator[StudyProcessor]:
    processor = StudyProcessor(build_context(settings))
    try:
        yield processor
    finally:
        await processor.aclose()


def _error(message: str) -> JSONResponse:
    # every failure kind gets the same flat shape; the kind only shows up in logs
    return JSONResponse(status_code=500, content={"error": message or DEFAULT_ERROR}, headers=CORS_HEADERS)


@router.options("/ai-study-processor")
def ai_study_processor_preflight() -> Response:
    return Response(status_code=200, headers=CORS_HEADERS)


@router.post("/ai-study-processor")
async def ai_study_processor(request: Request, processor: StudyProcessor = Depends(get_processor)):
    try:
        payload = await request.json()
    except ValueError:
        logger.error("rejected request with a malformed JSON body")
        return _error("Request body must be valid JSON")

    try:
        result = await processor.process(payload)
    except StudyProcessorError as e:
        return _error(e.message)
    except Exception as e:
        logger.exception("Error in AI study processor")
        return _error(str(e))

    return JSONResponse(content=result.to_response(), headers=CORS_HEADERS)

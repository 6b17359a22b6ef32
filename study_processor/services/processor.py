r"""
Job orchestration for one AI study processor invocation.

    received -> validating -> [extracting] -> generating -> persisting -> completed
                        \___________ any step can end in failed ___________/

The processor owns no global state: everything it talks to comes in through
ProcessorContext, so tests can swap in fakes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Protocol

from study_processor.core.config import Settings
from study_processor.core.errors import InvalidRequest, ProviderError, StudyProcessorError
from study_processor.models.study_material import STATUS_FAILED, STATUS_PROCESSED, STATUS_PROCESSING
from study_processor.services.extraction import Bucket, ContentExtractor, ExtractionSource
from study_processor.services.generation import CONTENT_TYPES, Fallback, get_strategy
from study_processor.services.llm.gateway import ModelGateway, build_gateway

logger = logging.getLogger(__name__)


class JobStage(str, Enum):
    RECEIVED = "received"
    VALIDATING = "validating"
    EXTRACTING = "extracting"
    GENERATING = "generating"
    PERSISTING = "persisting"
    COMPLETED = "completed"
    FAILED = "failed"


_NEXT: dict[JobStage, set[JobStage]] = {
    JobStage.RECEIVED: {JobStage.VALIDATING},
    JobStage.VALIDATING: {JobStage.EXTRACTING, JobStage.GENERATING},
    JobStage.EXTRACTING: {JobStage.GENERATING},
    JobStage.GENERATING: {JobStage.PERSISTING},
    JobStage.PERSISTING: {JobStage.COMPLETED},
    JobStage.COMPLETED: set(),
    JobStage.FAILED: set(),
}


@dataclass
class JobRun:
    stage: JobStage = JobStage.RECEIVED
    history: list[JobStage] = field(default_factory=lambda: [JobStage.RECEIVED])

    @property
    def finished(self) -> bool:
        return self.stage in (JobStage.COMPLETED, JobStage.FAILED)

    def advance(self, stage: JobStage) -> None:
        allowed = _NEXT[self.stage] | ({JobStage.FAILED} if not self.finished else set())
        if stage not in allowed:
            raise RuntimeError(f"illegal job transition {self.stage.value} -> {stage.value}")
        self.stage = stage
        self.history.append(stage)


StageCallback = Callable[[JobStage, Optional[str]], Awaitable[None]]


# ----------------------------
# Request / result
# ----------------------------

@dataclass(frozen=True)
class ProcessRequest:
    material_id: str
    content_type: str
    content: str
    file_url: Optional[str] = None
    image_data_url: Optional[str] = None


def _optional_str(payload: dict, key: str) -> Optional[str]:
    v = payload.get(key)
    if v is None:
        return None
    if not isinstance(v, str):
        raise InvalidRequest(f"{key} must be a string")
    return v.strip() or None


def parse_request(payload: Any) -> ProcessRequest:
    if not isinstance(payload, dict):
        raise InvalidRequest("Request body must be a JSON object")

    material_id = payload.get("materialId")
    content_type = payload.get("contentType")
    content = payload.get("content")

    missing = [
        k
        for k, v in (("materialId", material_id), ("contentType", content_type), ("content", content))
        if not isinstance(v, str) or not v.strip()
    ]
    if missing:
        raise InvalidRequest(
            "Missing required fields: materialId, contentType, and content",
            context={"missing": missing},
        )

    if content_type not in CONTENT_TYPES:
        raise InvalidRequest(f"Unknown content type: {content_type}")

    image_data_url = _optional_str(payload, "imageDataUrl")
    if image_data_url and not image_data_url.startswith("data:"):
        raise InvalidRequest("imageDataUrl must be a data URL")

    return ProcessRequest(
        material_id=material_id.strip(),
        content_type=content_type,
        content=content,
        file_url=_optional_str(payload, "fileUrl"),
        image_data_url=image_data_url,
    )


@dataclass(frozen=True)
class ProcessResult:
    material_id: str
    content_type: str
    title: str
    content: dict[str, Any]
    content_id: str
    fallback: bool = False
    stages: tuple[JobStage, ...] = ()

    def to_response(self) -> dict[str, Any]:
        return {
            "success": True,
            "contentType": self.content_type,
            "title": self.title,
            "content": self.content,
        }


# ----------------------------
# Collaborators
# ----------------------------

class Store(Protocol):
    async def set_status(self, material_id: str, status: str) -> Any: ...

    async def insert_content(
        self, material_id: str, content_type: str, title: str, payload: dict[str, Any]
    ) -> str: ...


@dataclass
class ProcessorContext:
    settings: Settings
    gateway: ModelGateway
    store: Store
    bucket: Bucket


def build_context(settings: Settings) -> ProcessorContext:
    from study_processor.services.storage import MaterialsBucket
    from study_processor.services.study_materials import MaterialStore

    gateway = build_gateway(
        api_key=settings.openai_api_key,
        model=settings.openai_model,
        timeout_sec=settings.openai_timeout_sec,
        max_retries=settings.provider_max_retries,
        base_delay=settings.provider_base_delay_sec,
    )
    return ProcessorContext(
        settings=settings,
        gateway=gateway,
        store=MaterialStore(),
        bucket=MaterialsBucket(settings.materials_bucket, settings.aws_region),
    )


# ----------------------------
# Orchestrator
# ----------------------------

class StudyProcessor:
    def __init__(self, context: ProcessorContext) -> None:
        self.context = context
        self.extractor = ContentExtractor(context.gateway, context.bucket)

    async def process(self, payload: Any, on_stage: Optional[StageCallback] = None) -> ProcessResult:
        run = JobRun()
        material_id: Optional[str] = None
        marked_processing = False

        async def enter(stage: JobStage, error: Optional[str] = None) -> None:
            run.advance(stage)
            logger.info("material %s: %s", material_id or "-", stage.value)
            if on_stage is not None:
                await on_stage(stage, error)

        try:
            await enter(JobStage.VALIDATING)
            req = parse_request(payload)
            material_id = req.material_id
            strategy = get_strategy(req.content_type)
            # checked before the material is touched
            if not self.context.settings.openai_api_key:
                raise ProviderError("OpenAI API key not configured")
            logger.info("processing %s for material: %s", req.content_type, material_id)

            material = await self.context.store.set_status(material_id, STATUS_PROCESSING)
            marked_processing = True

            needs_extraction = bool(getattr(material, "needs_extraction", False))
            if req.image_data_url or (req.file_url and needs_extraction):
                await enter(JobStage.EXTRACTING)
                text = await self.extractor.extract(
                    ExtractionSource(
                        content=req.content,
                        file_url=req.file_url,
                        image_data_url=req.image_data_url,
                        needs_extraction=needs_extraction,
                    )
                )
            else:
                text = req.content[: self.context.settings.content_max_chars]

            await enter(JobStage.GENERATING)
            result = await strategy.generate(self.context.gateway, text)

            await enter(JobStage.PERSISTING)
            content_id = await self.context.store.insert_content(
                material_id, strategy.content_type, strategy.title, result.payload
            )
            await self.context.store.set_status(material_id, STATUS_PROCESSED)

            await enter(JobStage.COMPLETED)
            logger.info("successfully processed %s for material: %s", req.content_type, material_id)
            return ProcessResult(
                material_id=material_id,
                content_type=strategy.content_type,
                title=strategy.title,
                content=result.payload,
                content_id=content_id,
                fallback=isinstance(result, Fallback),
                stages=tuple(run.history),
            )

        except Exception as e:
            code = e.error_code if isinstance(e, StudyProcessorError) else type(e).__name__
            logger.error("material %s failed at %s [%s]: %s", material_id or "-", run.stage.value, code, e)
            if not run.finished:
                try:
                    await enter(JobStage.FAILED, str(e))
                except Exception:
                    logger.exception("material %s: failed-stage notification raised", material_id or "-")
            if marked_processing and self.context.settings.mark_failed_on_error:
                await self._mark_failed(material_id)
            raise

    async def aclose(self) -> None:
        await self.context.gateway.aclose()

    async def _mark_failed(self, material_id: Optional[str]) -> None:
        if not material_id:
            return
        try:
            await self.context.store.set_status(material_id, STATUS_FAILED)
        except StudyProcessorError as e:
            # the run error is re-raised by process()
            logger.error("could not mark material %s failed: %s", material_id, e.message)

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Tuple

import httpx

from study_processor.core.errors import ProviderError
from study_processor.services.llm.retry import with_retry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompletionRequest:
    system: str
    user_text: str
    # set for vision calls: a data URL or https URL of the image
    image_url: Optional[str] = None
    image_detail: str = "high"
    # set for document analysis: (filename, base64 data URL) sent as a file part
    document: Optional[Tuple[str, str]] = None
    max_tokens: int = 1500
    temperature: float = 0.3

    def messages(self) -> List[Dict[str, Any]]:
        user_content: Any = self.user_text
        if self.image_url:
            user_content = [
                {"type": "text", "text": self.user_text},
                {"type": "image_url", "image_url": {"url": self.image_url, "detail": self.image_detail}},
            ]
        elif self.document:
            filename, file_data = self.document
            user_content = [
                {"type": "text", "text": self.user_text},
                {"type": "file", "file": {"filename": filename, "file_data": file_data}},
            ]
        return [
            {"role": "system", "content": self.system},
            {"role": "user", "content": user_content},
        ]


class ProviderResponseError(Exception):
    """A non-success answer from the provider, before retry classification."""

    def __init__(self, status: Optional[int], message: str) -> None:
        self.status = status
        self.message = message
        super().__init__(f"{status}: {message}" if status else message)

    @property
    def rate_limited(self) -> bool:
        if self.status == 429:
            return True
        text = (self.message or "").lower()
        return "too many requests" in text or "rate limit" in text


def is_rate_limited(err: Exception) -> bool:
    return isinstance(err, ProviderResponseError) and err.rate_limited


class ChatTransport(Protocol):
    async def send(
        self,
        *,
        model: str,
        messages: List[Dict[str, Any]],
        max_tokens: int,
        temperature: float,
    ) -> str: ...

    async def aclose(self) -> None: ...


class OpenAIChatTransport:
    """
    Chat completions over the OpenAI SDK.

    SDK-level retries are disabled: retry policy belongs to ModelGateway.
    """

    def __init__(self, api_key: Optional[str], timeout_sec: float = 120.0, client=None) -> None:
        self.api_key = api_key
        self.timeout_sec = timeout_sec
        self._openai = client

    def _client(self):
        if self._openai is None:
            if not self.api_key:
                raise ProviderError("OpenAI API key not configured")

            from openai import AsyncOpenAI  # type: ignore

            self._openai = AsyncOpenAI(
                api_key=self.api_key,
                timeout=httpx.Timeout(self.timeout_sec, connect=10.0),
                max_retries=0,
            )
        return self._openai

    async def send(
        self,
        *,
        model: str,
        messages: List[Dict[str, Any]],
        max_tokens: int,
        temperature: float,
    ) -> str:
        import openai  # type: ignore

        client = self._client()
        try:
            chat = await client.chat.completions.create(
                model=model,
                messages=messages,
                max_tokens=max_tokens,
                temperature=temperature,
            )
        except openai.APIStatusError as e:
            raise ProviderResponseError(e.status_code, e.message) from e
        except openai.APIConnectionError as e:
            raise ProviderResponseError(None, str(e)) from e

        if not chat.choices:
            return ""
        return chat.choices[0].message.content or ""

    async def aclose(self) -> None:
        if self._openai is not None:
            await self._openai.close()
            self._openai = None


class ModelGateway:
    def __init__(
        self,
        transport: ChatTransport,
        model: str,
        max_retries: int = 3,
        base_delay: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.transport = transport
        self.model = model
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.sleep = sleep

    async def aclose(self) -> None:
        await self.transport.aclose()

    async def complete(self, request: CompletionRequest) -> str:
        messages = request.messages()

        async def attempt() -> str:
            return await self.transport.send(
                model=self.model,
                messages=messages,
                max_tokens=request.max_tokens,
                temperature=request.temperature,
            )

        try:
            return await with_retry(
                attempt,
                max_attempts=self.max_retries + 1,
                base_delay=self.base_delay,
                is_retryable=is_rate_limited,
                sleep=self.sleep,
            )
        except ProviderResponseError as e:
            if e.rate_limited:
                logger.error("provider still rate limited after %d retries", self.max_retries)
            else:
                logger.error("provider error (status=%s): %s", e.status, e.message)
            raise ProviderError(
                f"OpenAI API error: {e.message}",
                provider_status=e.status,
                context={"model": self.model, "rate_limited": e.rate_limited},
            ) from e


def build_gateway(
    *,
    api_key: Optional[str],
    model: str,
    timeout_sec: float,
    max_retries: int,
    base_delay: float,
) -> ModelGateway:
    transport = OpenAIChatTransport(api_key=api_key, timeout_sec=timeout_sec)
    return ModelGateway(transport, model=model, max_retries=max_retries, base_delay=base_delay)

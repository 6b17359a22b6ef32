from __future__ import annotations

import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Union

from study_processor.core.errors import InvalidRequest, ProviderError
from study_processor.services.llm.gateway import CompletionRequest, ModelGateway
from study_processor.services.llm.prompts import (
    FLASHCARDS_SYSTEM,
    FLASHCARDS_USER_TEMPLATE,
    QUIZ_SYSTEM,
    QUIZ_USER_TEMPLATE,
    SUMMARY_SYSTEM,
    SUMMARY_USER_TEMPLATE,
)

logger = logging.getLogger(__name__)

CONTENT_SUMMARY = "summary"
CONTENT_FLASHCARD = "flashcard"
CONTENT_QUIZ = "quiz"

FALLBACK_FLASHCARD_FRONT = "Study Summary"
FALLBACK_FLASHCARD_EMPTY_BACK = "No flashcards could be generated from this material."
FALLBACK_QUIZ_QUESTION = {
    "question": "What is the main topic of this study material?",
    "options": ["Topic A", "Topic B", "Topic C", "Topic D"],
    "correctAnswer": 0,
}

QUIZ_OPTION_COUNT = 4


# ----------------------------
# Parse results
# ----------------------------

@dataclass(frozen=True)
class Parsed:
    payload: dict[str, Any]


@dataclass(frozen=True)
class Fallback:
    payload: dict[str, Any]
    reason: str


ParseResult = Union[Parsed, Fallback]


def generated_at() -> str:
    """UTC timestamp, millisecond precision, 'Z' suffix."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


_FENCE_RE = re.compile(r"^```[a-zA-Z]*\s*\n?(.*?)\n?```$", re.DOTALL)


def _strip_code_fence(text: str) -> str:
    s = (text or "").strip()
    m = _FENCE_RE.match(s)
    return m.group(1).strip() if m else s


def _load_json_array(text: str) -> tuple[list[Any] | None, str]:
    """
    Returns (items, reason). items is None when the text is not a JSON array.
    """
    candidate = _strip_code_fence(text)
    if not candidate:
        return None, "empty response"
    try:
        value = json.loads(candidate)
    except ValueError as e:
        return None, f"invalid JSON: {e}"
    if not isinstance(value, list):
        return None, f"expected a JSON array, got {type(value).__name__}"
    return value, ""


def _non_empty_str(v: Any) -> bool:
    return isinstance(v, str) and bool(v.strip())


# ----------------------------
# Per-kind parsers (never raise on model output)
# ----------------------------

def parse_summary(raw: str) -> ParseResult:
    if not (raw or "").strip():
        # nothing worth storing; this is a provider failure, not a parse fallback
        raise ProviderError("Empty response from OpenAI")
    return Parsed({"summary": raw, "generatedAt": generated_at()})


def _flashcard_fallback(raw: str, reason: str) -> Fallback:
    back = (raw or "").strip() or FALLBACK_FLASHCARD_EMPTY_BACK
    return Fallback(
        {"flashcards": [{"front": FALLBACK_FLASHCARD_FRONT, "back": back}], "generatedAt": generated_at()},
        reason=reason,
    )


def parse_flashcards(raw: str) -> ParseResult:
    items, reason = _load_json_array(raw)
    if items is None:
        return _flashcard_fallback(raw, reason)

    cards: list[dict[str, str]] = []
    for it in items:
        if not isinstance(it, dict):
            continue
        front, back = it.get("front"), it.get("back")
        if _non_empty_str(front) and _non_empty_str(back):
            cards.append({"front": front.strip(), "back": back.strip()})

    if not cards:
        return _flashcard_fallback(raw, "no valid flashcards in array")
    if len(cards) < len(items):
        logger.warning("dropped %d malformed flashcard(s)", len(items) - len(cards))
    return Parsed({"flashcards": cards, "generatedAt": generated_at()})


def _valid_answer_index(v: Any) -> bool:
    # bool is an int subclass; true/false is not an answer index
    return isinstance(v, int) and not isinstance(v, bool) and 0 <= v < QUIZ_OPTION_COUNT


def parse_quiz(raw: str) -> ParseResult:
    items, reason = _load_json_array(raw)
    if items is None:
        return Fallback({"questions": [dict(FALLBACK_QUIZ_QUESTION)], "generatedAt": generated_at()}, reason)

    questions: list[dict[str, Any]] = []
    for it in items:
        if not isinstance(it, dict):
            continue
        q = it.get("question")
        opts = it.get("options")
        ans = it.get("correctAnswer")
        if not _non_empty_str(q):
            continue
        if not isinstance(opts, list) or len(opts) != QUIZ_OPTION_COUNT:
            continue
        if not all(_non_empty_str(o) for o in opts):
            continue
        if not _valid_answer_index(ans):
            continue
        questions.append({"question": q.strip(), "options": [o.strip() for o in opts], "correctAnswer": ans})

    if not questions:
        return Fallback(
            {"questions": [dict(FALLBACK_QUIZ_QUESTION)], "generatedAt": generated_at()},
            reason="no valid questions in array",
        )
    if len(questions) < len(items):
        logger.warning("dropped %d malformed quiz question(s)", len(items) - len(questions))
    return Parsed({"questions": questions, "generatedAt": generated_at()})


# ----------------------------
# Strategies
# ----------------------------

class GenerationStrategy(ABC):
    content_type: str
    title: str
    max_tokens: int = 2000
    temperature: float = 0.3

    @abstractmethod
    def build_prompt(self, text: str) -> CompletionRequest: ...

    @abstractmethod
    def parse_response(self, raw: str) -> ParseResult: ...

    async def generate(self, gateway: ModelGateway, text: str) -> ParseResult:
        raw = await gateway.complete(self.build_prompt(text))
        result = self.parse_response(raw)
        if isinstance(result, Fallback):
            logger.warning("%s response did not parse, using fallback: %s", self.content_type, result.reason)
        return result


class SummaryStrategy(GenerationStrategy):
    content_type = CONTENT_SUMMARY
    title = "Smart Summary"
    max_tokens = 1500

    def build_prompt(self, text: str) -> CompletionRequest:
        return CompletionRequest(
            system=SUMMARY_SYSTEM,
            user_text=SUMMARY_USER_TEMPLATE.format(content=text),
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )

    def parse_response(self, raw: str) -> ParseResult:
        return parse_summary(raw)


class FlashcardStrategy(GenerationStrategy):
    content_type = CONTENT_FLASHCARD
    title = "Flashcards"

    def build_prompt(self, text: str) -> CompletionRequest:
        return CompletionRequest(
            system=FLASHCARDS_SYSTEM,
            user_text=FLASHCARDS_USER_TEMPLATE.format(content=text),
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )

    def parse_response(self, raw: str) -> ParseResult:
        return parse_flashcards(raw)


class QuizStrategy(GenerationStrategy):
    content_type = CONTENT_QUIZ
    title = "Practice Quiz"

    def build_prompt(self, text: str) -> CompletionRequest:
        return CompletionRequest(
            system=QUIZ_SYSTEM,
            user_text=QUIZ_USER_TEMPLATE.format(content=text),
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )

    def parse_response(self, raw: str) -> ParseResult:
        return parse_quiz(raw)


STRATEGIES: dict[str, GenerationStrategy] = {
    s.content_type: s for s in (SummaryStrategy(), FlashcardStrategy(), QuizStrategy())
}

CONTENT_TYPES = tuple(STRATEGIES)


def get_strategy(content_type: str) -> GenerationStrategy:
    strategy = STRATEGIES.get(content_type)
    if not strategy:
        raise InvalidRequest(f"Unknown content type: {content_type}")
    return strategy

import asyncio
import json
import re

import pytest

from study_processor.core.errors import InvalidRequest, ProviderError
from study_processor.services.generation import (
    FALLBACK_FLASHCARD_FRONT,
    FALLBACK_QUIZ_QUESTION,
    Fallback,
    Parsed,
    generated_at,
    get_strategy,
    parse_flashcards,
    parse_quiz,
    parse_summary,
)

from fakes import FakeGateway

ISO_MS_Z = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z$")


def _question(q="What is 2+2?", options=None, answer=1):
    return {"question": q, "options": options or ["3", "4", "5", "6"], "correctAnswer": answer}


def test_generated_at_format():
    assert ISO_MS_Z.match(generated_at())


def test_summary_text_is_kept_verbatim():
    raw = "## Photosynthesis\n\n- converts light into chemical energy\n"

    result = parse_summary(raw)

    assert isinstance(result, Parsed)
    assert result.payload["summary"] == raw
    assert ISO_MS_Z.match(result.payload["generatedAt"])


def test_empty_summary_is_a_provider_failure():
    with pytest.raises(ProviderError):
        parse_summary("   ")


def test_flashcards_parsed():
    raw = json.dumps([{"front": "Cell", "back": "Basic unit of life"}, {"front": "DNA", "back": "Genetic code"}])

    result = parse_flashcards(raw)

    assert isinstance(result, Parsed)
    assert result.payload["flashcards"][1] == {"front": "DNA", "back": "Genetic code"}


def test_flashcards_in_code_fence():
    raw = '```json\n[{"front": "Q", "back": "A"}]\n```'

    result = parse_flashcards(raw)

    assert isinstance(result, Parsed)
    assert result.payload["flashcards"] == [{"front": "Q", "back": "A"}]


def test_flashcards_prose_falls_back_to_single_card():
    raw = "Here are some flashcards about cells."

    result = parse_flashcards(raw)

    assert isinstance(result, Fallback)
    assert result.payload["flashcards"] == [{"front": FALLBACK_FLASHCARD_FRONT, "back": raw}]
    assert "invalid JSON" in result.reason


def test_flashcards_malformed_items_are_dropped():
    raw = json.dumps([{"front": "Q"}, "junk", {"front": "Q2", "back": "A2"}])

    result = parse_flashcards(raw)

    assert isinstance(result, Parsed)
    assert result.payload["flashcards"] == [{"front": "Q2", "back": "A2"}]


def test_flashcards_non_array_falls_back():
    result = parse_flashcards('{"front": "Q", "back": "A"}')

    assert isinstance(result, Fallback)
    assert len(result.payload["flashcards"]) == 1


def test_quiz_parsed():
    result = parse_quiz(json.dumps([_question(), _question("Capital of France?", ["Rome", "Paris", "Oslo", "Bern"], 1)]))

    assert isinstance(result, Parsed)
    assert len(result.payload["questions"]) == 2
    assert result.payload["questions"][1]["options"][1] == "Paris"


def test_quiz_invalid_questions_are_dropped():
    items = [
        _question(options=["a", "b", "c"]),
        _question(answer=4),
        _question(answer=True),
        _question(options=["a", "", "c", "d"]),
        _question("Kept?"),
    ]

    result = parse_quiz(json.dumps(items))

    assert isinstance(result, Parsed)
    assert [q["question"] for q in result.payload["questions"]] == ["Kept?"]


def test_quiz_garbage_falls_back_to_placeholder():
    result = parse_quiz("not json at all")

    assert isinstance(result, Fallback)
    assert result.payload["questions"] == [FALLBACK_QUIZ_QUESTION]


def test_quiz_all_invalid_falls_back():
    result = parse_quiz(json.dumps([_question(answer=-1)]))

    assert isinstance(result, Fallback)
    assert result.reason == "no valid questions in array"


def test_unknown_content_type():
    with pytest.raises(InvalidRequest):
        get_strategy("mindmap")


@pytest.mark.parametrize(
    "content_type,title,max_tokens",
    [("summary", "Smart Summary", 1500), ("flashcard", "Flashcards", 2000), ("quiz", "Practice Quiz", 2000)],
)
def test_strategy_prompt_shape(content_type, title, max_tokens):
    strategy = get_strategy(content_type)

    request = strategy.build_prompt("The mitochondria is the powerhouse of the cell.")

    assert strategy.title == title
    assert request.max_tokens == max_tokens
    assert request.temperature == 0.3
    assert "The mitochondria is the powerhouse of the cell." in request.user_text
    assert request.image_url is None


def test_strategy_generate_uses_gateway():
    gateway = FakeGateway("[]")

    result = asyncio.run(get_strategy("flashcard").generate(gateway, "text"))

    assert isinstance(result, Fallback)
    assert len(gateway.requests) == 1

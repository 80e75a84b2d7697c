import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import asyncio
import random
from collections import Counter

import pytest

from llm_trivia_gen.adapters.mock_adapter import MockAdapter
from llm_trivia_gen.core.errors import (
    AnswerIntegrityError,
    AuthError,
    EmptyGenerationError,
    QuestionGenerationError,
    ValidationError,
)
from llm_trivia_gen.core.generator import TriviaGenerator, find_correct_index, shuffle_answers
from llm_trivia_gen.core.types import DifficultyLevel, ParseSuccess, TriviaAnswer


def _generate(generator, topic="Capitals", difficulty="medium", answer_count=4):
    return asyncio.run(generator.generate(topic, difficulty, answer_count))


def test_generate_end_to_end():
    adapter = MockAdapter()
    draft = _generate(TriviaGenerator(adapter, rng=random.Random(7)))

    assert draft.topic == "Capitals"
    assert draft.difficulty == "medium"
    assert len(draft.answers) == 4
    assert sum(a.is_correct for a in draft.answers) == 1
    assert draft.question.endswith("?")
    assert len(draft.question) <= 150
    assert draft.answers[draft.correct_answer_index].text == "Paris"
    assert draft.metadata.mapped_difficulty is DifficultyLevel.MEDIUM
    assert draft.metadata.provider_name == "mock:mock"
    assert draft.metadata.model == "mock"
    assert draft.metadata.validation_summary == "validated:question=ok,answers=4/4,quotesFixed=0"
    assert draft.metadata.custom_difficulty_description is None

    prompt = adapter.prompts[0]
    assert 'Topic: "Capitals"' in prompt
    assert "Answer count: 4" in prompt
    assert "Difficulty guidance:" in prompt


@pytest.mark.parametrize("requested, expected", [(10, 5), (1, 3), (None, 4), (3, 3)])
def test_answer_count_is_clamped(requested, expected):
    adapter = MockAdapter()
    draft = _generate(TriviaGenerator(adapter), answer_count=requested)
    assert len(draft.answers) == expected
    assert f"Answer count: {expected}" in adapter.prompts[0]


def test_custom_difficulty_keeps_description():
    adapter = MockAdapter()
    draft = _generate(TriviaGenerator(adapter), difficulty="custom: 90s cartoon trivia")

    assert draft.difficulty == "custom: 90s cartoon trivia"
    assert draft.metadata.mapped_difficulty is DifficultyLevel.MEDIUM
    assert draft.metadata.custom_difficulty_description == "90s cartoon trivia"
    prompt = adapter.prompts[0]
    assert 'Difficulty request: "90s cartoon trivia"' in prompt
    assert "Difficulty guidance:" not in prompt


def test_canonical_difficulty_is_case_insensitive():
    draft = _generate(TriviaGenerator(MockAdapter()), difficulty="HARD")
    assert draft.metadata.mapped_difficulty is DifficultyLevel.HARD


def test_sentinel_fails_loudly():
    generator = TriviaGenerator(MockAdapter(payload={"question": "", "answers": []}))
    with pytest.raises(QuestionGenerationError) as excinfo:
        _generate(generator)
    err = excinfo.value
    assert isinstance(err.cause, EmptyGenerationError)
    assert isinstance(err.__cause__, EmptyGenerationError)
    assert err.stage == "parse_response"
    assert "failed to generate trivia question" in str(err)


def test_malformed_payload_is_wrapped():
    generator = TriviaGenerator(MockAdapter(payload="Here is a question: what is 2+2?"))
    with pytest.raises(QuestionGenerationError) as excinfo:
        _generate(generator)
    assert isinstance(excinfo.value.cause, ValidationError)
    assert excinfo.value.stage == "parse_response"


def test_provider_failure_is_wrapped():
    class FailingClient:
        id = "failing"

        async def call(self, prompt, cancel_event=None):
            raise AuthError("bad key", status_code=401)

    with pytest.raises(QuestionGenerationError) as excinfo:
        _generate(TriviaGenerator(FailingClient()))
    assert isinstance(excinfo.value.cause, AuthError)
    assert excinfo.value.stage == "call_provider"


def test_multiple_correct_answers_is_integrity_failure():
    class BrokenParser:
        def parse(self, raw, expected_answer_count):
            return ParseSuccess(
                question="Which is right?",
                answers=[TriviaAnswer("a", True), TriviaAnswer("b", True), TriviaAnswer("c")],
            )

    generator = TriviaGenerator(MockAdapter(), parser=BrokenParser())
    with pytest.raises(QuestionGenerationError) as excinfo:
        _generate(generator, answer_count=3)
    assert isinstance(excinfo.value.cause, AnswerIntegrityError)
    assert excinfo.value.stage == "shuffle"


def test_single_answer_fails_validation():
    class ThinParser:
        def parse(self, raw, expected_answer_count):
            return ParseSuccess(question="Only one?", answers=[TriviaAnswer("yes", True)])

    with pytest.raises(QuestionGenerationError) as excinfo:
        _generate(TriviaGenerator(MockAdapter(), parser=ThinParser()))
    assert isinstance(excinfo.value.cause, ValidationError)
    assert excinfo.value.stage == "validate"


def test_answers_are_trimmed_again():
    class PaddedParser:
        def parse(self, raw, expected_answer_count):
            return ParseSuccess(
                question="  Padded?  ",
                answers=[TriviaAnswer(" yes ", True), TriviaAnswer(" no")],
            )

    draft = _generate(TriviaGenerator(MockAdapter(), parser=PaddedParser()))
    assert draft.question == "Padded?"
    assert sorted(a.text for a in draft.answers) == ["no", "yes"]


@pytest.mark.parametrize("size", [2, 3, 4, 5, 8])
def test_shuffle_keeps_exactly_one_correct(size):
    rng = random.Random(size)
    answers = [TriviaAnswer(f"answer {i}", i == 0) for i in range(size)]
    for _ in range(200):
        shuffled = shuffle_answers(answers, rng)
        assert sum(a.is_correct for a in shuffled) == 1
        assert shuffled[find_correct_index(shuffled)].text == "answer 0"
        assert sorted(a.text for a in shuffled) == sorted(a.text for a in answers)
    assert answers[0].is_correct


def test_shuffle_spreads_correct_answer_over_positions():
    rng = random.Random(1234)
    answers = [TriviaAnswer(f"answer {i}", i == 0) for i in range(4)]
    positions = Counter(find_correct_index(shuffle_answers(answers, rng)) for _ in range(4000))
    assert set(positions) == {0, 1, 2, 3}
    assert all(800 < count < 1200 for count in positions.values())


def test_find_correct_index_rejects_zero_correct():
    with pytest.raises(AnswerIntegrityError, match="found 0"):
        find_correct_index([TriviaAnswer("a"), TriviaAnswer("b")])

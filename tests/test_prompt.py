import pathlib
import sys

sys.path.insert(0, str(pathlib.Path(__file__).resolve().parents[1]))
from llm_trivia_gen.core import prompt
from llm_trivia_gen.core.types import DifficultyLevel


def test_prompt_embeds_inputs_and_sentinel():
    text = prompt.render_prompt(prompt.PromptContext(topic="Capitals", difficulty="easy", answer_count=4))
    assert 'Topic: "Capitals"' in text
    assert 'Difficulty request: "easy"' in text
    assert "Answer count: 4" in text
    assert "EXACTLY 4 unique strings" in text
    assert '{"question":"","answers":[]}' in text
    assert f"Difficulty guidance: {prompt.DIFFICULTY_GUIDANCE[DifficultyLevel.EASY]}" in text


def test_custom_difficulty_has_no_guidance():
    text = prompt.render_prompt(
        prompt.PromptContext(topic="Space", difficulty="custom:easy for kids", answer_count=3)
    )
    assert 'Difficulty request: "easy for kids"' in text
    assert "Difficulty guidance" not in text


def test_custom_difficulty_helpers():
    assert prompt.is_custom_difficulty("custom:PhD level")
    assert prompt.is_custom_difficulty("Custom: anything")
    assert not prompt.is_custom_difficulty("hard")
    assert prompt.extract_custom_difficulty_text("custom:  PhD level ") == "PhD level"
    assert prompt.extract_custom_difficulty_text("hard") == "hard"


def test_mapped_difficulty_defaults_to_medium():
    assert prompt.resolve_mapped_difficulty("Easy") is DifficultyLevel.EASY
    assert prompt.resolve_mapped_difficulty(" hard ") is DifficultyLevel.HARD
    assert prompt.resolve_mapped_difficulty("custom:hard") is DifficultyLevel.MEDIUM
    assert prompt.resolve_mapped_difficulty("expert") is DifficultyLevel.MEDIUM


def test_prompt_carries_quality_rules_and_quote_note():
    text = prompt.render_prompt(prompt.PromptContext(topic="Music", difficulty="hard", answer_count=5))
    assert "QUALITY REQUIREMENTS" in text
    assert "plausible distractors" in text
    assert "they will be normalized downstream" in text
    assert text.rstrip().endswith("Violating any rule makes the response invalid.")

from __future__ import annotations

from dataclasses import dataclass

from .types import DifficultyLevel

CUSTOM_DIFFICULTY_PREFIX = "custom:"

SYSTEM_PROMPT = (
    "You are a trivia question generator that can handle standard (easy, medium, hard) "
    "and custom difficulty descriptions. Always provide factual, concise questions "
    "(<150 chars) with clear wording and balanced answer options. Keep answers aligned "
    "to the topic and ensure only one correct answer. Only use well-established, "
    "verifiable facts. Never invent, guess, or use uncertain information. If you are "
    "unsure about factual accuracy, return an empty question."
)

DIFFICULTY_GUIDANCE = {
    DifficultyLevel.EASY: "Use well-known, commonly known facts that most people would know. Simple, straightforward questions.",
    DifficultyLevel.MEDIUM: "Use moderately known facts that require some knowledge of the topic. Balance between common and specialized knowledge.",
    DifficultyLevel.HARD: "Use specialized, less commonly known facts that require deeper knowledge or expertise in the topic.",
}

TEMPLATE = (
    "You must emit exactly one JSON object describing a trivia question. "
    "Only emit the JSON, with no markdown, code fences, comments, or explanations.\n\n"
    "INPUT\n"
    '- Topic: "{topic}"\n'
    '- Difficulty request: "{difficulty}"\n'
    "- Answer count: {answer_count}{guidance}\n\n"
    "MANDATORY RULES\n"
    '1. Output must contain ONLY the fields "question" and "answers" in that order. '
    "Never include explanations or extra metadata.\n"
    '2. "question" must be a single factual sentence under 150 characters, end with "?", '
    "and be answerable without external context.\n"
    '3. "answers" must contain EXACTLY {answer_count} unique strings under 100 characters. '
    "The first string is the correct answer; every incorrect answer must be plausible "
    "but clearly wrong.\n"
    '4. Prefer standard ASCII double quotes ("); if you emit smart quotes, they will be '
    "normalized downstream.\n"
    "5. If you cannot produce a compliant question with verified factual information, "
    'output {{"question":"","answers":[]}} with nothing else.\n\n'
    "QUALITY REQUIREMENTS\n"
    "- The correct answer must be factually accurate and verifiable\n"
    "- All answers should be roughly similar in length and format\n"
    "- Incorrect answers should be plausible distractors related to the topic\n"
    "- Avoid ambiguous wording that could make multiple answers seem correct\n"
    "- Ensure the question tests genuine knowledge, not trick wording\n\n"
    "OUTPUT FORMAT (NO CODE FENCE, NO EXTRA TEXT)\n"
    '{{"question":"<question ending with ?>","answers":["<correct answer>","<wrong answer 1>", "..."]}}'
    "\n\nViolating any rule makes the response invalid."
)


@dataclass
class PromptContext:
    topic: str
    difficulty: str
    answer_count: int


def is_custom_difficulty(difficulty: str) -> bool:
    return difficulty.strip().lower().startswith(CUSTOM_DIFFICULTY_PREFIX)


def extract_custom_difficulty_text(difficulty: str) -> str:
    stripped = difficulty.strip()
    if stripped.lower().startswith(CUSTOM_DIFFICULTY_PREFIX):
        return stripped[len(CUSTOM_DIFFICULTY_PREFIX) :].strip()
    return stripped


def resolve_mapped_difficulty(difficulty: str) -> DifficultyLevel:
    """Map a requested difficulty onto a canonical tier, defaulting to medium."""
    normalized = difficulty.strip().lower()
    for level in DifficultyLevel:
        if normalized == level.value:
            return level
    return DifficultyLevel.MEDIUM


def difficulty_guidance(difficulty: str) -> str:
    if is_custom_difficulty(difficulty):
        return ""
    normalized = difficulty.strip().lower()
    for level, hint in DIFFICULTY_GUIDANCE.items():
        if normalized == level.value:
            return hint
    return ""


def render_prompt(ctx: PromptContext) -> str:
    guidance = difficulty_guidance(ctx.difficulty)
    return TEMPLATE.format(
        topic=ctx.topic,
        difficulty=extract_custom_difficulty_text(ctx.difficulty),
        answer_count=ctx.answer_count,
        guidance=f"\n- Difficulty guidance: {guidance}" if guidance else "",
    )

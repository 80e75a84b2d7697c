from __future__ import annotations

import asyncio
import json
import os
from dataclasses import asdict
from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

from ..adapters.groq_adapter import GroqAdapter
from ..adapters.mock_adapter import MockAdapter
from ..core.errors import QuestionGenerationError
from ..core.generator import TriviaGenerator
from ..core.logging_utils import setup_logging
from ..core.runtime_data import get_runtime_paths
from ..core.settings import load_settings
from ..core.types import TriviaQuestionDraft

app = typer.Typer()


def _use_mocks() -> bool:
    return os.environ.get("TRIVIA_GEN_ENV", "real").lower() == "mock"


async def _generate(
    topic: str, difficulty: str, answer_count: int, use_mocks: bool
) -> TriviaQuestionDraft:
    settings = load_settings()
    if use_mocks:
        generator = TriviaGenerator(MockAdapter(), settings=settings)
        return await generator.generate(topic, difficulty, answer_count)
    async with GroqAdapter(settings) as client:
        generator = TriviaGenerator(client, settings=settings)
        return await generator.generate(topic, difficulty, answer_count)


@app.command("generate")
def generate(
    topic: str,
    difficulty: str = "medium",
    answers: int = 4,
    output: Optional[Path] = None,
) -> None:
    """Generate one trivia question and print it as JSON.

    Args:
        topic: Subject of the question (e.g., "Capitals")
        difficulty: easy, medium, hard or a free-form "custom:<description>"
        answers: Number of answer options (clamped to the configured range)
        output: Optional file to write the JSON draft to
    """
    setup_logging(get_runtime_paths().log_path)
    use_mocks = _use_mocks()
    if use_mocks:
        typer.echo("🧪 Mock mode: using canned provider responses", err=True)

    try:
        draft = asyncio.run(_generate(topic, difficulty, answers, use_mocks))
    except QuestionGenerationError as e:
        typer.echo(f"❌ {e} (stage: {e.stage})", err=True)
        raise typer.Exit(1)

    text = json.dumps(asdict(draft), indent=2, ensure_ascii=False)
    if output:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(text + "\n", encoding="utf-8")
        typer.echo(f"✅ Draft written to {output}", err=True)
    typer.echo(text)


@app.command("models")
def models() -> None:
    """List the models the provider client rotates through."""
    settings = load_settings()
    typer.echo(f"🤖 {settings.provider_name} rotation ({settings.base_url}):")
    for idx, model in enumerate(settings.models, start=1):
        typer.echo(f"   {idx}. {model}")

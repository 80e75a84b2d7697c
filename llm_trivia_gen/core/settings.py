"""Configuration loader for the trivia generator (provider, retries, answer bounds)."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Optional

import yaml

DEFAULT_FREE_TIER_MODELS = ("gpt-oss-20b", "llama-3.1-8b-instant")


@dataclass(frozen=True)
class GeneratorSettings:
    provider_name: str = "groq"
    base_url: str = "https://api.groq.com/openai/v1"
    api_key_env: str = "GROQ_API_KEY"
    models: tuple[str, ...] = DEFAULT_FREE_TIER_MODELS
    temperature: float = 0.7
    max_tokens: int = 512
    timeout_ms: int = 30000
    max_retries: int = 3
    retry_base_delay_ms: int = 1000
    retry_max_delay_ms: int = 30000
    retry_jitter_ms: int = 250
    answer_count_min: int = 3
    answer_count_max: int = 5
    answer_count_default: int = 4
    extra_headers: dict[str, str] = field(default_factory=dict)

    @property
    def api_key(self) -> str:
        return os.environ.get(self.api_key_env, "")


ENV_OVERRIDES: dict[str, str] = {
    "TRIVIA_GEN_BASE_URL": "base_url",
    "TRIVIA_GEN_API_KEY_ENV": "api_key_env",
    "TRIVIA_GEN_MODELS": "models",
    "TRIVIA_GEN_TIMEOUT_MS": "timeout_ms",
    "TRIVIA_GEN_MAX_RETRIES": "max_retries",
    "TRIVIA_GEN_RETRY_BASE_DELAY_MS": "retry_base_delay_ms",
}


def _coerce(name: str, raw: Any) -> Any:
    defaults = GeneratorSettings()
    current = getattr(defaults, name)
    if name == "models":
        if isinstance(raw, str):
            raw = [item.strip() for item in raw.split(",")]
        models = tuple(str(item) for item in raw if str(item).strip())
        if not models:
            raise ValueError("At least one model must be configured")
        return models
    if isinstance(current, bool):
        return bool(raw)
    if isinstance(current, int):
        return int(raw)
    if isinstance(current, float):
        return float(raw)
    if isinstance(current, dict):
        return {str(k): str(v) for k, v in dict(raw).items()}
    return str(raw)


class GeneratorConfigLoader:
    """Loads generator settings from config/generator.yaml plus environment overrides."""

    def __init__(self, config_path: Optional[Path] = None) -> None:
        if config_path is None:
            env_path = os.environ.get("TRIVIA_GEN_CONFIG", "").strip()
            if env_path:
                config_path = Path(env_path)
            else:
                project_root = Path(__file__).parent.parent.parent
                config_path = project_root / "config" / "generator.yaml"
        self.config_path = config_path
        self._config: dict[str, Any] | None = None

    def _load_config(self) -> None:
        if self._config is not None:
            return
        if not self.config_path.exists():
            self._config = {}
            return
        with self.config_path.open("r", encoding="utf-8") as handle:
            self._config = yaml.safe_load(handle) or {}

    def load(self) -> GeneratorSettings:
        """Return settings with file values and environment overrides applied."""
        self._load_config()
        section = (self._config or {}).get("generator", {})
        known = {f.name for f in fields(GeneratorSettings)}
        updates: dict[str, Any] = {}
        if isinstance(section, dict):
            for key, value in section.items():
                if key in known and value is not None:
                    updates[key] = _coerce(key, value)
        for env_name, attr in ENV_OVERRIDES.items():
            raw = os.environ.get(env_name, "").strip()
            if not raw:
                continue
            try:
                updates[attr] = _coerce(attr, raw)
            except ValueError:
                continue
        return replace(GeneratorSettings(), **updates)


def load_settings(config_path: Optional[Path] = None) -> GeneratorSettings:
    return GeneratorConfigLoader(config_path).load()

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Dict, Mapping, Tuple

from dotenv import load_dotenv

from specrefine.adapters.llm_base import GenerationParams

GENERIC_KEY_ENV = "SPECREFINE_AI_KEY"


@dataclass(frozen=True)
class ProviderConfig:
    name: str
    env_keys: Tuple[str, ...]
    model: str
    temperature: float = 0.3
    max_output_tokens: int = 2000
    base_url: str | None = None
    json_mode: bool = True


PROVIDERS: Dict[str, ProviderConfig] = {
    "openai": ProviderConfig("openai", ("OPENAI_API_KEY",), "gpt-4o-mini"),
    "gemini": ProviderConfig("gemini", ("GEMINI_API_KEY",), "gemini-flash-latest"),
    "claude": ProviderConfig(
        "claude", ("ANTHROPIC_API_KEY",), "claude-3-haiku-20240307", json_mode=False
    ),
    "openrouter": ProviderConfig(
        "openrouter",
        ("OPENROUTER_API_KEY",),
        "meta-llama/llama-3.1-8b-instruct:free",
        temperature=0.2,
        base_url="https://openrouter.ai/api/v1",
        json_mode=False,
    ),
    "glm": ProviderConfig(
        "glm",
        ("ZAI_API_KEY", "ZHIPUAI_API_KEY"),
        "glm-4.0",
        base_url="https://api.z.ai/api/paas/v4/",
        json_mode=False,
    ),
    "mock": ProviderConfig("mock", (), "mock-1"),
}


def _env_bool(env: Mapping[str, str], key: str, default: bool) -> bool:
    value = env.get(key)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(env: Mapping[str, str], key: str, default: int) -> int:
    try:
        return int(env.get(key, default))
    except (TypeError, ValueError):
        return default


def _env_float(env: Mapping[str, str], key: str) -> float | None:
    value = env.get(key)
    if value is None or value.strip() == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class Settings:
    provider: str = "openai"
    model: str | None = None
    temperature: float | None = None
    max_output_tokens: int | None = None
    use_cache: bool = True
    cache_size: int = 50
    enable_wizard: bool = True
    repair_lookback: int = 10
    mock_scenario: str = "default"

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "Settings":
        env = os.environ if env is None else env
        provider = (env.get("SPECREFINE_PROVIDER") or "openai").strip().lower()
        max_tokens = _env_int(env, "SPECREFINE_MAX_OUTPUT_TOKENS", 0)
        return cls(
            provider=provider,
            model=(env.get("SPECREFINE_MODEL") or "").strip() or None,
            temperature=_env_float(env, "SPECREFINE_TEMPERATURE"),
            max_output_tokens=max_tokens if max_tokens > 0 else None,
            use_cache=_env_bool(env, "SPECREFINE_CACHE", True),
            cache_size=max(1, _env_int(env, "SPECREFINE_CACHE_SIZE", 50)),
            enable_wizard=_env_bool(env, "SPECREFINE_WIZARD", True),
            repair_lookback=max(1, _env_int(env, "SPECREFINE_REPAIR_LOOKBACK", 10)),
            mock_scenario=(env.get("SPECREFINE_MOCK_SCENARIO") or "default").strip(),
        )

    def with_overrides(self, **overrides: object) -> "Settings":
        values = {key: value for key, value in overrides.items() if value is not None}
        return replace(self, **values)

    @property
    def provider_config(self) -> ProviderConfig:
        try:
            return PROVIDERS[self.provider]
        except KeyError:
            raise ValueError(
                f"Unsupported provider: {self.provider}. Choose one of: {', '.join(PROVIDERS)}"
            ) from None

    @property
    def resolved_model(self) -> str:
        return self.model or self.provider_config.model

    def generation_params(self) -> GenerationParams:
        config = self.provider_config
        return GenerationParams(
            temperature=self.temperature if self.temperature is not None else config.temperature,
            max_output_tokens=self.max_output_tokens or config.max_output_tokens,
            json_mode=config.json_mode,
        )


def load_settings(base_dir: Path | None = None) -> Settings:
    if base_dir is not None:
        load_dotenv(base_dir / ".env")
    else:
        load_dotenv()
    return Settings.from_env()


def resolve_api_key(
    provider: str, cli_token: str | None = None, env: Mapping[str, str] | None = None
) -> str | None:
    """Token lookup order: CLI flag, provider variables, generic SPECREFINE_AI_KEY."""
    if cli_token:
        return cli_token
    env = os.environ if env is None else env
    config = PROVIDERS.get(provider)
    for key in config.env_keys if config else ():
        if env.get(key):
            return env[key]
    return env.get(GENERIC_KEY_ENV) or None

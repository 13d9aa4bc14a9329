"""Settings for the normalization (OpenAI LLM) stage."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, PositiveFloat, PositiveInt, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LLMSettings(BaseSettings):
    """Environment-driven configuration for the normalizer."""

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
        populate_by_name=True,
    )

    openai_api_key: str = Field(..., alias="OPENAI_API_KEY", description="OpenAI API key")
    normalizer_model: str = Field("gpt-4o-mini", alias="NORMALIZER_MODEL", description="OpenAI model name")
    normalizer_max_tokens: PositiveInt = Field(1500, alias="NORMALIZER_MAX_TOKENS", description="Max completion tokens")
    normalizer_temperature: PositiveFloat = Field(0.3, alias="NORMALIZER_TEMPERATURE", description="Sampling temperature")
    normalizer_request_timeout_seconds: PositiveFloat = Field(
        30.0,
        alias="NORMALIZER_REQUEST_TIMEOUT_SECONDS",
        description="HTTP request timeout in seconds",
    )
    normalizer_max_retries: int = Field(3, ge=0, alias="NORMALIZER_MAX_RETRIES", description="재시도 횟수 (첫 시도 제외)")
    normalizer_retry_base_delay_seconds: float = Field(
        1.0, ge=0.0, alias="NORMALIZER_RETRY_BASE_DELAY_SECONDS", description="지수 백오프 시작값(초)"
    )
    normalizer_max_body_chars: PositiveInt = Field(
        6000, alias="NORMALIZER_MAX_BODY_CHARS", description="프롬프트에 넣을 본문 최대 길이"
    )
    summary_min_words: PositiveInt = Field(80, alias="SUMMARY_MIN_WORDS")
    summary_max_words: PositiveInt = Field(180, alias="SUMMARY_MAX_WORDS")
    summary_word_policy: Literal["warn", "reject"] = Field(
        "warn",
        alias="SUMMARY_WORD_POLICY",
        description="요약 단어 수가 범위를 벗어날 때: warn(로그만) | reject(검증 실패)",
    )

    @field_validator("openai_api_key")
    @classmethod
    def _non_empty_api_key(cls, v: str) -> str:
        s = v.strip()
        if not s:
            raise ValueError("OPENAI_API_KEY는 공백일 수 없습니다.")
        return s

    @field_validator("summary_word_policy", mode="before")
    @classmethod
    def _policy_lower(cls, v: object) -> object:
        return v.strip().lower() if isinstance(v, str) else v

    @model_validator(mode="after")
    def _word_band(self) -> "LLMSettings":
        if self.summary_min_words > self.summary_max_words:
            raise ValueError("SUMMARY_MIN_WORDS는 SUMMARY_MAX_WORDS보다 클 수 없습니다.")
        return self


@lru_cache()
def get_llm_settings() -> LLMSettings:
    try:
        return LLMSettings()
    except ValidationError as exc:
        raise RuntimeError(f"LLM 설정 검증 실패: {exc}") from exc


def reset_llm_settings_cache() -> None:
    get_llm_settings.cache_clear()  # type: ignore[attr-defined]

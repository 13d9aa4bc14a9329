"""OpenAI LLM 클라이언트 래퍼.

특징
- 단일 JSON 객체 출력 강제, 코드펜스 제거 후 파싱 → NormalizedContent 스키마로 검증
- 파싱/검증/전송 실패 시 지수 백오프 재시도, 인증 등 영구 오류는 즉시 전파
- Provider 주입으로 테스트 시 네트워크/실제 의존성 제거
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from pydantic import ValidationError

from analysis.models.domain import NormalizedContent
from analysis.prompts.templates import build_normalization_messages
from ingestion.models.domain import CandidateArticle
from ingestion.utils.logging import get_logger
from ingestion.utils.text import count_words, strip_code_fence
from llm.settings import LLMSettings, get_llm_settings

logger = get_logger(__name__)


class LLMError(Exception):
    """LLM 호출 관련 기본 오류."""


class TransientLLMError(LLMError):
    """일시 오류(재시도 대상)."""


class PermanentLLMError(LLMError):
    """영구 오류(재시도 불가)."""


class NormalizationError(LLMError):
    """재시도 한도를 모두 소진한 정규화 실패."""


ProviderFn = Callable[[Dict[str, Any]], Dict[str, Any]]
SleepFn = Callable[[float], None]


def _extract_content(resp: Dict[str, Any]) -> str:
    try:
        content = resp["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as exc:
        raise TransientLLMError("LLM 응답 형식 오류") from exc
    if not isinstance(content, str) or not content.strip():
        raise TransientLLMError("LLM 응답이 비어 있습니다.")
    return content


def _load_structured_content(content: str) -> Dict[str, Any]:
    try:
        data = json.loads(strip_code_fence(content))
    except json.JSONDecodeError as exc:
        raise TransientLLMError("LLM 응답 JSON 파싱 실패") from exc
    if not isinstance(data, dict):
        raise TransientLLMError("LLM 응답이 JSON 객체가 아닙니다.")
    return data


@dataclass(frozen=True)
class OpenAIClient:
    settings: LLMSettings
    provider: Optional[ProviderFn] = None
    sleep: SleepFn = time.sleep

    @classmethod
    def from_env(cls, provider: Optional[ProviderFn] = None) -> "OpenAIClient":
        return cls(get_llm_settings(), provider=provider)

    def _get_provider(self) -> ProviderFn:
        if self.provider is not None:
            return self.provider
        # 지연 import: 라이브러리가 없으면 명확한 에러
        try:
            import openai  # type: ignore
        except Exception as exc:  # pragma: no cover - 테스트에선 provider 주입
            raise PermanentLLMError("openai 라이브러리를 찾을 수 없습니다.") from exc

        client = openai.OpenAI(
            api_key=self.settings.openai_api_key,
            timeout=float(self.settings.normalizer_request_timeout_seconds),
            max_retries=0,
        )

        def _call(payload: Dict[str, Any]) -> Dict[str, Any]:  # pragma: no cover - 네트워크 미사용
            try:
                resp = client.chat.completions.create(**payload)
            except (openai.AuthenticationError, openai.PermissionDeniedError, openai.NotFoundError) as exc:
                raise PermanentLLMError(f"OpenAI 영구 오류: {exc}") from exc
            except openai.APIError as exc:
                raise TransientLLMError(f"OpenAI 일시 오류: {exc}") from exc
            return {
                "choices": [{"message": {"content": resp.choices[0].message.content}}],
                "model": resp.model,
            }

        return _call

    def _build_payload(self, candidate: CandidateArticle) -> Dict[str, Any]:
        msgs = build_normalization_messages(
            candidate.title,
            candidate.body,
            candidate.link,
            max_body_chars=int(self.settings.normalizer_max_body_chars),
        )
        return {
            "model": self.settings.normalizer_model,
            "messages": msgs,
            "temperature": float(self.settings.normalizer_temperature),
            "max_tokens": int(self.settings.normalizer_max_tokens),
            "response_format": {"type": "json_object"},
        }

    def normalize(self, candidate: CandidateArticle) -> NormalizedContent:
        """Candidate → NormalizedContent, or NormalizationError once retries run out."""
        payload = self._build_payload(candidate)
        provider = self._get_provider()
        max_retries = int(self.settings.normalizer_max_retries)
        base_delay = float(self.settings.normalizer_retry_base_delay_seconds)

        last_exc: Optional[Exception] = None
        for attempt in range(max_retries + 1):
            try:
                content = _extract_content(provider(payload))
                result = NormalizedContent.model_validate(_load_structured_content(content))
                self._check_word_counts(result, candidate.link)
                return result.model_copy(
                    update={
                        "source_link": candidate.link,
                        "raw_text": f"{result.title} {result.summary_en}",
                    }
                )
            except PermanentLLMError:
                raise
            except ValidationError as exc:
                last_exc = exc
                reason = exc.errors()[0].get("msg") if exc.errors() else str(exc)
            except Exception as exc:  # noqa: BLE001 - transport errors from the provider
                last_exc = exc
                reason = str(exc)

            logger.warning(
                "normalize.attempt_failed",
                extra={"link": candidate.link, "attempt": attempt + 1, "max_attempts": max_retries + 1, "error": reason},
            )
            if attempt < max_retries:
                self.sleep(base_delay * (2 ** attempt))

        raise NormalizationError(
            f"정규화 실패 ({max_retries + 1}회 시도): {last_exc}"
        ) from last_exc

    def _check_word_counts(self, result: NormalizedContent, link: str) -> None:
        low = self.settings.summary_min_words
        high = self.settings.summary_max_words
        for field_name in ("summary_en", "summary_hi"):
            words = count_words(getattr(result, field_name))
            if low <= words <= high:
                continue
            if self.settings.summary_word_policy == "reject":
                raise TransientLLMError(f"{field_name} 단어 수({words})가 {low}-{high} 범위를 벗어났습니다.")
            logger.warning(
                "normalize.word_count",
                extra={"link": link, "field": field_name, "words": words, "min": low, "max": high},
            )

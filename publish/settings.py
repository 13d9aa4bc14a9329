"""Settings for push delivery (Firebase Cloud Messaging)."""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field, SecretStr, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

FCM_MULTICAST_LIMIT = 500


class PushSettings(BaseSettings):
    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
        populate_by_name=True,
    )

    firebase_project_id: Optional[str] = Field(None, alias="FIREBASE_PROJECT_ID")
    firebase_client_email: Optional[str] = Field(None, alias="FIREBASE_CLIENT_EMAIL")
    firebase_private_key: Optional[SecretStr] = Field(
        None,
        alias="FIREBASE_PRIVATE_KEY",
        description="서비스 계정 private key (\\n 이스케이프 허용).",
    )
    push_batch_size: int = Field(
        FCM_MULTICAST_LIMIT,
        ge=1,
        le=FCM_MULTICAST_LIMIT,
        alias="PUSH_BATCH_SIZE",
        description="멀티캐스트 1회당 최대 토큰 수.",
    )

    @field_validator("firebase_private_key", mode="before")
    @classmethod
    def _unescape_newlines(cls, v: object) -> object:
        if isinstance(v, str):
            return v.replace("\\n", "\n")
        return v

    @property
    def has_credentials(self) -> bool:
        return bool(self.firebase_project_id and self.firebase_client_email and self.firebase_private_key)


@lru_cache()
def get_push_settings() -> PushSettings:
    try:
        return PushSettings()
    except ValidationError as exc:
        raise RuntimeError(f"푸시 설정 검증 실패: {exc}") from exc


def reset_push_settings_cache() -> None:
    get_push_settings.cache_clear()  # type: ignore[attr-defined]

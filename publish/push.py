"""Push transport: multicast to device tokens with per-token results."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Sequence

from ingestion.utils.logging import get_logger
from publish.settings import PushSettings, get_push_settings

logger = get_logger(__name__)


class PushConfigError(Exception):
    """Push 전송 설정 누락/오류."""


@dataclass(frozen=True)
class PushMessage:
    title: str
    body: str
    data: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class SendOutcome:
    token: str
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


class PushSender(Protocol):
    def send_multicast(self, tokens: Sequence[str], message: PushMessage) -> List[SendOutcome]: ...  # noqa: D401


class FirebasePushSender:
    """firebase-admin 기반 전송기.

    토큰 목록은 batch_size(최대 500) 단위로 나누어 전송하며, 결과는 입력 토큰
    순서를 유지한다. 한 배치 호출 전체가 실패하면 그 배치의 토큰은 모두 실패로
    기록하고 다음 배치를 계속 보낸다.
    """

    def __init__(self, settings: PushSettings | None = None, *, messaging: Any = None, app: Any = None) -> None:
        self.settings = settings or get_push_settings()
        self._messaging = messaging
        self._app = app

    def _get_messaging(self) -> Any:
        if self._messaging is not None:
            return self._messaging
        # 지연 import: 라이브러리가 없으면 명확한 에러
        try:
            import firebase_admin  # type: ignore
            from firebase_admin import credentials, messaging  # type: ignore
        except Exception as exc:  # pragma: no cover - 테스트에선 messaging 주입
            raise PushConfigError("firebase-admin 라이브러리를 찾을 수 없습니다.") from exc

        if self._app is None:
            private_key = self.settings.firebase_private_key
            if not self.settings.has_credentials or private_key is None:
                raise PushConfigError("Firebase 자격 증명이 설정되지 않았습니다.")
            cert = credentials.Certificate(
                {
                    "type": "service_account",
                    "project_id": self.settings.firebase_project_id,
                    "client_email": self.settings.firebase_client_email,
                    "private_key": private_key.get_secret_value(),
                    "token_uri": "https://oauth2.googleapis.com/token",
                }
            )
            try:
                self._app = firebase_admin.get_app()
            except ValueError:
                self._app = firebase_admin.initialize_app(cert)
        self._messaging = messaging
        return messaging

    def _build(self, messaging: Any, tokens: List[str], message: PushMessage) -> Any:
        return messaging.MulticastMessage(
            tokens=tokens,
            notification=messaging.Notification(title=message.title, body=message.body),
            data=dict(message.data),
            android=messaging.AndroidConfig(priority="high"),
            apns=messaging.APNSConfig(payload=messaging.APNSPayload(aps=messaging.Aps(sound="default", badge=1))),
        )

    def send_multicast(self, tokens: Sequence[str], message: PushMessage) -> List[SendOutcome]:
        messaging = self._get_messaging()
        size = self.settings.push_batch_size
        outcomes: List[SendOutcome] = []
        token_list = list(tokens)
        for start in range(0, len(token_list), size):
            batch = token_list[start : start + size]
            try:
                response = messaging.send_each_for_multicast(self._build(messaging, batch, message), app=self._app)
            except Exception as exc:  # noqa: BLE001 - 배치 실패는 토큰별 실패로 기록
                logger.warning("push.batch_failed", extra={"tokens": len(batch), "error": str(exc)})
                outcomes.extend(SendOutcome(token=t, success=False, error=str(exc)) for t in batch)
                continue
            for token, resp in zip(batch, response.responses):
                if resp.success:
                    outcomes.append(SendOutcome(token=token, success=True, message_id=resp.message_id))
                else:
                    outcomes.append(SendOutcome(token=token, success=False, error=str(resp.exception)))
            for token in batch[len(response.responses) :]:
                outcomes.append(SendOutcome(token=token, success=False, error="응답 누락"))
        return outcomes

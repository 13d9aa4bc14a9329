from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence

from api.models import SubscriberProfile
from ingestion.utils.geo import haversine_km
from ingestion.utils.logging import get_logger
from publish.push import PushMessage, PushSender, SendOutcome

logger = get_logger(__name__)

PRIORITY_THRESHOLD = 4
GEOFENCE_RADIUS_KM = 50.0


@dataclass(frozen=True)
class EventNotice:
    event_id: str
    title: str
    category: str
    location_text: str
    latitude: float
    longitude: float
    priority_score: int

    @classmethod
    def from_event(cls, event) -> "EventNotice":  # noqa: ANN001
        return cls(
            event_id=str(event.id),
            title=event.title,
            category=event.category,
            location_text=event.location_text or event.place_name or "",
            latitude=event.latitude,
            longitude=event.longitude,
            priority_score=event.priority_score,
        )


@dataclass(frozen=True)
class RecipientOutcome:
    user_id: str
    token: str
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


@dataclass
class DispatchReport:
    sent: int = 0
    failed: int = 0
    outcomes: List[RecipientOutcome] = field(default_factory=list)


def should_notify(priority_score: int, is_new: bool, threshold: int = PRIORITY_THRESHOLD) -> bool:
    return is_new and priority_score >= threshold


def is_eligible(subscriber: SubscriberProfile, notice: EventNotice, radius_km: float = GEOFENCE_RADIUS_KM) -> bool:
    if not subscriber.notifications_enabled or not subscriber.device_token:
        return False
    if subscriber.categories and notice.category not in subscriber.categories:
        return False
    home = subscriber.home
    if home is None:
        return True
    return haversine_km(home[0], home[1], notice.latitude, notice.longitude) <= radius_km


def select_recipients(
    subscribers: Iterable[SubscriberProfile],
    notice: EventNotice,
    radius_km: float = GEOFENCE_RADIUS_KM,
) -> List[SubscriberProfile]:
    return [s for s in subscribers if is_eligible(s, notice, radius_km)]


def format_event_notification(notice: EventNotice) -> PushMessage:
    location = notice.location_text or "Almora"
    return PushMessage(
        title=f"{notice.category.upper()}: {location}",
        body=notice.title,
        data={
            "eventId": notice.event_id,
            "category": notice.category,
            "location": location,
            "type": "event_notification",
        },
    )


def dispatch_event_notifications(
    notice: EventNotice,
    subscribers: Sequence[SubscriberProfile],
    sender: PushSender,
    *,
    radius_km: float = GEOFENCE_RADIUS_KM,
) -> DispatchReport:
    """One multicast to every eligible device token; never raises on delivery errors."""
    recipients = select_recipients(subscribers, notice, radius_km)
    report = DispatchReport()
    if not recipients:
        logger.info("notify.no_recipients", extra={"event_id": notice.event_id, "category": notice.category})
        return report

    tokens = [r.device_token for r in recipients if r.device_token]
    try:
        results: List[SendOutcome] = list(sender.send_multicast(tokens, format_event_notification(notice)))
    except Exception as exc:  # noqa: BLE001 - 전송 전체 실패는 모든 수신자 실패로 집계
        logger.warning("notify.multicast_failed", extra={"event_id": notice.event_id, "error": str(exc)})
        results = [SendOutcome(token=t, success=False, error=str(exc)) for t in tokens]

    for index, recipient in enumerate(recipients):
        result = results[index] if index < len(results) else SendOutcome(
            token=recipient.device_token or "", success=False, error="결과 누락"
        )
        outcome = RecipientOutcome(
            user_id=recipient.user_id,
            token=result.token,
            success=result.success,
            message_id=result.message_id,
            error=result.error,
        )
        report.outcomes.append(outcome)
        if outcome.success:
            report.sent += 1
        else:
            report.failed += 1
        logger.info(
            "notify.recipient",
            extra={
                "event_id": notice.event_id,
                "user_id": outcome.user_id,
                "success": outcome.success,
                "message_id": outcome.message_id,
                "error": outcome.error,
            },
        )

    logger.info(
        "notify.done",
        extra={"event_id": notice.event_id, "sent": report.sent, "failed": report.failed},
    )
    return report

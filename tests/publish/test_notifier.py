from __future__ import annotations

from typing import List, Sequence

import pytest

from api.models import SubscriberProfile
from publish.notifier import (
    EventNotice,
    dispatch_event_notifications,
    format_event_notification,
    is_eligible,
    should_notify,
)
from publish.push import PushMessage, SendOutcome

NOTICE = EventNotice(
    event_id="evt-1",
    title="Landslide on Mall Road",
    category="accident",
    location_text="Mall Road",
    latitude=29.5973,
    longitude=79.6586,
    priority_score=4,
)


def _sub(user_id: str = "u1", **overrides) -> SubscriberProfile:
    values = dict(
        user_id=user_id,
        categories=["accident"],
        home_latitude=29.6,
        home_longitude=79.66,
        notifications_enabled=True,
        device_token=f"tok-{user_id}",
    )
    values.update(overrides)
    return SubscriberProfile(**values)


class FakeSender:
    def __init__(self, fail_tokens=(), raise_exc: Exception | None = None):
        self.fail_tokens = set(fail_tokens)
        self.raise_exc = raise_exc
        self.calls: List[tuple[List[str], PushMessage]] = []

    def send_multicast(self, tokens: Sequence[str], message: PushMessage) -> List[SendOutcome]:
        self.calls.append((list(tokens), message))
        if self.raise_exc is not None:
            raise self.raise_exc
        return [
            SendOutcome(token=t, success=t not in self.fail_tokens, message_id=None if t in self.fail_tokens else "m")
            for t in tokens
        ]


@pytest.mark.parametrize(
    "priority, is_new, expected",
    [(4, True, True), (5, True, True), (3, True, False), (5, False, False)],
)
def test_should_notify(priority, is_new, expected):
    assert should_notify(priority, is_new) is expected


def test_eligibility_clauses():
    assert is_eligible(_sub(), NOTICE)
    assert not is_eligible(_sub(notifications_enabled=False), NOTICE)
    assert not is_eligible(_sub(device_token=None), NOTICE)
    assert not is_eligible(_sub(device_token=""), NOTICE)
    assert not is_eligible(_sub(categories=["weather"]), NOTICE)
    assert is_eligible(_sub(categories=[]), NOTICE)
    # 델리는 50km 밖
    assert not is_eligible(_sub(home_latitude=28.6139, home_longitude=77.209), NOTICE)
    assert is_eligible(_sub(home_latitude=None, home_longitude=None), NOTICE)
    assert is_eligible(_sub(home_latitude=29.6, home_longitude=None), NOTICE)
    assert is_eligible(_sub(home_latitude=28.6139, home_longitude=77.209), NOTICE, radius_km=400)


def test_notification_payload_format():
    message = format_event_notification(NOTICE)

    assert message.title == "ACCIDENT: Mall Road"
    assert message.body == "Landslide on Mall Road"
    assert message.data == {
        "eventId": "evt-1",
        "category": "accident",
        "location": "Mall Road",
        "type": "event_notification",
    }


def test_payload_defaults_location_to_region():
    notice = EventNotice(**{**NOTICE.__dict__, "location_text": ""})

    assert format_event_notification(notice).title == "ACCIDENT: Almora"


def test_dispatch_sends_one_multicast_with_per_recipient_results():
    sender = FakeSender(fail_tokens={"tok-b"})
    subscribers = [_sub("a"), _sub("b"), _sub("c", categories=["crime"])]

    report = dispatch_event_notifications(NOTICE, subscribers, sender)

    assert len(sender.calls) == 1
    assert sender.calls[0][0] == ["tok-a", "tok-b"]
    assert (report.sent, report.failed) == (1, 1)
    assert [(o.user_id, o.success) for o in report.outcomes] == [("a", True), ("b", False)]


def test_dispatch_with_no_recipients_skips_send():
    sender = FakeSender()

    report = dispatch_event_notifications(NOTICE, [_sub(notifications_enabled=False)], sender)

    assert sender.calls == []
    assert (report.sent, report.failed) == (0, 0)


def test_whole_call_failure_marks_every_recipient_failed():
    sender = FakeSender(raise_exc=RuntimeError("network down"))

    report = dispatch_event_notifications(NOTICE, [_sub("a"), _sub("b")], sender)

    assert (report.sent, report.failed) == (0, 2)
    assert all("network down" in o.error for o in report.outcomes)

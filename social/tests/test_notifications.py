import pytest
from django.db import DatabaseError

from social.models import Notification, PushToken
from social.push import InvalidTokenError, PushError
from social.services.notifications import NotificationDispatcher


@pytest.fixture
def dispatcher():
    return NotificationDispatcher()


def notify(dispatcher, recipient="bob", **overrides):
    kwargs = dict(
        recipient_id=recipient,
        notification_type="like",
        actor_id="alice",
        actor_name="Alice",
        message="Alice liked your post",
        data={"postId": "7"},
    )
    kwargs.update(overrides)
    return dispatcher.create_and_send(**kwargs)


# ==================== FAN-OUT ====================

@pytest.mark.django_db
def test_fan_out_isolates_each_token(dispatcher, bob, outbox, push_failures):
    for token in ("good", "stale", "flaky"):
        PushToken.objects.create(user=bob, token=token)
    push_failures["stale"] = InvalidTokenError("Requested entity was not found.", token="stale")
    push_failures["flaky"] = PushError("503 from gateway", token="flaky")

    result = notify(dispatcher)

    assert result.delivered == ["good"]
    assert result.pruned == ["stale"]
    assert result.failed == ["flaky"]
    assert set(PushToken.objects.values_list("token", flat=True)) == {"good", "flaky"}
    assert Notification.objects.filter(pk=result.notification.pk).exists()

    [(token, payload)] = outbox
    assert token == "good"
    assert payload["title"] == "5ocial"
    assert payload["body"] == "Alice liked your post"
    assert payload["data"] == {
        "type": "like",
        "notificationId": str(result.notification.pk),
        "postId": "7",
    }


@pytest.mark.django_db
def test_missing_recipient_still_persists_record(dispatcher, outbox):
    result = notify(dispatcher, recipient="ghost")

    assert Notification.objects.filter(user_id="ghost").count() == 1
    assert result.delivered == [] and result.pruned == []
    assert outbox == []


@pytest.mark.django_db
def test_recipient_without_tokens(dispatcher, bob, outbox):
    result = notify(dispatcher)
    assert result.notification.user_id == "bob"
    assert outbox == []


class UnreliableBackend:
    """Dead token, a backend bug and a good token in one fan-out."""

    def __init__(self):
        self.sent = []

    def send(self, token, payload):
        if token == "dead":
            raise InvalidTokenError("Requested entity was not found.", token=token)
        if token == "buggy":
            raise ValueError("gateway returned a non-JSON body")
        self.sent.append(token)


@pytest.mark.django_db
def test_unexpected_backend_error_only_fails_its_token(bob):
    for token in ("ok", "dead", "buggy"):
        PushToken.objects.create(user=bob, token=token)
    backend = UnreliableBackend()

    result = NotificationDispatcher(backend=backend).dispatch_safely(
        recipient_id="bob", notification_type="follow", actor_id="alice",
        actor_name="Alice", message="Alice started following you",
    )

    assert result is not None
    assert backend.sent == ["ok"]
    assert (result.delivered, result.pruned, result.failed) == (["ok"], ["dead"], ["buggy"])
    assert sorted(PushToken.objects.values_list("token", flat=True)) == ["buggy", "ok"]


@pytest.mark.django_db
def test_dispatch_safely_swallows_errors(bob, monkeypatch):
    def refuse(**kwargs):
        raise DatabaseError("notifications table is locked")

    monkeypatch.setattr(Notification.objects, "create", refuse)
    dispatcher = NotificationDispatcher()

    assert dispatcher.dispatch_safely(
        recipient_id="bob", notification_type="follow", actor_id="alice",
        actor_name="Alice", message="Alice started following you",
    ) is None
    assert not Notification.objects.exists()


# ==================== READ STATE ====================

@pytest.mark.django_db
def test_mark_read_explicit_ids_only_touch_callers_own(dispatcher, alice, bob):
    mine = [notify(dispatcher).notification for _ in range(3)]
    theirs = notify(dispatcher, recipient="alice").notification

    flipped = dispatcher.mark_read("bob", [mine[0].pk, str(mine[1].pk), theirs.pk, 999999, "junk"])

    assert flipped == 2
    assert dispatcher.unread_count("bob") == 1
    theirs.refresh_from_db()
    assert theirs.read is False


@pytest.mark.django_db
def test_mark_read_without_ids_flips_everything(dispatcher, alice, bob):
    for _ in range(4):
        notify(dispatcher)
    notify(dispatcher, recipient="alice")

    assert dispatcher.mark_read("bob") == 4
    assert dispatcher.unread_count("bob") == 0
    assert dispatcher.unread_count("alice") == 1
    assert dispatcher.mark_read("bob", []) == 0


@pytest.mark.django_db
def test_mark_read_with_only_unknown_ids_flips_nothing(dispatcher, bob):
    notify(dispatcher)
    assert dispatcher.mark_read("bob", ["junk"]) == 0
    assert dispatcher.unread_count("bob") == 1


@pytest.mark.django_db
def test_list_notifications_pages_newest_first(dispatcher, alice, bob):
    created = [notify(dispatcher, message=f"n{i}").notification for i in range(5)]
    foreign = notify(dispatcher, recipient="alice").notification

    first = dispatcher.list_notifications("bob", page_size=3)
    second = dispatcher.list_notifications("bob", page_size=3, cursor=first.last_id)
    restarted = dispatcher.list_notifications("bob", page_size=3, cursor=str(foreign.pk))

    assert [n.message for n in first.items] == ["n4", "n3", "n2"]
    assert first.has_more is True
    assert [n.message for n in second.items] == ["n1", "n0"]
    assert second.has_more is False
    assert [n.pk for n in restarted.items] == [n.pk for n in reversed(created)][:3]

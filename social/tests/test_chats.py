import pytest
from django.db import DatabaseError
from django.db.models import QuerySet

from social.exceptions import Forbidden, InvalidInput, NotFound
from social.models import Chat, ChatParticipant, Message, Notification, PushToken, derive_chat_id
from social.services.chats import MEDIA_SNAPSHOT_TEXT, ConversationManager
from social.services.notifications import NotificationDispatcher


@pytest.fixture
def manager():
    return ConversationManager()


@pytest.fixture
def chat(manager, alice, bob):
    chat, _ = manager.get_or_create_chat("alice", "bob")
    return chat


def unread(chat_id, user_id):
    return ChatParticipant.objects.get(chat_id=chat_id, user_id=user_id).unread_count


def test_derive_chat_id_is_symmetric():
    assert derive_chat_id("bob", "alice") == derive_chat_id("alice", "bob") == "alice_bob"
    assert derive_chat_id("u2", "u10") == "u10_u2"


# ==================== GET OR CREATE ====================

@pytest.mark.django_db
def test_get_or_create_chat_is_idempotent(manager, alice, bob):
    first, created = manager.get_or_create_chat("alice", "bob")
    second, created_again = manager.get_or_create_chat("bob", "alice")

    assert created is True
    assert created_again is False
    assert first.pk == second.pk == "alice_bob"
    assert Chat.objects.count() == 1
    assert first.unread_counts() == {"alice": 0, "bob": 0}
    assert first.last_message() == {"text": "", "senderId": "", "type": "text"}


@pytest.mark.django_db
def test_existing_chat_is_returned_unchanged(manager, chat):
    manager.send_message("alice", chat.pk, text="hello")
    again, created = manager.get_or_create_chat("bob", "alice")
    assert created is False
    assert again.last_message_text == "hello"
    assert again.unread_counts()["bob"] == 1


@pytest.mark.django_db
def test_get_or_create_chat_validation(manager, alice):
    with pytest.raises(InvalidInput):
        manager.get_or_create_chat("alice", "")
    with pytest.raises(InvalidInput):
        manager.get_or_create_chat("alice", "alice")
    with pytest.raises(NotFound):
        manager.get_or_create_chat("alice", "nobody")
    assert Chat.objects.count() == 0


# ==================== SEND ====================

@pytest.mark.django_db
def test_send_message_updates_snapshot_and_recipient_counter(manager, chat):
    message = manager.send_message("alice", chat.pk, kind="text", text="  hi  ")

    chat.refresh_from_db()
    assert message.text == "hi"
    assert chat.last_message_text == "hi"
    assert chat.last_message_sender_id == "alice"
    assert chat.last_message_at == message.created_at
    assert unread(chat.pk, "bob") == 1
    assert unread(chat.pk, "alice") == 0


@pytest.mark.django_db
def test_counters_only_move_for_the_other_participant(manager, chat):
    for _ in range(3):
        manager.send_message("alice", chat.pk, text="ping")
    manager.send_message("bob", chat.pk, text="pong")

    assert unread(chat.pk, "bob") == 3
    assert unread(chat.pk, "alice") == 1


@pytest.mark.django_db
def test_media_message_snapshot(manager, chat):
    manager.send_message("bob", chat.pk, kind="media", media_url="https://cdn.example.com/a.jpg")
    chat.refresh_from_db()
    assert chat.last_message_text == MEDIA_SNAPSHOT_TEXT
    assert chat.last_message_kind == "media"


@pytest.mark.django_db
@pytest.mark.parametrize("kwargs", [
    {"kind": "text", "text": "   "},
    {"kind": "media", "media_url": ""},
    {"kind": "sticker", "text": "hi"},
    {"kind": [], "text": "hi"},
    {"kind": {"media": True}, "media_url": "https://cdn.example.com/m/1.jpg"},
])
def test_send_message_rejects_invalid_content(manager, chat, kwargs):
    with pytest.raises(InvalidInput):
        manager.send_message("alice", chat.pk, **kwargs)
    assert Message.objects.count() == 0
    assert unread(chat.pk, "bob") == 0


@pytest.mark.django_db
def test_send_message_access_checks(manager, chat, carol):
    with pytest.raises(Forbidden):
        manager.send_message("carol", chat.pk, text="let me in")
    with pytest.raises(NotFound):
        manager.send_message("alice", "alice_nobody", text="hello?")


@pytest.mark.django_db
def test_send_message_notifies_recipient(manager, chat, outbox):
    PushToken.objects.create(user_id="bob", token="bob-phone")
    message = manager.send_message("alice", chat.pk, text="hi")

    notification = Notification.objects.get(user_id="bob")
    assert notification.type == "message"
    assert notification.message == "Alice: hi"
    assert notification.data == {"chatId": chat.pk, "messageId": str(message.pk)}
    assert [token for token, _ in outbox] == ["bob-phone"]


@pytest.mark.django_db
def test_failed_counter_write_rolls_back_the_send(manager, chat, monkeypatch):
    real_update = QuerySet.update

    def update(self, **kwargs):
        if self.model is ChatParticipant:
            raise DatabaseError("counter write failed")
        return real_update(self, **kwargs)

    snapshot_at = chat.last_message_at
    monkeypatch.setattr(QuerySet, "update", update)
    with pytest.raises(DatabaseError):
        manager.send_message("alice", chat.pk, text="lost")
    monkeypatch.undo()

    chat.refresh_from_db()
    assert Message.objects.count() == 0
    assert chat.last_message_text == ""
    assert chat.last_message_sender_id == ""
    assert chat.last_message_at == snapshot_at
    assert unread(chat.pk, "bob") == 0
    assert Notification.objects.count() == 0


class ExplodingDispatcher(NotificationDispatcher):
    def create_and_send(self, **kwargs):
        raise RuntimeError("notification store down")


@pytest.mark.django_db
def test_dispatch_failure_does_not_fail_send(chat):
    manager = ConversationManager(dispatcher=ExplodingDispatcher())
    message = manager.send_message("alice", chat.pk, text="still delivered")

    assert Message.objects.filter(pk=message.pk).exists()
    assert unread(chat.pk, "bob") == 1


# ==================== READ ====================

@pytest.mark.django_db
def test_list_messages_flips_page_and_lowers_counter(manager, chat):
    for n in range(3):
        manager.send_message("alice", chat.pk, text=f"m{n}")

    page = manager.list_messages("bob", chat.pk, page_size=2)

    assert [m.text for m in page.items] == ["m2", "m1"]
    # Items are returned as fetched.
    assert all(m.read is False for m in page.items)
    assert Message.objects.filter(read=True).count() == 2
    assert unread(chat.pk, "bob") == 1


@pytest.mark.django_db
def test_list_messages_leaves_own_messages_alone(manager, chat):
    manager.send_message("alice", chat.pk, text="mine")
    manager.list_messages("alice", chat.pk, page_size=20)

    assert Message.objects.get().read is False
    assert unread(chat.pk, "bob") == 1


@pytest.mark.django_db
def test_counter_is_floored_at_zero(manager, chat):
    manager.send_message("alice", chat.pk, text="one")
    manager.send_message("alice", chat.pk, text="two")
    ChatParticipant.objects.filter(chat=chat, user_id="bob").update(unread_count=1)

    manager.list_messages("bob", chat.pk, page_size=20)
    assert unread(chat.pk, "bob") == 0


@pytest.mark.django_db
def test_list_messages_requires_participant(manager, chat, carol):
    with pytest.raises(Forbidden):
        manager.list_messages("carol", chat.pk, page_size=20)
    with pytest.raises(NotFound):
        manager.list_messages("alice", "missing_chat", page_size=20)


@pytest.mark.django_db
def test_mark_chat_read_resets_counter(manager, chat):
    for _ in range(4):
        manager.send_message("alice", chat.pk, text="unread")
    manager.send_message("bob", chat.pk, text="reply")

    flipped = manager.mark_chat_read("bob", chat.pk)

    assert flipped == 4
    assert unread(chat.pk, "bob") == 0
    assert unread(chat.pk, "alice") == 1
    assert Message.objects.get(sender_id="bob").read is False


@pytest.mark.django_db
def test_pagination_walks_25_messages(manager, chat):
    sent = [manager.send_message("alice", chat.pk, text=f"msg {n}") for n in range(25)]

    seen, cursor, pages = [], None, []
    while True:
        page = manager.list_messages("bob", chat.pk, page_size=10, cursor=cursor)
        pages.append((len(page.items), page.has_more))
        seen.extend(m.pk for m in page.items)
        if not page.has_more:
            break
        cursor = page.last_id

    assert pages == [(10, True), (10, True), (5, False)]
    assert seen == [m.pk for m in reversed(sent)]
    assert unread(chat.pk, "bob") == 0


@pytest.mark.django_db
def test_cursor_from_another_chat_restarts_from_newest(manager, chat, carol):
    other, _ = manager.get_or_create_chat("alice", "carol")
    foreign = manager.send_message("alice", other.pk, text="elsewhere")
    manager.send_message("alice", chat.pk, text="first")
    newest = manager.send_message("alice", chat.pk, text="second")

    page = manager.list_messages("bob", chat.pk, page_size=1, cursor=str(foreign.pk))
    assert [m.pk for m in page.items] == [newest.pk]

    page = manager.list_messages("bob", chat.pk, page_size=1, cursor="not-an-id")
    assert [m.pk for m in page.items] == [newest.pk]


# ==================== INBOX ====================

@pytest.mark.django_db
def test_list_chats_orders_by_latest_message(manager, alice, bob, carol):
    with_bob, _ = manager.get_or_create_chat("alice", "bob")
    with_carol, _ = manager.get_or_create_chat("alice", "carol")
    manager.send_message("bob", with_bob.pk, text="older")
    manager.send_message("carol", with_carol.pk, text="newer")

    chats = manager.list_chats("alice")

    assert [c["chatId"] for c in chats] == [with_carol.pk, with_bob.pk]
    assert chats[0]["otherUser"]["uid"] == "carol"
    assert chats[0]["unreadCount"] == 1
    assert chats[0]["lastMessage"]["text"] == "newer"


@pytest.mark.django_db
def test_alice_says_hi_to_bob(manager, alice, bob):
    PushToken.objects.create(user_id="bob", token="bob-device")

    chat, created = manager.get_or_create_chat("alice", "bob")
    assert created
    manager.send_message("alice", chat.pk, text="hi")

    inbox = manager.list_chats("bob")
    assert inbox[0]["chatId"] == "alice_bob"
    assert inbox[0]["unreadCount"] == 1
    assert inbox[0]["lastMessage"] == {"text": "hi", "senderId": "alice", "type": "text"}
    assert Notification.objects.filter(user_id="bob", type="message").count() == 1

    page = manager.list_messages("bob", chat.pk, page_size=20)
    assert [m.text for m in page.items] == ["hi"]
    assert unread(chat.pk, "bob") == 0
    assert Message.objects.get().read is True

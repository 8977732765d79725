"""
================================================================================
5OCIAL BACKEND - CONVERSATION MANAGER
================================================================================

@file        services/chats.py
@description Two-party chats, message append and read acknowledgement
@version     1.0.0

CONSISTENCY RULES
================================================================================
- A chat's primary key is derive_chat_id(a, b); creation is one
  get_or_create() on that key, so concurrent creators converge on one row.
- Sending a message appends the Message, refreshes the chat snapshot and
  bumps the recipient's ChatParticipant.unread_count in one
  transaction.atomic() block. The counter change is a relative F() update,
  so concurrent senders never overwrite each other.
- The snapshot only moves forward: it is written where
  last_message_at <= the new message's timestamp.
- Reading messages lowers the reader's own counter by the number of
  messages actually flipped, floored at zero with Greatest().
- Push notification happens after the transaction commits and can never
  fail the send.

================================================================================
"""

import logging

from django.db import transaction
from django.db.models import F, IntegerField
from django.db.models.functions import Greatest
from django.utils import timezone

from ..exceptions import Forbidden, InvalidInput, NotFound
from ..models import Chat, ChatParticipant, Message, User, derive_chat_id
from ..pagination import CursorPage, paginate
from ..utils import clean_text
from .notifications import get_dispatcher

logger = logging.getLogger(__name__)

MEDIA_SNAPSHOT_TEXT = "Sent a media message"
MEDIA_NOTIFICATION_TEXT = "Sent you a media message"

# Older clients send the concrete media type instead of "media".
KIND_ALIASES = {
    'text': 'text',
    'media': 'media',
    'image': 'media',
    'video': 'media',
}


def chat_payload(chat, viewer_id, other_user=None):
    """Serialize a chat as seen by ``viewer_id``."""
    members = list(chat.members.all())
    if other_user is None:
        other_id = chat.other_participant_id(viewer_id)
        other_user = User.objects.filter(pk=other_id).first() if other_id else None
    unread = next((m.unread_count for m in members if m.user_id == viewer_id), 0)
    return {
        "chatId": chat.id,
        "participants": sorted(m.user_id for m in members),
        "otherUser": other_user.summary() if other_user else None,
        "lastMessage": chat.last_message(),
        "lastMessageAt": chat.last_message_at,
        "createdAt": chat.created_at,
        "unreadCount": unread,
    }


class ConversationManager:
    """
    Chat operations for one process. The notification dispatcher is injected
    so tests can substitute their own.
    """

    def __init__(self, dispatcher=None):
        self.dispatcher = dispatcher or get_dispatcher()

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def _load_chat(self, chat_id):
        chat = Chat.objects.prefetch_related('members').filter(pk=chat_id).first()
        if chat is None:
            raise NotFound("Chat not found")
        return chat

    def _load_for_participant(self, caller_id, chat_id, action):
        chat = self._load_chat(chat_id)
        if not chat.has_participant(caller_id):
            raise Forbidden(f"Not authorized to {action} in this chat")
        return chat

    # ------------------------------------------------------------------
    # Chats
    # ------------------------------------------------------------------

    def get_or_create_chat(self, caller_id, other_user_id):
        """
        Return ``(chat, created)`` for the chat between the caller and
        ``other_user_id``. An existing chat is returned unchanged.
        """
        other_user_id = clean_text(other_user_id)
        if not other_user_id:
            raise InvalidInput("Other user ID is required")
        if other_user_id == caller_id:
            raise InvalidInput("Cannot start a chat with yourself")

        found = set(User.objects.filter(pk__in=[caller_id, other_user_id]).values_list('pk', flat=True))
        if other_user_id not in found:
            raise NotFound("User not found")
        if caller_id not in found:
            raise NotFound("Your profile does not exist")

        chat_id = derive_chat_id(caller_id, other_user_id)
        with transaction.atomic():
            now = timezone.now()
            chat, created = Chat.objects.get_or_create(
                pk=chat_id,
                defaults={'created_at': now, 'last_message_at': now},
            )
            if created:
                ChatParticipant.objects.bulk_create([
                    ChatParticipant(chat=chat, user_id=user_id, joined_at=now)
                    for user_id in sorted([caller_id, other_user_id])
                ])
                logger.info("Created chat %s", chat_id)

        return self._load_chat(chat_id), created

    def list_chats(self, caller_id):
        chats = (
            Chat.objects.filter(members__user_id=caller_id)
            .prefetch_related('members__user')
            .order_by('-last_message_at', '-pk')
        )
        payloads = []
        for chat in chats:
            other = next((m.user for m in chat.members.all() if m.user_id != caller_id), None)
            if other is None:
                continue
            payloads.append(chat_payload(chat, caller_id, other_user=other))
        return payloads

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def send_message(self, caller_id, chat_id, kind='text', text='', media_url=''):
        if kind is None or kind == '':
            kind = 'text'
        kind = KIND_ALIASES.get(kind) if isinstance(kind, str) else None
        text = clean_text(text)
        media_url = clean_text(media_url)
        if kind is None:
            raise InvalidInput("Message type must be 'text' or 'media'")
        if kind == 'text' and not text:
            raise InvalidInput("Message text is required")
        if kind == 'media' and not media_url:
            raise InvalidInput("Media URL is required for media messages")

        chat = self._load_for_participant(caller_id, chat_id, "send messages")
        recipient_id = chat.other_participant_id(caller_id)

        with transaction.atomic():
            now = timezone.now()
            message = Message.objects.create(
                chat=chat,
                sender_id=caller_id,
                kind=kind,
                text=text,
                media_url=media_url,
                created_at=now,
            )
            Chat.objects.filter(pk=chat.pk, last_message_at__lte=now).update(
                last_message_text=text if kind == 'text' else MEDIA_SNAPSHOT_TEXT,
                last_message_sender_id=caller_id,
                last_message_kind=kind,
                last_message_at=now,
            )
            ChatParticipant.objects.filter(chat=chat, user_id=recipient_id).update(
                unread_count=F('unread_count') + 1
            )

        sender = User.objects.filter(pk=caller_id).first()
        sender_name = sender.display_name if sender else caller_id
        self.dispatcher.dispatch_safely(
            recipient_id=recipient_id,
            notification_type='message',
            actor_id=caller_id,
            actor_name=sender_name,
            message=f"{sender_name}: {text if kind == 'text' else MEDIA_NOTIFICATION_TEXT}",
            data={'chatId': chat.pk, 'messageId': str(message.pk)},
        )
        return message

    def list_messages(self, caller_id, chat_id, page_size, cursor=None) -> CursorPage:
        """
        One page of messages, newest first.

        Unread messages from the other participant in the page are flipped to
        read and the caller's counter is lowered by the same amount. The page
        is returned as it was fetched, before the flip.
        """
        chat = self._load_for_participant(caller_id, chat_id, "view messages")
        page = paginate(chat.messages.all(), page_size, cursor)

        unread_ids = [m.pk for m in page.items if m.sender_id != caller_id and not m.read]
        if unread_ids:
            with transaction.atomic():
                flipped = Message.objects.filter(pk__in=unread_ids, read=False).update(read=True)
                if flipped:
                    ChatParticipant.objects.filter(chat=chat, user_id=caller_id).update(
                        unread_count=Greatest(
                            F('unread_count') - flipped, 0, output_field=IntegerField()
                        )
                    )
        return page

    def mark_chat_read(self, caller_id, chat_id):
        """Flip every unread incoming message and reset the caller's counter to zero."""
        chat = self._load_for_participant(caller_id, chat_id, "read messages")
        with transaction.atomic():
            flipped = (
                Message.objects.filter(chat=chat, read=False)
                .exclude(sender_id=caller_id)
                .update(read=True)
            )
            ChatParticipant.objects.filter(chat=chat, user_id=caller_id).update(unread_count=0)
        return flipped


def get_conversation_manager():
    return ConversationManager()

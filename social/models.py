"""
================================================================================
5OCIAL BACKEND - DATABASE MODELS
================================================================================

@file        models.py
@description Django ORM models backing the 5ocial JSON API
@version     1.0.0

MODULE PURPOSE
================================================================================
This module defines the persistent collections of the 5ocial backend:
- User (AbstractUser extension keyed by the identity provider's principal id)
- PushToken (device registrations used for push fan-out)
- Chat / ChatParticipant / Message (two-party conversations)
- Notification (in-app activity records)
- Follow (directed follow edges)
- Post / Comment / Story / Upload (content and media)

DATABASE STRUCTURE
================================================================================
1. Users & Devices
   - User (primary key = principal id issued by the identity provider)
   - PushToken (N per user)

2. Conversations
   - Chat (primary key = sorted participant ids joined with "_")
   - ChatParticipant (one row per participant, holds the unread counter)
   - Message (append-only, only the read flag changes)

3. Notifications
   - Notification (append-only, only the read flag changes)

4. Social Graph
   - Follow (source of truth for follow edges)
   - User.follower_ids / User.following_ids (mirrored lists, same transaction)

5. Content
   - Post, Comment, Story
   - Upload (blob store registry: URL -> storage name)

MODEL RELATIONSHIPS
================================================================================
User (1) ──────> (N) PushToken
User (N) <─────> (N) Chat        (via ChatParticipant)
Chat (1) ──────> (N) Message
User (1) ──────> (N) Notification
User (N) <─────> (N) User        (Follow)
User (1) ──────> (N) Post ──────> (N) Comment
User (1) ──────> (N) Story
User (1) ──────> (N) Upload

CONSISTENCY RULES
================================================================================
- Unread counters are only changed with relative F() updates inside
  transaction.atomic() blocks (see social/services/chats.py).
- Follow edges and the mirrored id lists are written together under
  select_for_update() row locks (see social/services/follows.py).
- Streams (messages, notifications, posts, comments) are ordered by
  (-created_at, -id) so cursors have a strict total order.

================================================================================
"""

import uuid
from datetime import timedelta

import pytz
from django.conf import settings
from django.contrib.auth.models import AbstractUser
from django.db import models
from django.utils import timezone as dj_timezone

# ============================================================================
# CONSTANTS & CHOICES
# ============================================================================

"""
Timezone choices for user preference selection.
Uses all available timezones from pytz library.
"""
TIMEZONE_CHOICES = [(tz, tz) for tz in pytz.all_timezones]

"""
Message kinds. Media messages carry a blob store URL in media_url.
"""
MESSAGE_KIND_CHOICES = [
    ('text', 'Text'),
    ('media', 'Media'),
]

"""
Known notification types. The field is not restricted to these values so
new types can be introduced without a migration.
"""
NOTIFICATION_TYPES = ('like', 'comment', 'follow', 'message')


def generate_uid():
    return uuid.uuid4().hex


def derive_chat_id(user_a_id, user_b_id):
    """
    Deterministic chat key for a pair of users.

    The two ids are sorted lexicographically and joined with "_", so the
    same pair always maps to the same chat no matter who starts it.

    Example:
        derive_chat_id("bob", "alice") == derive_chat_id("alice", "bob") == "alice_bob"
    """
    return "_".join(sorted([str(user_a_id), str(user_b_id)]))


# ============================================================================
# SECTION 1: USERS & DEVICES
# ============================================================================

class User(AbstractUser):
    """
    5ocial user profile.

    The primary key is the principal id yielded by the identity provider, so
    a verified bearer credential maps straight onto a row without a lookup
    table. ``username`` doubles as the public handle.

    Attributes:
        id (CharField): Principal id (primary key)
        name (CharField): Display name
        bio (TextField): Profile biography (max 500 chars)
        profile_pic (URLField): Avatar URL in the blob store
        timezone (CharField): Preferred timezone (pytz name)
        follower_ids (JSONField): Mirror of Follow edges pointing at this user
        following_ids (JSONField): Mirror of Follow edges leaving this user
        post_ids (JSONField): Ids of posts authored by this user

    Related Names:
        push_tokens: Registered device tokens
        chat_memberships: ChatParticipant rows
        notifications: Notification rows addressed to this user
        following / followers: Follow edges (source of truth)
        posts, comments, stories, uploads: Authored content
    """

    id = models.CharField(
        primary_key=True,
        max_length=128,
        default=generate_uid,
        editable=False,
        help_text="Principal id issued by the identity provider"
    )
    name = models.CharField(
        max_length=150,
        blank=True,
        help_text="Display name"
    )
    bio = models.TextField(
        max_length=500,
        blank=True,
        help_text="Profile biography or description"
    )
    profile_pic = models.URLField(
        max_length=1000,
        blank=True,
        help_text="Avatar URL"
    )
    timezone = models.CharField(
        max_length=100,
        choices=TIMEZONE_CHOICES,
        default='UTC',
        help_text="User's preferred timezone for display"
    )

    # --- Mirrored relationship lists (derived from Follow / Post) ---
    follower_ids = models.JSONField(default=list, blank=True)
    following_ids = models.JSONField(default=list, blank=True)
    post_ids = models.JSONField(default=list, blank=True)

    def __str__(self):
        return self.username or self.id

    @property
    def display_name(self):
        return self.name or self.username

    def summary(self):
        """Public subset used wherever another user is embedded in a payload."""
        return {
            "uid": self.id,
            "name": self.display_name,
            "username": self.username,
            "profilePic": self.profile_pic,
        }

    def profile(self):
        """Full public profile. The email address is never exposed."""
        return {
            **self.summary(),
            "bio": self.bio,
            "timezone": self.timezone,
            "followers": list(self.follower_ids),
            "following": list(self.following_ids),
            "posts": list(self.post_ids),
            "createdAt": self.date_joined,
        }


class PushToken(models.Model):
    """
    Push registration token for one of a user's devices.

    A token belongs to exactly one user; registering a token that is already
    known moves it to the caller. Tokens reported invalid by the push gateway
    are deleted by the notification dispatcher.
    """

    user = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='push_tokens',
        help_text="Owner of the device"
    )
    token = models.CharField(
        max_length=512,
        unique=True,
        help_text="Push gateway registration token"
    )
    platform = models.CharField(
        max_length=20,
        blank=True,
        help_text="Client platform (android, ios, web)"
    )
    created_at = models.DateTimeField(default=dj_timezone.now)

    def __str__(self):
        return f"{self.user_id}: {self.token[:16]}..."


# ============================================================================
# SECTION 2: CONVERSATIONS
# ============================================================================

class Chat(models.Model):
    """
    Two-party conversation.

    The primary key comes from derive_chat_id(), so creation is a single
    create-if-absent write on a predictable key. The last-message snapshot
    is denormalised onto the chat for inbox listing; unread counters live on
    ChatParticipant so each one can be changed with a relative update.

    Attributes:
        id (CharField): derive_chat_id(participant_a, participant_b)
        participants (ManyToManyField): The two users (through ChatParticipant)
        created_at (DateTimeField): Creation timestamp
        last_message_text (TextField): Snapshot of the latest message text
        last_message_sender_id (CharField): Sender of the latest message
        last_message_kind (CharField): Kind of the latest message
        last_message_at (DateTimeField): Time of the latest message

    Related Names:
        members: ChatParticipant rows
        messages: Message rows
    """

    id = models.CharField(primary_key=True, max_length=300)
    participants = models.ManyToManyField(
        User,
        through='ChatParticipant',
        related_name='chats',
    )
    created_at = models.DateTimeField(default=dj_timezone.now)
    last_message_text = models.TextField(blank=True)
    last_message_sender_id = models.CharField(max_length=128, blank=True)
    last_message_kind = models.CharField(
        max_length=10,
        choices=MESSAGE_KIND_CHOICES,
        default='text',
    )
    last_message_at = models.DateTimeField(default=dj_timezone.now, db_index=True)

    def __str__(self):
        return f"Chat {self.id}"

    def participant_ids(self):
        return sorted(member.user_id for member in self.members.all())

    def has_participant(self, user_id):
        return any(member.user_id == user_id for member in self.members.all())

    def other_participant_id(self, user_id):
        for member in self.members.all():
            if member.user_id != user_id:
                return member.user_id
        return None

    def unread_counts(self):
        """Mapping of participant id to that participant's unread counter."""
        return {member.user_id: member.unread_count for member in self.members.all()}

    def last_message(self):
        return {
            "text": self.last_message_text,
            "senderId": self.last_message_sender_id,
            "type": self.last_message_kind,
        }


class ChatParticipant(models.Model):
    """
    Membership of a user in a chat, carrying that user's unread counter.

    unread_count is incremented only by messages from the other participant
    and lowered only by this participant's own read acknowledgement.
    """

    chat = models.ForeignKey(
        Chat,
        on_delete=models.CASCADE,
        related_name='members',
    )
    user = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='chat_memberships',
    )
    unread_count = models.PositiveIntegerField(default=0)
    joined_at = models.DateTimeField(default=dj_timezone.now)

    class Meta:
        unique_together = ('chat', 'user')

    def __str__(self):
        return f"{self.user_id} in {self.chat_id}"


class Message(models.Model):
    """
    Chat message. Created once; only ``read`` changes afterwards.
    """

    chat = models.ForeignKey(
        Chat,
        on_delete=models.CASCADE,
        related_name='messages',
    )
    sender = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='sent_messages',
    )
    kind = models.CharField(
        max_length=10,
        choices=MESSAGE_KIND_CHOICES,
        default='text',
    )
    text = models.TextField(blank=True)
    media_url = models.URLField(max_length=1000, blank=True)
    read = models.BooleanField(default=False)
    created_at = models.DateTimeField(default=dj_timezone.now)

    class Meta:
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['chat', '-created_at'], name='message_chat_created_idx'),
        ]

    def __str__(self):
        return f"[{self.chat_id}] {self.sender_id}: {self.text[:30]}"

    def to_dict(self):
        return {
            "messageId": str(self.id),
            "chatId": self.chat_id,
            "senderId": self.sender_id,
            "type": self.kind,
            "text": self.text,
            "mediaUrl": self.media_url,
            "read": self.read,
            "createdAt": self.created_at,
        }


# ============================================================================
# SECTION 3: NOTIFICATIONS
# ============================================================================

class Notification(models.Model):
    """
    In-app notification record.

    The record is written before any delivery attempt, and before the
    recipient row is even looked up, so the foreign key is declared without a
    database constraint. A failed push never loses the in-app record.

    Attributes:
        user (ForeignKey): Recipient
        type (CharField): like | comment | follow | message | ...
        actor_id (CharField): User who triggered the notification
        actor_name (CharField): Display name of the actor at creation time
        message (TextField): Human-readable body
        data (JSONField): Structured payload (chatId, postId, ...)
        read (BooleanField): Read flag
        created_at (DateTimeField): Creation timestamp
    """

    user = models.ForeignKey(
        User,
        on_delete=models.DO_NOTHING,
        db_constraint=False,
        related_name='notifications',
        help_text="User receiving this notification"
    )
    type = models.CharField(max_length=30)
    actor_id = models.CharField(max_length=128, blank=True)
    actor_name = models.CharField(max_length=150, blank=True)
    message = models.TextField(blank=True)
    data = models.JSONField(default=dict, blank=True)
    read = models.BooleanField(default=False)
    created_at = models.DateTimeField(default=dj_timezone.now)

    class Meta:
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['user', '-created_at'], name='notification_user_created_idx'),
            models.Index(fields=['user', 'read'], name='notification_user_read_idx'),
        ]

    def __str__(self):
        return f"{self.type} for {self.user_id}"

    def to_dict(self):
        return {
            "notificationId": str(self.id),
            "userId": self.user_id,
            "type": self.type,
            "actorId": self.actor_id,
            "actorName": self.actor_name,
            "message": self.message,
            "data": self.data,
            "read": self.read,
            "createdAt": self.created_at,
        }


# ============================================================================
# SECTION 4: SOCIAL GRAPH
# ============================================================================

class Follow(models.Model):
    """
    Directed follow edge (follower -> followed).

    This row is the source of truth; User.following_ids and
    User.follower_ids mirror it and are written in the same transaction.
    """

    follower = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='following',
        help_text="User who is following"
    )
    followed = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='followers',
        help_text="User being followed"
    )
    created_at = models.DateTimeField(default=dj_timezone.now)

    class Meta:
        unique_together = ('follower', 'followed')

    def __str__(self):
        return f"{self.follower_id} -> {self.followed_id}"


# ============================================================================
# SECTION 5: CONTENT
# ============================================================================

class Post(models.Model):
    """
    Media post with caption, likes and a denormalised comment counter.
    """

    user = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='posts',
        help_text="Author of this post"
    )
    caption = models.TextField(blank=True)
    media_urls = models.JSONField(default=list)
    is_video = models.BooleanField(default=False)
    hashtags = models.JSONField(default=list, blank=True)
    likes = models.ManyToManyField(
        User,
        related_name='liked_posts',
        blank=True,
    )
    comment_count = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(default=dj_timezone.now)

    class Meta:
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['user', '-created_at'], name='post_user_created_idx'),
        ]

    def __str__(self):
        return f"{self.user_id} - {self.caption[:50]}"

    def to_dict(self):
        return {
            "postId": str(self.id),
            "_id": str(self.id),
            "userId": self.user_id,
            "username": self.user.username,
            "userProfilePic": self.user.profile_pic,
            "caption": self.caption,
            "mediaUrls": list(self.media_urls),
            "isVideo": self.is_video,
            "likes": [user.id for user in self.likes.all()],
            "commentCount": self.comment_count,
            "hashtags": list(self.hashtags),
            "createdAt": self.created_at,
        }


class Comment(models.Model):
    post = models.ForeignKey(
        Post,
        on_delete=models.CASCADE,
        related_name='comments',
    )
    user = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='comments',
    )
    text = models.TextField()
    created_at = models.DateTimeField(default=dj_timezone.now)

    class Meta:
        ordering = ['-created_at', '-id']

    def to_dict(self):
        return {
            "commentId": str(self.id),
            "postId": str(self.post_id),
            "userId": self.user_id,
            "username": self.user.username,
            "userProfilePic": self.user.profile_pic,
            "text": self.text,
            "createdAt": self.created_at,
        }


def default_story_expiry():
    return dj_timezone.now() + timedelta(hours=settings.STORY_LIFETIME_HOURS)


class Story(models.Model):
    """
    Ephemeral media item, visible until ``expires_at``.

    Expired stories are removed by the cleanup_expired_stories command.
    """

    user = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='stories',
    )
    media_url = models.URLField(max_length=1000)
    is_video = models.BooleanField(default=False)
    viewers = models.ManyToManyField(
        User,
        related_name='viewed_stories',
        blank=True,
    )
    created_at = models.DateTimeField(default=dj_timezone.now)
    expires_at = models.DateTimeField(default=default_story_expiry, db_index=True)

    class Meta:
        ordering = ['created_at', 'id']
        verbose_name_plural = 'stories'

    def __str__(self):
        return f"Story {self.id} by {self.user_id}"

    @property
    def is_active(self):
        return self.expires_at > dj_timezone.now()


class Upload(models.Model):
    """
    Blob store registry entry.

    Maps the durable URL handed to clients back to the storage alias and
    object name, so a later delete(url) can find the object again.
    """

    owner = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='uploads',
    )
    url = models.URLField(max_length=1000, unique=True)
    name = models.CharField(max_length=500)
    storage_alias = models.CharField(max_length=30, default='default')
    content_type = models.CharField(max_length=100)
    size = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(default=dj_timezone.now)

    def __str__(self):
        return self.url

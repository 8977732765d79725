"""
================================================================================
5OCIAL BACKEND - NOTIFICATION DISPATCHER
================================================================================

@file        services/notifications.py
@description In-app notification records and multi-device push fan-out
@version     1.0.0

DELIVERY FLOW
================================================================================
1. Persist the Notification row (always, even if delivery never happens)
2. Resolve the recipient and its PushToken rows
   - unknown recipient or no tokens: log and stop, no exception
3. Send to every token in parallel on a thread pool
   - each token succeeds or fails on its own
   - InvalidTokenError: token is collected for pruning
   - PushError: logged, dropped (at-most-once, no retry)
   - any other exception from the backend: logged with traceback and
     counted as failed, the other tokens are unaffected
4. Delete the collected invalid tokens in one query, after every send
   has completed. Pruning is synchronous: it runs on the request thread
   before create_and_send() returns, not in a background job.

Only the network calls run on worker threads. Every database read and
write stays on the calling thread.

================================================================================
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import List, Optional

from django.conf import settings
from django.db import transaction

from ..models import Notification, PushToken, User
from ..pagination import CursorPage, paginate
from ..push import InvalidTokenError, PushError, get_backend

logger = logging.getLogger(__name__)


@dataclass
class DispatchResult:
    notification: Notification
    delivered: List[str] = field(default_factory=list)
    pruned: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)


class NotificationDispatcher:
    """
    Creates notification records and pushes them to the recipient's devices.

    The push backend is resolved from PUSH_BACKEND unless one is injected.
    """

    def __init__(self, backend=None, max_workers=None):
        self.backend = backend or get_backend()
        self.max_workers = max_workers or settings.PUSH_MAX_WORKERS

    # ------------------------------------------------------------------
    # Creation & delivery
    # ------------------------------------------------------------------

    def create_and_send(self, recipient_id, notification_type, actor_id, actor_name,
                        message, data=None) -> DispatchResult:
        notification = Notification.objects.create(
            user_id=recipient_id,
            type=notification_type,
            actor_id=actor_id or '',
            actor_name=actor_name or '',
            message=message or '',
            data=data or {},
        )
        result = DispatchResult(notification=notification)

        if not User.objects.filter(pk=recipient_id).exists():
            logger.warning("User %s not found for sending notification", recipient_id)
            return result

        tokens = list(
            PushToken.objects.filter(user_id=recipient_id).values_list('token', flat=True)
        )
        if not tokens:
            logger.info("No push tokens found for user %s", recipient_id)
            return result

        payload = self.build_payload(notification)
        self._fan_out(tokens, payload, result)

        if result.pruned:
            deleted, _ = PushToken.objects.filter(
                user_id=recipient_id, token__in=result.pruned
            ).delete()
            logger.info("Pruned %d invalid push token(s) for user %s", deleted, recipient_id)

        return result

    def dispatch_safely(self, **kwargs) -> Optional[DispatchResult]:
        """create_and_send() for callers that must not fail on notification errors."""
        try:
            return self.create_and_send(**kwargs)
        except Exception:
            logger.exception(
                "Error sending %s notification to %s",
                kwargs.get('notification_type'), kwargs.get('recipient_id'),
            )
            return None

    def build_payload(self, notification):
        return {
            "title": settings.PUSH_NOTIFICATION_TITLE,
            "body": notification.message,
            "data": {
                "type": notification.type,
                "notificationId": str(notification.id),
                **notification.data,
            },
        }

    def _send_one(self, token, payload):
        try:
            self.backend.send(token, payload)
        except InvalidTokenError as exc:
            logger.info("Push token %s... rejected as invalid: %s", token[:12], exc)
            return token, 'pruned'
        except PushError as exc:
            logger.warning("Error sending to token %s...: %s", token[:12], exc)
            return token, 'failed'
        except Exception:
            logger.exception("Unexpected error sending to token %s...", token[:12])
            return token, 'failed'
        return token, 'delivered'

    def _fan_out(self, tokens, payload, result):
        workers = max(1, min(self.max_workers, len(tokens)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix='push') as pool:
            outcomes = list(pool.map(lambda token: self._send_one(token, payload), tokens))
        for token, outcome in outcomes:
            getattr(result, outcome).append(token)

    # ------------------------------------------------------------------
    # Reading & acknowledging
    # ------------------------------------------------------------------

    def list_notifications(self, user_id, page_size, cursor=None) -> CursorPage:
        return paginate(Notification.objects.filter(user_id=user_id), page_size, cursor)

    def mark_read(self, user_id, notification_ids=None) -> int:
        """
        Flip notifications to read in one statement.

        With ids, only the caller's own notifications among them are touched
        and unknown or foreign ids are ignored. Without ids, every unread
        notification of the caller is flipped. Returns the number flipped.
        """
        unread = Notification.objects.filter(user_id=user_id, read=False)
        if notification_ids:
            ids = [str(value) for value in notification_ids if str(value).isdigit()]
            unread = unread.filter(pk__in=ids)
        with transaction.atomic():
            return unread.update(read=True)

    def unread_count(self, user_id) -> int:
        return Notification.objects.filter(user_id=user_id, read=False).count()


def get_dispatcher():
    return NotificationDispatcher()

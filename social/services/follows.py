"""
Follow graph.

A Follow row is the source of truth for an edge. User.following_ids on the
follower and User.follower_ids on the followed user mirror it and are written
in the same transaction, with both user rows locked in primary key order so
two concurrent follows between the same pair cannot deadlock.
"""

import logging

from django.db import transaction

from ..exceptions import Conflict, InvalidInput, NotFound
from ..models import Follow, User
from ..pagination import paginate
from .notifications import get_dispatcher

logger = logging.getLogger(__name__)


def _lock_pair(caller_id, target_id):
    users = {
        user.pk: user
        for user in User.objects.select_for_update().filter(pk__in=[caller_id, target_id]).order_by('pk')
    }
    if target_id not in users:
        raise NotFound("User not found")
    if caller_id not in users:
        raise NotFound("Your profile does not exist")
    return users[caller_id], users[target_id]


def follow(caller_id, target_id, dispatcher=None):
    if caller_id == target_id:
        raise InvalidInput("Cannot follow yourself")

    with transaction.atomic():
        caller, target = _lock_pair(caller_id, target_id)
        if Follow.objects.filter(follower=caller, followed=target).exists():
            raise Conflict("Already following this user")

        edge = Follow.objects.create(follower=caller, followed=target)
        if target.pk not in caller.following_ids:
            caller.following_ids = [*caller.following_ids, target.pk]
            caller.save(update_fields=['following_ids'])
        if caller.pk not in target.follower_ids:
            target.follower_ids = [*target.follower_ids, caller.pk]
            target.save(update_fields=['follower_ids'])

    logger.info("%s followed %s", caller_id, target_id)
    (dispatcher or get_dispatcher()).dispatch_safely(
        recipient_id=target.pk,
        notification_type='follow',
        actor_id=caller.pk,
        actor_name=caller.display_name,
        message=f"{caller.display_name} started following you",
        data={'followerId': caller.pk},
    )
    return edge


def unfollow(caller_id, target_id):
    if caller_id == target_id:
        raise InvalidInput("Cannot unfollow yourself")

    with transaction.atomic():
        caller, target = _lock_pair(caller_id, target_id)
        deleted, _ = Follow.objects.filter(follower=caller, followed=target).delete()
        if not deleted:
            raise Conflict("Not following this user")

        caller.following_ids = [uid for uid in caller.following_ids if uid != target.pk]
        target.follower_ids = [uid for uid in target.follower_ids if uid != caller.pk]
        caller.save(update_fields=['following_ids'])
        target.save(update_fields=['follower_ids'])

    logger.info("%s unfollowed %s", caller_id, target_id)


def is_following(follower_id, followed_id):
    return Follow.objects.filter(follower_id=follower_id, followed_id=followed_id).exists()


def _require_user(user_id):
    if not User.objects.filter(pk=user_id).exists():
        raise NotFound("User not found")


def list_followers(user_id, page_size, cursor=None):
    """Page of Follow edges pointing at ``user_id``; items carry ``follower``."""
    _require_user(user_id)
    edges = Follow.objects.filter(followed_id=user_id).select_related('follower')
    return paginate(edges, page_size, cursor)


def list_following(user_id, page_size, cursor=None):
    """Page of Follow edges leaving ``user_id``; items carry ``followed``."""
    _require_user(user_id)
    edges = Follow.objects.filter(follower_id=user_id).select_related('followed')
    return paginate(edges, page_size, cursor)

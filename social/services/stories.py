"""
Stories: media that disappears after STORY_LIFETIME_HOURS.

Active means ``expires_at`` is still in the future. Expired rows are removed
by cleanup_expired_stories(), which the management command of the same name
runs on a schedule.
"""

import logging

from django.db import transaction
from django.utils import timezone

from ..exceptions import Forbidden, InvalidInput, NotFound
from ..models import Story, User
from ..storage import get_blob_store
from ..utils import clean_text, is_video_file

logger = logging.getLogger(__name__)

CLEANUP_BATCH_SIZE = 450


def _load_user(user_id):
    user = User.objects.filter(pk=user_id).first()
    if user is None:
        raise NotFound("User not found")
    return user


def _load_story(story_id):
    story_id = str(story_id)
    story = Story.objects.filter(pk=story_id).first() if story_id.isdigit() else None
    if story is None:
        raise NotFound("Story not found")
    return story


def _active():
    return (
        Story.objects.filter(expires_at__gt=timezone.now())
        .select_related('user')
        .prefetch_related('viewers')
        .order_by('expires_at', 'created_at', 'pk')
    )


def story_item(story, viewer_id):
    return {
        "id": str(story.pk),
        "mediaUrl": story.media_url,
        "isVideo": story.is_video,
        "createdAt": story.created_at,
        "expiresAt": story.expires_at,
        "isViewed": any(viewer.pk == viewer_id for viewer in story.viewers.all()),
    }


def create_story(caller_id, media_url, is_video=None):
    media_url = clean_text(media_url)
    if not media_url:
        raise InvalidInput("Media URL is required")
    author = _load_user(caller_id)
    if is_video is None:
        is_video = is_video_file(media_url)
    story = Story.objects.create(user=author, media_url=media_url, is_video=bool(is_video))
    logger.info("User %s uploaded story %s", caller_id, story.pk)
    return story


def stories_feed(caller_id):
    """
    Active stories of the caller and everyone they follow, grouped per
    author. Authors with something unviewed come first, then by the time of
    their latest story.
    """
    viewer = _load_user(caller_id)
    authors = {*viewer.following_ids, viewer.pk}

    groups = {}
    for story in _active().filter(user_id__in=authors):
        group = groups.get(story.user_id)
        if group is None:
            group = groups[story.user_id] = {
                "userId": story.user_id,
                "username": story.user.username,
                "name": story.user.display_name,
                "profilePic": story.user.profile_pic,
                "hasStory": True,
                "isViewed": True,
                "items": [],
                "_latest": story.created_at,
            }
        item = story_item(story, caller_id)
        group["isViewed"] = group["isViewed"] and item["isViewed"]
        group["_latest"] = max(group["_latest"], story.created_at)
        group["items"].append(item)

    ordered = sorted(groups.values(), key=lambda g: g["_latest"], reverse=True)
    ordered.sort(key=lambda g: g["isViewed"])
    for group in ordered:
        del group["_latest"]
    return ordered


def user_stories(caller_id, user_id):
    _load_user(user_id)
    return [story_item(story, caller_id) for story in _active().filter(user_id=user_id)]


def view_story(caller_id, story_id):
    """Record the caller as a viewer. Returns False if they had already viewed it."""
    story = _load_story(story_id)
    if story.viewers.filter(pk=caller_id).exists():
        return False
    story.viewers.add(caller_id)
    return True


def delete_story(caller_id, story_id, blob_store=None):
    story = _load_story(story_id)
    if story.user_id != caller_id:
        raise Forbidden("Not authorized to delete this story")
    media_url = story.media_url
    story.delete()
    (blob_store or get_blob_store()).delete_many([media_url])


def cleanup_expired_stories(batch_size=CLEANUP_BATCH_SIZE, blob_store=None, now=None):
    """
    Delete expired stories in batches, then their media one file at a time.
    """
    now = now or timezone.now()
    deleted = 0
    media_urls = []

    while True:
        batch = list(
            Story.objects.filter(expires_at__lt=now)
            .order_by('pk')
            .values_list('pk', 'media_url')[:batch_size]
        )
        if not batch:
            break
        with transaction.atomic():
            Story.objects.filter(pk__in=[pk for pk, _ in batch]).delete()
        deleted += len(batch)
        media_urls.extend(url for _, url in batch if url)
        logger.info("Deleted batch of %d expired stories", len(batch))

    if not deleted:
        logger.info("No expired stories found")
        return {"storiesDeleted": 0, "mediaFilesProcessed": 0}

    (blob_store or get_blob_store()).delete_many(media_urls)
    logger.info("Deleted %d expired stories, attempted %d media files", deleted, len(media_urls))
    return {"storiesDeleted": deleted, "mediaFilesProcessed": len(media_urls)}

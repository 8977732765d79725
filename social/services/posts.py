"""
Posts, likes and comments.

Posts are listed newest first with the shared cursor protocol. The home feed
is the caller's own posts plus those of everyone in their following list, in
strict reverse-chronological order.
"""

import logging

from django.conf import settings
from django.db import transaction
from django.db.models import F

from ..exceptions import Conflict, Forbidden, InvalidInput, NotFound
from ..models import Comment, Post, User
from ..pagination import paginate
from ..storage import get_blob_store
from ..utils import clean_text, extract_hashtags, is_video_file, truncate
from .notifications import get_dispatcher

logger = logging.getLogger(__name__)

RECENT_COMMENTS = 5


def _posts():
    return Post.objects.select_related('user').prefetch_related('likes')


def _load_post(post_id, queryset=None):
    if queryset is None:
        queryset = _posts()
    post_id = str(post_id)
    post = queryset.filter(pk=post_id).first() if post_id.isdigit() else None
    if post is None:
        raise NotFound("Post not found")
    return post


def _load_user(user_id):
    user = User.objects.filter(pk=user_id).first()
    if user is None:
        raise NotFound("User not found")
    return user


def create_post(caller_id, media_urls, caption='', is_video=None):
    if isinstance(media_urls, str):
        media_urls = [media_urls]
    media_urls = [clean_text(url) for url in media_urls or [] if clean_text(url)]
    if not media_urls:
        raise InvalidInput("Media URLs are required")
    if is_video is None:
        is_video = all(is_video_file(url) for url in media_urls)
    caption = clean_text(caption)

    with transaction.atomic():
        author = User.objects.select_for_update().filter(pk=caller_id).first()
        if author is None:
            raise NotFound("User not found")
        post = Post.objects.create(
            user=author,
            caption=caption,
            media_urls=media_urls,
            is_video=bool(is_video),
            hashtags=extract_hashtags(caption),
        )
        author.post_ids = [*author.post_ids, str(post.pk)]
        author.save(update_fields=['post_ids'])

    logger.info("User %s created post %s", caller_id, post.pk)
    return post


def get_post(post_id):
    """Return ``(post, recent_comments)``."""
    post = _load_post(post_id)
    comments = list(post.comments.select_related('user')[:RECENT_COMMENTS])
    return post, comments


def like_post(caller_id, post_id, dispatcher=None):
    liker = _load_user(caller_id)
    with transaction.atomic():
        post = _load_post(post_id, Post.objects.select_for_update())
        if post.likes.filter(pk=caller_id).exists():
            raise Conflict("Post already liked")
        post.likes.add(liker)

    if post.user_id != caller_id:
        (dispatcher or get_dispatcher()).dispatch_safely(
            recipient_id=post.user_id,
            notification_type='like',
            actor_id=caller_id,
            actor_name=liker.display_name,
            message=f"{liker.display_name} liked your post",
            data={'postId': str(post.pk)},
        )
    return post


def unlike_post(caller_id, post_id):
    with transaction.atomic():
        post = _load_post(post_id, Post.objects.select_for_update())
        if not post.likes.filter(pk=caller_id).exists():
            raise Conflict("Post not liked yet")
        post.likes.remove(caller_id)
    return post


def add_comment(caller_id, post_id, text, dispatcher=None):
    text = clean_text(text)
    if not text:
        raise InvalidInput("Comment text is required")
    author = _load_user(caller_id)
    post = _load_post(post_id, Post.objects.all())

    with transaction.atomic():
        comment = Comment.objects.create(post=post, user=author, text=text)
        Post.objects.filter(pk=post.pk).update(comment_count=F('comment_count') + 1)

    if post.user_id != caller_id:
        (dispatcher or get_dispatcher()).dispatch_safely(
            recipient_id=post.user_id,
            notification_type='comment',
            actor_id=caller_id,
            actor_name=author.display_name,
            message=f'{author.display_name} commented on your post: "{truncate(text, 30)}"',
            data={'postId': str(post.pk), 'commentId': str(comment.pk)},
        )
    return comment


def list_comments(post_id, page_size, cursor=None):
    post = _load_post(post_id, Post.objects.all())
    return paginate(post.comments.select_related('user'), page_size, cursor)


def list_user_posts(user_id, page_size, cursor=None):
    _load_user(user_id)
    return paginate(_posts().filter(user_id=user_id), page_size, cursor)


def home_feed(caller_id, page_size=None, cursor=None):
    viewer = _load_user(caller_id)
    authors = {*viewer.following_ids, viewer.pk}
    return paginate(
        _posts().filter(user_id__in=authors),
        page_size or settings.FEED_DEFAULT_PAGE_SIZE,
        cursor,
    )


def delete_post(caller_id, post_id, blob_store=None):
    """
    Remove a post, its comments and its id in the author's post list in one
    transaction, then delete the media blobs one by one.
    """
    post = _load_post(post_id, Post.objects.all())
    if post.user_id != caller_id:
        raise Forbidden("Not authorized to delete this post")

    media_urls = list(post.media_urls)
    with transaction.atomic():
        author = User.objects.select_for_update().get(pk=caller_id)
        author.post_ids = [pid for pid in author.post_ids if pid != str(post.pk)]
        author.save(update_fields=['post_ids'])
        post.delete()

    removed = (blob_store or get_blob_store()).delete_many(media_urls)
    logger.info("Deleted post %s (%d of %d media files removed)", post_id, removed, len(media_urls))

import json
import logging
from functools import wraps

from django.conf import settings
from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_http_methods, require_POST

from .exceptions import InvalidInput, Unauthorized
from .pagination import parse_page_size
from .services import follows, posts, stories, users
from .services.chats import chat_payload, get_conversation_manager
from .services.notifications import get_dispatcher
from .storage import get_blob_store

# Logger
logger = logging.getLogger(__name__)


# ============================================================================
# HELPERS
# ============================================================================

def api_login_required(view):
    """Reject the request with 401 unless the bearer credential resolved to a principal."""
    @wraps(view)
    def wrapper(request, *args, **kwargs):
        if not getattr(request, 'principal_id', None):
            raise Unauthorized(getattr(request, 'auth_error', None) or "Unauthorized")
        return view(request, *args, **kwargs)
    return wrapper


def ok(data=None, message=None, status=200):
    body = {"error": False}
    if message:
        body["message"] = message
    if data is not None:
        body["data"] = data
    return JsonResponse(body, status=status)


def _json_body(request):
    if not request.body:
        return {}
    try:
        data = json.loads(request.body)
    except (ValueError, UnicodeDecodeError):
        raise InvalidInput("Request body must be valid JSON")
    if not isinstance(data, dict):
        raise InvalidInput("Request body must be a JSON object")
    return data


def _page_args(request, default=None):
    return parse_page_size(request.GET.get('limit'), default), request.GET.get('lastId') or None


def _as_bool(value):
    if value is None or isinstance(value, bool):
        return value
    return str(value).lower() in ('1', 'true', 'yes', 'on')


# ============================================================================
# HEALTH & AUTH
# ============================================================================

@require_GET
def health(request):
    return JsonResponse({"status": "ok", "message": "5ocial API is running"})


@csrf_exempt
@require_POST
@api_login_required
def auth_profile(request):
    data = _json_body(request)
    user, created = users.create_profile(
        request.principal_id,
        name=data.get('name'),
        username=data.get('username'),
        email=data.get('email', ''),
        bio=data.get('bio', ''),
    )
    if created:
        return ok({"user": user.profile()}, "User created successfully", status=201)
    return ok({"user": user.profile()}, "Profile already exists")


@require_GET
@api_login_required
def auth_me(request):
    user = users.get_own_profile(request.principal_id)
    return ok({"user": {**user.profile(), "email": user.email}})


# ============================================================================
# CHATS
# ============================================================================

@require_GET
@api_login_required
def chats_list(request):
    return ok({"chats": get_conversation_manager().list_chats(request.principal_id)})


@csrf_exempt
@require_POST
@api_login_required
def chat_create(request):
    data = _json_body(request)
    chat, created = get_conversation_manager().get_or_create_chat(
        request.principal_id, data.get('otherUserId')
    )
    payload = {"chat": chat_payload(chat, request.principal_id)}
    if created:
        return ok(payload, "Chat created successfully", status=201)
    return ok(payload, "Chat already exists")


@csrf_exempt
@require_POST
@api_login_required
def chat_send(request, chat_id):
    data = _json_body(request)
    message = get_conversation_manager().send_message(
        request.principal_id,
        chat_id,
        kind=data.get('type', 'text'),
        text=data.get('text', ''),
        media_url=data.get('mediaUrl', ''),
    )
    return ok({"message": message.to_dict()}, "Message sent successfully", status=201)


@require_GET
@api_login_required
def chat_messages(request, chat_id):
    page_size, cursor = _page_args(request)
    page = get_conversation_manager().list_messages(request.principal_id, chat_id, page_size, cursor)
    return ok(page.as_dict("messages"))


@csrf_exempt
@require_POST
@api_login_required
def chat_read(request, chat_id):
    flipped = get_conversation_manager().mark_chat_read(request.principal_id, chat_id)
    return ok({"markedRead": flipped}, "Chat marked as read")


# ============================================================================
# NOTIFICATIONS
# ============================================================================

@require_GET
@api_login_required
def notifications_list(request):
    page_size, cursor = _page_args(request)
    dispatcher = get_dispatcher()
    page = dispatcher.list_notifications(request.principal_id, page_size, cursor)
    return ok({
        **page.as_dict("notifications"),
        "unreadCount": dispatcher.unread_count(request.principal_id),
    })


@csrf_exempt
@require_POST
@api_login_required
def notifications_read(request):
    ids = _json_body(request).get('notificationIds') or None
    if ids is not None and not isinstance(ids, list):
        raise InvalidInput("notificationIds must be a list")
    flipped = get_dispatcher().mark_read(request.principal_id, ids)
    return ok({"markedRead": flipped}, "Notifications marked as read")


# ============================================================================
# USERS & FOLLOW GRAPH
# ============================================================================

@require_GET
@api_login_required
def users_search(request):
    results = users.search_users(request.GET.get('query', ''))
    return ok({"users": [user.summary() for user in results]})


@csrf_exempt
@require_http_methods(["PUT"])
@api_login_required
def users_profile_update(request):
    data = _json_body(request)
    user = users.update_profile(
        request.principal_id,
        name=data.get('name'),
        username=data.get('username'),
        bio=data.get('bio'),
        timezone=data.get('timezone'),
        profile_pic=data.get('profilePic'),
    )
    return ok({"user": user.profile()}, "Profile updated successfully")


@csrf_exempt
@require_http_methods(["POST", "DELETE"])
@api_login_required
def push_tokens(request):
    data = _json_body(request)
    if request.method == "DELETE":
        removed = users.unregister_push_token(request.principal_id, data.get('token'))
        return ok({"removed": removed}, "Push token removed")
    push_token, created = users.register_push_token(
        request.principal_id, data.get('token'), data.get('platform', '')
    )
    return ok(
        {"token": push_token.token, "platform": push_token.platform},
        "Push token registered",
        status=201 if created else 200,
    )


@require_GET
@api_login_required
def user_detail(request, id_or_username):
    return ok(users.get_user(id_or_username).profile())


@csrf_exempt
@require_POST
@api_login_required
def follow_user(request, user_id):
    follows.follow(request.principal_id, user_id)
    return ok(message="User followed successfully")


@csrf_exempt
@require_POST
@api_login_required
def unfollow_user(request, user_id):
    follows.unfollow(request.principal_id, user_id)
    return ok(message="User unfollowed successfully")


@require_GET
@api_login_required
def user_followers(request, user_id):
    page_size, cursor = _page_args(request)
    page = follows.list_followers(user_id, page_size, cursor)
    return ok(page.as_dict("followers", lambda edge: edge.follower.summary()))


@require_GET
@api_login_required
def user_following(request, user_id):
    page_size, cursor = _page_args(request)
    page = follows.list_following(user_id, page_size, cursor)
    return ok(page.as_dict("following", lambda edge: edge.followed.summary()))


# ============================================================================
# POSTS & COMMENTS
# ============================================================================

@csrf_exempt
@require_POST
@api_login_required
def post_create(request):
    data = _json_body(request)
    post = posts.create_post(
        request.principal_id,
        media_urls=data.get('mediaUrls'),
        caption=data.get('caption', ''),
        is_video=_as_bool(data.get('isVideo')),
    )
    return ok(post.to_dict(), "Post created successfully", status=201)


@require_GET
@api_login_required
def posts_feed(request):
    page_size, cursor = _page_args(request, default=settings.FEED_DEFAULT_PAGE_SIZE)
    page = posts.home_feed(request.principal_id, page_size, cursor)
    return ok(page.as_dict("posts"))


@require_GET
@api_login_required
def posts_by_user(request, user_id):
    page_size, cursor = _page_args(request)
    return ok(posts.list_user_posts(user_id, page_size, cursor).as_dict("posts"))


@csrf_exempt
@require_http_methods(["GET", "DELETE"])
@api_login_required
def post_detail(request, post_id):
    if request.method == "DELETE":
        posts.delete_post(request.principal_id, post_id)
        return ok(message="Post deleted successfully")
    post, comments = posts.get_post(post_id)
    return ok({"post": post.to_dict(), "comments": [c.to_dict() for c in comments]})


@csrf_exempt
@require_POST
@api_login_required
def post_like(request, post_id):
    posts.like_post(request.principal_id, post_id)
    return ok(message="Post liked successfully")


@csrf_exempt
@require_POST
@api_login_required
def post_unlike(request, post_id):
    posts.unlike_post(request.principal_id, post_id)
    return ok(message="Post unliked successfully")


@csrf_exempt
@require_POST
@api_login_required
def post_comment(request, post_id):
    comment = posts.add_comment(request.principal_id, post_id, _json_body(request).get('text'))
    return ok({"comment": comment.to_dict()}, "Comment added successfully", status=201)


@require_GET
@api_login_required
def post_comments(request, post_id):
    page_size, cursor = _page_args(request)
    return ok(posts.list_comments(post_id, page_size, cursor).as_dict("comments"))


# ============================================================================
# STORIES
# ============================================================================

@csrf_exempt
@require_POST
@api_login_required
def story_upload(request):
    data = _json_body(request)
    story = stories.create_story(
        request.principal_id,
        data.get('mediaUrl'),
        is_video=_as_bool(data.get('isVideo')),
    )
    return ok(
        {"storyId": str(story.pk), **stories.story_item(story, request.principal_id)},
        "Story uploaded successfully",
        status=201,
    )


@require_GET
@api_login_required
def stories_feed(request):
    return ok(stories.stories_feed(request.principal_id))


@require_GET
@api_login_required
def stories_by_user(request, user_id):
    return ok(stories.user_stories(request.principal_id, user_id))


@csrf_exempt
@require_POST
@api_login_required
def story_view(request, story_id):
    if stories.view_story(request.principal_id, story_id):
        return ok(message="Story marked as viewed")
    return ok(message="Story already viewed")


@csrf_exempt
@require_http_methods(["DELETE"])
@api_login_required
def story_delete(request, story_id):
    stories.delete_story(request.principal_id, story_id)
    return ok(message="Story deleted successfully")


# ============================================================================
# UPLOADS
# ============================================================================

def _upload(request, field, expected_prefix):
    upload = request.FILES.get(field)
    if upload is None:
        raise InvalidInput("No file uploaded")
    content_type = upload.content_type or ''
    if not content_type.startswith(expected_prefix):
        raise InvalidInput(f"Expected a {expected_prefix.rstrip('/')} file, got {content_type or 'unknown'}")
    url = get_blob_store().upload(upload, content_type, request.principal_id, upload.name)
    return ok({"url": url, "fileName": upload.name, "contentType": content_type})


@csrf_exempt
@require_POST
@api_login_required
def upload_image(request):
    return _upload(request, 'image', 'image/')


@csrf_exempt
@require_POST
@api_login_required
def upload_video(request):
    return _upload(request, 'video', 'video/')

"""
================================================================================
5OCIAL BACKEND - API URL CONFIGURATION
================================================================================

@file        urls.py
@description JSON API routing, mounted under /api/ by fivesocial/urls.py
@version     1.0.0

URL STRUCTURE OVERVIEW
================================================================================
1. Health & Auth (health, auth/profile, auth/me)
2. Chats (list, create, send, messages, read)
3. Notifications (list, mark read)
4. Users & Follow Graph (search, profile, push tokens, follow, lists)
5. Posts & Comments (create, feed, per-user, detail, like, comment)
6. Stories (upload, feed, per-user, view, delete)
7. Uploads (image, video)

ORDERING
================================================================================
Fixed paths such as users/search or posts/feed are listed before the
<str:...> catch-alls of the same prefix so they are matched first.

NAMING CONVENTIONS
================================================================================
URL names use <resource>_<action>, matching the view function names.

================================================================================
"""

from django.urls import path

from . import views

urlpatterns = [
    # ==================== HEALTH & AUTH ====================
    path("health", views.health, name="health"),
    path("auth/profile", views.auth_profile, name="auth_profile"),
    path("auth/me", views.auth_me, name="auth_me"),

    # ==================== CHATS ====================
    path("chats/", views.chats_list, name="chats_list"),
    path("chats/create", views.chat_create, name="chat_create"),
    path("chats/<str:chat_id>/send", views.chat_send, name="chat_send"),
    path("chats/<str:chat_id>/messages", views.chat_messages, name="chat_messages"),
    path("chats/<str:chat_id>/read", views.chat_read, name="chat_read"),

    # ==================== NOTIFICATIONS ====================
    path("notifications/", views.notifications_list, name="notifications_list"),
    path("notifications/read", views.notifications_read, name="notifications_read"),

    # ==================== USERS & FOLLOW GRAPH ====================
    path("users/search", views.users_search, name="users_search"),
    path("users/profile", views.users_profile_update, name="users_profile_update"),
    path("users/push-tokens", views.push_tokens, name="push_tokens"),
    path("users/follow/<str:user_id>", views.follow_user, name="follow_user"),
    path("users/unfollow/<str:user_id>", views.unfollow_user, name="unfollow_user"),
    path("users/<str:user_id>/followers", views.user_followers, name="user_followers"),
    path("users/<str:user_id>/following", views.user_following, name="user_following"),
    path("users/<str:id_or_username>", views.user_detail, name="user_detail"),

    # ==================== POSTS & COMMENTS ====================
    path("posts/create", views.post_create, name="post_create"),
    path("posts/feed", views.posts_feed, name="posts_feed"),
    path("posts/user/<str:user_id>", views.posts_by_user, name="posts_by_user"),
    path("posts/<str:post_id>/like", views.post_like, name="post_like"),
    path("posts/<str:post_id>/unlike", views.post_unlike, name="post_unlike"),
    path("posts/<str:post_id>/comment", views.post_comment, name="post_comment"),
    path("posts/<str:post_id>/comments", views.post_comments, name="post_comments"),
    path("posts/<str:post_id>", views.post_detail, name="post_detail"),

    # ==================== STORIES ====================
    path("stories/upload", views.story_upload, name="story_upload"),
    path("stories/feed", views.stories_feed, name="stories_feed"),
    path("stories/user/<str:user_id>", views.stories_by_user, name="stories_by_user"),
    path("stories/<str:story_id>/view", views.story_view, name="story_view"),
    path("stories/<str:story_id>", views.story_delete, name="story_delete"),

    # ==================== UPLOADS ====================
    path("uploads/image", views.upload_image, name="upload_image"),
    path("uploads/video", views.upload_video, name="upload_video"),
]

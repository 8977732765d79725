from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from django.contrib.auth.models import Group
from django.urls import reverse
from django.utils.html import format_html

from .models import (
    Chat, ChatParticipant, Comment, Follow, Message, Notification,
    Post, PushToken, Story, Upload, User,
)


def _short(text, length):
    if not text:
        return ""
    return text[:length] + '...' if len(text) > length else text


# ==================== ADMIN CLASSES ====================

class PushTokenInline(admin.TabularInline):
    model = PushToken
    extra = 0
    readonly_fields = ('token', 'platform', 'created_at')


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    list_display = ('username', 'name', 'id', 'email', 'is_staff', 'date_joined')
    search_fields = ('id', 'username', 'name', 'email')
    fieldsets = BaseUserAdmin.fieldsets + (
        ('Profile', {'fields': ('name', 'bio', 'profile_pic', 'timezone')}),
        ('Social graph', {'fields': ('follower_ids', 'following_ids', 'post_ids')}),
    )
    inlines = [PushTokenInline]
    actions = ['activate_users', 'deactivate_users']

    def activate_users(self, request, queryset):
        updated = queryset.update(is_active=True)
        self.message_user(request, f"{updated} users activated")
    activate_users.short_description = "Activate selected users"

    def deactivate_users(self, request, queryset):
        updated = queryset.update(is_active=False)
        self.message_user(request, f"{updated} users deactivated")
    deactivate_users.short_description = "Deactivate selected users"


@admin.register(PushToken)
class PushTokenAdmin(admin.ModelAdmin):
    list_display = ('id', 'user', 'platform', 'token_short', 'created_at')
    list_filter = ('platform',)
    search_fields = ('user__username', 'token')

    def token_short(self, obj):
        return _short(obj.token, 24)
    token_short.short_description = 'Token'


class ChatParticipantInline(admin.TabularInline):
    model = ChatParticipant
    extra = 0
    readonly_fields = ('user', 'unread_count', 'joined_at')


@admin.register(Chat)
class ChatAdmin(admin.ModelAdmin):
    list_display = ('id', 'last_message_short', 'last_message_at', 'created_at')
    search_fields = ('id',)
    inlines = [ChatParticipantInline]

    def last_message_short(self, obj):
        return _short(obj.last_message_text, 50) or "(empty)"
    last_message_short.short_description = 'Last message'


@admin.register(Message)
class MessageAdmin(admin.ModelAdmin):
    list_display = ('id', 'chat', 'sender', 'kind', 'read', 'created_at', 'text_short')
    list_filter = ('kind', 'read', 'created_at')
    search_fields = ('text', 'sender__username', 'chat__id')

    def text_short(self, obj):
        return _short(obj.text, 50) or "(media)"
    text_short.short_description = 'Text'


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ('id', 'user_id', 'type', 'actor_name', 'read', 'created_at')
    list_filter = ('type', 'read', 'created_at')
    search_fields = ('user__username', 'actor_name', 'message')


@admin.register(Follow)
class FollowAdmin(admin.ModelAdmin):
    list_display = ('id', 'follower', 'followed', 'created_at')
    search_fields = ('follower__username', 'followed__username')


@admin.register(Post)
class PostAdmin(admin.ModelAdmin):
    list_display = ('id', 'user_link', 'created_at', 'caption_short', 'comment_count')
    list_filter = ('is_video', 'created_at')
    search_fields = ('caption', 'user__username')

    def user_link(self, obj):
        url = reverse("admin:social_user_change", args=[obj.user.id])
        return format_html('<a href="{}">{}</a>', url, obj.user.username)
    user_link.short_description = 'User'
    user_link.admin_order_field = 'user__username'

    def caption_short(self, obj):
        return _short(obj.caption, 80) or "(no caption)"
    caption_short.short_description = 'Caption'


@admin.register(Comment)
class CommentAdmin(admin.ModelAdmin):
    list_display = ('id', 'user', 'post', 'created_at', 'text_short')
    search_fields = ('text', 'user__username', 'post__id')

    def text_short(self, obj):
        return _short(obj.text, 50)
    text_short.short_description = 'Text'


@admin.register(Story)
class StoryAdmin(admin.ModelAdmin):
    list_display = ('id', 'user', 'is_video', 'created_at', 'expires_at')
    list_filter = ('is_video', 'expires_at')
    search_fields = ('user__username',)


@admin.register(Upload)
class UploadAdmin(admin.ModelAdmin):
    list_display = ('id', 'owner', 'storage_alias', 'content_type', 'size', 'created_at')
    list_filter = ('storage_alias', 'content_type')
    search_fields = ('owner__username', 'url', 'name')


# Unregister Django's default Group
admin.site.unregister(Group)

# Basic admin site configuration
admin.site.site_header = "5ocial Admin"
admin.site.site_title = "5ocial Admin Portal"
admin.site.index_title = "Welcome"

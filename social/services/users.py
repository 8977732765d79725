"""
User profiles and device registrations.
"""

import logging
import random
import re

import pytz
from django.db import IntegrityError, transaction
from django.db.models import Q

from ..exceptions import Conflict, InvalidInput, NotFound
from ..models import PushToken, User
from ..utils import clean_text

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 20
PROFILE_FIELDS = ('name', 'username', 'bio', 'timezone', 'profile_pic')


def generate_username(name):
    """Handle derived from a display name plus a four digit suffix."""
    base = re.sub(r'\s+', '', re.sub(r'[^\w\s]', '', name.lower()))
    return f"{base}{random.randint(1000, 9999)}"


def _username_taken(username, exclude_id=None):
    taken = User.objects.filter(username__iexact=username)
    if exclude_id:
        taken = taken.exclude(pk=exclude_id)
    return taken.exists()


def create_profile(principal_id, name, username='', email='', bio=''):
    """
    Create the profile row for a verified principal.

    Returns ``(user, created)``. Calling it again for a principal that already
    has a profile returns the existing row untouched.
    """
    existing = User.objects.filter(pk=principal_id).first()
    if existing is not None:
        return existing, False

    name = clean_text(name)
    username = clean_text(username)
    if not name:
        raise InvalidInput("Missing required fields")
    if not username:
        username = generate_username(name)
    if _username_taken(username):
        raise Conflict("Username already taken")

    user = User(
        id=principal_id,
        username=username,
        name=name,
        email=clean_text(email),
        bio=clean_text(bio),
    )
    user.set_unusable_password()
    try:
        with transaction.atomic():
            user.save(force_insert=True)
    except IntegrityError:
        # Lost a race on either the principal id or the handle.
        existing = User.objects.filter(pk=principal_id).first()
        if existing is not None:
            return existing, False
        raise Conflict("Username already taken")

    logger.info("Created profile %s (@%s)", principal_id, username)
    return user, True


def get_user(id_or_username):
    """Look a user up by principal id first, then by handle."""
    user = User.objects.filter(pk=id_or_username).first()
    if user is None:
        user = User.objects.filter(username=id_or_username).first()
    if user is None:
        raise NotFound("User not found")
    return user


def get_own_profile(caller_id):
    user = User.objects.filter(pk=caller_id).first()
    if user is None:
        raise NotFound("User not found")
    return user


def update_profile(caller_id, **fields):
    updates = {key: value for key, value in fields.items() if key in PROFILE_FIELDS and value is not None}
    if not updates:
        raise InvalidInput("No fields to update")

    user = get_own_profile(caller_id)

    if 'username' in updates:
        username = clean_text(updates['username'])
        if not username:
            raise InvalidInput("Username cannot be blank")
        if _username_taken(username, exclude_id=caller_id):
            raise Conflict("Username already taken")
        updates['username'] = username

    if 'timezone' in updates and updates['timezone'] not in pytz.all_timezones_set:
        raise InvalidInput(f"Unknown timezone: {updates['timezone']}")

    if 'name' in updates:
        updates['name'] = clean_text(updates['name'])
        if not updates['name']:
            raise InvalidInput("Name cannot be blank")

    for key, value in updates.items():
        setattr(user, key, value)
    try:
        with transaction.atomic():
            user.save(update_fields=list(updates))
    except IntegrityError:
        raise Conflict("Username already taken")
    return user


def search_users(query, limit=SEARCH_LIMIT):
    """Handle prefix or display name substring match, handle matches first."""
    query = clean_text(query)
    if not query:
        raise InvalidInput("Search query is required")

    by_handle = list(User.objects.filter(username__istartswith=query).order_by('username')[:limit])
    seen = {user.pk for user in by_handle}
    by_name = (
        User.objects.filter(name__icontains=query)
        .exclude(pk__in=seen)
        .order_by('name', 'username')[:max(0, limit - len(by_handle))]
    )
    return by_handle + list(by_name)


def register_push_token(caller_id, token, platform=''):
    """Attach a device token to the caller, taking it over from any previous owner."""
    token = clean_text(token)
    if not token:
        raise InvalidInput("Push token is required")
    push_token, created = PushToken.objects.update_or_create(
        token=token,
        defaults={'user_id': caller_id, 'platform': clean_text(platform)},
    )
    return push_token, created


def unregister_push_token(caller_id, token):
    token = clean_text(token)
    if not token:
        raise InvalidInput("Push token is required")
    deleted, _ = PushToken.objects.filter(user_id=caller_id, token=token).delete()
    return bool(deleted)

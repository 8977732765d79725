"""
Push gateway access.

The backend class is named by the PUSH_BACKEND setting, the same way Django
picks an email backend, and one instance is reused for the whole process.
"""

from functools import lru_cache

from django.conf import settings
from django.utils.module_loading import import_string

from .backends.base import BasePushBackend, InvalidTokenError, PushError

__all__ = ["BasePushBackend", "InvalidTokenError", "PushError", "get_backend"]


@lru_cache(maxsize=None)
def _load_backend(path):
    return import_string(path)()


def get_backend(path=None):
    return _load_backend(path or settings.PUSH_BACKEND)

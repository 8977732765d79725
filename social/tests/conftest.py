import pytest
from django.test import Client

from social.identity import JWTBackend
from social.models import User
from social.push.backends import locmem

LOCMEM_PUSH = 'social.push.backends.locmem.PushBackend'


@pytest.fixture(autouse=True)
def isolated_services(settings):
    """Keep pushes in memory and uploads out of MEDIA_ROOT for every test."""
    settings.PUSH_BACKEND = LOCMEM_PUSH
    settings.SECURE_SSL_REDIRECT = False
    settings.STORAGES = {
        'default': {'BACKEND': 'django.core.files.storage.InMemoryStorage'},
        'videos': {'BACKEND': 'django.core.files.storage.InMemoryStorage'},
        'staticfiles': {'BACKEND': 'django.contrib.staticfiles.storage.StaticFilesStorage'},
    }
    locmem.reset()
    yield
    locmem.reset()


@pytest.fixture
def outbox():
    return locmem.outbox


@pytest.fixture
def push_failures():
    return locmem.failures


@pytest.fixture
def make_user(db):
    def _make(uid, username=None, name=None, **extra):
        return User.objects.create(
            id=uid,
            username=username or uid,
            name=name if name is not None else uid.title(),
            **extra,
        )
    return _make


@pytest.fixture
def alice(make_user):
    return make_user("alice", name="Alice")


@pytest.fixture
def bob(make_user):
    return make_user("bob", name="Bob")


@pytest.fixture
def carol(make_user):
    return make_user("carol", name="Carol")


@pytest.fixture
def token_for():
    backend = JWTBackend()
    return lambda uid: backend.issue(uid)


@pytest.fixture
def api_client(token_for):
    """Client factory; pass a principal id to authenticate as it."""
    def _client(uid=None):
        if uid is None:
            return Client()
        return Client(HTTP_AUTHORIZATION=f"Bearer {token_for(uid)}")
    return _client

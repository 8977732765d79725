"""
Firebase Cloud Messaging backend.

Sends through the Firebase Admin SDK, which mints and refreshes the
service-account access token itself. Credentials come from
PUSH_FCM_CREDENTIALS_FILE, from the FIREBASE_* service account variables, or
from Google application default credentials, in that order.
"""

import logging
import threading

import firebase_admin
from django.conf import settings
from firebase_admin import credentials, exceptions, messaging

from .base import BasePushBackend, InvalidTokenError, PushError

logger = logging.getLogger(__name__)

APP_NAME = "fivesocial-push"
TOKEN_URI = "https://oauth2.googleapis.com/token"

_app_lock = threading.Lock()


def load_credential():
    if settings.PUSH_FCM_CREDENTIALS_FILE:
        return credentials.Certificate(settings.PUSH_FCM_CREDENTIALS_FILE)
    if settings.PUSH_FCM_PRIVATE_KEY:
        return credentials.Certificate({
            "type": "service_account",
            "project_id": settings.PUSH_FCM_PROJECT_ID,
            "client_email": settings.PUSH_FCM_CLIENT_EMAIL,
            "private_key": settings.PUSH_FCM_PRIVATE_KEY,
            "token_uri": TOKEN_URI,
        })
    return credentials.ApplicationDefault()


def get_app():
    """The process-wide Firebase app, initialized on first use."""
    with _app_lock:
        try:
            return firebase_admin.get_app(APP_NAME)
        except ValueError:
            pass
        options = {"httpTimeout": settings.PUSH_TIMEOUT}
        if settings.PUSH_FCM_PROJECT_ID:
            options["projectId"] = settings.PUSH_FCM_PROJECT_ID
        logger.info("Initializing Firebase app %s", APP_NAME)
        return firebase_admin.initialize_app(load_credential(), options, name=APP_NAME)


class PushBackend(BasePushBackend):
    def __init__(self, app=None, dry_run=False):
        self._app = app
        self.dry_run = dry_run

    @property
    def app(self):
        if self._app is None:
            self._app = get_app()
        return self._app

    def build_message(self, token, payload):
        return messaging.Message(
            token=token,
            notification=messaging.Notification(
                title=payload.get("title", ""),
                body=payload.get("body", ""),
            ),
            # FCM only accepts string values in the data map
            data={key: str(value) for key, value in payload.get("data", {}).items()},
            android=messaging.AndroidConfig(
                notification=messaging.AndroidNotification(click_action="FLUTTER_NOTIFICATION_CLICK"),
            ),
        )

    def send(self, token, payload):
        message = self.build_message(token, payload)
        try:
            return messaging.send(message, dry_run=self.dry_run, app=self.app)
        except (messaging.UnregisteredError, messaging.SenderIdMismatchError) as exc:
            raise InvalidTokenError(str(exc), token=token) from exc
        except exceptions.InvalidArgumentError as exc:
            if "registration token" in str(exc).lower():
                raise InvalidTokenError(str(exc), token=token) from exc
            raise PushError(f"FCM rejected the message: {exc}", token=token) from exc
        except exceptions.FirebaseError as exc:
            raise PushError(f"FCM error {exc.code}: {exc}", token=token) from exc

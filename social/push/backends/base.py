"""Base class and error types for push gateway backends."""


class PushError(Exception):
    """Delivery to a single token failed. Not retried."""

    def __init__(self, message="", token=None):
        self.token = token
        super().__init__(message)


class InvalidTokenError(PushError):
    """The gateway reports the token as unregistered or malformed."""


class BasePushBackend:
    """
    Base class for push gateway implementations.

    Subclasses must implement send(). A backend instance is shared by every
    request in the process and send() is called from several worker threads
    at once, so implementations must not keep per-call state on self.
    """

    def send(self, token, payload):
        """
        Deliver ``payload`` to one device token.

        ``payload`` is a dict with ``title``, ``body`` and a flat ``data``
        mapping. Raise InvalidTokenError when the token is no longer valid and
        PushError for any other failure.
        """
        raise NotImplementedError('subclasses of BasePushBackend must override send()')

"""
In-memory push backend for tests.

Every accepted delivery is appended to ``outbox`` as ``(token, payload)``.
Tests can script failures per token through ``failures``; the mapped
exception is raised instead of delivering.
"""

import threading

from .base import BasePushBackend

outbox = []
failures = {}
_lock = threading.Lock()


def reset():
    with _lock:
        outbox.clear()
        failures.clear()


class PushBackend(BasePushBackend):
    def send(self, token, payload):
        error = failures.get(token)
        if error is not None:
            raise error
        with _lock:
            outbox.append((token, payload))
        return f"locmem:{len(outbox)}"

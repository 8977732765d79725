"""Push backend that writes deliveries to the log. Used when DEBUG is on."""

import json
import logging

from .base import BasePushBackend

logger = logging.getLogger(__name__)


class PushBackend(BasePushBackend):
    def send(self, token, payload):
        logger.info(
            "Push to %s...: %s",
            token[:12],
            json.dumps(payload, default=str, sort_keys=True),
        )
        return f"console:{token}"

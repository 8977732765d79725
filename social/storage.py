"""
Blob store for user media.

Media goes through Django's storage API: images to the ``default`` storage
and videos to the ``videos`` storage, which settings point at Cloudinary in
production and at the local filesystem otherwise. Every stored object gets an
Upload row so a URL handed to clients can later be resolved back to the
storage alias and object name for deletion.
"""

import logging
import os
import uuid

from django.conf import settings
from django.core.files.base import ContentFile, File
from django.core.files.storage import storages

from .exceptions import DependencyFailure, InvalidInput
from .models import Upload

logger = logging.getLogger(__name__)

IMAGE_STORAGE = 'default'
VIDEO_STORAGE = 'videos'


class BlobStore:
    def __init__(self, max_bytes=None):
        self.max_bytes = max_bytes or settings.UPLOAD_MAX_BYTES

    def storage_alias_for(self, content_type):
        if content_type.startswith('image/'):
            return IMAGE_STORAGE
        if content_type.startswith('video/'):
            return VIDEO_STORAGE
        raise InvalidInput(f"Unsupported content type: {content_type or 'unknown'}")

    def upload(self, data, content_type, owner_id, filename=''):
        """
        Store ``data`` (bytes or a File) and return its durable URL.

        The object name is ``uploads/<images|videos>/<owner>_<uuid><ext>``.
        """
        alias = self.storage_alias_for(content_type or '')
        content = data if isinstance(data, File) else ContentFile(data)
        if not content.size:
            raise InvalidInput("No file uploaded")
        if content.size > self.max_bytes:
            raise InvalidInput(f"File too large (max {self.max_bytes} bytes)")

        folder = 'videos' if alias == VIDEO_STORAGE else 'images'
        extension = os.path.splitext(filename or '')[1].lower()
        name = f"uploads/{folder}/{owner_id}_{uuid.uuid4().hex}{extension}"

        storage = storages[alias]
        try:
            saved_name = storage.save(name, content)
            url = storage.url(saved_name)
        except OSError as exc:
            logger.exception("Blob store write failed for %s", name)
            raise DependencyFailure("Failed to store media") from exc

        Upload.objects.create(
            owner_id=owner_id,
            url=url,
            name=saved_name,
            storage_alias=alias,
            content_type=content_type,
            size=content.size,
        )
        logger.info("Stored %s (%s, %d bytes) for %s", saved_name, content_type, content.size, owner_id)
        return url

    def delete(self, url):
        """
        Remove the object behind ``url``. Returns False for unknown URLs,
        which covers media that was hosted somewhere else to begin with.
        """
        upload = Upload.objects.filter(url=url).first()
        if upload is None:
            logger.info("No stored object for %s, nothing to delete", url)
            return False
        storages[upload.storage_alias].delete(upload.name)
        upload.delete()
        return True

    def delete_many(self, urls):
        """
        Delete each URL independently. A failure is logged and does not stop
        the remaining deletions. Returns the number of objects removed.
        """
        removed = 0
        for url in urls:
            if not url:
                continue
            try:
                if self.delete(url):
                    removed += 1
            except Exception:
                logger.warning("Failed to delete media %s", url, exc_info=True)
        return removed


def get_blob_store():
    return BlobStore()

"""
Attachment storage references.

Image and audio messages store an opaque object path (``images/...`` or
``audio/...``) in ``message.content``. Readers get a time-limited URL signed with
HMAC-SHA256 over ``{bucket}/{path}:{expires}``; the storage front end verifies it
with ``verify_signature``.
"""

import hashlib
import hmac
import logging
import time
import uuid
from pathlib import PurePosixPath
from typing import Optional
from urllib.parse import quote

import config
from enums.message_type import MessageType

logger = logging.getLogger(__name__)


class StorageService:

    @staticmethod
    def signing_configured() -> bool:
        return bool(config.STORAGE_SIGNING_SECRET)

    @staticmethod
    def _secret() -> bytes:
        if not StorageService.signing_configured():
            raise ValueError("STORAGE_SIGNING_SECRET is not configured")
        return config.STORAGE_SIGNING_SECRET.encode()

    @staticmethod
    def _signature(path: str, expires: int) -> str:
        payload = f"{config.STORAGE_BUCKET}/{path}:{expires}".encode()
        return hmac.new(StorageService._secret(), payload, hashlib.sha256).hexdigest()

    @staticmethod
    def build_object_path(chatroom_id: int, user_id: int, message_type: MessageType, filename: str) -> str:
        """
        Object path for a new upload, e.g. ``images/12/34/5f0c...e1.jpg``.

        The original file name only contributes its extension.
        """
        folder = message_type.storage_folder()
        if folder is None:
            raise ValueError(f"Message type '{message_type.value}' has no attachment folder")
        suffix = PurePosixPath(filename or "").suffix.lower()
        return f"{folder}/{chatroom_id}/{user_id}/{uuid.uuid4().hex}{suffix}"

    @staticmethod
    def is_valid_object_path(path: str, message_type: MessageType) -> bool:
        folder = message_type.storage_folder()
        if folder is None or not path:
            return False
        parts = PurePosixPath(path).parts
        return (
            len(parts) >= 2
            and parts[0] == folder
            and not path.startswith("/")
            and ".." not in parts
        )

    @staticmethod
    def signed_url(path: str, expires_in: Optional[int] = None, now: Optional[float] = None) -> str:
        expires_in = expires_in if expires_in is not None else config.STORAGE_URL_TTL_SECONDS
        expires = int((now if now is not None else time.time()) + expires_in)
        signature = StorageService._signature(path, expires)
        return (
            f"{config.STORAGE_BASE_URL}/{config.STORAGE_BUCKET}/{quote(path)}"
            f"?expires={expires}&signature={signature}"
        )

    @staticmethod
    def verify_signature(path: str, expires: int, signature: str, now: Optional[float] = None) -> bool:
        """
        Check a signed URL's parameters. Expired or tampered links are rejected.
        """
        current = now if now is not None else time.time()
        if int(expires) < current:
            logger.debug(f"Signed URL for {path} expired at {expires}")
            return False
        expected = StorageService._signature(path, int(expires))
        return hmac.compare_digest(expected, signature or "")

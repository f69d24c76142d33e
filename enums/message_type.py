from enum import Enum


class MessageType(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    AUDIO = "audio"

    def storage_folder(self) -> str | None:
        """Storage folder holding attachments of this type, None for text."""
        if self == MessageType.IMAGE:
            return "images"
        if self == MessageType.AUDIO:
            return "audio"
        return None

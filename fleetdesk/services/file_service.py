"""Proof-of-payment storage on local disk."""
import logging
import uuid
from pathlib import Path
from typing import Optional

from fleetdesk.core.config import settings
from fleetdesk.models.journey import Attachment

logger = logging.getLogger(__name__)


class UploadRejected(Exception):
    """Upload is too large or of a type we do not keep."""
    pass


class FileStorage:
    def __init__(self, upload_dir: str | None = None):
        self.upload_dir = Path(upload_dir or settings.UPLOAD_DIR)

    def save(self, filename: str, content: bytes, mimetype: str) -> Attachment:
        """Store the bytes under a unique name and return the reference."""
        if mimetype not in settings.ALLOWED_UPLOAD_TYPES:
            raise UploadRejected(
                "Invalid file type. Only images (JPEG, PNG, GIF, WEBP) and PDF files are allowed."
            )
        if len(content) > settings.MAX_FILE_SIZE:
            raise UploadRejected(f"File exceeds {settings.MAX_FILE_SIZE} bytes")

        original = Path(filename or "proof").name
        stored_name = f"{Path(original).stem}-{uuid.uuid4().hex}{Path(original).suffix}"

        self.upload_dir.mkdir(parents=True, exist_ok=True)
        target = self.upload_dir / stored_name
        target.write_bytes(content)
        logger.info("Stored proof %s (%s bytes)", target, len(content))

        return Attachment(
            filename=original,
            path=str(target),
            mimetype=mimetype,
            size=len(content)
        )

    def resolve(self, attachment: Optional[Attachment]) -> Optional[Path]:
        """Path of a stored proof, or None if it points outside the upload dir."""
        if attachment is None or not attachment.path:
            return None
        path = Path(attachment.path).resolve()
        if not path.is_relative_to(self.upload_dir.resolve()):
            logger.warning("Refusing proof path outside %s: %s", self.upload_dir, attachment.path)
            return None
        return path

    def exists(self, attachment: Optional[Attachment]) -> bool:
        path = self.resolve(attachment)
        return path is not None and path.is_file()

    def delete(self, attachment: Optional[Attachment]) -> None:
        path = self.resolve(attachment)
        if path is None:
            return
        path.unlink(missing_ok=True)
        logger.info("Removed proof %s", path)

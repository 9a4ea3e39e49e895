"""
Object Storage for purchase order attachments

upload(content, path, filename) stores a file and returns its public URL;
delete(url) removes a stored file again.
Paths follow {folder}/{uploader_id}/{po_number}; URLs carry a v{unix_ts}
version segment before the path, the same shape image hosts use, so that
older attachments without metadata rows can still be attributed.
"""
import os
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Protocol

from po_workflow.db.base import utcnow
from po_workflow.exceptions import FileStorageError, ValidationError
from po_workflow.logging_config import get_logger

logger = get_logger(__name__)

ALLOWED_EXTENSIONS = {
    ".pdf", ".jpg", ".jpeg", ".png", ".webp", ".heic",
    ".xlsx", ".xls", ".csv", ".doc", ".docx",
}


@dataclass(frozen=True)
class StoredObject:
    url: str
    uploaded_at: datetime


class ObjectStorage(Protocol):
    def upload(self, content: bytes, path: str, filename: str) -> StoredObject:
        ...

    def delete(self, url: str) -> None:
        ...


def attachment_path(folder: str, uploader_id: str, po_number: str) -> str:
    return f"{folder.strip('/')}/{uploader_id}/{po_number}"


def _safe_extension(filename: str) -> str:
    ext = os.path.splitext(filename or "")[1].lower()
    if ext not in ALLOWED_EXTENSIONS:
        raise ValidationError(
            f"File type '{ext or 'none'}' not allowed. Allowed: {', '.join(sorted(ALLOWED_EXTENSIONS))}",
            field="files",
            value=filename,
        )
    return ext


class LocalObjectStorage:
    """Stores attachments under a local directory."""

    def __init__(self, root: str, base_url: str, max_bytes: Optional[int] = None):
        self.root = root
        self.base_url = base_url.rstrip("/")
        self.max_bytes = max_bytes

    def upload(self, content: bytes, path: str, filename: str) -> StoredObject:
        ext = _safe_extension(filename)
        if self.max_bytes is not None and len(content) > self.max_bytes:
            raise ValidationError(
                f"File exceeds the {self.max_bytes} byte limit",
                field="files",
                value=filename,
            )

        uploaded_at = utcnow()
        version = f"v{int(uploaded_at.replace(tzinfo=timezone.utc).timestamp())}"
        object_name = f"{uuid.uuid4().hex}{ext}"
        relative = f"{version}/{path.strip('/')}/{object_name}"

        local_path = os.path.join(self.root, *relative.split("/"))
        try:
            os.makedirs(os.path.dirname(local_path), exist_ok=True)
            with open(local_path, "wb") as f:
                f.write(content)
        except OSError as e:
            logger.error(f"Failed to store attachment {filename}: {e}")
            raise FileStorageError(str(e), filename=filename) from e

        url = f"{self.base_url}/{relative}"
        logger.info(f"Stored attachment {filename} at {local_path}", extra={"url": url})
        return StoredObject(url=url, uploaded_at=uploaded_at)

    def delete(self, url: str) -> None:
        """Remove a file stored by upload(); unknown URLs are ignored."""
        prefix = self.base_url + "/"
        if not url.startswith(prefix):
            return
        local_path = os.path.join(self.root, *url[len(prefix):].split("/"))
        try:
            os.remove(local_path)
        except FileNotFoundError:
            return
        except OSError as e:
            raise FileStorageError(str(e), filename=os.path.basename(local_path)) from e
        logger.info(f"Deleted attachment {local_path}", extra={"url": url})

# filevault/files.py
import hashlib
import logging
import mimetypes
import re
import uuid
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Optional, Union

from .crypto import EncryptedBlobCodec, SealedBlob
from .errors import NotFoundError, ValidationError
from .models import FileRecord
from .storage import normalize_path

logger = logging.getLogger(__name__)

DEFAULT_MIMETYPE = "application/octet-stream"
MAX_NAME_LEN = 255
_EXT_RE = re.compile(r"\.[A-Za-z0-9]{1,16}")
_SEGMENT_RE = re.compile(r"[A-Za-z0-9_-][A-Za-z0-9._-]{0,127}")


# ---------- stored content: encrypted vs legacy plaintext ----------

@dataclass(frozen=True)
class EncryptedContent:
    sealed: SealedBlob


@dataclass(frozen=True)
class PlainContent:
    """Blob written before encryption was introduced."""
    data: bytes


StoredContent = Union[EncryptedContent, PlainContent]


def stored_content(rec: FileRecord, data: bytes) -> StoredContent:
    """Classify blob bytes by the record's is_encrypted flag.

    An encrypted record without both tokens raises MalformedInputError; it is
    never treated as plaintext.
    """
    if rec.is_encrypted:
        return EncryptedContent(SealedBlob.from_tokens(data, rec.iv, rec.auth_tag))
    return PlainContent(data)


def reveal(codec: EncryptedBlobCodec, content: StoredContent) -> bytes:
    if isinstance(content, EncryptedContent):
        return codec.open(content.sealed)
    if isinstance(content, PlainContent):
        return content.data
    raise TypeError(f"unknown stored content: {type(content).__name__}")


# ---------- helpers ----------

def clean_filename(name: str) -> str:
    """Validate a display name supplied by the client."""
    name = (name or "").strip()
    if not name or name in (".", ".."):
        raise ValidationError("file name is required")
    if len(name) > MAX_NAME_LEN:
        raise ValidationError(f"file name longer than {MAX_NAME_LEN} characters")
    if any(c in name for c in "/\\"):
        raise ValidationError("file name must not contain path separators")
    if any(ord(c) < 0x20 or ord(c) == 0x7f for c in name):
        raise ValidationError("file name must not contain control characters")
    return name


def stored_name_for(originalname: str) -> str:
    """Random blob name that keeps a simple extension."""
    ext = PurePosixPath(originalname).suffix.lower()
    if not _EXT_RE.fullmatch(ext):
        ext = ""
    return f"{uuid.uuid4().hex}{ext}"


def user_segment(user_id: str) -> str:
    """Blob-key prefix for a token subject.

    UUID-like subjects are used as-is; anything else (emails, `auth0|...`)
    maps to a stable hash so it still forms a single safe path segment.
    """
    if _SEGMENT_RE.fullmatch(user_id):
        return user_id
    return "u-" + hashlib.sha256(user_id.encode("utf-8")).hexdigest()[:32]


def guess_mimetype(originalname: str, declared: Optional[str]) -> str:
    if declared and declared.strip():
        return declared.strip()
    return mimetypes.guess_type(originalname)[0] or DEFAULT_MIMETYPE


class FileService:
    """Upload/download/rename/delete on top of a metadata store and blob storage."""

    def __init__(self, store, blobs, codec: EncryptedBlobCodec):
        self.store = store
        self.blobs = blobs
        self.codec = codec

    def upload(
        self,
        user_id: str,
        originalname: str,
        data: bytes,
        mimetype: Optional[str] = None,
        folder: Optional[str] = None,
    ) -> FileRecord:
        name = clean_filename(originalname)
        filename = stored_name_for(name)
        parts = [user_segment(user_id)]
        if folder and folder.strip(" /"):
            parts.append(normalize_path(folder))
        parts.append(filename)
        path = "/".join(parts)

        sealed = self.codec.seal(data)
        self.blobs.put(path, sealed.ciphertext)
        try:
            rec = self.store.insert(
                user_id=user_id,
                originalname=name,
                filename=filename,
                path=path,
                mimetype=guess_mimetype(name, mimetype),
                size=len(data),
                iv=sealed.nonce_hex,
                auth_tag=sealed.auth_tag_hex,
                is_encrypted=True,
            )
        except Exception:
            logger.exception("Metadata insert failed, removing blob %s", path)
            self.blobs.delete(path)
            raise
        logger.info("Stored file %s for user %s (%d bytes)", rec.id, user_id, rec.size)
        return rec

    def get(self, user_id: str, file_id: uuid.UUID) -> FileRecord:
        rec = self.store.get(user_id, file_id)
        if rec is None:
            raise NotFoundError("File not found")
        return rec

    def download(self, user_id: str, file_id: uuid.UUID) -> tuple[FileRecord, bytes]:
        """Return the record and its plaintext.

        Raises AuthenticationError (or MalformedInputError) when encrypted
        content does not verify.
        """
        rec = self.get(user_id, file_id)
        try:
            data = self.blobs.get(rec.path)
        except ValidationError:
            logger.error("File %s has an unusable blob path %r", rec.id, rec.path)
            raise NotFoundError("File not found") from None
        return rec, reveal(self.codec, stored_content(rec, data))

    def rename(self, user_id: str, file_id: uuid.UUID, originalname: str) -> FileRecord:
        # Only the display name changes; blob, nonce and tag are untouched.
        rec = self.store.rename(user_id, file_id, clean_filename(originalname))
        if rec is None:
            raise NotFoundError("File not found")
        return rec

    def delete(self, user_id: str, file_id: uuid.UUID) -> None:
        rec = self.get(user_id, file_id)
        if not self.store.delete(user_id, file_id):
            raise NotFoundError("File not found")
        try:
            self.blobs.delete(rec.path)
        except ValidationError:
            logger.warning("Left blob with unusable path %r for deleted file %s", rec.path, file_id)
        logger.info("Deleted file %s for user %s", file_id, user_id)

# filevault/storage.py
import logging
import os
import re
import tempfile
from pathlib import Path

from .errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

# ---------- Path normalization / validation ----------
PATH_RE = re.compile(r"^(?:[A-Za-z0-9._-]+)(?:/[A-Za-z0-9._-]+)*$")


def normalize_path(p: str) -> str:
    """
    Enforce a canonical key format:
    - trim whitespace and surrounding slashes
    - allow segments [A-Za-z0-9._-], separated by '/'
    - refuse '.' and '..' segments
    Keys produced here can be joined under the storage root safely.
    """
    p = p.strip().strip("/")
    if not PATH_RE.fullmatch(p) or any(seg in (".", "..") for seg in p.split("/")):
        raise ValidationError("invalid path")
    return p


class LocalBlobStorage:
    """Blob bytes on the local filesystem, addressed by a relative path key."""

    def __init__(self, root: str | os.PathLike):
        self.root = Path(root).absolute()

    def _resolve(self, key: str) -> Path:
        return self.root / normalize_path(key)

    def put(self, key: str, data: bytes) -> None:
        target = self._resolve(key)
        target.parent.mkdir(parents=True, exist_ok=True)
        # Write to a sibling temp file, then rename, so readers never see a partial blob.
        fd, tmp = tempfile.mkstemp(dir=target.parent, prefix=".upload-")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp, target)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    def get(self, key: str) -> bytes:
        try:
            return self._resolve(key).read_bytes()
        except FileNotFoundError:
            raise NotFoundError(f"blob not found: {key}") from None

    def exists(self, key: str) -> bool:
        return self._resolve(key).is_file()

    def delete(self, key: str) -> None:
        target = self._resolve(key)
        if not target.exists():
            logger.warning("Blob already gone: %s", key)
            return
        target.unlink()

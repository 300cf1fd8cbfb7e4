# python
import datetime as dt
import os
import uuid

# filevault.main builds its app at import time; give it valid settings first.
os.environ.setdefault("ENCRYPTION_KEY", "test-encryption-key-0123456789abcdef")
os.environ.setdefault("JWT_SIGNING_KEY", "test-jwt-signing-key-0123456789abcdef")

import jwt
import pytest
from fastapi.testclient import TestClient

from filevault.config import Settings
from filevault.crypto import EncryptedBlobCodec
from filevault.files import FileService
from filevault.main import create_app
from filevault.models import FileRecord
from filevault.storage import LocalBlobStorage

ENCRYPTION_KEY = b"0123456789abcdef0123456789abcdef"
JWT_KEY = "unit-test-jwt-signing-key-0123456789"
USER_ID = "11111111-1111-1111-1111-111111111111"
OTHER_USER_ID = "22222222-2222-2222-2222-222222222222"


class FakeStore:
    """In-memory stand-in for FileStore."""

    def __init__(self):
        self.rows: dict[uuid.UUID, FileRecord] = {}

    def insert(self, **fields) -> FileRecord:
        rec = FileRecord(id=uuid.uuid4(), created_at=dt.datetime.now(dt.timezone.utc), **fields)
        self.rows[rec.id] = rec
        return rec

    def get(self, user_id, file_id):
        rec = self.rows.get(file_id)
        return rec if rec and rec.user_id == user_id else None

    def rename(self, user_id, file_id, originalname):
        rec = self.get(user_id, file_id)
        if rec is None:
            return None
        rec = rec.model_copy(update={"originalname": originalname})
        self.rows[file_id] = rec
        return rec

    def delete(self, user_id, file_id):
        if self.get(user_id, file_id) is None:
            return False
        del self.rows[file_id]
        return True

    def iter_all(self, limit=None):
        rows = sorted(self.rows.values(), key=lambda r: r.created_at)
        return rows[:limit] if limit else rows

    def update_encryption(self, file_id, *, filename, path, iv, auth_tag):
        self.rows[file_id] = self.rows[file_id].model_copy(
            update={"filename": filename, "path": path, "iv": iv, "auth_tag": auth_tag, "is_encrypted": True}
        )


@pytest.fixture
def settings(tmp_path):
    return Settings(
        encryption_key=ENCRYPTION_KEY,
        jwt_signing_key=JWT_KEY,
        storage_dir=str(tmp_path / "blobs"),
    )


@pytest.fixture
def codec():
    return EncryptedBlobCodec(ENCRYPTION_KEY)


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def blobs(tmp_path):
    return LocalBlobStorage(tmp_path / "blobs")


@pytest.fixture
def service(store, blobs, codec):
    return FileService(store=store, blobs=blobs, codec=codec)


@pytest.fixture
def make_token():
    def _make(sub=USER_ID, key=JWT_KEY, aud="authenticated", ttl=3600, **extra):
        now = dt.datetime.now(dt.timezone.utc)
        payload = {
            "sub": sub,
            "aud": aud,
            "iat": int(now.timestamp()),
            "exp": int((now + dt.timedelta(seconds=ttl)).timestamp()),
            **extra,
        }
        return jwt.encode(payload, key, algorithm="HS256")
    return _make


@pytest.fixture
def auth_headers(make_token):
    return {"Authorization": f"Bearer {make_token()}"}


@pytest.fixture
def client(settings, service):
    return TestClient(create_app(settings=settings, files=service))


def store_legacy(store, blobs, data=b"legacy bytes", user_id=USER_ID, name="old.txt"):
    """Record written before encryption: plaintext blob, no tokens."""
    path = f"{user_id}/legacy-{uuid.uuid4().hex}.txt"
    blobs.put(path, data)
    return store.insert(
        user_id=user_id,
        originalname=name,
        filename=path.rsplit("/", 1)[1],
        path=path,
        mimetype="text/plain",
        size=len(data),
        iv=None,
        auth_tag=None,
        is_encrypted=False,
    )


@pytest.fixture
def legacy_record(store, blobs):
    return store_legacy(store, blobs)

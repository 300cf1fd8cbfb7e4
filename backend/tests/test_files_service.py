# python
import uuid
from unittest.mock import patch

import pytest

from filevault.crypto import SealedBlob
from filevault.errors import AuthenticationError, MalformedInputError, NotFoundError, ValidationError
from filevault.files import (
    EncryptedContent,
    PlainContent,
    clean_filename,
    guess_mimetype,
    reveal,
    stored_content,
    stored_name_for,
    user_segment,
)

from conftest import OTHER_USER_ID, USER_ID


def test_hello_world_end_to_end(service, blobs):
    rec = service.upload(USER_ID, "hello.txt", b"hello world", mimetype="text/plain")

    stored = blobs.get(rec.path)
    assert len(stored) == 11
    assert stored != b"hello world"
    assert len(bytes.fromhex(rec.iv)) == 16
    assert len(bytes.fromhex(rec.auth_tag)) == 16
    assert rec.is_encrypted is True
    assert rec.size == 11

    got, data = service.download(USER_ID, rec.id)
    assert data == b"hello world"
    assert got.originalname == "hello.txt"
    assert got.mimetype == "text/plain"


def test_same_content_uploaded_twice_is_stored_differently(service, blobs):
    a = service.upload(USER_ID, "a.bin", b"identical")
    b = service.upload(USER_ID, "b.bin", b"identical")
    assert a.iv != b.iv
    assert blobs.get(a.path) != blobs.get(b.path)


def test_blob_key_layout(service):
    rec = service.upload(USER_ID, "Report.PDF", b"%PDF", folder="/docs/2024/")
    assert rec.path == f"{USER_ID}/docs/2024/{rec.filename}"
    assert rec.filename.endswith(".pdf")
    assert rec.mimetype == "application/pdf"


def test_empty_folder_means_user_root(service):
    rec = service.upload(USER_ID, "a.txt", b"a", folder=" / ")
    assert rec.path == f"{USER_ID}/{rec.filename}"


@pytest.mark.parametrize("folder", ["../escape", "docs/../../x", "a b", "docs/./x"])
def test_bad_folder_is_rejected(service, blobs, folder):
    with pytest.raises(ValidationError):
        service.upload(USER_ID, "a.txt", b"a", folder=folder)
    assert not blobs.root.exists() or not any(blobs.root.rglob("*.txt"))


def test_legacy_record_bypasses_codec(service, legacy_record):
    with patch.object(service.codec, "open") as mock_open:
        rec, data = service.download(USER_ID, legacy_record.id)
    assert data == b"legacy bytes"
    assert rec.is_encrypted is False
    mock_open.assert_not_called()


def test_encrypted_record_without_tag_is_rejected(service, store):
    rec = service.upload(USER_ID, "a.txt", b"secret")
    store.rows[rec.id] = rec.model_copy(update={"auth_tag": None})
    with pytest.raises(MalformedInputError):
        service.download(USER_ID, rec.id)


def test_tampered_blob_is_rejected(service, blobs):
    rec = service.upload(USER_ID, "a.txt", b"secret contents")
    stored = bytearray(blobs.get(rec.path))
    stored[0] ^= 0x01
    blobs.put(rec.path, bytes(stored))
    with pytest.raises(AuthenticationError):
        service.download(USER_ID, rec.id)


def test_tokens_swapped_between_files_are_rejected(service, store):
    a = service.upload(USER_ID, "a.txt", b"first")
    b = service.upload(USER_ID, "b.txt", b"other")
    store.rows[a.id] = a.model_copy(update={"iv": b.iv, "auth_tag": b.auth_tag})
    with pytest.raises(AuthenticationError):
        service.download(USER_ID, a.id)


def test_other_users_file_is_not_found(service):
    rec = service.upload(USER_ID, "mine.txt", b"mine")
    with pytest.raises(NotFoundError):
        service.download(OTHER_USER_ID, rec.id)
    with pytest.raises(NotFoundError):
        service.rename(OTHER_USER_ID, rec.id, "stolen.txt")
    with pytest.raises(NotFoundError):
        service.delete(OTHER_USER_ID, rec.id)


def test_unknown_id_is_not_found(service):
    with pytest.raises(NotFoundError):
        service.download(USER_ID, uuid.uuid4())


def test_missing_blob_is_not_found(service, blobs):
    rec = service.upload(USER_ID, "a.txt", b"a")
    blobs.delete(rec.path)
    with pytest.raises(NotFoundError):
        service.download(USER_ID, rec.id)


def test_rename_touches_only_the_name(service, blobs):
    rec = service.upload(USER_ID, "draft.txt", b"contents")
    before = blobs.get(rec.path)

    renamed = service.rename(USER_ID, rec.id, "final.txt")

    assert renamed.originalname == "final.txt"
    assert (renamed.path, renamed.iv, renamed.auth_tag) == (rec.path, rec.iv, rec.auth_tag)
    assert blobs.get(rec.path) == before
    assert service.download(USER_ID, rec.id)[1] == b"contents"


def test_delete_removes_record_and_blob(service, blobs):
    rec = service.upload(USER_ID, "a.txt", b"a")
    service.delete(USER_ID, rec.id)
    assert not blobs.exists(rec.path)
    with pytest.raises(NotFoundError):
        service.download(USER_ID, rec.id)
    with pytest.raises(NotFoundError):
        service.delete(USER_ID, rec.id)


def test_failed_insert_removes_blob(service, store, blobs):
    with patch.object(store, "insert", side_effect=RuntimeError("db down")):
        with pytest.raises(RuntimeError):
            service.upload(USER_ID, "a.txt", b"a")
    assert not any(p.is_file() for p in blobs.root.rglob("*"))


@pytest.mark.parametrize("name", ["", "   ", ".", "..", "a/b.txt", "a\\b.txt", "x" * 256,
                                  "a\r\nX: y", "nul\x00.txt", "bell\x07.txt", "del\x7f.txt"])
def test_bad_names_are_rejected(name):
    with pytest.raises(ValidationError):
        clean_filename(name)


def test_names_are_trimmed():
    assert clean_filename("  notes.md ") == "notes.md"


def test_stored_name_drops_odd_extensions():
    assert stored_name_for("archive.tar.GZ").endswith(".gz")
    assert "." not in stored_name_for("weird.ext with space")
    assert "." not in stored_name_for("noext")


def test_guess_mimetype():
    assert guess_mimetype("a.png", None) == "image/png"
    assert guess_mimetype("a.png", "  ") == "image/png"
    assert guess_mimetype("a.unknownext", None) == "application/octet-stream"
    assert guess_mimetype("a.png", "text/plain") == "text/plain"


def test_stored_content_variants(codec, legacy_record, service):
    assert stored_content(legacy_record, b"raw") == PlainContent(b"raw")

    rec = service.upload(USER_ID, "a.txt", b"a")
    content = stored_content(rec, b"\x00")
    assert isinstance(content, EncryptedContent)
    assert isinstance(content.sealed, SealedBlob)


def test_reveal_plain_and_encrypted(codec):
    assert reveal(codec, PlainContent(b"as is")) == b"as is"
    assert reveal(codec, EncryptedContent(codec.seal(b"sealed"))) == b"sealed"
    with pytest.raises(TypeError):
        reveal(codec, b"bytes")


def test_upload_rejects_control_characters(service, blobs):
    with pytest.raises(ValidationError):
        service.upload(USER_ID, "evil\r\nX-Injected: 1.txt", b"a")
    assert not blobs.root.exists()


def test_user_segment():
    assert user_segment(USER_ID) == USER_ID
    hashed = user_segment("auth0|abc123")
    assert hashed.startswith("u-") and len(hashed) == 34
    assert hashed == user_segment("auth0|abc123")
    assert user_segment("a@example.com") != user_segment("b@example.com")
    assert user_segment("..").startswith("u-")


def test_subject_outside_path_alphabet_can_upload(service):
    rec = service.upload("someone@example.com", "a.txt", b"mail user")
    assert rec.path.startswith(user_segment("someone@example.com") + "/")
    assert service.download("someone@example.com", rec.id)[1] == b"mail user"


def legacy_with_bad_path(store):
    return store.insert(
        user_id=USER_ID,
        originalname="my file.txt",
        filename="my file.txt",
        path=f"{USER_ID}/my file.txt",
        mimetype="text/plain",
        size=3,
        iv=None,
        auth_tag=None,
        is_encrypted=False,
    )


def test_unusable_stored_path_downloads_as_not_found(service, store):
    rec = legacy_with_bad_path(store)
    with pytest.raises(NotFoundError):
        service.download(USER_ID, rec.id)


def test_unusable_stored_path_still_deletes_record(service, store):
    rec = legacy_with_bad_path(store)
    service.delete(USER_ID, rec.id)
    assert store.get(USER_ID, rec.id) is None

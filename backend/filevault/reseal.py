#!/usr/bin/env python3
# Re-seal stored files under a new encryption key.
#
# Every encrypted record is opened with the old key and sealed again with the
# new one. With --include-legacy, plaintext records written before encryption
# existed are encrypted as well. New ciphertext goes to a fresh blob key; the
# record is switched over, then the old blob is removed, so an interrupted run
# never leaves a record pointing at content it cannot open.
#
# Exit codes:
#   0  - every selected record was processed
#   1  - at least one record failed (see stderr)
#   2  - configuration error
#
# Usage:
#   export ENCRYPTION_KEY="<current key>" NEW_ENCRYPTION_KEY="<next key>"
#   python -m filevault.reseal --dry-run
#   python -m filevault.reseal --include-legacy

import argparse
import logging
import os
import sys
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Iterable, Optional

from dotenv import load_dotenv

from .config import load_encryption_key, load_settings
from .crypto import EncryptedBlobCodec
from .db import FileStore, make_pool
from .errors import AuthenticationError, ConfigurationError, NotFoundError, ValidationError
from .files import reveal, stored_content, stored_name_for
from .logging_config import setup_logging
from .models import FileRecord
from .storage import LocalBlobStorage

logger = logging.getLogger(__name__)


@dataclass
class ResealReport:
    resealed: int = 0
    encrypted_legacy: int = 0
    skipped: int = 0
    failed: int = 0


def reseal_record(
    rec: FileRecord,
    store,
    blobs,
    old_codec: EncryptedBlobCodec,
    new_codec: EncryptedBlobCodec,
    dry_run: bool = False,
) -> None:
    """Open one record with the old codec and store it sealed by the new one."""
    plaintext = reveal(old_codec, stored_content(rec, blobs.get(rec.path)))
    if dry_run:
        return

    sealed = new_codec.seal(plaintext)
    filename = stored_name_for(rec.originalname)
    path = str(PurePosixPath(rec.path).parent / filename)
    blobs.put(path, sealed.ciphertext)
    try:
        store.update_encryption(
            rec.id,
            filename=filename,
            path=path,
            iv=sealed.nonce_hex,
            auth_tag=sealed.auth_tag_hex,
        )
    except Exception:
        blobs.delete(path)
        raise
    blobs.delete(rec.path)


def reseal_all(
    records: Iterable[FileRecord],
    store,
    blobs,
    old_codec: EncryptedBlobCodec,
    new_codec: EncryptedBlobCodec,
    include_legacy: bool = False,
    dry_run: bool = False,
) -> ResealReport:
    report = ResealReport()
    for rec in records:
        if not rec.is_encrypted and not include_legacy:
            report.skipped += 1
            continue
        try:
            reseal_record(rec, store, blobs, old_codec, new_codec, dry_run=dry_run)
        except (AuthenticationError, NotFoundError, ValidationError) as e:
            logger.error("Could not reseal file %s: %s", rec.id, e)
            report.failed += 1
            continue
        if rec.is_encrypted:
            report.resealed += 1
        else:
            report.encrypted_legacy += 1
    return report


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Re-seal stored files under a new encryption key.")
    parser.add_argument("--old-key-env", default="ENCRYPTION_KEY",
                        help="Env var holding the current key (used instead of ENCRYPTION_KEY). Default: ENCRYPTION_KEY.")
    parser.add_argument("--new-key-env", default="NEW_ENCRYPTION_KEY",
                        help="Env var holding the new key. Default: NEW_ENCRYPTION_KEY.")
    parser.add_argument("--include-legacy", action="store_true",
                        help="Also encrypt records stored before encryption was enabled")
    parser.add_argument("--dry-run", action="store_true", help="Open every record but change nothing")
    parser.add_argument("--limit", type=int, default=0, help="Process at most N records")
    args = parser.parse_args(argv)

    load_dotenv()

    try:
        settings = load_settings(key_env=args.old_key_env)
        old_codec = EncryptedBlobCodec(settings.encryption_key)
        new_codec = EncryptedBlobCodec(load_encryption_key(os.getenv(args.new_key_env), args.new_key_env))
    except ConfigurationError as e:
        print(f"ERR: {e}", file=sys.stderr)
        return 2

    setup_logging(settings.log_level)
    pool = make_pool(settings)
    pool.open(wait=True)
    try:
        store = FileStore(pool)
        report = reseal_all(
            store.iter_all(limit=args.limit or None),
            store,
            LocalBlobStorage(settings.storage_dir),
            old_codec,
            new_codec,
            include_legacy=args.include_legacy,
            dry_run=args.dry_run,
        )
    finally:
        pool.close()

    prefix = "DRY RUN: " if args.dry_run else ""
    print(
        f"{prefix}resealed={report.resealed} encrypted_legacy={report.encrypted_legacy} "
        f"skipped={report.skipped} failed={report.failed}"
    )
    return 1 if report.failed else 0


if __name__ == "__main__":
    sys.exit(main())

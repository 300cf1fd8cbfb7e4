import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class FileRecord(BaseModel):
    """One row of the files table."""
    id: uuid.UUID
    user_id: str
    originalname: str
    filename: str
    path: str
    mimetype: str
    size: int
    created_at: datetime
    iv: Optional[str] = None
    auth_tag: Optional[str] = None
    is_encrypted: bool = False


class FileOut(BaseModel):
    id: uuid.UUID
    originalname: str
    filename: str
    path: str
    mimetype: str
    size: int
    is_encrypted: bool
    created_at: str

    @classmethod
    def from_record(cls, rec: FileRecord) -> "FileOut":
        # iv / auth_tag stay server-side
        return cls(
            id=rec.id,
            originalname=rec.originalname,
            filename=rec.filename,
            path=rec.path,
            mimetype=rec.mimetype,
            size=rec.size,
            is_encrypted=rec.is_encrypted,
            created_at=rec.created_at.isoformat(),
        )


class FileIdIn(BaseModel):
    id: uuid.UUID


class RenameIn(BaseModel):
    id: uuid.UUID
    originalname: str = Field(..., min_length=1, max_length=255, description="New display name")


class DeletedOut(BaseModel):
    deleted: uuid.UUID

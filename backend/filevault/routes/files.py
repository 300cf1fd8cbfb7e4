# filevault/routes/files.py
import logging
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from fastapi.responses import Response

from ..config import Settings
from ..deps import get_file_service, get_settings
from ..errors import AuthenticationError, NotFoundError, ValidationError
from ..files import FileService
from ..models import DeletedOut, FileIdIn, FileOut, RenameIn
from ..security import AuthPrincipal, require_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/files", tags=["files"])


def content_disposition(filename: str) -> str:
    try:
        filename.encode("ascii")
        quoted = filename.replace("\\", "\\\\").replace('"', '\\"')
        return f'attachment; filename="{quoted}"'
    except UnicodeEncodeError:
        return f"attachment; filename*=UTF-8''{quote(filename, safe='')}"


@router.post("/upload", response_model=FileOut, status_code=201)
def upload_file(
    file: UploadFile = File(...),
    folder: str | None = Form(default=None),
    principal: AuthPrincipal = Depends(require_user),
    files: FileService = Depends(get_file_service),
):
    data = file.file.read()
    try:
        rec = files.upload(
            principal.id,
            file.filename or "",
            data,
            mimetype=file.content_type,
            folder=folder,
        )
    except ValidationError as e:
        raise HTTPException(400, str(e))
    return FileOut.from_record(rec)


@router.post("/download")
def download_file(
    body: FileIdIn,
    principal: AuthPrincipal = Depends(require_user),
    files: FileService = Depends(get_file_service),
    settings: Settings = Depends(get_settings),
):
    try:
        rec, data = files.download(principal.id, body.id)
    except NotFoundError:
        raise HTTPException(404, "File not found")
    except AuthenticationError as e:
        # Terminal for this request: no retry, no raw ciphertext.
        logger.error("Decryption failed for file %s (user %s): %s", body.id, principal.id, e)
        detail = "Failed to decrypt file"
        if not settings.is_production:
            detail = f"{detail}: {e}"
        raise HTTPException(500, detail)

    return Response(
        content=data,
        media_type=rec.mimetype,
        headers={"Content-Disposition": content_disposition(rec.originalname)},
    )


@router.put("/update", response_model=FileOut)
def update_file_name(
    body: RenameIn,
    principal: AuthPrincipal = Depends(require_user),
    files: FileService = Depends(get_file_service),
):
    try:
        rec = files.rename(principal.id, body.id, body.originalname)
    except ValidationError as e:
        raise HTTPException(400, str(e))
    except NotFoundError:
        raise HTTPException(404, "File not found")
    return FileOut.from_record(rec)


@router.delete("/delete", response_model=DeletedOut)
def delete_file(
    body: FileIdIn,
    principal: AuthPrincipal = Depends(require_user),
    files: FileService = Depends(get_file_service),
):
    try:
        files.delete(principal.id, body.id)
    except NotFoundError:
        raise HTTPException(404, "File not found")
    return {"deleted": body.id}

"""Backups router - admin endpoints for encrypted database backups"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from ...auth import require_admin
from ...database import get_db
from ...models import User
from .service import BackupService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin/backup-restore", tags=["Backups"])


def get_backup_service(db: Session = Depends(get_db)) -> BackupService:
    """Dependency injection for BackupService"""
    return BackupService(db)


async def _read_upload(file: Optional[UploadFile]) -> Optional[bytes]:
    if file is None:
        return None
    return await file.read()


@router.get("")
async def list_backups(
    current_user: User = Depends(require_admin),
    service: BackupService = Depends(get_backup_service),
):
    return service.list_backups()


@router.post("/create")
async def create_backup(
    current_user: User = Depends(require_admin),
    service: BackupService = Depends(get_backup_service),
):
    return service.create(current_user)


@router.get("/download/{filename}")
async def download_backup(
    filename: str,
    current_user: User = Depends(require_admin),
    service: BackupService = Depends(get_backup_service),
):
    path = service.resolve_path(filename)
    return FileResponse(path, media_type="application/octet-stream", filename=path.name)


@router.post("/check-integrity")
async def check_backup_integrity(
    file: Optional[UploadFile] = File(None),
    filename: Optional[str] = Form(None),
    current_user: User = Depends(require_admin),
    service: BackupService = Depends(get_backup_service),
):
    """Compare an uploaded backup, or a server backup by name, with the live database"""
    return service.check_integrity(filename, await _read_upload(file))


@router.post("/restore")
async def restore_backup(
    file: Optional[UploadFile] = File(None),
    filename: Optional[str] = Form(None),
    current_user: User = Depends(require_admin),
    service: BackupService = Depends(get_backup_service),
):
    logger.warning(f"⚠️ Restore from {filename or 'uploaded file'} requested by user #{current_user.id}")
    return service.restore(filename, current_user, await _read_upload(file))


@router.delete("/{filename}")
async def delete_backup(
    filename: str,
    current_user: User = Depends(require_admin),
    service: BackupService = Depends(get_backup_service),
):
    return service.delete(filename, current_user)

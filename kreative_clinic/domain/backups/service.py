"""
Backup service
Fernet-encrypted JSON dumps of every table, stored under BACKUP_DIR
"""

import base64
import hashlib
import json
import logging
import os
import re
from datetime import date, datetime, time
from pathlib import Path
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken
from fastapi import HTTPException
from sqlalchemy import Date, DateTime, Time, func, select
from sqlalchemy.orm import Session

from ... import config
from ...database import Base
from ...models import User
from ...shared.errors import FieldValidationError
from ...shared.timeutils import clinic_now

logger = logging.getLogger(__name__)

BACKUP_EXTENSION = ".encrypted"
FILENAME_PATTERN = re.compile(r"backup_(\d{8})_(\d{6})")
FORMAT_VERSION = 1
DECRYPT_FAILED = "Failed to decrypt backup file. It may be corrupted or encrypted with a different key."


def format_bytes(size: float, precision: int = 2) -> str:
    units = ["B", "KB", "MB", "GB", "TB"]
    i = 0
    while size > 1024 and i < len(units) - 1:
        size /= 1024
        i += 1
    return f"{round(size, precision)} {units[i]}"


def get_cipher() -> Fernet:
    """Fernet cipher from BACKUP_ENCRYPTION_KEY, else derived from SECRET_KEY"""
    if config.BACKUP_ENCRYPTION_KEY:
        return Fernet(config.BACKUP_ENCRYPTION_KEY.encode())
    logger.warning("⚠️ BACKUP_ENCRYPTION_KEY not set, deriving the backup key from SECRET_KEY")
    return Fernet(base64.urlsafe_b64encode(hashlib.sha256(config.SECRET_KEY.encode()).digest()))


def _encode_value(value):
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    return value


def _decode_value(column, value):
    if value is None:
        return None
    if isinstance(column.type, DateTime):
        return datetime.fromisoformat(value)
    if isinstance(column.type, Date):
        return date.fromisoformat(value)
    if isinstance(column.type, Time):
        return time.fromisoformat(value)
    return value


class BackupService:
    def __init__(self, db: Session, backup_dir: Optional[str] = None):
        self.db = db
        self.backup_dir = Path(backup_dir or config.BACKUP_DIR)
        self.backup_dir.mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    def resolve_path(self, filename: str) -> Path:
        """Basename only; must be an existing .encrypted file"""
        name = os.path.basename(filename or "")
        path = self.backup_dir / name
        if not name.endswith(BACKUP_EXTENSION) or not path.is_file():
            raise HTTPException(status_code=404, detail="Backup file not found")
        return path

    def _describe(self, path: Path) -> dict:
        match = FILENAME_PATTERN.search(path.name)
        if match:
            created = datetime.strptime(f"{match.group(1)}{match.group(2)}", "%Y%m%d%H%M%S")
        else:
            created = datetime.fromtimestamp(path.stat().st_mtime)
        size = path.stat().st_size
        return {
            "filename": path.name,
            "size": size,
            "size_formatted": format_bytes(size),
            "created_at": created.strftime("%Y-%m-%d %H:%M:%S"),
        }

    def list_backups(self) -> dict:
        backups = [self._describe(p) for p in self.backup_dir.iterdir() if p.name.endswith(BACKUP_EXTENSION)]
        backups.sort(key=lambda b: b["created_at"], reverse=True)
        return {"backups": backups}

    def delete(self, filename: str, user: User) -> dict:
        path = self.resolve_path(filename)
        path.unlink()
        logger.info(f"🗑️ Backup {path.name} deleted by user #{user.id}")
        return {"message": "Backup deleted successfully"}

    # ------------------------------------------------------------------
    # Dump and restore
    # ------------------------------------------------------------------

    def _table_counts(self) -> dict:
        return {
            table.name: self.db.execute(select(func.count()).select_from(table)).scalar()
            for table in Base.metadata.sorted_tables
        }

    def dump(self) -> dict:
        tables = {}
        for table in Base.metadata.sorted_tables:
            rows = self.db.execute(select(table)).mappings().all()
            tables[table.name] = [{k: _encode_value(v) for k, v in row.items()} for row in rows]
        return {"version": FORMAT_VERSION, "created_at": clinic_now().isoformat(), "tables": tables}

    def create(self, user: User) -> dict:
        try:
            payload = json.dumps(self.dump()).encode()
            filename = f"backup_{clinic_now():%Y%m%d_%H%M%S}.json{BACKUP_EXTENSION}"
            path = self.backup_dir / filename
            path.write_bytes(get_cipher().encrypt(payload))
        except Exception as e:
            logger.error(f"❌ Backup creation failed: {e}")
            raise HTTPException(status_code=500, detail=f"Failed to create backup: {str(e)}") from e

        logger.info(f"✅ Backup {filename} created by user #{user.id}")
        return {"message": "Backup created successfully", **self._describe(path)}

    def _load(self, filename: Optional[str] = None, content: Optional[bytes] = None) -> dict:
        """Decrypt an uploaded backup, or a server backup by name"""
        if content is not None:
            raw, label = content, "uploaded file"
        elif filename:
            path = self.resolve_path(filename)
            raw, label = path.read_bytes(), path.name
        else:
            raise FieldValidationError.single("filename", "Upload a backup file or choose a server backup.")

        try:
            return json.loads(get_cipher().decrypt(raw))
        except (InvalidToken, ValueError) as e:
            logger.error(f"❌ Could not decrypt backup {label}: {e}")
            raise HTTPException(status_code=400, detail=DECRYPT_FAILED) from e

    def check_integrity(self, filename: Optional[str] = None, content: Optional[bytes] = None) -> dict:
        """Compare per-table record counts of a backup with the live database"""
        data = self._load(filename, content)
        backup_counts = {name: len(rows) for name, rows in data.get("tables", {}).items()}
        current_counts = self._table_counts()

        missing = [
            {"table": name, "backup_records": count}
            for name, count in backup_counts.items()
            if name not in current_counts
        ]
        extra = [
            {"table": name, "current_records": count}
            for name, count in current_counts.items()
            if name not in backup_counts
        ]
        differences = [
            {
                "table": name,
                "backup_records": count,
                "current_records": current_counts[name],
                "difference": current_counts[name] - count,
            }
            for name, count in backup_counts.items()
            if name in current_counts and current_counts[name] != count
        ]

        total_backup = sum(backup_counts.values())
        total_current = sum(current_counts.values())
        return {
            "backup_timestamp": data.get("created_at"),
            "backup_tables": backup_counts,
            "current_tables": current_counts,
            "missing_tables": missing,
            "extra_tables": extra,
            "table_differences": differences,
            "summary": {
                "backup_tables_count": len(backup_counts),
                "current_tables_count": len(current_counts),
                "missing_tables_count": len(missing),
                "extra_tables_count": len(extra),
                "tables_with_differences": len(differences),
                "total_backup_records": total_backup,
                "total_current_records": total_current,
                "records_difference": total_current - total_backup,
            },
        }

    def restore(self, filename: Optional[str], user: User, content: Optional[bytes] = None) -> dict:
        """Replace every known table's rows with the backup's, in one transaction"""
        data = self._load(filename, content)
        source = os.path.basename(filename) if filename and content is None else "uploaded file"
        tables = data.get("tables", {})

        try:
            for table in reversed(Base.metadata.sorted_tables):
                self.db.execute(table.delete())
            for table in Base.metadata.sorted_tables:
                rows = tables.get(table.name) or []
                if not rows:
                    continue
                columns = {c.name: c for c in table.columns}
                decoded = [
                    {k: _decode_value(columns[k], v) for k, v in row.items() if k in columns} for row in rows
                ]
                self.db.execute(table.insert(), decoded)
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ Restore from {source} failed: {e}")
            raise HTTPException(status_code=500, detail=f"Failed to restore database: {str(e)}") from e

        logger.info(f"✅ Database restored from {source} by user #{user.id}")
        return {"message": "Database restored successfully"}

"""Backup export and import documents."""

from .archive import (
    BACKUP_VERSION,
    BackupDocument,
    backup_filename,
    build_backup,
    parse_backup,
    read_backup,
    write_backup,
)

__all__ = [
    "BACKUP_VERSION",
    "BackupDocument",
    "backup_filename",
    "build_backup",
    "parse_backup",
    "read_backup",
    "write_backup",
]

"""Search Console Backup - scheduled and manual Search Console exports to Google Sheets."""

from pipelines.gsc_backup.config import PIPELINE_NAME
from pipelines.gsc_backup.service import BackupService, build_service

__all__ = ["BackupService", "build_service", "PIPELINE_NAME"]

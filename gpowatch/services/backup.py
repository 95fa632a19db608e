"""
Backup collaborator client.
Asks the backup gateway to back up a policy and to export its report into the
folder of the current run.
"""

import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

import httpx

from gpowatch.core.config import ReportFormat, settings
from gpowatch.core.exceptions import BackupFailure, GatewayAuthFailure, ReportExportFailure
from gpowatch.services.auth import gateway_headers

logger = logging.getLogger(__name__)

RUN_FOLDER_FORMAT = "%Y-%m-%d_%H-%M-%S"


def run_folder_name(run_time: datetime) -> str:
    return run_time.strftime(RUN_FOLDER_FORMAT)


def report_file_name(identifier: str, display_name: str, report_format: ReportFormat) -> str:
    """File name of a policy report, unique per policy within one run folder."""
    safe_name = re.sub(r"[^\w.-]+", "_", display_name).strip("._") or "policy"
    safe_id = re.sub(r"[^\w-]+", "", identifier)
    return f"{safe_name}_{safe_id}.{report_format.value}"


class BackupClient:
    """Client for the policy backup gateway."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        backup_root: Optional[Union[str, Path]] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.base_url = (base_url or settings.BACKUP_SERVICE_URL).rstrip("/")
        self.backup_root = Path(backup_root or settings.BACKUP_ROOT)
        self.timeout = timeout if timeout is not None else settings.GATEWAY_TIMEOUT
        self.transport = transport

    def create_run_folder(self, run_time: datetime) -> Path:
        """
        Create the destination folder shared by all backups of one run.

        Raises:
            BackupFailure: the folder could not be created
        """
        folder = self.backup_root / run_folder_name(run_time)
        try:
            folder.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error(f"Cannot create backup folder {folder}: {str(e)}")
            raise BackupFailure(f"Cannot create backup folder {folder}: {e}") from e
        logger.info(f"Created backup folder {folder}")
        return folder

    async def backup_policy(self, identifier: str, display_name: str, destination: Path) -> None:
        """
        Raises:
            BackupFailure: the gateway did not confirm the backup
        """
        await self._post(
            f"/gpo/{identifier}/backup",
            {"displayName": display_name, "destination": str(destination)},
            BackupFailure,
            identifier
        )
        logger.info(f"Backed up policy '{display_name}' ({identifier}) to {destination}")

    async def export_report(
        self,
        identifier: str,
        display_name: str,
        report_format: ReportFormat,
        destination: Path
    ) -> None:
        """
        Raises:
            ReportExportFailure: the gateway did not confirm the export
        """
        await self._post(
            f"/gpo/{identifier}/report",
            {
                "displayName": display_name,
                "format": report_format.value,
                "destination": str(destination)
            },
            ReportExportFailure,
            identifier
        )
        logger.info(f"Exported {report_format.value} report of '{display_name}' to {destination}")

    async def _post(self, path: str, payload: dict, error_cls, identifier: str) -> None:
        try:
            headers = await gateway_headers()
        except GatewayAuthFailure as e:
            raise error_cls(e.message, identifier=identifier) from e

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(f"{self.base_url}{path}", json=payload, headers=headers)
        except httpx.HTTPError as e:
            raise error_cls(f"Backup gateway unreachable for {identifier}: {e}", identifier=identifier) from e

        if not response.is_success:
            raise error_cls(
                f"Backup gateway rejected {path} with HTTP {response.status_code}: {response.text}",
                identifier=identifier
            )

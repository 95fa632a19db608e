from pydantic_settings import BaseSettings
from pydantic import ConfigDict, computed_field, Field
from enum import Enum
import re
from pathlib import Path
from typing import List, Union, Optional


class ReportFormat(str, Enum):
    HTML = "html"
    XML = "xml"


class Settings(BaseSettings):
    model_config = ConfigDict(extra="allow", env_file=".env", case_sensitive=True)

    DEBUG: bool = False
    PROJECT_NAME: str = "GPOWatch"
    VERSION: str = "0.1.0"
    API_V1_STR: str = "/api"
    ENVIRONMENT: str = ""

    DATABASE_URL: str = "sqlite:///./gpowatch.db"

    # Watched directory subtree
    WATCHED_ROOT: str = Field(
        default="DC=CORP,DC=CONTOSO,DC=COM",
        description="Distinguished name of the subtree whose policy links are monitored"
    )
    ROOT_SUFFIX: str = Field(
        default="DC=CORP,DC=CONTOSO,DC=COM",
        description="Domain component suffix replaced by ROOT_LABEL in canonical paths"
    )
    ROOT_LABEL: str = Field(
        default="CORP.CONTOSO.COM",
        description="Readable label substituted for ROOT_SUFFIX"
    )
    PATH_SEPARATOR: str = "\\"

    # Persisted state
    SNAPSHOT_DIR: str = "./snapshots"
    SNAPSHOT_PATH: Optional[str] = Field(
        default=None,
        description="Explicit snapshot file; derived from WATCHED_ROOT when unset"
    )
    BACKUP_ROOT: str = "./backups"
    REPORT_FORMAT: ReportFormat = ReportFormat.HTML

    # Collaborator gateways
    DIRECTORY_SERVICE_URL: str = "http://localhost:8100"
    BACKUP_SERVICE_URL: str = "http://localhost:8100"
    GATEWAY_TIMEOUT: float = 30.0
    GATEWAY_SCOPES: Union[str, List[str]] = Field(default="")

    MS_CLIENT_ID: str = ""
    MS_CLIENT_SECRET: str = ""
    MS_TENANT_ID: str = ""

    # Notification settings
    MAIL_TO: Optional[str] = Field(
        default=None,
        description="Recipient of change notifications; unset disables notifications"
    )
    MAIL_FROM: str = "gpowatch@localhost"
    SMTP_SERVER: str = "localhost"
    SMTP_PORT: int = 25
    SMTP_USERNAME: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    SMTP_TIMEOUT: float = 30.0

    # Celery Configuration
    CELERY_BROKER_URL: str = Field(
        default="redis://localhost:6379/0",
        description="Celery broker URL (Redis recommended)"
    )
    CELERY_RESULT_BACKEND: str = Field(
        default="redis://localhost:6379/0",
        description="Celery result backend URL"
    )

    # Drift Detection Settings
    DRIFT_DETECTION_ENABLED: bool = True
    DRIFT_DETECTION_INTERVAL: int = Field(
        default=3600,
        description="Drift detection interval in seconds"
    )

    ENABLE_TRACING: bool = False
    OTLP_ENDPOINT: str = "localhost:4317"

    @computed_field
    @property
    def MS_AUTHORITY(self) -> str:
        return f"https://login.microsoftonline.com/{self.MS_TENANT_ID}"

    @computed_field
    @property
    def PARSED_GATEWAY_SCOPES(self) -> List[str]:
        """Parse GATEWAY_SCOPES from space-separated string if needed"""
        if isinstance(self.GATEWAY_SCOPES, str):
            return self.GATEWAY_SCOPES.split()
        return self.GATEWAY_SCOPES

    @computed_field
    @property
    def SNAPSHOT_FILE(self) -> str:
        """One snapshot file per watched root"""
        if self.SNAPSHOT_PATH:
            return self.SNAPSHOT_PATH
        slug = re.sub(r"[^A-Za-z0-9]+", "_", self.WATCHED_ROOT).strip("_").lower() or "root"
        return str(Path(self.SNAPSHOT_DIR) / f"{slug}.json")

    @computed_field
    @property
    def NOTIFICATIONS_ENABLED(self) -> bool:
        return bool(self.MAIL_TO)


settings = Settings()

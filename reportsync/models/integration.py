"""Integration model and per-tracker configuration"""
import enum
from typing import Any, Dict, List, Optional, Type

from pydantic import BaseModel, Field
from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String

from reportsync.models.base import Base, new_id, utcnow


class IntegrationType(str, enum.Enum):
    """Kind of external system an integration talks to.

    Only GitHub is implemented; the other values exist so integrations created by
    other parts of the product can live in the same table.
    """

    GITHUB = "github"
    JIRA = "jira"
    SLACK = "slack"
    LINEAR = "linear"
    WEBHOOK = "webhook"


class SyncMode(str, enum.Enum):
    MANUAL = "manual"
    AUTOMATIC = "automatic"


class FileTransferMode(str, enum.Enum):
    """How report attachments reach the tracker."""

    LINK = "link"  # link to files served by this deployment
    UPLOAD = "upload"  # commit files into the tracker repository


class TrackerConfig(BaseModel):
    """Base for per-tracker configuration stored in ``Integration.config``."""

    sync_mode: SyncMode = SyncMode.MANUAL
    webhook_id: Optional[str] = None
    webhook_secret: Optional[str] = None


class GitHubIntegrationConfig(TrackerConfig):
    owner: str
    repo: str
    access_token: str
    labels: List[str] = Field(default_factory=list)
    assignees: List[str] = Field(default_factory=list)
    file_transfer_mode: FileTransferMode = FileTransferMode.LINK

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"


# Integration types that support issue sync, and the config variant each one uses.
TRACKER_CONFIG_TYPES: Dict[IntegrationType, Type[TrackerConfig]] = {
    IntegrationType.GITHUB: GitHubIntegrationConfig,
}


def parse_tracker_config(integration_type: str, data: Optional[Dict[str, Any]]) -> TrackerConfig:
    """Parse the stored JSON config into the variant matching ``integration_type``."""
    config_cls = TRACKER_CONFIG_TYPES.get(IntegrationType(integration_type))
    if config_cls is None:
        raise ValueError(f"Integration type '{integration_type}' has no issue tracker config")
    return config_cls.model_validate(data or {})


class Integration(Base):
    """A configured connection from one project to one external system"""

    __tablename__ = "integrations"

    id = Column(String, primary_key=True, default=lambda: new_id("int"))
    project_id = Column(String, nullable=False, index=True)
    type = Column(String, nullable=False)
    name = Column(String, nullable=False, default="")
    # Tracker-specific settings, see TRACKER_CONFIG_TYPES.
    config = Column(JSON, nullable=False, default=dict)
    is_active = Column(Boolean, default=True, nullable=False)

    usage_count = Column(Integer, default=0, nullable=False)
    last_used_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    @property
    def is_tracker(self) -> bool:
        try:
            return IntegrationType(self.type) in TRACKER_CONFIG_TYPES
        except ValueError:
            return False

    def tracker_config(self) -> TrackerConfig:
        return parse_tracker_config(self.type, self.config)

    def __repr__(self):
        return f"<Integration(id='{self.id}', type='{self.type}', project='{self.project_id}')>"

"""
Configuration data models with validation.
"""

import os
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# One snapshot of a remote configuration document
ConfigDocument = Dict[str, Any]


class ServiceIdentity(BaseModel):
    """Identifies the configuration document a service reads: ``<service_name>/<environment>``."""
    model_config = ConfigDict(frozen=True)

    service_name: str = Field(min_length=1)
    environment: str = Field(default="local", min_length=1)
    project_id: Optional[str] = None

    @field_validator('service_name', 'environment')
    @classmethod
    def validate_path_component(cls, v: str) -> str:
        """Each field becomes one segment of the document path."""
        if '/' in v:
            raise ValueError(f"must not contain '/': {v!r}")
        if v != v.strip():
            raise ValueError(f"must not have surrounding whitespace: {v!r}")
        return v

    @property
    def document_path(self) -> str:
        return f"{self.service_name}/{self.environment}"

    @classmethod
    def from_env(cls) -> "ServiceIdentity":
        """Build an identity from SERVICE_NAME, ENVIRONMENT and PROJECT_ID (or GOOGLE_CLOUD_PROJECT)."""
        data: Dict[str, Any] = {"service_name": os.environ.get("SERVICE_NAME", "")}
        environment = os.environ.get("ENVIRONMENT")
        if environment:
            data["environment"] = environment
        project_id = os.environ.get("PROJECT_ID") or os.environ.get("GOOGLE_CLOUD_PROJECT")
        if project_id:
            data["project_id"] = project_id
        return cls(**data)


class WatchErrorPolicy(str, Enum):
    """How the watch loop reacts to a recoverable class of error."""
    TERMINATE = "terminate"
    LOG_AND_CONTINUE = "log_and_continue"


class WatchSettings(BaseModel):
    """Watch loop behavior. Defaults reproduce fail-fast termination on any error."""
    model_config = ConfigDict(frozen=True)

    on_decode_error: WatchErrorPolicy = WatchErrorPolicy.TERMINATE
    on_missing_document: WatchErrorPolicy = WatchErrorPolicy.TERMINATE
    resubscribe_attempts: int = Field(default=0, ge=0, le=100)
    resubscribe_base_delay: float = Field(default=1.0, gt=0)
    resubscribe_max_delay: float = Field(default=30.0, gt=0)
    stop_timeout: float = Field(default=5.0, gt=0)

    @model_validator(mode='after')
    def validate_delays(self) -> "WatchSettings":
        if self.resubscribe_max_delay < self.resubscribe_base_delay:
            raise ValueError("resubscribe_max_delay must be >= resubscribe_base_delay")
        return self

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator


class IncidentNotificationType(str, Enum):
    INCIDENT_CREATED = "incident_created"
    INCIDENT_UPDATED = "incident_updated"
    INCIDENT_RESOLVED = "incident_resolved"


class IncidentStatus(str, Enum):
    INVESTIGATING = "investigating"
    IDENTIFIED = "identified"
    MONITORING = "monitoring"
    RESOLVED = "resolved"


class IncidentNotification(BaseModel):
    """One pending outbound email about a status-page incident."""

    id: str
    email: EmailStr
    incident_id: str = Field(alias="incidentId")
    type: str
    status_page_id: Optional[str] = Field(default=None, alias="statusPageId")
    status_page_name: str = Field(default="", alias="statusPageName")
    status_page_url: str = Field(default="", alias="statusPageUrl")
    incident_title: str = Field(default="", alias="incidentTitle")
    incident_status: str = Field(default="", alias="incidentStatus")
    message: str = ""
    unsubscribe_url: str = Field(default="", alias="unsubscribeUrl")
    sent: bool = False
    sent_at: Optional[datetime] = Field(default=None, alias="sentAt")
    error_message: Optional[str] = Field(default=None, alias="errorMessage")
    created_at: datetime = Field(alias="createdAt")
    updated_at: Optional[datetime] = Field(default=None, alias="updatedAt")

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @field_validator("id", "incident_id", "status_page_id", mode="before")
    @classmethod
    def _coerce_identifier(cls, value):
        if value is None:
            return value
        return str(value)

    @field_validator(
        "status_page_name",
        "status_page_url",
        "incident_title",
        "incident_status",
        "message",
        "unsubscribe_url",
        mode="before",
    )
    @classmethod
    def _none_to_empty(cls, value):
        return "" if value is None else value

    @property
    def notification_type(self) -> Optional[IncidentNotificationType]:
        try:
            return IncidentNotificationType(self.type)
        except ValueError:
            return None

"""Data models and enums for hives and their inspection log."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum

from pydantic import Field

from hivelog.extraction.schemas import ObservationFields


class InspectionSource(str, Enum):
    """How the observation data of an inspection was obtained."""

    AI = "ai"
    MANUAL = "manual"


@dataclass(slots=True)
class Hive:
    """A physical hive in the registry.

    ``latest_inspection_id`` / ``last_inspected_at`` are a projection
    maintained by the reconciliation engine, not authoritative data.
    """

    id: str
    name: str
    location: str | None = None
    notes: str | None = None
    color: str | None = None
    date_added: str | None = None
    is_active: bool = True
    latest_inspection_id: str | None = None
    last_inspected_at: datetime | None = None


class InspectionRecord(ObservationFields):
    """A durable, timestamped observation of one hive.

    Append-only: created once by reconciliation or manual assignment, later
    changed only by a human edit which stamps ``edited_by``/``edited_at``.
    """

    id: str
    hive_id: str = Field(alias="hiveId")
    hive_name: str = Field(alias="hiveName")
    inspection_date: date = Field(alias="date")
    timestamp: datetime
    source: InspectionSource = InspectionSource.AI
    recording_session_id: str | None = Field(default=None, alias="recordingSessionId")
    confirmed: bool = False
    edited_by: str | None = Field(default=None, alias="editedBy")
    edited_at: datetime | None = Field(default=None, alias="editedAt")
    notes: str | None = None

    def to_payload(self) -> dict[str, object]:
        """Serialize with the wire field names, omitting unset values."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Fixed-width UTC ISO-8601 text, so string order is time order."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def parse_timestamp(value: str | None) -> datetime | None:
    if value is None:
        return None
    return datetime.fromisoformat(value)


def confidence_label(confidence: float | None) -> str:
    """Human description of an extraction confidence (0-1)."""
    if not confidence:
        return ""
    percentage = round(confidence * 100)
    if percentage >= 90:
        return "Very high confidence"
    if percentage >= 80:
        return "High confidence"
    if percentage >= 70:
        return "Medium confidence"
    if percentage >= 60:
        return "Low confidence"
    return "Very low confidence"

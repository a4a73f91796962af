from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


# Placeholders written when a field cannot be read for an appointment.
UNKNOWN_TIME = "Unknown Time"
UNKNOWN_DATE = "Unknown Date"
PHONE_NOT_FOUND = "N/A"
ERROR_PROCESSING = "Error processing"

_UNUSABLE_PHONES = frozenset({"", PHONE_NOT_FOUND, ERROR_PROCESSING})


class AppointmentRecord(BaseModel):
    """One appointment read off the agenda. Serialized with the webhook's camelCase keys."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    patient: str = ""
    date_time: str = Field(alias="dateTime")
    phone_number: str = Field(alias="phoneNumber")

    @classmethod
    def failed(cls, patient: str) -> "AppointmentRecord":
        return cls(patient=patient, date_time=ERROR_PROCESSING, phone_number=ERROR_PROCESSING)

    @property
    def is_deliverable(self) -> bool:
        return (self.phone_number or "").strip() not in _UNUSABLE_PHONES

    def to_payload(self) -> dict[str, str]:
        return self.model_dump(by_alias=True)

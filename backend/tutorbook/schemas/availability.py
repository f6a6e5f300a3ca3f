"""Availability request and response models."""

from typing import Dict, List, Optional

from pydantic import Field

from ..services.availability_service import BookableSlot, TutorAvailability
from ._strict_base import ApiModel, Money, StrictRequestModel


class TutorAvailabilityResponse(ApiModel):
    tutor_id: str
    tutor_name: Optional[str] = None
    hourly_rate: Optional[Money] = None
    timezone: str
    availability: Dict[str, List[str]] = Field(
        default_factory=dict,
        description="Weekday -> sorted HH:MM start times, all in UTC",
    )

    @classmethod
    def from_view(cls, view: TutorAvailability) -> "TutorAvailabilityResponse":
        return cls(
            tutor_id=view.tutor_id,
            tutor_name=view.tutor_name,
            hourly_rate=view.hourly_rate,
            timezone=view.timezone,
            availability=view.availability,
        )


class AvailabilityUpdate(StrictRequestModel):
    """Full replacement of a tutor's weekly availability (times in UTC)."""

    availability: Dict[str, List[str]] = Field(
        ..., description="Weekday -> HH:MM UTC start times; omitted days have no slots"
    )
    timezone: Optional[str] = Field(
        default=None, description="Tutor's display timezone (IANA name)"
    )


class BookableSlotResponse(ApiModel):
    time: str = Field(..., description="UTC start time (HH:MM)")
    local_date: str = Field(..., description="Date of the slot in the viewer's zone")
    local_time: str = Field(..., description="12-hour start time in the viewer's zone")

    @classmethod
    def from_slot(cls, slot: BookableSlot) -> "BookableSlotResponse":
        return cls(time=slot.time, local_date=slot.local_date, local_time=slot.local_time)


class BookableSlotsResponse(ApiModel):
    tutor_id: str
    date: str
    timezone: str
    slots: List[BookableSlotResponse]

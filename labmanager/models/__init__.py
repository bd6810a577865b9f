from labmanager.models.attendee import AttendeeRecord
from labmanager.models.resources import (
    REPORT_HEADER,
    TOP_LEVEL_KINDS,
    ProvisionedAttendeeResources,
    ResourceHandle,
    ResourceKind,
)

__all__ = [
    "AttendeeRecord",
    "ProvisionedAttendeeResources",
    "REPORT_HEADER",
    "ResourceHandle",
    "ResourceKind",
    "TOP_LEVEL_KINDS",
]

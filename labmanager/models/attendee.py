"""Attendee model for workshop participants.

This module defines the AttendeeRecord model which identifies one person in
the workshop roster. The attendee name is used verbatim as the suffix of
every cloud resource provisioned for that person, so it is the key that
makes "skip if it already exists" work across runs.
"""

from pydantic import BaseModel, ConfigDict


class AttendeeRecord(BaseModel):
    """A workshop participant loaded from the roster.

    Records are immutable for the duration of a run.

    Attributes:
        name: Unique identifier within the roster, used as the naming suffix
            for derived resource names.
        email: Optional contact address. Not used by provisioning.
    """
    model_config = ConfigDict(frozen=True)

    name: str
    email: str | None = None

import uuid as uuid_pkg
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import Column, DateTime, ForeignKey, Uuid
from sqlmodel import Field, SQLModel

from app.core.security import generate_link_token
from app.models.base import UUIDMixin


class EventBase(SQLModel):
    """Base fields shared across Event schemas."""

    event_name: str = Field(max_length=255, nullable=False)
    event_date_time: datetime = Field(sa_type=DateTime(timezone=True), nullable=False)  # type: ignore[call-overload]
    cutoff_datetime: datetime | None = Field(  # type: ignore[call-overload]
        default=None,
        sa_type=DateTime(timezone=True),
        nullable=True,
    )
    party_lead_name: str | None = Field(default=None, max_length=255)
    party_lead_email: str | None = Field(default=None, max_length=255)
    party_lead_phone: str | None = Field(default=None, max_length=50)


class EventCreate(SQLModel):
    """Schema for creating an event."""

    event_name: str = Field(min_length=1, max_length=255)
    event_date_time: datetime
    cutoff_datetime: datetime | None = None
    party_lead_name: str | None = None
    party_lead_email: str | None = None
    party_lead_phone: str | None = None


class EventRead(SQLModel):
    """Event as returned to the owning account."""

    id: uuid_pkg.UUID
    account_id: uuid_pkg.UUID
    event_name: str
    event_date_time: datetime
    cutoff_datetime: datetime | None
    party_lead_name: str | None
    party_lead_email: str | None
    party_lead_phone: str | None
    link_token: str
    created_at: datetime


class Event(EventBase, UUIDMixin, table=True):
    """A group booking. The resource the entitlement gate controls."""

    __tablename__ = "events"

    account_id: uuid_pkg.UUID = Field(
        sa_column=Column(
            Uuid(as_uuid=True),
            ForeignKey("accounts.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    link_token: str = Field(
        default_factory=generate_link_token,
        max_length=64,
        unique=True,
        index=True,
        nullable=False,
        sa_column_kwargs={"comment": "Public guest link token"},
    )
    created_at: datetime = Field(  # type: ignore[call-overload]
        default_factory=lambda: datetime.now(UTC),
        nullable=False,
        sa_type=DateTime(timezone=True),
    )

    @classmethod
    def from_create(cls, account_id: uuid_pkg.UUID, data: EventCreate | dict[str, Any]) -> "Event":
        values = data.model_dump() if isinstance(data, EventCreate) else dict(data)
        return cls(account_id=account_id, **values)

import uuid
from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID as PyUUID

from sqlmodel import SQLModel, Field, Relationship
from sqlalchemy import DateTime, Index, CheckConstraint
from sqlalchemy.types import TypeDecorator
from pydantic import field_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AwareDateTime(TypeDecorator):
    """Timezone-aware timestamp that is stored as UTC on every backend.

    SQLite drops tzinfo on the way back; PostgreSQL returns the session zone.
    Both come back as aware UTC datetimes here so civil-date projection is
    stable regardless of driver.
    """
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        if value.tzinfo is None:
            raise ValueError("Naive datetime cannot be stored as an instant")
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class AuditModel(SQLModel):
    """Common audit and soft-delete columns"""
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_type=AwareDateTime,
        nullable=False,
    )
    updated_at: datetime = Field(
        default_factory=utcnow,
        sa_type=AwareDateTime,
        nullable=False,
        sa_column_kwargs={"onupdate": utcnow},
    )
    is_deleted: bool = Field(default=False, nullable=False)
    deleted_at: Optional[datetime] = Field(default=None, sa_type=AwareDateTime, nullable=True)

    def soft_delete(self, when: Optional[datetime] = None) -> None:
        self.is_deleted = True
        self.deleted_at = when or utcnow()


# Models
class Journey(AuditModel, table=True):
    __tablename__ = "journeys"

    __table_args__ = (
        Index('idx_journeys_account_id', 'account_id'),
        Index('idx_journeys_window', 'start', 'end'),
        CheckConstraint('length(title) > 0', name='check_journey_title_not_empty'),
    )

    id: PyUUID = Field(default_factory=uuid.uuid4, primary_key=True)
    account_id: PyUUID = Field(
        nullable=False,
        description="Owning account id as issued by the identity service"
    )
    title: str = Field(max_length=200, description="Journey title")
    start: datetime = Field(
        sa_type=AwareDateTime,
        nullable=False,
        description="Start instant of the journey window"
    )
    end: Optional[datetime] = Field(
        default=None,
        sa_type=AwareDateTime,
        nullable=True,
        description="End instant of the journey window"
    )
    is_shared: bool = Field(default=False)
    is_completed: bool = Field(default=False)
    location: str = Field(default="", max_length=255, description="Free-text location label")

    # Relationships
    days: List["JourneyDay"] = Relationship(back_populates="journey")

    @field_validator('title')
    @classmethod
    def validate_title(cls, v: str) -> str:
        if not v or len(v.strip()) == 0:
            raise ValueError('Journey title cannot be empty')
        return v.strip()


class JourneyDay(AuditModel, table=True):
    __tablename__ = "journey_days"

    __table_args__ = (
        Index('idx_journey_days_journey_date', 'journey_id', 'date'),
        CheckConstraint('day_number >= 1', name='check_day_number_positive'),
    )

    id: PyUUID = Field(default_factory=uuid.uuid4, primary_key=True)
    journey_id: PyUUID = Field(foreign_key="journeys.id", nullable=False)
    date: datetime = Field(
        sa_type=AwareDateTime,
        nullable=False,
        description="Civil midnight of this day in the configured timezone"
    )
    day_number: int = Field(description="1-based position in date order")

    # Relationships
    journey: Optional[Journey] = Relationship(back_populates="days")
    activities: List["JourneyActivity"] = Relationship(back_populates="day")


class JourneyActivity(AuditModel, table=True):
    __tablename__ = "journey_activities"

    __table_args__ = (
        Index('idx_journey_activities_day', 'journey_day_id'),
        Index('idx_journey_activities_poi', 'selected_poi_id'),
    )

    id: PyUUID = Field(default_factory=uuid.uuid4, primary_key=True)
    journey_day_id: PyUUID = Field(foreign_key="journey_days.id", nullable=False)
    time: datetime = Field(sa_type=AwareDateTime, nullable=False, description="Start instant")
    end_time: Optional[datetime] = Field(default=None, sa_type=AwareDateTime, nullable=True)
    activity_type: str = Field(default="poi", max_length=50)
    selected_poi_id: PyUUID = Field(nullable=False, description="Selected point of interest")
    notes: str = Field(default="", max_length=1000)

    # Relationships
    day: Optional[JourneyDay] = Relationship(back_populates="activities")

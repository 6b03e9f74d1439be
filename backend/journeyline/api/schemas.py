from typing import Any, Generic, List, Optional, TypeVar
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from uuid import UUID
from datetime import datetime

T = TypeVar("T")

# ===== PLAN SKELETON (AI planner output, untrusted) =====

class PlanActivityBlock(BaseModel):
    main_poi_id: str = Field(default="", description="POI identifier; blank or malformed blocks are skipped")
    start_time: Optional[str] = Field(default=None, description="Clock time 'HH:MM'")
    end_time: Optional[str] = Field(default=None, description="Clock time 'HH:MM'")

    @field_validator('main_poi_id', mode='before')
    @classmethod
    def coerce_poi_id(cls, v: Any) -> str:
        if v is None:
            return ""
        return str(v).strip()

    @field_validator('start_time', 'end_time', mode='before')
    @classmethod
    def coerce_clock(cls, v: Any) -> Optional[str]:
        if v is None:
            return None
        return str(v).strip() or None

class PlanDayBlock(BaseModel):
    day: Optional[int] = Field(default=None, description="Planner's day label; position in the list is authoritative")
    activities: List[PlanActivityBlock] = Field(default_factory=list)

    @field_validator('activities', mode='before')
    @classmethod
    def coerce_activities(cls, v: Any) -> Any:
        return v or []

class PlanSkeleton(BaseModel):
    destination: str = Field(default="", max_length=255)
    days: List[PlanDayBlock] = Field(default_factory=list)

class JourneyCreateInput(BaseModel):
    account_id: UUID
    title: str = Field(..., max_length=200)
    start: datetime
    end: Optional[datetime] = None
    is_shared: bool = False
    is_completed: bool = False

    @field_validator('title')
    @classmethod
    def validate_title(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Journey title cannot be empty")
        return v.strip()

# ===== REQUESTS =====

class MaterializePlanRequest(BaseModel):
    journey_id: Optional[UUID] = None
    plan: PlanSkeleton
    title: Optional[str] = Field(default=None, max_length=200)
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    is_shared: bool = False
    is_completed: bool = False

    @model_validator(mode='after')
    def require_creation_fields(self):
        if self.journey_id is None and (not self.title or self.start is None):
            raise ValueError("title and start are required when journey_id is omitted")
        return self

class AddPoiToJourneyRequest(BaseModel):
    journey_id: UUID
    poi_id: UUID
    start_time: datetime
    end_time: Optional[datetime] = None

class RemovePoiFromJourneyRequest(BaseModel):
    journey_id: UUID
    poi_id: UUID

class UpdatePoiInActivityRequest(BaseModel):
    activity_id: UUID
    current_poi_id: str = Field(..., description="New POI to select for the activity")
    start_time: datetime
    end_time: Optional[datetime] = None

class AddDayToJourneyRequest(BaseModel):
    journey_id: UUID

class UpdateJourneyWindowRequest(BaseModel):
    journey_id: UUID
    start: datetime
    end: datetime

# ===== RESPONSES =====

class WindowRescaleResult(BaseModel):
    journey_id: UUID
    days_added: int
    days_removed: int

class JourneySummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    title: str
    start: datetime
    end: Optional[datetime] = None
    location: str = ""
    is_shared: bool = False
    is_completed: bool = False

class JourneyActivityDetail(BaseModel):
    id: UUID
    time: datetime
    end_time: Optional[datetime] = None
    activity_type: str
    selected_poi_id: UUID
    notes: str = ""

class JourneyDayDetail(BaseModel):
    id: UUID
    day_number: int
    date: datetime
    activities: List[JourneyActivityDetail] = Field(default_factory=list)

class JourneyDetail(BaseModel):
    id: UUID
    title: str
    start: datetime
    end: Optional[datetime] = None
    location: str = ""
    duration_days: int = 0
    is_shared: bool = False
    is_completed: bool = False
    total_days: int = 0
    total_activities: int = 0
    days: List[JourneyDayDetail] = Field(default_factory=list)

class APIResponse(BaseModel, Generic[T]):
    status: str = "success"
    code: int = 200
    message: Optional[str] = None
    request_id: Optional[str] = None
    data: Optional[T] = None

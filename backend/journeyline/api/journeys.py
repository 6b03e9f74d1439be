from uuid import UUID
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Request, status
import structlog
from slowapi import Limiter
from slowapi.util import get_remote_address

from journeyline.api.schemas import (
    APIResponse,
    AddDayToJourneyRequest,
    AddPoiToJourneyRequest,
    JourneyCreateInput,
    JourneyDetail,
    JourneySummary,
    MaterializePlanRequest,
    RemovePoiFromJourneyRequest,
    UpdateJourneyWindowRequest,
    UpdatePoiInActivityRequest,
    WindowRescaleResult,
)
from journeyline.core.security import get_current_account_id
from journeyline.core.settings import Settings
from journeyline.core.timeline_service import JourneyTimelineService
from journeyline.db.session import db_manager

# Set up logging
logger = logging.getLogger(__name__)

router = APIRouter(prefix="/journeys", tags=["journeys"])

# Initialize rate limiter
limiter = Limiter(key_func=get_remote_address)
settings = Settings()

ERROR_RESPONSES = {
    400: {"description": "Invalid input"},
    401: {"description": "Missing or invalid bearer token"},
    403: {"description": "Journey belongs to another account"},
    404: {"description": "Journey, day or activity not found"},
    409: {"description": "Write rejected by a storage constraint"},
    429: {"description": "Rate limit exceeded"},
    503: {"description": "Storage unavailable, safe to retry"},
}

def get_timeline_service() -> JourneyTimelineService:
    return JourneyTimelineService(db_manager)

def _envelope(message: str, data=None) -> dict:
    request_id = structlog.contextvars.get_contextvars().get("request_id")
    return {
        "status": "success",
        "code": status.HTTP_200_OK,
        "message": message,
        "request_id": request_id,
        "data": data,
    }

@router.get("/", response_model=APIResponse[List[JourneySummary]], responses=ERROR_RESPONSES)
@limiter.limit(settings.rate_limit(settings.RATE_LIMIT_READ))
async def list_journeys(
    request: Request,
    page: int = 1,
    page_size: int = 20,
    account_id: UUID = Depends(get_current_account_id),
    service: JourneyTimelineService = Depends(get_timeline_service),
):
    journeys = await service.list_journeys(account_id, page=page, page_size=page_size)
    return _envelope("Journeys retrieved", journeys)

@router.get("/{journey_id}", response_model=APIResponse[JourneyDetail], responses=ERROR_RESPONSES)
@limiter.limit(settings.rate_limit(settings.RATE_LIMIT_READ))
async def get_journey_detail(
    request: Request,
    journey_id: UUID,
    account_id: UUID = Depends(get_current_account_id),
    service: JourneyTimelineService = Depends(get_timeline_service),
):
    detail = await service.get_journey_detail(journey_id, account_id=account_id)
    return _envelope("Journey retrieved", detail)

@router.post("/materialize",
    response_model=APIResponse[dict],
    responses=ERROR_RESPONSES,
    summary="Replace a journey's timeline with a generated plan",
    description="Wipes the journey's days and activities and rebuilds them from the plan skeleton; "
                "creates the journey when no journey_id is given"
)
@limiter.limit(settings.rate_limit(settings.RATE_LIMIT_MATERIALIZE))
async def materialize_plan(
    request: Request,
    payload: MaterializePlanRequest,
    account_id: UUID = Depends(get_current_account_id),
    service: JourneyTimelineService = Depends(get_timeline_service),
):
    create_input: Optional[JourneyCreateInput] = None
    if payload.title and payload.start is not None:
        create_input = JourneyCreateInput(
            account_id=account_id,
            title=payload.title,
            start=payload.start,
            end=payload.end,
            is_shared=payload.is_shared,
            is_completed=payload.is_completed,
        )
    journey_id = await service.materialize_plan(
        payload.journey_id,
        payload.plan,
        create_input=create_input,
        account_id=account_id,
    )
    return _envelope("Plan materialized", {"journey_id": str(journey_id)})

@router.post("/add-poi-to-journey", response_model=APIResponse[dict], responses=ERROR_RESPONSES)
@limiter.limit(settings.rate_limit(settings.RATE_LIMIT_WRITE))
async def add_poi_to_journey(
    request: Request,
    payload: AddPoiToJourneyRequest,
    account_id: UUID = Depends(get_current_account_id),
    service: JourneyTimelineService = Depends(get_timeline_service),
):
    activity_id = await service.add_activity(
        payload.journey_id,
        payload.poi_id,
        payload.start_time,
        payload.end_time,
        account_id=account_id,
    )
    return _envelope("POI added to journey", {"activity_id": str(activity_id)})

@router.post("/remove-poi-from-journey", response_model=APIResponse[dict], responses=ERROR_RESPONSES)
@limiter.limit(settings.rate_limit(settings.RATE_LIMIT_WRITE))
async def remove_poi_from_journey(
    request: Request,
    payload: RemovePoiFromJourneyRequest,
    account_id: UUID = Depends(get_current_account_id),
    service: JourneyTimelineService = Depends(get_timeline_service),
):
    removed = await service.remove_activity(payload.journey_id, payload.poi_id, account_id=account_id)
    return _envelope("POI removed from journey", {"activities_removed": removed})

@router.post("/update-poi-in-activity", response_model=APIResponse[dict], responses=ERROR_RESPONSES)
@limiter.limit(settings.rate_limit(settings.RATE_LIMIT_WRITE))
async def update_poi_in_activity(
    request: Request,
    payload: UpdatePoiInActivityRequest,
    account_id: UUID = Depends(get_current_account_id),
    service: JourneyTimelineService = Depends(get_timeline_service),
):
    await service.update_activity_selection(
        payload.activity_id,
        payload.current_poi_id,
        payload.start_time,
        payload.end_time,
        account_id=account_id,
    )
    return _envelope("Activity updated", {"activity_id": str(payload.activity_id)})

@router.post("/add-day-to-journey", response_model=APIResponse[dict], responses=ERROR_RESPONSES)
@limiter.limit(settings.rate_limit(settings.RATE_LIMIT_WRITE))
async def add_day_to_journey(
    request: Request,
    payload: AddDayToJourneyRequest,
    account_id: UUID = Depends(get_current_account_id),
    service: JourneyTimelineService = Depends(get_timeline_service),
):
    day_id = await service.add_day(payload.journey_id, account_id=account_id)
    return _envelope("Day added to journey", {"day_id": str(day_id)})

@router.post("/update-journey-window", response_model=APIResponse[WindowRescaleResult], responses=ERROR_RESPONSES)
@limiter.limit(settings.rate_limit(settings.RATE_LIMIT_WRITE))
async def update_journey_window(
    request: Request,
    payload: UpdateJourneyWindowRequest,
    account_id: UUID = Depends(get_current_account_id),
    service: JourneyTimelineService = Depends(get_timeline_service),
):
    result = await service.rescale_window(
        payload.journey_id,
        payload.start,
        payload.end,
        account_id=account_id,
    )
    logger.info(f"Journey {payload.journey_id} window updated by account {account_id}")
    return _envelope("Journey window updated", result)

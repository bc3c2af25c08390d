"""
Daily Summary Router

Read the stored per-day summary, or (re)generate it for one date or a range.
"""
import datetime as dt
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field

from core.auth import get_current_user_id
from core.database import StorageClient, get_storage
from core.exceptions import BadRequestError
from routers.whoop import parse_date_param
from services import daily_summary

router = APIRouter(prefix="/v1/daily-summary", tags=["daily-summary"])


class SummarySyncRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    date: Optional[dt.date] = None
    start_date: Optional[dt.date] = Field(default=None, alias="startDate")
    end_date: Optional[dt.date] = Field(default=None, alias="endDate")


@router.get("")
def get_daily_summary(
    date: Optional[str] = Query(None, description="YYYY-MM-DD"),
    user_id: UUID = Depends(get_current_user_id),
    storage: StorageClient = Depends(get_storage),
):
    day = parse_date_param(date)
    return {"summary": daily_summary.get_daily_summary(storage, day, user_id)}


@router.post("")
def sync_daily_summary(
    request: SummarySyncRequest,
    user_id: UUID = Depends(get_current_user_id),
    storage: StorageClient = Depends(get_storage),
):
    """Regenerate the summary for `date`, or for every day in start_date..end_date."""
    if request.date:
        data = daily_summary.sync_daily_summary(storage, request.date, user_id)
        return {"success": True, "summary": data}

    if request.start_date and request.end_date:
        try:
            summaries = daily_summary.sync_daily_summaries(
                storage, request.start_date, request.end_date, user_id
            )
        except ValueError as e:
            raise BadRequestError(str(e))
        return {"success": True, "count": len(summaries), "summaries": summaries}

    raise BadRequestError("Date or date range required")

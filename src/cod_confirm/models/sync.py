"""Pydantic models for the historical order sync."""

from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class SyncRequest(BaseModel):
    """Date range requested from the dashboard (inclusive)."""

    model_config = ConfigDict(populate_by_name=True)

    start_date: Optional[date] = Field(None, alias="startDate")
    end_date: Optional[date] = Field(None, alias="endDate")


class SyncSummary(BaseModel):
    total: int = 0
    new: int = 0
    updated: int = 0
    errors: int = 0

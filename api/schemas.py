from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

from incidents.filters import SEVERITY_CEILING, SEVERITY_FLOOR


class IncidentFiltersModel(BaseModel):
    sector: List[str] = Field(default_factory=list)
    province: List[str] = Field(default_factory=list)
    year: List[int] = Field(default_factory=list)
    category: List[str] = Field(default_factory=list)
    status: List[str] = Field(default_factory=list)
    severity_min: int = SEVERITY_FLOOR
    severity_max: int = SEVERITY_CEILING
    search: str = ""


class MetaOptionsResponse(BaseModel):
    sector: List[str]
    province: List[str]
    year: List[int]
    category: List[str]
    status: List[str]


class SummaryResponse(BaseModel):
    raw_row_count: int
    visible_row_count: int
    applied_filter_count: int
    last_updated_date: Optional[str] = None
    error: Optional[str] = None

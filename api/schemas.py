from __future__ import annotations

from datetime import date
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class DashboardFiltersModel(BaseModel):
    search: str = ""
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    districts: List[str] = Field(default_factory=list)
    crops: List[str] = Field(default_factory=list)
    products: List[str] = Field(default_factory=list)
    retailers: List[str] = Field(default_factory=list)
    top_n: int = 10
    crop_top_n: int = 10


class MetaOptionsResponse(BaseModel):
    districts: List[str]
    crops: List[str]
    products: List[str]
    retailers: List[str]


class ReloadResponse(BaseModel):
    records: int
    awards: int
    total_cashback: float
    files: List[str]
    catalog: Dict[str, float] = Field(default_factory=dict)

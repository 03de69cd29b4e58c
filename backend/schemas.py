from datetime import datetime
from pydantic import BaseModel, Field
from typing import List, Optional

class DataPoint(BaseModel):
    """Schema for a single chart point. A None value renders as a gap."""
    date: datetime
    value: Optional[float] = None

class Series(BaseModel):
    """Schema for an ordered run of chart points, optionally named."""
    name: Optional[str] = None
    points: List[DataPoint] = Field(default_factory=list)

class SearchBody(BaseModel):
    """Schema for the aggregation query sent to the search backend."""
    type: str = "avgTotal"
    startDate: int
    endDate: int
    timeZone: Optional[str] = None
    bucketSize: Optional[str] = None
    daylight: bool = False
    deviceId: Optional[str] = None
    siteId: Optional[str] = None

class WindowState(BaseModel):
    """Schema for the currently displayed window."""
    granularity: str
    start: datetime
    end: datetime
    label: str
    next_disabled: bool
    bucket_size: str
    daylight: bool
    chart_mode: Optional[str] = None

class ChartRequest(BaseModel):
    """Schema for a one-shot chart request."""
    granularity: Optional[str] = None
    start_ms: Optional[int] = None
    chart_mode: Optional[str] = None
    site_id: Optional[str] = None
    device_id: Optional[str] = None
    max_points: Optional[int] = Field(None, gt=0)

class ChartResponse(BaseModel):
    """Schema for renderable chart data."""
    window: WindowState
    series: List[Series]
    night_series: List[Series] = Field(default_factory=list)

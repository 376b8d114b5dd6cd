"""
Dashboard View Models

Defines Pydantic models for the derived values handed to the rendering layer.
Everything here is plain data: no further computation is needed to draw it.
"""

from enum import Enum
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Field


class DashboardStatus(str, Enum):
    """What the rendering layer should show."""

    LOADING = "loading"
    NOT_FOUND = "not_found"
    RUNNING = "running"
    ENDED = "ended"


class HistogramView(BaseModel):
    """Equal-width histogram of one per-task metric."""

    counts: List[int] = Field(default_factory=list, description="Samples per bucket")
    ranges: List[Tuple[float, float]] = Field(
        default_factory=list, description="[low, high) per bucket"
    )
    labels: List[str] = Field(default_factory=list, description="Formatted ranges")


class BarChartView(BaseModel):
    """Per-task values ordered by task number, for skew bar charts."""

    values: List[float] = Field(default_factory=list)
    labels: List[str] = Field(default_factory=list, description="<stage>.<index> per bar")


class TaskRow(BaseModel):
    """One row of a stage's task table."""

    task_id: str
    task_id_suffix: str
    host: Optional[str] = None
    port: Optional[int] = None
    state: str = Field(..., description="Task state, BLOCKED when fully blocked")

    queued: Optional[int] = None
    running: Optional[int] = None
    blocked: Optional[int] = None
    completed: Optional[int] = None

    rows: int = 0
    rows_per_second: float = 0.0
    bytes: int = 0
    bytes_per_second: float = 0.0
    elapsed_ms: float = 0.0
    cpu_time_ms: float = 0.0
    buffered_bytes: int = 0


class StageView(BaseModel):
    """Derived view of one stage."""

    stage_id: str
    stage_number: Optional[int] = None
    state: Optional[str] = None
    task_filter: str = "ALL"
    display_mode: str = Field(..., description="'splits' or 'drivers'")
    show_port_numbers: bool = False
    task_counts: Dict[str, int] = Field(default_factory=dict)
    total_buffered_bytes: int = 0
    tasks: List[TaskRow] = Field(default_factory=list)
    scheduled_time_histogram: Optional[HistogramView] = None
    cpu_time_histogram: Optional[HistogramView] = None
    scheduled_time_bars: BarChartView = Field(default_factory=BarChartView)
    cpu_time_bars: BarChartView = Field(default_factory=BarChartView)


class DashboardView(BaseModel):
    """
    Complete derived dashboard state for one query.

    ``stale`` is set when the most recent poll failed and the view is built
    from the last successfully parsed snapshot.
    """

    query_id: str
    status: DashboardStatus
    stale: bool = False
    error: Optional[str] = Field(None, description="Most recent poll failure, if any")
    query_state: Optional[str] = None
    stage_refresh: bool = True
    rates: Dict[str, List[float]] = Field(default_factory=dict)
    latest_rates: Dict[str, float] = Field(default_factory=dict)
    stages: List[StageView] = Field(default_factory=list)
    failure: Optional[str] = Field(None, description="Formatted failure stack trace")

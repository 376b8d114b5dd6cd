"""
Data models for Query Monitor.

This package contains Pydantic models for:
- Query snapshots as returned by the coordinator
- Derived dashboard views handed to the rendering layer
"""

from query_monitor.models.snapshot import (
    TaskState,
    TaskStatus,
    TaskStats,
    OutputBuffers,
    TaskRecord,
    StageExecutionInfo,
    StageNode,
    FailureInfo,
    QueryStats,
    Snapshot,
)

from query_monitor.models.dashboard import (
    DashboardStatus,
    HistogramView,
    BarChartView,
    TaskRow,
    StageView,
    DashboardView,
)

__all__ = [
    # snapshot
    "TaskState",
    "TaskStatus",
    "TaskStats",
    "OutputBuffers",
    "TaskRecord",
    "StageExecutionInfo",
    "StageNode",
    "FailureInfo",
    "QueryStats",
    "Snapshot",
    # dashboard
    "DashboardStatus",
    "HistogramView",
    "BarChartView",
    "TaskRow",
    "StageView",
    "DashboardView",
]

"""
Dashboard view derivation.

Pure functions turning a poller's DashboardState into the DashboardView
consumed by the rendering layer. Nothing here mutates its input, so a view
can be rebuilt on every render.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Mapping, Optional, Sequence

from query_monitor.config import settings
from query_monitor.core.failure_format import format_stack_trace
from query_monitor.core.histogram import bucketize
from query_monitor.core.poller import DashboardState
from query_monitor.core.stage_tree import StageArena, flatten_stages, get_stage_number
from query_monitor.core.tasks import (
    TaskDisplayMode,
    TaskFilter,
    count_tasks_by_state,
    filter_tasks,
    format_task_state,
    get_task_id_suffix,
    show_port_numbers,
    sort_by_task_number,
    sort_tasks,
    task_display_mode,
    task_elapsed_ms,
    task_host_port,
)
from query_monitor.core.units import compute_rate, duration_or_zero, format_duration
from query_monitor.models.dashboard import (
    BarChartView,
    DashboardStatus,
    DashboardView,
    HistogramView,
    StageView,
    TaskRow,
)
from query_monitor.models.snapshot import StageNode, TaskRecord

logger = logging.getLogger(__name__)


def dashboard_status(state: DashboardState) -> DashboardStatus:
    if not state.initialized:
        return DashboardStatus.LOADING
    if state.snapshot is None:
        return DashboardStatus.NOT_FOUND
    if state.ended:
        return DashboardStatus.ENDED
    return DashboardStatus.RUNNING


def build_histogram_view(samples: Sequence[float], max_buckets: int) -> Optional[HistogramView]:
    if not samples:
        return None
    histogram = bucketize(samples, max_buckets)
    return HistogramView(
        counts=list(histogram.counts),
        ranges=histogram.ranges(),
        labels=histogram.labels(format_duration),
    )


def build_task_row(
    task: TaskRecord,
    mode: TaskDisplayMode,
    include_port: bool,
    now: datetime,
) -> TaskRow:
    stats = task.stats
    host, port = task_host_port(task)
    elapsed_ms = task_elapsed_ms(task, now)

    if mode is TaskDisplayMode.SPLITS:
        queued, running, completed = (
            stats.queued_splits,
            stats.running_splits,
            stats.completed_splits,
        )
    else:
        queued, running, completed = (
            stats.queued_drivers,
            stats.running_drivers,
            stats.completed_drivers,
        )

    return TaskRow(
        task_id=task.task_id,
        task_id_suffix=get_task_id_suffix(task.task_id),
        host=host,
        port=port if include_port else None,
        state=format_task_state(task.task_status.state, stats.fully_blocked),
        queued=queued,
        running=running,
        blocked=stats.blocked_drivers,
        completed=completed,
        rows=stats.raw_input_positions,
        rows_per_second=compute_rate(stats.raw_input_positions, elapsed_ms),
        bytes=stats.raw_input_data_size_in_bytes,
        bytes_per_second=compute_rate(stats.raw_input_data_size_in_bytes, elapsed_ms),
        elapsed_ms=elapsed_ms,
        cpu_time_ms=duration_or_zero(stats.total_cpu_time_in_nanos),
        buffered_bytes=task.output_buffers.total_buffered_bytes if task.output_buffers else 0,
    )


def build_stage_view(
    stage: StageNode,
    task_filter: TaskFilter = TaskFilter.ALL,
    *,
    now: Optional[datetime] = None,
    max_buckets: Optional[int] = None,
) -> StageView:
    now = now or datetime.now(UTC)
    max_buckets = max_buckets or settings.HISTOGRAM_MAX_BUCKETS
    stage_number = get_stage_number(stage.stage_id)
    tasks = list(stage.tasks)

    visible = sort_tasks(filter_tasks(tasks, task_filter))
    mode = task_display_mode(visible)
    include_port = show_port_numbers(visible)

    # Skew charts cover every task regardless of the active filter.
    by_number = sort_by_task_number(tasks)
    scheduled = [duration_or_zero(t.stats.total_scheduled_time_in_nanos) for t in by_number]
    cpu = [duration_or_zero(t.stats.total_cpu_time_in_nanos) for t in by_number]
    bar_labels = [f"{stage_number}.{i}" for i in range(len(by_number))]

    return StageView(
        stage_id=stage.stage_id,
        stage_number=stage_number,
        state=stage.latest_attempt_execution_info.state,
        task_filter=task_filter.value,
        display_mode=mode.value,
        show_port_numbers=include_port,
        task_counts=count_tasks_by_state(tasks),
        total_buffered_bytes=sum(
            t.output_buffers.total_buffered_bytes for t in tasks if t.output_buffers
        ),
        tasks=[build_task_row(t, mode, include_port, now) for t in visible],
        scheduled_time_histogram=build_histogram_view(scheduled, max_buckets),
        cpu_time_histogram=build_histogram_view(cpu, max_buckets),
        scheduled_time_bars=BarChartView(values=scheduled, labels=bar_labels),
        cpu_time_bars=BarChartView(values=cpu, labels=list(bar_labels)),
    )


def build_dashboard_view(
    state: DashboardState,
    task_filter: TaskFilter = TaskFilter.ALL,
    *,
    stage_filters: Optional[Mapping[str, TaskFilter]] = None,
    now: Optional[datetime] = None,
    max_buckets: Optional[int] = None,
) -> DashboardView:
    """
    Derive everything the rendering layer needs from a poller state.

    Args:
        state: Poller state copy.
        task_filter: Filter applied to stages without an explicit entry.
        stage_filters: Per-stage filter overrides keyed by stage id.
        now: Reference time for tasks that only report a creation time.
        max_buckets: Histogram bucket ceiling.
    """
    status = dashboard_status(state)
    view = DashboardView(
        query_id=state.query_id,
        status=status,
        stale=state.last_poll_failed and state.snapshot is not None,
        error=state.last_error,
        stage_refresh=state.stage_refresh,
        rates={name: list(values) for name, values in state.rates.items()},
        latest_rates=dict(state.latest_rates),
    )
    snapshot = state.snapshot
    if snapshot is None:
        return view

    stage_filters = stage_filters or {}
    try:
        stages: Sequence[StageNode] = list(StageArena.from_root(state.stage_root))
    except ValueError as e:
        logger.warning("%s: %s; showing stages without de-duplication", state.query_id, e)
        stages = flatten_stages(state.stage_root)
    view.query_state = snapshot.state
    view.stages = [
        build_stage_view(
            stage,
            stage_filters.get(stage.stage_id, task_filter),
            now=now,
            max_buckets=max_buckets,
        )
        for stage in stages
    ]
    if snapshot.failure_info is not None:
        view.failure = format_stack_trace(snapshot.failure_info)
    return view

"""
API routes for live query dashboards.
"""

from typing import Any, Dict

from fastapi import APIRouter, HTTPException, Query, status

from query_monitor.api.error_handling import http_exception
from query_monitor.core.dashboard import build_dashboard_view
from query_monitor.core.registry import registry
from query_monitor.core.tasks import TaskFilter
from query_monitor.models.dashboard import DashboardView

router = APIRouter()


@router.get("/{query_id}/dashboard", response_model=DashboardView)
async def get_dashboard(
    query_id: str,
    task_filter: TaskFilter = Query(TaskFilter.ALL, description="Task state filter"),
):
    """
    Derived dashboard for a query.

    The first request for a query starts its poller and waits for the first
    poll to finish; later requests return the latest derived state. Once the
    view of a finished query is built its poller is released.
    """
    try:
        poller = await registry.get_or_start(query_id)
        view = build_dashboard_view(poller.dashboard_state(), task_filter)
        if poller.ended:
            await registry.release_ended(query_id)
        return view
    except Exception as e:
        raise http_exception("get query dashboard", e)


@router.put("/{query_id}/stage-refresh", response_model=Dict[str, Any])
async def set_stage_refresh(query_id: str, enabled: bool = Query(...)):
    """Turn live stage tree updates on or off for a query's dashboard."""
    poller = await registry.get(query_id)
    if poller is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"code": "POLLER_NOT_FOUND", "message": f"No dashboard for {query_id}"},
        )
    poller.set_stage_refresh(enabled)
    return {"query_id": query_id, "stage_refresh": enabled}


@router.delete("/{query_id}", response_model=Dict[str, Any])
async def stop_dashboard(query_id: str):
    """Tear down a query's poller."""
    try:
        stopped = await registry.stop(query_id)
    except Exception as e:
        raise http_exception("stop query dashboard", e)
    if not stopped:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"code": "POLLER_NOT_FOUND", "message": f"No dashboard for {query_id}"},
        )
    return {"query_id": query_id, "stopped": True}

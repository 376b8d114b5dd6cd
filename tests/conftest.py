"""
Global pytest configuration and fixtures for Query Monitor tests.

This module provides:
- Payload factories for query snapshots, stages and tasks (coordinator JSON shape)
- A scripted fake fetcher standing in for the coordinator
- A controllable wall clock for rate derivation
- FastAPI test client fixtures
"""

from __future__ import annotations

import asyncio
from collections import deque
from typing import Any, Callable, Generator, Optional

import pytest
from fastapi.testclient import TestClient

QUERY_ID = "20240115_103000_00042_abcde"


# =============================================================================
# Fakes
# =============================================================================


class FakeFetcher:
    """
    Scripted replacement for the coordinator fetch.

    Responses are consumed in order; once exhausted the last response is
    repeated. Exceptions in the script are raised instead of returned.
    Setting ``gate`` holds every fetch until the event is set.
    """

    def __init__(self, *responses: Any):
        self.responses: deque[Any] = deque(responses)
        self.last: Any = None
        self.calls: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.gate: Optional[asyncio.Event] = None

    def queue(self, *responses: Any) -> None:
        self.responses.extend(responses)

    async def __call__(self, path: str) -> Any:
        self.calls.append(path)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.gate is not None:
                await self.gate.wait()
            if self.responses:
                self.last = self.responses.popleft()
            if isinstance(self.last, BaseException):
                raise self.last
            return self.last
        finally:
            self.in_flight -= 1


class FakeClock:
    """Wall clock in milliseconds, advanced by hand."""

    def __init__(self, start_ms: float = 1_700_000_000_000.0):
        self.now_ms = start_ms

    def __call__(self) -> float:
        return self.now_ms

    def advance(self, ms: float) -> None:
        self.now_ms += ms


# =============================================================================
# Payload Factories
# =============================================================================


def _task_payload(
    task_id: str,
    state: str = "RUNNING",
    *,
    host: str = "worker-1",
    port: int = 8080,
    scheduled_ns: int = 0,
    cpu_ns: int = 0,
    elapsed_ns: int = 0,
    **stats: Any,
) -> dict[str, Any]:
    return {
        "taskId": task_id,
        "taskStatus": {"state": state, "self": f"http://{host}:{port}/v1/task/{task_id}"},
        "stats": {
            "elapsedTimeInNanos": elapsed_ns,
            "totalScheduledTimeInNanos": scheduled_ns,
            "totalCpuTimeInNanos": cpu_ns,
            **stats,
        },
    }


def _stage_payload(
    stage_id: str,
    tasks: Optional[list[dict[str, Any]]] = None,
    sub_stages: Optional[list[dict[str, Any]]] = None,
    state: str = "RUNNING",
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "stageId": stage_id,
        "latestAttemptExecutionInfo": {"state": state, "stats": {}, "tasks": tasks or []},
    }
    if sub_stages is not None:
        payload["subStages"] = sub_stages
    return payload


def _snapshot_payload(
    *,
    query_id: str = QUERY_ID,
    state: str = "RUNNING",
    final: bool = False,
    elapsed: Any = "0ns",
    scheduled: Any = "0ns",
    cpu: Any = "0ns",
    rows: int = 0,
    input_size: Any = "0B",
    memory: Any = "0B",
    output_stage: Optional[dict[str, Any]] = None,
    failure_info: Optional[dict[str, Any]] = None,
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "queryId": query_id,
        "state": state,
        "finalQueryInfo": final,
        "queryStats": {
            "elapsedTime": elapsed,
            "totalScheduledTime": scheduled,
            "totalCpuTime": cpu,
            "processedInputPositions": rows,
            "processedInputDataSize": input_size,
            "userMemoryReservation": memory,
        },
    }
    if output_stage is not None:
        payload["outputStage"] = output_stage
    if failure_info is not None:
        payload["failureInfo"] = failure_info
    return payload


@pytest.fixture
def make_task() -> Callable[..., dict[str, Any]]:
    """
    Factory for task payloads.

    Usage:
        make_task(f"{QUERY_ID}.1.0", "FINISHED", completedSplits=4)
    """
    return _task_payload


@pytest.fixture
def make_stage() -> Callable[..., dict[str, Any]]:
    return _stage_payload


@pytest.fixture
def make_snapshot() -> Callable[..., dict[str, Any]]:
    return _snapshot_payload


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def query_id() -> str:
    return QUERY_ID


# =============================================================================
# FastAPI Test Client Fixtures
# =============================================================================


@pytest.fixture
def api_client(
    monkeypatch: pytest.MonkeyPatch, fetcher: FakeFetcher
) -> Generator[TestClient, None, None]:
    """
    Test client whose dashboards poll the fake fetcher.

    Entering the client runs the app lifespan, so pollers are shut down when
    the test ends.
    """
    from query_monitor.core.registry import registry
    from query_monitor.main import app

    monkeypatch.setattr(registry, "_fetcher", fetcher)
    with TestClient(app) as client:
        yield client

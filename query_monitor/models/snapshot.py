"""
Snapshot Models

Pydantic models for the query status payload returned by the coordinator's
``/v1/query/<id>`` endpoint. Field names follow Python conventions; the
camelCase wire names are accepted through aliases.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from query_monitor.core.errors import MalformedSnapshotError

# Durations/sizes arrive either as "1.50s"/"12MB" strings or as raw numbers.
Measure = Union[str, int, float]


class _WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )


class TaskState(str, Enum):
    """Task execution state."""

    PLANNED = "PLANNED"
    RUNNING = "RUNNING"
    FINISHED = "FINISHED"
    CANCELED = "CANCELED"
    ABORTED = "ABORTED"
    FAILED = "FAILED"


class TaskStatus(_WireModel):
    state: TaskState = Field(..., description="Current task state")
    self_uri: Optional[str] = Field(None, alias="self", description="Task URI on its worker")


class TaskStats(_WireModel):
    """Per-task counters. Split and driver counters are mutually optional."""

    create_time: Optional[str] = Field(None, description="Task creation time (ISO-8601)")
    elapsed_time_in_nanos: int = Field(0, description="Wall time since task start")
    total_scheduled_time_in_nanos: int = Field(0, description="Scheduled time")
    total_cpu_time_in_nanos: int = Field(0, description="CPU time")
    fully_blocked: bool = Field(False, description="All drivers blocked")

    queued_splits: Optional[int] = None
    running_splits: Optional[int] = None
    completed_splits: Optional[int] = None

    queued_drivers: Optional[int] = None
    running_drivers: Optional[int] = None
    blocked_drivers: Optional[int] = None
    completed_drivers: Optional[int] = None

    raw_input_positions: int = Field(0, description="Rows read")
    raw_input_data_size_in_bytes: int = Field(0, description="Bytes read")


class OutputBuffers(_WireModel):
    total_buffered_bytes: int = 0


class TaskRecord(_WireModel):
    """One task of a stage, identified as ``<queryId>.<stage>.<task>[.<attempt>]``."""

    task_id: str = Field(..., description="Hierarchical task identifier")
    task_status: TaskStatus
    stats: TaskStats = Field(default_factory=TaskStats)
    output_buffers: Optional[OutputBuffers] = None


class StageExecutionInfo(_WireModel):
    state: Optional[str] = Field(None, description="Stage execution state")
    stats: dict[str, Any] = Field(default_factory=dict, description="Aggregate stage stats")
    tasks: list[TaskRecord] = Field(default_factory=list)


class StageNode(_WireModel):
    """Node of the stage execution tree."""

    stage_id: str = Field(..., description="Stage identifier (<queryId>.<stage>)")
    latest_attempt_execution_info: StageExecutionInfo = Field(
        default_factory=StageExecutionInfo
    )
    sub_stages: Optional[list[StageNode]] = Field(
        None, description="Child stages; absent for leaves"
    )

    @property
    def tasks(self) -> list[TaskRecord]:
        return self.latest_attempt_execution_info.tasks


class FailureInfo(_WireModel):
    """Failure node with optional suppressed failures and cause chain."""

    type: str
    message: Optional[str] = None
    stack: Optional[list[str]] = None
    suppressed: list[FailureInfo] = Field(default_factory=list)
    cause: Optional[FailureInfo] = None


class QueryStats(_WireModel):
    """Cumulative query counters. These only grow while the query runs."""

    elapsed_time: Measure
    total_scheduled_time: Measure
    total_cpu_time: Measure
    processed_input_positions: int
    processed_input_data_size: Measure
    user_memory_reservation: Measure


class Snapshot(_WireModel):
    """One polled state of the query."""

    query_id: str
    state: str
    final_query_info: bool = Field(False, description="Terminal flag; no polling after this")
    query_stats: QueryStats
    output_stage: Optional[StageNode] = None
    failure_info: Optional[FailureInfo] = None

    @classmethod
    def from_payload(cls, payload: Any) -> Snapshot:
        """Validate a decoded JSON payload, raising MalformedSnapshotError on failure."""
        if not isinstance(payload, dict):
            raise MalformedSnapshotError(
                f"Expected a JSON object, got {type(payload).__name__}"
            )
        try:
            return cls.model_validate(payload)
        except ValidationError as e:
            raise MalformedSnapshotError(
                f"Snapshot payload failed validation ({e.error_count()} errors)"
            ) from e

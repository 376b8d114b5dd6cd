"""
Stage tree flattening.

The coordinator returns the execution plan as a nested ``outputStage`` tree.
``flatten_stages`` turns it into a pre-order list; ``StageArena`` indexes the
same nodes by stage id so per-stage lookups are explicit.
"""

from __future__ import annotations

from typing import Iterator, Optional

from query_monitor.models.snapshot import StageNode, TaskRecord


def flatten_stages(root: Optional[StageNode]) -> list[StageNode]:
    """
    Flatten a stage tree in pre-order (node, then each child subtree in order).

    Example:
        A -> [B, C], B -> [D]  flattens to  [A, B, D, C]
    """
    if root is None:
        return []

    flattened: list[StageNode] = []
    stack: list[StageNode] = [root]
    while stack:
        node = stack.pop()
        flattened.append(node)
        # Push children reversed so the first child is visited next.
        stack.extend(reversed(node.sub_stages or ()))
    return flattened


def get_stage_number(stage_id: str) -> Optional[int]:
    """Stage number from ``<queryId>.<stage>``, or None if it is not numeric."""
    _, _, suffix = stage_id.partition(".")
    try:
        return int(suffix)
    except ValueError:
        return None


class StageArena:
    """Stage nodes of one snapshot indexed by stage id, in pre-order."""

    def __init__(self, nodes: list[StageNode]):
        self._nodes: dict[str, StageNode] = {}
        for node in nodes:
            if node.stage_id in self._nodes:
                raise ValueError(f"Duplicate stage id in stage tree: {node.stage_id}")
            self._nodes[node.stage_id] = node

    @classmethod
    def from_root(cls, root: Optional[StageNode]) -> StageArena:
        return cls(flatten_stages(root))

    def get(self, stage_id: str) -> StageNode:
        try:
            return self._nodes[stage_id]
        except KeyError:
            raise KeyError(f"Unknown stage: {stage_id}") from None

    def children(self, stage_id: str) -> list[str]:
        return [child.stage_id for child in self.get(stage_id).sub_stages or ()]

    def tasks(self, stage_id: str) -> list[TaskRecord]:
        return list(self.get(stage_id).tasks)

    def stage_ids(self) -> list[str]:
        return list(self._nodes)

    def __contains__(self, stage_id: object) -> bool:
        return stage_id in self._nodes

    def __iter__(self) -> Iterator[StageNode]:
        return iter(list(self._nodes.values()))

    def __len__(self) -> int:
        return len(self._nodes)

"""
Failure chain formatting.

Renders a query's ``failureInfo`` the way a JVM prints a throwable: the
failure line, its frames, suppressed failures, then the cause chain. Frames a
nested failure shares with its enclosing failure's stack are collapsed into a
single ``... N more`` line.
"""

from __future__ import annotations

from typing import Optional, Sequence

from query_monitor.config import settings
from query_monitor.models.snapshot import FailureInfo


def failure_to_string(info: FailureInfo) -> str:
    if info.message is not None:
        return f"{info.type}: {info.message}"
    return info.type


def count_shared_stack_frames(stack: Sequence[str], parent_stack: Sequence[str]) -> int:
    """Length of the common suffix of two stacks (innermost frames last)."""
    n = 0
    limit = min(len(stack), len(parent_stack))
    while n < limit and stack[-1 - n] == parent_stack[-1 - n]:
        n += 1
    return n


def format_stack_trace(info: FailureInfo, max_depth: Optional[int] = None) -> str:
    """
    Format a failure chain as text.

    Args:
        info: Root failure.
        max_depth: Nesting limit across cause/suppressed links; deeper nodes
            are replaced by a truncation marker. Defaults to
            ``settings.FAILURE_MAX_DEPTH``.
    """
    if max_depth is None:
        max_depth = settings.FAILURE_MAX_DEPTH
    lines: list[str] = []
    _format_failure(info, [], "", "", 0, max_depth, lines)
    return "".join(lines)


def _format_failure(
    info: FailureInfo,
    parent_stack: Sequence[str],
    prefix: str,
    line_prefix: str,
    depth: int,
    max_depth: int,
    lines: list[str],
) -> None:
    if depth > max_depth:
        lines.append(f"{line_prefix}{prefix}... (failure chain truncated at depth {max_depth})\n")
        return

    lines.append(f"{line_prefix}{prefix}{failure_to_string(info)}\n")

    if info.stack is not None:
        shared = count_shared_stack_frames(info.stack, parent_stack)
        for frame in info.stack[: len(info.stack) - shared]:
            lines.append(f"{line_prefix}\tat {frame}\n")
        if shared:
            lines.append(f"{line_prefix}\t... {shared} more\n")

    own_stack = info.stack or []
    for suppressed in info.suppressed:
        _format_failure(
            suppressed, own_stack, "Suppressed: ", line_prefix + "\t", depth + 1, max_depth, lines
        )

    if info.cause is not None:
        _format_failure(
            info.cause, own_stack, "Caused by: ", line_prefix, depth + 1, max_depth, lines
        )

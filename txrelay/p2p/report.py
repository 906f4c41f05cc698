"""Plain-text rendering of broadcast results."""

from __future__ import annotations

import sys
from typing import Iterable, Optional, TextIO, Union

from .relay import BroadcastReport, BroadcastResult


def format_broadcast_report(
    reports: Union[BroadcastResult, Iterable[BroadcastReport]],
) -> str:
    lines = ["=== Broadcast Report ==="]
    for report in reports:
        lines.append(f"{report.peer}: {report.status} ({report.elapsed_ms}ms)")
        if report.reason is not None:
            lines.append(f"  Reason: {report.reason}")
    return "\n".join(lines)


def print_broadcast_report(result: BroadcastResult, stream: Optional[TextIO] = None) -> None:
    stream = stream or sys.stdout
    stream.write("\n" + format_broadcast_report(result) + "\n")
    stream.write(
        f"accepted={result.accepted_count} "
        f"rejected={result.rejected_count} "
        f"failed={result.failed_count}\n"
    )


__all__ = ["format_broadcast_report", "print_broadcast_report"]

"""CSV writing helpers for resampled output."""

import csv
from pathlib import Path
from typing import Any, Iterable, Mapping, Sequence

from ..core.models import ResampledPoint

POINT_HEADERS = ("signal_id", "index", "timestamp", "value")


def write_rows(path: Path, headers: Sequence[str], rows: Iterable[Sequence[Any]]) -> None:
    """
    Write a header row and all data rows to a CSV file.

    Directories are created as needed.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", newline="", encoding="utf-8") as csvfile:
        writer = csv.writer(csvfile)
        writer.writerow(headers)
        writer.writerows(rows)


def write_points(path: Path, points_by_signal: Mapping[str, Sequence[ResampledPoint]]) -> int:
    """Write resampled points, grouped by signal id, to ``path``; returns the row count."""
    rows = [
        (signal_id, point.index, f"{point.timestamp:.6f}", repr(point.value))
        for signal_id in sorted(points_by_signal)
        for point in points_by_signal[signal_id]
    ]
    write_rows(path, POINT_HEADERS, rows)
    return len(rows)

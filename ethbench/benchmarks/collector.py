from __future__ import annotations

import math
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import pandas as pd

SUMMARY_COLUMNS: list[str] = [
    "Query_Name",
    "Job_ID",
    "Duration_ms",
    "Bytes_Processed",
    "Slot_Milliseconds",
]
NUMERIC_COLUMNS: tuple[str, ...] = ("Duration_ms", "Bytes_Processed", "Slot_Milliseconds")


@dataclass(frozen=True)
class ExecutionStats:
    """Statistics the backend reported for one finished job."""

    duration_ms: Optional[int]
    bytes_processed: Optional[int]
    slot_ms: Optional[int]
    start_time_ms: Optional[float]
    end_time_ms: Optional[float]

    @property
    def missing(self) -> list[str]:
        return [
            label
            for label, value in (
                ("duration", self.duration_ms),
                ("bytes processed", self.bytes_processed),
                ("slot milliseconds", self.slot_ms),
            )
            if value is None
        ]

    @classmethod
    def unavailable(cls) -> "ExecutionStats":
        return cls(None, None, None, None, None)


@dataclass(frozen=True)
class SummaryRow:
    query_name: str
    job_id: str
    duration_ms: Optional[int]
    bytes_processed: Optional[int]
    slot_ms: Optional[int]

    @classmethod
    def from_stats(cls, query_name: str, job_id: str, stats: ExecutionStats) -> "SummaryRow":
        return cls(
            query_name=query_name,
            job_id=job_id,
            duration_ms=stats.duration_ms,
            bytes_processed=stats.bytes_processed,
            slot_ms=stats.slot_ms,
        )

    def as_record(self) -> dict[str, Any]:
        return dict(
            zip(
                SUMMARY_COLUMNS,
                (self.query_name, self.job_id, self.duration_ms, self.bytes_processed, self.slot_ms),
            )
        )


def compute_duration_ms(start_time_ms: float, end_time_ms: float) -> int:
    """Floor both endpoints to whole milliseconds before subtracting."""
    return math.floor(end_time_ms) - math.floor(start_time_ms)


def extract_stats(job_resource: dict[str, Any]) -> ExecutionStats:
    """Pull duration, bytes and slot time out of a BigQuery job resource.

    Values the backend did not report (or reported in an unparseable form)
    come back as ``None`` so the caller can still record the run.
    """
    statistics = job_resource.get("statistics") or {}
    query_statistics = statistics.get("query") or {}

    def lookup(key: str) -> Any:
        value = statistics.get(key)
        if value is None:
            value = query_statistics.get(key)
        return value

    start_time_ms = _to_float(lookup("startTime"))
    end_time_ms = _to_float(lookup("endTime"))
    duration_ms = None
    if start_time_ms is not None and end_time_ms is not None:
        duration_ms = compute_duration_ms(start_time_ms, end_time_ms)

    return ExecutionStats(
        duration_ms=duration_ms,
        bytes_processed=_to_int(lookup("totalBytesProcessed")),
        slot_ms=_to_int(lookup("totalSlotMs")),
        start_time_ms=start_time_ms,
        end_time_ms=end_time_ms,
    )


class SummaryWriter:
    """Tab-separated summary artifact, written one row at a time."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._rows: list[SummaryRow] = []

    def start(self) -> None:
        """Recreate the artifact with only the header row."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._rows.clear()
        pd.DataFrame(columns=SUMMARY_COLUMNS).to_csv(self.path, sep="\t", index=False)

    def append(self, row: SummaryRow) -> None:
        frame = pd.DataFrame([row.as_record()], columns=SUMMARY_COLUMNS)
        frame.to_csv(self.path, sep="\t", mode="a", header=False, index=False, na_rep="")
        self._rows.append(row)

    @property
    def rows(self) -> list[SummaryRow]:
        return list(self._rows)

    def build_dataframe(self) -> pd.DataFrame:
        if not self._rows:
            return pd.DataFrame(columns=SUMMARY_COLUMNS)
        df = pd.DataFrame([row.as_record() for row in self._rows], columns=SUMMARY_COLUMNS)
        return df.astype({column: "Int64" for column in NUMERIC_COLUMNS})


def _to_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(result) or math.isinf(result):
        return None
    return result


def _to_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        pass
    number = _to_float(value)
    return None if number is None else int(number)

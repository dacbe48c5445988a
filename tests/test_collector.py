from __future__ import annotations

import pandas as pd
import pytest

from ethbench.benchmarks.collector import (
    SUMMARY_COLUMNS,
    ExecutionStats,
    SummaryRow,
    SummaryWriter,
    compute_duration_ms,
    extract_stats,
)


@pytest.mark.parametrize(
    "start, end, expected",
    [
        (1000, 2500, 1500),
        (1000.7, 2500.2, 1500),
        (1000.2, 2500.9, 1500),
        (1700000000123.9, 1700000000124.0, 1),
    ],
)
def test_compute_duration_floors_each_endpoint(start, end, expected):
    assert compute_duration_ms(start, end) == expected


def test_extract_stats_reads_bq_show_strings():
    stats = extract_stats(
        {
            "statistics": {
                "startTime": "1760000000000",
                "endTime": "1760000003120",
                "totalBytesProcessed": "5170000000",
                "totalSlotMs": "827299",
            }
        }
    )

    assert stats == ExecutionStats(
        duration_ms=3120,
        bytes_processed=5170000000,
        slot_ms=827299,
        start_time_ms=1760000000000.0,
        end_time_ms=1760000003120.0,
    )
    assert stats.missing == []


def test_extract_stats_falls_back_to_query_statistics():
    stats = extract_stats(
        {
            "statistics": {
                "startTime": "1",
                "endTime": "2",
                "query": {"totalBytesProcessed": "7", "totalSlotMs": "3"},
            }
        }
    )

    assert stats.bytes_processed == 7
    assert stats.slot_ms == 3


def test_extract_stats_reports_missing_fields():
    stats = extract_stats({"statistics": {"totalBytesProcessed": "abc"}})

    assert stats.duration_ms is None
    assert stats.missing == ["duration", "bytes processed", "slot milliseconds"]


def test_extract_stats_accepts_empty_resource():
    assert extract_stats({}) == ExecutionStats.unavailable()


def test_writer_start_truncates_existing_file(tmp_path):
    path = tmp_path / "summary.tsv"
    path.write_text("old\nrows\n", encoding="utf-8")

    SummaryWriter(path).start()

    assert path.read_text(encoding="utf-8").splitlines() == ["\t".join(SUMMARY_COLUMNS)]


def test_build_dataframe_uses_nullable_integers(tmp_path):
    writer = SummaryWriter(tmp_path / "summary.tsv")
    writer.start()
    writer.append(SummaryRow("A", "job_1", 10, 100, 1000))
    writer.append(SummaryRow.from_stats("B", "job_2", ExecutionStats.unavailable()))

    df = writer.build_dataframe()

    assert list(df.columns) == SUMMARY_COLUMNS
    assert str(df["Duration_ms"].dtype) == "Int64"
    assert df.loc[0, "Slot_Milliseconds"] == 1000
    assert pd.isna(df.loc[1, "Bytes_Processed"])
    assert [row.query_name for row in writer.rows] == ["A", "B"]


def test_build_dataframe_is_empty_before_any_row(tmp_path):
    writer = SummaryWriter(tmp_path / "summary.tsv")
    assert writer.build_dataframe().empty

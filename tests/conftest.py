"""Shared fixtures: an in-memory query backend and a file-backed run logger."""

from __future__ import annotations

import os

os.environ.setdefault("MPLBACKEND", "Agg")

import itertools
from pathlib import Path
from typing import Any

import pytest

from ethbench.backend import (
    PreflightFailure,
    QueryBackend,
    StatsUnavailable,
    SubmissionResponse,
    SubmitOptions,
    WaitFailure,
    close_logger,
    configure_logger,
)

DEFAULT_STATS = {
    "startTime": "1700000000000",
    "endTime": "1700000002500",
    "totalBytesProcessed": "1890000000",
    "totalSlotMs": "554847",
}


class FakeBackend(QueryBackend):
    """Backend keyed by query text; behaviour per query is configured up front."""

    name = "fake"

    def __init__(
        self,
        stats: dict[str, dict[str, Any]] | None = None,
        submit_failures: tuple[str, ...] = (),
        wait_failures: tuple[str, ...] = (),
        stats_failures: tuple[str, ...] = (),
        preflight_error: str | None = None,
    ) -> None:
        self.stats = stats or {}
        self.submit_failures = set(submit_failures)
        self.wait_failures = set(wait_failures)
        self.stats_failures = set(stats_failures)
        self.preflight_error = preflight_error
        self.submitted: list[str] = []
        self.options: list[SubmitOptions] = []
        self.waited: list[str] = []
        self._jobs: dict[str, str] = {}
        self._ids = itertools.count(start=1)

    def preflight(self) -> None:
        if self.preflight_error:
            raise PreflightFailure(self.preflight_error)

    def submit(self, query: str, options: SubmitOptions) -> SubmissionResponse:
        self.submitted.append(query)
        self.options.append(options)
        if query in self.submit_failures:
            return SubmissionResponse(raw="Error in query string: Syntax error", payload=None)
        job_id = f"bqjob_r{next(self._ids)}"
        self._jobs[job_id] = query
        return SubmissionResponse(raw=job_id, payload={"jobReference": {"jobId": job_id}})

    def wait(self, job_id: str) -> str:
        self.waited.append(job_id)
        if self._jobs[job_id] in self.wait_failures:
            raise WaitFailure(
                f"job {job_id} failed",
                raw="Access Denied: User does not have bigquery.jobs.create permission",
            )
        return f"Job {job_id} DONE"

    def get_stats(self, job_id: str) -> dict[str, Any]:
        query = self._jobs[job_id]
        if query in self.stats_failures:
            raise StatsUnavailable(f"no job resource for {job_id}", raw="Not found: Job")
        statistics = dict(DEFAULT_STATS)
        statistics.update(self.stats.get(query, {}))
        return {"jobReference": {"jobId": job_id}, "statistics": statistics}


@pytest.fixture
def fake_backend_cls():
    return FakeBackend


@pytest.fixture
def run_logger(tmp_path: Path):
    logger = configure_logger(tmp_path / "run.log", console=False)
    yield logger
    close_logger(logger)


@pytest.fixture
def read_log(tmp_path: Path):
    def _read(name: str = "run.log") -> str:
        return (tmp_path / name).read_text(encoding="utf-8")

    return _read

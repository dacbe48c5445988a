from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from ..backend import (
    DEFAULT_LOCATION,
    BenchmarkError,
    QueryBackend,
    StatsUnavailable,
    SubmissionFailure,
    SubmissionResponse,
    SubmitOptions,
    WaitFailure,
)
from .collector import ExecutionStats, SummaryRow, SummaryWriter, extract_stats
from .config import QueryDefinition

SEPARATOR = "=" * 50
RULE = "-" * 50


class QueryState(str, enum.Enum):
    PENDING = "pending"
    SUBMITTED = "submitted"
    COMPLETED = "completed"
    SUBMISSION_FAILED = "submission_failed"
    WAIT_FAILED = "wait_failed"


@dataclass(frozen=True)
class JobSubmission:
    job_id: str
    submitted_at: float


@dataclass
class QueryOutcome:
    definition: QueryDefinition
    state: QueryState = QueryState.PENDING
    submission: Optional[JobSubmission] = None
    stats: Optional[ExecutionStats] = None
    error: Optional[BenchmarkError] = None

    @property
    def job_id(self) -> str | None:
        return self.submission.job_id if self.submission else None


@dataclass
class RunReport:
    outcomes: list[QueryOutcome] = field(default_factory=list)

    @property
    def completed(self) -> list[QueryOutcome]:
        return [o for o in self.outcomes if o.state is QueryState.COMPLETED]

    @property
    def failed(self) -> list[QueryOutcome]:
        return [o for o in self.outcomes if o.state is not QueryState.COMPLETED]


def parse_job_id(response: SubmissionResponse) -> str | None:
    payload: Any = response.payload
    if not isinstance(payload, dict):
        return None
    reference = payload.get("jobReference")
    if not isinstance(reference, dict):
        return None
    job_id = reference.get("jobId")
    if not isinstance(job_id, str) or not job_id.strip() or job_id == "null":
        return None
    return job_id.strip()


class BenchmarkHarness:
    """Runs query definitions one at a time and records a summary row for each completed job."""

    def __init__(
        self,
        backend: QueryBackend,
        writer: SummaryWriter,
        logger: logging.Logger,
        location: str = DEFAULT_LOCATION,
    ) -> None:
        self._backend = backend
        self._writer = writer
        self._logger = logger
        self._options = SubmitOptions(location=location)

    def run(self, definitions: Iterable[QueryDefinition]) -> RunReport:
        report = RunReport()
        for definition in definitions:
            outcome = QueryOutcome(definition=definition)
            report.outcomes.append(outcome)
            self._run_one(outcome)
            self._logger.info("")
        self._logger.info(
            "Completed %d of %d queries; summary written to %s",
            len(report.completed),
            len(report.outcomes),
            self._writer.path,
        )
        return report

    def _run_one(self, outcome: QueryOutcome) -> None:
        definition = outcome.definition
        log = self._logger
        log.info(SEPARATOR)
        log.info("Executing %s", definition.name)
        log.info(SEPARATOR)
        log.info("Query:\n%s", definition.query)
        log.info(RULE)

        try:
            outcome.submission = self._submit(definition)
        except SubmissionFailure as exc:
            outcome.state = QueryState.SUBMISSION_FAILED
            outcome.error = exc
            log.error("  [FAILURE] Failed to submit query: %s.", definition.name)
            log.error("  => SUBMISSION OUTPUT:\n%s", exc.raw or "")
            return

        outcome.state = QueryState.SUBMITTED
        job_id = outcome.submission.job_id
        log.info("  [SUCCESS] Query submitted.")
        log.info("  *** JOB ID FOR %s: %s ***", definition.name, job_id)
        log.info("  Waiting for job to complete...")

        try:
            self._backend.wait(job_id)
        except WaitFailure as exc:
            self._fail_wait(outcome, exc)
            return
        except Exception as exc:
            self._fail_wait(outcome, WaitFailure(f"wait raised {type(exc).__name__}", raw=str(exc)))
            return

        log.info("  Job completed. Fetching statistics...")
        stats = self._fetch_stats(job_id)
        outcome.stats = stats
        outcome.state = QueryState.COMPLETED

        self._writer.append(SummaryRow.from_stats(definition.name, job_id, stats))
        log.info("  --- Execution Statistics ---")
        log.info("  Duration: %s ms", _display(stats.duration_ms))
        log.info("  Bytes Processed: %s bytes", _display(stats.bytes_processed))
        log.info("  Slot Milliseconds: %s", _display(stats.slot_ms))
        log.info("  ----------------------------")

    def _submit(self, definition: QueryDefinition) -> JobSubmission:
        submitted_at = time.time()
        try:
            response = self._backend.submit(definition.query, self._options)
        except Exception as exc:
            raise SubmissionFailure(
                f"submit raised {type(exc).__name__}", raw=str(exc)
            ) from exc
        job_id = parse_job_id(response)
        if job_id is None:
            raise SubmissionFailure(f"no job id returned for {definition.name}", raw=response.raw)
        return JobSubmission(job_id=job_id, submitted_at=submitted_at)

    def _fetch_stats(self, job_id: str) -> ExecutionStats:
        try:
            stats = extract_stats(self._backend.get_stats(job_id))
        except Exception as exc:
            error = exc if isinstance(exc, StatsUnavailable) else StatsUnavailable(str(exc))
            self._logger.warning(
                "  [WARNING] Statistics unavailable for job %s; recording empty values.", job_id
            )
            if error.raw:
                self._logger.warning("  => STATS OUTPUT:\n%s", error.raw)
            return ExecutionStats.unavailable()
        if stats.missing:
            self._logger.warning(
                "  [WARNING] Job %s did not report: %s", job_id, ", ".join(stats.missing)
            )
        return stats

    def _fail_wait(self, outcome: QueryOutcome, error: WaitFailure) -> None:
        outcome.state = QueryState.WAIT_FAILED
        outcome.error = error
        self._logger.error("  [FAILURE] Wait failed for job %s.", outcome.job_id)
        self._logger.error("  => WAIT OUTPUT:\n%s", error.raw or "")


def _display(value: Any) -> str:
    return "n/a" if value is None else str(value)

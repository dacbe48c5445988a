from __future__ import annotations

import abc
import json
import logging
import shutil
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

DEFAULT_LOCATION = "US"
LOG_FORMAT = "%(asctime)s %(levelname)s %(message)s"
ROOT_LOGGER_NAME = "ethbench"


class BenchmarkError(Exception):
    """Base class for harness failures. ``raw`` keeps the backend output."""

    def __init__(self, message: str, raw: str | None = None) -> None:
        super().__init__(message)
        self.raw = raw


class PreflightFailure(BenchmarkError):
    """Raised when the backend tooling is unavailable; aborts the whole run."""


class SubmissionFailure(BenchmarkError):
    """The backend did not accept the job or returned no usable job id."""


class WaitFailure(BenchmarkError):
    """The job was accepted but did not finish successfully."""


class StatsUnavailable(BenchmarkError):
    """The job finished but its statistics could not be retrieved."""


@dataclass(frozen=True)
class SubmitOptions:
    use_cache: bool = False
    sync: bool = False
    use_legacy_sql: bool = False
    format: str = "json"
    location: str = DEFAULT_LOCATION


@dataclass(frozen=True)
class SubmissionResponse:
    raw: str
    payload: Optional[dict[str, Any]] = None


def configure_logger(log_path: Path, console: bool = True, level: int = logging.INFO) -> logging.Logger:
    """Create the run logger; the log file is recreated on every invocation."""
    log_path.parent.mkdir(parents=True, exist_ok=True)
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False

    formatter = logging.Formatter(LOG_FORMAT)
    handler = logging.FileHandler(log_path, mode="w", encoding="utf-8")
    handler.setFormatter(formatter)

    close_logger(logger)
    logger.addHandler(handler)
    if console:
        stream = logging.StreamHandler(sys.stdout)
        stream.setFormatter(formatter)
        logger.addHandler(stream)
    return logger


def close_logger(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        handler.flush()
        handler.close()
        logger.removeHandler(handler)


def parse_json(raw: str) -> Optional[dict[str, Any]]:
    """Decode a JSON object from backend output, or ``None`` when it is not one."""
    try:
        payload = json.loads(raw)
    except (TypeError, ValueError):
        return None
    if not isinstance(payload, dict):
        return None
    return payload


class QueryBackend(abc.ABC):
    """Query-execution capability the harness drives: submit, wait, fetch stats."""

    name = "backend"

    @abc.abstractmethod
    def preflight(self) -> None:
        ...

    @abc.abstractmethod
    def submit(self, query: str, options: SubmitOptions) -> SubmissionResponse:
        ...

    @abc.abstractmethod
    def wait(self, job_id: str) -> str:
        ...

    @abc.abstractmethod
    def get_stats(self, job_id: str) -> dict[str, Any]:
        ...


class BqCliBackend(QueryBackend):
    """Drive BigQuery through the ``bq`` command-line client."""

    name = "bq"

    def __init__(
        self,
        executable: str = "bq",
        location: str = DEFAULT_LOCATION,
        logger: logging.Logger | None = None,
    ) -> None:
        self._executable = executable
        self._location = location
        self._logger = logger or logging.getLogger(f"{ROOT_LOGGER_NAME}.backend.bq")

    def preflight(self) -> None:
        if shutil.which(self._executable) is None:
            raise PreflightFailure(
                f"'{self._executable}' command not found. Please ensure the Google Cloud SDK "
                "is installed and in your PATH."
            )

    def submit(self, query: str, options: SubmitOptions) -> SubmissionResponse:
        args = [self._executable, "query"]
        args.append("--use_cache" if options.use_cache else "--nouse_cache")
        args.append("--sync" if options.sync else "--nosync")
        args.append(f"--use_legacy_sql={'true' if options.use_legacy_sql else 'false'}")
        args.append(f"--format={options.format}")
        args.append(f"--location={options.location}")
        args.append(query)

        result = self._run(args)
        # Exit status is ignored here; a missing job id is the failure signal.
        raw = _combined_output(result)
        return SubmissionResponse(raw=raw, payload=parse_json(result.stdout))

    def wait(self, job_id: str) -> str:
        result = self._run([self._executable, f"--location={self._location}", "wait", job_id])
        raw = _combined_output(result)
        if result.returncode != 0:
            raise WaitFailure(f"bq wait command failed for job {job_id}", raw=raw)
        return raw

    def get_stats(self, job_id: str) -> dict[str, Any]:
        result = self._run(
            [self._executable, f"--location={self._location}", "show", "--format=json", "-j", job_id]
        )
        if result.returncode != 0:
            raise StatsUnavailable(f"bq show failed for job {job_id}", raw=_combined_output(result))
        payload = parse_json(result.stdout)
        if payload is None:
            raise StatsUnavailable(f"bq show returned no job resource for {job_id}", raw=result.stdout)
        return payload

    def _run(self, args: list[str]) -> subprocess.CompletedProcess:
        # The query text itself is logged by the harness before submission.
        shown = args[:-1] + ["<query>"] if args[1:2] == ["query"] else args
        self._logger.info("+ %s", " ".join(shown))
        result = subprocess.run(args, capture_output=True, text=True, check=False)
        self._logger.info("  exit status %d", result.returncode)
        output = _combined_output(result)
        if output:
            self._logger.info("  output:\n%s", output)
        return result


class BigQueryClientBackend(QueryBackend):
    """Drive BigQuery through the ``google-cloud-bigquery`` client library."""

    name = "client"

    def __init__(
        self,
        project: str | None = None,
        location: str = DEFAULT_LOCATION,
        client: Any = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._project = project
        self._location = location
        self._client = client
        self._logger = logger or logging.getLogger(f"{ROOT_LOGGER_NAME}.backend.client")

    def preflight(self) -> None:
        if self._client is not None:
            return
        try:
            from google.auth.exceptions import DefaultCredentialsError
            from google.cloud import bigquery
        except ImportError as exc:
            raise PreflightFailure(
                "google-cloud-bigquery is not installed. Install it with: pip install google-cloud-bigquery"
            ) from exc
        try:
            self._client = bigquery.Client(project=self._project, location=self._location)
        except DefaultCredentialsError as exc:
            raise PreflightFailure(f"BigQuery credentials are not configured: {exc}") from exc
        except OSError as exc:
            # Raised when credentials exist but no project can be determined.
            raise PreflightFailure(f"BigQuery client could not be created: {exc}") from exc

    def submit(self, query: str, options: SubmitOptions) -> SubmissionResponse:
        from google.api_core import exceptions as api_exceptions
        from google.cloud import bigquery

        job_config = bigquery.QueryJobConfig(
            use_query_cache=options.use_cache,
            use_legacy_sql=options.use_legacy_sql,
        )
        self._logger.info(
            "+ client.query(<query>, use_query_cache=%s, use_legacy_sql=%s, location=%s)",
            options.use_cache,
            options.use_legacy_sql,
            options.location,
        )
        try:
            job = self._client.query(query, job_config=job_config, location=options.location)
        except api_exceptions.GoogleAPIError as exc:
            self._logger.info("  error:\n%s", exc)
            return SubmissionResponse(raw=str(exc), payload=None)
        payload = job.to_api_repr()
        raw = json.dumps(payload, default=str)
        self._logger.info("  output:\n%s", raw)
        return SubmissionResponse(raw=raw, payload=payload)

    def wait(self, job_id: str) -> str:
        from google.api_core import exceptions as api_exceptions

        self._logger.info("+ client.get_job(%s, location=%s).result(max_results=0)", job_id, self._location)
        try:
            job = self._client.get_job(job_id, location=self._location)
            # Blocks until the job finishes without downloading result rows.
            job.result(max_results=0)
        except api_exceptions.GoogleAPIError as exc:
            self._logger.info("  error:\n%s", exc)
            raise WaitFailure(f"job {job_id} failed", raw=str(exc)) from exc
        output = f"Job {job_id} {job.state}"
        self._logger.info("  output:\n%s", output)
        return output

    def get_stats(self, job_id: str) -> dict[str, Any]:
        from google.api_core import exceptions as api_exceptions

        self._logger.info("+ client.get_job(%s, location=%s)", job_id, self._location)
        try:
            job = self._client.get_job(job_id, location=self._location)
        except api_exceptions.GoogleAPIError as exc:
            self._logger.info("  error:\n%s", exc)
            raise StatsUnavailable(f"could not load job {job_id}", raw=str(exc)) from exc
        payload = job.to_api_repr()
        self._logger.info("  output:\n%s", json.dumps(payload, default=str))
        return payload


def build_backend(kind: str, location: str = DEFAULT_LOCATION, project: str | None = None) -> QueryBackend:
    if kind == BqCliBackend.name:
        return BqCliBackend(location=location)
    if kind == BigQueryClientBackend.name:
        return BigQueryClientBackend(project=project, location=location)
    raise ValueError(f"Unknown backend: {kind}")


def _combined_output(result: subprocess.CompletedProcess) -> str:
    parts = [part.rstrip() for part in (result.stdout, result.stderr) if part and part.strip()]
    return "\n".join(parts)


__all__ = [
    "DEFAULT_LOCATION",
    "BenchmarkError",
    "PreflightFailure",
    "SubmissionFailure",
    "WaitFailure",
    "StatsUnavailable",
    "SubmitOptions",
    "SubmissionResponse",
    "QueryBackend",
    "BqCliBackend",
    "BigQueryClientBackend",
    "build_backend",
    "configure_logger",
    "close_logger",
    "parse_json",
]

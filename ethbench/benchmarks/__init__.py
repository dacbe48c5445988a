"""
Benchmarking harness for BigQuery query-optimization experiments.

This package submits a fixed catalog of named queries to a query backend one
at a time, records per-job duration, bytes processed and slot time in a
tab-separated summary, and renders charts comparing the unoptimized and
optimized form of each query.
"""

from .main import main

__all__ = ["main"]

"""Benchmarks unoptimized and optimized BigQuery queries over the public Ethereum Classic dataset."""

__version__ = "0.1.0"

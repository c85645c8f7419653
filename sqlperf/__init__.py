"""Benchmark SQL queries and correlate them with an application's HTTP log."""

__version__ = "0.1.0"

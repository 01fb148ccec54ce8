"""Bounded-concurrency batch runner with live progress aggregation."""

__version__ = "0.1.0"

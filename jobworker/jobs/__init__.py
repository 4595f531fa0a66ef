"""
Background job processing.

This package provides a table-backed job queue worker with:
- Registry-based handlers over a closed set of job types
- Compare-and-swap claiming, safe with several workers on one table
- Fixed retry budget with optional exponential backoff
- Failure isolation: per-job errors never stop the poll loop
"""

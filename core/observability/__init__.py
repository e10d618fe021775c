"""
Observability module for Opsboard.

Structured logging only: JSON in production, colored text locally, with
the active organization attached to every record.
"""

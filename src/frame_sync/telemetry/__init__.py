"""Logging setup and timing events."""

from .log import StructuredFormatter, log_timing, setup_logging

__all__ = ["StructuredFormatter", "log_timing", "setup_logging"]

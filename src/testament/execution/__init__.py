"""Test execution: running, reading reports and applying results."""

from testament.execution.correlator import CorrelationSummary, correlate, reset_unmatched
from testament.execution.driver import ExecutionDriver
from testament.execution.report import parse_duration_ms, parse_report, read_report

__all__ = [
    "CorrelationSummary",
    "ExecutionDriver",
    "correlate",
    "parse_duration_ms",
    "parse_report",
    "read_report",
    "reset_unmatched",
]

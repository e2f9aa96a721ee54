"""Reporting layer -- positions and NAV summaries."""

from hedgekeeper.report.summary import SummaryReporter, positions_text, risk_text

__all__ = ["SummaryReporter", "positions_text", "risk_text"]

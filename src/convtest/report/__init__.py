"""HTML report generation."""

from convtest.report.generator import ReportGenerator

__all__ = ["ReportGenerator"]

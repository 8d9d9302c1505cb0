"""secure-update reporting modules."""

from .report import ReportWriter, read_report, write_report
from .sarif import convert_to_sarif, export_sarif_report

__all__ = [
    "ReportWriter",
    "read_report",
    "write_report",
    "convert_to_sarif",
    "export_sarif_report",
]

"""
Reports

    aggregator  - pure pandas report and dashboard aggregations
    sources     - SQL / in-memory order sources
    service     - loads each report's window and aggregates it
    export      - Excel / CSV / PDF rendering

Author: Khalil Bannouri
Version: 1.0.0
"""

from pastificio.services.reports.export import ReportExporter
from pastificio.services.reports.service import ReportKind, ReportService
from pastificio.services.reports.sources import (
    BaseOrderSource,
    InMemoryOrderSource,
    SqlOrderSource,
)

__all__ = [
    "ReportExporter",
    "ReportKind",
    "ReportService",
    "BaseOrderSource",
    "InMemoryOrderSource",
    "SqlOrderSource",
]

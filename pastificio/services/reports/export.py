"""
Report Export

Renders report results to downloadable files:
- Excel (pandas + openpyxl), one sheet per table
- CSV (pandas), tables separated by a title line
- PDF (reportlab), paginated tables

The renderer accepts exactly what the report service returns, so the JSON
endpoint and the download endpoint always show the same numbers.

Author: Khalil Bannouri
Version: 1.0.0
"""

import io
import logging
from datetime import datetime
from typing import Any, Optional

import pandas as pd
from openpyxl.utils import get_column_letter
from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas

from pastificio.core.exceptions import ReportValidationError

logger = logging.getLogger(__name__)


class ReportExporter:
    """Turns report results into Excel, CSV or PDF bytes."""

    MEDIA_TYPES = {
        "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        "csv": "text/csv",
        "pdf": "application/pdf",
    }

    COLUMN_WIDTH = 20

    @classmethod
    def tables(cls, kind: str, result: Any) -> dict[str, pd.DataFrame]:
        """Flatten a report result into named tables."""
        if isinstance(result, list):
            return {kind: pd.DataFrame(result)}

        if isinstance(result, dict) and "daily" in result and "summary" in result:
            summary = result["summary"]
            trend = summary.get("trend", {})
            return {
                "daily": pd.DataFrame(result["daily"]),
                "summary": pd.DataFrame([{
                    "total_orders": summary.get("total_orders"),
                    "total_revenue": summary.get("total_revenue"),
                    "trend_orders": trend.get("orders"),
                    "trend_revenue": trend.get("revenue"),
                }]),
            }

        if isinstance(result, dict):
            return {kind: pd.DataFrame([result])}

        raise ReportValidationError(f"Cannot export report result of type {type(result).__name__}")

    @classmethod
    def filename(cls, kind: str, fmt: str, when: Optional[datetime] = None) -> str:
        when = when or datetime.now()
        return f"report_{kind}_{when.strftime('%Y-%m-%d')}.{fmt}"

    @classmethod
    def render(cls, kind: str, result: Any, fmt: str, title: Optional[str] = None) -> bytes:
        """
        Render a report result.

        Args:
            kind: Report kind (used for sheet names and titles)
            result: What the report service returned
            fmt: "xlsx", "csv" or "pdf"
            title: Heading printed on PDF exports

        Raises:
            ReportValidationError: unknown format or result shape
        """
        if fmt not in cls.MEDIA_TYPES:
            raise ReportValidationError(
                f"Unsupported export format: {fmt}. Options: {sorted(cls.MEDIA_TYPES)}"
            )

        tables = cls.tables(kind, result)
        if fmt == "xlsx":
            data = cls._to_excel(tables)
        elif fmt == "csv":
            data = cls._to_csv(tables)
        else:
            data = cls._to_pdf(tables, title or f"Report: {kind}")

        logger.info(f"Exported {kind} report as {fmt} ({len(data)} bytes)")
        return data

    # =========================================================================
    # RENDERERS
    # =========================================================================

    @classmethod
    def _to_excel(cls, tables: dict[str, pd.DataFrame]) -> bytes:
        buffer = io.BytesIO()
        with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
            for name, df in tables.items():
                sheet = name[:31]
                df.to_excel(writer, sheet_name=sheet, index=False)
                worksheet = writer.sheets[sheet]
                for idx in range(1, len(df.columns) + 1):
                    worksheet.column_dimensions[get_column_letter(idx)].width = cls.COLUMN_WIDTH
        return buffer.getvalue()

    @classmethod
    def _to_csv(cls, tables: dict[str, pd.DataFrame]) -> bytes:
        if len(tables) == 1:
            (df,) = tables.values()
            return df.to_csv(index=False).encode("utf-8")

        parts = []
        for name, df in tables.items():
            parts.append(f"# {name}\n")
            parts.append(df.to_csv(index=False))
            parts.append("\n")
        return "".join(parts).encode("utf-8")

    @classmethod
    def _to_pdf(cls, tables: dict[str, pd.DataFrame], title: str) -> bytes:
        buffer = io.BytesIO()
        c = canvas.Canvas(buffer, pagesize=A4)
        width, height = A4
        margin = 40

        c.setFont("Helvetica-Bold", 16)
        c.drawCentredString(width / 2, height - 50, title)
        c.setFont("Helvetica", 9)
        c.drawCentredString(width / 2, height - 65, datetime.now().strftime("%Y-%m-%d %H:%M"))
        y = height - 95

        for name, df in tables.items():
            columns = list(df.columns) or ["(empty)"]
            col_width = (width - 2 * margin) / len(columns)

            c.setFont("Helvetica-Bold", 12)
            c.drawString(margin, y, name)
            y -= 18

            c.setFont("Helvetica-Bold", 9)
            for i, column in enumerate(columns):
                c.drawString(margin + i * col_width, y, str(column)[:24])
            y -= 4
            c.line(margin, y, width - margin, y)
            y -= 12

            c.setFont("Helvetica", 9)
            for row in df.itertuples(index=False):
                for i, value in enumerate(row):
                    if isinstance(value, float):
                        value = f"{value:.2f}"
                    c.drawString(margin + i * col_width, y, str(value)[:24])
                y -= 14
                if y < 60:
                    c.showPage()
                    y = height - 60
                    c.setFont("Helvetica", 9)

            y -= 16

        c.showPage()
        c.save()
        return buffer.getvalue()

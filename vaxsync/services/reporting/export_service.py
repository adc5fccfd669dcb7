"""
Export Service

Writes a month's vaccine report to an Excel workbook with the NIP columns.
"""

import io
import os
from datetime import date, datetime
from typing import List, Optional
import logging

from openpyxl import Workbook
from openpyxl.styles import Font, Alignment, Border, Side, PatternFill
from openpyxl.utils import get_column_letter

from vaxsync.core.config import settings
from vaxsync.services.reporting.monthly_report import MonthlyFigures

logger = logging.getLogger(__name__)

REPORT_COLUMNS = [
    ("Vaccine", "vaccine_name"),
    ("Initial Inventory", "initial_inventory"),
    ("IN", "quantity_supplied"),
    ("OUT", "quantity_used"),
    ("Wastage", "quantity_wastage"),
    ("Ending Inventory", "ending_inventory"),
    ("Monthly Vials Needed", "vials_needed"),
    ("Max Allocation", "max_allocation"),
    ("Stock Level %", "stock_level_percentage"),
    ("Status", "status"),
]

STATUS_FILLS = {
    "STOCKOUT": "F8CBAD",
    "UNDERSTOCK": "FFE699",
    "GOOD": "C6EFCE",
    "OVERSTOCK": "BDD7EE",
}


class ExportService:
    """Service for exporting monthly reports to Excel"""

    def __init__(self, export_dir: Optional[str] = None):
        self.export_dir = export_dir or str(settings.EXPORT_DIR)

    def build_workbook(self, month: date, reports: List[MonthlyFigures]) -> Workbook:
        wb = Workbook()
        ws = wb.active
        ws.title = month.strftime("%Y-%m")

        # Define styles
        header_font = Font(bold=True, color="FFFFFF")
        header_fill = PatternFill(start_color="366092", end_color="366092", fill_type="solid")
        header_alignment = Alignment(horizontal="center", vertical="center", wrap_text=True)
        border = Border(
            left=Side(style='thin'),
            right=Side(style='thin'),
            top=Side(style='thin'),
            bottom=Side(style='thin')
        )

        ws['A1'] = f"Monthly Vaccine Report - {month.strftime('%B %Y')}"
        ws['A1'].font = Font(size=16, bold=True)
        ws['A2'] = f"Generated: {datetime.now().strftime('%d/%m/%Y %H:%M:%S')}"

        row = 4
        for col, (title, _) in enumerate(REPORT_COLUMNS, 1):
            cell = ws.cell(row=row, column=col, value=title)
            cell.font = header_font
            cell.fill = header_fill
            cell.alignment = header_alignment
            cell.border = border

        for report in reports:
            row += 1
            values = report.to_dict()
            for col, (_, key) in enumerate(REPORT_COLUMNS, 1):
                cell = ws.cell(row=row, column=col, value=values[key])
                cell.border = border
                if key == "status" and values[key] in STATUS_FILLS:
                    color = STATUS_FILLS[values[key]]
                    cell.fill = PatternFill(start_color=color, end_color=color, fill_type="solid")

        # Column widths from the longest value in each column
        for col, (title, key) in enumerate(REPORT_COLUMNS, 1):
            longest = max([len(title)] + [len(str(getattr(report, key))) for report in reports])
            ws.column_dimensions[get_column_letter(col)].width = min(longest + 2, 50)

        return wb

    def to_bytes(self, month: date, reports: List[MonthlyFigures]) -> bytes:
        buffer = io.BytesIO()
        self.build_workbook(month, reports).save(buffer)
        return buffer.getvalue()

    def export_to_file(self, month: date, reports: List[MonthlyFigures]) -> str:
        """Save the workbook under the export directory and return its path"""
        os.makedirs(self.export_dir, exist_ok=True)
        filepath = os.path.join(self.export_dir, f"vaccine_monthly_report_{month.strftime('%Y_%m')}.xlsx")
        self.build_workbook(month, reports).save(filepath)
        logger.info(f"Excel report exported to: {filepath}")
        return filepath

"""Exportación de préstamos a CSV o XLSX."""
import csv
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from io import BytesIO, StringIO
from typing import Iterable, Optional

from openpyxl import Workbook

from app.db.models import Loan


class ExportFormat(str, Enum):
    CSV = "csv"
    SPREADSHEET = "xlsx"


MEDIA_TYPES = {
    ExportFormat.CSV: "text/csv",
    ExportFormat.SPREADSHEET: "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}

# (cabecera, ancho de columna en la hoja)
COLUMNS = [
    ("ID", 10),
    ("Book Title", 30),
    ("Borrower Name", 30),
    ("Borrowed Date", 25),
    ("Due Date", 25),
    ("Returned Date", 25),
]


@dataclass
class ExportedReport:
    content: bytes
    media_type: str
    filename: str


def _iso(value: Optional[datetime]) -> str:
    return value.isoformat() if value else ""


def loan_row(loan: Loan) -> list:
    return [
        loan.id,
        loan.book.title if loan.book else "",
        loan.borrower.name if loan.borrower else "",
        _iso(loan.borrowed_date),
        _iso(loan.due_date),
        _iso(loan.returned_date),
    ]


def _to_csv(loans: Iterable[Loan]) -> bytes:
    buffer = StringIO()
    writer = csv.writer(buffer)
    writer.writerow([header for header, _ in COLUMNS])
    for loan in loans:
        writer.writerow(loan_row(loan))
    return buffer.getvalue().encode("utf-8")


def _to_xlsx(loans: Iterable[Loan]) -> bytes:
    workbook = Workbook()
    worksheet = workbook.active
    worksheet.title = "Loans"

    worksheet.append([header for header, _ in COLUMNS])
    for index, (_, width) in enumerate(COLUMNS):
        worksheet.column_dimensions[chr(ord("A") + index)].width = width

    for loan in loans:
        worksheet.append(loan_row(loan))

    buffer = BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def export_loans(loans: Iterable[Loan], export_format: ExportFormat) -> ExportedReport:
    if export_format == ExportFormat.SPREADSHEET:
        content = _to_xlsx(loans)
    else:
        content = _to_csv(loans)

    return ExportedReport(
        content=content,
        media_type=MEDIA_TYPES[export_format],
        filename=f"loans.{export_format.value}",
    )

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status
from fastapi.responses import Response
from sqlalchemy import select
from sqlalchemy.orm import Session, joinedload

from app.api.v1.dependencies import Pagination, get_db, get_lending_engine
from app.api.v1.dependencies_auth import get_current_borrower
from app.db.models import Loan
from app.schemas.loan import LoanCreate, LoanRead
from app.schemas.pagination import Page
from app.services import overdue_scanner
from app.services.lending_engine import LendingEngine
from app.services.report_exporter import ExportFormat, export_loans

import logging

logger = logging.getLogger("api.loans")


router = APIRouter(
    prefix="/api/v1/loans",
    tags=["loans"],
    dependencies=[Depends(get_current_borrower)],
)


def _file_response(loans: List[Loan], export_format: ExportFormat, operation: str) -> Response:
    report = export_loans(loans, export_format)

    logger.info(
        "Loans exported",
        extra={
            "operation": operation,
            "resource": "loan",
            "format": export_format.value,
            "exported_count": len(loans),
            "status_code": 200,
        },
    )

    return Response(
        content=report.content,
        media_type=report.media_type,
        headers={"Content-Disposition": f"attachment; filename={report.filename}"},
    )


# ---- Prestar un libro ----
@router.post("/", response_model=LoanRead, status_code=status.HTTP_201_CREATED)
def borrow_book(
    payload: LoanCreate,
    engine: LendingEngine = Depends(get_lending_engine),
):
    loan = engine.borrow(
        book_id=payload.book_id,
        borrower_id=payload.borrower_id,
        due_date=payload.due_date,
        borrowed_date=payload.borrowed_date,
    )

    logger.info(
        "Loan created",
        extra={
            "operation": "loan_create",
            "resource": "loan",
            "loan_id": loan.id,
            "book_id": loan.book_id,
            "borrower_id": loan.borrower_id,
            "status_code": 201,
        },
    )
    return loan


# ---- Listar préstamos ----
@router.get("/", response_model=Page[LoanRead])
def list_loans(
    pagination: Pagination = Depends(),
    db: Session = Depends(get_db),
):
    return overdue_scanner.find_all(db, pagination.page, pagination.page_size)


# ---- Rutas fijas (importante: deben ir antes de /{loan_id}) ----
@router.get("/overdue", response_model=Page[LoanRead])
def list_overdue_loans(
    pagination: Pagination = Depends(),
    db: Session = Depends(get_db),
):
    return overdue_scanner.find_overdue(db, pagination.page, pagination.page_size)


@router.get("/borrower/{borrower_id}", response_model=Page[LoanRead])
def list_borrower_loans(
    borrower_id: int = Path(gt=0),
    pagination: Pagination = Depends(),
    db: Session = Depends(get_db),
):
    return overdue_scanner.find_by_borrower(db, borrower_id, pagination.page, pagination.page_size)


@router.get("/export")
def export_loans_by_period(
    export_format: ExportFormat = Query(..., alias="format"),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    db: Session = Depends(get_db),
):
    loans = overdue_scanner.find_by_period(db, start_date=start_date, end_date=end_date)
    return _file_response(loans, export_format, "loan_export_period")


@router.get("/export/last-month")
def export_loans_last_month(
    export_format: ExportFormat = Query(..., alias="format"),
    db: Session = Depends(get_db),
):
    loans = overdue_scanner.find_in_last_month(db)
    return _file_response(loans, export_format, "loan_export_last_month")


@router.get("/export/overdue")
def export_overdue_loans(
    export_format: ExportFormat = Query(..., alias="format"),
    db: Session = Depends(get_db),
):
    loans = overdue_scanner.find_all_overdue(db)
    return _file_response(loans, export_format, "loan_export_overdue")


# ---- Detalle de un préstamo ----
@router.get("/{loan_id}", response_model=LoanRead)
def get_loan(
    loan_id: int = Path(gt=0),
    db: Session = Depends(get_db),
):
    loan = db.execute(
        select(Loan)
        .options(joinedload(Loan.book), joinedload(Loan.borrower))
        .where(Loan.id == loan_id)
    ).scalar_one_or_none()
    if not loan:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Loan with ID {loan_id} not found")
    return loan


# ---- Devolver un libro ----
@router.patch("/{loan_id}/return", response_model=LoanRead)
def return_book(
    loan_id: int = Path(gt=0),
    engine: LendingEngine = Depends(get_lending_engine),
):
    loan = engine.return_loan(loan_id)

    logger.info(
        "Loan returned",
        extra={
            "operation": "loan_return",
            "resource": "loan",
            "loan_id": loan.id,
            "book_id": loan.book_id,
            "status_code": 200,
        },
    )
    return loan

"""
Consultas de solo lectura sobre préstamos (vencidos, por periodo, por borrower).

Ninguna toma locks: leen estado ya comprometido con el aislamiento por
defecto de la base, así que nunca bloquean los flujos de borrow / return.
"""
import calendar
from datetime import datetime
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session, joinedload

from app.core.logging import get_logger
from app.db.models import Loan
from app.services.lending_engine import as_utc, utcnow

logger = get_logger("services.overdue")


def one_month_before(moment: datetime) -> datetime:
    """Mismo día del mes anterior (ajustado al último día si no existe)."""
    year, month = (moment.year, moment.month - 1) if moment.month > 1 else (moment.year - 1, 12)
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def _with_relations(stmt):
    return stmt.options(joinedload(Loan.book), joinedload(Loan.borrower))


def _paginate(db: Session, stmt, page: int, page_size: int) -> dict:
    total = db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
    items = (
        db.execute(
            _with_relations(stmt).offset((page - 1) * page_size).limit(page_size)
        )
        .scalars()
        .all()
    )
    return {"items": list(items), "total": total, "page": page, "page_size": page_size}


def _overdue_stmt(now: datetime):
    return (
        select(Loan)
        .where(Loan.due_date < now, Loan.returned_date.is_(None))
        .order_by(Loan.due_date, Loan.id)
    )


def find_all(db: Session, page: int, page_size: int) -> dict:
    logger.info("Fetching loans", extra={"operation": "loan_list", "page": page, "page_size": page_size})
    return _paginate(db, select(Loan).order_by(Loan.id), page, page_size)


def find_overdue(db: Session, page: int, page_size: int) -> dict:
    """Préstamos con due_date pasada y sin devolver, paginados."""
    result = _paginate(db, _overdue_stmt(utcnow()), page, page_size)
    logger.info(
        "Fetched overdue loans",
        extra={"operation": "loan_overdue_list", "total": result["total"], "page": page},
    )
    return result


def find_all_overdue(db: Session) -> list[Loan]:
    return list(db.execute(_with_relations(_overdue_stmt(utcnow()))).scalars().all())


def find_by_period(
    db: Session,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
) -> list[Loan]:
    # Cada límite se aplica de forma independiente
    stmt = select(Loan)
    if start_date is not None:
        stmt = stmt.where(Loan.borrowed_date >= as_utc(start_date))
    if end_date is not None:
        stmt = stmt.where(Loan.borrowed_date <= as_utc(end_date))

    loans = db.execute(_with_relations(stmt.order_by(Loan.borrowed_date, Loan.id))).scalars().all()
    logger.info(
        "Fetched loans by period",
        extra={
            "operation": "loan_period_list",
            "start_date": start_date.isoformat() if start_date else None,
            "end_date": end_date.isoformat() if end_date else None,
            "total": len(loans),
        },
    )
    return list(loans)


def find_in_last_month(db: Session) -> list[Loan]:
    return find_by_period(db, start_date=one_month_before(utcnow()))


def find_by_borrower(db: Session, borrower_id: int, page: int, page_size: int) -> dict:
    stmt = select(Loan).where(Loan.borrower_id == borrower_id).order_by(Loan.id)
    result = _paginate(db, stmt, page, page_size)
    logger.info(
        "Fetched loans by borrower",
        extra={
            "operation": "loan_borrower_list",
            "borrower_id": borrower_id,
            "total": result["total"],
        },
    )
    return result

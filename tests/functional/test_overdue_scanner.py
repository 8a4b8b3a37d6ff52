from datetime import datetime, timezone

from app.services import overdue_scanner
from app.services.overdue_scanner import one_month_before

from conftest import future_date, past_date


def _ids(loans) -> set:
    return {loan.id for loan in loans}


def test_overdue_loan_is_listed_until_returned(db_session, lending_engine, make_book, make_borrower):
    book_id = make_book(available_quantity=1)
    loan = lending_engine.borrow(
        book_id=book_id,
        borrower_id=make_borrower(),
        due_date=datetime(2025, 1, 1, tzinfo=timezone.utc),
    )

    result = overdue_scanner.find_overdue(db_session, page=1, page_size=1000)
    assert loan.id in _ids(result["items"])
    listed = next(item for item in result["items"] if item.id == loan.id)
    assert listed.book.id == book_id

    lending_engine.return_loan(loan.id)
    db_session.rollback()  # nueva lectura con el estado comprometido

    result = overdue_scanner.find_overdue(db_session, page=1, page_size=1000)
    assert loan.id not in _ids(result["items"])


def test_loan_not_yet_due_is_not_overdue(db_session, lending_engine, make_book, make_borrower):
    loan = lending_engine.borrow(book_id=make_book(), borrower_id=make_borrower(), due_date=future_date())

    assert loan.id not in _ids(overdue_scanner.find_all_overdue(db_session))


def test_find_all_overdue_matches_paginated_query(db_session, lending_engine, make_book, make_borrower):
    loan = lending_engine.borrow(book_id=make_book(), borrower_id=make_borrower(), due_date=past_date())

    unpaginated = overdue_scanner.find_all_overdue(db_session)
    paginated = overdue_scanner.find_overdue(db_session, page=1, page_size=1000)

    assert loan.id in _ids(unpaginated)
    assert _ids(unpaginated) == _ids(paginated["items"])
    assert paginated["total"] == len(unpaginated)


def test_find_by_period_applies_each_bound_independently(db_session, lending_engine, make_book, make_borrower):
    borrower_id = make_borrower()
    book_id = make_book(available_quantity=3)

    def borrow_on(day: datetime):
        return lending_engine.borrow(
            book_id=book_id,
            borrower_id=borrower_id,
            borrowed_date=day,
            due_date=future_date(),
        ).id

    early = borrow_on(datetime(2001, 3, 10, tzinfo=timezone.utc))
    middle = borrow_on(datetime(2001, 3, 20, tzinfo=timezone.utc))
    late = borrow_on(datetime(2001, 4, 5, tzinfo=timezone.utc))
    ours = {early, middle, late}

    start = datetime(2001, 3, 15, tzinfo=timezone.utc)
    end = datetime(2001, 3, 31, tzinfo=timezone.utc)

    only_start = _ids(overdue_scanner.find_by_period(db_session, start_date=start)) & ours
    only_end = _ids(overdue_scanner.find_by_period(db_session, end_date=end)) & ours
    both = _ids(overdue_scanner.find_by_period(db_session, start_date=start, end_date=end)) & ours
    unbounded = _ids(overdue_scanner.find_by_period(db_session)) & ours

    assert only_start == {middle, late}
    assert only_end == {early, middle}
    assert both == {middle}
    assert unbounded == ours


def test_find_in_last_month(db_session, lending_engine, make_book, make_borrower):
    borrower_id = make_borrower()
    book_id = make_book(available_quantity=2)

    recent = lending_engine.borrow(book_id=book_id, borrower_id=borrower_id, due_date=future_date()).id
    old = lending_engine.borrow(
        book_id=book_id,
        borrower_id=borrower_id,
        borrowed_date=past_date(days=70),
        due_date=future_date(),
    ).id

    found = _ids(overdue_scanner.find_in_last_month(db_session))

    assert recent in found
    assert old not in found


def test_find_by_borrower_paginates(db_session, lending_engine, make_book, make_borrower):
    borrower_id = make_borrower()
    other_borrower = make_borrower()
    book_id = make_book(available_quantity=4)

    for _ in range(3):
        lending_engine.borrow(book_id=book_id, borrower_id=borrower_id, due_date=future_date())
    lending_engine.borrow(book_id=book_id, borrower_id=other_borrower, due_date=future_date())

    first = overdue_scanner.find_by_borrower(db_session, borrower_id, page=1, page_size=2)
    second = overdue_scanner.find_by_borrower(db_session, borrower_id, page=2, page_size=2)

    assert first["total"] == 3
    assert first["page"] == 1
    assert first["page_size"] == 2
    assert len(first["items"]) == 2
    assert len(second["items"]) == 1
    assert all(loan.borrower_id == borrower_id for loan in first["items"] + second["items"])
    assert _ids(first["items"]).isdisjoint(_ids(second["items"]))


def test_one_month_before_clamps_to_month_end():
    assert one_month_before(datetime(2024, 3, 31, 12, 0)) == datetime(2024, 2, 29, 12, 0)
    assert one_month_before(datetime(2023, 3, 31)) == datetime(2023, 2, 28)
    assert one_month_before(datetime(2024, 1, 15)) == datetime(2023, 12, 15)

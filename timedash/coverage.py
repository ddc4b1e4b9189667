import logging
from datetime import date, timedelta
from typing import Iterable, Mapping, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from .models import Contract, TimeEntry, WorkingDay
from .schemas import CoverageReport, DailyCoverage
from .timeutils import (
    day_bounds,
    day_of,
    day_start_millis,
    daterange,
    entry_duration_hours,
    js_weekday,
)

logger = logging.getLogger(__name__)

FULL_TIME = "full-time"


def percentage(part: float, total: float) -> float:
    return (part / total) * 100 if total else 0.0


def hours_for_weekday(hours_by_day, weekday: int) -> float:
    """Look up contractual hours for a weekday (0 is Sunday).

    ``hours_by_day`` may be a mapping keyed by ``"0".."6"`` (or ints) or a
    seven-item sequence.
    """
    if not hours_by_day:
        return 0.0
    if isinstance(hours_by_day, Mapping):
        value = hours_by_day.get(str(weekday), hours_by_day.get(weekday))
    else:
        try:
            value = hours_by_day[weekday]
        except (IndexError, TypeError):
            value = None
    try:
        return float(value) if value else 0.0
    except (TypeError, ValueError):
        return 0.0


def expected_hours(day: date, is_working_day: bool, contract) -> float:
    if not is_working_day or contract is None:
        return 0.0
    weekday = js_weekday(day)
    if contract.contract_type == FULL_TIME:
        if weekday in (0, 6):
            return 0.0
        return float(contract.contractual_hours or 0)
    return hours_for_weekday(contract.contractual_hours_by_day, weekday)


def compute_coverage(
    start: date,
    end: date,
    calendar: Mapping[date, bool],
    contract,
    entries: Iterable,
) -> CoverageReport:
    """Fold completed entries into per-day coverage against the contract.

    Days missing from ``calendar`` are treated as non-working. Only entries
    lying entirely inside a day count towards that day.
    """
    if contract is None:
        return CoverageReport()

    actual_by_day = {}
    for entry in entries:
        if not entry.completed:
            continue
        duration = entry_duration_hours(entry.start_time, entry.end_time)
        if duration is None:
            logger.warning("Skipping time entry %s with invalid interval", getattr(entry, "uid", None))
            continue
        start_day = day_of(entry.start_time)
        day_start, day_end = day_bounds(start_day)
        if entry.start_time >= day_start and entry.end_time <= day_end:
            actual_by_day[start_day] = actual_by_day.get(start_day, 0.0) + duration

    daily = []
    for day in daterange(start, end):
        expected = expected_hours(day, calendar.get(day, False), contract)
        actual = actual_by_day.get(day, 0.0)
        daily.append(
            DailyCoverage(
                date=day,
                expected_hours=expected,
                actual_hours=actual,
                coverage=percentage(actual, expected),
            )
        )

    total_expected = sum(d.expected_hours for d in daily)
    total_actual = sum(d.actual_hours for d in daily)
    return CoverageReport(
        daily_coverage=daily,
        overall_coverage=percentage(total_actual, total_expected),
        total_expected_hours=total_expected,
        total_actual_hours=total_actual,
    )


def find_contract(db: Session, user_id: str, start: date, end: date) -> Optional[Contract]:
    return db.execute(
        select(Contract)
        .where(
            Contract.user_id == user_id,
            Contract.from_date <= end,
            Contract.to_date >= start,
        )
        .order_by(Contract.from_date.desc(), Contract.id.desc())
        .limit(1)
    ).scalar_one_or_none()


def load_calendar(db: Session, start: date, end: date) -> dict:
    rows = db.execute(
        select(WorkingDay.calendar_day, WorkingDay.is_working_day)
        .where(WorkingDay.calendar_day >= start, WorkingDay.calendar_day <= end)
        .order_by(WorkingDay.calendar_day)
    ).all()
    return {day: bool(is_working) for day, is_working in rows}


def load_coverage(db: Session, start: date, end: date, user_id: str) -> CoverageReport:
    logger.info("Coverage for user %s from %s to %s", user_id, start, end)

    contract = find_contract(db, user_id, start, end)
    if contract is None:
        logger.info("No contract found for user %s", user_id)
        return CoverageReport()
    logger.debug(
        "Contract %s: type=%s hours=%s by_day=%s",
        contract.id,
        contract.contract_type,
        contract.contractual_hours,
        contract.contractual_hours_by_day,
    )

    calendar = load_calendar(db, start, end)
    range_start = day_start_millis(start)
    range_end = day_start_millis(end + timedelta(days=1))
    entries = (
        db.execute(
            select(TimeEntry)
            .where(
                TimeEntry.user_id == user_id,
                TimeEntry.event_type == "activity",
                TimeEntry.start_time >= range_start,
                TimeEntry.end_time < range_end,
            )
            .order_by(TimeEntry.start_time)
        )
        .scalars()
        .all()
    )
    logger.debug("Calendar rows: %d, time entries: %d", len(calendar), len(entries))

    report = compute_coverage(start, end, calendar, contract, entries)
    logger.info(
        "User %s expected %.2fh actual %.2fh coverage %.2f%%",
        user_id,
        report.total_expected_hours,
        report.total_actual_hours,
        report.overall_coverage,
    )
    return report

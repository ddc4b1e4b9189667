import logging
import math
from typing import Optional

from fastapi import HTTPException
from sqlalchemy import Float, cast, func, or_, select
from sqlalchemy.orm import Session

from .database import transaction
from .models import Category, Project, TimeEntry, User
from .schemas import (
    CategoryRef,
    EntryFilters,
    EntryTablePage,
    ProjectRef,
    TimeEntryRow,
    UserRef,
)
from .timeutils import MS_PER_HOUR, parse_iso, to_millis

logger = logging.getLogger(__name__)

DURATION = cast(TimeEntry.end_time - TimeEntry.start_time, Float) / MS_PER_HOUR

SORT_COLUMNS = {
    "start_time": TimeEntry.start_time,
    "end_time": TimeEntry.end_time,
    "user_nominative": User.nominative,
    "project_title": Project.title,
    "category_name": Category.name,
    "completed": TimeEntry.completed,
    "duration_hours": DURATION,
}


def _date_millis(value: str, end_of_day: bool = False) -> int:
    try:
        return to_millis(parse_iso(value, end_of_day=end_of_day))
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid date: {value}")


def _conditions(filters: EntryFilters) -> list:
    conditions = [TimeEntry.event_type == "activity"]
    if filters.start_date:
        conditions.append(TimeEntry.start_time >= _date_millis(filters.start_date))
    if filters.end_date:
        conditions.append(TimeEntry.end_time <= _date_millis(filters.end_date, end_of_day=True))
    if filters.user_id:
        conditions.append(TimeEntry.user_id == filters.user_id)
    if filters.project_id:
        conditions.append(TimeEntry.project_id == filters.project_id)
    if filters.category_id:
        conditions.append(TimeEntry.category_id == filters.category_id)
    if filters.completed is not None:
        conditions.append(TimeEntry.completed == filters.completed)
    if filters.search_text:
        pattern = f"%{filters.search_text.lower()}%"
        conditions.append(
            or_(
                func.lower(User.nominative).like(pattern),
                func.lower(User.email).like(pattern),
                func.lower(Project.title).like(pattern),
                func.lower(Category.name).like(pattern),
            )
        )
    return conditions


def _joined(statement):
    return (
        statement.select_from(TimeEntry)
        .outerjoin(User, TimeEntry.user_id == User.uid)
        .outerjoin(Project, TimeEntry.project_id == Project.uid)
        .outerjoin(Category, TimeEntry.category_id == Category.uid)
    )


def _row(entry: TimeEntry, user: Optional[User], project: Optional[Project], category: Optional[Category]):
    duration = None
    if entry.start_time is not None and entry.end_time is not None:
        duration = round((entry.end_time - entry.start_time) / MS_PER_HOUR, 2)
    return TimeEntryRow(
        uid=entry.uid,
        user_id=entry.user_id,
        start_time=entry.start_time,
        end_time=entry.end_time,
        completed=bool(entry.completed),
        event_type=entry.event_type,
        project_id=entry.project_id,
        category_id=entry.category_id,
        duration_hours=duration,
        project=(
            ProjectRef(uid=project.uid, title=project.title, not_billable=bool(project.not_billable))
            if project is not None
            else None
        ),
        category=(
            CategoryRef(uid=category.uid, name=category.name, color=category.color)
            if category is not None
            else None
        ),
        user=UserRef(
            nominative=user.nominative if user else None,
            email=user.email if user else None,
        ),
    )


def list_time_entries(
    db: Session,
    page: int = 0,
    page_size: int = 50,
    sort_by: str = "start_time",
    sort_order: str = "DESC",
    filters: Optional[EntryFilters] = None,
) -> EntryTablePage:
    filters = filters or EntryFilters()
    conditions = _conditions(filters)

    total_count = db.execute(_joined(select(func.count(TimeEntry.uid))).where(*conditions)).scalar_one()

    column = SORT_COLUMNS.get(sort_by, TimeEntry.start_time)
    order = column.asc() if (sort_order or "").upper() == "ASC" else column.desc()
    rows = db.execute(
        _joined(select(TimeEntry, User, Project, Category))
        .where(*conditions)
        .order_by(order, TimeEntry.uid)
        .limit(page_size)
        .offset(page * page_size)
    ).all()

    return EntryTablePage(
        entries=[_row(*row) for row in rows],
        total_count=total_count,
        total_pages=math.ceil(total_count / page_size),
        current_page=page,
        page_size=page_size,
    )


def delete_time_entry(db: Session, entry_id: str) -> TimeEntryRow:
    entry = db.get(TimeEntry, entry_id)
    if not entry:
        raise HTTPException(status_code=404, detail="Time entry not found")

    deleted = _row(entry, entry.user, entry.project, entry.category)
    with transaction(db):
        db.delete(entry)
    logger.info("Deleted time entry %s", entry_id)
    return deleted

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .analysis import (
    active_users,
    build_analysis,
    entry_out,
    fetch_time_entries_page,
    load_daily_check,
)
from .coverage import load_coverage
from .database import get_db, transaction
from .entries import delete_time_entry, list_time_entries
from .margins import load_project_stats
from .models import WorkingDay
from .schemas import (
    CoverageReport,
    CoverageRequest,
    DateRangeRequest,
    DayCheck,
    EntryTablePage,
    EntryTableRequest,
    ProjectStats,
    TimeEntriesPage,
    TimeEntriesRequest,
    UserOut,
    UserTimeData,
    WorkingDayIn,
    WorkingDayOut,
    WorkingDayUpdate,
)
from .timeutils import parse_iso, to_millis

router = APIRouter(prefix="/api")


def _check_range(start, end) -> None:
    if start > end:
        raise HTTPException(status_code=400, detail="startDate must not be after endDate")


@router.post("/coverage", response_model=CoverageReport)
def coverage(payload: CoverageRequest, db: Session = Depends(get_db)):
    _check_range(payload.start_date, payload.end_date)
    return load_coverage(db, payload.start_date, payload.end_date, payload.user_id)


@router.get("/users/active", response_model=List[UserOut])
def users_active(db: Session = Depends(get_db)):
    return active_users(db)


@router.post("/time-entries", response_model=TimeEntriesPage)
def time_entries(payload: TimeEntriesRequest, db: Session = Depends(get_db)):
    try:
        start_ms = to_millis(parse_iso(payload.start_date))
        end_ms = to_millis(parse_iso(payload.end_date, end_of_day=True))
    except ValueError:
        raise HTTPException(status_code=400, detail="startDate and endDate must be ISO dates")
    _check_range(start_ms, end_ms)

    entries, has_more = fetch_time_entries_page(db, start_ms, end_ms, payload.page, payload.page_size)
    return TimeEntriesPage(entries=[entry_out(e) for e in entries], has_more=has_more)


@router.post("/analysis", response_model=List[UserTimeData])
def analysis(payload: DateRangeRequest, db: Session = Depends(get_db)):
    _check_range(payload.start_date, payload.end_date)
    return build_analysis(db, payload.start_date, payload.end_date)


@router.post("/checks/daily", response_model=List[DayCheck])
def daily_check(payload: DateRangeRequest, db: Session = Depends(get_db)):
    _check_range(payload.start_date, payload.end_date)
    return load_daily_check(db, payload.start_date, payload.end_date)


@router.post("/db/time-entries", response_model=EntryTablePage)
def time_entries_table(payload: EntryTableRequest, db: Session = Depends(get_db)):
    return list_time_entries(
        db,
        page=payload.page,
        page_size=payload.page_size,
        sort_by=payload.sort_by,
        sort_order=payload.sort_order,
        filters=payload.filters,
    )


@router.delete("/db/time-entries/{entry_id}")
def delete_entry(entry_id: str, db: Session = Depends(get_db)):
    deleted = delete_time_entry(db, entry_id)
    return {
        "success": True,
        "message": "Time entry deleted successfully",
        "deletedEntry": deleted.model_dump(),
    }


@router.get("/working-calendar", response_model=List[WorkingDayOut])
def working_days(db: Session = Depends(get_db)):
    return db.execute(select(WorkingDay).order_by(WorkingDay.calendar_day.desc())).scalars().all()


@router.post("/working-calendar", response_model=WorkingDayOut)
def create_working_day(payload: WorkingDayIn, db: Session = Depends(get_db)):
    day = WorkingDay(
        calendar_day=payload.calendar_day,
        is_working_day=payload.is_working_day,
        description=payload.description or None,
    )
    try:
        with transaction(db):
            db.add(day)
    except IntegrityError:
        raise HTTPException(status_code=400, detail="Working day already exists for this date")
    db.refresh(day)
    return day


@router.put("/working-calendar/{day_id}", response_model=WorkingDayOut)
def update_working_day(day_id: int, payload: WorkingDayUpdate, db: Session = Depends(get_db)):
    day = db.get(WorkingDay, day_id)
    if not day:
        raise HTTPException(status_code=404, detail="Working day not found")
    with transaction(db):
        day.is_working_day = payload.is_working_day
        day.description = payload.description or None
    db.refresh(day)
    return day


@router.delete("/working-calendar/{day_id}")
def delete_working_day(day_id: int, db: Session = Depends(get_db)):
    day = db.get(WorkingDay, day_id)
    if not day:
        raise HTTPException(status_code=404, detail="Working day not found")
    with transaction(db):
        db.delete(day)
    return {"message": "Working day deleted successfully"}


@router.get("/projects/stats", response_model=ProjectStats)
def project_stats(
    organization_id: Optional[str] = Query(None, alias="organizationId"),
    top: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
):
    if not organization_id:
        raise HTTPException(status_code=400, detail="Organization ID is required")
    return load_project_stats(db, organization_id, top=top)

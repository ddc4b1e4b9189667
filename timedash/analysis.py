import logging
from collections import defaultdict
from datetime import date
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from . import config
from .coverage import load_coverage, percentage
from .models import TimeEntry, User
from .schemas import (
    Activity,
    CategoryRef,
    CategorySummary,
    CoverageReport,
    DailyEntry,
    DayCheck,
    ProjectRef,
    ProjectSummary,
    TimeEntryOut,
    UserDayHours,
    UserRef,
    UserTimeData,
)
from .timeutils import day_bounds, day_of, day_start_millis, daterange, entry_duration_hours

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY_COLOR = "#808080"
UNCATEGORIZED_COLOR = "#E0E0E0"


def active_users(db: Session) -> List[User]:
    return (
        db.execute(select(User).where(User.status == "active").order_by(User.nominative))
        .scalars()
        .all()
    )


def fetch_time_entries_page(
    db: Session, start_ms: int, end_ms: int, page: int = 0, page_size: int = 1000
) -> Tuple[List[TimeEntry], bool]:
    entries = (
        db.execute(
            select(TimeEntry)
            .options(joinedload(TimeEntry.project), joinedload(TimeEntry.category))
            .where(
                TimeEntry.start_time >= start_ms,
                TimeEntry.end_time <= end_ms,
                TimeEntry.event_type == "activity",
            )
            .order_by(TimeEntry.start_time, TimeEntry.uid)
            .limit(page_size)
            .offset(page * page_size)
        )
        .scalars()
        .all()
    )
    return entries, len(entries) == page_size


def fetch_all_time_entries(
    db: Session, start_ms: int, end_ms: int, page_size: Optional[int] = None
) -> List[TimeEntry]:
    page_size = page_size or config.ANALYSIS_PAGE_SIZE
    collected: List[TimeEntry] = []
    page = 0
    has_more = True
    while has_more:
        entries, has_more = fetch_time_entries_page(db, start_ms, end_ms, page, page_size)
        collected.extend(entries)
        page += 1
    logger.debug("Fetched %d time entries in %d pages", len(collected), page)
    return collected


def entry_out(entry) -> TimeEntryOut:
    project = entry.project
    category = entry.category
    return TimeEntryOut(
        uid=entry.uid,
        user_id=entry.user_id,
        start_time=entry.start_time,
        end_time=entry.end_time,
        completed=bool(entry.completed),
        project_id=entry.project_id,
        category_id=entry.category_id,
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
    )


class HoursBucket:
    def __init__(self):
        self.total = 0.0
        self.confirmed = 0.0
        self.unconfirmed = 0.0
        self.billable = 0.0
        self.unassigned = 0.0
        self.uncategorized = 0.0
        self.projects: Dict[str, dict] = {}
        self.categories: Dict[str, dict] = {}

    def add(self, entry, duration: float) -> None:
        self.total += duration
        if entry.completed:
            self.confirmed += duration
        else:
            self.unconfirmed += duration

        project = entry.project
        if project is not None:
            is_billable = not project.not_billable
            slot = self.projects.setdefault(
                project.uid, {"title": project.title, "hours": 0.0, "is_billable": is_billable}
            )
            slot["hours"] += duration
            if is_billable:
                self.billable += duration
        else:
            self.unassigned += duration

        category = entry.category
        if category is not None:
            slot = self.categories.setdefault(
                category.uid,
                {"name": category.name, "color": category.color or DEFAULT_CATEGORY_COLOR, "hours": 0.0},
            )
            slot["hours"] += duration
        else:
            self.uncategorized += duration

    def project_summaries(self) -> List[ProjectSummary]:
        summaries = [
            ProjectSummary(
                project_id=uid,
                title=slot["title"],
                total_hours=slot["hours"],
                is_billable=slot["is_billable"],
                percentage=percentage(slot["hours"], self.total),
            )
            for uid, slot in self.projects.items()
        ]
        return sorted(summaries, key=lambda s: s.total_hours, reverse=True)

    def category_summaries(self) -> List[CategorySummary]:
        summaries = [
            CategorySummary(
                category_id=uid,
                name=slot["name"],
                color=slot["color"],
                total_hours=slot["hours"],
                percentage=percentage(slot["hours"], self.total),
            )
            for uid, slot in self.categories.items()
        ]
        if self.uncategorized > 0:
            summaries.append(
                CategorySummary(
                    category_id="uncategorized",
                    name="Uncategorized",
                    color=UNCATEGORIZED_COLOR,
                    total_hours=self.uncategorized,
                    percentage=percentage(self.uncategorized, self.total),
                )
            )
        return sorted(summaries, key=lambda s: s.total_hours, reverse=True)


def build_user_report(
    user, entries: Iterable, coverage: Optional[CoverageReport] = None
) -> UserTimeData:
    overall = HoursBucket()
    days: Dict[date, HoursBucket] = {}

    for entry in entries:
        duration = entry_duration_hours(entry.start_time, entry.end_time)
        if duration is None:
            logger.warning(
                "Skipping time entry %s of user %s: invalid start/end (%r, %r)",
                entry.uid,
                user.uid,
                entry.start_time,
                entry.end_time,
            )
            continue
        overall.add(entry, duration)
        days.setdefault(day_of(entry.start_time), HoursBucket()).add(entry, duration)

    daily_entries = [
        DailyEntry(
            date=day_start_millis(day),
            total_hours=bucket.total,
            confirmed_hours=bucket.confirmed,
            unconfirmed_hours=bucket.unconfirmed,
            billable_hours=bucket.billable,
            billable_percentage=percentage(bucket.billable, bucket.total),
            unassigned_percentage=percentage(bucket.unassigned, bucket.total),
            project_summaries=bucket.project_summaries(),
            category_summaries=bucket.category_summaries(),
        )
        for day, bucket in sorted(days.items())
    ]

    return UserTimeData(
        user_id=user.uid,
        nominative=user.nominative,
        email=user.email,
        total_hours=overall.total,
        confirmed_hours=overall.confirmed,
        unconfirmed_hours=overall.unconfirmed,
        billable_percentage=percentage(overall.billable, overall.total),
        unassigned_percentage=percentage(overall.unassigned, overall.total),
        project_summaries=overall.project_summaries(),
        category_summaries=overall.category_summaries(),
        daily_entries=daily_entries,
        coverage_percentage=coverage.overall_coverage if coverage else 0.0,
        coverage_data=coverage,
    )


def build_analysis(db: Session, start: date, end: date) -> List[UserTimeData]:
    users = active_users(db)
    if not users:
        return []

    entries = fetch_all_time_entries(db, day_start_millis(start), day_bounds(end)[1])
    by_user = defaultdict(list)
    for entry in entries:
        by_user[entry.user_id].append(entry)

    reports = []
    for user in users:
        # a failing coverage lookup only blanks that user's coverage
        try:
            coverage = load_coverage(db, start, end, user.uid)
        except (SQLAlchemyError, ValueError):
            logger.exception("Coverage failed for user %s", user.uid)
            db.rollback()
            coverage = None
        reports.append(build_user_report(user, by_user.get(user.uid, []), coverage))

    return sorted(reports, key=lambda r: r.nominative.lower())


def build_daily_check(
    users: Iterable,
    entries: Iterable,
    start: date,
    end: date,
    threshold: Optional[float] = None,
) -> List[DayCheck]:
    threshold = config.UNDER_TIME_HOURS if threshold is None else threshold
    users = list(users)
    known = {user.uid: user for user in users}

    by_day: Dict[date, list] = defaultdict(list)
    for entry in entries:
        if entry.user_id not in known:
            continue
        duration = entry_duration_hours(entry.start_time, entry.end_time)
        if duration is None:
            logger.warning("Skipping time entry %s: invalid start/end", entry.uid)
            continue
        day = day_of(entry.start_time)
        if entry.end_time > day_bounds(day)[1]:
            continue
        by_day[day].append((entry, duration))

    checks = []
    for day in daterange(start, end):
        per_user: Dict[str, UserDayHours] = {}
        for entry, duration in by_day.get(day, []):
            user = known[entry.user_id]
            hours = per_user.get(user.uid)
            if hours is None:
                hours = per_user[user.uid] = UserDayHours(
                    user_id=user.uid, nominative=user.nominative, email=user.email
                )
            if entry.completed:
                hours.confirmed_hours += duration
            else:
                hours.unconfirmed_hours += duration
            hours.activities.append(
                Activity(
                    title=entry.title,
                    start_time=entry.start_time,
                    end_time=entry.end_time,
                    duration=duration,
                    completed=bool(entry.completed),
                )
            )

        missing = [
            UserRef(nominative=user.nominative, email=user.email)
            for user in users
            if user.uid not in per_user
        ]
        under_time = sum(
            1 for hours in per_user.values() if hours.confirmed_hours + hours.unconfirmed_hours < threshold
        )
        checks.append(
            DayCheck(
                date=day,
                under_time_users=under_time,
                no_time_users=len(missing),
                entries=sorted(per_user.values(), key=lambda h: h.nominative.lower()),
                users_with_no_time=missing,
            )
        )
    return checks


def load_daily_check(db: Session, start: date, end: date) -> List[DayCheck]:
    users = active_users(db)
    entries = fetch_all_time_entries(db, day_start_millis(start), day_bounds(end)[1])
    return build_daily_check(users, entries, start, end)

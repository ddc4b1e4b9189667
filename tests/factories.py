from datetime import date, datetime, timezone
from types import SimpleNamespace

from timedash.models import (
    Category,
    Contract,
    Project,
    ProjectArea,
    ProjectCategory,
    ProjectWorkflow,
    TimeEntry,
    User,
    WorkingDay,
)


def ms(year, month, day, hour=0, minute=0):
    moment = datetime(year, month, day, hour, minute, tzinfo=timezone.utc)
    return int(moment.timestamp()) * 1000


def entry(uid, start, hours, completed=True, user_id="u1", project=None, category=None, title=None):
    end = None if start is None else start + int(hours * 3_600_000)
    return SimpleNamespace(
        uid=uid,
        user_id=user_id,
        start_time=start,
        end_time=end,
        completed=completed,
        project=project,
        project_id=project.uid if project is not None else None,
        category=category,
        category_id=category.uid if category is not None else None,
        title=title,
    )


def add_user(db, uid, nominative, email=None, status="active"):
    user = User(uid=uid, nominative=nominative, email=email or f"{uid}@example.com", status=status)
    db.add(user)
    db.commit()
    return user


def add_entry(db, uid, user_id, start, hours, completed=True, project_id=None, category_id=None, event_type="activity"):
    row = TimeEntry(
        uid=uid,
        user_id=user_id,
        start_time=start,
        end_time=start + int(hours * 3_600_000),
        completed=completed,
        event_type=event_type,
        project_id=project_id,
        category_id=category_id,
        title=f"task {uid}",
    )
    db.add(row)
    db.commit()
    return row


def add_working_days(db, start, end, working=True):
    current = start
    while current <= end:
        db.add(WorkingDay(calendar_day=current, is_working_day=working and current.weekday() < 5))
        current = date.fromordinal(current.toordinal() + 1)
    db.commit()


def add_contract(db, user_id, contract_type="full-time", hours=8, by_day=None, hourly_cost=None,
                 from_date=date(2000, 1, 1), to_date=date(2100, 1, 1), organization_id="org"):
    contract = Contract(
        user_id=user_id,
        organization_id=organization_id,
        contract_type=contract_type,
        contractual_hours=hours,
        contractual_hours_by_day=by_day,
        hourly_cost=hourly_cost,
        from_date=from_date,
        to_date=to_date,
    )
    db.add(contract)
    db.commit()
    return contract


def add_project(db, uid, title, organization_id="org", budget=None, marginability=None, not_billable=False,
                category=None, area=None, status=None):
    refs = {}
    for key, model, name in (
        ("category_id", ProjectCategory, category),
        ("area_id", ProjectArea, area),
        ("status_id", ProjectWorkflow, status),
    ):
        if name is None:
            continue
        ref_uid = f"{model.__tablename__}:{name}"
        if db.get(model, ref_uid) is None:
            db.add(model(uid=ref_uid, name=name))
        refs[key] = ref_uid
    project = Project(
        uid=uid,
        organization_id=organization_id,
        title=title,
        budget=budget,
        marginability_percentage=marginability,
        not_billable=not_billable,
        **refs,
    )
    db.add(project)
    db.commit()
    return project


def add_category(db, uid, name, color=None):
    category = Category(uid=uid, name=name, color=color)
    db.add(category)
    db.commit()
    return category

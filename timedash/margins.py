import logging
import time
from datetime import date
from typing import Dict, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from . import config
from .coverage import percentage
from .models import (
    Contract,
    Expense,
    Overhead,
    Project,
    ProjectArea,
    ProjectCategory,
    ProjectWorkflow,
    TimeEntry,
)
from .schemas import GroupStats, HoursSplit, ProjectStats, TopProject
from .timeutils import entry_duration_hours

logger = logging.getLogger(__name__)

UNCATEGORIZED = "Uncategorized"


class ProjectCost:
    def __init__(self):
        self.total_cost = 0.0
        self.hours = HoursSplit()


def _margin(budget: float, consumed: float) -> float:
    return percentage(budget - consumed, budget)


def compute_project_costs(
    project_ids: Iterable[str],
    entries: Iterable,
    contracts: Iterable,
    overheads: Iterable,
    expenses: Iterable = (),
    now_ms: Optional[int] = None,
    default_hourly_cost: Optional[float] = None,
) -> Dict[str, ProjectCost]:
    """Hours and consumed cost per project.

    Cost of an entry is ``hours * hourly_cost * (1 + overhead)``; expenses
    are added on top. Hours split into future, past confirmed and past
    unconfirmed relative to ``now_ms``.
    """
    now_ms = int(time.time() * 1000) if now_ms is None else now_ms
    if default_hourly_cost is None:
        default_hourly_cost = config.DEFAULT_HOURLY_COST

    hourly_costs = {}
    for contract in contracts:
        hourly_costs.setdefault(contract.user_id, contract.hourly_cost)
    overheads = list(overheads)
    overhead = (overheads[0].amount or 0.0) if overheads else 0.0

    costs = {uid: ProjectCost() for uid in project_ids}
    for entry in entries:
        cost = costs.get(entry.project_id)
        if cost is None:
            continue
        duration = entry_duration_hours(entry.start_time, entry.end_time)
        if duration is None:
            logger.warning("Skipping time entry %s: invalid start/end", entry.uid)
            continue

        if entry.start_time > now_ms:
            cost.hours.future += duration
        elif entry.completed:
            cost.hours.past_confirmed += duration
        else:
            cost.hours.past_unconfirmed += duration

        hourly_cost = hourly_costs.get(entry.user_id) or default_hourly_cost
        cost.total_cost += duration * hourly_cost * (1 + overhead)

    for expense in expenses:
        cost = costs.get(expense.project_id)
        if cost is not None:
            cost.total_cost += expense.amount or 0.0

    return costs


def _add_hours(target: HoursSplit, source: HoursSplit) -> None:
    target.future += source.future
    target.past_confirmed += source.past_confirmed
    target.past_unconfirmed += source.past_unconfirmed


def _group(projects: List, costs: Dict[str, ProjectCost], key) -> Dict[str, GroupStats]:
    groups: Dict[str, GroupStats] = {}
    marginability: Dict[str, float] = {}
    for project in projects:
        name = key(project) or UNCATEGORIZED
        stats = groups.setdefault(name, GroupStats())
        cost = costs[project.uid]
        budget = project.budget or 0.0
        stats.count += 1
        stats.total_budget += budget
        _add_hours(stats.total_hours, cost.hours)
        stats.remaining_budget += budget - cost.total_cost
        marginability[name] = marginability.get(name, 0.0) + (project.marginability_percentage or 0.0)

    for name, stats in groups.items():
        stats.average_marginability = marginability[name] / stats.count
        stats.actual_margin = percentage(stats.remaining_budget, stats.total_budget)
    return groups


def compute_project_stats(
    projects: Iterable,
    costs: Dict[str, ProjectCost],
    open_status: Optional[str] = None,
    top: int = 10,
) -> ProjectStats:
    """Roll open projects up into header figures, category/area groups and top-N.

    ``projects`` need ``uid, title, budget, marginability_percentage,
    not_billable, category_name, area_name, status_name, start_date,
    end_date``.
    """
    open_status = config.OPEN_PROJECT_STATUS if open_status is None else open_status
    open_projects = [p for p in projects if p.status_name == open_status]
    for project in open_projects:
        costs.setdefault(project.uid, ProjectCost())

    stats = ProjectStats()
    if not open_projects:
        return stats

    budget = sum(p.budget or 0.0 for p in open_projects)
    consumed = sum(costs[p.uid].total_cost for p in open_projects)
    stats.open_projects = len(open_projects)
    stats.open_projects_budget = budget
    stats.average_marginability = sum(p.marginability_percentage or 0.0 for p in open_projects) / len(
        open_projects
    )
    stats.actual_margin = _margin(budget, consumed)
    stats.remaining_budget = budget - consumed
    stats.projects_with_negative_margin = sum(
        1 for p in open_projects if (p.marginability_percentage or 0.0) < 0
    )
    stats.billable_projects = sum(1 for p in open_projects if not p.not_billable)
    stats.non_billable_projects = stats.open_projects - stats.billable_projects
    for project in open_projects:
        _add_hours(stats.total_hours, costs[project.uid].hours)

    stats.projects_by_category = _group(open_projects, costs, lambda p: p.category_name)
    stats.projects_by_area = _group(open_projects, costs, lambda p: p.area_name)

    ranked = sorted(open_projects, key=lambda p: p.budget or 0.0, reverse=True)[:top]
    stats.top_budget_projects = [
        TopProject(
            uid=p.uid,
            title=p.title,
            status=p.status_name or "Unknown",
            budget=p.budget or 0.0,
            marginability_percentage=p.marginability_percentage or 0.0,
            actual_margin=_margin(p.budget or 0.0, costs[p.uid].total_cost),
            consumed_budget=costs[p.uid].total_cost,
            remaining_budget=(p.budget or 0.0) - costs[p.uid].total_cost,
            total_hours=costs[p.uid].hours,
            start_date=p.start_date,
            end_date=p.end_date,
        )
        for p in ranked
    ]
    return stats


def load_project_stats(
    db: Session, organization_id: str, top: int = 10, today: Optional[date] = None
) -> ProjectStats:
    today = today or date.today()
    logger.info("Project stats for organization %s", organization_id)

    projects = db.execute(
        select(
            Project.uid,
            Project.title,
            Project.budget,
            Project.marginability_percentage,
            Project.not_billable,
            Project.start_date,
            Project.end_date,
            ProjectCategory.name.label("category_name"),
            ProjectArea.name.label("area_name"),
            ProjectWorkflow.name.label("status_name"),
        )
        .outerjoin(ProjectCategory, Project.category_id == ProjectCategory.uid)
        .outerjoin(ProjectArea, Project.area_id == ProjectArea.uid)
        .outerjoin(ProjectWorkflow, Project.status_id == ProjectWorkflow.uid)
        .where(Project.organization_id == organization_id)
    ).all()
    project_ids = [p.uid for p in projects]

    entries = []
    if project_ids:
        entries = (
            db.execute(select(TimeEntry).where(TimeEntry.project_id.in_(project_ids)))
            .scalars()
            .all()
        )

    contracts = (
        db.execute(
            select(Contract)
            .where(
                Contract.organization_id == organization_id,
                Contract.from_date <= today,
                Contract.to_date >= today,
            )
            .order_by(Contract.from_date.desc())
        )
        .scalars()
        .all()
    )
    overheads = (
        db.execute(
            select(Overhead)
            .where(
                Overhead.organization_id == organization_id,
                Overhead.from_date <= today,
                Overhead.to_date >= today,
            )
            .order_by(Overhead.from_date.desc())
        )
        .scalars()
        .all()
    )
    expenses = (
        db.execute(select(Expense).where(Expense.organization_id == organization_id))
        .scalars()
        .all()
    )
    logger.debug(
        "Loaded %d projects, %d entries, %d contracts, %d overheads, %d expenses",
        len(projects),
        len(entries),
        len(contracts),
        len(overheads),
        len(expenses),
    )

    costs = compute_project_costs(project_ids, entries, contracts, overheads, expenses)
    return compute_project_stats(projects, costs, top=top)

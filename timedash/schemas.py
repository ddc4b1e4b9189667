from datetime import date
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CoverageRequest(CamelModel):
    start_date: date
    end_date: date
    user_id: str = Field(min_length=1)


class DailyCoverage(CamelModel):
    date: date
    expected_hours: float = 0.0
    actual_hours: float = 0.0
    coverage: float = 0.0


class CoverageReport(CamelModel):
    daily_coverage: List[DailyCoverage] = Field(default_factory=list)
    overall_coverage: float = 0.0
    total_expected_hours: float = 0.0
    total_actual_hours: float = 0.0


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    uid: str
    nominative: str
    email: Optional[str] = None


class ProjectRef(BaseModel):
    uid: str
    title: str
    not_billable: bool = False


class CategoryRef(BaseModel):
    uid: str
    name: str
    color: Optional[str] = None


class UserRef(BaseModel):
    nominative: Optional[str] = None
    email: Optional[str] = None


class TimeEntryOut(BaseModel):
    uid: str
    user_id: str
    start_time: Optional[int] = None
    end_time: Optional[int] = None
    completed: bool = False
    project_id: Optional[str] = None
    category_id: Optional[str] = None
    project: Optional[ProjectRef] = None
    category: Optional[CategoryRef] = None


class TimeEntryRow(TimeEntryOut):
    event_type: str = "activity"
    duration_hours: Optional[float] = None
    user: UserRef = Field(default_factory=UserRef)


class TimeEntriesRequest(CamelModel):
    start_date: str
    end_date: str
    page: int = Field(0, ge=0)
    page_size: int = Field(1000, gt=0, le=5000)


class TimeEntriesPage(CamelModel):
    entries: List[TimeEntryOut]
    has_more: bool


class EntryFilters(CamelModel):
    user_id: Optional[str] = None
    project_id: Optional[str] = None
    category_id: Optional[str] = None
    completed: Optional[bool] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    search_text: Optional[str] = None


class EntryTableRequest(CamelModel):
    page: int = Field(0, ge=0)
    page_size: int = Field(50, gt=0, le=1000)
    sort_by: str = "start_time"
    sort_order: str = "DESC"
    filters: EntryFilters = Field(default_factory=EntryFilters)


class EntryTablePage(CamelModel):
    entries: List[TimeEntryRow]
    total_count: int
    total_pages: int
    current_page: int
    page_size: int


class DateRangeRequest(CamelModel):
    start_date: date
    end_date: date


class CategorySummary(CamelModel):
    category_id: str
    name: str
    color: str
    total_hours: float
    percentage: float


class ProjectSummary(CamelModel):
    project_id: str
    title: str
    total_hours: float
    is_billable: bool
    percentage: float


class DailyEntry(CamelModel):
    date: int  # epoch milliseconds of the UTC day start
    total_hours: float
    confirmed_hours: float
    unconfirmed_hours: float
    billable_hours: float
    billable_percentage: float
    unassigned_percentage: float
    project_summaries: List[ProjectSummary]
    category_summaries: List[CategorySummary]


class UserTimeData(CamelModel):
    user_id: str
    nominative: str
    email: Optional[str] = None
    total_hours: float
    confirmed_hours: float
    unconfirmed_hours: float
    billable_percentage: float
    unassigned_percentage: float
    project_summaries: List[ProjectSummary]
    category_summaries: List[CategorySummary]
    daily_entries: List[DailyEntry]
    coverage_percentage: float = 0.0
    coverage_data: Optional[CoverageReport] = None


class Activity(CamelModel):
    title: Optional[str] = None
    start_time: int
    end_time: int
    duration: float
    completed: bool


class UserDayHours(CamelModel):
    user_id: str
    nominative: str
    email: Optional[str] = None
    confirmed_hours: float = 0.0
    unconfirmed_hours: float = 0.0
    activities: List[Activity] = Field(default_factory=list)


class DayCheck(CamelModel):
    date: date
    under_time_users: int
    no_time_users: int
    entries: List[UserDayHours]
    users_with_no_time: List[UserRef]


class HoursSplit(CamelModel):
    future: float = 0.0
    past_confirmed: float = 0.0
    past_unconfirmed: float = 0.0


class GroupStats(CamelModel):
    count: int = 0
    total_budget: float = 0.0
    average_marginability: float = 0.0
    actual_margin: float = 0.0
    total_hours: HoursSplit = Field(default_factory=HoursSplit)
    remaining_budget: float = 0.0


class TopProject(CamelModel):
    uid: str
    title: str
    status: str
    budget: float
    marginability_percentage: float = Field(alias="marginability_percentage")
    actual_margin: float
    consumed_budget: float
    remaining_budget: float
    total_hours: HoursSplit
    start_date: Optional[date] = Field(None, alias="start_date")
    end_date: Optional[date] = Field(None, alias="end_date")


class ProjectStats(CamelModel):
    open_projects: int = 0
    open_projects_budget: float = 0.0
    average_marginability: float = 0.0
    actual_margin: float = 0.0
    projects_with_negative_margin: int = 0
    billable_projects: int = 0
    non_billable_projects: int = 0
    total_hours: HoursSplit = Field(default_factory=HoursSplit)
    remaining_budget: float = 0.0
    projects_by_category: Dict[str, GroupStats] = Field(default_factory=dict)
    projects_by_area: Dict[str, GroupStats] = Field(default_factory=dict)
    top_budget_projects: List[TopProject] = Field(default_factory=list)


class WorkingDayIn(BaseModel):
    calendar_day: date
    is_working_day: bool = True
    description: Optional[str] = None


class WorkingDayUpdate(BaseModel):
    is_working_day: bool
    description: Optional[str] = None


class WorkingDayOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    calendar_day: date
    is_working_day: bool
    description: Optional[str] = None
    organization_id: Optional[str] = None

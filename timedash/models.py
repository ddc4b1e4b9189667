from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Column,
    Date,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from .database import Base


class User(Base):
    __tablename__ = "users"

    uid = Column(String(64), primary_key=True)
    nominative = Column(String(200), nullable=False, index=True)
    email = Column(String(200), nullable=True)
    status = Column(String(20), nullable=False, default="active", index=True)

    time_entries = relationship("TimeEntry", back_populates="user")


class Category(Base):
    __tablename__ = "task_categories"

    uid = Column(String(64), primary_key=True)
    name = Column(String(100), nullable=False)
    color = Column(String(20), nullable=True)  # hex color for charts

    time_entries = relationship("TimeEntry", back_populates="category")


class ProjectCategory(Base):
    __tablename__ = "project_categories"

    uid = Column(String(64), primary_key=True)
    name = Column(String(100), nullable=False)


class ProjectArea(Base):
    __tablename__ = "project_areas"

    uid = Column(String(64), primary_key=True)
    name = Column(String(100), nullable=False)


class ProjectWorkflow(Base):
    __tablename__ = "projects_workflows"

    uid = Column(String(64), primary_key=True)
    name = Column(String(100), nullable=False)


class Project(Base):
    __tablename__ = "projects"

    uid = Column(String(64), primary_key=True)
    organization_id = Column(String(64), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    not_billable = Column(Boolean, nullable=False, default=False)
    budget = Column(Float, nullable=True)
    marginability_percentage = Column(Float, nullable=True)
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)

    category_id = Column(String(64), ForeignKey("project_categories.uid"), nullable=True)
    area_id = Column(String(64), ForeignKey("project_areas.uid"), nullable=True)
    status_id = Column(String(64), ForeignKey("projects_workflows.uid"), nullable=True)

    category = relationship("ProjectCategory")
    area = relationship("ProjectArea")
    status = relationship("ProjectWorkflow")
    time_entries = relationship("TimeEntry", back_populates="project")


class TimeEntry(Base):
    __tablename__ = "time_blocking_events"

    uid = Column(String(64), primary_key=True)
    user_id = Column(String(64), ForeignKey("users.uid"), nullable=False, index=True)
    # epoch milliseconds
    start_time = Column(BigInteger, nullable=True, index=True)
    end_time = Column(BigInteger, nullable=True)
    completed = Column(Boolean, nullable=False, default=False)
    event_type = Column(String(20), nullable=False, default="activity", index=True)
    title = Column(String(200), nullable=True)

    project_id = Column(String(64), ForeignKey("projects.uid"), nullable=True, index=True)
    category_id = Column(String(64), ForeignKey("task_categories.uid"), nullable=True)

    user = relationship("User", back_populates="time_entries")
    project = relationship("Project", back_populates="time_entries")
    category = relationship("Category", back_populates="time_entries")


class WorkingDay(Base):
    __tablename__ = "working_days_calendar"

    id = Column(Integer, primary_key=True, index=True)
    calendar_day = Column(Date, unique=True, nullable=False, index=True)
    is_working_day = Column(Boolean, nullable=False, default=True)
    description = Column(Text, nullable=True)
    organization_id = Column(String(64), nullable=True)


class Contract(Base):
    __tablename__ = "organization_user_contracts"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), ForeignKey("users.uid"), nullable=False, index=True)
    organization_id = Column(String(64), nullable=True, index=True)
    contract_type = Column(String(20), nullable=False, default="full-time")
    contractual_hours = Column(Float, nullable=True)
    # {"0": hours, ..., "6": hours}, 0 is Sunday
    contractual_hours_by_day = Column(JSON, nullable=True)
    hourly_cost = Column(Float, nullable=True)
    from_date = Column(Date, nullable=False)
    to_date = Column(Date, nullable=False)


class Overhead(Base):
    __tablename__ = "overheads"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(String(64), nullable=False, index=True)
    amount = Column(Float, nullable=False, default=0.0)
    from_date = Column(Date, nullable=False)
    to_date = Column(Date, nullable=False)


class Expense(Base):
    __tablename__ = "expenses"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(String(64), nullable=False, index=True)
    project_id = Column(String(64), ForeignKey("projects.uid"), nullable=True, index=True)
    amount = Column(Float, nullable=False, default=0.0)
    description = Column(Text, nullable=True)
    expense_date = Column(Date, nullable=True)

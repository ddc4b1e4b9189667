import logging
from datetime import date, timedelta
from typing import Optional

from fastapi import Depends, FastAPI, Form, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exception_handlers import http_exception_handler, request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse, RedirectResponse, StreamingResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import config
from .analysis import build_analysis, load_daily_check
from .api import router as api_router
from .database import get_db, init_db, transaction
from .entries import SORT_COLUMNS, delete_time_entry, list_time_entries
from .margins import load_project_stats
from .models import Category, Project, TimeEntry, User, WorkingDay
from .schemas import EntryFilters
from .timeutils import MS_PER_HOUR, day_bounds, day_start_millis, from_millis

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


def format_hours(hours) -> str:
    minutes = round((hours or 0) * 60)
    return f"{minutes // 60}h {minutes % 60}m"


app = FastAPI(title="Time Tracking Dashboard")

init_db()

app.mount("/static", StaticFiles(directory=str(config.BASE_DIR / "static")), name="static")
templates = Jinja2Templates(directory=str(config.BASE_DIR / "templates"))
templates.env.filters["hm"] = format_hours
templates.env.filters["from_millis"] = lambda ms: from_millis(ms).strftime("%Y-%m-%d %H:%M") if ms else ""

app.include_router(api_router)


def _is_api(request: Request) -> bool:
    return request.url.path.startswith("/api/")


@app.exception_handler(StarletteHTTPException)
async def api_http_error(request: Request, exc: StarletteHTTPException):
    if _is_api(request):
        return JSONResponse({"error": exc.detail}, status_code=exc.status_code)
    return await http_exception_handler(request, exc)


@app.exception_handler(RequestValidationError)
async def api_validation_error(request: Request, exc: RequestValidationError):
    if _is_api(request):
        return JSONResponse(
            {"error": "Invalid request", "details": jsonable_encoder(exc.errors())},
            status_code=400,
        )
    return await request_validation_exception_handler(request, exc)


@app.exception_handler(SQLAlchemyError)
async def database_error(request: Request, exc: SQLAlchemyError):
    logger.exception("Database error on %s %s", request.method, request.url.path)
    if _is_api(request):
        return JSONResponse({"error": "Database error", "details": str(exc)}, status_code=500)
    return PlainTextResponse("Internal Server Error", status_code=500)


def get_today() -> date:
    return date.today()


@app.get("/")
async def index():
    return RedirectResponse(url="/admin/analysis", status_code=303)


@app.get("/admin/analysis", response_class=HTMLResponse)
def analysis_view(
    request: Request,
    db: Session = Depends(get_db),
    start: Optional[date] = None,
    end: Optional[date] = None,
):
    today = get_today()
    if end is None:
        end = today
    if start is None:
        start = end.replace(day=1)
    if start > end:
        raise HTTPException(status_code=400, detail="Start date must not be after end date")

    reports = build_analysis(db, start, end)
    return templates.TemplateResponse(
        request,
        "analysis.html",
        {"start": start, "end": end, "reports": reports},
    )


@app.get("/admin/pandccheck", response_class=HTMLResponse)
def presence_check_view(
    request: Request,
    db: Session = Depends(get_db),
    start: Optional[date] = None,
    end: Optional[date] = None,
):
    today = get_today()
    if end is None:
        end = today
    if start is None:
        start = end
    if start > end:
        raise HTTPException(status_code=400, detail="Start date must not be after end date")

    checks = load_daily_check(db, start, end)
    return templates.TemplateResponse(
        request,
        "pandc_check.html",
        {"start": start, "end": end, "checks": checks, "threshold": config.UNDER_TIME_HOURS},
    )


@app.get("/dashboard/projects", response_class=HTMLResponse)
def projects_view(
    request: Request,
    db: Session = Depends(get_db),
    organization_id: Optional[str] = None,
):
    organization_id = organization_id or config.ORGANIZATION_ID
    stats = load_project_stats(db, organization_id) if organization_id else None
    return templates.TemplateResponse(
        request,
        "projects.html",
        {"organization_id": organization_id, "stats": stats},
    )


@app.get("/admin/working-calendar", response_class=HTMLResponse)
def working_calendar_view(request: Request, db: Session = Depends(get_db)):
    days = db.execute(select(WorkingDay).order_by(WorkingDay.calendar_day.desc())).scalars().all()
    return templates.TemplateResponse(request, "working_calendar.html", {"days": days})


@app.post("/admin/working-calendar/add")
def add_working_day(
    calendar_day: date = Form(...),
    is_working_day: bool = Form(False),
    description: str = Form(""),
    db: Session = Depends(get_db),
):
    try:
        with transaction(db):
            db.add(
                WorkingDay(
                    calendar_day=calendar_day,
                    is_working_day=is_working_day,
                    description=description or None,
                )
            )
    except IntegrityError:
        raise HTTPException(status_code=400, detail="Working day already exists for this date")
    return RedirectResponse(url="/admin/working-calendar", status_code=303)


@app.post("/admin/working-calendar/{day_id}/toggle")
def toggle_working_day(day_id: int, db: Session = Depends(get_db)):
    day = db.get(WorkingDay, day_id)
    if not day:
        raise HTTPException(status_code=404, detail="Working day not found")
    with transaction(db):
        day.is_working_day = not day.is_working_day
    return RedirectResponse(url="/admin/working-calendar", status_code=303)


@app.post("/admin/working-calendar/{day_id}/delete")
def remove_working_day(day_id: int, db: Session = Depends(get_db)):
    day = db.get(WorkingDay, day_id)
    if not day:
        raise HTTPException(status_code=404, detail="Working day not found")
    with transaction(db):
        db.delete(day)
    return RedirectResponse(url="/admin/working-calendar", status_code=303)


@app.get("/admin/time-entries", response_class=HTMLResponse)
def time_entries_view(
    request: Request,
    db: Session = Depends(get_db),
    page: int = 0,
    page_size: int = 50,
    sort_by: str = "start_time",
    sort_order: str = "DESC",
    search: str = "",
    user_id: str = "",
    completed: str = "",
):
    filters = EntryFilters(
        search_text=search or None,
        user_id=user_id or None,
        completed={"true": True, "false": False}.get(completed),
    )
    result = list_time_entries(
        db,
        page=max(page, 0),
        page_size=min(max(page_size, 1), 1000),
        sort_by=sort_by,
        sort_order=sort_order,
        filters=filters,
    )
    users = db.execute(select(User).order_by(User.nominative)).scalars().all()
    return templates.TemplateResponse(
        request,
        "time_entries.html",
        {
            "result": result,
            "users": users,
            "sort_columns": list(SORT_COLUMNS),
            "sort_by": sort_by,
            "sort_order": sort_order,
            "search": search,
            "user_id": user_id,
            "completed": completed,
        },
    )


@app.post("/admin/time-entries/{entry_id}/delete")
def remove_time_entry(entry_id: str, db: Session = Depends(get_db)):
    delete_time_entry(db, entry_id)
    return RedirectResponse(url="/admin/time-entries", status_code=303)


@app.get("/export/excel")
def export_excel(
    db: Session = Depends(get_db),
    start: Optional[date] = None,
    end: Optional[date] = None,
):
    from io import BytesIO

    import openpyxl
    from openpyxl.utils import get_column_letter

    today = get_today()
    if end is None:
        end = today
    if start is None:
        start = end - timedelta(days=30)

    rows = (
        db.execute(
            select(TimeEntry, User, Project, Category)
            .join(User, TimeEntry.user_id == User.uid)
            .outerjoin(Project, TimeEntry.project_id == Project.uid)
            .outerjoin(Category, TimeEntry.category_id == Category.uid)
            .where(
                TimeEntry.event_type == "activity",
                TimeEntry.start_time >= day_start_millis(start),
                TimeEntry.end_time <= day_bounds(end)[1],
            )
            .order_by(TimeEntry.start_time, TimeEntry.uid)
        )
        .all()
    )

    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = "Time entries"

    headers = [
        "User",
        "Email",
        "Start",
        "End",
        "Hours",
        "Completed",
        "Project",
        "Billable",
        "Category",
    ]
    ws.append(headers)

    for entry, user, project, category in rows:
        hours = ""
        if entry.start_time is not None and entry.end_time is not None:
            hours = round((entry.end_time - entry.start_time) / MS_PER_HOUR, 2)
        ws.append(
            [
                user.nominative,
                user.email or "",
                from_millis(entry.start_time).strftime("%Y-%m-%d %H:%M") if entry.start_time else "",
                from_millis(entry.end_time).strftime("%Y-%m-%d %H:%M") if entry.end_time else "",
                hours,
                "yes" if entry.completed else "no",
                project.title if project else "",
                ("no" if project.not_billable else "yes") if project else "",
                category.name if category else "Uncategorized",
            ]
        )

    for col in range(1, len(headers) + 1):
        ws.column_dimensions[get_column_letter(col)].auto_size = True

    stream = BytesIO()
    wb.save(stream)
    stream.seek(0)

    filename = f"time_entries_{start.isoformat()}_{end.isoformat()}.xlsx"
    headers_resp = {
        "Content-Disposition": f'attachment; filename="{filename}"'
    }

    return StreamingResponse(
        stream,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers=headers_resp,
    )

from io import BytesIO

import openpyxl

from factories import add_category, add_entry, add_project, add_user, ms
from timedash.models import TimeEntry


def seed(db):
    add_user(db, "u1", "Anna Rossi", email="anna@example.com")
    add_user(db, "u2", "Bruno Verdi", email="bruno@example.com")
    add_project(db, "p1", "Website redesign")
    add_category(db, "c1", "Design", "#123456")
    add_entry(db, "e1", "u1", ms(2024, 1, 8, 9), 2, project_id="p1", category_id="c1")
    add_entry(db, "e2", "u1", ms(2024, 1, 9, 9), 1.5, completed=False)
    add_entry(db, "e3", "u2", ms(2024, 1, 10, 9), 4, project_id="p1")
    add_entry(db, "e4", "u2", ms(2024, 1, 11, 9), 3)
    add_entry(db, "m1", "u2", ms(2024, 1, 11, 14), 1, event_type="meeting")


def query(client, **payload):
    response = client.post("/api/db/time-entries", json=payload)
    assert response.status_code == 200
    return response.json()


def test_default_listing_is_newest_first(client, db):
    seed(db)
    body = query(client)
    assert body["totalCount"] == 4
    assert body["totalPages"] == 1
    assert body["currentPage"] == 0
    assert body["pageSize"] == 50
    assert [e["uid"] for e in body["entries"]] == ["e4", "e3", "e2", "e1"]

    e1 = body["entries"][-1]
    assert e1["duration_hours"] == 2.0
    assert e1["project"]["title"] == "Website redesign"
    assert e1["category"] == {"uid": "c1", "name": "Design", "color": "#123456"}
    assert e1["user"] == {"nominative": "Anna Rossi", "email": "anna@example.com"}
    assert body["entries"][0]["project"] is None


def test_pagination(client, db):
    seed(db)
    body = query(client, page=1, pageSize=3, sortOrder="ASC")
    assert body["totalPages"] == 2
    assert [e["uid"] for e in body["entries"]] == ["e4"]


def test_sorting_by_allowed_columns(client, db):
    seed(db)
    by_duration = query(client, sortBy="duration_hours", sortOrder="ASC")
    assert [e["uid"] for e in by_duration["entries"]] == ["e2", "e1", "e4", "e3"]

    by_user = query(client, sortBy="user_nominative", sortOrder="ASC")
    assert [e["user"]["nominative"] for e in by_user["entries"]][:2] == ["Anna Rossi", "Anna Rossi"]


def test_unknown_sort_column_falls_back_to_start_time(client, db):
    seed(db)
    body = query(client, sortBy="uid; DROP TABLE users", sortOrder="sideways")
    assert [e["uid"] for e in body["entries"]] == ["e4", "e3", "e2", "e1"]


def test_filters(client, db):
    seed(db)
    assert query(client, filters={"userId": "u2"})["totalCount"] == 2
    assert query(client, filters={"projectId": "p1"})["totalCount"] == 2
    assert query(client, filters={"categoryId": "c1"})["totalCount"] == 1
    assert [e["uid"] for e in query(client, filters={"completed": False})["entries"]] == ["e2"]
    ranged = query(client, filters={"startDate": "2024-01-09", "endDate": "2024-01-10"})
    assert [e["uid"] for e in ranged["entries"]] == ["e3", "e2"]


def test_search_text_matches_user_project_and_category(client, db):
    seed(db)
    assert query(client, filters={"searchText": "BRUNO"})["totalCount"] == 2
    assert query(client, filters={"searchText": "redesign"})["totalCount"] == 2
    assert query(client, filters={"searchText": "design"})["totalCount"] == 2
    assert query(client, filters={"searchText": "nobody"})["totalCount"] == 0


def test_invalid_date_filter(client, db):
    response = client.post("/api/db/time-entries", json={"filters": {"startDate": "yesterday"}})
    assert response.status_code == 400
    assert "Invalid date" in response.json()["error"]


def test_delete_removes_one_row_and_second_delete_is_404(client, db):
    seed(db)
    response = client.delete("/api/db/time-entries/e1")
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["deletedEntry"]["uid"] == "e1"
    assert db.query(TimeEntry).count() == 4
    assert db.get(TimeEntry, "e1") is None

    again = client.delete("/api/db/time-entries/e1")
    assert again.status_code == 404
    assert again.json() == {"error": "Time entry not found"}


def test_time_entries_page_and_form_delete(client, db):
    seed(db)
    page = client.get("/admin/time-entries", params={"search": "anna"})
    assert page.status_code == 200
    assert "Anna Rossi" in page.text
    assert "Bruno Verdi</td>" not in page.text

    response = client.post("/admin/time-entries/e2/delete", follow_redirects=False)
    assert response.status_code == 303
    assert db.get(TimeEntry, "e2") is None


def test_excel_export(client, db):
    seed(db)
    response = client.get("/export/excel", params={"start": "2024-01-01", "end": "2024-01-31"})
    assert response.status_code == 200
    assert response.headers["content-type"].startswith(
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    )
    assert "time_entries_2024-01-01_2024-01-31.xlsx" in response.headers["content-disposition"]

    sheet = openpyxl.load_workbook(BytesIO(response.content)).active
    rows = list(sheet.iter_rows(values_only=True))
    assert rows[0][4] == "Hours"
    assert [row[4] for row in rows[1:]] == [2, 1.5, 4, 3]
    assert rows[1][6] == "Website redesign"
    assert rows[2][8] == "Uncategorized"

from datetime import date
from types import SimpleNamespace

import pytest

from factories import add_contract, add_entry, add_project, add_user, entry, ms
from timedash.margins import compute_project_costs, compute_project_stats
from timedash.models import Expense, Overhead

NOW = ms(2024, 6, 1)


def project(uid, budget, status="Aperto", category=None, area=None, marginability=0.0, not_billable=False):
    return SimpleNamespace(
        uid=uid,
        title=uid.upper(),
        budget=budget,
        marginability_percentage=marginability,
        not_billable=not_billable,
        category_name=category,
        area_name=area,
        status_name=status,
        start_date=date(2024, 1, 1),
        end_date=date(2024, 12, 31),
    )


def ref(uid):
    return SimpleNamespace(uid=uid)


def contract(user_id, hourly_cost):
    return SimpleNamespace(user_id=user_id, hourly_cost=hourly_cost)


def test_costs_apply_hourly_rate_overhead_and_expenses():
    entries = [
        entry("e1", ms(2024, 5, 2, 9), 4, user_id="u1", project=ref("a")),
        entry("e2", ms(2024, 5, 3, 9), 2, user_id="u2", project=ref("a"), completed=False),
        entry("e3", ms(2024, 7, 1, 9), 1, user_id="u1", project=ref("a")),
        entry("stray", ms(2024, 5, 2, 9), 5, user_id="u1", project=ref("zzz")),
        entry("none", ms(2024, 5, 2, 9), 5, user_id="u1"),
    ]
    costs = compute_project_costs(
        ["a", "b"],
        entries,
        [contract("u1", 50)],
        [SimpleNamespace(amount=0.1)],
        [SimpleNamespace(project_id="a", amount=30), SimpleNamespace(project_id=None, amount=99)],
        now_ms=NOW,
        default_hourly_cost=1.0,
    )
    a = costs["a"]
    # u1: 5h * 50 * 1.1, u2 has no contract: 2h * 1 * 1.1, plus 30 of expenses
    assert a.total_cost == pytest.approx(275 + 2.2 + 30)
    assert a.hours.past_confirmed == 4
    assert a.hours.past_unconfirmed == 2
    assert a.hours.future == 1
    assert costs["b"].total_cost == 0
    assert "zzz" not in costs


def test_stats_only_count_open_projects():
    projects = [
        project("a", 1000, category="Dev", area="North", marginability=20),
        project("b", 500, category="Dev", marginability=-5, not_billable=True),
        project("c", 9999, status="Chiuso", category="Dev"),
        project("d", None, area="North", marginability=10),
    ]
    costs = compute_project_costs(
        [p.uid for p in projects],
        [
            entry("e1", ms(2024, 5, 2, 9), 10, user_id="u1", project=ref("a")),
            entry("e2", ms(2024, 5, 2, 9), 2, user_id="u1", project=ref("b")),
            entry("e3", ms(2024, 5, 2, 9), 100, user_id="u1", project=ref("c")),
        ],
        [contract("u1", 20)],
        [],
        now_ms=NOW,
    )
    stats = compute_project_stats(projects, costs, open_status="Aperto", top=2)

    assert stats.open_projects == 3
    assert stats.open_projects_budget == 1500
    assert stats.remaining_budget == 1500 - 240
    assert stats.actual_margin == pytest.approx((1500 - 240) / 1500 * 100)
    assert stats.average_marginability == pytest.approx(25 / 3)
    assert stats.projects_with_negative_margin == 1
    assert stats.billable_projects == 2
    assert stats.non_billable_projects == 1
    assert stats.total_hours.past_confirmed == 12

    dev = stats.projects_by_category["Dev"]
    assert dev.count == 2
    assert dev.total_budget == 1500
    assert dev.remaining_budget == 1500 - 240
    assert dev.average_marginability == pytest.approx(7.5)
    assert stats.projects_by_category["Uncategorized"].actual_margin == 0
    assert set(stats.projects_by_area) == {"North", "Uncategorized"}

    assert [p.uid for p in stats.top_budget_projects] == ["a", "b"]
    top = stats.top_budget_projects[0]
    assert top.consumed_budget == 200
    assert top.remaining_budget == 800
    assert top.actual_margin == pytest.approx(80.0)


def test_stats_without_open_projects_are_zero():
    stats = compute_project_stats([project("c", 100, status="Chiuso")], {}, open_status="Aperto")
    assert stats.open_projects == 0
    assert stats.actual_margin == 0
    assert stats.top_budget_projects == []


def test_project_stats_endpoint(client, db):
    add_user(db, "u1", "Anna")
    add_contract(db, "u1", hourly_cost=40)
    add_project(db, "p1", "Website", budget=1000, marginability=25, category="Web", area="Milano", status="Aperto")
    add_project(db, "p2", "Archive", budget=50, status="Chiuso")
    add_project(db, "p3", "Elsewhere", organization_id="other", budget=10, status="Aperto")
    add_entry(db, "e1", "u1", ms(2024, 1, 8, 9), 5, project_id="p1")
    db.add(Overhead(organization_id="org", amount=0.5, from_date=date(2000, 1, 1), to_date=date(2100, 1, 1)))
    db.add(Expense(organization_id="org", project_id="p1", amount=100))
    db.commit()

    response = client.get("/api/projects/stats", params={"organizationId": "org"})
    assert response.status_code == 200
    body = response.json()
    assert body["openProjects"] == 1
    assert body["openProjectsBudget"] == 1000
    # 5h * 40 * 1.5 + 100
    assert body["remainingBudget"] == pytest.approx(600)
    assert body["projectsByCategory"]["Web"]["count"] == 1
    assert body["projectsByArea"]["Milano"]["actualMargin"] == pytest.approx(60)
    top = body["topBudgetProjects"][0]
    assert top["title"] == "Website"
    assert top["status"] == "Aperto"
    assert top["marginability_percentage"] == 25
    assert top["consumedBudget"] == pytest.approx(400)
    assert top["totalHours"]["pastConfirmed"] == 5
    assert top["start_date"] is None


def test_project_stats_requires_organization(client):
    response = client.get("/api/projects/stats")
    assert response.status_code == 400
    assert response.json() == {"error": "Organization ID is required"}


def test_projects_page_renders(client, db):
    add_project(db, "p1", "Website", budget=1000, status="Aperto")
    response = client.get("/dashboard/projects", params={"organization_id": "org"})
    assert response.status_code == 200
    assert "Website" in response.text

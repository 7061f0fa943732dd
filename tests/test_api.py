import json

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import main
from database import Base, get_db
from main import app
from recurrence import local_today


@pytest.fixture
def client():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    TestingSession = sessionmaker(bind=engine, expire_on_commit=False)

    def override_get_db():
        db = TestingSession()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    test_client = TestClient(app)
    token = test_client.get("/api/csrf-token").json()["token"]
    test_client.headers.update({"X-CSRF-Token": token})
    yield test_client
    app.dependency_overrides.clear()


def _expense(**overrides):
    payload = {
        "title": "Lunch",
        "amount_cents": 25000,
        "category": "Food",
        "transaction_type": "expense",
        "transaction_date": "2024-05-10",
    }
    payload.update(overrides)
    return payload


def test_mutations_require_csrf_header(client):
    response = client.post(
        "/api/transactions", json=_expense(), headers={"X-CSRF-Token": "forged"}
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid CSRF token"


def test_transaction_crud(client):
    created = client.post("/api/transactions", json=_expense())
    assert created.status_code == 201
    txn_id = created.json()["id"]

    fetched = client.get(f"/api/transactions/{txn_id}")
    assert fetched.json()["amount_cents"] == 25000

    updated = client.put(f"/api/transactions/{txn_id}", json=_expense(amount_cents=30000))
    assert updated.json()["amount_cents"] == 30000

    listed = client.get("/api/transactions", params={"type": "expense"}).json()
    assert [item["id"] for item in listed["items"]] == [txn_id]
    assert listed["has_more"] is False

    assert client.delete(f"/api/transactions/{txn_id}").status_code == 204
    assert client.get(f"/api/transactions/{txn_id}").status_code == 404


def test_invalid_payload_rejected_before_write(client):
    response = client.post("/api/transactions", json=_expense(amount_cents=0))
    assert response.status_code == 422
    repeat = client.post("/api/transactions", json=_expense(repeat={"enabled": True}))
    assert repeat.status_code == 422
    assert client.get("/api/transactions").json()["items"] == []


def test_repeat_creates_rule_and_record_occurrence(client):
    client.post(
        "/api/transactions",
        json=_expense(
            title="Rent",
            amount_cents=1500000,
            transaction_date="2024-01-31",
            repeat={"enabled": True, "frequency": "monthly"},
        ),
    )
    (rule,) = client.get("/api/recurring").json()
    assert rule["next_due_date"] == "2024-02-29"
    assert rule["status"] == "overdue"

    recorded = client.post(f"/api/recurring/{rule['id']}/record")
    assert recorded.status_code == 201
    body = recorded.json()
    assert body["transaction"]["date"] == "2024-02-29"
    assert body["rule"]["next_due_date"] == "2024-03-29"

    paused = client.post(f"/api/recurring/{rule['id']}/toggle", json={"is_active": False})
    assert paused.json()["status"] == "inactive"
    assert client.post(f"/api/recurring/{rule['id']}/record").status_code == 400
    assert client.post("/api/recurring/missing/record").status_code == 404


def test_recurring_statistics_and_upcoming(client):
    client.post(
        "/api/recurring",
        json={
            "title": "Salary",
            "amount_cents": 8000000,
            "transaction_type": "income",
            "frequency": "monthly",
            "start_date": "2024-01-01",
        },
    )
    stats = client.get("/api/recurring/statistics").json()
    assert stats["total_monthly_income"] == 8000000
    assert stats["coverage_ratio"] == 100.0
    assert len(client.get("/api/recurring/upcoming").json()) == 1


def test_analytics_for_custom_period(client):
    client.post("/api/transactions", json=_expense(amount_cents=10000))
    client.post(
        "/api/transactions",
        json=_expense(title="Salary", amount_cents=50000, category="Salary", transaction_type="income"),
    )
    params = {"period": "custom", "start": "2024-05-01", "end": "2024-05-31"}
    metrics = client.get("/api/analytics", params=params).json()
    assert metrics["income_cents"] == 50000
    assert metrics["expense_cents"] == 10000
    assert metrics["net_flow_cents"] == 40000
    assert metrics["savings_rate"] == 80.0
    assert metrics["category_breakdown"][0]["category"] == "Food"
    assert metrics["health"]["rating"] == "Excellent"

    export = client.get("/api/analytics/export.csv", params=params)
    assert export.headers["content-type"].startswith("text/csv")
    assert export.text.splitlines()[1] == "2024-05,500.00,100.00,400.00"

    bad = client.get("/api/analytics", params={"period": "custom", "start": "2024-05-31", "end": "2024-05-01"})
    assert bad.status_code == 400


def test_savings_goal_flow(client):
    created = client.post(
        "/api/savings",
        json={"goal_name": "Laptop", "target_amount_cents": 100000, "priority": "High"},
    )
    assert created.status_code == 201
    goal_id = created.json()["id"]

    added = client.post(
        f"/api/savings/{goal_id}/contributions",
        json={"amount_cents": 50000, "contribution_date": "2024-05-01"},
    )
    assert added.status_code == 201
    assert added.json()["goal"]["saved_amount_cents"] == 50000

    goal = client.get(f"/api/savings/{goal_id}").json()
    assert goal["progress"]["percent"] == 50.0
    assert goal["progress"]["milestone"] == 50

    notifications = client.get("/api/notifications").json()
    assert [n["title"] for n in notifications] == ["Halfway There!"]
    assert client.get("/api/notifications/unread-count").json() == {"count": 1}

    client.post(f"/api/notifications/{notifications[0]['id']}/read")
    assert client.get("/api/notifications/unread-count").json() == {"count": 0}

    reconcile = client.get(f"/api/savings/{goal_id}/reconcile").json()
    assert reconcile["untracked_cents"] == 0

    export = client.get("/api/savings/export.csv")
    assert "Laptop" in export.text

    assert client.delete(f"/api/savings/{goal_id}").status_code == 204
    assert client.get(f"/api/savings/{goal_id}/contributions").status_code == 404


def test_import_and_export_json(client):
    payload = [
        {"title": "Tea", "amount": 1.5, "category": "Food", "type": "expense", "date": "2024-05-02"},
        {"amount": "oops", "category": "Food", "type": "expense", "date": "2024-05-02"},
    ]
    response = client.post(
        "/api/transactions/import",
        files={"file": ("export.json", json.dumps(payload).encode("utf-8"), "application/json")},
    )
    assert response.status_code == 200
    assert response.json()["imported"] == 1
    assert len(response.json()["warnings"]) == 1

    exported = client.get(
        "/api/transactions/export.json",
        params={"period": "custom", "start": "2024-05-01", "end": "2024-05-31"},
    ).json()
    assert [(row["title"], row["amount"]) for row in exported] == [("Tea", 1.5)]

    bad = client.post(
        "/api/transactions/import",
        files={"file": ("export.json", b"{}", "application/json")},
    )
    assert bad.status_code == 400


def test_profile_update_validates_thresholds(client):
    response = client.put(
        "/api/profile",
        json={"monthly_budget_warning_cents": 500, "monthly_budget_critical_cents": 100},
    )
    assert response.status_code == 422

    ok = client.put("/api/profile", json={"display_name": "Asha", "email_notifications": True})
    assert ok.json()["display_name"] == "Asha"
    assert client.get("/api/profile").json()["email_notifications"] is True


def test_rule_occurrences_within_period(client):
    rule = client.post(
        "/api/recurring",
        json={
            "title": "Gym",
            "amount_cents": 150000,
            "transaction_type": "expense",
            "frequency": "monthly",
            "start_date": "2024-01-31",
        },
    ).json()
    response = client.get(
        f"/api/recurring/{rule['id']}/occurrences",
        params={"period": "custom", "start": "2024-02-01", "end": "2024-05-31"},
    )
    assert response.json()["dates"] == ["2024-02-29", "2024-03-29", "2024-04-29", "2024-05-29"]


def test_budget_email_is_delivered_as_background_task(client, monkeypatch):
    delivered = []
    monkeypatch.setattr(main, "deliver", lambda messages: delivered.append(messages))
    client.put(
        "/api/profile",
        json={
            "email": "me@example.com",
            "email_notifications": True,
            "monthly_budget_warning_cents": 100,
            "monthly_budget_critical_cents": 200,
        },
    )

    created = client.post(
        "/api/transactions",
        json=_expense(transaction_date=local_today().isoformat()),
    )
    assert created.status_code == 201
    assert len(delivered) == 1
    assert [m.to for m in delivered[0]] == ["me@example.com"]

    client.post(
        "/api/transactions",
        json=_expense(transaction_date=local_today().isoformat()),
    )
    assert len(delivered) == 1


def test_repeat_end_date_before_transaction_date_returns_422(client):
    response = client.post(
        "/api/transactions",
        json=_expense(repeat={"enabled": True, "frequency": "monthly", "end_date": "2024-05-01"}),
    )
    assert response.status_code == 422
    assert client.get("/api/recurring").json() == []

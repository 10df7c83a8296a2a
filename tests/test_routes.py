import pytest

from models import Effort, Insight, InsightCategory, InsightStatus, JobStatus, Priority
from services.errors import TicketingError
from services.graph_builder import GraphBuilder
from tests.conftest import make_event
from utils import utcnow


def _insight(insight_id, priority=Priority.HIGH, category=InsightCategory.CONVERSION):
    return Insight(
        id=insight_id,
        pain_point_id=f"pp-{insight_id}",
        title=f"Insight {insight_id}",
        summary="Users abandon checkout.",
        recommendation="Simplify the form.",
        priority=priority,
        impact="More orders.",
        effort=Effort.LOW,
        category=category,
        metrics={"affectedUsers": 10},
        status=InsightStatus.NEW,
        created_at=utcnow(),
    )


@pytest.fixture
def saved_insights(insight_store):
    insight_store.save_insights([
        _insight("i-1", Priority.HIGH, InsightCategory.CONVERSION),
        _insight("i-2", Priority.LOW, InsightCategory.ENGAGEMENT),
    ])


class FakeJira:
    def __init__(self, error=None):
        self.error = error
        self.created = []

    def is_available(self):
        return True

    def create_issue(self, insight):
        if self.error:
            raise self.error
        self.created.append(insight.id)
        return {"id": "10001", "key": "UX-7", "self": "https://acme.atlassian.net/rest/api/3/issue/10001"}

    def browse_url(self, issue):
        return f"https://acme.atlassian.net/browse/{issue['key']}"


def test_health(client):
    assert client.get("/health").get_json() == {"status": "ok"}


# batch

def test_status_is_idle_before_any_run(client):
    response = client.get("/api/batch/status")

    assert response.status_code == 200
    assert response.get_json()["status"] == "idle"


def test_run_starts_job_in_background(app, client, monkeypatch):
    processor = app.extensions["batch_processor"]
    started = []
    monkeypatch.setattr(processor, "run_in_background", lambda app_, job: started.append(job))

    response = client.post("/api/batch/run")

    assert response.status_code == 202
    body = response.get_json()
    assert body["jobId"] == started[0].id
    status = client.get("/api/batch/status").get_json()
    assert status["id"] == body["jobId"]
    assert status["status"] == "running"


def test_run_while_running_is_a_conflict(app, client):
    running = app.extensions["batch_processor"].start()

    response = client.post("/api/batch/run", json={})

    assert response.status_code == 409
    assert response.get_json()["jobId"] == running.id


def test_forced_run_is_accepted_while_running(app, client, monkeypatch):
    processor = app.extensions["batch_processor"]
    processor.start()
    monkeypatch.setattr(processor, "run_in_background", lambda app_, job: None)

    response = client.post("/api/batch/run", json={"force": True})

    assert response.status_code == 202


def test_history_lists_completed_runs(app, client):
    processor = app.extensions["batch_processor"]
    for _ in range(3):
        processor.run()

    body = client.get("/api/batch/history?limit=2").get_json()

    assert body["total"] == 2
    assert [job["status"] for job in body["history"]] == [JobStatus.COMPLETED.value] * 2
    assert "eventsProcessed" in body["history"][0]["metrics"]


# insights

@pytest.mark.usefixtures("saved_insights")
def test_list_insights_keeps_saved_order(client):
    body = client.get("/api/insights/").get_json()

    assert [i["id"] for i in body["insights"]] == ["i-1", "i-2"]
    assert body["total"] == 2


@pytest.mark.usefixtures("saved_insights")
def test_list_insights_filters(client):
    body = client.get("/api/insights/?priority=low").get_json()

    assert [i["id"] for i in body["insights"]] == ["i-2"]
    assert body["filters"]["priority"] == "low"


def test_list_insights_rejects_unknown_filter_value(client):
    assert client.get("/api/insights/?category=marketing").status_code == 400


@pytest.mark.usefixtures("saved_insights")
def test_get_insight(client):
    body = client.get("/api/insights/i-1").get_json()

    assert body["title"] == "Insight i-1"
    assert body["priority"] == "high"
    assert body["effort"] == "low"
    assert client.get("/api/insights/missing").status_code == 404


@pytest.mark.usefixtures("saved_insights")
def test_update_status(client):
    response = client.patch("/api/insights/i-1/status", json={"status": "reviewed"})

    assert response.status_code == 200
    assert response.get_json()["status"] == "reviewed"
    assert client.get("/api/insights/?status=reviewed").get_json()["total"] == 1


@pytest.mark.usefixtures("saved_insights")
def test_update_status_validation(client):
    assert client.patch("/api/insights/i-1/status", json={"status": "done"}).status_code == 400
    assert client.patch("/api/insights/missing/status", json={"status": "resolved"}).status_code == 404


@pytest.mark.usefixtures("saved_insights")
def test_jira_not_configured(client):
    assert client.post("/api/insights/i-1/jira").status_code == 503


@pytest.mark.usefixtures("saved_insights")
def test_jira_ticket_created_once(app, client):
    jira = FakeJira()
    app.extensions["jira_client"] = jira

    response = client.post("/api/insights/i-1/jira")

    assert response.status_code == 200
    assert response.get_json() == {
        "message": "Jira ticket created successfully",
        "ticketKey": "UX-7",
        "ticketUrl": "https://acme.atlassian.net/browse/UX-7",
    }
    insight = client.get("/api/insights/i-1").get_json()
    assert insight["ticketRef"] == "UX-7"
    assert insight["status"] == "in_progress"

    assert client.post("/api/insights/i-1/jira").status_code == 400
    assert jira.created == ["i-1"]


@pytest.mark.usefixtures("saved_insights")
def test_jira_failure_is_reported(app, client):
    app.extensions["jira_client"] = FakeJira(error=TicketingError("401 Unauthorized"))

    assert client.post("/api/insights/i-1/jira").status_code == 502
    assert client.get("/api/insights/i-1").get_json()["ticketRef"] is None


def test_jira_for_missing_insight(client):
    assert client.post("/api/insights/missing/jira").status_code == 404


# analytics

@pytest.fixture
def navigation(graph_store):
    GraphBuilder(graph_store).build([
        make_event("u1", "s1", "/", 0),
        make_event("u1", "s1", "/a", 4),
        make_event("u1", "s1", "/b", 5),
        make_event("u2", "s1", "/", 0),
        make_event("u2", "s1", "/a", 2),
    ])


@pytest.mark.usefixtures("navigation")
def test_paths_from_start_page(client):
    body = client.get("/api/analytics/paths?startPage=/&maxLength=3").get_json()

    assert body["paths"] == [
        {"pages": ["/", "/a"], "frequency": 2},
        {"pages": ["/", "/a", "/b"], "frequency": 2},
    ]


def test_paths_rejects_out_of_range_length(client):
    assert client.get("/api/analytics/paths?maxLength=9").status_code == 400


@pytest.mark.usefixtures("navigation")
def test_page_performance(client):
    body = client.get("/api/analytics/pages/performance").get_json()

    assert body["metadata"]["unit"] == "milliseconds"
    # /b was seen once and both visits to / share a timestamp, so neither has an ordered pair
    assert [(p["page"], p["avgTime"], p["samples"]) for p in body["pages"]] == [("/a", 2000.0, 1)]


@pytest.mark.usefixtures("navigation")
def test_summary(client):
    body = client.get("/api/analytics/summary?startDate=2024-01-01T00:00:00Z&endDate=2024-01-02T00:00:00Z").get_json()

    assert body["period"] == {"start": "2024-01-01T00:00:00", "end": "2024-01-02T00:00:00"}
    assert set(body["painPoints"]) == {"dropoffs", "cycles", "underused"}
    assert body["painPoints"]["dropoffs"] == len(body["topDropoffs"])


def test_summary_rejects_bad_dates(client):
    assert client.get("/api/analytics/summary?startDate=yesterday").status_code == 400

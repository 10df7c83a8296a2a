from datetime import timedelta

import pytest

from db import db
from models import Insight, JobStatus, PainPointType
from services.errors import ConflictError, GraphWriteError, SourceFetchError
from tests.conftest import posthog_record
from utils import utcnow


def _funnel_records(users=10, finishing=2):
    """`users` people land on /checkout, only `finishing` of them reach /thanks."""
    now = utcnow() - timedelta(hours=1)
    records = []
    for i in range(users):
        records.append(posthog_record(f"user-{i}", f"s-{i}", "https://shop.io/", now))
        records.append(posthog_record(f"user-{i}", f"s-{i}", "https://shop.io/checkout", now + timedelta(seconds=5)))
        if i < finishing:
            records.append(posthog_record(f"user-{i}", f"s-{i}", "https://shop.io/thanks", now + timedelta(seconds=20)))
    return records


@pytest.fixture
def processor(app):
    return app.extensions["batch_processor"]


@pytest.fixture
def job_store(app):
    return app.extensions["batch_store"]


def test_successful_run_completes_and_is_archived(processor, job_store, event_source):
    event_source.records = _funnel_records()

    job = processor.run()

    assert job.status == JobStatus.COMPLETED
    assert job.error is None
    assert job.completed_at is not None
    assert job.metrics.events_processed == 22
    assert job.metrics.pain_points_detected >= 1
    assert job.metrics.insights_generated == job.metrics.pain_points_detected
    assert job.metrics.duration >= 0
    assert job_store.get_current_job() is None
    assert job_store.get_job_history()[0] is job


def test_run_stores_insights_and_summary(processor, event_source):
    event_source.records = _funnel_records()

    job = processor.run()

    assert db.session.query(Insight).count() == job.metrics.insights_generated
    assert job.summary["totalUsers"] == 10
    assert job.summary["totalEvents"] == 22
    assert job.summary["painPointsSummary"]["total"] == job.metrics.pain_points_detected
    assert PainPointType.DROPOFF.value in job.summary["painPointsSummary"]["byType"]


def test_fetch_window_covers_configured_hours(processor, event_source):
    processor.run()

    [(start, end)] = event_source.calls
    assert end - start == timedelta(hours=24)


def test_records_without_page_url_are_not_counted(processor, event_source):
    event_source.records = _funnel_records(users=1, finishing=0) + [{
        "event": "$identify",
        "timestamp": "2024-01-01T00:00:00Z",
        "distinct_id": "user-0",
        "properties": {},
    }]

    job = processor.run()

    assert job.metrics.events_processed == 2


def test_source_failure_fails_the_job_and_keeps_it_current(processor, job_store, event_source):
    event_source.error = SourceFetchError("PostHog events request failed: 503")

    with pytest.raises(SourceFetchError):
        processor.run()

    job = job_store.get_current_job()
    assert job.status == JobStatus.FAILED
    assert "503" in job.error
    assert job.completed_at is not None
    assert job_store.get_job_history() == []


def test_graph_failure_fails_the_job(processor, job_store, event_source, monkeypatch):
    event_source.records = _funnel_records(users=1)

    def broken(*args, **kwargs):
        raise GraphWriteError("Failed to write page")

    monkeypatch.setattr(processor.graph_store, "upsert_page", broken)

    with pytest.raises(GraphWriteError):
        processor.run()

    assert job_store.get_current_job().status == JobStatus.FAILED


def test_failed_run_does_not_block_the_next_one(processor, job_store, event_source):
    event_source.error = SourceFetchError("down")
    with pytest.raises(SourceFetchError):
        processor.run()

    event_source.error = None
    job = processor.run()

    assert job.status == JobStatus.COMPLETED
    assert job_store.get_current_job() is None


def test_second_start_while_running_conflicts(processor, job_store):
    running = processor.start()

    with pytest.raises(ConflictError) as excinfo:
        processor.start()

    assert excinfo.value.job_id == running.id
    forced = processor.start(force=True)
    assert job_store.get_current_job() is forced


def test_metrics_are_visible_while_the_run_is_in_progress(app, processor, job_store, event_source, fake_llm):
    event_source.records = _funnel_records()
    snapshots = []

    def reply(user_prompt):
        job = job_store.get_current_job()
        snapshots.append((job.status, job.metrics.events_processed, job.metrics.pain_points_detected))
        return '{"title": "t", "summary": "s", "recommendation": "r", "impact": "i"}'

    fake_llm.analysis_reply = reply
    processor.run()

    assert snapshots
    status, events_processed, pain_points_detected = snapshots[0]
    assert status == JobStatus.RUNNING
    assert events_processed == 22
    assert pain_points_detected >= 1


def test_history_keeps_last_hundred_runs(processor, job_store):
    jobs = [processor.run() for _ in range(101)]

    history = job_store.get_job_history(limit=200)

    assert len(history) == 100
    assert history[0] is jobs[-1]
    assert jobs[0] not in history


def test_run_in_background_completes_the_job(app, processor, job_store, event_source):
    event_source.records = _funnel_records(users=2, finishing=1)
    job = processor.start()

    thread = processor.run_in_background(app, job)
    thread.join(timeout=30)

    assert not thread.is_alive()
    assert job.status == JobStatus.COMPLETED
    assert job_store.get_job_history()[0] is job

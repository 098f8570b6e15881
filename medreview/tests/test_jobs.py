"""
Tests for background jobs and queue dispatch.

Redis is never touched: queues and the scheduler are mocked.
"""
from contextlib import contextmanager
from unittest.mock import MagicMock, patch

from medreview.api.medical_reviews import build_event_bus
from medreview.services.review_events import (
    AuditTrailSubscriber,
    QueueDispatchSubscriber,
    ReviewEvent,
    ReviewEventType,
)
from medreview.workers import jobs
from medreview.workers.worker import QUEUE_NAMES

from medreview.tests.conftest import BASE_TIME


class InMemoryScheduler:
    """Keeps scheduled jobs by id, like rq-scheduler's sorted set."""

    def __init__(self):
        self.jobs = {}
        self.cancelled = []

    def __contains__(self, job_id):
        return job_id in self.jobs

    def cancel(self, job_id):
        self.cancelled.append(job_id)
        self.jobs.pop(job_id, None)

    def schedule(self, id=None, **kwargs):
        job_id = id or f"job-{len(self.jobs) + len(self.cancelled)}"
        self.jobs[job_id] = kwargs
        return job_id


def sample_event():
    return ReviewEvent(
        type=ReviewEventType.BD_APPROVED,
        submission_id="s-1",
        brand_id="b-1",
        actor_id="bd-1",
        payload={"revenue_estimate": "50000"},
        occurred_at=BASE_TIME,
    )


class TestEventDispatch:
    """Events forwarded through RQ."""

    def test_enqueue_review_event(self):
        queue = MagicMock()
        with patch.object(jobs, "get_queue", return_value=queue) as get_queue:
            jobs.enqueue_review_event(sample_event().to_dict())

        get_queue.assert_called_once_with("default")
        queue.enqueue.assert_called_once_with(jobs.dispatch_review_event_job, sample_event().to_dict())

    def test_queue_subscriber_enqueues(self):
        with patch.object(jobs, "enqueue_review_event") as enqueue:
            QueueDispatchSubscriber()(sample_event())
        enqueue.assert_called_once_with(sample_event().to_dict())

    def test_dispatch_job_rebuilds_event(self):
        received = []
        jobs.worker_event_bus.subscribe(received.append)
        try:
            delivered = jobs.dispatch_review_event_job(sample_event().to_dict())
        finally:
            jobs.worker_event_bus.unsubscribe(received.append)

        assert received == [sample_event()]
        assert delivered == len(jobs.worker_event_bus.subscribers) + 1

    def test_build_event_bus_inline(self):
        bus = build_event_bus(MagicMock())
        assert len(bus.subscribers) == 1
        assert isinstance(bus.subscribers[0], AuditTrailSubscriber)

    def test_build_event_bus_queue_mode(self):
        with patch("medreview.api.medical_reviews.settings") as settings:
            settings.EVENT_DISPATCH = "queue"
            bus = build_event_bus(MagicMock())
        assert [type(s) for s in bus.subscribers] == [AuditTrailSubscriber, QueueDispatchSubscriber]


class TestGradeRevalidation:
    """Periodic grade revalidation job."""

    def test_job_runs_in_db_context(self):
        session = MagicMock()

        @contextmanager
        def fake_context():
            yield session

        result = {"checked": 2, "drifted": 1, "repaired": 1}
        with patch("medreview.db.session.get_db_context", fake_context), \
                patch("medreview.services.review_service.revalidate_grades", return_value=result) as run:
            assert jobs.revalidate_grades_job() == result

        store = run.call_args.args[0]
        assert store.db is session

    def test_enqueue_on_low_queue(self):
        queue = MagicMock()
        with patch.object(jobs, "get_queue", return_value=queue) as get_queue:
            jobs.enqueue_grade_revalidation()
        get_queue.assert_called_once_with("low")
        queue.enqueue.assert_called_once_with(jobs.revalidate_grades_job)

    def test_schedule_uses_configured_interval(self):
        scheduler = MagicMock()
        with patch.object(jobs, "get_scheduler", return_value=scheduler), \
                patch.object(jobs.settings, "GRADE_REVALIDATION_INTERVAL_MINUTES", 60):
            jobs.schedule_grade_revalidation()

        kwargs = scheduler.schedule.call_args.kwargs
        assert kwargs["func"] is jobs.revalidate_grades_job
        assert kwargs["interval"] == 3600
        assert kwargs["repeat"] is None
        assert kwargs["queue_name"] == "low"
        assert kwargs["id"] == jobs.GRADE_REVALIDATION_JOB_ID

    def test_rescheduling_keeps_one_job(self):
        scheduler = InMemoryScheduler()
        with patch.object(jobs, "get_scheduler", return_value=scheduler):
            jobs.schedule_grade_revalidation()
            jobs.schedule_grade_revalidation()

        assert list(scheduler.jobs) == [jobs.GRADE_REVALIDATION_JOB_ID]
        assert scheduler.cancelled == [jobs.GRADE_REVALIDATION_JOB_ID]


def test_worker_listens_on_job_queues():
    assert set(QUEUE_NAMES) >= {"default", "low"}

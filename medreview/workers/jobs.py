"""
Background job definitions.
"""
from redis import Redis
from rq import Queue
from rq_scheduler import Scheduler
from datetime import datetime, timedelta, timezone

from medreview.core.config import settings
from medreview.core.logging import get_logger
from medreview.services.review_events import ReviewEvent, ReviewEventBus

logger = get_logger(__name__)

# Subscribers that run inside the worker process when EVENT_DISPATCH=queue
worker_event_bus = ReviewEventBus()


@worker_event_bus.subscribe
def log_review_event(event: ReviewEvent):
    logger.info(
        f"Review event {event.type.value} for submission {event.submission_id} "
        f"(brand {event.brand_id})"
    )


def get_queue(name: str = "default") -> Queue:
    """Get RQ queue."""
    redis_conn = Redis.from_url(settings.REDIS_URL)
    return Queue(name, connection=redis_conn)


def get_scheduler() -> Scheduler:
    """Get RQ scheduler."""
    redis_conn = Redis.from_url(settings.REDIS_URL)
    return Scheduler(connection=redis_conn)


# ============= JOB FUNCTIONS =============

def dispatch_review_event_job(event_data: dict) -> int:
    """Deliver a queued review event to the worker-side subscribers."""
    event = ReviewEvent.from_dict(event_data)
    return worker_event_bus.publish(event)


def revalidate_grades_job() -> dict:
    """Background job to recompute cached grades and repair drift."""
    from medreview.db.session import get_db_context
    from medreview.services.review_service import revalidate_grades
    from medreview.services.review_store import SqlSubmissionStore

    logger.info("Revalidating medical review grades")

    with get_db_context() as db:
        result = revalidate_grades(SqlSubmissionStore(db))

    logger.info(
        f"Grade revalidation done: {result['checked']} checked, "
        f"{result['drifted']} drifted, {result['repaired']} repaired"
    )
    return result


# ============= QUEUE HELPERS =============

def enqueue_review_event(event_data: dict):
    """Queue a review event for out-of-process subscribers."""
    queue = get_queue("default")
    return queue.enqueue(dispatch_review_event_job, event_data)


def enqueue_grade_revalidation():
    """Queue a one-off grade revalidation."""
    queue = get_queue("low")
    return queue.enqueue(revalidate_grades_job)


GRADE_REVALIDATION_JOB_ID = "medreview:revalidate-grades"


def schedule_grade_revalidation():
    """
    Register the periodic grade revalidation with rq-scheduler.

    The job has a fixed id; an existing registration is cancelled first so
    worker restarts replace the schedule rather than add to it.
    """
    scheduler = get_scheduler()
    interval = settings.GRADE_REVALIDATION_INTERVAL_MINUTES * 60

    if GRADE_REVALIDATION_JOB_ID in scheduler:
        scheduler.cancel(GRADE_REVALIDATION_JOB_ID)
        logger.info("Replacing existing grade revalidation schedule")

    job = scheduler.schedule(
        id=GRADE_REVALIDATION_JOB_ID,
        scheduled_time=datetime.now(timezone.utc) + timedelta(minutes=1),
        func=revalidate_grades_job,
        interval=interval,
        repeat=None,
        queue_name="low",
    )

    logger.info(f"Scheduled grade revalidation every {interval}s")
    return job

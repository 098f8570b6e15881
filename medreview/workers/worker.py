"""
Background worker using RQ (Redis Queue).
"""
from redis import Redis
from rq import Worker, Queue

from medreview.core.config import settings
from medreview.core.logging import setup_logging, get_logger

setup_logging()
logger = get_logger(__name__)

QUEUE_NAMES = ("high", "default", "low")


def run_worker(with_scheduler: bool = True):
    """Start the RQ worker."""
    redis_conn = Redis.from_url(settings.REDIS_URL)

    worker = Worker(
        [Queue(name, connection=redis_conn) for name in QUEUE_NAMES],
        connection=redis_conn,
        name="medreview-worker",
    )

    if with_scheduler:
        from medreview.workers.jobs import schedule_grade_revalidation
        schedule_grade_revalidation()

    logger.info("Starting medical review worker...")
    worker.work()


if __name__ == "__main__":
    run_worker()

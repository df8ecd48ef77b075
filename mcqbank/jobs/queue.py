import logging
from typing import Optional

from rq import Queue
from redis import Redis
from redis.exceptions import RedisError

from mcqbank.core.config import settings

logger = logging.getLogger(__name__)

redis = Redis.from_url(settings.REDIS_URL)
queue = Queue(settings.RQ_QUEUE, connection=redis)

RECOUNT_JOB = "mcqbank.jobs.recount_job.recount_job"


def enqueue_recount(hierarchy_item_id: Optional[str] = None):
    """Queue a question-count reconciliation; None recounts every legacy node.

    Returns the job, or None when the queue is unreachable.
    """
    try:
        job = queue.enqueue(RECOUNT_JOB, hierarchy_item_id, job_timeout=settings.RECOUNT_JOB_TIMEOUT)
    except RedisError:
        logger.exception("Could not enqueue recount for %s", hierarchy_item_id or "all nodes")
        return None
    logger.info("Enqueued recount job %s for %s", job.get_id(), hierarchy_item_id or "all nodes")
    return job

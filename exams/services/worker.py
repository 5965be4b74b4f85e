"""
Correction queue on Redis Queue (RQ).

Web and admin processes enqueue corrections; ``manage.py run_correction_worker``
consumes them. A Redis lock per result keeps two corrections of the same result
from running at once, whichever process they run in.
"""
import logging
from contextlib import contextmanager

from django.conf import settings
from django.db import close_old_connections
from redis import Redis
from redis.exceptions import LockError
from rq import Queue, Worker

from exams.exceptions import CorrectionError, CorrectionInProgress

logger = logging.getLogger(__name__)

LOCK_PREFIX = 'correction:'


def _config():
    return settings.CORRECTION


def get_redis_connection() -> Redis:
    return Redis.from_url(_config().get('REDIS_URL', 'redis://localhost:6379/0'))


def get_correction_queue(connection: Redis = None) -> Queue:
    return Queue(_config().get('QUEUE_NAME', 'corrections'), connection=connection or get_redis_connection())


@contextmanager
def result_lock(result_id, connection: Redis = None):
    """Hold the Redis lock ``correction:<result_id>`` for the duration of a correction."""
    config = _config()
    lock = (connection or get_redis_connection()).lock(
        f"{LOCK_PREFIX}{result_id}",
        timeout=config.get('LOCK_TIMEOUT', 3600),
        blocking_timeout=config.get('LOCK_WAIT', 600)
    )
    if not lock.acquire():
        raise CorrectionInProgress(result_id)
    try:
        yield
    finally:
        try:
            lock.release()
        except LockError:
            logger.warning(f"Lock on result {result_id} expired before the correction finished")


def enqueue_correction(result_id, payload=None, queue: Queue = None):
    queue = queue or get_correction_queue()
    job = queue.enqueue(
        process_correction,
        result_id,
        payload,
        job_timeout=_config().get('LOCK_TIMEOUT', 3600),
        result_ttl=86400,
        description=f"correct result {result_id}"
    )
    logger.info(f"Queued correction of result {result_id} as job {job.id}")
    return job


def process_correction(result_id, payload=None):
    """
    Correct one result (called by the RQ worker).

    Correction errors are logged and re-raised so the job lands in the failed
    job registry.
    """
    from .correction import CorrectionOrchestrator

    close_old_connections()
    try:
        outcome = CorrectionOrchestrator().correct_result(result_id, payload)
    except CorrectionError as e:
        logger.error(f"Correction of result {result_id} rejected: {e}")
        raise
    finally:
        close_old_connections()
    return {'result_id': outcome.result_id, 'score': outcome.score, 'percentage': outcome.percentage}


def run_worker(burst: bool = False, connection: Redis = None):
    connection = connection or get_redis_connection()
    queue = get_correction_queue(connection)
    logger.info(f"Starting correction worker on queue '{queue.name}' (burst={burst})")
    worker = Worker([queue], connection=connection)
    worker.work(burst=burst)
    return worker

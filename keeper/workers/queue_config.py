# ABOUTME: RQ queue setup for running turn pipelines in worker processes.
# ABOUTME: One turn queue; jobs carry the pipeline timeout and the result/failure TTL policy.

from typing import Any

from loguru import logger
from redis import Redis
from rq import Queue

from keeper.persistence.connection import create_redis_connection

TURN_QUEUE = "turns"

JOB_TIMEOUT = 300  # One full pipeline, all collaborator calls included
RESULT_TTL = 300
FAILURE_TTL = 600  # Failed jobs stay inspectable a little longer


def create_queue_connection(url: str = "redis://localhost:6379") -> Redis:
    """
    Redis connection for RQ, which stores pickled payloads and so must not decode.

    Raises:
        ConnectionError: When Redis is not accessible
    """
    return create_redis_connection(url, decode_responses=False)


def get_turn_queue(
    redis_conn: Redis,
    queue_name: str = TURN_QUEUE,
    default_timeout: int = JOB_TIMEOUT,
) -> Queue:
    """
    Queue that `rq worker <queue_name>` processes turn jobs from.

    Args:
        redis_conn: Undecoded Redis connection (see create_queue_connection)
        queue_name: Queue name (default: "turns")
        default_timeout: Job timeout applied when a job sets none

    Returns:
        RQ Queue
    """
    queue = Queue(queue_name, connection=redis_conn, default_timeout=default_timeout)
    logger.info(f"Turn queue '{queue_name}' ready (timeout={default_timeout}s)")
    return queue


def enqueue_job(
    queue: Queue,
    func: Any,
    args: tuple = (),
    kwargs: dict | None = None,
    job_timeout: int = JOB_TIMEOUT,
) -> Any:
    """
    Enqueue `func` (a callable or its dotted path) under the standard TTL policy.

    Returns:
        RQ Job
    """
    job = queue.enqueue(
        func,
        args=args,
        kwargs=kwargs or {},
        job_timeout=job_timeout,
        result_ttl=RESULT_TTL,
        failure_ttl=FAILURE_TTL,
    )
    name = func if isinstance(func, str) else func.__name__
    logger.debug(f"Enqueued {name} as job {job.id} on '{queue.name}' (timeout={job_timeout}s)")
    return job

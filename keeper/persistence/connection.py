# ABOUTME: Redis connection factory shared by the stores and the RQ queue.
# ABOUTME: Stores read and write JSON text, so their client decodes responses to str.

from loguru import logger
from redis import Redis


def create_redis_connection(url: str = "redis://localhost:6379", decode_responses: bool = True) -> Redis:
    """
    Create and ping a Redis connection.

    Args:
        url: Redis connection URL (default: redis://localhost:6379)
        decode_responses: Return str instead of bytes; RQ needs raw bytes

    Returns:
        Redis connection instance

    Raises:
        ConnectionError: When Redis is not accessible
    """
    try:
        redis_conn = Redis.from_url(url, decode_responses=decode_responses)
        redis_conn.ping()
    except Exception as e:
        logger.error(f"Failed to connect to Redis at {url}: {e}")
        raise ConnectionError(f"Redis connection failed: {e}") from e

    logger.info(f"Redis connection established: {url} (decode_responses={decode_responses})")
    return redis_conn

"""
Queue Client

Redis job queue shared by the web app (producer) and the retouch worker.

Layout:
    retouch:jobs:pending          sorted set of job ids, score = priority
    retouch:jobs:processing       set of job ids being worked on
    retouch:jobs:{id}:data        hash with status, parameters, progress, result
    retouch:jobs:{id}:logs        list of JSON log entries
"""

import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Any

import redis

from .config import Settings, get_settings
from .schemas import PipelineProgress

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class QueueClient:
    """Redis job queue client."""

    QUEUE_PREFIX = "retouch:jobs"
    PENDING_QUEUE = f"{QUEUE_PREFIX}:pending"
    PROCESSING_SET = f"{QUEUE_PREFIX}:processing"

    def __init__(self, settings: Settings | None = None, connection: redis.Redis | None = None):
        """Initialize Redis connection."""
        self.settings = settings or get_settings()
        self.redis = connection or redis.from_url(
            self.settings.redis_url,
            decode_responses=True,
        )
        self.worker_id = self.settings.worker_id

    def _job_key(self, job_id: str) -> str:
        return f"{self.QUEUE_PREFIX}:{job_id}:data"

    def enqueue_job(
        self,
        job_type: str,
        parameters: dict[str, Any],
        priority: float = 0,
        job_id: str | None = None,
    ) -> str:
        """
        Add a job to the pending queue. Lower priority values run first.

        Returns:
            Job identifier
        """
        job_id = job_id or str(uuid.uuid4())
        self.redis.hset(self._job_key(job_id), mapping={
            "id": job_id,
            "type": job_type,
            "status": "pending",
            "parameters": json.dumps(parameters),
            "created_at": _now(),
        })
        self.redis.zadd(self.PENDING_QUEUE, {job_id: priority})
        logger.info(f"Enqueued job {job_id} type={job_type}")
        return job_id

    def dequeue(self) -> dict[str, Any] | None:
        """
        Get the next job from the queue.

        Returns:
            Job data dict or None if queue is empty
        """
        try:
            result = self.redis.zpopmin(self.PENDING_QUEUE, count=1)
            if not result:
                return None

            job_id = result[0][0]
            job_key = self._job_key(job_id)

            job_data = self.redis.hgetall(job_key)
            if not job_data:
                logger.warning(f"Job {job_id} not found in data store")
                return None

            self.redis.sadd(self.PROCESSING_SET, job_id)
            self.redis.hset(job_key, mapping={
                "status": "processing",
                "worker_id": self.worker_id,
                "started_at": _now(),
            })

            job_data["id"] = job_id
            job_data["parameters"] = json.loads(job_data.get("parameters") or "{}")

            logger.info(f"Dequeued job {job_id} type={job_data.get('type')}")
            return job_data

        except (redis.RedisError, json.JSONDecodeError) as e:
            logger.error(f"Failed to dequeue job: {e}")
            return None

    def complete_job(
        self,
        job_id: str,
        result: dict[str, Any] | None = None,
        error: str | None = None,
    ) -> bool:
        """
        Mark a job as completed or failed.

        Args:
            job_id: Job identifier
            result: Job result data (if successful)
            error: Error message (if failed)

        Returns:
            True if status was updated
        """
        status = "failed" if error else "completed"
        try:
            updates = {
                "status": status,
                "completed_at": _now(),
            }
            if result is not None:
                updates["result"] = json.dumps(result)
            if error:
                updates["error"] = error

            self.redis.hset(self._job_key(job_id), mapping=updates)
            self.redis.srem(self.PROCESSING_SET, job_id)

            logger.info(f"Job {job_id} {status}")
            return True

        except redis.RedisError as e:
            logger.error(f"Failed to complete job: {e}")
            return False

    def update_progress(self, job_id: str, snapshot: PipelineProgress) -> bool:
        """
        Store the latest progress snapshot on the job. Each call replaces the
        previous snapshot.

        Returns:
            True if updated successfully
        """
        try:
            self.redis.hset(self._job_key(job_id), mapping={
                "progress": str(snapshot.overall_progress),
                "current_step": snapshot.message,
                "pipeline_progress": snapshot.model_dump_json(by_alias=True),
            })
            return True

        except redis.RedisError as e:
            logger.error(f"Failed to update progress: {e}")
            return False

    def add_log(self, job_id: str, message: str, level: str = "info") -> bool:
        """
        Add a log entry to a job.

        Args:
            job_id: Job identifier
            message: Log message
            level: Log level (info, warning, error)

        Returns:
            True if added successfully
        """
        try:
            log_entry = json.dumps({
                "timestamp": _now(),
                "level": level,
                "message": message,
            })
            self.redis.rpush(f"{self.QUEUE_PREFIX}:{job_id}:logs", log_entry)
            return True

        except redis.RedisError as e:
            logger.error(f"Failed to add log: {e}")
            return False

    def health_check(self) -> bool:
        """Check Redis connection health."""
        try:
            self.redis.ping()
            return True
        except redis.RedisError:
            return False


# Singleton
_queue_client: QueueClient | None = None


def get_queue_client() -> QueueClient:
    """Get or create queue client singleton."""
    global _queue_client
    if _queue_client is None:
        _queue_client = QueueClient()
    return _queue_client

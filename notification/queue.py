"""
Task queue used by the dispatcher.

`enqueue(task_kind, payload, delay=None)` is the whole contract. Tasks are
at-least-once; their handlers live in `notification.tasks` and must be
idempotent.

RQTaskQueue hands tasks to Redis/RQ workers. InlineTaskQueue keeps them in
memory and runs them on `drain()`, which is how sync mode works (drain after
the post's transaction commits) and how tests inspect what was enqueued.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional

from redis import Redis
from rq import Queue, Retry

from core.config_loader import QueueConfig

logger = logging.getLogger(__name__)

TASK_PUSH_NOTIFICATION = 'push_notification'
TASK_GROUP_SMTP_EMAIL = 'group_smtp_email'
TASK_USER_EMAIL = 'user_email'
TASK_POST_ALERT = 'post_alert'

# RQ resolves these by import path in the worker process
TASK_FUNCTIONS = {
    TASK_PUSH_NOTIFICATION: 'notification.tasks.process_push_task',
    TASK_GROUP_SMTP_EMAIL: 'notification.tasks.process_group_smtp_task',
    TASK_USER_EMAIL: 'notification.tasks.process_user_email_task',
    TASK_POST_ALERT: 'notification.tasks.process_post_alert_task',
}


@dataclass
class QueuedTask:
    kind: str
    payload: Dict[str, Any]
    delay: Optional[int] = None


class TaskQueue(ABC):
    @abstractmethod
    def enqueue(self, task_kind: str, payload: Dict[str, Any], delay: Optional[int] = None) -> Optional[str]:
        """Submit a task; returns the job id when the backend has one."""
        pass


class RQTaskQueue(TaskQueue):
    def __init__(self, redis_conn: Redis, queue_name: str = 'notifications'):
        self.redis_conn = redis_conn
        self.queue = Queue(queue_name, connection=redis_conn)

    def enqueue(self, task_kind: str, payload: Dict[str, Any], delay: Optional[int] = None) -> Optional[str]:
        func = TASK_FUNCTIONS[task_kind]
        # Retry 3 times with increasing delays
        retry_policy = Retry(max=3, interval=[30, 60, 120])
        if delay:
            job = self.queue.enqueue_in(
                timedelta(seconds=delay),
                func,
                payload,
                job_timeout='5m',
                result_ttl=86400,
                retry=retry_policy
            )
        else:
            job = self.queue.enqueue(
                func,
                payload,
                job_timeout='5m',
                result_ttl=86400,
                retry=retry_policy
            )
        logger.info(f"Queued {task_kind} as job {job.id}" + (f" (delay {delay}s)" if delay else ""))
        return job.id

    def get_queue_status(self) -> Dict[str, Any]:
        try:
            return {
                'status': 'active',
                'queue_length': len(self.queue),
                'redis_connected': self.redis_conn.ping()
            }
        except Exception as e:
            return {'status': 'error', 'error': str(e)}


class InlineTaskQueue(TaskQueue):
    def __init__(self, handlers: Optional[Dict[str, Callable]] = None, handler_kwargs: Optional[Dict[str, Any]] = None):
        self.tasks: List[QueuedTask] = []
        self._handlers = handlers
        self.handler_kwargs = handler_kwargs or {}

    def enqueue(self, task_kind: str, payload: Dict[str, Any], delay: Optional[int] = None) -> Optional[str]:
        if task_kind not in TASK_FUNCTIONS:
            raise ValueError(f"Unknown task kind: {task_kind}")
        self.tasks.append(QueuedTask(task_kind, payload, delay))
        logger.info(f"Recorded {task_kind} for inline processing")
        return None

    def of_kind(self, task_kind: str) -> List[QueuedTask]:
        return [t for t in self.tasks if t.kind == task_kind]

    def drain(self) -> List[Any]:
        """
        Run pending tasks in submission order, ignoring delays.

        A failing task does not stop the ones queued after it. Once every
        task has run, the first failure is raised.
        """
        handlers = self._handlers
        if handlers is None:
            from notification.tasks import TASK_HANDLERS
            handlers = TASK_HANDLERS

        results = []
        failures = []
        while self.tasks:
            task = self.tasks.pop(0)
            try:
                results.append(handlers[task.kind](task.payload, **self.handler_kwargs))
            except Exception as e:
                logger.exception(f"Inline {task.kind} task failed: {e}")
                failures.append(e)

        if failures:
            raise failures[0]
        return results

    def get_queue_status(self) -> Dict[str, Any]:
        return {'status': 'sync_mode', 'queue_length': len(self.tasks)}


def build_task_queue(config: QueueConfig) -> TaskQueue:
    """RQ when enabled and Redis answers; otherwise inline (sync mode)."""
    if not config.use_async_queue:
        logger.info("Async queue disabled via config. Using sync mode.")
        return InlineTaskQueue()

    redis_url = config.redis_url or 'redis://localhost:6379/0'
    try:
        redis_conn = Redis.from_url(redis_url)
        # Validate connection with ping before using
        redis_conn.ping()
    except Exception as e:
        logger.error(f"Redis connection failed: {e}. Falling back to sync mode.")
        return InlineTaskQueue()

    logger.info("Task queue connected to Redis")
    return RQTaskQueue(redis_conn, config.queue_name)

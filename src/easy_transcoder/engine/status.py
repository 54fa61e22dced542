"""Redis-backed broadcaster for task snapshots."""
from __future__ import annotations

import json
import logging
import time
from datetime import datetime, timezone
from typing import Any, Optional

import redis
from redis import Redis
from redis.exceptions import RedisError

from .task import TaskSnapshot

LOGGER = logging.getLogger(__name__)

_RECONNECT_BACKOFF_SECONDS = 30.0


class TaskStatusBroadcaster:
    """Publish task snapshots to Redis for dashboards outside this process.

    Snapshots are written to ``<prefix>:<namespace>:task:<id>`` and, when a
    channel is configured, published on it. Nothing is ever read back.
    """

    def __init__(
        self,
        *,
        redis_url: Optional[str],
        prefix: str = "easy-transcoder",
        namespace: str = "tasks",
        channel: Optional[str] = None,
        ttl_seconds: int = 0,
        client: Optional[Redis] = None,
    ) -> None:
        self._redis_url = (redis_url or "").strip()
        self._prefix = prefix.strip() or "easy-transcoder"
        self._namespace = namespace.strip() or "tasks"
        self._channel = channel.strip() if isinstance(channel, str) and channel.strip() else None
        self._ttl = max(0, int(ttl_seconds))
        self._client: Optional[Redis] = client
        self._last_error: Optional[str] = None
        self._retry_at = 0.0
        if self._client is None:
            self._connect()

    # ------------------------------------------------------------------
    # Lifecycle helpers
    # ------------------------------------------------------------------
    def _connect(self) -> None:
        if not self._redis_url:
            self._last_error = "Redis URL not configured"
            self._client = None
            return
        try:
            client = redis.from_url(
                self._redis_url,
                socket_timeout=3,
                health_check_interval=30,
            )
            client.ping()
        except (RedisError, OSError) as exc:
            LOGGER.warning("Failed to connect to Redis for task broadcasting: %s", exc)
            self._client = None
            self._last_error = f"Failed to connect to Redis: {exc}"
            self._retry_at = time.monotonic() + _RECONNECT_BACKOFF_SECONDS
            return
        self._client = client
        self._last_error = None

    def _ensure_client(self) -> Optional[Redis]:
        client = self._client
        if client is not None:
            return client
        # Back off after a failed connect.
        if time.monotonic() < self._retry_at:
            return None
        self._connect()
        return self._client

    def close(self) -> None:
        client = self._client
        if client is None:
            return
        try:
            client.close()
        except RedisError:
            LOGGER.debug("Error closing Redis client", exc_info=True)
        self._client = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    @property
    def available(self) -> bool:
        return self._ensure_client() is not None

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    def task_key(self, task_id: int) -> str:
        return f"{self._prefix}:{self._namespace}:task:{task_id}"

    def publish(self, snapshot: TaskSnapshot) -> None:
        """Persist and broadcast the latest snapshot of a task."""

        client = self._ensure_client()
        if client is None:
            return
        payload = self._serialize(snapshot)
        try:
            if self._ttl > 0:
                client.set(self.task_key(snapshot.id), payload, ex=self._ttl)
            else:
                client.set(self.task_key(snapshot.id), payload)
            if self._channel:
                client.publish(self._channel, payload)
        except RedisError as exc:
            self._last_error = f"Failed to publish task {snapshot.id}: {exc}"
            LOGGER.debug("Failed to publish task %s to Redis: %s", snapshot.id, exc)
            self.close()
            return
        self._last_error = None

    @staticmethod
    def _serialize(snapshot: TaskSnapshot) -> str:
        payload: dict[str, Any] = {
            "task": snapshot.to_dict(),
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }
        return json.dumps(payload, ensure_ascii=False, separators=(",", ":"))


__all__ = ["TaskStatusBroadcaster"]

"""
deck_elites/services/channel.py

Coordination channels between the search orchestrator and its workers.

Three logical channels, polled by both sides:
- Presence: a worker announces itself once; the orchestrator registers it
  and removes the announcement.
- Job: the orchestrator places one job per worker; the worker reads it and
  deletes it, which signals that work has started.
- Result: the worker publishes one complete result per job. A worker is
  done only when its result exists AND its job is gone, so a stale result
  is never mistaken for the answer to a newer job.

A shared "search active" marker gates every loop. Removing it is advisory:
workers finish their current job (or not) and then exit.

At most one job is in flight per worker. There is no timeout, retry or
failure detection; a dead worker strands its job forever.
"""

from __future__ import annotations

import logging
import os
import re
from abc import ABC, abstractmethod
from pathlib import Path

from .messages import JobDescriptor, ResultRecord, decode_message, encode_message

logger = logging.getLogger(__name__)


class WorkerChannel(ABC):
    """
    Abstract base for orchestrator/worker transports.

    Only the orchestrator writes jobs and consumes results; only a worker
    consumes its own job and writes its own result.
    """

    # Orchestrator side

    @abstractmethod
    def open_search(self, description: list[str]) -> None:
        """Create the search-active marker."""
        pass

    @abstractmethod
    def close_search(self) -> None:
        """Remove the search-active marker."""
        pass

    @abstractmethod
    def discover_workers(self) -> list[int]:
        """Return newly announced worker ids and consume their announcements."""
        pass

    @abstractmethod
    def send_job(self, worker_id: int, job: JobDescriptor) -> None:
        """Place a job for a worker."""
        pass

    @abstractmethod
    def is_job_done(self, worker_id: int) -> bool:
        """True when the worker's result exists and its job has been consumed."""
        pass

    @abstractmethod
    def receive_result(self, worker_id: int) -> ResultRecord:
        """Read and remove a worker's result."""
        pass

    # Worker side

    @abstractmethod
    def announce(self, worker_id: int) -> None:
        """Mark a worker as ready to accept jobs."""
        pass

    @abstractmethod
    def is_search_active(self) -> bool:
        pass

    @abstractmethod
    def has_job(self, worker_id: int) -> bool:
        pass

    @abstractmethod
    def take_job(self, worker_id: int) -> JobDescriptor:
        """Read and remove this worker's job."""
        pass

    @abstractmethod
    def publish_result(self, worker_id: int, result: ResultRecord) -> None:
        """Publish a complete result for this worker's current job."""
        pass


WORKER_MARKER_PATTERN = re.compile(r"^worker-(\d+)\.txt$")


class FilesystemChannel(WorkerChannel):
    """
    Channel over a shared directory.

    Layout under ``work_dir``::

        active/search.txt               search-active marker
        active/worker-0007.txt          presence marker of worker 7
        boxes/deck-0007-inbox.json      job for worker 7
        boxes/deck-0007-outbox.json     result from worker 7

    Jobs and results are written to a hidden temporary file and renamed into
    place, so readers never see a partial file.
    """

    def __init__(self, work_dir: str | Path = ".", message_format: str = "json"):
        if message_format not in ("json", "text"):
            raise ValueError(f"Unknown message format: {message_format}")

        self.work_dir = Path(work_dir)
        self.message_format = message_format
        self.extension = "json" if message_format == "json" else "txt"

        self.active_dir = self.work_dir / "active"
        self.boxes_dir = self.work_dir / "boxes"
        self.search_path = self.active_dir / "search.txt"

        self.active_dir.mkdir(parents=True, exist_ok=True)
        self.boxes_dir.mkdir(parents=True, exist_ok=True)

    def worker_path(self, worker_id: int) -> Path:
        return self.active_dir / f"worker-{worker_id:04d}.txt"

    def inbox_path(self, worker_id: int) -> Path:
        return self.boxes_dir / f"deck-{worker_id:04d}-inbox.{self.extension}"

    def outbox_path(self, worker_id: int) -> Path:
        return self.boxes_dir / f"deck-{worker_id:04d}-outbox.{self.extension}"

    def _publish(self, path: Path, text: str) -> None:
        tmp_path = path.with_name(f".{path.name}.tmp")
        tmp_path.write_text(text, encoding="utf-8")
        os.replace(tmp_path, path)

    def open_search(self, description: list[str]) -> None:
        self._publish(self.search_path, "".join(f"{line}\n" for line in description))

    def close_search(self) -> None:
        self.search_path.unlink(missing_ok=True)

    def discover_workers(self) -> list[int]:
        found = []
        for path in sorted(self.active_dir.iterdir()):
            match = WORKER_MARKER_PATTERN.match(path.name)
            if match is None:
                continue
            worker_id = int(match.group(1))
            path.unlink()
            found.append(worker_id)
            logger.info(f"Found worker {worker_id}")
        return found

    def send_job(self, worker_id: int, job: JobDescriptor) -> None:
        self._publish(self.inbox_path(worker_id), encode_message(job, self.message_format))

    def is_job_done(self, worker_id: int) -> bool:
        return (
            self.outbox_path(worker_id).exists()
            and not self.inbox_path(worker_id).exists()
        )

    def receive_result(self, worker_id: int) -> ResultRecord:
        path = self.outbox_path(worker_id)
        data = path.read_text(encoding="utf-8")
        path.unlink()
        return decode_message(ResultRecord, data, self.message_format)

    def announce(self, worker_id: int) -> None:
        self._publish(self.worker_path(worker_id), "Hail!\n")

    def is_search_active(self) -> bool:
        return self.search_path.exists()

    def has_job(self, worker_id: int) -> bool:
        return self.inbox_path(worker_id).exists()

    def take_job(self, worker_id: int) -> JobDescriptor:
        path = self.inbox_path(worker_id)
        data = path.read_text(encoding="utf-8")
        path.unlink()
        return decode_message(JobDescriptor, data, self.message_format)

    def publish_result(self, worker_id: int, result: ResultRecord) -> None:
        self._publish(self.outbox_path(worker_id), encode_message(result, self.message_format))


class RedisChannel(WorkerChannel):
    """
    Channel over Redis keys, for workers that do not share a filesystem.

    Presence is a set of worker ids; jobs, results and the search marker are
    plain string keys. A single SET is atomic, so no temporary keys are needed.
    """

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379",
        key_prefix: str = "deck_elites:",
        message_format: str = "json",
        client=None,
    ):
        self.redis_url = redis_url
        self.key_prefix = key_prefix
        self.message_format = message_format
        self._redis = client

        self.workers_key = f"{key_prefix}active:workers"
        self.search_key = f"{key_prefix}active:search"

    def _get_redis(self):
        """Lazy connection to Redis."""
        if self._redis is None:
            try:
                import redis
                self._redis = redis.from_url(self.redis_url, decode_responses=True)
                self._redis.ping()
                logger.info(f"Connected to Redis at {self.redis_url}")
            except ImportError as err:
                raise ImportError(
                    "redis package required for RedisChannel. "
                    "Install with: pip install redis"
                ) from err
        return self._redis

    def inbox_key(self, worker_id: int) -> str:
        return f"{self.key_prefix}inbox:{worker_id:04d}"

    def outbox_key(self, worker_id: int) -> str:
        return f"{self.key_prefix}outbox:{worker_id:04d}"

    def open_search(self, description: list[str]) -> None:
        self._get_redis().set(self.search_key, "\n".join(description))

    def close_search(self) -> None:
        self._get_redis().delete(self.search_key)

    def discover_workers(self) -> list[int]:
        r = self._get_redis()
        members = r.smembers(self.workers_key)
        found = []
        for member in sorted(members, key=int):
            r.srem(self.workers_key, member)
            found.append(int(member))
            logger.info(f"Found worker {int(member)}")
        return found

    def send_job(self, worker_id: int, job: JobDescriptor) -> None:
        self._get_redis().set(self.inbox_key(worker_id), encode_message(job, self.message_format))

    def is_job_done(self, worker_id: int) -> bool:
        r = self._get_redis()
        return bool(r.exists(self.outbox_key(worker_id))) and not r.exists(self.inbox_key(worker_id))

    def receive_result(self, worker_id: int) -> ResultRecord:
        r = self._get_redis()
        data = r.get(self.outbox_key(worker_id))
        r.delete(self.outbox_key(worker_id))
        return decode_message(ResultRecord, data, self.message_format)

    def announce(self, worker_id: int) -> None:
        self._get_redis().sadd(self.workers_key, str(worker_id))

    def is_search_active(self) -> bool:
        return bool(self._get_redis().exists(self.search_key))

    def has_job(self, worker_id: int) -> bool:
        return bool(self._get_redis().exists(self.inbox_key(worker_id)))

    def take_job(self, worker_id: int) -> JobDescriptor:
        r = self._get_redis()
        data = r.get(self.inbox_key(worker_id))
        r.delete(self.inbox_key(worker_id))
        return decode_message(JobDescriptor, data, self.message_format)

    def publish_result(self, worker_id: int, result: ResultRecord) -> None:
        self._get_redis().set(self.outbox_key(worker_id), encode_message(result, self.message_format))


def create_channel(
    backend: str = "filesystem",
    work_dir: str | Path = ".",
    message_format: str = "json",
    redis_url: str = "redis://localhost:6379",
    **kwargs
) -> WorkerChannel:
    """
    Factory function to create a worker channel.

    Args:
        backend: "filesystem" or "redis"
        work_dir: Shared directory (filesystem backend)
        message_format: "json" or "text"
        redis_url: Redis connection URL (redis backend)
        **kwargs: Additional backend-specific options

    Returns:
        WorkerChannel instance
    """
    if backend == "filesystem":
        return FilesystemChannel(work_dir=work_dir, message_format=message_format)
    elif backend == "redis":
        return RedisChannel(redis_url=redis_url, message_format=message_format, **kwargs)
    else:
        raise ValueError(f"Unknown backend: {backend}")

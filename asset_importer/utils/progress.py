import json
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import redis

from asset_importer.config import settings
from asset_importer.pipeline.observers import ImportObserver
from asset_importer.schemas import InFlightItem, MediaResult


_redis = redis.Redis.from_url(settings.redis_url, decode_responses=True)


def _job_key(job_id: str) -> str:
    return f"job:{job_id}"


def _job_logs_key(job_id: str) -> str:
    return f"job:{job_id}:logs"


def _job_events_channel(job_id: str) -> str:
    return f"job:{job_id}:events"


def init_job(job_id: str, total: int) -> None:
    _redis.hset(
        _job_key(job_id),
        mapping={
            "status": "QUEUED",
            "progress": 0,
            "total": total,
            "completed": 0,
            "result_url": "",
            "error": "",
            "started_at": int(time.time()),
        },
    )
    _redis.delete(_job_logs_key(job_id))


def set_status(job_id: str, status: str, progress: Optional[int] = None, error: str = "") -> None:
    mapping: Dict[str, Any] = {"status": status}
    if progress is not None:
        mapping["progress"] = max(0, min(progress, 100))
    if error:
        mapping["error"] = error
    _redis.hset(_job_key(job_id), mapping=mapping)
    publish_event(job_id, {"type": "status", **mapping})


def set_completed(job_id: str, completed: int) -> None:
    _redis.hset(_job_key(job_id), mapping={"completed": completed})


def set_result(job_id: str, result_url: str) -> None:
    _redis.hset(_job_key(job_id), mapping={"result_url": result_url})
    publish_event(job_id, {"type": "result", "result_url": result_url})


def append_log(job_id: str, message: str) -> None:
    _redis.rpush(_job_logs_key(job_id), message)
    _redis.ltrim(_job_logs_key(job_id), -500, -1)
    publish_event(job_id, {"type": "log", "message": message})


def get_state(job_id: str) -> Dict[str, Any]:
    data = _redis.hgetall(_job_key(job_id))
    if data:
        data["progress"] = int(data.get("progress", 0) or 0)
        data["total"] = int(data.get("total", 0) or 0)
    return data


def get_logs(job_id: str, limit: int = 200) -> List[str]:
    return _redis.lrange(_job_logs_key(job_id), -limit, -1)


def publish_event(job_id: str, event: Dict[str, Any]) -> None:
    _redis.publish(_job_events_channel(job_id), json.dumps(event, ensure_ascii=False))


def get_pubsub():
    return _redis.pubsub()


class RedisProgressObserver(ImportObserver):
    """Mirrors importer progress into the job's Redis hash, log list and event channel."""

    def __init__(self, job_id: str) -> None:
        self.job_id = job_id
        self._total = 0
        self._completed = 0

    def _progress(self) -> int:
        if self._total == 0:
            return 100
        return int(self._completed * 100 / self._total)

    def run_started(self, total: int, batches: int, resumed: int = 0) -> None:
        # progress covers the whole input, checkpointed items count as done
        self._total = resumed + total
        self._completed = resumed
        if resumed:
            append_log(self.job_id, f"Resuming after {resumed} checkpointed results")
        set_status(self.job_id, "RUNNING", progress=self._progress())
        append_log(self.job_id, f"Importing {total} videos in {batches} batches")

    def batch_started(self, batch_index: int, batches: int, size: int) -> None:
        append_log(self.job_id, f"Batch {batch_index + 1}/{batches}: uploading {size} videos")

    def batch_uploaded(self, batch_index: int, items: Sequence[InFlightItem]) -> None:
        append_log(self.job_id, f"Uploaded {len(items)} videos")

    def item_completed(self, result: MediaResult) -> None:
        self._completed += 1
        phase = "ready" if result.success else "failed"
        append_log(
            self.job_id,
            f"{phase}: {result.assetId} :: error: {result.errorMessage or 'none'}",
        )

    def checkpoint_written(self, path: Path, count: int) -> None:
        set_completed(self.job_id, self._completed)
        set_status(self.job_id, "RUNNING", progress=self._progress())

    def run_completed(self, results: Sequence[MediaResult]) -> None:
        failed = sum(1 for r in results if not r.success)
        append_log(self.job_id, f"Import finished: {len(results)} results, {failed} failed")

    def run_failed(self, error: BaseException) -> None:
        append_log(self.job_id, f"Error: {error}")

"""Persistence for chart event documents.

Records mirror the ``astro_event_data`` rows of the original service:
``event_id``, ``user_id``, ``label``, ``event_data``, ``created_at`` and
``updated_at``. ``event_data`` is stored as a JSON string; older rows may hold
anything, which is why readers decode it themselves.

The in-memory store is only suitable for development and tests. The Redis
store keeps one JSON blob per event plus an id index.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

import redis

from ..schemas.charts import ChartDocument

logger = logging.getLogger(__name__)

EventData = Union[str, Dict[str, Any]]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _dump(doc: Union[ChartDocument, Dict[str, Any], str]) -> str:
    if isinstance(doc, ChartDocument):
        return doc.model_dump_json()
    if isinstance(doc, str):
        return doc
    return json.dumps(doc)


class ChartNotFound(KeyError):
    pass


class InMemoryChartStore:
    def __init__(self) -> None:
        self._rows: Dict[int, Dict[str, Any]] = {}
        self._seq = 0
        self._lock = threading.Lock()

    def create_chart(self, user_id: str, label: str, doc: Union[ChartDocument, Dict[str, Any], str]) -> int:
        with self._lock:
            self._seq += 1
            eid = self._seq
            now = _now()
            self._rows[eid] = {
                "event_id": eid,
                "user_id": user_id,
                "label": label,
                "event_data": _dump(doc),
                "created_at": now,
                "updated_at": now,
            }
        return eid

    def load_chart(self, event_id: int) -> Dict[str, Any]:
        with self._lock:
            row = self._rows.get(event_id)
            if row is None:
                raise ChartNotFound(event_id)
            return dict(row)

    def save_chart(self, event_id: int, doc: Union[ChartDocument, Dict[str, Any], str]) -> None:
        with self._lock:
            row = self._rows.get(event_id)
            if row is None:
                raise ChartNotFound(event_id)
            row["event_data"] = _dump(doc)
            row["updated_at"] = _now()

    def list_all_charts(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [dict(self._rows[k]) for k in sorted(self._rows)]

    def list_user_charts(self, user_id: str) -> List[Dict[str, Any]]:
        rows = [r for r in self.list_all_charts() if r["user_id"] == user_id]
        return sorted(rows, key=lambda r: (r["created_at"], r["event_id"]), reverse=True)


class RedisChartStore:
    """Chart store on Redis: ``{prefix}:event:{id}`` JSON rows, ``{prefix}:ids`` index."""

    def __init__(self, client: "redis.Redis", prefix: str = "pythia") -> None:
        self.client = client
        self.prefix = prefix

    @classmethod
    def from_url(cls, url: str, prefix: str = "pythia") -> "RedisChartStore":
        return cls(redis.Redis.from_url(url, decode_responses=True), prefix=prefix)

    def _key(self, event_id: int) -> str:
        return f"{self.prefix}:event:{event_id}"

    def create_chart(self, user_id: str, label: str, doc: Union[ChartDocument, Dict[str, Any], str]) -> int:
        eid = int(self.client.incr(f"{self.prefix}:seq"))
        now = _now()
        row = {
            "event_id": eid,
            "user_id": user_id,
            "label": label,
            "event_data": _dump(doc),
            "created_at": now,
            "updated_at": now,
        }
        self.client.set(self._key(eid), json.dumps(row))
        self.client.sadd(f"{self.prefix}:ids", eid)
        return eid

    def load_chart(self, event_id: int) -> Dict[str, Any]:
        raw = self.client.get(self._key(event_id))
        if raw is None:
            raise ChartNotFound(event_id)
        return json.loads(raw)

    def save_chart(self, event_id: int, doc: Union[ChartDocument, Dict[str, Any], str]) -> None:
        row = self.load_chart(event_id)
        row["event_data"] = _dump(doc)
        row["updated_at"] = _now()
        self.client.set(self._key(event_id), json.dumps(row))

    def list_all_charts(self) -> List[Dict[str, Any]]:
        ids = sorted(int(i) for i in self.client.smembers(f"{self.prefix}:ids"))
        rows = []
        for eid in ids:
            try:
                rows.append(self.load_chart(eid))
            except ChartNotFound:
                logger.warning("chart_store_dangling_id", extra={"event_id": eid})
        return rows

    def list_user_charts(self, user_id: str) -> List[Dict[str, Any]]:
        rows = [r for r in self.list_all_charts() if r.get("user_id") == user_id]
        return sorted(rows, key=lambda r: (r["created_at"], r["event_id"]), reverse=True)


_STORE: Optional[Union[InMemoryChartStore, RedisChartStore]] = None
_STORE_LOCK = threading.Lock()


def get_store() -> Union[InMemoryChartStore, RedisChartStore]:
    """Return the process-wide store selected by ``CHART_STORE`` (memory | redis)."""

    global _STORE
    with _STORE_LOCK:
        if _STORE is None:
            backend = os.getenv("CHART_STORE", "memory").strip().lower()
            if backend == "redis":
                url = os.getenv("REDIS_URL", "redis://localhost:6379/0")
                _STORE = RedisChartStore.from_url(url)
                logger.info("chart_store_redis", extra={"redis_url": url})
            else:
                _STORE = InMemoryChartStore()
        return _STORE


def set_store(store: Optional[Union[InMemoryChartStore, RedisChartStore]]) -> None:
    global _STORE
    with _STORE_LOCK:
        _STORE = store

import threading
import time
from collections import deque
from typing import Deque, Dict, List, Optional, Set

import redis
from pydantic import ValidationError

from constants import HISTORY_LIMIT, REDIS_DB, REDIS_HOST, REDIS_PASSWORD, REDIS_PORT, STORE_BACKEND
from errors import PersistenceError
from logging_config import get_logger
from redis_keys import REDIS_HISTORY_KEY, REDIS_USER_KEY, REDIS_USERS_KEY
from schemas.rooms import HistoryRecord

logger = get_logger(__name__)


def create_redis_client() -> redis.Redis:
    """Build a Redis client from configuration. The connection is opened on first use."""
    logger.info(f"Creating Redis client for {REDIS_HOST}:{REDIS_PORT} db={REDIS_DB}")
    return redis.Redis(
        host=REDIS_HOST,
        port=REDIS_PORT,
        password=REDIS_PASSWORD,
        db=REDIS_DB,
        decode_responses=True,
    )


class RedisHistoryStore:
    """Per-room chat history kept in a capped Redis list."""

    def __init__(self, redis_client: redis.Redis, limit: int = HISTORY_LIMIT):
        self.redis_client = redis_client
        self.limit = limit

    def append(self, room: str, username: str, body: str, timestamp_millis: int):
        key = REDIS_HISTORY_KEY.format(slug=room)
        record = HistoryRecord(username=username, body=body, timestamp_millis=timestamp_millis)
        try:
            pipe = self.redis_client.pipeline()
            pipe.rpush(key, record.model_dump_json())
            pipe.ltrim(key, -self.limit, -1)
            pipe.execute()
        except redis.RedisError as e:
            raise PersistenceError(f"Failed to append history for room {room}: {e}") from e
        logger.debug(f"Appended message from {username} to history of room {room}")

    def load_recent(self, room: str) -> List[HistoryRecord]:
        key = REDIS_HISTORY_KEY.format(slug=room)
        try:
            raw_entries = self.redis_client.lrange(key, -self.limit, -1)
        except redis.RedisError as e:
            raise PersistenceError(f"Failed to load history for room {room}: {e}") from e

        records = []
        for raw in raw_entries:
            try:
                records.append(HistoryRecord.model_validate_json(raw))
            except ValidationError as e:
                logger.warning(f"Skipping malformed history entry in room {room}: {e}")
        logger.debug(f"Loaded {len(records)} history records for room {room}")
        return records


class RedisUserStore:
    """Remembers every username that has joined a room."""

    def __init__(self, redis_client: redis.Redis):
        self.redis_client = redis_client

    def record_user(self, username: str):
        now = int(time.time() * 1000)
        user_key = REDIS_USER_KEY.format(username=username)
        try:
            pipe = self.redis_client.pipeline()
            pipe.sadd(REDIS_USERS_KEY, username)
            pipe.hsetnx(user_key, "first_seen", now)
            pipe.hset(user_key, "last_seen", now)
            pipe.execute()
        except redis.RedisError as e:
            raise PersistenceError(f"Failed to record user {username}: {e}") from e
        logger.debug(f"Recorded user {username}")


class InMemoryHistoryStore:
    """Process-local history store, used with STORE_BACKEND=memory and in tests."""

    def __init__(self, limit: int = HISTORY_LIMIT):
        self.limit = limit
        self._history: Dict[str, Deque[HistoryRecord]] = {}
        self._lock = threading.Lock()

    def append(self, room: str, username: str, body: str, timestamp_millis: int):
        record = HistoryRecord(username=username, body=body, timestamp_millis=timestamp_millis)
        with self._lock:
            self._history.setdefault(room, deque(maxlen=self.limit)).append(record)

    def load_recent(self, room: str) -> List[HistoryRecord]:
        with self._lock:
            return list(self._history.get(room, ()))


class InMemoryUserStore:
    def __init__(self):
        self.users: Set[str] = set()
        self._lock = threading.Lock()

    def record_user(self, username: str):
        with self._lock:
            self.users.add(username)


def create_stores(backend: Optional[str] = None):
    """Return ``(history_store, user_store)`` for the configured backend."""
    backend = (backend or STORE_BACKEND).lower()
    if backend == "memory":
        logger.info("Using in-memory history and user stores")
        return InMemoryHistoryStore(), InMemoryUserStore()
    if backend == "redis":
        redis_client = create_redis_client()
        return RedisHistoryStore(redis_client), RedisUserStore(redis_client)
    raise ValueError(f"Unknown STORE_BACKEND: {backend}")

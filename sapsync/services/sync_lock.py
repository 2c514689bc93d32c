"""
Распределенная блокировка синхронизации клиента.

Один ключ на пару (организация сбыта, клиент). Блокировка хранится в Redis
и видна всем воркерам. Она держится весь запуск: берет ее задача клиента,
снимает шаг, на котором запуск закончился. TTL снимает ее сам, если
воркер упал.
"""
import json
import logging
import os
import re
import socket
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Iterator, Optional
import redis
from sapsync.core.config import settings

logger = logging.getLogger(__name__)

LOCK_KEY_PATTERN = re.compile(r"^sync_lock_([^_]+)_(.+)$")
MAX_PART_LENGTH = 50

@dataclass(frozen=True)
class SyncLockId:
    sales_org: str
    customer_id: str

    def __post_init__(self):
        if not self.sales_org or not self.sales_org.strip():
            raise ValueError("Sales organization cannot be empty")
        if not self.customer_id or not self.customer_id.strip():
            raise ValueError("Customer ID cannot be empty")
        if len(self.sales_org) > MAX_PART_LENGTH:
            raise ValueError(f'Sales organization too long: "{self.sales_org}"')
        if len(self.customer_id) > MAX_PART_LENGTH:
            raise ValueError(f'Customer ID too long: "{self.customer_id}"')

    @classmethod
    def from_lock_key(cls, lock_key: str) -> "SyncLockId":
        match = LOCK_KEY_PATTERN.match(lock_key)
        if not match:
            raise ValueError(f'Invalid lock key format: "{lock_key}"')
        return cls(sales_org=match.group(1), customer_id=match.group(2))

    def to_lock_key(self) -> str:
        return f"sync_lock_{self.sales_org}_{self.customer_id}"

    def __str__(self):
        return self.to_lock_key()

class SyncLock:
    """
    Блокировка поверх Redis: SET NX EX.

    acquire() возвращает False при конкуренции и никогда не бросает
    исключение из-за занятого ключа. Ошибки самого Redis пробрасываются,
    чтобы не выдать блокировку вслепую. release() вычисляется только
    из ключа и работает из любого процесса.
    """

    def __init__(self, client: Optional[redis.Redis] = None, ttl: Optional[int] = None):
        self.client = client or redis.Redis.from_url(settings.REDIS_URL)
        self.ttl = ttl or settings.SYNC_LOCK_TTL

    def acquire(self, lock_id: SyncLockId) -> bool:
        lock_key = lock_id.to_lock_key()

        logger.debug(f"Attempting to acquire sync lock {lock_key}")

        holder = json.dumps({
            "lock_key": lock_key,
            "acquired_at": datetime.now().isoformat(),
            "host": socket.gethostname(),
            "pid": os.getpid(),
        })

        acquired = self.client.set(lock_key, holder, nx=True, ex=self.ttl)

        if not acquired:
            logger.warning(f"Sync lock already held: {lock_key}")
            return False

        logger.info(f"Sync lock acquired: {lock_key}")
        return True

    def release(self, lock_id: SyncLockId) -> None:
        lock_key = lock_id.to_lock_key()
        if self.client.delete(lock_key):
            logger.debug(f"Sync lock released: {lock_key}")

    def is_locked(self, lock_id: SyncLockId) -> bool:
        return bool(self.client.exists(lock_id.to_lock_key()))

class SyncLockHold:
    """Удержание блокировки внутри hold_sync_lock"""

    def __init__(self, lock_id: SyncLockId, acquired: bool):
        self.lock_id = lock_id
        self.acquired = acquired
        self.handed_off = False

    def hand_off(self) -> None:
        """Блокировку снимет следующий шаг конвейера, а не этот блок"""
        self.handed_off = True

@contextmanager
def hold_sync_lock(lock: SyncLock, lock_id: SyncLockId) -> Iterator[SyncLockHold]:
    """
    Захватывает блокировку на время блока.

    hold.acquired показывает, получена ли блокировка; при False блок
    должен ничего не делать. Полученная блокировка снимается при любом
    выходе из блока, если блок не передал ее дальше через hand_off().
    Переданную блокировку снимает конец запуска или TTL.
    """
    hold = SyncLockHold(lock_id, lock.acquire(lock_id))
    try:
        yield hold
    finally:
        if hold.acquired and not hold.handed_off:
            lock.release(lock_id)

import pytest
from unittest.mock import Mock
import redis
from sapsync.services.sync_lock import SyncLock, SyncLockId, hold_sync_lock

def test_lock_key_format():
    lock_id = SyncLockId(sales_org="100", customer_id="CUST1")
    assert lock_id.to_lock_key() == "sync_lock_100_CUST1"
    assert str(lock_id) == "sync_lock_100_CUST1"

def test_lock_key_round_trip_keeps_underscores_in_customer():
    lock_id = SyncLockId.from_lock_key("sync_lock_0000210839_185_A")
    assert lock_id == SyncLockId(sales_org="0000210839", customer_id="185_A")

@pytest.mark.parametrize("sales_org, customer_id", [("", "CUST1"), ("100", "  "), ("1" * 51, "CUST1")])
def test_lock_id_validation(sales_org, customer_id):
    with pytest.raises(ValueError):
        SyncLockId(sales_org=sales_org, customer_id=customer_id)

def test_invalid_lock_key():
    with pytest.raises(ValueError):
        SyncLockId.from_lock_key("lock_100_CUST1")

def test_acquire_uses_set_nx_with_ttl(fake_redis):
    lock = SyncLock(client=fake_redis, ttl=600)
    lock_id = SyncLockId("100", "CUST1")

    assert lock.acquire(lock_id) is True
    assert fake_redis.ttls["sync_lock_100_CUST1"] == 600
    assert lock.is_locked(lock_id) is True

def test_second_acquire_fails_while_held(fake_redis):
    lock = SyncLock(client=fake_redis, ttl=600)
    other_worker = SyncLock(client=fake_redis, ttl=600)
    lock_id = SyncLockId("100", "CUST1")

    assert lock.acquire(lock_id) is True
    assert other_worker.acquire(lock_id) is False

    # Другой клиент/оргсбыта не блокируется
    assert other_worker.acquire(SyncLockId("200", "CUST1")) is True

def test_release_from_another_process_and_idempotent(fake_redis):
    lock_id = SyncLockId("100", "CUST1")
    SyncLock(client=fake_redis).acquire(lock_id)

    # Снятие вычисляется из ключа, без локального кэша
    releaser = SyncLock(client=fake_redis)
    releaser.release(lock_id)
    releaser.release(lock_id)

    assert releaser.is_locked(lock_id) is False
    assert releaser.acquire(lock_id) is True

def test_expired_lock_can_be_reacquired(fake_redis):
    lock = SyncLock(client=fake_redis, ttl=1)
    lock_id = SyncLockId("100", "CUST1")

    lock.acquire(lock_id)
    fake_redis.expire_now(lock_id.to_lock_key())

    assert lock.is_locked(lock_id) is False
    assert lock.acquire(lock_id) is True

def test_storage_errors_propagate():
    client = Mock()
    client.set.side_effect = redis.ConnectionError("redis down")
    lock = SyncLock(client=client)

    with pytest.raises(redis.ConnectionError):
        lock.acquire(SyncLockId("100", "CUST1"))

def test_hold_sync_lock_releases_on_exception(fake_redis):
    lock = SyncLock(client=fake_redis)
    lock_id = SyncLockId("100", "CUST1")

    with pytest.raises(RuntimeError):
        with hold_sync_lock(lock, lock_id) as hold:
            assert hold.acquired is True
            raise RuntimeError("sync failed")

    assert lock.is_locked(lock_id) is False

def test_hold_sync_lock_does_not_release_foreign_lock(fake_redis):
    lock = SyncLock(client=fake_redis)
    lock_id = SyncLockId("100", "CUST1")
    lock.acquire(lock_id)

    with hold_sync_lock(lock, lock_id) as hold:
        assert hold.acquired is False

    assert lock.is_locked(lock_id) is True

def test_hold_sync_lock_hand_off_keeps_lock_for_next_stage(fake_redis):
    lock = SyncLock(client=fake_redis)
    lock_id = SyncLockId("100", "CUST1")

    with hold_sync_lock(lock, lock_id) as hold:
        hold.hand_off()

    assert lock.is_locked(lock_id) is True

    # Следующий шаг снимает блокировку по ключу
    SyncLock(client=fake_redis).release(lock_id)
    assert lock.is_locked(lock_id) is False

from cache import Cache, CacheFamily
from scheduler import SchedulerManager

ALL_USERS = CacheFamily("UserService", "all_users")
ALL_GROUPS = CacheFamily("GroupService", "all_groups")


def test_sweep_removes_expired_entries() -> None:
    now = [0.0]
    cache = Cache(data_ttl=60, clock=lambda: now[0])
    cache.cache_data(["u"], ALL_USERS.key())
    now[0] = 30.0
    cache.cache_data(["g"], ALL_GROUPS.key())
    now[0] = 75.0

    manager = SchedulerManager(cache)
    removed = manager._run_job()

    assert removed == 1
    assert cache.get_cached_data(ALL_USERS.key()) is None
    assert cache.get_cached_data(ALL_GROUPS.key()) == ["g"]
    assert not manager.scheduler.running


def test_stop_without_start_is_harmless() -> None:
    manager = SchedulerManager(Cache())
    manager.stop()
    assert not manager.scheduler.running
